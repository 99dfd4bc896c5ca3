"""
Colored console logging shared by the API server and the CLI
"""
import colorlog

from investigation_search.config import LOG_CONFIG


def setup_logging(level=None):
    """
    Attach a colored stream handler to the root logger.

    Safe to call more than once; the handler is only added the first time.
    """
    logger = colorlog.getLogger()
    if not any(getattr(h, '_investigation_search', False) for h in logger.handlers):
        handler = colorlog.StreamHandler()
        handler.setFormatter(colorlog.ColoredFormatter(
            LOG_CONFIG['format'],
            datefmt=LOG_CONFIG['date_format'],
            log_colors={
                'DEBUG': 'cyan',
                'INFO': 'green',
                'WARNING': 'yellow',
                'ERROR': 'red',
                'CRITICAL': 'red,bg_white',
            }
        ))
        handler._investigation_search = True
        logger.addHandler(handler)
    logger.setLevel(level or LOG_CONFIG['level'])
    return logger
