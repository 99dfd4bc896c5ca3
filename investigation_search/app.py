"""
Flask Application Entry Point
Main application setup and initialization
"""
from flask import Flask, jsonify
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import logging

from investigation_search.config import Config
from investigation_search.logging_setup import setup_logging
from investigation_search.agents.entity_extractor import EntityExtractor
from investigation_search.agents.investigation_agent import InvestigationSearch
from investigation_search.api.routes import init_routes

logger = logging.getLogger(__name__)


def create_app(search_factory=None, extractor=None):
    """
    Create and configure Flask application

    Args:
        search_factory: callable returning an InvestigationSearch; one is
                        built per request so sessions never share state
        extractor: EntityExtractor for /api/extract
    """
    app = Flask(__name__)
    app.config['SECRET_KEY'] = Config.SECRET_KEY

    # Enable CORS
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    # Initialize rate limiter
    limiter = Limiter(
        get_remote_address,
        app=app,
        default_limits=[f"{Config.RATE_LIMIT} per minute"],
        storage_uri="memory://"
    )

    logger.info("Initializing application components...")

    extractor = extractor or EntityExtractor.from_name(Config.EXTRACTION_STRATEGY)
    search_factory = search_factory or (lambda: InvestigationSearch(extractor=extractor))

    logger.info("Registering API routes...")
    app.register_blueprint(init_routes(search_factory, extractor, limiter))

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({
            'success': False,
            'error': f'Rate limit exceeded: {e.description}'
        }), 429

    logger.info("Application initialized successfully!")
    return app


def run():
    setup_logging('DEBUG' if Config.DEBUG else None)
    app = create_app()

    logger.info(f"Starting Flask server on port {Config.PORT}...")
    logger.info(f"Debug mode: {Config.DEBUG}")

    app.run(
        host='0.0.0.0',
        port=Config.PORT,
        debug=Config.DEBUG
    )


if __name__ == '__main__':
    run()
