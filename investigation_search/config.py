"""
Configuration Management
Loads all settings from .env file
"""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Config:
    """Application Configuration"""

    # Flask
    SECRET_KEY = os.getenv('FLASK_SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'
    PORT = int(os.getenv('FLASK_PORT', 5000))

    # External search API
    SEARCH_API_CONFIG = {
        'base_url': os.getenv('SEARCH_API_URL', 'http://localhost:8000'),
        'token': os.getenv('SEARCH_API_TOKEN', ''),
        'page_size': int(os.getenv('SEARCH_PAGE_SIZE', 100)),
        'max_pages': int(os.getenv('SEARCH_MAX_PAGES', 1000)),
        'max_results': int(os.getenv('SEARCH_MAX_RESULTS', 50000)),
        'timeout': float(os.getenv('SEARCH_PAGE_TIMEOUT', 30)),  # per page, seconds
        'retry_attempts': int(os.getenv('SEARCH_RETRY_ATTEMPTS', 3)),
        'retry_delay': float(os.getenv('SEARCH_RETRY_DELAY', 1.0)),  # multiplied by attempt number
    }

    # Search session
    CONCURRENCY = int(os.getenv('SEARCH_CONCURRENCY', 3))
    SESSION_TIMEOUT = float(os.getenv('SEARCH_SESSION_TIMEOUT', 300))

    # Analysis
    EXTRACTION_STRATEGY = os.getenv('EXTRACTION_STRATEGY', 'hybrid')  # 'regex' or 'hybrid'
    RESOLUTION_THRESHOLD = float(os.getenv('RESOLUTION_THRESHOLD', 0.85))
    MULTI_MATCH_BONUS = float(os.getenv('MULTI_MATCH_BONUS', 0.5))
    MIN_SECONDARY_MATCH = float(os.getenv('MIN_SECONDARY_MATCH', 0.3))

    # Security
    RATE_LIMIT = int(os.getenv('RATE_LIMIT_PER_MINUTE', 30))
    MAX_INPUT_LENGTH = int(os.getenv('MAX_INPUT_LENGTH', 1000))


# Relevance weight per criterion category (heuristic, tune freely)
CATEGORY_WEIGHTS = {
    'name': 10,
    'phone': 9,
    'email': 9,
    'id': 9,
    'account': 8,
    'company': 7,
    'location': 6,
    'keyword': 3,
}

# Logging Configuration
LOG_CONFIG = {
    'level': os.getenv('LOG_LEVEL', 'INFO'),
    'format': '%(log_color)s%(asctime)s - %(levelname)s - %(message)s',
    'date_format': '%Y-%m-%d %H:%M:%S'
}
