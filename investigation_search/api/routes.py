"""
Flask API Routes
Defines all HTTP endpoints for investigation search
"""
from flask import Blueprint, request, jsonify
import logging

from investigation_search.security.input_sanitizer import InputSanitizer
from investigation_search.config import Config

logger = logging.getLogger(__name__)


def init_routes(search_factory, extractor, limiter):
    """
    Build the API blueprint with its dependencies

    Args:
        search_factory: callable returning a fresh InvestigationSearch per request
        extractor: EntityExtractor instance (stateless, shared)
        limiter: Limiter attached to the app

    Returns:
        Blueprint mounted at /api
    """
    api_bp = Blueprint('api', __name__, url_prefix='/api')

    @api_bp.route('/health', methods=['GET'])
    def health_check():
        """Health check endpoint"""
        return jsonify({
            'status': 'healthy',
            'service': 'investigation-search'
        }), 200

    @api_bp.route('/investigate', methods=['POST'])
    @limiter.limit(f"{Config.RATE_LIMIT} per minute")
    def investigate():
        """
        Run a full investigation search

        Request JSON:
            {
                "query": "rahul sharma from delhi with phone 9876543210"
            }

        Response JSON: the SearchResponse dictionary
            {
                "success": true,
                "criteria": {...},
                "ranked_results": {"exact": [...], "partial": [...]},
                "graph": {...},
                "insights": {...},
                "metadata": {...}
            }
        """
        try:
            data = request.get_json(silent=True)

            if not data:
                return jsonify({
                    'success': False,
                    'error': 'No JSON data provided'
                }), 400

            is_valid, result = InputSanitizer.sanitize_query(data.get('query', ''))
            if not is_valid:
                return jsonify({
                    'success': False,
                    'error': result
                }), 400

            logger.info(f"Investigation request: {result[:50]}...")

            response = search_factory().search(result)
            return jsonify(response.to_dict()), 200 if response.success else 400

        except Exception as e:
            logger.error(f"Investigate endpoint error: {e}", exc_info=True)
            return jsonify({
                'success': False,
                'error': 'Internal server error'
            }), 500

    @api_bp.route('/extract', methods=['POST'])
    @limiter.limit(f"{Config.RATE_LIMIT} per minute")
    def extract():
        """
        Extract entities from free text without searching

        Request JSON:
            {
                "text": "Amit s/o Ramesh, mobile 9876543210, PAN ABCDE1234F"
            }
        """
        try:
            data = request.get_json(silent=True)

            if not data:
                return jsonify({
                    'success': False,
                    'error': 'No JSON data provided'
                }), 400

            is_valid, result = InputSanitizer.sanitize_text(data.get('text', ''))
            if not is_valid:
                return jsonify({
                    'success': False,
                    'error': result
                }), 400

            extraction = extractor.extract(result)
            response = extraction.to_dict()
            response['success'] = True
            return jsonify(response), 200

        except Exception as e:
            logger.error(f"Extract endpoint error: {e}", exc_info=True)
            return jsonify({
                'success': False,
                'error': 'Internal server error'
            }), 500

    return api_bp
