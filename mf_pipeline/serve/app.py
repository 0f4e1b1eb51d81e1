"""
Rating Prediction API Service

Flask web service wrapping a PredictionService.
Endpoints:
- GET /health
- GET /predict/<user_id>/<item_id>
- GET /recommend/<user_id>?n=10

The service is passed to create_app(); nothing is loaded from disk.
"""

import logging
import time
from typing import Optional

from flask import Flask, current_app, jsonify, request

from .. import config
from ..data_io import ItemCatalog
from ..errors import UnknownEntity
from ..predict import PredictionService

logger = logging.getLogger(__name__)

AVAILABLE_ENDPOINTS = ['/health', '/predict/<user_id>/<item_id>', '/recommend/<user_id>']


def _service() -> Optional[PredictionService]:
    return current_app.config.get("PREDICTION_SERVICE")


def _title(item_id: int) -> str:
    catalog = current_app.config.get("ITEM_CATALOG")
    return catalog.label(item_id) if catalog is not None else f"Item {item_id}"


def create_app(service: Optional[PredictionService] = None,
               catalog: Optional[ItemCatalog] = None) -> Flask:
    """
    Build the Flask app around a trained prediction service.

    Args:
        service: PredictionService for a trained model
        catalog: Optional item catalog for titles
    """
    app = Flask(__name__)
    app.config["PREDICTION_SERVICE"] = service
    app.config["ITEM_CATALOG"] = catalog

    @app.errorhandler(400)
    def bad_request(error):
        """Handle 400 Bad Request errors."""
        return jsonify({
            'error': 'Bad Request',
            'message': 'The request was malformed or invalid'
        }), 400

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 Not Found errors."""
        logger.warning(f"Endpoint not found: {request.method} {request.path}")
        return jsonify({
            'error': 'Not Found',
            'message': 'The requested endpoint does not exist',
            'available_endpoints': AVAILABLE_ENDPOINTS
        }), 404

    @app.errorhandler(UnknownEntity)
    def unknown_entity(error):
        """Cold start: report the baseline the caller can fall back to."""
        return jsonify({
            'error': 'Unknown Entity',
            'message': str(error),
            'kind': error.kind,
            'baseline': _service().baseline(),
        }), 404

    @app.route('/health', methods=['GET'])
    def health_check():
        service = _service()
        return jsonify({
            'status': 'healthy',
            'model_loaded': service is not None,
            'model_info': service.model.get_model_info() if service is not None else None,
        })

    @app.route('/predict/<int:user_id>/<int:item_id>', methods=['GET'])
    def predict_rating(user_id, item_id):
        service = _service()
        if service is None:
            return jsonify({'error': 'Service Unavailable', 'message': 'No model loaded'}), 503

        start_time = time.time()
        rating = service.predict(user_id, item_id)
        logger.info(f"predict user={user_id} item={item_id} rating={rating:.3f} "
                    f"({(time.time() - start_time) * 1000:.1f}ms)")
        return jsonify({
            'user_id': user_id,
            'item_id': item_id,
            'rating': rating,
            'title': _title(item_id),
        })

    @app.route('/recommend/<int:user_id>', methods=['GET'])
    def recommend_items(user_id):
        service = _service()
        if service is None:
            return jsonify({'error': 'Service Unavailable', 'message': 'No model loaded'}), 503

        n_raw = request.args.get('n', config.PREDICTION_CONFIG['n_recommendations'])
        try:
            n_recommendations = int(n_raw)
        except (TypeError, ValueError):
            n_recommendations = -1
        if not 1 <= n_recommendations <= config.SERVING_CONFIG['max_recommendations']:
            return jsonify({
                'error': 'Bad Request',
                'message': f"n must be an integer between 1 and {config.SERVING_CONFIG['max_recommendations']}"
            }), 400

        recommendations = service.recommend(user_id, n_recommendations)
        return jsonify({
            'user_id': user_id,
            'recommendations': [
                {'item_id': item_id, 'rating': rating, 'title': _title(item_id)}
                for item_id, rating in recommendations
            ],
        })

    return app
