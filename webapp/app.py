"""Flask service for stroke predictions

Run with: python -m webapp.app
"""
import logging

from flask import Flask, request, jsonify

import config
from stroke_analysis.exceptions import InputValidationError

logger = logging.getLogger(__name__)


def create_app(predictor=None):
    """
    Build the Flask app

    Args:
        predictor: StrokePredictor, or None to start without a model
    """
    app = Flask(__name__)
    app.config['TITLE'] = config.APP_TITLE
    app.config['PREDICTOR'] = predictor

    @app.route('/predict', methods=['POST'])
    def predict():
        """Predict one patient record (JSON object) or several (JSON list)"""
        predictor = app.config['PREDICTOR']
        if predictor is None:
            return jsonify({'error': 'Model is not loaded'}), 503

        data = request.get_json(silent=True)
        if not isinstance(data, (dict, list)) or not data:
            return jsonify({'error': 'Request body must be a JSON object or a non-empty list'}), 400

        try:
            predictions = predictor.predict(data)
        except InputValidationError as e:
            return jsonify({'error': str(e), 'field': e.field}), 400
        except Exception as e:
            logger.exception("Prediction failed")
            return jsonify({'error': f'System error: {str(e)}'}), 500

        if isinstance(data, dict):
            return jsonify(predictions[0])
        return jsonify(predictions)

    @app.route('/health')
    def health():
        """Service status"""
        model_loaded = app.config['PREDICTOR'] is not None
        return jsonify({
            'service': app.config['TITLE'],
            'status': 'ok',
            'model_loaded': model_loaded,
            'message': 'Model is ready' if model_loaded else 'Model is not loaded'
        })

    return app


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    from webapp.model_loader import load_predictor

    print("=" * 60)
    print(config.APP_TITLE)
    print("=" * 60)
    print("Starting server...")
    print("Open: http://localhost:5000")
    print("Press Ctrl+C to stop")
    print("=" * 60)
    app = create_app(load_predictor())
    app.run(host='0.0.0.0', port=5000)
