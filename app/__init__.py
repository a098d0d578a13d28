"""
Pacchetto principale dell'applicazione Flask.
"""

from flask import Flask, jsonify
from config import DevConfig
from .extensions import init_extensions

def create_app(config_class=DevConfig) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)
    init_extensions(app)

    _register_blueprints(app)

    app.logger.info("Applicazione Flask inizializzata.")

    @app.route("/health")
    def healthcheck():
        return jsonify({"status": "ok"}), 200

    return app


def _register_blueprints(app: Flask) -> None:
    # API
    from .api import api_delivery_notes_bp, api_blobs_bp

    app.register_blueprint(api_delivery_notes_bp, url_prefix="/api/deliverynote")
    app.register_blueprint(api_blobs_bp, url_prefix="/blobs")
