"""Flask application factory."""

import os
from flask import Flask
from flask_cors import CORS

from services.config import load_config

CONFIG_PATH = os.path.join(
    os.path.dirname(__file__), "..", "config", "tracker-config.json"
)


def load_tracker_config(app):
    """Load tracker settings from the config file and environment."""
    if os.path.exists(CONFIG_PATH):
        app.logger.info(f"Loading tracker config from {CONFIG_PATH}")
    else:
        app.logger.info("No tracker-config.json found, using defaults")

    config = load_config(CONFIG_PATH)
    app.config["TRACKER_CONFIG"] = config
    app.logger.info(f"Serving issue cache from {config.cache_dir}")


def create_app():
    """Create and configure the Flask application."""
    app = Flask(__name__)

    # Enable CORS for frontend
    CORS(app, resources={
        r"/api/*": {
            "origins": ["http://localhost:5173", "http://127.0.0.1:5173"],
            "methods": ["GET", "OPTIONS"],
            "allow_headers": ["Content-Type"]
        }
    })

    # Register blueprints
    from app.api import tracker, sprints, debug
    app.register_blueprint(tracker.bp)
    app.register_blueprint(sprints.bp)
    app.register_blueprint(debug.bp)

    load_tracker_config(app)

    # Health check endpoint
    @app.route("/health")
    def health():
        return {"status": "ok"}

    return app
