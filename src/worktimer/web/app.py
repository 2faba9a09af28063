"""Flask app factory — creates and configures the JSON API application."""

from __future__ import annotations

from flask import Flask, jsonify

from worktimer.config import WorkTimerConfig
from worktimer.errors import (
    InvalidInputError,
    InvalidTransitionError,
    SessionNotFoundError,
    StorageError,
)
from worktimer.store import SessionStore


def create_app(config: WorkTimerConfig) -> Flask:
    """Create the Flask app with config values and registered routes.

    Args:
        config: WorkTimerConfig with db_path, default_scope, etc.

    Returns:
        Configured Flask application.
    """
    app = Flask(__name__)

    app.config["DB_PATH"] = config.db_path
    app.config["DEFAULT_SCOPE"] = config.default_scope
    # Shared by every request thread
    app.extensions["worktimer_store"] = SessionStore(config.db_path)

    from worktimer.web.routes import bp

    app.register_blueprint(bp)

    @app.errorhandler(400)
    def bad_request(exc):
        return jsonify({"error": exc.description}), 400

    @app.errorhandler(InvalidInputError)
    def invalid_input(exc):
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(SessionNotFoundError)
    def not_found(exc):
        return jsonify({"error": str(exc)}), 404

    @app.errorhandler(InvalidTransitionError)
    def conflict(exc):
        return jsonify({"error": str(exc), "status": exc.status}), 409

    @app.errorhandler(StorageError)
    def storage_failure(exc):
        app.logger.error("Storage failure: %s", exc)
        return jsonify({"error": "storage failure"}), 500

    return app
