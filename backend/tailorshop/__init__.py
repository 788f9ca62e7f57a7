# backend/tailorshop/__init__.py
from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.orders import orders_bp
    from .routes.payments import payments_bp
    from .routes.attachments import attachments_bp, uploads_bp
    from .routes.notifications import notifications_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(attachments_bp)
    app.register_blueprint(uploads_bp)
    app.register_blueprint(notifications_bp)

    register_error_handlers(app)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


def register_error_handlers(app: Flask) -> None:
    """
    Map service exceptions that escape a route to JSON responses.

    Routes catch what they want to shape themselves; this is the fallback
    so every endpoint answers with the same status codes.
    """
    from .validation import ValidationError, ConflictError
    from .services.permission_service import Forbidden
    from .services.lifecycle_service import IllegalTransition
    from .services.order_service import OrderNotFoundError
    from .services.notification_service import NotificationNotFoundError
    from .services.concurrency import RepositoryUnavailable
    from .services.payment_service import PaymentNotAllowed

    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return jsonify({"error": str(e), "errors": e.errors}), 400

    @app.errorhandler(Forbidden)
    def handle_forbidden(e):
        return jsonify({"error": str(e)}), 403

    @app.errorhandler(OrderNotFoundError)
    @app.errorhandler(NotificationNotFoundError)
    def handle_not_found(e):
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(IllegalTransition)
    def handle_illegal_transition(e):
        return jsonify({
            "error": str(e),
            "from_status": e.from_status,
            "to_status": e.to_status,
        }), 409

    @app.errorhandler(PaymentNotAllowed)
    def handle_payment_not_allowed(e):
        return jsonify({"error": str(e)}), 409

    @app.errorhandler(ConflictError)
    def handle_conflict(e):
        body = {"error": str(e)}
        if e.field:
            body["field"] = e.field
        return jsonify(body), 409

    @app.errorhandler(RepositoryUnavailable)
    def handle_unavailable(e):
        app.logger.error("Storage unavailable: %s", e)
        return jsonify({"error": "Storage temporarily unavailable"}), 503

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        if isinstance(e, HTTPException):
            return jsonify({"error": e.description}), e.code
        app.logger.exception("Unhandled exception on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500
