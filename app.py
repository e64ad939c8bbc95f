"""Application factory."""

import json
import logging
import os
import uuid

import click
from flask import Flask, g, jsonify, request
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException

from config import Config
from models import db
from routes.applications import applications_bp
from routes.notifications import notifications_bp
from routes.payments import payments_bp
from routes.review import admin_bp
from services.errors import NotAuthenticated
from services.payments import cleanup_abandoned_payments

migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(key_func=get_remote_address)


def create_app(config_class: type[Config] = Config) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_class)
    log_level = app.config.get("LOG_LEVEL", "INFO")
    app.logger.setLevel(log_level)
    logging.getLogger("services").setLevel(log_level)

    # Core subsystems
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)

    # CORS
    CORS(
        app,
        resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}},
        supports_credentials=True,
    )

    # Rate limiting
    storage_uri = app.config.get("RATELIMIT_STORAGE_URI", "memory://")
    headers_enabled = app.config.get("RATELIMIT_HEADERS_ENABLED", True)
    key_prefix = app.config.get("RATELIMIT_KEY_PREFIX") or str(uuid.uuid4())

    global limiter
    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[lambda: app.config.get("RATE_LIMIT", "60 per minute")],
        storage_uri=storage_uri,
        headers_enabled=headers_enabled,
        key_prefix=key_prefix,
    )
    limiter.init_app(app)
    app.config["RATELIMIT_KEY_PREFIX"] = key_prefix

    # Ensure uploads directory exists
    upload_dir = app.config.get("UPLOAD_DIR")
    if upload_dir:
        os.makedirs(upload_dir, exist_ok=True)

    # Blueprints
    app.register_blueprint(applications_bp, url_prefix="/applications")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(payments_bp, url_prefix="/payments")
    app.register_blueprint(notifications_bp, url_prefix="/notifications")
    # Webhooks are signature-checked, not rate limited.
    limiter.exempt(app.view_functions["payments.payment_webhook"])

    # Health
    @app.route("/health", methods=["GET"])
    def health_check():
        return jsonify({"status": "ok"})

    # Errors
    _register_error_handlers(app)
    _register_jwt_handlers()

    # Commands
    _register_commands(app)

    return app


def _error_payload(error: HTTPException, request_id: str) -> dict:
    return {
        "error": getattr(error, "name", "Error"),
        "type": type(error).__name__,
        "detail": error.description,
        "request_id": request_id,
    }


def _json_error(error: HTTPException):
    request_id = g.get("request_id") or str(uuid.uuid4())
    response = error.get_response()
    response.data = json.dumps(_error_payload(error, request_id))
    response.content_type = "application/json"
    response.headers.setdefault("X-Request-ID", request_id)
    return response


def _register_error_handlers(app: Flask) -> None:
    """Register JSON error handlers with request IDs."""

    @app.before_request
    def _assign_request_id():
        g.request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

    @app.after_request
    def _add_request_id_header(response):
        request_id = g.get("request_id")
        if request_id:
            response.headers.setdefault("X-Request-ID", request_id)
        return response

    @app.errorhandler(HTTPException)
    def _handle_http_exception(error: HTTPException):
        if error.code and error.code >= 500:
            app.logger.warning("%s: %s", type(error).__name__, error.description)
        return _json_error(error)

    @app.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        request_id = g.get("request_id") or str(uuid.uuid4())
        app.logger.exception("Unhandled application error", exc_info=error)
        payload = {
            "error": "Internal Server Error",
            "type": "InternalServerError",
            "detail": "An unexpected error occurred.",
            "request_id": request_id,
        }
        response = jsonify(payload)
        response.status_code = 500
        response.headers.setdefault("X-Request-ID", request_id)
        return response


def _register_jwt_handlers() -> None:
    """Render token problems in the same shape as every other 401."""

    @jwt.unauthorized_loader
    def _missing_token(reason: str):
        return _json_error(NotAuthenticated(reason))

    @jwt.invalid_token_loader
    def _invalid_token(reason: str):
        return _json_error(NotAuthenticated(reason))

    @jwt.expired_token_loader
    def _expired_token(jwt_header, jwt_payload):
        return _json_error(NotAuthenticated("Token has expired."))


def _register_commands(app: Flask) -> None:
    @app.cli.command("cleanup-abandoned-payments")
    def cleanup_abandoned_payments_command():
        """Cancel checkout payments stuck in Processing past the timeout."""

        report = cleanup_abandoned_payments()
        failed = [result for result in report["results"] if not result["success"]]
        click.echo(
            f"Processed {report['processed']} abandoned payments "
            f"({len(failed)} failed)."
        )
        for result in failed:
            click.echo(f"  payment {result['payment_id']}: {result['error']}")


if __name__ == "__main__":
    application = create_app()
    application.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
