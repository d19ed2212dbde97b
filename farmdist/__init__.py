# farmdist/__init__.py
from __future__ import annotations

import logging

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from .errors import ApiError
from .extensions import db, jwt, limiter, login_manager, migrate
from .settings import Config

CORS_METHODS = "POST, GET, OPTIONS, PUT, DELETE"
CORS_HEADERS = "Content-Type, Authorization, login"


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # ======================
    # Initialize Extensions
    # ======================
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    jwt.init_app(app)
    limiter.init_app(app)

    # ======================
    # Import Models (CRITICAL)
    # ======================
    from . import models  # noqa: F401

    # request_loader / unauthorized_handler registration
    from .utils import principal  # noqa: F401

    # ======================
    # Register Blueprints
    # ======================
    from .accounts import accounts_bp
    from .auth import auth
    from .catalog import catalog
    from .couriers import couriers_bp
    from .orders import orders_bp
    from .shipments import shipments_bp

    app.register_blueprint(auth)
    app.register_blueprint(accounts_bp)
    app.register_blueprint(catalog)
    app.register_blueprint(couriers_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(shipments_bp)

    # ======================
    # CORS
    # ======================
    @app.before_request
    def answer_preflight():
        if request.method == "OPTIONS":
            return app.make_response(("", 204))
        return None

    @app.after_request
    def add_cors_headers(response):
        origin = app.config.get("CORS_ALLOW_ORIGIN") or request.headers.get("Origin") or "*"
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Methods"] = CORS_METHODS
        response.headers["Access-Control-Allow-Headers"] = CORS_HEADERS
        return response

    # ======================
    # Error handlers
    # ======================
    @app.errorhandler(ApiError)
    def api_error(e: ApiError):
        if e.status_code >= 500:
            app.logger.error("%s: %s", e.error, e.message)
        return e.to_response()

    @app.errorhandler(HTTPException)
    def http_error(e: HTTPException):
        return jsonify({"error": e.name, "message": e.description}), e.code

    # ======================
    # Rate limit error handler
    # ======================
    @app.errorhandler(429)
    def ratelimit_handler(e):
        return jsonify({"error": "Too Many Requests", "message": "Too many requests. Please try again later."}), 429

    return app
