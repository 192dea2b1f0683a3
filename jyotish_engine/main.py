# jyotish_engine/main.py
from __future__ import annotations

import logging
import os
import traceback
from time import perf_counter
from typing import Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from jyotish_engine.api.routes import api as _routes_bp
from jyotish_engine.core.service import AstrologyService
from jyotish_engine.core.validators import ValidationError
from jyotish_engine.utils.config import EngineConfig, load_config
from jyotish_engine.utils.metrics import GAUGE_APP_UP, MET_REQUESTS, REQ_LATENCY, seed
from jyotish_engine.version import VERSION

# Route label for requests that match no URL rule
UNMATCHED_ROUTE = "unmatched"

# Routes whose request counts and latency are recorded
_SEEDED_ROUTES = (
    "/", "/health", "/healthz", "/api/health-check",
    "/api/positions", "/api/houses", "/api/divisions", "/api/chart", "/api/dasha",
    "/api/compatibility", "/api/panchang",
    "/api/bulk/positions", "/api/bulk/divisions", "/api/bulk/compatibility", "/api/bulk/charts",
    "/api/cache/stats", "/api/cache/clear",
    UNMATCHED_ROUTE,
)


# ───────────────────────── helpers: logging & errors ─────────────────────────
def _configure_logging(app: Flask) -> None:
    gerr = logging.getLogger("gunicorn.error")
    if gerr.handlers:
        app.logger.handlers = gerr.handlers
        app.logger.setLevel(gerr.level)
        logging.getLogger("jyotish_engine").handlers = gerr.handlers
        logging.getLogger("jyotish_engine").setLevel(gerr.level)
    else:
        logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))


def _register_errors(app: Flask) -> None:
    @app.errorhandler(ValidationError)
    def _validation(e: ValidationError):
        app.logger.info("validation error at %s %s: %s", request.method, request.path, e)
        return jsonify(ok=False, error="validation_error", message=str(e), details=e.errors()), 400

    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        app.logger.warning("HTTP %s at %s %s: %s", e.code, request.method, request.path, e.description)
        return jsonify(
            ok=False,
            error="http_error",
            code=e.code,
            name=e.name,
            message=e.description,
            path=request.path,
        ), e.code

    @app.errorhandler(Exception)
    def _any(e: Exception):
        tb = traceback.format_exc()
        app.logger.error("UNHANDLED %s at %s %s\n%s", type(e).__name__, request.method, request.path, tb)
        return jsonify(
            ok=False,
            error="internal_error",
            type=type(e).__name__,
            message=str(e),
            path=request.path,
        ), 500


# ───────────────────────── health & metrics ─────────────────────────
def _register_health(app: Flask) -> None:
    @app.route("/", methods=["GET"])
    def root():
        return jsonify(ok=True, service="jyotish-engine", version=VERSION, health="/health"), 200

    @app.route("/api/health-check", methods=["GET"])
    def api_health():
        return jsonify(ok=True), 200

    @app.route("/health", methods=["GET"])
    @app.route("/healthz", methods=["GET"])
    def health():
        return jsonify(ok=True, status="ok"), 200


def _metrics_auth_ok() -> bool:
    auth = request.authorization
    user = os.getenv("METRICS_USER", "")
    pw = os.getenv("METRICS_PASS", "")
    return bool(
        auth and auth.type == "basic" and auth.username == user and auth.password == pw and user and pw
    )


def _register_metrics(app: Flask) -> None:
    seed(_SEEDED_ROUTES)

    @app.before_request
    def _before():
        p = request.path or ""
        if p.startswith("/api/") or p in ("/", "/health", "/healthz"):
            # matched URL rule, never the raw path
            rule = request.url_rule.rule if request.url_rule is not None else UNMATCHED_ROUTE
            MET_REQUESTS.labels(route=rule).inc()
            request.environ["jyotish.route"] = rule
            request.environ["jyotish.t0"] = perf_counter()

    @app.after_request
    def _after(resp):
        t0 = request.environ.get("jyotish.t0")
        if t0 is not None:
            REQ_LATENCY.labels(route=request.environ["jyotish.route"]).observe(perf_counter() - t0)
        return resp

    @app.route("/metrics", methods=["GET"])
    def metrics_endpoint():
        if not _metrics_auth_ok():
            return Response("Unauthorized", 401, {"WWW-Authenticate": 'Basic realm="metrics"'})
        GAUGE_APP_UP.set(1.0)
        return Response(generate_latest(REGISTRY), mimetype=CONTENT_TYPE_LATEST)


# ───────────────────────── factory ─────────────────────────
def create_app(service: Optional[AstrologyService] = None, config: Optional[EngineConfig] = None) -> Flask:
    """
    One AstrologyService per app. Pass `service` to inject a prepared one
    (tests); otherwise it is built from $JYOTISH_CONFIG + JYOTISH_* env.
    """
    app = Flask(__name__)
    app.config["JSON_SORT_KEYS"] = False
    app.json.sort_keys = False
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)  # type: ignore

    _configure_logging(app)

    if service is None:
        cfg = config or EngineConfig.from_config(load_config())
        service = AstrologyService.from_config(cfg)
    app.extensions["jyotish"] = service

    _register_metrics(app)
    _register_health(app)
    _register_errors(app)
    app.register_blueprint(_routes_bp)

    allowed_origin = os.environ.get("CORS_ALLOW_ORIGIN") or "*"
    CORS(
        app,
        resources={r"/.*": {"origins": allowed_origin}},
        supports_credentials=False,
        methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-API-Key"],
        max_age=600,
    )

    app.logger.info(
        "App initialized; version=%s provider=%s store=%s",
        VERSION, getattr(service.provider, "name", "?"), service.config.store,
    )
    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
