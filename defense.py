# defense.py - logging, proxy fixups, rate limits and JSON errors for the booking proxy
import logging
import time
from logging.handlers import RotatingFileHandler

from flask import current_app, g, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from errors import BookingError, booking_error_response, error_response

MAX_JSON_BYTES = 512 * 1024
SLOW_MS = 1200

_MESSAGES = {
    400: "Bad request",
    404: "Route nicht gefunden",
    405: "Method Not Allowed",
    413: "Payload too large",
    429: "Too many requests",
    500: "Server error",
}


def _install_logging(app, settings):
    app.logger.setLevel(getattr(logging, settings.log_level, logging.INFO))
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(message)s")
    if not app.logger.handlers:
        sh = logging.StreamHandler()
        sh.setFormatter(fmt)
        app.logger.addHandler(sh)
    if settings.log_file:
        fh = RotatingFileHandler(settings.log_file, maxBytes=5_000_000, backupCount=3, encoding="utf-8")
        fh.setFormatter(fmt)
        app.logger.addHandler(fh)
    # module loggers (smoobu, payments, checkout) share the app handlers
    for name in ("smoobu", "payments", "checkout"):
        lg = logging.getLogger(name)
        lg.setLevel(app.logger.level)
        lg.handlers = list(app.logger.handlers)
        lg.propagate = False


def _install_proxyfix(app):
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)
    app.config.setdefault("PREFERRED_URL_SCHEME", "https")


def _install_request_guards(app):
    app.config["MAX_CONTENT_LENGTH"] = MAX_JSON_BYTES

    @app.before_request
    def _t0():
        g._t0 = time.perf_counter()

    @app.after_request
    def _slow_log(resp):
        dt_ms = int((time.perf_counter() - getattr(g, "_t0", time.perf_counter())) * 1000)
        if dt_ms >= SLOW_MS:
            current_app.logger.warning("SLOW %s %s %sms", request.method, request.path, dt_ms)
        return resp


def _install_rate_limits(app, settings):
    if not settings.rate_limits:
        app.logger.info("[DEFENSE] rate limits disabled")
        return None
    limiter = Limiter(
        get_remote_address,
        app=app,
        default_limits=list(settings.rate_limits),
        storage_uri="memory://",
    )
    app.logger.info("[DEFENSE] rate limits: %s", ", ".join(settings.rate_limits))
    return limiter


def _install_json_errors(app):
    @app.errorhandler(BookingError)
    def _booking_error(e):
        if e.status >= 500:
            app.logger.error("%s %s -> %s %s", request.method, request.path, e.status, e.message)
        return booking_error_response(e)

    @app.errorhandler(HTTPException)
    def _http_error(e):
        return error_response(e.code or 500, _MESSAGES.get(e.code, e.name))

    @app.errorhandler(Exception)
    def _unexpected(e):
        app.logger.exception("unhandled error on %s %s", request.method, request.path)
        return error_response(500, "Server error", details=str(e))


def init_defense(app, settings):
    _install_logging(app, settings)
    _install_proxyfix(app)
    _install_request_guards(app)
    _install_json_errors(app)
    limiter = _install_rate_limits(app, settings)
    app.logger.info("[DEFENSE] defense stack initialized")
    return limiter
