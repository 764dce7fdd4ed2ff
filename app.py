# app.py - booking proxy backend (Smoobu + Stripe + PayPal + CORS + Health)
import os

from flask import Flask, Response, request
from flask_cors import CORS

from checkout import BookingService
from config import Settings
from defense import init_defense
from payments import build_gateways
from routes_payments import bp_pay, paypal_success
from routes_proxy import bp_proxy, health
from smoobu import SmoobuClient

API_PREFIX = "/api/proxy"

CORS_METHODS = "GET, POST, OPTIONS"
CORS_HEADERS = "Content-Type, Authorization, Api-Key"


def create_app(settings=None, smoobu=None, gateways=None):
    settings = (settings or Settings.from_env()).validate()

    app = Flask(__name__)
    app.config["SETTINGS"] = settings

    _install_cors(app, settings)
    init_defense(app, settings)

    smoobu = smoobu or SmoobuClient(settings)
    if gateways is None:
        gateways = build_gateways(settings)
    app.extensions["booking"] = BookingService(settings, smoobu, gateways)

    app.register_blueprint(bp_proxy, url_prefix=API_PREFIX)
    app.register_blueprint(bp_pay, url_prefix=API_PREFIX)

    # aliases: bare health check and the PayPal return URL
    app.add_url_rule("/health", "health", health, methods=["GET"])
    app.add_url_rule("/api/paypal-success", "paypal_success", paypal_success, methods=["GET"])

    app.logger.info("Booking proxy ready (env=%s, payments=%s)",
                    settings.environment, ",".join(settings.enabled_methods))
    return app


def _install_cors(app, settings):
    origins = set(settings.cors_origins)
    CORS(app, resources={r"/*": {"origins": sorted(origins) or "*"}})

    @app.before_request
    def preflight():
        # any path, before routing: no downstream logic for OPTIONS
        if request.method == "OPTIONS":
            return Response("", status=200)

    @app.after_request
    def add_cors_headers(resp: Response):
        origin = request.headers.get("Origin", "")
        if not origins:
            resp.headers["Access-Control-Allow-Origin"] = "*"
        elif origin in origins:
            resp.headers["Access-Control-Allow-Origin"] = origin
            resp.vary.add("Origin")
        resp.headers["Access-Control-Allow-Methods"] = CORS_METHODS
        resp.headers["Access-Control-Allow-Headers"] = CORS_HEADERS
        return resp


if __name__ == "__main__":
    app = create_app()
    port = int(os.environ.get("PORT", "10000"))
    app.run(host="0.0.0.0", port=port)
