# routes_proxy.py - pass-through endpoints to Smoobu (user, apartments, availability, reservations)
from flask import Blueprint, abort, current_app, jsonify, request

from errors import ValidationError

bp_proxy = Blueprint("proxy", __name__)


def _smoobu():
    return current_app.extensions["booking"].smoobu


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON body")
    return data


def _relay(resp, what: str):
    """Upstream status and JSON body as-is; only transport/parse failures become envelopes."""
    if not resp.has_json:
        resp.raise_error(what)
    return jsonify(resp.body), resp.status


@bp_proxy.get("/health")
def health():
    return jsonify(status="ok")


@bp_proxy.get("/user")
def user():
    return _relay(_smoobu().get_user(), "user")


@bp_proxy.get("/apartments")
def apartments():
    return _relay(_smoobu().list_apartments(), "apartments")


@bp_proxy.post("/check-availability")
def check_availability():
    return _relay(_smoobu().check_availability(_json_body()), "availability")


@bp_proxy.post("/reservations")
def reservations():
    return _relay(_smoobu().create_reservation(_json_body()), "reservation")


@bp_proxy.get("/debug")
def debug():
    settings = current_app.config["SETTINGS"]
    if settings.is_production:
        abort(404)
    return jsonify(
        environment=settings.environment,
        smoobuTokenSet=bool(settings.smoobu_api_token),
        paymentMethods=list(settings.enabled_methods),
        corsOrigins=list(settings.cors_origins) or ["*"],
        appUrl=settings.app_url,
    )
