# routes_payments.py - initiate payment, finalize booking, PayPal return URL
from urllib.parse import urlencode

from flask import Blueprint, current_app, jsonify, redirect, request

from errors import BookingError, ValidationError

bp_pay = Blueprint("payments", __name__)


def _service():
    return current_app.extensions["booking"]


@bp_pay.post("/initiate-payment")
def initiate_payment():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Ungültige Buchungsdaten")
    return jsonify(_service().initiate(data))


@bp_pay.post("/finalize-booking")
def finalize_booking():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Missing paymentId or method")
    result = _service().finalize(data.get("paymentId"), data.get("method"), data.get("bookingData"))
    return jsonify(result)


@bp_pay.get("/paypal-success")
def paypal_success():
    """PayPal return URL: capture + book, then send the browser to a result page."""
    order_id = request.args.get("token")
    current_app.logger.info("[paypal-success] token=%s PayerID=%s", order_id, request.args.get("PayerID"))
    if not order_id:
        raise ValidationError("Missing payment ID")

    base = current_app.config["SETTINGS"].app_url
    try:
        result = _service().finalize(order_id, "paypal")
    except BookingError as e:
        current_app.logger.warning("[paypal-success] %s: %s", order_id, e.message)
        params = {"error": e.message}
        if e.payment_id:
            params["paymentId"] = e.payment_id
        return redirect(f"{base}/booking-error?{urlencode(params)}", code=302)
    except Exception:
        current_app.logger.exception("[paypal-success] %s failed", order_id)
        return redirect(f"{base}/booking-error?{urlencode({'error': 'Booking processing failed'})}", code=302)

    return redirect(f"{base}/booking-success?{urlencode({'reservationId': result['reservationId']})}", code=302)
