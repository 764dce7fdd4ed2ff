# errors.py - error taxonomy and the JSON envelope every handler answers with
from typing import Any, Optional

from flask import current_app, jsonify


class BookingError(Exception):
    """Base for every error that is turned into a JSON envelope."""

    status = 500
    # set once money has moved, so the envelope can be reconciled by hand
    payment_id: Optional[str] = None

    def __init__(self, message: str, status: Optional[int] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status
        self.details = details

    def envelope(self, expose_details: bool = False) -> dict:
        body = {"success": False, "error": self.message}
        if expose_details and self.details is not None:
            body["details"] = self.details
        if self.payment_id:
            body["paymentId"] = self.payment_id
        return body


class ValidationError(BookingError):
    status = 400


class ConfigurationError(BookingError):
    status = 500


class UpstreamError(BookingError):
    """Transport, parse or non-2xx failure of an upstream API."""

    def __init__(self, message: str, status: Optional[int] = None, details: Any = None):
        # only upstream error codes are propagated
        if status is None or status < 400:
            status = 500
        super().__init__(message, status, details)


class PaymentNotCompleted(BookingError):
    status = 400


class ApartmentUnavailable(BookingError):
    status = 400


class PriceMismatch(BookingError):
    status = 400


class ReservationFailed(BookingError):
    """Payment captured but the reservation could not be created."""

    status = 500

    def __init__(self, message: str, payment_id: str, booking_error: str, details: Any = None):
        super().__init__(message, details=details)
        self.payment_id = payment_id
        self.booking_error = booking_error

    def envelope(self, expose_details: bool = False) -> dict:
        body = super().envelope(expose_details)
        body["bookingError"] = self.booking_error
        return body


def error_response(status: int, message: str, details: Any = None):
    body = {"success": False, "error": message}
    if details is not None and _expose_details():
        body["details"] = details
    resp = jsonify(body)
    resp.status_code = status
    return resp


def booking_error_response(err: BookingError):
    resp = jsonify(err.envelope(_expose_details()))
    resp.status_code = err.status
    return resp


def _expose_details() -> bool:
    settings = current_app.config.get("SETTINGS")
    return bool(settings and settings.expose_error_details)
