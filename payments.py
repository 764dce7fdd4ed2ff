# payments.py - card (Stripe) and wallet (PayPal) gateways: create payments, confirm capture
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

import requests
import stripe

from booking import BookingRequest, decode_contact_reference, decode_order_reference
from config import SUPPORTED_METHODS
from errors import BookingError, ConfigurationError, PaymentNotCompleted, UpstreamError, ValidationError
from pricing import from_minor_units, to_minor_units

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentInitiation:
    provider: str
    payment_id: str
    client_secret: Optional[str] = None
    approval_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out = {"provider": self.provider, "paymentId": self.payment_id}
        if self.client_secret:
            out["clientSecret"] = self.client_secret
        if self.approval_url:
            out["approvalUrl"] = self.approval_url
        return out


@dataclass(frozen=True)
class ConfirmedPayment:
    method: str
    payment_id: str
    booking: BookingRequest
    declared_amount: int


def _plain(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


class StripeGateway:
    """Payment intents with an explicit per-call api_key (no module-global key)."""

    method = "stripe"

    def __init__(self, secret_key: str, currency: str = "eur"):
        self.secret_key = secret_key
        self.currency = currency.lower()

    def create(self, booking: BookingRequest, amount: int) -> PaymentInitiation:
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=self.currency,
                metadata=booking.to_metadata(),
                automatic_payment_methods={"enabled": True},
                api_key=self.secret_key,
            )
        except stripe.StripeError as e:
            log.warning("[PAY] stripe create failed: %s", e)
            raise UpstreamError(e.user_message or "Stripe: payment creation failed",
                                getattr(e, "http_status", None), str(e))
        log.info("[PAY] stripe intent %s amount=%s", intent.id, amount)
        return PaymentInitiation("stripe", intent.id, client_secret=intent.client_secret)

    def confirm(self, payment_id: str, booking_data: Optional[Mapping[str, Any]] = None) -> ConfirmedPayment:
        try:
            intent = stripe.PaymentIntent.retrieve(payment_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            log.warning("[PAY] stripe retrieve %s failed: %s", payment_id, e)
            raise UpstreamError(e.user_message or "Stripe: payment lookup failed",
                                getattr(e, "http_status", None), str(e))
        if intent.status != "succeeded":
            log.info("[PAY] stripe intent %s status=%s", payment_id, intent.status)
            raise PaymentNotCompleted("Zahlung nicht abgeschlossen", details={"status": intent.status})

        meta = _plain(intent.metadata)
        try:
            booking = BookingRequest.from_metadata(meta, booking_data)
        except BookingError as e:
            e.payment_id = payment_id
            raise
        declared = booking.total_amount if booking.total_amount is not None else int(intent.amount)
        return ConfirmedPayment("stripe", payment_id, booking, declared)


class PayPalGateway:
    """Orders v2 REST API, HTTP Basic auth with the client id/secret."""

    method = "paypal"

    def __init__(self, client_id: str, secret: str, base_url: str, app_url: str,
                 currency: str = "eur", timeout: float = 15.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.app_url = app_url.rstrip("/")
        self.currency = currency.upper()
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (client_id, secret)
        self.session.headers.update({"Content-Type": "application/json"})

    def _post(self, path: str, payload: Any = None, headers: Optional[Dict[str, str]] = None) -> requests.Response:
        try:
            return self.session.post(f"{self.base_url}{path}", json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            log.warning("[PAY] paypal %s failed: %s", path, e)
            raise UpstreamError(str(e) or "PayPal request failed", 500)

    def create(self, booking: BookingRequest, amount: int) -> PaymentInitiation:
        r = self._post("/v2/checkout/orders", {
            "intent": "CAPTURE",
            "purchase_units": [{
                "amount": {"currency_code": self.currency, "value": from_minor_units(amount)},
                "reference_id": booking.to_contact_reference(),
                "custom_id": booking.to_order_reference(),
            }],
            "application_context": {
                "return_url": f"{self.app_url}/api/paypal-success",
                "cancel_url": f"{self.app_url}/booking-cancel",
            },
        })
        try:
            data = r.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        if not r.ok:
            log.error("[PAY] paypal order creation failed: %s %s", r.status_code, r.text[:500])
            raise UpstreamError(data.get("message") or "PayPal: Order creation failed", 500,
                                data or r.text[:500])

        links = data.get("links") or []
        approve = next((l for l in links if l.get("rel") == "approve"), None)
        if not approve or not data.get("id"):
            raise UpstreamError("Missing approval link from PayPal", 500)
        log.info("[PAY] paypal order %s amount=%s", data.get("id"), amount)
        return PaymentInitiation("paypal", data["id"], approval_url=approve["href"])

    def confirm(self, order_id: str, booking_data: Optional[Mapping[str, Any]] = None) -> ConfirmedPayment:
        # full representation so the purchase unit comes back with its references
        r = self._post(f"/v2/checkout/orders/{quote(order_id, safe='')}/capture",
                       headers={"Prefer": "return=representation"})
        try:
            data = r.json()
        except ValueError:
            raise UpstreamError("PayPal returned invalid JSON", 500, r.text[:500])
        if r.status_code in (401, 403) or r.status_code >= 500:
            raise UpstreamError(f"PayPal API error: {r.status_code}", r.status_code, data)
        if not isinstance(data, dict) or data.get("status") != "COMPLETED":
            status = data.get("status") if isinstance(data, dict) else None
            log.info("[PAY] paypal order %s not captured: %s", order_id, status or r.status_code)
            raise PaymentNotCompleted("PayPal-Zahlung fehlgeschlagen", details=data)

        log.info("[PAY] paypal order %s captured", order_id)
        try:
            return self._confirmed(order_id, data, booking_data)
        except BookingError as e:
            # the order is captured already
            e.payment_id = order_id
            raise

    def _confirmed(self, order_id: str, data: Mapping[str, Any],
                   booking_data: Optional[Mapping[str, Any]]) -> ConfirmedPayment:
        units = data.get("purchase_units") or [{}]
        unit = units[0] or {}
        captures = (unit.get("payments") or {}).get("captures") or [{}]
        capture = captures[0] or {}
        reference = decode_order_reference(unit.get("custom_id") or capture.get("custom_id"))
        reference.update(decode_contact_reference(unit.get("reference_id")))

        fallback = _payer_contact(data.get("payer") or {})
        fallback.update({k: v for k, v in dict(booking_data or {}).items() if v not in (None, "")})
        booking = BookingRequest.from_metadata(reference, fallback)

        if booking.total_amount is not None:
            declared = booking.total_amount
        else:
            try:
                declared = to_minor_units((capture.get("amount") or {}).get("value"))
            except ValueError:
                raise UpstreamError("PayPal capture carries no amount", 500, data)
        return ConfirmedPayment("paypal", order_id, booking, declared)


def _payer_contact(payer: Mapping[str, Any]) -> Dict[str, str]:
    name = payer.get("name") or {}
    phone = ((payer.get("phone") or {}).get("phone_number") or {}).get("national_number")
    contact = {
        "firstName": name.get("given_name"),
        "lastName": name.get("surname"),
        "email": payer.get("email_address"),
        "phone": phone,
    }
    return {k: v for k, v in contact.items() if v}


def build_gateways(settings) -> Dict[str, Any]:
    gateways = {}
    if settings.stripe_secret:
        gateways["stripe"] = StripeGateway(settings.stripe_secret, settings.currency)
    if settings.paypal_client_id and settings.paypal_secret:
        gateways["paypal"] = PayPalGateway(
            settings.paypal_client_id, settings.paypal_secret,
            base_url=settings.paypal_base_url, app_url=settings.app_url,
            currency=settings.currency, timeout=settings.upstream_timeout,
        )
    return gateways


def pick_gateway(gateways: Mapping[str, Any], method: Any):
    if method not in SUPPORTED_METHODS:
        raise ValidationError("Unknown payment method")
    gateway = gateways.get(method)
    if gateway is None:
        raise ConfigurationError("Stripe is not configured" if method == "stripe" else "PayPal is not configured")
    return gateway
