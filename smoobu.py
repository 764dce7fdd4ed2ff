# smoobu.py - client for the Smoobu property-management API (apartments, availability, reservations)
import logging
from dataclasses import dataclass
from typing import Any, NoReturn, Optional

import requests

from booking import BookingRequest
from errors import ApartmentUnavailable, UpstreamError, ValidationError
from pricing import PriceQuote, QuoteOk, QuoteUnavailable, parse_quote

log = logging.getLogger(__name__)

_NO_BODY = object()


@dataclass
class UpstreamResponse:
    status: int
    body: Any = None
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def has_json(self) -> bool:
        return self.body is not _NO_BODY

    def raise_error(self, what: str) -> NoReturn:
        if not self.ok:
            detail = self.body if self.has_json else self.text
            raise UpstreamError(f"Smoobu API error ({what}): {self.status}", self.status, detail)
        raise UpstreamError(f"Smoobu API returned invalid JSON ({what})", 500, self.text[:500])

    def json_or_raise(self, what: str) -> Any:
        if not self.ok or not self.has_json:
            self.raise_error(what)
        return self.body


class SmoobuClient:
    def __init__(self, settings, session: Optional[requests.Session] = None):
        self.base_url = settings.smoobu_base_url.rstrip("/")
        self.customer_id = settings.smoobu_customer_id
        self.currency = settings.currency.upper()
        self.timeout = settings.upstream_timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Api-Key": settings.smoobu_api_token,
            "Authorization": f"Bearer {settings.smoobu_api_token}",
            "Content-Type": "application/json",
            "Cache-Control": "no-cache",
        })

    def _call(self, method: str, path: str, payload: Any = None) -> UpstreamResponse:
        url = f"{self.base_url}{path}"
        try:
            r = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            log.warning("[SMOOBU] %s %s failed: %s", method, path, e)
            raise UpstreamError("Smoobu API not reachable", 500, str(e))
        try:
            body = r.json()
        except ValueError:
            body = _NO_BODY
        log.info("[SMOOBU] %s %s -> %s", method, path, r.status_code)
        return UpstreamResponse(r.status_code, body, r.text)

    # === raw pass-through calls ===
    def get_user(self) -> UpstreamResponse:
        return self._call("GET", "/api/user")

    def list_apartments(self) -> UpstreamResponse:
        return self._call("GET", "/api/apartments")

    def check_availability(self, payload: dict) -> UpstreamResponse:
        body = dict(payload)
        if self.customer_id and "customerId" not in body:
            body["customerId"] = self.customer_id
        return self._call("POST", "/booking/checkApartmentAvailability", body)

    def create_reservation(self, payload: dict) -> UpstreamResponse:
        return self._call("POST", "/api/reservations", payload)

    # === typed calls ===
    def quote(self, booking: BookingRequest) -> PriceQuote:
        apartment = int(booking.apartment_id) if booking.apartment_id.isdigit() else booking.apartment_id
        resp = self.check_availability({
            "arrivalDate": booking.arrival_date,
            "departureDate": booking.departure_date,
            "apartments": [apartment],
            "guests": booking.guests,
        })
        result = parse_quote(resp.json_or_raise("availability"), booking.apartment_id,
                             booking.arrival_date, booking.departure_date, self.currency)
        if isinstance(result, QuoteOk):
            if result.quote.total <= 0:
                raise ValidationError("Ungültiger Gesamtpreis")
            return result.quote
        if isinstance(result, QuoteUnavailable):
            raise ApartmentUnavailable(f"Apartment nicht verfügbar: {result.reason}")
        log.error("[SMOOBU] unrecognized availability payload for apartment %s", booking.apartment_id)
        raise UpstreamError("Unexpected price data from Smoobu", 500, result.payload)

    def reserve(self, payload: dict) -> str:
        data = self.create_reservation(payload).json_or_raise("reservation")
        reservation_id = data.get("id") if isinstance(data, dict) else None
        if reservation_id in (None, ""):
            raise UpstreamError("Smoobu returned no reservation id", 500, data)
        return str(reservation_id)
