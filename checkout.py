# checkout.py - payment initiation and the payment -> reservation handoff
#
# finalize() is linear: confirm the payment with its processor, recompute the
# price against Smoobu, compare it with the amount recorded at initiation and
# only then create the reservation. Nothing is retried, refunded or stored.
import logging
from typing import Any, Mapping, Optional

from booking import BookingRequest
from errors import BookingError, PriceMismatch, ReservationFailed, ValidationError
from payments import pick_gateway

log = logging.getLogger(__name__)


class BookingService:
    def __init__(self, settings, smoobu, gateways):
        self.settings = settings
        self.smoobu = smoobu
        self.gateways = gateways

    def initiate(self, data: Mapping[str, Any]) -> dict:
        if not isinstance(data, Mapping):
            raise ValidationError("Ungültige Buchungsdaten")
        method = data.get("method")
        if not method:
            raise ValidationError("Ungültige Buchungsdaten: method")
        gateway = pick_gateway(self.gateways, method)
        booking = BookingRequest.from_payload(data)

        quote = self.smoobu.quote(booking)
        amount = quote.amount
        if amount <= 0:
            raise ValidationError("Ungültiger Gesamtpreis")

        booking = booking.with_total(amount)
        started = gateway.create(booking, amount)
        log.info("[BOOK] initiated %s payment %s apartment=%s %s..%s amount=%s",
                 method, started.payment_id, booking.apartment_id,
                 booking.arrival_date, booking.departure_date, amount)
        out = started.to_dict()
        out.update(amount=amount, currency=quote.currency)
        return out

    def finalize(self, payment_id: Any, method: Any,
                 booking_data: Optional[Mapping[str, Any]] = None) -> dict:
        if not payment_id or not method:
            raise ValidationError("Missing paymentId or method")
        if booking_data is not None and not isinstance(booking_data, Mapping):
            raise ValidationError("bookingData must be an object")
        payment_id = str(payment_id)
        gateway = pick_gateway(self.gateways, method)

        try:
            payment = gateway.confirm(payment_id, booking_data)
        except BookingError as e:
            if e.payment_id:
                log.error("[BOOK] %s payment %s settled but rejected: %s", method, payment_id, e.message)
            raise
        booking = payment.booking
        log.info("[BOOK] %s payment %s confirmed, declared amount=%s",
                 method, payment_id, payment.declared_amount)

        try:
            quote = self.smoobu.quote(booking)
            if quote.amount != payment.declared_amount:
                log.warning("[BOOK] price mismatch for payment %s: declared=%s recomputed=%s",
                            payment_id, payment.declared_amount, quote.amount)
                raise PriceMismatch("Preisabweichung - Buchung abgelehnt", details={
                    "declared": payment.declared_amount,
                    "recomputed": quote.amount,
                })
        except BookingError as e:
            # the payment is settled; no reservation, so it needs a manual refund
            e.payment_id = payment_id
            log.error("[BOOK] %s payment %s settled but rejected: %s", method, payment_id, e.message)
            raise

        payload = booking.to_reservation_payload(
            quote.total,
            payment_note=f"Bezahlt via {method}: {payment_id}",
            default_channel=self.settings.smoobu_channel_id,
        )
        try:
            reservation_id = self.smoobu.reserve(payload)
        except BookingError as e:
            # payment is captured at this point; surfaced for manual reconciliation
            log.error("[BOOK] reservation failed after captured %s payment %s: %s",
                      method, payment_id, e.message)
            raise ReservationFailed("Zahlung erhalten, Buchung fehlgeschlagen", payment_id,
                                    booking_error=e.message, details=e.details)

        log.info("[BOOK] reservation %s created for payment %s", reservation_id, payment_id)
        return {"success": True, "reservationId": reservation_id}
