# booking.py - the booking request carried from payment initiation to reservation
import json
from dataclasses import asdict, dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from errors import ValidationError

# PayPal limits: custom_id 127 characters, reference_id 256
ORDER_REFERENCE_MAX = 127
CONTACT_REFERENCE_MAX = 256

CONTACT_FIELDS = ("firstName", "lastName", "email", "phone")


def _parse_date(value: Any) -> Optional[date]:
    if not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        return None


def _parse_count(value: Any, minimum: int) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value < minimum:
        return None
    return value


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value.strip() if isinstance(value, str) else ""


def _as_id(value: str) -> Any:
    # Smoobu ids are numeric
    return int(value) if value.isdigit() else value


@dataclass(frozen=True)
class BookingRequest:
    apartment_id: str
    arrival_date: str
    departure_date: str
    adults: int
    children: int
    first_name: str
    last_name: str
    email: str
    phone: str
    channel_id: Optional[str] = None
    total_amount: Optional[int] = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "BookingRequest":
        """Validate a browser/metadata payload (camelCase keys)."""
        if not isinstance(data, Mapping):
            raise ValidationError("Ungültige Buchungsdaten")
        bad = []

        apartment_id = _text(data.get("apartmentId"))
        if not apartment_id:
            bad.append("apartmentId")

        arrival = _parse_date(data.get("arrivalDate"))
        departure = _parse_date(data.get("departureDate"))
        if arrival is None:
            bad.append("arrivalDate")
        if departure is None:
            bad.append("departureDate")
        if arrival and departure and departure <= arrival:
            bad.append("departureDate")

        adults = _parse_count(data.get("adults"), 1)
        if adults is None:
            bad.append("adults")
        children_raw = data.get("children")
        children = 0 if children_raw in (None, "") else _parse_count(children_raw, 0)
        if children is None:
            bad.append("children")

        contact = {name: _text(data.get(name)) for name in CONTACT_FIELDS}
        bad.extend(name for name, val in contact.items() if not val)
        if contact["email"] and "@" not in contact["email"]:
            bad.append("email")

        total_raw = data.get("totalAmount")
        total_amount = None
        if total_raw not in (None, ""):
            total_amount = _parse_count(total_raw, 0)
            if total_amount is None:
                bad.append("totalAmount")

        if bad:
            fields = sorted(set(bad))
            raise ValidationError(f"Ungültige Buchungsdaten: {', '.join(fields)}", details={"fields": fields})

        return cls(
            apartment_id=apartment_id,
            arrival_date=arrival.isoformat(),
            departure_date=departure.isoformat(),
            adults=adults,
            children=children,
            first_name=contact["firstName"],
            last_name=contact["lastName"],
            email=contact["email"],
            phone=contact["phone"],
            channel_id=_text(data.get("channelId")) or None,
            total_amount=total_amount,
        )

    @property
    def guests(self) -> int:
        return self.adults + self.children

    def with_total(self, amount: int) -> "BookingRequest":
        return replace(self, total_amount=amount)

    def to_payload(self) -> Dict[str, Any]:
        raw = asdict(self)
        return {
            "apartmentId": raw["apartment_id"],
            "arrivalDate": raw["arrival_date"],
            "departureDate": raw["departure_date"],
            "adults": raw["adults"],
            "children": raw["children"],
            "firstName": raw["first_name"],
            "lastName": raw["last_name"],
            "email": raw["email"],
            "phone": raw["phone"],
            "channelId": raw["channel_id"],
            "totalAmount": raw["total_amount"],
        }

    def to_metadata(self) -> Dict[str, str]:
        """Stripe metadata: string values only, no empty keys."""
        return {k: str(v) for k, v in self.to_payload().items() if v is not None}

    @classmethod
    def from_metadata(cls, meta: Mapping[str, Any],
                      fallback: Optional[Mapping[str, Any]] = None) -> "BookingRequest":
        # metadata wins, the fallback only fills gaps
        merged = dict(fallback or {})
        merged.update({k: v for k, v in dict(meta or {}).items() if v not in (None, "")})
        return cls.from_payload(merged)

    def to_contact_reference(self) -> str:
        """Guest contact for PayPal reference_id, the return URL carries nothing else."""
        text = json.dumps({"f": self.first_name, "l": self.last_name, "e": self.email, "p": self.phone},
                          separators=(",", ":"), ensure_ascii=False)
        if len(text) > CONTACT_REFERENCE_MAX:
            raise ValidationError("Kontaktdaten zu lang")
        return text

    def to_order_reference(self) -> str:
        """Compact reference for PayPal custom_id: stay, guests, channel and total."""
        ref = {
            "a": self.apartment_id,
            "i": self.arrival_date,
            "o": self.departure_date,
            "ad": self.adults,
            "ch": self.children,
        }
        if self.channel_id:
            ref["c"] = self.channel_id
        if self.total_amount is not None:
            ref["t"] = self.total_amount
        text = json.dumps(ref, separators=(",", ":"))
        if len(text) > ORDER_REFERENCE_MAX:
            raise ValidationError("Buchungsreferenz zu lang")
        return text

    def to_reservation_payload(self, price: Decimal, payment_note: str = "",
                               default_channel: Optional[str] = None) -> Dict[str, Any]:
        payload = {
            "arrivalDate": self.arrival_date,
            "departureDate": self.departure_date,
            "apartmentId": _as_id(self.apartment_id),
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "adults": self.adults,
            "children": self.children,
            "price": float(price),
            "priceStatus": 1,
        }
        channel = self.channel_id or default_channel
        if channel:
            payload["channelId"] = _as_id(str(channel))
        if payment_note:
            payload["notice"] = payment_note
        return payload


_ORDER_KEYS = {"a": "apartmentId", "i": "arrivalDate", "o": "departureDate", "ad": "adults",
               "ch": "children", "c": "channelId", "t": "totalAmount"}
_CONTACT_KEYS = {"f": "firstName", "l": "lastName", "e": "email", "p": "phone"}


def _decode_compact(text: Optional[str], keys: Mapping[str, str]) -> Dict[str, Any]:
    if not text:
        return {}
    try:
        ref = json.loads(text)
    except ValueError:
        return {}
    if not isinstance(ref, dict):
        return {}
    return {name: ref[short] for short, name in keys.items() if ref.get(short) is not None}


def decode_order_reference(text: Optional[str]) -> Dict[str, Any]:
    """Inverse of BookingRequest.to_order_reference, as a camelCase payload."""
    return _decode_compact(text, _ORDER_KEYS)


def decode_contact_reference(text: Optional[str]) -> Dict[str, Any]:
    return _decode_compact(text, _CONTACT_KEYS)
