# pricing.py - server-side price quotes from the Smoobu availability response
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Union


def to_minor_units(total: Any) -> int:
    """Major currency units (e.g. 200.00 EUR) to integer cents, rounding half up."""
    if isinstance(total, bool):
        raise ValueError(f"not a price: {total!r}")
    try:
        value = Decimal(str(total).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"not a price: {total!r}")
    if not value.is_finite() or value < 0:
        raise ValueError(f"not a price: {total!r}")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> str:
    return str((Decimal(int(amount)) / 100).quantize(Decimal("0.01")))


@dataclass(frozen=True)
class PriceQuote:
    apartment_id: str
    arrival_date: str
    departure_date: str
    total: Decimal
    currency: str

    @property
    def amount(self) -> int:
        return to_minor_units(self.total)


@dataclass(frozen=True)
class QuoteOk:
    quote: PriceQuote


@dataclass(frozen=True)
class QuoteUnavailable:
    reason: str


@dataclass(frozen=True)
class UnrecognizedShape:
    payload: Any


QuoteResult = Union[QuoteOk, QuoteUnavailable, UnrecognizedShape]


def parse_quote(payload: Any, apartment_id: str, arrival_date: str, departure_date: str,
                default_currency: str = "EUR") -> QuoteResult:
    """Read the price of one apartment out of a checkApartmentAvailability response.

    Expected shape::

        {"availableApartments": [123],
         "prices": {"123": {"price": 200, "currency": "EUR"}},
         "errorMessages": {"456": {"errorCode": 401, "message": "..."}}}
    """
    if not isinstance(payload, dict):
        return UnrecognizedShape(payload)
    available = payload.get("availableApartments")
    prices = payload.get("prices")
    if not isinstance(available, list) or not isinstance(prices, dict):
        return UnrecognizedShape(payload)

    key = str(apartment_id)
    errors = payload.get("errorMessages") or {}
    if isinstance(errors, dict) and key in errors:
        err = errors[key]
        msg = err.get("message") if isinstance(err, dict) else str(err)
        return QuoteUnavailable(msg or "apartment not available")
    if key not in {str(a) for a in available}:
        return QuoteUnavailable("apartment not available")

    entry = prices.get(key)
    if not isinstance(entry, dict) or "price" not in entry:
        return UnrecognizedShape(payload)
    try:
        total = Decimal(str(entry["price"]))
    except InvalidOperation:
        return UnrecognizedShape(payload)
    if not total.is_finite():
        return UnrecognizedShape(payload)

    return QuoteOk(PriceQuote(
        apartment_id=key,
        arrival_date=arrival_date,
        departure_date=departure_date,
        total=total,
        currency=(entry.get("currency") or default_currency).upper(),
    ))
