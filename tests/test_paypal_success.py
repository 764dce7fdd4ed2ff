import copy
import json
from unittest import mock
from urllib.parse import parse_qs, urlparse

import pytest
import responses

from conftest import AVAILABILITY_URL, PAYPAL, RESERVATIONS_URL, reservation_calls

CAPTURE_URL = f"{PAYPAL}/v2/checkout/orders/ORDER1/capture"

CAPTURED = {
    "id": "ORDER1",
    "status": "COMPLETED",
    "payer": {"name": {"given_name": "Paula", "surname": "Payer"}, "email_address": "paula@example.com",
              "phone": {"phone_number": {"national_number": "4915112345"}}},
    "purchase_units": [{
        "payments": {"captures": [{
            "amount": {"currency_code": "EUR", "value": "200.00"},
            "custom_id": '{"a":"123","i":"2024-06-01","o":"2024-06-03","ad":2,"ch":0,"t":20000}',
        }]},
    }],
}


def _query(location):
    return {k: v[0] for k, v in parse_qs(urlparse(location).query).items()}


@pytest.mark.parametrize("path", ["/api/paypal-success", "/api/proxy/paypal-success"])
def test_redirects_to_success_page(client, mocked, price_upstream, path):
    mocked.add(responses.POST, CAPTURE_URL, json=CAPTURED, status=201)
    price_upstream(200.00)
    mocked.add(responses.POST, RESERVATIONS_URL, json={"id": 4711})

    r = client.get(f"{path}?token=ORDER1&PayerID=PAYER9")

    assert r.status_code == 302
    assert r.headers["Location"].startswith("https://site.test/booking-success?")
    assert _query(r.headers["Location"]) == {"reservationId": "4711"}


def test_redirects_to_error_page_when_not_captured(client, mocked):
    mocked.add(responses.POST, CAPTURE_URL, json={"name": "UNPROCESSABLE_ENTITY"}, status=422)

    r = client.get("/api/paypal-success?token=ORDER1&PayerID=PAYER9")

    assert r.status_code == 302
    assert r.headers["Location"].startswith("https://site.test/booking-error?")
    assert _query(r.headers["Location"]) == {"error": "PayPal-Zahlung fehlgeschlagen"}
    assert len(mocked.calls) == 1


def test_partial_failure_carries_payment_id(client, mocked, price_upstream):
    mocked.add(responses.POST, CAPTURE_URL, json=CAPTURED, status=201)
    price_upstream(200.00)
    mocked.add(responses.POST, RESERVATIONS_URL, body="down", status=503)

    r = client.get("/api/paypal-success?token=ORDER1")

    q = _query(r.headers["Location"])
    assert q["paymentId"] == "ORDER1"
    assert q["error"]


def test_unexpected_error_redirects(app, client):
    service = app.extensions["booking"]
    with mock.patch.object(service, "finalize", side_effect=RuntimeError("boom")):
        r = client.get("/api/paypal-success?token=ORDER1")
    assert r.status_code == 302
    assert _query(r.headers["Location"]) == {"error": "Booking processing failed"}


def test_missing_token(client, mocked):
    r = client.get("/api/paypal-success?PayerID=PAYER9")
    assert r.status_code == 400
    assert r.get_json()["error"] == "Missing payment ID"
    assert len(mocked.calls) == 0


def _captured_without_payer_phone(contact=True):
    body = copy.deepcopy(CAPTURED)
    del body["payer"]["phone"]
    if contact:
        body["purchase_units"][0]["reference_id"] = json.dumps(
            {"f": "Anna", "l": "Gast", "e": "anna@example.com", "p": "+4917000"}, separators=(",", ":"))
    return body


def test_contact_entered_at_checkout_reaches_reservation(client, mocked, price_upstream):
    mocked.add(responses.POST, CAPTURE_URL, json=_captured_without_payer_phone(), status=201)
    price_upstream(200.00)
    mocked.add(responses.POST, RESERVATIONS_URL, json={"id": 4711})

    r = client.get("/api/paypal-success?token=ORDER1&PayerID=PAYER9")

    assert _query(r.headers["Location"]) == {"reservationId": "4711"}
    sent = json.loads(reservation_calls(mocked)[0].request.body)
    assert sent["firstName"] == "Anna"
    assert sent["email"] == "anna@example.com"
    assert sent["phone"] == "+4917000"
    assert mocked.calls[0].request.headers["Prefer"] == "return=representation"


def test_incomplete_contact_after_capture_carries_payment_id(client, mocked):
    mocked.add(responses.POST, CAPTURE_URL, json=_captured_without_payer_phone(contact=False), status=201)

    r = client.get("/api/paypal-success?token=ORDER1")

    q = _query(r.headers["Location"])
    assert r.headers["Location"].startswith("https://site.test/booking-error?")
    assert q["paymentId"] == "ORDER1"
    assert "phone" in q["error"]
    assert reservation_calls(mocked) == []


def test_price_mismatch_after_capture_carries_payment_id(client, mocked, price_upstream):
    mocked.add(responses.POST, CAPTURE_URL, json=CAPTURED, status=201)
    price_upstream(180.00)

    r = client.get("/api/paypal-success?token=ORDER1")

    q = _query(r.headers["Location"])
    assert q == {"error": "Preisabweichung - Buchung abgelehnt", "paymentId": "ORDER1"}
    assert reservation_calls(mocked) == []
    assert any(c.request.url == AVAILABILITY_URL for c in mocked.calls)
