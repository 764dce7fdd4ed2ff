import pytest
import responses

from app import create_app
from config import Settings

SMOOBU = "https://smoobu.test"
AVAILABILITY_URL = f"{SMOOBU}/booking/checkApartmentAvailability"
RESERVATIONS_URL = f"{SMOOBU}/api/reservations"
PAYPAL = "https://api-m.sandbox.paypal.com"


def availability(total, apartment="123", currency="EUR"):
    return {
        "availableApartments": [int(apartment)],
        "prices": {str(apartment): {"price": total, "currency": currency}},
        "errorMessages": {},
    }


@pytest.fixture
def settings():
    return Settings(
        smoobu_api_token="smoobu-token",
        smoobu_base_url=SMOOBU,
        stripe_secret="sk_test_123",
        paypal_client_id="pp-client",
        paypal_secret="pp-secret",
        app_url="https://site.test",
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture
def booking_payload():
    return {
        "arrivalDate": "2024-06-01",
        "departureDate": "2024-06-03",
        "adults": 2,
        "children": 0,
        "apartmentId": "123",
        "firstName": "A",
        "lastName": "B",
        "email": "a@b.com",
        "phone": "+490000",
    }


@pytest.fixture
def price_upstream(mocked):
    def _set(total, apartment="123"):
        mocked.add(responses.POST, AVAILABILITY_URL, json=availability(total, apartment))
    return _set


def reservation_calls(mocked):
    return [c for c in mocked.calls if c.request.url == RESERVATIONS_URL]
