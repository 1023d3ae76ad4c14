from datetime import timedelta
from decimal import Decimal

import pytest
import stripe
from django.utils import timezone
from rest_framework.authtoken.models import Token
from rest_framework.test import APIClient

from api.booking.email_service import Email
from api.booking.models import Booking
from api.user.models import User
from api.vehicle.models import Vehicle


@pytest.fixture(autouse=True)
def media_root(settings, tmp_path):
    settings.MEDIA_ROOT = tmp_path / "media"
    return settings.MEDIA_ROOT


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Collects every Brevo send instead of calling the API."""
    outbox = []

    def fake_send(self, subject, html_content, recipient_list, sender_name=None, sender_email=None):
        outbox.append({"subject": subject, "html": html_content, "to": list(recipient_list)})
        return True

    monkeypatch.setattr(Email, "_send_email_via_brevo", fake_send)
    return outbox


def make_user(email, role=User.ROLE_CUSTOMER, **extra):
    return User.objects.create_user(
        email=email,
        password="Secret123!",
        first_name=extra.pop("first_name", "Test"),
        last_name=extra.pop("last_name", role.title()),
        role=role,
        **extra,
    )


def client_for(user):
    client = APIClient()
    token, _ = Token.objects.get_or_create(user=user)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {token.key}")
    return client


@pytest.fixture
def customer(db):
    return make_user("jane@example.com", first_name="Jane", last_name="Doe")


@pytest.fixture
def other_customer(db):
    return make_user("john@example.com", first_name="John", last_name="Roe")


@pytest.fixture
def support(db):
    return make_user("support@example.com", role=User.ROLE_SUPPORT)


@pytest.fixture
def manager(db):
    return make_user("manager@example.com", role=User.ROLE_MANAGER)


@pytest.fixture
def admin_user(db):
    return make_user("admin@example.com", role=User.ROLE_ADMIN)


@pytest.fixture
def anon_client():
    return APIClient()


@pytest.fixture
def customer_client(customer):
    return client_for(customer)


@pytest.fixture
def other_client(other_customer):
    return client_for(other_customer)


@pytest.fixture
def support_client(support):
    return client_for(support)


@pytest.fixture
def manager_client(manager):
    return client_for(manager)


@pytest.fixture
def admin_client(admin_user):
    return client_for(admin_user)


_plates = iter(range(1000, 10000))


def make_vehicle(**overrides):
    number = next(_plates)
    fields = {
        "make": "Toyota",
        "model": "Camry",
        "year": 2023,
        "category": Vehicle.CATEGORY_STANDARD,
        "daily_rate": Decimal("65.00"),
        "license_plate": f"ABC-{number}",
        "vin": f"1HGCM82633A{number:06d}",
        "seats": 5,
    }
    fields.update(overrides)
    return Vehicle.objects.create(**fields)


@pytest.fixture
def vehicle(db):
    return make_vehicle()


def future(days, hour=10):
    """An aware datetime `days` from now, pinned to a fixed hour."""
    day = timezone.now() + timedelta(days=days)
    return day.replace(hour=hour, minute=0, second=0, microsecond=0)


def make_booking(user, vehicle, start_days=5, end_days=8, status=Booking.STATUS_PENDING, **extra):
    start, end = future(start_days), future(end_days)
    days = (end - start).days
    return Booking.objects.create(
        user=user,
        vehicle=vehicle,
        start_date=start,
        end_date=end,
        status=status,
        daily_rate=vehicle.daily_rate,
        total_amount=vehicle.daily_rate * days,
        pickup_location="Airport",
        dropoff_location="Airport",
        **extra,
    )


@pytest.fixture
def booking(customer, vehicle):
    return make_booking(customer, vehicle)


@pytest.fixture
def stripe_configured(settings):
    settings.STRIPE_SECRET_KEY = "sk_test_123"
    settings.STRIPE_WEBHOOK_SECRET = "whsec_123"
    settings.STRIPE_CURRENCY = "usd"


@pytest.fixture
def fake_stripe(monkeypatch, stripe_configured):
    """In-memory PaymentIntents; an intent created with confirm=True succeeds at once."""
    calls = {"create": [], "modify": [], "confirm": [], "refund": []}
    intents = {}

    def create_intent(**kwargs):
        calls["create"].append(kwargs)
        intent = {
            "id": f"pi_{len(intents) + 1}",
            "client_secret": "secret_abc",
            "amount": kwargs.get("amount"),
            "status": "succeeded" if kwargs.get("confirm") else "requires_payment_method",
        }
        intents[intent["id"]] = intent
        return intent

    def retrieve_intent(intent_id, **kwargs):
        return intents[intent_id]

    def modify_intent(intent_id, **kwargs):
        calls["modify"].append((intent_id, kwargs))
        intents[intent_id].update(kwargs)
        return intents[intent_id]

    def confirm_intent(intent_id, **kwargs):
        calls["confirm"].append((intent_id, kwargs))
        intents[intent_id]["status"] = "succeeded"
        return intents[intent_id]

    def create_refund(**kwargs):
        calls["refund"].append(kwargs)
        return {"id": "re_1", "status": "succeeded"}

    monkeypatch.setattr(stripe.PaymentIntent, "create", create_intent)
    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", retrieve_intent)
    monkeypatch.setattr(stripe.PaymentIntent, "modify", modify_intent)
    monkeypatch.setattr(stripe.PaymentIntent, "confirm", confirm_intent)
    monkeypatch.setattr(stripe.Refund, "create", create_refund)
    calls["intents"] = intents
    return calls
