from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from api.activity.models import ActivityLog
from api.booking import services
from api.booking.models import Booking
from api.promo.models import PromoCode, PromoCodeUsage
from payments.models import Payment
from tests.conftest import future, make_booking


def make_promo(code="SAVE10", type=PromoCode.TYPE_PERCENTAGE, value="10", **extra):
    now = timezone.now()
    fields = {
        "code": code,
        "type": type,
        "value": Decimal(value),
        "valid_from": now - timedelta(days=1),
        "valid_until": now + timedelta(days=30),
    }
    fields.update(extra)
    return PromoCode.objects.create(**fields)


def booking_payload(vehicle, **extra):
    payload = {
        "vehicle_id": str(vehicle.pk),
        "start_date": future(5).isoformat(),
        "end_date": future(8).isoformat(),
        "pickup_location": "Downtown",
        "dropoff_location": "Airport",
    }
    payload.update(extra)
    return payload


@pytest.mark.django_db
class TestPromoAdmin:
    def promo_payload(self, **extra):
        now = timezone.now()
        payload = {
            "code": "summer25",
            "type": PromoCode.TYPE_PERCENTAGE,
            "value": "25",
            "valid_from": now.isoformat(),
            "valid_until": (now + timedelta(days=60)).isoformat(),
        }
        payload.update(extra)
        return payload

    def test_create_upper_cases_code(self, admin_client):
        response = admin_client.post("/api/promos/", self.promo_payload(), format="json")

        assert response.status_code == 201
        assert response.json()["data"]["code"] == "SUMMER25"
        assert ActivityLog.objects.filter(action="PROMO_CREATED").exists()

    def test_duplicate_code(self, admin_client):
        make_promo("SUMMER25")
        response = admin_client.post("/api/promos/", self.promo_payload(), format="json")
        assert response.status_code == 400
        assert response.json()["error"] == "A promo code with this code already exists"

    def test_percentage_over_100_rejected(self, admin_client):
        response = admin_client.post("/api/promos/", self.promo_payload(value="120"), format="json")
        assert response.status_code == 400

    def test_free_extra_needs_extra(self, admin_client):
        response = admin_client.post(
            "/api/promos/", self.promo_payload(type=PromoCode.TYPE_FREE_EXTRA, value="0"), format="json"
        )
        assert response.status_code == 400

    def test_manager_cannot_manage(self, manager_client):
        assert manager_client.get("/api/promos/").status_code == 403
        assert manager_client.post("/api/promos/", self.promo_payload(), format="json").status_code == 403

    def test_list_by_status(self, admin_client):
        make_promo("LIVE")
        make_promo("OLD", valid_until=timezone.now() - timedelta(hours=1))
        make_promo("OFF", is_active=False)

        active = admin_client.get("/api/promos/", {"status": "active"}).json()["data"]
        expired = admin_client.get("/api/promos/", {"status": "expired"}).json()["data"]

        assert [item["code"] for item in active["items"]] == ["LIVE"]
        assert {item["code"] for item in expired["items"]} == {"OLD", "OFF"}
        assert admin_client.get("/api/promos/").json()["data"]["total"] == 3

    def test_update_and_delete(self, admin_client):
        promo = make_promo()

        response = admin_client.patch(f"/api/promos/{promo.pk}/", {"is_active": False}, format="json")
        assert response.status_code == 200
        assert response.json()["data"]["is_active"] is False

        assert admin_client.delete(f"/api/promos/{promo.pk}/").status_code == 200
        assert not PromoCode.objects.filter(pk=promo.pk).exists()


@pytest.mark.django_db
class TestValidatePromo:
    def test_anonymous_percentage(self, anon_client):
        make_promo()
        response = anon_client.post("/api/promos/validate/", {"code": "save10", "booking_amount": "200"}, format="json")

        data = response.json()["data"]
        assert response.status_code == 200
        assert data["valid"] is True
        assert data["code"] == "SAVE10"
        assert Decimal(data["discount_amount"]) == Decimal("20.00")
        assert data["discount_description"] == "10% off"

    def test_fixed_amount_capped_at_total(self, anon_client):
        make_promo("FLAT50", PromoCode.TYPE_FIXED_AMOUNT, "50")
        data = anon_client.post(
            "/api/promos/validate/", {"code": "FLAT50", "booking_amount": "30"}, format="json"
        ).json()["data"]
        assert Decimal(data["discount_amount"]) == Decimal("30.00")

    @pytest.mark.parametrize("overrides, message", [
        ({"is_active": False}, "This promo code is no longer active"),
        ({"valid_until": timezone.now() - timedelta(days=1)}, "This promo code has expired"),
        ({"valid_from": timezone.now() + timedelta(days=1)}, "This promo code is not yet valid"),
        ({"max_uses_total": 2, "used_count": 2}, "This promo code has reached its usage limit"),
        ({"min_booking_amount": Decimal("300")}, "Minimum booking amount is 300.00"),
    ])
    def test_unusable_codes(self, anon_client, overrides, message):
        make_promo(**overrides)
        response = anon_client.post("/api/promos/validate/", {"code": "SAVE10", "booking_amount": "200"}, format="json")

        assert response.status_code == 200
        assert response.json()["data"] == {"valid": False, "message": message}

    def test_unknown_code(self, anon_client):
        data = anon_client.post("/api/promos/validate/", {"code": "NOPE"}, format="json").json()["data"]
        assert data == {"valid": False, "message": "Invalid promo code"}


@pytest.mark.django_db
class TestPromoOnBookings:
    def test_create_booking_with_code(self, customer_client, customer, vehicle):
        promo = make_promo()

        response = customer_client.post("/api/bookings/", booking_payload(vehicle, promo_code="save10"), format="json")

        data = response.json()["data"]
        assert response.status_code == 201
        assert data["promo_code"] == "SAVE10"
        assert Decimal(data["total_amount"]) == Decimal("195.00")
        assert Decimal(data["discount_amount"]) == Decimal("19.50")
        assert Decimal(data["amount_due"]) == Decimal("175.50")
        promo.refresh_from_db()
        assert promo.used_count == 1
        assert PromoCodeUsage.objects.get().user == customer

    def test_bad_code_creates_nothing(self, customer_client, vehicle):
        response = customer_client.post("/api/bookings/", booking_payload(vehicle, promo_code="NOPE"), format="json")

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid promo code"
        assert not Booking.objects.exists()

    def test_one_use_per_customer(self, customer_client, customer, vehicle):
        make_promo()
        first = make_booking(customer, vehicle, 5, 8)
        services.create_booking(customer, vehicle.pk, future(20), future(22), "A", "B")
        customer_client.post("/api/promos/apply/", {"code": "SAVE10", "booking_id": str(first.pk)}, format="json")

        second = Booking.objects.exclude(pk=first.pk).get()
        response = customer_client.post(
            "/api/promos/apply/", {"code": "SAVE10", "booking_id": str(second.pk)}, format="json"
        )

        assert response.status_code == 400
        assert response.json()["error"] == "You have already used this promo code"

    def test_apply_to_own_pending_booking(self, customer_client, booking):
        make_promo("FLAT20", PromoCode.TYPE_FIXED_AMOUNT, "20")

        response = customer_client.post(
            "/api/promos/apply/", {"code": "FLAT20", "booking_id": str(booking.pk)}, format="json"
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Promo code applied! You saved 20.00"
        booking.refresh_from_db()
        assert booking.discount_amount == Decimal("20.00")
        assert booking.amount_due == Decimal("175.00")

    def test_apply_twice_rejected(self, customer_client, booking):
        make_promo("FLAT20", PromoCode.TYPE_FIXED_AMOUNT, "20", max_uses_per_user=5)
        make_promo()
        customer_client.post("/api/promos/apply/", {"code": "FLAT20", "booking_id": str(booking.pk)}, format="json")

        response = customer_client.post(
            "/api/promos/apply/", {"code": "SAVE10", "booking_id": str(booking.pk)}, format="json"
        )
        assert response.json()["error"] == "A promo code is already applied to this booking"

    def test_apply_to_someone_elses_booking(self, other_client, booking):
        make_promo()
        response = other_client.post("/api/promos/apply/", {"code": "SAVE10", "booking_id": str(booking.pk)}, format="json")
        assert response.status_code == 404

    def test_apply_to_confirmed_booking(self, customer_client, customer, vehicle):
        make_promo()
        confirmed = make_booking(customer, vehicle, status=Booking.STATUS_CONFIRMED)
        response = customer_client.post(
            "/api/promos/apply/", {"code": "SAVE10", "booking_id": str(confirmed.pk)}, format="json"
        )
        assert response.json()["error"] == "Promo codes can only be applied to pending bookings"

    def test_free_extra_waives_its_surcharge(self, customer_client, vehicle):
        make_promo("FREEGPS", PromoCode.TYPE_FREE_EXTRA, "0", free_extra="gps")

        response = customer_client.post(
            "/api/bookings/",
            booking_payload(vehicle, extras={"gps": True, "insurance": True}, promo_code="FREEGPS"),
            format="json",
        )

        data = response.json()["data"]
        assert Decimal(data["total_amount"]) == Decimal("300.00")
        assert Decimal(data["discount_amount"]) == Decimal("30.00")

    def test_date_change_recomputes_discount(self, customer_client, customer, vehicle):
        make_promo()
        booking = services.create_booking(customer, vehicle.pk, future(5), future(8), "A", "B", promo_code="SAVE10")

        customer_client.patch(f"/api/bookings/{booking.pk}/", {"end_date": future(10).isoformat()}, format="json")

        booking.refresh_from_db()
        assert booking.total_amount == Decimal("325.00")
        assert booking.discount_amount == Decimal("32.50")
        assert PromoCodeUsage.objects.get().discount_applied == Decimal("32.50")

    def test_quote_with_code(self, anon_client, vehicle):
        make_promo()
        response = anon_client.post(
            "/api/bookings/quote/",
            {
                "vehicle_id": str(vehicle.pk),
                "start_date": future(5).isoformat(),
                "end_date": future(8).isoformat(),
                "promo_code": "SAVE10",
            },
            format="json",
        )

        data = response.json()["data"]
        assert Decimal(data["total_amount"]) == Decimal("195.00")
        assert Decimal(data["discount_amount"]) == Decimal("19.50")
        assert Decimal(data["amount_due"]) == Decimal("175.50")

    def test_payment_charges_amount_due(self, customer_client, customer, vehicle, fake_stripe):
        make_promo()
        booking = services.create_booking(customer, vehicle.pk, future(5), future(8), "A", "B", promo_code="SAVE10")

        customer_client.post("/api/payments/create-intent/", {"booking_id": str(booking.pk)}, format="json")

        assert fake_stripe["create"][0]["amount"] == 17550
        assert Payment.objects.get(booking=booking).amount == Decimal("175.50")

    def test_existing_intent_follows_new_discount(self, customer_client, booking, fake_stripe):
        customer_client.post("/api/payments/create-intent/", {"booking_id": str(booking.pk)}, format="json")
        make_promo()
        customer_client.post("/api/promos/apply/", {"code": "SAVE10", "booking_id": str(booking.pk)}, format="json")

        customer_client.post("/api/payments/create-intent/", {"booking_id": str(booking.pk)}, format="json")

        assert fake_stripe["modify"] == [("pi_1", {"amount": 17550})]
        assert Payment.objects.get(booking=booking).amount == Decimal("175.50")
