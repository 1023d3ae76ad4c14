import threading
from decimal import Decimal

import pytest
from django.db import connection

from api.activity.models import ActivityLog
from api.booking import services
from api.booking.models import Booking
from api.exceptions import BadRequest
from api.vehicle.models import Vehicle
from tests.conftest import future, make_booking, make_vehicle


def booking_payload(vehicle, start_days=5, end_days=8, **extra):
    payload = {
        "vehicle_id": str(vehicle.pk),
        "start_date": future(start_days).isoformat(),
        "end_date": future(end_days).isoformat(),
        "pickup_location": "Downtown",
        "dropoff_location": "Airport",
    }
    payload.update(extra)
    return payload


@pytest.mark.django_db
class TestCreateBooking:
    def test_creates_pending_booking_with_total(self, customer_client, customer, vehicle):
        response = customer_client.post(
            "/api/bookings/", booking_payload(vehicle, extras={"insurance": True}), format="json"
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["status"] == Booking.STATUS_PENDING
        assert Decimal(body["data"]["total_amount"]) == Decimal("270.00")
        assert body["data"]["extras"] == {"insurance": True}

        booking = Booking.objects.get()
        assert booking.user == customer
        assert booking.daily_rate == Decimal("65.00")
        assert ActivityLog.objects.filter(action="BOOKING_CREATED", entity_id=str(booking.pk)).exists()

    def test_requires_authentication(self, anon_client, vehicle):
        response = anon_client.post("/api/bookings/", booking_payload(vehicle), format="json")
        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_end_before_start(self, customer_client, vehicle):
        response = customer_client.post("/api/bookings/", booking_payload(vehicle, 8, 5), format="json")
        assert response.status_code == 400
        assert response.json()["error"] == "End date must be after start date"

    def test_equal_dates_rejected(self, customer_client, vehicle):
        response = customer_client.post("/api/bookings/", booking_payload(vehicle, 5, 5), format="json")
        assert response.status_code == 400
        assert response.json()["error"] == "End date must be after start date"

    def test_start_in_past(self, customer_client, vehicle):
        response = customer_client.post("/api/bookings/", booking_payload(vehicle, -2, 3), format="json")
        assert response.status_code == 400
        assert response.json()["error"] == "Start date cannot be in the past"

    def test_unknown_vehicle(self, customer_client, vehicle):
        payload = booking_payload(vehicle, vehicle_id="6f1c2f0e-8a3c-4f53-9a8e-0d4b3c2a1f00")
        response = customer_client.post("/api/bookings/", payload, format="json")
        assert response.status_code == 404
        assert response.json()["error"] == "Vehicle not found"

    def test_vehicle_in_maintenance(self, customer_client):
        vehicle = make_vehicle(status=Vehicle.STATUS_MAINTENANCE)
        response = customer_client.post("/api/bookings/", booking_payload(vehicle), format="json")
        assert response.status_code == 400
        assert response.json()["error"] == "Vehicle is not available for booking"

    @pytest.mark.parametrize("status", Booking.BLOCKING_STATUSES)
    def test_overlap_with_blocking_booking(self, customer_client, other_customer, vehicle, status):
        make_booking(other_customer, vehicle, 6, 10, status=status)

        response = customer_client.post("/api/bookings/", booking_payload(vehicle, 5, 8), format="json")

        assert response.status_code == 400
        assert response.json()["error"] == "Vehicle is not available for the selected dates"
        assert Booking.objects.count() == 1

    def test_touching_ranges_overlap(self, customer_client, other_customer, vehicle):
        existing = make_booking(other_customer, vehicle, 2, 5)
        payload = booking_payload(vehicle)
        payload["start_date"] = existing.end_date.isoformat()
        payload["end_date"] = future(7).isoformat()

        response = customer_client.post("/api/bookings/", payload, format="json")
        assert response.status_code == 400

    @pytest.mark.parametrize("status", [Booking.STATUS_COMPLETED, Booking.STATUS_CANCELLED])
    def test_non_blocking_booking_does_not_conflict(self, customer_client, other_customer, vehicle, status):
        make_booking(other_customer, vehicle, 6, 10, status=status)
        response = customer_client.post("/api/bookings/", booking_payload(vehicle, 5, 8), format="json")
        assert response.status_code == 201

    def test_other_vehicle_does_not_conflict(self, customer_client, other_customer, vehicle):
        make_booking(other_customer, make_vehicle(), 5, 8)
        response = customer_client.post("/api/bookings/", booking_payload(vehicle, 5, 8), format="json")
        assert response.status_code == 201

    def test_missing_fields_reported(self, customer_client):
        response = customer_client.post("/api/bookings/", {}, format="json")
        body = response.json()
        assert response.status_code == 400
        assert body["error"] == "Validation failed"
        assert {"field": "vehicle_id", "message": "This field is required."} in body["details"]


@pytest.mark.django_db(transaction=True)
@pytest.mark.skipif(connection.vendor == "sqlite", reason="row locks need a server database")
def test_concurrent_requests_book_once(customer, other_customer):
    vehicle = make_vehicle()
    start, end = future(5), future(8)
    outcomes = []

    def attempt(user):
        try:
            services.create_booking(user, vehicle.pk, start, end, "A", "B")
            outcomes.append("ok")
        except BadRequest:
            outcomes.append("conflict")
        finally:
            connection.close()

    threads = [threading.Thread(target=attempt, args=(user,)) for user in (customer, other_customer)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["conflict", "ok"]
    assert Booking.objects.filter(vehicle=vehicle).count() == 1


@pytest.mark.django_db
class TestReadBookings:
    def test_customer_sees_only_own(self, customer_client, customer, other_customer, vehicle):
        mine = make_booking(customer, vehicle, 2, 3)
        make_booking(other_customer, vehicle, 10, 12)

        response = customer_client.get("/api/bookings/")

        data = response.json()["data"]
        assert data["total"] == 1
        assert data["items"][0]["id"] == str(mine.pk)
        assert data["page"] == 1
        assert data["total_pages"] == 1

    def test_staff_filters_by_user_and_status(self, support_client, customer, other_customer, vehicle):
        make_booking(customer, vehicle, 2, 3, status=Booking.STATUS_CONFIRMED)
        make_booking(customer, vehicle, 5, 6)
        make_booking(other_customer, vehicle, 10, 12)

        response = support_client.get(
            "/api/bookings/", {"user_id": str(customer.pk), "status": Booking.STATUS_CONFIRMED}
        )
        assert response.json()["data"]["total"] == 1

    def test_invalid_status_filter(self, support_client):
        response = support_client.get("/api/bookings/", {"status": "LOST"})
        assert response.status_code == 400

    def test_other_customer_forbidden(self, other_client, booking):
        response = other_client.get(f"/api/bookings/{booking.pk}/")
        assert response.status_code == 403

    def test_malformed_id_is_404(self, customer_client):
        response = customer_client.get("/api/bookings/not-a-uuid/")
        assert response.status_code == 404
        assert response.json()["error"] == "Booking not found"


@pytest.mark.django_db
class TestUpdateBooking:
    def test_customer_changes_dates_and_total_follows(self, customer_client, booking):
        response = customer_client.patch(
            f"/api/bookings/{booking.pk}/",
            {"end_date": future(10).isoformat()},
            format="json",
        )
        assert response.status_code == 200
        booking.refresh_from_db()
        assert booking.total_amount == Decimal("325.00")

    def test_new_dates_checked_for_conflicts(self, customer_client, other_customer, booking, vehicle):
        make_booking(other_customer, vehicle, 12, 14, status=Booking.STATUS_CONFIRMED)
        response = customer_client.patch(
            f"/api/bookings/{booking.pk}/", {"end_date": future(13).isoformat()}, format="json"
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Vehicle is not available for the selected dates"

    def test_own_range_is_not_a_conflict(self, customer_client, booking):
        response = customer_client.patch(
            f"/api/bookings/{booking.pk}/", {"start_date": future(6).isoformat()}, format="json"
        )
        assert response.status_code == 200

    def test_customer_cannot_change_status(self, customer_client, booking):
        response = customer_client.patch(
            f"/api/bookings/{booking.pk}/", {"status": Booking.STATUS_CONFIRMED}, format="json"
        )
        assert response.status_code == 403

    def test_customer_cannot_modify_confirmed(self, customer_client, customer, vehicle):
        booking = make_booking(customer, vehicle, status=Booking.STATUS_CONFIRMED)
        response = customer_client.patch(f"/api/bookings/{booking.pk}/", {"notes": "late"}, format="json")
        assert response.status_code == 400
        assert response.json()["error"] == "You can only modify pending bookings"

    def test_staff_can_change_status(self, support_client, booking):
        response = support_client.patch(
            f"/api/bookings/{booking.pk}/", {"status": Booking.STATUS_CONFIRMED}, format="json"
        )
        assert response.status_code == 200
        assert response.json()["data"]["status"] == Booking.STATUS_CONFIRMED

    def test_reopening_completed_booking_checks_overlap(self, support_client, customer, other_customer, vehicle):
        completed = make_booking(customer, vehicle, 5, 8, status=Booking.STATUS_COMPLETED)
        make_booking(other_customer, vehicle, 6, 9, status=Booking.STATUS_CONFIRMED)

        response = support_client.patch(
            f"/api/bookings/{completed.pk}/", {"status": Booking.STATUS_CONFIRMED}, format="json"
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Vehicle is not available for the selected dates"
        completed.refresh_from_db()
        assert completed.status == Booking.STATUS_COMPLETED

    def test_reopening_without_overlap_is_allowed(self, customer, vehicle):
        completed = make_booking(customer, vehicle, 5, 8, status=Booking.STATUS_COMPLETED)

        updated = services.update_booking(completed, {"status": Booking.STATUS_CONFIRMED}, staff=True)

        assert updated.status == Booking.STATUS_CONFIRMED

    def test_update_uses_fresh_row(self, customer, vehicle):
        booking = make_booking(customer, vehicle)
        stale = Booking.objects.get(pk=booking.pk)
        Booking.objects.filter(pk=booking.pk).update(status=Booking.STATUS_CONFIRMED)

        with pytest.raises(BadRequest):
            services.update_booking(stale, {"notes": "late"})

        booking.refresh_from_db()
        assert booking.notes != "late"


@pytest.mark.django_db
class TestCancelBooking:
    @pytest.mark.parametrize(
        "status", [Booking.STATUS_PENDING, Booking.STATUS_CONFIRMED, Booking.STATUS_ACTIVE]
    )
    def test_cancel_moves_to_trash(self, customer_client, customer, vehicle, status, sent_emails):
        booking = make_booking(customer, vehicle, status=status)

        response = customer_client.post(f"/api/bookings/{booking.pk}/cancel/")

        assert response.status_code == 200
        assert response.json()["message"] == "Booking cancelled and moved to recycling bin"
        stored = Booking.all_objects.get(pk=booking.pk)
        assert stored.status == Booking.STATUS_CANCELLED
        assert stored.deleted_at is not None
        assert stored.deleted_by == customer
        assert not Booking.objects.filter(pk=booking.pk).exists()
        assert len(sent_emails) == 2

    def test_cancel_completed_fails(self, customer_client, customer, vehicle):
        booking = make_booking(customer, vehicle, status=Booking.STATUS_COMPLETED)
        response = customer_client.post(f"/api/bookings/{booking.pk}/cancel/")
        assert response.status_code == 400
        assert response.json()["error"] == "Cannot cancel a completed booking"

    def test_cancel_cancelled_fails(self, customer_client, customer, vehicle):
        booking = make_booking(customer, vehicle, status=Booking.STATUS_CANCELLED)
        response = customer_client.post(f"/api/bookings/{booking.pk}/cancel/")
        assert response.status_code == 400
        assert response.json()["error"] == "Booking is already cancelled"

    def test_cancelled_booking_frees_dates(self, customer_client, other_client, booking, vehicle):
        customer_client.post(f"/api/bookings/{booking.pk}/cancel/")
        response = other_client.post("/api/bookings/", booking_payload(vehicle), format="json")
        assert response.status_code == 201

    def test_cannot_cancel_someone_elses(self, other_client, booking):
        response = other_client.post(f"/api/bookings/{booking.pk}/cancel/")
        assert response.status_code == 403


@pytest.mark.django_db
class TestDeleteBooking:
    def test_customer_cannot_delete(self, customer_client, booking):
        response = customer_client.delete(f"/api/bookings/{booking.pk}/")
        assert response.status_code == 403
        assert response.json()["error"] == "Insufficient permissions"

    def test_staff_soft_deletes(self, support_client, support, booking):
        response = support_client.delete(f"/api/bookings/{booking.pk}/")
        assert response.status_code == 200
        assert Booking.all_objects.get(pk=booking.pk).deleted_by == support

    def test_active_booking_cannot_be_deleted(self, support_client, customer, vehicle):
        booking = make_booking(customer, vehicle, status=Booking.STATUS_ACTIVE)
        response = support_client.delete(f"/api/bookings/{booking.pk}/")
        assert response.status_code == 400
        assert response.json()["error"] == "Cannot delete an active booking"


@pytest.mark.django_db
class TestQuoteAndContract:
    def test_quote_is_public(self, anon_client, vehicle):
        response = anon_client.post(
            "/api/bookings/quote/",
            {
                "vehicle_id": str(vehicle.pk),
                "start_date": future(5).isoformat(),
                "end_date": future(8).isoformat(),
                "extras": {"insurance": True},
            },
            format="json",
        )
        data = response.json()["data"]
        assert response.status_code == 200
        assert data["days"] == 3
        assert Decimal(data["total_amount"]) == Decimal("270.00")
        assert data["available"] is True

    def test_quote_reports_conflict(self, anon_client, customer, vehicle):
        make_booking(customer, vehicle, 5, 8)
        response = anon_client.post(
            "/api/bookings/quote/",
            {"vehicle_id": str(vehicle.pk), "start_date": future(6).isoformat(), "end_date": future(7).isoformat()},
            format="json",
        )
        assert response.json()["data"]["available"] is False

    def test_contract_upload_and_fetch(self, customer_client, booking):
        from django.core.files.uploadedfile import SimpleUploadedFile

        upload = SimpleUploadedFile("contract.pdf", b"%PDF-1.4 signed", content_type="application/pdf")
        response = customer_client.post(f"/api/bookings/{booking.pk}/contract/", {"contract": upload})
        assert response.status_code == 200
        assert response.json()["data"]["contract_signed"] is True

        response = customer_client.get(f"/api/bookings/{booking.pk}/contract/")
        assert response.json()["data"]["url"].endswith(".pdf")

    def test_contract_wrong_type(self, customer_client, booking):
        from django.core.files.uploadedfile import SimpleUploadedFile

        upload = SimpleUploadedFile("contract.txt", b"hello", content_type="text/plain")
        response = customer_client.post(f"/api/bookings/{booking.pk}/contract/", {"contract": upload})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid file type")

    def test_contract_missing(self, customer_client, booking):
        response = customer_client.get(f"/api/bookings/{booking.pk}/contract/")
        assert response.status_code == 404
