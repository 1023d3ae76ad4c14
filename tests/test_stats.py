from decimal import Decimal

import pytest

from api.booking.models import Booking
from api.vehicle.models import Vehicle
from payments.models import Payment
from tests.conftest import make_booking, make_vehicle


@pytest.mark.django_db
class TestStats:
    def test_staff_only(self, customer_client):
        assert customer_client.get("/api/stats/dashboard/").status_code == 403

    def test_dashboard(self, support_client, customer, vehicle):
        paid = make_booking(customer, vehicle, -1, 2, status=Booking.STATUS_ACTIVE)
        make_booking(customer, vehicle, 5, 8)
        Payment.objects.create(booking=paid, amount=Decimal("195.00"), status=Payment.STATUS_SUCCEEDED)

        data = support_client.get("/api/stats/dashboard/").json()["data"]

        assert data["metrics"]["active_rentals"] == 1
        assert data["metrics"]["pending_bookings"] == 1
        assert data["metrics"]["total_bookings"] == 2
        assert data["metrics"]["total_customers"] == 1
        assert Decimal(data["metrics"]["todays_revenue"]) == Decimal("195.00")
        assert len(data["recent_bookings"]) == 2

    def test_revenue_by_day(self, support_client, customer, vehicle):
        first = make_booking(customer, vehicle, 5, 8)
        second = make_booking(customer, make_vehicle(), 5, 8)
        Payment.objects.create(booking=first, amount=Decimal("100.00"), status=Payment.STATUS_SUCCEEDED)
        Payment.objects.create(booking=second, amount=Decimal("50.00"), status=Payment.STATUS_SUCCEEDED)

        data = support_client.get("/api/stats/revenue/", {"period": "7d"}).json()["data"]

        assert data["period"] == "7d"
        assert len(data["data"]) == 7
        assert Decimal(data["data"][-1]["revenue"]) == Decimal("150.00")
        assert data["totals"]["bookings"] == 2
        assert Decimal(data["totals"]["average_booking_value"]) == Decimal("75.00")

    def test_unknown_period_falls_back_to_30_days(self, support_client):
        data = support_client.get("/api/stats/revenue/", {"period": "12"}).json()["data"]
        assert data["period"] == "30d"
        assert len(data["data"]) == 30

    def test_fleet(self, support_client):
        make_vehicle(status=Vehicle.STATUS_RENTED)
        make_vehicle(status=Vehicle.STATUS_AVAILABLE, category=Vehicle.CATEGORY_SUV)
        make_vehicle(status=Vehicle.STATUS_MAINTENANCE)
        make_vehicle(status=Vehicle.STATUS_AVAILABLE)

        data = support_client.get("/api/stats/fleet/").json()["data"]

        assert data["total_vehicles"] == 4
        assert data["available"] == 2
        assert data["utilization_rate"] == 25.0
        assert data["by_category"] == {Vehicle.CATEGORY_STANDARD: 3, Vehicle.CATEGORY_SUV: 1}
