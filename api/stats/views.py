from datetime import timedelta
from decimal import Decimal

from django.db.models import Count, Sum
from django.utils import timezone
from rest_framework.views import APIView

from api.booking.models import Booking
from api.booking.pricing import to_money
from api.booking.serializers import BookingSerializer
from api.permissions import ROLE_CUSTOMER, IsStaff
from api.user.models import User
from api.utils import success
from api.vehicle.models import Vehicle
from payments.models import Payment

REVENUE_PERIODS = (7, 30, 90, 365)


def _period_days(raw):
    """'30', '30d' or nothing; anything else falls back to 30 days."""
    try:
        days = int(str(raw or "").rstrip("d"))
    except ValueError:
        return 30
    return days if days in REVENUE_PERIODS else 30


class DashboardStatsView(APIView):
    permission_classes = [IsStaff]

    def get(self, request):
        today = timezone.localdate()
        revenue = Payment.objects.filter(
            status=Payment.STATUS_SUCCEEDED, created_at__date=today
        ).aggregate(total=Sum("amount"))["total"]

        recent = Booking.objects.select_related("user", "vehicle").order_by("-created_at")[:5]
        return success({
            "metrics": {
                "active_rentals": Booking.objects.filter(status=Booking.STATUS_ACTIVE).count(),
                "todays_revenue": str(to_money(revenue or Decimal("0"))),
                "pending_bookings": Booking.objects.filter(status=Booking.STATUS_PENDING).count(),
                "available_vehicles": Vehicle.objects.filter(status=Vehicle.STATUS_AVAILABLE).count(),
                "total_customers": User.objects.filter(role=ROLE_CUSTOMER).count(),
                "total_bookings": Booking.objects.count(),
            },
            "recent_bookings": BookingSerializer(recent, many=True).data,
        })


class RevenueStatsView(APIView):
    permission_classes = [IsStaff]

    def get(self, request):
        days = _period_days(request.query_params.get("period"))
        first_day = timezone.localdate() - timedelta(days=days - 1)

        buckets = {first_day + timedelta(days=offset): [Decimal("0"), 0] for offset in range(days)}
        payments = Payment.objects.filter(
            status=Payment.STATUS_SUCCEEDED, created_at__date__gte=first_day
        ).values_list("amount", "created_at")
        for amount, created_at in payments:
            bucket = buckets.get(timezone.localdate(created_at))
            if bucket is not None:
                bucket[0] += amount
                bucket[1] += 1

        data = [
            {"date": day.isoformat(), "revenue": str(to_money(total)), "bookings": count}
            for day, (total, count) in sorted(buckets.items())
        ]
        total_revenue = sum((total for total, _count in buckets.values()), Decimal("0"))
        total_bookings = sum(count for _total, count in buckets.values())
        average = total_revenue / total_bookings if total_bookings else Decimal("0")

        return success({
            "period": f"{days}d",
            "data": data,
            "totals": {
                "revenue": str(to_money(total_revenue)),
                "bookings": total_bookings,
                "average_booking_value": str(to_money(average)),
            },
        })


class FleetStatsView(APIView):
    permission_classes = [IsStaff]

    def get(self, request):
        by_status = {
            row["status"]: row["count"]
            for row in Vehicle.objects.values("status").annotate(count=Count("id")).order_by()
        }
        by_category = {
            row["category"]: row["count"]
            for row in Vehicle.objects.values("category").annotate(count=Count("id")).order_by()
        }
        total = sum(by_status.values())
        rented = by_status.get(Vehicle.STATUS_RENTED, 0)

        return success({
            "total_vehicles": total,
            "available": by_status.get(Vehicle.STATUS_AVAILABLE, 0),
            "rented": rented,
            "maintenance": by_status.get(Vehicle.STATUS_MAINTENANCE, 0),
            "retired": by_status.get(Vehicle.STATUS_RETIRED, 0),
            "utilization_rate": round(rented / total * 100, 1) if total else 0,
            "by_status": by_status,
            "by_category": by_category,
        })
