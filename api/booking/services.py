import logging

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied

from api.booking.models import Booking
from api.booking.pricing import calculate_total
from api.exceptions import BadRequest
from api.promo.services import apply_promo, refresh_discount
from api.utils import get_or_404
from api.vehicle.models import Vehicle

logger = logging.getLogger(__name__)


def validate_booking_dates(start_date, end_date, allow_past=False):
    if end_date <= start_date:
        raise BadRequest("End date must be after start date")
    if not allow_past and start_date < timezone.now():
        raise BadRequest("Start date cannot be in the past")


def overlapping_bookings(vehicle_id, start_date, end_date, exclude_id=None):
    """Blocking bookings whose inclusive date range touches [start_date, end_date]."""
    queryset = Booking.objects.filter(
        vehicle_id=vehicle_id,
        status__in=Booking.BLOCKING_STATUSES,
        start_date__lte=end_date,
        end_date__gte=start_date,
    )
    if exclude_id is not None:
        queryset = queryset.exclude(pk=exclude_id)
    return queryset


def lock_vehicle(vehicle_id):
    """Must be called inside transaction.atomic()."""
    return get_or_404(Vehicle.objects.select_for_update(), "Vehicle not found", pk=vehicle_id)


def create_booking(user, vehicle_id, start_date, end_date, pickup_location, dropoff_location,
                   extras=None, notes=None, promo_code=None):
    """
    Validate and insert a PENDING booking.

    The vehicle row stays locked from the overlap check until the insert
    commits, so two requests for the same dates cannot both succeed.
    """
    validate_booking_dates(start_date, end_date)
    extras = extras or {}

    with transaction.atomic():
        vehicle = lock_vehicle(vehicle_id)

        if vehicle.status != Vehicle.STATUS_AVAILABLE:
            raise BadRequest("Vehicle is not available for booking")

        if overlapping_bookings(vehicle.pk, start_date, end_date).exists():
            raise BadRequest("Vehicle is not available for the selected dates")

        booking = Booking.objects.create(
            user=user,
            vehicle=vehicle,
            start_date=start_date,
            end_date=end_date,
            pickup_location=pickup_location,
            dropoff_location=dropoff_location,
            extras=extras,
            notes=notes,
            daily_rate=vehicle.daily_rate,
            total_amount=calculate_total(vehicle.daily_rate, start_date, end_date, extras),
            status=Booking.STATUS_PENDING,
        )

        if promo_code:
            booking, _promo = apply_promo(booking, promo_code, user)

    logger.info("Booking %s created for vehicle %s by user %s", booking.pk, vehicle.pk, user.pk)
    return booking


def update_booking(booking, changes, staff=False):
    """
    Apply a partial update with the vehicle and the booking locked.

    The overlap check runs again whenever the booking ends up holding the
    vehicle over dates it did not hold before: new dates, or a move from a
    non-blocking status into a blocking one. The total is recalculated when
    dates or extras change.
    """
    with transaction.atomic():
        lock_vehicle(booking.vehicle_id)
        booking = Booking.objects.select_for_update().get(pk=booking.pk)

        if not staff:
            if booking.status != Booking.STATUS_PENDING:
                raise BadRequest("You can only modify pending bookings")
            if "status" in changes:
                raise PermissionDenied("You cannot change booking status")

        dates_changed = "start_date" in changes or "end_date" in changes
        start_date = changes.get("start_date", booking.start_date)
        end_date = changes.get("end_date", booking.end_date)
        if dates_changed:
            validate_booking_dates(start_date, end_date, allow_past="start_date" not in changes)

        status_before = booking.status
        status_after = changes.get("status", status_before)
        starts_blocking = (
            status_after in Booking.BLOCKING_STATUSES and status_before not in Booking.BLOCKING_STATUSES
        )
        if status_after in Booking.BLOCKING_STATUSES and (dates_changed or starts_blocking):
            if overlapping_bookings(booking.vehicle_id, start_date, end_date, exclude_id=booking.pk).exists():
                raise BadRequest("Vehicle is not available for the selected dates")

        for field, value in changes.items():
            setattr(booking, field, value)

        if dates_changed or "extras" in changes:
            booking.total_amount = calculate_total(
                booking.daily_rate, booking.start_date, booking.end_date, booking.extras
            )
            refresh_discount(booking)
        booking.save()

    return booking


def cancel_booking(booking, actor):
    if booking.status == Booking.STATUS_COMPLETED:
        raise BadRequest("Cannot cancel a completed booking")
    if booking.status == Booking.STATUS_CANCELLED:
        raise BadRequest("Booking is already cancelled")

    booking.status = Booking.STATUS_CANCELLED
    booking.soft_delete(actor=actor, extra_fields=["status", "updated_at"])
    logger.info("Booking %s cancelled by %s", booking.pk, actor.pk if actor else None)
    return booking
