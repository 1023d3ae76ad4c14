"""
Extending an active rental past its end date.

The customer previews the price, files a request, then pays for it with a
separate PaymentIntent. The booking's end date and total only move once
that payment has succeeded.
"""
import logging
from decimal import Decimal

import stripe
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from api.booking.models import Booking, BookingExtension
from api.booking.pricing import calculate_total, rental_days
from api.booking.services import lock_vehicle, overlapping_bookings
from api.exceptions import BadRequest
from api.utils import get_or_404
from payments.utils import require_stripe, stripe_call, to_cents

logger = logging.getLogger(__name__)

UNAVAILABLE = "Vehicle is not available for the requested extension period"


def active_booking_for(user, pk):
    return get_or_404(
        Booking.objects.select_related("vehicle").filter(user=user, status=Booking.STATUS_ACTIVE),
        "Active booking not found",
        pk=pk,
    )


def check_new_end_date(booking, new_end_date):
    if new_end_date <= booking.end_date:
        raise BadRequest("New end date must be after current end date")


def extension_conflict(booking, new_end_date):
    """First blocking booking that overlaps the extra period, if any."""
    return (
        overlapping_bookings(booking.vehicle_id, booking.end_date, new_end_date, exclude_id=booking.pk)
        .order_by("start_date")
        .first()
    )


def extension_price(booking, new_end_date):
    """
    Extra days and amount for moving the end date. The amount is the
    difference between the rental total over the longer range and the
    current total, so the booking total keeps matching the price formula.
    """
    additional_days = rental_days(booking.start_date, new_end_date) - rental_days(
        booking.start_date, booking.end_date
    )
    new_total = calculate_total(booking.daily_rate, booking.start_date, new_end_date, booking.extras)
    return additional_days, max(new_total - booking.total_amount, Decimal("0"))


def request_extension(booking, new_end_date):
    check_new_end_date(booking, new_end_date)

    with transaction.atomic():
        lock_vehicle(booking.vehicle_id)
        if extension_conflict(booking, new_end_date) is not None:
            raise BadRequest(UNAVAILABLE)
        if booking.extensions.filter(payment_status=BookingExtension.STATUS_PENDING).exists():
            raise BadRequest("You already have a pending extension request")

        additional_days, additional_amount = extension_price(booking, new_end_date)
        extension = BookingExtension.objects.create(
            booking=booking,
            original_end_date=booking.end_date,
            new_end_date=new_end_date,
            additional_days=additional_days,
            additional_amount=additional_amount,
        )

    if not additional_amount:
        # Still inside a day that has already been charged
        extension = complete_extension(extension.pk)

    logger.info("Extension %s requested for booking %s", extension.pk, booking.pk)
    return extension


def complete_extension(extension_id):
    """
    Mark the extension paid and move the booking's end date. Safe to call
    more than once: only a PENDING extension is applied.
    """
    with transaction.atomic():
        extension = BookingExtension.objects.select_for_update().select_related("booking").get(pk=extension_id)
        if extension.payment_status != BookingExtension.STATUS_PENDING:
            return extension

        booking = Booking.all_objects.select_for_update().get(pk=extension.booking_id)
        now = timezone.now()
        extension.payment_status = BookingExtension.STATUS_SUCCEEDED
        extension.paid_at = now
        extension.approved_at = now
        extension.save(update_fields=["payment_status", "paid_at", "approved_at"])

        booking.end_date = extension.new_end_date
        booking.total_amount += extension.additional_amount
        booking.save(update_fields=["end_date", "total_amount", "updated_at"])

    logger.info("Booking %s extended to %s", booking.pk, extension.new_end_date.isoformat())
    return extension


def pay_extension(booking, extension_id, payment_method_id=None):
    """
    Create or reuse the PaymentIntent for a pending extension. Returns the
    extension and the intent; the extension is applied once Stripe reports
    the intent as succeeded (here or through the webhook).
    """
    extension = get_or_404(
        booking.extensions.filter(payment_status=BookingExtension.STATUS_PENDING),
        "Extension request not found",
        pk=extension_id,
    )
    require_stripe()

    with transaction.atomic():
        lock_vehicle(booking.vehicle_id)
        if extension_conflict(booking, extension.new_end_date) is not None:
            raise BadRequest(UNAVAILABLE)

    if extension.stripe_payment_intent_id:
        intent = stripe_call(stripe.PaymentIntent.retrieve, extension.stripe_payment_intent_id)
        if payment_method_id and intent["status"] == "requires_payment_method":
            intent = stripe_call(
                stripe.PaymentIntent.confirm, intent["id"], payment_method=payment_method_id
            )
    else:
        params = {
            "amount": to_cents(extension.additional_amount),
            "currency": settings.STRIPE_CURRENCY,
            "metadata": {
                "booking_id": str(booking.pk),
                "extension_id": str(extension.pk),
                "user_id": str(booking.user_id),
            },
        }
        if payment_method_id:
            params.update(payment_method=payment_method_id, confirm=True)
        intent = stripe_call(stripe.PaymentIntent.create, **params)
        extension.stripe_payment_intent_id = intent["id"]
        extension.save(update_fields=["stripe_payment_intent_id"])
        logger.info("Created PaymentIntent %s for extension %s", intent["id"], extension.pk)

    if intent["status"] == "succeeded":
        extension = complete_extension(extension.pk)
    elif intent["status"] == "canceled":
        extension.payment_status = BookingExtension.STATUS_FAILED
        extension.save(update_fields=["payment_status"])

    return extension, intent
