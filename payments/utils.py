import logging
from decimal import ROUND_HALF_UP, Decimal

import stripe
from django.conf import settings
from django.db import transaction

from api.booking.email_service import Email
from api.booking.models import Booking
from api.exceptions import BadRequest
from payments.models import Payment

logger = logging.getLogger(__name__)

# Stripe PaymentIntent status -> our payment status
INTENT_STATUS_MAP = {
    'succeeded': Payment.STATUS_SUCCEEDED,
    'processing': Payment.STATUS_PROCESSING,
    'requires_payment_method': Payment.STATUS_FAILED,
    'canceled': Payment.STATUS_FAILED,
}


def require_stripe():
    if not settings.STRIPE_SECRET_KEY:
        raise BadRequest("Payment processing is not configured")
    stripe.api_key = settings.STRIPE_SECRET_KEY


def to_cents(amount):
    return int((Decimal(amount) * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def stripe_call(func, *args, **kwargs):
    """Run a Stripe SDK call, turning processor errors into a 400."""
    try:
        return func(*args, **kwargs)
    except stripe.StripeError as e:
        logger.warning("Stripe error in %s: %s", getattr(func, '__qualname__', func), e)
        raise BadRequest(getattr(e, 'user_message', None) or str(e) or "Payment processor error")


def send_confirmation_email_once(payment):
    """
    Send the booking confirmation email unless another request already did.
    The conditional update is the only guard: whoever flips the flag sends.
    """
    claimed = Payment.objects.filter(
        pk=payment.pk, confirmation_email_sent=False
    ).update(confirmation_email_sent=True)
    if claimed != 1:
        return False

    booking = Booking.all_objects.select_related('user', 'vehicle').get(pk=payment.booking_id)
    Email().send_booking_confirmation_email(booking)
    logger.info("Confirmation email sent for booking %s", booking.pk)
    return True


def mark_payment_succeeded(payment, charge_id=None):
    with transaction.atomic():
        payment.status = Payment.STATUS_SUCCEEDED
        if charge_id:
            payment.stripe_charge_id = charge_id
        payment.method = payment.method or 'CARD'
        payment.save(update_fields=['status', 'stripe_charge_id', 'method', 'updated_at'])
        Booking.all_objects.filter(
            pk=payment.booking_id, status=Booking.STATUS_PENDING
        ).update(status=Booking.STATUS_CONFIRMED)

    send_confirmation_email_once(payment)


def apply_intent_status(payment, intent):
    """Mirror a retrieved PaymentIntent onto the payment (and its booking)."""
    new_status = INTENT_STATUS_MAP.get(intent['status'], Payment.STATUS_PENDING)
    if new_status == Payment.STATUS_SUCCEEDED:
        mark_payment_succeeded(payment, intent.get('latest_charge'))
    else:
        payment.status = new_status
        payment.method = 'CARD'
        payment.save(update_fields=['status', 'method', 'updated_at'])
    payment.refresh_from_db()
    return payment


def refund_payment(payment, amount=None, reason=None):
    """
    Refund a succeeded payment in full or in part.
    A full refund also cancels the booking.
    """
    if payment.status != Payment.STATUS_SUCCEEDED:
        raise BadRequest("Can only refund successful payments")
    if not payment.stripe_payment_intent_id:
        raise BadRequest("No Stripe payment intent found")

    refund_amount = Decimal(amount) if amount is not None else payment.amount
    if refund_amount > payment.amount:
        raise BadRequest("Refund amount cannot exceed the payment amount")

    refund = stripe_call(
        stripe.Refund.create,
        payment_intent=payment.stripe_payment_intent_id,
        amount=to_cents(refund_amount),
        reason='requested_by_customer',
    )

    full_refund = refund_amount >= payment.amount
    with transaction.atomic():
        payment.status = Payment.STATUS_REFUNDED if full_refund else Payment.STATUS_PARTIALLY_REFUNDED
        payment.refund_amount = refund_amount
        payment.refund_reason = reason
        payment.save(update_fields=['status', 'refund_amount', 'refund_reason', 'updated_at'])
        if full_refund:
            Booking.all_objects.filter(pk=payment.booking_id).update(status=Booking.STATUS_CANCELLED)

    logger.info("Refunded %s for booking %s (full=%s)", refund_amount, payment.booking_id, full_refund)
    return payment, refund
