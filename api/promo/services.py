"""
Promo code checks and discounts. A code's discount is worked out from the
booking's price breakdown and stored on the booking; the rental total itself
is never reduced, so `Booking.amount_due` is what gets charged.
"""
import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from api.booking.models import Booking
from api.booking.pricing import price_breakdown, to_money
from api.exceptions import BadRequest
from api.promo.models import PromoCode, PromoCodeUsage

logger = logging.getLogger(__name__)


def find_promo(code, lock=False):
    queryset = PromoCode.objects.select_for_update() if lock else PromoCode.objects.all()
    return queryset.filter(code=(code or "").strip().upper()).first()


def promo_error(promo, user=None, amount=None):
    """The reason `promo` cannot be used right now, or None when it can."""
    if promo is None:
        return "Invalid promo code"
    if not promo.is_active:
        return "This promo code is no longer active"

    now = timezone.now()
    if now < promo.valid_from:
        return "This promo code is not yet valid"
    if now > promo.valid_until:
        return "This promo code has expired"

    if promo.max_uses_total is not None and promo.used_count >= promo.max_uses_total:
        return "This promo code has reached its usage limit"

    if user is not None and user.is_authenticated:
        used = PromoCodeUsage.objects.filter(promo=promo, user=user).count()
        if used >= promo.max_uses_per_user:
            return "You have already used this promo code"

    if promo.min_booking_amount is not None and amount is not None and amount < promo.min_booking_amount:
        return f"Minimum booking amount is {to_money(promo.min_booking_amount)}"

    return None


def discount_for(promo, breakdown):
    total = breakdown["total_amount"]
    if promo.type == PromoCode.TYPE_PERCENTAGE:
        discount = total * promo.value / Decimal("100")
    elif promo.type == PromoCode.TYPE_FIXED_AMOUNT:
        discount = promo.value
    else:
        discount = sum(
            (line["amount"] for line in breakdown["extras"] if line["name"] == promo.free_extra),
            Decimal("0"),
        )
    return to_money(min(discount, total))


def describe_discount(promo):
    if promo.type == PromoCode.TYPE_PERCENTAGE:
        return f"{promo.value.normalize():f}% off"
    if promo.type == PromoCode.TYPE_FIXED_AMOUNT:
        return f"{to_money(promo.value)} off"
    return f"Free {promo.get_free_extra_display() or 'add-on'}"


def booking_breakdown(booking):
    return price_breakdown(booking.daily_rate, booking.start_date, booking.end_date, booking.extras)


def apply_promo(booking, code, user):
    """
    Attach a promo code to a pending booking. The code row is locked so
    its total usage limit holds under concurrent use.
    """
    with transaction.atomic():
        promo = find_promo(code, lock=True)
        booking = Booking.objects.select_for_update().get(pk=booking.pk)

        if booking.status != Booking.STATUS_PENDING:
            raise BadRequest("Promo codes can only be applied to pending bookings")
        if PromoCodeUsage.objects.filter(booking=booking).exists():
            raise BadRequest("A promo code is already applied to this booking")

        error = promo_error(promo, user, booking.total_amount)
        if error:
            raise BadRequest(error)

        discount = discount_for(promo, booking_breakdown(booking))
        PromoCodeUsage.objects.create(promo=promo, user=user, booking=booking, discount_applied=discount)
        PromoCode.objects.filter(pk=promo.pk).update(used_count=F("used_count") + 1)

        booking.promo_code = promo.code
        booking.discount_amount = discount
        booking.save(update_fields=["promo_code", "discount_amount", "updated_at"])

    logger.info("Promo %s applied to booking %s (%s off)", promo.code, booking.pk, discount)
    return booking, promo


def refresh_discount(booking):
    """Recompute the stored discount after the booking's price changed."""
    usage = PromoCodeUsage.objects.select_related("promo").filter(booking=booking).first()
    if usage is None:
        booking.discount_amount = min(booking.discount_amount, booking.total_amount)
        return booking.discount_amount

    discount = discount_for(usage.promo, booking_breakdown(booking))
    if discount != usage.discount_applied:
        usage.discount_applied = discount
        usage.save(update_fields=["discount_applied"])
    booking.discount_amount = discount
    return discount
