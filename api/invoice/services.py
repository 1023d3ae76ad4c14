from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.utils import timezone

from api.booking.pricing import price_breakdown, to_money
from api.invoice.models import Invoice


def compute_totals(line_items, tax_amount=None, discount_amount=None):
    subtotal = to_money(sum((Decimal(item["amount"]) for item in line_items), Decimal("0")))
    if tax_amount is None:
        tax_amount = subtotal * settings.INVOICE_TAX_RATE
    tax_amount = to_money(tax_amount)
    discount_amount = to_money(discount_amount or 0)
    return {
        "subtotal": subtotal,
        "tax_amount": tax_amount,
        "discount_amount": discount_amount,
        "total_amount": to_money(max(subtotal + tax_amount - discount_amount, Decimal("0"))),
    }


def booking_line_items(booking):
    """One line for the rental days, one per selected extra."""
    breakdown = price_breakdown(booking.daily_rate, booking.start_date, booking.end_date, booking.extras)
    days = breakdown["days"]
    vehicle = booking.vehicle
    items = [{
        "description": f"{vehicle.year} {vehicle.make} {vehicle.model} - {days} day(s)",
        "quantity": days,
        "unit_price": str(breakdown["daily_rate"]),
        "amount": str(breakdown["base_amount"]),
    }]
    for extra in breakdown["extras"]:
        items.append({
            "description": extra["label"],
            "quantity": days,
            "unit_price": str(extra["daily_rate"]),
            "amount": str(extra["amount"]),
        })
    return items


def create_invoice_for_booking(booking):
    line_items = booking_line_items(booking)
    return Invoice.objects.create(
        customer_id=booking.user_id,
        booking=booking,
        line_items=line_items,
        due_date=timezone.now() + timedelta(days=settings.INVOICE_DUE_DAYS),
        notes=f"Promo code {booking.promo_code}" if booking.promo_code else None,
        **compute_totals(line_items, discount_amount=booking.discount_amount),
    )
