"""
Rental price calculation shared by bookings, quotes and invoices.

Every started 24-hour period is charged as a full day, with a one day minimum.
"""
import math
from decimal import ROUND_HALF_UP, Decimal

CENTS = Decimal("0.01")

EXTRA_DAILY_RATES = {
    "insurance": Decimal("25"),
    "gps": Decimal("10"),
    "child_seat": Decimal("8"),
    "additional_driver": Decimal("15"),
}

EXTRA_LABELS = {
    "insurance": "Insurance",
    "gps": "GPS Navigation",
    "child_seat": "Child Seat",
    "additional_driver": "Additional Driver",
}


def to_money(value):
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def rental_days(start, end):
    seconds = (end - start).total_seconds()
    return max(math.ceil(seconds / 86400), 1)


def selected_extras(extras):
    """Names of the extras switched on, in table order."""
    extras = extras or {}
    return [name for name in EXTRA_DAILY_RATES if extras.get(name)]


def price_breakdown(daily_rate, start, end, extras=None):
    days = rental_days(start, end)
    daily_rate = to_money(daily_rate)
    base = daily_rate * days
    lines = []
    for name in selected_extras(extras):
        rate = EXTRA_DAILY_RATES[name]
        lines.append({
            "name": name,
            "label": EXTRA_LABELS[name],
            "daily_rate": to_money(rate),
            "amount": to_money(rate * days),
        })
    extras_total = sum((line["amount"] for line in lines), Decimal("0"))
    return {
        "days": days,
        "daily_rate": daily_rate,
        "base_amount": to_money(base),
        "extras": lines,
        "extras_amount": to_money(extras_total),
        "total_amount": to_money(base + extras_total),
    }


def calculate_total(daily_rate, start, end, extras=None):
    return price_breakdown(daily_rate, start, end, extras)["total_amount"]
