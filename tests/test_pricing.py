from datetime import datetime, timedelta, timezone
from decimal import Decimal

from api.booking.pricing import calculate_total, price_breakdown, rental_days

MONDAY = datetime(2030, 6, 3, 10, 0, tzinfo=timezone.utc)
THURSDAY = MONDAY + timedelta(days=3)


def test_three_days_with_insurance():
    total = calculate_total(Decimal("65"), MONDAY, THURSDAY, {"insurance": True})
    assert total == Decimal("270.00")


def test_partial_day_rounds_up():
    assert rental_days(MONDAY, MONDAY + timedelta(days=2, hours=1)) == 3


def test_minimum_one_day():
    assert rental_days(MONDAY, MONDAY + timedelta(hours=2)) == 1


def test_exact_days_not_rounded():
    assert rental_days(MONDAY, MONDAY + timedelta(days=4)) == 4


def test_unselected_extras_are_free():
    total = calculate_total(
        Decimal("50"), MONDAY, MONDAY + timedelta(days=2), {"gps": False, "insurance": False}
    )
    assert total == Decimal("100.00")


def test_breakdown_lists_every_selected_extra():
    breakdown = price_breakdown(
        Decimal("40"),
        MONDAY,
        MONDAY + timedelta(days=2),
        {"gps": True, "child_seat": True, "additional_driver": True},
    )
    assert breakdown["days"] == 2
    assert breakdown["base_amount"] == Decimal("80.00")
    assert [line["name"] for line in breakdown["extras"]] == ["gps", "child_seat", "additional_driver"]
    assert breakdown["extras_amount"] == Decimal("66.00")
    assert breakdown["total_amount"] == Decimal("146.00")


def test_unknown_extras_ignored():
    assert calculate_total(Decimal("30"), MONDAY, MONDAY + timedelta(days=1), {"jetpack": True}) == Decimal("30.00")
