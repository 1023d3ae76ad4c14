import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models

from api.soft_delete import SoftDeleteModel
from api.vehicle.models import Vehicle


class Booking(SoftDeleteModel):
    STATUS_PENDING = "PENDING"
    STATUS_CONFIRMED = "CONFIRMED"
    STATUS_ACTIVE = "ACTIVE"
    STATUS_COMPLETED = "COMPLETED"
    STATUS_CANCELLED = "CANCELLED"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_CONFIRMED, "Confirmed"),
        (STATUS_ACTIVE, "Active"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    # Statuses that hold the vehicle for their date range
    BLOCKING_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_ACTIVE)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="bookings")
    vehicle = models.ForeignKey(Vehicle, on_delete=models.PROTECT, related_name="bookings")

    start_date = models.DateTimeField()
    end_date = models.DateTimeField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)

    daily_rate = models.DecimalField(max_digits=10, decimal_places=2, help_text="Vehicle rate at booking time.")
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    extras = models.JSONField(default=dict, blank=True)
    promo_code = models.CharField(max_length=20, blank=True, null=True)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    pickup_location = models.CharField(max_length=255)
    dropoff_location = models.CharField(max_length=255)
    notes = models.TextField(blank=True, null=True)

    contract_path = models.CharField(max_length=500, blank=True, null=True)
    contract_signed = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["vehicle", "start_date", "end_date"])]

    def __str__(self):
        return (
            f"Booking {self.id} - {self.vehicle} "
            f"from {self.start_date.strftime('%Y-%m-%d %H:%M')} "
            f"to {self.end_date.strftime('%Y-%m-%d %H:%M')} ({self.status})"
        )

    @property
    def amount_due(self):
        """What the customer pays: the rental total less any promo discount."""
        return max(self.total_amount - self.discount_amount, Decimal("0"))


class BookingExtension(models.Model):
    """A customer's request to keep an active rental past its end date."""

    STATUS_PENDING = "PENDING"
    STATUS_SUCCEEDED = "SUCCEEDED"
    STATUS_FAILED = "FAILED"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_SUCCEEDED, "Succeeded"),
        (STATUS_FAILED, "Failed"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="extensions")
    original_end_date = models.DateTimeField()
    new_end_date = models.DateTimeField()
    additional_days = models.PositiveIntegerField()
    additional_amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    stripe_payment_intent_id = models.CharField(max_length=255, blank=True, null=True, unique=True)
    requested_at = models.DateTimeField(auto_now_add=True)
    approved_at = models.DateTimeField(blank=True, null=True)
    paid_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        ordering = ["-requested_at"]

    def __str__(self):
        return f"Extension of {self.booking_id} to {self.new_end_date:%Y-%m-%d %H:%M} ({self.payment_status})"
