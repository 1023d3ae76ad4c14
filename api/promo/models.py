import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone

from api.booking.models import Booking
from api.booking.pricing import EXTRA_DAILY_RATES


class PromoCode(models.Model):
    TYPE_PERCENTAGE = "PERCENTAGE"
    TYPE_FIXED_AMOUNT = "FIXED_AMOUNT"
    TYPE_FREE_EXTRA = "FREE_EXTRA"

    TYPE_CHOICES = [
        (TYPE_PERCENTAGE, "Percentage"),
        (TYPE_FIXED_AMOUNT, "Fixed amount"),
        (TYPE_FREE_EXTRA, "Free extra"),
    ]

    EXTRA_CHOICES = [(name, name) for name in EXTRA_DAILY_RATES]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=20, unique=True)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    value = models.DecimalField(max_digits=10, decimal_places=2)
    free_extra = models.CharField(
        max_length=32, choices=EXTRA_CHOICES, blank=True, null=True,
        help_text="Extra whose surcharge a FREE_EXTRA code waives.",
    )
    max_uses_total = models.PositiveIntegerField(blank=True, null=True)
    max_uses_per_user = models.PositiveIntegerField(default=1)
    min_booking_amount = models.DecimalField(max_digits=12, decimal_places=2, blank=True, null=True)
    valid_from = models.DateTimeField()
    valid_until = models.DateTimeField()
    is_active = models.BooleanField(default=True)
    used_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.code

    def save(self, *args, **kwargs):
        self.code = self.code.upper()
        super().save(*args, **kwargs)

    @property
    def is_current(self):
        now = timezone.now()
        return self.is_active and self.valid_from <= now <= self.valid_until


class PromoCodeUsage(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    promo = models.ForeignKey(PromoCode, on_delete=models.CASCADE, related_name="usages")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="promo_usages")
    booking = models.OneToOneField(Booking, on_delete=models.CASCADE, related_name="promo_usage")
    discount_applied = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.promo.code} on {self.booking_id}"
