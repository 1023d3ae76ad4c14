import uuid

from django.conf import settings
from django.db import models

from api.booking.models import Booking
from api.soft_delete import SoftDeleteModel


class Document(SoftDeleteModel):
    TYPE_CHOICES = [
        ("DRIVERS_LICENSE_FRONT", "Driver's License (front)"),
        ("DRIVERS_LICENSE_BACK", "Driver's License (back)"),
        ("ID_CARD", "ID Card"),
        ("PASSPORT", "Passport"),
        ("PROOF_OF_ADDRESS", "Proof of Address"),
        ("INSURANCE", "Insurance"),
    ]

    STATUS_PENDING = "PENDING"
    STATUS_VERIFIED = "VERIFIED"
    STATUS_REJECTED = "REJECTED"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_VERIFIED, "Verified"),
        (STATUS_REJECTED, "Rejected"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="documents")
    booking = models.ForeignKey(Booking, null=True, blank=True, on_delete=models.SET_NULL, related_name="documents")
    type = models.CharField(max_length=32, choices=TYPE_CHOICES)

    file_name = models.CharField(max_length=255)
    file_path = models.CharField(max_length=500)
    file_size = models.PositiveIntegerField()
    mime_type = models.CharField(max_length=100)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    verified_at = models.DateTimeField(null=True, blank=True)
    verified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name="+"
    )
    notes = models.TextField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.type} for {self.user_id} ({self.status})"
