import uuid

from django.conf import settings
from django.db import models

from api.booking.models import Booking
from api.soft_delete import SoftDeleteModel


class Conversation(SoftDeleteModel):
    STATUS_OPEN = "OPEN"
    STATUS_PENDING = "PENDING"
    STATUS_RESOLVED = "RESOLVED"
    STATUS_CLOSED = "CLOSED"

    STATUS_CHOICES = [
        (STATUS_OPEN, "Open"),
        (STATUS_PENDING, "Pending"),
        (STATUS_RESOLVED, "Resolved"),
        (STATUS_CLOSED, "Closed"),
    ]

    PRIORITY_CHOICES = [
        ("LOW", "Low"),
        ("NORMAL", "Normal"),
        ("HIGH", "High"),
        ("URGENT", "Urgent"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    customer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="conversations")
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="assigned_conversations",
    )
    booking = models.ForeignKey(Booking, null=True, blank=True, on_delete=models.SET_NULL, related_name="conversations")
    subject = models.CharField(max_length=255, blank=True, null=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_OPEN, db_index=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default="NORMAL")
    last_message_at = models.DateTimeField(auto_now_add=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-last_message_at"]

    def __str__(self):
        return f"{self.subject or 'Conversation'} ({self.status})"


class Message(models.Model):
    SENDER_CUSTOMER = "CUSTOMER"
    SENDER_STAFF = "STAFF"
    SENDER_SYSTEM = "SYSTEM"

    SENDER_TYPE_CHOICES = [
        (SENDER_CUSTOMER, "Customer"),
        (SENDER_STAFF, "Staff"),
        (SENDER_SYSTEM, "System"),
    ]

    CONTENT_TYPE_CHOICES = [
        ("TEXT", "Text"),
        ("HTML", "HTML"),
        ("TEMPLATE", "Template"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    conversation = models.ForeignKey(Conversation, on_delete=models.CASCADE, related_name="messages")
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name="messages"
    )
    sender_type = models.CharField(max_length=10, choices=SENDER_TYPE_CHOICES)
    content = models.TextField()
    content_type = models.CharField(max_length=10, choices=CONTENT_TYPE_CHOICES, default="TEXT")
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]

    def __str__(self):
        return f"{self.sender_type}: {self.content[:40]}"
