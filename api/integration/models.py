import uuid

from django.db import models


class Integration(models.Model):
    PROVIDER_STRIPE = "STRIPE"
    PROVIDER_TWILIO = "TWILIO"
    PROVIDER_MAILCHIMP = "MAILCHIMP"
    PROVIDER_GOOGLE_CALENDAR = "GOOGLE_CALENDAR"
    PROVIDER_QUICKBOOKS = "QUICKBOOKS"
    PROVIDER_ZAPIER = "ZAPIER"
    PROVIDER_PAYPAL = "PAYPAL"

    PROVIDER_CHOICES = [
        (PROVIDER_STRIPE, "Stripe"),
        (PROVIDER_TWILIO, "Twilio"),
        (PROVIDER_MAILCHIMP, "Mailchimp"),
        (PROVIDER_GOOGLE_CALENDAR, "Google Calendar"),
        (PROVIDER_QUICKBOOKS, "QuickBooks"),
        (PROVIDER_ZAPIER, "Zapier"),
        (PROVIDER_PAYPAL, "PayPal"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    provider = models.CharField(max_length=32, choices=PROVIDER_CHOICES, unique=True)
    is_enabled = models.BooleanField(default=False)
    is_connected = models.BooleanField(default=False)

    access_token = models.TextField(null=True, blank=True)
    refresh_token = models.TextField(null=True, blank=True)
    token_expires_at = models.DateTimeField(null=True, blank=True)

    config = models.JSONField(default=dict, blank=True)
    connected_at = models.DateTimeField(null=True, blank=True)
    last_sync_at = models.DateTimeField(null=True, blank=True)
    last_error = models.TextField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["provider"]

    def __str__(self):
        return f"{self.provider} ({'connected' if self.is_connected else 'disconnected'})"
