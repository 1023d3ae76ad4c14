import uuid

from django.core.validators import MaxValueValidator, MinLengthValidator, MinValueValidator
from django.db import models

from api.soft_delete import SoftDeleteModel


class Vehicle(SoftDeleteModel):
    """
    A rental vehicle in the fleet catalog.
    `images` and `features` are JSON lists of strings.
    """

    CATEGORY_ECONOMY = "ECONOMY"
    CATEGORY_STANDARD = "STANDARD"
    CATEGORY_PREMIUM = "PREMIUM"
    CATEGORY_LUXURY = "LUXURY"
    CATEGORY_SUV = "SUV"
    CATEGORY_VAN = "VAN"

    CATEGORY_CHOICES = [
        (CATEGORY_ECONOMY, "Economy"),
        (CATEGORY_STANDARD, "Standard"),
        (CATEGORY_PREMIUM, "Premium"),
        (CATEGORY_LUXURY, "Luxury"),
        (CATEGORY_SUV, "SUV"),
        (CATEGORY_VAN, "Van"),
    ]

    STATUS_AVAILABLE = "AVAILABLE"
    STATUS_RENTED = "RENTED"
    STATUS_MAINTENANCE = "MAINTENANCE"
    STATUS_RETIRED = "RETIRED"

    STATUS_CHOICES = [
        (STATUS_AVAILABLE, "Available"),
        (STATUS_RENTED, "Rented"),
        (STATUS_MAINTENANCE, "Maintenance"),
        (STATUS_RETIRED, "Retired"),
    ]

    TRANSMISSION_CHOICES = [
        ("AUTOMATIC", "Automatic"),
        ("MANUAL", "Manual"),
    ]

    FUEL_TYPE_CHOICES = [
        ("GASOLINE", "Gasoline"),
        ("DIESEL", "Diesel"),
        ("ELECTRIC", "Electric"),
        ("HYBRID", "Hybrid"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    make = models.CharField(max_length=100)
    model = models.CharField(max_length=100)
    year = models.PositiveIntegerField(validators=[MinValueValidator(1900), MaxValueValidator(2100)])
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES)
    daily_rate = models.DecimalField(max_digits=10, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_AVAILABLE)

    images = models.JSONField(default=list, blank=True)
    features = models.JSONField(default=list, blank=True)
    description = models.TextField(blank=True, null=True)

    seats = models.PositiveIntegerField(
        default=5,
        validators=[MinValueValidator(1), MaxValueValidator(15)],
        help_text="Number of passengers the vehicle can accommodate.",
    )
    doors = models.PositiveIntegerField(
        default=4,
        validators=[MinValueValidator(2), MaxValueValidator(6)],
        help_text="Number of doors on the vehicle.",
    )
    transmission = models.CharField(
        max_length=10,
        choices=TRANSMISSION_CHOICES,
        default="AUTOMATIC",
        help_text="Type of transmission.",
    )
    fuel_type = models.CharField(
        max_length=10,
        choices=FUEL_TYPE_CHOICES,
        default="GASOLINE",
        help_text="Type of fuel the vehicle uses.",
    )
    mileage = models.PositiveIntegerField(default=0)
    color = models.CharField(max_length=50, blank=True, null=True)
    license_plate = models.CharField(max_length=20, unique=True)
    vin = models.CharField(max_length=17, unique=True, validators=[MinLengthValidator(17)])
    location = models.CharField(max_length=255, blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.year} {self.make} {self.model} ({self.license_plate})"
