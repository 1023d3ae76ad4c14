import secrets
import uuid
from datetime import timedelta

from django.conf import settings
from django.contrib.auth.base_user import BaseUserManager
from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone

from api.permissions import STAFF_ROLES
from api.soft_delete import SoftDeleteModel, SoftDeleteQuerySet


class UserManager(BaseUserManager.from_queryset(SoftDeleteQuerySet)):
    use_in_migrations = True

    def get_queryset(self):
        return super().get_queryset().filter(deleted_at__isnull=True)

    def _create_user(self, email, password, **extra_fields):
        if not email:
            raise ValueError("The email address must be set")
        email = self.normalize_email(email).lower()
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        extra_fields.setdefault("role", User.ROLE_ADMIN)
        return self._create_user(email, password, **extra_fields)


class User(SoftDeleteModel, AbstractUser):
    ROLE_CUSTOMER = "CUSTOMER"
    ROLE_SUPPORT = "SUPPORT"
    ROLE_MANAGER = "MANAGER"
    ROLE_ADMIN = "ADMIN"

    ROLE_CHOICES = [
        (ROLE_CUSTOMER, "Customer"),
        (ROLE_SUPPORT, "Support"),
        (ROLE_MANAGER, "Manager"),
        (ROLE_ADMIN, "Admin"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    username = None
    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=30, blank=True, null=True)
    avatar = models.CharField(max_length=500, blank=True, null=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_CUSTOMER)

    reset_token = models.CharField(max_length=128, blank=True, null=True, db_index=True)
    reset_token_expires_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        default_manager_name = "objects"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.get_full_name() or self.email} ({self.role})"

    @property
    def is_staff_member(self):
        return self.role in STAFF_ROLES

    def issue_reset_token(self):
        self.reset_token = secrets.token_urlsafe(32)
        self.reset_token_expires_at = timezone.now() + timedelta(hours=settings.PASSWORD_RESET_TTL_HOURS)
        self.save(update_fields=["reset_token", "reset_token_expires_at"])
        return self.reset_token

    def reset_token_valid(self, token):
        return bool(
            self.reset_token
            and secrets.compare_digest(self.reset_token, token)
            and self.reset_token_expires_at
            and self.reset_token_expires_at > timezone.now()
        )
