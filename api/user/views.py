import logging

from django.db import transaction
from django.db.models import Count, Q
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated

from api.activity.utils import log_activity
from api.booking import services
from api.booking.models import Booking
from api.booking.serializers import BookingSerializer
from api.exceptions import BadRequest
from api.permissions import IsAdmin, IsStaff, is_staff
from api.user.models import User
from api.user.serializers import CustomerListSerializer, RoleSerializer, UserSerializer
from api.utils import choice_param, get_or_404, success

logger = logging.getLogger(__name__)


class CustomerViewSet(viewsets.GenericViewSet):
    serializer_class = UserSerializer

    def get_permissions(self):
        if self.action == "list":
            return [IsAuthenticated(), IsStaff()]
        if self.action in ("role", "destroy"):
            return [IsAuthenticated(), IsAdmin()]
        return [IsAuthenticated()]

    def get_queryset(self):
        return User.objects.annotate(
            booking_count=Count("bookings", filter=Q(bookings__deleted_at__isnull=True), distinct=True)
        )

    def get_customer(self, pk):
        user = get_or_404(self.get_queryset(), "Customer not found", pk=pk)
        if not is_staff(self.request.user) and user.pk != self.request.user.pk:
            raise PermissionDenied("You can only access your own profile")
        return user

    def list(self, request):
        queryset = self.get_queryset()
        role = choice_param(request, "role", User.ROLE_CHOICES)
        queryset = queryset.filter(role=role or User.ROLE_CUSTOMER)

        search = request.query_params.get("search")
        if search:
            queryset = queryset.filter(
                Q(email__icontains=search)
                | Q(first_name__icontains=search)
                | Q(last_name__icontains=search)
                | Q(phone__icontains=search)
            )

        page = self.paginate_queryset(queryset.order_by("-created_at"))
        return self.get_paginated_response(CustomerListSerializer(page, many=True).data)

    def retrieve(self, request, pk=None):
        return success(CustomerListSerializer(self.get_customer(pk)).data)

    def partial_update(self, request, pk=None):
        user = self.get_customer(pk)
        serializer = UserSerializer(user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        log_activity(request, "CUSTOMER_UPDATED", "user", user.pk, user.email)
        return success(serializer.data, message="Customer updated successfully")

    @action(detail=True, methods=["patch"])
    def role(self, request, pk=None):
        user = get_or_404(User.objects.all(), "Customer not found", pk=pk)
        serializer = RoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        if user.pk == request.user.pk:
            raise BadRequest("You cannot change your own role")

        previous = user.role
        user.role = serializer.validated_data["role"]
        user.save(update_fields=["role", "updated_at"])
        log_activity(request, "ROLE_CHANGED", "user", user.pk, f"{previous} -> {user.role}")
        return success(UserSerializer(user).data, message="Role updated successfully")

    def destroy(self, request, pk=None):
        user = get_or_404(User.objects.all(), "Customer not found", pk=pk)
        if user.pk == request.user.pk:
            raise BadRequest("You cannot delete your own account")
        if user.bookings.filter(status__in=(Booking.STATUS_CONFIRMED, Booking.STATUS_ACTIVE)).exists():
            raise BadRequest("Cannot delete customer with active bookings")

        with transaction.atomic():
            pending = list(
                user.bookings.select_for_update().filter(status=Booking.STATUS_PENDING)
            )
            for booking in pending:
                services.cancel_booking(booking, request.user)
                log_activity(request, "BOOKING_CANCELLED", "booking", booking.pk, "Customer deleted")
            user.soft_delete(actor=request.user)

        log_activity(request, "CUSTOMER_DELETED", "user", user.pk, user.email)
        if pending:
            logger.info("Cancelled %d pending booking(s) of deleted customer %s", len(pending), user.pk)
        return success(message="Customer moved to recycling bin")

    @action(detail=True, methods=["get"])
    def bookings(self, request, pk=None):
        user = self.get_customer(pk)
        queryset = Booking.objects.filter(user=user).select_related("vehicle", "user", "payment")
        page = self.paginate_queryset(queryset.order_by("-created_at"))
        return self.get_paginated_response(BookingSerializer(page, many=True).data)
