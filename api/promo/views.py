import logging

from django.db import IntegrityError
from django.db.models import Q
from django.utils import timezone
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated

from api.activity.utils import log_activity
from api.booking.models import Booking
from api.booking.pricing import to_money
from api.exceptions import BadRequest
from api.permissions import IsAdmin
from api.promo.models import PromoCode
from api.promo.serializers import (
    PromoApplySerializer,
    PromoCodeCreateSerializer,
    PromoCodeSerializer,
    PromoCodeUpdateSerializer,
    PromoValidateSerializer,
)
from api.promo.services import apply_promo, describe_discount, discount_for, find_promo, promo_error
from api.utils import get_or_404, success

logger = logging.getLogger(__name__)

DUPLICATE_CODE = "A promo code with this code already exists"


class PromoCodeViewSet(viewsets.GenericViewSet):
    serializer_class = PromoCodeSerializer

    def get_permissions(self):
        if self.action == "validate":
            return [AllowAny()]
        if self.action == "apply":
            return [IsAuthenticated()]
        return [IsAuthenticated(), IsAdmin()]

    def get_queryset(self):
        return PromoCode.objects.all()

    def get_promo(self, pk):
        return get_or_404(self.get_queryset(), "Promo code not found", pk=pk)

    def list(self, request):
        queryset = self.get_queryset()
        now = timezone.now()

        promo_status = request.query_params.get("status", "all")
        if promo_status == "active":
            queryset = queryset.filter(is_active=True, valid_from__lte=now, valid_until__gte=now)
        elif promo_status == "expired":
            queryset = queryset.filter(Q(valid_until__lt=now) | Q(is_active=False))
        elif promo_status != "all":
            raise BadRequest("Invalid value for 'status'. Expected one of: active, expired, all")

        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(PromoCodeSerializer(page, many=True).data)

    def create(self, request):
        serializer = PromoCodeCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if PromoCode.objects.filter(code=data["code"].upper()).exists():
            raise BadRequest(DUPLICATE_CODE)
        try:
            promo = PromoCode.objects.create(**data)
        except IntegrityError:
            raise BadRequest(DUPLICATE_CODE)

        log_activity(request, "PROMO_CREATED", "promo_code", promo.pk, promo.code)
        return success(
            PromoCodeSerializer(promo).data,
            "Promo code created successfully",
            status_code=status.HTTP_201_CREATED,
        )

    def partial_update(self, request, pk=None):
        promo = self.get_promo(pk)
        serializer = PromoCodeUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        for field, value in data.items():
            setattr(promo, field, value)
        if promo.valid_until <= promo.valid_from:
            raise BadRequest("valid_until must be after valid_from")
        promo.save()

        log_activity(request, "PROMO_UPDATED", "promo_code", promo.pk, promo.code)
        return success(PromoCodeSerializer(promo).data, "Promo code updated successfully")

    def destroy(self, request, pk=None):
        promo = self.get_promo(pk)
        code = promo.code
        promo.delete()
        log_activity(request, "PROMO_DELETED", "promo_code", pk, code)
        return success(message="Promo code deleted successfully")

    @action(detail=False, methods=["post"])
    def validate(self, request):
        """
        Check a code before booking. Always answers 200 with `valid` set,
        so a storefront can show the reason without treating it as an error.
        """
        serializer = PromoValidateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        amount = serializer.validated_data.get("booking_amount")

        promo = find_promo(serializer.validated_data["code"])
        error = promo_error(promo, request.user, amount)
        if error:
            return success({"valid": False, "message": error})

        discount = None
        if amount is not None:
            discount = discount_for(promo, {"total_amount": amount, "extras": []})
        return success({
            "valid": True,
            "code": promo.code,
            "type": promo.type,
            "value": str(promo.value),
            "free_extra": promo.free_extra,
            "discount_amount": str(discount) if discount is not None else None,
            "discount_description": describe_discount(promo),
            "min_booking_amount": str(promo.min_booking_amount) if promo.min_booking_amount is not None else None,
            "valid_until": promo.valid_until.isoformat(),
        })

    @action(detail=False, methods=["post"])
    def apply(self, request):
        serializer = PromoApplySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        booking = get_or_404(Booking.objects.filter(user=request.user), "Booking not found", pk=data["booking_id"])
        booking, promo = apply_promo(booking, data["code"], request.user)

        log_activity(request, "PROMO_APPLIED", "booking", booking.pk, promo.code)
        return success(
            {
                "booking_id": str(booking.pk),
                "code": promo.code,
                "discount_description": describe_discount(promo),
                "discount_amount": str(booking.discount_amount),
                "total_amount": str(booking.total_amount),
                "amount_due": str(to_money(booking.amount_due)),
            },
            f"Promo code applied! You saved {to_money(booking.discount_amount)}",
        )
