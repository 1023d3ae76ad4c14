import logging
from decimal import Decimal

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, PermissionDenied
from rest_framework.permissions import AllowAny, IsAuthenticated

from api.activity.utils import log_activity
from api.booking import extensions as extension_service
from api.booking import services
from api.booking.email_service import Email
from api.booking.models import Booking, BookingExtension
from api.booking.pricing import price_breakdown
from api.booking.serializers import (
    BookingCreateSerializer,
    BookingExtensionSerializer,
    BookingSerializer,
    BookingUpdateSerializer,
    ExtensionPaySerializer,
    ExtensionRequestSerializer,
    QuoteSerializer,
)
from api.exceptions import BadRequest
from api.permissions import IsStaff, is_staff
from api.promo.services import discount_for, find_promo, promo_error
from api.storage import delete_stored_file, file_url, save_upload, validate_upload
from api.utils import choice_param, datetime_param, get_or_404, success
from api.vehicle.models import Vehicle
from api.vehicle.serializers import VehicleSummarySerializer

logger = logging.getLogger(__name__)

CONTRACT_TYPES = ["application/pdf", "image/jpeg", "image/png"]


class BookingViewSet(viewsets.GenericViewSet):
    serializer_class = BookingSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return Booking.objects.select_related("vehicle", "user", "payment")

    def get_permissions(self):
        if self.action == "destroy":
            return [IsAuthenticated(), IsStaff()]
        if self.action == "quote":
            return [AllowAny()]
        return super().get_permissions()

    def get_booking(self, pk, message="You can only access your own bookings"):
        booking = get_or_404(self.get_queryset(), "Booking not found", pk=pk)
        if not is_staff(self.request.user) and booking.user_id != self.request.user.pk:
            raise PermissionDenied(message)
        return booking

    def list(self, request):
        queryset = self.get_queryset()

        if not is_staff(request.user):
            queryset = queryset.filter(user=request.user)
        elif request.query_params.get("user_id"):
            queryset = queryset.filter(user_id=request.query_params["user_id"])

        booking_status = choice_param(request, "status", Booking.STATUS_CHOICES)
        if booking_status:
            queryset = queryset.filter(status=booking_status)
        if request.query_params.get("vehicle_id"):
            queryset = queryset.filter(vehicle_id=request.query_params["vehicle_id"])

        start_date = datetime_param(request, "start_date")
        if start_date:
            queryset = queryset.filter(start_date__gte=start_date)
        end_date = datetime_param(request, "end_date")
        if end_date:
            queryset = queryset.filter(end_date__lte=end_date)

        page = self.paginate_queryset(queryset.order_by("-created_at"))
        return self.get_paginated_response(BookingSerializer(page, many=True).data)

    def retrieve(self, request, pk=None):
        booking = self.get_booking(pk, "You can only view your own bookings")
        return success(BookingSerializer(booking).data)

    def create(self, request):
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        booking = services.create_booking(
            user=request.user,
            vehicle_id=data["vehicle_id"],
            start_date=data["start_date"],
            end_date=data["end_date"],
            pickup_location=data["pickup_location"],
            dropoff_location=data["dropoff_location"],
            extras=data.get("extras"),
            notes=data.get("notes"),
            promo_code=data.get("promo_code"),
        )
        log_activity(request, "BOOKING_CREATED", "booking", booking.pk)
        return success(BookingSerializer(booking).data, status_code=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        booking = self.get_booking(pk, "You can only modify your own bookings")
        serializer = BookingUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking = services.update_booking(booking, dict(serializer.validated_data), staff=is_staff(request.user))
        log_activity(request, "BOOKING_UPDATED", "booking", booking.pk)
        return success(BookingSerializer(booking).data)

    def destroy(self, request, pk=None):
        booking = self.get_booking(pk)
        if booking.status == Booking.STATUS_ACTIVE:
            raise BadRequest("Cannot delete an active booking")
        booking.soft_delete(actor=request.user)
        log_activity(request, "BOOKING_DELETED", "booking", booking.pk)
        return success(message="Booking deleted successfully")

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        booking = self.get_booking(pk, "You can only cancel your own bookings")
        services.cancel_booking(booking, request.user)
        log_activity(request, "BOOKING_CANCELLED", "booking", booking.pk)

        email_service = Email()
        email_service.send_booking_cancellation_email(booking)
        email_service.send_admin_booking_cancellation_email(booking)

        return success(
            BookingSerializer(booking).data,
            message="Booking cancelled and moved to recycling bin",
        )

    @action(detail=True, methods=["get", "post", "delete"])
    def contract(self, request, pk=None):
        """
        POST   upload a signed contract (multipart field `contract`)
        GET    URL of the stored contract
        DELETE remove the contract (staff only)
        """
        if request.method == "DELETE" and not is_staff(request.user):
            raise PermissionDenied("Insufficient permissions")

        booking = self.get_booking(pk, "You can only access contracts for your own bookings")

        if request.method == "GET":
            if not booking.contract_path:
                raise NotFound("No contract found for this booking")
            return success({
                "url": file_url(booking.contract_path, request),
                "contract_signed": booking.contract_signed,
            })

        if request.method == "DELETE":
            if not booking.contract_path:
                raise NotFound("No contract found for this booking")
            delete_stored_file(booking.contract_path)
            booking.contract_path = None
            booking.contract_signed = False
            booking.save(update_fields=["contract_path", "contract_signed", "updated_at"])
            return success(message="Contract deleted successfully")

        upload = request.FILES.get("contract")
        validate_upload(upload, CONTRACT_TYPES)

        if booking.contract_path:
            delete_stored_file(booking.contract_path)

        booking.contract_path = save_upload(f"contracts/{booking.pk}", upload, suffix="contract")
        booking.contract_signed = True
        booking.save(update_fields=["contract_path", "contract_signed", "updated_at"])
        log_activity(request, "CONTRACT_UPLOADED", "booking", booking.pk)

        return success(
            BookingSerializer(booking).data,
            message="Contract uploaded successfully",
        )


    @action(detail=True, methods=["post"], url_path="extend/preview")
    def extend_preview(self, request, pk=None):
        booking = extension_service.active_booking_for(request.user, pk)
        serializer = ExtensionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_end_date = serializer.validated_data["new_end_date"]
        extension_service.check_new_end_date(booking, new_end_date)

        conflict = extension_service.extension_conflict(booking, new_end_date)
        if conflict is not None:
            return success({
                "available": False,
                "message": extension_service.UNAVAILABLE,
                "conflict_date": conflict.start_date,
            })

        additional_days, additional_amount = extension_service.extension_price(booking, new_end_date)
        return success({
            "available": True,
            "booking": {
                "id": booking.pk,
                "current_end_date": booking.end_date,
                "new_end_date": new_end_date,
                "vehicle": VehicleSummarySerializer(booking.vehicle).data,
            },
            "pricing": {
                "additional_days": additional_days,
                "daily_rate": booking.daily_rate,
                "additional_amount": additional_amount,
            },
        })

    @action(detail=True, methods=["post"])
    def extend(self, request, pk=None):
        booking = extension_service.active_booking_for(request.user, pk)
        serializer = ExtensionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        extension = extension_service.request_extension(booking, serializer.validated_data["new_end_date"])
        log_activity(request, "BOOKING_EXTENSION_REQUESTED", "booking", booking.pk, str(extension.pk))

        if extension.payment_status == BookingExtension.STATUS_SUCCEEDED:
            message = "Your rental has been extended."
        else:
            message = "Extension request created. Please complete payment to confirm."
        return success(
            BookingExtensionSerializer(extension).data,
            message=message,
            status_code=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=["post"], url_path="extend/pay")
    def extend_pay(self, request, pk=None):
        booking = extension_service.active_booking_for(request.user, pk)
        serializer = ExtensionPaySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        extension, intent = extension_service.pay_extension(
            booking,
            serializer.validated_data["extension_id"],
            serializer.validated_data.get("payment_method_id") or None,
        )
        data = {
            "extension": BookingExtensionSerializer(extension).data,
            "payment_intent_id": intent["id"],
            "client_secret": intent["client_secret"],
            "payment_status": intent["status"],
        }
        if extension.payment_status == BookingExtension.STATUS_SUCCEEDED:
            log_activity(request, "BOOKING_EXTENDED", "booking", booking.pk, str(extension.pk))
            data["new_end_date"] = extension.new_end_date
            data["amount_paid"] = extension.additional_amount
            return success(data, message="Extension payment successful! Your rental has been extended.")
        return success(data, message="Complete the payment to confirm the extension")

    @action(detail=True, methods=["get"])
    def extensions(self, request, pk=None):
        booking = self.get_booking(pk, "You can only view your own bookings")
        return success(BookingExtensionSerializer(booking.extensions.all(), many=True).data)

    @action(detail=False, methods=["post"])
    def quote(self, request):
        serializer = QuoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if data["end_date"] <= data["start_date"]:
            raise BadRequest("End date must be after start date")

        vehicle = get_or_404(Vehicle.objects.all(), "Vehicle not found", pk=data["vehicle_id"])

        breakdown = price_breakdown(vehicle.daily_rate, data["start_date"], data["end_date"], data.get("extras"))
        breakdown["vehicle_id"] = vehicle.pk
        breakdown["available"] = (
            vehicle.status == Vehicle.STATUS_AVAILABLE
            and not services.overlapping_bookings(vehicle.pk, data["start_date"], data["end_date"]).exists()
        )
        breakdown["discount_amount"] = Decimal("0.00")
        if data.get("promo_code"):
            promo = find_promo(data["promo_code"])
            error = promo_error(promo, request.user, breakdown["total_amount"])
            if error:
                raise BadRequest(error)
            breakdown["promo_code"] = promo.code
            breakdown["discount_amount"] = discount_for(promo, breakdown)
        breakdown["amount_due"] = breakdown["total_amount"] - breakdown["discount_amount"]
        return success(breakdown)
