from django.db.models import Avg, Count, Max, Min, Q
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.permissions import AllowAny, IsAuthenticated

from api.activity.utils import log_activity
from api.booking.models import Booking
from api.booking.pricing import rental_days
from api.booking.services import overlapping_bookings
from api.exceptions import BadRequest
from api.pagination import EnvelopePagination
from api.permissions import IsStaff
from api.review.models import Review
from api.storage import delete_stored_file, file_url, save_upload, validate_upload
from api.utils import choice_param, datetime_param, decimal_param, get_or_404, int_param, success
from api.vehicle.models import Vehicle
from api.vehicle.serializers import (
    AvailabilityQuerySerializer,
    BulkAvailabilitySerializer,
    ReviewSerializer,
    VehicleSerializer,
    VehicleStatusSerializer,
    VehicleSummarySerializer,
)

IMAGE_TYPES = ["image/jpeg", "image/png", "image/webp"]

SORT_FIELDS = {
    "daily_rate": "daily_rate",
    "year": "year",
    "created_at": "created_at",
    "make": "make",
}


class VehicleViewSet(viewsets.GenericViewSet):
    """
    Fleet catalog. Browsing is public, changes are staff only.
    """
    serializer_class = VehicleSerializer

    def get_permissions(self):
        if self.action in ("list", "retrieve", "availability", "availability_bulk", "preview_pricing"):
            return [AllowAny()]
        if self.action == "reviews" and self.request.method == "GET":
            return [AllowAny()]
        if self.action in ("reviews", "can_review"):
            return [IsAuthenticated()]
        return [IsAuthenticated(), IsStaff()]

    def get_queryset(self):
        return Vehicle.objects.annotate(
            average_rating=Avg("reviews__rating", filter=Q(reviews__deleted_at__isnull=True)),
            review_count=Count("reviews", filter=Q(reviews__deleted_at__isnull=True), distinct=True),
        )

    def get_vehicle(self, pk):
        return get_or_404(self.get_queryset(), "Vehicle not found", pk=pk)

    def list(self, request):
        queryset = self.get_queryset()
        params = request.query_params

        category = choice_param(request, "category", Vehicle.CATEGORY_CHOICES)
        if category:
            queryset = queryset.filter(category=category)
        transmission = choice_param(request, "transmission", Vehicle.TRANSMISSION_CHOICES)
        if transmission:
            queryset = queryset.filter(transmission=transmission)
        fuel_type = choice_param(request, "fuel_type", Vehicle.FUEL_TYPE_CHOICES)
        if fuel_type:
            queryset = queryset.filter(fuel_type=fuel_type)

        seats = int_param(request, "seats", minimum=1)
        if seats:
            queryset = queryset.filter(seats__gte=seats)

        vehicle_status = choice_param(request, "status", Vehicle.STATUS_CHOICES) or Vehicle.STATUS_AVAILABLE
        queryset = queryset.filter(status=vehicle_status)

        min_price = decimal_param(request, "min_price")
        if min_price is not None:
            queryset = queryset.filter(daily_rate__gte=min_price)
        max_price = decimal_param(request, "max_price")
        if max_price is not None:
            queryset = queryset.filter(daily_rate__lte=max_price)

        search = params.get("search", "").strip()
        if search:
            queryset = queryset.filter(Q(make__icontains=search) | Q(model__icontains=search))

        sort_by = params.get("sort_by", "created_at")
        if sort_by not in SORT_FIELDS:
            raise BadRequest(f"Invalid sort_by. Expected one of: {', '.join(SORT_FIELDS)}")
        sort_order = params.get("sort_order", "desc")
        if sort_order not in ("asc", "desc"):
            raise BadRequest("Invalid sort_order. Expected asc or desc")
        ordering = SORT_FIELDS[sort_by] if sort_order == "asc" else f"-{SORT_FIELDS[sort_by]}"

        page = self.paginate_queryset(queryset.order_by(ordering, "id"))
        return self.get_paginated_response(VehicleSerializer(page, many=True).data)

    def retrieve(self, request, pk=None):
        vehicle = self.get_vehicle(pk)
        data = VehicleSerializer(vehicle).data
        recent = Review.objects.filter(vehicle=vehicle).select_related("user")[:10]
        data["reviews"] = ReviewSerializer(recent, many=True).data
        data["booking_count"] = vehicle.bookings.count()
        return success(data)

    def create(self, request):
        serializer = VehicleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        vehicle = serializer.save()
        log_activity(request, "VEHICLE_CREATED", "vehicle", vehicle.pk, str(vehicle))
        return success(VehicleSerializer(self.get_vehicle(vehicle.pk)).data, status_code=status.HTTP_201_CREATED)

    def update(self, request, pk=None):
        vehicle = self.get_vehicle(pk)
        serializer = VehicleSerializer(vehicle, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        log_activity(request, "VEHICLE_UPDATED", "vehicle", vehicle.pk)
        return success(VehicleSerializer(self.get_vehicle(vehicle.pk)).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk)

    def destroy(self, request, pk=None):
        vehicle = self.get_vehicle(pk)
        if Booking.objects.filter(vehicle=vehicle, status__in=Booking.BLOCKING_STATUSES).exists():
            raise BadRequest("Cannot delete vehicle with active bookings")
        vehicle.soft_delete(actor=request.user)
        log_activity(request, "VEHICLE_DELETED", "vehicle", vehicle.pk, str(vehicle))
        return success(message="Vehicle deleted successfully")

    @action(detail=True, methods=["patch"], url_path="status")
    def set_status(self, request, pk=None):
        vehicle = self.get_vehicle(pk)
        serializer = VehicleStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        vehicle.status = serializer.validated_data["status"]
        vehicle.save(update_fields=["status", "updated_at"])
        log_activity(request, "VEHICLE_STATUS_CHANGED", "vehicle", vehicle.pk, vehicle.status)
        return success(VehicleSerializer(vehicle).data)

    @action(detail=True, methods=["get"])
    def availability(self, request, pk=None):
        query = AvailabilityQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        vehicle = self.get_vehicle(pk)

        conflicts = overlapping_bookings(
            vehicle.pk, query.validated_data["start_date"], query.validated_data["end_date"]
        ).count()
        return success({
            "available": conflicts == 0 and vehicle.status == Vehicle.STATUS_AVAILABLE,
            "conflicting_bookings": conflicts,
            "vehicle_status": vehicle.status,
        })

    @action(detail=False, methods=["post"], url_path="availability-bulk")
    def availability_bulk(self, request):
        serializer = BulkAvailabilitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        vehicles = Vehicle.objects.filter(pk__in=data["vehicle_ids"]).only("id", "status")
        conflict_counts = dict(
            Booking.objects.filter(
                vehicle_id__in=data["vehicle_ids"],
                status__in=Booking.BLOCKING_STATUSES,
                start_date__lte=data["end_date"],
                end_date__gte=data["start_date"],
            )
            .values("vehicle_id")
            .annotate(total=Count("id"))
            .values_list("vehicle_id", "total")
        )

        availability = {}
        for vehicle in vehicles:
            available = conflict_counts.get(vehicle.pk, 0) == 0 and vehicle.status == Vehicle.STATUS_AVAILABLE
            availability[str(vehicle.pk)] = {
                "available": available,
                "status": "available" if available else "unavailable",
            }
        return success(availability)

    @action(detail=False, methods=["get"], url_path="preview-pricing")
    def preview_pricing(self, request):
        queryset = Vehicle.objects.filter(status=Vehicle.STATUS_AVAILABLE)
        category = choice_param(request, "category", Vehicle.CATEGORY_CHOICES)
        if category:
            queryset = queryset.filter(category=category)

        stats = queryset.aggregate(
            count=Count("id"),
            min_rate=Min("daily_rate"),
            max_rate=Max("daily_rate"),
            avg_rate=Avg("daily_rate"),
        )

        days = 1
        start_date = datetime_param(request, "start_date")
        end_date = datetime_param(request, "end_date")
        if start_date and end_date:
            days = rental_days(start_date, end_date)

        featured = queryset.order_by("-created_at")[:3]
        return success({
            "available_count": stats["count"],
            "min_daily_rate": stats["min_rate"],
            "max_daily_rate": stats["max_rate"],
            "avg_daily_rate": round(stats["avg_rate"], 2) if stats["avg_rate"] is not None else None,
            "days": days,
            "estimated_min_total": stats["min_rate"] * days if stats["min_rate"] is not None else None,
            "estimated_max_total": stats["max_rate"] * days if stats["max_rate"] is not None else None,
            "featured_vehicles": VehicleSummarySerializer(featured, many=True).data,
        })

    @action(detail=True, methods=["post", "delete"])
    def images(self, request, pk=None):
        vehicle = self.get_vehicle(pk)

        if request.method == "DELETE":
            path = request.data.get("path")
            if not path or path not in vehicle.images:
                raise NotFound("Image not found on this vehicle")
            delete_stored_file(path)
            vehicle.images = [image for image in vehicle.images if image != path]
            vehicle.save(update_fields=["images", "updated_at"])
            return success(VehicleSerializer(vehicle).data, message="Image deleted successfully")

        upload = request.FILES.get("image")
        validate_upload(upload, IMAGE_TYPES)
        path = save_upload(f"vehicles/{vehicle.pk}", upload, suffix="image")
        vehicle.images = [*vehicle.images, path]
        vehicle.save(update_fields=["images", "updated_at"])
        return success(
            {"path": path, "url": file_url(path, request), "vehicle": VehicleSerializer(vehicle).data},
            status_code=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=["get", "post", "delete"])
    def reviews(self, request, pk=None):
        vehicle = self.get_vehicle(pk)

        if request.method == "GET":
            queryset = Review.objects.filter(vehicle=vehicle).select_related("user")
            paginator = EnvelopePagination()
            page = paginator.paginate_queryset(queryset, request, view=self)
            payload = paginator.get_paginated_payload(ReviewSerializer(page, many=True).data)
            average = queryset.aggregate(avg=Avg("rating"))["avg"]
            payload["average_rating"] = round(float(average), 1) if average is not None else None
            return success(payload)

        if request.method == "DELETE":
            review = Review.objects.filter(vehicle=vehicle, user=request.user).first()
            if review is None:
                raise NotFound("Review not found")
            review.soft_delete(actor=request.user)
            return success(message="Review deleted successfully")

        serializer = ReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        rented = Booking.all_objects.filter(
            user=request.user, vehicle=vehicle, status=Booking.STATUS_COMPLETED
        ).exists()
        if not rented:
            raise BadRequest("You can only review vehicles you have rented")

        review = Review.all_objects.filter(vehicle=vehicle, user=request.user).first()
        created = review is None
        if created:
            review = Review(vehicle=vehicle, user=request.user)
        review.rating = serializer.validated_data["rating"]
        review.comment = serializer.validated_data.get("comment")
        review.deleted_at = None
        review.deleted_by = None
        review.save()

        return success(
            ReviewSerializer(review).data,
            message="Review submitted successfully" if created else "Review updated successfully",
            status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    @action(detail=True, methods=["get"], url_path="can-review")
    def can_review(self, request, pk=None):
        vehicle = self.get_vehicle(pk)
        existing = Review.objects.filter(vehicle=vehicle, user=request.user).first()
        return success({
            "can_review": Booking.all_objects.filter(
                user=request.user, vehicle=vehicle, status=Booking.STATUS_COMPLETED
            ).exists(),
            "has_existing_review": existing is not None,
            "existing_review": ReviewSerializer(existing).data if existing else None,
        })
