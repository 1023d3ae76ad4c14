from rest_framework import serializers

from api.review.models import Review
from api.user.serializers import UserSummarySerializer
from api.vehicle.models import Vehicle


class VehicleSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Vehicle
        fields = ["id", "make", "model", "year", "images", "category", "license_plate"]


class VehicleSerializer(serializers.ModelSerializer):
    average_rating = serializers.SerializerMethodField()
    review_count = serializers.SerializerMethodField()

    class Meta:
        model = Vehicle
        fields = [
            'id',
            'make',
            'model',
            'year',
            'category',
            'daily_rate',
            'status',
            'images',
            'features',
            'description',
            'seats',
            'doors',
            'transmission',
            'fuel_type',
            'mileage',
            'color',
            'license_plate',
            'vin',
            'location',
            'average_rating',
            'review_count',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def get_average_rating(self, obj):
        value = getattr(obj, "average_rating", None)
        return round(float(value), 1) if value is not None else None

    def get_review_count(self, obj):
        return getattr(obj, "review_count", 0) or 0

    def validate_daily_rate(self, value):
        if value <= 0:
            raise serializers.ValidationError("Daily rate must be positive")
        return value

    def validate_vin(self, value):
        if len(value) != 17:
            raise serializers.ValidationError("VIN must be 17 characters")
        return value.upper()

    def validate_images(self, value):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise serializers.ValidationError("Images must be a list of URLs")
        return value

    def validate_features(self, value):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise serializers.ValidationError("Features must be a list of strings")
        return value


class VehicleStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Vehicle.STATUS_CHOICES)


class AvailabilityQuerySerializer(serializers.Serializer):
    start_date = serializers.DateTimeField()
    end_date = serializers.DateTimeField()

    def validate(self, data):
        if data["end_date"] <= data["start_date"]:
            raise serializers.ValidationError("End date must be after start date")
        return data


class BulkAvailabilitySerializer(AvailabilityQuerySerializer):
    vehicle_ids = serializers.ListField(
        child=serializers.UUIDField(), min_length=1, max_length=50
    )


class ReviewSerializer(serializers.ModelSerializer):
    user = UserSummarySerializer(read_only=True)

    class Meta:
        model = Review
        fields = ["id", "user", "vehicle", "rating", "comment", "created_at"]
        read_only_fields = ["id", "user", "vehicle", "created_at"]
