from rest_framework import serializers

from api.booking.models import Booking, BookingExtension
from api.booking.pricing import EXTRA_DAILY_RATES
from api.user.serializers import UserSummarySerializer
from api.vehicle.serializers import VehicleSummarySerializer


class ExtrasSerializer(serializers.Serializer):
    insurance = serializers.BooleanField(required=False)
    gps = serializers.BooleanField(required=False)
    child_seat = serializers.BooleanField(required=False)
    additional_driver = serializers.BooleanField(required=False)

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        return {name: value[name] for name in EXTRA_DAILY_RATES if name in value}


class PaymentSummarySerializer(serializers.Serializer):
    id = serializers.UUIDField()
    status = serializers.CharField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)


class BookingSerializer(serializers.ModelSerializer):
    vehicle = VehicleSummarySerializer(read_only=True)
    user = UserSummarySerializer(read_only=True)
    payment = serializers.SerializerMethodField()
    amount_due = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Booking
        fields = [
            'id',
            'user',
            'vehicle',
            'start_date',
            'end_date',
            'status',
            'daily_rate',
            'total_amount',
            'promo_code',
            'discount_amount',
            'amount_due',
            'extras',
            'pickup_location',
            'dropoff_location',
            'notes',
            'contract_signed',
            'payment',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_payment(self, obj):
        payment = getattr(obj, "payment", None)
        if payment is None:
            return None
        return PaymentSummarySerializer(payment).data


class BookingCreateSerializer(serializers.Serializer):
    vehicle_id = serializers.UUIDField()
    start_date = serializers.DateTimeField()
    end_date = serializers.DateTimeField()
    pickup_location = serializers.CharField(max_length=255)
    dropoff_location = serializers.CharField(max_length=255)
    extras = ExtrasSerializer(required=False)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    promo_code = serializers.CharField(max_length=20, required=False, allow_blank=True)


class BookingUpdateSerializer(serializers.Serializer):
    start_date = serializers.DateTimeField(required=False)
    end_date = serializers.DateTimeField(required=False)
    pickup_location = serializers.CharField(max_length=255, required=False)
    dropoff_location = serializers.CharField(max_length=255, required=False)
    extras = ExtrasSerializer(required=False)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    status = serializers.ChoiceField(choices=Booking.STATUS_CHOICES, required=False)


class QuoteSerializer(serializers.Serializer):
    vehicle_id = serializers.UUIDField()
    start_date = serializers.DateTimeField()
    end_date = serializers.DateTimeField()
    extras = ExtrasSerializer(required=False)
    promo_code = serializers.CharField(max_length=20, required=False, allow_blank=True)


class ExtensionRequestSerializer(serializers.Serializer):
    new_end_date = serializers.DateTimeField()


class ExtensionPaySerializer(serializers.Serializer):
    extension_id = serializers.UUIDField()
    payment_method_id = serializers.CharField(required=False, allow_blank=True)


class BookingExtensionSerializer(serializers.ModelSerializer):
    class Meta:
        model = BookingExtension
        fields = [
            'id',
            'original_end_date',
            'new_end_date',
            'additional_days',
            'additional_amount',
            'payment_status',
            'requested_at',
            'approved_at',
            'paid_at',
        ]
        read_only_fields = fields
