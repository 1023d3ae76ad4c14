from decimal import Decimal

from rest_framework import serializers

from api.promo.models import PromoCode


class PromoCodeSerializer(serializers.ModelSerializer):
    usage_count = serializers.SerializerMethodField()

    class Meta:
        model = PromoCode
        fields = [
            "id",
            "code",
            "type",
            "value",
            "free_extra",
            "max_uses_total",
            "max_uses_per_user",
            "min_booking_amount",
            "valid_from",
            "valid_until",
            "is_active",
            "used_count",
            "usage_count",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_usage_count(self, obj):
        return obj.usages.count()


class PromoCodeCreateSerializer(serializers.Serializer):
    code = serializers.RegexField(r"^[A-Za-z0-9]{3,20}$", error_messages={
        "invalid": "Code must be 3-20 letters or digits",
    })
    type = serializers.ChoiceField(choices=PromoCode.TYPE_CHOICES)
    value = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0"))
    free_extra = serializers.ChoiceField(choices=PromoCode.EXTRA_CHOICES, required=False, allow_null=True)
    max_uses_total = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    max_uses_per_user = serializers.IntegerField(min_value=1, default=1)
    min_booking_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal("0"), required=False, allow_null=True
    )
    valid_from = serializers.DateTimeField()
    valid_until = serializers.DateTimeField()
    is_active = serializers.BooleanField(default=True)

    def validate(self, attrs):
        if attrs["valid_until"] <= attrs["valid_from"]:
            raise serializers.ValidationError({"valid_until": "Must be after valid_from"})
        if attrs["type"] == PromoCode.TYPE_PERCENTAGE and attrs["value"] > 100:
            raise serializers.ValidationError({"value": "A percentage cannot exceed 100"})
        if attrs["type"] == PromoCode.TYPE_FREE_EXTRA and not attrs.get("free_extra"):
            raise serializers.ValidationError({"free_extra": "Required for FREE_EXTRA codes"})
        return attrs


class PromoCodeUpdateSerializer(serializers.Serializer):
    is_active = serializers.BooleanField(required=False)
    max_uses_total = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    max_uses_per_user = serializers.IntegerField(min_value=1, required=False)
    min_booking_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal("0"), required=False, allow_null=True
    )
    valid_until = serializers.DateTimeField(required=False)


class PromoValidateSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=20)
    booking_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal("0"), required=False, allow_null=True
    )


class PromoApplySerializer(serializers.Serializer):
    code = serializers.CharField(max_length=20)
    booking_id = serializers.UUIDField()
