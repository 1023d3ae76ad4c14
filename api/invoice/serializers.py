from decimal import Decimal

from rest_framework import serializers

from api.booking.pricing import to_money
from api.invoice.models import Invoice
from api.user.serializers import UserSummarySerializer


class LineItemSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=500)
    quantity = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("1"))
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        quantity = value["quantity"].normalize()
        return {
            "description": value["description"],
            "quantity": int(quantity) if quantity == quantity.to_integral_value() else float(quantity),
            "unit_price": str(to_money(value["unit_price"])),
            "amount": str(to_money(value["quantity"] * value["unit_price"])),
        }


class InvoiceBookingSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    start_date = serializers.DateTimeField()
    end_date = serializers.DateTimeField()
    vehicle = serializers.SerializerMethodField()

    def get_vehicle(self, obj):
        return f"{obj.vehicle.year} {obj.vehicle.make} {obj.vehicle.model}"


class InvoiceSerializer(serializers.ModelSerializer):
    customer = UserSummarySerializer(read_only=True)
    booking = InvoiceBookingSerializer(read_only=True)

    class Meta:
        model = Invoice
        fields = [
            'id',
            'invoice_number',
            'customer',
            'booking',
            'line_items',
            'subtotal',
            'tax_amount',
            'discount_amount',
            'total_amount',
            'status',
            'issue_date',
            'due_date',
            'paid_at',
            'notes',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class InvoiceCreateSerializer(serializers.Serializer):
    customer_id = serializers.UUIDField()
    booking_id = serializers.UUIDField(required=False, allow_null=True)
    line_items = LineItemSerializer(many=True, allow_empty=False)
    tax_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"), required=False)
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"), required=False)
    due_date = serializers.DateTimeField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class InvoiceUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Invoice.STATUS_CHOICES, required=False)
    line_items = LineItemSerializer(many=True, allow_empty=False, required=False)
    tax_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"), required=False)
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"), required=False)
    due_date = serializers.DateTimeField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    paid_at = serializers.DateTimeField(required=False, allow_null=True)
