from rest_framework import serializers

from api.document.models import Document
from api.user.serializers import UserSummarySerializer


class DocumentSerializer(serializers.ModelSerializer):
    user = UserSummarySerializer(read_only=True)

    class Meta:
        model = Document
        fields = [
            "id",
            "user",
            "booking",
            "type",
            "file_name",
            "file_size",
            "mime_type",
            "status",
            "verified_at",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class DocumentUploadSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=Document.TYPE_CHOICES)
    booking_id = serializers.UUIDField(required=False, allow_null=True)


class VerifySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[Document.STATUS_VERIFIED, Document.STATUS_REJECTED])
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
