from rest_framework import serializers

from api.activity.models import ActivityLog
from api.user.serializers import UserSummarySerializer


class ActivityLogSerializer(serializers.ModelSerializer):
    actor = UserSummarySerializer(read_only=True)

    class Meta:
        model = ActivityLog
        fields = [
            "id",
            "actor",
            "action",
            "entity_type",
            "entity_id",
            "description",
            "ip_address",
            "user_agent",
            "created_at",
        ]
        read_only_fields = fields
