from rest_framework import serializers

from api.integration.models import Integration


class IntegrationSerializer(serializers.ModelSerializer):
    """Never exposes access or refresh tokens."""

    class Meta:
        model = Integration
        fields = [
            "id",
            "provider",
            "is_enabled",
            "is_connected",
            "connected_at",
            "last_sync_at",
            "last_error",
            "config",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def to_representation(self, instance):
        data = super().to_representation(instance)
        config = dict(data.get("config") or {})
        if config.get("client_secret"):
            config["client_secret"] = "********"
        data["config"] = config
        return data


class ConnectSerializer(serializers.Serializer):
    api_key = serializers.CharField(required=False)
    client_id = serializers.CharField(required=False)
    client_secret = serializers.CharField(required=False)
    redirect_uri = serializers.CharField(required=False)
