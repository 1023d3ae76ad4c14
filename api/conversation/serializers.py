from rest_framework import serializers

from api.conversation.models import Conversation, Message
from api.user.serializers import UserSummarySerializer


class MessageSerializer(serializers.ModelSerializer):
    sender = UserSummarySerializer(read_only=True)

    class Meta:
        model = Message
        fields = ["id", "conversation", "sender", "sender_type", "content", "content_type", "read_at", "created_at"]
        read_only_fields = fields


class ConversationSerializer(serializers.ModelSerializer):
    customer = UserSummarySerializer(read_only=True)
    assigned_to = UserSummarySerializer(read_only=True)
    unread_count = serializers.IntegerField(read_only=True, default=0)
    last_message = serializers.SerializerMethodField()

    class Meta:
        model = Conversation
        fields = [
            "id",
            "customer",
            "assigned_to",
            "booking",
            "subject",
            "status",
            "priority",
            "last_message_at",
            "unread_count",
            "last_message",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_last_message(self, obj):
        message = obj.messages.order_by("-created_at").first()
        return MessageSerializer(message).data if message else None


class ConversationCreateSerializer(serializers.Serializer):
    customer_id = serializers.UUIDField()
    subject = serializers.CharField(max_length=255, required=False, allow_blank=True)
    priority = serializers.ChoiceField(choices=Conversation.PRIORITY_CHOICES, required=False)
    booking_id = serializers.UUIDField(required=False, allow_null=True)
    initial_message = serializers.CharField()


class ConversationUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Conversation.STATUS_CHOICES, required=False)
    priority = serializers.ChoiceField(choices=Conversation.PRIORITY_CHOICES, required=False)
    assigned_to_id = serializers.UUIDField(required=False, allow_null=True)
    subject = serializers.CharField(max_length=255, required=False, allow_blank=True)


class SendMessageSerializer(serializers.Serializer):
    content = serializers.CharField()
    content_type = serializers.ChoiceField(choices=Message.CONTENT_TYPE_CHOICES, required=False)


class AssignSerializer(serializers.Serializer):
    assigned_to_id = serializers.UUIDField(allow_null=True)
