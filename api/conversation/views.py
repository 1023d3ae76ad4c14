from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated

from api.activity.utils import log_activity
from api.booking.models import Booking
from api.conversation.models import Conversation, Message
from api.conversation.serializers import (
    AssignSerializer,
    ConversationCreateSerializer,
    ConversationSerializer,
    ConversationUpdateSerializer,
    MessageSerializer,
    SendMessageSerializer,
)
from api.exceptions import BadRequest
from api.pagination import EnvelopePagination
from api.permissions import IsAdmin, IsStaff
from api.user.models import User
from api.utils import choice_param, get_or_404, success


def _staff_member(user_id):
    staff = User.objects.filter(pk=user_id).first()
    if staff is None or not staff.is_staff_member:
        raise BadRequest("Invalid staff member")
    return staff


def _system_message(conversation, actor, content):
    return Message.objects.create(
        conversation=conversation,
        sender=actor,
        sender_type=Message.SENDER_SYSTEM,
        content=content,
    )


class ConversationViewSet(viewsets.GenericViewSet):
    """
    Customer support inbox for staff.
    """
    serializer_class = ConversationSerializer

    def get_permissions(self):
        if self.action == "destroy":
            return [IsAuthenticated(), IsAdmin()]
        return [IsAuthenticated(), IsStaff()]

    def get_queryset(self):
        return Conversation.objects.select_related("customer", "assigned_to").annotate(
            unread_count=Count(
                "messages",
                filter=Q(messages__sender_type=Message.SENDER_CUSTOMER, messages__read_at__isnull=True),
            )
        )

    def get_conversation(self, pk):
        return get_or_404(self.get_queryset(), "Conversation not found", pk=pk)

    def list(self, request):
        queryset = self.get_queryset()
        params = request.query_params

        conversation_status = choice_param(request, "status", Conversation.STATUS_CHOICES)
        if conversation_status:
            queryset = queryset.filter(status=conversation_status)
        priority = choice_param(request, "priority", Conversation.PRIORITY_CHOICES)
        if priority:
            queryset = queryset.filter(priority=priority)

        assigned_to = params.get("assigned_to")
        if assigned_to == "me":
            queryset = queryset.filter(assigned_to=request.user)
        elif assigned_to == "unassigned":
            queryset = queryset.filter(assigned_to__isnull=True)
        elif assigned_to:
            queryset = queryset.filter(assigned_to_id=assigned_to)

        if params.get("customer_id"):
            queryset = queryset.filter(customer_id=params["customer_id"])

        search = params.get("search", "").strip()
        if search:
            queryset = queryset.filter(
                Q(subject__icontains=search)
                | Q(customer__email__icontains=search)
                | Q(customer__first_name__icontains=search)
                | Q(customer__last_name__icontains=search)
            )

        if params.get("unread_only") == "true":
            queryset = queryset.filter(unread_count__gt=0)

        page = self.paginate_queryset(queryset.order_by("-last_message_at"))
        return self.get_paginated_response(ConversationSerializer(page, many=True).data)

    @action(detail=False, methods=["get"], url_path="unread-count")
    def unread_count(self, request):
        count = Message.objects.filter(
            sender_type=Message.SENDER_CUSTOMER,
            read_at__isnull=True,
            conversation__status__in=[Conversation.STATUS_OPEN, Conversation.STATUS_PENDING],
            conversation__deleted_at__isnull=True,
        ).count()
        return success({"count": count})

    def retrieve(self, request, pk=None):
        conversation = self.get_conversation(pk)
        paginator = EnvelopePagination()
        paginator.page_size = 50
        messages = conversation.messages.select_related("sender").order_by("created_at")
        page = paginator.paginate_queryset(messages, request, view=self)

        data = ConversationSerializer(conversation).data
        data["messages"] = paginator.get_paginated_payload(MessageSerializer(page, many=True).data)
        return success(data)

    def create(self, request):
        serializer = ConversationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        customer = User.objects.filter(pk=data["customer_id"]).first()
        if customer is None or customer.role != User.ROLE_CUSTOMER:
            raise BadRequest("Invalid customer ID")

        booking = None
        if data.get("booking_id"):
            booking = Booking.objects.filter(pk=data["booking_id"]).first()
            if booking is None:
                raise BadRequest("Booking not found")
            if booking.user_id != customer.pk:
                raise BadRequest("Booking does not belong to this customer")

        with transaction.atomic():
            conversation = Conversation.objects.create(
                customer=customer,
                subject=data.get("subject") or None,
                priority=data.get("priority", "NORMAL"),
                booking=booking,
                assigned_to=request.user,
            )
            Message.objects.create(
                conversation=conversation,
                sender=request.user,
                sender_type=Message.SENDER_STAFF,
                content=data["initial_message"],
            )

        log_activity(request, "CONVERSATION_CREATED", "conversation", conversation.pk, customer.email)
        return success(
            ConversationSerializer(self.get_conversation(conversation.pk)).data,
            status_code=status.HTTP_201_CREATED,
        )

    def partial_update(self, request, pk=None):
        conversation = self.get_conversation(pk)
        serializer = ConversationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        with transaction.atomic():
            if "assigned_to_id" in data:
                conversation.assigned_to = _staff_member(data["assigned_to_id"]) if data["assigned_to_id"] else None

            new_status = data.get("status")
            if new_status and new_status != conversation.status:
                _system_message(conversation, request.user, f"Status changed from {conversation.status} to {new_status}")
                conversation.status = new_status

            if "priority" in data:
                conversation.priority = data["priority"]
            if "subject" in data:
                conversation.subject = data["subject"] or None
            conversation.save()

        return success(ConversationSerializer(self.get_conversation(conversation.pk)).data)

    def destroy(self, request, pk=None):
        conversation = self.get_conversation(pk)
        conversation.status = Conversation.STATUS_CLOSED
        conversation.soft_delete(actor=request.user, extra_fields=["status", "updated_at"])
        log_activity(request, "CONVERSATION_DELETED", "conversation", conversation.pk)
        return success(message="Conversation closed successfully")

    @action(detail=True, methods=["post"])
    def messages(self, request, pk=None):
        conversation = self.get_conversation(pk)
        serializer = SendMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with transaction.atomic():
            message = Message.objects.create(
                conversation=conversation,
                sender=request.user,
                sender_type=Message.SENDER_STAFF,
                content=serializer.validated_data["content"],
                content_type=serializer.validated_data.get("content_type", "TEXT"),
            )
            conversation.last_message_at = message.created_at
            if conversation.status in (Conversation.STATUS_RESOLVED, Conversation.STATUS_CLOSED):
                conversation.status = Conversation.STATUS_OPEN
            conversation.save(update_fields=["last_message_at", "status", "updated_at"])

        log_activity(request, "MESSAGE_SENT", "message", message.pk, f"Conversation {conversation.pk}")
        return success(MessageSerializer(message).data, status_code=status.HTTP_201_CREATED)

    @action(detail=False, methods=["patch"], url_path=r"messages/(?P<message_id>[^/.]+)/read")
    def mark_read(self, request, message_id=None):
        message = get_or_404(
            Message.objects.select_related("sender").filter(conversation__deleted_at__isnull=True),
            "Message not found",
            pk=message_id,
        )
        if message.read_at is None:
            message.read_at = timezone.now()
            message.save(update_fields=["read_at"])
        return success(MessageSerializer(message).data)

    @action(detail=True, methods=["post"], url_path="read-all")
    def read_all(self, request, pk=None):
        conversation = self.get_conversation(pk)
        count = conversation.messages.filter(
            read_at__isnull=True, sender_type=Message.SENDER_CUSTOMER
        ).update(read_at=timezone.now())
        return success({"count": count})

    @action(detail=True, methods=["post"])
    def assign(self, request, pk=None):
        conversation = self.get_conversation(pk)
        serializer = AssignSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        staff_id = serializer.validated_data["assigned_to_id"]

        with transaction.atomic():
            if staff_id:
                staff = _staff_member(staff_id)
                conversation.assigned_to = staff
                _system_message(conversation, request.user, f"Conversation assigned to {staff.get_full_name() or staff.email}")
            else:
                conversation.assigned_to = None
                _system_message(conversation, request.user, "Conversation unassigned")
            conversation.save(update_fields=["assigned_to", "updated_at"])

        return success(ConversationSerializer(self.get_conversation(conversation.pk)).data)
