from datetime import timedelta

from django.db.models import Count, Q
from django.utils import timezone
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated

from api.activity.models import ActivityLog
from api.activity.serializers import ActivityLogSerializer
from api.permissions import IsManager, IsStaff
from api.user.models import User
from api.user.serializers import UserSummarySerializer
from api.utils import datetime_param, get_or_404, int_param, success


class ActivityLogViewSet(viewsets.GenericViewSet):
    """Read-only access to the audit trail."""

    serializer_class = ActivityLogSerializer

    def get_permissions(self):
        if self.action == "stats":
            return [IsAuthenticated(), IsManager()]
        return [IsAuthenticated(), IsStaff()]

    def get_queryset(self):
        return ActivityLog.objects.select_related("actor")

    def paginated(self, queryset):
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(ActivityLogSerializer(page, many=True).data)

    def list(self, request):
        queryset = self.get_queryset()
        params = request.query_params

        if params.get("user_id"):
            queryset = queryset.filter(actor_id=params["user_id"])
        for field in ("action", "entity_type", "entity_id"):
            if params.get(field):
                queryset = queryset.filter(**{field: params[field]})

        start_date = datetime_param(request, "start_date")
        if start_date:
            queryset = queryset.filter(created_at__gte=start_date)
        end_date = datetime_param(request, "end_date")
        if end_date:
            queryset = queryset.filter(created_at__lte=end_date)

        search = params.get("search", "").strip()
        if search:
            queryset = queryset.filter(
                Q(description__icontains=search)
                | Q(actor__email__icontains=search)
                | Q(entity_id__icontains=search)
            )
        return self.paginated(queryset)

    @action(detail=False, methods=["get"], url_path=r"user/(?P<user_id>[^/.]+)")
    def by_user(self, request, user_id=None):
        user = get_or_404(User.all_objects.all(), "User not found", pk=user_id)
        return self.paginated(self.get_queryset().filter(actor=user))

    @action(detail=False, methods=["get"], url_path=r"entity/(?P<entity_type>[^/.]+)/(?P<entity_id>[^/]+)")
    def by_entity(self, request, entity_type=None, entity_id=None):
        return self.paginated(self.get_queryset().filter(entity_type=entity_type, entity_id=entity_id))

    @action(detail=False, methods=["get"])
    def stats(self, request):
        days = int_param(request, "days", minimum=1, maximum=365) or 7
        since = timezone.now() - timedelta(days=days)
        recent = ActivityLog.objects.filter(created_at__gte=since)

        action_counts = {
            row["action"]: row["count"]
            for row in recent.values("action").annotate(count=Count("id")).order_by()
        }

        top = list(
            recent.exclude(actor__isnull=True)
            .values("actor")
            .annotate(count=Count("id"))
            .order_by("-count")[:10]
        )
        users = User.all_objects.in_bulk([row["actor"] for row in top])
        active_users = [
            {"user": UserSummarySerializer(users[row["actor"]]).data, "count": row["count"]}
            for row in top
            if row["actor"] in users
        ]

        return success({
            "period": {"days": days, "start_date": since.isoformat()},
            "action_counts": action_counts,
            "active_users": active_users,
            "failed_logins": recent.filter(action="LOGIN_FAILED").count(),
        })

    @action(detail=False, methods=["get"], url_path="actions")
    def action_names(self, request):
        names = ActivityLog.objects.order_by("action").values_list("action", flat=True).distinct()
        return success(list(names))
