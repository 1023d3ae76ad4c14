import logging

from django.db import transaction
from django.db.models import ProtectedError
from rest_framework.views import APIView

from api.activity.utils import log_activity
from api.exceptions import BadRequest, Conflict
from api.pagination import EnvelopePagination
from api.permissions import IsAdmin
from api.trash.registry import EMPTY_ORDER, ENTITIES, get_entity
from api.utils import get_or_404, success

logger = logging.getLogger(__name__)


def _entity_or_400(entity_type):
    entity = get_entity(entity_type)
    if entity is None:
        raise BadRequest(f"Invalid entity type. Expected one of: {', '.join(EMPTY_ORDER)}")
    return entity


def _deleted_or_404(entity, pk):
    return get_or_404(entity.deleted(), "Record not found or not deleted", pk=pk)


def _serialize(entity, instance):
    deleted_by = instance.deleted_by
    return {
        "id": str(instance.pk),
        "entity_type": entity.name,
        "description": entity.describe(instance),
        "deleted_at": instance.deleted_at.isoformat(),
        "deleted_by": (
            {"id": str(deleted_by.pk), "email": deleted_by.email} if deleted_by is not None else None
        ),
    }


class TrashSummaryView(APIView):
    permission_classes = [IsAdmin]

    def get(self, request):
        counts = {name: ENTITIES[name].deleted().count() for name in EMPTY_ORDER}
        return success({"counts": counts, "total": sum(counts.values())})


class TrashListView(APIView):
    permission_classes = [IsAdmin]

    def get(self, request, entity_type):
        entity = _entity_or_400(entity_type)
        queryset = entity.search(entity.deleted(), request.query_params.get("search"))
        queryset = queryset.order_by("-deleted_at")

        paginator = EnvelopePagination()
        page = paginator.paginate_queryset(queryset, request, view=self)
        return paginator.get_paginated_response([_serialize(entity, row) for row in page])


class TrashRestoreView(APIView):
    permission_classes = [IsAdmin]

    def post(self, request, entity_type, pk):
        entity = _entity_or_400(entity_type)
        instance = _deleted_or_404(entity, pk)
        instance.restore()
        log_activity(request, "RESTORE", entity.name, instance.pk, entity.describe(instance))
        return success(message="Record restored successfully")


class TrashPermanentDeleteView(APIView):
    permission_classes = [IsAdmin]

    def delete(self, request, entity_type, pk):
        entity = _entity_or_400(entity_type)
        instance = _deleted_or_404(entity, pk)
        description = entity.describe(instance)
        try:
            with transaction.atomic():
                entity.purge(instance)
        except ProtectedError:
            raise Conflict("Record has dependent records")
        log_activity(request, "PERMANENT_DELETE", entity.name, pk, description)
        return success(message="Record permanently deleted")


class TrashEmptyView(APIView):
    permission_classes = [IsAdmin]

    def post(self, request):
        entity_type = request.data.get("entity_type")
        names = [_entity_or_400(entity_type).name] if entity_type else list(EMPTY_ORDER)

        deleted = {}
        skipped = {}
        for name in names:
            entity = ENTITIES[name]
            deleted[name], skipped[name] = entity.purge_all(entity.deleted())

        total = sum(deleted.values())
        logger.info("Emptied trash for %s: %d records, %d kept", ", ".join(names), total, sum(skipped.values()))
        log_activity(request, "EMPTY_TRASH", entity_type or "all", description=f"{total} records")
        return success(
            {"deleted": deleted, "skipped": skipped, "total": total},
            message="Trash emptied successfully",
        )
