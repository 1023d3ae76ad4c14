from django.utils import timezone
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated

from api.activity.utils import log_activity
from api.booking.models import Booking
from api.document.models import Document
from api.document.serializers import DocumentSerializer, DocumentUploadSerializer, VerifySerializer
from api.exceptions import BadRequest
from api.permissions import ROLE_ADMIN, ROLE_MANAGER, IsStaff, has_role, is_staff
from api.storage import file_url, save_upload, validate_upload
from api.utils import choice_param, get_or_404, success

DOCUMENT_TYPES = ["image/jpeg", "image/png", "image/webp", "application/pdf"]


class DocumentViewSet(viewsets.GenericViewSet):
    serializer_class = DocumentSerializer

    def get_permissions(self):
        if self.action == "verify":
            return [IsAuthenticated(), IsStaff()]
        return [IsAuthenticated()]

    def get_queryset(self):
        return Document.objects.select_related("user")

    def get_document(self, pk):
        document = get_or_404(self.get_queryset(), "Document not found", pk=pk)
        # Other people's documents are reported as missing
        if not is_staff(self.request.user) and document.user_id != self.request.user.pk:
            raise NotFound("Document not found")
        return document

    def list(self, request):
        queryset = self.get_queryset()
        if not is_staff(request.user):
            queryset = queryset.filter(user=request.user)
        elif request.query_params.get("user_id"):
            queryset = queryset.filter(user_id=request.query_params["user_id"])

        document_type = choice_param(request, "type", Document.TYPE_CHOICES)
        if document_type:
            queryset = queryset.filter(type=document_type)
        document_status = choice_param(request, "status", Document.STATUS_CHOICES)
        if document_status:
            queryset = queryset.filter(status=document_status)
        if request.query_params.get("booking_id"):
            queryset = queryset.filter(booking_id=request.query_params["booking_id"])

        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(DocumentSerializer(page, many=True).data)

    def retrieve(self, request, pk=None):
        return success(DocumentSerializer(self.get_document(pk)).data)

    @action(detail=False, methods=["post"])
    def upload(self, request):
        serializer = DocumentUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        upload = request.FILES.get("file")
        validate_upload(upload, DOCUMENT_TYPES)

        booking = None
        booking_id = serializer.validated_data.get("booking_id")
        if booking_id:
            booking = Booking.objects.filter(pk=booking_id).first()
            if booking is None or (booking.user_id != request.user.pk and not is_staff(request.user)):
                raise BadRequest("Booking not found")

        path = save_upload(f"documents/{request.user.pk}", upload, suffix=serializer.validated_data["type"].lower())
        document = Document.objects.create(
            user=request.user,
            booking=booking,
            type=serializer.validated_data["type"],
            file_name=upload.name,
            file_path=path,
            file_size=upload.size,
            mime_type=upload.content_type,
        )
        log_activity(request, "DOCUMENT_UPLOADED", "document", document.pk, document.type)
        return success(DocumentSerializer(document).data, status_code=status.HTTP_201_CREATED)

    @action(detail=True, methods=["patch"])
    def verify(self, request, pk=None):
        document = self.get_document(pk)
        serializer = VerifySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        verified = serializer.validated_data["status"] == Document.STATUS_VERIFIED
        document.status = serializer.validated_data["status"]
        document.verified_at = timezone.now() if verified else None
        document.verified_by = request.user if verified else None
        if "notes" in serializer.validated_data:
            document.notes = serializer.validated_data["notes"]
        document.save()

        log_activity(request, f"DOCUMENT_{document.status}", "document", document.pk, document.type)
        return success(DocumentSerializer(document).data)

    def destroy(self, request, pk=None):
        document = get_or_404(self.get_queryset(), "Document not found", pk=pk)
        can_manage = has_role(request.user, ROLE_ADMIN, ROLE_MANAGER)
        if not can_manage and document.user_id != request.user.pk:
            raise NotFound("Document not found")
        if not can_manage and document.status != Document.STATUS_PENDING:
            raise BadRequest("Cannot delete a verified document")

        # The stored file stays until the document is purged from the trash
        document.soft_delete(actor=request.user)
        log_activity(request, "DOCUMENT_DELETED", "document", document.pk, document.type)
        return success(message="Document deleted successfully")

    @action(detail=True, methods=["get"])
    def download(self, request, pk=None):
        document = self.get_document(pk)
        return success({
            "url": file_url(document.file_path, request),
            "file_name": document.file_name,
            "mime_type": document.mime_type,
        })
