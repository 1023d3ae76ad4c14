import logging
from datetime import timedelta

from django.conf import settings
from django.db.models import Q
from django.utils import timezone
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated

from api.activity.utils import log_activity
from api.booking.email_service import Email
from api.booking.models import Booking
from api.exceptions import BadRequest
from api.invoice.models import Invoice
from api.invoice.serializers import InvoiceCreateSerializer, InvoiceSerializer, InvoiceUpdateSerializer
from api.invoice.services import compute_totals, create_invoice_for_booking
from api.permissions import IsStaff, is_staff
from api.user.models import User
from api.utils import choice_param, datetime_param, get_or_404, success

logger = logging.getLogger(__name__)


class InvoiceViewSet(viewsets.GenericViewSet):
    serializer_class = InvoiceSerializer

    def get_permissions(self):
        if self.action in ("my", "retrieve"):
            return [IsAuthenticated()]
        return [IsAuthenticated(), IsStaff()]

    def get_queryset(self):
        return Invoice.objects.select_related("customer", "booking__vehicle")

    def get_invoice(self, pk):
        return get_or_404(self.get_queryset(), "Invoice not found", pk=pk)

    def list(self, request):
        queryset = self.get_queryset()

        invoice_status = choice_param(request, "status", Invoice.STATUS_CHOICES)
        if invoice_status:
            queryset = queryset.filter(status=invoice_status)
        if request.query_params.get("customer_id"):
            queryset = queryset.filter(customer_id=request.query_params["customer_id"])

        search = request.query_params.get("search", "").strip()
        if search:
            queryset = queryset.filter(
                Q(invoice_number__icontains=search)
                | Q(customer__email__icontains=search)
                | Q(customer__first_name__icontains=search)
                | Q(customer__last_name__icontains=search)
            )

        start_date = datetime_param(request, "start_date")
        if start_date:
            queryset = queryset.filter(issue_date__gte=start_date)
        end_date = datetime_param(request, "end_date")
        if end_date:
            queryset = queryset.filter(issue_date__lte=end_date)

        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(InvoiceSerializer(page, many=True).data)

    def retrieve(self, request, pk=None):
        invoice = self.get_invoice(pk)
        if not is_staff(request.user) and invoice.customer_id != request.user.pk:
            raise PermissionDenied("You can only view your own invoices")
        return success(InvoiceSerializer(invoice).data)

    def create(self, request):
        serializer = InvoiceCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        customer = User.objects.filter(pk=data["customer_id"]).first()
        if customer is None:
            raise BadRequest("Customer not found")

        booking = None
        if data.get("booking_id"):
            booking = Booking.objects.filter(pk=data["booking_id"]).first()
            if booking is None:
                raise BadRequest("Booking not found")
            if booking.user_id != customer.pk:
                raise BadRequest("Booking does not belong to this customer")

        invoice = Invoice.objects.create(
            customer=customer,
            booking=booking,
            line_items=data["line_items"],
            due_date=data.get("due_date") or timezone.now() + timedelta(days=settings.INVOICE_DUE_DAYS),
            notes=data.get("notes"),
            **compute_totals(data["line_items"], data.get("tax_amount"), data.get("discount_amount")),
        )
        log_activity(request, "INVOICE_CREATED", "invoice", invoice.pk, invoice.invoice_number)
        return success(InvoiceSerializer(self.get_invoice(invoice.pk)).data, status_code=status.HTTP_201_CREATED)

    def update(self, request, pk=None):
        invoice = self.get_invoice(pk)
        serializer = InvoiceUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if "line_items" in data and invoice.status in Invoice.LOCKED_STATUSES:
            raise BadRequest("Cannot modify line items of paid or refunded invoices")

        for field in ("status", "due_date", "notes", "paid_at"):
            if field in data:
                setattr(invoice, field, data[field])
        if invoice.status == Invoice.STATUS_PAID and invoice.paid_at is None:
            invoice.paid_at = timezone.now()

        if {"line_items", "tax_amount", "discount_amount"} & set(data):
            invoice.line_items = data.get("line_items", invoice.line_items)
            totals = compute_totals(
                invoice.line_items,
                data.get("tax_amount", invoice.tax_amount if "line_items" not in data else None),
                data.get("discount_amount", invoice.discount_amount),
            )
            for field, value in totals.items():
                setattr(invoice, field, value)

        invoice.save()
        log_activity(request, "INVOICE_UPDATED", "invoice", invoice.pk, invoice.invoice_number)
        return success(InvoiceSerializer(invoice).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk)

    def destroy(self, request, pk=None):
        invoice = self.get_invoice(pk)
        invoice.soft_delete(actor=request.user)
        log_activity(request, "INVOICE_DELETED", "invoice", invoice.pk, invoice.invoice_number)
        return success(message="Invoice deleted successfully")

    @action(detail=True, methods=["post"])
    def send(self, request, pk=None):
        invoice = self.get_invoice(pk)
        if invoice.status in (Invoice.STATUS_CANCELLED, Invoice.STATUS_REFUNDED):
            raise BadRequest("Cannot send a cancelled or refunded invoice")

        invoice.status = Invoice.STATUS_SENT
        invoice.issue_date = timezone.now()
        invoice.save(update_fields=["status", "issue_date", "updated_at"])

        Email().send_invoice_email(invoice)
        log_activity(request, "INVOICE_SENT", "invoice", invoice.pk, invoice.invoice_number)
        return success(InvoiceSerializer(invoice).data, message=f"Invoice sent to {invoice.customer.email}")

    @action(detail=False, methods=["post"], url_path=r"from-booking/(?P<booking_id>[^/.]+)")
    def from_booking(self, request, booking_id=None):
        booking = get_or_404(Booking.objects.select_related("vehicle"), "Booking not found", pk=booking_id)
        invoice = create_invoice_for_booking(booking)
        log_activity(request, "INVOICE_CREATED", "invoice", invoice.pk, f"From booking {booking.pk}")
        return success(InvoiceSerializer(self.get_invoice(invoice.pk)).data, status_code=status.HTTP_201_CREATED)

    @action(detail=False, methods=["get"])
    def my(self, request):
        invoices = self.get_queryset().filter(customer=request.user)
        return success(InvoiceSerializer(invoices, many=True).data)
