from django.contrib import admin, messages
from django.contrib.auth.models import Group
from django.db.models import Sum
from django.utils.html import format_html

from api.activity.models import ActivityLog
from api.booking import services
from api.booking.email_service import Email
from api.booking.models import Booking, BookingExtension
from api.conversation.models import Conversation, Message
from api.document.models import Document
from api.exceptions import BadRequest
from api.integration.models import Integration
from api.invoice.models import Invoice
from api.promo.models import PromoCode, PromoCodeUsage
from api.review.models import Review
from api.user.models import User
from api.vehicle.models import Vehicle
from payments.models import Payment
from payments.utils import refund_payment


class CustomAdminSite(admin.AdminSite):
    site_header = "Rental Management System"
    site_title = "Admin Portal"
    index_title = "Dashboard"

    def get_app_list(self, request, app_label=None):
        app_dict = self._build_app_dict(request)

        custom_groups = [
            {
                'name': 'Fleet',
                'app_label': 'fleet',
                'models': self._get_models_for_group(app_dict, ['Vehicle', 'Review', 'Integration']),
            },
            {
                'name': 'Management',
                'app_label': 'management',
                'models': self._get_models_for_group(
                    app_dict, ['Booking', 'BookingExtension', 'Payment', 'Invoice', 'Document', 'PromoCode']
                ),
            },
            {
                'name': 'Customers',
                'app_label': 'customers',
                'models': self._get_models_for_group(
                    app_dict, ['User', 'Conversation', 'Message', 'ActivityLog']
                ),
            },
        ]
        return [group for group in custom_groups if group['models']]

    def _get_models_for_group(self, app_dict, model_names):
        """Collect the admin entries of the named models from the api and payments apps"""
        models = []
        for app_name in ['api', 'payments']:
            if app_name in app_dict:
                for model in app_dict[app_name]['models']:
                    if model['object_name'] in model_names:
                        models.append(model)
        return models


admin.site = CustomAdminSite(name='admin')


class SoftDeleteAdmin(admin.ModelAdmin):
    """Shows trashed rows too, so they can be inspected from the admin."""

    def get_queryset(self, request):
        return self.model.all_objects.all()

    def is_in_trash(self, obj):
        return obj.deleted_at is not None
    is_in_trash.boolean = True
    is_in_trash.short_description = 'In trash'


class UserAdmin(SoftDeleteAdmin):
    list_display = ('email', 'first_name', 'last_name', 'role', 'is_active', 'is_in_trash', 'created_at')
    list_filter = ('role', 'is_active')
    search_fields = ('email', 'first_name', 'last_name', 'phone')
    exclude = ('password', 'reset_token', 'reset_token_expires_at', 'user_permissions', 'groups')
    ordering = ('-created_at',)


class VehicleAdmin(SoftDeleteAdmin):
    list_display = ('make', 'model', 'year', 'license_plate', 'category', 'status', 'daily_rate', 'total_earnings', 'is_in_trash')
    list_filter = ('status', 'category', 'transmission', 'fuel_type')
    search_fields = ('make', 'model', 'license_plate', 'vin')

    def total_earnings(self, obj):
        total = Payment.objects.filter(
            booking__vehicle=obj, status=Payment.STATUS_SUCCEEDED
        ).aggregate(Sum('amount'))['amount__sum']
        return f"${total:.2f}" if total else '$0.00'
    total_earnings.short_description = 'Total Earnings'


class BookingAdmin(SoftDeleteAdmin):
    list_display = ('id', 'customer_name', 'vehicle', 'start_date', 'end_date', 'status', 'total_amount', 'is_in_trash')
    list_filter = ('status',)
    search_fields = ('user__email', 'user__first_name', 'user__last_name', 'vehicle__license_plate')
    raw_id_fields = ('user', 'vehicle')
    date_hierarchy = 'start_date'
    actions = ['cancel_and_refund']

    def customer_name(self, obj):
        return f"{obj.user.first_name} {obj.user.last_name}"
    customer_name.short_description = 'Customer'

    def cancel_and_refund(self, request, queryset):
        cancelled = 0
        for booking in queryset:
            try:
                services.cancel_booking(booking, request.user)
            except BadRequest as e:
                self.message_user(request, f"Booking {booking.id}: {e.detail}", level=messages.WARNING)
                continue
            cancelled += 1
            self._process_refund(request, booking)
            Email().send_booking_cancellation_email(booking)

        self.message_user(request, f"Cancelled {cancelled} booking(s).")
    cancel_and_refund.short_description = "Cancel selected bookings and refund their payments"

    def _process_refund(self, request, booking):
        payment = Payment.objects.filter(booking=booking, status=Payment.STATUS_SUCCEEDED).first()
        if payment is None:
            return
        try:
            refund_payment(payment, reason='requested_by_customer')
            self.message_user(request, f"Refunded booking {booking.id}")
        except BadRequest as e:
            self.message_user(
                request, f"Refund of booking {booking.id} failed: {e.detail}", level=messages.ERROR
            )


class BookingExtensionAdmin(admin.ModelAdmin):
    list_display = ('booking', 'original_end_date', 'new_end_date', 'additional_days', 'additional_amount', 'payment_status', 'requested_at')
    list_filter = ('payment_status',)
    search_fields = ('booking__user__email', 'stripe_payment_intent_id')
    raw_id_fields = ('booking',)
    readonly_fields = ('stripe_payment_intent_id',)


class PromoCodeUsageInline(admin.TabularInline):
    model = PromoCodeUsage
    extra = 0
    raw_id_fields = ('user', 'booking')
    readonly_fields = ('discount_applied', 'created_at')


class PromoCodeAdmin(admin.ModelAdmin):
    list_display = ('code', 'type', 'value', 'used_count', 'max_uses_total', 'valid_from', 'valid_until', 'is_active')
    list_filter = ('type', 'is_active')
    search_fields = ('code',)
    readonly_fields = ('used_count',)
    inlines = [PromoCodeUsageInline]


class PaymentAdmin(admin.ModelAdmin):
    list_display = ('booking', 'customer_name', 'amount', 'currency', 'status', 'refund_amount', 'confirmation_email_sent', 'created_at')
    list_filter = ('status', 'currency', 'confirmation_email_sent')
    search_fields = ('stripe_payment_intent_id', 'stripe_charge_id', 'booking__user__email')
    readonly_fields = ('stripe_payment_intent_id', 'stripe_charge_id')
    ordering = ('-created_at',)

    def customer_name(self, obj):
        user = obj.booking.user
        return f"{user.first_name} {user.last_name}"
    customer_name.short_description = 'Customer'


class InvoiceAdmin(SoftDeleteAdmin):
    list_display = ('invoice_number', 'customer', 'status', 'total_amount', 'issue_date', 'due_date', 'is_in_trash')
    list_filter = ('status',)
    search_fields = ('invoice_number', 'customer__email')
    raw_id_fields = ('customer', 'booking')


class DocumentAdmin(SoftDeleteAdmin):
    list_display = ('user', 'type', 'file_link', 'status', 'verified_at', 'is_in_trash')
    list_filter = ('type', 'status')
    search_fields = ('user__email', 'file_name')
    raw_id_fields = ('user', 'booking', 'verified_by')

    def file_link(self, obj):
        url = obj.file_path if obj.file_path.startswith('/media/') else f"/media/{obj.file_path}"
        return format_html('<a href="{}" target="_blank">{}</a>', url, obj.file_name)
    file_link.short_description = 'File'


class ReviewAdmin(SoftDeleteAdmin):
    list_display = ('vehicle', 'user', 'rating', 'created_at', 'is_in_trash')
    list_filter = ('rating',)
    search_fields = ('user__email', 'vehicle__make', 'vehicle__model', 'comment')


class ConversationAdmin(SoftDeleteAdmin):
    list_display = ('subject', 'customer', 'assigned_to', 'status', 'priority', 'last_message_at', 'is_in_trash')
    list_filter = ('status', 'priority')
    search_fields = ('subject', 'customer__email')
    raw_id_fields = ('customer', 'assigned_to', 'booking')


class MessageAdmin(admin.ModelAdmin):
    list_display = ('conversation', 'sender', 'sender_type', 'created_at', 'read_at')
    list_filter = ('sender_type',)
    search_fields = ('content',)


class IntegrationAdmin(admin.ModelAdmin):
    list_display = ('provider', 'is_connected', 'connected_at', 'last_sync_at', 'last_error')
    exclude = ('access_token', 'refresh_token')


class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'actor', 'action', 'entity_type', 'entity_id', 'ip_address')
    list_filter = ('action', 'entity_type')
    search_fields = ('description', 'entity_id', 'actor__email')

    def has_change_permission(self, request, obj=None):
        return False


if admin.site.is_registered(Group):
    admin.site.unregister(Group)

models_to_register = [
    (User, UserAdmin),
    (Vehicle, VehicleAdmin),
    (Booking, BookingAdmin),
    (BookingExtension, BookingExtensionAdmin),
    (PromoCode, PromoCodeAdmin),
    (Payment, PaymentAdmin),
    (Invoice, InvoiceAdmin),
    (Document, DocumentAdmin),
    (Review, ReviewAdmin),
    (Conversation, ConversationAdmin),
    (Message, MessageAdmin),
    (Integration, IntegrationAdmin),
    (ActivityLog, ActivityLogAdmin),
]

for model, admin_class in models_to_register:
    admin.site.register(model, admin_class)
