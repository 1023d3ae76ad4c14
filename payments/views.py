import logging
from decimal import Decimal

import stripe
from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST
from rest_framework import serializers
from rest_framework.exceptions import NotFound, PermissionDenied
from rest_framework.views import APIView

from api.booking.extensions import complete_extension
from api.booking.models import Booking, BookingExtension
from api.exceptions import BadRequest
from api.permissions import IsStaff, is_staff
from api.utils import get_or_404, success
from payments.models import Payment
from payments.utils import (
    apply_intent_status,
    mark_payment_succeeded,
    refund_payment,
    require_stripe,
    stripe_call,
    to_cents,
)

logger = logging.getLogger(__name__)


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = [
            'id',
            'booking',
            'amount',
            'currency',
            'status',
            'method',
            'stripe_payment_intent_id',
            'stripe_charge_id',
            'refund_amount',
            'refund_reason',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class RefundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"), required=False)
    reason = serializers.CharField(required=False, allow_blank=True)


class CreatePaymentIntentView(APIView):
    def post(self, request):
        require_stripe()

        booking_id = request.data.get('booking_id')
        if not booking_id:
            raise BadRequest("booking_id is required")

        booking = get_or_404(Booking.objects.select_related('vehicle'), "Booking not found", pk=booking_id)

        if booking.user_id != request.user.pk:
            raise PermissionDenied("You can only pay for your own bookings")
        if booking.status != Booking.STATUS_PENDING:
            raise BadRequest("This booking cannot be paid for")

        payment = Payment.objects.filter(booking=booking).first()
        if payment and payment.status == Payment.STATUS_SUCCEEDED:
            raise BadRequest("This booking has already been paid")

        amount_due = booking.amount_due
        if payment and payment.stripe_payment_intent_id:
            intent = stripe_call(stripe.PaymentIntent.retrieve, payment.stripe_payment_intent_id)
            if payment.amount != amount_due:
                # Dates, extras or a promo code changed since the intent was created
                intent = stripe_call(stripe.PaymentIntent.modify, intent['id'], amount=to_cents(amount_due))
                payment.amount = amount_due
                payment.save(update_fields=['amount', 'updated_at'])
        else:
            vehicle = booking.vehicle
            intent = stripe_call(
                stripe.PaymentIntent.create,
                amount=to_cents(amount_due),
                currency=settings.STRIPE_CURRENCY,
                metadata={
                    'booking_id': str(booking.pk),
                    'user_id': str(request.user.pk),
                    'vehicle_info': f"{vehicle.year} {vehicle.make} {vehicle.model}",
                },
            )
            Payment.objects.update_or_create(
                booking=booking,
                defaults={
                    'amount': amount_due,
                    'currency': settings.STRIPE_CURRENCY,
                    'stripe_payment_intent_id': intent['id'],
                },
            )
            logger.info("Created PaymentIntent %s for booking %s", intent['id'], booking.pk)

        return success({
            'client_secret': intent['client_secret'],
            'payment_intent_id': intent['id'],
            'amount': amount_due,
        })


class ConfirmPaymentView(APIView):
    def post(self, request):
        require_stripe()

        intent_id = request.data.get('payment_intent_id')
        if not intent_id:
            raise BadRequest("payment_intent_id is required")

        intent = stripe_call(stripe.PaymentIntent.retrieve, intent_id)

        payment = Payment.objects.select_related('booking').filter(stripe_payment_intent_id=intent_id).first()
        if payment is None:
            raise NotFound("Payment not found")
        if payment.booking.user_id != request.user.pk:
            raise PermissionDenied("You can only confirm your own payments")

        payment = apply_intent_status(payment, intent)
        booking_status = Booking.all_objects.values_list('status', flat=True).get(pk=payment.booking_id)

        return success({
            'payment': PaymentSerializer(payment).data,
            'booking_status': booking_status,
        })


class PaymentDetailView(APIView):
    def get(self, request, booking_id):
        payment = Payment.objects.select_related('booking').filter(booking_id=booking_id).first()
        if payment is None:
            raise NotFound("Payment not found")
        if not is_staff(request.user) and payment.booking.user_id != request.user.pk:
            raise PermissionDenied("You can only view your own payments")
        return success(PaymentSerializer(payment).data)


class RefundPaymentView(APIView):
    permission_classes = [IsStaff]

    def post(self, request, booking_id):
        require_stripe()

        serializer = RefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        payment = Payment.objects.filter(booking_id=booking_id).first()
        if payment is None:
            raise NotFound("Payment not found")

        payment, refund = refund_payment(
            payment,
            amount=serializer.validated_data.get('amount'),
            reason=serializer.validated_data.get('reason'),
        )

        return success({
            'payment': PaymentSerializer(payment).data,
            'refund': {
                'id': refund['id'],
                'amount': payment.refund_amount,
                'status': refund['status'],
            },
        })


@csrf_exempt
@require_POST
def stripe_webhook(request):
    if not settings.STRIPE_SECRET_KEY:
        return JsonResponse({'success': False, 'error': 'Payment processing is not configured'}, status=400)
    if not settings.STRIPE_WEBHOOK_SECRET:
        return JsonResponse({'success': False, 'error': 'Webhook secret not configured'}, status=400)

    payload = request.body
    sig_header = request.META.get('HTTP_STRIPE_SIGNATURE')

    try:
        event = stripe.Webhook.construct_event(
            payload, sig_header, settings.STRIPE_WEBHOOK_SECRET
        )
    except ValueError as e:
        logger.warning("Webhook error while parsing request: %s", e)
        return JsonResponse({'success': False, 'error': 'Invalid payload'}, status=400)
    except stripe.SignatureVerificationError as e:
        logger.warning("Webhook signature verification failed: %s", e)
        return JsonResponse({'success': False, 'error': 'Invalid signature'}, status=400)

    event_type = event['type']
    intent = event['data']['object']

    if event_type == 'payment_intent.succeeded':
        for extension in BookingExtension.objects.filter(stripe_payment_intent_id=intent['id']):
            complete_extension(extension.pk)
        for payment in Payment.objects.filter(stripe_payment_intent_id=intent['id']):
            mark_payment_succeeded(payment, intent.get('latest_charge'))
    elif event_type == 'payment_intent.payment_failed':
        updated = Payment.objects.filter(stripe_payment_intent_id=intent['id']).update(status=Payment.STATUS_FAILED)
        logger.info("PaymentIntent %s failed (%s payment rows)", intent['id'], updated)
    else:
        logger.debug("Ignoring Stripe event %s", event_type)

    return JsonResponse({'received': True})
