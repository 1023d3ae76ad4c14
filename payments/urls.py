from django.urls import path

from . import views

urlpatterns = [
    path('create-intent/', views.CreatePaymentIntentView.as_view(), name='payment_create_intent'),
    path('confirm/', views.ConfirmPaymentView.as_view(), name='payment_confirm'),
    path('webhook/', views.stripe_webhook, name='stripe_webhook'),
    path('<uuid:booking_id>/', views.PaymentDetailView.as_view(), name='payment_detail'),
    path('<uuid:booking_id>/refund/', views.RefundPaymentView.as_view(), name='payment_refund'),
]
