"""
URL configuration for the payments app.

Routes:
    - POST /initiate/ - Start an STK push payment
    - POST /callbacks/mpesa/ - M-Pesa STK push callback
    - POST /direct/ - Record a directly confirmed payment
    - GET /status/<reference>/ - Payment status
    - POST /trial/ - Start a free trial
    - POST /confirmation/resend/ - Resend confirmation email

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.
"""

from django.urls import path

from payments import views
from payments.webhooks.views import mpesa_callback

app_name = "payments"

urlpatterns = [
    path("initiate/", views.InitiatePaymentView.as_view(), name="initiate"),
    path("callbacks/mpesa/", mpesa_callback, name="mpesa_callback"),
    path("direct/", views.DirectPaymentView.as_view(), name="direct"),
    path("status/<str:reference>/", views.PaymentStatusView.as_view(), name="status"),
    path("trial/", views.TrialStartView.as_view(), name="trial"),
    path(
        "confirmation/resend/",
        views.ResendConfirmationView.as_view(),
        name="resend_confirmation",
    ),
]
