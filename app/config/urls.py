"""
URL configuration for the AdClean KE service.

The `urlpatterns` list routes URLs to views. This is the root URL configuration
that includes all app-specific routes.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/payments/              - Payment endpoints
        initiate/                  - Start an M-Pesa STK push (POST)
        callbacks/mpesa/           - Daraja STK callback (POST)
        direct/                    - Record a directly confirmed payment (POST)
        status/{reference}/        - Payment status (GET)
        trial/                     - Start a free trial (POST)
        confirmation/resend/       - Resend the confirmation email (POST)
    /api/v1/customers/             - Customer endpoints
        {email}/                   - Customer dashboard (GET)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    path("payments/", include("payments.urls")),
    path("customers/", include("customers.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "AdClean KE Admin"
admin.site.site_title = "AdClean KE"
admin.site.index_title = "Payments and Subscriptions"
