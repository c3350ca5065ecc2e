"""
URL configuration for the customers app.

Routes:
    - GET /<email>/ - Customer dashboard

All routes are prefixed with /api/v1/customers/ when included in the main URLconf.
"""

from django.urls import path

from customers.views import CustomerDashboardView

app_name = "customers"

urlpatterns = [
    path("<str:email>/", CustomerDashboardView.as_view(), name="dashboard"),
]
