"""
Customer services.

CustomerService handles customer upsert on first contact and the
dashboard read projection.

Usage:
    from customers.services import CustomerService

    customer = CustomerService.upsert_contact(
        name="Jane", email="jane@example.com", phone="254712345678"
    )
    dashboard = CustomerService.get_dashboard("jane@example.com")
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from django.db import IntegrityError
from django.db.models import F

from core.exceptions import NotFoundError
from core.services import BaseService
from customers.models import Customer, CustomerStatus
from toolkit.helpers import mask_email


@dataclass
class CustomerDashboard:
    """
    Dashboard projection of a customer.

    Attributes:
        customer: The customer
        subscription_status: Status of the effective subscription, if any
        subscription_end: End date of the effective subscription, if any
    """

    customer: Customer
    subscription_status: str | None
    subscription_end: datetime | None


class CustomerService(BaseService):
    """Customer upsert and read operations."""

    @staticmethod
    def normalize_email(email: str) -> str:
        return email.strip().lower()

    @classmethod
    def upsert_contact(cls, name: str, email: str, phone: str = "") -> Customer:
        """
        Find or create the customer behind a payment attempt.

        Matching order: email first, then phone. A matched customer gets
        its name and phone refreshed; its plan and status are left alone
        because nothing has been paid yet. A new customer starts INACTIVE.

        Concurrent first contacts for the same email are resolved by the
        unique email constraint: the losing insert re-reads the winner.

        Args:
            name: Customer name
            email: Email address
            phone: Normalised MSISDN, or blank

        Returns:
            The matched or created Customer
        """
        email = cls.normalize_email(email)

        customer = Customer.objects.filter(email=email).first()
        if customer is None and phone:
            customer = (
                Customer.objects.filter(phone=phone).order_by("-updated_at").first()
            )

        if customer is None:
            try:
                with cls.atomic():
                    customer = Customer.objects.create(
                        name=name,
                        email=email,
                        phone=phone,
                        status=CustomerStatus.INACTIVE,
                    )
                cls.get_logger().info(
                    "Created customer",
                    extra={"customer_id": str(customer.id), "email": mask_email(email)},
                )
                return customer
            except IntegrityError:
                customer = Customer.objects.get(email=email)

        update_fields = ["name", "updated_at"]
        customer.name = name
        if phone:
            customer.phone = phone
            update_fields.append("phone")
        customer.save(update_fields=update_fields)
        return customer

    @classmethod
    def get_dashboard(cls, email: str) -> CustomerDashboard:
        """
        Read a customer together with their effective subscription.

        The effective subscription is the one with the latest end date;
        historical rows are ignored.

        Raises:
            NotFoundError: If no customer has this email
        """
        email = cls.normalize_email(email)
        customer = Customer.objects.filter(email=email).first()
        if customer is None:
            raise NotFoundError(
                "Customer not found",
                error_code="CUSTOMER_NOT_FOUND",
            )

        subscription = customer.subscriptions.order_by(
            F("end_date").desc(nulls_last=True), "-created_at"
        ).first()

        return CustomerDashboard(
            customer=customer,
            subscription_status=subscription.status if subscription else None,
            subscription_end=subscription.end_date if subscription else None,
        )
