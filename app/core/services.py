"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- BaseService: Base class with logging, transaction and storage-error helpers

Service Layer Philosophy:
    Services encapsulate business logic separate from views and models.
    Views handle HTTP concerns, models handle data, services handle logic.

Error Handling:
    Services raise subclasses of core.exceptions.BaseApplicationError.
    Views translate them into HTTP responses. Database failures are
    converted to StorageError at the service boundary so that callers
    never have to know about django.db exceptions.

Usage:
    from core.services import BaseService

    class CustomerService(BaseService):
        @classmethod
        def rename(cls, customer, name: str) -> Customer:
            cls.validate_required(name=name)

            with cls.storage_errors("rename customer"), cls.atomic():
                customer.name = name
                customer.save(update_fields=["name", "updated_at"])

            cls.get_logger().info(f"Renamed customer {customer.id}")
            return customer

Related:
    - core.exceptions: Exception hierarchy raised by services
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

from django.db import DatabaseError, transaction

from core.exceptions import StorageError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Generator


class BaseService:
    """
    Base class for service layer classes.

    Provides common utilities for services:
    - Logging setup per service
    - Database transaction management
    - Translation of database failures into StorageError

    Design Notes:
        - Use @staticmethod or @classmethod (no instance state)
        - Services should be stateless
        - Raise BaseApplicationError subclasses for expected failures
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.

        Example:
            class PaymentLedger(BaseService):
                @classmethod
                def create_pending(cls, ...):
                    cls.get_logger().info("Recorded pending payment")
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        All database operations within this context manager are
        wrapped in a transaction. If any operation fails, all
        changes are rolled back.

        Example:
            with cls.atomic():
                customer.save()
                Subscription.objects.create(customer=customer, ...)
                # If the subscription insert fails, the customer update
                # is rolled back too

        Note:
            Thin wrapper around Django's transaction.atomic() that makes
            transaction boundaries explicit in service code. Nested use
            creates savepoints.
        """
        with transaction.atomic():
            yield

    @classmethod
    @contextmanager
    def storage_errors(cls, operation: str) -> Generator[None, None, None]:
        """
        Convert database failures raised inside the block into StorageError.

        Args:
            operation: Short description used in the log line and message

        Raises:
            StorageError: If a django.db.DatabaseError escapes the block
        """
        try:
            yield
        except DatabaseError as e:
            cls.get_logger().error(
                f"Storage failure during {operation}: {type(e).__name__}",
                exc_info=True,
            )
            raise StorageError(
                f"Storage failure during {operation}",
                details={"original_error": str(e)},
            ) from e

    @classmethod
    def validate_required(cls, **kwargs) -> None:
        """
        Validate that required fields are provided.

        Args:
            **kwargs: Field names and their values

        Raises:
            ValidationError: With per-field errors if any value is None or blank

        Example:
            cls.validate_required(name=name, email=email)
        """
        errors = {}
        for field_name, value in kwargs.items():
            if value is None or (isinstance(value, str) and not value.strip()):
                errors[field_name] = ["This field is required."]

        if errors:
            raise ValidationError(
                "Missing required fields",
                error_code="VALIDATION_ERROR",
                details=errors,
            )
