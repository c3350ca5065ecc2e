"""
Pytest fixtures for payments app tests.

Payment fixtures live in payments/conftest.py so that every payments
subpackage shares them; this module only adds fixtures used by the
app-level test modules.
"""

import pytest
from rest_framework.test import APIClient


@pytest.fixture
def api_client():
    """Unauthenticated DRF client (all payment endpoints are public)."""
    return APIClient()
