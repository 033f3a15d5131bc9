"""
Delivery Tracker - Test Configuration and Fixtures
"""
import os
from datetime import datetime, timedelta, timezone

import pytest

# Set testing environment before the app reads its configuration
os.environ.setdefault('SUPABASE_URL', 'http://localhost:54321')
os.environ.setdefault('SUPABASE_ANON_KEY', 'test-anon-key')
os.environ.setdefault('SUPABASE_SERVICE_KEY', 'test-service-key')
os.environ.setdefault('TIMEZONE', 'UTC')

from tracker.core.lifecycle import Role
from tracker.core.session import Session


NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def make_delivery(**overrides):
    delivery = {
        'id': 'a1b2c3d4e5f6',
        'reference': 'DLV-20240315-0042',
        'ownerId': 'owner-1',
        'ownerEmail': 'owner@example.com',
        'products': [{'name': 'Laptop', 'quantity': 1}],
        'destination': {'lat': 36.8, 'lng': 10.18},
        'recipientName': 'Amira Ben Salah',
        'recipientPhone': '21234567',
        'recipientEmail': 'amira@example.com',
        'price': 25.0,
        'status': 'pending',
        'assignedDeliveryGuy': None,
        'createdAt': NOW - timedelta(hours=1),
    }
    delivery.update(overrides)
    return delivery


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def owner_session():
    return Session(user_id='owner-1', email='owner@example.com', role=Role.PROJECT_OWNER)


@pytest.fixture
def courier_session():
    return Session(user_id='courier-1', email='courier@example.com', role=Role.DELIVERY_GUY)


@pytest.fixture
def admin_session():
    return Session(user_id='admin-1', email='admin@example.com', role=Role.ADMIN)


@pytest.fixture
def valid_form():
    return {
        'products': [{'name': 'Laptop', 'quantity': 1}],
        'destination': {'lat': 36.8, 'lng': 10.18},
        'address': 'Avenue Habib Bourguiba',
        'notes': '',
        'recipientName': 'Amira Ben Salah',
        'recipientPhone': '21 234 567',
        'recipientEmail': 'amira@example.com',
        'price': '10.5',
    }


@pytest.fixture
def delivery_factory():
    return make_delivery
