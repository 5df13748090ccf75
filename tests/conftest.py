from datetime import date, datetime, timedelta

import pytest

from app import create_app
from config import TestingConfig
from inventory import expiry_date_for
from storage import MemStorage

NOW = datetime(2024, 6, 15, 9, 30)


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def storage(clock):
    return MemStorage(clock)


@pytest.fixture
def app(storage, clock):
    return create_app(storage=storage, clock=clock, config=TestingConfig)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_unit():
    """Inventory unit dict expiring `expires_in` days after NOW"""
    def _make_unit(blood_type='A+', units=1, status='completed', expires_in=30):
        expiry = NOW.date() + timedelta(days=expires_in)
        return {
            'blood_type': blood_type,
            'units': units,
            'donation_date': expiry - timedelta(days=42),
            'expiry_date': expiry,
            'donor_id': 1,
            'status': status
        }
    return _make_unit


@pytest.fixture
def hospital(storage):
    return storage.hospitals.create({
        'name': 'Memorial Hospital',
        'address': '123 Main St',
        'phone': '555-123-4567',
        'email': None,
        'contact_person': 'Dr. Smith'
    })


@pytest.fixture
def donor(storage):
    return storage.donors.create({
        'donor_id': 'DON-2024-0001',
        'name': 'John Doe',
        'email': 'john.doe@example.com',
        'phone': '555-111-2222',
        'blood_type': 'O-',
        'gender': 'male',
        'dob': date(1985, 4, 12),
        'address': None,
        'medical_conditions': None,
        'last_donation': None,
        'eligible_to_donate': True
    })


@pytest.fixture
def add_stock(storage):
    """Store a completed inventory unit"""
    def _add_stock(blood_type, units, expires_in=30, status='completed'):
        donation_date = NOW.date() + timedelta(days=expires_in) - timedelta(days=42)
        return storage.inventory.create({
            'blood_type': blood_type,
            'units': units,
            'donation_date': donation_date,
            'expiry_date': expiry_date_for(donation_date),
            'donor_id': 1,
            'status': status
        })
    return _add_stock
