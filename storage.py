"""
In-memory entity store
Keyed collections of donors, recipients, hospitals, inventory units,
requests, drives, donations and activities
"""

import copy
import logging
import threading
from datetime import date, datetime, timedelta

from werkzeug.security import generate_password_hash

from inventory import BLOOD_TYPES, expiry_date_for

logger = logging.getLogger(__name__)

COLLECTIONS = (
    'users',
    'donors',
    'recipients',
    'hospitals',
    'inventory',
    'requests',
    'drives',
    'donations',
    'activities',
)


class StorageError(Exception):
    """Raised when the underlying store cannot complete an operation"""


def make_reference(prefix, count, year):
    """
    Human readable id such as DON-2024-0007.
    The sequence is count + 1, so it is only unique while nothing is deleted.
    """
    return f"{prefix}-{year}-{count + 1:04d}"


class Collection:
    """A keyed collection with its own auto-increment id counter"""

    def __init__(self, name, clock=datetime.now, stamp_created=True):
        self.name = name
        self.clock = clock
        self.stamp_created = stamp_created
        self._items = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def _snapshot(self):
        with self._lock:
            return list(self._items.values())

    def list(self):
        return [copy.deepcopy(item) for item in self._snapshot()]

    def get(self, item_id):
        with self._lock:
            item = self._items.get(item_id)
        return copy.deepcopy(item) if item is not None else None

    def find(self, **fields):
        """First record whose fields all match, or None"""
        for item in self._snapshot():
            if all(item.get(key) == value for key, value in fields.items()):
                return copy.deepcopy(item)
        return None

    def count(self):
        with self._lock:
            return len(self._items)

    def create(self, data):
        record = dict(data)
        if self.stamp_created:
            record.setdefault('created_at', self.clock())
        with self._lock:
            record['id'] = self._next_id
            self._items[self._next_id] = record
            self._next_id += 1
        return copy.deepcopy(record)

    def update(self, item_id, changes):
        with self._lock:
            existing = self._items.get(item_id)
            if existing is None:
                return None
            updated = {**existing, **changes, 'id': item_id}
            self._items[item_id] = updated
        return copy.deepcopy(updated)


class Storage:
    """Queries shared by every backend exposing the COLLECTIONS attributes"""

    def upcoming_drives(self, today, limit=None):
        """Drives on or after today, soonest first"""
        drives = [d for d in self.drives.list() if d['date'] >= today]
        drives.sort(key=lambda d: d['date'])
        return drives[:limit] if limit else drives


class MemStorage(Storage):
    """Process-local store; pass an instance to create_app to share or isolate state"""

    def __init__(self, clock=datetime.now):
        self.clock = clock
        for name in COLLECTIONS:
            setattr(self, name, Collection(name, clock, stamp_created=(name != 'activities')))


# ============== SAMPLE DATA ==============

SAMPLE_UNITS_BASE = {
    'A+': 52,
    'A-': 25,
    'B+': 36,
    'B-': 20,
    'AB+': 18,
    'AB-': 12,
    'O+': 48,
    'O-': 8
}


def seed_sample_data(storage, now=None):
    """Initialize sample data for a fresh store - skipped if donors already exist"""
    if storage.donors.count():
        return

    now = now or storage.clock()
    today = now.date() if isinstance(now, datetime) else now
    year = today.year

    for username, name, email, role, hospital_id in (
        ('admin', 'Admin User', 'admin@bloodbank.com', 'admin', None),
        ('staff', 'Staff User', 'staff@bloodbank.com', 'staff', None),
        ('hospital', 'Hospital User', 'hospital@memorial.com', 'hospital', 1),
    ):
        storage.users.create({
            'username': username,
            'password': generate_password_hash('password'),
            'name': name,
            'email': email,
            'role': role,
            'hospital_id': hospital_id
        })

    for name, address, phone, email, contact in (
        ('Memorial Hospital', '123 Main St, Anytown, USA', '555-123-4567', 'info@memorial.com', 'Dr. Smith'),
        ('City General Hospital', '456 Oak Ave, Anytown, USA', '555-789-0123', 'info@citygeneral.com', 'Dr. Johnson'),
        ('Westside Medical Center', '789 Elm St, Anytown, USA', '555-456-7890', 'info@westside.com', 'Dr. Williams'),
    ):
        storage.hospitals.create({
            'name': name,
            'address': address,
            'phone': phone,
            'email': email,
            'contact_person': contact
        })

    john = storage.donors.create({
        'donor_id': make_reference('DON', 0, year),
        'name': 'John Doe',
        'email': 'john.doe@example.com',
        'phone': '555-111-2222',
        'blood_type': 'O+',
        'gender': 'male',
        'dob': date(1985, 4, 12),
        'address': '234 Pine St, Anytown, USA',
        'medical_conditions': '',
        'last_donation': today - timedelta(days=20),
        'eligible_to_donate': True
    })
    alice = storage.donors.create({
        'donor_id': make_reference('DON', 1, year),
        'name': 'Alice Wong',
        'email': 'alice.wong@example.com',
        'phone': '555-333-4444',
        'blood_type': 'A+',
        'gender': 'female',
        'dob': date(1990, 8, 25),
        'address': '567 Maple Ave, Anytown, USA',
        'medical_conditions': 'None',
        'last_donation': today - timedelta(days=21),
        'eligible_to_donate': True
    })

    storage.recipients.create({
        'recipient_id': make_reference('REC', 0, year),
        'name': 'Sarah Miller',
        'blood_type': 'AB-',
        'gender': 'female',
        'dob': date(1977, 12, 15),
        'address': '890 Cedar Rd, Anytown, USA',
        'medical_requirements': 'Emergency surgery',
        'hospital_id': 1
    })

    # Five batches per type, donated 10 days apart
    for index, blood_type in enumerate(BLOOD_TYPES):
        base = SAMPLE_UNITS_BASE[blood_type]
        for batch in range(5):
            donation_date = today - timedelta(days=batch * 10 + (index + batch) % 5)
            storage.inventory.create({
                'blood_type': blood_type,
                'units': base // 5 + (index + batch) % 3,
                'donation_date': donation_date,
                'expiry_date': expiry_date_for(donation_date),
                'donor_id': john['id'] if (index + batch) % 2 else alice['id'],
                'status': 'completed'
            })

    for hospital_id, blood_type, units_needed, days, reason, status in (
        (1, 'O-', 5, 1, 'Needed for emergency surgery. Patient with severe trauma.', 'urgent'),
        (2, 'A+', 3, 3, 'Scheduled surgeries for the coming week.', 'pending'),
        (3, 'B+', 2, 4, 'Regular inventory replenishment.', 'pending'),
    ):
        storage.requests.create({
            'request_id': make_reference('REQ', storage.requests.count(), year),
            'hospital_id': hospital_id,
            'blood_type': blood_type,
            'units_needed': units_needed,
            'required_by': today + timedelta(days=days),
            'reason': reason,
            'status': status
        })

    for title, location, days, start, end, target, registrations, description in (
        ('Community Blood Drive at Central Park', '123 Main Street, Central Park Community Center',
         3, '9:00 AM', '5:00 PM', 50, 32, 'Join us for our community blood drive. Refreshments will be provided.'),
        ('Corporate Drive at Tech Solutions Inc.', '456 Innovation Drive, Tech Solutions Building',
         8, '10:00 AM', '3:00 PM', 30, 18, 'Tech Solutions is hosting a blood drive for employees and the public.'),
        ('University Campus Drive', 'State University, Student Union Building',
         13, '11:00 AM', '6:00 PM', 75, 42, "The university's annual blood drive. Students get volunteer hours."),
    ):
        storage.drives.create({
            'title': title,
            'location': location,
            'date': today + timedelta(days=days),
            'start_time': start,
            'end_time': end,
            'target_units': target,
            'registrations': registrations,
            'description': description
        })

    for donor, inventory_id in ((john, 1), (alice, 2)):
        storage.donations.create({
            'donor_id': donor['id'],
            'drive_id': None,
            'date': donor['last_donation'],
            'blood_type': donor['blood_type'],
            'units': 1,
            'status': 'completed',
            'notes': 'Successful donation',
            'inventory_id': inventory_id
        })

    for activity_type, description, user_id, related_id, days_ago in (
        ('Blood Donation', 'John Doe donated blood', 2, john['id'], 1),
        ('Blood Request', 'Sarah Miller requested blood', 3, 1, 1),
        ('Emergency Request', 'Memorial Hospital requested O- blood', 3, 1, 2),
        ('Blood Donation', 'Alice Wong donated blood', 2, alice['id'], 2),
    ):
        storage.activities.create({
            'activity_type': activity_type,
            'description': description,
            'user_id': user_id,
            'related_id': related_id,
            'date': now - timedelta(days=days_ago)
        })

    logger.info("Sample data initialized: %d inventory units, %d requests",
                storage.inventory.count(), storage.requests.count())
