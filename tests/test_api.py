from datetime import date

import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from config import TestingConfig
from storage import StorageError

DONOR_PAYLOAD = {
    'name': 'Alice Wong',
    'email': 'alice.wong@example.com',
    'phone': '555-333-4444',
    'blood_type': 'A+',
    'gender': 'female',
    'dob': '1990-08-25'
}


# ============== AUTH ==============

def test_login(client, storage):
    storage.users.create({'username': 'admin', 'password': generate_password_hash('secret'),
                          'name': 'Admin User', 'role': 'admin'})

    resp = client.post('/api/auth/login', json={'username': 'admin', 'password': 'secret'})

    assert resp.status_code == 200
    assert resp.get_json()['role'] == 'admin'
    assert 'password' not in resp.get_json()


def test_login_rejects_bad_password(client, storage):
    storage.users.create({'username': 'admin', 'password': generate_password_hash('secret')})
    resp = client.post('/api/auth/login', json={'username': 'admin', 'password': 'nope'})
    assert resp.status_code == 401


def test_login_requires_fields(client):
    resp = client.post('/api/auth/login', json={'username': ''})
    assert resp.status_code == 400
    fields = {e['field'] for e in resp.get_json()['errors']}
    assert fields == {'username', 'password'}


# ============== DASHBOARD ==============

def test_inventory_summary_has_eight_ordered_rows(client, add_stock):
    add_stock('O-', 8)
    add_stock('O-', 4, status='pending')

    resp = client.get('/api/dashboard/inventory-summary')

    rows = resp.get_json()
    assert resp.status_code == 200
    assert [r['blood_type'] for r in rows] == ['A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-']
    assert rows[-1] == {'blood_type': 'O-', 'units': 8, 'status': 'critical',
                        'threshold': 40, 'expiring_soon': 0}


def test_dashboard_stats(client, add_stock, donor, hospital, storage):
    add_stock('A+', 30, expires_in=2)
    storage.requests.create({'hospital_id': hospital['id'], 'blood_type': 'A+', 'units_needed': 2,
                             'required_by': date(2024, 6, 20), 'status': 'urgent'})
    storage.requests.create({'hospital_id': hospital['id'], 'blood_type': 'A+', 'units_needed': 2,
                             'required_by': date(2024, 6, 20), 'status': 'completed'})

    stats = client.get('/api/dashboard/stats').get_json()

    assert stats['total_donors'] == 1
    assert stats['total_requests'] == 2
    assert stats['active_requests'] == 1
    assert stats['urgent_requests'] == 1
    assert stats['inventory']['total_units'] == 30
    assert stats['inventory']['expiring_soon'] == 30
    assert stats['timestamp'] == '2024-06-15T09:30:00'


def test_activities_feed(client):
    for n in range(12):
        client.post('/api/hospitals', json={'name': f'H{n}', 'address': 'x', 'phone': '1'})
        client.post('/api/donation-drives', json={
            'title': f'Drive {n}', 'location': 'Hall', 'date': '2024-07-01',
            'start_time': '9:00 AM', 'end_time': '5:00 PM'})

    assert len(client.get('/api/dashboard/activities').get_json()) == 10
    assert len(client.get('/api/dashboard/activities?limit=3').get_json()) == 3


def test_upcoming_drives(client, storage):
    for day in (1, 16, 20, 25, 30):
        storage.drives.create({'title': f'Drive {day}', 'location': 'Hall', 'date': date(2024, 6, day)})

    drives = client.get('/api/dashboard/upcoming-drives').get_json()

    assert [d['date'] for d in drives] == ['2024-06-16', '2024-06-20', '2024-06-25']


def test_recent_requests_include_hospital_name(client, hospital, storage):
    storage.requests.create({'hospital_id': hospital['id'], 'blood_type': 'B+', 'units_needed': 1,
                             'required_by': date(2024, 6, 20), 'status': 'pending'})
    storage.requests.create({'hospital_id': 42, 'blood_type': 'B+', 'units_needed': 1,
                             'required_by': date(2024, 6, 20), 'status': 'pending'})

    names = [r['hospital_name'] for r in client.get('/api/dashboard/recent-requests').get_json()]

    assert sorted(names) == ['Memorial Hospital', 'Unknown Hospital']


# ============== DONORS & RECIPIENTS ==============

def test_create_donor_assigns_reference_and_logs_activity(client, storage):
    first = client.post('/api/donors', json=DONOR_PAYLOAD)
    second = client.post('/api/donors', json={**DONOR_PAYLOAD, 'name': 'Bob'})

    assert first.status_code == 201
    assert first.get_json()['donor_id'] == 'DON-2024-0001'
    assert second.get_json()['donor_id'] == 'DON-2024-0002'
    assert first.get_json()['dob'] == '1990-08-25'

    activity = storage.activities.list()[0]
    assert activity['activity_type'] == 'Donor Registration'
    assert activity['description'] == 'New donor Alice Wong registered'
    assert activity['related_id'] == first.get_json()['id']


def test_create_donor_validation_lists_every_error(client, storage):
    resp = client.post('/api/donors', json={'name': 'X', 'blood_type': 'C+', 'gender': 'male'})

    assert resp.status_code == 400
    body = resp.get_json()
    assert body['message'] == 'Validation failed'
    fields = {e['field'] for e in body['errors']}
    assert {'blood_type', 'phone', 'dob'} <= fields
    assert storage.donors.count() == 0
    assert storage.activities.count() == 0


def test_create_donor_rejects_unknown_fields(client):
    resp = client.post('/api/donors', json={**DONOR_PAYLOAD, 'id': 5})
    assert resp.status_code == 400


def test_get_and_update_donor(client):
    donor_id = client.post('/api/donors', json=DONOR_PAYLOAD).get_json()['id']

    resp = client.put(f'/api/donors/{donor_id}', json={'phone': '555-000-0000'})

    assert resp.status_code == 200
    assert client.get(f'/api/donors/{donor_id}').get_json()['phone'] == '555-000-0000'
    assert len(client.get('/api/donors').get_json()) == 1


def test_missing_donor(client):
    assert client.get('/api/donors/9').status_code == 404
    resp = client.put('/api/donors/9', json={'phone': '1'})
    assert resp.status_code == 404
    assert resp.get_json() == {'message': 'Donor not found'}


def test_recipient_lifecycle(client, hospital):
    resp = client.post('/api/recipients', json={
        'name': 'Sarah Miller', 'blood_type': 'AB-', 'gender': 'female',
        'dob': '1977-12-15', 'hospital_id': hospital['id']})
    recipient = resp.get_json()

    assert resp.status_code == 201
    assert recipient['recipient_id'] == 'REC-2024-0001'

    updated = client.put(f"/api/recipients/{recipient['id']}", json={'medical_requirements': 'Surgery'})
    assert updated.get_json()['medical_requirements'] == 'Surgery'
    assert client.get('/api/recipients/99').status_code == 404


def test_hospitals(client):
    resp = client.post('/api/hospitals', json={'name': 'City General', 'address': '456 Oak Ave',
                                               'phone': '555-789-0123'})
    hospital_id = resp.get_json()['id']

    assert resp.status_code == 201
    assert client.get(f'/api/hospitals/{hospital_id}').get_json()['name'] == 'City General'
    assert client.get('/api/hospitals/99').status_code == 404


# ============== INVENTORY ==============

def test_add_inventory_derives_expiry(client, storage):
    resp = client.post('/api/inventory', json={
        'blood_type': 'B-', 'units': 3, 'donation_date': '2024-06-01', 'donor_id': 1})

    unit = resp.get_json()
    assert resp.status_code == 201
    assert unit['expiry_date'] == '2024-07-13'
    assert unit['status'] == 'pending'
    assert storage.activities.list()[0]['description'] == '3 units of B- added to inventory'


def test_add_inventory_rejects_inconsistent_expiry(client):
    resp = client.post('/api/inventory', json={
        'blood_type': 'B-', 'units': 3, 'donation_date': '2024-06-01',
        'expiry_date': '2024-08-01', 'donor_id': 1})
    assert resp.status_code == 400


def test_add_inventory_rejects_non_positive_units(client):
    resp = client.post('/api/inventory', json={
        'blood_type': 'B-', 'units': 0, 'donation_date': '2024-06-01', 'donor_id': 1})
    assert resp.status_code == 400
    assert resp.get_json()['errors'][0]['field'] == 'units'


def test_inventory_filter_and_detail(client, add_stock):
    add_stock('A+', 2, expires_in=3)
    unit = add_stock('O+', 5, expires_in=-2)

    assert len(client.get('/api/inventory').get_json()) == 2
    assert len(client.get('/api/inventory?blood_type=O%2B').get_json()) == 1

    detail = client.get(f"/api/inventory/{unit['id']}").get_json()
    assert detail['expiry_status'] == 'Expired'
    assert detail['days_remaining'] == -2


def test_discarding_a_unit_removes_it_from_stock(client, add_stock):
    unit = add_stock('O-', 8)

    resp = client.patch(f"/api/inventory/{unit['id']}", json={'status': 'discarded'})

    assert resp.status_code == 200
    summary = client.get('/api/dashboard/inventory-summary').get_json()
    assert summary[-1]['units'] == 0
    assert client.patch('/api/inventory/99', json={'status': 'discarded'}).status_code == 404


# ============== REQUESTS ==============

def test_create_request(client, hospital, storage):
    resp = client.post('/api/requests', json={
        'hospital_id': hospital['id'], 'blood_type': 'O-', 'units_needed': 5,
        'required_by': '2024-06-16', 'reason': 'Trauma', 'status': 'urgent'})

    blood_request = resp.get_json()
    assert resp.status_code == 201
    assert blood_request['request_id'] == 'REQ-2024-0001'
    assert storage.activities.list()[0]['description'] == 'Memorial Hospital requested 5 units of O-'


def test_request_detail_reports_availability(client, hospital, add_stock):
    add_stock('O-', 8)
    request_id = client.post('/api/requests', json={
        'hospital_id': hospital['id'], 'blood_type': 'O-', 'units_needed': 10,
        'required_by': '2024-06-16'}).get_json()['id']

    detail = client.get(f'/api/requests/{request_id}').get_json()

    assert detail['availability'] == {'available': False, 'units': 8}
    assert detail['hospital_name'] == 'Memorial Hospital'
    assert detail['urgency'] == 'due_soon'


def test_update_request_status(client, hospital, storage):
    request_id = client.post('/api/requests', json={
        'hospital_id': hospital['id'], 'blood_type': 'A+', 'units_needed': 3,
        'required_by': '2024-06-20'}).get_json()['id']

    resp = client.put(f'/api/requests/{request_id}', json={'status': 'approved'})

    assert resp.get_json()['status'] == 'approved'
    assert storage.activities.list()[-1]['description'] == \
        'Memorial Hospital request status updated to approved'
    assert client.put('/api/requests/99', json={'status': 'approved'}).status_code == 404


def test_update_request_rejects_unknown_status(client, hospital):
    request_id = client.post('/api/requests', json={
        'hospital_id': hospital['id'], 'blood_type': 'A+', 'units_needed': 3,
        'required_by': '2024-06-20'}).get_json()['id']
    assert client.put(f'/api/requests/{request_id}', json={'status': 'lost'}).status_code == 400


def test_requests_cannot_be_discarded(client, hospital, storage):
    resp = client.post('/api/requests', json={
        'hospital_id': hospital['id'], 'blood_type': 'A+', 'units_needed': 3,
        'required_by': '2024-06-20', 'status': 'discarded'})
    assert resp.status_code == 400
    assert resp.get_json()['errors'][0]['field'] == 'status'
    assert storage.requests.count() == 0

    request_id = client.post('/api/requests', json={
        'hospital_id': hospital['id'], 'blood_type': 'A+', 'units_needed': 3,
        'required_by': '2024-06-20'}).get_json()['id']
    resp = client.put(f'/api/requests/{request_id}', json={'status': 'discarded'})
    assert resp.status_code == 400
    assert storage.requests.get(request_id)['status'] == 'pending'


@pytest.mark.parametrize('payload, expected', [
    ({'blood_type': 'O-', 'units_needed': 5}, {'available': True, 'units': 8}),
    ({'blood_type': 'O-', 'units_needed': 10}, {'available': False, 'units': 8}),
    ({'blood_type': 'XX', 'units_needed': 1}, {'available': False, 'units': 0}),
])
def test_check_availability(client, add_stock, payload, expected):
    add_stock('O-', 8)
    resp = client.post('/api/requests/check-availability', json=payload)
    assert resp.get_json() == expected


# ============== DRIVES & DONATIONS ==============

def test_schedule_drive(client, storage):
    resp = client.post('/api/donation-drives', json={
        'title': 'Campus Drive', 'location': 'Student Union', 'date': '2024-07-04',
        'start_time': '11:00 AM', 'end_time': '6:00 PM', 'target_units': 75})

    assert resp.status_code == 201
    assert resp.get_json()['registrations'] == 0
    assert storage.activities.list()[0]['description'] == \
        'New donation drive "Campus Drive" scheduled for Jul 04, 2024'


def test_record_donation_creates_inventory(client, storage, donor):
    resp = client.post('/api/donations', json={
        'donor_id': donor['id'], 'date': '2024-06-10', 'blood_type': 'O-', 'units': 2})

    donation = resp.get_json()
    assert resp.status_code == 201

    unit = storage.inventory.get(donation['inventory_id'])
    assert unit['status'] == 'completed'
    assert unit['expiry_date'] == date(2024, 7, 22)
    assert unit['donor_id'] == donor['id']
    assert storage.donors.get(donor['id'])['last_donation'] == date(2024, 6, 10)

    activity = storage.activities.list()[-1]
    assert activity['description'] == 'John Doe donated 2 units of O- blood'

    summary = client.get('/api/dashboard/inventory-summary').get_json()
    assert summary[-1]['units'] == 2
    assert len(client.get('/api/donations').get_json()) == 1


def test_record_donation_for_unknown_donor(client, storage):
    resp = client.post('/api/donations', json={
        'donor_id': 77, 'date': '2024-06-10', 'blood_type': 'B+', 'units': 1})

    assert resp.status_code == 201
    assert storage.activities.list()[-1]['description'] == 'Unknown donor donated 1 units of B+ blood'


def test_donations_cannot_be_discarded(client, storage, donor):
    resp = client.post('/api/donations', json={
        'donor_id': donor['id'], 'date': '2024-06-10', 'blood_type': 'O-', 'units': 2,
        'status': 'discarded'})

    assert resp.status_code == 400
    assert storage.donations.count() == 0
    assert storage.inventory.count() == 0


def test_donation_is_stored_linked_to_its_unit(client, storage, donor):
    donation_id = client.post('/api/donations', json={
        'donor_id': donor['id'], 'date': '2024-06-10', 'blood_type': 'O-', 'units': 2}).get_json()['id']

    stored = storage.donations.get(donation_id)
    assert stored['inventory_id'] == storage.inventory.list()[0]['id']


# ============== COMPATIBILITY & ERRORS ==============

def test_compatibility(client):
    assert client.get('/api/compatibility/O-').get_json()['can_receive_from'] == ['O-']
    assert client.get('/api/compatibility/ZZ').status_code == 404


def test_unknown_route_returns_json(client):
    resp = client.get('/api/nothing-here')
    assert resp.status_code == 404
    assert 'message' in resp.get_json()


def test_method_not_allowed_returns_json(client):
    assert client.delete('/api/donors').status_code == 405


class FailingCollection:
    def list(self):
        raise StorageError('store unavailable')


class FailingStorage:
    inventory = FailingCollection()


def test_storage_failure_is_a_500(clock):
    client = create_app(storage=FailingStorage(), clock=clock, config=TestingConfig).test_client()

    resp = client.get('/api/dashboard/inventory-summary')

    assert resp.status_code == 500
    assert resp.get_json() == {'message': 'Internal server error'}


def test_seeded_app_serves_sample_data(clock):
    class SeededConfig(TestingConfig):
        SEED_SAMPLE_DATA = True

    client = create_app(clock=clock, config=SeededConfig).test_client()

    assert len(client.get('/api/hospitals').get_json()) == 3
    assert len(client.get('/api/dashboard/activities').get_json()) == 4
    assert client.post('/api/auth/login', json={'username': 'admin', 'password': 'password'}).status_code == 200
