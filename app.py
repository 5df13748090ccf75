"""
Blood Bank Dashboard - Flask Backend Application
JSON API for donors, recipients, hospitals, blood inventory,
hospital requests and donation drives
"""

from datetime import date, datetime
import logging

from flask import Blueprint, Flask, current_app, jsonify, request
from flask.json.provider import DefaultJSONProvider
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException
from werkzeug.security import check_password_hash

from activity import ActivityRecorder
from config import Config
from inventory import (
    BLOOD_TYPES,
    check_availability,
    compatible_donor_types,
    days_remaining,
    expiry_status,
    request_urgency,
    stock_totals,
    summarize,
)
from schemas import (
    AvailabilityQuery,
    BloodRequestCreate,
    BloodRequestUpdate,
    DonationCreate,
    DonationDriveCreate,
    DonorCreate,
    DonorUpdate,
    HospitalCreate,
    InventoryCreate,
    InventoryUpdate,
    LoginRequest,
    RecipientCreate,
    RecipientUpdate,
    error_list,
)
from storage import MemStorage, StorageError, make_reference, seed_sample_data

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__, url_prefix='/api')

ACTIVE_REQUEST_STATUSES = ('pending', 'urgent', 'processing', 'approved')
SYSTEM_USER_ID = 1


class ISODateJSONProvider(DefaultJSONProvider):
    """Serialize dates as ISO-8601 instead of HTTP date strings"""

    @staticmethod
    def default(o):
        if isinstance(o, (date, datetime)):
            return o.isoformat()
        return DefaultJSONProvider.default(o)


def configure_logging(level):
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )


# ============== HELPER FUNCTIONS ==============

def get_storage():
    return current_app.extensions['bloodbank']['storage']


def get_clock():
    return current_app.extensions['bloodbank']['clock']


def get_recorder():
    return current_app.extensions['bloodbank']['recorder']


def today():
    now = get_clock()()
    return now.date() if isinstance(now, datetime) else now


def parse_body(schema, partial=False):
    """Validate the JSON body; a ValidationError becomes a 400 response"""
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    model = schema.model_validate(payload)
    if partial:
        return model.model_dump(exclude_unset=True, exclude_none=True)
    return model.model_dump()


def not_found(entity):
    return jsonify({'message': f'{entity} not found'}), 404


def current_summary():
    return summarize(get_storage().inventory.list(), get_clock()())


def hospital_name(hospital_id):
    hospital = get_storage().hospitals.get(hospital_id) if hospital_id else None
    return hospital['name'] if hospital else 'Unknown Hospital'


def with_hospital_name(blood_request):
    return {**blood_request, 'hospital_name': hospital_name(blood_request.get('hospital_id'))}


def public_user(user):
    return {key: value for key, value in user.items() if key != 'password'}


# ============== AUTH ROUTES ==============

@api.route('/auth/login', methods=['POST'])
def login():
    """Check credentials and return the user profile"""
    credentials = parse_body(LoginRequest)
    user = get_storage().users.find(username=credentials['username'])
    if not user or not check_password_hash(user['password'], credentials['password']):
        return jsonify({'message': 'Invalid credentials'}), 401
    return jsonify(public_user(user))


# ============== DASHBOARD ROUTES ==============

@api.route('/dashboard/inventory-summary')
def inventory_summary():
    """Per blood type stock, threshold, status and expiring units"""
    return jsonify(current_summary())


@api.route('/dashboard/stats')
def dashboard_stats():
    """Headline counters for the dashboard cards"""
    storage = get_storage()
    requests_list = storage.requests.list()
    return jsonify({
        'total_donors': storage.donors.count(),
        'total_recipients': storage.recipients.count(),
        'total_hospitals': storage.hospitals.count(),
        'total_requests': len(requests_list),
        'active_requests': sum(1 for r in requests_list if r.get('status') in ACTIVE_REQUEST_STATUSES),
        'urgent_requests': sum(1 for r in requests_list if r.get('status') == 'urgent'),
        'upcoming_drives': len(storage.upcoming_drives(today())),
        'inventory': stock_totals(current_summary()),
        'timestamp': get_clock()()
    })


@api.route('/dashboard/activities')
def dashboard_activities():
    """Recent activity feed with related donor, recipient or hospital"""
    limit = request.args.get('limit', current_app.config['ACTIVITY_LIMIT'], type=int)
    return jsonify(get_recorder().recent_with_details(limit))


@api.route('/dashboard/upcoming-drives')
def dashboard_upcoming_drives():
    limit = request.args.get('limit', current_app.config['UPCOMING_DRIVES_LIMIT'], type=int)
    return jsonify(get_storage().upcoming_drives(today(), limit))


@api.route('/dashboard/recent-requests')
def dashboard_recent_requests():
    requests_list = sorted(get_storage().requests.list(),
                           key=lambda r: r.get('created_at') or datetime.min, reverse=True)
    return jsonify([with_hospital_name(r) for r in requests_list])


# ============== DONOR ROUTES ==============

@api.route('/donors')
def list_donors():
    return jsonify(get_storage().donors.list())


@api.route('/donors/<int:donor_id>')
def get_donor(donor_id):
    donor = get_storage().donors.get(donor_id)
    if not donor:
        return not_found('Donor')
    return jsonify(donor)


@api.route('/donors', methods=['POST'])
def create_donor():
    """Donor registration"""
    data = parse_body(DonorCreate)
    storage = get_storage()
    data['donor_id'] = make_reference('DON', storage.donors.count(), today().year)

    donor = storage.donors.create(data)
    get_recorder().record('Donor Registration', f"New donor {donor['name']} registered",
                          user_id=SYSTEM_USER_ID, related_id=donor['id'])
    logger.info("New donor registered: %s (%s)", donor['donor_id'], donor['blood_type'])
    return jsonify(donor), 201


@api.route('/donors/<int:donor_id>', methods=['PUT'])
def update_donor(donor_id):
    """Update donor information"""
    changes = parse_body(DonorUpdate, partial=True)
    donor = get_storage().donors.update(donor_id, changes)
    if not donor:
        return not_found('Donor')

    get_recorder().record('Donor Update', f"Donor {donor['name']} information updated",
                          user_id=SYSTEM_USER_ID, related_id=donor['id'])
    return jsonify(donor)


# ============== RECIPIENT ROUTES ==============

@api.route('/recipients')
def list_recipients():
    return jsonify(get_storage().recipients.list())


@api.route('/recipients/<int:recipient_id>')
def get_recipient(recipient_id):
    recipient = get_storage().recipients.get(recipient_id)
    if not recipient:
        return not_found('Recipient')
    return jsonify(recipient)


@api.route('/recipients', methods=['POST'])
def create_recipient():
    """Recipient registration"""
    data = parse_body(RecipientCreate)
    storage = get_storage()
    data['recipient_id'] = make_reference('REC', storage.recipients.count(), today().year)

    recipient = storage.recipients.create(data)
    get_recorder().record('Recipient Registration', f"New recipient {recipient['name']} registered",
                          user_id=SYSTEM_USER_ID, related_id=recipient['id'])
    logger.info("New recipient registered: %s (%s)", recipient['recipient_id'], recipient['blood_type'])
    return jsonify(recipient), 201


@api.route('/recipients/<int:recipient_id>', methods=['PUT'])
def update_recipient(recipient_id):
    changes = parse_body(RecipientUpdate, partial=True)
    recipient = get_storage().recipients.update(recipient_id, changes)
    if not recipient:
        return not_found('Recipient')

    get_recorder().record('Recipient Update', f"Recipient {recipient['name']} information updated",
                          user_id=SYSTEM_USER_ID, related_id=recipient['id'])
    return jsonify(recipient)


# ============== HOSPITAL ROUTES ==============

@api.route('/hospitals')
def list_hospitals():
    return jsonify(get_storage().hospitals.list())


@api.route('/hospitals/<int:hospital_id>')
def get_hospital(hospital_id):
    hospital = get_storage().hospitals.get(hospital_id)
    if not hospital:
        return not_found('Hospital')
    return jsonify(hospital)


@api.route('/hospitals', methods=['POST'])
def create_hospital():
    hospital = get_storage().hospitals.create(parse_body(HospitalCreate))
    logger.info("Hospital added: %s", hospital['name'])
    return jsonify(hospital), 201


# ============== INVENTORY ROUTES ==============

@api.route('/inventory')
def list_inventory():
    """Inventory units, optionally filtered by ?blood_type="""
    units = get_storage().inventory.list()
    blood_type = request.args.get('blood_type')
    if blood_type:
        units = [u for u in units if u['blood_type'] == blood_type]
    return jsonify(units)


@api.route('/inventory/<int:unit_id>')
def get_inventory_unit(unit_id):
    """Inventory unit with its expiry label"""
    unit = get_storage().inventory.get(unit_id)
    if not unit:
        return not_found('Inventory unit')

    now = get_clock()()
    return jsonify({
        **unit,
        'days_remaining': days_remaining(unit['expiry_date'], now),
        'expiry_status': expiry_status(unit['expiry_date'], now)
    })


@api.route('/inventory', methods=['POST'])
def create_inventory_unit():
    """Add units directly to inventory"""
    unit = get_storage().inventory.create(parse_body(InventoryCreate))
    get_recorder().record('Inventory Update',
                          f"{unit['units']} units of {unit['blood_type']} added to inventory",
                          user_id=SYSTEM_USER_ID, related_id=unit['id'])
    return jsonify(unit), 201


@api.route('/inventory/<int:unit_id>', methods=['PATCH'])
def update_inventory_unit(unit_id):
    """Change the status or unit count of a batch (e.g. discard it)"""
    changes = parse_body(InventoryUpdate, partial=True)
    unit = get_storage().inventory.update(unit_id, changes)
    if not unit:
        return not_found('Inventory unit')

    get_recorder().record('Inventory Update',
                          f"{unit['units']} units of {unit['blood_type']} marked {unit['status']}",
                          user_id=SYSTEM_USER_ID, related_id=unit['id'])
    return jsonify(unit)


# ============== REQUEST ROUTES ==============

@api.route('/requests')
def list_requests():
    return jsonify([with_hospital_name(r) for r in get_storage().requests.list()])


@api.route('/requests/<int:request_id>')
def get_request(request_id):
    """Request details with current availability of its blood type"""
    blood_request = get_storage().requests.get(request_id)
    if not blood_request:
        return not_found('Request')

    availability = check_availability(blood_request['blood_type'], blood_request['units_needed'],
                                      current_summary())
    return jsonify({
        **with_hospital_name(blood_request),
        'availability': availability,
        'urgency': request_urgency(blood_request['required_by'], get_clock()())
    })


@api.route('/requests', methods=['POST'])
def create_request():
    """Hospital blood request"""
    data = parse_body(BloodRequestCreate)
    storage = get_storage()
    data['request_id'] = make_reference('REQ', storage.requests.count(), today().year)

    blood_request = storage.requests.create(data)
    get_recorder().record(
        'Blood Request',
        f"{hospital_name(blood_request['hospital_id'])} requested "
        f"{blood_request['units_needed']} units of {blood_request['blood_type']}",
        user_id=SYSTEM_USER_ID, related_id=blood_request['id'])
    return jsonify(blood_request), 201


@api.route('/requests/<int:request_id>', methods=['PUT'])
def update_request(request_id):
    """Approve, reject, complete or edit a request"""
    changes = parse_body(BloodRequestUpdate, partial=True)
    blood_request = get_storage().requests.update(request_id, changes)
    if not blood_request:
        return not_found('Request')

    get_recorder().record(
        'Request Update',
        f"{hospital_name(blood_request['hospital_id'])} request status updated to {blood_request['status']}",
        user_id=SYSTEM_USER_ID, related_id=blood_request['id'])
    return jsonify(blood_request)


@api.route('/requests/check-availability', methods=['POST'])
def request_availability():
    """Can current stock cover {blood_type, units_needed}?"""
    query = parse_body(AvailabilityQuery)
    return jsonify(check_availability(query['blood_type'], query['units_needed'], current_summary()))


# ============== DRIVE & DONATION ROUTES ==============

@api.route('/donation-drives')
def list_drives():
    return jsonify(get_storage().drives.list())


@api.route('/donation-drives', methods=['POST'])
def create_drive():
    """Schedule a donation drive"""
    drive = get_storage().drives.create(parse_body(DonationDriveCreate))
    get_recorder().record(
        'Donation Drive',
        f"New donation drive \"{drive['title']}\" scheduled for {drive['date'].strftime('%b %d, %Y')}",
        user_id=SYSTEM_USER_ID, related_id=drive['id'])
    return jsonify(drive), 201


@api.route('/donations')
def list_donations():
    donations = sorted(get_storage().donations.list(), key=lambda d: d['date'], reverse=True)
    return jsonify(donations)


@api.route('/donations', methods=['POST'])
def record_donation():
    """
    Record a new donation.
    Adds a completed inventory unit that expires 42 days after the donation,
    stores the donation already linked to it and updates the donor's last
    donation date. The unit is written first: a unit without a donation is
    still valid stock, a donation without its unit is not.
    """
    data = parse_body(DonationCreate)
    storage = get_storage()
    donor = storage.donors.get(data['donor_id'])

    unit = storage.inventory.create(InventoryCreate(
        blood_type=data['blood_type'],
        units=data['units'],
        donation_date=data['date'],
        donor_id=data['donor_id'],
        status='completed'
    ).model_dump())
    donation = storage.donations.create({**data, 'inventory_id': unit['id']})
    if donor:
        storage.donors.update(donor['id'], {'last_donation': donation['date']})

    donor_name = donor['name'] if donor else 'Unknown donor'
    get_recorder().record(
        'Blood Donation',
        f"{donor_name} donated {donation['units']} units of {donation['blood_type']} blood",
        user_id=SYSTEM_USER_ID, related_id=donor['id'] if donor else None)
    logger.info("Donation %s recorded, inventory unit %s expires %s",
                donation['id'], unit['id'], unit['expiry_date'])
    return jsonify(donation), 201


# ============== COMPATIBILITY ==============

@api.route('/compatibility/<blood_type>')
def compatibility(blood_type):
    """Donor blood types a recipient of this type can receive"""
    if blood_type not in BLOOD_TYPES:
        return not_found('Blood type')
    return jsonify({'blood_type': blood_type, 'can_receive_from': compatible_donor_types(blood_type)})


# ============== ERROR HANDLERS ==============

def handle_validation_error(e):
    return jsonify({'message': 'Validation failed', 'errors': error_list(e)}), 400


def handle_http_error(e):
    return jsonify({'message': e.description}), e.code


def handle_storage_error(e):
    logger.exception("Storage failure on %s %s", request.method, request.path)
    return jsonify({'message': 'Internal server error'}), 500


def handle_unexpected_error(e):
    logger.exception("Unhandled error on %s %s", request.method, request.path)
    return jsonify({'message': 'Internal server error'}), 500


# ============== APPLICATION FACTORY ==============

def build_storage(config, clock):
    if config['STORAGE_BACKEND'] == 'dynamodb':
        from storage_aws import DynamoStorage
        return DynamoStorage(clock, region=config['AWS_REGION'],
                             table_prefix=config['DYNAMODB_TABLE_PREFIX'])
    return MemStorage(clock)


def create_app(storage=None, clock=None, config=None):
    """
    Flask application factory.
    storage and clock are injectable; when no storage is given one is built
    from STORAGE_BACKEND and optionally seeded with sample data.
    """
    app = Flask(__name__)
    app.config.from_object(config or Config)
    app.json = ISODateJSONProvider(app)
    configure_logging(app.config['LOG_LEVEL'])

    clock = clock or datetime.now
    if storage is None:
        storage = build_storage(app.config, clock)
        if app.config['SEED_SAMPLE_DATA']:
            seed_sample_data(storage, clock())

    app.extensions['bloodbank'] = {
        'storage': storage,
        'clock': clock,
        'recorder': ActivityRecorder(storage, clock)
    }

    app.register_blueprint(api)
    app.register_error_handler(ValidationError, handle_validation_error)
    app.register_error_handler(HTTPException, handle_http_error)
    app.register_error_handler(StorageError, handle_storage_error)
    app.register_error_handler(Exception, handle_unexpected_error)
    return app


# ============== MAIN ==============

if __name__ == '__main__':
    create_app().run(debug=True, host='0.0.0.0', port=5000)
