"""
Blood inventory rules
Stock summaries per blood type, unit expiry classification and
request availability checks
"""

from datetime import date, datetime, time, timedelta

# ============== CONSTANTS ==============

BLOOD_TYPES = ['A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-']

SHELF_LIFE_DAYS = 42
EXPIRING_SOON_WINDOW_DAYS = 14
EXPIRY_WARNING_DAYS = 7

ADEQUATE_PERCENTAGE = 70
MODERATE_PERCENTAGE = 40

# Who can RECEIVE FROM whom (Recipient Blood Type -> Donor Blood Types)
RECEIVE_COMPATIBILITY = {
    'A+': ['A+', 'A-', 'O+', 'O-'],
    'A-': ['A-', 'O-'],
    'B+': ['B+', 'B-', 'O+', 'O-'],
    'B-': ['B-', 'O-'],
    'AB+': ['A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-'],  # Universal recipient
    'AB-': ['A-', 'B-', 'AB-', 'O-'],
    'O+': ['O+', 'O-'],
    'O-': ['O-']
}

# ============== HELPER FUNCTIONS ==============

def as_date(value):
    """Coerce a date, datetime or ISO string to a date"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def expiry_date_for(donation_date):
    """Units expire a fixed 42 days after donation"""
    return as_date(donation_date) + timedelta(days=SHELF_LIFE_DAYS)


def stock_threshold(blood_type):
    """
    Capacity target for a blood type.
    The 'A' substring check also catches AB types, so AB+/AB- share the
    A threshold of 30.
    """
    if 'O' in blood_type:
        return 40
    if 'A' in blood_type:
        return 30
    return 20


def classify_stock(percentage):
    """Map a stock percentage of threshold to adequate/moderate/critical"""
    if percentage >= ADEQUATE_PERCENTAGE:
        return 'adequate'
    if percentage >= MODERATE_PERCENTAGE:
        return 'moderate'
    return 'critical'


# ============== AGGREGATION ==============

def summarize(units, now):
    """
    Summarize inventory per blood type.
    Only completed units count as stock. expiring_soon includes units that
    have already expired, as long as they are still marked completed.
    Returns one entry per blood type, in BLOOD_TYPES order.
    """
    cutoff = as_date(now + timedelta(days=EXPIRING_SOON_WINDOW_DAYS))
    units = list(units)

    summaries = []
    for blood_type in BLOOD_TYPES:
        available = [
            item for item in units
            if item.get('blood_type') == blood_type and item.get('status') == 'completed'
        ]

        total = sum(item['units'] for item in available)
        threshold = stock_threshold(blood_type)
        expiring_soon = sum(
            item['units'] for item in available
            if as_date(item['expiry_date']) <= cutoff
        )

        summaries.append({
            'blood_type': blood_type,
            'units': total,
            'status': classify_stock(total / threshold * 100),
            'threshold': threshold,
            'expiring_soon': expiring_soon
        })

    return summaries


def stock_totals(summaries):
    """Dashboard counters derived from a summary list"""
    return {
        'total_units': sum(s['units'] for s in summaries),
        'expiring_soon': sum(s['expiring_soon'] for s in summaries),
        'critical_types': [s['blood_type'] for s in summaries if s['status'] == 'critical'],
        'moderate_types': [s['blood_type'] for s in summaries if s['status'] == 'moderate']
    }


# ============== EXPIRY ==============

def days_remaining(target, now):
    """
    Whole days from now until target, truncated toward zero.
    A target date is taken as midnight at the start of that day.
    """
    target = as_date(target)
    if isinstance(now, datetime):
        delta = datetime.combine(target, time.min, tzinfo=now.tzinfo) - now
        return int(delta.total_seconds() / 86400)
    return (target - as_date(now)).days


def expiry_status(expiry_date, now):
    """Unit-level expiry label used in inventory detail views"""
    remaining = days_remaining(expiry_date, now)
    if remaining < 0:
        return 'Expired'
    if remaining < EXPIRY_WARNING_DAYS:
        return 'Expiring Soon'
    return 'Valid'


def request_urgency(required_by, now):
    """How close a request is to its required-by date"""
    remaining = days_remaining(required_by, now)
    if remaining < 0:
        return 'overdue'
    if remaining < 2:
        return 'due_soon'
    return 'on_track'


# ============== AVAILABILITY ==============

def check_availability(blood_type, units_needed, summaries):
    """
    Compare a request against summarized stock.
    A blood type missing from summaries counts as zero stock.
    Nothing is reserved or decremented.
    """
    summary = next((s for s in summaries if s.get('blood_type') == blood_type), None)
    if summary is None:
        return {'available': False, 'units': 0}

    on_hand = summary.get('units') or 0
    return {
        'available': on_hand >= units_needed,
        'units': on_hand
    }


def compatible_donor_types(blood_type):
    """
    Get list of donor blood types that can donate to a recipient
    Example: For A+ recipient, returns ['A+', 'A-', 'O+', 'O-']
    """
    return RECEIVE_COMPATIBILITY.get(blood_type, [])
