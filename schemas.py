"""
Request payload models for the blood bank API.
Every create/update body is validated here before anything touches the store.
"""

from datetime import date as date_type
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from inventory import expiry_date_for


class BloodType(str, Enum):
    """The eight ABO/Rh blood types."""
    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"
    O_POS = "O+"
    O_NEG = "O-"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class Status(str, Enum):
    """Inventory unit status."""
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"
    PROCESSING = "processing"
    URGENT = "urgent"
    DISCARDED = "discarded"


class RequestStatus(str, Enum):
    """Blood request lifecycle; units are never discarded against a request."""
    PENDING = "pending"
    URGENT = "urgent"
    PROCESSING = "processing"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"


class DonationStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"


class Payload(BaseModel):
    """Base for request bodies: unknown fields are rejected, enums dump as strings."""
    model_config = ConfigDict(extra='forbid', use_enum_values=True,
                              validate_default=True, str_strip_whitespace=True)


# ============== AUTH ==============

class LoginRequest(Payload):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


# ============== PEOPLE ==============

class DonorCreate(Payload):
    name: str = Field(min_length=1)
    email: Optional[str] = None
    phone: str = Field(min_length=1)
    blood_type: BloodType
    gender: Gender
    dob: date_type
    address: Optional[str] = None
    medical_conditions: Optional[str] = None
    last_donation: Optional[date_type] = None
    eligible_to_donate: bool = True


class DonorUpdate(Payload):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = Field(default=None, min_length=1)
    blood_type: Optional[BloodType] = None
    gender: Optional[Gender] = None
    dob: Optional[date_type] = None
    address: Optional[str] = None
    medical_conditions: Optional[str] = None
    last_donation: Optional[date_type] = None
    eligible_to_donate: Optional[bool] = None


class RecipientCreate(Payload):
    name: str = Field(min_length=1)
    blood_type: BloodType
    gender: Gender
    dob: date_type
    address: Optional[str] = None
    medical_requirements: Optional[str] = None
    hospital_id: Optional[int] = None


class RecipientUpdate(Payload):
    name: Optional[str] = Field(default=None, min_length=1)
    blood_type: Optional[BloodType] = None
    gender: Optional[Gender] = None
    dob: Optional[date_type] = None
    address: Optional[str] = None
    medical_requirements: Optional[str] = None
    hospital_id: Optional[int] = None


class HospitalCreate(Payload):
    name: str = Field(min_length=1)
    address: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    email: Optional[str] = None
    contact_person: Optional[str] = None


# ============== INVENTORY ==============

class InventoryCreate(Payload):
    """
    A batch of blood units added to stock.
    expiry_date is derived from donation_date when omitted and must match
    the 42 day shelf life when given.
    """
    blood_type: BloodType
    units: int = Field(gt=0)
    donation_date: date_type
    expiry_date: Optional[date_type] = None
    donor_id: int
    status: Status = Status.PENDING

    @model_validator(mode='after')
    def validate_expiry(self):
        expected = expiry_date_for(self.donation_date)
        if self.expiry_date is None:
            self.expiry_date = expected
        elif self.expiry_date != expected:
            raise ValueError(f"expiry_date must be 42 days after donation_date ({expected.isoformat()})")
        return self


class InventoryUpdate(Payload):
    units: Optional[int] = Field(default=None, gt=0)
    status: Optional[Status] = None


# ============== REQUESTS ==============

class BloodRequestCreate(Payload):
    hospital_id: int
    blood_type: BloodType
    units_needed: int = Field(gt=0)
    required_by: date_type
    reason: Optional[str] = None
    status: RequestStatus = RequestStatus.PENDING


class BloodRequestUpdate(Payload):
    blood_type: Optional[BloodType] = None
    units_needed: Optional[int] = Field(default=None, gt=0)
    required_by: Optional[date_type] = None
    reason: Optional[str] = None
    status: Optional[RequestStatus] = None


class AvailabilityQuery(Payload):
    # Free text: a type with no summary row is reported as unavailable
    blood_type: str = Field(min_length=1)
    units_needed: int = Field(gt=0)


# ============== DRIVES & DONATIONS ==============

class DonationDriveCreate(Payload):
    title: str = Field(min_length=1)
    location: str = Field(min_length=1)
    date: date_type
    start_time: str = Field(min_length=1)
    end_time: str = Field(min_length=1)
    target_units: Optional[int] = Field(default=None, ge=1)
    registrations: int = Field(default=0, ge=0)
    description: Optional[str] = None


class DonationCreate(Payload):
    donor_id: int
    drive_id: Optional[int] = None
    date: date_type
    blood_type: BloodType
    units: int = Field(gt=0)
    status: DonationStatus = DonationStatus.COMPLETED
    notes: Optional[str] = None


# ============== ERRORS ==============

def error_list(exc: ValidationError) -> List[dict]:
    """Flatten a pydantic ValidationError into [{field, message}] for API responses."""
    errors = []
    for error in exc.errors():
        field = '.'.join(str(part) for part in error['loc']) or '__root__'
        errors.append({'field': field, 'message': error['msg']})
    return errors
