from datetime import datetime, date
import json
from app import db
from sqlalchemy import Index
from enum import Enum
import uuid
from timezone_utils import get_ist_time_naive

# Enums for better data integrity
class UserRole(Enum):
    ADMIN = 'admin'
    DRIVER = 'driver'

class VehicleStatus(Enum):
    AVAILABLE = 'available'
    ASSIGNED = 'assigned'
    MAINTENANCE = 'maintenance'
    RETIRED = 'retired'

class ExpenseCategory(Enum):
    FUEL = 'fuel'
    MAINTENANCE = 'maintenance'
    TOLL = 'toll'
    OTHER = 'other'


def enum_column_type(enum_cls):
    # Stored as the lower-case value ('driver'), matching the existing Supabase rows
    return db.Enum(enum_cls, values_callable=lambda members: [m.value for m in members],
                   native_enum=False, validate_strings=True, length=20)


def new_uuid():
    return str(uuid.uuid4())


def _isoformat(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class Profile(db.Model):
    __tablename__ = 'profiles'

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    email = db.Column(db.String(255), unique=True, index=True)
    phone_number = db.Column(db.String(20), unique=True, index=True)
    vehicle_number = db.Column(db.String(20))  # Legacy: superseded by vehicles.driver_id
    name = db.Column(db.String(120), nullable=False)
    role = db.Column(enum_column_type(UserRole), nullable=False, default=UserRole.DRIVER, index=True)
    password_hash = db.Column(db.String(256), nullable=False)

    created_at = db.Column(db.DateTime, default=get_ist_time_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_ist_time_naive, onupdate=get_ist_time_naive)
    deleted_at = db.Column(db.DateTime, index=True)

    vehicle = db.relationship('Vehicle', back_populates='driver', uselist=False)

    @property
    def assigned_vehicle_number(self):
        if self.vehicle:
            return self.vehicle.vehicle_number
        return self.vehicle_number

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'role': self.role.value if self.role else None,
            'email': self.email,
            'phone_number': self.phone_number,
            'vehicle_number': self.assigned_vehicle_number,
            'created_at': _isoformat(self.created_at),
            'updated_at': _isoformat(self.updated_at),
        }

    def __repr__(self):
        return f'<Profile {self.name} ({self.role.value if self.role else "?"})>'


class Vehicle(db.Model):
    __tablename__ = 'vehicles'

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    vehicle_number = db.Column(db.String(20), unique=True, nullable=False, index=True)
    vehicle_type = db.Column(db.String(30), default='cab')
    make = db.Column(db.String(50))  # Maruti, Tata, etc.
    model = db.Column(db.String(100))
    year = db.Column(db.Integer)
    color = db.Column(db.String(30))

    status = db.Column(enum_column_type(VehicleStatus), nullable=False,
                       default=VehicleStatus.AVAILABLE, index=True)
    driver_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=get_ist_time_naive)
    updated_at = db.Column(db.DateTime, default=get_ist_time_naive, onupdate=get_ist_time_naive)

    driver = db.relationship('Profile', back_populates='vehicle')

    @property
    def is_assignable(self):
        return self.status == VehicleStatus.AVAILABLE and not self.driver_id

    def to_dict(self):
        return {
            'id': self.id,
            'vehicle_number': self.vehicle_number,
            'vehicle_type': self.vehicle_type,
            'make': self.make,
            'model': self.model,
            'year': self.year,
            'color': self.color,
            'status': self.status.value if self.status else None,
            'driver_id': self.driver_id,
            'driver_name': self.driver.name if self.driver else None,
            'created_at': _isoformat(self.created_at),
            'updated_at': _isoformat(self.updated_at),
        }

    def __repr__(self):
        return f'<Vehicle {self.vehicle_number}>'


class Expense(db.Model):
    __tablename__ = 'expenses'

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    # Nullable: admin expenses have no driver
    driver_id = db.Column(db.String(36), db.ForeignKey('profiles.id'), nullable=True, index=True)

    # Snapshots preserved after the driver is removed
    driver_name = db.Column(db.String(120))
    vehicle_number = db.Column(db.String(20))

    date = db.Column(db.Date, nullable=False, index=True)
    category = db.Column(enum_column_type(ExpenseCategory), nullable=False,
                         default=ExpenseCategory.OTHER, index=True)
    amount = db.Column(db.Float, nullable=False, default=0.0)
    note = db.Column(db.Text)
    purpose = db.Column(db.Text)

    # JSON array of URLs; older rows hold a single URL
    receipt_url = db.Column(db.Text)

    total_revenue = db.Column(db.Float, default=0.0)
    uber_revenue = db.Column(db.Float, default=0.0)
    rapido_revenue = db.Column(db.Float, default=0.0)
    uber_proof_url = db.Column(db.Text)
    rapido_proof_url = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=get_ist_time_naive)
    updated_at = db.Column(db.DateTime, default=get_ist_time_naive, onupdate=get_ist_time_naive)

    driver = db.relationship('Profile', backref=db.backref('expenses', lazy='dynamic'))

    __table_args__ = (
        Index('idx_expense_driver_date', 'driver_id', 'date'),
    )

    @property
    def receipt_urls(self):
        return decode_receipt_urls(self.receipt_url)

    def to_dict(self):
        return {
            'id': self.id,
            'driver_id': self.driver_id,
            'driver_name': self.driver_name,
            'vehicle_number': self.vehicle_number,
            'date': _isoformat(self.date),
            'category': self.category.value if self.category else None,
            'amount': float(self.amount or 0),
            'note': self.note,
            'purpose': self.purpose,
            'receipt_url': self.receipt_url,
            'total_revenue': float(self.total_revenue or 0),
            'uber_revenue': float(self.uber_revenue or 0),
            'rapido_revenue': float(self.rapido_revenue or 0),
            'uber_proof_url': self.uber_proof_url,
            'rapido_proof_url': self.rapido_proof_url,
            'created_at': _isoformat(self.created_at),
            'updated_at': _isoformat(self.updated_at),
        }

    def __repr__(self):
        return f'<Expense {self.id} {self.date} {self.amount}>'


def decode_receipt_urls(raw):
    """Return the receipt URLs stored in an expense's receipt_url column."""
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except (ValueError, TypeError):
        return [raw]
    if isinstance(parsed, list):
        return [str(url) for url in parsed if url]
    return [raw]


def encode_receipt_urls(urls):
    return json.dumps(list(urls)) if urls else None
