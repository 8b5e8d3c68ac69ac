"""
Driver Service

Handles driver lifecycle management: onboarding with a vehicle assignment,
profile updates, and soft removal that keeps expense history readable.
"""

from typing import Optional, Dict, Any, List
import logging
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from models import db, Profile, Vehicle, Expense, UserRole, VehicleStatus
from utils.security import mask_phone
from utils.validators import clean_phone_number, is_valid_phone_number
from .auth_service import AuthService
from .exceptions import ValidationError, NotFoundError
from .transaction_helper import TransactionHelper
from timezone_utils import get_ist_time_naive

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class DriverService:
    """Service class for driver management operations"""

    def __init__(self):
        self.auth_service = AuthService()

    def _active_driver(self, driver_id: str) -> Profile:
        driver = Profile.query.filter(Profile.id == driver_id,
                                      Profile.deleted_at.is_(None)).first()
        if not driver or driver.role != UserRole.DRIVER:
            raise NotFoundError('Driver not found')
        return driver

    @staticmethod
    def current_vehicle(driver_id: str) -> Optional[Vehicle]:
        return Vehicle.query.filter_by(driver_id=driver_id).first()

    def list_drivers(self) -> List[Dict[str, Any]]:
        """
        List active drivers ordered by name with their assigned vehicle.

        Returns:
            list: Dicts with driver_id, driver_name, driver_phone_number, driver_vehicle_number
        """
        try:
            drivers = (Profile.query
                       .filter(Profile.role == UserRole.DRIVER, Profile.deleted_at.is_(None))
                       .order_by(Profile.name)
                       .all())
            rows = [(d.id, d.name, d.phone_number or d.email or '') for d in drivers]
        except SQLAlchemyError as e:
            db.session.rollback()
            if not TransactionHelper.is_missing_column_error(e):
                raise
            logger.warning("DRIVER_LIST_SCHEMA_FALLBACK: listing drivers from base columns")
            table = Profile.__table__
            stmt = (select(table.c.id, table.c.name, table.c.email)
                    .where(table.c.role == UserRole.DRIVER, table.c.deleted_at.is_(None))
                    .order_by(table.c.name))
            rows = [(r.id, r.name, r.email or '') for r in db.session.execute(stmt)]

        vehicle_numbers = dict(
            db.session.query(Vehicle.driver_id, Vehicle.vehicle_number)
            .filter(Vehicle.driver_id.in_([row[0] for row in rows]))
            .all()
        ) if rows else {}

        return [{
            'driver_id': driver_id,
            'driver_name': name,
            'driver_phone_number': phone,
            'driver_vehicle_number': vehicle_numbers.get(driver_id),
        } for driver_id, name, phone in rows]

    @TransactionHelper.with_transaction
    def create_driver(self, name: Optional[str], phone_number: Optional[str],
                      password: Optional[str], vehicle_id: Optional[str]) -> Profile:
        """
        Create a driver and assign the chosen vehicle in one transaction.

        Args:
            name: Driver's display name
            phone_number: Login phone number, at least 10 digits once cleaned
            password: Initial password, at least 6 characters
            vehicle_id: An available, unassigned vehicle

        Returns:
            Profile: The new driver

        Raises:
            ValidationError: on any rule violation
        """
        if not name or not str(name).strip() or not phone_number or not password:
            raise ValidationError('Name, phone number, and password are required')
        if not vehicle_id:
            raise ValidationError('Vehicle assignment is required')
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError('Password must be at least 6 characters')
        if not is_valid_phone_number(phone_number):
            raise ValidationError('Phone number must be at least 10 digits')

        clean_phone = clean_phone_number(phone_number)
        if Profile.query.filter_by(phone_number=clean_phone).first():
            raise ValidationError('Phone number already exists')

        vehicle = db.session.get(Vehicle, vehicle_id)
        if not vehicle or not vehicle.is_assignable:
            raise ValidationError('Selected vehicle is not available')

        try:
            driver = self.auth_service.create_user(name, password, UserRole.DRIVER, phone_number=clean_phone)
        except IntegrityError:
            db.session.rollback()
            raise ValidationError('Phone number already exists')

        vehicle.driver_id = driver.id
        vehicle.status = VehicleStatus.ASSIGNED

        logger.info(f"Driver {driver.name} ({mask_phone(clean_phone)}) created with vehicle {vehicle.vehicle_number}")
        return driver

    @TransactionHelper.with_transaction
    def update_driver(self, driver_id: str, data: Dict[str, Any]) -> Profile:
        """
        Apply a partial update to a driver.

        Args:
            driver_id: Driver to update
            data: Any of name, phone_number, password, vehicle_id. A present
                vehicle_id (even empty) releases the current vehicle first.

        Returns:
            Profile: The updated driver
        """
        driver = self._active_driver(driver_id)

        name = data.get('name')
        if name and str(name).strip():
            driver.name = str(name).strip()

        phone_number = data.get('phone_number')
        if phone_number:
            if not is_valid_phone_number(phone_number):
                raise ValidationError('Phone number must be at least 10 digits')
            clean_phone = clean_phone_number(phone_number)
            taken = Profile.query.filter(Profile.phone_number == clean_phone,
                                         Profile.id != driver.id).first()
            if taken:
                raise ValidationError('Phone number already exists')
            driver.phone_number = clean_phone

        password = data.get('password')
        if password:
            if len(password) < MIN_PASSWORD_LENGTH:
                raise ValidationError('Password must be at least 6 characters')
            driver.password_hash = self.auth_service.hash_password(password)

        if 'vehicle_id' in data:
            vehicle_id = data.get('vehicle_id')
            current = self.current_vehicle(driver.id)

            new_vehicle = None
            if vehicle_id:
                new_vehicle = db.session.get(Vehicle, vehicle_id)
                if not new_vehicle:
                    raise NotFoundError('Vehicle not found')
                if new_vehicle.driver_id and new_vehicle.driver_id != driver.id:
                    raise ValidationError('Vehicle is already assigned to another driver')

            if current and current is not new_vehicle:
                current.driver_id = None
                current.status = VehicleStatus.AVAILABLE

            if new_vehicle:
                new_vehicle.driver_id = driver.id
                new_vehicle.status = VehicleStatus.ASSIGNED

        driver.updated_at = get_ist_time_naive()
        logger.info(f"Driver {driver.name} (ID: {driver.id}) updated: {sorted(k for k in data if k != 'password')}")
        return driver

    @TransactionHelper.with_transaction
    def remove_driver(self, driver_id: str) -> Dict[str, Any]:
        """
        Soft-delete a driver.

        The driver's name and vehicle number are copied onto their expenses
        that lack a snapshot, the vehicle is released, and deleted_at is set.
        """
        driver = self._active_driver(driver_id)
        vehicle = self.current_vehicle(driver.id)

        snapshot = {'driver_name': driver.name}
        if vehicle:
            snapshot['vehicle_number'] = vehicle.vehicle_number

        preserved = (Expense.query
                     .filter(Expense.driver_id == driver.id, Expense.driver_name.is_(None))
                     .update(snapshot, synchronize_session=False))

        if vehicle:
            vehicle.driver_id = None
            vehicle.status = VehicleStatus.AVAILABLE

        driver.deleted_at = get_ist_time_naive()

        logger.info(f"Driver {driver.name} (ID: {driver.id}) removed; "
                    f"{preserved} expense(s) snapshotted")
        return {
            'message': 'Driver removed successfully. All expense data has been preserved.',
            'preserved': True
        }
