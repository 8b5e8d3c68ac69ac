"""
Vehicle Service

Handles the fleet register: vehicle creation, edits, driver assignment
and removal of unassigned vehicles.
"""

from typing import Optional, Dict, Any, List
import logging
from models import db, Vehicle, Profile, UserRole, VehicleStatus
from utils.validators import clean_optional_text
from .exceptions import ValidationError, NotFoundError
from .transaction_helper import TransactionHelper

logger = logging.getLogger(__name__)

TEXT_FIELDS = ('make', 'model', 'color')


def _parse_year(value) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError('Invalid year')


class VehicleService:
    """Service class for vehicle management operations"""

    def list_vehicles(self) -> List[Dict[str, Any]]:
        vehicles = Vehicle.query.order_by(Vehicle.vehicle_number).all()
        return [vehicle.to_dict() for vehicle in vehicles]

    def get_vehicle(self, vehicle_id: str) -> Vehicle:
        vehicle = db.session.get(Vehicle, vehicle_id)
        if not vehicle:
            raise NotFoundError('Vehicle not found')
        return vehicle

    def _check_number_free(self, vehicle_number: str, exclude_id: Optional[str] = None):
        query = Vehicle.query.filter(Vehicle.vehicle_number == vehicle_number)
        if exclude_id:
            query = query.filter(Vehicle.id != exclude_id)
        if query.first():
            raise ValidationError('Vehicle number already exists')

    @TransactionHelper.with_transaction
    def create_vehicle(self, data: Dict[str, Any]) -> Vehicle:
        """
        Register a vehicle. It starts out available and unassigned.

        Args:
            data: vehicle_number (required), vehicle_type, make, model, year, color

        Returns:
            Vehicle: The new vehicle
        """
        vehicle_number = (data.get('vehicle_number') or '').strip().upper()
        if not vehicle_number:
            raise ValidationError('Vehicle number is required')
        self._check_number_free(vehicle_number)

        vehicle = Vehicle(
            vehicle_number=vehicle_number,
            vehicle_type=clean_optional_text(data.get('vehicle_type')) or 'cab',
            year=_parse_year(data.get('year')),
            status=VehicleStatus.AVAILABLE,
        )
        for field in TEXT_FIELDS:
            setattr(vehicle, field, clean_optional_text(data.get(field)))

        db.session.add(vehicle)
        db.session.flush()

        logger.info(f"Vehicle {vehicle.vehicle_number} registered (ID: {vehicle.id})")
        return vehicle

    @TransactionHelper.with_transaction
    def update_vehicle(self, vehicle_id: str, data: Dict[str, Any]) -> Vehicle:
        """
        Apply a partial update.

        Setting driver_id assigns the vehicle; clearing it releases the
        vehicle (available) unless the same update names a status.
        """
        vehicle = self.get_vehicle(vehicle_id)

        if 'vehicle_number' in data:
            vehicle_number = (data.get('vehicle_number') or '').strip().upper()
            if not vehicle_number:
                raise ValidationError('Vehicle number is required')
            self._check_number_free(vehicle_number, exclude_id=vehicle.id)
            vehicle.vehicle_number = vehicle_number

        if 'vehicle_type' in data:
            vehicle.vehicle_type = clean_optional_text(data.get('vehicle_type')) or 'cab'
        for field in TEXT_FIELDS:
            if field in data:
                setattr(vehicle, field, clean_optional_text(data.get(field)))
        if 'year' in data:
            vehicle.year = _parse_year(data.get('year'))

        status = data.get('status')
        if status is not None:
            try:
                vehicle.status = VehicleStatus(status)
            except ValueError:
                raise ValidationError('Invalid vehicle status')

        if 'driver_id' in data:
            driver_id = data.get('driver_id')
            if driver_id:
                driver = Profile.query.filter(Profile.id == driver_id,
                                              Profile.deleted_at.is_(None)).first()
                if not driver or driver.role != UserRole.DRIVER:
                    raise NotFoundError('Driver not found')
                other = Vehicle.query.filter(Vehicle.driver_id == driver_id,
                                             Vehicle.id != vehicle.id).first()
                if other:
                    raise ValidationError(f'Driver is already assigned to vehicle {other.vehicle_number}')
                vehicle.driver_id = driver_id
                vehicle.status = VehicleStatus.ASSIGNED
            else:
                vehicle.driver_id = None
                if status is None:
                    vehicle.status = VehicleStatus.AVAILABLE

        logger.info(f"Vehicle {vehicle.vehicle_number} (ID: {vehicle.id}) updated: {sorted(data)}")
        return vehicle

    @TransactionHelper.with_transaction
    def delete_vehicle(self, vehicle_id: str) -> None:
        vehicle = self.get_vehicle(vehicle_id)
        if vehicle.driver_id:
            raise ValidationError('Cannot delete vehicle that is assigned to a driver')

        db.session.delete(vehicle)
        logger.info(f"Vehicle {vehicle.vehicle_number} (ID: {vehicle_id}) deleted")
