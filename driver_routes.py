from flask import Blueprint, request, jsonify
from auth import admin_required
from services.driver_service import DriverService
from services.exceptions import ServiceError
import logging

logger = logging.getLogger(__name__)

driver_bp = Blueprint('drivers', __name__)


@driver_bp.route('', methods=['GET'])
@admin_required
def list_drivers():
    try:
        return jsonify({'data': DriverService().list_drivers()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.exception(f"Error listing drivers: {str(e)}")
        return jsonify({'error': 'Internal server error'}), 500


@driver_bp.route('', methods=['POST'])
@admin_required
def create_driver():
    """Onboard a driver together with their vehicle"""
    try:
        data = request.get_json(silent=True) or {}
        driver = DriverService().create_driver(
            data.get('name'),
            data.get('phone_number'),
            data.get('password'),
            data.get('vehicle_id'),
        )
        return jsonify({'data': driver.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.exception(f"Error creating driver: {str(e)}")
        return jsonify({'error': 'Internal server error'}), 500


@driver_bp.route('/<driver_id>', methods=['PUT'])
@admin_required
def update_driver(driver_id):
    try:
        data = request.get_json(silent=True) or {}
        DriverService().update_driver(driver_id, data)
        return jsonify({'message': 'Driver updated successfully'}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.exception(f"Error updating driver {driver_id}: {str(e)}")
        return jsonify({'error': 'Internal server error'}), 500


@driver_bp.route('/<driver_id>', methods=['DELETE'])
@admin_required
def remove_driver(driver_id):
    """Soft delete; expense history keeps the driver's name"""
    try:
        return jsonify(DriverService().remove_driver(driver_id)), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.exception(f"Error removing driver {driver_id}: {str(e)}")
        return jsonify({'error': 'Internal server error'}), 500
