from flask import Blueprint, request, jsonify
from auth import admin_required
from services.vehicle_service import VehicleService
from services.exceptions import ServiceError
import logging

logger = logging.getLogger(__name__)

vehicle_bp = Blueprint('vehicles', __name__)


@vehicle_bp.route('', methods=['GET'])
@admin_required
def list_vehicles():
    try:
        return jsonify({'data': VehicleService().list_vehicles()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.exception(f"Error listing vehicles: {str(e)}")
        return jsonify({'error': 'Internal server error'}), 500


@vehicle_bp.route('', methods=['POST'])
@admin_required
def create_vehicle():
    try:
        vehicle = VehicleService().create_vehicle(request.get_json(silent=True) or {})
        return jsonify({'data': vehicle.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.exception(f"Error creating vehicle: {str(e)}")
        return jsonify({'error': 'Internal server error'}), 500


@vehicle_bp.route('/<vehicle_id>', methods=['PUT'])
@admin_required
def update_vehicle(vehicle_id):
    """Edit fields, change status or (un)assign a driver"""
    try:
        VehicleService().update_vehicle(vehicle_id, request.get_json(silent=True) or {})
        return jsonify({'message': 'Vehicle updated successfully'}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.exception(f"Error updating vehicle {vehicle_id}: {str(e)}")
        return jsonify({'error': 'Internal server error'}), 500


@vehicle_bp.route('/<vehicle_id>', methods=['DELETE'])
@admin_required
def delete_vehicle(vehicle_id):
    try:
        VehicleService().delete_vehicle(vehicle_id)
        return jsonify({'message': 'Vehicle deleted successfully'}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.exception(f"Error deleting vehicle {vehicle_id}: {str(e)}")
        return jsonify({'error': 'Internal server error'}), 500
