from flask import Blueprint, request, jsonify
from auth import admin_required
from services.reporting_service import ReportingService
from services.exceptions import ServiceError
import logging

logger = logging.getLogger(__name__)

analytics_bp = Blueprint('analytics', __name__)


@analytics_bp.route('', methods=['GET'])
@admin_required
def get_analytics():
    """Totals by category and by day for the admin dashboard"""
    try:
        analytics = ReportingService().get_analytics(
            start_date=request.args.get('start_date'),
            end_date=request.args.get('end_date'),
        )
        return jsonify(analytics), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.exception(f"Error generating analytics: {str(e)}")
        return jsonify({'error': 'Internal server error'}), 500
