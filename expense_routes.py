from flask import Blueprint, request, jsonify, Response
from auth import driver_or_admin_required, admin_required, get_current_user
from services.expense_service import ExpenseService, DEFAULT_PAGE_SIZE
from services.exceptions import ServiceError
from utils.exporters import (expenses_to_csv, expenses_to_excel,
                             CSV_MIMETYPE, XLSX_MIMETYPE)
import logging
import time

logger = logging.getLogger(__name__)

expense_bp = Blueprint('expenses', __name__)

FILTER_ARGS = ('driver_id', 'vehicle_id', 'start_date', 'end_date', 'category')


def _filters_from_args():
    return {key: request.args.get(key, '').strip() for key in FILTER_ARGS if request.args.get(key)}


@expense_bp.route('', methods=['GET'])
@driver_or_admin_required
def list_expenses():
    try:
        result = ExpenseService().list_expenses(
            get_current_user(),
            _filters_from_args(),
            page=request.args.get('page', 1, type=int),
            limit=request.args.get('limit', DEFAULT_PAGE_SIZE, type=int),
        )
        return jsonify(result), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.exception(f"Error listing expenses: {str(e)}")
        return jsonify({'error': 'Internal server error'}), 500


@expense_bp.route('', methods=['POST'])
@driver_or_admin_required
def create_expense():
    """Record an expense/revenue entry from a multipart form"""
    try:
        expense = ExpenseService().create_expense(get_current_user(), request.form, request.files)
        return jsonify({'data': expense}), 201
    except ServiceError as e:
        if e.status_code >= 500:
            logger.error(f"Expense creation failed: {e.message}")
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.exception(f"Error creating expense: {str(e)}")
        return jsonify({'error': 'Internal server error'}), 500


@expense_bp.route('/<expense_id>', methods=['PUT'])
@driver_or_admin_required
def update_expense(expense_id):
    try:
        expense = ExpenseService().update_expense(get_current_user(), expense_id,
                                                  request.form, request.files)
        return jsonify({'data': expense}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.exception(f"Error updating expense {expense_id}: {str(e)}")
        return jsonify({'error': 'Internal server error'}), 500


@expense_bp.route('/<expense_id>', methods=['DELETE'])
@driver_or_admin_required
def delete_expense(expense_id):
    try:
        ExpenseService().delete_expense(get_current_user(), expense_id)
        return jsonify({'message': 'Expense deleted successfully'}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.exception(f"Error deleting expense {expense_id}: {str(e)}")
        return jsonify({'error': 'Internal server error'}), 500


@expense_bp.route('/export', methods=['GET'])
@admin_required
def export_expenses():
    """Download the filtered expenses as CSV (default) or Excel"""
    export_format = request.args.get('format', 'csv').lower()
    if export_format not in ('csv', 'xlsx'):
        return jsonify({'error': 'Invalid export format'}), 400

    try:
        rows = ExpenseService().export_rows(get_current_user(), _filters_from_args())

        if export_format == 'xlsx':
            body, mimetype = expenses_to_excel(rows), XLSX_MIMETYPE
        else:
            body, mimetype = expenses_to_csv(rows), CSV_MIMETYPE

        filename = f"expenses-{int(time.time() * 1000)}.{export_format}"
        logger.info(f"EXPORT: {len(rows)} expense(s) as {export_format}")
        return Response(body, mimetype=mimetype,
                        headers={'Content-Disposition': f'attachment; filename="{filename}"'})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.exception(f"Error exporting expenses: {str(e)}")
        return jsonify({'error': 'Internal server error'}), 500
