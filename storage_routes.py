"""
Receipt file routes

Serves receipts and proof screenshots stored on local disk when Supabase
Storage is not configured.
"""

from flask import Blueprint, jsonify, send_file
from auth import login_required
from services.file_service import FileService
import mimetypes
import os
import logging

logger = logging.getLogger(__name__)

storage_bp = Blueprint('storage', __name__)


@storage_bp.route('/uploads/receipts/<filename>', methods=['GET'])
@login_required
def serve_receipt(filename):
    """Serve a locally stored receipt"""
    try:
        full_path = FileService().local_receipt_path(filename)

        if not full_path or not os.path.isfile(full_path):
            return jsonify({'error': 'File not found'}), 404

        mime_type = mimetypes.guess_type(full_path)[0] or 'application/octet-stream'
        return send_file(full_path, mimetype=mime_type)

    except Exception as e:
        logger.exception(f"Error serving receipt {filename}: {str(e)}")
        return jsonify({'error': 'Failed to serve file'}), 500
