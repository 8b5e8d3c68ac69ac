"""
File Service

Handles receipt and proof-screenshot uploads. Files go to Supabase Storage
when it is configured, otherwise to the local upload folder served by
storage_routes.
"""

from typing import Optional, List, Iterable
import logging
import os
import secrets
import time
import requests
from flask import current_app, url_for
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)

RECEIPTS_PREFIX = 'receipts'
LOCAL_RECEIPTS_ROUTE = '/uploads/receipts/'


class FileService:
    """Service class for file management operations"""

    ALLOWED_EXTENSIONS = {'jpg', 'jpeg', 'png', 'gif', 'webp', 'heic', 'pdf'}
    MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
    REQUEST_TIMEOUT = 30

    def __init__(self):
        config = current_app.config
        self.supabase_url = config.get('SUPABASE_URL') or ''
        self.service_key = config.get('SUPABASE_SERVICE_ROLE_KEY') or ''
        self.bucket = config.get('SUPABASE_STORAGE_BUCKET') or 'receipts'

    @property
    def uses_supabase(self) -> bool:
        return bool(self.supabase_url and self.service_key)

    def allowed_file(self, filename: str) -> bool:
        """Check if file extension is allowed."""
        return '.' in filename and \
               filename.rsplit('.', 1)[1].lower() in self.ALLOWED_EXTENSIONS

    @staticmethod
    def file_size(file) -> int:
        file.seek(0, 2)  # Seek to end
        size = file.tell()
        file.seek(0)  # Seek back to start
        return size

    @staticmethod
    def generate_object_name(filename: str) -> str:
        """<epoch ms>-<random>.<ext>"""
        ext = filename.rsplit('.', 1)[1].lower()
        return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}.{ext}"

    def local_upload_folder(self) -> str:
        folder = current_app.config.get('UPLOAD_FOLDER', 'uploads')
        if not os.path.isabs(folder):
            folder = os.path.join(current_app.root_path, folder)
        return os.path.join(folder, RECEIPTS_PREFIX)

    def _auth_headers(self) -> dict:
        return {
            'Authorization': f'Bearer {self.service_key}',
            'apikey': self.service_key,
        }

    def public_url(self, object_path: str) -> str:
        return f"{self.supabase_url}/storage/v1/object/public/{self.bucket}/{object_path}"

    def upload_receipt(self, file) -> Optional[str]:
        """
        Store one uploaded file.

        Args:
            file: werkzeug FileStorage from request.files

        Returns:
            str: Public URL of the stored file, or None if the file was
                empty, rejected or the upload failed
        """
        if not file or not file.filename:
            return None

        if not self.allowed_file(file.filename):
            logger.warning(f"Upload rejected, file type not allowed: {file.filename}")
            return None

        size = self.file_size(file)
        if size == 0:
            return None
        if size > self.MAX_FILE_SIZE:
            logger.warning(f"Upload rejected, {size} bytes exceeds {self.MAX_FILE_SIZE // (1024 * 1024)}MB")
            return None

        object_name = self.generate_object_name(file.filename)

        if self.uses_supabase:
            return self._upload_to_supabase(file, f"{RECEIPTS_PREFIX}/{object_name}")
        return self._save_locally(file, object_name)

    def _upload_to_supabase(self, file, object_path: str) -> Optional[str]:
        headers = self._auth_headers()
        headers.update({
            'Content-Type': file.mimetype or 'application/octet-stream',
            'x-upsert': 'false',
            'cache-control': '3600',
        })
        try:
            response = requests.post(
                f"{self.supabase_url}/storage/v1/object/{self.bucket}/{object_path}",
                data=file.read(),
                headers=headers,
                timeout=self.REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.error(f"Storage upload exception for {object_path}: {str(e)}")
            return None

        if response.status_code >= 400:
            logger.error(f"Storage upload error for {object_path}: "
                         f"HTTP {response.status_code} {response.text[:200]}")
            return None

        logger.info(f"File uploaded successfully: {object_path}")
        return self.public_url(object_path)

    def _save_locally(self, file, object_name: str) -> Optional[str]:
        upload_folder = self.local_upload_folder()
        try:
            os.makedirs(upload_folder, exist_ok=True)
            file.save(os.path.join(upload_folder, object_name))
        except OSError as e:
            logger.error(f"Error saving uploaded file {object_name}: {str(e)}")
            return None

        logger.info(f"File saved locally: {object_name}")
        return url_for('storage.serve_receipt', filename=object_name)

    def upload_multiple_receipts(self, files: Iterable) -> List[str]:
        """Upload every non-empty file, dropping the ones that fail."""
        urls = []
        for file in files or []:
            url = self.upload_receipt(file)
            if url:
                urls.append(url)
        return urls

    def delete_receipt(self, url: Optional[str]) -> bool:
        """
        Delete a stored file by the URL it was served under.

        Returns:
            bool: True if deletion successful
        """
        if not url:
            return False

        if LOCAL_RECEIPTS_ROUTE in url:
            return self._delete_local(url.rsplit('/', 1)[-1])

        if not self.uses_supabase:
            return False

        object_path = '/'.join(url.split('/')[-2:])
        try:
            response = requests.delete(
                f"{self.supabase_url}/storage/v1/object/{self.bucket}",
                json={'prefixes': [object_path]},
                headers=self._auth_headers(),
                timeout=self.REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.error(f"Storage delete exception for {object_path}: {str(e)}")
            return False

        if response.status_code >= 400:
            logger.error(f"Storage delete error for {object_path}: HTTP {response.status_code}")
            return False

        logger.info(f"File deleted: {object_path}")
        return True

    def _delete_local(self, filename: str) -> bool:
        path = self.local_receipt_path(filename)
        if not path or not os.path.exists(path):
            return False
        try:
            os.remove(path)
        except OSError as e:
            logger.error(f"Error deleting file {filename}: {str(e)}")
            return False
        logger.info(f"File deleted: {filename}")
        return True

    def local_receipt_path(self, filename: str) -> Optional[str]:
        """Absolute path of a locally stored receipt, or None for unsafe names."""
        safe_name = secure_filename(filename)
        if not safe_name or safe_name != filename:
            return None
        return os.path.join(self.local_upload_folder(), safe_name)
