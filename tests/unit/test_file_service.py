"""
Unit tests for FileService storage backends
"""

import io
import os
from unittest.mock import Mock, patch

import pytest
import requests
from werkzeug.datastructures import FileStorage

from services.file_service import FileService

SUPABASE_URL = 'https://project.supabase.co'


def _upload(name='receipt.jpg', payload=b'\xff\xd8fake-jpeg', content_type='image/jpeg'):
    return FileStorage(stream=io.BytesIO(payload), filename=name, content_type=content_type)


@pytest.fixture
def supabase_app(app):
    app.config.update({
        'SUPABASE_URL': SUPABASE_URL,
        'SUPABASE_SERVICE_ROLE_KEY': 'service-role-key',
        'SUPABASE_STORAGE_BUCKET': 'receipts',
    })
    return app


class TestValidation:

    def test_allowed_extensions(self, app):
        service = FileService()
        assert service.allowed_file('bill.PDF')
        assert service.allowed_file('photo.heic')
        assert not service.allowed_file('script.exe')
        assert not service.allowed_file('noextension')

    def test_rejected_uploads(self, app):
        service = FileService()
        assert service.upload_receipt(None) is None
        assert service.upload_receipt(_upload(name='')) is None
        assert service.upload_receipt(_upload(name='virus.exe')) is None
        assert service.upload_receipt(_upload(payload=b'')) is None

    def test_too_large(self, app):
        service = FileService()
        big = _upload(payload=b'0' * (FileService.MAX_FILE_SIZE + 1))
        assert service.upload_receipt(big) is None

    def test_object_name_shape(self):
        name = FileService.generate_object_name('Receipt.JPG')
        stamp, rest = name.split('-', 1)
        assert stamp.isdigit()
        assert rest.endswith('.jpg')


class TestLocalStorage:

    def test_saves_and_serves_url(self, app):
        with app.test_request_context():
            service = FileService()
            url = service.upload_receipt(_upload())
            filename = url.rsplit('/', 1)[-1]
            assert url == f'/uploads/receipts/{filename}'
            assert os.path.exists(service.local_receipt_path(filename))

            assert service.delete_receipt(url) is True
            assert not os.path.exists(service.local_receipt_path(filename))

    def test_unsafe_names_have_no_path(self, app):
        service = FileService()
        assert service.local_receipt_path('../secrets.txt') is None
        assert service.local_receipt_path('') is None

    def test_upload_multiple_skips_failures(self, app):
        with app.test_request_context():
            urls = FileService().upload_multiple_receipts(
                [_upload('a.jpg'), _upload('b.txt'), _upload('c.png', payload=b'')])
        assert len(urls) == 1


class TestSupabaseStorage:

    def test_upload_posts_to_bucket(self, supabase_app):
        service = FileService()
        with patch('services.file_service.requests.post') as mock_post:
            mock_post.return_value = Mock(status_code=200, text='{}')
            url = service.upload_receipt(_upload())

        args, kwargs = mock_post.call_args
        object_path = args[0].split('/storage/v1/object/receipts/', 1)[1]
        assert object_path.startswith('receipts/')
        assert kwargs['headers']['Authorization'] == 'Bearer service-role-key'
        assert kwargs['headers']['apikey'] == 'service-role-key'
        assert kwargs['headers']['Content-Type'] == 'image/jpeg'
        assert kwargs['data'] == b'\xff\xd8fake-jpeg'
        assert url == f'{SUPABASE_URL}/storage/v1/object/public/receipts/{object_path}'

    def test_upload_error_status(self, supabase_app):
        with patch('services.file_service.requests.post') as mock_post:
            mock_post.return_value = Mock(status_code=400, text='bucket not found')
            assert FileService().upload_receipt(_upload()) is None

    def test_upload_network_failure(self, supabase_app):
        with patch('services.file_service.requests.post',
                   side_effect=requests.ConnectionError('down')):
            assert FileService().upload_receipt(_upload()) is None

    def test_delete_sends_prefix(self, supabase_app):
        url = f'{SUPABASE_URL}/storage/v1/object/public/receipts/receipts/1700000000000-ab12cd34.jpg'
        with patch('services.file_service.requests.delete') as mock_delete:
            mock_delete.return_value = Mock(status_code=200)
            assert FileService().delete_receipt(url) is True

        args, kwargs = mock_delete.call_args
        assert args[0] == f'{SUPABASE_URL}/storage/v1/object/receipts'
        assert kwargs['json'] == {'prefixes': ['receipts/1700000000000-ab12cd34.jpg']}

    def test_delete_without_url(self, supabase_app):
        assert FileService().delete_receipt(None) is False
