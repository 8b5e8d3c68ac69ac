"""
Unit tests for NotificationService and TransactionHelper
"""

import logging
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError, IntegrityError

from app import db
from models import Vehicle
from services.notification_service import NotificationService
from services.transaction_helper import TransactionHelper
from tests.factories import VehicleFactory


class TestNotificationService:

    def test_threshold_from_config(self, app):
        app.config['HIGH_VALUE_EXPENSE_THRESHOLD'] = 2500.0
        assert NotificationService().threshold == 2500.0

    def test_below_threshold_is_quiet(self, caplog):
        with caplog.at_level(logging.WARNING, logger='alerts'):
            assert NotificationService(threshold=5000).notify_high_value_expense(
                'Ravi', 4999.99, 'fuel', '2024-03-05') is False
        assert not caplog.records

    def test_at_threshold_alerts(self, caplog):
        with caplog.at_level(logging.WARNING, logger='alerts'):
            assert NotificationService(threshold=5000).notify_high_value_expense(
                'Ravi', 5000, 'maintenance', '2024-03-05') is True
        record = caplog.records[0]
        assert record.levelno == logging.WARNING
        assert 'HIGH_VALUE_EXPENSE' in record.getMessage()
        assert 'Ravi' in record.getMessage()


def _db_error(cls, message, pgcode=None):
    orig = Exception(message)
    orig.pgcode = pgcode
    return cls('INSERT ...', {}, orig)


class TestErrorClassification:

    @pytest.mark.parametrize('message,pgcode', [
        ('column "phone_number" does not exist', None),
        ('no such column: profiles.phone_number', None),
        ('table expenses has no column named driver_name', None),
        ('anything', '42703'),
    ])
    def test_missing_column(self, message, pgcode):
        assert TransactionHelper.is_missing_column_error(_db_error(OperationalError, message, pgcode))

    def test_other_errors_are_not_missing_columns(self):
        assert not TransactionHelper.is_missing_column_error(
            _db_error(OperationalError, 'server closed the connection unexpectedly'))

    def test_not_null_violation(self):
        pg = _db_error(IntegrityError, 'null value in column "driver_id" violates not-null constraint', '23502')
        sqlite = _db_error(IntegrityError, 'NOT NULL constraint failed: expenses.driver_id')
        assert TransactionHelper.is_not_null_violation(pg, 'driver_id')
        assert TransactionHelper.is_not_null_violation(sqlite, 'driver_id')
        assert not TransactionHelper.is_not_null_violation(sqlite, 'date')


class TestWithTransaction:

    def test_commits_on_success(self, db_session):
        @TransactionHelper.with_transaction
        def register():
            db.session.add(Vehicle(vehicle_number='KA09ZZ0001'))

        register()
        db.session.expire_all()
        assert Vehicle.query.filter_by(vehicle_number='KA09ZZ0001').count() == 1

    def test_rolls_back_on_error(self, db_session):
        @TransactionHelper.with_transaction
        def register_then_fail():
            db.session.add(Vehicle(vehicle_number='KA09ZZ0002'))
            db.session.flush()
            raise ValueError('boom')

        with pytest.raises(ValueError):
            register_then_fail()
        assert Vehicle.query.filter_by(vehicle_number='KA09ZZ0002').count() == 0

    def test_retries_dropped_connections(self, db_session, monkeypatch):
        monkeypatch.setattr('services.transaction_helper.time.sleep', Mock())
        calls = []

        @TransactionHelper.with_transaction
        def flaky():
            calls.append(1)
            if len(calls) < 2:
                raise _db_error(OperationalError, 'server closed the connection unexpectedly')
            return VehicleFactory.build(vehicle_number='KA09ZZ0003').vehicle_number

        assert flaky() == 'KA09ZZ0003'
        assert len(calls) == 2

    def test_missing_column_is_not_retried(self, db_session):
        calls = []

        @TransactionHelper.with_transaction
        def legacy():
            calls.append(1)
            raise _db_error(OperationalError, 'no such column: expenses.purpose')

        with pytest.raises(OperationalError):
            legacy()
        assert len(calls) == 1
