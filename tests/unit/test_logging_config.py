"""
Tests for structured logging
"""

import json
import logging

from flask import g

from utils.logging_config import JSONFormatter, log_request_start


def _record(message, level=logging.INFO, **extra):
    record = logging.LogRecord('services.expense_service', level, __file__, 10, message, None, None)
    record.__dict__.update(extra)
    return record


def test_plain_record(app):
    data = json.loads(JSONFormatter().format(_record('hello')))
    assert data['message'] == 'hello'
    assert data['level'] == 'INFO'
    assert data['logger'] == 'services.expense_service'
    assert 'request' not in data
    assert 'location' not in data


def test_request_context_and_extra(app):
    with app.test_request_context('/api/expenses', method='POST',
                                  headers={'X-Correlation-ID': 'corr-1'}):
        log_request_start()
        g.current_user_id = 'user-1'
        g.current_user_role = 'driver'
        data = json.loads(JSONFormatter().format(_record('saved', amount=250.0)))

    assert data['correlation_id'] == 'corr-1'
    assert data['request']['method'] == 'POST'
    assert data['request']['path'] == '/api/expenses'
    assert data['user'] == {'user_id': 'user-1', 'role': 'driver'}
    assert data['extra'] == {'amount': 250.0}


def test_errors_carry_location(app):
    data = json.loads(JSONFormatter().format(_record('boom', level=logging.ERROR)))
    assert ':10 in ' in data['location']
