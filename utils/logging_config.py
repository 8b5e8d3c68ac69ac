"""
Centralized logging configuration for Fleet Expenses
Structured JSON logs in production, plain text locally, and a correlation ID
carried on every request and echoed back in the X-Correlation-ID header
"""

import os
import sys
import json
import uuid
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from flask import has_request_context, request, g
import traceback

CORRELATION_HEADER = 'X-Correlation-ID'
SLOW_REQUEST_SECONDS = 5.0
LOG_DIR = 'logs'

# LogRecord attributes that are not "extra" fields
_RESERVED_RECORD_KEYS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName',
    'created', 'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'message', 'taskName', 'asctime',
}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with request and user context when present"""

    def __init__(self):
        super().__init__()
        self.environment = os.environ.get('FLASK_ENV', 'development')

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'application': 'fleet_expenses',
            'environment': self.environment,
        }

        if has_request_context():
            log_data['correlation_id'] = g.get('correlation_id')
            log_data['request'] = {
                'method': request.method,
                'path': request.path,
                'remote_addr': request.remote_addr,
            }
            if g.get('current_user_id'):
                log_data['user'] = {
                    'user_id': g.current_user_id,
                    'role': g.get('current_user_role', 'unknown'),
                }

        if record.exc_info and record.exc_info[0]:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': traceback.format_exception(*record.exc_info),
            }

        extra_fields = {key: value for key, value in record.__dict__.items()
                        if key not in _RESERVED_RECORD_KEYS}
        if extra_fields:
            log_data['extra'] = extra_fields

        if record.levelno >= logging.ERROR:
            log_data['location'] = f"{record.pathname}:{record.lineno} in {record.funcName}"

        return json.dumps(log_data, ensure_ascii=False, default=str)


class RequestContextFilter(logging.Filter):
    """Stamp the correlation ID onto records emitted inside a request"""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context() and 'correlation_id' in g:
            record.correlation_id = g.correlation_id
        return True


def _use_json_logging() -> bool:
    return (
        os.environ.get('USE_JSON_LOGGING', 'false').lower() == 'true' or
        os.environ.get('FLASK_ENV') == 'production'
    )


def _make_handler(handler: logging.Handler, level, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(RequestContextFilter())
    # Marks handlers owned by setup_logging so a second call replaces them
    handler._fleet_expenses = True
    return handler


def setup_logging(app=None) -> None:
    """
    Configure the root logger from LOG_LEVEL, USE_JSON_LOGGING and
    ENABLE_FILE_LOGGING. Errors always go to logs/error.log.
    """
    log_level = os.environ.get('LOG_LEVEL', 'INFO').upper()
    if log_level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
        log_level = 'INFO'

    use_json_logging = _use_json_logging()
    if use_json_logging:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter('[%(asctime)s] %(levelname)s in %(name)s: %(message)s')

    os.makedirs(LOG_DIR, exist_ok=True)
    handlers = [
        _make_handler(logging.StreamHandler(sys.stdout), log_level, formatter),
        _make_handler(logging.FileHandler(os.path.join(LOG_DIR, 'error.log')), logging.ERROR, formatter),
    ]
    if os.environ.get('ENABLE_FILE_LOGGING', 'false').lower() == 'true':
        handlers.append(_make_handler(
            logging.FileHandler(os.path.join(LOG_DIR, 'application.log')), log_level, formatter))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in list(root_logger.handlers):
        if getattr(handler, '_fleet_expenses', False):
            root_logger.removeHandler(handler)
            handler.close()
    for handler in handlers:
        root_logger.addHandler(handler)

    # Silence noisy third-party loggers in production
    if os.environ.get('FLASK_ENV') == 'production':
        for name in ('werkzeug', 'urllib3', 'sqlalchemy.engine'):
            logging.getLogger(name).setLevel(logging.WARNING)

    if app:
        app.logger.info(f"Logging configured: level={log_level}, json_format={use_json_logging}")


def log_request_start():
    """Record the start time and adopt or mint the correlation ID"""
    g.request_start_time = datetime.now().timestamp()
    g.correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex


def log_request_end(response):
    """Echo the correlation ID and log the request outcome with its duration"""
    start = g.get('request_start_time')
    if start is None:
        return response

    duration = datetime.now().timestamp() - start
    response.headers[CORRELATION_HEADER] = g.correlation_id

    extra_data: Dict[str, Optional[Any]] = {
        'method': request.method,
        'path': request.path,
        'status_code': response.status_code,
        'duration_ms': round(duration * 1000, 2),
        'user_id': g.get('current_user_id'),
    }

    if response.status_code >= 500:
        log_level = logging.ERROR
    elif response.status_code >= 400 or duration > SLOW_REQUEST_SECONDS:
        log_level = logging.WARNING
    else:
        log_level = logging.INFO

    logging.getLogger('requests').log(
        log_level, f"Request completed: {request.method} {request.path}", extra=extra_data)
    return response
