"""
Service Exceptions

Errors raised by the service layer. Each carries the HTTP status the route
handlers answer with, so handlers can translate them without a lookup table.
"""


class ServiceError(Exception):
    """Base exception for business rule violations."""

    status_code = 500

    def __init__(self, message, status_code=None, details=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self):
        body = {'error': self.message}
        if self.details:
            body['details'] = self.details
        return body


class ValidationError(ServiceError):
    """Raised when input data is invalid or violates domain rules."""
    status_code = 400


class PermissionDeniedError(ServiceError):
    """Raised when a user lacks permission for an action."""
    status_code = 403


class NotFoundError(ServiceError):
    status_code = 404


class StorageError(ServiceError):
    """Raised when a required upload cannot be stored."""
    status_code = 500


class SchemaMismatchError(ServiceError):
    """Raised when the deployed database is missing a migration."""
    status_code = 500

    def __init__(self, message, hint=None, details=None):
        super().__init__(message, details=details)
        self.hint = hint

    def to_dict(self):
        body = super().to_dict()
        if self.hint:
            body['hint'] = self.hint
        return body
