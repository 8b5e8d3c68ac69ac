"""
Service Layer

Business logic for the fleet expense API, kept out of the route handlers:

- **AuthService / TokenService**: login by email or phone, password hashing, JWTs
- **DriverService**: onboarding with a vehicle, updates, soft removal
- **VehicleService**: fleet register and driver assignment
- **ExpenseService**: expense/revenue records, receipts, export rows
- **ReportingService**: analytics by category and by day
- **FileService**: receipt storage on Supabase or local disk
- **NotificationService**: high-value expense alerts
- **TransactionHelper**: commit/rollback and schema-mismatch detection
"""

from .auth_service import AuthService
from .token_service import TokenService
from .driver_service import DriverService
from .vehicle_service import VehicleService
from .expense_service import ExpenseService
from .reporting_service import ReportingService
from .file_service import FileService
from .notification_service import NotificationService
from .transaction_helper import TransactionHelper

__all__ = [
    'AuthService',
    'TokenService',
    'DriverService',
    'VehicleService',
    'ExpenseService',
    'ReportingService',
    'FileService',
    'NotificationService',
    'TransactionHelper'
]
