"""
Notification Service

Raises admin alerts for expense activity that needs a second look.
Alerts are written to the 'alerts' logger at WARNING so they reach the
error/JSON log pipeline.
"""

from typing import Optional, Union
import logging
from datetime import date
from flask import current_app, has_app_context

logger = logging.getLogger(__name__)
alert_logger = logging.getLogger('alerts')

DEFAULT_HIGH_VALUE_THRESHOLD = 5000.0


class NotificationService:
    """Service class for admin alerts"""

    def __init__(self, threshold: Optional[float] = None):
        if threshold is None and has_app_context():
            threshold = current_app.config.get('HIGH_VALUE_EXPENSE_THRESHOLD')
        self.threshold = float(threshold if threshold is not None else DEFAULT_HIGH_VALUE_THRESHOLD)

    def notify_high_value_expense(self, driver_name: Optional[str], amount: float,
                                  category: str, expense_date: Union[str, date]) -> bool:
        """
        Alert on an expense at or above the high-value threshold.

        Args:
            driver_name: Who recorded the expense
            amount: Expense amount in rupees
            category: Expense category value
            expense_date: Date of the expense

        Returns:
            bool: True if an alert was raised
        """
        if amount is None or amount < self.threshold:
            return False

        alert_logger.warning(
            f"HIGH_VALUE_EXPENSE: {driver_name or 'Unknown'} spent ₹{amount:,.2f} "
            f"on {category} on {expense_date}",
            extra={'alert': 'high_value_expense', 'amount': amount, 'threshold': self.threshold}
        )
        return True
