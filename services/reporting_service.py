"""
Reporting Service

Expense and revenue analytics for the admin dashboard.
"""

from typing import Optional, Dict, Any
import logging
from datetime import date
from sqlalchemy import func
from models import db, Expense
from utils.validators import normalize_date, parse_iso_date
from .exceptions import ValidationError

logger = logging.getLogger(__name__)


def _parse_bound(value: Optional[str], label: str) -> Optional[date]:
    if not value:
        return None
    parsed = parse_iso_date(normalize_date(value))
    if not parsed:
        raise ValidationError(f'Invalid {label}')
    return parsed


class ReportingService:
    """Service class for reporting and analytics operations"""

    def _date_filters(self, start_date: Optional[date], end_date: Optional[date]) -> list:
        conditions = []
        if start_date:
            conditions.append(Expense.date >= start_date)
        if end_date:
            conditions.append(Expense.date <= end_date)
        return conditions

    def get_analytics(self, start_date: Optional[str] = None,
                      end_date: Optional[str] = None) -> Dict[str, Any]:
        """
        Totals by category and by day across every driver.

        Args:
            start_date: Inclusive lower bound (YYYY-MM-DD or DD/MM/YYYY)
            end_date: Inclusive upper bound

        Returns:
            dict: byCategory, byDate (ascending), totalExpenses, totalRevenue,
                totalUberRevenue, totalRapidoRevenue
        """
        conditions = self._date_filters(_parse_bound(start_date, 'start date'),
                                        _parse_bound(end_date, 'end date'))

        by_category = (db.session.query(
            Expense.category,
            func.coalesce(func.sum(Expense.amount), 0).label('total')
        ).filter(*conditions)
         .group_by(Expense.category)
         .order_by(Expense.category)
         .all())

        by_date = (db.session.query(
            Expense.date,
            func.coalesce(func.sum(Expense.amount), 0).label('expenses'),
            func.coalesce(func.sum(Expense.total_revenue), 0).label('revenue')
        ).filter(*conditions)
         .group_by(Expense.date)
         .order_by(Expense.date.asc())
         .all())

        totals = db.session.query(
            func.coalesce(func.sum(Expense.amount), 0),
            func.coalesce(func.sum(Expense.total_revenue), 0),
            func.coalesce(func.sum(Expense.uber_revenue), 0),
            func.coalesce(func.sum(Expense.rapido_revenue), 0)
        ).filter(*conditions).one()

        logger.info(f"Analytics generated for {start_date or '-'}..{end_date or '-'}: "
                    f"{len(by_date)} day(s), {len(by_category)} categories")

        return {
            'byCategory': [
                {'name': row.category.value, 'value': float(row.total)}
                for row in by_category
            ],
            'byDate': [
                {
                    'date': row.date.isoformat(),
                    'expenses': float(row.expenses),
                    'revenue': float(row.revenue),
                }
                for row in by_date
            ],
            'totalExpenses': float(totals[0]),
            'totalRevenue': float(totals[1]),
            'totalUberRevenue': float(totals[2]),
            'totalRapidoRevenue': float(totals[3]),
        }

