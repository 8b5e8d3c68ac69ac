"""
Expense Service

Daily expense and revenue records: filtered listing with driver-name
enrichment, creation with receipt/proof uploads and legacy-schema insert
fallbacks, updates, deletion and the rows behind the admin export.
"""

from typing import Optional, Dict, Any, List, Tuple
import logging
import math
from sqlalchemy import table, column, insert, select, update, delete, func
from sqlalchemy.exc import SQLAlchemyError
from models import (db, Expense, Profile, Vehicle, UserRole, ExpenseCategory,
                    new_uuid, encode_receipt_urls)
from utils.validators import (normalize_date, parse_iso_date, parse_amount,
                              clean_optional_text)
from .exceptions import (ValidationError, NotFoundError, PermissionDeniedError,
                         StorageError, SchemaMismatchError)
from .file_service import FileService
from .notification_service import NotificationService
from .transaction_helper import TransactionHelper
from timezone_utils import get_ist_time_naive

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# (form field, label used in validation messages)
NUMERIC_FIELDS = (
    ('amount', 'amount'),
    ('total_revenue', 'total revenue'),
    ('uber_revenue', 'Uber revenue'),
    ('rapido_revenue', 'Rapido revenue'),
)

# Dropped on the second insert attempt against a legacy schema
SNAPSHOT_COLUMNS = ('driver_name', 'vehicle_number', 'purpose')
# Everything a legacy expenses table is known to have
ESSENTIAL_COLUMNS = ('id', 'driver_id', 'date', 'category', 'amount', 'note',
                     'receipt_url', 'created_at')

MIGRATION_HINT = 'Run `python database_commands.py migrate` against the Supabase database'

EXPENSE_ORDER = (Expense.date.desc(), Expense.created_at.desc())


def round_amount(value: float) -> int:
    """Round half up to whole rupees."""
    return int(math.floor(value + 0.5))


def _is_admin(actor: Profile) -> bool:
    return actor.role == UserRole.ADMIN


class ExpenseService:
    """Service class for expense operations"""

    def __init__(self):
        self.file_service = FileService()
        self.notification_service = NotificationService()

    # Queries

    def _parse_category(self, value: Optional[str]) -> Optional[ExpenseCategory]:
        value = (value or '').strip().lower()
        if not value:
            return None
        try:
            return ExpenseCategory(value)
        except ValueError:
            raise ValidationError('Invalid category')

    def _filter_criteria(self, actor: Profile, filters: Dict[str, Any]) -> Optional[List[Any]]:
        """
        Build the WHERE criteria for the given filters.

        Returns None when the filters cannot match anything (a vehicle
        with no driver). Only essential columns are referenced, so the
        criteria apply to legacy tables too.
        """
        criteria = []

        if not _is_admin(actor):
            criteria.append(Expense.driver_id == actor.id)
        elif filters.get('vehicle_id'):
            vehicle = db.session.get(Vehicle, filters['vehicle_id'])
            if not vehicle or not vehicle.driver_id:
                return None
            criteria.append(Expense.driver_id == vehicle.driver_id)
        elif filters.get('driver_id'):
            criteria.append(Expense.driver_id == filters['driver_id'])

        for key, op in (('start_date', '__ge__'), ('end_date', '__le__')):
            raw = filters.get(key)
            if raw:
                parsed = parse_iso_date(normalize_date(raw))
                if not parsed:
                    raise ValidationError(f'Invalid {key.replace("_", " ")}')
                criteria.append(getattr(Expense.date, op)(parsed))

        category = self._parse_category(filters.get('category'))
        if category:
            criteria.append(Expense.category == category)

        return criteria

    @staticmethod
    def _base_column_select(*criteria):
        base = Expense.__table__
        return select(*[base.c[name] for name in ESSENTIAL_COLUMNS]).where(*criteria)

    def _fetch(self, criteria: List[Any], offset: int = 0,
               limit: Optional[int] = None) -> Tuple[List[Expense], int, bool]:
        """
        Load matching expenses newest first, with the unpaged total.

        Returns:
            tuple: (expenses, total, legacy). On a legacy table the rows are
            read from the essential columns into transient Expense objects
            and legacy is True.
        """
        try:
            query = Expense.query.filter(*criteria)
            total = query.count()
            query = query.order_by(*EXPENSE_ORDER).offset(offset)
            if limit:
                query = query.limit(limit)
            return query.all(), total, False
        except SQLAlchemyError as e:
            db.session.rollback()
            if not TransactionHelper.is_missing_column_error(e):
                raise
            logger.warning(f"EXPENSE_SCHEMA_FALLBACK: listing from essential columns: "
                           f"{str(getattr(e, 'orig', e))}")

        total = db.session.execute(
            select(func.count()).select_from(Expense.__table__).where(*criteria)).scalar()
        stmt = self._base_column_select(*criteria).order_by(*EXPENSE_ORDER).offset(offset)
        if limit:
            stmt = stmt.limit(limit)
        rows = db.session.execute(stmt).mappings().all()
        return [Expense(**dict(row)) for row in rows], total, True

    def enrich_expenses(self, expenses: List[Expense], persist_names: bool = True) -> List[Dict[str, Any]]:
        """
        Serialize expenses with a display driver name and vehicle number.

        The name comes from the snapshot, else from the profile (deleted
        profiles included); a name found on the profile is written back to
        the row unless persist_names is False. A row whose profile is gone
        reads "<vehicle> (Deleted Driver)" and a row without a driver reads
        "Unknown".
        """
        driver_ids = {e.driver_id for e in expenses if e.driver_id}
        names = {}
        vehicles = {}
        if driver_ids:
            names = dict(db.session.query(Profile.id, Profile.name)
                         .filter(Profile.id.in_(driver_ids)).all())
            vehicles = dict(db.session.query(Vehicle.driver_id, Vehicle.vehicle_number)
                            .filter(Vehicle.driver_id.in_(driver_ids)).all())

        backfilled = 0
        rows = []
        for expense in expenses:
            name = expense.driver_name
            if not name and expense.driver_id and names.get(expense.driver_id):
                name = names[expense.driver_id]
                if persist_names:
                    expense.driver_name = name
                    backfilled += 1

            vehicle_number = expense.vehicle_number or vehicles.get(expense.driver_id)

            if name:
                display_name = name
            elif expense.driver_id:
                display_name = f"{vehicle_number} (Deleted Driver)" if vehicle_number else 'Deleted Driver'
            else:
                display_name = 'Unknown'

            row = expense.to_dict()
            row['driver_name'] = display_name
            row['vehicle_number'] = vehicle_number
            rows.append(row)

        if backfilled:
            try:
                db.session.commit()
                logger.info(f"Backfilled driver_name on {backfilled} expense(s)")
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.warning(f"Could not backfill driver_name: {str(e)}")

        return rows

    def list_expenses(self, actor: Profile, filters: Dict[str, Any],
                      page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
        """
        One page of expenses visible to the actor, newest first.

        Returns:
            dict: data, total, page, limit, totalPages
        """
        page = max(page or 1, 1)
        limit = min(max(limit or DEFAULT_PAGE_SIZE, 1), MAX_PAGE_SIZE)

        criteria = self._filter_criteria(actor, filters)
        if criteria is None:
            return {'data': [], 'total': 0, 'page': page, 'limit': limit, 'totalPages': 0}

        expenses, total, legacy = self._fetch(criteria, offset=(page - 1) * limit, limit=limit)

        return {
            'data': self.enrich_expenses(expenses, persist_names=not legacy),
            'total': total,
            'page': page,
            'limit': limit,
            'totalPages': math.ceil(total / limit),
        }

    def export_rows(self, actor: Profile, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Every expense matching the filters, enriched, for CSV/Excel export."""
        criteria = self._filter_criteria(actor, filters)
        if criteria is None:
            return []
        expenses, _, legacy = self._fetch(criteria)
        return self.enrich_expenses(expenses, persist_names=not legacy)

    # Writes

    def _get_for_actor(self, actor: Profile, expense_id: str, action: str) -> Tuple[Expense, bool]:
        """
        Load an expense the actor may act on.

        Returns:
            tuple: (expense, legacy). A legacy table is read through the
            essential columns; that expense is not attached to the session.
        """
        legacy = False
        try:
            expense = db.session.get(Expense, expense_id)
        except SQLAlchemyError as e:
            db.session.rollback()
            if not TransactionHelper.is_missing_column_error(e):
                raise
            logger.warning(f"EXPENSE_SCHEMA_FALLBACK: loading expense {expense_id} from essential columns")
            row = db.session.execute(self._base_column_select(Expense.id == expense_id)).mappings().first()
            expense = Expense(**dict(row)) if row else None
            legacy = True

        if not expense:
            raise NotFoundError('Expense not found')
        if not _is_admin(actor) and expense.driver_id != actor.id:
            raise PermissionDeniedError(f'You do not have permission to {action} this expense')
        return expense, legacy

    def _upload_proof(self, file, platform: str) -> Optional[str]:
        if not file or not file.filename or FileService.file_size(file) == 0:
            return None
        url = self.file_service.upload_receipt(file)
        if not url:
            logger.error(f"Failed to upload {platform} proof")
            raise StorageError(f'Failed to upload {platform} screenshot. Please try again.')
        return url

    def _driver_snapshot(self, driver_id: Optional[str]) -> Dict[str, Optional[str]]:
        if not driver_id:
            return {'driver_name': None, 'vehicle_number': None}
        profile = db.session.get(Profile, driver_id)
        vehicle = Vehicle.query.filter_by(driver_id=driver_id).first()
        return {
            'driver_name': profile.name if profile else None,
            'vehicle_number': vehicle.vehicle_number if vehicle else None,
        }

    def _insert_with_fallback(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert an expense, degrading the column set on legacy schemas.

        Attempts: every column; without the snapshot and purpose columns;
        the essential columns only.
        """
        attempts = [
            payload,
            {k: v for k, v in payload.items() if k not in SNAPSHOT_COLUMNS},
            {k: v for k, v in payload.items() if k in ESSENTIAL_COLUMNS},
        ]
        model_columns = Expense.__table__.c

        for attempt, values in enumerate(attempts, 1):
            target = table('expenses', *[column(name, model_columns[name].type) for name in values])
            try:
                db.session.execute(insert(target).values(**values))
                db.session.commit()
            except SQLAlchemyError as e:
                db.session.rollback()
                if TransactionHelper.is_not_null_violation(e, 'driver_id'):
                    raise SchemaMismatchError(
                        'Database migration required',
                        hint=MIGRATION_HINT,
                        details='The driver_id column must allow NULL values for admin expenses.')
                if not TransactionHelper.is_missing_column_error(e):
                    raise
                if attempt == len(attempts):
                    raise SchemaMismatchError(
                        'Failed to create expense',
                        hint='Run database migrations if you see column-related errors',
                        details=str(getattr(e, 'orig', e)))
                logger.warning(f"Expense insert attempt {attempt} hit a missing column, "
                               f"retrying with fewer columns: {str(getattr(e, 'orig', e))}")
                continue

            if attempt == 1:
                return db.session.get(Expense, values['id']).to_dict()
            logger.warning(f"Expense {values['id']} stored with reduced columns (attempt {attempt})")
            return Expense(**values).to_dict()

    def create_expense(self, actor: Profile, form, files) -> Dict[str, Any]:
        """
        Record an expense and/or revenue entry.

        Args:
            actor: Logged in driver or admin
            form: Multipart form fields
            files: Multipart files (receipts, uber_proof, rapido_proof)

        Returns:
            dict: The stored expense

        Raises:
            ValidationError, NotFoundError, StorageError, SchemaMismatchError
        """
        is_admin = _is_admin(actor)

        values = {}
        for field, label in NUMERIC_FIELDS:
            parsed = parse_amount(form.get(field))
            if parsed is None:
                raise ValidationError(f'Invalid {label} value')
            values[field] = parsed

        raw_date = normalize_date(form.get('date'))
        if not raw_date:
            raise ValidationError('Date is required')
        expense_date = parse_iso_date(raw_date)
        if not expense_date:
            raise ValidationError('Invalid date format. Use YYYY-MM-DD or DD/MM/YYYY')

        category = self._parse_category(form.get('category'))
        if not category:
            if not is_admin:
                raise ValidationError('Category is required')
            category = ExpenseCategory.OTHER

        # Drivers report platform revenue; the total is their sum
        if not is_admin and (values['uber_revenue'] > 0 or values['rapido_revenue'] > 0):
            values['total_revenue'] = float(round_amount(values['uber_revenue'] + values['rapido_revenue']))

        if not any(values[field] > 0 for field, _ in NUMERIC_FIELDS):
            raise ValidationError('At least one of Revenue or Expense must be greater than 0')

        if is_admin:
            driver_id = clean_optional_text(form.get('driver_id'))
            if driver_id:
                driver = db.session.get(Profile, driver_id)
                if not driver or driver.role != UserRole.DRIVER:
                    raise NotFoundError('Driver not found')
        else:
            driver_id = actor.id

        receipt_urls = self.file_service.upload_multiple_receipts(files.getlist('receipts'))
        uber_proof_url = self._upload_proof(files.get('uber_proof'), 'Uber')
        rapido_proof_url = self._upload_proof(files.get('rapido_proof'), 'Rapido')

        snapshot = self._driver_snapshot(driver_id)

        payload = {
            'id': new_uuid(),
            'driver_id': driver_id,
            'date': expense_date,
            'category': category,
            'amount': values['amount'],
            'note': clean_optional_text(form.get('note')),
            'purpose': clean_optional_text(form.get('purpose')),
            'receipt_url': encode_receipt_urls(receipt_urls),
            'total_revenue': values['total_revenue'],
            'uber_revenue': values['uber_revenue'],
            'rapido_revenue': values['rapido_revenue'],
            'uber_proof_url': uber_proof_url,
            'rapido_proof_url': rapido_proof_url,
            'created_at': get_ist_time_naive(),
        }
        payload.update({k: v for k, v in snapshot.items() if v})

        logger.info(f"Creating expense for driver={driver_id or 'admin'} date={expense_date} "
                    f"category={category.value} amount={values['amount']} receipts={len(receipt_urls)} "
                    f"uber_proof={bool(uber_proof_url)} rapido_proof={bool(rapido_proof_url)}")

        expense = self._insert_with_fallback(payload)

        self.notification_service.notify_high_value_expense(
            snapshot['driver_name'] or actor.name, values['amount'], category.value, expense_date.isoformat())

        return expense

    def update_expense(self, actor: Profile, expense_id: str, form, files) -> Dict[str, Any]:
        """
        Apply the fields present in the form.

        Amounts are rounded to whole rupees, blank note/purpose clear the
        field, and new receipts replace the stored list. Upload failures
        are logged and skipped. On a legacy table only the submitted columns
        are written, so a field the table lacks fails with a schema mismatch.
        """
        expense, legacy = self._get_for_actor(actor, expense_id, 'update')
        updates = {}

        if form.get('date'):
            parsed = parse_iso_date(normalize_date(form.get('date')))
            if not parsed:
                raise ValidationError('Invalid date format. Use YYYY-MM-DD or DD/MM/YYYY')
            updates['date'] = parsed

        category = self._parse_category(form.get('category'))
        if category:
            updates['category'] = category

        for field, label in NUMERIC_FIELDS:
            raw = form.get(field)
            if raw is not None and raw.strip():
                parsed = parse_amount(raw)
                if parsed is None:
                    raise ValidationError(f'Invalid {label} value')
                updates[field] = round_amount(parsed)

        for field in ('note', 'purpose'):
            if field in form:
                updates[field] = clean_optional_text(form.get(field))

        receipt_urls = self.file_service.upload_multiple_receipts(files.getlist('receipts'))
        if receipt_urls:
            updates['receipt_url'] = encode_receipt_urls(receipt_urls)

        for field, platform in (('uber_proof', 'Uber'), ('rapido_proof', 'Rapido')):
            try:
                url = self._upload_proof(files.get(field), platform)
            except StorageError as e:
                logger.warning(f"Keeping existing {platform} proof on expense {expense_id}: {e.message}")
                continue
            if url:
                updates[f'{field}_url'] = url

        if not updates:
            raise ValidationError('No fields to update')

        for field, value in updates.items():
            setattr(expense, field, value)

        try:
            if legacy:
                model_columns = Expense.__table__.c
                target = table('expenses', column('id', model_columns.id.type),
                               *[column(name, model_columns[name].type) for name in updates])
                db.session.execute(update(target).where(target.c.id == expense_id).values(**updates))
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            if TransactionHelper.is_missing_column_error(e):
                raise SchemaMismatchError(
                    'Database schema mismatch',
                    hint=MIGRATION_HINT,
                    details='One or more columns do not exist in the database. Please check database migrations.')
            raise

        logger.info(f"Expense {expense_id} updated by {actor.role.value} {actor.id}: {sorted(updates)}")
        return expense.to_dict()

    def delete_expense(self, actor: Profile, expense_id: str) -> None:
        """Delete an expense, then remove its stored files best-effort."""
        expense, legacy = self._get_for_actor(actor, expense_id, 'delete')
        stored_urls = expense.receipt_urls + [url for url in (expense.uber_proof_url,
                                                              expense.rapido_proof_url) if url]

        if legacy:
            db.session.execute(delete(Expense.__table__).where(Expense.__table__.c.id == expense_id))
        else:
            db.session.delete(expense)
        db.session.commit()
        logger.info(f"Expense {expense_id} deleted by {actor.role.value} {actor.id}")

        for url in stored_urls:
            if not self.file_service.delete_receipt(url):
                logger.warning(f"Stored file for deleted expense {expense_id} not removed: {url}")
