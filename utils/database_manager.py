"""
Database Management Utilities

Connection checks, row counts and the idempotent migration that brings a
legacy deployment up to the current schema:
- adds the optional profile/expense columns that older databases lack
- relaxes expenses.driver_id to NULL so admins can record driver-less expenses
"""

import logging
from typing import Optional, Dict, List, Tuple
from sqlalchemy import text, inspect
from sqlalchemy.exc import SQLAlchemyError
from models import db

logger = logging.getLogger(__name__)

# Columns added after the first deployment, per table
OPTIONAL_COLUMNS = {
    'profiles': ('phone_number', 'vehicle_number'),
    'expenses': ('driver_name', 'vehicle_number', 'purpose', 'total_revenue',
                 'uber_revenue', 'rapido_revenue', 'uber_proof_url', 'rapido_proof_url'),
}

UNIQUE_INDEXES = {
    'profiles_phone_number_key': ('profiles', 'phone_number'),
}


class DatabaseManager:
    """Database checks and schema upgrades for the management CLI."""

    def test_connection(self) -> Tuple[bool, Optional[str]]:
        """
        Test database connection and return status.

        Returns:
            Tuple[bool, Optional[str]]: (success, error_message)
        """
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection test: SUCCESS")
            return True, None
        except SQLAlchemyError as e:
            error_msg = f"Database connection failed: {str(e)}"
            logger.error(error_msg)
            return False, error_msg

    def table_counts(self) -> Dict[str, Optional[int]]:
        """Row count per model table; None for tables that do not exist."""
        existing = set(inspect(db.engine).get_table_names())
        counts = {}
        with db.engine.connect() as conn:
            for table_name in db.metadata.tables:
                if table_name not in existing:
                    counts[table_name] = None
                    continue
                counts[table_name] = conn.execute(
                    text(f'SELECT COUNT(*) FROM "{table_name}"')).scalar()
        return counts

    def missing_columns(self) -> Dict[str, List[str]]:
        """Optional columns absent from the live schema, per table."""
        inspector = inspect(db.engine)
        existing_tables = set(inspector.get_table_names())
        missing = {}
        for table_name, columns in OPTIONAL_COLUMNS.items():
            if table_name not in existing_tables:
                continue
            present = {col['name'] for col in inspector.get_columns(table_name)}
            absent = [name for name in columns if name not in present]
            if absent:
                missing[table_name] = absent
        return missing

    def driver_id_nullable(self) -> Optional[bool]:
        """Whether expenses.driver_id accepts NULL; None if the table is absent."""
        inspector = inspect(db.engine)
        if 'expenses' not in inspector.get_table_names():
            return None
        for col in inspector.get_columns('expenses'):
            if col['name'] == 'driver_id':
                return bool(col['nullable'])
        return None

    def _column_ddl(self, table_name: str, column_name: str) -> str:
        column = db.metadata.tables[table_name].c[column_name]
        ddl = f'ALTER TABLE {table_name} ADD COLUMN {column_name} {column.type.compile(dialect=db.engine.dialect)}'
        if column.default is not None and column.default.is_scalar:
            ddl += f' DEFAULT {column.default.arg!r}'
        return ddl

    def run_migration(self) -> Tuple[bool, List[str]]:
        """
        Create missing tables, add missing optional columns and make
        expenses.driver_id nullable. Safe to run repeatedly.

        Returns:
            Tuple[bool, List[str]]: (driver_id nullable afterwards, steps applied)
        """
        applied = []
        db.create_all()
        missing = self.missing_columns()
        was_nullable = self.driver_id_nullable()

        with db.engine.begin() as conn:
            for table_name, columns in missing.items():
                for column_name in columns:
                    conn.execute(text(self._column_ddl(table_name, column_name)))
                    applied.append(f"added {table_name}.{column_name}")

            for index_name, (table_name, column_name) in UNIQUE_INDEXES.items():
                conn.execute(text(f'CREATE UNIQUE INDEX IF NOT EXISTS {index_name} '
                                  f'ON {table_name} ({column_name})'))

            if db.engine.dialect.name == 'postgresql' and was_nullable is False:
                conn.execute(text('ALTER TABLE expenses ALTER COLUMN driver_id DROP NOT NULL'))
                applied.append("expenses.driver_id now allows NULL")

        for step in applied:
            logger.info(f"MIGRATION: {step}")

        nullable = self.driver_id_nullable()
        if nullable is False:
            logger.error("MIGRATION: expenses.driver_id is still NOT NULL")
        return bool(nullable), applied


database_manager = DatabaseManager()
