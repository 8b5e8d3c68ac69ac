"""
Tests for the database management CLI and schema migration
"""

import pytest
from sqlalchemy import inspect, text

import database_commands
from app import db
from models import Profile, UserRole
from services.auth_service import AuthService
from utils.database_manager import database_manager
from tests.factories import AdminFactory, ProfileFactory

LEGACY_EXPENSES = """
CREATE TABLE expenses (
    id VARCHAR(36) PRIMARY KEY,
    driver_id VARCHAR(36),
    date DATE NOT NULL,
    category VARCHAR(20) NOT NULL,
    amount FLOAT NOT NULL,
    note TEXT,
    receipt_url TEXT,
    created_at DATETIME
)
"""


@pytest.fixture
def cli_app(app, monkeypatch):
    """Run CLI commands against the test database"""
    monkeypatch.setattr(database_commands, 'setup_app_context', app.app_context)
    return app


@pytest.fixture
def legacy_expenses(app):
    with db.engine.begin() as conn:
        conn.execute(text('DROP TABLE expenses'))
        conn.execute(text(LEGACY_EXPENSES))


class TestDatabaseManager:

    def test_connection(self, app):
        assert database_manager.test_connection() == (True, None)

    def test_counts(self, app, admin_user):
        counts = database_manager.table_counts()
        assert counts['profiles'] == 1
        assert counts['expenses'] == 0

    def test_current_schema_needs_nothing(self, app):
        assert database_manager.missing_columns() == {}
        assert database_manager.driver_id_nullable() is True

    def test_migration_adds_columns(self, app, legacy_expenses):
        assert 'driver_name' in database_manager.missing_columns()['expenses']

        nullable, applied = database_manager.run_migration()

        assert nullable is True
        assert 'added expenses.driver_name' in applied
        assert 'added expenses.rapido_proof_url' in applied
        columns = {col['name'] for col in inspect(db.engine).get_columns('expenses')}
        assert {'purpose', 'total_revenue', 'uber_proof_url'} <= columns
        assert database_manager.missing_columns() == {}

    def test_migration_is_repeatable(self, app, legacy_expenses):
        database_manager.run_migration()
        assert database_manager.run_migration() == (True, [])


class TestCommands:

    def test_create_admin(self, cli_app, capsys):
        database_commands.main(['create-admin', '--email', 'Owner@Fleet.com',
                                '--password', 'secret1', '--name', 'Owner'])

        assert '✅ Admin owner@fleet.com created' in capsys.readouterr().out
        admin = Profile.query.filter_by(email='owner@fleet.com').one()
        assert admin.role == UserRole.ADMIN
        assert AuthService().authenticate_user('owner@fleet.com', 'secret1').id == admin.id

    def test_create_admin_existing_is_noop(self, cli_app, capsys):
        admin = AdminFactory()
        database_commands.main(['create-admin', '--email', admin.email, '--password', 'secret1'])
        assert 'already exists' in capsys.readouterr().out
        assert Profile.query.filter_by(role=UserRole.ADMIN).count() == 1

    def test_create_admin_email_held_by_driver(self, cli_app, capsys):
        ProfileFactory(email='ravi@fleet.com')
        with pytest.raises(SystemExit):
            database_commands.main(['create-admin', '--email', 'ravi@fleet.com', '--password', 'secret1'])

        out = capsys.readouterr().out
        assert 'ravi@fleet.com already belongs to a driver account' in out
        assert 'already exists' not in out
        assert Profile.query.filter_by(role=UserRole.ADMIN).count() == 0

    def test_create_admin_short_password(self, cli_app):
        with pytest.raises(SystemExit):
            database_commands.main(['create-admin', '--password', '123'])
        assert Profile.query.count() == 0

    def test_update_admin(self, cli_app):
        admin = AdminFactory()
        database_commands.main(['update-admin', '--email', admin.email,
                                '--new-email', 'boss@fleet.com', '--password', 'newpass1'])

        db.session.expire_all()
        assert AuthService().authenticate_user('boss@fleet.com', 'newpass1') is not None

    def test_update_admin_email_taken(self, cli_app):
        admin = AdminFactory()
        other = AdminFactory()
        with pytest.raises(SystemExit):
            database_commands.main(['update-admin', '--email', admin.email, '--new-email', other.email])

    def test_update_admin_ignores_drivers(self, cli_app):
        driver = ProfileFactory(email='driver@fleet.com')
        with pytest.raises(SystemExit):
            database_commands.main(['update-admin', '--email', driver.email, '--password', 'newpass1'])

    def test_migrate_command(self, cli_app, legacy_expenses, capsys):
        database_commands.main(['migrate'])
        out = capsys.readouterr().out
        assert 'added expenses.purpose' in out
        assert 'Migration completed' in out

    def test_status(self, cli_app, capsys):
        database_commands.main(['status'])
        out = capsys.readouterr().out
        assert 'HEALTHY' in out
        assert 'expenses: 0 records' in out

    def test_no_command(self):
        with pytest.raises(SystemExit):
            database_commands.main([])
