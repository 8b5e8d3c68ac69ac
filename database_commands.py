#!/usr/bin/env python3
"""
Database Management Commands for Fleet Expenses

Usage:
    python database_commands.py --help
    python database_commands.py status
    python database_commands.py init-db
    python database_commands.py migrate
    python database_commands.py create-admin --email admin@fleet.com --password secret1 --name Admin
    python database_commands.py update-admin --email admin@fleet.com --new-email ops@fleet.com
"""

import os
import sys
import argparse
import logging
from app import create_app, db
from models import Profile, UserRole
from services.auth_service import AuthService
from services.exceptions import ServiceError
from utils.config_validator import get_config_status
from utils.database_manager import database_manager
from utils.validators import is_valid_email

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def setup_app_context():
    """Setup Flask application context for database operations."""
    # The CLI never issues tokens, a throwaway secret is enough
    if not os.environ.get('JWT_SECRET_KEY') and not os.environ.get('SESSION_SECRET'):
        os.environ['SESSION_SECRET'] = 'cli_temp_secret_not_for_production'

    app = create_app()
    return app.app_context()


def cmd_status(args):
    """Display database status information."""
    with setup_app_context():
        print("=" * 60)
        print("DATABASE STATUS REPORT")
        print("=" * 60)

        conn_success, conn_error = database_manager.test_connection()
        print(f"Connection Status: {'✅ HEALTHY' if conn_success else '❌ FAILED'}")
        if conn_error:
            print(f"Connection Error: {conn_error}")
            sys.exit(1)

        print()
        print(get_config_status())
        print()

        print("Table Statistics:")
        for table, count in database_manager.table_counts().items():
            print(f"  {table}: {'missing' if count is None else f'{count} records'}")

        missing = database_manager.missing_columns()
        if missing:
            print("\n⚠️  Missing columns (run `migrate`):")
            for table, columns in missing.items():
                print(f"  {table}: {', '.join(columns)}")

        if database_manager.driver_id_nullable() is False:
            print("\n⚠️  expenses.driver_id is NOT NULL; admin expenses will fail (run `migrate`)")


def cmd_init_db(args):
    """Create all tables that do not exist yet."""
    with setup_app_context():
        db.create_all()
        print("✅ Database tables created")


def cmd_migrate(args):
    """Bring a legacy schema up to date."""
    with setup_app_context():
        conn_success, conn_error = database_manager.test_connection()
        if not conn_success:
            print(f"❌ Connection test failed: {conn_error}")
            sys.exit(1)

        nullable, applied = database_manager.run_migration()
        for step in applied:
            print(f"  • {step}")
        if not applied:
            print("Schema already up to date")

        if nullable:
            print("✅ Migration completed: expenses.driver_id allows NULL")
        else:
            print("❌ Migration incomplete: expenses.driver_id is still NOT NULL")
            sys.exit(1)


def cmd_create_admin(args):
    """Create an admin account unless the email is already registered."""
    if len(args.password) < MIN_PASSWORD_LENGTH:
        print(f"❌ Password must be at least {MIN_PASSWORD_LENGTH} characters")
        sys.exit(1)

    if not is_valid_email(args.email):
        print(f"❌ Invalid email: {args.email}")
        sys.exit(1)

    with setup_app_context():
        email = args.email.strip().lower()
        existing = Profile.query.filter_by(email=email).first()
        if existing and existing.role == UserRole.ADMIN:
            print(f"Admin {email} already exists, nothing to do")
            return
        if existing:
            print(f"❌ {email} already belongs to a {existing.role.value} account")
            sys.exit(1)

        try:
            AuthService().create_user(args.name, args.password, UserRole.ADMIN, email=email)
            db.session.commit()
        except ServiceError as e:
            db.session.rollback()
            print(f"❌ {e.message}")
            sys.exit(1)

        print(f"✅ Admin {email} created")


def cmd_update_admin(args):
    """Change an admin's email and/or password."""
    if not args.new_email and not args.password:
        print("Nothing to update: pass --new-email and/or --password")
        sys.exit(1)

    if args.password and len(args.password) < MIN_PASSWORD_LENGTH:
        print(f"❌ Password must be at least {MIN_PASSWORD_LENGTH} characters")
        sys.exit(1)

    if args.new_email and not is_valid_email(args.new_email):
        print(f"❌ Invalid email: {args.new_email}")
        sys.exit(1)

    with setup_app_context():
        admin = Profile.query.filter_by(email=args.email.strip().lower(), role=UserRole.ADMIN).first()
        if not admin:
            print(f"❌ Admin {args.email} not found")
            sys.exit(1)

        if args.new_email:
            new_email = args.new_email.strip().lower()
            taken = Profile.query.filter(Profile.email == new_email, Profile.id != admin.id).first()
            if taken:
                print(f"❌ Email {new_email} is already in use")
                sys.exit(1)
            admin.email = new_email

        if args.password:
            admin.password_hash = AuthService.hash_password(args.password)

        db.session.commit()
        print(f"✅ Admin {admin.email} updated")


def build_parser():
    parser = argparse.ArgumentParser(
        description="Database Management Commands for Fleet Expenses",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('status', help='Display database status')
    subparsers.add_parser('init-db', help='Create missing tables')
    subparsers.add_parser('migrate', help='Add missing columns and allow NULL expenses.driver_id')

    create_parser = subparsers.add_parser('create-admin', help='Create an admin account')
    create_parser.add_argument('--email', default='admin@fleet.com', help='Admin email')
    create_parser.add_argument('--password', required=True, help='Admin password')
    create_parser.add_argument('--name', default='Admin', help='Display name')

    update_parser = subparsers.add_parser('update-admin', help='Update an admin account')
    update_parser.add_argument('--email', required=True, help='Current admin email')
    update_parser.add_argument('--new-email', help='New email')
    update_parser.add_argument('--password', help='New password')

    return parser


COMMANDS = {
    'status': cmd_status,
    'init-db': cmd_init_db,
    'migrate': cmd_migrate,
    'create-admin': cmd_create_admin,
    'update-admin': cmd_update_admin,
}


def main(argv=None):
    """Main command line interface."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        COMMANDS[args.command](args)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error occurred")
        print(f"❌ Unexpected error: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
