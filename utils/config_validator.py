"""
Production configuration validation
Checks the environment variables the API depends on and reports what is missing
"""
import os
import logging
from typing import Dict, List, Tuple, Any

logger = logging.getLogger(__name__)


def validate_jwt_config() -> Tuple[bool, List[str]]:
    """
    Validate token signing configuration.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []

    secret = os.getenv('JWT_SECRET_KEY') or os.getenv('SESSION_SECRET')
    if not secret:
        issues.append("Missing JWT_SECRET_KEY environment variable")
    elif len(secret) < 32:
        issues.append("JWT_SECRET_KEY should be at least 32 characters for security")

    expires_days = os.getenv('JWT_ACCESS_TOKEN_EXPIRES_DAYS', '7')
    if not expires_days.isdigit() or int(expires_days) < 1:
        issues.append("JWT_ACCESS_TOKEN_EXPIRES_DAYS must be a positive whole number")

    return len(issues) == 0, issues


def validate_database_config() -> Tuple[bool, List[str]]:
    """
    Validate the database URL.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []

    database_url = os.getenv('DATABASE_URL', '')
    if not database_url:
        issues.append("DATABASE_URL not set - using local SQLite database")
    elif not database_url.startswith(('postgres://', 'postgresql://', 'postgresql+psycopg2://', 'sqlite:')):
        issues.append("DATABASE_URL must be a PostgreSQL or SQLite URL")

    return len(issues) == 0, issues


def validate_storage_config() -> Tuple[bool, List[str]]:
    """
    Validate Supabase Storage configuration for receipt uploads.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []

    supabase_url = os.getenv('SUPABASE_URL') or os.getenv('NEXT_PUBLIC_SUPABASE_URL')
    service_key = os.getenv('SUPABASE_SERVICE_ROLE_KEY')

    if not supabase_url:
        issues.append("Missing Supabase URL (SUPABASE_URL)")
    elif not supabase_url.startswith('https://'):
        issues.append("SUPABASE_URL must start with https://")
    if not service_key:
        issues.append("Missing Supabase service role key (SUPABASE_SERVICE_ROLE_KEY)")

    return len(issues) == 0, issues


def check_production_readiness() -> Dict[str, Any]:
    """
    Check of production readiness across token, database and storage settings.

    Returns:
        dict: Status information including issues and recommendations
    """
    jwt_valid, jwt_issues = validate_jwt_config()
    db_valid, db_issues = validate_database_config()
    storage_valid, storage_issues = validate_storage_config()

    all_issues = jwt_issues + db_issues + storage_issues
    is_production_ready = jwt_valid and db_valid and storage_valid

    result = {
        'production_ready': is_production_ready,
        'jwt_configured': jwt_valid,
        'database_configured': db_valid,
        'storage_backend': 'supabase' if storage_valid else 'local',
        'issues': all_issues,
        'recommendations': []
    }

    if not db_valid:
        result['recommendations'].append("Point DATABASE_URL at the Supabase Postgres instance")

    if not storage_valid:
        result['recommendations'].append("Configure Supabase Storage so receipts survive redeploys")

    if is_production_ready:
        logger.info("CONFIG: Production readiness check PASSED")
    else:
        logger.warning(f"CONFIG: Production readiness check FAILED - Issues: {len(all_issues)}")
        for issue in all_issues:
            logger.warning(f"CONFIG: Issue - {issue}")

    return result


def get_config_status() -> str:
    """
    Get a human-readable status of the deployment configuration.

    Returns:
        str: Configuration status message
    """
    status = check_production_readiness()

    if status['production_ready']:
        return "✅ Production-ready: Postgres database and Supabase Storage configured"
    elif not status['jwt_configured']:
        return "❌ Token signing is misconfigured"
    elif status['storage_backend'] == 'local':
        return "⚠️ Receipts are stored on local disk (development only)"
    else:
        return f"❌ {len(status['issues'])} configuration issues"
