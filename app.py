import os
import logging
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from sqlalchemy.orm import DeclarativeBase
from werkzeug.middleware.proxy_fix import ProxyFix
from datetime import timedelta
from timezone_utils import get_ist_time

logger = logging.getLogger(__name__)

class Base(DeclarativeBase):
    pass

db = SQLAlchemy(model_class=Base)
jwt = JWTManager()

def create_app():
    # Create the app
    app = Flask(__name__)

    # Token signing secret is mandatory; SESSION_SECRET kept for older deployments
    secret_key = os.environ.get("JWT_SECRET_KEY") or os.environ.get("SESSION_SECRET")
    if not secret_key:
        raise RuntimeError("JWT_SECRET_KEY environment variable is required but not set")
    app.secret_key = secret_key

    # Trust one proxy hop for client IP, scheme and host
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    from utils.logging_config import setup_logging, log_request_start, log_request_end
    setup_logging(app)

    production_origins = os.environ.get('ALLOWED_ORIGINS', '').split(',')
    allowed_origins = [origin.strip() for origin in production_origins if origin.strip()]

    # Fallback to localhost for development only if no production origins set
    if not allowed_origins:
        allowed_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    CORS(app, origins=allowed_origins,
         supports_credentials=False,
         allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Correlation-ID"],
         expose_headers=["Content-Disposition", "X-Correlation-ID"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"])

    # Supabase exposes a plain Postgres URL; SQLite is for local development
    database_url = os.environ.get("DATABASE_URL") or "sqlite:///fleet_expenses.db"

    if database_url.startswith(("postgresql://", "postgres://")):
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql+psycopg2://", 1)
        else:
            database_url = database_url.replace("postgresql://", "postgresql+psycopg2://", 1)

        from urllib.parse import urlparse
        parsed = urlparse(database_url)
        logger.info(f"Connecting to PostgreSQL: host={parsed.hostname}, db={parsed.path[1:]}, "
                    f"user={parsed.username}, password_present={bool(parsed.password)}")

        app.config["SQLALCHEMY_DATABASE_URI"] = database_url
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
            "pool_size": 5,
            "pool_recycle": 280,  # Supabase pooler drops idle connections at 5 minutes
            "pool_pre_ping": True,
            "max_overflow": 10,
            "pool_timeout": 20,
            "connect_args": {
                "sslmode": "require",
                "connect_timeout": 10,
                "application_name": "fleet_expenses",
            }
        }
    else:
        app.config["SQLALCHEMY_DATABASE_URI"] = database_url
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
            "pool_pre_ping": True,
        }

    # Uploads
    app.config["UPLOAD_FOLDER"] = os.environ.get("UPLOAD_FOLDER", "uploads")
    app.config["MAX_CONTENT_LENGTH"] = 50 * 1024 * 1024
    app.config["SUPABASE_URL"] = (os.environ.get("SUPABASE_URL")
                                  or os.environ.get("NEXT_PUBLIC_SUPABASE_URL", "")).rstrip('/')
    app.config["SUPABASE_SERVICE_ROLE_KEY"] = os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")
    app.config["SUPABASE_STORAGE_BUCKET"] = os.environ.get("SUPABASE_STORAGE_BUCKET", "receipts")

    app.config["HIGH_VALUE_EXPENSE_THRESHOLD"] = float(
        os.environ.get("HIGH_VALUE_EXPENSE_THRESHOLD", "5000"))

    # JWT Configuration
    app.config['JWT_SECRET_KEY'] = secret_key
    app.config['JWT_ACCESS_TOKEN_EXPIRES'] = timedelta(
        days=int(os.environ.get('JWT_ACCESS_TOKEN_EXPIRES_DAYS', '7')))
    app.config['JWT_ALGORITHM'] = 'HS256'

    # Initialize extensions
    db.init_app(app)
    jwt.init_app(app)

    app.before_request(log_request_start)
    app.after_request(log_request_end)

    @app.errorhandler(413)
    def request_entity_too_large(error):
        return jsonify({'error': 'Uploaded files are too large'}), 413

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({'error': 'Internal server error'}), 500

    from utils.config_validator import get_config_status
    logger.info(f"Configuration: {get_config_status()}")

    # Register blueprints
    from auth import auth_bp
    from driver_routes import driver_bp
    from vehicle_routes import vehicle_bp
    from expense_routes import expense_bp
    from analytics_routes import analytics_bp
    from storage_routes import storage_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(driver_bp, url_prefix='/api/drivers')
    app.register_blueprint(vehicle_bp, url_prefix='/api/vehicles')
    app.register_blueprint(expense_bp, url_prefix='/api/expenses')
    app.register_blueprint(analytics_bp, url_prefix='/api/analytics')
    app.register_blueprint(storage_bp)

    from auth import register_jwt_callbacks
    register_jwt_callbacks(jwt)

    with app.app_context():
        import models  # noqa: F401
        db.create_all()

    # Health check endpoint for deployment
    @app.route('/health')
    def health():
        """Simple health check endpoint for deployment readiness"""
        return {'status': 'ok', 'timestamp': get_ist_time().isoformat()}, 200

    return app
