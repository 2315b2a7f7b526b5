"""Configuration module for Flask application."""
import os
from decimal import Decimal
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '0') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'tasador')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'tasador')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'tasador')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', '0') == '1'

    # Billing
    IVA_RATE = Decimal(os.getenv('IVA_RATE', '0.21'))
    BILLING_CURRENCY = os.getenv('BILLING_CURRENCY', 'ARS')
    GRACE_PERIOD_DAYS = int(os.getenv('GRACE_PERIOD_DAYS', '2'))
    TRIAL_DAYS = int(os.getenv('TRIAL_DAYS', '15'))
    DEFAULT_CYCLE_DAYS = int(os.getenv('DEFAULT_CYCLE_DAYS', '30'))

    # Mercado Pago
    MP_ACCESS_TOKEN = os.getenv('MERCADOPAGO_ACCESS_TOKEN') or os.getenv('MP_ACCESS_TOKEN')
    MP_WEBHOOK_SECRET = os.getenv('MP_WEBHOOK_SECRET')
    SITE_URL = os.getenv('SITE_URL', 'http://localhost:5000')
