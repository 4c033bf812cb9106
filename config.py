"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    TESTING = False

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    # CSRF (JSON clients send X-CSRFToken)
    WTF_CSRF_ENABLED = os.getenv('WTF_CSRF_ENABLED', 'true').lower() == 'true'

    # Database - Priority: DATABASE_URL > DB_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        DB_HOST = os.getenv('DB_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME', 'jewelbox')
        DB_USER = os.getenv('DB_USER', 'jewelbox')
        DB_PASSWORD = os.getenv('DB_PASSWORD', 'jewelbox')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'
    DB_POOL_SIZE = int(os.getenv('DB_POOL_SIZE', '10'))
    DB_MAX_OVERFLOW = int(os.getenv('DB_MAX_OVERFLOW', '20'))
    AUTO_CREATE_TABLES = os.getenv('AUTO_CREATE_TABLES', 'false').lower() == 'true'

    # Business Information (for statements and bills)
    BUSINESS_NAME = os.getenv('BUSINESS_NAME', 'Jewelbox')
    BUSINESS_ADDRESS = os.getenv('BUSINESS_ADDRESS', '')
    BUSINESS_PHONE = os.getenv('BUSINESS_PHONE', '')
    BUSINESS_EMAIL = os.getenv('BUSINESS_EMAIL', '')
    BUSINESS_GSTIN = os.getenv('BUSINESS_GSTIN', '')

    # Billing, pricing and ledger
    BILL_NUMBER_PREFIX = os.getenv('BILL_NUMBER_PREFIX', 'AJ')
    DEFAULT_GST_PERCENTAGE = int(os.getenv('DEFAULT_GST_PERCENTAGE', '3'))
    PRICE_HISTORY_LIMIT = int(os.getenv('PRICE_HISTORY_LIMIT', '50'))
    LEDGER_MAX_RETRIES = int(os.getenv('LEDGER_MAX_RETRIES', '3'))

    # Error tracking (production only)
    SENTRY_DSN = os.getenv('SENTRY_DSN')

    # Redis Cache Configuration
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'jewelbox')


class TestConfig(Config):
    """In-memory SQLite, no Redis, no CSRF."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SECRET_KEY = 'test-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    AUTO_CREATE_TABLES = False
    WTF_CSRF_ENABLED = False
    CACHE_ENABLED = False
    SENTRY_DSN = None
