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

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'wms')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'wms')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'wms')

        DATABASE_URL = (
            f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Redis Cache Configuration
    # Packaging hierarchies are read far more often than they are written
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_HIERARCHY_TTL = int(os.getenv('CACHE_HIERARCHY_TTL', '600'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'wms')

    # Composition engine
    # Operational stacking ceiling in cm (pallets carry no usable stack height)
    COMPOSITION_MAX_HEIGHT_CM = int(os.getenv('COMPOSITION_MAX_HEIGHT_CM', '200'))
    # Packages a single calculation may lay out
    COMPOSITION_MAX_ITEMS = int(os.getenv('COMPOSITION_MAX_ITEMS', '10000'))
    COMPOSITION_PAGE_SIZE = int(os.getenv('COMPOSITION_PAGE_SIZE', '20'))

    # Reports
    REPORT_TITLE = os.getenv('REPORT_TITLE', 'Reporte de Composición')
    BUSINESS_NAME = os.getenv('BUSINESS_NAME', '')


class TestingConfig(Config):
    """Configuration used by the test suite (in-memory SQLite, no Redis)."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    CACHE_ENABLED = False
