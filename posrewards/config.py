"""
Configuration management for the POS Rewards service.
"""
import os
from dotenv import load_dotenv

load_dotenv()


class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Identity provider session tokens (HS256 shared secret)
    AUTH_JWT_SECRET = os.getenv('AUTH_JWT_SECRET', 'dev-auth-secret')
    AUTH_JWT_AUDIENCE = os.getenv('AUTH_JWT_AUDIENCE', '')
    AUTH_JWT_ISSUER = os.getenv('AUTH_JWT_ISSUER', '')

    # Money
    DEFAULT_CURRENCY = os.getenv('DEFAULT_CURRENCY', 'USD')
    ZERO_DECIMAL_CURRENCIES = {
        'BIF', 'CLP', 'DJF', 'GNF', 'ISK', 'JPY', 'KMF', 'KRW', 'PYG',
        'RWF', 'UGX', 'VND', 'VUV', 'XAF', 'XOF', 'XPF',
    }

    # Loyalty defaults for stores that have never saved settings
    DEFAULT_LOYALTY_SETTINGS = {
        'points_per_dollar': '1.00',
        'redemption_rate': '0.01',
        'minimum_redemption': 100,
        'points_expiry_months': 12,
        'enabled': True,
    }

    # Background jobs
    ENABLE_SCHEDULER = os.getenv('ENABLE_SCHEDULER') == 'true'
    POINTS_EXPIRY_HOUR = int(os.getenv('POINTS_EXPIRY_HOUR', '3'))

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.getenv(
            'CORS_ORIGINS',
            'http://localhost:8081,http://localhost:19006,http://localhost:5173'
        ).split(',')
        if origin.strip()
    ]


class DevelopmentConfig(BaseConfig):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URL',
        'sqlite:///posrewards_dev.db'  # SQLite fallback for local dev
    )


class ProductionConfig(BaseConfig):
    """Production configuration."""
    DEBUG = False

    _db_url = os.getenv('DATABASE_URL', '')
    if _db_url.startswith('postgres://'):
        # SQLAlchemy requires postgresql:// not postgres://
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = _db_url

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 5,
        'pool_recycle': 300,
        'pool_pre_ping': True,
    }

    _secret_key = os.getenv('SECRET_KEY', '')
    _auth_secret = os.getenv('AUTH_JWT_SECRET', '')

    @classmethod
    def validate_secrets(cls) -> None:
        """
        Validate secrets in production environment.

        Raises:
            RuntimeError: If SECRET_KEY or AUTH_JWT_SECRET is missing or too short
        """
        if not cls._secret_key or len(cls._secret_key) < 32:
            raise RuntimeError(
                "CRITICAL: SECRET_KEY must be set to at least 32 characters in production.\n"
                "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )
        if not cls._auth_secret:
            raise RuntimeError(
                "CRITICAL: AUTH_JWT_SECRET is not set!\n"
                "Production deployments must verify identity provider tokens."
            )

    SECRET_KEY = _secret_key
    AUTH_JWT_SECRET = _auth_secret


class TestingConfig(BaseConfig):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    AUTH_JWT_SECRET = 'test-auth-secret'
    AUTH_JWT_AUDIENCE = ''
    AUTH_JWT_ISSUER = ''
    ENABLE_SCHEDULER = False


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}


def get_config(config_name: str = 'development'):
    """Get configuration class by name."""
    return config_map.get(config_name, DevelopmentConfig)


def validate_config(config_name: str = 'development') -> None:
    """
    Validate configuration before app startup.

    Raises:
        RuntimeError: If validation fails in production
    """
    if config_name == 'production':
        ProductionConfig.validate_secrets()
