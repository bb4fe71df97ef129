"""
Configuration settings for Fleetwatch
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).parent.absolute()

APP_VERSION = '1.0.0'


def _env_float(name, default):
    return float(os.environ.get(name, default))


def _env_int(name, default):
    return int(os.environ.get(name, default))


class Config:
    """Base configuration"""
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')

    # Upload settings
    MAX_CONTENT_LENGTH = 50 * 1024 * 1024  # 50MB max log upload

    # Database
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', f'sqlite:///{BASE_DIR}/fleetwatch.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Periodic checks (crontab syntax, UTC)
    SCHEDULER_ENABLED = os.environ.get('SCHEDULER_ENABLED', '1') not in ('0', 'false', 'False')
    SILENCE_CHECK_CRON = os.environ.get('SILENCE_CHECK_CRON', '*/15 * * * *')
    VOLUME_CHECK_CRON = os.environ.get('VOLUME_CHECK_CRON', '0 * * * *')
    HEALTH_COMPUTE_CRON = os.environ.get('HEALTH_COMPUTE_CRON', '0 */6 * * *')

    # Detection thresholds. These are tunable; the defaults keep the
    # historical behaviour of the fleet service.
    ANOMALY_HISTORY_WINDOW = _env_int('ANOMALY_HISTORY_WINDOW', 20)
    HEALTH_ERROR_WINDOW = _env_int('HEALTH_ERROR_WINDOW', 10)
    SPIKE_MULTIPLIER = _env_float('SPIKE_MULTIPLIER', 2.0)
    SILENCE_MULTIPLIER = _env_float('SILENCE_MULTIPLIER', 3.0)
    VOLUME_SIGMA = _env_float('VOLUME_SIGMA', 3.0)
    VOLUME_WINDOW_DAYS = _env_int('VOLUME_WINDOW_DAYS', 7)
    NEW_PATTERN_MIN_HISTORY = _env_int('NEW_PATTERN_MIN_HISTORY', 2)
    SUMMARY_TOP_N = _env_int('SUMMARY_TOP_N', 3)


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False

    def __init__(self):
        import secrets as _secrets
        # Use env var if set, otherwise generate a random key per instance
        self.SECRET_KEY = os.environ.get('SECRET_KEY') or _secrets.token_hex(32)


class TestingConfig(Config):
    """Testing configuration with an in-memory database"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SCHEDULER_ENABLED = False
    LOG_LEVEL = 'WARNING'


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
