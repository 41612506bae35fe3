# EduSched Configuration

import os
import logging
from logging.handlers import RotatingFileHandler
from datetime import timedelta
from pathlib import Path

# Base directory (project root)
BASE_DIR = Path(__file__).parent.parent.absolute()

LOG_FORMAT = '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'


def _env_flag(name, default='False'):
    return os.environ.get(name, default).lower() in ['true', 'on', '1']


class Config:
    """Base configuration class"""

    # Flask Configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'edusched-secret-key-change-me'

    # Database Configuration
    DATABASE_PATH = os.environ.get('DATABASE_PATH') or str(BASE_DIR / 'database' / 'edusched.db')

    # Export Configuration
    REPORTS_FOLDER = str(BASE_DIR / 'reports')
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB

    # QR Code Configuration
    QR_CODE_BOX_SIZE = 10
    QR_CODE_BORDER = 4
    ATTENDANCE_QR_MAX_AGE_DAYS = 7

    # Session Configuration
    PERMANENT_SESSION_LIFETIME = timedelta(hours=8)
    SESSION_COOKIE_SECURE = False
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Security Configuration
    PASSWORD_MIN_LENGTH = 6
    MAX_LOGIN_ATTEMPTS = 5
    LOGIN_LOCKOUT_MINUTES = 15

    # Timetable generation (OpenAI)
    OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY')
    OPENAI_MODEL = os.environ.get('OPENAI_MODEL') or 'gpt-4o-mini'
    OPENAI_TEMPERATURE = 0.2
    OPENAI_TIMEOUT = float(os.environ.get('OPENAI_TIMEOUT') or 60)

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_FILE = str(BASE_DIR / 'logs' / 'edusched.log')
    LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT = 5

    DEBUG = _env_flag('DEBUG')
    TESTING = False

    @classmethod
    def directories(cls, app):
        paths = [app.config['REPORTS_FOLDER']]
        if app.config['DATABASE_PATH'] != ':memory:':
            paths.append(os.path.dirname(app.config['DATABASE_PATH']))
        return [p for p in paths if p]

    @classmethod
    def init_app(cls, app):
        """Create necessary directories and configure logging"""
        for directory in cls.directories(app):
            Path(directory).mkdir(parents=True, exist_ok=True)

        configure_logging(app)


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    DATABASE_PATH = os.environ.get('DATABASE_PATH') or str(BASE_DIR / 'database' / 'edusched_dev.db')
    LOG_LEVEL = 'DEBUG'


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = True
    DATABASE_PATH = ':memory:'
    OPENAI_API_KEY = None
    MAX_LOGIN_ATTEMPTS = 3


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SESSION_COOKIE_SECURE = True
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'WARNING'

    @classmethod
    def init_app(cls, app):
        Config.init_app(app)

        if not app.debug:
            Path(app.config['LOG_FILE']).parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                app.config['LOG_FILE'],
                maxBytes=app.config['LOG_MAX_BYTES'],
                backupCount=app.config['LOG_BACKUP_COUNT']
            )
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            file_handler.setLevel(logging.INFO)
            app.logger.addHandler(file_handler)
            app.logger.info('EduSched startup')


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def configure_logging(app):
    """Configure root logging at the application's LOG_LEVEL"""
    level = getattr(logging, str(app.config['LOG_LEVEL']).upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    app.logger.setLevel(level)


def validate_config(app):
    """Validate configuration settings, returning a list of error strings"""
    errors = []

    if not app.config.get('SECRET_KEY'):
        errors.append("SECRET_KEY must be set")

    if not app.config.get('DATABASE_PATH'):
        errors.append("DATABASE_PATH must be set")

    if app.config.get('PASSWORD_MIN_LENGTH', 0) < 1:
        errors.append("PASSWORD_MIN_LENGTH must be positive")

    if app.config.get('ATTENDANCE_QR_MAX_AGE_DAYS', 0) < 0:
        errors.append("ATTENDANCE_QR_MAX_AGE_DAYS cannot be negative")

    if not app.testing and not app.config.get('OPENAI_API_KEY'):
        app.logger.warning("OPENAI_API_KEY is not set; timetable generation is disabled")

    return errors


def init_config(app, config_name=None, overrides=None):
    """Initialize application with configuration"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'default')

    config_class = config.get(config_name, DevelopmentConfig)
    app.config.from_object(config_class)
    if overrides:
        app.config.update(overrides)

    config_class.init_app(app)

    errors = validate_config(app)
    if errors:
        for error in errors:
            app.logger.error(f"Configuration error: {error}")
        raise RuntimeError("Configuration validation failed")

    return config_class
