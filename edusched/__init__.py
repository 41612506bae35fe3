# EduSched - School Management Application
"""
EduSched application package.

Provides the Flask application factory and wires together the manager
modules: timetable generation, QR attendance, library checkout and
role-based dashboards.
"""

from flask import Flask

from .config import init_config
from .modules.database_manager import DatabaseManager
from .modules.qr_generator import QRGenerator
from .modules.auth_manager import AuthManager
from .modules.timetable_generator import TimetableGenerator
from .modules.schedule_manager import ScheduleManager
from .modules.attendance_manager import AttendanceManager
from .modules.library_manager import LibraryManager
from .modules.notification_system import NotificationSystem
from .modules.report_generator import ReportGenerator

__version__ = "1.0.0"
__description__ = "School management with LLM timetables, QR attendance and library checkout"


def build_components(app_config, llm_client=None):
    """
    Construct the manager instances for one application.

    Args:
        app_config: Flask config mapping
        llm_client: Optional chat-completions client used instead of OpenAI

    Returns:
        dict: Manager instances keyed by name
    """
    db_manager = DatabaseManager(app_config['DATABASE_PATH'])
    qr_generator = QRGenerator(
        box_size=app_config['QR_CODE_BOX_SIZE'],
        border=app_config['QR_CODE_BORDER']
    )
    timetable_generator = TimetableGenerator(
        client=llm_client,
        api_key=app_config.get('OPENAI_API_KEY'),
        model=app_config['OPENAI_MODEL'],
        temperature=app_config['OPENAI_TEMPERATURE'],
        timeout=app_config['OPENAI_TIMEOUT']
    )
    schedule_manager = ScheduleManager(db_manager, timetable_generator)
    attendance_manager = AttendanceManager(
        db_manager, qr_generator,
        max_qr_age_days=app_config['ATTENDANCE_QR_MAX_AGE_DAYS']
    )

    return {
        'db': db_manager,
        'qr_generator': qr_generator,
        'auth_manager': AuthManager(
            db_manager,
            password_min_length=app_config['PASSWORD_MIN_LENGTH'],
            max_login_attempts=app_config['MAX_LOGIN_ATTEMPTS'],
            lockout_minutes=app_config['LOGIN_LOCKOUT_MINUTES']
        ),
        'timetable_generator': timetable_generator,
        'schedule_manager': schedule_manager,
        'attendance_manager': attendance_manager,
        'library_manager': LibraryManager(db_manager),
        'notification_system': NotificationSystem(db_manager),
        'report_generator': ReportGenerator(
            attendance_manager, schedule_manager, app_config['REPORTS_FOLDER']
        )
    }


def create_app(config_name=None, overrides=None, llm_client=None):
    """
    Application factory.

    Args:
        config_name (str): development, testing or production (FLASK_ENV by default)
        overrides (dict): Config values applied after the config class
        llm_client: Optional chat-completions client for timetable generation

    Returns:
        Flask: Configured application
    """
    app = Flask(__name__)
    init_config(app, config_name, overrides)

    app.extensions['edusched'] = build_components(app.config, llm_client)

    from .routes import main_bp
    app.register_blueprint(main_bp)

    app.logger.info("EduSched application created")
    return app


__all__ = [
    'create_app',
    'build_components',
    'DatabaseManager',
    'QRGenerator',
    'AuthManager',
    'TimetableGenerator',
    'ScheduleManager',
    'AttendanceManager',
    'LibraryManager',
    'NotificationSystem',
    'ReportGenerator'
]
