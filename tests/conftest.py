import json
from types import SimpleNamespace

import pytest

from edusched import create_app
from edusched.modules.database_manager import DatabaseManager
from edusched.modules.qr_generator import QRGenerator
from edusched.modules.auth_manager import AuthManager
from edusched.modules.timetable_generator import TimetableGenerator
from edusched.modules.schedule_manager import ScheduleManager
from edusched.modules.attendance_manager import AttendanceManager
from edusched.modules.library_manager import LibraryManager
from edusched.modules.notification_system import NotificationSystem

SAMPLE_SCHEDULE = {
    'schedule': [
        {'day': 'Monday', 'time': '09:00 - 10:00', 'course': 'Mathematics',
         'teacher': 'Jane Doe', 'classroom': 'Room 101'},
        {'day': 'Monday', 'time': '10:00 - 11:00', 'course': 'Physics',
         'teacher': 'Alan Turing', 'classroom': 'Lab 1'},
    ]
}


class FakeCompletions:
    """Stands in for ``client.chat.completions`` of the OpenAI SDK."""

    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if isinstance(self.reply, Exception):
            raise self.reply
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def make_llm_client(reply):
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(reply)))


@pytest.fixture
def llm_client():
    return make_llm_client(json.dumps(SAMPLE_SCHEDULE))


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(str(tmp_path / 'edusched.db'))
    yield manager
    manager.close_all_connections()


@pytest.fixture
def qr_generator():
    return QRGenerator(box_size=4, border=2)


@pytest.fixture
def auth_manager(db):
    return AuthManager(db, max_login_attempts=3)


@pytest.fixture
def schedule_manager(db, llm_client):
    return ScheduleManager(db, TimetableGenerator(client=llm_client))


@pytest.fixture
def attendance_manager(db, qr_generator):
    return AttendanceManager(db, qr_generator)


@pytest.fixture
def library_manager(db):
    return LibraryManager(db)


@pytest.fixture
def notification_system(db):
    return NotificationSystem(db)


@pytest.fixture
def app(tmp_path, llm_client):
    app = create_app('testing', {
        'DATABASE_PATH': str(tmp_path / 'app.db'),
        'REPORTS_FOLDER': str(tmp_path / 'reports'),
        'SECRET_KEY': 'test-secret',
    }, llm_client=llm_client)
    yield app
    app.extensions['edusched']['db'].close_all_connections()


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, user_code, password):
    return client.post('/login', data={'login': user_code, 'password': password})


@pytest.fixture
def admin_client(client):
    login(client, 'admin001', 'admin123')
    return client


@pytest.fixture
def teacher_client(client):
    login(client, 'teacher001', 'teacher123')
    return client


@pytest.fixture
def student_client(client):
    login(client, 'student001', 'student123')
    return client
