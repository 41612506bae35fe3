import pytest

NEW_STUDENT = {
    'email': 'new.student@example.com',
    'password': 'secret1',
    'name': 'Nina Patel',
    'dob': '2009-04-01',
    'type': 'student',
    'subjects': 'Mathematics, Chemistry',
    'group': 'Group A',
}


def test_authenticate_by_user_code(auth_manager):
    user = auth_manager.authenticate_user('admin001', 'admin123')
    assert user['user_code'] == 'admin001'
    assert user['user_type'] == 'admin'
    assert 'manage_data' in user['permissions']
    assert 'password_hash' not in user


def test_authenticate_by_email_is_case_insensitive(auth_manager):
    user = auth_manager.authenticate_user('John.Smith@EduSched.local', 'student123')
    assert user['user_code'] == 'student001'
    assert user['subjects'] == ['Mathematics', 'Physics']
    assert user['group'] == 'Group A'


def test_authenticate_rejects_wrong_password(auth_manager):
    assert auth_manager.authenticate_user('teacher001', 'wrong') is None


def test_authenticate_locks_account_after_repeated_failures(auth_manager):
    for _ in range(3):
        assert auth_manager.authenticate_user('teacher001', 'wrong') is None
    assert auth_manager.authenticate_user('teacher001', 'teacher123') is None


def test_successful_login_clears_failed_attempts(auth_manager):
    auth_manager.authenticate_user('teacher001', 'wrong')
    assert auth_manager.authenticate_user('teacher001', 'teacher123') is not None
    assert 'teacher001' not in auth_manager.failed_attempts


def test_create_user_assigns_next_code(auth_manager):
    result = auth_manager.create_user(NEW_STUDENT, created_by=1)
    assert result['success'] is True
    assert result['message'] == 'User Nina Patel has been created.'

    user = result['user']
    assert user['user_code'] == 'student003'
    assert user['subjects'] == ['Mathematics', 'Chemistry']
    assert auth_manager.authenticate_user('student003', 'secret1') is not None


def test_create_teacher_without_group(auth_manager):
    data = dict(NEW_STUDENT, email='t@example.com', type='teacher', group='', subjects=['Biology'])
    result = auth_manager.create_user(data)
    assert result['success'] is True
    assert result['user']['user_code'] == 'teacher002'
    assert result['user']['group'] is None


@pytest.mark.parametrize('changes, message', [
    ({'email': 'not-an-email'}, 'Invalid email address.'),
    ({'password': '123'}, 'Password must be at least 6 characters.'),
    ({'name': 'N'}, 'Name must be at least 2 characters.'),
    ({'dob': '01/04/2009'}, 'Invalid date format.'),
    ({'type': 'admin'}, 'User type must be student or teacher.'),
    ({'subjects': ' , '}, 'Subjects are required.'),
    ({'group': ''}, 'Student group is required.'),
])
def test_create_user_validation(auth_manager, changes, message):
    result = auth_manager.create_user(dict(NEW_STUDENT, **changes))
    assert result['success'] is False
    assert result['error_type'] == 'validation_error'
    assert result['error'] == message


def test_create_user_rejects_duplicate_email(auth_manager):
    result = auth_manager.create_user(dict(NEW_STUDENT, email='amy.lee@edusched.local'))
    assert result['success'] is False
    assert result['error_type'] == 'duplicate'


def test_user_counts_and_listing(auth_manager):
    assert auth_manager.get_user_counts() == {'admin': 1, 'teacher': 1, 'student': 2}
    students = auth_manager.get_all_users('student')
    assert [u['user_code'] for u in students] == ['student001', 'student002']


def test_deactivate_user_blocks_login_but_not_for_admins(auth_manager):
    student = auth_manager.get_user_by_code('student002')
    admin = auth_manager.get_user_by_code('admin001')

    assert auth_manager.deactivate_user(student['id']) is True
    assert auth_manager.authenticate_user('student002', 'student123') is None
    assert auth_manager.deactivate_user(admin['id']) is False


def test_permissions_per_role(auth_manager):
    assert auth_manager.has_permission('teacher', 'mark_attendance')
    assert not auth_manager.has_permission('student', 'mark_attendance')
    assert auth_manager.has_permission('student', 'use_library')
    assert auth_manager.get_user_permissions('unknown') == []


def test_lockout_applies_to_email_login(auth_manager):
    for _ in range(3):
        assert auth_manager.authenticate_user('admin001', 'wrong') is None

    assert auth_manager.authenticate_user('admin@edusched.local', 'admin123') is None
    assert auth_manager.authenticate_user('ADMIN@edusched.local', 'admin123') is None
    assert auth_manager.authenticate_user('admin001', 'admin123') is None


def test_failures_by_email_count_towards_user_code(auth_manager):
    auth_manager.authenticate_user('admin@edusched.local', 'wrong')
    auth_manager.authenticate_user('Admin@EduSched.local', 'wrong')
    auth_manager.authenticate_user('admin001', 'wrong')
    assert auth_manager.authenticate_user('admin001', 'admin123') is None


def test_create_user_coerces_non_string_values(auth_manager):
    result = auth_manager.create_user(dict(NEW_STUDENT, subjects=['Mathematics', 101], group=7))
    assert result['success'] is True
    assert result['user']['subjects'] == ['Mathematics', '101']
    assert result['user']['group'] == '7'
