"""
Authentication Manager Module - EduSched School Management System

This module handles user authentication, account creation and role-based
permissions. Users are admins, teachers or students; each role maps to a
fixed list of permissions checked by the web layer.

Features:
- Login by user code or email with password hashing
- Login attempt tracking and temporary lockout
- Student/teacher account creation with validation
- Role-based access control
"""

from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime, timedelta
from typing import Dict, List, Any, Optional
import logging
import re
import sqlite3

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


class AuthManager:
    """
    Authentication and authorization for EduSched users.
    """

    USER_TYPES = ('admin', 'teacher', 'student')

    # Roles that can be created through the user management form
    CREATABLE_TYPES = ('student', 'teacher')

    PERMISSIONS = {
        'admin': [
            'manage_data', 'manage_users', 'generate_timetable', 'mark_attendance',
            'view_all_attendance', 'view_reports', 'manage_library', 'use_library'
        ],
        'teacher': [
            'mark_attendance', 'view_all_attendance', 'view_reports', 'use_library'
        ],
        'student': [
            'view_own_attendance', 'generate_own_qr', 'use_library'
        ]
    }

    def __init__(self, database_manager, password_min_length: int = 6,
                 max_login_attempts: int = 5, lockout_minutes: int = 15):
        """
        Initialize the authentication manager with database connection.

        Args:
            database_manager: Database manager instance
            password_min_length (int): Minimum password length for new accounts
            max_login_attempts (int): Failed logins before lockout
            lockout_minutes (int): Lockout duration
        """
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

        self.security_config = {
            'password_min_length': password_min_length,
            'max_login_attempts': max_login_attempts,
            'lockout_duration_minutes': lockout_minutes
        }

        # Failed login attempts tracking: login -> list of datetimes
        self.failed_attempts = {}

    def authenticate_user(self, login: str, password: str) -> Optional[Dict[str, Any]]:
        """
        Authenticate a user by user code or email.

        Args:
            login (str): User code or email
            password (str): Password

        Returns:
            Dict[str, Any]: Public user information if authenticated, None otherwise
        """
        login = str(login or '').strip()
        try:
            user = self.db.execute_query(
                """SELECT * FROM users
                   WHERE (user_code = ? OR lower(email) = lower(?)) AND is_active = 1""",
                (login, login),
                fetch_all=False
            )

            # Attempts are tracked per account, whichever identifier was typed
            attempt_key = user['user_code'] if user else login.lower()

            if self._is_account_locked(attempt_key):
                self.logger.warning(f"Authentication attempt for locked account: {attempt_key}")
                return None

            if not user or not check_password_hash(user['password_hash'], str(password or '')):
                self._record_failed_attempt(attempt_key)
                self.logger.warning(f"Authentication failed for: {login}")
                return None

            self._clear_failed_attempts(attempt_key)
            self.logger.info(f"User authenticated successfully: {user['user_code']}")

            result = self._public_user(user)
            result['permissions'] = self.get_user_permissions(user['user_type'])
            return result

        except sqlite3.Error as e:
            self.logger.error(f"Authentication error for user {login}: {str(e)}")
            return None

    def create_user(self, user_data: Dict[str, Any], created_by: int = None) -> Dict[str, Any]:
        """
        Create a student or teacher account.

        Args:
            user_data (Dict[str, Any]): email, password, name, dob, type, subjects, group
            created_by (int): ID of the admin creating the account

        Returns:
            Dict[str, Any]: Creation result with the public user record
        """
        validation = self._validate_user_data(user_data)
        if not validation['valid']:
            return {
                'success': False,
                'error': validation['error'],
                'error_type': 'validation_error'
            }

        data = validation['data']

        try:
            existing = self.db.execute_query(
                "SELECT id FROM users WHERE lower(email) = lower(?)",
                (data['email'],),
                fetch_all=False
            )
            if existing:
                return {
                    'success': False,
                    'error': 'Email address already exists',
                    'error_type': 'duplicate'
                }

            user_code = self._next_user_code(data['type'])
            user_id = self.db.execute_update(
                """INSERT INTO users (user_code, password_hash, full_name, email, dob,
                                      user_type, subjects, student_group, created_by)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    user_code,
                    generate_password_hash(data['password']),
                    data['name'],
                    data['email'],
                    data['dob'],
                    data['type'],
                    ','.join(data['subjects']),
                    data['group'],
                    created_by
                )
            )

            self.logger.info(f"User created: {user_code} ({data['type']}) by {created_by}")
            return {
                'success': True,
                'user': self.get_user_by_id(user_id),
                'message': f"User {data['name']} has been created."
            }

        except sqlite3.IntegrityError as e:
            self.logger.warning(f"User creation rejected by constraint: {str(e)}")
            return {
                'success': False,
                'error': 'A user with these details already exists',
                'error_type': 'duplicate'
            }
        except sqlite3.Error as e:
            self.logger.error(f"User creation failed: {str(e)}")
            return {
                'success': False,
                'error': 'Failed to create user account',
                'error_type': 'database_error'
            }

    def get_user_by_id(self, user_id: int) -> Optional[Dict[str, Any]]:
        user = self.db.execute_query(
            "SELECT * FROM users WHERE id = ?", (user_id,), fetch_all=False
        )
        return self._public_user(user) if user else None

    def get_user_by_code(self, user_code: str) -> Optional[Dict[str, Any]]:
        user = self.db.execute_query(
            "SELECT * FROM users WHERE user_code = ?", ((user_code or '').strip(),), fetch_all=False
        )
        return self._public_user(user) if user else None

    def get_all_users(self, user_type: str = None, include_inactive: bool = False) -> List[Dict[str, Any]]:
        """
        Get users, optionally filtered by role.

        Returns:
            List[Dict[str, Any]]: Public user records ordered by user code
        """
        query = "SELECT * FROM users WHERE 1 = 1"
        params = []
        if user_type:
            query += " AND user_type = ?"
            params.append(user_type)
        if not include_inactive:
            query += " AND is_active = 1"
        query += " ORDER BY user_code"

        return [self._public_user(u) for u in self.db.execute_query(query, tuple(params))]

    def get_user_counts(self) -> Dict[str, int]:
        """Count active users per role."""
        rows = self.db.execute_query(
            """SELECT user_type, COUNT(*) AS count FROM users
               WHERE is_active = 1 GROUP BY user_type"""
        )
        counts = {user_type: 0 for user_type in self.USER_TYPES}
        for row in rows:
            counts[row['user_type']] = row['count']
        return counts

    def deactivate_user(self, user_id: int, deactivated_by: int = None) -> bool:
        """
        Deactivate a user account. Admin accounts cannot be deactivated here.

        Returns:
            bool: Success status
        """
        affected = self.db.execute_update(
            """UPDATE users SET is_active = 0, updated_at = CURRENT_TIMESTAMP
               WHERE id = ? AND user_type != 'admin'""",
            (user_id,)
        )
        if affected:
            self.logger.info(f"User {user_id} deactivated by {deactivated_by}")
            return True
        self.logger.warning(f"No deactivatable user with ID: {user_id}")
        return False

    def get_user_permissions(self, user_type: str) -> List[str]:
        return list(self.PERMISSIONS.get(user_type, []))

    def has_permission(self, user_type: str, permission: str) -> bool:
        return permission in self.PERMISSIONS.get(user_type, [])

    def _validate_user_data(self, user_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate and normalize account creation data.

        Returns:
            Dict[str, Any]: {'valid': True, 'data': {...}} or {'valid': False, 'error': ...}
        """
        email = str(user_data.get('email') or '').strip()
        password = str(user_data.get('password') or '')
        name = str(user_data.get('name') or '').strip()
        dob = str(user_data.get('dob') or '').strip()
        user_type = str(user_data.get('type') or '').strip().lower()
        group = str(user_data.get('group') or '').strip()

        subjects = user_data.get('subjects') or []
        if not isinstance(subjects, (list, tuple)):
            subjects = str(subjects).split(',')
        subjects = [str(s).strip() for s in subjects if str(s).strip()]

        if not EMAIL_PATTERN.match(email):
            return {'valid': False, 'error': 'Invalid email address.'}

        min_length = self.security_config['password_min_length']
        if len(password) < min_length:
            return {'valid': False, 'error': f'Password must be at least {min_length} characters.'}

        if len(name) < 2:
            return {'valid': False, 'error': 'Name must be at least 2 characters.'}

        try:
            datetime.strptime(dob, '%Y-%m-%d')
        except ValueError:
            return {'valid': False, 'error': 'Invalid date format.'}

        if user_type not in self.CREATABLE_TYPES:
            return {'valid': False, 'error': 'User type must be student or teacher.'}

        if not subjects:
            return {'valid': False, 'error': 'Subjects are required.'}

        if user_type == 'student' and not group:
            return {'valid': False, 'error': 'Student group is required.'}

        return {
            'valid': True,
            'data': {
                'email': email,
                'password': password,
                'name': name,
                'dob': dob,
                'type': user_type,
                'subjects': subjects,
                'group': group or None
            }
        }

    def _next_user_code(self, user_type: str) -> str:
        """Next free code of the form <type><NNN>."""
        rows = self.db.execute_query(
            "SELECT user_code FROM users WHERE user_code LIKE ?",
            (f"{user_type}%",)
        )
        pattern = re.compile(rf'^{user_type}(\d+)$')
        numbers = [int(m.group(1)) for m in (pattern.match(r['user_code']) for r in rows) if m]
        return f"{user_type}{(max(numbers) + 1) if numbers else 1:03d}"

    def _is_account_locked(self, login: str) -> bool:
        attempts = self.failed_attempts.get(login, [])
        window_start = datetime.now() - timedelta(
            minutes=self.security_config['lockout_duration_minutes']
        )
        recent = [t for t in attempts if t > window_start]
        self.failed_attempts[login] = recent
        return len(recent) >= self.security_config['max_login_attempts']

    def _record_failed_attempt(self, login: str) -> None:
        self.failed_attempts.setdefault(login, []).append(datetime.now())

    def _clear_failed_attempts(self, login: str) -> None:
        self.failed_attempts.pop(login, None)

    @staticmethod
    def _public_user(user: Dict[str, Any]) -> Dict[str, Any]:
        """Strip the password hash and split the subject list."""
        subjects = user.get('subjects') or ''
        return {
            'id': user['id'],
            'user_code': user['user_code'],
            'name': user['full_name'],
            'email': user.get('email'),
            'dob': user.get('dob'),
            'user_type': user['user_type'],
            'subjects': [s.strip() for s in subjects.split(',') if s.strip()],
            'group': user.get('student_group'),
            'is_active': bool(user.get('is_active', 1))
        }
