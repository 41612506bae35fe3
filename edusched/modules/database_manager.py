"""
Database Manager Module - EduSched School Management System

This module handles all database operations for EduSched.
It manages SQLite connections, table creation, seed data and the generic
query helpers used by every other manager. Uniqueness rules that the
application relies on (one attendance record per student/date/subject,
one open loan per user/book) are enforced here as database constraints.

Features:
- SQLite connection management (thread-local, shared for in-memory databases)
- Table schema creation and default data
- Generic query/update helpers
- Transaction support
- System settings storage
"""

import sqlite3
import logging
from contextlib import contextmanager, nullcontext
import threading
from werkzeug.security import generate_password_hash
import os


class DatabaseManager:
    """
    Database management class for EduSched.
    Handles connection management, schema creation and data manipulation
    with transaction support.
    """

    def __init__(self, db_path):
        """
        Initialize the database manager with the specified database path.

        Args:
            db_path (str): Path to the SQLite database file, or ':memory:'
        """
        self.db_path = str(db_path)
        self.logger = logging.getLogger(__name__)
        self._local = threading.local()

        # An in-memory database lives in one connection shared by all threads
        self._in_memory = self.db_path == ':memory:'
        self._shared_connection = None
        self._lock = threading.RLock()

        # Ensure database directory exists
        directory = os.path.dirname(self.db_path)
        if not self._in_memory and directory:
            os.makedirs(directory, exist_ok=True)

        self.initialize_database()

    def _open_connection(self):
        connection = sqlite3.connect(
            self.db_path,
            check_same_thread=False,
            timeout=30.0
        )
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        return connection

    def _current_connection(self):
        if self._in_memory:
            if self._shared_connection is None:
                self._shared_connection = self._open_connection()
            return self._shared_connection

        if not hasattr(self._local, 'connection'):
            self._local.connection = self._open_connection()
        return self._local.connection

    @contextmanager
    def get_connection(self):
        """
        Context manager for database connections.
        File databases use one connection per thread. An in-memory database
        uses a single shared connection and access to it is serialized.

        Yields:
            sqlite3.Connection: Database connection object
        """
        with self._lock if self._in_memory else nullcontext():
            connection = self._current_connection()
            try:
                yield connection
            except Exception as e:
                connection.rollback()
                self.logger.error(f"Database operation failed: {str(e)}")
                raise

    def initialize_database(self):
        """
        Create all tables and default data.
        Safe to call multiple times.
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()

                # Users (admins, teachers, students)
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS users (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_code VARCHAR(30) UNIQUE NOT NULL,
                        password_hash VARCHAR(255) NOT NULL,
                        full_name VARCHAR(100) NOT NULL,
                        email VARCHAR(100) UNIQUE,
                        dob DATE,
                        user_type VARCHAR(20) NOT NULL DEFAULT 'student',
                        subjects TEXT,
                        student_group VARCHAR(100),
                        is_active BOOLEAN DEFAULT 1,
                        created_by INTEGER,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                # Entity lists fed to the timetable generator
                for table in ('courses', 'teachers', 'classrooms', 'student_groups'):
                    cursor.execute(f"""
                        CREATE TABLE IF NOT EXISTS {table} (
                            id INTEGER PRIMARY KEY AUTOINCREMENT,
                            name VARCHAR(100) UNIQUE NOT NULL,
                            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                        )
                    """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS time_slots (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        slot VARCHAR(100) UNIQUE NOT NULL,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                # Generated timetable
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS schedule_entries (
                        id VARCHAR(32) PRIMARY KEY,
                        position INTEGER NOT NULL DEFAULT 0,
                        day VARCHAR(20) NOT NULL,
                        time VARCHAR(50) NOT NULL,
                        course VARCHAR(100) NOT NULL,
                        teacher VARCHAR(100) NOT NULL,
                        classroom VARCHAR(100) NOT NULL,
                        student_group VARCHAR(100),
                        generated_by INTEGER,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (generated_by) REFERENCES users(id)
                    )
                """)

                # Attendance: one record per student/date/subject
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS attendance (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        student_code VARCHAR(30) NOT NULL,
                        attendance_date DATE NOT NULL,
                        subject VARCHAR(100) NOT NULL,
                        marked_by INTEGER,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (student_code) REFERENCES users(user_code),
                        FOREIGN KEY (marked_by) REFERENCES users(id),
                        UNIQUE(student_code, attendance_date, subject)
                    )
                """)

                # Library catalogue and loans
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS books (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        code VARCHAR(30) UNIQUE NOT NULL,
                        title VARCHAR(200) NOT NULL,
                        author VARCHAR(200) NOT NULL,
                        description TEXT,
                        cover_url VARCHAR(255),
                        is_active BOOLEAN DEFAULT 1,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS issued_books (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id INTEGER NOT NULL,
                        book_code VARCHAR(30) NOT NULL,
                        book_title VARCHAR(200),
                        book_author VARCHAR(200),
                        book_cover_url VARCHAR(255),
                        issued_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        returned_at TIMESTAMP,
                        FOREIGN KEY (user_id) REFERENCES users(id),
                        FOREIGN KEY (book_code) REFERENCES books(code)
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS notifications (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id INTEGER,
                        type VARCHAR(50) DEFAULT 'info',
                        title VARCHAR(100) NOT NULL,
                        message TEXT NOT NULL,
                        severity VARCHAR(20) DEFAULT 'info',
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (user_id) REFERENCES users(id)
                    )
                """)

                # Read state per user, so broadcasts are marked read individually
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS notification_reads (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        notification_id INTEGER NOT NULL,
                        user_id INTEGER NOT NULL,
                        read_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (notification_id) REFERENCES notifications(id),
                        FOREIGN KEY (user_id) REFERENCES users(id),
                        UNIQUE(notification_id, user_id)
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS system_settings (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        setting_key VARCHAR(100) UNIQUE NOT NULL,
                        setting_value TEXT,
                        description TEXT,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                cursor.execute("CREATE INDEX IF NOT EXISTS idx_attendance_date ON attendance(attendance_date)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_attendance_student ON attendance(student_code)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_issued_books_user ON issued_books(user_id)")
                cursor.execute("""
                    CREATE UNIQUE INDEX IF NOT EXISTS idx_issued_books_open_loan
                    ON issued_books(user_id, book_code) WHERE returned_at IS NULL
                """)

                conn.commit()

                self._insert_default_data(cursor)
                conn.commit()

                self.logger.info("Database initialized successfully")

        except Exception as e:
            self.logger.error(f"Failed to initialize database: {str(e)}")
            raise

    def _insert_default_data(self, cursor):
        """
        Insert default users, catalogue books and settings when tables are empty.

        Args:
            cursor: Database cursor object
        """
        cursor.execute("SELECT COUNT(*) FROM users")
        if cursor.fetchone()[0] == 0:
            default_users = [
                ('admin001', generate_password_hash('admin123'), 'System Administrator',
                 'admin@edusched.local', '1980-01-01', 'admin', None, None),
                ('teacher001', generate_password_hash('teacher123'), 'Jane Doe',
                 'jane.doe@edusched.local', '1985-05-12', 'teacher', 'Mathematics,Physics', None),
                ('student001', generate_password_hash('student123'), 'John Smith',
                 'john.smith@edusched.local', '2008-03-21', 'student', 'Mathematics,Physics', 'Group A'),
                ('student002', generate_password_hash('student123'), 'Amy Lee',
                 'amy.lee@edusched.local', '2008-09-02', 'student', 'Mathematics,Chemistry', 'Group B'),
            ]
            cursor.executemany("""
                INSERT INTO users (user_code, password_hash, full_name, email, dob,
                                   user_type, subjects, student_group)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, default_users)

        cursor.execute("SELECT COUNT(*) FROM books")
        if cursor.fetchone()[0] == 0:
            default_books = [
                ('CS101-A', 'Introduction to Algorithms', 'Thomas H. Cormen',
                 'A comprehensive introduction to the modern study of computer algorithms.',
                 'https://placehold.co/100x150.png'),
                ('MATH201-B', 'Calculus: Early Transcendentals', 'James Stewart',
                 'Calculus text covering limits, derivatives, integrals and series.',
                 'https://placehold.co/100x150.png'),
                ('PHY110-C', 'Fundamentals of Physics', 'David Halliday',
                 'Introductory physics covering mechanics, waves and thermodynamics.',
                 'https://placehold.co/100x150.png'),
            ]
            cursor.executemany("""
                INSERT INTO books (code, title, author, description, cover_url)
                VALUES (?, ?, ?, ?, ?)
            """, default_books)

        cursor.execute("SELECT COUNT(*) FROM system_settings")
        if cursor.fetchone()[0] == 0:
            default_settings = [
                ('school_name', 'EduSched', 'Name shown on dashboards'),
                ('openai_model', '', 'Model override for timetable generation (empty uses config)'),
            ]
            cursor.executemany("""
                INSERT INTO system_settings (setting_key, setting_value, description)
                VALUES (?, ?, ?)
            """, default_settings)

        self.logger.info("Default data inserted successfully")

    def execute_query(self, query, params=None, fetch_all=True):
        """
        Execute a SELECT query and return results.

        Args:
            query (str): SQL query string
            params (tuple): Query parameters
            fetch_all (bool): Whether to fetch all results or just one

        Returns:
            list or dict: Query results
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())

            if fetch_all:
                return [dict(row) for row in cursor.fetchall()]
            result = cursor.fetchone()
            return dict(result) if result else None

    def execute_update(self, query, params=None):
        """
        Execute an INSERT, UPDATE, or DELETE query.

        Args:
            query (str): SQL query string
            params (tuple): Query parameters

        Returns:
            int: Last inserted row ID for INSERT, affected rows otherwise
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())
            conn.commit()

            if query.strip().upper().startswith('INSERT'):
                return cursor.lastrowid
            return cursor.rowcount

    def execute_many(self, query, params_list):
        """
        Execute a query multiple times with different parameters.

        Returns:
            int: Number of affected rows
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.executemany(query, params_list)
            conn.commit()
            return cursor.rowcount

    @contextmanager
    def transaction(self):
        """
        Context manager for database transactions with automatic rollback on error.

        Yields:
            sqlite3.Connection: Database connection within transaction
        """
        with self.get_connection() as conn:
            try:
                yield conn
                conn.commit()
            except Exception as e:
                conn.rollback()
                self.logger.error(f"Transaction rolled back: {str(e)}")
                raise

    def get_system_setting(self, key, default_value=None):
        """
        Get a system setting value by key.

        Args:
            key (str): Setting key
            default_value: Default value if setting not found

        Returns:
            str: Setting value
        """
        try:
            result = self.execute_query(
                "SELECT setting_value FROM system_settings WHERE setting_key = ?",
                (key,),
                fetch_all=False
            )
            return result['setting_value'] if result else default_value

        except sqlite3.Error as e:
            self.logger.error(f"Failed to get system setting {key}: {str(e)}")
            return default_value

    def update_system_setting(self, key, value, description=None):
        """
        Update or insert a system setting.

        Returns:
            bool: Success status
        """
        try:
            with self.transaction() as conn:
                conn.execute("""
                    INSERT INTO system_settings (setting_key, setting_value, description)
                    VALUES (?, ?, ?)
                    ON CONFLICT(setting_key) DO UPDATE SET
                        setting_value = excluded.setting_value,
                        description = COALESCE(excluded.description, system_settings.description),
                        updated_at = CURRENT_TIMESTAMP
                """, (key, value, description))
            return True

        except sqlite3.Error as e:
            self.logger.error(f"Failed to update system setting {key}: {str(e)}")
            return False

    def close_all_connections(self):
        """Close the connection held by the current thread, or the shared in-memory one."""
        if self._in_memory:
            with self._lock:
                if self._shared_connection is not None:
                    self._shared_connection.close()
                    self._shared_connection = None
            return

        if hasattr(self._local, 'connection'):
            self._local.connection.close()
            del self._local.connection
