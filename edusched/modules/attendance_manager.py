"""
Attendance Manager Module - EduSched School Management System

This module records attendance from scanned QR payloads and provides the
attendance queries used by dashboards and reports. A record is stored at
most once per student, date and subject; the check is made before the
insert and the database UNIQUE constraint backs it up.

Features:
- QR payload validation and attendance recording
- Duplicate prevention
- Per-student history and per-teacher views
- Daily summary and trend queries
"""

from datetime import datetime, date, timedelta
import logging
import sqlite3
from typing import Dict, List, Optional, Any


class AttendanceManager:
    """
    QR-based attendance recording and queries.
    """

    def __init__(self, database_manager, qr_generator, max_qr_age_days: int = 7):
        """
        Initialize the attendance manager.

        Args:
            database_manager: Database manager instance
            qr_generator: QRGenerator used to decode payloads
            max_qr_age_days (int): Configured window, used when the qr_max_age_days setting is unset
        """
        self.db = database_manager
        self.qr_generator = qr_generator
        self.logger = logging.getLogger(__name__)
        self.max_qr_age_days = max_qr_age_days

    def get_max_qr_age_days(self) -> int:
        """Oldest accepted payload age; the qr_max_age_days setting overrides the configured value."""
        value = self.db.get_system_setting('qr_max_age_days')
        if value in (None, ''):
            return self.max_qr_age_days
        try:
            return int(value)
        except ValueError as e:
            self.logger.error(f"Invalid qr_max_age_days setting: {str(e)}")
            return self.max_qr_age_days

    def record_attendance(self, qr_data: str, marked_by: Optional[int] = None,
                          today: Optional[date] = None) -> Dict[str, Any]:
        """
        Validate a scanned payload and store the attendance record.

        Args:
            qr_data (str): Scanned QR payload
            marked_by (int): ID of the user who scanned the code
            today (date): Reference date, defaults to the current date

        Returns:
            Dict[str, Any]: Recording result
        """
        decoded = self.qr_generator.decode_payload(qr_data)
        if not decoded['valid']:
            return {
                'success': False,
                'error': decoded['error'],
                'error_type': decoded['error_type']
            }

        payload = decoded['data']
        student_code = payload['student_code']
        subject = payload['subject']
        attendance_date = payload['date']

        today = today or date.today()
        scanned_date = datetime.strptime(attendance_date, '%Y-%m-%d').date()
        if scanned_date > today or (today - scanned_date).days > self.get_max_qr_age_days():
            return {
                'success': False,
                'error': f'QR code date {attendance_date} is not valid for attendance.',
                'error_type': 'date_out_of_range'
            }

        try:
            student = self.db.execute_query(
                """SELECT id, user_code, full_name, subjects FROM users
                   WHERE user_code = ? AND user_type = 'student' AND is_active = 1""",
                (student_code,),
                fetch_all=False
            )
            if not student:
                return {
                    'success': False,
                    'error': f'Student {student_code} not found.',
                    'error_type': 'student_not_found'
                }

            enrolled = {s.strip().lower(): s.strip() for s in (student['subjects'] or '').split(',') if s.strip()}
            if enrolled and subject.lower() not in enrolled:
                return {
                    'success': False,
                    'error': f'{student_code} is not enrolled in {subject}.',
                    'error_type': 'not_enrolled'
                }
            subject = enrolled.get(subject.lower(), subject)

            if self._check_existing_attendance(student_code, attendance_date, subject):
                return self._duplicate_result(student_code)

            try:
                attendance_id = self.db.execute_update(
                    """INSERT INTO attendance (student_code, attendance_date, subject, marked_by)
                       VALUES (?, ?, ?, ?)""",
                    (student_code, attendance_date, subject, marked_by)
                )
            except sqlite3.IntegrityError:
                # Concurrent scan of the same code won the insert
                return self._duplicate_result(student_code)

            self.logger.info(f"Attendance recorded: {student_code}, {attendance_date}, {subject}")
            return {
                'success': True,
                'message': f'Attendance for {student_code} recorded.',
                'attendance': {
                    'id': attendance_id,
                    'student_code': student_code,
                    'student_name': student['full_name'],
                    'date': attendance_date,
                    'subject': subject,
                    'marked_by': marked_by
                }
            }

        except sqlite3.Error as e:
            self.logger.error(f"Failed to record attendance: {str(e)}")
            return {
                'success': False,
                'error': 'An unexpected error occurred while recording attendance.',
                'error_type': 'database_error'
            }

    def _check_existing_attendance(self, student_code: str, attendance_date: str,
                                   subject: str) -> Optional[Dict[str, Any]]:
        return self.db.execute_query(
            """SELECT * FROM attendance
               WHERE student_code = ? AND attendance_date = ? AND lower(subject) = lower(?)""",
            (student_code, attendance_date, subject),
            fetch_all=False
        )

    def _duplicate_result(self, student_code: str) -> Dict[str, Any]:
        self.logger.warning(f"Duplicate attendance scan for {student_code}")
        return {
            'success': False,
            'error': f'Attendance for {student_code} already recorded for this subject today.',
            'error_type': 'duplicate'
        }

    def get_recent_attendance(self, limit: int = 10) -> List[Dict[str, Any]]:
        """
        Get the most recent attendance records across all students.
        """
        return self.db.execute_query(
            """SELECT a.*, s.full_name AS student_name, s.student_group,
                      m.full_name AS marked_by_name
               FROM attendance a
               JOIN users s ON a.student_code = s.user_code
               LEFT JOIN users m ON a.marked_by = m.id
               ORDER BY a.created_at DESC, a.id DESC
               LIMIT ?""",
            (limit,)
        )

    def get_attendance_for_student(self, student_code: str, days: int = 30) -> List[Dict[str, Any]]:
        """
        Get a student's attendance history for the last ``days`` days.
        """
        start_date = (date.today() - timedelta(days=days)).isoformat()
        return self.db.execute_query(
            """SELECT a.*, m.full_name AS marked_by_name
               FROM attendance a
               LEFT JOIN users m ON a.marked_by = m.id
               WHERE a.student_code = ? AND a.attendance_date >= ?
               ORDER BY a.attendance_date DESC, a.id DESC""",
            (student_code, start_date)
        )

    def get_attendance_marked_by(self, user_id: int, attendance_date: str = None) -> List[Dict[str, Any]]:
        attendance_date = attendance_date or date.today().isoformat()
        return self.db.execute_query(
            """SELECT a.*, s.full_name AS student_name
               FROM attendance a
               JOIN users s ON a.student_code = s.user_code
               WHERE a.marked_by = ? AND a.attendance_date = ?
               ORDER BY a.id DESC""",
            (user_id, attendance_date)
        )

    def get_attendance_records(self, start_date: str = None, end_date: str = None,
                               subject: str = None) -> List[Dict[str, Any]]:
        """
        Get attendance records filtered by date range and subject, used by reports.
        """
        query = """SELECT a.attendance_date, a.student_code, s.full_name AS student_name,
                          s.student_group, a.subject, m.full_name AS marked_by_name,
                          a.created_at
                   FROM attendance a
                   JOIN users s ON a.student_code = s.user_code
                   LEFT JOIN users m ON a.marked_by = m.id
                   WHERE 1 = 1"""
        params = []
        if start_date:
            query += " AND a.attendance_date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND a.attendance_date <= ?"
            params.append(end_date)
        if subject:
            query += " AND lower(a.subject) = lower(?)"
            params.append(subject)
        query += " ORDER BY a.attendance_date, a.subject, a.student_code"

        return self.db.execute_query(query, tuple(params))

    def get_today_attendance_summary(self) -> Dict[str, Any]:
        """
        Get attendance summary for today.
        """
        today = date.today().isoformat()
        try:
            totals = self.db.execute_query(
                """SELECT COUNT(*) AS total, COUNT(DISTINCT student_code) AS unique_students
                   FROM attendance WHERE attendance_date = ?""",
                (today,),
                fetch_all=False
            )
            subject_breakdown = self.db.execute_query(
                """SELECT subject, COUNT(*) AS count FROM attendance
                   WHERE attendance_date = ?
                   GROUP BY subject ORDER BY count DESC, subject""",
                (today,)
            )
            return {
                'date': today,
                'total_records': totals['total'],
                'unique_students': totals['unique_students'],
                'subject_breakdown': subject_breakdown
            }

        except sqlite3.Error as e:
            self.logger.error(f"Failed to get today's attendance summary: {str(e)}")
            return {
                'date': today,
                'total_records': 0,
                'unique_students': 0,
                'subject_breakdown': []
            }

    def get_attendance_trends(self, days: int = 7) -> Dict[str, Any]:
        """
        Daily attendance counts for the last ``days`` days.
        """
        end_date = date.today()
        start_date = end_date - timedelta(days=days)
        daily_counts = self.db.execute_query(
            """SELECT attendance_date, COUNT(*) AS daily_count,
                      COUNT(DISTINCT student_code) AS unique_students
               FROM attendance
               WHERE attendance_date BETWEEN ? AND ?
               GROUP BY attendance_date ORDER BY attendance_date""",
            (start_date.isoformat(), end_date.isoformat())
        )
        return {
            'date_range': {
                'start_date': start_date.isoformat(),
                'end_date': end_date.isoformat(),
                'days_analyzed': days
            },
            'daily_counts': daily_counts
        }
