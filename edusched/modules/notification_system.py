"""
Notification System Module - EduSched School Management System

This module stores in-app notifications shown on dashboards. Notifications
are either addressed to one user or broadcast (user_id NULL). Message
bodies are rendered from jinja2 templates.
"""

from datetime import datetime
from typing import Dict, List, Any, Optional
import logging
import sqlite3
from dataclasses import dataclass
from jinja2 import Template


@dataclass
class NotificationData:
    """Data structure for notification information."""
    type: str
    title: str
    message: str
    severity: str
    recipient: Optional[int]
    created_at: str


class NotificationSystem:
    """
    In-app notifications persisted in the database.
    """

    NOTIFICATION_TYPES = {
        'ATTENDANCE': 'attendance',
        'BOOK_ISSUED': 'book_issued',
        'TIMETABLE': 'timetable',
        'SYSTEM_ALERT': 'system_alert'
    }

    SEVERITY_LEVELS = ('info', 'success', 'warning', 'error')

    def __init__(self, database_manager):
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

        self.templates = {
            'attendance': Template(
                "{{ student_name }} ({{ student_code }}) marked present for "
                "{{ subject }} on {{ date }}{% if marked_by_name %} by {{ marked_by_name }}{% endif %}."
            ),
            'book_issued': Template(
                '"{{ book_title }}"{% if book_author %} by {{ book_author }}{% endif %} '
                "was issued on {{ issued_at }}."
            ),
            'timetable': Template(
                "A new timetable with {{ entry_count }} "
                "entr{{ 'y' if entry_count == 1 else 'ies' }} has been published."
            )
        }

    def send_attendance_notification(self, attendance_data: Dict[str, Any],
                                     student_user_id: Optional[int] = None) -> bool:
        """
        Notify a student that their attendance was recorded.

        Args:
            attendance_data (Dict[str, Any]): Attendance result data
            student_user_id (int): Recipient, broadcast when None
        """
        return self._send(NotificationData(
            type=self.NOTIFICATION_TYPES['ATTENDANCE'],
            title=f"Attendance Recorded - {attendance_data['subject']}",
            message=self.templates['attendance'].render(**attendance_data),
            severity='success',
            recipient=student_user_id,
            created_at=datetime.now().isoformat()
        ))

    def send_book_issued_notification(self, loan: Dict[str, Any]) -> bool:
        return self._send(NotificationData(
            type=self.NOTIFICATION_TYPES['BOOK_ISSUED'],
            title='Book Issued',
            message=self.templates['book_issued'].render(**loan),
            severity='info',
            recipient=loan['user_id'],
            created_at=datetime.now().isoformat()
        ))

    def send_timetable_notification(self, entry_count: int) -> bool:
        return self._send(NotificationData(
            type=self.NOTIFICATION_TYPES['TIMETABLE'],
            title='Timetable Updated',
            message=self.templates['timetable'].render(entry_count=entry_count),
            severity='info',
            recipient=None,
            created_at=datetime.now().isoformat()
        ))

    def send_system_alert(self, title: str, message: str, severity: str = 'info',
                          recipient: Optional[int] = None) -> bool:
        if severity not in self.SEVERITY_LEVELS:
            severity = 'info'
        return self._send(NotificationData(
            type=self.NOTIFICATION_TYPES['SYSTEM_ALERT'],
            title=title,
            message=message,
            severity=severity,
            recipient=recipient,
            created_at=datetime.now().isoformat()
        ))

    def get_recent_notifications(self, user_id: Optional[int] = None, limit: int = 10) -> List[Dict[str, Any]]:
        """
        Get notifications addressed to a user plus broadcasts, newest first.
        ``is_read`` reflects whether this user has marked the notification read.
        """
        return self.db.execute_query(
            """SELECT n.*, CASE WHEN r.id IS NULL THEN 0 ELSE 1 END AS is_read
               FROM notifications n
               LEFT JOIN notification_reads r
                      ON r.notification_id = n.id AND r.user_id = ?
               WHERE n.user_id IS NULL OR n.user_id = ?
               ORDER BY n.created_at DESC, n.id DESC
               LIMIT ?""",
            (user_id, user_id, limit)
        )

    def mark_notification_read(self, notification_id: int, user_id: int) -> bool:
        """
        Mark a notification as read for one user. Users can only mark their own or broadcast ones.
        """
        notification = self.db.execute_query(
            """SELECT id FROM notifications
               WHERE id = ? AND (user_id IS NULL OR user_id = ?)""",
            (notification_id, user_id),
            fetch_all=False
        )
        if not notification or user_id is None:
            return False

        self.db.execute_update(
            """INSERT OR IGNORE INTO notification_reads (notification_id, user_id)
               VALUES (?, ?)""",
            (notification_id, user_id)
        )
        return True

    def _send(self, notification: NotificationData) -> bool:
        try:
            self.db.execute_update(
                """INSERT INTO notifications (user_id, type, title, message, severity, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (notification.recipient, notification.type, notification.title,
                 notification.message, notification.severity, notification.created_at)
            )
            self.logger.info(f"Notification stored: {notification.title}")
            return True

        except sqlite3.Error as e:
            self.logger.error(f"Failed to store notification: {str(e)}")
            return False
