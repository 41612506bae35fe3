"""
Schedule Manager Module - EduSched School Management System

This module manages the admin-maintained entity lists used for timetable
generation (courses, teachers, classrooms, time slots, student groups) and
the stored timetable itself. Generation is delegated to the
TimetableGenerator; the resulting entries replace the stored schedule.
"""

import logging
import sqlite3
from typing import Dict, List, Any, Optional

# kind -> (table, value column)
ENTITY_KINDS = {
    'courses': ('courses', 'name'),
    'teachers': ('teachers', 'name'),
    'classrooms': ('classrooms', 'name'),
    'time_slots': ('time_slots', 'slot'),
    'student_groups': ('student_groups', 'name'),
}

EDITABLE_FIELDS = ('day', 'time', 'course', 'teacher', 'classroom', 'student_group')


class ScheduleManager:
    """
    Entity list maintenance and timetable storage.
    """

    def __init__(self, database_manager, timetable_generator):
        """
        Args:
            database_manager: Database manager instance
            timetable_generator: TimetableGenerator instance
        """
        self.db = database_manager
        self.generator = timetable_generator
        self.logger = logging.getLogger(__name__)

    def list_entities(self, kind: str) -> List[Dict[str, Any]]:
        """
        Get all entries of one entity kind in insertion order.

        Returns:
            List[Dict[str, Any]]: Rows with 'id' and 'value'
        """
        table, column = self._resolve_kind(kind)
        return self.db.execute_query(
            f"SELECT id, {column} AS value, created_at FROM {table} ORDER BY id"
        )

    def get_entity_values(self, kind: str) -> List[str]:
        return [row['value'] for row in self.list_entities(kind)]

    def get_entity_counts(self) -> Dict[str, int]:
        counts = {}
        for kind, (table, _) in ENTITY_KINDS.items():
            row = self.db.execute_query(f"SELECT COUNT(*) AS count FROM {table}", fetch_all=False)
            counts[kind] = row['count']
        return counts

    def add_entity(self, kind: str, value: str) -> Dict[str, Any]:
        """
        Add a value to an entity list.

        Args:
            kind (str): One of ENTITY_KINDS
            value (str): Name (or slot text for time slots)

        Returns:
            Dict[str, Any]: Creation result
        """
        if kind not in ENTITY_KINDS:
            return {'success': False, 'error': f'Unknown data type: {kind}', 'error_type': 'unknown_kind'}

        value = str(value or '').strip()
        if not value:
            return {'success': False, 'error': 'A value is required', 'error_type': 'validation_error'}

        table, column = ENTITY_KINDS[kind]
        try:
            entity_id = self.db.execute_update(
                f"INSERT INTO {table} ({column}) VALUES (?)", (value,)
            )
        except sqlite3.IntegrityError:
            return {
                'success': False,
                'error': f'"{value}" already exists',
                'error_type': 'duplicate'
            }

        self.logger.info(f"Added {kind} entry: {value}")
        return {'success': True, 'item': {'id': entity_id, 'value': value}}

    def remove_entity(self, kind: str, entity_id: int) -> Dict[str, Any]:
        if kind not in ENTITY_KINDS:
            return {'success': False, 'error': f'Unknown data type: {kind}', 'error_type': 'unknown_kind'}

        table, _ = ENTITY_KINDS[kind]
        affected = self.db.execute_update(f"DELETE FROM {table} WHERE id = ?", (entity_id,))
        if not affected:
            return {'success': False, 'error': 'Entry not found', 'error_type': 'not_found'}

        self.logger.info(f"Removed {kind} entry {entity_id}")
        return {'success': True}

    def generate_timetable(self, generated_by: Optional[int] = None) -> Dict[str, Any]:
        """
        Generate a timetable from the stored entity lists and persist it.

        Returns:
            Dict[str, Any]: Generation result with the saved schedule
        """
        model_override = self.db.get_system_setting('openai_model') or None

        result = self.generator.generate(
            self.get_entity_values('courses'),
            self.get_entity_values('teachers'),
            self.get_entity_values('classrooms'),
            self.get_entity_values('time_slots'),
            self.get_entity_values('student_groups'),
            model=model_override
        )
        if not result['success']:
            return result

        self.save_schedule(result['schedule'], generated_by)
        return {'success': True, 'schedule': self.get_schedule()}

    def save_schedule(self, entries: List[Dict[str, Any]], generated_by: Optional[int] = None) -> int:
        """
        Replace the stored schedule with the given entries.

        Returns:
            int: Number of entries saved
        """
        rows = [
            (
                entry['id'], position, entry['day'], entry['time'], entry['course'],
                entry['teacher'], entry['classroom'], entry.get('student_group'), generated_by
            )
            for position, entry in enumerate(entries)
        ]

        with self.db.transaction() as conn:
            conn.execute("DELETE FROM schedule_entries")
            conn.executemany(
                """INSERT INTO schedule_entries
                   (id, position, day, time, course, teacher, classroom, student_group, generated_by)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                rows
            )

        self.logger.info(f"Schedule saved with {len(rows)} entries")
        return len(rows)

    def get_schedule(self) -> List[Dict[str, Any]]:
        return self.db.execute_query(
            """SELECT id, day, time, course, teacher, classroom, student_group
               FROM schedule_entries ORDER BY position"""
        )

    def get_schedule_for_teacher(self, teacher_name: str) -> List[Dict[str, Any]]:
        return self.db.execute_query(
            """SELECT id, day, time, course, teacher, classroom, student_group
               FROM schedule_entries WHERE lower(teacher) = lower(?) ORDER BY position""",
            (str(teacher_name or '').strip(),)
        )

    def update_schedule_entry(self, entry_id: str, field: str, value: str) -> Dict[str, Any]:
        """
        Edit a single field of a stored schedule entry.

        Returns:
            Dict[str, Any]: Update result with the updated entry
        """
        if field not in EDITABLE_FIELDS:
            return {'success': False, 'error': f'Field cannot be edited: {field}', 'error_type': 'validation_error'}

        value = str(value or '').strip()
        if not value and field != 'student_group':
            return {'success': False, 'error': f'{field} cannot be empty', 'error_type': 'validation_error'}

        affected = self.db.execute_update(
            f"""UPDATE schedule_entries SET {field} = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?""",
            (value or None, entry_id)
        )
        if not affected:
            return {'success': False, 'error': 'Schedule entry not found', 'error_type': 'not_found'}

        entry = self.db.execute_query(
            """SELECT id, day, time, course, teacher, classroom, student_group
               FROM schedule_entries WHERE id = ?""",
            (entry_id,),
            fetch_all=False
        )
        return {'success': True, 'entry': entry}

    def clear_schedule(self) -> int:
        return self.db.execute_update("DELETE FROM schedule_entries")

    @staticmethod
    def _resolve_kind(kind: str):
        try:
            return ENTITY_KINDS[kind]
        except KeyError:
            raise ValueError(f"Unknown data type: {kind}")
