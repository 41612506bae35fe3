"""
Report Generator Module - EduSched School Management System

This module exports attendance records and the current timetable to CSV
or Excel files using pandas. Excel attendance exports include a
per-subject summary sheet.
"""

import pandas as pd
from datetime import datetime
from typing import Dict, List, Any
import logging
import os

ATTENDANCE_COLUMNS = {
    'attendance_date': 'Date',
    'student_code': 'Student ID',
    'student_name': 'Student',
    'student_group': 'Group',
    'subject': 'Subject',
    'marked_by_name': 'Marked By',
    'created_at': 'Recorded At'
}

TIMETABLE_COLUMNS = {
    'day': 'Day',
    'time': 'Time',
    'course': 'Course',
    'teacher': 'Teacher',
    'classroom': 'Classroom'
}


class ReportGenerator:
    """
    Attendance and timetable exports.
    """

    def __init__(self, attendance_manager, schedule_manager, output_dir: str = 'reports'):
        """
        Args:
            attendance_manager: AttendanceManager providing attendance records
            schedule_manager: ScheduleManager providing the timetable
            output_dir (str): Directory for generated files
        """
        self.attendance_manager = attendance_manager
        self.schedule_manager = schedule_manager
        self.logger = logging.getLogger(__name__)

        self.output_dir = str(output_dir)
        self.supported_formats = ['csv', 'excel']

        os.makedirs(self.output_dir, exist_ok=True)

    def generate_attendance_report(self, filters: Dict[str, Any],
                                   output_format: str = 'csv') -> Dict[str, Any]:
        """
        Export attendance records.

        Args:
            filters (Dict[str, Any]): start_date, end_date, subject (all optional)
            output_format (str): csv or excel

        Returns:
            Dict[str, Any]: Report generation result
        """
        if output_format not in self.supported_formats:
            return {'success': False, 'error': f'Unsupported output format: {output_format}'}

        records = self.attendance_manager.get_attendance_records(
            start_date=filters.get('start_date') or None,
            end_date=filters.get('end_date') or None,
            subject=filters.get('subject') or None
        )
        if not records:
            return {'success': False, 'error': 'No data found for the specified criteria'}

        df = pd.DataFrame(records)[list(ATTENDANCE_COLUMNS)].rename(columns=ATTENDANCE_COLUMNS)

        sheets = {'Attendance': df}
        if output_format == 'excel':
            summary = (
                df.groupby('Subject')
                  .agg(Records=('Student ID', 'size'), Students=('Student ID', 'nunique'))
                  .reset_index()
            )
            sheets['Summary'] = summary
            filters_applied = [{'Filter': k, 'Value': v} for k, v in filters.items() if v]
            if filters_applied:
                sheets['Applied Filters'] = pd.DataFrame(filters_applied)

        return self._write_report('attendance', sheets, output_format)

    def generate_timetable_report(self, output_format: str = 'csv') -> Dict[str, Any]:
        """
        Export the stored timetable.
        """
        if output_format not in self.supported_formats:
            return {'success': False, 'error': f'Unsupported output format: {output_format}'}

        schedule = self.schedule_manager.get_schedule()
        if not schedule:
            return {'success': False, 'error': 'No data found for the specified criteria'}

        df = pd.DataFrame(schedule)[list(TIMETABLE_COLUMNS)].rename(columns=TIMETABLE_COLUMNS)
        return self._write_report('timetable', {'Timetable': df}, output_format)

    def get_available_reports(self) -> List[Dict[str, str]]:
        return [
            {
                'type': 'attendance',
                'name': 'Attendance Records',
                'description': 'Attendance records with optional date range and subject filters'
            },
            {
                'type': 'timetable',
                'name': 'Timetable',
                'description': 'The currently published timetable'
            }
        ]

    def _write_report(self, report_type: str, sheets: Dict[str, pd.DataFrame],
                      output_format: str) -> Dict[str, Any]:
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S_%f')
        extension = 'xlsx' if output_format == 'excel' else 'csv'
        filename = f"{report_type}_{timestamp}.{extension}"
        filepath = os.path.join(self.output_dir, filename)

        try:
            if output_format == 'excel':
                with pd.ExcelWriter(filepath, engine='openpyxl') as writer:
                    for sheet_name, df in sheets.items():
                        df.to_excel(writer, sheet_name=sheet_name, index=False)
            else:
                next(iter(sheets.values())).to_csv(filepath, index=False, encoding='utf-8')

        except (OSError, ValueError) as e:
            self.logger.error(f"{output_format} report generation failed: {str(e)}")
            return {'success': False, 'error': str(e)}

        self.logger.info(f"Report generated successfully: {filename}")
        return {
            'success': True,
            'filename': filename,
            'filepath': filepath,
            'format': output_format,
            'size': os.path.getsize(filepath)
        }
