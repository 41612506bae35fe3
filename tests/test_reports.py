from datetime import date

import pandas as pd
import pytest

from edusched.modules.report_generator import ReportGenerator


@pytest.fixture
def report_generator(tmp_path, attendance_manager, schedule_manager):
    return ReportGenerator(attendance_manager, schedule_manager, tmp_path / 'reports')


def _record(attendance_manager):
    today = date.today()
    attendance_manager.record_attendance(f'student001|{today}|Mathematics', marked_by=2)
    attendance_manager.record_attendance(f'student002|{today}|Mathematics', marked_by=2)
    attendance_manager.record_attendance(f'student002|{today}|Chemistry', marked_by=2)


def test_attendance_report_without_data(report_generator):
    result = report_generator.generate_attendance_report({})
    assert result == {'success': False, 'error': 'No data found for the specified criteria'}


def test_attendance_report_csv(report_generator, attendance_manager):
    _record(attendance_manager)

    result = report_generator.generate_attendance_report({'subject': 'Mathematics'})
    assert result['success'] is True
    assert result['filename'].startswith('attendance_')
    assert result['filename'].endswith('.csv')

    df = pd.read_csv(result['filepath'])
    assert list(df.columns) == ['Date', 'Student ID', 'Student', 'Group', 'Subject',
                                'Marked By', 'Recorded At']
    assert sorted(df['Student ID']) == ['student001', 'student002']
    assert set(df['Marked By']) == {'Jane Doe'}


def test_attendance_report_excel_has_summary(report_generator, attendance_manager):
    _record(attendance_manager)

    result = report_generator.generate_attendance_report({'subject': None}, output_format='excel')
    assert result['filename'].endswith('.xlsx')

    sheets = pd.read_excel(result['filepath'], sheet_name=None)
    assert set(sheets) == {'Attendance', 'Summary'}
    summary = sheets['Summary'].set_index('Subject')
    assert summary.loc['Mathematics', 'Records'] == 2
    assert summary.loc['Chemistry', 'Students'] == 1


def test_unsupported_format(report_generator):
    result = report_generator.generate_timetable_report('pdf')
    assert result['success'] is False
    assert 'Unsupported' in result['error']


def test_timetable_report(report_generator, schedule_manager):
    assert report_generator.generate_timetable_report()['success'] is False

    schedule_manager.save_schedule([{'id': 'one', 'day': 'Monday', 'time': '9', 'course': 'Maths',
                                     'teacher': 'Jane Doe', 'classroom': 'R1'}])
    result = report_generator.generate_timetable_report('csv')
    df = pd.read_csv(result['filepath'])
    assert list(df.columns) == ['Day', 'Time', 'Course', 'Teacher', 'Classroom']
    assert df.loc[0, 'Course'] == 'Maths'


def test_available_reports(report_generator):
    assert [r['type'] for r in report_generator.get_available_reports()] == ['attendance', 'timetable']
