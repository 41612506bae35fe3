from datetime import date, timedelta

import pytest

from edusched.modules.attendance_manager import AttendanceManager

SCAN_DAY = date(2024, 5, 10)


def test_record_attendance_success(attendance_manager):
    result = attendance_manager.record_attendance(
        'student001|2024-05-10|Mathematics', marked_by=2, today=SCAN_DAY
    )
    assert result['success'] is True
    assert result['message'] == 'Attendance for student001 recorded.'
    assert result['attendance']['student_name'] == 'John Smith'
    assert result['attendance']['subject'] == 'Mathematics'
    assert result['attendance']['marked_by'] == 2


def test_record_attendance_accepts_legacy_payload(attendance_manager):
    result = attendance_manager.record_attendance('student001-2024-05-10-Physics', today=SCAN_DAY)
    assert result['success'] is True
    assert result['attendance']['date'] == '2024-05-10'


def test_duplicate_scan_is_rejected(attendance_manager):
    first = attendance_manager.record_attendance('student001|2024-05-10|Mathematics', today=SCAN_DAY)
    second = attendance_manager.record_attendance('student001|2024-05-10|mathematics', today=SCAN_DAY)

    assert first['success'] is True
    assert second['success'] is False
    assert second['error_type'] == 'duplicate'
    assert second['error'] == 'Attendance for student001 already recorded for this subject today.'
    assert len(attendance_manager.get_attendance_records()) == 1


def test_same_student_other_subject_is_recorded(attendance_manager):
    attendance_manager.record_attendance('student001|2024-05-10|Mathematics', today=SCAN_DAY)
    result = attendance_manager.record_attendance('student001|2024-05-10|Physics', today=SCAN_DAY)
    assert result['success'] is True


def test_subject_is_stored_with_enrolled_spelling(attendance_manager):
    result = attendance_manager.record_attendance('student001|2024-05-10|PHYSICS', today=SCAN_DAY)
    assert result['attendance']['subject'] == 'Physics'


@pytest.mark.parametrize('qr_data, error_type', [
    ('nonsense', 'invalid_format'),
    ('student001|2024-05-11|Mathematics', 'date_out_of_range'),
    ('student001|2024-05-02|Mathematics', 'date_out_of_range'),
    ('student999|2024-05-10|Mathematics', 'student_not_found'),
    ('teacher001|2024-05-10|Mathematics', 'student_not_found'),
    ('student001|2024-05-10|Chemistry', 'not_enrolled'),
])
def test_record_attendance_rejections(attendance_manager, qr_data, error_type):
    result = attendance_manager.record_attendance(qr_data, today=SCAN_DAY)
    assert result['success'] is False
    assert result['error_type'] == error_type
    assert attendance_manager.get_attendance_records() == []


def test_oldest_accepted_date_uses_configured_window(db, qr_generator):
    manager = AttendanceManager(db, qr_generator, max_qr_age_days=1)
    assert manager.get_max_qr_age_days() == 1

    result = manager.record_attendance('student001|2024-05-05|Mathematics', today=SCAN_DAY)
    assert result['error_type'] == 'date_out_of_range'
    assert manager.record_attendance('student001|2024-05-09|Mathematics', today=SCAN_DAY)['success']


def test_setting_change_applies_without_restart(db, qr_generator):
    manager = AttendanceManager(db, qr_generator)
    assert manager.record_attendance('student001|2024-05-07|Mathematics', today=SCAN_DAY)['success']

    db.update_system_setting('qr_max_age_days', '0')
    assert manager.get_max_qr_age_days() == 0
    result = manager.record_attendance('student001|2024-05-07|Physics', today=SCAN_DAY)
    assert result['error_type'] == 'date_out_of_range'


def test_invalid_setting_falls_back_to_configured_window(db, qr_generator):
    db.update_system_setting('qr_max_age_days', 'soon')
    assert AttendanceManager(db, qr_generator, max_qr_age_days=3).get_max_qr_age_days() == 3


def test_attendance_queries(attendance_manager):
    today = date.today()
    attendance_manager.record_attendance(f'student001|{today}|Mathematics', marked_by=2)
    attendance_manager.record_attendance(f'student002|{today}|Mathematics', marked_by=2)
    attendance_manager.record_attendance(f'student001|{today - timedelta(days=1)}|Physics', marked_by=1)

    history = attendance_manager.get_attendance_for_student('student001')
    assert [r['subject'] for r in history] == ['Mathematics', 'Physics']

    marked = attendance_manager.get_attendance_marked_by(2)
    assert {r['student_code'] for r in marked} == {'student001', 'student002'}

    summary = attendance_manager.get_today_attendance_summary()
    assert summary['total_records'] == 2
    assert summary['unique_students'] == 2
    assert summary['subject_breakdown'] == [{'subject': 'Mathematics', 'count': 2}]

    recent = attendance_manager.get_recent_attendance(limit=2)
    assert len(recent) == 2
    assert recent[0]['marked_by_name']

    trends = attendance_manager.get_attendance_trends(days=7)
    assert len(trends['daily_counts']) == 2


def test_attendance_records_filters(attendance_manager):
    attendance_manager.record_attendance('student001|2024-05-09|Mathematics', today=SCAN_DAY)
    attendance_manager.record_attendance('student001|2024-05-10|Physics', today=SCAN_DAY)
    attendance_manager.record_attendance('student002|2024-05-10|Chemistry', today=SCAN_DAY)

    assert len(attendance_manager.get_attendance_records(start_date='2024-05-10')) == 2
    assert len(attendance_manager.get_attendance_records(end_date='2024-05-09')) == 1

    chemistry = attendance_manager.get_attendance_records(subject='chemistry')
    assert chemistry[0]['student_name'] == 'Amy Lee'
    assert chemistry[0]['student_group'] == 'Group B'
