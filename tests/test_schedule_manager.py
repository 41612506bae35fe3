import json

from edusched.modules.schedule_manager import ScheduleManager
from edusched.modules.timetable_generator import TimetableGenerator

from .conftest import make_llm_client


def _fill_entities(manager):
    for kind, value in [
        ('courses', 'Mathematics'),
        ('teachers', 'Jane Doe'),
        ('classrooms', 'Room 101'),
        ('time_slots', 'Monday 09:00 - 10:00'),
        ('student_groups', 'Group A'),
    ]:
        assert manager.add_entity(kind, value)['success']


def test_add_and_list_entities(schedule_manager):
    result = schedule_manager.add_entity('courses', '  Mathematics ')
    assert result['success'] is True
    assert result['item']['value'] == 'Mathematics'

    schedule_manager.add_entity('courses', 'Physics')
    assert schedule_manager.get_entity_values('courses') == ['Mathematics', 'Physics']
    assert schedule_manager.get_entity_counts()['courses'] == 2


def test_add_entity_errors(schedule_manager):
    assert schedule_manager.add_entity('rooms', 'A')['error_type'] == 'unknown_kind'
    assert schedule_manager.add_entity('courses', '   ')['error_type'] == 'validation_error'

    schedule_manager.add_entity('time_slots', 'Monday 09:00 - 10:00')
    duplicate = schedule_manager.add_entity('time_slots', 'Monday 09:00 - 10:00')
    assert duplicate['error_type'] == 'duplicate'


def test_remove_entity(schedule_manager):
    item = schedule_manager.add_entity('teachers', 'Jane Doe')['item']
    assert schedule_manager.remove_entity('teachers', item['id'])['success'] is True
    assert schedule_manager.get_entity_values('teachers') == []
    assert schedule_manager.remove_entity('teachers', item['id'])['error_type'] == 'not_found'


def test_generate_timetable_persists_schedule(schedule_manager):
    _fill_entities(schedule_manager)

    result = schedule_manager.generate_timetable(generated_by=1)
    assert result['success'] is True
    assert [e['course'] for e in result['schedule']] == ['Mathematics', 'Physics']
    assert schedule_manager.get_schedule() == result['schedule']


def test_generate_timetable_missing_data_keeps_previous_schedule(db):
    manager = ScheduleManager(db, TimetableGenerator(client=make_llm_client('{}')))
    manager.save_schedule([{'id': 'a1', 'day': 'Friday', 'time': '9', 'course': 'Art',
                            'teacher': 'Bob', 'classroom': 'R1'}])

    result = manager.generate_timetable()
    assert result['error_type'] == 'missing_data'
    assert [e['id'] for e in manager.get_schedule()] == ['a1']


def test_generate_timetable_uses_model_setting(db, llm_client):
    manager = ScheduleManager(db, TimetableGenerator(client=llm_client, model='default-model'))
    _fill_entities(manager)
    db.update_system_setting('openai_model', 'setting-model')

    manager.generate_timetable()
    assert llm_client.chat.completions.calls[0]['model'] == 'setting-model'


def test_save_schedule_replaces_previous_entries(schedule_manager):
    entry = {'day': 'Monday', 'time': '9', 'course': 'Maths', 'teacher': 'Jane Doe', 'classroom': 'R1'}
    schedule_manager.save_schedule([dict(entry, id='one'), dict(entry, id='two')])
    assert schedule_manager.save_schedule([dict(entry, id='three')]) == 1
    assert [e['id'] for e in schedule_manager.get_schedule()] == ['three']


def test_schedule_for_teacher_and_entry_update(schedule_manager):
    entry = {'day': 'Monday', 'time': '9', 'course': 'Maths', 'classroom': 'R1'}
    schedule_manager.save_schedule([
        dict(entry, id='one', teacher='Jane Doe'),
        dict(entry, id='two', teacher='Alan Turing'),
    ])
    assert [e['id'] for e in schedule_manager.get_schedule_for_teacher('jane doe')] == ['one']

    result = schedule_manager.update_schedule_entry('two', 'classroom', 'Lab 2')
    assert result['success'] is True
    assert result['entry']['classroom'] == 'Lab 2'

    assert schedule_manager.update_schedule_entry('two', 'id', 'x')['error_type'] == 'validation_error'
    assert schedule_manager.update_schedule_entry('two', 'day', ' ')['error_type'] == 'validation_error'
    assert schedule_manager.update_schedule_entry('missing', 'day', 'Tuesday')['error_type'] == 'not_found'


def test_generated_reply_with_bad_format_is_not_saved(db):
    reply = json.dumps({'schedule': 'not a list'})
    manager = ScheduleManager(db, TimetableGenerator(client=make_llm_client(reply)))
    _fill_entities(manager)

    result = manager.generate_timetable()
    assert result['error_type'] == 'invalid_format'
    assert manager.get_schedule() == []


def test_clear_schedule(schedule_manager):
    entry = {'day': 'Monday', 'time': '9', 'course': 'Maths', 'teacher': 'Jane Doe', 'classroom': 'R1'}
    schedule_manager.save_schedule([dict(entry, id='one'), dict(entry, id='two')])
    assert schedule_manager.clear_schedule() == 2
    assert schedule_manager.get_schedule() == []
