"""
EduSched web routes.

HTML pages for login, dashboards, data management, QR tools and the
library, plus the JSON API used by the pages' scripts. Every route is a
thin layer over one manager operation; access is controlled by the role
permissions defined in AuthManager.
"""

from functools import wraps
import logging

from flask import (Blueprint, current_app, flash, jsonify, redirect, render_template,
                   request, send_file, session, url_for)

from .modules.auth_manager import AuthManager
from .modules.schedule_manager import ENTITY_KINDS

logger = logging.getLogger(__name__)

main_bp = Blueprint('main', __name__)

ENTITY_LABELS = {
    'courses': 'Courses',
    'teachers': 'Teachers',
    'classrooms': 'Classrooms',
    'time_slots': 'Time Slots',
    'student_groups': 'Student Groups',
}

# Manager error_type -> HTTP status
ERROR_STATUS = {
    'validation_error': 400,
    'invalid_format': 400,
    'date_out_of_range': 400,
    'missing_data': 400,
    'not_enrolled': 400,
    'unknown_kind': 404,
    'not_found': 404,
    'student_not_found': 404,
    'user_not_found': 404,
    'duplicate': 409,
    'already_issued': 409,
    'llm_error': 502,
    'not_configured': 503,
    'database_error': 500,
}


def components():
    return current_app.extensions['edusched']


def _wants_json():
    return request.path.startswith('/api/') or request.path.startswith('/reports/')


def _json_error(message, status, error_type=None):
    return jsonify({'success': False, 'message': message, 'error_type': error_type}), status


def _failure(result):
    error_type = result.get('error_type')
    return _json_error(result['error'], ERROR_STATUS.get(error_type, 400), error_type)


def _payload():
    """JSON request body as a dict; anything other than a JSON object is treated as empty"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _can(permission):
    return permission in AuthManager.PERMISSIONS.get(session.get('user_type'), [])


def login_required(f):
    """Decorator to require login for protected routes"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user_id' not in session:
            if _wants_json():
                return _json_error('Authentication required', 401)
            flash('Please log in to access this page.', 'error')
            return redirect(url_for('main.login'))
        return f(*args, **kwargs)
    return decorated_function


def permission_required(permission):
    """Decorator to require a role permission for protected routes"""
    def decorator(f):
        @wraps(f)
        @login_required
        def decorated_function(*args, **kwargs):
            if not _can(permission):
                if _wants_json():
                    return _json_error('You do not have permission to perform this action.', 403)
                flash('You do not have permission to view this page.', 'error')
                return redirect(url_for('main.dashboard'))
            return f(*args, **kwargs)
        return decorated_function
    return decorator


@main_bp.app_context_processor
def inject_user():
    if 'user_id' not in session:
        return {'current_user': None}
    return {
        'current_user': {
            'id': session['user_id'],
            'user_code': session.get('user_code'),
            'name': session.get('full_name'),
            'user_type': session.get('user_type'),
            'permissions': AuthManager.PERMISSIONS.get(session.get('user_type'), [])
        }
    }


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------

@main_bp.route('/')
def index():
    if 'user_id' in session:
        return redirect(url_for('main.dashboard'))
    return redirect(url_for('main.login'))


@main_bp.route('/login', methods=['GET', 'POST'])
def login():
    """User login page and authentication"""
    if request.method == 'POST':
        login_id = request.form.get('login', '').strip()
        password = request.form.get('password', '')

        if not login_id or not password:
            flash('Please provide both user ID and password.', 'error')
            return render_template('login.html'), 400

        user = components()['auth_manager'].authenticate_user(login_id, password)
        if not user:
            flash('Invalid User ID or password. Please try again.', 'error')
            return render_template('login.html'), 401

        session.clear()
        session['user_id'] = user['id']
        session['user_code'] = user['user_code']
        session['user_type'] = user['user_type']
        session['full_name'] = user['name']

        flash(f"Welcome, {user['name']}! Logged in as {user['user_type']}.", 'success')
        return redirect(url_for('main.dashboard'))

    return render_template('login.html')


@main_bp.route('/logout')
@login_required
def logout():
    user_code = session.get('user_code', 'Unknown')
    session.clear()
    flash('You have been logged out successfully.', 'success')
    logger.info(f"User {user_code} logged out")
    return redirect(url_for('main.login'))


@main_bp.route('/dashboard')
@login_required
def dashboard():
    """Role-based dashboard"""
    c = components()
    user_type = session['user_type']
    schedule = c['schedule_manager'].get_schedule()

    data = {
        'user_type': user_type,
        'school_name': c['db'].get_system_setting('school_name', 'EduSched'),
        'schedule': schedule,
        'notifications': c['notification_system'].get_recent_notifications(session['user_id'], limit=5)
    }

    if user_type == 'admin':
        data['user_counts'] = c['auth_manager'].get_user_counts()
        data['entity_counts'] = c['schedule_manager'].get_entity_counts()
        data['today_summary'] = c['attendance_manager'].get_today_attendance_summary()
        data['recent_attendance'] = c['attendance_manager'].get_recent_attendance(limit=10)
    elif user_type == 'teacher':
        data['my_classes'] = c['schedule_manager'].get_schedule_for_teacher(session['full_name'])
        data['marked_today'] = c['attendance_manager'].get_attendance_marked_by(session['user_id'])
    else:
        data['my_attendance'] = c['attendance_manager'].get_attendance_for_student(session['user_code'])
        data['issued_books'] = c['library_manager'].get_issued_books(session['user_id'])

    return render_template('dashboard.html', data=data)


@main_bp.route('/data')
@permission_required('manage_data')
def data_management():
    """Admin data management page"""
    c = components()
    entities = {
        kind: {'label': ENTITY_LABELS[kind], 'items': c['schedule_manager'].list_entities(kind)}
        for kind in ENTITY_KINDS
    }
    users = c['auth_manager'].get_all_users()
    can_generate = all(section['items'] for section in entities.values())
    return render_template('data.html', entities=entities, users=users, can_generate=can_generate,
                           llm_configured=c['timetable_generator'].is_configured)


@main_bp.route('/data/<kind>', methods=['POST'])
@permission_required('manage_data')
def add_entity_form(kind):
    result = components()['schedule_manager'].add_entity(kind, request.form.get('value', ''))
    if result['success']:
        flash(f"Added {result['item']['value']}.", 'success')
    else:
        flash(result['error'], 'error')
    return redirect(url_for('main.data_management'))


@main_bp.route('/data/<kind>/<int:entity_id>/delete', methods=['POST'])
@permission_required('manage_data')
def remove_entity_form(kind, entity_id):
    result = components()['schedule_manager'].remove_entity(kind, entity_id)
    if result['success']:
        flash('Removed.', 'success')
    else:
        flash(result['error'], 'error')
    return redirect(url_for('main.data_management'))


@main_bp.route('/data/users', methods=['POST'])
@permission_required('manage_users')
def create_user_form():
    result = components()['auth_manager'].create_user(request.form.to_dict(), session['user_id'])
    if result['success']:
        flash(f"User {result['user']['name']} has been created with ID {result['user']['user_code']}.", 'success')
    else:
        flash(result['error'], 'error')
    return redirect(url_for('main.data_management'))


@main_bp.route('/data/timetable', methods=['POST'])
@permission_required('generate_timetable')
def generate_timetable_form():
    result = _generate_timetable()
    if result['success']:
        flash(f"Timetable generated with {len(result['schedule'])} entries.", 'success')
    else:
        flash(result['error'], 'error')
    return redirect(url_for('main.data_management'))


@main_bp.route('/qr')
@login_required
def qr_tools():
    """QR code generator and attendance scanner page"""
    c = components()
    user_type = session['user_type']
    generated = None
    subjects = []

    if user_type == 'student':
        student = c['auth_manager'].get_user_by_code(session['user_code'])
        subjects = student['subjects'] if student else []
        subject = request.args.get('subject') or (subjects[0] if subjects else None)
        if subject:
            generated = c['qr_generator'].generate_attendance_qr(session['user_code'], subject)
    elif request.args.get('user_code') and request.args.get('subject'):
        generated = c['qr_generator'].generate_attendance_qr(
            request.args['user_code'], request.args['subject']
        )

    if generated and not generated['success']:
        flash(generated['error'], 'error')
        generated = None

    return render_template('qr.html', generated=generated, subjects=subjects,
                           can_scan=_can('mark_attendance'))


@main_bp.route('/qr/scan', methods=['POST'])
@permission_required('mark_attendance')
def scan_form():
    result = _record_attendance(request.form.get('qr_data', ''))
    flash(result.get('message') or result.get('error'), 'success' if result['success'] else 'error')
    return redirect(url_for('main.qr_tools'))


@main_bp.route('/library')
@permission_required('use_library')
def library():
    """Library search and issued books page"""
    c = components()
    found_book = None
    code = request.args.get('code', '').strip()
    if code:
        result = c['library_manager'].fetch_book_details(code)
        if result['success']:
            found_book = result['book']
        else:
            flash(result['error'], 'error')

    return render_template(
        'library.html',
        code=code,
        found_book=found_book,
        issued_books=c['library_manager'].get_issued_books(session['user_id']),
        books=c['library_manager'].get_all_books() if session['user_type'] == 'admin' else []
    )


@main_bp.route('/library/issue', methods=['POST'])
@permission_required('use_library')
def issue_book_form():
    result = _issue_book(request.form.get('code', ''))
    flash(result.get('message') or result.get('error'), 'success' if result['success'] else 'error')
    return redirect(url_for('main.library'))


@main_bp.route('/library/return', methods=['POST'])
@permission_required('use_library')
def return_book_form():
    result = components()['library_manager'].return_book(session['user_id'], request.form.get('code', ''))
    flash(result.get('message') or result.get('error'), 'success' if result['success'] else 'error')
    return redirect(url_for('main.library'))


# ---------------------------------------------------------------------------
# JSON API
# ---------------------------------------------------------------------------

@main_bp.route('/api/data/<kind>', methods=['GET', 'POST'])
@permission_required('manage_data')
def api_entities(kind):
    if kind not in ENTITY_KINDS:
        return _json_error(f'Unknown data type: {kind}', 404, 'unknown_kind')

    manager = components()['schedule_manager']
    if request.method == 'GET':
        return jsonify({'success': True, 'items': manager.list_entities(kind)})

    result = manager.add_entity(kind, _payload().get('value', ''))
    if not result['success']:
        return _failure(result)
    return jsonify({'success': True, 'item': result['item']}), 201


@main_bp.route('/api/data/<kind>/<int:entity_id>', methods=['DELETE'])
@permission_required('manage_data')
def api_remove_entity(kind, entity_id):
    result = components()['schedule_manager'].remove_entity(kind, entity_id)
    if not result['success']:
        return _failure(result)
    return jsonify({'success': True})


@main_bp.route('/api/users', methods=['POST'])
@permission_required('manage_users')
def api_create_user():
    result = components()['auth_manager'].create_user(_payload(), session['user_id'])
    if not result['success']:
        return _failure(result)
    return jsonify({'success': True, 'message': result['message'], 'user': result['user']}), 201


@main_bp.route('/api/timetable/generate', methods=['POST'])
@permission_required('generate_timetable')
def api_generate_timetable():
    try:
        result = _generate_timetable()
        if not result['success']:
            return _failure(result)
        return jsonify({'success': True, 'schedule': result['schedule']})

    except Exception as e:
        logger.error(f"Timetable generation error: {str(e)}")
        return _json_error('Failed to generate schedule due to an unexpected error.', 500)


@main_bp.route('/api/timetable', methods=['GET'])
@login_required
def api_get_timetable():
    return jsonify({'success': True, 'schedule': components()['schedule_manager'].get_schedule()})


@main_bp.route('/api/timetable/<entry_id>', methods=['PATCH'])
@permission_required('manage_data')
def api_update_timetable_entry(entry_id):
    data = _payload()
    result = components()['schedule_manager'].update_schedule_entry(
        entry_id, str(data.get('field') or ''), data.get('value', '')
    )
    if not result['success']:
        return _failure(result)
    return jsonify({'success': True, 'entry': result['entry']})


@main_bp.route('/api/qr/generate', methods=['POST'])
@login_required
def api_generate_qr():
    """Generate an attendance QR code; students may only generate their own for today"""
    c = components()
    data = _payload()
    subject = str(data.get('subject') or '').strip()

    if session['user_type'] == 'student':
        user_code = session['user_code']
        attendance_date = None
    else:
        user_code = str(data.get('user_code') or '').strip()
        attendance_date = data.get('date') or None
        student = c['auth_manager'].get_user_by_code(user_code)
        if not student or student['user_type'] != 'student':
            return _json_error(f'Student {user_code} not found.', 404, 'student_not_found')

    if not subject:
        return _json_error('A subject is required.', 400, 'validation_error')

    result = c['qr_generator'].generate_attendance_qr(user_code, subject, attendance_date)
    if not result['success']:
        return _failure(result)
    return jsonify({
        'success': True,
        'payload': result['payload'],
        'image_base64': result['image_base64'],
        'filename': result['filename']
    })


@main_bp.route('/api/attendance/scan', methods=['POST'])
@permission_required('mark_attendance')
def api_scan():
    """Process a scanned QR payload and record attendance"""
    try:
        qr_data = str(_payload().get('qr_data') or '').strip()
        if not qr_data:
            return _json_error('No QR code data provided', 400, 'validation_error')

        result = _record_attendance(qr_data)
        if not result['success']:
            return _failure(result)
        return jsonify({'success': True, 'message': result['message'], 'data': result['attendance']})

    except Exception as e:
        logger.error(f"Scan processing error: {str(e)}")
        return _json_error('An unexpected error occurred while recording attendance.', 500)


@main_bp.route('/api/attendance', methods=['GET'])
@login_required
def api_attendance():
    manager = components()['attendance_manager']
    if _can('view_all_attendance'):
        if any(request.args.get(k) for k in ('start_date', 'end_date', 'subject')):
            records = manager.get_attendance_records(
                request.args.get('start_date'), request.args.get('end_date'), request.args.get('subject')
            )
        else:
            records = manager.get_recent_attendance(limit=request.args.get('limit', 50, type=int))
    else:
        records = manager.get_attendance_for_student(
            session['user_code'], days=request.args.get('days', 30, type=int)
        )
    return jsonify({'success': True, 'records': records})


@main_bp.route('/api/library/books/<code>', methods=['GET'])
@permission_required('use_library')
def api_book_details(code):
    result = components()['library_manager'].fetch_book_details(code)
    if not result['success']:
        return _failure(result)
    return jsonify({'success': True, 'book': result['book']})


@main_bp.route('/api/library/books', methods=['POST'])
@permission_required('manage_library')
def api_add_book():
    result = components()['library_manager'].add_book(_payload())
    if not result['success']:
        return _failure(result)
    return jsonify({'success': True, 'book': result['book']}), 201


@main_bp.route('/api/library/issue', methods=['POST'])
@permission_required('use_library')
def api_issue_book():
    result = _issue_book(_payload().get('code', ''))
    if not result['success']:
        return _failure(result)
    return jsonify({'success': True, 'message': result['message'], 'loan': result['loan']})


@main_bp.route('/api/library/return', methods=['POST'])
@permission_required('use_library')
def api_return_book():
    result = components()['library_manager'].return_book(session['user_id'], _payload().get('code', ''))
    if not result['success']:
        return _failure(result)
    return jsonify({'success': True, 'message': result['message']})


@main_bp.route('/api/library/issued', methods=['GET'])
@permission_required('use_library')
def api_issued_books():
    books = components()['library_manager'].get_issued_books(
        session['user_id'], include_returned=request.args.get('include_returned') == '1'
    )
    return jsonify({'success': True, 'books': books})


@main_bp.route('/api/notifications', methods=['GET'])
@login_required
def api_notifications():
    notifications = components()['notification_system'].get_recent_notifications(
        session['user_id'], limit=request.args.get('limit', 10, type=int)
    )
    return jsonify({'success': True, 'notifications': notifications})


@main_bp.route('/api/notifications/<int:notification_id>/read', methods=['POST'])
@login_required
def api_mark_notification_read(notification_id):
    if not components()['notification_system'].mark_notification_read(notification_id, session['user_id']):
        return _json_error('Notification not found', 404, 'not_found')
    return jsonify({'success': True})


@main_bp.route('/reports/<report_type>')
@permission_required('view_reports')
def download_report(report_type):
    """Export attendance or timetable as CSV/Excel"""
    generator = components()['report_generator']
    output_format = request.args.get('format', 'csv')

    if report_type == 'attendance':
        result = generator.generate_attendance_report(
            {k: request.args.get(k) for k in ('start_date', 'end_date', 'subject')},
            output_format
        )
    elif report_type == 'timetable':
        result = generator.generate_timetable_report(output_format)
    else:
        return _json_error(f'Unknown report type: {report_type}', 404, 'not_found')

    if not result['success']:
        return _json_error(result['error'], 404 if 'No data' in result['error'] else 400)

    return send_file(result['filepath'], as_attachment=True, download_name=result['filename'])


# ---------------------------------------------------------------------------
# Shared operations
# ---------------------------------------------------------------------------

def _generate_timetable():
    c = components()
    result = c['schedule_manager'].generate_timetable(generated_by=session['user_id'])
    if result['success']:
        c['notification_system'].send_timetable_notification(len(result['schedule']))
    return result


def _record_attendance(qr_data):
    c = components()
    result = c['attendance_manager'].record_attendance(qr_data, marked_by=session['user_id'])
    if result['success']:
        attendance = dict(result['attendance'], marked_by_name=session.get('full_name'))
        student = c['auth_manager'].get_user_by_code(attendance['student_code'])
        c['notification_system'].send_attendance_notification(
            attendance, student['id'] if student else None
        )
    return result


def _issue_book(code):
    c = components()
    result = c['library_manager'].issue_book(session['user_id'], code)
    if result['success']:
        c['notification_system'].send_book_issued_notification(result['loan'])
    return result
