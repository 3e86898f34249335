from flask import render_template, request, redirect, url_for, flash, jsonify, session, make_response
from flask_login import login_user, logout_user, login_required, current_user
from urllib.parse import urlparse
from flask_wtf import FlaskForm
from flask_wtf.csrf import CSRFError, generate_csrf
from wtforms import StringField, PasswordField, SelectField, SubmitField
from wtforms.validators import InputRequired, Length, AnyOf
from dataclasses import fields
from functools import wraps
from app import app
from models import ROLE_STUDENT, ROLE_DRIVER, ROLE_ADMIN, ROLES, NOTIFICATION_TYPES
from records import Student, Driver, Bus, Route, BUS_STATUS_RUNNING, BUS_STATUSES, MalformedRecordError
import database_store as data_store
import exports
import load_analysis
import profanity_filter
import sheet_api
import logging

logger = logging.getLogger(__name__)

DASHBOARD_ENDPOINTS = {
    ROLE_STUDENT: 'student_dashboard',
    ROLE_DRIVER: 'driver_dashboard',
    ROLE_ADMIN: 'admin_dashboard',
}

def is_safe_url(target):
    """Check if a URL is safe for redirects (same host/internal only)"""
    if not target:
        return False

    parsed = urlparse(target)

    # Allow only relative URLs - prevents redirects to external sites
    if parsed.netloc:
        return False

    if parsed.scheme and parsed.scheme not in ['http', 'https', '']:
        return False

    return True

# Login Form
class LoginForm(FlaskForm):
    identifier = StringField('Roll No / Driver ID / Email', validators=[InputRequired(), Length(min=2, max=120)])
    password = PasswordField('Password', validators=[InputRequired(), Length(min=6, max=64)])
    role = SelectField('Role', choices=[(role, role.capitalize()) for role in ROLES],
                       validators=[InputRequired(), AnyOf(ROLES)])
    submit = SubmitField('Sign In')


def error_response(message, status_code):
    return jsonify({'success': False, 'error': message}), status_code


def role_required(*roles):
    """Decorator to restrict a route to logged-in users with one of the given roles"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return redirect(url_for('login', next=request.path))

            if current_user.role not in roles:
                logger.warning(f"Access denied for {current_user.role} {current_user.identifier} to {f.__name__}")
                return error_response('Access denied', 403)

            return f(*args, **kwargs)
        return decorated_function
    return decorator


@app.errorhandler(sheet_api.DataUnavailableError)
def handle_data_unavailable(error):
    logger.error(f"Provider failure on {request.path}: {error}")
    return error_response('Data unavailable', 503)

@app.errorhandler(load_analysis.InvalidInputError)
@app.errorhandler(MalformedRecordError)
def handle_invalid_records(error):
    logger.warning(f"Rejected provider data on {request.path}: {error}")
    return error_response(str(error), 422)

@app.errorhandler(403)
def forbidden(error):
    return error_response('Access denied', 403)

@app.errorhandler(CSRFError)
def handle_csrf_error(error):
    logger.warning(f"CSRF check failed on {request.path}: {error.description}")
    if request.endpoint == 'login':
        flash('Your session expired, please sign in again')
        return redirect(url_for('login'))
    return error_response(error.description, 400)

# Make session permanent
@app.before_request
def make_session_permanent():
    session.permanent = True

# Authentication Routes
@app.route('/login', methods=['GET', 'POST'])
def login():
    """User login"""
    if current_user.is_authenticated:
        return redirect(url_for(DASHBOARD_ENDPOINTS[current_user.role]))

    form = LoginForm()
    if form.validate_on_submit():
        user = data_store.get_user_by_identifier(form.identifier.data.strip(), form.role.data)

        if user and user.check_password(form.password.data) and user.active:
            login_user(user)
            logger.info(f"{user.role} {user.identifier} logged in")
            next_page = request.args.get('next')
            if next_page and is_safe_url(next_page):
                return redirect(next_page)
            return redirect(url_for(DASHBOARD_ENDPOINTS[user.role]))
        else:
            flash('Invalid credentials for the selected role')

    return render_template('auth/login.html', form=form)


@app.route('/logout')
@login_required
def logout():
    """User logout"""
    logout_user()
    flash('You have been logged out')
    return redirect(url_for('login'))

@app.route('/')
def index():
    if not current_user.is_authenticated:
        return redirect(url_for('login'))
    return redirect(url_for(DASHBOARD_ENDPOINTS[current_user.role]))

@app.route('/api/csrf-token')
@login_required
def get_csrf_token():
    """Fresh CSRF token for JSON clients; send it back in the X-CSRFToken header"""
    return jsonify({'csrf_token': generate_csrf()})

@app.route('/profile/change-password', methods=['POST'])
@login_required
def change_password():
    """Change user's password"""
    current_password = request.form.get('current_password')
    new_password = request.form.get('new_password')
    confirm_password = request.form.get('confirm_password')

    if not current_password or not new_password or not confirm_password:
        return error_response('All password fields are required', 400)

    if not current_user.check_password(current_password):
        return error_response('Current password is incorrect', 400)

    if new_password != confirm_password:
        return error_response('New passwords do not match', 400)

    if len(new_password) < 6:
        return error_response('New password must be at least 6 characters long', 400)

    try:
        data_store.set_user_password(current_user.id, new_password)
    except Exception:
        return error_response('Error updating password', 500)

    return jsonify({'success': True})

# Student routes
@app.route('/student/dashboard')
@role_required(ROLE_STUDENT)
def student_dashboard():
    """The student's record with their assigned bus and driver"""
    student = sheet_api.get_student_by_roll_no(current_user.identifier)
    if not student:
        return error_response(f'No student record found for roll number: {current_user.identifier}', 404)

    drivers, buses = sheet_api.fetch_together(sheet_api.get_drivers, sheet_api.get_buses)
    driver = next((d for d in drivers if d.bus_no == student.assigned_bus_id), None)
    bus = next((b for b in data_store.apply_bus_status_overrides(buses)
                if b.bus_id == student.assigned_bus_id), None)

    return jsonify({
        'student': student.to_dict(),
        'bus': bus.to_dict() if bus else None,
        'driver': driver.to_dict() if driver else None
    })

@app.route('/student/feedback', methods=['POST'])
@role_required(ROLE_STUDENT)
def submit_feedback():
    """Record feedback about the student's bus and notify admins"""
    message = request.form.get('message', '')
    is_valid, error_msg = profanity_filter.validate_text_input(message, 'feedback')
    if not is_valid:
        logger.warning(f"Feedback rejected for student {current_user.identifier}: {error_msg}")
        return error_response(error_msg, 400)

    message = profanity_filter.sanitize_input(message)
    bus_no = request.form.get('bus_no') or None
    feedback_id = data_store.create_feedback(current_user.identifier, message, bus_no=bus_no)
    data_store.notify_role(
        ROLE_ADMIN,
        'New Feedback',
        f"Student {current_user.identifier}: {message}",
        type='info',
        action_url=url_for('admin_feedback')
    )
    return jsonify({'success': True, 'id': feedback_id})

# Driver routes
def _current_driver():
    driver = sheet_api.get_driver_by_id(current_user.identifier)
    if not driver:
        return None, error_response(f'No driver record found for driver ID: {current_user.identifier}', 404)
    return driver, None

@app.route('/driver/dashboard')
@role_required(ROLE_DRIVER)
def driver_dashboard():
    """The driver's record, assigned bus and route, and trip state"""
    driver, error = _current_driver()
    if error:
        return error

    buses, routes = sheet_api.fetch_together(sheet_api.get_buses, sheet_api.get_routes)
    bus = next((b for b in data_store.apply_bus_status_overrides(buses) if b.bus_id == driver.bus_no), None)
    route = next((r for r in routes if r.route_name == driver.route), None)

    return jsonify({
        'driver': driver.to_dict(),
        'bus': bus.to_dict() if bus else None,
        'route': route.to_dict() if route else None,
        'trip_status': data_store.get_trip_status(driver.driver_id)
    })

@app.route('/driver/trip/start', methods=['POST'])
@role_required(ROLE_DRIVER)
def start_trip():
    driver, error = _current_driver()
    if error:
        return error
    try:
        status = data_store.start_trip(driver.driver_id, bus_no=driver.bus_no)
    except data_store.TripStateError as e:
        return error_response(str(e), 409)
    return jsonify({'success': True, 'trip_status': status})

@app.route('/driver/trip/end', methods=['POST'])
@role_required(ROLE_DRIVER)
def end_trip():
    driver, error = _current_driver()
    if error:
        return error
    try:
        status = data_store.end_trip(driver.driver_id)
    except data_store.TripStateError as e:
        return error_response(str(e), 409)
    return jsonify({'success': True, 'trip_status': status})

@app.route('/driver/bus-status', methods=['POST'])
@role_required(ROLE_DRIVER)
def update_bus_status():
    """Driver reports the status of their bus"""
    status = request.form.get('status')
    if status not in BUS_STATUSES:
        return error_response(f"Invalid status. Expected one of: {', '.join(BUS_STATUSES)}", 400)

    driver, error = _current_driver()
    if error:
        return error
    data_store.update_bus_status(driver.bus_no, status, reported_by=driver.driver_id)
    return jsonify({'success': True, 'bus_no': driver.bus_no, 'status': status})

@app.route('/driver/emergency', methods=['POST'])
@role_required(ROLE_DRIVER)
def emergency_alert():
    """Alert every admin about an emergency on the driver's bus"""
    driver, error = _current_driver()
    if error:
        return error
    details = profanity_filter.sanitize_input(request.form.get('message', '')) or 'No details provided'
    sent = data_store.notify_role(
        ROLE_ADMIN,
        'Emergency Alert',
        f"Driver {driver.name} ({driver.driver_id}) on bus {driver.bus_no}: {details}",
        type='error'
    )
    logger.warning(f"Emergency alert from driver {driver.driver_id} sent to {sent} admins")
    return jsonify({'success': True, 'notified': sent})

# Admin routes
def filter_students(students, department=None, year=None, route=None, bus_no=None, search=''):
    """Admin student table filters; 'all' or empty means no filter"""
    def selected(value):
        return value and value != 'all'

    search = (search or '').lower()
    result = []
    for student in students:
        if selected(department) and student.department != department:
            continue
        if selected(year) and student.year != year:
            continue
        if selected(route) and student.route_name != route:
            continue
        if selected(bus_no) and student.assigned_bus_id != bus_no:
            continue
        if search and search not in student.name.lower() and search not in student.roll_number.lower():
            continue
        result.append(student)
    return result

def unique_values(records, attribute):
    """Distinct non-empty values in first-seen order"""
    seen = []
    for record in records:
        value = getattr(record, attribute)
        if value and value not in seen:
            seen.append(value)
    return seen

def _year_filter():
    # An empty ?year= means no filter; any other value, 'all' included, is matched exactly.
    # The admin student table treats 'all' as no filter instead (filter_students).
    return request.args.get('year') or None

def _filtered_students():
    students = sheet_api.get_all_students()
    shown = filter_students(
        students,
        department=request.args.get('department'),
        year=request.args.get('year'),
        route=request.args.get('route'),
        bus_no=request.args.get('bus_no'),
        search=request.args.get('search', '')
    )
    return students, shown

@app.route('/admin/dashboard')
@role_required(ROLE_ADMIN)
def admin_dashboard():
    """Fleet and roster totals"""
    students, drivers, buses, routes = sheet_api.fetch_together(
        sheet_api.get_all_students, sheet_api.get_drivers, sheet_api.get_buses, sheet_api.get_routes)
    buses = data_store.apply_bus_status_overrides(buses)

    return jsonify({
        'total_students': len(students),
        'total_drivers': len(drivers),
        'total_buses': len(buses),
        'running_buses': sum(1 for bus in buses if bus.status == BUS_STATUS_RUNNING),
        'total_routes': len(routes),
        'unread_notifications': data_store.get_unread_count(current_user.id)
    })

@app.route('/admin/students')
@role_required(ROLE_ADMIN)
def admin_students():
    students, shown = _filtered_students()
    return jsonify({
        'students': [student.to_dict() for student in shown],
        'shown': len(shown),
        'total': len(students)
    })

@app.route('/admin/drivers')
@role_required(ROLE_ADMIN)
def admin_drivers():
    return jsonify({'drivers': [driver.to_dict() for driver in sheet_api.get_drivers()]})

@app.route('/admin/buses')
@role_required(ROLE_ADMIN)
def admin_buses():
    buses = data_store.apply_bus_status_overrides(sheet_api.get_buses())
    return jsonify({'buses': [bus.to_dict() for bus in buses]})

@app.route('/admin/routes')
@role_required(ROLE_ADMIN)
def admin_routes():
    return jsonify({'routes': [route.to_dict() for route in sheet_api.get_routes()]})

@app.route('/admin/filter-options')
@role_required(ROLE_ADMIN)
def admin_filter_options():
    """Values for the student table and load analysis filters"""
    students = sheet_api.get_all_students()
    return jsonify({
        'departments': unique_values(students, 'department'),
        'years': unique_values(students, 'year'),
        'routes': unique_values(students, 'route_name'),
        'bus_numbers': unique_values(students, 'assigned_bus_id')
    })

@app.route('/api/load-analysis')
@role_required(ROLE_ADMIN)
def load_analysis_report():
    """Ordered load report rows, one per bus"""
    rows = sheet_api.get_bus_load_analysis(_year_filter())
    return jsonify([row.to_dict() for row in rows])

@app.route('/api/load-analysis/summary')
@role_required(ROLE_ADMIN)
def load_analysis_summary():
    """Status counts for the load report plus students on unknown buses"""
    year = _year_filter()
    students, buses = sheet_api.fetch_roster_and_fleet()
    rows = load_analysis.analyze(students, buses, year)
    summary = load_analysis.summarize(rows)
    unmatched = load_analysis.find_unmatched_students(students, buses, year)
    summary['unmatched_students'] = len(unmatched)
    summary['unmatched_roll_numbers'] = [student.roll_number for student in unmatched]
    summary['year'] = year
    return jsonify(summary)

def _field_names(record_type):
    return [field.name for field in fields(record_type)]

@app.route('/admin/export/<dataset>')
@role_required(ROLE_ADMIN)
def export_csv(dataset):
    """Download a dashboard table as CSV"""
    if dataset == 'students':
        _, shown = _filtered_students()
        csv_content = exports.records_to_csv(shown, _field_names(Student))
    elif dataset == 'drivers':
        csv_content = exports.records_to_csv(sheet_api.get_drivers(), _field_names(Driver))
    elif dataset == 'buses':
        buses = data_store.apply_bus_status_overrides(sheet_api.get_buses())
        csv_content = exports.records_to_csv(buses, _field_names(Bus))
    elif dataset == 'routes':
        csv_content = exports.records_to_csv(sheet_api.get_routes(), _field_names(Route))
    elif dataset == 'load-analysis':
        rows = sheet_api.get_bus_load_analysis(_year_filter())
        csv_content = exports.records_to_csv(rows, _field_names(load_analysis.LoadReportRow))
    else:
        return error_response(f'Unknown dataset: {dataset}', 404)

    response = make_response(csv_content)
    response.headers['Content-Type'] = 'text/csv'
    response.headers['Content-Disposition'] = f'attachment; filename={dataset}.csv'
    logger.info(f"Exported {dataset} for {current_user.identifier}")
    return response

@app.route('/admin/feedback')
@role_required(ROLE_ADMIN)
def admin_feedback():
    return jsonify({'feedback': data_store.get_all_feedback()})

@app.route('/admin/notifications/send', methods=['POST'])
@role_required(ROLE_ADMIN)
def admin_send_notification():
    """Broadcast a notification to every user with a role"""
    role = request.form.get('role')
    title = request.form.get('title', '').strip()
    message = request.form.get('message', '')
    type = request.form.get('type', 'info')

    if role not in ROLES:
        return error_response(f"Invalid role. Expected one of: {', '.join(ROLES)}", 400)
    if type not in NOTIFICATION_TYPES:
        return error_response(f"Invalid type. Expected one of: {', '.join(NOTIFICATION_TYPES)}", 400)
    if not title:
        return error_response('Title is required', 400)
    is_valid, error_msg = profanity_filter.validate_text_input(message, 'message')
    if not is_valid:
        return error_response(error_msg, 400)

    sent = data_store.notify_role(role, title, profanity_filter.sanitize_input(message), type=type)
    logger.info(f"Admin {current_user.identifier} notified {sent} {role} accounts")
    return jsonify({'success': True, 'notified': sent})

# Notification routes (any logged-in user)
@app.route('/api/notifications')
@login_required
def list_notifications():
    return jsonify({
        'notifications': data_store.get_notifications_for_user(current_user.id),
        'unread_count': data_store.get_unread_count(current_user.id)
    })

@app.route('/api/notifications/<int:notification_id>/read', methods=['POST'])
@login_required
def read_notification(notification_id):
    if not data_store.mark_as_read(notification_id, current_user.id):
        return error_response('Notification not found', 404)
    return jsonify({'success': True})

@app.route('/api/notifications/read-all', methods=['POST'])
@login_required
def read_all_notifications():
    updated = data_store.mark_all_as_read(current_user.id)
    return jsonify({'success': True, 'updated': updated})

@app.route('/api/notifications/clear', methods=['POST'])
@login_required
def clear_notifications():
    deleted = data_store.clear_notifications(current_user.id)
    return jsonify({'success': True, 'deleted': deleted})
