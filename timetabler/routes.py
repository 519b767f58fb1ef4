from flask import request, jsonify, session
from timetabler import app, db
import logging
logger = logging.getLogger(__name__)
from timetabler.models import CourseTemplate, AttendanceSession, User, AuditLog
from timetabler.errors import TimetableError, ValidationError
from timetabler import templates as template_store
from timetabler import overrides as override_store
from timetabler import instances as instance_store
from timetabler import sessions as generator
from timetabler.resolver import resolve_schedule
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash
from functools import wraps


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not session.get('logged_in'):
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        return fn(*args, **kwargs)
    return wrapper


# --- Helper Functions ---
def _payload():
    return request.get_json(silent=True) or {}


def _require(data, *keys):
    missing = [k for k in keys if data.get(k) in (None, '')]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    return [data[k] for k in keys]


def _int_arg(name):
    raw = request.args.get(name, '').strip()
    if not raw:
        raise ValidationError(f'Missing query parameter: {name}')
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f'Invalid {name}: {raw!r}')


def _ok(data=None, status=200, message=None):
    body = {'success': True, 'data': data}
    if message:
        body['message'] = message
    return jsonify(body), status


def _audit(action, target, details=None):
    try:
        db.session.add(AuditLog(
            action=action,
            actor_username=session.get('user') or 'system',
            actor_role=session.get('role'),
            target=target,
            details=details,
        ))
        db.session.commit()
    except SQLAlchemyError as _e:
        db.session.rollback()
        logger.warning(f"Failed to write audit log for {action}: {_e}")


@app.errorhandler(TimetableError)
def handle_timetable_error(error):
    body = {'success': False, 'error': error.message}
    if error.details is not None:
        body['details'] = error.details
    return jsonify(body), error.status_code


@app.errorhandler(404)
def handle_404(error):
    return jsonify({'success': False, 'error': 'Not found'}), 404


# --- Auth ---
@app.route('/api/auth/login', methods=['POST'])
def login():
    data = _payload()
    username, password = _require(data, 'username', 'password')
    user = User.query.filter_by(username=username).first()
    if not user or not check_password_hash(user.password_hash, password):
        logger.info(f"Failed login for {username}")
        return jsonify({'success': False, 'error': 'Invalid username or password'}), 401
    session.permanent = True
    session['logged_in'] = True
    session['user'] = user.username
    session['role'] = user.role
    return _ok({'username': user.username, 'role': user.role})


@app.route('/api/auth/logout', methods=['POST'])
def logout():
    session.clear()
    return _ok()


# --- Templates ---
@app.route('/api/timetable/templates', methods=['GET'])
@login_required
def list_templates():
    class_id = _int_arg('class_id')
    include_inactive = request.args.get('include_inactive', '').lower() in ('1', 'true', 'yes')
    rows = template_store.list_templates(class_id, include_inactive=include_inactive)
    return _ok([t.to_dict() for t in rows])


@app.route('/api/timetable/templates', methods=['POST'])
@login_required
def create_template():
    data = _payload()
    class_id, subject_id, day_of_week, start_time, end_time = _require(
        data, 'class_id', 'subject_id', 'day_of_week', 'start_time', 'end_time')
    t = template_store.create_template(
        class_id=class_id,
        subject_id=subject_id,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        teacher_id=data.get('teacher_id'),
        room=data.get('room'),
        notes=data.get('notes'),
    )
    _audit('template_create', f'template:{t.id}', f"class={class_id},day={t.day_of_week}")
    return _ok(t.to_dict(), 201)


@app.route('/api/timetable/templates/<int:template_id>', methods=['PUT'])
@login_required
def update_template(template_id):
    data = _payload()
    fields = {k: v for k, v in data.items() if k in template_store.EDITABLE_FIELDS}
    t = template_store.update_template(template_id, **fields)
    _audit('template_update', f'template:{template_id}', ','.join(sorted(fields)))
    return _ok(t.to_dict())


@app.route('/api/timetable/templates/<int:template_id>', methods=['DELETE'])
@login_required
def delete_template(template_id):
    t = template_store.deactivate_template(template_id)
    _audit('template_deactivate', f'template:{template_id}')
    return _ok(t.to_dict())


# --- Schedule resolution ---
@app.route('/api/timetable/schedule', methods=['GET'])
@login_required
def schedule():
    class_id = _int_arg('class_id')
    start = request.args.get('start', '').strip()
    end = request.args.get('end', '').strip() or start
    if not start:
        raise ValidationError('Missing query parameter: start')
    occurrences = resolve_schedule(class_id, start, end)
    return _ok([o.to_dict() for o in occurrences])


# --- Overrides ---
@app.route('/api/timetable/overrides', methods=['POST'])
@login_required
def create_override():
    data = _payload()
    template_entry_id, override_date, override_type = _require(
        data, 'template_entry_id', 'override_date', 'override_type')
    override, created = override_store.create_override(
        template_entry_id=template_entry_id,
        override_date=override_date,
        override_type=override_type,
        new_start_time=data.get('new_start_time'),
        new_end_time=data.get('new_end_time'),
        new_room=data.get('new_room'),
        reason=data.get('reason'),
        notes=data.get('notes'),
        created_by=session.get('user'),
    )
    _audit('override_create' if created else 'override_replace', f'override:{override.id}',
           f"template={template_entry_id},date={override_date},type={override_type}")
    return _ok(override.to_dict(), 201 if created else 200,
               message='Override created' if created else 'Override replaced')


@app.route('/api/timetable/overrides/class/<int:class_id>/week/<week_start>', methods=['GET'])
@login_required
def overrides_for_week(class_id, week_start):
    rows = override_store.list_overrides_for_week(class_id, week_start)
    return _ok([o.to_dict() for o in rows])


@app.route('/api/timetable/overrides/<int:override_id>', methods=['PUT'])
@login_required
def update_override(override_id):
    data = _payload()
    fields = {k: v for k, v in data.items() if k in override_store.EDITABLE_FIELDS}
    override = override_store.update_override(override_id, **fields)
    _audit('override_update', f'override:{override_id}', ','.join(sorted(fields)))
    return _ok(override.to_dict())


@app.route('/api/timetable/overrides/<int:override_id>', methods=['DELETE'])
@login_required
def delete_override(override_id):
    override_store.delete_override(override_id)
    _audit('override_delete', f'override:{override_id}')
    return _ok(message='Override deleted')


# --- Week instances ---
@app.route('/api/timetable/instances/class/<int:class_id>/week/<week_start>', methods=['GET'])
@login_required
def instances_for_week(class_id, week_start):
    rows = instance_store.list_instances_for_week(class_id, week_start)
    return _ok([i.to_dict() for i in rows])


@app.route('/api/timetable/instances/generate-from-template', methods=['POST'])
@login_required
def generate_instances():
    data = _payload()
    class_id, week_start = _require(data, 'class_id', 'week_start_date')
    count = instance_store.generate_week_from_templates(class_id, week_start, created_by=session.get('user'))
    _audit('instances_generate', f'class:{class_id}', f"week={week_start},count={count}")
    return _ok({'count': count}, 201, message=f'{count} courses generated from templates')


@app.route('/api/timetable/instances/copy-week', methods=['POST'])
@login_required
def copy_week():
    data = _payload()
    class_id, source_week, target_week = _require(data, 'class_id', 'source_week', 'target_week')
    result = instance_store.copy_week(class_id, source_week, target_week, created_by=session.get('user'))
    _audit('copy_week', f'class:{class_id}', f"source={source_week},target={target_week},count={result['count']}")
    return _ok(result, message=f"{result['count']} courses copied")


@app.route('/api/timetable/instances/generate-bulk', methods=['POST'])
@login_required
def generate_instances_bulk():
    data = _payload()
    class_id, week_starts = _require(data, 'class_id', 'target_weeks')
    if not isinstance(week_starts, list):
        raise ValidationError('target_weeks must be a list of week start dates')
    result = instance_store.generate_weeks_from_templates(class_id, week_starts, created_by=session.get('user'))
    _audit('instances_generate_bulk', f'class:{class_id}', f"weeks={len(result['weeks'])},count={result['count']}")
    return _ok(result, 201, message=f"{result['count']} courses generated over {len(result['weeks'])} weeks")


@app.route('/api/timetable/instances', methods=['POST'])
@login_required
def create_instance():
    data = _payload()
    class_id, week_start, day_of_week, start_time, end_time = _require(
        data, 'class_id', 'week_start_date', 'day_of_week', 'start_time', 'end_time')
    instance = instance_store.create_instance(
        class_id=class_id,
        week_start=week_start,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        subject_id=data.get('subject_id'),
        teacher_id=data.get('teacher_id'),
        template_entry_id=data.get('template_entry_id'),
        room=data.get('room'),
        notes=data.get('notes'),
        created_by=session.get('user'),
    )
    _audit('instance_create', f'instance:{instance.id}', f"class={class_id},week={week_start}")
    return _ok(instance.to_dict(), 201, message='Course created')


@app.route('/api/timetable/instances/<int:instance_id>', methods=['PUT'])
@login_required
def update_instance(instance_id):
    data = _payload()
    fields = {k: v for k, v in data.items() if k in instance_store.INSTANCE_FIELDS}
    instance = instance_store.update_instance(instance_id, **fields)
    _audit('instance_update', f'instance:{instance_id}', ','.join(sorted(fields)))
    return _ok(instance.to_dict(), message='Course updated')


@app.route('/api/timetable/instances/<int:instance_id>', methods=['DELETE'])
@login_required
def delete_instance(instance_id):
    instance_store.delete_instance(instance_id)
    _audit('instance_delete', f'instance:{instance_id}')
    return _ok(message='Course deleted')


@app.route('/api/timetable/teacher/<int:teacher_id>/week/<week_start>', methods=['GET'])
@login_required
def teacher_week(teacher_id, week_start):
    rows = instance_store.list_instances_for_teacher_week(teacher_id, week_start)
    return _ok([i.to_dict() for i in rows])


# --- Attendance sessions ---
@app.route('/api/sessions/generate/day', methods=['POST'])
@login_required
def generate_day():
    (day,) = _require(_payload(), 'date')
    result = generator.generate_sessions_for_day(day)
    _audit('sessions_generate', 'day', f"date={day},generated={result.generated},skipped={result.skipped}")
    return _ok(result.to_dict())


@app.route('/api/sessions/generate/week', methods=['POST'])
@login_required
def generate_week():
    (week_start,) = _require(_payload(), 'week_start')
    result = generator.generate_sessions_for_week(week_start)
    _audit('sessions_generate', 'week', f"start={week_start},generated={result.generated},skipped={result.skipped}")
    return _ok(result.to_dict())


@app.route('/api/sessions/generate/month', methods=['POST'])
@login_required
def generate_month():
    year, month = _require(_payload(), 'year', 'month')
    try:
        year, month = int(year), int(month)
    except (TypeError, ValueError):
        raise ValidationError('year and month must be integers')
    result = generator.generate_sessions_for_month(year, month)
    _audit('sessions_generate', 'month', f"month={year}-{month:02d},generated={result.generated},skipped={result.skipped}")
    return _ok(result.to_dict())


@app.route('/api/sessions/generate/class', methods=['POST'])
@login_required
def generate_class():
    class_id, start, end = _require(_payload(), 'class_id', 'start', 'end')
    result = generator.generate_sessions_for_class(class_id, start, end)
    _audit('sessions_generate', f'class:{class_id}', f"start={start},end={end},generated={result.generated},skipped={result.skipped}")
    return _ok(result.to_dict())


@app.route('/api/sessions/auto-generate', methods=['POST'])
@login_required
def auto_generate():
    (day,) = _require(_payload(), 'date')
    ran = generator.auto_generate_if_needed(day)
    if ran:
        _audit('sessions_auto_generate', 'day', f"date={day}")
    return _ok({'generated': ran})


@app.route('/api/sessions', methods=['GET'])
@login_required
def list_sessions():
    day = request.args.get('date', '').strip() or None
    class_id = _int_arg('class_id') if request.args.get('class_id') else None
    rows = generator.list_sessions(on=day, class_id=class_id)
    return _ok([s.to_dict() for s in rows])


@app.route('/api/sessions/<int:session_id>/attendance', methods=['POST'])
@login_required
def mark_attendance(session_id):
    (marks,) = _require(_payload(), 'marks')
    if not isinstance(marks, dict):
        raise ValidationError('marks must map student ids to statuses')
    s = generator.mark_attendance(session_id, marks, marked_by=session.get('user'))
    _audit('attendance_mark', f'session:{session_id}', f"students={len(marks)}")
    return _ok(s.to_dict(), message='Attendance saved')


@app.route('/api/sessions/<int:session_id>/close', methods=['POST'])
@login_required
def close_session(session_id):
    s = generator.close_session(session_id, closed_by=session.get('user'))
    _audit('session_close', f'session:{session_id}',
           f"present={s.present_count},absent={s.absent_count},late={s.late_count}")
    return _ok(s.to_dict(), message='Session closed')


@app.route("/healthz")
def healthz():
    try:
        template_count = CourseTemplate.query.filter_by(is_active=True).count()
        session_count = AttendanceSession.query.count()
        return jsonify({"status": "ok", "templates": template_count, "sessions": session_count}), 200
    except SQLAlchemyError as e:
        logger.exception("Health check failed")
        return jsonify({"status": "error", "message": str(e)}), 500
