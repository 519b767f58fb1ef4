"""Per-week materialised timetable and the copy-week operation.

Instances are concrete rows for one Sunday-anchored week. Unlike templates
and overrides they are bulk-replaced: filling or copying a week first wipes
whatever the target week held for the class.

Single rows can also be added, edited or removed by hand; a room can hold
only one course at a time within a class's week.
"""
import logging
from datetime import timedelta

from timetabler import db
from timetabler.dates import parse_date, is_week_start, school_day_of_week, format_date
from timetabler.errors import ValidationError, ConflictError, NotFoundError
from timetabler.models import TimetableInstance, SchoolClass, Subject, Teacher, CourseTemplate, INSTANCE_STATUSES
from timetabler.resolver import resolve_schedule
from timetabler.templates import validate_slot

logger = logging.getLogger(__name__)


def _require_week_start(value, name):
    d = parse_date(value)
    if not is_week_start(d):
        raise ValidationError(f'{name} must be a Sunday (week start), got {format_date(d)}')
    return d


def _require_class(class_id):
    if db.session.get(SchoolClass, class_id) is None:
        raise NotFoundError(f'Class {class_id} not found')


def list_instances_for_week(class_id, week_start):
    _require_class(class_id)
    week_start = parse_date(week_start)
    return TimetableInstance.query.filter_by(class_id=class_id, week_start_date=week_start).\
        order_by(TimetableInstance.day_of_week.asc(), TimetableInstance.start_time.asc()).all()


def _clear_week(class_id, week_start):
    return TimetableInstance.query.filter_by(class_id=class_id, week_start_date=week_start).\
        delete(synchronize_session=False)


def generate_week_from_templates(class_id, week_start, created_by=None) -> int:
    """Replace a week's instances with its resolved templates and overrides."""
    week_start = _require_week_start(week_start, 'week_start')
    occurrences = resolve_schedule(class_id, week_start, week_start + timedelta(days=6))
    try:
        removed = _clear_week(class_id, week_start)
        for occ in occurrences:
            db.session.add(TimetableInstance(
                class_id=occ.class_id,
                template_entry_id=occ.template_id,
                subject_id=occ.subject_id,
                teacher_id=occ.teacher_id,
                week_start_date=week_start,
                day_of_week=school_day_of_week(occ.date),
                start_time=occ.effective_start_time,
                end_time=occ.effective_end_time,
                room=occ.effective_room,
                notes=occ.reason,
                status=occ.status,
                created_from_template=True,
                created_by=created_by,
            ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Week %s of class %s filled from templates: %d instances (%d replaced)",
                format_date(week_start), class_id, len(occurrences), removed)
    return len(occurrences)


def copy_week(class_id, source_week_start, target_week_start, created_by=None) -> dict:
    """Copy every instance of the source week over the target week.

    The target week's existing instances are deleted first, so copying an
    empty source week leaves the target week empty.
    """
    source = _require_week_start(source_week_start, 'source_week_start')
    target = _require_week_start(target_week_start, 'target_week_start')
    if source == target:
        raise ValidationError('source and target weeks must differ')
    _require_class(class_id)

    source_rows = TimetableInstance.query.filter_by(class_id=class_id, week_start_date=source).all()
    try:
        removed = _clear_week(class_id, target)
        for row in source_rows:
            db.session.add(TimetableInstance(
                class_id=class_id,
                template_entry_id=row.template_entry_id,
                subject_id=row.subject_id,
                teacher_id=row.teacher_id,
                week_start_date=target,
                day_of_week=row.day_of_week,
                start_time=row.start_time,
                end_time=row.end_time,
                room=row.room,
                notes=row.notes,
                status=row.status,
                created_from_template=row.created_from_template,
                created_by=created_by,
            ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Copied %d instances of class %s from %s to %s (%d replaced)",
                len(source_rows), class_id, format_date(source), format_date(target), removed)
    return {'count': len(source_rows)}


def generate_weeks_from_templates(class_id, week_starts, created_by=None) -> dict:
    """Fill several weeks from templates; every week is checked before any is written."""
    if not week_starts:
        raise ValidationError('At least one week start is required')
    weeks = sorted({_require_week_start(w, 'week_start') for w in week_starts})
    _require_class(class_id)
    per_week = []
    for w in weeks:
        per_week.append({'week_start_date': format_date(w),
                         'count': generate_week_from_templates(class_id, w, created_by=created_by)})
    return {'count': sum(w['count'] for w in per_week), 'weeks': per_week}


def list_instances_for_teacher_week(teacher_id, week_start):
    if db.session.get(Teacher, teacher_id) is None:
        raise NotFoundError(f'Teacher {teacher_id} not found')
    week_start = _require_week_start(week_start, 'week_start')
    return TimetableInstance.query.filter_by(teacher_id=teacher_id, week_start_date=week_start).\
        order_by(TimetableInstance.day_of_week.asc(), TimetableInstance.start_time.asc(),
                 TimetableInstance.class_id.asc()).all()


# --- Single instances ---

INSTANCE_FIELDS = ('subject_id', 'teacher_id', 'day_of_week', 'start_time', 'end_time', 'room', 'notes', 'status')


def get_instance(instance_id) -> TimetableInstance:
    instance = db.session.get(TimetableInstance, instance_id)
    if instance is None:
        raise NotFoundError(f'Instance {instance_id} not found')
    return instance


def find_room_conflict(class_id, week_start, day_of_week, start_time, end_time, room, exclude_id=None):
    if not room:
        return None
    q = TimetableInstance.query.filter(
        TimetableInstance.class_id == class_id,
        TimetableInstance.week_start_date == week_start,
        TimetableInstance.day_of_week == day_of_week,
        TimetableInstance.room == room,
        TimetableInstance.start_time < end_time,
        TimetableInstance.end_time > start_time,
    )
    if exclude_id is not None:
        q = q.filter(TimetableInstance.id != exclude_id)
    return q.first()


def _check_instance_refs(class_id, subject_id=None, teacher_id=None, template_entry_id=None):
    if subject_id is not None and db.session.get(Subject, subject_id) is None:
        raise NotFoundError(f'Subject {subject_id} not found')
    if teacher_id is not None and db.session.get(Teacher, teacher_id) is None:
        raise NotFoundError(f'Teacher {teacher_id} not found')
    if template_entry_id is not None:
        template = db.session.get(CourseTemplate, template_entry_id)
        if template is None:
            raise NotFoundError(f'Template {template_entry_id} not found')
        if template.class_id != class_id:
            raise ValidationError(f'Template {template_entry_id} does not belong to class {class_id}')
        return template
    return None


def _clean_room(room):
    room = str(room).strip() if room is not None else ''
    return room or None


def create_instance(class_id, week_start, day_of_week, start_time, end_time, subject_id=None,
                    teacher_id=None, template_entry_id=None, room=None, notes=None, created_by=None):
    """Add one course to a materialised week.

    Subject and teacher default to the template's when a template is given.
    """
    week_start = _require_week_start(week_start, 'week_start_date')
    _require_class(class_id)
    template = _check_instance_refs(class_id, subject_id, teacher_id, template_entry_id)
    if template is not None:
        subject_id = subject_id if subject_id is not None else template.subject_id
        teacher_id = teacher_id if teacher_id is not None else template.teacher_id
    if subject_id is None:
        raise ValidationError('subject_id is required')
    day_of_week, start_time, end_time = validate_slot(day_of_week, start_time, end_time)
    room = _clean_room(room)

    clash = find_room_conflict(class_id, week_start, day_of_week, start_time, end_time, room)
    if clash:
        raise ConflictError(f'Room {room} is already taken at that time', details=clash.to_dict())

    instance = TimetableInstance(
        class_id=class_id,
        template_entry_id=template_entry_id,
        subject_id=subject_id,
        teacher_id=teacher_id,
        week_start_date=week_start,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        room=room,
        notes=notes or None,
        created_from_template=False,
        created_by=created_by,
    )
    db.session.add(instance)
    db.session.commit()
    logger.info("Created instance %s for class %s in week %s (day %s)",
                instance.id, class_id, format_date(week_start), day_of_week)
    return instance


def update_instance(instance_id, **fields) -> TimetableInstance:
    instance = get_instance(instance_id)
    unknown = set(fields) - set(INSTANCE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown instance fields: {', '.join(sorted(unknown))}")
    if not fields:
        raise ValidationError('Nothing to update')
    if 'subject_id' in fields and fields['subject_id'] in (None, ''):
        raise ValidationError('subject_id cannot be cleared')
    if 'status' in fields and fields['status'] not in INSTANCE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(INSTANCE_STATUSES)}")
    _check_instance_refs(instance.class_id, fields.get('subject_id'), fields.get('teacher_id') or None)

    day_of_week, start_time, end_time = validate_slot(
        fields.get('day_of_week', instance.day_of_week),
        fields.get('start_time', instance.start_time),
        fields.get('end_time', instance.end_time),
    )
    room = _clean_room(fields['room']) if 'room' in fields else instance.room
    clash = find_room_conflict(instance.class_id, instance.week_start_date, day_of_week,
                               start_time, end_time, room, exclude_id=instance.id)
    if clash:
        raise ConflictError(f'Room {room} is already taken at that time', details=clash.to_dict())

    instance.day_of_week = day_of_week
    instance.start_time = start_time
    instance.end_time = end_time
    instance.room = room
    for key in ('subject_id', 'teacher_id', 'notes', 'status'):
        if key in fields:
            setattr(instance, key, fields[key] if fields[key] != '' else None)
    db.session.commit()
    return instance


def delete_instance(instance_id):
    instance = get_instance(instance_id)
    db.session.delete(instance)
    db.session.commit()
    logger.info("Deleted instance %s", instance_id)
