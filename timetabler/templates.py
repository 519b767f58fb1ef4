"""Recurring weekly course templates.

A template is edited by an administrator; edits change what resolves for
future dates but never touch sessions already generated from it.
"""
import logging

from timetabler import db
from timetabler.dates import SCHOOL_DAYS, parse_time, intervals_overlap, school_day_of_week
from timetabler.errors import ValidationError, ConflictError, NotFoundError
from timetabler.models import CourseTemplate, TimetableOverride, SchoolClass, Subject, Teacher

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('subject_id', 'teacher_id', 'day_of_week', 'start_time', 'end_time', 'room', 'notes')


def get_template(template_id) -> CourseTemplate:
    template = db.session.get(CourseTemplate, template_id)
    if template is None:
        raise NotFoundError(f'Template {template_id} not found')
    return template


def list_templates(class_id, include_inactive=False):
    if db.session.get(SchoolClass, class_id) is None:
        raise NotFoundError(f'Class {class_id} not found')
    q = CourseTemplate.query.filter_by(class_id=class_id)
    if not include_inactive:
        q = q.filter(CourseTemplate.is_active.is_(True))
    return q.order_by(CourseTemplate.day_of_week.asc(), CourseTemplate.start_time.asc()).all()


def find_overlap(class_id, day_of_week, start_time, end_time, exclude_id=None):
    q = CourseTemplate.query.filter(
        CourseTemplate.class_id == class_id,
        CourseTemplate.day_of_week == day_of_week,
        CourseTemplate.is_active.is_(True),
    )
    if exclude_id is not None:
        q = q.filter(CourseTemplate.id != exclude_id)
    for other in q.all():
        if intervals_overlap(start_time, end_time, other.start_time, other.end_time):
            return other
    return None


def validate_slot(day_of_week, start_time, end_time):
    try:
        day_of_week = int(day_of_week)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid day_of_week: {day_of_week!r}')
    if day_of_week not in SCHOOL_DAYS:
        raise ValidationError('day_of_week must be between 1 (Sunday) and 5 (Thursday)')
    start_time = parse_time(start_time)
    end_time = parse_time(end_time)
    if start_time >= end_time:
        raise ValidationError('start_time must be before end_time')
    return day_of_week, start_time, end_time


def _check_references(subject_id=None, teacher_id=None):
    if subject_id is not None and db.session.get(Subject, subject_id) is None:
        raise NotFoundError(f'Subject {subject_id} not found')
    if teacher_id is not None and db.session.get(Teacher, teacher_id) is None:
        raise NotFoundError(f'Teacher {teacher_id} not found')


def create_template(class_id, subject_id, day_of_week, start_time, end_time,
                    teacher_id=None, room=None, notes=None) -> CourseTemplate:
    if db.session.get(SchoolClass, class_id) is None:
        raise NotFoundError(f'Class {class_id} not found')
    if subject_id is None:
        raise ValidationError('subject_id is required')
    _check_references(subject_id, teacher_id)
    day_of_week, start_time, end_time = validate_slot(day_of_week, start_time, end_time)

    clash = find_overlap(class_id, day_of_week, start_time, end_time)
    if clash:
        raise ConflictError('Template overlaps an existing slot of this class', details=clash.to_dict())

    template = CourseTemplate(
        class_id=class_id,
        subject_id=subject_id,
        teacher_id=teacher_id,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        room=room or None,
        notes=notes or None,
    )
    db.session.add(template)
    db.session.commit()
    logger.info("Created template %s for class %s (day %s %s-%s)",
                template.id, class_id, day_of_week, start_time, end_time)
    return template


def update_template(template_id, **fields) -> CourseTemplate:
    template = get_template(template_id)
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown template fields: {', '.join(sorted(unknown))}")
    if not fields:
        raise ValidationError('Nothing to update')
    if 'subject_id' in fields and fields['subject_id'] in (None, ''):
        raise ValidationError('subject_id cannot be cleared')
    _check_references(fields.get('subject_id'), fields.get('teacher_id'))

    day_of_week, start_time, end_time = validate_slot(
        fields.get('day_of_week', template.day_of_week),
        fields.get('start_time', template.start_time),
        fields.get('end_time', template.end_time),
    )
    clash = find_overlap(template.class_id, day_of_week, start_time, end_time, exclude_id=template.id)
    if clash:
        raise ConflictError('Template overlaps an existing slot of this class', details=clash.to_dict())

    stale = 0
    if day_of_week != template.day_of_week:
        # Overrides must stay on real occurrence dates of the template.
        for override in TimetableOverride.query.filter_by(template_entry_id=template.id).all():
            if school_day_of_week(override.override_date) != day_of_week:
                db.session.delete(override)
                stale += 1
    template.day_of_week = day_of_week
    template.start_time = start_time
    template.end_time = end_time
    for key in ('subject_id', 'teacher_id', 'room', 'notes'):
        if key in fields:
            setattr(template, key, fields[key] if fields[key] != '' else None)
    db.session.commit()
    if stale:
        logger.info("Template %s moved to day %s: removed %d override(s) on other days",
                    template.id, day_of_week, stale)
    return template


def deactivate_template(template_id) -> CourseTemplate:
    template = get_template(template_id)
    template.is_active = False
    db.session.commit()
    logger.info("Deactivated template %s", template_id)
    return template
