"""Date-specific exceptions to course templates.

At most one override exists per (template, date). Creating a second one for
the same key replaces the first: last write wins. The template itself is
never modified.
"""
import logging
from datetime import timedelta

from sqlalchemy.exc import IntegrityError

from timetabler import db
from timetabler.dates import parse_date, parse_time, school_day_of_week
from timetabler.errors import ValidationError, NotFoundError
from timetabler.models import CourseTemplate, TimetableOverride, SchoolClass, OVERRIDE_TYPES
from timetabler.templates import get_template

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('override_type', 'new_start_time', 'new_end_time', 'new_room', 'reason', 'notes')


def _variant_fields(override_type, new_start_time, new_end_time, new_room):
    """Validate one override variant and blank out the fields it does not use."""
    if override_type not in OVERRIDE_TYPES:
        raise ValidationError(f"override_type must be one of: {', '.join(OVERRIDE_TYPES)}")
    if override_type == 'modify_time':
        if new_start_time in (None, '') or new_end_time in (None, ''):
            raise ValidationError('modify_time requires new_start_time and new_end_time')
        start, end = parse_time(new_start_time), parse_time(new_end_time)
        if start >= end:
            raise ValidationError('new_start_time must be before new_end_time')
        return {'new_start_time': start, 'new_end_time': end, 'new_room': None}
    if override_type == 'modify_room':
        room = str(new_room).strip() if new_room is not None else ''
        if not room:
            raise ValidationError('modify_room requires new_room')
        return {'new_start_time': None, 'new_end_time': None, 'new_room': room}
    return {'new_start_time': None, 'new_end_time': None, 'new_room': None}


def _check_occurrence_date(template: CourseTemplate, override_date):
    if not template.is_active:
        raise ValidationError(f'Template {template.id} is no longer active')
    if school_day_of_week(override_date) != template.day_of_week:
        raise ValidationError(
            f'{override_date.isoformat()} is not an occurrence date of template {template.id} '
            f'(day_of_week {template.day_of_week})'
        )


def _assign(override, values, reason, notes, created_by):
    override.override_type = values['override_type']
    override.new_start_time = values['new_start_time']
    override.new_end_time = values['new_end_time']
    override.new_room = values['new_room']
    override.reason = reason or None
    override.notes = notes or None
    if created_by:
        override.created_by = created_by


def get_override(override_id) -> TimetableOverride:
    override = db.session.get(TimetableOverride, override_id)
    if override is None:
        raise NotFoundError(f'Override {override_id} not found')
    return override


def create_override(template_entry_id, override_date, override_type, new_start_time=None,
                    new_end_time=None, new_room=None, reason=None, notes=None, created_by=None):
    """Create or replace the override of a template on a date.

    Returns a ``(override, created)`` pair; ``created`` is False when an
    existing override for the same template and date was replaced.
    """
    template = get_template(template_entry_id)
    override_date = parse_date(override_date)
    _check_occurrence_date(template, override_date)
    values = _variant_fields(override_type, new_start_time, new_end_time, new_room)
    values['override_type'] = override_type

    key = dict(template_entry_id=template.id, override_date=override_date)
    override = TimetableOverride.query.filter_by(**key).first()
    created = override is None
    if created:
        override = TimetableOverride(**key)
        db.session.add(override)
    _assign(override, values, reason, notes, created_by)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost the insert race on the unique key: replace the winner's row.
        db.session.rollback()
        override = TimetableOverride.query.filter_by(**key).one()
        _assign(override, values, reason, notes, created_by)
        db.session.commit()
        created = False
    logger.info("%s override %s (%s) for template %s on %s",
                "Created" if created else "Replaced", override.id, override_type,
                template.id, override_date.isoformat())
    return override, created


def update_override(override_id, **fields) -> TimetableOverride:
    override = get_override(override_id)
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown override fields: {', '.join(sorted(unknown))}")
    override_type = fields.get('override_type', override.override_type)
    values = _variant_fields(
        override_type,
        fields.get('new_start_time', override.new_start_time),
        fields.get('new_end_time', override.new_end_time),
        fields.get('new_room', override.new_room),
    )
    values['override_type'] = override_type
    _assign(
        override,
        values,
        fields.get('reason', override.reason),
        fields.get('notes', override.notes),
        None,
    )
    db.session.commit()
    return override


def delete_override(override_id):
    override = get_override(override_id)
    db.session.delete(override)
    db.session.commit()
    logger.info("Deleted override %s", override_id)


def list_overrides_for_week(class_id, week_start):
    week_start = parse_date(week_start)
    if db.session.get(SchoolClass, class_id) is None:
        raise NotFoundError(f'Class {class_id} not found')
    return TimetableOverride.query.join(CourseTemplate).filter(
        CourseTemplate.class_id == class_id,
        TimetableOverride.override_date >= week_start,
        TimetableOverride.override_date < week_start + timedelta(days=7),
    ).order_by(TimetableOverride.override_date.asc(), CourseTemplate.start_time.asc()).all()
