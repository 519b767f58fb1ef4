"""Merge recurring templates with per-date overrides.

Resolution is a pure read: it never writes, so any number of callers may
resolve concurrently. Each occurrence starts from the template defaults and
then takes the matching override for its date, if there is one.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import date, time
from typing import Dict, List, Optional, Tuple

from timetabler import db
from timetabler.dates import parse_date, iter_dates, school_day_of_week, format_date, format_time
from timetabler.errors import ValidationError, NotFoundError
from timetabler.models import CourseTemplate, TimetableOverride, SchoolClass

logger = logging.getLogger(__name__)


@dataclass
class ResolvedOccurrence:
    template_id: int
    class_id: int
    subject_id: int
    teacher_id: Optional[int]
    date: date
    effective_start_time: time
    effective_end_time: time
    effective_room: Optional[str]
    status: str = 'confirmed'
    override_id: Optional[int] = None
    reason: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self.status == 'cancelled'

    def to_dict(self):
        data = asdict(self)
        data['date'] = format_date(self.date)
        data['effective_start_time'] = format_time(self.effective_start_time)
        data['effective_end_time'] = format_time(self.effective_end_time)
        return data


def apply_override(template: CourseTemplate, on: date, override: Optional[TimetableOverride]) -> ResolvedOccurrence:
    occurrence = ResolvedOccurrence(
        template_id=template.id,
        class_id=template.class_id,
        subject_id=template.subject_id,
        teacher_id=template.teacher_id,
        date=on,
        effective_start_time=template.start_time,
        effective_end_time=template.end_time,
        effective_room=template.room,
    )
    if override is None:
        return occurrence

    if override.override_type == 'cancel':
        occurrence.status = 'cancelled'
    elif override.override_type == 'modify_time':
        start, end = override.new_start_time, override.new_end_time
        if start is None or end is None or start >= end:
            logger.warning("Ignoring override %s: invalid time range %s-%s", override.id, start, end)
            return occurrence
        occurrence.effective_start_time = start
        occurrence.effective_end_time = end
        occurrence.status = 'modified'
    elif override.override_type == 'modify_room':
        occurrence.effective_room = override.new_room
        occurrence.status = 'modified'
    else:
        logger.warning("Ignoring override %s: unknown type %r", override.id, override.override_type)
        return occurrence
    occurrence.override_id = override.id
    occurrence.reason = override.reason
    return occurrence


def _overrides_by_key(template_ids, start: date, end: date) -> Dict[Tuple[int, date], TimetableOverride]:
    if not template_ids:
        return {}
    rows = TimetableOverride.query.filter(
        TimetableOverride.template_entry_id.in_(template_ids),
        TimetableOverride.override_date >= start,
        TimetableOverride.override_date <= end,
    ).all()
    return {(o.template_entry_id, o.override_date): o for o in rows}


def _resolve(templates, start: date, end: date) -> List[ResolvedOccurrence]:
    overrides = _overrides_by_key([t.id for t in templates], start, end)
    by_day = {}
    for t in templates:
        by_day.setdefault(t.day_of_week, []).append(t)

    occurrences = []
    for d in iter_dates(start, end):
        for template in by_day.get(school_day_of_week(d), []):
            occurrences.append(apply_override(template, d, overrides.get((template.id, d))))
    occurrences.sort(key=lambda o: (o.date, o.effective_start_time, o.template_id))
    return occurrences


def resolve_schedule(class_id, start, end) -> List[ResolvedOccurrence]:
    """Effective course occurrences of a class between two dates, inclusive."""
    start, end = parse_date(start), parse_date(end)
    if start > end:
        raise ValidationError('start must not be after end')
    if db.session.get(SchoolClass, class_id) is None:
        raise NotFoundError(f'Class {class_id} not found')
    templates = CourseTemplate.query.filter(
        CourseTemplate.class_id == class_id,
        CourseTemplate.is_active.is_(True),
    ).all()
    return _resolve(templates, start, end)


def resolve_day(on) -> List[ResolvedOccurrence]:
    """Effective occurrences of every class on one date."""
    on = parse_date(on)
    templates = CourseTemplate.query.filter(
        CourseTemplate.day_of_week == school_day_of_week(on),
        CourseTemplate.is_active.is_(True),
    ).all()
    return _resolve(templates, on, on)
