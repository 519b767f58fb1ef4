"""Attendance session generation from the resolved timetable.

Every non-cancelled occurrence yields at most one session, keyed by
(template_id, session_date) and backed by a unique constraint. Generation is
idempotent: an existing session is counted as skipped and left untouched.
Each occurrence is inserted in its own transaction, so one bad occurrence is
reported in ``errors`` without stopping the rest of the batch, and a partly
failed batch is never rolled back.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, date, timedelta
from typing import List

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from timetabler import app, db
from timetabler.dates import parse_date, format_date, iter_dates, is_week_start, month_bounds, school_week
from timetabler.errors import ValidationError, ConflictError, NotFoundError
from timetabler.models import AttendanceSession, Attendance, Student, ATTENDANCE_STATUSES
from timetabler.resolver import ResolvedOccurrence, resolve_day, resolve_schedule

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    generated: int = 0
    skipped: int = 0
    errors: List[dict] = field(default_factory=list)

    def merge(self, other: 'GenerationResult') -> 'GenerationResult':
        self.generated += other.generated
        self.skipped += other.skipped
        self.errors.extend(other.errors)
        return self

    def to_dict(self):
        return {'generated': self.generated, 'skipped': self.skipped, 'errors': list(self.errors)}


def session_exists(template_id, session_date) -> bool:
    return db.session.query(AttendanceSession.id).filter_by(
        template_id=template_id, session_date=session_date
    ).first() is not None


def _build_session(occ: ResolvedOccurrence) -> AttendanceSession:
    if occ.teacher_id is None:
        raise ValidationError(f'Template {occ.template_id} has no teacher assigned')
    total = Student.query.filter_by(class_id=occ.class_id, status='active').count()
    return AttendanceSession(
        template_id=occ.template_id,
        class_id=occ.class_id,
        subject_id=occ.subject_id,
        teacher_id=occ.teacher_id,
        session_date=occ.date,
        start_time=occ.effective_start_time,
        end_time=occ.effective_end_time,
        room=occ.effective_room,
        status='open',
        total_students=total,
    )


def _generate(occurrences, result: GenerationResult) -> GenerationResult:
    for occ in occurrences:
        if occ.is_cancelled:
            continue
        day = format_date(occ.date)
        if session_exists(occ.template_id, occ.date):
            result.skipped += 1
            continue
        try:
            db.session.add(_build_session(occ))
            db.session.commit()
            result.generated += 1
        except IntegrityError as e:
            db.session.rollback()
            # A concurrent run inserted the same key first.
            if session_exists(occ.template_id, occ.date):
                result.skipped += 1
            else:
                logger.warning("Session for template %s on %s failed: %s", occ.template_id, day, e.orig)
                result.errors.append({'date': day, 'error': str(e.orig)})
        except Exception as e:
            db.session.rollback()
            logger.warning("Session for template %s on %s failed: %s", occ.template_id, day, e)
            result.errors.append({'date': day, 'error': str(e)})
    return result


def generate_sessions_for_day(on) -> GenerationResult:
    on = parse_date(on)
    result = GenerationResult()
    try:
        occurrences = resolve_day(on)
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("Could not resolve timetable for %s", format_date(on))
        result.errors.append({'date': format_date(on), 'error': str(e)})
        return result
    _generate(occurrences, result)
    logger.info("Session generation %s: %d generated, %d skipped, %d errors",
                format_date(on), result.generated, result.skipped, len(result.errors))
    return result


def generate_sessions_for_week(week_start) -> GenerationResult:
    week_start = parse_date(week_start)
    if not is_week_start(week_start):
        raise ValidationError(f'week_start must be a Sunday, got {format_date(week_start)}')
    result = GenerationResult()
    for d in school_week(week_start, int(app.config.get('SCHOOL_WEEK_DAYS', 5))):
        result.merge(generate_sessions_for_day(d))
    logger.info("Session generation week of %s: %d generated, %d skipped",
                format_date(week_start), result.generated, result.skipped)
    return result


def generate_sessions_for_month(year, month) -> GenerationResult:
    first, last = month_bounds(year, month)
    result = GenerationResult()
    for d in iter_dates(first, last):
        result.merge(generate_sessions_for_day(d))
    logger.info("Session generation %04d-%02d: %d generated, %d skipped",
                first.year, first.month, result.generated, result.skipped)
    return result


def generate_sessions_for_class(class_id, start, end) -> GenerationResult:
    occurrences = resolve_schedule(class_id, start, end)
    result = _generate(occurrences, GenerationResult())
    logger.info("Session generation class %s: %d generated, %d skipped",
                class_id, result.generated, result.skipped)
    return result


def auto_generate_if_needed(on) -> bool:
    """Generate a day's sessions only when that day has none yet."""
    on = parse_date(on)
    if db.session.query(AttendanceSession.id).filter_by(session_date=on).first() is not None:
        return False
    generate_sessions_for_day(on)
    return True


def daily_session_generation(today=None) -> GenerationResult:
    """Generate the upcoming days; meant to run once a day, re-runs are harmless."""
    today = parse_date(today) if today is not None else date.today()
    horizon = int(app.config.get('SESSION_GENERATION_HORIZON_DAYS', 7))
    result = GenerationResult()
    for i in range(horizon):
        result.merge(generate_sessions_for_day(today + timedelta(days=i)))
    logger.info("Daily generation from %s (%d days): %d generated, %d skipped, %d errors",
                format_date(today), horizon, result.generated, result.skipped, len(result.errors))
    return result


# --- Session lifecycle & attendance ---

def get_session(session_id) -> AttendanceSession:
    s = db.session.get(AttendanceSession, session_id)
    if s is None:
        raise NotFoundError(f'Session {session_id} not found')
    return s


def list_sessions(on=None, class_id=None):
    q = AttendanceSession.query
    if on is not None:
        q = q.filter(AttendanceSession.session_date == parse_date(on))
    if class_id is not None:
        q = q.filter(AttendanceSession.class_id == class_id)
    return q.order_by(AttendanceSession.session_date.asc(), AttendanceSession.start_time.asc()).all()


def _refresh_counts(s: AttendanceSession):
    counts = dict(
        db.session.query(Attendance.status, func.count(Attendance.id)).
        filter(Attendance.session_id == s.id).group_by(Attendance.status).all()
    )
    s.present_count = counts.get('present', 0)
    s.absent_count = counts.get('absent', 0)
    s.late_count = counts.get('late', 0)


def mark_attendance(session_id, marks, marked_by=None) -> AttendanceSession:
    """Record attendance statuses for students of an open session.

    ``marks`` maps student id to a status, or to a dict with ``status`` and
    optional ``remarks``.
    """
    s = get_session(session_id)
    if s.status == 'closed':
        raise ConflictError(f'Session {session_id} is closed')
    if not marks:
        raise ValidationError('No attendance marks given')

    roster = {st.id for st in Student.query.filter_by(class_id=s.class_id, status='active').all()}
    allow_edit = bool(app.config.get('ATTENDANCE_ALLOW_EDIT', True))
    existing = {a.student_id: a for a in Attendance.query.filter_by(session_id=s.id).all()}

    parsed = []
    for raw_id, mark in marks.items():
        try:
            student_id = int(raw_id)
        except (TypeError, ValueError):
            raise ValidationError(f'Invalid student id: {raw_id!r}')
        if isinstance(mark, dict):
            status_val, remarks_val = mark.get('status'), mark.get('remarks')
            remarks_val = str(remarks_val).strip() if remarks_val is not None else ''
        else:
            status_val, remarks_val = mark, ''
        if status_val not in ATTENDANCE_STATUSES:
            raise ValidationError(f"Invalid attendance status {status_val!r} for student {student_id}")
        if student_id not in roster:
            raise ValidationError(f'Student {student_id} is not an active student of class {s.class_id}')
        if student_id in existing and not allow_edit:
            raise ConflictError(f'Attendance for student {student_id} is already recorded')
        parsed.append((student_id, status_val, remarks_val))

    now = datetime.utcnow()
    for student_id, status_val, remarks_val in parsed:
        att = existing.get(student_id)
        if att is None:
            db.session.add(Attendance(
                session_id=s.id,
                student_id=student_id,
                status=status_val,
                remarks=remarks_val or None,
                marked_by=marked_by,
                marked_at=now,
            ))
        else:
            att.status = status_val
            att.remarks = remarks_val or None
            att.marked_by = marked_by
            att.marked_at = now
    db.session.flush()
    _refresh_counts(s)
    db.session.commit()
    return s


def close_session(session_id, closed_by=None) -> AttendanceSession:
    s = get_session(session_id)
    if s.status == 'closed':
        raise ConflictError(f'Session {session_id} is already closed')
    s.status = 'closed'
    s.closed_at = datetime.utcnow()
    s.closed_by = closed_by
    db.session.commit()
    logger.info("Closed session %s (%d present, %d absent, %d late of %d)",
                s.id, s.present_count, s.absent_count, s.late_count, s.total_students)
    return s
