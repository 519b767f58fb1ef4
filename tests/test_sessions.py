import unittest
from datetime import time, timedelta
from unittest import mock

from helpers import DatabaseTestCase, make_school, SUNDAY, MONDAY, TUESDAY, FRIDAY
from timetabler import app, db
from timetabler.models import AttendanceSession, Attendance, Student
from timetabler.templates import create_template, update_template
from timetabler.overrides import create_override
from timetabler.sessions import (
    generate_sessions_for_day, generate_sessions_for_week, generate_sessions_for_month,
    generate_sessions_for_class, auto_generate_if_needed, daily_session_generation,
    mark_attendance, close_session,
)
from timetabler.errors import ValidationError, ConflictError, NotFoundError


class SessionGenerationTests(DatabaseTestCase, unittest.TestCase):

    def setUp(self):
        super().setUp()
        self.cls, self.subject, self.teacher = make_school()
        self.monday = create_template(class_id=self.cls.id, subject_id=self.subject.id, teacher_id=self.teacher.id,
                                      day_of_week=2, start_time='08:00', end_time='09:00', room='B12')
        self.tuesday = create_template(class_id=self.cls.id, subject_id=self.subject.id, teacher_id=self.teacher.id,
                                       day_of_week=3, start_time='10:00', end_time='11:00')

    def test_generation_is_idempotent(self):
        first = generate_sessions_for_day(MONDAY)
        self.assertEqual((first.generated, first.skipped, first.errors), (1, 0, []))
        second = generate_sessions_for_day(MONDAY)
        self.assertEqual((second.generated, second.skipped), (0, 1))
        self.assertEqual(AttendanceSession.query.count(), 1)

    def test_session_copies_occurrence(self):
        generate_sessions_for_day(MONDAY)
        s = AttendanceSession.query.one()
        self.assertEqual(s.template_id, self.monday.id)
        self.assertEqual(s.teacher_id, self.teacher.id)
        self.assertEqual(s.room, 'B12')
        self.assertEqual(s.status, 'open')
        self.assertEqual(s.total_students, 3)
        self.assertEqual(s.present_count + s.absent_count + s.late_count, 0)

    def test_cancelled_occurrence_gets_no_session(self):
        create_override(self.monday.id, MONDAY, 'cancel', reason='Holiday')
        result = generate_sessions_for_day(MONDAY)
        self.assertEqual((result.generated, result.skipped), (0, 0))
        self.assertEqual(AttendanceSession.query.count(), 0)

    def test_modified_time_is_used(self):
        create_override(self.monday.id, MONDAY, 'modify_time', new_start_time='09:00', new_end_time='10:00')
        generate_sessions_for_day(MONDAY)
        s = AttendanceSession.query.one()
        self.assertEqual((s.start_time, s.end_time), (time(9, 0), time(10, 0)))

    def test_template_edit_leaves_existing_sessions(self):
        generate_sessions_for_day(MONDAY)
        update_template(self.monday.id, start_time='11:00', end_time='12:00', room='Lab')
        s = AttendanceSession.query.one()
        self.assertEqual(s.start_time, time(8, 0))
        self.assertEqual(s.room, 'B12')
        generate_sessions_for_day(MONDAY + timedelta(days=7))
        later = AttendanceSession.query.filter_by(session_date=MONDAY + timedelta(days=7)).one()
        self.assertEqual(later.start_time, time(11, 0))

    def test_missing_teacher_is_reported_without_stopping_batch(self):
        create_template(class_id=self.cls.id, subject_id=self.subject.id, day_of_week=2,
                        start_time='12:00', end_time='13:00')
        result = generate_sessions_for_day(MONDAY)
        self.assertEqual(result.generated, 1)
        self.assertEqual(len(result.errors), 1)
        self.assertEqual(result.errors[0]['date'], '2025-11-24')
        self.assertEqual(AttendanceSession.query.count(), 1)

    def test_concurrent_insert_counts_as_skipped(self):
        generate_sessions_for_day(MONDAY)
        # Another run got there between the existence check and the insert
        with mock.patch('timetabler.sessions.session_exists', side_effect=[False, True]):
            result = generate_sessions_for_day(MONDAY)
        self.assertEqual((result.generated, result.skipped, result.errors), (0, 1, []))
        self.assertEqual(AttendanceSession.query.count(), 1)

    def test_week_requires_sunday(self):
        with self.assertRaises(ValidationError):
            generate_sessions_for_week(MONDAY)

    def test_week_and_month(self):
        result = generate_sessions_for_week(SUNDAY)
        self.assertEqual(result.generated, 2)
        # November 2025: four Mondays and four Tuesdays
        result = generate_sessions_for_month(2025, 11)
        self.assertEqual((result.generated, result.skipped), (6, 2))
        with self.assertRaises(ValidationError):
            generate_sessions_for_month(2025, 13)

    def test_generate_for_class_range(self):
        other, subject, teacher = make_school(label='6B')
        create_template(class_id=other.id, subject_id=subject.id, teacher_id=teacher.id,
                        day_of_week=2, start_time='08:00', end_time='09:00')
        result = generate_sessions_for_class(self.cls.id, SUNDAY, FRIDAY)
        self.assertEqual(result.generated, 2)
        self.assertEqual(AttendanceSession.query.filter_by(class_id=other.id).count(), 0)
        with self.assertRaises(NotFoundError):
            generate_sessions_for_class(999, SUNDAY, FRIDAY)

    def test_auto_generate_only_when_day_is_empty(self):
        self.assertTrue(auto_generate_if_needed(MONDAY))
        self.assertFalse(auto_generate_if_needed(MONDAY))
        self.assertEqual(AttendanceSession.query.count(), 1)

    def test_daily_generation_covers_horizon(self):
        result = daily_session_generation(today=SUNDAY)
        self.assertEqual(result.generated, 2)
        result = daily_session_generation(today=SUNDAY)
        self.assertEqual((result.generated, result.skipped), (0, 2))


class AttendanceTests(DatabaseTestCase, unittest.TestCase):

    def setUp(self):
        super().setUp()
        self.cls, self.subject, self.teacher = make_school(students=3)
        create_template(class_id=self.cls.id, subject_id=self.subject.id, teacher_id=self.teacher.id,
                        day_of_week=2, start_time='08:00', end_time='09:00')
        generate_sessions_for_day(MONDAY)
        self.session = AttendanceSession.query.one()
        self.students = [s.id for s in Student.query.order_by(Student.id).all()]

    def test_mark_updates_counts(self):
        a, b, c = self.students
        s = mark_attendance(self.session.id, {str(a): 'present', b: 'late', c: {'status': 'absent', 'remarks': 'sick'}},
                            marked_by='staff1')
        self.assertEqual((s.present_count, s.late_count, s.absent_count), (1, 1, 1))
        self.assertEqual(Attendance.query.filter_by(student_id=c).one().remarks, 'sick')
        s = mark_attendance(self.session.id, {b: 'present'})
        self.assertEqual((s.present_count, s.late_count), (2, 0))
        self.assertEqual(Attendance.query.count(), 3)

    def test_invalid_marks_change_nothing(self):
        a, b, _ = self.students
        with self.assertRaises(ValidationError):
            mark_attendance(self.session.id, {a: 'present', b: 'asleep'})
        with self.assertRaises(ValidationError):
            mark_attendance(self.session.id, {a: 'present', 999: 'present'})
        self.assertEqual(Attendance.query.count(), 0)

    def test_inactive_student_cannot_be_marked(self):
        leaver = db.session.get(Student, self.students[2])
        leaver.status = 'inactive'
        db.session.commit()
        with self.assertRaises(ValidationError):
            mark_attendance(self.session.id, {leaver.id: 'present'})
        s = mark_attendance(self.session.id, {self.students[0]: 'present', self.students[1]: 'present'})
        self.assertLessEqual(s.present_count, s.total_students)

    def test_non_string_remarks_are_stored_as_text(self):
        a = self.students[0]
        mark_attendance(self.session.id, {a: {'status': 'late', 'remarks': 15}})
        self.assertEqual(Attendance.query.filter_by(student_id=a).one().remarks, '15')

    def test_edit_can_be_disabled(self):
        a = self.students[0]
        mark_attendance(self.session.id, {a: 'present'})
        app.config['ATTENDANCE_ALLOW_EDIT'] = False
        self.addCleanup(app.config.__setitem__, 'ATTENDANCE_ALLOW_EDIT', True)
        with self.assertRaises(ConflictError):
            mark_attendance(self.session.id, {a: 'absent'})

    def test_close_is_one_way(self):
        mark_attendance(self.session.id, {self.students[0]: 'present'})
        s = close_session(self.session.id, closed_by='staff1')
        self.assertEqual(s.status, 'closed')
        self.assertIsNotNone(s.closed_at)
        with self.assertRaises(ConflictError):
            close_session(self.session.id)
        with self.assertRaises(ConflictError):
            mark_attendance(self.session.id, {self.students[1]: 'present'})

if __name__ == "__main__":
    unittest.main()
