import unittest
from datetime import time, timedelta

from helpers import DatabaseTestCase, make_school, MONDAY, TUESDAY
from timetabler.models import TimetableOverride
from timetabler.overrides import create_override
from timetabler.templates import create_template, update_template, deactivate_template, list_templates
from timetabler.errors import ValidationError, ConflictError, NotFoundError


class TemplateStoreTests(DatabaseTestCase, unittest.TestCase):

    def setUp(self):
        super().setUp()
        self.cls, self.subject, self.teacher = make_school()

    def _create(self, day=2, start='08:00', end='09:00', **kw):
        return create_template(class_id=self.cls.id, subject_id=self.subject.id, teacher_id=self.teacher.id,
                               day_of_week=day, start_time=start, end_time=end, room='B12', **kw)

    def test_create_template(self):
        t = self._create()
        self.assertEqual(t.start_time, time(8, 0))
        self.assertEqual(t.to_dict()['end_time'], '09:00')
        self.assertTrue(t.is_active)

    def test_start_must_precede_end(self):
        with self.assertRaises(ValidationError):
            self._create(start='09:00', end='09:00')
        with self.assertRaises(ValidationError):
            self._create(start='10:00', end='09:00')

    def test_day_outside_school_week_rejected(self):
        with self.assertRaises(ValidationError):
            self._create(day=6)

    def test_overlap_same_day_is_conflict(self):
        self._create(start='08:00', end='09:00')
        with self.assertRaises(ConflictError):
            self._create(start='08:30', end='09:30')

    def test_adjacent_and_other_day_allowed(self):
        self._create(start='08:00', end='09:00')
        self._create(start='09:00', end='10:00')
        self._create(day=3, start='08:30', end='09:30')
        self.assertEqual(len(list_templates(self.cls.id)), 3)

    def test_other_class_does_not_conflict(self):
        self._create()
        other, _, _ = make_school(label='6B')
        create_template(class_id=other.id, subject_id=self.subject.id, teacher_id=self.teacher.id,
                        day_of_week=2, start_time='08:00', end_time='09:00')

    def test_update_checks_overlap_excluding_self(self):
        t1 = self._create(start='08:00', end='09:00')
        t2 = self._create(start='10:00', end='11:00')
        update_template(t1.id, end_time='09:30')
        with self.assertRaises(ConflictError):
            update_template(t2.id, start_time='09:00')

    def test_deactivated_template_frees_its_slot(self):
        t = self._create()
        deactivate_template(t.id)
        self.assertEqual(list_templates(self.cls.id), [])
        self._create()

    def test_missing_references(self):
        with self.assertRaises(NotFoundError):
            create_template(class_id=999, subject_id=self.subject.id, day_of_week=2,
                            start_time='08:00', end_time='09:00')
        with self.assertRaises(NotFoundError):
            update_template(999, room='A1')
    def test_moving_template_drops_overrides_on_old_day(self):
        t = self._create(day=2)
        create_override(t.id, MONDAY, 'cancel')
        create_override(t.id, MONDAY + timedelta(days=7), 'modify_room', new_room='Lab')
        update_template(t.id, room='C3')
        self.assertEqual(TimetableOverride.query.count(), 2)
        update_template(t.id, day_of_week=3)
        self.assertEqual(TimetableOverride.query.count(), 0)
        create_override(t.id, TUESDAY, 'cancel')

if __name__ == "__main__":
    unittest.main()
