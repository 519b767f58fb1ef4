import unittest
from datetime import time, timedelta

from helpers import DatabaseTestCase, make_school, SUNDAY, MONDAY, TUESDAY
from timetabler.models import TimetableOverride
from timetabler.templates import create_template
from timetabler.overrides import create_override, update_override, delete_override, list_overrides_for_week
from timetabler.errors import ValidationError, NotFoundError


class OverrideStoreTests(DatabaseTestCase, unittest.TestCase):

    def setUp(self):
        super().setUp()
        self.cls, self.subject, self.teacher = make_school()
        self.template = create_template(class_id=self.cls.id, subject_id=self.subject.id,
                                        teacher_id=self.teacher.id, day_of_week=2,
                                        start_time='08:00', end_time='09:00', room='B12')

    def test_second_override_replaces_first(self):
        first, created = create_override(self.template.id, MONDAY, 'cancel', reason='Strike')
        self.assertTrue(created)
        second, created = create_override(self.template.id, '2025-11-24', 'modify_room', new_room='Lab 1')
        self.assertFalse(created)
        self.assertEqual(first.id, second.id)
        self.assertEqual(TimetableOverride.query.count(), 1)
        self.assertEqual(second.override_type, 'modify_room')
        self.assertEqual(second.new_room, 'Lab 1')
        self.assertIsNone(second.reason)

    def test_date_must_match_template_day(self):
        with self.assertRaises(ValidationError):
            create_override(self.template.id, TUESDAY, 'cancel')
        self.assertEqual(TimetableOverride.query.count(), 0)

    def test_modify_time_with_inverted_range_is_not_persisted(self):
        with self.assertRaises(ValidationError):
            create_override(self.template.id, MONDAY, 'modify_time', new_start_time='10:00', new_end_time='09:00')
        self.assertEqual(TimetableOverride.query.count(), 0)

    def test_modify_time_requires_both_times(self):
        with self.assertRaises(ValidationError):
            create_override(self.template.id, MONDAY, 'modify_time', new_start_time='10:00')

    def test_modify_room_requires_room(self):
        with self.assertRaises(ValidationError):
            create_override(self.template.id, MONDAY, 'modify_room', new_room='  ')

    def test_unknown_type_and_template(self):
        with self.assertRaises(ValidationError):
            create_override(self.template.id, MONDAY, 'replace')
        with self.assertRaises(NotFoundError):
            create_override(999, MONDAY, 'cancel')

    def test_variant_fields_are_exclusive(self):
        o, _ = create_override(self.template.id, MONDAY, 'modify_time',
                               new_start_time='09:00', new_end_time='10:00', new_room='ignored')
        self.assertIsNone(o.new_room)
        o = update_override(o.id, override_type='modify_room', new_room='C3')
        self.assertIsNone(o.new_start_time)
        self.assertIsNone(o.new_end_time)
        self.assertEqual(o.new_room, 'C3')

    def test_update_revalidates(self):
        o, _ = create_override(self.template.id, MONDAY, 'modify_time',
                               new_start_time='09:00', new_end_time='10:00')
        with self.assertRaises(ValidationError):
            update_override(o.id, new_end_time='08:00')
        o = update_override(o.id, new_end_time='10:30', reason='Exam')
        self.assertEqual(o.new_end_time, time(10, 30))
        self.assertEqual(o.reason, 'Exam')

    def test_delete_and_list_for_week(self):
        o, _ = create_override(self.template.id, MONDAY, 'cancel')
        create_override(self.template.id, MONDAY + timedelta(days=7), 'cancel')
        week = list_overrides_for_week(self.cls.id, SUNDAY)
        self.assertEqual([x.id for x in week], [o.id])
        delete_override(o.id)
        self.assertEqual(list_overrides_for_week(self.cls.id, SUNDAY), [])
        with self.assertRaises(NotFoundError):
            delete_override(o.id)

if __name__ == "__main__":
    unittest.main()
