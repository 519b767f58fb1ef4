import os
import sys
from datetime import date

# Set environment to testing before importing app
os.environ['FLASK_ENV'] = 'testing'

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from timetabler import app, db
from timetabler.models import SchoolClass, Subject, Teacher, Student

# A Sunday-anchored school week: 2025-11-23 is a Sunday
SUNDAY = date(2025, 11, 23)
MONDAY = date(2025, 11, 24)
TUESDAY = date(2025, 11, 25)
FRIDAY = date(2025, 11, 28)
NEXT_SUNDAY = date(2025, 11, 30)


class DatabaseTestCase:
    """Mixin pushing an app context around a fresh in-memory schema."""

    def setUp(self):
        self.app = app
        self.app.config['TESTING'] = True
        self.ctx = self.app.app_context()
        self.ctx.push()
        db.create_all()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.ctx.pop()


def make_school(label='6A', students=3):
    school_class = SchoolClass(label=label, level='6')
    subject = Subject(name=f'Mathematics {label}', code=f'MATH-{label}')
    teacher = Teacher(name=f'Teacher {label}', email=f'teacher-{label.lower()}@school.edu', phone='555-0101')
    db.session.add_all([school_class, subject, teacher])
    db.session.flush()
    for i in range(students):
        db.session.add(Student(name=f'Student {label}-{i}', email=f'{label.lower()}-{i}@school.edu',
                               class_id=school_class.id))
    db.session.commit()
    return school_class, subject, teacher
