from timetabler import app, db
from timetabler.models import SchoolClass, Subject, Teacher, Student, User, CourseTemplate
from timetabler.templates import create_template
from timetabler.errors import ConflictError
from timetabler.sessions import generate_sessions_for_week
from timetabler.dates import week_start
from werkzeug.security import generate_password_hash
from datetime import date
import random

# (day_of_week, start, end) slots of the school week, Sunday=1 .. Thursday=5
SLOTS = [
    (1, "08:00", "09:00"), (1, "09:00", "10:00"), (1, "10:15", "11:15"),
    (2, "08:00", "09:00"), (2, "09:00", "10:00"),
    (3, "08:00", "09:00"), (3, "10:15", "11:15"),
    (4, "09:00", "10:00"), (4, "10:15", "11:15"),
    (5, "08:00", "09:00"),
]


def seed():
    with app.app_context():
        print("Seeding database...")

        # Create Admin User if not exists
        if not User.query.filter_by(username='admin').first():
            admin = User(username='admin', password_hash=generate_password_hash('admin'), role='admin')
            db.session.add(admin)
            print("Created admin user.")

        # Create Teachers
        subjects_names = ['Mathematics', 'Physics', 'History', 'Literature', 'English']
        for i, name in enumerate(subjects_names, start=1):
            email = f"teacher{i}@school.com"
            if not Teacher.query.filter_by(email=email).first():
                db.session.add(Teacher(name=f"Teacher {i}", email=email, phone=f"555-010{i}"))
            code = name[:4].upper()
            if not Subject.query.filter_by(code=code).first():
                db.session.add(Subject(name=name, code=code))
        db.session.commit()
        teachers = Teacher.query.all()
        subjects = Subject.query.all()
        print(f"Created {len(teachers)} teachers and {len(subjects)} subjects.")

        # Create Classes & Students
        for label in ('6A', '6B'):
            if not SchoolClass.query.filter_by(label=label).first():
                db.session.add(SchoolClass(label=label, level='6', academic_year='2025-2026'))
        db.session.commit()
        classes = SchoolClass.query.all()
        for c in classes:
            for i in range(1, 11):
                email = f"student{c.label.lower()}{i}@school.com"
                if not Student.query.filter_by(email=email).first():
                    db.session.add(Student(name=f"Student {c.label}-{i}", email=email, class_id=c.id))
        db.session.commit()
        print(f"Created {Student.query.count()} students.")

        # Create weekly templates
        created = 0
        for c in classes:
            if CourseTemplate.query.filter_by(class_id=c.id).first():
                continue
            for day, start, end in SLOTS:
                idx = random.randrange(len(subjects))
                try:
                    create_template(
                        class_id=c.id,
                        subject_id=subjects[idx].id,
                        teacher_id=teachers[idx % len(teachers)].id,
                        day_of_week=day,
                        start_time=start,
                        end_time=end,
                        room=f"R{100 + idx}",
                    )
                    created += 1
                except ConflictError:
                    db.session.rollback()
        print(f"Created {created} templates.")

        # Generate this week's attendance sessions
        result = generate_sessions_for_week(week_start(date.today()))
        print(f"Generated {result.generated} sessions ({result.skipped} skipped).")

        print("Seeding complete.")

if __name__ == "__main__":
    seed()
