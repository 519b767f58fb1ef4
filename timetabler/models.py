from timetabler import db
from timetabler.dates import format_date, format_time
from datetime import datetime

OVERRIDE_TYPES = ('cancel', 'modify_time', 'modify_room')
INSTANCE_STATUSES = ('confirmed', 'cancelled', 'modified')
ATTENDANCE_STATUSES = ('present', 'absent', 'late', 'excused')


class SchoolClass(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    label = db.Column(db.String(50), unique=True, nullable=False)
    level = db.Column(db.String(50))
    academic_year = db.Column(db.String(20))

    students = db.relationship('Student', backref='school_class', lazy=True)
    templates = db.relationship('CourseTemplate', backref='school_class', lazy=True)

    def __repr__(self):
        return f"SchoolClass('{self.label}')"


class Subject(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(20), unique=True)
    color = db.Column(db.String(20))

    def __repr__(self):
        return f"Subject('{self.name}')"


class Teacher(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    phone = db.Column(db.String(20))

    templates = db.relationship('CourseTemplate', backref='teacher', lazy=True)

    def __repr__(self):
        return f"Teacher('{self.name}')"


class Student(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    class_id = db.Column(db.Integer, db.ForeignKey('school_class.id'))
    status = db.Column(db.String(20), default='active')

    attendances = db.relationship('Attendance', backref='student', lazy=True, cascade="all, delete-orphan")


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='staff')

    def __repr__(self):
        return f"User('{self.username}', role='{self.role}')"


class CourseTemplate(db.Model):
    """Recurring weekly slot of a class, never tied to a calendar date."""
    id = db.Column(db.Integer, primary_key=True)
    class_id = db.Column(db.Integer, db.ForeignKey('school_class.id'), nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey('subject.id'), nullable=False)
    teacher_id = db.Column(db.Integer, db.ForeignKey('teacher.id'))
    day_of_week = db.Column(db.Integer, nullable=False)  # 1=Sunday .. 5=Thursday
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)
    room = db.Column(db.String(50))
    notes = db.Column(db.Text)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    subject = db.relationship('Subject', lazy=True)
    overrides = db.relationship('TimetableOverride', backref='template', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'class_id': self.class_id,
            'subject_id': self.subject_id,
            'teacher_id': self.teacher_id,
            'day_of_week': self.day_of_week,
            'start_time': format_time(self.start_time),
            'end_time': format_time(self.end_time),
            'room': self.room,
            'notes': self.notes,
            'is_active': self.is_active,
        }

    def __repr__(self):
        return f"CourseTemplate(class_id={self.class_id}, day={self.day_of_week}, {self.start_time}-{self.end_time})"


class TimetableOverride(db.Model):
    """Exception applied to one template on one calendar date."""
    id = db.Column(db.Integer, primary_key=True)
    template_entry_id = db.Column(db.Integer, db.ForeignKey('course_template.id'), nullable=False)
    override_date = db.Column(db.Date, nullable=False)
    override_type = db.Column(db.String(20), nullable=False)  # cancel, modify_time, modify_room
    new_start_time = db.Column(db.Time)
    new_end_time = db.Column(db.Time)
    new_room = db.Column(db.String(50))
    reason = db.Column(db.String(200))
    notes = db.Column(db.Text)
    created_by = db.Column(db.String(80))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    __table_args__ = (db.UniqueConstraint('template_entry_id', 'override_date', name='uix_override_template_date'),)

    def to_dict(self):
        return {
            'id': self.id,
            'template_entry_id': self.template_entry_id,
            'override_date': format_date(self.override_date),
            'override_type': self.override_type,
            'new_start_time': format_time(self.new_start_time),
            'new_end_time': format_time(self.new_end_time),
            'new_room': self.new_room,
            'reason': self.reason,
            'notes': self.notes,
            'created_by': self.created_by,
        }

    def __repr__(self):
        return f"TimetableOverride(template={self.template_entry_id}, date='{self.override_date}', type='{self.override_type}')"


class TimetableInstance(db.Model):
    """Course materialised for one concrete school week."""
    id = db.Column(db.Integer, primary_key=True)
    class_id = db.Column(db.Integer, db.ForeignKey('school_class.id'), nullable=False)
    template_entry_id = db.Column(db.Integer, db.ForeignKey('course_template.id'))
    subject_id = db.Column(db.Integer, db.ForeignKey('subject.id'), nullable=False)
    teacher_id = db.Column(db.Integer, db.ForeignKey('teacher.id'))
    week_start_date = db.Column(db.Date, nullable=False, index=True)
    day_of_week = db.Column(db.Integer, nullable=False)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)
    room = db.Column(db.String(50))
    notes = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default='confirmed')
    created_from_template = db.Column(db.Boolean, nullable=False, default=False)
    created_by = db.Column(db.String(80))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'class_id': self.class_id,
            'template_entry_id': self.template_entry_id,
            'subject_id': self.subject_id,
            'teacher_id': self.teacher_id,
            'week_start_date': format_date(self.week_start_date),
            'day_of_week': self.day_of_week,
            'start_time': format_time(self.start_time),
            'end_time': format_time(self.end_time),
            'room': self.room,
            'notes': self.notes,
            'status': self.status,
            'created_from_template': self.created_from_template,
        }


class AttendanceSession(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(db.Integer, db.ForeignKey('course_template.id'), nullable=False)
    class_id = db.Column(db.Integer, db.ForeignKey('school_class.id'), nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey('subject.id'), nullable=False)
    teacher_id = db.Column(db.Integer, db.ForeignKey('teacher.id'), nullable=False)
    session_date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)
    room = db.Column(db.String(50))
    status = db.Column(db.String(20), nullable=False, default='open')  # open, closed
    present_count = db.Column(db.Integer, nullable=False, default=0)
    absent_count = db.Column(db.Integer, nullable=False, default=0)
    late_count = db.Column(db.Integer, nullable=False, default=0)
    total_students = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    closed_at = db.Column(db.DateTime)
    closed_by = db.Column(db.String(80))

    template = db.relationship('CourseTemplate', lazy=True)
    attendances = db.relationship('Attendance', backref='session', lazy=True, cascade="all, delete-orphan")
    __table_args__ = (db.UniqueConstraint('template_id', 'session_date', name='uix_session_template_date'),)

    def to_dict(self):
        return {
            'id': self.id,
            'template_id': self.template_id,
            'class_id': self.class_id,
            'subject_id': self.subject_id,
            'teacher_id': self.teacher_id,
            'session_date': format_date(self.session_date),
            'start_time': format_time(self.start_time),
            'end_time': format_time(self.end_time),
            'room': self.room,
            'status': self.status,
            'present_count': self.present_count,
            'absent_count': self.absent_count,
            'late_count': self.late_count,
            'total_students': self.total_students,
        }

    def __repr__(self):
        return f"AttendanceSession(template_id={self.template_id}, date='{self.session_date}', status='{self.status}')"


class Attendance(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('attendance_session.id'), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id'), nullable=False)
    status = db.Column(db.String(20), nullable=False)  # present, absent, late, excused
    remarks = db.Column(db.String(200), nullable=True)
    marked_at = db.Column(db.DateTime, default=datetime.utcnow)
    marked_by = db.Column(db.String(120), nullable=True)
    __table_args__ = (db.UniqueConstraint('session_id', 'student_id', name='uix_attendance_session_student'),)

    def __repr__(self):
        return f"Attendance(session_id={self.session_id}, student_id={self.student_id}, status='{self.status}')"


class SystemSetting(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False)
    value = db.Column(db.String(200), nullable=False)
    group = db.Column(db.String(50), nullable=True)

    def __repr__(self):
        return f"SystemSetting('{self.key}')"


class AuditLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(50), nullable=False)
    actor_username = db.Column(db.String(80), nullable=True)
    actor_role = db.Column(db.String(20), nullable=True)
    target = db.Column(db.String(120), nullable=True)
    details = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"AuditLog(action='{self.action}', actor='{self.actor_username}', target='{self.target}')"
