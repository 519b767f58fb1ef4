"""Create the schema and store the default timetable policy settings.

Settings written here are loaded over the config at start-up, so an
administrator can change them in the database without touching env vars.
"""
from timetabler import app, db
from timetabler.models import SystemSetting

DEFAULT_SETTINGS = {
    'SCHOOL_WEEK_DAYS': ('5', 'timetable'),
    'SESSION_GENERATION_HORIZON_DAYS': ('7', 'sessions'),
    'ATTENDANCE_ALLOW_EDIT': ('true', 'attendance'),
}

with app.app_context():
    db.create_all()
    added = 0
    for key, (value, group) in DEFAULT_SETTINGS.items():
        if not SystemSetting.query.filter_by(key=key).first():
            db.session.add(SystemSetting(key=key, value=value, group=group))
            added += 1
    db.session.commit()
    print(f"Database ready at {app.config['SQLALCHEMY_DATABASE_URI']} ({added} settings added)")
