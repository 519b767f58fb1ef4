import os
import logging
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from timetabler.config import DevelopmentConfig, ProductionConfig, TestingConfig
from datetime import timedelta
from werkzeug.security import generate_password_hash

app = Flask(__name__, instance_relative_config=True)

# Select config based on FLASK_ENV
env = os.environ.get("FLASK_ENV", "development").lower()
if env == "production":
    app.config.from_object(ProductionConfig)
elif env == "testing":
    app.config.from_object(TestingConfig)
else:
    app.config.from_object(DevelopmentConfig)

# Compute DB URI for development using instance path
if env == "development":
    os.makedirs(app.instance_path, exist_ok=True)
    app.config['SQLALCHEMY_DATABASE_URI'] = DevelopmentConfig.database_uri(app.instance_path)

logging.basicConfig(
    level=getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)

db = SQLAlchemy(app)

# Configure session lifetime
timeout_minutes = app.config.get('SESSION_TIMEOUT_MINUTES', 120)
try:
    app.permanent_session_lifetime = timedelta(minutes=int(timeout_minutes))
except (TypeError, ValueError):
    app.permanent_session_lifetime = timedelta(minutes=120)


# Load DB-backed policy settings into app.config if available
def _parse_setting(val):
    v = str(val).strip()
    low = v.lower()
    if low in ("1", "true", "yes", "on"):
        return True
    if low in ("0", "false", "no", "off"):
        return False
    try:
        return int(v)
    except ValueError:
        return v


from timetabler.models import SystemSetting, User

with app.app_context():
    db.create_all()
    for s in SystemSetting.query.all():
        app.config[s.key] = _parse_setting(s.value)

    admin_user = os.environ.get("ADMIN_USERNAME")
    admin_pw_hash = os.environ.get("ADMIN_PASSWORD_HASH")
    admin_pw_plain = os.environ.get("ADMIN_PASSWORD")
    if admin_user and not User.query.filter_by(username=admin_user).first():
        if not admin_pw_hash:
            admin_pw_hash = generate_password_hash(admin_pw_plain or "admin")
        db.session.add(User(username=admin_user, password_hash=admin_pw_hash, role="admin"))
        db.session.commit()
        logger.info("Bootstrapped admin user %s", admin_user)

if app.config.get('SCHEDULER_ENABLED') and not app.config.get('TESTING'):
    from timetabler.scheduler import start_scheduler
    start_scheduler(app)

from timetabler import routes
