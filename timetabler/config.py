import os


def _flag(name, default):
    return os.environ.get(name, default).lower() in ("1", "true", "yes", "on")


class BaseConfig:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SESSION_TIMEOUT_MINUTES = int(os.environ.get("SESSION_TIMEOUT_MINUTES", 120))
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    # School week: Sunday (1) .. Thursday (5)
    SCHOOL_WEEK_DAYS = int(os.environ.get("SCHOOL_WEEK_DAYS", 5))
    # Session generation
    SESSION_GENERATION_HORIZON_DAYS = int(os.environ.get("SESSION_GENERATION_HORIZON_DAYS", 7))
    SCHEDULER_ENABLED = _flag("SCHEDULER_ENABLED", "false")
    SCHEDULER_HOUR = int(os.environ.get("SCHEDULER_HOUR", 0))
    SCHEDULER_MINUTE = int(os.environ.get("SCHEDULER_MINUTE", 0))
    # Attendance governance
    ATTENDANCE_ALLOW_EDIT = _flag("ATTENDANCE_ALLOW_EDIT", "true")


class DevelopmentConfig(BaseConfig):
    # Default to instance/timetable.db unless overridden
    INSTANCE_PATH = os.environ.get("FLASK_INSTANCE_PATH")

    @staticmethod
    def database_uri(instance_path: str) -> str:
        db_path = os.environ.get("DATABASE_PATH")
        if db_path:
            return f"sqlite:///{db_path}"
        return "sqlite:///" + os.path.join(instance_path, "timetable.db")


class TestingConfig(BaseConfig):
    TESTING = True
    SCHEDULER_ENABLED = False
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URI", "sqlite:///:memory:")


class ProductionConfig(BaseConfig):
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URI", "sqlite:///timetable.db")
