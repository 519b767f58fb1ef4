"""Generate attendance sessions from the command line.

    python generate_sessions.py                 # upcoming days (daily job)
    python generate_sessions.py 2025-11-23      # one day
    python generate_sessions.py --week 2025-11-23
    python generate_sessions.py --month 2025 11
"""
import sys
from timetabler import app
from timetabler import sessions


def main(argv):
    with app.app_context():
        if not argv:
            result = sessions.daily_session_generation()
        elif argv[0] == '--week' and len(argv) == 2:
            result = sessions.generate_sessions_for_week(argv[1])
        elif argv[0] == '--month' and len(argv) == 3:
            result = sessions.generate_sessions_for_month(int(argv[1]), int(argv[2]))
        elif len(argv) == 1:
            result = sessions.generate_sessions_for_day(argv[0])
        else:
            print(__doc__)
            return 2
    print(f"Generated {result.generated}, skipped {result.skipped}, errors {len(result.errors)}")
    for err in result.errors:
        print(f"  {err['date']}: {err['error']}")
    return 1 if result.errors else 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
