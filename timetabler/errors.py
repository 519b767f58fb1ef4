"""Error hierarchy for timetable operations.

Mutating operations raise these synchronously; the HTTP layer maps each one
to a JSON error body using ``status_code``. Session generation never raises
them per occurrence: failures are collected into the GenerationResult.
"""


class TimetableError(Exception):
    """Base exception for all timetable errors."""

    status_code = 400

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(TimetableError):
    """Input rejected before anything is persisted.

    Examples: start time not before end time, override date that is not an
    occurrence date of its template, unknown override type.
    """

    status_code = 400


class ConflictError(TimetableError):
    """Operation clashes with existing state and is not auto-resolved.

    Examples: overlapping templates for one class, closing a closed session.
    """

    status_code = 409


class NotFoundError(TimetableError):
    """Referenced template, override, class or session does not exist."""

    status_code = 404
