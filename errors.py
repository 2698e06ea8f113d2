"""
Error kinds raised by the session engine.

Each kind carries a stable ``code`` and the HTTP status the API layer renders it
with. Messages are meant for the end user and include the concrete numbers that
caused a rejection.
"""


class CheckInError(Exception):
    code = "internal"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(CheckInError):
    code = "unauthenticated"
    status_code = 401


class NotFound(CheckInError):
    code = "not-found"
    status_code = 404


class PermissionDenied(CheckInError):
    code = "permission-denied"
    status_code = 403


class Conflict(CheckInError):
    code = "conflict"
    status_code = 409


class PreconditionFailed(CheckInError):
    code = "failed-precondition"
    status_code = 400


class InvalidArgument(CheckInError):
    code = "invalid-argument"
    status_code = 400


class Internal(CheckInError):
    code = "internal"
    status_code = 500
