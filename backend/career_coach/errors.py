from __future__ import annotations


class CoachError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Unexpected server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = (message or self.default_message).strip() or self.default_message
        super().__init__(self.message)


class InvalidInput(CoachError):
    status_code = 400
    code = "INVALID_INPUT"
    default_message = "invalid input"


class Unauthorized(CoachError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "missing or invalid credential"


class AccessDenied(CoachError):
    status_code = 403
    code = "ACCESS_DENIED"
    default_message = "access denied"


class NotFound(CoachError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "not found"


class AlreadyExists(CoachError):
    status_code = 409
    code = "ALREADY_EXISTS"
    default_message = "already exists"


class InvalidState(CoachError):
    status_code = 409
    code = "INVALID_STATE"
    default_message = "invalid state for this operation"


class SessionConflict(CoachError):
    status_code = 409
    code = "SESSION_CONFLICT"
    default_message = "interview session was modified concurrently, please retry"


class UpstreamFormatError(CoachError):
    status_code = 500
    code = "UPSTREAM_FORMAT_ERROR"
    default_message = "AI response could not be parsed"


class UpstreamFailure(CoachError):
    status_code = 500
    code = "UPSTREAM_FAILURE"
    default_message = "AI service request failed"


class InternalError(CoachError):
    pass
