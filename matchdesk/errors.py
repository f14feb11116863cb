# matchdesk/errors.py
"""Domain errors raised by the assignment engine.

Every error carries a machine-readable ``kind`` and a human message. The
errors blueprint turns them into JSON responses; callers of the services
can also catch them directly (the sweep does).
"""


class AssignmentError(Exception):
    kind = "ERROR"
    status_code = 400

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    default_message = "Request could not be processed."

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class Unauthorized(AssignmentError):
    kind = "UNAUTHORIZED"
    status_code = 401
    default_message = "Login required."


class Forbidden(AssignmentError):
    kind = "FORBIDDEN"
    status_code = 403
    default_message = "You are not allowed to do that."


class NotFound(AssignmentError):
    kind = "NOT_FOUND"
    status_code = 404

    def __init__(self, what: str = "Resource"):
        super().__init__(f"{what} not found.")


class InvalidState(AssignmentError):
    kind = "INVALID_STATE"
    status_code = 409
    default_message = "This offer is no longer valid."


class Expired(AssignmentError):
    kind = "EXPIRED"
    status_code = 410
    default_message = "This offer has expired."


class ValidationError(AssignmentError):
    kind = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Invalid input."
