# rehabtrack/errors.py
"""
Business errors raised by the adherence engine.

Every error here is a recoverable outcome for the caller and leaves stored
state untouched. Storage failures (SQLAlchemyError) are not subclasses of
AdherenceError; they propagate unchanged.
"""


class AdherenceError(Exception):
    status_code = 400
    code = "ADHERENCE_ERROR"
    default_message = "request rejected"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {"message": self.message, "error": self.code}


class NotFound(AdherenceError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "not found"


class Forbidden(AdherenceError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "access denied"


class AlreadyCompleted(AdherenceError):
    status_code = 409
    code = "ALREADY_COMPLETED"
    default_message = "schedule already completed"


class InvalidReference(AdherenceError):
    status_code = 422
    code = "INVALID_REFERENCE"
    default_message = "referenced entity does not exist"


class InvalidInput(AdherenceError):
    status_code = 400
    code = "INVALID_INPUT"
    default_message = "invalid input"
