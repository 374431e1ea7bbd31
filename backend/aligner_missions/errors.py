# backend/aligner_missions/errors.py
"""
Domain errors raised by the services layer.

Routers don't translate these one by one; main.build_app() installs a single
handler that renders {"error": code, "detail": message} with the status below.
"""


class MissionError(Exception):
    status_code = 400
    code = "mission_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MissionError):
    status_code = 422
    code = "validation_failed"


class NotFound(MissionError):
    status_code = 404
    code = "not_found"


class Conflict(MissionError):
    status_code = 409
    code = "already_assigned"


class BusinessRuleViolation(MissionError):
    status_code = 422
    code = "business_rule"
