"""Error taxonomy shared by the services and the HTTP layer.

Every error carries the message sent to the client in the ``error`` field and an
optional ``details`` value. The status code is a class attribute so the single
application-level handler in ``api.py`` can translate any of them.
"""
from typing import Any, Optional


class LifePlannerError(Exception):
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class BadRequestError(LifePlannerError):
    status_code = 400


class UnauthorizedError(LifePlannerError):
    status_code = 401


class ForbiddenError(LifePlannerError):
    status_code = 403


class NotFoundError(LifePlannerError):
    status_code = 404


class ConflictError(LifePlannerError):
    status_code = 409


class InternalError(LifePlannerError):
    status_code = 500


class AIGatewayError(InternalError):
    """The model service could not be reached or answered with an error."""


class AIResponseFormatError(InternalError):
    """The model answered, but not in the shape the caller asked for.

    ``details`` holds an excerpt of the raw reply for diagnosis.
    """
