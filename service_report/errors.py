"""Typed errors raised by the service layer.

Routes let these propagate; the app-level error handler renders them with the
same JSON shape as Werkzeug HTTP errors:

    {"error": {"status": 404, "title": "Not Found", "detail": "report not found"}}

Storage and filesystem failures are not wrapped; they surface as 500.
"""
from __future__ import annotations


class ServiceReportError(Exception):
    """Base class for checkable service-layer failures."""

    status_code = 500
    title = 'Internal Server Error'

    def __init__(self, message: str, code: str = 'SERVICE_REPORT_ERROR'):
        super().__init__(message)
        self.message = message
        self.code = code

    def to_payload(self):
        return {
            'error': {
                'status': self.status_code,
                'title': self.title,
                'detail': self.message,
            }
        }


class NotFoundError(ServiceReportError):
    status_code = 404
    title = 'Not Found'

    def __init__(self, message: str = 'report not found', code: str = 'NOT_FOUND'):
        super().__init__(message, code)


class ForbiddenError(ServiceReportError):
    status_code = 403
    title = 'Forbidden'

    def __init__(self, message: str = 'report forbidden', code: str = 'FORBIDDEN'):
        super().__init__(message, code)


class TransitionError(ServiceReportError):
    status_code = 400
    title = 'Bad Request'

    def __init__(self, message: str, code: str = 'INVALID_TRANSITION'):
        super().__init__(message, code)


class ValidationError(ServiceReportError):
    status_code = 400
    title = 'Bad Request'

    def __init__(self, message: str, code: str = 'VALIDATION_ERROR'):
        super().__init__(message, code)


__all__ = ['ServiceReportError', 'NotFoundError', 'ForbiddenError', 'TransitionError', 'ValidationError']
