"""
Story service errors.

Every error raised by the service layer carries the HTTP status it maps to and
renders itself as the standard response envelope ({status, message, ...}).
"""
from typing import Any, Dict, List, Optional


class StoryError(Exception):
    status_code = 500

    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None,
                 error: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors
        self.error = error
        self.extra = extra or {}

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {'status': False, 'message': self.message}
        if self.errors:
            body['errors'] = self.errors
        if self.error:
            body['error'] = self.error
        body.update(self.extra)
        return body


class ValidationError(StoryError):
    status_code = 400


class AuthError(StoryError):
    status_code = 401


class ForbiddenError(StoryError):
    status_code = 403


class NotFoundError(StoryError):
    status_code = 404


class ConflictError(StoryError):
    status_code = 409


class RateLimitError(StoryError):
    status_code = 429


class PersistenceError(StoryError):
    status_code = 500


def field_errors(exc) -> List[Dict[str, str]]:
    """Flatten pydantic (or FastAPI request) errors into [{field, message}] using the wire names."""
    out = []
    for err in exc.errors():
        loc = [str(p) for p in err.get('loc', ()) if p != 'body']
        out.append({'field': '.'.join(loc) or 'body', 'message': err.get('msg', 'Invalid value')})
    return out
