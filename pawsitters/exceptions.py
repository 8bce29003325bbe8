"""
Domain Exceptions for the PawSitters core

Every failure the controller layer reports is an AppError subclass.
The kind and the HTTP status travel with the error so the response boundary
only has to serialise it.
"""


class AppError(Exception):
    """Base error: a human-readable message plus machine-readable details"""

    kind = "internal"
    status_code = 500

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        """Serialise for an API response body"""
        return {
            "error": {
                "kind": self.kind,
                "code": self.__class__.__name__,
                "message": self.message,
                "details": self.details
            }
        }


class InvalidDataError(AppError):
    """Missing required fields, disallowed fields, unparsable values"""

    kind = "invalid_data"
    status_code = 400


class ForbiddenError(AppError):
    """The caller's role or ownership does not permit the operation"""

    kind = "forbidden"
    status_code = 403


class NotFoundError(AppError):
    """The entity, or a related entity, does not exist"""

    kind = "not_found"
    status_code = 404


class ConflictError(AppError):
    """Unique-value collision or an operation the current state does not allow"""

    kind = "conflict"
    status_code = 409


class UnsupportedMediaTypeError(AppError):
    """Request body is not JSON"""

    kind = "unsupported_media_type"
    status_code = 415


class InternalError(AppError):
    """Unexpected persistence failure"""

    kind = "internal"
    status_code = 500
