"""
Error taxonomy for Photolog
Every error carries the HTTP status it maps to and a user-facing detail
"""


class AppError(Exception):
    """Base class for errors rendered by the app exception handler"""
    status_code = 500
    detail = "Internal server error"

    def __init__(self, detail: str = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class Unauthorized(AppError):
    status_code = 401
    detail = "Authentication required"


class BadRequest(AppError):
    status_code = 400
    detail = "Bad request"


class IntegrityError(AppError):
    """Raised when a signed cookie fails verification"""
    status_code = 400
    detail = "Invalid cookie"


class ValidationFailed(AppError):
    """User-facing validation message, shown back to the user"""
    status_code = 400
    detail = "Invalid input"


class NotFound(AppError):
    status_code = 404
    detail = "Not found"


class LengthRequired(AppError):
    status_code = 411
    detail = "Content length required"


class PayloadTooLarge(AppError):
    status_code = 413
    detail = "Payload too large"


class UnsupportedMedia(AppError):
    status_code = 415
    detail = "Unsupported media type"


class InternalError(AppError):
    status_code = 500
    detail = "Internal server error"


class EncodeFailure(InternalError):
    pass


class StoreInconsistency(InternalError):
    """An index entry references a record that does not exist"""
    pass
