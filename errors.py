"""
Application error taxonomy.

Every failure a route can report is one of these; main.py turns them into
JSON responses with the matching status code.
"""


class AppError(Exception):
    status_code = 500
    default_message = "Something went wrong"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Invalid credentials"


class InvalidToken(AppError):
    status_code = 401
    default_message = "Invalid token"


class Forbidden(AppError):
    status_code = 403
    default_message = "Access denied"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class Conflict(AppError):
    status_code = 400
    default_message = "Already exists"


class InvalidOTP(AppError):
    status_code = 400
    default_message = "Invalid or expired OTP"


class InsufficientStock(AppError):
    status_code = 400
    default_message = "Insufficient stock"


class UploadError(AppError):
    status_code = 400
    default_message = "Invalid upload"


class Unavailable(AppError):
    status_code = 503
    default_message = "Service unavailable"
