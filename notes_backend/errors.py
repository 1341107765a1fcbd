# notes_backend/errors.py
from fastapi import status


class AppError(Exception):
    """Base for errors that map onto an HTTP status and a JSON {error: message} body."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class OtpError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class OtpNotFound(OtpError):
    pass


class OtpExpired(OtpError):
    pass


class OtpMismatch(OtpError):
    pass


class InvalidToken(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class ConfigurationError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class UpstreamFailure(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
