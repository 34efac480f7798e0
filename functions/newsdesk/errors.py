"""
Error taxonomy shared by the service layer and the HTTP surface.

Every error carries the HTTP status it is rendered with, so routes can raise
them directly and a single exception handler shapes the response.
"""

from __future__ import annotations


class NewsdeskError(Exception):
    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(NewsdeskError):
    status_code = 400
    default_message = "Invalid request"


class Unauthenticated(NewsdeskError):
    status_code = 401
    default_message = "Unauthorized"


class NotFound(NewsdeskError):
    status_code = 404
    default_message = "Not found"


class UploadParseError(NewsdeskError):
    status_code = 400
    default_message = "Upload parse error"


class UnsupportedMediaType(NewsdeskError):
    status_code = 400
    default_message = "Unsupported image type"


class EmptyUpload(NewsdeskError):
    status_code = 400
    default_message = "Empty file"


class UploadTooLarge(NewsdeskError):
    status_code = 413
    default_message = "Upload too large"


class UpstreamFailure(NewsdeskError):
    status_code = 500
    default_message = "Upstream service failed"


class ConfigurationError(NewsdeskError):
    status_code = 500
    default_message = "Server misconfigured"
