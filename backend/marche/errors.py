# Overview: Domain error taxonomy and the single error-to-HTTP mapping layer.

"""
Error taxonomy

Services raise these; routes never catch them. register_error_handlers()
turns every MarcheError into a JSON body of the form:

    {"error": "<message>", "code": "<error code>", ...details}

Failed state transitions attach the unchanged entity as "current" so the
client can re-render the prior state.

HTTP mapping:
    ValidationError          400
    AuthenticationError      401
    PermissionDeniedError    403
    NotFoundError            404
    NotEligibleError         409
    FileTooLargeError        413
    UnsupportedTypeError     415
    PersistenceError         500
    StorageCleanupError      500
    ServiceUnavailableError  503 (retryable)
"""

from __future__ import annotations

from typing import Any

from flask import Flask, current_app, jsonify
from werkzeug.exceptions import HTTPException


class MarcheError(Exception):
    """Base class for request-scoped domain failures."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, *, current: dict | None = None, **details: Any):
        super().__init__(message)
        self.message = message
        self.current = current
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        body.update({k: v for k, v in self.details.items() if v is not None})
        if self.current is not None:
            body["current"] = self.current
        return body


class ValidationError(MarcheError):
    """Missing or malformed input. Not retryable."""

    status_code = 400
    code = "validation_error"

    def __init__(self, message: str, *, missing: list[str] | None = None, **kwargs: Any):
        super().__init__(message, missing=missing, **kwargs)
        self.missing = missing or []


class AuthenticationError(MarcheError):
    status_code = 401
    code = "authentication_required"


class PermissionDeniedError(MarcheError):
    status_code = 403
    code = "permission_denied"


class NotFoundError(MarcheError):
    status_code = 404
    code = "not_found"


class NotEligibleError(MarcheError):
    """A state-machine precondition does not hold."""

    status_code = 409
    code = "not_eligible"


class FileTooLargeError(MarcheError):
    status_code = 413
    code = "file_too_large"


class UnsupportedTypeError(MarcheError):
    status_code = 415
    code = "unsupported_type"


class ServiceUnavailableError(MarcheError):
    """An external collaborator (classifier, storage, identity) is unreachable."""

    status_code = 503
    code = "service_unavailable"

    def __init__(self, message: str, *, service: str | None = None, **kwargs: Any):
        super().__init__(message, service=service, retryable=True, **kwargs)
        self.service = service


class PersistenceError(MarcheError):
    """
    Record store write failure.

    cleanup_error is set when the upload compensation (blob delete) also
    failed, so both failures are reported together.
    """

    status_code = 500
    code = "persistence_error"

    def __init__(self, message: str, *, cleanup_error: str | None = None, **kwargs: Any):
        super().__init__(message, cleanup_error=cleanup_error, **kwargs)
        self.cleanup_error = cleanup_error


class StorageCleanupError(MarcheError):
    """The record was removed but its blob could not be deleted (accepted orphan)."""

    status_code = 500
    code = "storage_cleanup_failed"

    def __init__(self, message: str, *, file_path: str | None = None, **kwargs: Any):
        super().__init__(message, file_path=file_path, record_deleted=True, **kwargs)
        self.file_path = file_path


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(MarcheError)
    def handle_marche_error(error: MarcheError):
        if error.status_code >= 500:
            current_app.logger.error("%s: %s", type(error).__name__, error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        return jsonify({"error": error.description, "code": error.name.lower().replace(" ", "_")}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error: Exception):
        current_app.logger.exception("Unhandled error")
        return jsonify({"error": "Internal server error", "code": "internal_error"}), 500
