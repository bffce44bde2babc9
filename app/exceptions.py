"""
Application error types.

Raised by the crud and image layers, translated to HTTP responses by the
handlers registered in main.py. Each error carries a user-facing message and
the status code it maps to.
"""
from typing import Any, Dict, Optional


class CatalogError(Exception):
    status_code = 500

    def __init__(self, message: str = "An unexpected error occurred", context: Optional[Dict[str, Any]] = None):
        self.message = message
        # logged, never returned to the client
        self.context = context or {}
        super().__init__(self.message)


class ValidationFailure(CatalogError):
    """Bad or missing input fields."""
    status_code = 400


class UploadRejected(ValidationFailure):
    """Uploaded image has the wrong type or is too large."""


class Unauthorized(CatalogError):
    status_code = 401


class NotFound(CatalogError):
    status_code = 404

    def __init__(self, resource: str = "resource", resource_id: Optional[Any] = None, context: Optional[Dict[str, Any]] = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with id {resource_id} not found"
        ctx = context or {}
        ctx["resource"] = resource
        super().__init__(message=message, context=ctx)
        self.resource = resource
        self.resource_id = resource_id


class StorageFailure(CatalogError):
    """Database or file-system failure."""
    status_code = 500
