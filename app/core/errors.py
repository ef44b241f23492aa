# app/core/errors.py
"""
Domain errors raised by the crud layer.

Routes let them propagate; app.main maps each class to an HTTP status.
"""


class AccessControlError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(AccessControlError):
    """Missing or malformed input, raised before anything is written."""

    status_code = 400


class NotFoundError(AccessControlError):
    status_code = 404


class ConflictError(AccessControlError):
    """The entity is in a state that does not allow the operation."""

    status_code = 409


class TransientStoreError(AccessControlError):
    status_code = 503
