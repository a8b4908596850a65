"""
costsheets/errors.py

Error taxonomy for cost sheet operations.

Workflow functions raise these; blueprints translate them into JSON responses
through a single error handler (see costsheets/__init__.py). Nothing is retried.
"""

from __future__ import annotations


class CostSheetError(Exception):
    """Base class. `code` is a stable machine-readable tag, `status` the HTTP status."""

    code = "error"
    status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(CostSheetError):
    """Input rejected before any store call."""

    code = "validation_error"
    status = 400


class PermissionDenied(CostSheetError):
    code = "forbidden"
    status = 403


class NotFound(CostSheetError):
    code = "not_found"
    status = 404


class InvalidTransition(CostSheetError):
    """The sheet/item is not in a state that allows the requested action."""

    code = "invalid_transition"
    status = 409


class DuplicateError(CostSheetError):
    """Store-reported uniqueness conflict (e.g. duplicate client name)."""

    code = "duplicate"
    status = 409


class StoreError(CostSheetError):
    """Generic store I/O failure. The session has been rolled back."""

    code = "store_error"
    status = 500


class PartialFailureError(StoreError):
    """
    A compound operation failed after some of its steps were committed.

    `step` names the step that failed; earlier steps are NOT undone.
    """

    code = "partial_failure"

    def __init__(self, message: str, step: str):
        super().__init__(message)
        self.step = step

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["step"] = self.step
        return data
