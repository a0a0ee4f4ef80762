from __future__ import annotations

from typing import Any


class FormEngineError(Exception):
    """Base class for errors raised by the form schema engine."""


class FieldNotFoundError(FormEngineError):
    def __init__(self, field_id: int):
        super().__init__(f"Field {field_id} is not in the document")
        self.field_id = field_id


class FieldPatchError(FormEngineError):
    def __init__(self, field_id: int, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(f"Cannot update field {field_id}: {message}")
        self.field_id = field_id
        self.errors = errors or []


class SchemaDecodeError(FormEngineError):
    """
    Stored or submitted `fields` JSON did not match the schema document shape.
    `errors` carries the pydantic error list so callers can surface it.
    """

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class InvariantViolation(FormEngineError):
    """Duplicate field ids, non-monotonic version numbers and the like."""


class UnknownFieldTypeError(FormEngineError):
    def __init__(self, field_type: Any):
        super().__init__(f"No widget registered for field type {field_type!r}")
        self.field_type = field_type


class VersionInUseError(FormEngineError):
    def __init__(self, version_id: int):
        super().__init__(f"Form version {version_id} is referenced by dependent records")
        self.version_id = version_id


class VersionNotFoundError(FormEngineError):
    def __init__(self, version_id: int):
        super().__init__(f"Form version {version_id} not found")
        self.version_id = version_id


class CommitFailedError(FormEngineError):
    """
    A commit could not be completed. The draft that was being committed is
    left exactly as it was; `__cause__` holds the collaborator failure.
    """

    def __init__(self, form_id: int, message: str):
        super().__init__(f"Commit for form {form_id} failed: {message}")
        self.form_id = form_id


class FormNotFoundError(FormEngineError):
    def __init__(self, form_id: int):
        super().__init__(f"Form {form_id} not found")
        self.form_id = form_id
