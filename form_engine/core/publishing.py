"""
Publish / fork decision for form schema commits.

On every commit the engine asks the version store, exactly once and right
before writing, whether the form's current version already has dependent
records. Unused versions are amended in place; used ones are frozen and the
edit lands in a new version that becomes current.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Protocol

from pydantic import BaseModel, ConfigDict

from form_engine.core.draft import Draft, is_dirty, open_draft
from form_engine.core.errors import CommitFailedError, FormEngineError, InvariantViolation
from form_engine.core.schema_document import SchemaDocument

logger = logging.getLogger(__name__)


class VersionRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    version: int


class StoredVersion(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    form_id: int
    version: int
    document: SchemaDocument


class VersionStore(Protocol):
    def get_versions(self, form_id: int) -> list[VersionRef]:
        """Versions of `form_id`, highest version number first."""
        ...

    def create_version(self, form_id: int, document: SchemaDocument) -> StoredVersion:
        ...

    def update_version_content(self, version_id: int, document: SchemaDocument) -> StoredVersion:
        ...

    def is_version_in_use(self, version_id: int) -> bool:
        ...

    def set_current_version(self, form_id: int, version_id: int) -> None:
        ...


class EditingState(str, Enum):
    NO_VERSION = "no_version"
    DRAFT = "draft"
    PUBLISHED = "published"


class CommitOutcome(str, Enum):
    FIRST_PUBLISH = "first_publish"
    AMENDED = "amended"
    FORKED = "forked"


class CommitResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    outcome: CommitOutcome
    version: StoredVersion
    previous_version_id: int | None = None


def _expected_next_version(refs: list[VersionRef]) -> int:
    numbers = [r.version for r in refs]
    ordered = sorted(numbers, reverse=True)
    if numbers != ordered or len(set(numbers)) != len(numbers):
        raise InvariantViolation(f"Version store returned unordered or duplicate versions: {numbers}")
    if not ordered:
        return 1
    # versions run 1, 2, ..., n with no gaps
    if ordered[-1] != 1 or any(a - b != 1 for a, b in zip(ordered, ordered[1:])):
        raise InvariantViolation(f"Version store returned non-contiguous versions: {numbers}")
    return ordered[0] + 1


def _create_next_version(store: VersionStore, form_id: int, document: SchemaDocument) -> StoredVersion:
    expected = _expected_next_version(store.get_versions(form_id))
    created = store.create_version(form_id, document)
    if created.form_id != form_id:
        raise InvariantViolation(f"Version {created.id} created for form {created.form_id}, expected {form_id}")
    if created.version != expected:
        raise InvariantViolation(
            f"Form {form_id}: new version number {created.version}, expected {expected}"
        )
    return created


def commit(
    store: VersionStore,
    form_id: int,
    current_version_id: int | None,
    document: SchemaDocument,
) -> CommitResult:
    """
    Persist `document` for `form_id`.

    - no current version: create version 1 (or latest + 1) and make it current
    - current version unused: overwrite its content, pointer unchanged
    - current version in use: create latest + 1 and make it current

    Store failures come back as CommitFailedError; InvariantViolation is
    raised as is. The caller's draft is never touched here.
    """
    try:
        if current_version_id is None:
            version = _create_next_version(store, form_id, document)
            store.set_current_version(form_id, version.id)
            outcome = CommitOutcome.FIRST_PUBLISH
        elif not store.is_version_in_use(current_version_id):
            version = store.update_version_content(current_version_id, document)
            if version.id != current_version_id:
                raise InvariantViolation(
                    f"Amending version {current_version_id} returned version {version.id}"
                )
            outcome = CommitOutcome.AMENDED
        else:
            version = _create_next_version(store, form_id, document)
            store.set_current_version(form_id, version.id)
            outcome = CommitOutcome.FORKED
    except InvariantViolation:
        logger.exception("Form %s: version store broke an invariant", form_id)
        raise
    except Exception as exc:
        logger.error("Form %s: commit failed: %s", form_id, exc)
        raise CommitFailedError(form_id, str(exc)) from exc

    logger.info(
        "Form %s: commit %s -> version id=%s number=%s",
        form_id,
        outcome.value,
        version.id,
        version.version,
    )
    return CommitResult(outcome=outcome, version=version, previous_version_id=current_version_id)


class EditingSession:
    """
    One editor working on one form: the committed version, the current
    pointer and at most one open draft.
    """

    def __init__(self, form_id: int, current: StoredVersion | None = None):
        self.form_id = form_id
        self.current_version_id: int | None = current.id if current else None
        self.committed: SchemaDocument | None = current.document if current else None
        self.draft: Draft | None = None
        self._next_field_id = 1

    @property
    def state(self) -> EditingState:
        if self.draft is not None:
            return EditingState.DRAFT
        if self.current_version_id is None:
            return EditingState.NO_VERSION
        return EditingState.PUBLISHED

    @property
    def has_unsaved_changes(self) -> bool:
        return self.draft is not None and is_dirty(self.draft, self.committed)

    def begin_edit(self) -> Draft:
        if self.draft is None:
            draft = open_draft(self.form_id, self.committed, self.current_version_id)
            if draft.next_field_id < self._next_field_id:
                draft = draft.model_copy(update={"next_field_id": self._next_field_id})
            self.draft = draft
        return self.draft

    def apply(self, op: Callable[..., Draft], *args: Any, **kwargs: Any) -> Draft:
        """Run a draft operation (add, edit, move, ...) against the open draft."""
        if self.draft is None:
            raise FormEngineError(f"Form {self.form_id}: no draft open")
        self.draft = op(self.draft, *args, **kwargs)
        return self.draft

    def discard(self) -> None:
        if self.draft is not None:
            self._next_field_id = max(self._next_field_id, self.draft.next_field_id)
        self.draft = None

    def commit(self, store: VersionStore) -> CommitResult:
        if self.draft is None:
            raise FormEngineError(f"Form {self.form_id}: no draft open")

        draft = self.draft
        result = commit(store, self.form_id, self.current_version_id, draft.document)

        self.current_version_id = result.version.id
        self.committed = result.version.document
        self._next_field_id = max(self._next_field_id, draft.next_field_id)
        self.draft = None
        return result
