"""
In-progress builder state for one form.

A Draft is a plain immutable value. Every builder action returns a new Draft;
storing it anywhere (local storage, a cache, a session) is up to the caller.
Field ids come from a per-draft counter that only moves forward, so an id
freed by a removal is never handed out again while the draft lives.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

from form_engine.core import schema_document as sd
from form_engine.core.errors import FieldNotFoundError
from form_engine.core.fields import FieldType, create_field
from form_engine.core.reorder import move_field
from form_engine.core.schema_document import SchemaDocument


class Draft(BaseModel):
    model_config = ConfigDict(frozen=True)

    form_id: int | None = None
    # version the draft was opened from; None for a never-published form
    base_version_id: int | None = None
    document: SchemaDocument = SchemaDocument()
    next_field_id: int = 1
    selected_field_id: int | None = None


def open_draft(
    form_id: int | None,
    document: SchemaDocument | None = None,
    base_version_id: int | None = None,
) -> Draft:
    document = document or SchemaDocument()
    return Draft(
        form_id=form_id,
        base_version_id=base_version_id,
        document=document,
        next_field_id=max(sd.field_ids(document), default=0) + 1,
    )


def _with_document(draft: Draft, document: SchemaDocument, **extra: Any) -> Draft:
    return draft.model_copy(update={"document": document, **extra})


def retitle(draft: Draft, value: str) -> Draft:
    return _with_document(draft, sd.set_title(draft.document, value))


def redescribe(draft: Draft, value: str) -> Draft:
    return _with_document(draft, sd.set_description(draft.document, value))


def add(draft: Draft, field_type: FieldType, after_index: int | None = None) -> Draft:
    """Create a blank field, insert it and select it."""
    field_id = max(draft.next_field_id, max(sd.field_ids(draft.document), default=0) + 1)
    field = create_field(field_type, field_id)
    return _with_document(
        draft,
        sd.add_field(draft.document, field, after_index),
        next_field_id=field_id + 1,
        selected_field_id=field_id,
    )


def edit(draft: Draft, field_id: int, patch: Mapping[str, Any]) -> Draft:
    return _with_document(draft, sd.update_field(draft.document, field_id, patch))


def remove(draft: Draft, field_id: int) -> Draft:
    return _with_document(draft, sd.remove_field(draft.document, field_id), selected_field_id=None)


def move(draft: Draft, field_id: int, over_field_id: int) -> Draft:
    return _with_document(
        draft,
        move_field(draft.document, field_id, over_field_id),
        selected_field_id=field_id,
    )


def select(draft: Draft, field_id: int | None) -> Draft:
    if field_id is not None and sd.find_field_index(draft.document, field_id) is None:
        raise FieldNotFoundError(field_id)
    return draft.model_copy(update={"selected_field_id": field_id})


def is_dirty(draft: Draft, committed: SchemaDocument | None) -> bool:
    return draft.document != (committed or SchemaDocument())