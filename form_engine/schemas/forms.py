from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from form_engine.core.publishing import CommitOutcome


class FormCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=500)
    is_active: bool = True


class FormUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=500)
    is_active: bool | None = None


class FormOut(BaseModel):
    id: int
    name: str
    description: str | None
    is_active: bool
    current_version_id: int | None
    current_version: int | None  # version number, not id
    version_badge: str | None  # "v3", None until first publish
    created_at: datetime
    updated_at: datetime


class FormVersionSummary(BaseModel):
    id: int
    form_id: int
    version: int
    is_current: bool
    created_at: datetime
    updated_at: datetime


class FormVersionOut(FormVersionSummary):
    fields: dict[str, Any]
    usage_count: int
    in_use: bool


class CommitRequest(BaseModel):
    # {"title", "description", "fields": [...]}
    document: dict[str, Any]
    # version the draft was opened from; None for a never-published form
    base_version_id: int | None = None
    # copy a non-empty title/description onto the form's name/description
    sync_metadata: bool = True


class CommitOut(BaseModel):
    outcome: CommitOutcome
    form_id: int
    current_version_id: int
    version_id: int
    version: int
    previous_version_id: int | None
    document: dict[str, Any]


class PreviewRequest(BaseModel):
    document: dict[str, Any]


class TaskFormCreate(BaseModel):
    task_id: int = Field(ge=1)
    form_id: int = Field(ge=1)
    # defaults to the form's current version
    form_version_id: int | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class TaskFormUpdate(BaseModel):
    data: dict[str, Any]


class TaskFormOut(BaseModel):
    id: int
    task_id: int
    form_version_id: int
    data: dict[str, Any]
    created_at: datetime
    updated_at: datetime
