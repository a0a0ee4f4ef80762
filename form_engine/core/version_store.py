from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from form_engine.core.audit import log_event
from form_engine.core.errors import (
    FormNotFoundError,
    InvariantViolation,
    SchemaDecodeError,
    VersionInUseError,
    VersionNotFoundError,
)
from form_engine.core.publishing import StoredVersion, VersionRef
from form_engine.core.schema_document import (
    DUPLICATE_FIELD_IDS,
    SchemaDocument,
    decode_schema,
    encode_schema,
)
from form_engine.db.base import utcnow
from form_engine.models.account import User
from form_engine.models.form import Form
from form_engine.models.form_version import FormVersion
from form_engine.models.task_form import TaskForm

logger = logging.getLogger(__name__)


def to_stored_version(row: FormVersion) -> StoredVersion:
    """
    Decode the JSON column once, here, into a typed schema document.

    A stored document that repeats a field id was never written by this
    engine and raises InvariantViolation; any other mismatch raises
    SchemaDecodeError.
    """
    try:
        document = decode_schema(row.fields)
    except SchemaDecodeError as exc:
        if any(e["type"] == DUPLICATE_FIELD_IDS for e in exc.errors):
            raise InvariantViolation(f"Form version {row.id} holds duplicate field ids") from exc
        raise
    return StoredVersion(id=row.id, form_id=row.form_id, version=row.version, document=document)


class SqlAlchemyVersionStore:
    """
    VersionStore over the forms / form_versions / task_forms tables.

    Writes go through the caller's session and are committed by the request
    (get_db), so a commit that fails half way leaves nothing behind. The
    parent form row is locked before versions are numbered or amended.
    """

    def __init__(self, db: Session, *, actor: User | None = None):
        self.db = db
        self.actor = actor

    # ---------- helpers ----------

    def lock_form(self, form_id: int) -> Form:
        form = (
            self.db.query(Form)
            .filter(Form.id == form_id)
            .with_for_update()
            .one_or_none()
        )
        if not form:
            raise FormNotFoundError(form_id)
        return form

    def _get_version_row(self, version_id: int, *, for_update: bool = False) -> FormVersion:
        q = self.db.query(FormVersion).filter(FormVersion.id == version_id)
        if for_update:
            q = q.with_for_update()
        row = q.one_or_none()
        if not row:
            raise VersionNotFoundError(version_id)
        return row

    def load_version(self, version_id: int) -> StoredVersion:
        return to_stored_version(self._get_version_row(version_id))

    def current_version(self, form: Form) -> StoredVersion | None:
        if form.current_version_id is None:
            return None
        return self.load_version(form.current_version_id)

    def usage_count(self, version_id: int) -> int:
        return (
            self.db.query(func.count(TaskForm.id))
            .filter(TaskForm.form_version_id == version_id)
            .scalar()
        ) or 0

    # ---------- VersionStore ----------

    def get_versions(self, form_id: int) -> list[VersionRef]:
        rows = (
            self.db.query(FormVersion.id, FormVersion.version)
            .filter(FormVersion.form_id == form_id)
            .order_by(FormVersion.version.desc())
            .all()
        )
        return [VersionRef(id=r[0], version=r[1]) for r in rows]

    def create_version(self, form_id: int, document: SchemaDocument) -> StoredVersion:
        form = self.lock_form(form_id)
        latest = (
            self.db.query(func.max(FormVersion.version))
            .filter(FormVersion.form_id == form.id)
            .scalar()
        ) or 0

        row = FormVersion(
            form_id=form.id,
            version=latest + 1,
            fields=encode_schema(document),
            created_at=utcnow(),
            updated_at=utcnow(),
        )
        self.db.add(row)
        self.db.flush()

        log_event(
            db=self.db,
            actor=self.actor,
            action="FORM_VERSION_CREATED",
            entity_type="form_version",
            entity_id=row.id,
            metadata={"form_id": form.id, "version": row.version, "field_count": len(document.fields)},
        )
        logger.info("Form %s: created version %s (id=%s)", form.id, row.version, row.id)
        return to_stored_version(row)

    def update_version_content(self, version_id: int, document: SchemaDocument) -> StoredVersion:
        row = self._get_version_row(version_id, for_update=True)
        if self.usage_count(row.id) > 0:
            raise VersionInUseError(row.id)

        row.fields = encode_schema(document)
        row.updated_at = utcnow()
        self.db.flush()

        log_event(
            db=self.db,
            actor=self.actor,
            action="FORM_VERSION_AMENDED",
            entity_type="form_version",
            entity_id=row.id,
            metadata={"form_id": row.form_id, "version": row.version, "field_count": len(document.fields)},
        )
        logger.info("Form %s: amended version %s (id=%s)", row.form_id, row.version, row.id)
        return to_stored_version(row)

    def is_version_in_use(self, version_id: int) -> bool:
        self._get_version_row(version_id)
        return self.usage_count(version_id) > 0

    def set_current_version(self, form_id: int, version_id: int) -> None:
        form = self.lock_form(form_id)
        row = self._get_version_row(version_id)
        if row.form_id != form.id:
            raise InvariantViolation(f"Version {version_id} belongs to form {row.form_id}, not {form.id}")

        form.current_version_id = row.id
        form.updated_at = utcnow()
        self.db.flush()
