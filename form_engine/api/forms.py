import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from form_engine.core.audit import log_event
from form_engine.core.auth import FORM_MANAGERS, require_roles
from form_engine.core.config import settings
from form_engine.core.errors import (
    CommitFailedError,
    FormNotFoundError,
    InvariantViolation,
    SchemaDecodeError,
    VersionInUseError,
)
from form_engine.core.preview import FormPreview, preview_form
from form_engine.core.publishing import commit
from form_engine.core.schema_document import decode_schema, encode_schema
from form_engine.core.version_store import SqlAlchemyVersionStore
from form_engine.db.base import utcnow
from form_engine.db.session import get_db
from form_engine.models.account import User
from form_engine.models.form import Form
from form_engine.models.form_version import FormVersion
from form_engine.schemas.forms import (
    CommitOut,
    CommitRequest,
    FormCreate,
    FormOut,
    FormUpdate,
    FormVersionOut,
    FormVersionSummary,
    PreviewRequest,
)
from form_engine.schemas.pagination import PaginatedResponse, paginate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/forms", tags=["forms"])


def _form_out(db: Session, form: Form) -> FormOut:
    current = db.get(FormVersion, form.current_version_id) if form.current_version_id else None
    return FormOut(
        id=form.id,
        name=form.name,
        description=form.description,
        is_active=form.is_active,
        current_version_id=form.current_version_id,
        current_version=current.version if current else None,
        version_badge=f"v{current.version}" if current else None,
        created_at=form.created_at,
        updated_at=form.updated_at,
    )


def _version_summary(row: FormVersion, form: Form) -> FormVersionSummary:
    return FormVersionSummary(
        id=row.id,
        form_id=row.form_id,
        version=row.version,
        is_current=row.id == form.current_version_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _get_form_or_404(db: Session, form_id: int) -> Form:
    form = db.get(Form, form_id)
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")
    return form


def _decode_or_400(raw: dict):
    try:
        document = decode_schema(raw)
    except SchemaDecodeError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(e), "errors": e.errors},
        )
    if len(document.fields) > settings.MAX_FIELDS_PER_FORM:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": f"Form has {len(document.fields)} fields, limit is {settings.MAX_FIELDS_PER_FORM}",
                "errors": [],
            },
        )
    return document


def _load_or_500(load, version_id: int):
    """Run a store read; a stored document that no longer decodes is a server-side data error."""
    try:
        return load()
    except SchemaDecodeError as e:
        logger.error("Form version %s does not decode: %s %s", version_id, e, e.errors)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": f"Stored form version {version_id} is invalid: {e}", "errors": e.errors},
        )
    except InvariantViolation as e:
        logger.error("Form version %s: %s", version_id, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": str(e), "errors": []},
        )


@router.post("", response_model=FormOut, status_code=status.HTTP_201_CREATED)
def create_form(
    payload: FormCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*FORM_MANAGERS)),
):
    form = Form(
        name=payload.name,
        description=payload.description,
        is_active=payload.is_active,
        created_by_user_id=current_user.id,
        created_at=utcnow(),
        updated_at=utcnow(),
    )
    db.add(form)
    db.flush()

    log_event(
        db=db,
        actor=current_user,
        action="FORM_CREATED",
        entity_type="form",
        entity_id=form.id,
        metadata={"name": form.name},
    )

    db.commit()
    db.refresh(form)
    return _form_out(db, form)


@router.get("", response_model=PaginatedResponse[FormOut])
def list_forms(
    search: str | None = Query(default=None, description="Match on name or description"),
    is_active: bool | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _: User = Depends(require_roles(*FORM_MANAGERS)),
):
    q = db.query(Form)
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(Form.name.ilike(pattern), Form.description.ilike(pattern)))
    if is_active is not None:
        q = q.filter(Form.is_active == is_active)

    rows, meta = paginate(q.order_by(Form.name.asc(), Form.id.asc()), limit=limit, offset=offset)
    return PaginatedResponse[FormOut](items=[_form_out(db, f) for f in rows], pagination=meta)


@router.post("/preview", response_model=FormPreview)
def preview_draft(
    payload: PreviewRequest,
    _: User = Depends(require_roles(*FORM_MANAGERS)),
):
    """Render an uncommitted draft exactly as the committed version would render."""
    return preview_form(_decode_or_400(payload.document))


@router.get("/{form_id}", response_model=FormOut)
def get_form(
    form_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_roles(*FORM_MANAGERS)),
):
    return _form_out(db, _get_form_or_404(db, form_id))


@router.patch("/{form_id}", response_model=FormOut)
def update_form(
    form_id: int,
    payload: FormUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*FORM_MANAGERS)),
):
    form = _get_form_or_404(db, form_id)

    changes = payload.model_dump(exclude_unset=True)
    if changes.get("name", "") is None:
        raise HTTPException(status_code=400, detail="name cannot be null")
    for key, value in changes.items():
        setattr(form, key, value)
    form.updated_at = utcnow()
    db.flush()

    log_event(
        db=db,
        actor=current_user,
        action="FORM_UPDATED",
        entity_type="form",
        entity_id=form.id,
        metadata={"changes": sorted(changes)},
    )

    db.commit()
    db.refresh(form)
    return _form_out(db, form)


@router.get("/{form_id}/versions", response_model=list[FormVersionSummary])
def list_form_versions(
    form_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_roles(*FORM_MANAGERS)),
):
    form = _get_form_or_404(db, form_id)
    rows = (
        db.query(FormVersion)
        .filter(FormVersion.form_id == form.id)
        .order_by(FormVersion.version.desc())
        .all()
    )
    return [_version_summary(r, form) for r in rows]


@router.get("/{form_id}/versions/{version_id}", response_model=FormVersionOut)
def get_form_version(
    form_id: int,
    version_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_roles(*FORM_MANAGERS)),
):
    form = _get_form_or_404(db, form_id)
    row = db.get(FormVersion, version_id)
    if not row or row.form_id != form.id:
        raise HTTPException(status_code=404, detail="Form version not found")

    store = SqlAlchemyVersionStore(db)
    usage = store.usage_count(row.id)
    return FormVersionOut(
        **_version_summary(row, form).model_dump(),
        fields=encode_schema(_load_or_500(lambda: store.load_version(row.id), row.id).document),
        usage_count=usage,
        in_use=usage > 0,
    )


@router.get("/{form_id}/preview", response_model=FormPreview)
def preview_current_version(
    form_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_roles(*FORM_MANAGERS)),
):
    form = _get_form_or_404(db, form_id)
    store = SqlAlchemyVersionStore(db)
    current = _load_or_500(lambda: store.current_version(form), form.current_version_id)
    if current is None:
        raise HTTPException(status_code=404, detail="Form has no published version")
    return preview_form(current.document)


@router.post("/{form_id}/commit", response_model=CommitOut)
def commit_form_schema(
    form_id: int,
    payload: CommitRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*FORM_MANAGERS)),
):
    """
    Save / publish a builder draft.

    Amends the current version while nothing references it, otherwise forks
    a new version and points the form at it. Runs in one transaction with
    the form row locked, so the usage check and the write cannot interleave
    with another commit.
    """
    document = _decode_or_400(payload.document)
    store = SqlAlchemyVersionStore(db, actor=current_user)

    try:
        form = store.lock_form(form_id)
    except FormNotFoundError:
        raise HTTPException(status_code=404, detail="Form not found")

    if payload.base_version_id != form.current_version_id:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": "Stale draft",
                "expected": form.current_version_id,
                "got": payload.base_version_id,
            },
        )

    try:
        result = commit(store, form.id, form.current_version_id, document)
    except CommitFailedError as e:
        db.rollback()
        if isinstance(e.__cause__, (VersionInUseError, IntegrityError)):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"message": "Form changed while saving, reload and retry", "error": str(e)},
            )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Could not save form", "error": str(e)},
        )
    except InvariantViolation as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    if payload.sync_metadata:
        if document.title.strip():
            form.name = document.title.strip()[:200]
        if document.description.strip():
            form.description = document.description.strip()[:500]
    form.updated_at = utcnow()

    db.commit()
    logger.info("Form %s committed by %s: %s", form.id, current_user.email, result.outcome.value)

    return CommitOut(
        outcome=result.outcome,
        form_id=form.id,
        current_version_id=form.current_version_id,
        version_id=result.version.id,
        version=result.version.version,
        previous_version_id=result.previous_version_id,
        document=encode_schema(result.version.document),
    )
