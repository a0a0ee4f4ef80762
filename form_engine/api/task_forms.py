from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from form_engine.core.audit import log_event
from form_engine.core.auth import get_current_user
from form_engine.db.base import utcnow
from form_engine.db.session import get_db
from form_engine.models.account import User
from form_engine.models.form import Form
from form_engine.models.form_version import FormVersion
from form_engine.models.task_form import TaskForm
from form_engine.schemas.forms import TaskFormCreate, TaskFormOut, TaskFormUpdate

router = APIRouter(prefix="/task-forms", tags=["task-forms"])


def _task_form_out(row: TaskForm) -> TaskFormOut:
    return TaskFormOut(
        id=row.id,
        task_id=row.task_id,
        form_version_id=row.form_version_id,
        data=row.data or {},
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


@router.post("", response_model=TaskFormOut, status_code=status.HTTP_201_CREATED)
def create_task_form(
    payload: TaskFormCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Attach a filled-in form to a task. From here on the referenced version
    is in use and later schema edits fork a new version.
    """
    form = db.get(Form, payload.form_id)
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")

    version_id = payload.form_version_id or form.current_version_id
    if version_id is None:
        raise HTTPException(status_code=409, detail="Form has no published version")

    version = db.get(FormVersion, version_id)
    if not version or version.form_id != form.id:
        raise HTTPException(status_code=400, detail={"invalid_form_version_id": version_id})

    row = TaskForm(
        task_id=payload.task_id,
        form_version_id=version.id,
        data=payload.data,
        created_by_user_id=current_user.id,
        created_at=utcnow(),
        updated_at=utcnow(),
    )
    db.add(row)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Task already has a form")

    log_event(
        db=db,
        actor=current_user,
        action="TASK_FORM_CREATED",
        entity_type="task_form",
        entity_id=row.id,
        metadata={"task_id": row.task_id, "form_id": form.id, "form_version_id": version.id},
    )

    db.commit()
    db.refresh(row)
    return _task_form_out(row)


@router.get("", response_model=list[TaskFormOut])
def list_task_forms(
    task_id: int | None = Query(default=None),
    form_version_id: int | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    q = db.query(TaskForm)
    if task_id is not None:
        q = q.filter(TaskForm.task_id == task_id)
    if form_version_id is not None:
        q = q.filter(TaskForm.form_version_id == form_version_id)

    rows = q.order_by(TaskForm.id.asc()).limit(limit).all()
    return [_task_form_out(r) for r in rows]


@router.patch("/{task_form_id}", response_model=TaskFormOut)
def update_task_form(
    task_form_id: int,
    payload: TaskFormUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    row = db.get(TaskForm, task_form_id)
    if not row:
        raise HTTPException(status_code=404, detail="Task form not found")

    row.data = payload.data
    row.updated_at = utcnow()
    db.commit()
    db.refresh(row)
    return _task_form_out(row)
