from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from form_engine.core.auth import require_roles
from form_engine.db.session import get_db
from form_engine.models.audit_event import AuditEvent

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("")
def list_audit_events(
    entity_type: str | None = Query(default=None),
    entity_id: int | None = Query(default=None),
    action: str | None = Query(default=None),
    limit: int = Query(default=50, le=200),
    db: Session = Depends(get_db),
    _=Depends(require_roles("ADMIN")),
):
    q = db.query(AuditEvent)

    if entity_type:
        q = q.filter(AuditEvent.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(AuditEvent.entity_id == entity_id)
    if action:
        q = q.filter(AuditEvent.action == action)

    rows = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(limit).all()

    return [
        {
            "id": r.id,
            "actor_user_id": r.actor_user_id,
            "action": r.action,
            "entity_type": r.entity_type,
            "entity_id": r.entity_id,
            "metadata": r.event_metadata,
            "created_at": r.created_at,
        }
        for r in rows
    ]
