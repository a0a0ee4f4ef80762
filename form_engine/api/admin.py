from fastapi import APIRouter, Depends

from form_engine.core.auth import get_user_role_names, require_roles
from form_engine.db.session import get_db
from form_engine.models.account import User
from sqlalchemy.orm import Session

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/ping")
def admin_ping(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("ADMIN")),
):
    return {"status": "ok", "admin": current_user.email, "roles": sorted(get_user_role_names(db, current_user))}
