from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from form_engine.db.session import get_db
from form_engine.models.account import Role, User, UserRole

# roles allowed to build and publish forms
FORM_MANAGERS = ("ADMIN", "FORM_EDITOR")


def get_current_user(
    x_user_email: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    """
    DEV AUTH: the X-User-Email header names the logged-in user.
    Example: X-User-Email: admin@local.test
    """
    if not x_user_email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Email header (dev auth)",
        )

    user = db.query(User).filter(User.email == x_user_email).one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Invalid or inactive user")
    return user


def get_user_role_names(db: Session, user: User) -> set[str]:
    rows = (
        db.query(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user.id)
        .all()
    )
    return {r[0] for r in rows}


def require_roles(*required: str):
    """
    Any-of role check:
      Depends(require_roles("ADMIN"))
      Depends(require_roles(*FORM_MANAGERS))
    """
    required_set = set(required)

    def _dep(
        db: Session = Depends(get_db),
        user: User = Depends(get_current_user),
    ) -> User:
        if not (get_user_role_names(db, user) & required_set):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Forbidden. Requires one of: {sorted(required_set)}",
            )
        return user

    return _dep
