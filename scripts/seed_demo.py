# seed_demo.py
from sqlalchemy.orm import Session

from form_engine.core import draft as drafts
from form_engine.core.fields import FieldType
from form_engine.core.publishing import EditingSession
from form_engine.core.version_store import SqlAlchemyVersionStore
from form_engine.db.base import utcnow
from form_engine.db.session import SessionLocal
from form_engine.models.account import Role, User, UserRole
from form_engine.models.form import Form

ROLE_NAMES = ["ADMIN", "FORM_EDITOR"]


def get_or_create_role(db: Session, name: str) -> Role:
    r = db.query(Role).filter(Role.name == name).one_or_none()
    if r:
        return r
    r = Role(name=name)
    db.add(r)
    db.commit()
    db.refresh(r)
    return r


def get_or_create_user(db: Session, email: str, full_name: str) -> User:
    u = db.query(User).filter(User.email == email).one_or_none()
    if u:
        if not u.is_active:
            u.is_active = True
            db.commit()
        return u

    u = User(email=email, full_name=full_name, is_active=True)
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


def ensure_user_role(db: Session, user_id, role_id):
    ur = (
        db.query(UserRole)
        .filter(UserRole.user_id == user_id, UserRole.role_id == role_id)
        .one_or_none()
    )
    if ur:
        return ur
    ur = UserRole(user_id=user_id, role_id=role_id)
    db.add(ur)
    db.commit()
    return ur


def get_or_create_intake_form(db: Session, admin: User) -> Form:
    form = db.query(Form).filter(Form.name == "Intake").one_or_none()
    if form:
        return form

    form = Form(
        name="Intake",
        description="Guest intake questionnaire",
        is_active=True,
        created_by_user_id=admin.id,
        created_at=utcnow(),
        updated_at=utcnow(),
    )
    db.add(form)
    db.commit()
    db.refresh(form)

    store = SqlAlchemyVersionStore(db, actor=admin)
    session = EditingSession(form.id)
    session.begin_edit()
    session.apply(drafts.retitle, "Intake")
    session.apply(drafts.redescribe, "Tell us about your stay")
    session.apply(drafts.add, FieldType.SHORT_TEXT)
    session.apply(drafts.edit, 1, {"label": "Full name", "required": True})
    session.apply(drafts.add, FieldType.DATE)
    session.apply(drafts.edit, 2, {"label": "Arrival date"})
    session.apply(drafts.add, FieldType.SINGLE_CHOICE)
    session.apply(drafts.edit, 3, {"label": "Room type", "options": ["Single", "Double", "Suite"]})
    session.commit(store)
    db.commit()
    db.refresh(form)
    return form


def main():
    db = SessionLocal()
    try:
        roles = {name: get_or_create_role(db, name) for name in ROLE_NAMES}
        admin = get_or_create_user(db, "admin@local.test", "Admin Local")
        editor = get_or_create_user(db, "editor@local.test", "Editor Local")
        ensure_user_role(db, admin.id, roles["ADMIN"].id)
        ensure_user_role(db, editor.id, roles["FORM_EDITOR"].id)

        form = get_or_create_intake_form(db, admin)

        print("\n=== Demo Seed Complete ===")
        print("Users (use as X-User-Email header):")
        print(f"  admin:  {admin.email}")
        print(f"  editor: {editor.email}")
        print("\nForm:")
        print(f"  form_id:            {form.id}")
        print(f"  current_version_id: {form.current_version_id}")
        print("\nNext actions:")
        print("  1) Preview:  GET  /forms/{form_id}/preview")
        print("  2) Edit:     POST /forms/{form_id}/commit  (amends while unused)")
        print("  3) Use it:   POST /task-forms")
        print("  4) Edit:     POST /forms/{form_id}/commit  (now forks a new version)")
        print()
    finally:
        db.close()


if __name__ == "__main__":
    main()
