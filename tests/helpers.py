from sqlalchemy.orm import Session

from form_engine.core.errors import VersionNotFoundError
from form_engine.core.publishing import StoredVersion, VersionRef
from form_engine.core.schema_document import SchemaDocument, decode_schema
from form_engine.core.version_store import SqlAlchemyVersionStore
from form_engine.db.base import utcnow
from form_engine.models.account import Role, User, UserRole
from form_engine.models.form import Form
from form_engine.models.task_form import TaskForm


def ensure_role(db, name: str) -> Role:
    r = db.query(Role).filter(Role.name == name).one_or_none()
    if r:
        return r
    r = Role(name=name)
    db.add(r)
    db.commit()
    db.refresh(r)
    return r


def create_user(db, email: str, full_name="User") -> User:
    u = User(email=email, full_name=full_name, is_active=True)
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


def grant_role(db, user: User, role_name: str):
    role = ensure_role(db, role_name)
    exists = db.query(UserRole).filter(UserRole.user_id == user.id, UserRole.role_id == role.id).one_or_none()
    if not exists:
        db.add(UserRole(user_id=user.id, role_id=role.id))
        db.commit()


def create_admin(db, email: str = "admin@test.com") -> User:
    user = create_user(db, email, "Admin")
    grant_role(db, user, "ADMIN")
    return user


def auth(email: str = "admin@test.com") -> dict:
    return {"X-User-Email": email}


def create_form(
    db: Session,
    *,
    name: str = "Test Form",
    description: str | None = None,
    is_active: bool = True,
) -> Form:
    form = Form(
        name=name,
        description=description,
        is_active=is_active,
        created_at=utcnow(),
        updated_at=utcnow(),
    )
    db.add(form)
    db.commit()
    db.refresh(form)
    return form


def doc(title: str = "Intake", *fields: dict, description: str = "") -> dict:
    """
    Raw schema document, e.g.
      doc("Intake", {"id": 1, "type": "short_text", "label": "Name"})
    """
    return {"title": title, "description": description, "fields": list(fields)}


def publish(db: Session, form: Form, raw: dict) -> StoredVersion:
    """Create the next version of `form` and make it current, bypassing the API."""
    store = SqlAlchemyVersionStore(db)
    version = store.create_version(form.id, decode_schema(raw))
    store.set_current_version(form.id, version.id)
    db.commit()
    db.refresh(form)
    return version


def attach_task_form(db: Session, *, task_id: int, form_version_id: int, data: dict | None = None) -> TaskForm:
    row = TaskForm(
        task_id=task_id,
        form_version_id=form_version_id,
        data=data or {},
        created_at=utcnow(),
        updated_at=utcnow(),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


class InMemoryVersionStore:
    """
    VersionStore double. `in_use` marks versions that have dependents;
    `fail_on` names methods that raise ConnectionError; every call is
    recorded in `calls`.
    """

    def __init__(self):
        self.versions: dict[int, StoredVersion] = {}
        self.current: dict[int, int] = {}
        self.in_use: set[int] = set()
        self.fail_on: set[str] = set()
        self.calls: list[tuple] = []
        self.next_id = 1

    def _record(self, name: str, *args):
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise ConnectionError(f"{name}: network unreachable")

    def seed(self, form_id: int, version: int, document: SchemaDocument, *, version_id: int | None = None) -> StoredVersion:
        version_id = version_id or self.next_id
        stored = StoredVersion(id=version_id, form_id=form_id, version=version, document=document)
        self.versions[version_id] = stored
        self.next_id = max(self.next_id, version_id + 1)
        return stored

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    def get_versions(self, form_id: int) -> list[VersionRef]:
        self._record("get_versions", form_id)
        rows = [v for v in self.versions.values() if v.form_id == form_id]
        return [VersionRef(id=v.id, version=v.version) for v in sorted(rows, key=lambda v: v.version, reverse=True)]

    def create_version(self, form_id: int, document: SchemaDocument) -> StoredVersion:
        self._record("create_version", form_id)
        latest = max((v.version for v in self.versions.values() if v.form_id == form_id), default=0)
        return self.seed(form_id, latest + 1, document)

    def update_version_content(self, version_id: int, document: SchemaDocument) -> StoredVersion:
        self._record("update_version_content", version_id)
        if version_id not in self.versions:
            raise VersionNotFoundError(version_id)
        updated = self.versions[version_id].model_copy(update={"document": document})
        self.versions[version_id] = updated
        return updated

    def is_version_in_use(self, version_id: int) -> bool:
        self._record("is_version_in_use", version_id)
        return version_id in self.in_use

    def set_current_version(self, form_id: int, version_id: int) -> None:
        self._record("set_current_version", form_id, version_id)
        self.current[form_id] = version_id
