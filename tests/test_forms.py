from fastapi.testclient import TestClient

from form_engine.core.config import settings
from form_engine.core.errors import VersionInUseError
from form_engine.core.version_store import SqlAlchemyVersionStore
from form_engine.main import app
from form_engine.models.audit_event import AuditEvent
from form_engine.models.form import Form
from form_engine.models.form_version import FormVersion
from tests.helpers import (
    attach_task_form,
    auth,
    create_admin,
    create_form,
    create_user,
    doc,
    grant_role,
    publish,
)

NAME = {"id": 1, "type": "short_text", "label": "Name", "required": True}
ARRIVAL = {"id": 2, "type": "date", "label": "Arrival"}
ROOM = {"id": 3, "type": "single_choice", "label": "Room", "options": ["Single", "Double"]}


def test_list_forms_requires_form_manager(db_session):
    create_user(db_session, "user@test.com")
    client = TestClient(app)
    r = client.get("/forms", headers=auth("user@test.com"))
    assert r.status_code == 403


def test_list_forms_requires_auth_header(db_session):
    client = TestClient(app)
    r = client.get("/forms")
    assert r.status_code == 401


def test_form_editor_role_can_manage_forms(db_session):
    editor = create_user(db_session, "editor@test.com")
    grant_role(db_session, editor, "FORM_EDITOR")
    client = TestClient(app)
    r = client.post("/forms", json={"name": "Intake"}, headers=auth("editor@test.com"))
    assert r.status_code == 201


def test_create_and_get_form(db_session):
    create_admin(db_session)
    client = TestClient(app)

    r = client.post("/forms", json={"name": "Intake", "description": "Guests"}, headers=auth())
    assert r.status_code == 201
    body = r.json()
    assert body["name"] == "Intake"
    assert body["current_version_id"] is None
    assert body["version_badge"] is None

    r = client.get(f"/forms/{body['id']}", headers=auth())
    assert r.status_code == 200
    assert r.json()["description"] == "Guests"


def test_create_form_validates_name(db_session):
    create_admin(db_session)
    client = TestClient(app)
    r = client.post("/forms", json={"name": ""}, headers=auth())
    assert r.status_code == 422


def test_get_form_not_found(db_session):
    create_admin(db_session)
    client = TestClient(app)
    r = client.get("/forms/999", headers=auth())
    assert r.status_code == 404


def test_list_forms_search_filter_and_badge(db_session):
    create_admin(db_session)
    review = create_form(db_session, name="Performance Review", description="Annual review")
    create_form(db_session, name="Checkout", description="Review your stay")
    hidden = create_form(db_session, name="Old Intake", is_active=False)
    publish(db_session, review, doc("Performance Review", NAME))

    client = TestClient(app)
    r = client.get("/forms", params={"search": "review"}, headers=auth())
    assert r.status_code == 200
    page = r.json()
    assert page["pagination"]["total"] == 2
    badges = {f["name"]: f["version_badge"] for f in page["items"]}
    assert badges == {"Performance Review": "v1", "Checkout": None}

    r = client.get("/forms", params={"is_active": "false"}, headers=auth())
    assert [f["id"] for f in r.json()["items"]] == [hidden.id]

    r = client.get("/forms", params={"limit": 1}, headers=auth())
    assert len(r.json()["items"]) == 1
    assert r.json()["pagination"]["has_more"] is True


def test_update_form_metadata(db_session):
    create_admin(db_session)
    form = create_form(db_session, name="Intake")
    client = TestClient(app)

    r = client.patch(f"/forms/{form.id}", json={"is_active": False, "description": "d"}, headers=auth())
    assert r.status_code == 200
    assert r.json()["is_active"] is False
    assert r.json()["name"] == "Intake"

    r = client.patch(f"/forms/{form.id}", json={"name": None}, headers=auth())
    assert r.status_code == 400


def test_commit_first_publish(db_session):
    create_admin(db_session)
    form = create_form(db_session, name="Draft name")
    client = TestClient(app)

    r = client.post(
        f"/forms/{form.id}/commit",
        json={"document": doc("Intake", NAME, ARRIVAL), "base_version_id": None},
        headers=auth(),
    )
    assert r.status_code == 200
    body = r.json()
    assert body["outcome"] == "first_publish"
    assert body["version"] == 1
    assert body["current_version_id"] == body["version_id"]
    assert body["previous_version_id"] is None
    assert [f["id"] for f in body["document"]["fields"]] == [1, 2]

    r = client.get(f"/forms/{form.id}", headers=auth())
    assert r.json()["name"] == "Intake"
    assert r.json()["version_badge"] == "v1"


def test_commit_amends_unused_version(db_session):
    create_admin(db_session)
    form = create_form(db_session)
    v1 = publish(db_session, form, doc("Intake", NAME))
    client = TestClient(app)

    r = client.post(
        f"/forms/{form.id}/commit",
        json={"document": doc("Intake", ARRIVAL, NAME), "base_version_id": v1.id},
        headers=auth(),
    )
    assert r.status_code == 200
    body = r.json()
    assert body["outcome"] == "amended"
    assert body["version_id"] == v1.id
    assert body["version"] == 1
    assert db_session.query(FormVersion).filter(FormVersion.form_id == form.id).count() == 1


def test_commit_forks_used_version(db_session):
    create_admin(db_session)
    form = create_form(db_session)
    v1 = publish(db_session, form, doc("Intake", NAME))
    attach_task_form(db_session, task_id=77, form_version_id=v1.id)
    client = TestClient(app)

    r = client.post(
        f"/forms/{form.id}/commit",
        json={"document": doc("Intake v2", NAME, ROOM), "base_version_id": v1.id},
        headers=auth(),
    )
    assert r.status_code == 200
    body = r.json()
    assert body["outcome"] == "forked"
    assert body["version"] == 2
    assert body["previous_version_id"] == v1.id
    assert body["current_version_id"] == body["version_id"] != v1.id

    r = client.get(f"/forms/{form.id}/versions/{v1.id}", headers=auth())
    old = r.json()
    assert old["fields"]["title"] == "Intake"
    assert old["usage_count"] == 1
    assert old["in_use"] is True
    assert old["is_current"] is False

    r = client.get(f"/forms/{form.id}/versions", headers=auth())
    assert [v["version"] for v in r.json()] == [2, 1]
    assert [v["is_current"] for v in r.json()] == [True, False]


def test_commit_stale_draft_conflicts(db_session):
    create_admin(db_session)
    form = create_form(db_session)
    publish(db_session, form, doc("Intake", NAME))
    client = TestClient(app)

    r = client.post(
        f"/forms/{form.id}/commit",
        json={"document": doc("Intake", NAME), "base_version_id": None},
        headers=auth(),
    )
    assert r.status_code == 409
    assert r.json()["detail"]["message"] == "Stale draft"


def test_commit_rejects_invalid_schema(db_session):
    create_admin(db_session)
    form = create_form(db_session)
    client = TestClient(app)

    bad = doc("Intake", {"id": 1, "type": "single_choice", "options": []})
    r = client.post(f"/forms/{form.id}/commit", json={"document": bad}, headers=auth())
    assert r.status_code == 400
    assert r.json()["detail"]["errors"]

    dupes = doc("Intake", NAME, NAME)
    r = client.post(f"/forms/{form.id}/commit", json={"document": dupes}, headers=auth())
    assert r.status_code == 400
    assert db_session.query(FormVersion).count() == 0


def test_commit_unknown_form(db_session):
    create_admin(db_session)
    client = TestClient(app)
    r = client.post("/forms/404/commit", json={"document": doc("x")}, headers=auth())
    assert r.status_code == 404


def test_commit_without_metadata_sync(db_session):
    create_admin(db_session)
    form = create_form(db_session, name="Keep me")
    client = TestClient(app)
    r = client.post(
        f"/forms/{form.id}/commit",
        json={"document": doc("Other title", NAME), "sync_metadata": False},
        headers=auth(),
    )
    assert r.status_code == 200
    assert client.get(f"/forms/{form.id}", headers=auth()).json()["name"] == "Keep me"


def test_preview_current_version(db_session):
    create_admin(db_session)
    form = create_form(db_session)
    client = TestClient(app)

    r = client.get(f"/forms/{form.id}/preview", headers=auth())
    assert r.status_code == 404

    publish(db_session, form, doc("Intake", NAME, ROOM))
    r = client.get(f"/forms/{form.id}/preview", headers=auth())
    assert r.status_code == 200
    body = r.json()
    assert body["title"] == "Intake"
    assert [i["widget_kind"] for i in body["items"]] == ["text_input", "radio_group"]


def test_preview_draft_matches_committed_preview(db_session):
    create_admin(db_session)
    form = create_form(db_session)
    raw = doc("", {"id": 5, "type": "paragraph"}, {"id": 6, "type": "fixed_image", "image_id": "a1"})
    publish(db_session, form, raw)
    client = TestClient(app)

    draft = client.post("/forms/preview", json={"document": raw}, headers=auth()).json()
    committed = client.get(f"/forms/{form.id}/preview", headers=auth()).json()
    assert draft == committed
    assert draft["title"] == "Untitled form"
    assert draft["items"][0]["label"] == "Untitled question"
    assert draft["items"][1]["accepts_input"] is False


def test_commit_rejects_oversized_form(db_session, monkeypatch):
    monkeypatch.setattr(settings, "MAX_FIELDS_PER_FORM", 2)
    create_admin(db_session)
    form = create_form(db_session)
    client = TestClient(app)

    r = client.post(f"/forms/{form.id}/commit", json={"document": doc("x", NAME, ARRIVAL, ROOM)}, headers=auth())
    assert r.status_code == 400
    assert "limit is 2" in r.json()["detail"]["message"]


def test_preview_draft_rejects_unknown_type(db_session):
    create_admin(db_session)
    client = TestClient(app)
    r = client.post("/forms/preview", json={"document": doc("x", {"id": 1, "type": "slider"})}, headers=auth())
    assert r.status_code == 400


def _store_raw_version(db, form, raw: dict, *, make_current: bool = True) -> FormVersion:
    """Write `raw` straight into form_versions, as an older builder would have."""
    row = FormVersion(form_id=form.id, version=1, fields=raw)
    db.add(row)
    db.flush()
    if make_current:
        form.current_version_id = row.id
    db.commit()
    return row


def test_legacy_choice_without_options_reads_as_one_blank_option(db_session):
    create_admin(db_session)
    form = create_form(db_session)
    row = _store_raw_version(db_session, form, {"fields": [{"id": 1, "type": "select", "label": "Room"}]})
    client = TestClient(app)

    r = client.get(f"/forms/{form.id}/preview", headers=auth())
    assert r.status_code == 200
    item = r.json()["items"][0]
    assert item["widget_kind"] == "radio_group"
    assert item["field"]["options"] == [""]

    r = client.get(f"/forms/{form.id}/versions/{row.id}", headers=auth())
    assert r.status_code == 200
    assert r.json()["fields"]["fields"][0]["type"] == "single_choice"


def test_undecodable_stored_version_reports_errors(db_session):
    create_admin(db_session)
    form = create_form(db_session)
    row = _store_raw_version(
        db_session, form, {"fields": [{"id": 1, "type": "single_choice", "label": "Room", "options": []}]}
    )
    client = TestClient(app)

    for url in (f"/forms/{form.id}/preview", f"/forms/{form.id}/versions/{row.id}"):
        r = client.get(url, headers=auth())
        assert r.status_code == 500
        detail = r.json()["detail"]
        assert f"version {row.id}" in detail["message"]
        assert detail["errors"]


def test_stored_version_with_duplicate_ids_is_reported(db_session):
    create_admin(db_session)
    form = create_form(db_session)
    _store_raw_version(db_session, form, {"fields": [NAME, NAME]})
    client = TestClient(app)

    r = client.get(f"/forms/{form.id}/preview", headers=auth())
    assert r.status_code == 500
    assert "duplicate field ids" in r.json()["detail"]["message"]


def test_commit_conflict_during_save_rolls_back(db_session, monkeypatch):
    create_admin(db_session)
    form = create_form(db_session)
    v1 = publish(db_session, form, doc("Intake", NAME))
    attach_task_form(db_session, task_id=1, form_version_id=v1.id)

    def _raced(self, form_id, version_id):
        raise VersionInUseError(version_id)

    monkeypatch.setattr(SqlAlchemyVersionStore, "set_current_version", _raced)
    client = TestClient(app)

    r = client.post(
        f"/forms/{form.id}/commit",
        json={"document": doc("Intake v2", NAME, ARRIVAL), "base_version_id": v1.id},
        headers=auth(),
    )
    assert r.status_code == 409
    assert r.json()["detail"]["message"].startswith("Form changed while saving")

    db_session.expire_all()
    assert db_session.query(FormVersion).filter(FormVersion.form_id == form.id).count() == 1
    assert db_session.get(Form, form.id).current_version_id == v1.id
    assert db_session.query(AuditEvent).filter(AuditEvent.action == "FORM_VERSION_CREATED").count() == 1


def test_commit_store_failure_is_a_server_error(db_session, monkeypatch):
    create_admin(db_session)
    form = create_form(db_session, name="Before")
    v1 = publish(db_session, form, doc("Before", NAME))

    def _down(self, version_id, document):
        raise ConnectionError("database went away")

    monkeypatch.setattr(SqlAlchemyVersionStore, "update_version_content", _down)
    client = TestClient(app)

    r = client.post(
        f"/forms/{form.id}/commit",
        json={"document": doc("After", NAME), "base_version_id": v1.id},
        headers=auth(),
    )
    assert r.status_code == 500
    assert "database went away" in r.json()["detail"]["error"]

    db_session.expire_all()
    stored = db_session.get(FormVersion, v1.id)
    assert stored.fields["title"] == "Before"
    assert db_session.get(Form, form.id).name == "Before"
