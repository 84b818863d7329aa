from __future__ import annotations

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session


def _create(client, headers, user_id, title, content="", tags=None):
    payload = {"userId": user_id, "title": title, "content": content}
    if tags is not None:
        payload["tags"] = tags
    return client.post("/api/notes", headers=headers, json=payload)


def test_notes_list_newest_first(client, register):
    user_id, headers = register("notes@example.com")
    first = _create(client, headers, user_id, "Cardiology visit", "Bring BP log", ["heart", "appointments"])
    second = _create(client, headers, user_id, "Vitamin D", "Ask about dosage")

    assert first.status_code == 201
    note = first.json()["note"]
    assert note["title"] == "Cardiology visit"
    assert note["tags"] == ["heart", "appointments"]
    assert note["updatedAt"] is None

    response = client.get("/api/notes", headers=headers, params={"userId": user_id})
    assert response.status_code == 200
    notes = response.json()["notes"]
    assert [n["id"] for n in notes] == [second.json()["note"]["id"], note["id"]]


def test_tags_accept_comma_separated_string(client, register):
    user_id, headers = register("tags@example.com")
    response = _create(client, headers, user_id, "Labs", tags="blood, , fasting ")
    assert response.json()["note"]["tags"] == ["blood", "fasting"]


def test_note_requires_title(client, register):
    user_id, headers = register("untitled@example.com")
    response = _create(client, headers, user_id, "   ")
    assert response.status_code == 400


def test_owner_can_update_note(client, register):
    user_id, headers = register("editor@example.com")
    note_id = _create(client, headers, user_id, "Draft").json()["note"]["id"]

    response = client.put(
        f"/api/notes/{note_id}",
        headers=headers,
        json={"userId": user_id, "title": "Final", "content": "Updated", "tags": ["done"]},
    )

    assert response.status_code == 200
    note = response.json()["note"]
    assert note["title"] == "Final"
    assert note["content"] == "Updated"
    assert note["tags"] == ["done"]
    assert note["updatedAt"] is not None


def test_notes_are_private_to_their_owner(client, register):
    alice_id, alice_headers = register("alice3@example.com")
    bob_id, bob_headers = register("bob3@example.com")
    note_id = _create(client, alice_headers, alice_id, "Private").json()["note"]["id"]

    assert client.get("/api/notes", headers=bob_headers, params={"userId": alice_id}).status_code == 403
    assert client.get("/api/notes", headers=bob_headers, params={"userId": bob_id}).json()["notes"] == []

    edit = client.put(
        f"/api/notes/{note_id}",
        headers=bob_headers,
        json={"userId": bob_id, "title": "Hijacked"},
    )
    assert edit.status_code == 404

    delete = client.delete("/api/notes", headers=bob_headers, params={"id": note_id, "userId": bob_id})
    assert delete.status_code == 404

    notes = client.get("/api/notes", headers=alice_headers, params={"userId": alice_id}).json()["notes"]
    assert [n["title"] for n in notes] == ["Private"]


def test_delete_note_is_not_repeatable(client, register):
    user_id, headers = register("cleanup@example.com")
    note_id = _create(client, headers, user_id, "Temporary").json()["note"]["id"]

    first = client.delete("/api/notes", headers=headers, params={"id": note_id, "userId": user_id})
    second = client.delete("/api/notes", headers=headers, params={"id": note_id, "userId": user_id})

    assert first.status_code == 200
    assert second.status_code == 404
    assert client.get("/api/notes", headers=headers, params={"userId": user_id}).json()["notes"] == []


def test_notes_require_authentication(client, register):
    user_id, _ = register("noauth@example.com")
    assert client.get("/api/notes", params={"userId": user_id}).status_code == 401
    assert _create(client, {}, user_id, "Nope").status_code == 401


def test_note_writes_report_database_failures(client, register, monkeypatch):
    user_id, headers = register("diskfull@example.com")
    note_id = _create(client, headers, user_id, "Existing").json()["note"]["id"]

    def failing(self):
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(Session, "commit", failing)
    created = _create(client, headers, user_id, "New")
    updated = client.put(
        f"/api/notes/{note_id}", headers=headers, json={"userId": user_id, "title": "Renamed"}
    )
    deleted = client.delete("/api/notes", headers=headers, params={"id": note_id, "userId": user_id})
    monkeypatch.undo()

    assert created.status_code == 500
    assert created.json()["error"] == "Failed to save note"
    assert updated.json()["error"] == "Failed to update note"
    assert deleted.json()["error"] == "Failed to delete note"
    for response in (created, updated, deleted):
        assert response.status_code == 500
        assert "disk I/O error" in response.json()["details"]

    notes = client.get("/api/notes", headers=headers, params={"userId": user_id}).json()["notes"]
    assert [n["title"] for n in notes] == ["Existing"]
