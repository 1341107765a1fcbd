import dataclasses
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from notes_backend.main import create_app
from notes_backend.services import google_service, mail_service, notes_service


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def google_claims(monkeypatch, claims):
    monkeypatch.setattr(google_service, "_verify", lambda token, client_id: claims)


def test_health(client):
    assert client.get("/").json() == {"status": "ok"}


def test_cors_is_open(client):
    res = client.get("/", headers={"Origin": "http://localhost:5173"})
    assert res.headers["access-control-allow-origin"] == "*"


# --- OTP login ---

def test_otp_login_end_to_end(client):
    res = client.post("/auth/request-otp", json={"email": "a@b.com"})
    assert res.status_code == 200
    body = res.json()
    assert body["message"] == "OTP sent"
    assert len(body["otp"]) == 6

    res = client.post("/auth/verify-otp", json={"email": "a@b.com", "otp": body["otp"]})
    assert res.status_code == 200
    data = res.json()
    assert set(data["user"]) == {"id", "email", "name", "provider", "createdAt"}
    assert data["user"]["email"] == "a@b.com"
    assert data["user"]["provider"] == "email"
    assert data["user"]["name"] == "a"

    res = client.get("/notes", headers=bearer(data["token"]))
    assert res.status_code == 200
    assert res.json() == {"notes": []}


def test_otp_is_single_use(client):
    otp = client.post("/auth/request-otp", json={"email": "a@b.com"}).json()["otp"]
    assert client.post("/auth/verify-otp", json={"email": "a@b.com", "otp": otp}).status_code == 200
    res = client.post("/auth/verify-otp", json={"email": "a@b.com", "otp": otp})
    assert res.status_code == 400
    assert res.json() == {"error": "OTP not found"}


def test_wrong_otp_can_be_retried(client):
    otp = client.post("/auth/request-otp", json={"email": "a@b.com"}).json()["otp"]
    wrong = "100000" if otp != "100000" else "100001"
    res = client.post("/auth/verify-otp", json={"email": "a@b.com", "otp": wrong})
    assert res.status_code == 400
    assert res.json() == {"error": "Invalid OTP"}
    assert client.post("/auth/verify-otp", json={"email": "a@b.com", "otp": otp}).status_code == 200


def test_expired_otp(client):
    otp = client.post("/auth/request-otp", json={"email": "a@b.com"}).json()["otp"]
    repo = client.app.state.repository
    otps = repo._read("otps")
    otps[0]["expiresAt"] = (datetime.now(timezone.utc) - timedelta(seconds=1)).isoformat()
    repo._write("otps", otps)
    res = client.post("/auth/verify-otp", json={"email": "a@b.com", "otp": otp})
    assert res.status_code == 400
    assert res.json() == {"error": "OTP expired"}


def test_name_given_at_first_login_sticks(client, login):
    token = login("jane@b.com", name="Jane")
    otp = client.post("/auth/request-otp", json={"email": "jane@b.com"}).json()["otp"]
    user = client.post("/auth/verify-otp", json={"email": "jane@b.com", "otp": otp}).json()["user"]
    assert user["name"] == "Jane"
    assert token


@pytest.mark.parametrize("body", [{}, {"email": "nope"}, {"email": "a b@c.com"}])
def test_request_otp_rejects_bad_email(client, body):
    res = client.post("/auth/request-otp", json=body)
    assert res.status_code == 400
    assert res.json() == {"error": "Valid email required"}


def test_request_otp_without_body(client):
    res = client.post("/auth/request-otp")
    assert res.status_code == 400
    assert res.json() == {"error": "Valid email required"}


def test_request_otp_rejects_wrong_types(client):
    res = client.post("/auth/request-otp", json={"email": 12})
    assert res.status_code == 400
    assert "error" in res.json()


def test_verify_otp_input_errors(client):
    res = client.post("/auth/verify-otp", json={"otp": "123456"})
    assert res.status_code == 400
    assert res.json() == {"error": "Valid email required"}
    res = client.post("/auth/verify-otp", json={"email": "a@b.com"})
    assert res.status_code == 400
    assert res.json() == {"error": "OTP required"}
    res = client.post("/auth/verify-otp", json={"email": "a@b.com", "otp": ""})
    assert res.json() == {"error": "OTP required"}


def test_production_does_not_reveal_otp(settings):
    with TestClient(create_app(dataclasses.replace(settings, app_env="production"))) as client:
        res = client.post("/auth/request-otp", json={"email": "a@b.com"})
        assert res.status_code == 200
        assert res.json() == {"message": "OTP sent"}


def test_delivery_failure_is_500(client, monkeypatch):
    async def broken(settings, to_email, code):
        raise RuntimeError("smtp on fire")
    monkeypatch.setattr(mail_service, "send_otp_email", broken)
    res = client.post("/auth/request-otp", json={"email": "a@b.com"})
    assert res.status_code == 500
    assert res.json() == {"error": "Failed to generate OTP"}


# --- Google login ---

def test_google_login_creates_user(client, monkeypatch):
    google_claims(monkeypatch, {"email": "g@b.com", "name": "Gee", "sub": "sub-1", "email_verified": True})
    res = client.post("/auth/google", json={"idToken": "google-id-token"})
    assert res.status_code == 200
    user = res.json()["user"]
    assert user["provider"] == "google"
    assert user["name"] == "Gee"
    assert "googleSub" not in user

    token = res.json()["token"]
    assert client.get("/notes", headers=bearer(token)).json() == {"notes": []}


def test_google_and_otp_share_a_user(client, login, monkeypatch):
    token = login("a@b.com")
    google_claims(monkeypatch, {"email": "a@b.com", "name": "Alice", "sub": "sub-1"})
    user = client.post("/auth/google", json={"idToken": "x"}).json()["user"]
    assert user["provider"] == "email"
    assert user["name"] == "Alice"
    assert len(client.app.state.repository._read("users")) == 1

    client.post("/notes", json={"title": "t", "content": "c"}, headers=bearer(token))
    google_token = client.post("/auth/google", json={"idToken": "x"}).json()["token"]
    assert len(client.get("/notes", headers=bearer(google_token)).json()["notes"]) == 1


def test_google_requires_id_token(client):
    res = client.post("/auth/google", json={})
    assert res.status_code == 400
    assert res.json() == {"error": "idToken required"}


def test_google_not_configured(settings):
    with TestClient(create_app(dataclasses.replace(settings, google_client_id=""))) as client:
        res = client.post("/auth/google", json={"idToken": "x"})
        assert res.status_code == 500
        assert res.json() == {"error": "GOOGLE_CLIENT_ID not configured"}


def test_google_rejected_token(client, monkeypatch):
    def reject(token, client_id):
        raise ValueError("Token used too late")
    monkeypatch.setattr(google_service, "_verify", reject)
    res = client.post("/auth/google", json={"idToken": "stale"})
    assert res.status_code == 400
    assert res.json() == {"error": "Google authentication failed"}


# --- bearer auth ---

@pytest.mark.parametrize("headers,error", [
    ({}, "Missing token"),
    ({"Authorization": "Basic YTpi"}, "Missing token"),
    ({"Authorization": "Bearer"}, "Missing token"),
    ({"Authorization": "Bearer not-a-token"}, "Invalid or expired token"),
])
def test_notes_require_bearer_token(client, headers, error):
    res = client.get("/notes", headers=headers)
    assert res.status_code == 401
    assert res.json() == {"error": error}
    assert res.headers["www-authenticate"] == "Bearer"


def test_expired_bearer_token(client, settings):
    token = jwt.encode(
        {"sub": "u-1", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)}, settings.jwt_secret, algorithm="HS256",
    )
    assert client.get("/notes", headers=bearer(token)).status_code == 401


def test_token_for_unknown_user_cannot_create_notes(client, settings):
    token = jwt.encode(
        {"sub": "ghost", "exp": datetime.now(timezone.utc) + timedelta(days=1)}, settings.jwt_secret, algorithm="HS256",
    )
    res = client.post("/notes", json={"title": "t", "content": "c"}, headers=bearer(token))
    assert res.status_code == 401
    assert res.json() == {"error": "User not found"}


# --- notes ---

def test_create_and_list_notes(client, login):
    token = login()
    res = client.post("/notes", json={"title": "Groceries", "content": "milk"}, headers=bearer(token))
    assert res.status_code == 201
    note = res.json()["note"]
    assert set(note) == {"id", "userId", "title", "content", "createdAt"}
    assert note["title"] == "Groceries"

    client.post("/notes", json={"title": "Second", "content": "eggs"}, headers=bearer(token))
    notes = client.get("/notes", headers=bearer(token)).json()["notes"]
    assert [n["title"] for n in notes] == ["Groceries", "Second"]
    assert notes[0] == note


@pytest.mark.parametrize("body,error", [
    ({"content": "c"}, "Title required"),
    ({"title": "", "content": "c"}, "Title required"),
    ({"title": "t"}, "Content required"),
    ({"title": "t", "content": ""}, "Content required"),
])
def test_create_note_validation(client, login, body, error):
    res = client.post("/notes", json=body, headers=bearer(login()))
    assert res.status_code == 400
    assert res.json() == {"error": error}


def test_notes_are_private(client, login):
    alice, bob = login("alice@b.com"), login("bob@b.com")
    note = client.post("/notes", json={"title": "secret", "content": "x"}, headers=bearer(alice)).json()["note"]

    assert client.get("/notes", headers=bearer(bob)).json() == {"notes": []}
    res = client.delete(f"/notes/{note['id']}", headers=bearer(bob))
    assert res.status_code == 403
    assert res.json() == {"error": "Not allowed"}
    assert len(client.get("/notes", headers=bearer(alice)).json()["notes"]) == 1


def test_delete_note(client, login):
    token = login()
    note = client.post("/notes", json={"title": "t", "content": "c"}, headers=bearer(token)).json()["note"]
    res = client.delete(f"/notes/{note['id']}", headers=bearer(token))
    assert res.status_code == 200
    assert res.json() == {"success": True}
    assert client.get("/notes", headers=bearer(token)).json() == {"notes": []}


def test_delete_missing_note_is_404_for_anyone(client, login):
    for token in (login("alice@b.com"), login("bob@b.com")):
        res = client.delete("/notes/does-not-exist", headers=bearer(token))
        assert res.status_code == 404
        assert res.json() == {"error": "Note not found"}


def test_unexpected_errors_become_generic_500(settings, monkeypatch):
    async def explode(repo, user_id):
        raise RuntimeError("disk full")
    monkeypatch.setattr(notes_service, "list_notes", explode)
    with TestClient(create_app(settings), raise_server_exceptions=False) as client:
        otp = client.post("/auth/request-otp", json={"email": "a@b.com"}).json()["otp"]
        token = client.post("/auth/verify-otp", json={"email": "a@b.com", "otp": otp}).json()["token"]
        res = client.get("/notes", headers=bearer(token))
    assert res.status_code == 500
    assert res.json() == {"error": "Internal Server Error"}


def test_sql_backend_end_to_end(settings, tmp_path):
    sql_settings = dataclasses.replace(
        settings, storage_backend="sql", database_url=f"sqlite+aiosqlite:///{tmp_path}/api.db",
    )
    with TestClient(create_app(sql_settings)) as client:
        otp = client.post("/auth/request-otp", json={"email": "a@b.com"}).json()["otp"]
        token = client.post("/auth/verify-otp", json={"email": "a@b.com", "otp": otp}).json()["token"]
        note = client.post("/notes", json={"title": "t", "content": "c"}, headers=bearer(token)).json()["note"]
        assert client.get("/notes", headers=bearer(token)).json()["notes"][0]["id"] == note["id"]
        assert client.delete(f"/notes/{note['id']}", headers=bearer(token)).json() == {"success": True}
