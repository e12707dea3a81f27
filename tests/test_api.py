from datetime import timedelta
from urllib.parse import parse_qs, urlparse

from bson import ObjectId

from mailconnect.core.errors import StoreError
from mailconnect.models.base import utcnow


def register(client, username, password="s3cret-pass"):
    response = client.post("/api/auth/register", json={"username": username, "password": password})
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def connect_gmail(client, headers):
    auth_url = client.get("/api/gmail/auth", headers=headers).json()["auth_url"]
    state = parse_qs(urlparse(auth_url).query)["state"][0]
    return client.get("/api/gmail/callback", params={"code": "auth-code", "state": state}, follow_redirects=False)


def test_ping(client):
    assert client.get("/ping").json()["status"] == "ok"


def test_register_login_and_me(client):
    register(client, "alice")

    login = client.post("/api/auth/login", json={"username": "alice", "password": "s3cret-pass"})
    assert login.status_code == 200
    body = login.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["username"] == "alice"
    assert body["user"]["gmail_connected"] is False

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.json() == body["user"]


def test_duplicate_username_conflicts(client):
    register(client, "alice")

    response = client.post("/api/auth/register", json={"username": "alice", "password": "another-pass"})

    assert response.status_code == 409


def test_bad_credentials_and_missing_token(client):
    register(client, "alice")

    assert client.post("/api/auth/login", json={"username": "alice", "password": "wrong-pass"}).status_code == 401
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Token abc"}).status_code == 401


def test_gmail_status_for_anonymous_caller(client):
    response = client.get("/api/gmail/status")

    assert response.status_code == 200
    assert response.json() == {"connected": False, "email": None}


def test_gmail_state_cannot_be_used_as_bearer_token(client):
    headers = register(client, "alice")
    auth_url = client.get("/api/gmail/auth", headers=headers).json()["auth_url"]
    state = parse_qs(urlparse(auth_url).query)["state"][0]

    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {state}"}).status_code == 401


def test_connect_then_send_to_list(client, google):
    headers = register(client, "alice")

    callback = connect_gmail(client, headers)
    assert callback.status_code == 302
    assert callback.headers["location"] == "http://frontend.test/dashboard?gmailConnected=success"

    status = client.get("/api/gmail/status", headers=headers).json()
    assert status == {"connected": True, "email": "sender@gmail.com"}

    list_id = client.post("/api/recipient-lists", json={"name": "Customers"}, headers=headers).json()["id"]
    for address, name in [("a@x.com", "Ann"), ("b@x.com", "Ben")]:
        created = client.post("/api/recipients", json={"email": address, "name": name, "list_id": list_id},
                              headers=headers)
        assert created.status_code == 201

    response = client.post(
        "/api/emails",
        json={"subject": "Hi {{ name }}", "body": "<p>News for {{ email }}</p>", "list_id": list_id},
        headers=headers,
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["email"]["status"] == "sent"
    assert body["email"]["sent_at"] is not None
    assert (body["result"]["total"], body["result"]["sent"], body["result"]["failed"]) == (2, 2, 0)
    assert sorted(str(m["Subject"]) for m in google.sent) == ["Hi Ann", "Hi Ben"]

    email_id = body["email"]["id"]
    activities = client.get(f"/api/emails/{email_id}/activities", headers=headers).json()
    assert sorted(a["recipient_email"] for a in activities) == ["a@x.com", "b@x.com"]

    overview = client.get("/api/analytics/overview", headers=headers).json()
    assert overview["total_sent"] == 1
    assert overview["recipients_reached"] == 2

    again = client.post(f"/api/emails/{email_id}/send", headers=headers)
    assert again.status_code == 409


def test_scheduled_email_is_listed_in_time_order(client, google):
    headers = register(client, "alice")
    later = utcnow() + timedelta(days=2)
    sooner = utcnow() + timedelta(days=1)

    for subject, when in [("later", later), ("sooner", sooner)]:
        response = client.post(
            "/api/emails",
            json={"subject": subject, "body": "<p>x</p>", "to": "a@x.com", "scheduled_for": when.isoformat()},
            headers=headers,
        )
        assert response.status_code == 200, response.text
        assert response.json()["email"]["status"] == "scheduled"
        assert response.json()["result"] is None

    scheduled = client.get("/api/emails/scheduled", headers=headers).json()
    assert [e["subject"] for e in scheduled] == ["sooner", "later"]
    assert google.sent == []


def test_reschedule_moves_email_back_to_scheduled(client):
    headers = register(client, "alice")
    created = client.post(
        "/api/emails",
        json={"subject": "s", "body": "<p>b</p>", "to": "a@x.com",
              "scheduled_for": (utcnow() + timedelta(hours=1)).isoformat()},
        headers=headers,
    ).json()["email"]

    new_time = utcnow() + timedelta(hours=3)
    response = client.post(f"/api/emails/{created['id']}/schedule",
                           json={"scheduled_for": new_time.isoformat()}, headers=headers)

    assert response.status_code == 200
    assert response.json()["status"] == "scheduled"


def test_unlinked_account_send_fails_email(client):
    headers = register(client, "bob")

    response = client.post("/api/emails", json={"subject": "s", "body": "<p>b</p>", "to": "a@x.com"},
                           headers=headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Gmail account not connected"
    failed = client.get("/api/emails", params={"status": "failed"}, headers=headers).json()
    assert len(failed) == 1


def test_email_without_target_is_rejected(client):
    headers = register(client, "alice")

    response = client.post("/api/emails", json={"subject": "s", "body": "<p>b</p>"}, headers=headers)

    assert response.status_code == 422


def test_literal_braces_in_html_are_sent_as_written(client, google):
    headers = register(client, "alice")
    connect_gmail(client, headers)
    bodies = ["<p>{{ name </p>", "<p>Use {{ coupon }} at checkout {# not a comment #}</p>"]

    for body in bodies:
        response = client.post("/api/emails", json={"subject": "{% raw", "body": body, "to": "a@x.com"},
                               headers=headers)
        assert response.status_code == 200, response.text

    assert [m.get_content().strip() for m in google.sent] == bodies
    assert [str(m["Subject"]) for m in google.sent] == ["{% raw", "{% raw"]


def test_other_users_resources_are_forbidden(client):
    alice = register(client, "alice")
    bob = register(client, "bob")
    list_id = client.post("/api/recipient-lists", json={"name": "Private"}, headers=alice).json()["id"]
    email_id = client.post(
        "/api/emails",
        json={"subject": "s", "body": "<p>b</p>", "to": "a@x.com",
              "scheduled_for": (utcnow() + timedelta(hours=1)).isoformat()},
        headers=alice,
    ).json()["email"]["id"]

    assert client.get(f"/api/recipient-lists/{list_id}", headers=bob).status_code == 403
    assert client.get(f"/api/emails/{email_id}", headers=bob).status_code == 403
    assert client.delete(f"/api/emails/{email_id}", headers=bob).status_code == 403
    assert client.post("/api/recipients", json={"email": "z@x.com", "list_id": list_id},
                       headers=bob).status_code == 403
    assert client.get(f"/api/emails/{ObjectId()}", headers=bob).status_code == 404
    assert client.get("/api/emails/not-an-id", headers=bob).status_code == 404


def test_deleting_list_keeps_members(client):
    headers = register(client, "alice")
    list_id = client.post("/api/recipient-lists", json={"name": "Temp"}, headers=headers).json()["id"]
    client.post("/api/recipients", json={"email": "a@x.com", "list_id": list_id}, headers=headers)

    assert client.delete(f"/api/recipient-lists/{list_id}", headers=headers).status_code == 200

    recipients = client.get("/api/recipients", headers=headers).json()
    assert [(r["email"], r["list_id"]) for r in recipients] == [("a@x.com", None)]


def test_callback_error_and_bad_state_redirect(client):
    denied = client.get("/api/gmail/callback", params={"error": "access_denied"}, follow_redirects=False)
    assert denied.status_code == 302
    assert denied.headers["location"] == "http://frontend.test/dashboard?gmailError=access_denied"

    forged = client.get("/api/gmail/callback", params={"code": "c", "state": "forged"}, follow_redirects=False)
    assert forged.headers["location"] == "http://frontend.test/login?error=auth_required"


def test_callback_without_refresh_token_reports_failure(client, google):
    headers = register(client, "alice")
    google.exchange_payload = {"access_token": "only-access"}

    callback = connect_gmail(client, headers)

    assert callback.headers["location"] == "http://frontend.test/dashboard?gmailError=connection_failed"
    assert client.get("/api/gmail/status", headers=headers).json()["connected"] is False


def test_gmail_status_with_bad_token_reports_not_connected(client):
    response = client.get("/api/gmail/status", headers={"Authorization": "Bearer expired-or-forged"})

    assert response.status_code == 200
    assert response.json() == {"connected": False, "email": None}


def test_gmail_status_when_store_is_down_reports_not_connected(client, monkeypatch):
    headers = register(client, "alice")

    async def store_down(user_id):
        raise StoreError()

    monkeypatch.setattr(client.app.state.services.storage, "get_user", store_down)
    response = client.get("/api/gmail/status", headers=headers)

    assert response.status_code == 200
    assert response.json()["connected"] is False
