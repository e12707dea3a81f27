import base64
import json
from email import message_from_bytes, policy
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from mailconnect.core.config import Settings
from mailconnect.core.db import MongoStore
from mailconnect.main import create_app
from mailconnect.services.email import Dispatcher
from mailconnect.services.gmail import GmailOAuth, GmailTransport
from mailconnect.services.storage import Storage
from mailconnect.utils.encryption import TokenCipher


class FakeGoogle:
    """Canned Google OAuth and Gmail API answers behind an httpx.MockTransport."""

    def __init__(self):
        self.requests = []
        self.sent = []
        self.failing_recipients = set()
        self.refresh_status = 200
        self.exchange_payload = {"access_token": "exchange-access", "refresh_token": "refresh-123"}
        self.profile_email = "sender@gmail.com"

    @property
    def sent_to(self):
        return [str(m["To"]) for m in self.sent]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.url.host == "oauth2.googleapis.com" and path == "/token":
            form = parse_qs(request.content.decode())
            if form["grant_type"][0] == "refresh_token":
                if self.refresh_status != 200:
                    return httpx.Response(self.refresh_status, json={"error": "invalid_grant"})
                return httpx.Response(200, json={"access_token": "fresh-access", "expires_in": 3599})
            return httpx.Response(200, json=self.exchange_payload)

        if path.endswith("/users/me/profile"):
            if self.profile_email is None:
                return httpx.Response(200, json={"messagesTotal": 0})
            return httpx.Response(200, json={"emailAddress": self.profile_email})

        if path.endswith("/users/me/messages/send"):
            raw = json.loads(request.content)["raw"]
            message = message_from_bytes(base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)), policy=policy.default)
            if str(message["To"]) in self.failing_recipients:
                return httpx.Response(500, json={"error": {"message": "backend error"}})
            self.sent.append(message)
            return httpx.Response(200, json={"id": f"msg-{len(self.sent)}"})

        return httpx.Response(404, json={"error": "not found"})


@pytest.fixture
def settings():
    return Settings(
        mongodb_uri="mongodb://localhost:27017",
        mongodb_db="crm_test",
        jwt_secret="test-jwt-secret",
        encryption_key="test-master-key",
        google_client_id="client-id.apps.googleusercontent.com",
        google_client_secret="client-secret",
        google_redirect_uri="http://testserver/api/gmail/callback",
        scheduler_enabled=False,
        frontend_url="http://frontend.test",
    )


@pytest.fixture
def google():
    return FakeGoogle()


@pytest.fixture
async def store(settings):
    store = MongoStore(settings.mongodb_uri, settings.mongodb_db, client=AsyncMongoMockClient())
    await store.connect()
    return store


@pytest.fixture
def storage(store):
    return Storage(store)


@pytest.fixture
async def http(google):
    async with httpx.AsyncClient(transport=httpx.MockTransport(google.handler)) as client:
        yield client


@pytest.fixture
def cipher(settings):
    return TokenCipher(settings.encryption_key)


@pytest.fixture
def oauth(settings, http):
    return GmailOAuth(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        redirect_uri=settings.google_redirect_uri,
        http=http,
    )


@pytest.fixture
def dispatcher(storage, oauth, http, cipher):
    return Dispatcher(storage, oauth, GmailTransport(http), cipher)


@pytest.fixture
async def linked_user(storage, cipher):
    user = await storage.create_user("alice", "not-a-real-hash")
    return await storage.update_gmail_connection(user.id, cipher.encrypt("refresh-123", user.id), "alice@gmail.com")


@pytest.fixture
def client(settings, google):
    app = create_app(
        settings,
        mongo_client=AsyncMongoMockClient(),
        http_transport=httpx.MockTransport(google.handler),
    )
    with TestClient(app) as test_client:
        yield test_client
