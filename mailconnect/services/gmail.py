# mailconnect/services/gmail.py

import base64
import logging
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional
from urllib.parse import urlencode

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from mailconnect.core.errors import (
    MissingCredential,
    ProfileLookupFailed,
    RefreshFailed,
    TransportError,
)

logger = logging.getLogger(__name__)

# Constant URLs
AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
GMAIL_API_URL = "https://gmail.googleapis.com/gmail/v1/users/me"

GMAIL_SCOPES = [
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.compose",
    "https://www.googleapis.com/auth/userinfo.email",
]

# Token endpoint calls are retried on network failures only, never on a provider answer
token_retry = retry(
    retry=retry_if_exception_type(httpx.TransportError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


@dataclass
class GmailConnection:
    refresh_token: str
    email: str


@dataclass
class OutgoingMessage:
    to: str
    subject: str
    html_body: str


class GmailOAuth:
    """
    Google OAuth for Gmail: consent URL, code exchange and access token refresh.
    Only the refresh token and the verified address ever leave this class.
    """

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str, http: httpx.AsyncClient):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.http = http

    def build_authorization_url(self, state: Optional[str] = None) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(GMAIL_SCOPES),
            "access_type": "offline",
            "prompt": "consent",  # forces a fresh refresh token every time
        }
        if state:
            params["state"] = state
        return f"{AUTH_URL}?{urlencode(params)}"

    @token_retry
    async def _post_token(self, data: dict) -> httpx.Response:
        return await self.http.post(TOKEN_URL, data=data)

    async def exchange_code(self, code: str) -> GmailConnection:
        try:
            response = await self._post_token({
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            })
        except httpx.HTTPError as e:
            logger.error(f"❌ Google code exchange error: {e}")
            raise MissingCredential(f"Google code exchange failed: {e}") from e

        if response.is_error:
            logger.error(f"❌ Google code exchange failed: {response.status_code} {response.text}")
            raise MissingCredential(f"Google code exchange failed: {response.status_code}")

        tokens = response.json()
        refresh_token = tokens.get("refresh_token")
        if not refresh_token:
            logger.error("❌ No refresh token received from Google")
            raise MissingCredential()

        email = await self._get_profile_email(tokens.get("access_token"))
        logger.info(f"✅ Obtained Gmail credential for {email}")
        return GmailConnection(refresh_token=refresh_token, email=email)

    async def _get_profile_email(self, access_token: Optional[str]) -> str:
        if not access_token:
            raise ProfileLookupFailed("Google did not return an access token")
        try:
            response = await self.http.get(
                f"{GMAIL_API_URL}/profile",
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            raise ProfileLookupFailed(f"Gmail profile lookup failed: {e}") from e

        if response.is_error:
            raise ProfileLookupFailed(f"Gmail profile lookup failed: {response.status_code}")
        email = response.json().get("emailAddress")
        if not email:
            raise ProfileLookupFailed()
        return email

    async def refresh(self, refresh_token: str) -> str:
        try:
            response = await self._post_token({
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            })
        except httpx.HTTPError as e:
            logger.error(f"❌ Token refresh error: {e}")
            raise RefreshFailed(f"Gmail token refresh failed: {e}") from e

        if response.is_error:
            logger.error(f"❌ Token refresh rejected: {response.status_code} {response.text}")
            raise RefreshFailed(f"Gmail token refresh rejected: {response.status_code}")

        access_token = response.json().get("access_token")
        if not access_token:
            raise RefreshFailed("Google returned no access token")
        return access_token


def build_raw_message(message: OutgoingMessage) -> str:
    """RFC 5322 message, base64url encoded the way the Gmail API expects it."""
    msg = EmailMessage()
    msg["To"] = message.to
    msg["Subject"] = message.subject
    msg.set_content(message.html_body, subtype="html", charset="utf-8")
    return base64.urlsafe_b64encode(msg.as_bytes()).decode().rstrip("=")


class GmailTransport:
    """Submits one message per call through the Gmail API. No retries."""

    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    async def submit(self, access_token: str, message: OutgoingMessage) -> str:
        try:
            response = await self.http.post(
                f"{GMAIL_API_URL}/messages/send",
                headers={"Authorization": f"Bearer {access_token}"},
                json={"raw": build_raw_message(message)},
            )
        except httpx.HTTPError as e:
            raise TransportError(f"Gmail send to {message.to} failed: {e}") from e

        if response.is_error:
            raise TransportError(f"Gmail send to {message.to} failed: {response.status_code} {response.text}")
        return response.json().get("id")
