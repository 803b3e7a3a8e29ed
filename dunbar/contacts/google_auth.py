"""Google OAuth for the contacts provider: consent URL, code exchange and auto-refresh."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import httpx
from pydantic import BaseModel

from ..credentials import load_credentials, save_credentials
from ..errors import ConfigError, ProviderError

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
REDIRECT_URI = "urn:ietf:wg:oauth:2.0:oob"  # desktop/CLI copy-paste flow
SCOPES = [
    "https://www.googleapis.com/auth/contacts",
    "https://www.googleapis.com/auth/userinfo.email",
]

SENSITIVE_FIELDS = ["client_secret", "refresh_token", "access_token"]


def _token_payload(resp: httpx.Response, context: str) -> dict:
    """Decode a token response, which must carry an access token."""
    try:
        tokens = resp.json()
    except ValueError as e:
        raise ProviderError(f"{context}: invalid JSON response: {e}", body=resp.text) from e
    if not isinstance(tokens, dict) or not tokens.get("access_token"):
        raise ProviderError(f"{context}: response has no access token", body=resp.text)
    return tokens


class GoogleCredentials(BaseModel):
    client_id: str = ""
    client_secret: str = ""
    refresh_token: str = ""
    access_token: str = ""
    token_expiry: str = ""
    email: str = ""


class GoogleAuth:
    """Owns ``google_creds.json`` and hands out valid access tokens."""

    def __init__(self, creds_path: Path, key_file: Path, client: Optional[httpx.Client] = None):
        self.creds_path = creds_path
        self.key_file = key_file
        self._client = client or httpx.Client(timeout=30)
        self.creds: Optional[GoogleCredentials] = None

    def load(self) -> Optional[GoogleCredentials]:
        return load_credentials(self.creds_path, GoogleCredentials, self.key_file, SENSITIVE_FIELDS)

    def save(self, creds: GoogleCredentials) -> None:
        save_credentials(self.creds_path, creds, self.key_file, SENSITIVE_FIELDS)
        self.creds = creds

    def initialize(self) -> None:
        creds = self.load()
        if creds is None:
            raise ConfigError(
                f"credentials file not found at {self.creds_path}: run 'dunbar contacts init' first"
            )
        self.creds = creds

    def auth_url(self, client_id: str) -> str:
        params = {
            "client_id": client_id,
            "redirect_uri": REDIRECT_URI,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": "state-token",
        }
        return str(httpx.URL(GOOGLE_AUTH_URL, params=params))

    def exchange_code(self, client_id: str, client_secret: str, code: str) -> GoogleCredentials:
        """Exchange an authorization code for tokens. Nothing is written to disk."""
        resp = self._post_token(
            {
                "code": code,
                "client_id": client_id,
                "client_secret": client_secret,
                "redirect_uri": REDIRECT_URI,
                "grant_type": "authorization_code",
            },
            "token exchange failed",
        )
        if resp.status_code != 200:
            raise ProviderError(
                f"token exchange failed (status {resp.status_code}): {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        tokens = _token_payload(resp, "token exchange failed")
        expires_in = tokens.get("expires_in", 3600)
        creds = GoogleCredentials(
            client_id=client_id,
            client_secret=client_secret,
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token", ""),
            token_expiry=(datetime.now(timezone.utc) + timedelta(seconds=expires_in)).isoformat(),
        )
        creds.email = self._fetch_email(creds.access_token)
        return creds

    def valid_access_token(self) -> str:
        """Return a valid access token, refreshing if necessary."""
        if self.creds is None:
            self.initialize()
        creds = self.creds

        if not creds.refresh_token and not creds.access_token:
            raise ConfigError("Google Contacts is not authorized. Run 'dunbar contacts init' first.")

        # Refresh when expired or about to expire (5-minute buffer)
        expired = True
        if creds.token_expiry and creds.access_token:
            try:
                expiry = datetime.fromisoformat(creds.token_expiry)
                expired = datetime.now(timezone.utc) >= expiry - timedelta(minutes=5)
            except ValueError:
                pass  # malformed expiry, refresh
        if expired:
            self._refresh()
        return self.creds.access_token

    def _post_token(self, data: dict, context: str) -> httpx.Response:
        try:
            return self._client.post(GOOGLE_TOKEN_URL, data=data)
        except httpx.HTTPError as e:
            logger.error("Google token endpoint unreachable: %s", e)
            raise ProviderError(f"{context}: {e}") from e

    def _refresh(self) -> None:
        creds = self.creds
        if not creds.refresh_token:
            raise ConfigError("No refresh token available. Run 'dunbar contacts init' again.")

        resp = self._post_token(
            {
                "client_id": creds.client_id,
                "client_secret": creds.client_secret,
                "refresh_token": creds.refresh_token,
                "grant_type": "refresh_token",
            },
            "failed to refresh token",
        )
        if resp.status_code != 200:
            raise ProviderError(
                "failed to refresh token: your authorization has expired, "
                "run 'dunbar contacts init' to re-authorize",
                status_code=resp.status_code,
                body=resp.text,
            )

        tokens = _token_payload(resp, "failed to refresh token")
        creds.access_token = tokens["access_token"]
        if tokens.get("refresh_token"):
            creds.refresh_token = tokens["refresh_token"]
        expires_in = tokens.get("expires_in", 3600)
        creds.token_expiry = (datetime.now(timezone.utc) + timedelta(seconds=expires_in)).isoformat()
        self.save(creds)
        logger.info("Google access token refreshed successfully")

    def _fetch_email(self, access_token: str) -> str:
        try:
            resp = self._client.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            # The email is informational only
            logger.warning("Failed to fetch Google user info: %s", e)
            return ""
        try:
            return resp.json().get("email", "")
        except ValueError as e:
            logger.warning("Unreadable Google user info response: %s", e)
            return ""
