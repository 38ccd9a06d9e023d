"""
Google OAuth consent flow.

Portal users connect their Google account once; the resulting token triple is
what the proxy later loads from the credential store.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
from hashlib import sha256
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx

from fastapi import HTTPException, status

from campus_proxy.core.config import ProxyAppSettings


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Malformed OAuth state.",
            ) from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid OAuth state signature.",
            )
        return json.loads(serialized)


class OAuthTokenExchangeError(Exception):
    """Raised when the token endpoint returns an error."""


class GoogleOAuthClient:
    """Build Google authorization URLs and exchange authorization codes for one app."""

    AUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"

    def __init__(self, app_settings: ProxyAppSettings, *, timeout: float = 10.0) -> None:
        if not app_settings.client_id or not app_settings.client_secret:
            raise ValueError("OAuth client_id and client_secret must be configured.")
        if app_settings.redirect_uri is None:
            raise ValueError("OAuth redirect_uri must be configured.")
        self._app = app_settings
        self._timeout = timeout

    def build_authorization_url(self, state: str, access_type: str = "offline") -> str:
        """Construct the Google OAuth consent URL."""
        params = {
            "client_id": self._app.client_id,
            "redirect_uri": str(self._app.redirect_uri),
            "response_type": "code",
            "scope": " ".join(self._app.scopes),
            "access_type": access_type,
            "include_granted_scopes": "true",
            "prompt": "consent",
            "state": state,
        }
        return f"{self.AUTH_BASE_URL}?{urlencode(params)}"

    async def exchange_authorization_code(
        self, code: str
    ) -> Tuple[str, Optional[str], int]:
        """
        Exchange an authorization code for tokens.

        Returns a tuple of (access_token, refresh_token, expires_in_seconds).
        Google omits the refresh token when the user had already granted offline
        access, so it may be ``None``.
        """
        payload = {
            "code": code,
            "client_id": self._app.client_id,
            "client_secret": self._app.client_secret,
            "redirect_uri": str(self._app.redirect_uri),
            "grant_type": "authorization_code",
        }

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.post(self._app.token_uri, data=payload)
            except httpx.HTTPError as exc:
                raise OAuthTokenExchangeError(str(exc)) from exc

        if response.status_code != status.HTTP_200_OK:
            raise OAuthTokenExchangeError(response.text)

        token_payload = response.json()
        access_token = token_payload.get("access_token")
        expires_in = token_payload.get("expires_in")

        if not access_token or not expires_in:
            raise OAuthTokenExchangeError("Incomplete token payload returned from Google.")

        return access_token, token_payload.get("refresh_token"), int(expires_in)


__all__ = [
    "GoogleOAuthClient",
    "OAuthStateEncoder",
    "OAuthTokenExchangeError",
]
