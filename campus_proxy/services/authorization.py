"""
Build the OAuth authorization used by one proxy instance.

Credentials come from one of three places: a fabricated token in fake mode,
the credential store when acting on behalf of a portal user, or token fields
passed in directly (service jobs that carry their own tokens).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from google.oauth2.credentials import Credentials

from campus_proxy.core.config import ProxyAppSettings
from campus_proxy.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)

FAKE_TOKEN_PREFIX = "fake-access-token"


class CredentialResolutionError(Exception):
    """Raised when no usable authorization can be built for a request."""


def _expiry_from_timestamp(expires_at: Optional[int]) -> Optional[datetime]:
    # google-auth compares expiry against a naive UTC clock.
    if expires_at is None:
        return None
    return datetime.fromtimestamp(int(expires_at), tz=timezone.utc).replace(tzinfo=None)


@dataclass
class AuthorizationContext:
    """Live OAuth state for one logical request.

    ``credentials`` is handed to the transport, which refreshes it in place
    when the access token expires; the properties below always reflect the
    current values.
    """

    app_id: str
    credentials: Credentials
    fake: bool = False

    @property
    def access_token(self) -> Optional[str]:
        return self.credentials.token

    @property
    def refresh_token(self) -> Optional[str]:
        return self.credentials.refresh_token

    @property
    def expiry_timestamp(self) -> Optional[int]:
        expiry = self.credentials.expiry
        if expiry is None:
            return None
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        return int(expiry.timestamp())


class AuthorizationLoader:
    """Resolve an :class:`AuthorizationContext` for an application."""

    def __init__(
        self,
        app_id: str,
        app_settings: ProxyAppSettings,
        credential_store: CredentialStore,
    ) -> None:
        self._app_id = app_id
        self._settings = app_settings
        self._store = credential_store

    def load(
        self,
        *,
        user_id: Optional[str] = None,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        expiration_time: Optional[int] = None,
    ) -> AuthorizationContext:
        if self._settings.fake:
            return self.fake_authorization()

        if user_id is not None:
            record = self._store.get(user_id, self._app_id)
            if record is not None:
                return self._build(
                    access_token=record.access_token,
                    refresh_token=record.refresh_token,
                    expires_at=record.expires_at,
                )
            if not access_token and not refresh_token:
                raise CredentialResolutionError(
                    f"No stored {self._app_id} credentials for user {user_id}."
                )

        if not access_token and not refresh_token:
            raise CredentialResolutionError(
                f"No {self._app_id} credentials were supplied."
            )
        if not access_token and not (self._settings.client_id and self._settings.client_secret):
            raise CredentialResolutionError(
                f"A refresh token alone needs a client registration for {self._app_id}."
            )

        return self._build(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expiration_time,
        )

    def fake_authorization(self) -> AuthorizationContext:
        token = f"{FAKE_TOKEN_PREFIX}-{self._app_id.lower()}"
        logger.debug("Using fabricated %s authorization", self._app_id)
        return AuthorizationContext(
            app_id=self._app_id,
            credentials=Credentials(token=token),
            fake=True,
        )

    def _build(
        self,
        *,
        access_token: Optional[str],
        refresh_token: Optional[str],
        expires_at: Optional[int],
    ) -> AuthorizationContext:
        credentials = Credentials(
            token=access_token or None,
            refresh_token=refresh_token,
            token_uri=self._settings.token_uri,
            client_id=self._settings.client_id,
            client_secret=self._settings.client_secret,
            scopes=list(self._settings.scopes),
            expiry=_expiry_from_timestamp(expires_at),
        )
        return AuthorizationContext(app_id=self._app_id, credentials=credentials)


__all__ = [
    "AuthorizationContext",
    "AuthorizationLoader",
    "CredentialResolutionError",
    "FAKE_TOKEN_PREFIX",
]
