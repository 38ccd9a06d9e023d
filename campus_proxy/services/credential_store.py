"""
Persistence of OAuth credential records keyed by (user, application).

The proxy only ever needs three operations: load the stored tokens, upsert a
refreshed token triple and delete tokens the remote API rejected. Any record
store exposing ``put_item``/``get_item``/``delete_item`` over a ``(pk, sk)`` key
(SQLite locally, DynamoDB when hosted) can back it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

from campus_proxy.models.oauth import CredentialRecord
from campus_proxy.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    def put_item(self, item: Dict[str, Any]) -> None: ...

    def get_item(
        self, *, partition_key: str, sort_key: str
    ) -> Optional[Dict[str, Any]]: ...

    def delete_item(self, *, partition_key: str, sort_key: str) -> None: ...


class CredentialStore(Protocol):
    """Contract the proxy relies on; implementations must tolerate concurrent use."""

    def get(self, user_id: str, app_id: str) -> Optional[CredentialRecord]: ...

    def put(
        self,
        user_id: str,
        app_id: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[int],
    ) -> CredentialRecord: ...

    def delete(self, user_id: str, app_id: str) -> None: ...


class OAuthCredentialStore:
    """Credential store over a generic record store, encrypting tokens at rest."""

    def __init__(
        self,
        store: RecordStore,
        token_cipher: Optional[TokenCipherService] = None,
    ) -> None:
        self._store = store
        self._cipher = token_cipher

    @staticmethod
    def record_key(user_id: str, app_id: str) -> tuple[str, str]:
        return f"user#{user_id}", f"oauth#{app_id.lower()}"

    def get(self, user_id: str, app_id: str) -> Optional[CredentialRecord]:
        pk, sk = self.record_key(user_id, app_id)
        item = self._store.get_item(partition_key=pk, sort_key=sk)
        if not item:
            return None

        if "access_token_encrypted" in item:
            if self._cipher is None:
                raise ValueError(
                    f"Stored tokens for {pk}/{sk} are encrypted but no cipher is configured."
                )
            access_token = self._cipher.decrypt(item["access_token_encrypted"])
            refresh_token = self._cipher.decrypt(item.get("refresh_token_encrypted"))
        else:
            # Records written before encryption was enabled.
            access_token = item.get("access_token")
            refresh_token = item.get("refresh_token")

        if not access_token:
            return None

        expires_at = item.get("expires_at")
        return CredentialRecord(
            user_id=user_id,
            app_id=app_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=int(expires_at) if expires_at is not None else None,
            updated_at=item.get("updated_at") or datetime.now(timezone.utc),
        )

    def put(
        self,
        user_id: str,
        app_id: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[int],
    ) -> CredentialRecord:
        record = CredentialRecord(
            user_id=user_id,
            app_id=app_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )
        pk, sk = self.record_key(user_id, app_id)
        item: Dict[str, Any] = {
            "pk": pk,
            "sk": sk,
            "user_id": user_id,
            "app_id": app_id,
            "expires_at": expires_at,
            "updated_at": record.updated_at.isoformat(),
        }
        if self._cipher is not None:
            item["access_token_encrypted"] = self._cipher.encrypt(access_token)
            item["refresh_token_encrypted"] = self._cipher.encrypt(refresh_token)
        else:
            item["access_token"] = access_token
            item["refresh_token"] = refresh_token

        self._store.put_item(item)
        logger.debug("Stored OAuth tokens for %s/%s", user_id, app_id)
        return record

    def delete(self, user_id: str, app_id: str) -> None:
        pk, sk = self.record_key(user_id, app_id)
        self._store.delete_item(partition_key=pk, sort_key=sk)
        logger.debug("Deleted OAuth tokens for %s/%s", user_id, app_id)


__all__ = ["CredentialStore", "OAuthCredentialStore", "RecordStore"]
