"""
Domain models for OAuth credential persistence.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialRecord(BaseModel):
    """OAuth tokens stored for one (user, application) pair."""

    user_id: str = Field(..., description="Portal user the tokens belong to.")
    app_id: str = Field(..., description="Application identity, e.g. 'Google'.")
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = Field(
        None, description="Access token expiry as seconds since the epoch."
    )
    updated_at: datetime = Field(default_factory=_utcnow)


__all__ = ["CredentialRecord"]
