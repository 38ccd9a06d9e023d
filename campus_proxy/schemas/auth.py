"""Schemas related to the Google OAuth connect flow."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class OAuthCallbackPayload(BaseModel):
    """Payload sent to complete the OAuth callback exchange."""

    code: str = Field(..., description="Authorization code returned by Google OAuth.")
    state: str = Field(..., description="Signed state token issued by the authorize endpoint.")


class AccessStatus(BaseModel):
    """Whether the proxy can act for a user of an application."""

    user_id: str
    app_id: str
    access_granted: bool


class ConnectionResult(BaseModel):
    status: str
    app_id: str
    redirect_to: Optional[str] = None


__all__ = ["AccessStatus", "ConnectionResult", "OAuthCallbackPayload"]
