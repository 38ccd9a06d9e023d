"""Request and result schemas for the Google proxy."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, computed_field, model_validator

from campus_proxy.clients.transport import TransportResponse


class RequestDescriptor(BaseModel):
    """One logical request against a Google API.

    Paginated requests name an ``api``/``api_version``/``resource``/``method``
    tuple. Single-shot requests may instead carry a raw ``uri``.
    """

    model_config = ConfigDict(frozen=True)

    api: Optional[str] = Field(None, description="Discovery name, e.g. 'drive'.")
    api_version: Optional[str] = Field(None, description="API version, e.g. 'v3'.")
    resource: Optional[str] = Field(
        None, description="Resource path; nested resources are dotted ('spreadsheets.values')."
    )
    method: Optional[str] = Field(None, description="Resource method, e.g. 'list'.")
    params: Dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    headers: Dict[str, str] = Field(default_factory=dict)
    page_limit: Optional[PositiveInt] = Field(
        None, description="Maximum number of pages to request; unbounded when omitted."
    )
    uri: Optional[str] = None
    http_method: str = "GET"
    authenticated: bool = True
    timeout_seconds: Optional[float] = Field(None, gt=0)

    @model_validator(mode="after")
    def _require_target(self) -> "RequestDescriptor":
        if self.uri is None and not all(
            (self.api, self.api_version, self.resource, self.method)
        ):
            raise ValueError(
                "Either uri or api, api_version, resource and method must be provided."
            )
        return self

    @property
    def targets_resource(self) -> bool:
        return self.api is not None and self.uri is None

    @property
    def label(self) -> str:
        if self.targets_resource:
            return f"{self.api}.{self.resource}.{self.method}"
        return f"{self.http_method} {self.uri}"


class PageResult(BaseModel):
    """Outcome of one HTTP round trip; ``status_code`` is None when the call never completed."""

    model_config = ConfigDict(frozen=True)

    status_code: Optional[int] = None
    body: str = ""
    data: Any = None
    failure: Optional[str] = Field(
        None, description="Transport failure description when no response was received."
    )

    @computed_field  # type: ignore[misc]
    @property
    def is_error(self) -> bool:
        return self.status_code is None or self.status_code >= 400

    @computed_field  # type: ignore[misc]
    @property
    def next_page_token(self) -> Optional[str]:
        if isinstance(self.data, dict):
            token = self.data.get("nextPageToken")
            if token:
                return str(token)
        return None

    @property
    def error_message(self) -> Optional[str]:
        """Message from a Google error payload (``{"error": {"message": ...}}``)."""
        if not isinstance(self.data, dict):
            return None
        error = self.data.get("error")
        if isinstance(error, dict):
            return error.get("message")
        if isinstance(error, str):
            return self.data.get("error_description") or error
        return None

    @classmethod
    def from_response(cls, response: TransportResponse) -> "PageResult":
        return cls(status_code=response.status, body=response.body, data=response.data)

    @classmethod
    def transport_failure(cls, reason: str) -> "PageResult":
        return cls(failure=reason)


class ProxyRequest(BaseModel):
    """Body of the proxy endpoints: whose tokens to use and what to fetch."""

    user_id: Optional[str] = Field(
        None, description="Portal user whose stored tokens authorize the call."
    )
    app_id: Optional[str] = Field(None, description="Application identity; defaults to Google.")
    descriptor: RequestDescriptor


__all__ = ["PageResult", "ProxyRequest", "RequestDescriptor"]
