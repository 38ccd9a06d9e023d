"""
HTTP transports for the Google proxy.

A transport performs exactly one HTTP call and reports what came back. The
proxy picks one implementation at construction time: :class:`LiveTransport`
talks to Google through ``google-auth-httplib2`` (which refreshes expired
access tokens on the credentials object it is given), while
:class:`FixtureTransport` serves canned JSON bodies for fake mode.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol
from urllib.parse import parse_qs, urlsplit

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when a call could not be completed or its payload decoded."""


@dataclass(frozen=True)
class TransportCall:
    http_method: str
    uri: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    authenticated: bool = True
    operation_id: Optional[str] = None
    timeout: Optional[float] = None


@dataclass(frozen=True)
class TransportResponse:
    status: int
    body: str
    data: Any = None


class HttpTransport(Protocol):
    def execute(
        self, call: TransportCall, credentials: Credentials
    ) -> TransportResponse: ...


def decode_response(status: int, content: bytes | str | None) -> TransportResponse:
    """Parse a JSON payload; undecodable success bodies are transport failures."""
    if isinstance(content, bytes):
        body = content.decode("utf-8", errors="replace")
    else:
        body = content or ""

    if not body.strip():
        return TransportResponse(status=status, body=body)

    try:
        data = json.loads(body)
    except ValueError as exc:
        if status < 400:
            raise TransportError(f"Unable to decode response body: {exc}") from exc
        data = None
    return TransportResponse(status=status, body=body, data=data)


class LiveTransport:
    """Issue calls against the real API."""

    def __init__(self, *, timeout: float = 30.0) -> None:
        self._timeout = timeout

    def execute(self, call: TransportCall, credentials: Credentials) -> TransportResponse:
        raw_http = httplib2.Http(timeout=call.timeout or self._timeout)
        http: Any = raw_http
        if call.authenticated:
            # Expired tokens are still refreshed before sending; a 401 is returned
            # as-is so the caller can revoke rejected credentials.
            http = AuthorizedHttp(credentials, http=raw_http, refresh_status_codes=())

        try:
            response, content = http.request(
                call.uri,
                method=call.http_method,
                body=call.body,
                headers=dict(call.headers),
            )
        except (httplib2.HttpLib2Error, GoogleAuthError, OSError) as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc
        finally:
            raw_http.close()

        return decode_response(int(response.status), content)


class FixtureProvider:
    """Read canned response bodies from a fixtures directory."""

    def __init__(self, fixtures_dir: str | Path) -> None:
        self._root = Path(fixtures_dir)

    def read(self, filename: str) -> Optional[str]:
        root = self._root.resolve()
        path = (root / filename).resolve()
        if root not in path.parents or not path.is_file():
            return None
        return path.read_text(encoding="utf-8")


class FixtureTransport:
    """Serve every call from fixtures; the credentials are never used."""

    def __init__(
        self, provider: FixtureProvider, *, json_filename: Optional[str] = None
    ) -> None:
        self._provider = provider
        self._json_filename = json_filename

    @staticmethod
    def fixture_filename(call: TransportCall) -> str:
        """``drive.files.list.json`` for a first page, ``drive.files.list.<token>.json`` after."""
        parts = urlsplit(call.uri)
        base = call.operation_id or parts.path.strip("/").replace("/", ".") or "root"
        page_token = parse_qs(parts.query).get("pageToken", [None])[0]
        if page_token:
            return f"{base}.{page_token}.json"
        return f"{base}.json"

    def execute(self, call: TransportCall, credentials: Credentials) -> TransportResponse:
        filename = self._json_filename or self.fixture_filename(call)
        content = self._provider.read(filename)
        if content is None:
            raise TransportError(f"No fixture named {filename!r}")
        logger.debug("Serving %s %s from fixture %s", call.http_method, call.uri, filename)
        return decode_response(200, content)


__all__ = [
    "FixtureProvider",
    "FixtureTransport",
    "HttpTransport",
    "LiveTransport",
    "TransportCall",
    "TransportError",
    "TransportResponse",
    "decode_response",
]
