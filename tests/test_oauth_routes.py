try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import copy
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import pytest

from campus_proxy.clients.google_auth import OAuthStateEncoder, OAuthTokenExchangeError
from campus_proxy.core.config import UnknownAppError
from campus_proxy.main import app
from campus_proxy.models.oauth import CredentialRecord


class DummyOAuthClient:
    def __init__(self, *, refresh_token: Optional[str] = "refresh-token") -> None:
        self.states: list[str] = []
        self.codes: list[str] = []
        self.refresh_token = refresh_token
        self.fail = False

    def build_authorization_url(self, state: str) -> str:
        self.states.append(state)
        return f"https://oauth.example.com/auth?state={state}"

    async def exchange_authorization_code(self, code: str) -> tuple[str, Optional[str], int]:
        self.codes.append(code)
        if self.fail:
            raise OAuthTokenExchangeError("invalid_grant")
        return ("access-token", self.refresh_token, 3600)


class DummyStore:
    def __init__(self) -> None:
        self.records: dict[tuple[str, str], CredentialRecord] = {}
        self.puts: list[tuple] = []
        self.deletes: list[tuple[str, str]] = []

    def get(self, user_id: str, app_id: str) -> Optional[CredentialRecord]:
        return self.records.get((user_id, app_id))

    def put(self, user_id, app_id, access_token, refresh_token, expires_at):
        self.puts.append((user_id, app_id, access_token, refresh_token, expires_at))
        record = CredentialRecord(
            user_id=user_id,
            app_id=app_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )
        self.records[(user_id, app_id)] = record
        return record

    def delete(self, user_id: str, app_id: str) -> None:
        self.deletes.append((user_id, app_id))
        self.records.pop((user_id, app_id), None)


@pytest.fixture()
def oauth_overrides():
    from campus_proxy import dependencies
    from campus_proxy.core.config import get_settings

    dummy_client = DummyOAuthClient()
    dummy_store = DummyStore()
    encoder = OAuthStateEncoder("route-test-secret")
    requested_apps: list[Optional[str]] = []
    base_settings = copy.deepcopy(get_settings())
    base_settings.frontend_base_url = None

    def client_factory(app_id: Optional[str]) -> DummyOAuthClient:
        if app_id not in ("Google", "OEC"):
            raise UnknownAppError(f"No proxy configuration for app {app_id!r}.")
        requested_apps.append(app_id)
        return dummy_client

    overrides = {
        dependencies.get_oauth_client_factory: lambda: client_factory,
        dependencies.get_oauth_state_encoder: lambda: encoder,
        dependencies.get_credential_store: lambda: dummy_store,
        dependencies.get_app_settings: lambda: base_settings,
    }

    app.dependency_overrides.update(overrides)

    yield dummy_client, dummy_store, base_settings, encoder, requested_apps

    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


@pytest.mark.anyio
async def test_health() -> None:
    async with _client() as client:
        response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.anyio
async def test_authorize_returns_json_by_default(oauth_overrides):
    dummy_client, _, _, encoder, _ = oauth_overrides
    async with _client() as client:
        response = await client.get("/api/auth/google/authorize", params={"user_id": "abc123"})

    assert response.status_code == 200
    data = response.json()
    assert data["authorization_url"].startswith("https://")
    state = encoder.decode(data["state"])
    assert state["user_id"] == "abc123"
    assert state["app_id"] == "Google"
    assert dummy_client.states == [data["state"]]


@pytest.mark.anyio
async def test_authorize_redirects_for_html_accept(oauth_overrides):
    async with _client() as client:
        response = await client.get(
            "/api/auth/google/authorize",
            params={"user_id": "abc123"},
            headers={"accept": "text/html"},
        )

    assert response.status_code == 307
    assert response.headers["location"].startswith("https://oauth.example.com/auth")


@pytest.mark.anyio
async def test_authorize_rejects_unknown_apps(oauth_overrides):
    async with _client() as client:
        response = await client.get(
            "/api/auth/google/authorize", params={"user_id": "abc123", "app_id": "Canvas"}
        )

    assert response.status_code == 404


@pytest.mark.anyio
async def test_callback_get_stores_tokens_for_the_state_app(oauth_overrides):
    dummy_client, dummy_store, _, _, requested_apps = oauth_overrides

    async with _client() as client:
        await client.get(
            "/api/auth/google/authorize", params={"user_id": "user-1", "app_id": "OEC"}
        )
        state = dummy_client.states[-1]
        callback_resp = await client.get(
            "/api/auth/google/callback", params={"state": state, "code": "oauth-code"}
        )

    assert callback_resp.status_code == 200
    data = callback_resp.json()
    assert data["status"] == "connected"
    assert data["app_id"] == "OEC"
    assert dummy_client.codes[-1] == "oauth-code"
    assert requested_apps == ["OEC", "OEC"]

    user_id, app_id, access, refresh, expires_at = dummy_store.puts[-1]
    assert (user_id, app_id, access, refresh) == ("user-1", "OEC", "access-token", "refresh-token")
    now = datetime.now(timezone.utc).timestamp()
    assert now + 3500 < expires_at <= now + 3600


@pytest.mark.anyio
async def test_callback_keeps_existing_refresh_token(oauth_overrides):
    dummy_client, dummy_store, _, encoder, _ = oauth_overrides
    dummy_client.refresh_token = None
    dummy_store.put("user-1", "Google", "old-access", "kept-refresh", 0)
    state = encoder.encode(
        {
            "user_id": "user-1",
            "app_id": "Google",
            "issued_at": datetime.now(timezone.utc).isoformat(),
        }
    )

    async with _client() as client:
        response = await client.post(
            "/api/auth/google/callback", json={"state": state, "code": "code-2"}
        )

    assert response.status_code == 200
    assert dummy_store.records[("user-1", "Google")].access_token == "access-token"
    assert dummy_store.records[("user-1", "Google")].refresh_token == "kept-refresh"


@pytest.mark.anyio
async def test_callback_get_redirects_when_frontend_available(oauth_overrides):
    dummy_client, _, settings, _, _ = oauth_overrides
    settings.frontend_base_url = "https://portal.example.edu/google/connected"

    async with _client() as client:
        await client.get("/api/auth/google/authorize", params={"user_id": "user-2"})
        state = dummy_client.states[-1]
        callback_resp = await client.get(
            "/api/auth/google/callback",
            params={"state": state, "code": "oauth-code"},
            headers={"accept": "text/html"},
        )

    assert callback_resp.status_code == 307
    assert callback_resp.headers["location"] == "https://portal.example.edu/google/connected"


@pytest.mark.anyio
async def test_callback_rejects_expired_state(oauth_overrides):
    dummy_client, dummy_store, settings, encoder, _ = oauth_overrides
    issued_at = datetime.now(timezone.utc) - timedelta(
        seconds=settings.oauth.state_ttl_seconds + 60
    )
    state = encoder.encode(
        {"user_id": "user-1", "app_id": "Google", "issued_at": issued_at.isoformat()}
    )

    async with _client() as client:
        response = await client.post(
            "/api/auth/google/callback", json={"state": state, "code": "late"}
        )

    assert response.status_code == 400
    assert dummy_client.codes == []
    assert dummy_store.puts == []


@pytest.mark.anyio
async def test_callback_rejects_tampered_state(oauth_overrides):
    _, dummy_store, _, _, _ = oauth_overrides
    forged = OAuthStateEncoder("someone-else").encode(
        {
            "user_id": "victim",
            "app_id": "Google",
            "issued_at": datetime.now(timezone.utc).isoformat(),
        }
    )

    async with _client() as client:
        response = await client.post(
            "/api/auth/google/callback", json={"state": forged, "code": "stolen"}
        )

    assert response.status_code == 400
    assert dummy_store.puts == []


@pytest.mark.anyio
async def test_callback_reports_failed_exchange(oauth_overrides):
    dummy_client, dummy_store, _, encoder, _ = oauth_overrides
    dummy_client.fail = True
    state = encoder.encode(
        {
            "user_id": "user-1",
            "app_id": "Google",
            "issued_at": datetime.now(timezone.utc).isoformat(),
        }
    )

    async with _client() as client:
        response = await client.post(
            "/api/auth/google/callback", json={"state": state, "code": "bad"}
        )

    assert response.status_code == 400
    assert dummy_store.puts == []


@pytest.mark.anyio
async def test_disconnect_deletes_tokens(oauth_overrides):
    _, dummy_store, _, _, _ = oauth_overrides
    dummy_store.put("user-1", "OEC", "access", "refresh", None)

    async with _client() as client:
        response = await client.delete(
            "/api/auth/google", params={"user_id": "user-1", "app_id": "OEC"}
        )

    assert response.status_code == 200
    assert response.json() == {"status": "disconnected", "app_id": "OEC"}
    assert dummy_store.deletes == [("user-1", "OEC")]


@pytest.mark.anyio
async def test_disconnect_rejects_unknown_apps(oauth_overrides):
    _, dummy_store, _, _, _ = oauth_overrides

    async with _client() as client:
        response = await client.delete(
            "/api/auth/google", params={"user_id": "user-1", "app_id": "Canvas"}
        )

    assert response.status_code == 404
    assert dummy_store.deletes == []
