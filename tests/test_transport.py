try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

from pathlib import Path

import httplib2
import pytest
from google.oauth2.credentials import Credentials

from campus_proxy.clients import transport as transport_module
from campus_proxy.clients.transport import (
    FixtureProvider,
    FixtureTransport,
    LiveTransport,
    TransportCall,
    TransportError,
    decode_response,
)


class StubHttp:
    instances: list["StubHttp"] = []

    def __init__(self, timeout=None) -> None:
        self.timeout = timeout
        self.requests: list[dict] = []
        self.closed = False
        self.response = httplib2.Response({"status": "200"})
        self.content = b'{"files": []}'
        self.error: Exception | None = None
        StubHttp.instances.append(self)

    def request(self, uri, method="GET", body=None, headers=None, **kwargs):
        self.requests.append({"uri": uri, "method": method, "body": body, "headers": headers})
        if self.error is not None:
            raise self.error
        return self.response, self.content

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def stub_http(monkeypatch: pytest.MonkeyPatch):
    StubHttp.instances = []
    monkeypatch.setattr(transport_module.httplib2, "Http", StubHttp)
    return StubHttp


def test_decode_response_parses_json() -> None:
    response = decode_response(200, b'{"nextPageToken": "abc"}')

    assert response.status == 200
    assert response.data == {"nextPageToken": "abc"}


def test_decode_response_keeps_blank_bodies() -> None:
    response = decode_response(204, b"")

    assert response.body == ""
    assert response.data is None


def test_decode_response_rejects_garbage_on_success() -> None:
    with pytest.raises(TransportError):
        decode_response(200, "<html>oops</html>")


def test_decode_response_tolerates_garbage_on_error() -> None:
    response = decode_response(502, "<html>Bad Gateway</html>")

    assert response.status == 502
    assert response.data is None
    assert "Bad Gateway" in response.body


def test_live_transport_authorizes_requests(stub_http) -> None:
    call = TransportCall(
        http_method="GET",
        uri="https://www.googleapis.com/drive/v3/files",
        headers={"X-Portal": "campus"},
        timeout=3.0,
    )

    response = LiveTransport(timeout=30.0).execute(call, Credentials(token="live-token"))

    http = stub_http.instances[-1]
    sent = http.requests[-1]
    assert response.data == {"files": []}
    assert http.timeout == 3.0
    assert http.closed is True
    assert sent["headers"]["authorization"] == "Bearer live-token"
    assert sent["headers"]["X-Portal"] == "campus"


def test_live_transport_skips_authorization_when_not_required(stub_http) -> None:
    call = TransportCall(
        http_method="POST",
        uri="https://example.com/hook",
        body='{"ok": true}',
        authenticated=False,
    )

    LiveTransport(timeout=12.0).execute(call, Credentials(token="unused"))

    http = stub_http.instances[-1]
    sent = http.requests[-1]
    assert http.timeout == 12.0
    assert "authorization" not in sent["headers"]
    assert sent["method"] == "POST"
    assert sent["body"] == '{"ok": true}'


def test_live_transport_wraps_network_errors(stub_http, monkeypatch) -> None:
    original_init = StubHttp.__init__

    def failing_init(self, timeout=None):
        original_init(self, timeout=timeout)
        self.error = OSError("connection reset")

    monkeypatch.setattr(StubHttp, "__init__", failing_init)
    call = TransportCall(http_method="GET", uri="https://example.com", authenticated=False)

    with pytest.raises(TransportError):
        LiveTransport().execute(call, Credentials(token="t"))
    assert stub_http.instances[-1].closed is True


def test_live_transport_returns_unauthorized_responses_unrefreshed(stub_http, monkeypatch) -> None:
    original_init = StubHttp.__init__

    def rejecting_init(self, timeout=None):
        original_init(self, timeout=timeout)
        self.response = httplib2.Response({"status": "401"})
        self.content = b'{"error": {"code": 401, "message": "Invalid Credentials"}}'

    monkeypatch.setattr(StubHttp, "__init__", rejecting_init)
    credentials = Credentials(
        token="revoked",
        refresh_token="refresh",
        token_uri="https://oauth2.googleapis.com/token",
        client_id="client",
        client_secret="secret",
    )
    call = TransportCall(http_method="GET", uri="https://www.googleapis.com/drive/v3/files")

    response = LiveTransport().execute(call, credentials)

    assert response.status == 401
    assert response.data["error"]["message"] == "Invalid Credentials"
    assert len(stub_http.instances[-1].requests) == 1
    assert credentials.token == "revoked"


@pytest.mark.parametrize(
    "uri, operation_id, expected",
    [
        ("https://www.googleapis.com/drive/v3/files?alt=json", "drive.files.list", "drive.files.list.json"),
        (
            "https://www.googleapis.com/drive/v3/files?pageToken=p2&alt=json",
            "drive.files.list",
            "drive.files.list.p2.json",
        ),
        ("https://example.com/admin/directory/users", None, "admin.directory.users.json"),
    ],
)
def test_fixture_filename(uri: str, operation_id, expected: str) -> None:
    call = TransportCall(http_method="GET", uri=uri, operation_id=operation_id)

    assert FixtureTransport.fixture_filename(call) == expected


def test_fixture_transport_serves_canned_bodies(tmp_path: Path) -> None:
    (tmp_path / "drive.files.list.json").write_text('{"files": [{"id": "1"}]}', encoding="utf-8")
    transport = FixtureTransport(FixtureProvider(tmp_path))
    call = TransportCall(
        http_method="GET",
        uri="https://www.googleapis.com/drive/v3/files",
        operation_id="drive.files.list",
    )

    response = transport.execute(call, Credentials(token="fake"))

    assert response.status == 200
    assert response.data == {"files": [{"id": "1"}]}


def test_fixture_transport_honours_fixed_filename(tmp_path: Path) -> None:
    (tmp_path / "roster.json").write_text('{"sections": []}', encoding="utf-8")
    transport = FixtureTransport(FixtureProvider(tmp_path), json_filename="roster.json")
    call = TransportCall(http_method="GET", uri="https://example.com/anything")

    assert transport.execute(call, Credentials(token="fake")).data == {"sections": []}


def test_missing_fixture_is_a_transport_error(tmp_path: Path) -> None:
    transport = FixtureTransport(FixtureProvider(tmp_path))
    call = TransportCall(http_method="GET", uri="https://example.com/missing")

    with pytest.raises(TransportError):
        transport.execute(call, Credentials(token="fake"))


def test_fixture_provider_stays_inside_its_directory(tmp_path: Path) -> None:
    fixtures = tmp_path / "fixtures"
    fixtures.mkdir()
    (tmp_path / "secret.json").write_text("{}", encoding="utf-8")

    assert FixtureProvider(fixtures).read("../secret.json") is None


def test_shipped_fixtures_chain_across_pages(sample_fixtures_dir: Path) -> None:
    transport = FixtureTransport(FixtureProvider(sample_fixtures_dir))
    first = transport.execute(
        TransportCall(
            http_method="GET",
            uri="https://www.googleapis.com/drive/v3/files?alt=json",
            operation_id="drive.files.list",
        ),
        Credentials(token="fake"),
    )
    token = first.data["nextPageToken"]
    second = transport.execute(
        TransportCall(
            http_method="GET",
            uri=f"https://www.googleapis.com/drive/v3/files?pageToken={token}&alt=json",
            operation_id="drive.files.list",
        ),
        Credentials(token="fake"),
    )

    assert first.data["files"]
    assert "nextPageToken" not in second.data
