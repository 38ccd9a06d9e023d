"""
Authenticated, paginated access to Google APIs on behalf of portal users.

One :class:`GoogleAppsProxy` serves one user (or one set of inline tokens) for
one application. ``request`` returns a :class:`PageStream` that issues one HTTP
call per page, in order, only when the consumer asks for the next page.
``simple_request`` performs a single call. Both paths share the same
transaction logic:

* failures never escape as exceptions; they become error :class:`PageResult`
  objects and end the stream;
* a ``401 Invalid Credentials`` response deletes the stored tokens;
* an access token silently refreshed by the auth library is written back to
  the credential store.

There is no retry: one page is one attempt, and callers re-run the whole
logical request if they want another try.
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Callable, List, Optional

from campus_proxy.clients.discovery import (
    ResourceMethod,
    ResourceMethodResolver,
    UnknownResourceError,
)
from campus_proxy.clients.transport import (
    FixtureProvider,
    FixtureTransport,
    HttpTransport,
    LiveTransport,
    TransportCall,
)
from campus_proxy.core.config import APP_ID, OEC_APP_ID, ProxyAppSettings
from campus_proxy.core.logging import redact_token
from campus_proxy.schemas.proxy import PageResult, RequestDescriptor
from campus_proxy.services.authorization import AuthorizationContext, AuthorizationLoader
from campus_proxy.services.credential_store import CredentialStore
from campus_proxy.services.instrumentation import Instrumentation

logger = logging.getLogger(__name__)

PAGE_TOKEN_PARAM = "pageToken"
INVALID_CREDENTIALS_MESSAGE = "Invalid Credentials"


def stringify_body(body: Any) -> Optional[str]:
    """Mappings and lists are sent as JSON, anything else as its string form."""
    if body is None:
        return None
    if isinstance(body, (dict, list)):
        return json.dumps(body)
    if isinstance(body, bytes):
        return body.decode("utf-8")
    return str(body)


class StopReason(str, Enum):
    ERROR = "error"
    EXHAUSTED = "exhausted"
    PAGE_LIMIT = "page_limit"
    CLOSED = "closed"


class RequestTransactionExecutor:
    """Issue single calls and apply the credential side effects of each outcome."""

    def __init__(
        self,
        *,
        authorization: AuthorizationContext,
        transport: HttpTransport,
        credential_store: CredentialStore,
        instrumentation: Instrumentation,
        user_id: Optional[str] = None,
        resource_class: str = "GoogleAppsProxy",
    ) -> None:
        self._authorization = authorization
        self._transport = transport
        self._store = credential_store
        self._instrumentation = instrumentation
        self._user_id = user_id
        self._resource_class = resource_class
        # Rotation is detected against the token we started with, so every
        # refresh during a long sequence is written back.
        self._initial_token = authorization.access_token

    async def execute(
        self,
        descriptor: RequestDescriptor,
        resource_method: ResourceMethod,
        page_token: Optional[str] = None,
    ) -> PageResult:
        params = dict(descriptor.params)
        if page_token:
            params[PAGE_TOKEN_PARAM] = page_token
            logger.debug("Making page request with pageToken = %s", page_token)

        def build_call() -> TransportCall:
            return resource_method.build_call(
                params=params,
                body=descriptor.body,
                headers=descriptor.headers,
                timeout=descriptor.timeout_seconds,
            )

        return await self._transact(build_call, url=resource_method.operation_id)

    async def execute_call(self, call: TransportCall) -> PageResult:
        return await self._transact(lambda: call, url=call.uri)

    async def _transact(
        self, build_call: Callable[[], TransportCall], *, url: str
    ) -> PageResult:
        with self._instrumentation.instrument(
            "proxy", url=url, resource_class=self._resource_class
        ) as payload:
            try:
                call = build_call()
                response = await asyncio.to_thread(
                    self._transport.execute, call, self._authorization.credentials
                )
                result = PageResult.from_response(response)
            except Exception as exc:  # pylint: disable=broad-except
                logger.critical("%s - Unable to send request transaction", exc)
                result = PageResult.transport_failure(f"{type(exc).__name__}: {exc}")
            payload["status"] = result.status_code

        if result.status_code is None:
            logger.error("Got a blank response from Google: %s", result.failure)
        elif result.status_code >= 400:
            logger.error(
                "Got an error response from Google. Status %s, Body %s",
                result.status_code,
                result.body,
            )

        if self.is_invalid_credentials(result):
            self._revoke_invalid_token()
        else:
            self._update_access_tokens()
        return result

    @staticmethod
    def is_invalid_credentials(result: PageResult) -> bool:
        return (
            result.status_code == 401
            and result.error_message == INVALID_CREDENTIALS_MESSAGE
        )

    def _revoke_invalid_token(self) -> None:
        app_id = self._authorization.app_id
        if self._user_id is None or self._authorization.fake:
            logger.warning("Google rejected %s credentials not tied to a stored user", app_id)
            return
        logger.warning(
            "Deleting %s access token for %s due to 401 Unauthorized (Invalid Credentials) from Google",
            app_id,
            self._user_id,
        )
        try:
            self._store.delete(self._user_id, app_id)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Unable to delete %s token for %s", app_id, self._user_id)

    def _update_access_tokens(self) -> None:
        current = self._authorization.access_token
        if self._user_id is None or not current or current == self._initial_token:
            return
        app_id = self._authorization.app_id
        logger.info(
            "Will update token for %s from %s => %s",
            self._user_id,
            redact_token(self._initial_token),
            redact_token(current),
        )
        try:
            self._store.put(
                self._user_id,
                app_id,
                current,
                self._authorization.refresh_token,
                self._authorization.expiry_timestamp,
            )
        except Exception:  # pylint: disable=broad-except
            # The next page compares against the same initial token and retries the write.
            logger.exception("Unable to persist refreshed %s token for %s", app_id, self._user_id)


class PageStream:
    """Pull-based sequence of result pages for one logical request.

    Each ``next_page`` issues exactly one call. The stream ends after an error
    page, after a page without ``nextPageToken``, once ``page_limit`` pages were
    fetched, or when the consumer calls :meth:`close`. A finished stream cannot
    be restarted; ask the proxy for a new one.
    """

    def __init__(
        self,
        executor: RequestTransactionExecutor,
        descriptor: RequestDescriptor,
        resource_method: ResourceMethod,
    ) -> None:
        self._executor = executor
        self._descriptor = descriptor
        self._resource_method = resource_method
        self._page_token: Optional[str] = None
        self._pages_issued = 0
        self._stop_reason: Optional[StopReason] = None
        self._lock = asyncio.Lock()

    @property
    def page_token(self) -> Optional[str]:
        return self._page_token

    @property
    def pages_issued(self) -> int:
        return self._pages_issued

    @property
    def stop_reason(self) -> Optional[StopReason]:
        return self._stop_reason

    @property
    def under_limit(self) -> bool:
        limit = self._descriptor.page_limit
        return limit is None or self._pages_issued < limit

    def has_next(self) -> bool:
        return self._stop_reason is None

    async def next_page(self) -> PageResult:
        """Fetch the next page; raises ``StopAsyncIteration`` once the stream has ended."""
        async with self._lock:
            if self._stop_reason is not None:
                raise StopAsyncIteration

            result = await self._executor.execute(
                self._descriptor, self._resource_method, self._page_token
            )
            self._pages_issued += 1

            if result.is_error:
                logger.warning(
                    "request stopped on error: %s",
                    result.failure or f"{result.status_code} {result.body}",
                )
                self._page_token = None
                self._stop_reason = StopReason.ERROR
                return result

            self._page_token = result.next_page_token
            if self._page_token is None:
                self._stop_reason = StopReason.EXHAUSTED
            elif not self.under_limit:
                logger.debug(
                    "Page limit %s reached for %s",
                    self._descriptor.page_limit,
                    self._descriptor.label,
                )
                self._stop_reason = StopReason.PAGE_LIMIT
            return result

    def close(self) -> None:
        if self._stop_reason is None:
            self._stop_reason = StopReason.CLOSED

    async def aclose(self) -> None:
        self.close()

    async def collect(self) -> List[PageResult]:
        return [page async for page in self]

    def __aiter__(self) -> "PageStream":
        return self

    async def __anext__(self) -> PageResult:
        return await self.next_page()


class GoogleAppsProxy:
    """Google API client acting for one user of one application."""

    APP_ID = APP_ID
    OEC_APP_ID = OEC_APP_ID

    def __init__(
        self,
        *,
        config: ProxyAppSettings,
        credential_store: CredentialStore,
        app_id: str = APP_ID,
        user_id: Optional[str] = None,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        expiration_time: Optional[int] = None,
        resolver: Optional[ResourceMethodResolver] = None,
        transport: Optional[HttpTransport] = None,
        instrumentation: Optional[Instrumentation] = None,
        json_filename: Optional[str] = None,
    ) -> None:
        self.app_id = app_id
        self.user_id = user_id
        self._config = config
        self._resolver = resolver or ResourceMethodResolver()

        loader = AuthorizationLoader(app_id, config, credential_store)
        self.authorization = loader.load(
            user_id=user_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expiration_time=expiration_time,
        )

        if transport is None:
            if config.fake:
                transport = FixtureTransport(
                    FixtureProvider(config.fixtures_dir), json_filename=json_filename
                )
            else:
                transport = LiveTransport(timeout=config.timeout_seconds)

        self._executor = RequestTransactionExecutor(
            authorization=self.authorization,
            transport=transport,
            credential_store=credential_store,
            instrumentation=instrumentation or Instrumentation(),
            user_id=user_id,
            resource_class=type(self).__name__,
        )

    @property
    def fake(self) -> bool:
        return self._config.fake

    def request(self, descriptor: RequestDescriptor) -> PageStream:
        """Resolve the API method and return a stream of its result pages."""
        if not descriptor.targets_resource:
            raise UnknownResourceError(
                "Paginated requests need api, api_version, resource and method."
            )
        logger.info(
            "Making request with fake = %s, params = %s", self.fake, descriptor.params
        )
        resource_method = self._resolve(descriptor)
        return PageStream(self._executor, descriptor, resource_method)

    async def simple_request(self, descriptor: RequestDescriptor) -> PageResult:
        """Perform one call without pagination."""
        logger.info(
            "Fake = %s; Making request to %s on behalf of user %s",
            self.fake,
            descriptor.label,
            self.user_id,
        )
        if descriptor.targets_resource:
            resource_method = self._resolve(descriptor)
            return await self._executor.execute(descriptor, resource_method)

        call = TransportCall(
            http_method=descriptor.http_method.upper(),
            uri=descriptor.uri or "",
            headers=dict(descriptor.headers),
            body=stringify_body(descriptor.body),
            authenticated=descriptor.authenticated,
            timeout=descriptor.timeout_seconds,
        )
        return await self._executor.execute_call(call)

    @staticmethod
    def is_access_granted(
        user_id: str,
        app_id: str,
        *,
        config: ProxyAppSettings,
        credential_store: CredentialStore,
    ) -> bool:
        """True in fake mode or when the user has a stored access token."""
        if config.fake:
            return True
        record = credential_store.get(user_id, app_id)
        return bool(record and record.access_token)

    def _resolve(self, descriptor: RequestDescriptor) -> ResourceMethod:
        return self._resolver.resolve(
            descriptor.api or "",
            descriptor.api_version or "",
            descriptor.resource or "",
            descriptor.method or "",
        )


__all__ = [
    "GoogleAppsProxy",
    "INVALID_CREDENTIALS_MESSAGE",
    "PAGE_TOKEN_PARAM",
    "PageStream",
    "RequestTransactionExecutor",
    "StopReason",
    "stringify_body",
]
