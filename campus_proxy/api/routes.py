"""
FastAPI routes for the campus Google proxy.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from typing import Annotated, Any, AsyncIterator, Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse, StreamingResponse

from campus_proxy.clients.discovery import UnknownResourceError
from campus_proxy.clients.google_auth import GoogleOAuthClient, OAuthTokenExchangeError
from campus_proxy.core.config import (
    APP_ID,
    AppSettings,
    ProxyAppSettings,
    UnknownAppError,
    resolve_app_config,
)
from campus_proxy.dependencies import (
    get_app_settings,
    get_credential_store,
    get_instrumentation,
    get_oauth_client_factory,
    get_oauth_state_encoder,
    get_proxy_config,
    get_resource_resolver,
)
from campus_proxy.schemas import (
    AccessStatus,
    ConnectionResult,
    OAuthCallbackPayload,
    PageResult,
    ProxyRequest,
)
from campus_proxy.services import CredentialResolutionError, GoogleAppsProxy, PageStream

router = APIRouter()
logger = logging.getLogger(__name__)


def _oauth_client(
    factory: Callable[[Optional[str]], GoogleOAuthClient], app_id: Optional[str]
) -> GoogleOAuthClient:
    try:
        return factory(app_id)
    except UnknownAppError as exc:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc


def _build_proxy(
    payload: ProxyRequest,
    settings: AppSettings,
    credential_store: Any,
    resolver: Any,
    instrumentation: Any,
) -> GoogleAppsProxy:
    app_id = payload.app_id or APP_ID
    try:
        config = resolve_app_config(settings, app_id)
        return GoogleAppsProxy(
            config=config,
            credential_store=credential_store,
            app_id=app_id,
            user_id=payload.user_id,
            resolver=resolver,
            instrumentation=instrumentation,
        )
    except UnknownAppError as exc:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=str(exc)) from exc
    except CredentialResolutionError as exc:
        raise HTTPException(status_code=HTTPStatus.UNAUTHORIZED, detail=str(exc)) from exc


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/google/authorize", status_code=HTTPStatus.OK)
async def start_google_oauth_flow(
    request: Request,
    client_factory: Annotated[Any, Depends(get_oauth_client_factory)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    user_id: str = Query(..., description="Portal user connecting a Google account."),
    app_id: str = Query(default=APP_ID, description="Application identity (Google or OEC)."),
    redirect_to: str | None = Query(
        default=None,
        description="Optional URL to redirect back to on successful authentication.",
    ),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the Google consent screen.",
    ),
) -> Any:
    """Generate a signed state token and the Google consent URL."""
    oauth_client = _oauth_client(client_factory, app_id)
    state = state_encoder.encode(
        {
            "nonce": uuid.uuid4().hex,
            "redirect_to": redirect_to,
            "user_id": user_id,
            "app_id": app_id,
            "issued_at": datetime.now(timezone.utc).isoformat(),
        }
    )
    authorization_url = oauth_client.build_authorization_url(state=state)

    wants_html = "text/html" in request.headers.get("accept", "").lower()
    if redirect or wants_html:
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return {"authorization_url": authorization_url, "state": state}


@router.post("/auth/google/callback", response_model=ConnectionResult)
async def handle_google_oauth_callback(
    payload: OAuthCallbackPayload,
    client_factory: Annotated[Any, Depends(get_oauth_client_factory)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    credential_store: Annotated[Any, Depends(get_credential_store)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> ConnectionResult:
    """Complete the OAuth exchange and store the user's tokens."""
    state_data = state_encoder.decode(payload.state)

    try:
        issued_at = datetime.fromisoformat(state_data["issued_at"])
    except (KeyError, TypeError, ValueError) as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Missing or invalid issued_at in state token.",
        ) from exc
    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)

    now = datetime.now(timezone.utc)
    if now - issued_at > timedelta(seconds=settings.oauth.state_ttl_seconds):
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="OAuth state token has expired."
        )

    user_id = state_data.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Missing user identifier in state token.",
        )
    app_id = state_data.get("app_id") or APP_ID
    oauth_client = _oauth_client(client_factory, app_id)

    try:
        access_token, refresh_token, expires_in = await oauth_client.exchange_authorization_code(
            payload.code
        )
    except OAuthTokenExchangeError as exc:
        logger.warning("OAuth code exchange failed for %s/%s: %s", user_id, app_id, exc)
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Failed to exchange authorization code.",
        ) from exc

    if refresh_token is None:
        existing = credential_store.get(user_id, app_id)
        refresh_token = existing.refresh_token if existing else None

    credential_store.put(
        user_id,
        app_id,
        access_token,
        refresh_token,
        int((now + timedelta(seconds=expires_in)).timestamp()),
    )
    logger.info("Connected %s account for user %s", app_id, user_id)

    return ConnectionResult(
        status="connected", app_id=app_id, redirect_to=state_data.get("redirect_to")
    )


@router.get("/auth/google/callback", status_code=HTTPStatus.OK)
async def handle_google_oauth_callback_get(
    request: Request,
    client_factory: Annotated[Any, Depends(get_oauth_client_factory)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    credential_store: Annotated[Any, Depends(get_credential_store)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    state: str = Query(..., description="OAuth state token."),
    code: str = Query(..., description="Authorization code returned by Google."),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    result = await handle_google_oauth_callback(
        payload=OAuthCallbackPayload(state=state, code=code),
        client_factory=client_factory,
        state_encoder=state_encoder,
        credential_store=credential_store,
        settings=settings,
    )

    wants_html = "text/html" in request.headers.get("accept", "").lower()
    redirect_target = result.redirect_to or settings.frontend_base_url
    if redirect_target and (redirect or wants_html):
        return RedirectResponse(url=str(redirect_target), status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return JSONResponse(content=result.model_dump())


@router.delete(
    "/auth/google", status_code=HTTPStatus.OK, dependencies=[Depends(get_proxy_config)]
)
async def disconnect_google_account(
    credential_store: Annotated[Any, Depends(get_credential_store)],
    user_id: str = Query(..., description="Portal user disconnecting their account."),
    app_id: str = Query(default=APP_ID),
) -> dict:
    """Forget the stored tokens for a user."""
    credential_store.delete(user_id, app_id)
    return {"status": "disconnected", "app_id": app_id}


@router.get("/google/access", response_model=AccessStatus)
async def check_google_access(
    credential_store: Annotated[Any, Depends(get_credential_store)],
    config: Annotated[ProxyAppSettings, Depends(get_proxy_config)],
    user_id: str = Query(...),
    app_id: str = Query(default=APP_ID),
) -> AccessStatus:
    granted = GoogleAppsProxy.is_access_granted(
        user_id, app_id, config=config, credential_store=credential_store
    )
    return AccessStatus(user_id=user_id, app_id=app_id, access_granted=granted)


@router.post("/google/request")
async def proxy_paginated_request(
    payload: ProxyRequest,
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    credential_store: Annotated[Any, Depends(get_credential_store)],
    resolver: Annotated[Any, Depends(get_resource_resolver)],
    instrumentation: Annotated[Any, Depends(get_instrumentation)],
) -> StreamingResponse:
    """Stream result pages as newline-delimited JSON, fetching each as the client reads."""
    proxy = _build_proxy(payload, settings, credential_store, resolver, instrumentation)
    try:
        stream = proxy.request(payload.descriptor)
    except UnknownResourceError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc

    return StreamingResponse(_ndjson_pages(stream), media_type="application/x-ndjson")


async def _ndjson_pages(stream: PageStream) -> AsyncIterator[str]:
    try:
        async for page in stream:
            yield page.model_dump_json() + "\n"
    finally:
        stream.close()


@router.post("/google/simple-request", response_model=PageResult)
async def proxy_simple_request(
    payload: ProxyRequest,
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    credential_store: Annotated[Any, Depends(get_credential_store)],
    resolver: Annotated[Any, Depends(get_resource_resolver)],
    instrumentation: Annotated[Any, Depends(get_instrumentation)],
) -> PageResult:
    proxy = _build_proxy(payload, settings, credential_store, resolver, instrumentation)
    try:
        return await proxy.simple_request(payload.descriptor)
    except UnknownResourceError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc
