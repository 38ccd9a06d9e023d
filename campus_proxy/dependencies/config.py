"""
FastAPI dependency utilities for injecting configuration.
"""

from functools import lru_cache
from http import HTTPStatus
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Query

from campus_proxy.core.config import (
    AppSettings,
    ProxyAppSettings,
    UnknownAppError,
    get_settings,
    resolve_app_config,
)


@lru_cache()
def _settings_singleton() -> AppSettings:
    """Ensure configuration is created once per process."""
    return get_settings()


def get_app_settings() -> AppSettings:
    """FastAPI dependency returning application settings."""
    return _settings_singleton()


def get_proxy_config(
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    app_id: Optional[str] = Query(
        default=None, description="Application identity (Google or OEC)."
    ),
) -> ProxyAppSettings:
    """Resolve the proxy settings for the ``app_id`` query parameter."""
    try:
        return resolve_app_config(settings, app_id)
    except UnknownAppError as exc:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=str(exc)) from exc


SettingsDependency = Depends(get_app_settings)

__all__ = ["SettingsDependency", "get_app_settings", "get_proxy_config"]
