"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_credential_store,
    get_instrumentation,
    get_oauth_client_factory,
    get_oauth_state_encoder,
    get_record_store,
    get_resource_resolver,
    get_token_cipher_service,
)
from .config import SettingsDependency, get_app_settings, get_proxy_config

__all__ = [
    "SettingsDependency",
    "get_app_settings",
    "get_credential_store",
    "get_instrumentation",
    "get_oauth_client_factory",
    "get_oauth_state_encoder",
    "get_proxy_config",
    "get_record_store",
    "get_resource_resolver",
    "get_token_cipher_service",
]
