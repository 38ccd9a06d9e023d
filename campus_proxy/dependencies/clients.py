"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache
from typing import Callable, Optional

from campus_proxy.clients import (
    DynamoDBClient,
    GoogleOAuthClient,
    OAuthStateEncoder,
    ResourceMethodResolver,
    SQLiteStore,
)
from campus_proxy.core.config import get_settings, resolve_app_config
from campus_proxy.services import (
    Instrumentation,
    OAuthCredentialStore,
    TokenCipherService,
)
from campus_proxy.services.credential_store import RecordStore


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder keyed by the configured signing secret."""
    settings = _settings()
    secret = settings.oauth.state_secret or settings.google_proxy.client_secret
    if not secret:
        raise RuntimeError("OAUTH_STATE_SECRET or GOOGLE_PROXY_CLIENT_SECRET must be set.")
    return OAuthStateEncoder(secret_key=secret)


def get_oauth_client_factory() -> Callable[[Optional[str]], GoogleOAuthClient]:
    """Provide a builder of OAuth clients keyed by application identity.

    The callback only learns which application it serves from the signed state,
    so routes resolve the client per request rather than per process.
    """
    settings = _settings()

    def factory(app_id: Optional[str]) -> GoogleOAuthClient:
        return GoogleOAuthClient(resolve_app_config(settings, app_id))

    return factory


@lru_cache()
def get_record_store() -> RecordStore:
    """Provide the record store selected by CREDENTIAL_STORE_BACKEND."""
    settings = _settings()
    if settings.store.backend == "dynamodb":
        return DynamoDBClient(settings.store)
    return SQLiteStore(settings.store.sqlite_path)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService | None:
    """Provide symmetric encryption for token storage when a secret is configured."""
    settings = _settings()
    secret = settings.security.token_encryption_secret
    if not secret:
        return None
    return TokenCipherService(secret=secret)


@lru_cache()
def get_credential_store() -> OAuthCredentialStore:
    """Provide the shared OAuth credential store."""
    return OAuthCredentialStore(
        store=get_record_store(),
        token_cipher=get_token_cipher_service(),
    )


@lru_cache()
def get_resource_resolver() -> ResourceMethodResolver:
    """Provide a process-wide discovery resolver so services are built once."""
    return ResourceMethodResolver()


@lru_cache()
def get_instrumentation() -> Instrumentation:
    """Provide the process-wide instrumentation hub."""
    return Instrumentation()


__all__ = [
    "get_credential_store",
    "get_oauth_client_factory",
    "get_instrumentation",
    "get_oauth_state_encoder",
    "get_record_store",
    "get_resource_resolver",
    "get_token_cipher_service",
]
