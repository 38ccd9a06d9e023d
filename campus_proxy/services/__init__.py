"""Service layer exports."""

from .authorization import (
    AuthorizationContext,
    AuthorizationLoader,
    CredentialResolutionError,
)
from .credential_store import CredentialStore, OAuthCredentialStore
from .google_proxy import GoogleAppsProxy, PageStream, RequestTransactionExecutor, StopReason
from .instrumentation import Instrumentation
from .token_cipher import TokenCipherService

__all__ = [
    "AuthorizationContext",
    "AuthorizationLoader",
    "CredentialResolutionError",
    "CredentialStore",
    "GoogleAppsProxy",
    "Instrumentation",
    "OAuthCredentialStore",
    "PageStream",
    "RequestTransactionExecutor",
    "StopReason",
    "TokenCipherService",
]
