"""Expose client wrappers for external systems."""

from .discovery import ResourceMethod, ResourceMethodResolver, UnknownResourceError
from .dynamodb import DynamoDBClient
from .google_auth import GoogleOAuthClient, OAuthStateEncoder, OAuthTokenExchangeError
from .sqlite_store import SQLiteStore
from .transport import (
    FixtureProvider,
    FixtureTransport,
    HttpTransport,
    LiveTransport,
    TransportCall,
    TransportError,
    TransportResponse,
)

__all__ = [
    "DynamoDBClient",
    "FixtureProvider",
    "FixtureTransport",
    "GoogleOAuthClient",
    "HttpTransport",
    "LiveTransport",
    "OAuthStateEncoder",
    "OAuthTokenExchangeError",
    "ResourceMethod",
    "ResourceMethodResolver",
    "SQLiteStore",
    "TransportCall",
    "TransportError",
    "TransportResponse",
    "UnknownResourceError",
]
