"""Public schema exports."""

from .auth import AccessStatus, ConnectionResult, OAuthCallbackPayload
from .proxy import PageResult, ProxyRequest, RequestDescriptor

__all__ = [
    "AccessStatus",
    "ConnectionResult",
    "OAuthCallbackPayload",
    "PageResult",
    "ProxyRequest",
    "RequestDescriptor",
]
