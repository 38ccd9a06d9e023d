"""
Resolve (api, version, resource, method) tuples against Google discovery documents.

Services are built from the discovery documents bundled with
``google-api-python-client`` (or documents registered explicitly), never over
the network, and cached per (api, version). A resolved :class:`ResourceMethod`
turns request parameters into a :class:`TransportCall` without sending it, so
the proxy keeps control of authentication and error handling.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from googleapiclient.discovery import Resource, build, build_from_document
from googleapiclient.errors import InvalidJsonError, UnknownApiNameOrVersion
from googleapiclient.http import build_http

from campus_proxy.clients.transport import TransportCall

logger = logging.getLogger(__name__)


class UnknownResourceError(LookupError):
    """Raised when an API, resource or method name does not resolve."""


@dataclass(frozen=True)
class ResourceMethod:
    """A callable API method bound to its discovery metadata."""

    api: str
    api_version: str
    resource: str
    method: str
    factory: Callable[..., Any]

    @property
    def operation_id(self) -> str:
        return f"{self.api}.{self.resource}.{self.method}"

    def build_call(
        self,
        *,
        params: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> TransportCall:
        """Render the HTTP call; raises ``TypeError`` for invalid parameters."""
        kwargs: Dict[str, Any] = dict(params or {})
        if body is not None:
            kwargs["body"] = body
        http_request = self.factory(**kwargs)

        merged_headers = dict(http_request.headers or {})
        merged_headers.update(headers or {})
        return TransportCall(
            http_method=http_request.method,
            uri=http_request.uri,
            headers=merged_headers,
            body=http_request.body,
            authenticated=True,
            operation_id=self.operation_id,
            timeout=timeout,
        )


class ResourceMethodResolver:
    """Registry of discovery-backed services shared across requests."""

    def __init__(
        self,
        discovery_documents: Optional[Mapping[tuple[str, str], dict | str]] = None,
    ) -> None:
        self._documents: Dict[tuple[str, str], dict | str] = dict(discovery_documents or {})
        self._services: Dict[tuple[str, str], Resource] = {}
        self._lock = threading.Lock()

    def register(self, api: str, api_version: str, document: dict | str) -> None:
        """Use ``document`` instead of the bundled discovery document."""
        with self._lock:
            self._documents[(api, api_version)] = document
            self._services.pop((api, api_version), None)

    def resolve(
        self, api: str, api_version: str, resource: str, method: str
    ) -> ResourceMethod:
        if not (api and api_version and resource and method):
            raise UnknownResourceError(
                "api, api_version, resource and method are all required."
            )

        node: Any = self._service(api, api_version)
        for segment in resource.split("."):
            accessor = None if segment.startswith("_") else getattr(node, segment, None)
            if not callable(accessor):
                raise UnknownResourceError(
                    f"{api} {api_version} has no resource {resource!r}."
                )
            node = accessor()

        factory = None if method.startswith("_") else getattr(node, method, None)
        if not callable(factory):
            raise UnknownResourceError(
                f"{api} {api_version} resource {resource!r} has no method {method!r}."
            )
        return ResourceMethod(
            api=api,
            api_version=api_version,
            resource=resource,
            method=method,
            factory=factory,
        )

    def _service(self, api: str, api_version: str) -> Resource:
        key = (api, api_version)
        with self._lock:
            service = self._services.get(key)
            if service is not None:
                return service

            document = self._documents.get(key)
            try:
                if document is not None:
                    if isinstance(document, dict):
                        document = json.dumps(document)
                    service = build_from_document(document, http=build_http())
                else:
                    service = build(
                        api,
                        api_version,
                        http=build_http(),
                        cache_discovery=False,
                        static_discovery=True,
                    )
            except (UnknownApiNameOrVersion, InvalidJsonError, ValueError, KeyError) as exc:
                raise UnknownResourceError(
                    f"Unknown API {api} {api_version}: {exc}"
                ) from exc

            logger.debug("Built discovery service for %s %s", api, api_version)
            self._services[key] = service
            return service


__all__ = ["ResourceMethod", "ResourceMethodResolver", "UnknownResourceError"]
