"""Service registry and reverse-proxy dispatch to RPC backends."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

import httpx
from starlette.requests import Request
from starlette.responses import Response

from x402_sentinel.common import (
    LEGACY_PAYMENT_HEADER,
    PAYMENT_HEADER,
    REQUIREMENTS_SEGMENT,
    UNKNOWN_SERVICE,
    X402_ROUTE_PREFIX,
)
from x402_sentinel.errors import BackendError, RoutingError

logger = logging.getLogger(__name__)

HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)

# Not forwarded upstream
REQUEST_EXCLUDED_HEADERS = HOP_BY_HOP_HEADERS | {
    "host",
    "content-length",
    PAYMENT_HEADER.lower(),
    LEGACY_PAYMENT_HEADER.lower(),
}

# Recomputed by the response we build
RESPONSE_EXCLUDED_HEADERS = HOP_BY_HOP_HEADERS | {"content-length", "content-encoding"}


def _segments(path: str) -> list[str]:
    return [part for part in path.strip("/").split("/")]


def extract_service(path: str) -> str:
    """Get the service name from /x402/{service}/... or /{service}/...

    Examples:
        /x402/eth/blockNumber -> eth
        /thorchain/pools -> thorchain
        "" -> unknown
    """
    parts = _segments(path)
    if not parts or parts[0] == "":
        return UNKNOWN_SERVICE

    if parts[0] == X402_ROUTE_PREFIX and len(parts) > 1 and parts[1]:
        return parts[1]
    return parts[0]


def strip_service_prefix(path: str) -> str:
    """Remove the /x402/{service} (or /{service}) prefix from a path.

    Whatever follows the service segment is returned untouched, including
    repeated or trailing slashes.
    """
    remainder = path.lstrip("/")
    if remainder.startswith(X402_ROUTE_PREFIX + "/"):
        remainder = remainder[len(X402_ROUTE_PREFIX) + 1 :]

    _, slash, rest = remainder.partition("/")
    return slash + rest


@dataclass(frozen=True)
class BackendTarget:
    """Where a service's requests are forwarded to."""

    scheme: str
    host: str
    port: Optional[int] = None
    base_path: str = ""

    @classmethod
    def from_url(cls, url: str) -> BackendTarget:
        try:
            parsed = httpx.URL(url)
        except httpx.InvalidURL as e:
            raise ValueError(f"Invalid backend URL {url!r}: {e}") from e
        if parsed.scheme not in ("http", "https"):
            raise ValueError(f"Backend URL must be http or https, got {url!r}")
        if not parsed.host:
            raise ValueError(f"Backend URL has no host: {url!r}")
        return cls(
            scheme=parsed.scheme,
            host=parsed.host,
            port=parsed.port,
            base_path=parsed.path.rstrip("/"),
        )

    @property
    def netloc(self) -> str:
        return f"{self.host}:{self.port}" if self.port else self.host

    def url_for(self, path: str, query: str = "") -> str:
        full_path = self.base_path + path if path else self.base_path or "/"
        if not full_path.startswith("/"):
            full_path = "/" + full_path
        url = f"{self.scheme}://{self.netloc}{full_path}"
        return f"{url}?{query}" if query else url


def parse_services(raw: str) -> dict[str, str]:
    """Parse a service map from JSON or ``name=url,name=url``."""
    raw = raw.strip()
    if not raw:
        return {}
    if raw.startswith("{"):
        parsed = json.loads(raw)
        if not isinstance(parsed, dict):
            raise ValueError("Service map JSON must be an object")
        return {str(k): str(v) for k, v in parsed.items()}

    services: dict[str, str] = {}
    for part in raw.split(","):
        if not part.strip():
            continue
        name, sep, url = part.partition("=")
        if not sep or not name.strip() or not url.strip():
            raise ValueError(f"Invalid service entry {part!r}, expected name=url")
        services[name.strip()] = url.strip()
    return services


class ServiceRegistry:
    """Service name to backend mapping.

    Readers see an immutable snapshot and never block; registrations are
    serialized and swap in a new snapshot.
    """

    def __init__(self, services: Optional[Mapping[str, str]] = None) -> None:
        self._write_lock = threading.Lock()
        self._targets: Mapping[str, BackendTarget] = MappingProxyType({})
        for name, url in (services or {}).items():
            self.register(name, url)

    def register(self, name: str, url: str) -> BackendTarget:
        if not name or "/" in name:
            raise ValueError(f"Invalid service name: {name!r}")
        if name in (X402_ROUTE_PREFIX, REQUIREMENTS_SEGMENT):
            raise ValueError(f"Service name {name!r} is reserved")
        target = BackendTarget.from_url(url)
        with self._write_lock:
            updated = dict(self._targets)
            updated[name] = target
            self._targets = MappingProxyType(updated)
        logger.info(f"Registered service {name} -> {target.scheme}://{target.netloc}{target.base_path}")
        return target

    def unregister(self, name: str) -> None:
        with self._write_lock:
            updated = dict(self._targets)
            updated.pop(name, None)
            self._targets = MappingProxyType(updated)

    def get(self, name: str) -> Optional[BackendTarget]:
        return self._targets.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._targets

    def names(self) -> list[str]:
        return sorted(self._targets)


class Dispatcher:
    """Resolves services and relays requests to their backends."""

    def __init__(
        self,
        registry: ServiceRegistry,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._registry = registry
        self._timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def registry(self) -> ServiceRegistry:
        return self._registry

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def aclose(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def resolve(self, service: str) -> BackendTarget:
        """Look up the backend for a service.

        Raises:
            RoutingError: If the service is not registered
        """
        target = self._registry.get(service)
        if target is None:
            raise RoutingError(service)
        return target

    async def forward(self, request: Request, target: BackendTarget) -> Response:
        """Relay a request to a backend and return its response as-is.

        Raises:
            BackendError: If the backend cannot be reached
        """
        # raw_path keeps percent-encoding, so %2F stays inside its segment
        raw_path = request.scope.get("raw_path")
        if raw_path:
            path = strip_service_prefix(raw_path.split(b"?", 1)[0].decode("latin-1"))
        else:
            path = strip_service_prefix(request.url.path)
        url = target.url_for(path, request.url.query)
        headers = {
            key: value
            for key, value in request.headers.items()
            if key.lower() not in REQUEST_EXCLUDED_HEADERS
        }
        body = await request.body()

        client = self._get_client()
        try:
            upstream = await client.request(
                request.method,
                url,
                headers=headers,
                content=body,
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            logger.error(f"Backend {target.netloc} failed for {request.method} {path}: {e}")
            raise BackendError(f"backend request failed: {e}") from e

        response_headers = {
            key: value
            for key, value in upstream.headers.items()
            if key.lower() not in RESPONSE_EXCLUDED_HEADERS
        }
        return Response(
            content=upstream.content,
            status_code=upstream.status_code,
            headers=response_headers,
        )
