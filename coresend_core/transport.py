"""
Authenticated HTTP transport for the CoreSend client.

Built on ``aiohttp``.  Every call made through :class:`AuthenticatedTransport`
is signed with the session's *active* identity (see
``coresend_core.signer``).  Only bodies with one canonical string form can
be signed, so the body is a tagged variant: :class:`TextBody` or
:class:`JsonBody`.  Bytes, form data and other shapes are rejected.

Usage:
    async with AuthenticatedTransport(store, base_url="https://api.example") as t:
        client = CoreSendClient(t)
        await store.add_inbox(client.register_address)
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union
from urllib.parse import urljoin, urlsplit

import aiohttp

from coresend_core.errors import NetworkError, NoIdentityError, UnsupportedBodyTypeError
from coresend_core.signer import AUTH_HEADERS, sign_request

if TYPE_CHECKING:
    from coresend_core.config import APIConfig
    from coresend_core.session import SessionStore

logger = logging.getLogger("coresend_transport")

DEFAULT_TIMEOUT = 10.0


# ═══════════════════════════════════════════════════════════════════
#  Request bodies
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TextBody:
    """A body that is already the exact string to send and sign."""
    text: str
    content_type: str = "text/plain; charset=utf-8"

    def render(self) -> str:
        return self.text


@dataclass(frozen=True)
class JsonBody:
    """A JSON value, serialised once with compact separators."""
    value: Any
    content_type: str = "application/json"

    def render(self) -> str:
        return json.dumps(self.value, separators=(",", ":"), ensure_ascii=False)


Body = Union[TextBody, JsonBody]


def coerce_body(body: Any) -> Body | None:
    """
    Map a caller-supplied body onto a supported variant.

    ``str`` is sent verbatim; ``dict``/``list`` become JSON.  Anything
    without a single canonical string form raises
    ``UnsupportedBodyTypeError``.
    """
    if body is None or isinstance(body, (TextBody, JsonBody)):
        return body
    if isinstance(body, str):
        return TextBody(body)
    if isinstance(body, (dict, list)):
        return JsonBody(body)
    if isinstance(body, (bytes, bytearray, memoryview, aiohttp.FormData)):
        raise UnsupportedBodyTypeError(
            "Binary and form-data bodies are not supported for signature authentication"
        )
    raise UnsupportedBodyTypeError(f"Unsupported body type: {type(body).__name__}")


# ═══════════════════════════════════════════════════════════════════
#  Responses and errors
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TransportResponse:
    data: Any
    status: int
    headers: dict[str, str]


def _error_message(status: int, reason: str | None, raw: str) -> str:
    """``HTTP <status>: <reason>`` plus the server's message when it sent one."""
    message = f"HTTP {status}: {reason or ''}".rstrip()
    try:
        payload = json.loads(raw)
    except ValueError:
        return message
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return f"{message} - {error['message']}"
    return message


def _parse_data(raw: str) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def merge_headers(caller: dict[str, str] | None, signed: dict[str, str]) -> dict[str, str]:
    """Caller headers overlaid by *signed* ones; names compare case-insensitively."""
    signed_lower = {name.lower() for name in signed}
    merged = {k: v for k, v in (caller or {}).items() if k.lower() not in signed_lower}
    merged.update(signed)
    return merged


# ═══════════════════════════════════════════════════════════════════
#  Transport
# ═══════════════════════════════════════════════════════════════════

class AuthenticatedTransport:
    """Signs and sends requests on behalf of a session's active identity."""

    def __init__(
        self,
        store: SessionStore,
        base_url: str = "",
        *,
        timeout: float = DEFAULT_TIMEOUT,
        http: aiohttp.ClientSession | None = None,
    ):
        self._store = store
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = http
        self._owns_http = http is None

    @classmethod
    def from_config(cls, store: SessionStore, api: APIConfig,
                    http: aiohttp.ClientSession | None = None) -> AuthenticatedTransport:
        return cls(store, api.base_url, timeout=api.timeout_seconds, http=http)

    async def __aenter__(self) -> AuthenticatedTransport:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_http and self._http is not None:
            if not self._http.closed:
                await self._http.close()
            self._http = None

    def _session(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
            self._owns_http = True
        return self._http

    def resolve(self, url: str) -> str:
        if urlsplit(url).scheme:
            return url
        return urljoin(self.base_url + "/", url.lstrip("/"))

    async def call(
        self,
        url: str,
        method: str = "GET",
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> TransportResponse:
        """
        Send a signed request.

        Raises ``NoIdentityError`` with no active identity,
        ``UnsupportedBodyTypeError`` for unsignable bodies and
        ``NetworkError`` on connection failure or a non-2xx status.

        The signed path is the URL path exactly as written, percent-escapes
        included.  A server that rebuilds the payload from the decoded path
        will reject requests whose path contains escapes, so keep signed
        paths to unreserved characters.
        """
        identity = self._store.active_identity
        if identity is None:
            raise NoIdentityError()

        variant = coerce_body(body)
        text = variant.render() if variant is not None else None
        full_url = self.resolve(url)
        # origin and query are not part of the signed payload
        path = urlsplit(full_url).path or "/"
        method = method.upper()

        envelope = sign_request(method, path, text, identity.private_key, identity.public_key)
        merged = merge_headers(headers, envelope.to_headers())
        if variant is not None and not any(k.lower() == "content-type" for k in merged):
            merged["Content-Type"] = variant.content_type

        return await self._send(method, full_url, text, merged)

    async def call_public(self, url: str, method: str = "GET",
                          headers: dict[str, str] | None = None) -> TransportResponse:
        """Send an unsigned request (health checks and similar)."""
        caller = {k: v for k, v in (headers or {}).items()
                  if k.lower() not in {h.lower() for h in AUTH_HEADERS}}
        return await self._send(method.upper(), self.resolve(url), None, caller)

    async def _send(self, method: str, url: str, text: str | None,
                    headers: dict[str, str]) -> TransportResponse:
        data = text.encode("utf-8") if text is not None else None
        try:
            async with self._session().request(
                method, url, data=data, headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                # lossy: invalid UTF-8 becomes U+FFFD
                raw = (await response.read()).decode("utf-8", errors="replace")
                status = response.status
                reason = response.reason
                resp_headers = dict(response.headers)
        except aiohttp.ClientError as exc:
            logger.warning("%s %s failed: %s", method, urlsplit(url).path, exc)
            raise NetworkError(f"Network error: {exc}") from exc
        except asyncio.TimeoutError as exc:
            logger.warning("%s %s timed out", method, urlsplit(url).path)
            raise NetworkError(f"Request timed out after {self.timeout}s") from exc

        if not 200 <= status < 300:
            message = _error_message(status, reason, raw)
            path = urlsplit(url).path
            logger.info("%s %s -> %d", method, path, status,
                        extra={"method": method, "path": path, "status": status})
            raise NetworkError(message, status=status)

        return TransportResponse(_parse_data(raw), status, resp_headers)


# ═══════════════════════════════════════════════════════════════════
#  API client
# ═══════════════════════════════════════════════════════════════════

class CoreSendClient:
    """The few server endpoints the session core needs."""

    def __init__(self, transport: AuthenticatedTransport,
                 register_path: str = "/api/register",
                 health_path: str = "/api/health"):
        self.transport = transport
        self.register_path = register_path
        self.health_path = health_path

    @classmethod
    def from_config(cls, transport: AuthenticatedTransport, api: APIConfig) -> CoreSendClient:
        return cls(transport, api.register_path, api.health_path)

    async def register_address(self, address: str) -> bool:
        """
        Register *address* with the server.

        Usable directly as the ``register`` collaborator of
        ``SessionStore.add_inbox``.  Raises ``NetworkError`` on failure.
        """
        resp = await self.transport.call(
            self.register_path, "POST", JsonBody({"address": address}),
        )
        logger.info("Registered address %s", address)
        return 200 <= resp.status < 300

    async def health(self) -> Any:
        resp = await self.transport.call_public(self.health_path)
        return resp.data
