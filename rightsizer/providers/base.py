"""
Shared HTTP plumbing for the vCenter and vROps providers.

Each provider owns one httpx.AsyncClient for the lifetime of a run.
``connect()`` authenticates and is the only place a failure is fatal
(ProviderConnectionError); after that, HTTP failures are translated into
the per-resource error type the provider passes to ``_request``.
GET requests are retried on transport errors; mutations are not.
"""

from typing import Any, Dict, Optional, Type

import httpx

from ..core.errors import ProviderConnectionError, RightsizerError
from ..core.logging import get_logger
from ..utils.helpers import retry

logger = get_logger(__name__)


class HttpProvider:
    name = "http"

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        verify_ssl: bool = True,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = host if host.startswith(("http://", "https://")) else f"https://{host}"
        self.username = username
        self.password = password
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # ─────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────

    async def connect(self) -> None:
        if self._client is not None:
            return
        client = httpx.AsyncClient(
            base_url=self.base_url,
            verify=self.verify_ssl,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )
        try:
            await self._login(client)
        except httpx.HTTPStatusError as e:
            await client.aclose()
            raise ProviderConnectionError(
                self.name, f"authentication failed: HTTP {e.response.status_code}"
            ) from e
        except httpx.TransportError as e:
            await client.aclose()
            raise ProviderConnectionError(self.name, f"{self.base_url} unreachable: {e}") from e
        self._client = client
        logger.info(f"[{self.name}] Connected to {self.base_url}")

    async def close(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        try:
            await self._logout(client)
        except httpx.HTTPError as e:
            logger.warning(f"[{self.name}] Logout failed: {e}")
        finally:
            await client.aclose()

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def get_status(self) -> Dict[str, Any]:
        """Connection check in the same shape for every provider."""
        status: Dict[str, Any] = {"host": self.base_url, "authenticated": False, "error": None}
        try:
            await self.connect()
            status["authenticated"] = True
        except ProviderConnectionError as e:
            status["error"] = str(e)
        return status

    # ─────────────────────────────────────────────────────────
    # Hooks
    # ─────────────────────────────────────────────────────────

    async def _login(self, client: httpx.AsyncClient) -> None:
        raise NotImplementedError

    async def _logout(self, client: httpx.AsyncClient) -> None:
        return None

    # ─────────────────────────────────────────────────────────
    # Requests
    # ─────────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        error_cls: Type[RightsizerError],
        **kwargs,
    ) -> httpx.Response:
        if self._client is None:
            raise ProviderConnectionError(self.name, "not connected")
        send = self._send_idempotent if method == "GET" else self._client.request
        try:
            response = await send(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise error_cls(
                f"{method} {path} -> HTTP {e.response.status_code}: {_error_message(e.response)}"
            ) from e
        except httpx.TransportError as e:
            raise error_cls(f"{method} {path} failed: {e}") from e
        return response

    @retry(max_attempts=3, delay_seconds=1.0, exceptions=(httpx.TransportError,))
    async def _send_idempotent(self, method: str, path: str, **kwargs) -> httpx.Response:
        return await self._client.request(method, path, **kwargs)


def _error_message(response: httpx.Response) -> str:
    """Best-effort human message from a vSphere / vROps error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        messages = body.get("messages") or []
        if messages and isinstance(messages[0], dict):
            return messages[0].get("default_message") or str(messages[0])
        return body.get("message") or body.get("error_type") or str(body)[:200]
    return str(body)[:200]
