"""
Base payment client implementing shared concerns: http, timeouts, retry,
error normalisation and logging.

Concrete providers subclass this and implement provider-specific logic.
"""
from __future__ import annotations

from typing import Any, Callable, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from domain.payment.exceptions import UpstreamError


logger = get_logger(__name__)


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        base_url: str = "",
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeouts,
                transport=self._transport,
            )
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _send(self, method: str, path: str, *, retry: bool = False, **kwargs: Any) -> httpx.Response:
        """Issue one request; transport failures surface as UpstreamError."""
        try:
            async with self.client() as http:
                if retry:
                    return await self._retry(lambda: http.request(method, path, **kwargs))
                return await http.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            self._log("provider_request_timeout", method=method, path=path)
            raise UpstreamError(
                "Payment provider timed out",
                provider=self.provider,
                details={"path": path},
            ) from exc
        except httpx.HTTPError as exc:
            self._log("provider_request_failed", method=method, path=path, error=str(exc))
            raise UpstreamError(
                f"Payment provider request failed: {exc}",
                provider=self.provider,
                details={"path": path},
            ) from exc

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def _raise_for_status(self, response: httpx.Response, operation: str) -> None:
        if response.is_success:
            return
        body = self._json(response)
        self._log(
            "provider_error_response",
            operation=operation,
            status_code=response.status_code,
            provider_code=body.get("name"),
            debug_id=body.get("debug_id"),
        )
        raise UpstreamError(
            body.get("message") or f"{operation} failed with HTTP {response.status_code}",
            provider=self.provider,
            provider_code=body.get("name"),
            status_code=response.status_code,
            details={"operation": operation, "debug_id": body.get("debug_id"), "raw": body or response.text},
        )

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
