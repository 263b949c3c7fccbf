"""Supabase PostgREST client for the credential directory and message store."""

from typing import Any, Iterable, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.config.settings import SupabaseConfig, settings
from src.utils.logging import get_logger

logger = get_logger(__name__)

Filter = tuple[str, str]


class StoreError(Exception):
    """PostgREST request rejected or failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StoreUnavailableError(StoreError):
    """Store unreachable, timed out, or returned a server error (retryable)."""

    pass


class StoreNotConfiguredError(StoreError):
    """Supabase URL or service key missing from configuration."""

    pass


def _quote(value: Any) -> str:
    """Quote a value for a PostgREST ``in`` list (message ids contain ``<>@,``)."""
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def eq(column: str, value: Any) -> Filter:
    return (column, f"eq.{value}")


def is_null(column: str) -> Filter:
    return (column, "is.null")


def in_(column: str, values: Iterable[Any]) -> Filter:
    return (column, f"in.({','.join(_quote(v) for v in values)})")


def owner_is(owner_id: Optional[str]) -> Filter:
    """Owner partition filter; None selects the anonymous (NULL owner) partition."""
    return eq("owner_id", owner_id) if owner_id else is_null("owner_id")


def _parse_total(content_range: Optional[str]) -> Optional[int]:
    """Total row count from a ``Content-Range: 0-49/123`` header."""
    if not content_range or "/" not in content_range:
        return None
    total = content_range.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else None


class SupabaseService:
    """Thin async PostgREST client with retry on transient failures."""

    def __init__(
        self,
        config: Optional[SupabaseConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            config: Supabase settings (defaults to global settings)
            transport: Optional httpx transport, used to stub the store in tests
        """
        self.config = config or settings.supabase
        self.base_url = f"{self.config.url.rstrip('/')}/rest/v1"
        key = self.config.service_role_key.get_secret_value()
        self.headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return self.config.is_configured

    async def _send(
        self,
        method: str,
        table: str,
        params: list[tuple[str, Any]],
        json: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.config.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.request(
                    method,
                    f"/{table}",
                    params=params,
                    json=json,
                    headers={**self.headers, **(headers or {})},
                )
        except httpx.TimeoutException as e:
            logger.error("Store request timed out", table=table, method=method, error=str(e))
            raise StoreUnavailableError("Store timeout") from e
        except httpx.TransportError as e:
            logger.error("Store connection failed", table=table, method=method, error=str(e))
            raise StoreUnavailableError("Store connection failed") from e

        if response.status_code < 400:
            return response

        message = response.text
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get("message", message)

        if response.status_code >= 500:
            logger.error("Store server error", table=table, status=response.status_code, error=message)
            raise StoreUnavailableError(f"Server error: {message}", response.status_code)

        logger.warning("Store request rejected", table=table, status=response.status_code, error=message)
        raise StoreError(message, response.status_code)

    async def _request(
        self,
        method: str,
        table: str,
        params: Optional[list[tuple[str, Any]]] = None,
        json: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        """Send one request, retrying timeouts, connection errors and 5xx responses."""
        if not self.is_configured:
            raise StoreNotConfiguredError("Supabase URL or service key is not configured")

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.config.max_retries),
            wait=wait_exponential(multiplier=self.config.retry_backoff_base, max=10),
            retry=retry_if_exception_type(StoreUnavailableError),
            reraise=True,
        ):
            with attempt:
                return await self._send(method, table, params or [], json=json, headers=headers)

    async def select(
        self,
        table: str,
        filters: Iterable[Filter] = (),
        columns: str = "*",
        order: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Select rows matching all filters."""
        rows, _ = await self.select_with_count(
            table, filters, columns=columns, order=order, limit=limit, offset=offset, count=False
        )
        return rows

    async def select_with_count(
        self,
        table: str,
        filters: Iterable[Filter] = (),
        columns: str = "*",
        order: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        count: bool = True,
    ) -> tuple[list[dict[str, Any]], Optional[int]]:
        """
        Select rows, optionally asking PostgREST for the exact total.

        Returns:
            (rows, total) where total is None unless ``count`` is set
        """
        params: list[tuple[str, Any]] = [("select", columns), *filters]
        if order:
            params.append(("order", order))
        if limit is not None:
            params.append(("limit", limit))
        if offset:
            params.append(("offset", offset))

        headers = {"Prefer": "count=exact"} if count else None
        response = await self._request("GET", table, params=params, headers=headers)
        total = _parse_total(response.headers.get("Content-Range")) if count else None
        return response.json(), total

    async def upsert(self, table: str, record: dict[str, Any], on_conflict: str) -> None:
        """Insert a row, overwriting every supplied column on conflict."""
        await self._request(
            "POST",
            table,
            params=[("on_conflict", on_conflict)],
            json=record,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        """Insert a row and return it as stored."""
        response = await self._request(
            "POST",
            table,
            json=record,
            headers={"Prefer": "return=representation"},
        )
        rows = response.json()
        return rows[0] if isinstance(rows, list) and rows else rows

    async def update(self, table: str, values: dict[str, Any], filters: Iterable[Filter]) -> None:
        """Patch all rows matching the filters."""
        await self._request(
            "PATCH",
            table,
            params=list(filters),
            json=values,
            headers={"Prefer": "return=minimal"},
        )

    async def delete(self, table: str, filters: Iterable[Filter]) -> None:
        """Delete all rows matching the filters."""
        filters = list(filters)
        if not filters:
            raise ValueError("Refusing to delete without filters")
        await self._request(
            "DELETE",
            table,
            params=filters,
            headers={"Prefer": "return=minimal"},
        )

    async def check_health(self) -> bool:
        """Check that the PostgREST endpoint answers."""
        if not self.is_configured:
            return False
        try:
            async with httpx.AsyncClient(timeout=5.0, transport=self._transport) as client:
                response = await client.get(f"{self.base_url}/", headers=self.headers)
                return response.status_code < 500
        except Exception as e:
            logger.warning("Store health check failed", error=str(e))
            return False
