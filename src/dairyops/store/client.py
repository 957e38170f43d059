"""HTTP client for the PostgREST data store."""

import asyncio
import json
import time
from collections.abc import Iterable, Sequence
from typing import Any, NamedTuple

import aiohttp

from dairyops.common.http import get_request_id
from dairyops.common.logging import get_logger
from dairyops.common.metrics import record_store_call
from dairyops.common.settings import Settings
from dairyops.common.tracing import span
from dairyops.store.circuit import CircuitBreaker

logger = get_logger(__name__)

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"


class Filter(NamedTuple):
    """A single PostgREST horizontal filter."""

    column: str
    operator: str
    value: Any

    def as_param(self) -> tuple[str, str]:
        return self.column, f"{self.operator}.{_format_value(self.value)}"


def _format_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def eq(column: str, value: Any) -> Filter:
    """Equality filter."""
    return Filter(column, "eq", value)


def ilike(column: str, pattern: str) -> Filter:
    """Case-insensitive pattern filter; ``*`` is the wildcard."""
    return Filter(column, "ilike", pattern)


def contains_text(column: str, text: str) -> Filter:
    """Case-insensitive substring match."""
    return ilike(column, f"*{text}*")


class StoreError(Exception):
    """Error communicating with the data store."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    @property
    def is_unique_violation(self) -> bool:
        """Whether the store rejected a write on a unique constraint."""
        return self.code == UNIQUE_VIOLATION or "duplicate key" in self.message

    @property
    def is_foreign_key_violation(self) -> bool:
        """Whether a write referenced a row that does not exist."""
        return self.code == FOREIGN_KEY_VIOLATION


class StoreClient:
    """
    HTTP client for Supabase PostgREST table and RPC operations.

    Authenticates with the service role key and returns row representations
    for every write. Includes circuit breaker for resilience.
    """

    def __init__(
        self,
        settings: Settings,
        circuit_breaker: CircuitBreaker | None = None,
    ):
        """
        Initialize the store client.

        Args:
            settings: Application settings
            circuit_breaker: Optional circuit breaker instance
        """
        self._base = settings.rest_url
        self._service_key = settings.supabase_service_role_key or ""
        self._timeout = aiohttp.ClientTimeout(total=settings.http_timeout)
        self._session: aiohttp.ClientSession | None = None
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=settings.store_failure_threshold,
            recovery_timeout=settings.store_recovery_timeout,
            half_open_max_calls=settings.store_half_open_max_calls,
        )

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        """Get the circuit breaker instance."""
        return self._circuit_breaker

    async def __aenter__(self) -> "StoreClient":
        """Enter async context."""
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context."""
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure session exists."""
        if not self._session:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        request_id = get_request_id()
        if request_id:
            headers["X-Request-ID"] = request_id
        return headers

    async def _send(self, method: str, url: str, **kwargs: Any) -> tuple[int, str]:
        """
        Send one request through the circuit breaker and read the body.

        A timeout or connection failure, while sending or while reading,
        counts as a store outage; so does any 5xx. 4xx are caller errors.

        Raises:
            CircuitBreakerOpen: If the circuit does not admit the request
            StoreError: On transport failure or timeout
        """
        self._circuit_breaker.before_call()
        session = self._ensure_session()

        try:
            response = await session.request(method, url, **kwargs)
            async with response:
                status = response.status
                text = "" if status == 204 else await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._circuit_breaker.record_failure()
            raise StoreError(f"Request failed: {e!r}") from e
        except asyncio.CancelledError:
            self._circuit_breaker.release()
            raise

        if status >= 500:
            self._circuit_breaker.record_failure()
        else:
            self._circuit_breaker.record_success()
        return status, text

    async def _execute(
        self,
        operation: str,
        method: str,
        path: str,
        params: Sequence[tuple[str, str]] | None = None,
        payload: Any = None,
        prefer: str | None = None,
    ) -> Any:
        url = f"{self._base}/{path}"
        kwargs: dict[str, Any] = {"headers": self._headers(prefer)}
        if params:
            kwargs["params"] = list(params)
        if payload is not None:
            kwargs["data"] = json.dumps(payload)

        start = time.perf_counter()
        failed = True
        try:
            with span("store." + operation, {"store.path": path, "http.method": method}):
                status, text = await self._send(method, url, **kwargs)
                if status >= 400:
                    raise self._error_from(status, text)
                failed = False
                return json.loads(text) if text else None
        finally:
            record_store_call(operation, time.perf_counter() - start, failed=failed)

    @staticmethod
    def _error_from(status: int, text: str) -> StoreError:
        code = None
        message = text or f"HTTP {status}"
        try:
            body = json.loads(text)
        except ValueError:
            body = None
        if isinstance(body, dict):
            code = body.get("code")
            message = body.get("message") or message
        logger.warning("Store request failed", status=status, code=code, error=message)
        return StoreError(message, status, code)

    @staticmethod
    def _filter_params(filters: Iterable[Filter]) -> list[tuple[str, str]]:
        return [f.as_param() for f in filters]

    # === Table Operations ===

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Iterable[Filter] = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Read rows from a table.

        Args:
            table: Table name
            columns: PostgREST select expression
            filters: Horizontal filters, ANDed together
            limit: Maximum rows returned

        Returns:
            Matching rows
        """
        params = [("select", columns), *self._filter_params(filters)]
        if limit is not None:
            params.append(("limit", str(limit)))
        rows = await self._execute("select", "GET", table, params=params)
        return rows or []

    async def select_one(
        self,
        table: str,
        columns: str = "*",
        filters: Iterable[Filter] = (),
    ) -> dict[str, Any] | None:
        """Read the first matching row, or None."""
        rows = await self.select(table, columns=columns, filters=filters, limit=1)
        return rows[0] if rows else None

    async def insert(
        self,
        table: str,
        rows: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """Insert rows and return their stored representation."""
        result = await self._execute(
            "insert",
            "POST",
            table,
            payload=rows,
            prefer="return=representation",
        )
        return result or []

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        filters: Iterable[Filter],
    ) -> list[dict[str, Any]]:
        """Update matching rows and return them."""
        result = await self._execute(
            "update",
            "PATCH",
            table,
            params=self._filter_params(filters),
            payload=values,
            prefer="return=representation",
        )
        return result or []

    async def delete(
        self,
        table: str,
        filters: Iterable[Filter],
    ) -> list[dict[str, Any]]:
        """Delete matching rows and return them."""
        result = await self._execute(
            "delete",
            "DELETE",
            table,
            params=self._filter_params(filters),
            prefer="return=representation",
        )
        return result or []

    # === Remote Procedures ===

    async def rpc(self, function: str, params: dict[str, Any]) -> Any:
        """
        Call a database function.

        Returns:
            The decoded function result: a list for set-returning
            functions, a single value or None otherwise
        """
        logger.debug("Calling store function", function=function)
        return await self._execute("rpc", "POST", f"rpc/{function}", payload=params)
