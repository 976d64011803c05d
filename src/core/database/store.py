"""Explicit store handle passed to every service.

Wraps the async Cassandra session with:
- a per-attempt timeout, so no call hangs indefinitely
- bounded exponential backoff on transient driver failures
- logged batches for writes that must land together

Transient failures that outlast the retry budget surface as
``StorageUnavailableError``; every other driver error propagates unchanged.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, Any

from cassandra import OperationTimedOut, ReadTimeout, Unavailable, WriteTimeout
from cassandra.cluster import NoHostAvailable
from cassandra.query import BatchStatement, BatchType

from src.core.errors import StorageUnavailableError
from src.core.logging import get_logger


if TYPE_CHECKING:
    from cassandra.cluster import ResultSet, Session

    from src.config.settings import Settings


logger = get_logger(__name__)

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    Unavailable,
    ReadTimeout,
    WriteTimeout,
    OperationTimedOut,
    NoHostAvailable,
    TimeoutError,
)

# (prepared statement, bound parameters)
StatementItem = tuple[Any, Sequence[Any]]


class StoreHandle:
    """Connection handle owned by the application lifespan."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        *,
        timeout: float = 10.0,
        retry_attempts: int = 3,
        retry_base_delay: float = 0.2,
    ) -> None:
        self.session = session
        self.keyspace = keyspace
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay

    @classmethod
    def from_settings(cls, session: "Session", settings: "Settings") -> "StoreHandle":
        """Build a handle using the storage settings."""
        return cls(
            session=session,
            keyspace=settings.cassandra_keyspace,
            timeout=settings.storage_timeout_seconds,
            retry_attempts=settings.storage_retry_attempts,
            retry_base_delay=settings.storage_retry_base_delay_seconds,
        )

    def prepare(self, cql: str) -> Any:
        """Prepare a CQL statement once, at service construction."""
        return self.session.prepare(cql)

    async def execute(
        self,
        statement: Any,
        params: Sequence[Any] | None = None,
    ) -> "ResultSet":
        """Execute one statement with timeout and retry."""
        return await self._run(
            lambda: self.session.aexecute(statement, params),
            operation="execute",
        )

    async def execute_batch(self, items: Sequence[StatementItem]) -> "ResultSet":
        """Execute statements as one logged batch: all land or none do."""
        batch = BatchStatement(batch_type=BatchType.LOGGED)
        for statement, params in items:
            batch.add(statement, params)
        return await self._run(
            lambda: self.session.aexecute(batch),
            operation="batch",
        )

    async def _run(
        self,
        call: Callable[[], Awaitable["ResultSet"]],
        operation: str,
    ) -> "ResultSet":
        delay = self.retry_base_delay
        last_error: BaseException | None = None

        for attempt in range(1, self.retry_attempts + 1):
            try:
                return await asyncio.wait_for(call(), timeout=self.timeout)
            except TRANSIENT_ERRORS as e:
                last_error = e
                logger.warning(
                    "storage_transient_failure",
                    operation=operation,
                    attempt=attempt,
                    max_attempts=self.retry_attempts,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if attempt < self.retry_attempts:
                    await asyncio.sleep(delay)
                    delay *= 2

        logger.error(
            "storage_unavailable",
            operation=operation,
            attempts=self.retry_attempts,
            error=str(last_error),
        )
        raise StorageUnavailableError(
            original_error=last_error if isinstance(last_error, Exception) else None
        ) from last_error

    def shutdown(self) -> None:
        """Close the underlying session."""
        self.session.shutdown()
