"""Tests for the store handle: timeouts, retries, batches."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from cassandra import OperationTimedOut
from cassandra.cluster import NoHostAvailable, Session
from cassandra.query import BatchStatement, BatchType

from src.config.settings import Settings
from src.core.database.store import StoreHandle
from src.core.errors import StorageUnavailableError


@pytest.fixture
def mock_session():
    """Mock Cassandra session with async execute (cassandra-asyncio-driver)."""
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda cql: Mock(name=cql))
    session.aexecute = AsyncMock(return_value=Mock())
    return session


@pytest.fixture
def handle(mock_session) -> StoreHandle:
    return StoreHandle(
        mock_session,
        "test_keyspace",
        timeout=0.5,
        retry_attempts=3,
        retry_base_delay=0,
    )


class TestExecute:
    """Tests for StoreHandle.execute."""

    @pytest.mark.asyncio
    async def test_returns_result(self, handle, mock_session) -> None:
        result = await handle.execute("SELECT 1", ("a",))

        assert result is mock_session.aexecute.return_value
        mock_session.aexecute.assert_awaited_once_with("SELECT 1", ("a",))

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self, handle, mock_session) -> None:
        ok = Mock()
        mock_session.aexecute.side_effect = [OperationTimedOut(), ok]

        assert await handle.execute("SELECT 1") is ok
        assert mock_session.aexecute.await_count == 2

    @pytest.mark.asyncio
    async def test_surfaces_storage_unavailable_after_retries(
        self, handle, mock_session
    ) -> None:
        failure = NoHostAvailable("no hosts", {})
        mock_session.aexecute.side_effect = failure

        with pytest.raises(StorageUnavailableError) as exc_info:
            await handle.execute("SELECT 1")

        assert mock_session.aexecute.await_count == 3
        assert exc_info.value.original_error is failure
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_times_out_hanging_calls(self, mock_session) -> None:
        async def hang(*_args):
            await asyncio.sleep(10)

        mock_session.aexecute.side_effect = hang
        handle = StoreHandle(
            mock_session, "ks", timeout=0.01, retry_attempts=2, retry_base_delay=0
        )

        with pytest.raises(StorageUnavailableError):
            await handle.execute("SELECT 1")
        assert mock_session.aexecute.await_count == 2

    @pytest.mark.asyncio
    async def test_other_errors_propagate_unchanged(self, handle, mock_session) -> None:
        mock_session.aexecute.side_effect = ValueError("bad query")

        with pytest.raises(ValueError, match="bad query"):
            await handle.execute("SELECT 1")
        assert mock_session.aexecute.await_count == 1


class TestBatch:
    """Tests for StoreHandle.execute_batch."""

    @pytest.mark.asyncio
    async def test_sends_one_logged_batch(self, handle, mock_session) -> None:
        await handle.execute_batch(
            [
                ("INSERT INTO t (a) VALUES (1)", ()),
                ("INSERT INTO t (a) VALUES (2)", ()),
            ]
        )

        mock_session.aexecute.assert_awaited_once()
        batch = mock_session.aexecute.await_args.args[0]
        assert isinstance(batch, BatchStatement)
        assert batch.batch_type == BatchType.LOGGED


class TestConstruction:
    def test_from_settings(self, mock_session) -> None:
        settings = Settings(
            cassandra_keyspace="enrollgate_x",
            storage_timeout_seconds=3.0,
            storage_retry_attempts=5,
            storage_retry_base_delay_seconds=0.1,
        )
        handle = StoreHandle.from_settings(mock_session, settings)

        assert handle.keyspace == "enrollgate_x"
        assert handle.timeout == 3.0
        assert handle.retry_attempts == 5
        assert handle.retry_base_delay == 0.1

    def test_prepare_delegates_to_session(self, handle, mock_session) -> None:
        handle.prepare("SELECT * FROM ks.t")
        mock_session.prepare.assert_called_once_with("SELECT * FROM ks.t")
