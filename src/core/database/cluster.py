"""Cassandra cluster connection and schema bootstrap.

Uses cassandra-asyncio-driver, whose sessions add ``aexecute()`` on top of
the standard cassandra-driver API. One ``CassandraCluster`` is opened by the
application lifespan; services only ever see the ``StoreHandle`` wrapping
its session.
"""

from typing import TYPE_CHECKING

from cassandra.auth import PlainTextAuthProvider
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra_asyncio.cluster import Cluster

from src.access_codes.models import ACCESS_CODES_TABLES_CQL
from src.accounts.models import ACCOUNTS_TABLES_CQL
from src.audit.models import AUDIT_TABLES_CQL
from src.core.logging import get_logger
from src.enrollments.models import ENROLLMENTS_TABLES_CQL


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from src.config.settings import Settings


logger = get_logger(__name__)

# (component, CREATE TABLE templates); audit first, every batch writes to it
SCHEMA: list[tuple[str, list[str]]] = [
    ("audit", AUDIT_TABLES_CQL),
    ("access_codes", ACCESS_CODES_TABLES_CQL),
    ("enrollments", ENROLLMENTS_TABLES_CQL),
    ("accounts", ACCOUNTS_TABLES_CQL),
]


def replication_clause(settings: "Settings") -> str:
    """Keyspace replication map for the current environment."""
    if settings.is_production:
        return (
            "{'class': 'NetworkTopologyStrategy', "
            f"'{settings.cassandra_datacenter}': "
            f"{settings.cassandra_replication_factor}}}"
        )
    return "{'class': 'SimpleStrategy', 'replication_factor': 1}"


async def bootstrap_schema(session: "Session", keyspace: str, replication: str) -> None:
    """Create the keyspace and every table that does not exist yet."""
    await session.aexecute(
        f"CREATE KEYSPACE IF NOT EXISTS {keyspace} "
        f"WITH replication = {replication} AND durable_writes = true"
    )
    for component, statements in SCHEMA:
        for template in statements:
            await session.aexecute(template.format(keyspace=keyspace))
        logger.info("cassandra_tables_ready", keyspace=keyspace, component=component)


class CassandraCluster:
    """Cluster connection owned by the application lifespan."""

    def __init__(self, settings: "Settings") -> None:
        self.settings = settings
        self._cluster: Cluster | None = None
        self._session: Session | None = None

    @property
    def is_connected(self) -> bool:
        return self._session is not None and not self._session.is_shutdown

    def _auth_provider(self) -> PlainTextAuthProvider | None:
        if self.settings.cassandra_username and self.settings.cassandra_password:
            return PlainTextAuthProvider(
                username=self.settings.cassandra_username,
                password=self.settings.cassandra_password,
            )
        return None

    async def open(self) -> "Session":
        """Connect and bootstrap the schema.

        Connecting is synchronous in the driver; every statement after it
        goes through ``aexecute``.

        Returns:
            Session bound to the configured keyspace

        Raises:
            ConnectionError: If no contact point can be reached
        """
        if self._session is not None:
            return self._session

        settings = self.settings
        cluster = Cluster(
            contact_points=settings.cassandra_hosts,
            port=settings.cassandra_port,
            auth_provider=self._auth_provider(),
            protocol_version=settings.cassandra_protocol_version,
            load_balancing_policy=TokenAwarePolicy(DCAwareRoundRobinPolicy()),
            connect_timeout=settings.cassandra_connect_timeout,
        )
        try:
            session = cluster.connect()
        except Exception as e:
            cluster.shutdown()
            logger.error(
                "cassandra_connection_failed",
                hosts=settings.cassandra_hosts,
                error=str(e),
            )
            msg = f"Failed to connect to Cassandra: {e}"
            raise ConnectionError(msg) from e

        logger.info(
            "cassandra_connected",
            hosts=settings.cassandra_hosts,
            port=settings.cassandra_port,
            protocol_version=settings.cassandra_protocol_version,
        )

        await bootstrap_schema(
            session, settings.cassandra_keyspace, replication_clause(settings)
        )
        session.set_keyspace(settings.cassandra_keyspace)

        self._cluster = cluster
        self._session = session
        return session

    def close(self) -> None:
        """Shut down the session and the cluster's connection pools."""
        if self._session is not None:
            self._session.shutdown()
            self._session = None
        if self._cluster is not None:
            self._cluster.shutdown()
            self._cluster = None
            logger.info("cassandra_disconnected")
