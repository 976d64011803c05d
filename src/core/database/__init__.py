"""Cassandra connection and the store handle services run against."""

from src.core.database.cluster import CassandraCluster, bootstrap_schema
from src.core.database.store import StatementItem, StoreHandle


__all__ = [
    "CassandraCluster",
    "StatementItem",
    "StoreHandle",
    "bootstrap_schema",
]
