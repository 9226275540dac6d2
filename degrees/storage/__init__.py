"""Graph storage backends."""

from degrees.storage.base import GraphStore
from degrees.storage.memory_store import MemoryGraphStore
from degrees.storage.neo4j_manager import Neo4jManager
from degrees.utils.config import DatabaseConfig


def create_graph_store(config: DatabaseConfig) -> GraphStore:
    """Build and connect the configured graph store backend."""
    if config.graph_backend == "memory":
        return MemoryGraphStore(config.memory_snapshot_path or None)

    manager = Neo4jManager(config)
    manager.connect()
    return manager


__all__ = ["GraphStore", "MemoryGraphStore", "Neo4jManager", "create_graph_store"]
