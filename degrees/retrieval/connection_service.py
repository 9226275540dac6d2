"""Query-side service: shortest connections, name lookup, and graph stats.

Thin layer over a :class:`GraphStore` that adds the degree count, blank-input
handling, and optional per-client rate limiting.
"""

import time
from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from degrees.errors import RateLimited, StoreUnavailable
from degrees.storage import GraphStore, create_graph_store
from degrees.storage.schemas import GraphStats, PathStep, Person
from degrees.utils.config import Config
from degrees.utils.rate_limiter import ClientRateLimiter


class ConnectionResult(BaseModel):
    """Shortest connection between two people."""

    model_config = ConfigDict(extra="allow")

    source_id: int = Field(..., description="First person id")
    target_id: int = Field(..., description="Second person id")
    steps: List[PathStep] = Field(default_factory=list, description="Alternating person/movie steps")
    degrees: int = Field(default=0, ge=0, description="Number of movies on the path")
    same_person: bool = Field(default=False, description="Both ids name the same person")
    retrieval_time_ms: float = Field(default=0.0, ge=0.0)

    @property
    def found(self) -> bool:
        return self.same_person or bool(self.steps)


class ConnectionService:
    """Answer "how are these two people connected" questions."""

    def __init__(
        self,
        config: Config,
        store: Optional[GraphStore] = None,
        client_limiter: Optional[ClientRateLimiter] = None,
    ) -> None:
        """Initialize the service.

        Args:
            config: Configuration object
            store: Graph store (created from config if None)
            client_limiter: Per-client limiter; built from config when client
                limits are enabled and none is given
        """
        self.config = config
        self.retrieval_config = config.retrieval
        self.store = store if store is not None else create_graph_store(config.database)

        if client_limiter is None and self.retrieval_config.enable_client_limits:
            client_limiter = ClientRateLimiter(
                rate=self.retrieval_config.client_rate_limit,
                burst=self.retrieval_config.client_burst,
                idle_ttl=self.retrieval_config.idle_ttl,
                cleanup_interval=self.retrieval_config.cleanup_interval,
            )
        self.client_limiter = client_limiter

    def _check_client(self, client_key: Optional[str]) -> None:
        if client_key is None or self.client_limiter is None:
            return
        if not self.client_limiter.allow(client_key):
            raise RateLimited(client_key)

    def find_connection(
        self, id_a: int, id_b: int, client_key: Optional[str] = None
    ) -> ConnectionResult:
        """Find the shortest costar path between two people.

        Args:
            id_a: First person id
            id_b: Second person id
            client_key: Caller identity for rate limiting

        Returns:
            ConnectionResult; ``found`` is False when no path exists

        Raises:
            RateLimited: Caller exceeded its quota
            StoreUnavailable: Graph store unreachable
        """
        self._check_client(client_key)

        if id_a == id_b:
            return ConnectionResult(source_id=id_a, target_id=id_b, same_person=True)

        started = time.time()
        steps = self.store.shortest_path(id_a, id_b)
        elapsed_ms = (time.time() - started) * 1000

        result = ConnectionResult(
            source_id=id_a,
            target_id=id_b,
            steps=steps,
            degrees=(len(steps) - 1) // 2 if steps else 0,
            retrieval_time_ms=elapsed_ms,
        )
        logger.debug(
            f"Path {id_a} -> {id_b}: {result.degrees} degrees "
            f"({'found' if steps else 'none'}) in {elapsed_ms:.1f}ms"
        )
        return result

    def search_people(
        self, query: str, limit: Optional[int] = None, client_key: Optional[str] = None
    ) -> List[Person]:
        """Prefix search over person names. Blank queries match nothing."""
        self._check_client(client_key)

        if not query or not query.strip():
            return []
        return self.store.search_by_prefix(
            query.strip(), limit if limit is not None else self.retrieval_config.search_limit
        )

    def get_stats(self, client_key: Optional[str] = None) -> GraphStats:
        self._check_client(client_key)
        return self.store.stats()

    def is_ready(self) -> bool:
        """True when the graph store answers a connectivity probe."""
        try:
            self.store.verify_connectivity()
        except StoreUnavailable as exc:
            logger.warning(f"Graph store not ready: {exc}")
            return False
        return True

    def close(self) -> None:
        self.store.close()
