"""Graph store interface shared by the Neo4j and in-memory backends."""

from typing import List, Protocol, Sequence

from degrees.storage.schemas import CostarEdge, GraphStats, PathStep, Person


class GraphStore(Protocol):
    """Persistence and query operations over the costar graph.

    Writes are idempotent: the same person id or the same
    (unordered pair, production id) triple always addresses one record.
    """

    def create_schema(self) -> None: ...

    def upsert_person(self, person_id: int, name: str) -> None: ...

    def upsert_costar_edge(
        self, id_a: int, id_b: int, production_id: int, title: str, year: int
    ) -> None: ...

    def upsert_cast(self, people: Sequence[Person], edges: Sequence[CostarEdge]) -> None: ...

    def shortest_path(self, id_a: int, id_b: int) -> List[PathStep]: ...

    def search_by_prefix(self, text: str, limit: int) -> List[Person]: ...

    def stats(self) -> GraphStats: ...

    def get_watermark(self) -> int: ...

    def set_watermark(self, page: int) -> None: ...

    def verify_connectivity(self) -> None: ...

    def clear(self) -> None: ...

    def close(self) -> None: ...
