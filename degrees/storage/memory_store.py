"""In-process graph store backed by a networkx MultiGraph.

Used for local runs without a Neo4j server and as the reference backend in tests.
Parallel edges are keyed by production id, so re-adding the same
(pair, production) triple updates the existing edge instead of adding one.

When a snapshot path is given, the graph is pickled every time the watermark is
written, so a snapshot never records a page as done without its data.
"""

import os
import pickle
import re
import threading
from pathlib import Path
from typing import List, Optional, Sequence

import networkx as nx
from loguru import logger

from degrees.errors import StoreUnavailable
from degrees.storage.schemas import CostarEdge, GraphStats, PathStep, Person

_TOKEN = re.compile(r"\w+", re.UNICODE)


class MemoryGraphStore:
    """Graph store that keeps people and costar edges in memory."""

    def __init__(self, snapshot_path: Optional[str | Path] = None) -> None:
        self.snapshot_path = Path(snapshot_path) if snapshot_path else None
        self.graph = nx.MultiGraph()
        self.watermark = 0
        self._lock = threading.RLock()
        self._closed = False

        if self.snapshot_path and self.snapshot_path.exists():
            self._load_snapshot()

    def _load_snapshot(self) -> None:
        with open(self.snapshot_path, "rb") as f:
            snapshot = pickle.load(f)
        self.graph = snapshot["graph"]
        self.watermark = int(snapshot.get("watermark", 0))
        logger.info(
            f"Loaded graph snapshot {self.snapshot_path}: {self.graph.number_of_nodes()} people, "
            f"{self.graph.number_of_edges()} edges, watermark {self.watermark}"
        )

    def _save_snapshot(self) -> None:
        if not self.snapshot_path:
            return
        self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.snapshot_path.with_suffix(self.snapshot_path.suffix + ".tmp")
        with open(tmp_path, "wb") as f:
            pickle.dump({"graph": self.graph, "watermark": self.watermark}, f, protocol=4)
        os.replace(tmp_path, self.snapshot_path)

    def _check_open(self) -> None:
        if self._closed:
            raise StoreUnavailable("memory graph store is closed")

    def create_schema(self) -> None:
        """Nothing to create; uniqueness is enforced by node and edge keys."""
        self._check_open()

    def upsert_person(self, person_id: int, name: str) -> None:
        with self._lock:
            self._check_open()
            self.graph.add_node(person_id, name=name)

    def upsert_costar_edge(
        self, id_a: int, id_b: int, production_id: int, title: str, year: int
    ) -> None:
        if id_a == id_b:
            return
        low, high = (id_a, id_b) if id_a < id_b else (id_b, id_a)
        with self._lock:
            self._check_open()
            if low not in self.graph or high not in self.graph:
                logger.warning(f"Costar edge {low}-{high} ({production_id}) skipped: person not found")
                return
            self.graph.add_edge(low, high, key=production_id, title=title, year=year)

    def upsert_cast(self, people: Sequence[Person], edges: Sequence[CostarEdge]) -> None:
        with self._lock:
            self._check_open()
            for person in people:
                self.graph.add_node(person.tmdb_id, name=person.name)
            for edge in edges:
                self.upsert_costar_edge(
                    edge.person_a, edge.person_b, edge.production_id, edge.title, edge.year
                )

    def get_watermark(self) -> int:
        with self._lock:
            self._check_open()
            return self.watermark

    def set_watermark(self, page: int) -> None:
        with self._lock:
            self._check_open()
            self.watermark = page
            self._save_snapshot()

    def shortest_path(self, id_a: int, id_b: int) -> List[PathStep]:
        """Breadth-first shortest path. Between two people the lowest production id wins."""
        with self._lock:
            self._check_open()
            if id_a == id_b or id_a not in self.graph or id_b not in self.graph:
                return []
            try:
                nodes = nx.shortest_path(self.graph, id_a, id_b)
            except nx.NetworkXNoPath:
                return []

            steps: List[PathStep] = []
            for i, node in enumerate(nodes):
                steps.append(PathStep(person=self._person(node)))
                if i + 1 < len(nodes):
                    edges = self.graph.get_edge_data(node, nodes[i + 1])
                    movie_id = min(edges)
                    data = edges[movie_id]
                    steps.append(
                        PathStep(
                            movie_id=movie_id,
                            movie_title=data.get("title", ""),
                            movie_year=data.get("year", 0),
                        )
                    )
            return steps

    def search_by_prefix(self, text: str, limit: int) -> List[Person]:
        """Every query token must be a prefix of some name token.

        Score favours tighter prefixes: "Leo" scores higher on "Leon" than on "Leonardo".
        """
        query_tokens = [token.lower() for token in _TOKEN.findall(text)]
        if not query_tokens or limit <= 0:
            return []

        scored = []
        with self._lock:
            self._check_open()
            for node, data in self.graph.nodes(data=True):
                name = data.get("name", "")
                name_tokens = [token.lower() for token in _TOKEN.findall(name)]
                total = 0.0
                for query_token in query_tokens:
                    matches = [t for t in name_tokens if t.startswith(query_token)]
                    if not matches:
                        break
                    total += len(query_token) / min(len(t) for t in matches)
                else:
                    scored.append((total / len(query_tokens), node, name))

        scored.sort(key=lambda item: (-item[0], item[1]))
        return [Person(tmdb_id=node, name=name) for _, node, name in scored[:limit]]

    def stats(self) -> GraphStats:
        with self._lock:
            self._check_open()
            stats = GraphStats(
                person_count=self.graph.number_of_nodes(),
                edge_count=self.graph.number_of_edges(),
            )
            ranked = sorted(
                ((degree, node) for node, degree in self.graph.degree() if degree > 0),
                key=lambda item: (-item[0], item[1]),
            )
            if ranked:
                degree, node = ranked[0]
                stats.most_connected_name = self.graph.nodes[node].get("name", "")
                stats.most_connected_degree = degree
            return stats

    def _person(self, node: int) -> Person:
        return Person(tmdb_id=node, name=self.graph.nodes[node].get("name", ""))

    def verify_connectivity(self) -> None:
        self._check_open()

    def clear(self) -> None:
        with self._lock:
            self._check_open()
            self.graph.clear()
            self.watermark = 0
            logger.warning("Cleared in-memory graph")

    def close(self) -> None:
        with self._lock:
            self._closed = True
