"""Tests for the in-memory networkx graph store."""

from __future__ import annotations

from pathlib import Path

import pytest

from degrees.errors import StoreUnavailable
from degrees.storage.memory_store import MemoryGraphStore
from degrees.storage.schemas import CostarEdge, Person, Production


@pytest.fixture
def store() -> MemoryGraphStore:
    return MemoryGraphStore()


def _chain(store: MemoryGraphStore) -> None:
    """A -M1- X -M2- B -M3- Y -M4- C"""
    for person_id, name in [(1, "A"), (2, "X"), (3, "B"), (4, "Y"), (5, "C")]:
        store.upsert_person(person_id, name)
    for movie_id, (a, b) in enumerate([(1, 2), (2, 3), (3, 4), (4, 5)], start=1):
        store.upsert_costar_edge(a, b, movie_id, f"M{movie_id}", 2000 + movie_id)


def test_person_upsert_idempotent(store: MemoryGraphStore) -> None:
    store.upsert_person(1, "Old Name")
    store.upsert_person(1, "New Name")

    stats = store.stats()
    assert stats.person_count == 1
    assert store.search_by_prefix("new", 10) == [Person(tmdb_id=1, name="New Name")]


def test_edge_upsert_idempotent_in_either_order(store: MemoryGraphStore) -> None:
    store.upsert_person(1, "A")
    store.upsert_person(2, "B")

    store.upsert_costar_edge(1, 2, 100, "Title", 2000)
    store.upsert_costar_edge(2, 1, 100, "Retitled", 2002)
    store.upsert_costar_edge(1, 2, 101, "Other", 2001)

    assert store.stats().edge_count == 2
    assert store.graph.get_edge_data(1, 2)[100] == {"title": "Retitled", "year": 2002}


def test_self_pair_and_unknown_person_ignored(store: MemoryGraphStore) -> None:
    store.upsert_person(1, "A")

    store.upsert_costar_edge(1, 1, 100, "Title", 2000)
    store.upsert_costar_edge(1, 99, 100, "Title", 2000)

    assert store.stats().edge_count == 0


def test_upsert_cast(store: MemoryGraphStore) -> None:
    production = Production(tmdb_id=7, title="Heat", year=1995)
    people = [Person(tmdb_id=i, name=f"P{i}") for i in (1, 2, 3)]
    edges = [CostarEdge.between(a, b, production) for a, b in [(1, 2), (1, 3), (2, 3)]]

    store.upsert_cast(people, edges)
    store.upsert_cast(people, edges)

    stats = store.stats()
    assert stats.person_count == 3
    assert stats.edge_count == 3


def test_shortest_path_two_degrees(store: MemoryGraphStore) -> None:
    _chain(store)
    store.upsert_costar_edge(1, 3, 9, "Shortcut", 2009)
    store.upsert_costar_edge(3, 5, 10, "Shortcut 2", 2010)

    steps = store.shortest_path(1, 5)

    assert len(steps) == 5
    assert (len(steps) - 1) // 2 == 2
    assert [s.person.name for s in steps if s.is_person] == ["A", "B", "C"]
    assert [s.movie_title for s in steps if not s.is_person] == ["Shortcut", "Shortcut 2"]


def test_shortest_path_prefers_lowest_movie_id(store: MemoryGraphStore) -> None:
    store.upsert_person(1, "A")
    store.upsert_person(2, "B")
    store.upsert_costar_edge(1, 2, 500, "Later", 2010)
    store.upsert_costar_edge(1, 2, 50, "Earlier", 1990)

    steps = store.shortest_path(2, 1)

    assert steps[0].person.tmdb_id == 2
    assert steps[1].movie_id == 50
    assert steps[2].person.tmdb_id == 1


def test_shortest_path_none(store: MemoryGraphStore) -> None:
    _chain(store)
    store.upsert_person(42, "Loner")

    assert store.shortest_path(1, 42) == []
    assert store.shortest_path(1, 999) == []
    assert store.shortest_path(1, 1) == []


def test_prefix_search(store: MemoryGraphStore) -> None:
    store.upsert_person(6193, "Leonardo DiCaprio")
    store.upsert_person(4, "Leon Kennedy")
    store.upsert_person(5, "Kate Winslet")
    store.upsert_person(6, "Cleo Smith")

    names = [p.name for p in store.search_by_prefix("Leo", 10)]

    assert names == ["Leon Kennedy", "Leonardo DiCaprio"]
    assert [p.name for p in store.search_by_prefix("leo dic", 10)] == ["Leonardo DiCaprio"]
    assert store.search_by_prefix("Leo", 1) == [Person(tmdb_id=4, name="Leon Kennedy")]
    assert store.search_by_prefix("   ", 10) == []


def test_stats_empty_graph(store: MemoryGraphStore) -> None:
    stats = store.stats()

    assert stats.person_count == 0
    assert stats.edge_count == 0
    assert stats.most_connected_name is None
    assert stats.most_connected_degree == 0


def test_stats_most_connected(store: MemoryGraphStore) -> None:
    _chain(store)

    stats = store.stats()

    assert stats.person_count == 5
    assert stats.edge_count == 4
    # X, B and Y all have degree 2; lowest id wins
    assert stats.most_connected_name == "X"
    assert stats.most_connected_degree == 2


def test_watermark_and_snapshot_reload(tmp_path: Path) -> None:
    snapshot = tmp_path / "graph.pkl"
    store = MemoryGraphStore(snapshot)
    assert store.get_watermark() == 0

    _chain(store)
    store.set_watermark(3)
    store.close()

    reloaded = MemoryGraphStore(snapshot)
    assert reloaded.get_watermark() == 3
    assert reloaded.stats().edge_count == 4
    assert len(reloaded.shortest_path(1, 5)) == 9


def test_closed_store_unavailable(store: MemoryGraphStore) -> None:
    store.close()

    with pytest.raises(StoreUnavailable):
        store.verify_connectivity()
    with pytest.raises(StoreUnavailable):
        store.stats()


def test_clear(store: MemoryGraphStore) -> None:
    _chain(store)
    store.set_watermark(2)

    store.clear()

    assert store.stats().person_count == 0
    assert store.get_watermark() == 0
