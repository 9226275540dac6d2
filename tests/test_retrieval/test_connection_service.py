"""Tests for ConnectionService over the in-memory store."""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from degrees.errors import RateLimited, StoreUnavailable
from degrees.retrieval.connection_service import ConnectionService
from degrees.storage.memory_store import MemoryGraphStore
from degrees.utils.config import Config
from degrees.utils.rate_limiter import ClientRateLimiter


@pytest.fixture
def config(tmp_path, monkeypatch: pytest.MonkeyPatch) -> Config:
    monkeypatch.chdir(tmp_path)
    return Config()


@pytest.fixture
def store() -> MemoryGraphStore:
    store = MemoryGraphStore()
    for person_id, name in [
        (1, "Leonardo DiCaprio"),
        (2, "Kate Winslet"),
        (3, "Leon Kennedy"),
        (4, "Tom Hardy"),
        (5, "Nobody Connected"),
    ]:
        store.upsert_person(person_id, name)
    store.upsert_costar_edge(1, 2, 597, "Titanic", 1997)
    store.upsert_costar_edge(1, 4, 27205, "Inception", 2010)
    store.upsert_costar_edge(3, 4, 1000, "Somewhere", 2015)
    return store


@pytest.fixture
def service(config: Config, store: MemoryGraphStore) -> ConnectionService:
    return ConnectionService(config, store=store)


def test_find_connection(service: ConnectionService) -> None:
    result = service.find_connection(2, 3)

    assert result.found
    assert result.degrees == 3
    assert [s.person.tmdb_id for s in result.steps if s.is_person] == [2, 1, 4, 3]


def test_same_person_zero_degrees(service: ConnectionService, store: MemoryGraphStore) -> None:
    result = service.find_connection(1, 1)

    assert result.same_person
    assert result.found
    assert result.degrees == 0
    assert result.steps == []


def test_no_connection(service: ConnectionService) -> None:
    result = service.find_connection(1, 5)

    assert not result.found
    assert result.degrees == 0


def test_search_people(service: ConnectionService) -> None:
    names = [p.name for p in service.search_people("Leo")]

    assert sorted(names) == ["Leon Kennedy", "Leonardo DiCaprio"]
    assert service.search_people("   ") == []
    assert service.search_people("") == []
    assert len(service.search_people("Leo", limit=1)) == 1


def test_get_stats(service: ConnectionService) -> None:
    stats = service.get_stats()

    assert stats.person_count == 5
    assert stats.edge_count == 3
    assert stats.most_connected_name == "Leonardo DiCaprio"
    assert stats.most_connected_degree == 2


def test_is_ready(config: Config) -> None:
    store = Mock(spec=MemoryGraphStore)
    service = ConnectionService(config, store=store)
    assert service.is_ready()

    store.verify_connectivity.side_effect = StoreUnavailable("graph store unavailable")
    assert not service.is_ready()


def test_client_rate_limit(config: Config, store: MemoryGraphStore) -> None:
    limiter = ClientRateLimiter(rate=0.001, burst=2)
    service = ConnectionService(config, store=store, client_limiter=limiter)

    service.search_people("Leo", client_key="203.0.113.7")
    service.get_stats(client_key="203.0.113.7")

    with pytest.raises(RateLimited):
        service.find_connection(1, 2, client_key="203.0.113.7")

    # Other clients and keyless calls are unaffected
    assert service.find_connection(1, 2, client_key="198.51.100.1").degrees == 1
    assert service.find_connection(1, 2).degrees == 1


def test_client_limits_disabled(config: Config, store: MemoryGraphStore) -> None:
    config.retrieval.enable_client_limits = False

    service = ConnectionService(config, store=store)

    assert service.client_limiter is None
