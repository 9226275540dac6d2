"""Pydantic models for people, productions, paths, and graph statistics."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Person(BaseModel):
    """A person node. ``tmdb_id`` is the sole uniqueness key."""

    model_config = ConfigDict(frozen=True)

    tmdb_id: int = Field(..., description="Stable external identifier")
    name: str = Field(..., description="Display name (refreshed on every upsert)")

    def to_neo4j_dict(self) -> Dict[str, Any]:
        return {"tmdb_id": self.tmdb_id, "name": self.name}


class Production(BaseModel):
    """A film whose cast forms a clique of costar relationships.

    Productions are never stored as nodes; their fields live on each edge.
    """

    model_config = ConfigDict(frozen=True)

    tmdb_id: int = Field(..., description="Stable external identifier")
    title: str = Field(default="", description="Production title")
    year: int = Field(default=0, description="Release year, 0 when unknown")


class CostarEdge(BaseModel):
    """An undirected costar relationship attributed to one production.

    The pair is stored low id first, so ``(a, b)`` and ``(b, a)`` are the same edge.
    """

    model_config = ConfigDict(frozen=True)

    person_a: int
    person_b: int
    production_id: int
    title: str = ""
    year: int = 0

    @classmethod
    def between(cls, id_a: int, id_b: int, production: Production) -> "CostarEdge":
        low, high = (id_a, id_b) if id_a <= id_b else (id_b, id_a)
        return cls(
            person_a=low,
            person_b=high,
            production_id=production.tmdb_id,
            title=production.title,
            year=production.year,
        )

    @property
    def key(self) -> tuple[int, int, int]:
        return (self.person_a, self.person_b, self.production_id)


class CatalogPage(BaseModel):
    """One page of the provider's catalog listing."""

    page: int
    total_pages: int = 0
    productions: List[Production] = Field(default_factory=list)


class PathStep(BaseModel):
    """One step of a shortest path.

    Person steps carry ``person``; production steps carry the movie fields.
    Paths alternate person, production, person, ...
    """

    person: Optional[Person] = None
    movie_id: Optional[int] = None
    movie_title: str = ""
    movie_year: int = 0

    @property
    def is_person(self) -> bool:
        return self.person is not None


class GraphStats(BaseModel):
    """Aggregate statistics over the whole graph."""

    person_count: int = 0
    edge_count: int = 0
    most_connected_name: Optional[str] = None
    most_connected_degree: int = 0
