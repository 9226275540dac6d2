"""Neo4j graph database manager for people, costar relationships, and ingest state."""

import re
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Sequence

from loguru import logger
from neo4j import GraphDatabase, ManagedTransaction, Session
from neo4j.exceptions import Neo4jError, ServiceUnavailable, SessionExpired

from degrees.errors import StoreUnavailable
from degrees.storage.schemas import CostarEdge, GraphStats, PathStep, Person
from degrees.utils.config import DatabaseConfig

WATERMARK_KEY = "popular_movies"
PERSON_FULLTEXT_INDEX = "person_name_fulltext"

# Characters with meaning in Lucene query syntax
_LUCENE_SPECIAL = re.compile(r'([+\-!(){}\[\]^"~*?:\\/&|])')


def build_prefix_query(text: str) -> str:
    """Turn user input into a Lucene query where every token must match as a prefix.

    ``"leo dic"`` becomes ``"leo* AND dic*"``. Returns an empty string for blank input.
    """
    tokens = [_LUCENE_SPECIAL.sub(r"\\\1", token.lower()) for token in text.split()]
    return " AND ".join(f"{token}*" for token in tokens if token)


class Neo4jManager:
    """Manager for Neo4j graph database operations.

    Handles connection pooling, schema creation, idempotent upserts for people and
    costar relationships, and the shortest-path, search, and statistics queries.

    Attributes:
        uri: Neo4j connection URI
        user: Neo4j username
        password: Neo4j password
        database: Neo4j database name
        driver: Neo4j driver instance
    """

    def __init__(self, config: DatabaseConfig):
        """Initialize Neo4j manager with configuration.

        Args:
            config: Database configuration
        """
        self.uri = config.neo4j_uri
        self.user = config.neo4j_user
        self.password = config.neo4j_password
        self.database = config.neo4j_database
        self.max_pool_size = config.neo4j_max_pool_size
        self.driver = None
        self._connected = False

    def connect(self) -> None:
        """Establish connection to Neo4j database.

        Raises:
            StoreUnavailable: If the server cannot be reached
            Neo4jError: If connection fails for another reason (e.g. bad credentials)
        """
        try:
            self.driver = GraphDatabase.driver(
                self.uri,
                auth=(self.user, self.password),
                max_connection_pool_size=self.max_pool_size,
            )
            self.driver.verify_connectivity()
            self._connected = True
            logger.info(f"Connected to Neo4j at {self.uri}")
        except ServiceUnavailable as e:
            logger.error(f"Neo4j unreachable at {self.uri}: {e}")
            raise StoreUnavailable(f"graph store unreachable at {self.uri}") from e
        except Neo4jError as e:
            logger.error(f"Failed to connect to Neo4j: {e}")
            raise

    def close(self) -> None:
        """Close connection to Neo4j database."""
        if self.driver:
            self.driver.close()
            self._connected = False
            logger.info("Closed Neo4j connection")

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Context manager for Neo4j session.

        Driver-level unavailability raised inside the block surfaces as StoreUnavailable.

        Yields:
            Neo4j session instance

        Raises:
            RuntimeError: If not connected to database
        """
        if not self._connected or not self.driver:
            raise RuntimeError("Not connected to Neo4j. Call connect() first.")

        session = self.driver.session(database=self.database)
        try:
            yield session
        except (ServiceUnavailable, SessionExpired) as e:
            logger.error(f"Neo4j unavailable: {e}")
            raise StoreUnavailable("graph store unavailable") from e
        finally:
            session.close()

    def create_schema(self) -> None:
        """Create constraints and indexes. Safe to run repeatedly.

        Creates:
        - Uniqueness constraint on Person.tmdb_id
        - Full-text index on Person.name
        - Uniqueness constraint on IngestState.key
        - Property index on COSTARRED.tmdb_movie_id
        """
        statements = [
            (
                "Person uniqueness constraint",
                "CREATE CONSTRAINT person_tmdb_id_unique IF NOT EXISTS "
                "FOR (p:Person) REQUIRE p.tmdb_id IS UNIQUE",
            ),
            (
                "Person full-text index",
                f"CREATE FULLTEXT INDEX {PERSON_FULLTEXT_INDEX} IF NOT EXISTS "
                "FOR (p:Person) ON EACH [p.name]",
            ),
            (
                "IngestState uniqueness constraint",
                "CREATE CONSTRAINT ingest_state_key_unique IF NOT EXISTS "
                "FOR (s:IngestState) REQUIRE s.key IS UNIQUE",
            ),
            (
                "COSTARRED movie index",
                "CREATE INDEX costarred_movie_id IF NOT EXISTS "
                "FOR ()-[r:COSTARRED]-() ON (r.tmdb_movie_id)",
            ),
        ]
        with self.session() as session:
            for label, statement in statements:
                session.run(statement)
                logger.info(f"Created {label}")

            logger.info("Neo4j schema creation completed")

    # Write operations

    def upsert_person(self, person_id: int, name: str) -> None:
        """Create the person if absent, otherwise overwrite its name."""
        with self.session() as session:
            session.run(
                "MERGE (p:Person {tmdb_id: $id}) SET p.name = $name",
                id=person_id,
                name=name,
            ).consume()
            logger.debug(f"Upserted person {person_id}")

    def upsert_costar_edge(
        self, id_a: int, id_b: int, production_id: int, title: str, year: int
    ) -> None:
        """Create or refresh the costar relationship for an unordered pair and a movie.

        Both people must already exist; self pairs are ignored.
        """
        if id_a == id_b:
            logger.debug(f"Ignoring self pair for person {id_a}")
            return

        low, high = (id_a, id_b) if id_a < id_b else (id_b, id_a)
        query = """
        MATCH (a:Person {tmdb_id: $low}), (b:Person {tmdb_id: $high})
        MERGE (a)-[r:COSTARRED {tmdb_movie_id: $movie_id}]->(b)
        SET r.movie_title = $title, r.year = $year
        RETURN count(r) AS edges
        """
        with self.session() as session:
            record = session.run(
                query, low=low, high=high, movie_id=production_id, title=title, year=year
            ).single()
            if not record or record["edges"] == 0:
                logger.warning(
                    f"Costar edge {low}-{high} ({production_id}) skipped: person not found"
                )

    def upsert_cast(self, people: Sequence[Person], edges: Sequence[CostarEdge]) -> None:
        """Upsert a production's people and pairwise edges in one write transaction.

        Either everything for the production is committed or nothing is.
        """
        people_params = [person.to_neo4j_dict() for person in people]
        edge_params = [edge.model_dump() for edge in edges]

        def _write(tx: ManagedTransaction) -> None:
            tx.run(
                """
                UNWIND $people AS person
                MERGE (p:Person {tmdb_id: person.tmdb_id})
                SET p.name = person.name
                """,
                people=people_params,
            ).consume()
            tx.run(
                """
                UNWIND $edges AS edge
                MATCH (a:Person {tmdb_id: edge.person_a}), (b:Person {tmdb_id: edge.person_b})
                MERGE (a)-[r:COSTARRED {tmdb_movie_id: edge.production_id}]->(b)
                SET r.movie_title = edge.title, r.year = edge.year
                """,
                edges=edge_params,
            ).consume()

        with self.session() as session:
            session.execute_write(_write)
            logger.debug(f"Upserted {len(people_params)} people and {len(edge_params)} edges")

    def get_watermark(self) -> int:
        """Return the last completed catalog page, 0 if none."""
        with self.session() as session:
            record = session.run(
                "MATCH (s:IngestState {key: $key}) RETURN s.last_page AS page",
                key=WATERMARK_KEY,
            ).single()
            if record is None or record["page"] is None:
                return 0
            return int(record["page"])

    def set_watermark(self, page: int) -> None:
        """Overwrite the last completed catalog page."""
        with self.session() as session:
            session.run(
                """
                MERGE (s:IngestState {key: $key})
                SET s.last_page = $page, s.updated_at = datetime()
                """,
                key=WATERMARK_KEY,
                page=page,
            ).consume()
            logger.debug(f"Watermark set to page {page}")

    # Query operations

    def shortest_path(self, id_a: int, id_b: int) -> List[PathStep]:
        """Find a minimum-hop path between two people.

        Returns:
            Alternating person/movie steps, or an empty list when no path exists
        """
        if id_a == id_b:
            return []

        query = """
        MATCH (a:Person {tmdb_id: $idA}), (b:Person {tmdb_id: $idB}),
              p = shortestPath((a)-[:COSTARRED*]-(b))
        RETURN [n IN nodes(p) | {id: n.tmdb_id, name: n.name}] AS people,
               [r IN relationships(p) | {id: r.tmdb_movie_id, title: r.movie_title, year: r.year}] AS movies
        """
        with self.session() as session:
            record = session.run(query, idA=id_a, idB=id_b).single()

        if record is None:
            return []

        return self._assemble_path(record["people"], record["movies"])

    @staticmethod
    def _assemble_path(
        people: List[Dict[str, Any]], movies: List[Dict[str, Any]]
    ) -> List[PathStep]:
        steps: List[PathStep] = []
        for i, node in enumerate(people):
            steps.append(PathStep(person=Person(tmdb_id=int(node["id"]), name=node["name"] or "")))
            if i < len(movies):
                movie = movies[i]
                steps.append(
                    PathStep(
                        movie_id=movie.get("id"),
                        movie_title=movie.get("title") or "",
                        movie_year=int(movie.get("year") or 0),
                    )
                )
        return steps

    def search_by_prefix(self, text: str, limit: int) -> List[Person]:
        """Search people whose name tokens start with the given text.

        Args:
            text: Prefix text (multiple words must all match)
            limit: Maximum number of results

        Returns:
            People ordered by full-text score, highest first
        """
        lucene_query = build_prefix_query(text)
        if not lucene_query or limit <= 0:
            return []

        query = f"""
        CALL db.index.fulltext.queryNodes('{PERSON_FULLTEXT_INDEX}', $query)
        YIELD node, score
        RETURN node.tmdb_id AS id, node.name AS name
        ORDER BY score DESC, node.tmdb_id ASC
        LIMIT $limit
        """
        with self.session() as session:
            result = session.run(query, query=lucene_query, limit=limit)
            return [Person(tmdb_id=int(record["id"]), name=record["name"] or "") for record in result]

    def stats(self) -> GraphStats:
        """Count people and relationships and find the most connected person.

        Degree counts each incident relationship once. Ties go to the lowest id.
        """
        query = """
        OPTIONAL MATCH (p:Person)
        WITH count(p) AS personCount
        OPTIONAL MATCH ()-[r:COSTARRED]->()
        WITH personCount, count(r) AS edgeCount
        OPTIONAL MATCH (p:Person)-[r:COSTARRED]-()
        WITH personCount, edgeCount, p, count(r) AS degree
        ORDER BY degree DESC, p.tmdb_id ASC
        LIMIT 1
        RETURN personCount, edgeCount, p.name AS topName, degree AS topDegree
        """
        with self.session() as session:
            record = session.run(query).single()

        if record is None:
            return GraphStats()

        stats = GraphStats(
            person_count=int(record["personCount"] or 0),
            edge_count=int(record["edgeCount"] or 0),
        )
        if record["topName"] is not None:
            stats.most_connected_name = record["topName"]
            stats.most_connected_degree = int(record["topDegree"] or 0)
        return stats

    # Utility Methods

    def verify_connectivity(self) -> None:
        """Fast liveness probe.

        Raises:
            StoreUnavailable: If the store cannot be reached
        """
        if not self._connected or not self.driver:
            raise StoreUnavailable("graph store not connected")
        try:
            self.driver.verify_connectivity()
        except (ServiceUnavailable, SessionExpired) as e:
            raise StoreUnavailable("graph store unavailable") from e

    def health_check(self) -> bool:
        """Check if Neo4j connection is healthy.

        Returns:
            True if connection is healthy, False otherwise
        """
        try:
            self.verify_connectivity()
            return True
        except StoreUnavailable as e:
            logger.error(f"Health check failed: {e}")
            return False

    def clear(self) -> None:
        """Clear all nodes and relationships from database (use with caution).

        Warning:
            This will delete all data in the database, including the watermark!
        """
        with self.session() as session:
            session.run("MATCH (n) DETACH DELETE n").consume()
            logger.warning("Cleared all data from Neo4j database")
