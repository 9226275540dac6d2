"""Resumable ingestion of the provider catalog into the costar graph.

This module orchestrates the ingestion workflow:
1. Fetch one catalog page of popular movies
2. Fetch the top-billed cast of every movie on the page (thread pool)
3. Upsert the people and one costar edge per unordered pair of cast members
4. Persist the page number as the ingestion watermark

Pages run strictly in order. The watermark is only written once every movie on
the page has been handled, so an interrupted page is simply processed again on
the next resumed run; upserts make that reprocessing harmless.
"""

import sys
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from itertools import combinations
from types import TracebackType
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict

from degrees.errors import Cancelled, StoreUnavailable, ThrottleExhausted, TransportFailure
from degrees.providers.tmdb_client import TMDBClient
from degrees.storage import GraphStore, create_graph_store
from degrees.storage.schemas import CostarEdge, Person, Production
from degrees.utils.config import MIN_CAST, Config


class PageState(str, Enum):
    """Lifecycle of one catalog page."""

    PENDING = "pending"
    FETCHING = "fetching"
    UPSERTING = "upserting"
    WATERMARK_PERSISTED = "watermark_persisted"


class PageResult(BaseModel):
    """Outcome of one catalog page."""

    page: int
    state: PageState = PageState.PENDING
    productions_total: int = 0
    productions_ingested: int = 0
    productions_skipped: int = 0
    watermark_held: bool = False
    beyond_catalog: bool = False
    error: Optional[str] = None


class IngestionResult(BaseModel):
    """Outcome of one pipeline run."""

    model_config = ConfigDict(extra="allow")

    start_page: int
    end_page: Optional[int] = None
    pages: List[PageResult] = []
    watermark: int = 0
    cancelled: bool = False
    aborted: bool = False
    error: Optional[str] = None
    processing_time: float = 0.0

    @property
    def pages_completed(self) -> int:
        return sum(1 for p in self.pages if p.state == PageState.WATERMARK_PERSISTED)

    @property
    def success(self) -> bool:
        return not (self.cancelled or self.aborted)


def unique_people(cast: Iterable[Person]) -> List[Person]:
    """Drop repeated ids (one person credited for several roles), keeping billing order."""
    seen: set[int] = set()
    people = []
    for person in cast:
        if person.tmdb_id not in seen:
            seen.add(person.tmdb_id)
            people.append(person)
    return people


def costar_edges(production: Production, people: List[Person]) -> List[CostarEdge]:
    """One edge per unordered pair of distinct people: C(k, 2) edges for k people."""
    return [
        CostarEdge.between(a.tmdb_id, b.tmdb_id, production)
        for a, b in combinations(unique_people(people), 2)
    ]


class IngestionPipeline:
    """Page-by-page catalog ingestion with a resumable watermark.

    Example:
        >>> with IngestionPipeline(config) as pipeline:
        ...     result = pipeline.run(end_page=5, resume=True)
        >>> print(f"Completed {result.pages_completed} pages")
    """

    def __init__(
        self,
        config: Config,
        *,
        fetcher: Optional[TMDBClient] = None,
        store: Optional[GraphStore] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """Initialize the ingestion pipeline.

        Args:
            config: Application configuration
            fetcher: Provider client (built from config when omitted)
            store: Graph store (built from config when omitted)
            cancel_event: Shared shutdown signal
        """
        self.config = config
        self.fetcher = fetcher
        self.store = store
        self.max_workers = config.pipeline.max_workers
        self._cancel_event = cancel_event or threading.Event()

        self.stats = {
            "pages_completed": 0,
            "pages_skipped": 0,
            "productions_ingested": 0,
            "productions_skipped": 0,
            "people_upserted": 0,
            "edges_upserted": 0,
            "total_processing_time": 0.0,
        }

        logger.info("IngestionPipeline initialized")

    def initialize_components(self) -> None:
        """Build the fetcher and graph store if they were not injected."""
        if self.fetcher is None:
            self.fetcher = TMDBClient.from_config(self.config)
        if self.store is None:
            self.store = create_graph_store(self.config.database)
        logger.debug("All pipeline components initialized")

    def cancel(self) -> None:
        """Request a cooperative stop. Safe to call from a signal handler."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def run(
        self,
        start_page: int = 1,
        end_page: Optional[int] = None,
        max_participants: Optional[int] = None,
        *,
        resume: bool = False,
    ) -> IngestionResult:
        """Ingest catalog pages in increasing order.

        Args:
            start_page: First page to process (ignored when resuming)
            end_page: Last page to process; None means every page the provider reports
            max_participants: Cast cap per movie (defaults to ``pipeline.max_cast``)
            resume: Start from the page after the stored watermark

        Returns:
            IngestionResult with per-page outcomes
        """
        started = time.time()
        self.initialize_components()
        store = self.store
        assert store is not None

        cap = max_participants if max_participants is not None else self.config.pipeline.max_cast
        if cap < MIN_CAST:
            raise ValueError(f"max_participants must be at least {MIN_CAST}")

        watermark = store.get_watermark()
        if resume:
            start_page = watermark + 1
            logger.info(f"Resuming from page {start_page}")

        last_page = end_page if end_page is not None else sys.maxsize
        result = IngestionResult(start_page=start_page, end_page=end_page, watermark=watermark)

        if start_page > last_page:
            logger.info(f"Nothing to do: first page {start_page} > last page {last_page}")
            return result

        # Set once a page is skipped; later pages still run but cannot move the
        # watermark past the gap.
        gap_page: Optional[int] = None
        page = start_page

        while page <= last_page:
            if self.cancelled:
                logger.info("Interrupted, stopping ingest")
                result.cancelled = True
                break

            page_result = PageResult(page=page)
            result.pages.append(page_result)

            try:
                store.verify_connectivity()
                last_page = self._process_page(page_result, last_page, cap)
            except Cancelled:
                logger.info(f"Interrupted during page {page}; watermark left at {result.watermark}")
                page_result.state = PageState.PENDING
                result.cancelled = True
                break
            except StoreUnavailable as exc:
                logger.error(f"Graph store unavailable on page {page}, aborting: {exc}")
                page_result.state = PageState.PENDING
                page_result.error = str(exc)
                result.aborted = True
                result.error = str(exc)
                break

            if page_result.beyond_catalog:
                break

            if page_result.error:
                self.stats["pages_skipped"] += 1
                if gap_page is None:
                    gap_page = page
                if last_page == sys.maxsize:
                    # No page has reported a total, so there is no bound to walk towards.
                    logger.error(f"Stopping at page {page}: catalog size unknown")
                    break
            elif gap_page is not None:
                page_result.watermark_held = True
                page_result.state = PageState.PENDING
                logger.warning(
                    f"Page {page} ingested but watermark held at {result.watermark} "
                    f"until page {gap_page} succeeds"
                )
            else:
                try:
                    store.set_watermark(page)
                except StoreUnavailable as exc:
                    logger.error(f"Error saving ingest state for page {page}: {exc}")
                    page_result.state = PageState.PENDING
                    page_result.error = str(exc)
                    result.aborted = True
                    result.error = str(exc)
                    break
                page_result.state = PageState.WATERMARK_PERSISTED
                result.watermark = page
                self.stats["pages_completed"] += 1

            page += 1

        result.end_page = None if last_page == sys.maxsize else last_page
        result.processing_time = time.time() - started
        self.stats["total_processing_time"] += result.processing_time

        logger.info(
            f"Ingest finished: {result.pages_completed}/{len(result.pages)} pages completed, "
            f"watermark {result.watermark}, {result.processing_time:.2f}s"
        )
        return result

    def _process_page(self, page_result: PageResult, last_page: int, cap: int) -> int:
        """Fetch and ingest one page. Returns the (possibly shrunk) last page."""
        fetcher = self.fetcher
        assert fetcher is not None
        page = page_result.page

        page_result.state = PageState.FETCHING
        try:
            catalog = fetcher.fetch_catalog_page(page, cancel_event=self._cancel_event)
        except (TransportFailure, ThrottleExhausted) as exc:
            logger.error(f"Error fetching popular movies page {page}, skipping: {exc}")
            page_result.state = PageState.PENDING
            page_result.error = str(exc)
            return last_page

        if catalog.total_pages < last_page:
            logger.debug(f"Provider reports {catalog.total_pages} pages; shrinking end page")
            last_page = catalog.total_pages

        if page > catalog.total_pages:
            logger.info(f"Page {page} is past the provider's last page {catalog.total_pages}")
            page_result.state = PageState.PENDING
            page_result.beyond_catalog = True
            return last_page

        page_result.productions_total = len(catalog.productions)
        logger.info(f"Processing page {page}/{last_page} ({len(catalog.productions)} movies)")

        page_result.state = PageState.UPSERTING
        self._ingest_productions(catalog.productions, cap, page_result)
        return last_page

    def _ingest_productions(
        self, productions: List[Production], cap: int, page_result: PageResult
    ) -> None:
        """Fetch casts concurrently and write them from this thread, in page order."""
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures: List[Future] = [
                executor.submit(self._fetch_cast, production, cap) for production in productions
            ]
            try:
                for i, (production, future) in enumerate(zip(productions, futures), 1):
                    if self.cancelled:
                        raise Cancelled("ingestion cancelled")

                    logger.debug(
                        f"  Movie {i}/{len(productions)}: {production.title!r} ({production.year})"
                    )
                    try:
                        cast = future.result()
                    except (TransportFailure, ThrottleExhausted) as exc:
                        logger.warning(
                            f"Error fetching cast for {production.title!r} "
                            f"(tmdb={production.tmdb_id}), skipping: {exc}"
                        )
                        self._skip(page_result)
                        continue

                    self._store_cast(production, cast, page_result)
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

    def _fetch_cast(self, production: Production, cap: int) -> List[Person]:
        fetcher = self.fetcher
        assert fetcher is not None
        return fetcher.fetch_participants(
            production.tmdb_id, cap, cancel_event=self._cancel_event
        )

    def _store_cast(
        self, production: Production, cast: List[Person], page_result: PageResult
    ) -> None:
        store = self.store
        assert store is not None

        people = unique_people(cast)
        edges = costar_edges(production, people)
        try:
            store.upsert_cast(people, edges)
        except StoreUnavailable as exc:
            # A failed connectivity check means the store is down, not just this write.
            store.verify_connectivity()
            logger.warning(f"Error ingesting cast for {production.title!r}, skipping: {exc}")
            self._skip(page_result)
            return
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"Error ingesting cast for {production.title!r}, skipping: {exc}")
            self._skip(page_result)
            return

        logger.debug(f"    Ingested {len(people)} people and {len(edges)} costar edges")
        page_result.productions_ingested += 1
        self.stats["productions_ingested"] += 1
        self.stats["people_upserted"] += len(people)
        self.stats["edges_upserted"] += len(edges)

    def _skip(self, page_result: PageResult) -> None:
        page_result.productions_skipped += 1
        self.stats["productions_skipped"] += 1

    def get_statistics(self) -> Dict[str, Any]:
        """Get pipeline processing statistics."""
        return self.stats.copy()

    def health_check(self) -> Dict[str, bool]:
        """Check health of pipeline components."""
        health = {"fetcher": self.fetcher is not None}
        try:
            if self.store is None:
                health["graph_store"] = False
            else:
                self.store.verify_connectivity()
                health["graph_store"] = True
        except StoreUnavailable:
            health["graph_store"] = False
        return health

    def close(self) -> None:
        """Clean up pipeline resources."""
        if self.fetcher:
            self.fetcher.close()
        if self.store:
            self.store.close()
        logger.info("IngestionPipeline closed")

    def __enter__(self) -> "IngestionPipeline":
        """Context manager entry."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Context manager exit."""
        self.close()
