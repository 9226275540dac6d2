"""Rate-limited, retrying client for The Movie Database (TMDB) v3 API.

Every request first takes a token from a :class:`TokenBucket` that models the
provider's quota. HTTP 429 responses are retried with exponential backoff; any
other failure is raised immediately as :class:`TransportFailure`.
"""

import threading
import time
from types import TracebackType
from typing import Any, Dict, List, Optional

import requests
from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError

from degrees.errors import Cancelled, ThrottleExhausted, TransportFailure
from degrees.storage.schemas import CatalogPage, Person, Production
from degrees.utils.config import Config, TMDBConfig
from degrees.utils.rate_limiter import TokenBucket

THROTTLED_STATUS = 429


class _MovieResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    title: Optional[str] = ""
    release_date: Optional[str] = ""


class _PopularResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    total_pages: int = 0
    results: List[_MovieResult] = []


class _CastResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: Optional[str] = ""


class _CreditsResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    cast: List[_CastResult] = []


def parse_year(date: Optional[str]) -> int:
    """Extract the year from a ``YYYY-MM-DD`` date.

    Missing or malformed dates give 0 rather than an error.
    """
    if not date or "-" not in date:
        return 0
    year, _, _ = date.partition("-")
    try:
        return int(year)
    except ValueError:
        return 0


class TMDBClient:
    """Fetch catalog pages and cast lists from TMDB.

    Example:
        >>> client = TMDBClient.from_config(config)
        >>> page = client.fetch_catalog_page(1)
        >>> cast = client.fetch_participants(page.productions[0].tmdb_id, 20)
    """

    def __init__(
        self,
        config: TMDBConfig,
        *,
        api_token: Optional[str] = None,
        limiter: Optional[TokenBucket] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Provider client configuration
            api_token: Bearer token (defaults to ``config.api_token``)
            limiter: Shared token bucket (defaults to one built from config)
            session: HTTP session, injectable for tests
        """
        self.base_url = config.base_url.rstrip("/")
        self.api_version = config.api_version
        self.timeout = config.timeout
        self.max_retries = config.max_retries
        self.base_backoff = config.base_backoff
        self.limiter = limiter or TokenBucket(rate=config.rate_limit, burst=config.burst)

        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {api_token if api_token is not None else config.api_token}",
                "Accept": "application/json",
            }
        )

        self.stats = {"requests": 0, "throttled": 0}
        self._stats_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Config, **kwargs: Any) -> "TMDBClient":
        return cls(config.tmdb, api_token=config.api_token, **kwargs)

    def fetch_catalog_page(
        self, page: int, cancel_event: Optional[threading.Event] = None
    ) -> CatalogPage:
        """Fetch one page of popular movies.

        Args:
            page: 1-based page number
            cancel_event: Shutdown signal observed while waiting

        Returns:
            CatalogPage with the provider-reported total page count

        Raises:
            Cancelled: Shutdown requested mid-wait
            ThrottleExhausted: Still throttled after all attempts
            TransportFailure: Network, status, or decode error
        """
        payload = self._get("/movie/popular", params={"page": page}, cancel_event=cancel_event)
        try:
            response = _PopularResponse.model_validate(payload)
        except ValidationError as exc:
            raise TransportFailure(f"error decoding popular movies page {page}: {exc}") from exc

        productions = [
            Production(tmdb_id=r.id, title=r.title or "", year=parse_year(r.release_date))
            for r in response.results
        ]
        return CatalogPage(page=page, total_pages=response.total_pages, productions=productions)

    def fetch_participants(
        self,
        production_id: int,
        max_count: int,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[Person]:
        """Fetch the top-billed cast of a movie.

        Args:
            production_id: TMDB movie id
            max_count: Keep at most this many, in billing order
            cancel_event: Shutdown signal observed while waiting

        Returns:
            Cast members, possibly fewer than max_count
        """
        payload = self._get(f"/movie/{production_id}/credits", cancel_event=cancel_event)
        try:
            response = _CreditsResponse.model_validate(payload)
        except ValidationError as exc:
            raise TransportFailure(
                f"error decoding cast for movie {production_id}: {exc}"
            ) from exc

        return [
            Person(tmdb_id=member.id, name=member.name or "")
            for member in response.cast[: max(max_count, 0)]
        ]

    def _get(
        self,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Any:
        """GET a JSON document, retrying only on throttling responses."""
        url = f"{self.base_url}/{self.api_version}{path}"

        for attempt in range(self.max_retries):
            self.limiter.acquire(cancel_event=cancel_event)

            with self._stats_lock:
                self.stats["requests"] += 1
            try:
                response = self.session.get(url, params=params, timeout=self.timeout)
            except requests.RequestException as exc:
                raise TransportFailure(f"error making request to {url}: {exc}") from exc

            if response.status_code != THROTTLED_STATUS:
                return self._decode(url, response)

            response.close()
            with self._stats_lock:
                self.stats["throttled"] += 1

            if attempt == self.max_retries - 1:
                break

            backoff = self.base_backoff * (2**attempt)
            logger.warning(
                f"Throttled (429) - attempt {attempt + 1}/{self.max_retries}, "
                f"retrying in {backoff:.2f}s: {url}"
            )
            self._sleep(backoff, cancel_event)

        raise ThrottleExhausted(url, self.max_retries)

    @staticmethod
    def _decode(url: str, response: requests.Response) -> Any:
        if not response.ok:
            raise TransportFailure(f"unexpected status {response.status_code} from {url}")
        try:
            return response.json()
        except ValueError as exc:
            raise TransportFailure(f"error decoding response from {url}: {exc}") from exc

    @staticmethod
    def _sleep(seconds: float, cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is None:
            time.sleep(seconds)
        elif cancel_event.wait(seconds):
            raise Cancelled("backoff sleep cancelled")

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()

    def __enter__(self) -> "TMDBClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
