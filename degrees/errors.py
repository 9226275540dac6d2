"""Exception hierarchy shared by the fetcher, graph store, and pipeline.

"No path" and "no match" are not errors; those come back as empty results.
"""


class DegreesError(Exception):
    """Base class for all degrees-of-separation errors."""


class Cancelled(DegreesError):
    """Cooperative shutdown was requested while waiting."""


class ThrottleExhausted(DegreesError):
    """The provider kept throttling after all retry attempts."""

    def __init__(self, url: str, attempts: int) -> None:
        super().__init__(f"exceeded {attempts} attempts due to rate limiting: {url}")
        self.url = url
        self.attempts = attempts


class TransportFailure(DegreesError):
    """Network, status, or decode failure talking to the metadata provider."""


class StoreUnavailable(DegreesError):
    """The graph store cannot be reached."""


class RateLimited(DegreesError):
    """A client exceeded its query quota."""

    def __init__(self, client_key: str) -> None:
        super().__init__(f"rate limit exceeded for client {client_key}")
        self.client_key = client_key
