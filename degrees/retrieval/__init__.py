"""Query-side services over the costar graph."""

from degrees.retrieval.connection_service import ConnectionResult, ConnectionService

__all__ = ["ConnectionResult", "ConnectionService"]
