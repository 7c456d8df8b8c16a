from __future__ import annotations


class GTrendsExplorerError(Exception):
    """Base class for pipeline errors."""


class NetworkFailure(GTrendsExplorerError):
    """Raw graph or top-queries fetch failed (or timed out)."""


class ProtocolFailure(GTrendsExplorerError):
    """Decomposition engine reply was malformed, or the round trip broke down."""


class StaleResponse(GTrendsExplorerError):
    """
    A response arrived for a run that is no longer current.

    Raised inside the controller only; it ends the stale run and is never shown to users.
    """

    def __init__(self, generation: int, current: int) -> None:
        super().__init__(f"response for generation {generation} (current is {current})")
        self.generation = generation
        self.current = current
