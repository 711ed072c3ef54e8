"""Error taxonomy for routing and synchronization."""

from __future__ import annotations

from typing import Sequence


class OrderRouterError(Exception):
    """Base class for every error raised by the order router."""


class BackendUnavailable(OrderRouterError):
    """An external collaborator failed or timed out."""

    def __init__(self, backend: str, cause: BaseException | None = None) -> None:
        self.backend = backend
        self.cause = cause
        detail = f": {cause!r}" if cause is not None else ""
        super().__init__(f"{backend} unavailable{detail}")

    @property
    def timed_out(self) -> bool:
        return isinstance(self.cause, TimeoutError)


class RetrievalUnavailable(OrderRouterError):
    """Both the record store and the vector index are unreachable."""

    def __init__(self, query: str, failures: Sequence[BackendUnavailable]) -> None:
        self.query = query
        self.failures = list(failures)
        backends = ", ".join(failure.backend for failure in self.failures) or "all backends"
        super().__init__(f"No retrieval backend available for query ({backends})")


class PartialSyncFailure(OrderRouterError):
    """One or more synchronizer batches failed."""

    def __init__(self, run_id: str, errors: Sequence[object]) -> None:
        self.run_id = run_id
        self.errors = list(errors)
        super().__init__(f"Sync run {run_id} finished with {len(self.errors)} failed batch(es)")


class AmbiguousIntent(OrderRouterError):
    """Entity extraction found a phrase it could not resolve."""

    def __init__(self, entity: str, phrase: str) -> None:
        self.entity = entity
        self.phrase = phrase
        super().__init__(f"Could not resolve {entity} from {phrase!r}")


__all__ = [
    "OrderRouterError",
    "BackendUnavailable",
    "RetrievalUnavailable",
    "PartialSyncFailure",
    "AmbiguousIntent",
]
