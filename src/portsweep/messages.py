"""Requests issued by AppState and the results that come back."""

from dataclasses import dataclass, field

from portsweep.models import ProcessRecord


@dataclass(slots=True, frozen=True)
class DiscoverRequest:
    """Ask for a fresh snapshot of listening processes."""


@dataclass(slots=True, frozen=True)
class KillRequest:
    """Ask for one process to be terminated."""

    pid: int
    port: int  # Lowest port, for status messages
    remaining: int  # Entries left in the batch after this one


@dataclass(slots=True, frozen=True)
class DiscoveryResult:
    """Outcome of a DiscoverRequest; error is set when discovery failed."""

    processes: tuple[ProcessRecord, ...] = field(default_factory=tuple)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True, frozen=True)
class KillResult:
    """Outcome of a KillRequest."""

    pid: int
    port: int
    remaining: int
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


Request = DiscoverRequest | KillRequest
Result = DiscoveryResult | KillResult
