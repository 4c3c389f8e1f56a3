"""Data models for portsweep."""

import time
from dataclasses import dataclass, field


class PortsweepError(Exception):
    """Base class for errors raised by portsweep."""


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable record of one process and the TCP ports it listens on."""

    pid: int
    ports: tuple[int, ...]  # Ascending, no duplicates
    name: str  # As reported by lsof, may be truncated
    user: str
    command: str  # Raw full command line

    @property
    def lowest_port(self) -> int:
        """Lowest listening port, or 0 if the record has no ports."""
        if not self.ports:
            return 0
        return self.ports[0]


@dataclass(slots=True)
class BatchKillPlan:
    """
    Ordered queue of processes awaiting termination.

    The cursor points at the entry whose termination is currently in flight.
    """

    targets: list[ProcessRecord] = field(default_factory=list)
    cursor: int = 0
    failures: int = 0

    @property
    def active(self) -> bool:
        return bool(self.targets)

    @property
    def exhausted(self) -> bool:
        return self.cursor >= len(self.targets)

    @property
    def current(self) -> ProcessRecord | None:
        if not self.active or self.exhausted:
            return None
        return self.targets[self.cursor]

    @property
    def remaining(self) -> int:
        """Entries still waiting after the current one."""
        return max(0, len(self.targets) - self.cursor - 1)

    def advance(self) -> ProcessRecord | None:
        """Move past the current entry and return the next one, if any."""
        self.cursor += 1
        return self.current

    def clear(self) -> None:
        self.targets = []
        self.cursor = 0
        self.failures = 0


@dataclass(slots=True, frozen=True)
class StatusMessage:
    """Transient message shown in the status line."""

    text: str
    level: str = "info"  # 'info' or 'error'
    created_at: float = field(default_factory=time.monotonic)

    def is_expired(self, timeout: float, now: float | None = None) -> bool:
        if now is None:
            now = time.monotonic()
        return now - self.created_at >= timeout
