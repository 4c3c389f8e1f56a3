"""
Interactive state for portsweep.

AppState owns the snapshot, selection, search filter, kill confirmation and
batch-kill sequencing. It never does I/O itself: every operation returns
the follow-up request (if any) for the caller to run asynchronously, and
results are folded back in through apply_discovery / apply_kill_result.
"""

from dataclasses import dataclass
from enum import Enum

import structlog

from portsweep.messages import (
    DiscoverRequest,
    DiscoveryResult,
    KillRequest,
    KillResult,
    Request,
)
from portsweep.models import BatchKillPlan, ProcessRecord, StatusMessage

log = structlog.get_logger()

# Ports below this are hidden unless system ports are shown
SYSTEM_PORT_LIMIT = 1024


class Mode(Enum):
    """Input modes of the state machine."""

    NORMAL = "normal"
    SEARCHING = "searching"
    CONFIRMING = "confirming"


@dataclass(slots=True, frozen=True)
class InitialFilter:
    """
    Filter given on the command line, used to pre-select processes.

    An argument that parses as an integer is an exact port match; anything
    else is a case-insensitive substring match on name or command.
    """

    text: str
    port: int | None = None

    @classmethod
    def parse(cls, arg: str) -> "InitialFilter":
        try:
            return cls(text=arg, port=int(arg))
        except ValueError:
            return cls(text=arg)

    def matches(self, process: ProcessRecord) -> bool:
        if self.port is not None:
            return self.port in process.ports
        needle = self.text.lower()
        return needle in process.name.lower() or needle in process.command.lower()


class AppState:
    """State machine behind the interactive view."""

    def __init__(
        self,
        show_system_ports: bool = False,
        initial_filter: InitialFilter | None = None,
    ) -> None:
        self.processes: tuple[ProcessRecord, ...] = ()
        self.cursor = 0
        self.selected: dict[int, bool] = {}
        self.show_system_ports = show_system_ports
        self.mode = Mode.NORMAL
        self.query = ""
        self.kill_targets: list[ProcessRecord] = []
        self.plan = BatchKillPlan()
        self.status: StatusMessage | None = None
        self.last_error: str | None = None
        self.initial_filter = initial_filter
        self.loaded = False

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def searching(self) -> bool:
        return self.mode is Mode.SEARCHING

    @property
    def confirming(self) -> bool:
        return self.mode is Mode.CONFIRMING

    def is_visible(self, process: ProcessRecord) -> bool:
        """Whether process passes the system-port and search filters."""
        if not self.show_system_ports:
            if not any(port >= SYSTEM_PORT_LIMIT for port in process.ports):
                return False

        if self.query:
            query = self.query.lower()
            if query in process.name.lower() or query in process.command.lower():
                return True
            return any(query in str(port) for port in process.ports)

        return True

    def visible(self) -> list[ProcessRecord]:
        return [p for p in self.processes if self.is_visible(p)]

    def focused(self) -> ProcessRecord | None:
        visible = self.visible()
        if 0 <= self.cursor < len(visible):
            return visible[self.cursor]
        return None

    def is_selected(self, pid: int) -> bool:
        return self.selected.get(pid, False)

    def selected_processes(self) -> list[ProcessRecord]:
        return [p for p in self.visible() if self.is_selected(p.pid)]

    def selected_count(self) -> int:
        return len(self.selected_processes())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _clamp_cursor(self) -> None:
        count = len(self.visible())
        if count == 0:
            self.cursor = 0
        else:
            self.cursor = min(max(self.cursor, 0), count - 1)

    def _set_status(self, text: str, level: str = "info") -> None:
        self.status = StatusMessage(text, level)

    # ------------------------------------------------------------------
    # Navigation and selection (normal mode)
    # ------------------------------------------------------------------

    def move_up(self) -> None:
        if self.mode is Mode.NORMAL and self.cursor > 0:
            self.cursor -= 1

    def move_down(self) -> None:
        if self.mode is Mode.NORMAL and self.cursor < len(self.visible()) - 1:
            self.cursor += 1

    def toggle_selection(self) -> None:
        if self.mode is not Mode.NORMAL:
            return
        process = self.focused()
        if process is not None:
            self.selected[process.pid] = not self.is_selected(process.pid)

    def select_all(self) -> None:
        """Select every visible process, or deselect them if all are selected."""
        if self.mode is not Mode.NORMAL:
            return
        visible = self.visible()
        all_selected = all(self.is_selected(p.pid) for p in visible)
        for process in visible:
            self.selected[process.pid] = not all_selected

    def toggle_system_ports(self) -> None:
        if self.mode is not Mode.NORMAL:
            return
        self.show_system_ports = not self.show_system_ports
        self._clamp_cursor()
        if self.show_system_ports:
            self._set_status("Showing all ports")
        else:
            self._set_status(f"Showing user ports only (>={SYSTEM_PORT_LIMIT})")

    def request_refresh(self) -> Request | None:
        if self.mode is not Mode.NORMAL:
            return None
        self._set_status("Refreshing...")
        return DiscoverRequest()

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def request_search(self) -> None:
        if self.mode is Mode.NORMAL:
            self.mode = Mode.SEARCHING

    def type_text(self, text: str) -> None:
        if self.mode is not Mode.SEARCHING or not text:
            return
        self.query += text
        self.cursor = 0

    def backspace(self) -> None:
        if self.mode is not Mode.SEARCHING or not self.query:
            return
        self.query = self.query[:-1]
        self._clamp_cursor()

    # ------------------------------------------------------------------
    # Mode-dependent confirm / cancel
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        if self.mode is Mode.SEARCHING:
            self.mode = Mode.NORMAL
            self.query = ""
            self._clamp_cursor()
        elif self.mode is Mode.CONFIRMING:
            self.mode = Mode.NORMAL
            self.kill_targets = []
            self._set_status("Cancelled")
        elif self.query:
            self.query = ""
            self.cursor = 0

    def confirm(self) -> Request | None:
        if self.mode is Mode.SEARCHING:
            self.mode = Mode.NORMAL
            return None
        if self.mode is not Mode.CONFIRMING:
            return None

        self.mode = Mode.NORMAL
        targets, self.kill_targets = self.kill_targets, []
        if not targets or self.plan.active:
            return None

        self.plan = BatchKillPlan(targets=targets)
        log.info("kill_confirmed", pids=[p.pid for p in targets])
        return self._kill_request()

    # ------------------------------------------------------------------
    # Killing
    # ------------------------------------------------------------------

    def request_kill(self) -> None:
        """Ask for confirmation to kill the selection, or the focused row."""
        if self.mode is not Mode.NORMAL:
            return
        if self.plan.active:
            self._set_status("Kill already in progress")
            return
        visible = self.visible()
        if not visible:
            return

        selected = [p for p in visible if self.is_selected(p.pid)]
        if selected:
            self.kill_targets = selected
        elif self.cursor < len(visible):
            self.kill_targets = [visible[self.cursor]]
        else:
            return
        self.mode = Mode.CONFIRMING

    def _kill_request(self) -> KillRequest | None:
        process = self.plan.current
        if process is None:
            return None
        return KillRequest(pid=process.pid, port=process.lowest_port, remaining=self.plan.remaining)

    def apply_kill_result(self, result: KillResult) -> Request | None:
        """Fold a kill result back in and return the next request, if any."""
        current = self.plan.current
        if current is None or current.pid != result.pid:
            log.debug("stale_kill_result", pid=result.pid)
            return None

        if result.success:
            self.selected.pop(result.pid, None)
        else:
            self.plan.failures += 1
            log.warning("kill_failed", pid=result.pid, error=result.error)

        if self.plan.advance() is not None:
            return self._kill_request()

        total = len(self.plan.targets)
        failures = self.plan.failures
        self.plan.clear()

        if total == 1:
            if result.success:
                self._set_status(f"Killed process on port {result.port}")
            else:
                self._set_status(f"Failed to kill process {result.pid}", "error")
        elif failures == 0:
            self._set_status(f"Killed {total} processes")
        else:
            self._set_status(f"Killed {total - failures} of {total} processes ({failures} failed)", "error")
        return DiscoverRequest()

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def tick(self) -> Request | None:
        """Periodic refresh, skipped while a kill confirmation is pending."""
        if self.mode is Mode.CONFIRMING:
            return None
        return DiscoverRequest()

    def apply_discovery(self, result: DiscoveryResult) -> None:
        if not result.ok:
            self.last_error = result.error
            self._set_status(f"Error: {result.error}", "error")
            return

        self.last_error = None
        self.processes = tuple(sorted(result.processes, key=lambda p: (p.lowest_port, p.pid)))
        self.loaded = True

        existing = {p.pid for p in self.processes}
        for pid in [pid for pid in self.selected if pid not in existing]:
            del self.selected[pid]

        if self.initial_filter is not None:
            self._apply_initial_filter(self.initial_filter)
            self.initial_filter = None

        self._clamp_cursor()

    def _apply_initial_filter(self, initial: InitialFilter) -> None:
        matches = [p for p in self.processes if initial.matches(p)]
        if not matches:
            self._set_status(f"No processes match '{initial.text}'")
            return

        for process in matches:
            self.selected[process.pid] = True
        if not all(self.is_visible(p) for p in matches):
            self.show_system_ports = True

        noun = "process" if len(matches) == 1 else "processes"
        self._set_status(f"Selected {len(matches)} {noun} matching '{initial.text}'")
