"""Background execution of discovery and kill requests for portsweep."""

import threading
from queue import Empty, Queue

import structlog

from portsweep.killer import KillError, ProcessKiller, SignalKiller
from portsweep.messages import (
    DiscoverRequest,
    DiscoveryResult,
    KillRequest,
    KillResult,
    Request,
    Result,
)
from portsweep.scanner import LsofScanner, PortScanner, ScanError

log = structlog.get_logger()


class PortMonitor:
    """
    Runs requests from AppState on a worker thread.

    Requests are executed one at a time in submission order on a daemon
    thread; each produces exactly one result on the result Queue. The
    UI thread drains that queue and feeds results back into AppState, so
    the state itself is only ever touched from one thread.
    """

    def __init__(
        self,
        result_queue: Queue[Result],
        scanner: PortScanner | None = None,
        killer: ProcessKiller | None = None,
    ) -> None:
        """
        Initialize the PortMonitor.

        Args:
            result_queue: Thread-safe queue results are pushed to.
            scanner: Port scanner, lsof-based by default.
            killer: Process killer, SIGTERM-based by default.
        """
        self._queue = result_queue
        self._requests: Queue[Request] = Queue()
        self._scanner = scanner or LsofScanner()
        self._killer = killer or SignalKiller()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._discover_lock = threading.Lock()
        self._discover_queued = False

    @property
    def is_running(self) -> bool:
        """Check if the worker thread is running."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def pending(self) -> int:
        """Requests submitted but not yet picked up."""
        return self._requests.qsize()

    def start(self) -> None:
        """Start the worker thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            daemon=True,
            name="PortMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the worker thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def submit(self, request: Request | None) -> None:
        """
        Queue a request; None is accepted and ignored.

        A DiscoverRequest is dropped while another one is still waiting in
        the queue, so slow scans do not pile up refreshes.
        """
        if request is None:
            return
        if isinstance(request, DiscoverRequest):
            with self._discover_lock:
                if self._discover_queued:
                    log.debug("discovery_already_queued")
                    return
                self._discover_queued = True
        self._requests.put(request)

    def _run_loop(self) -> None:
        """Main loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                request = self._requests.get(timeout=0.1)
            except Empty:
                continue
            if isinstance(request, DiscoverRequest):
                with self._discover_lock:
                    self._discover_queued = False
            self._queue.put(self.execute(request))

    def execute(self, request: Request) -> Result:
        """Run one request synchronously and return its result."""
        if isinstance(request, KillRequest):
            return self._kill(request)
        if isinstance(request, DiscoverRequest):
            return self._discover()
        raise TypeError(f"unknown request: {request!r}")

    def _discover(self) -> DiscoveryResult:
        try:
            processes = self._scanner.discover()
        except ScanError as exc:
            log.warning("discovery_failed", error=str(exc))
            return DiscoveryResult(error=str(exc))
        except Exception as exc:
            # Keep the worker alive; the next tick retries
            log.exception("discovery_crashed")
            return DiscoveryResult(error=f"unexpected error: {exc}")
        return DiscoveryResult(processes=tuple(processes))

    def _kill(self, request: KillRequest) -> KillResult:
        try:
            self._killer.terminate(request.pid)
        except KillError as exc:
            log.warning("kill_failed", pid=request.pid, error=exc.reason)
            error = exc.reason
        except Exception as exc:
            # A missing result would stall the rest of the batch
            log.exception("kill_crashed", pid=request.pid)
            error = str(exc) or type(exc).__name__
        else:
            log.info("killed", pid=request.pid, port=request.port)
            error = None
        return KillResult(pid=request.pid, port=request.port, remaining=request.remaining, error=error)
