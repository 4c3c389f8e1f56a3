"""Process termination for portsweep."""

import signal
from typing import Protocol

import psutil
import structlog

from portsweep.models import PortsweepError

log = structlog.get_logger()


class KillError(PortsweepError):
    """Raised when a signal could not be delivered to a process."""

    def __init__(self, pid: int, reason: str) -> None:
        super().__init__(f"could not signal process {pid}: {reason}")
        self.pid = pid
        self.reason = reason


class ProcessKiller(Protocol):
    """Anything that can ask a process to terminate."""

    def terminate(self, pid: int) -> None: ...


class SignalKiller:
    """
    ProcessKiller that sends a graceful signal (SIGTERM by default).

    Delivery is not retried and the process is not waited on; whether it
    actually exits is up to the process.
    """

    def __init__(self, sig: signal.Signals = signal.SIGTERM) -> None:
        self._signal = sig

    @property
    def signal(self) -> signal.Signals:
        return self._signal

    def terminate(self, pid: int) -> None:
        """Send the configured signal to pid, raising KillError on failure."""
        log.info("sending_signal", pid=pid, signal=self._signal.name)
        try:
            psutil.Process(pid).send_signal(self._signal)
        except psutil.NoSuchProcess as exc:
            raise KillError(pid, "no such process") from exc
        except psutil.AccessDenied as exc:
            raise KillError(pid, "permission denied") from exc
        except (ValueError, OSError) as exc:
            raise KillError(pid, str(exc)) from exc
