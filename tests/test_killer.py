"""Tests for SignalKiller."""

import multiprocessing
import signal
import time

import psutil
import pytest

from portsweep.killer import KillError, SignalKiller


def dummy_worker(duration: float = 30.0) -> None:
    """A dummy worker process that sleeps for a given duration."""
    try:
        time.sleep(duration)
    except (KeyboardInterrupt, SystemExit):
        pass


def test_default_signal_is_sigterm():
    assert SignalKiller().signal == signal.SIGTERM


def test_terminates_running_process():
    proc = multiprocessing.Process(target=dummy_worker, args=(30.0,))
    proc.start()
    try:
        SignalKiller().terminate(proc.pid)
        proc.join(timeout=5.0)

        assert not proc.is_alive()
        assert proc.exitcode == -signal.SIGTERM
    finally:
        if proc.is_alive():
            proc.kill()
            proc.join(timeout=1.0)


def test_missing_process_raises():
    with pytest.raises(KillError) as excinfo:
        SignalKiller().terminate(2**31 - 1)

    assert excinfo.value.pid == 2**31 - 1
    assert excinfo.value.reason == "no such process"


def test_permission_denied_raises(monkeypatch):
    class DeniedProcess:
        def __init__(self, pid):
            self.pid = pid

        def send_signal(self, sig):
            raise psutil.AccessDenied(self.pid)

    monkeypatch.setattr(psutil, "Process", DeniedProcess)

    with pytest.raises(KillError, match="permission denied"):
        SignalKiller().terminate(4242)


def test_sends_configured_signal(monkeypatch):
    sent = []

    class RecordingProcess:
        def __init__(self, pid):
            self.pid = pid

        def send_signal(self, sig):
            sent.append((self.pid, sig))

    monkeypatch.setattr(psutil, "Process", RecordingProcess)

    SignalKiller(signal.SIGHUP).terminate(4242)

    assert sent == [(4242, signal.SIGHUP)]
