"""Discovery of processes listening on TCP ports."""

import re
import subprocess
from collections.abc import Callable, Sequence
from typing import Protocol

import psutil
import structlog

from portsweep.models import PortsweepError, ProcessRecord

log = structlog.get_logger()

# -iTCP: TCP only, -sTCP:LISTEN: listening sockets only,
# -n / -P: no host or port name resolution
LSOF_COMMAND = ("lsof", "-iTCP", "-sTCP:LISTEN", "-n", "-P")

# lsof exits with 1 when nothing matched
LSOF_NO_RESULTS = 1

# COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME
MIN_FIELDS = 9

# Optional sign and ASCII digits only; no spaces, underscores or other scripts
DECIMAL_RE = re.compile(r"[+-]?[0-9]+")

CommandLookup = Callable[[int], str]
Runner = Callable[[Sequence[str]], subprocess.CompletedProcess]


class ScanError(PortsweepError):
    """Raised when the listing tool could not be run or failed."""


class PortScanner(Protocol):
    """Anything that can produce the current set of listening processes."""

    def discover(self) -> list[ProcessRecord]: ...


def run_command(argv: Sequence[str], timeout: float = 10.0) -> subprocess.CompletedProcess:
    """Run a command and capture its text output."""
    return subprocess.run(
        list(argv),
        capture_output=True,
        text=True,
        timeout=timeout,
        check=False,
    )


def get_full_command(pid: int) -> str:
    """
    Look up the full command line of a process.

    Returns an empty string if the process is gone or cannot be inspected.
    """
    try:
        cmdline = psutil.Process(pid).cmdline()
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
        return ""
    return " ".join(cmdline).strip()


def parse_port(name_field: str) -> int:
    """
    Extract the port number from an lsof NAME field.

    Handles "*:3000", "127.0.0.1:8080" and "[::1]:3000". Returns 0 when no
    port can be parsed.
    """
    parts = name_field.split(":")
    if len(parts) < 2:
        return 0
    port = parse_decimal(parts[-1])
    if port is None:
        return 0
    return port


def parse_decimal(text: str) -> int | None:
    """Parse a plain base-10 integer, or return None."""
    if not DECIMAL_RE.fullmatch(text):
        return None
    return int(text)


def parse_lsof_output(output: str, command_lookup: CommandLookup | None = None) -> list[ProcessRecord]:
    """
    Parse lsof output into process records, grouping ports by PID.

    The same port showing up on several interfaces (IPv4 and IPv6 entries)
    is only recorded once, for the first process that reported it.
    command_lookup is called once per distinct PID.
    """
    grouped: dict[int, dict] = {}
    seen_ports: set[int] = set()

    for index, line in enumerate(output.splitlines()):
        if index == 0 or not line.strip():
            continue

        fields = line.split()
        if len(fields) < MIN_FIELDS:
            continue

        # node 123 user 22u IPv4 0x123456 0t0 TCP *:3000 (LISTEN)
        name, pid_str, user = fields[0], fields[1], fields[2]
        name_field = fields[-1]
        if name_field == "(LISTEN)" and len(fields) >= MIN_FIELDS + 1:
            name_field = fields[-2]

        pid = parse_decimal(pid_str)
        if pid is None:
            continue

        port = parse_port(name_field)
        if port <= 0:
            continue

        if port in seen_ports:
            continue
        seen_ports.add(port)

        entry = grouped.get(pid)
        if entry is None:
            command = command_lookup(pid) if command_lookup is not None else ""
            grouped[pid] = {"name": name, "user": user, "command": command, "ports": [port]}
        else:
            entry["ports"].append(port)

    records = [
        ProcessRecord(
            pid=pid,
            ports=tuple(sorted(entry["ports"])),
            name=entry["name"],
            user=entry["user"],
            command=entry["command"],
        )
        for pid, entry in grouped.items()
    ]
    records.sort(key=lambda r: (r.lowest_port, r.pid))
    return records


class LsofScanner:
    """
    PortScanner backed by lsof.

    Both the process runner and the per-PID command lookup can be swapped
    out, which is how the tests drive it without a real lsof.
    """

    def __init__(
        self,
        command_lookup: CommandLookup | None = None,
        runner: Runner | None = None,
    ) -> None:
        self._command_lookup = command_lookup or get_full_command
        self._runner = runner or run_command

    def discover(self) -> list[ProcessRecord]:
        """Return all processes listening on TCP ports."""
        try:
            result = self._runner(LSOF_COMMAND)
        except FileNotFoundError as exc:
            raise ScanError("lsof not found; install lsof to list listening ports") from exc
        except (OSError, subprocess.SubprocessError) as exc:
            raise ScanError(f"lsof failed: {exc}") from exc

        if result.returncode == LSOF_NO_RESULTS:
            return []
        if result.returncode != 0:
            message = f"lsof exited with status {result.returncode}"
            stderr = (result.stderr or "").strip()
            if stderr:
                message = f"{message}: {stderr}"
            raise ScanError(message)

        records = parse_lsof_output(result.stdout or "", self._command_lookup)
        log.debug("ports_discovered", processes=len(records))
        return records
