"""Tests for lsof output parsing and the LsofScanner."""

import os
import subprocess

import pytest

from portsweep.scanner import (
    LSOF_COMMAND,
    LsofScanner,
    ScanError,
    get_full_command,
    parse_lsof_output,
    parse_decimal,
    parse_port,
)

HEADER = "COMMAND   PID   USER   FD   TYPE     DEVICE SIZE/OFF NODE NAME"

COMMANDS = {
    123: "node /Users/test/project/server.js",
    456: "/usr/bin/python3 app.py",
    789: "nginx: master process",
}


def lookup(pid: int) -> str:
    return COMMANDS.get(pid, "")


def lsof(*lines: str) -> str:
    return "\n".join((HEADER, *lines))


class CountingLookup:
    """Command lookup that records every PID it was asked about."""

    def __init__(self) -> None:
        self.calls: list[int] = []

    def __call__(self, pid: int) -> str:
        self.calls.append(pid)
        return lookup(pid)


def by_pid(records):
    return {r.pid: r for r in records}


class TestParseLsofOutput:
    """Tests for parse_lsof_output."""

    def test_single_process_single_port(self):
        records = parse_lsof_output(
            lsof("node      123   user   22u  IPv4 0x123456      0t0  TCP *:3000 (LISTEN)"),
            lookup,
        )

        assert len(records) == 1
        record = records[0]
        assert record.pid == 123
        assert record.ports == (3000,)
        assert record.name == "node"
        assert record.user == "user"
        assert record.command == "node /Users/test/project/server.js"

    def test_single_process_multiple_ports(self):
        records = parse_lsof_output(
            lsof(
                "node      123   user   22u  IPv4 0x123456      0t0  TCP *:3000 (LISTEN)",
                "node      123   user   23u  IPv4 0x123457      0t0  TCP *:3001 (LISTEN)",
                "node      123   user   24u  IPv4 0x123458      0t0  TCP *:8080 (LISTEN)",
            ),
            lookup,
        )

        assert len(records) == 1
        assert records[0].ports == (3000, 3001, 8080)

    def test_multiple_processes(self):
        records = parse_lsof_output(
            lsof(
                "node      123   user   22u  IPv4 0x123456      0t0  TCP *:3000 (LISTEN)",
                "python3   456   root   5u   IPv4 0x789012      0t0  TCP 127.0.0.1:8000 (LISTEN)",
            ),
            lookup,
        )

        procs = by_pid(records)
        assert set(procs) == {123, 456}
        assert procs[456].ports == (8000,)
        assert procs[456].name == "python3"
        assert procs[456].user == "root"
        assert procs[456].command == "/usr/bin/python3 app.py"

    def test_ipv6_address(self):
        records = parse_lsof_output(
            lsof("node      123   user   22u  IPv6 0x123456      0t0  TCP [::1]:3000 (LISTEN)"),
            lookup,
        )

        assert records[0].ports == (3000,)

    def test_deduplicates_across_interfaces(self):
        records = parse_lsof_output(
            lsof(
                "node      123   user   22u  IPv4 0x123456      0t0  TCP *:3000 (LISTEN)",
                "node      123   user   23u  IPv6 0x123457      0t0  TCP [::]:3000 (LISTEN)",
            ),
            lookup,
        )

        assert len(records) == 1
        assert records[0].ports == (3000,)

    def test_first_process_keeps_a_shared_port(self):
        records = parse_lsof_output(
            lsof(
                "node      123   user   22u  IPv4 0x123456      0t0  TCP *:3000 (LISTEN)",
                "python3   456   root   5u   IPv6 0x789012      0t0  TCP [::]:3000 (LISTEN)",
                "python3   456   root   6u   IPv4 0x789013      0t0  TCP *:8000 (LISTEN)",
            ),
            lookup,
        )

        procs = by_pid(records)
        assert procs[123].ports == (3000,)
        assert procs[456].ports == (8000,)

    def test_specific_ip_binding(self):
        records = parse_lsof_output(
            lsof("nginx     789   www    10u  IPv4 0xabcdef      0t0  TCP 192.168.1.100:80 (LISTEN)"),
            lookup,
        )

        assert records[0].ports == (80,)
        assert records[0].command == "nginx: master process"

    def test_line_without_listen_suffix(self):
        records = parse_lsof_output(
            lsof("node      123   user   22u  IPv4 0x123456      0t0  TCP *:3000"),
            lookup,
        )

        assert records[0].ports == (3000,)

    @pytest.mark.parametrize(
        "output",
        [
            "",
            HEADER + "\n",
            lsof("incomplete line here"),
            lsof("node      abc   user   22u  IPv4 0x123456      0t0  TCP *:3000 (LISTEN)"),
            lsof("node      123   user   22u  IPv4 0x123456      0t0  TCP *:http (LISTEN)"),
            lsof("node      123   user   22u  IPv4 0x123456      0t0  TCP localhost (LISTEN)"),
            lsof("node      123   user   22u  IPv4 0x123456      0t0  TCP *:8_0 (LISTEN)"),
            lsof("node      1_23  user   22u  IPv4 0x123456      0t0  TCP *:3000 (LISTEN)"),
        ],
    )
    def test_malformed_input_yields_nothing(self, output):
        assert parse_lsof_output(output, lookup) == []

    def test_blank_lines_are_skipped(self):
        records = parse_lsof_output(
            lsof(
                "",
                "node      123   user   22u  IPv4 0x123456      0t0  TCP *:3000 (LISTEN)",
                "   ",
            ),
            lookup,
        )

        assert [r.pid for r in records] == [123]

    def test_ports_are_sorted_ascending(self):
        records = parse_lsof_output(
            lsof(
                "node      123   user   22u  IPv4 0x123456      0t0  TCP *:9000 (LISTEN)",
                "node      123   user   23u  IPv4 0x123457      0t0  TCP *:3000 (LISTEN)",
                "node      123   user   24u  IPv4 0x123458      0t0  TCP *:5000 (LISTEN)",
            ),
            lookup,
        )

        assert records[0].ports == (3000, 5000, 9000)

    def test_records_ordered_by_lowest_port(self):
        records = parse_lsof_output(
            lsof(
                "python3   456   root   5u   IPv4 0x789012      0t0  TCP *:8000 (LISTEN)",
                "node      123   user   22u  IPv4 0x123456      0t0  TCP *:3000 (LISTEN)",
                "nginx     789   www    10u  IPv4 0xabcdef      0t0  TCP *:80 (LISTEN)",
            ),
            lookup,
        )

        assert [r.pid for r in records] == [789, 123, 456]

    def test_command_lookup_once_per_pid(self):
        counting = CountingLookup()

        parse_lsof_output(
            lsof(
                "node      123   user   22u  IPv4 0x123456      0t0  TCP *:3000 (LISTEN)",
                "node      123   user   23u  IPv6 0x123457      0t0  TCP [::]:3000 (LISTEN)",
                "node      123   user   24u  IPv4 0x123458      0t0  TCP *:3001 (LISTEN)",
                "python3   456   root   5u   IPv4 0x789012      0t0  TCP *:8000 (LISTEN)",
                "node      123   user   25u  IPv4 0x123459      0t0  TCP *:3002 (LISTEN)",
            ),
            counting,
        )

        assert sorted(counting.calls) == [123, 456]

    def test_without_command_lookup(self):
        records = parse_lsof_output(
            lsof("node      123   user   22u  IPv4 0x123456      0t0  TCP *:3000 (LISTEN)")
        )

        assert records[0].command == ""

    def test_port_set_independent_of_line_order(self):
        lines = [
            "node      123   user   22u  IPv4 0x123456      0t0  TCP *:9000 (LISTEN)",
            "node      123   user   23u  IPv6 0x123457      0t0  TCP [::]:3000 (LISTEN)",
            "node      123   user   24u  IPv4 0x123458      0t0  TCP *:3000 (LISTEN)",
            "node      123   user   25u  IPv4 0x123459      0t0  TCP 127.0.0.1:5000 (LISTEN)",
        ]

        forward = parse_lsof_output(lsof(*lines), lookup)
        backward = parse_lsof_output(lsof(*reversed(lines)), lookup)

        assert forward == backward
        assert forward[0].ports == (3000, 5000, 9000)

    def test_ports_strictly_ascending_and_unique(self):
        lines = [
            f"node      {pid}   user   {fd}u  IPv4 0x{fd:06x}      0t0  TCP *:{port} (LISTEN)"
            for fd, (pid, port) in enumerate(
                [(1, 5000), (2, 4000), (1, 3000), (2, 5000), (1, 3000), (3, 80), (2, 4001)]
            )
        ]

        records = parse_lsof_output(lsof(*lines), lookup)

        seen: set[int] = set()
        for record in records:
            assert record.ports
            assert list(record.ports) == sorted(set(record.ports))
            assert seen.isdisjoint(record.ports)
            seen.update(record.ports)


@pytest.mark.parametrize(
    ("field", "expected"),
    [
        ("*:3000", 3000),
        ("127.0.0.1:8080", 8080),
        ("192.168.1.1:443", 443),
        ("[::1]:3000", 3000),
        ("[::]:8080", 8080),
        ("*:65535", 65535),
        ("*:22", 22),
        ("3000", 0),
        ("", 0),
        ("*:abc", 0),
        (":", 0),
        ("*:8_0", 0),
        ("*: 80", 0),
        ("*:٨٠", 0),
        ("*:+80", 80),
    ],
)
def test_parse_port(field, expected):
    assert parse_port(field) == expected


def completed(returncode: int, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(list(LSOF_COMMAND), returncode, stdout, stderr)


class TestLsofScanner:
    """Tests for LsofScanner with a fake runner."""

    def test_runs_lsof_with_numeric_listen_flags(self):
        calls = []

        def runner(argv):
            calls.append(tuple(argv))
            return completed(0, lsof())

        LsofScanner(command_lookup=lookup, runner=runner).discover()

        assert calls == [("lsof", "-iTCP", "-sTCP:LISTEN", "-n", "-P")]

    def test_parses_output(self):
        output = lsof("node      123   user   22u  IPv4 0x123456      0t0  TCP *:3000 (LISTEN)")
        scanner = LsofScanner(command_lookup=lookup, runner=lambda argv: completed(0, output))

        records = scanner.discover()

        assert [(r.pid, r.ports) for r in records] == [(123, (3000,))]

    def test_exit_status_one_means_no_results(self):
        scanner = LsofScanner(command_lookup=lookup, runner=lambda argv: completed(1))

        assert scanner.discover() == []

    def test_other_exit_status_raises(self):
        scanner = LsofScanner(
            command_lookup=lookup,
            runner=lambda argv: completed(2, stderr="lsof: bad option"),
        )

        with pytest.raises(ScanError, match="status 2: lsof: bad option"):
            scanner.discover()

    def test_missing_lsof_raises(self):
        def runner(argv):
            raise FileNotFoundError("lsof")

        with pytest.raises(ScanError, match="lsof not found"):
            LsofScanner(command_lookup=lookup, runner=runner).discover()

    def test_timeout_raises(self):
        def runner(argv):
            raise subprocess.TimeoutExpired(argv, 10)

        with pytest.raises(ScanError):
            LsofScanner(command_lookup=lookup, runner=runner).discover()


class TestGetFullCommand:
    """Tests for the psutil-backed command lookup."""

    def test_current_process(self):
        command = get_full_command(os.getpid())

        assert command
        assert command == command.strip()

    def test_missing_process_returns_empty(self):
        # PIDs this large are never handed out
        assert get_full_command(2**31 - 1) == ""


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("80", 80),
        ("+80", 80),
        ("-1", -1),
        ("8_0", None),
        (" 80", None),
        ("٨٠", None),
        ("", None),
        ("+", None),
    ],
)
def test_parse_decimal(text, expected):
    assert parse_decimal(text) == expected
