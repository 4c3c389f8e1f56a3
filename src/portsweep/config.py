"""Runtime configuration for portsweep."""

import os
import signal
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

# Signals that ask a process to exit without forcing it
GRACEFUL_SIGNALS = {
    "TERM": signal.SIGTERM,
    "INT": signal.SIGINT,
    "HUP": signal.SIGHUP,
}

MIN_INTERVAL = 0.1


@dataclass(slots=True, frozen=True)
class Theme:
    """Colours used by the view."""

    title: str = "#FF6B6B"
    highlight_fg: str = "#1a1a1a"
    highlight_bg: str = "#7DCFFF"
    normal: str = "#c0c0c0"
    checked: str = "#FF6B6B"
    unchecked: str = "#626262"
    port: str = "#7DCFFF"
    pid: str = "#9ECE6A"
    name: str = "#BB9AF7"
    user: str = "#E0AF68"
    command: str = "#737373"
    detail: str = "#565656"
    help: str = "#626262"
    confirm: str = "#FF6B6B"
    status: str = "#9ECE6A"
    error: str = "#FF6B6B"
    search: str = "#7DCFFF"
    filter: str = "#9ECE6A"


@dataclass(slots=True, frozen=True)
class KeyMap:
    """Key bindings for normal mode, as comma-separated Textual key names."""

    up: str = "up,k"
    down: str = "down,j"
    kill: str = "enter,d"
    refresh: str = "r"
    toggle_system: str = "s"
    quit: str = "q"
    select: str = "space"
    select_all: str = "a"
    search: str = "slash"
    clear: str = "escape"
    # Confirmation prompt
    confirm_keys: tuple[str, ...] = ("y",)
    cancel_keys: tuple[str, ...] = ("n", "escape")
    # Search mode; any other printable key is typed into the query
    search_accept_keys: tuple[str, ...] = ("enter",)
    search_cancel_keys: tuple[str, ...] = ("escape",)
    search_delete_keys: tuple[str, ...] = ("backspace",)


@dataclass(slots=True, frozen=True)
class Config:
    """Settings for one portsweep session."""

    refresh_interval: float = 2.0  # Seconds between automatic refreshes
    status_timeout: float = 3.0  # Seconds a status message stays visible
    show_system_ports: bool = False
    kill_signal: signal.Signals = signal.SIGTERM
    initial_filter: str | None = None
    log_level: str = "WARNING"
    log_file: Path | None = None
    theme: Theme = field(default_factory=Theme)
    keys: KeyMap = field(default_factory=KeyMap)

    def __post_init__(self) -> None:
        # Frozen, so clamp through object.__setattr__
        object.__setattr__(self, "refresh_interval", max(MIN_INTERVAL, self.refresh_interval))
        object.__setattr__(self, "status_timeout", max(MIN_INTERVAL, self.status_timeout))

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, **overrides) -> "Config":
        """
        Build a Config from PORTSWEEP_* environment variables.

        Keyword overrides win over the environment; None values are ignored.
        """
        if env is None:
            env = os.environ

        values: dict = {}
        interval = env.get("PORTSWEEP_REFRESH_INTERVAL")
        if interval:
            try:
                values["refresh_interval"] = float(interval)
            except ValueError:
                pass
        level = env.get("PORTSWEEP_LOG_LEVEL")
        if level:
            values["log_level"] = level.upper()
        log_file = env.get("PORTSWEEP_LOG_FILE")
        if log_file:
            values["log_file"] = Path(log_file)

        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


def parse_signal(name: str) -> signal.Signals:
    """Resolve a graceful signal name such as 'TERM' or 'SIGINT'."""
    key = name.upper().removeprefix("SIG")
    try:
        return GRACEFUL_SIGNALS[key]
    except KeyError:
        choices = ", ".join(sorted(GRACEFUL_SIGNALS))
        raise ValueError(f"unsupported signal {name!r} (choose from {choices})") from None
