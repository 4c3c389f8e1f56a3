"""portsweep - Main Textual application."""

from queue import Empty, Queue

from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.css.query import NoMatches
from textual.screen import Screen
from textual.widgets import DataTable, Static

from portsweep.config import Config, KeyMap, Theme
from portsweep.formatter import CommandFormatterChain
from portsweep.killer import ProcessKiller, SignalKiller
from portsweep.messages import DiscoverRequest, DiscoveryResult, KillResult, Request, Result
from portsweep.models import ProcessRecord
from portsweep.monitor import PortMonitor
from portsweep.scanner import PortScanner
from portsweep.state import AppState, InitialFilter, Mode

PORT_WIDTH = 18
PID_WIDTH = 8
NAME_WIDTH = 15
USER_WIDTH = 12

# How often the result queue is drained (seconds)
DRAIN_INTERVAL = 0.1

HELP_TEXT = (
    "↑/k up • ↓/j down • space select • a select all • enter/d kill • "
    "/ search • r refresh • s system ports • q quit"
)
FILTER_HELP_TEXT = "↑/k up • ↓/j down • space select • enter/d kill • / search • esc clear • q quit"


def truncate(text: str, max_len: int) -> str:
    """Pad text to max_len, or cut it with an ellipsis if it is longer."""
    if len(text) <= max_len:
        return text.ljust(max_len)
    return text[: max_len - 1] + "…"


def format_ports(ports: tuple[int, ...] | list[int], max_width: int) -> str:
    """
    Format ports as "80, 443, 8080", fitting max_width.

    Ports that do not fit are summarised as a "+N" suffix.
    """
    if not ports:
        return ""

    result = str(ports[0])
    shown = 1
    for i in range(1, len(ports)):
        nxt = f", {ports[i]}"
        remaining = len(ports) - i - 1
        suffix_len = len(f" +{remaining + 1}") if remaining > 0 else 0

        if len(result) + len(nxt) + suffix_len > max_width:
            hidden = len(ports) - shown
            if hidden > 0:
                result += f" +{hidden}"
            break

        result += nxt
        shown += 1

    return result


def detail_text(state: AppState, width: int) -> str:
    """Line under the table: the focused command, or why the table is empty."""
    if not state.visible():
        if state.query:
            return f"No processes match '{state.query}'"
        if not state.loaded:
            return "Scanning..."
        return "No listening ports found"

    focused = state.focused()
    if focused is None or state.confirming:
        return ""

    max_len = width - 4
    if max_len < 20:
        max_len = 80
    command = focused.command
    if len(command) > max_len:
        command = command[: max_len - 3] + "..."
    return f"> {command}"


def prompt_text(state: AppState) -> str:
    """Kill confirmation prompt, empty outside confirmation mode."""
    if not state.confirming:
        return ""

    targets = state.kill_targets
    if len(targets) == 1:
        proc = targets[0]
        noun = "port" if len(proc.ports) == 1 else "ports"
        return f"Kill process {proc.pid} on {noun} {format_ports(proc.ports, 40)}? (y/n)"
    return f"Kill {len(targets)} selected processes? (y/n)"


class TitleBar(Static):
    """Title line with the port scope and selection count."""

    DEFAULT_CSS = """
    TitleBar {
        height: 2;
        padding: 0 1;
    }
    """

    def update_title(self, state: AppState, theme: Theme) -> None:
        scope = "all ports" if state.show_system_ports else "user ports"
        title = Text(f"portsweep ({scope})", style=f"bold {theme.title}")
        count = state.selected_count()
        if count > 0:
            title.append(f" [{count} selected]", style=f"bold {theme.checked}")
        self.update(title)


class PortTable(DataTable, can_focus=False):
    """DataTable whose cursor is driven from AppState rather than the keyboard."""


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, formatter: CommandFormatterChain, theme: Theme, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._formatter = formatter
        self._colors = theme
        self._row_pids: list[int] = []

    @property
    def row_pids(self) -> list[int]:
        """PIDs currently shown, in display order."""
        return list(self._row_pids)

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield PortTable(id="process-table", cursor_type="row")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.add_column(" ", key="selected", width=3)
        table.add_column("PORT", key="port", width=PORT_WIDTH)
        table.add_column("PID", key="pid", width=PID_WIDTH)
        table.add_column("PROCESS", key="name", width=NAME_WIDTH)
        table.add_column("USER", key="user", width=USER_WIDTH)
        table.add_column("COMMAND", key="command")

    def update_processes(self, state: AppState) -> None:
        """
        Show the visible processes of state.

        When the rows are the same PIDs in the same order, cells are updated
        in place; otherwise the table is rebuilt.
        """
        table = self.query_one("#process-table", DataTable)
        visible = state.visible()
        pids = [p.pid for p in visible]

        if pids == self._row_pids:
            for proc in visible:
                self._update_row(table, proc, state.is_selected(proc.pid))
        else:
            table.clear()
            for proc in visible:
                table.add_row(*self._cells(proc, state.is_selected(proc.pid)), key=str(proc.pid))
            self._row_pids = pids

        if visible:
            table.show_cursor = True
            table.move_cursor(row=state.cursor)
        else:
            table.show_cursor = False

    def _cells(self, proc: ProcessRecord, selected: bool) -> tuple[Text, ...]:
        theme = self._colors
        checkbox = Text("[x]", style=theme.checked) if selected else Text("[ ]", style=theme.unchecked)
        return (
            checkbox,
            Text(format_ports(proc.ports, PORT_WIDTH), style=f"bold {theme.port}"),
            Text(str(proc.pid), style=theme.pid),
            Text(truncate(proc.name, NAME_WIDTH), style=theme.name),
            Text(truncate(proc.user, USER_WIDTH), style=theme.user),
            Text(self._formatter.format(proc.command), style=theme.command),
        )

    def _update_row(self, table: DataTable, proc: ProcessRecord, selected: bool) -> None:
        """Update an existing row using update_cell."""
        row_key = str(proc.pid)
        for column, value in zip(
            ("selected", "port", "pid", "name", "user", "command"),
            self._cells(proc, selected),
        ):
            table.update_cell(row_key, column, value)


class PortsweepScreen(Screen):
    """Main screen; routes keys while searching or confirming."""

    def compose(self) -> ComposeResult:
        """Compose the screen layout."""
        app = self.app
        yield TitleBar(id="title")
        yield ProcessTable(app.formatter, app.config.theme)
        yield Static(id="detail")
        yield Static(id="prompt")
        yield Static(id="status")
        yield Static(id="help")

    def on_key(self, event: events.Key) -> None:
        # Normal mode keys fall through to the app bindings
        if self.app.handle_mode_key(event):
            event.stop()
            event.prevent_default()


def build_bindings(keys: KeyMap) -> list[Binding]:
    """Normal-mode bindings for a key map."""
    return [
        Binding(keys.quit, "quit", "Quit"),
        Binding(keys.up, "cursor_up", "Up", show=False),
        Binding(keys.down, "cursor_down", "Down", show=False),
        Binding(keys.select, "toggle_select", "Select", show=False),
        Binding(keys.select_all, "select_all", "Select all", show=False),
        Binding(keys.kill, "kill", "Kill", show=False),
        Binding(keys.refresh, "refresh", "Refresh", show=False),
        Binding(keys.toggle_system, "toggle_system", "System ports", show=False),
        Binding(keys.search, "search", "Search", show=False),
        Binding(keys.clear, "clear_filter", "Clear filter", show=False),
    ]


# Actions that only make sense in normal mode
NORMAL_ACTIONS = frozenset(
    {
        "cursor_up",
        "cursor_down",
        "toggle_select",
        "select_all",
        "kill",
        "refresh",
        "toggle_system",
        "search",
        "clear_filter",
        "quit",
    }
)


class PortsweepApp(App):
    """Main portsweep application."""

    TITLE = "portsweep"
    SUB_TITLE = "Processes listening on TCP ports"

    CSS = """
    Screen {
        layout: vertical;
    }

    #detail, #prompt, #status, #help {
        height: auto;
        padding: 0 1;
    }
    """

    def __init__(
        self,
        config: Config | None = None,
        scanner: PortScanner | None = None,
        killer: ProcessKiller | None = None,
    ) -> None:
        """Initialize the PortsweepApp."""
        super().__init__()
        self.config = config or Config()
        for binding in build_bindings(self.config.keys):
            self.bind(binding.key, binding.action, description=binding.description, show=binding.show)
        initial = InitialFilter.parse(self.config.initial_filter) if self.config.initial_filter else None
        self.state = AppState(show_system_ports=self.config.show_system_ports, initial_filter=initial)
        self.formatter = CommandFormatterChain()
        self._result_queue: Queue[Result] = Queue()
        self._monitor = PortMonitor(
            self._result_queue,
            scanner=scanner,
            killer=killer or SignalKiller(self.config.kill_signal),
        )

    def get_default_screen(self) -> Screen:
        return PortsweepScreen()

    def on_mount(self) -> None:
        """Start the worker and the refresh timers when the app is mounted."""
        self._monitor.start()
        self.submit(DiscoverRequest())
        self.set_interval(self.config.refresh_interval, self._on_tick)
        self.set_interval(DRAIN_INTERVAL, self._check_for_updates)
        self.render_state()

    def on_unmount(self) -> None:
        self._monitor.stop()

    def submit(self, request: Request | None) -> None:
        """Hand a request from the state machine to the worker."""
        self._monitor.submit(request)

    def _on_tick(self) -> None:
        self.submit(self.state.tick())

    def _check_for_updates(self) -> None:
        """Feed finished results into the state, one at a time."""
        changed = False
        while True:
            try:
                result = self._result_queue.get_nowait()
            except Empty:
                break
            self.apply_result(result)
            changed = True

        if changed:
            self.render_state()
        else:
            # Let expired status messages disappear
            self._render_status()

    def apply_result(self, result: Result) -> None:
        if isinstance(result, DiscoveryResult):
            self.state.apply_discovery(result)
        elif isinstance(result, KillResult):
            self.submit(self.state.apply_kill_result(result))

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def check_action(self, action: str, parameters: tuple[object, ...]) -> bool | None:
        if action in NORMAL_ACTIONS and self.state.mode is not Mode.NORMAL:
            return False
        return True

    def handle_mode_key(self, event: events.Key) -> bool:
        """Handle a key in search or confirmation mode; True if consumed."""
        state = self.state
        keys = self.config.keys

        if state.mode is Mode.CONFIRMING:
            if event.key in keys.confirm_keys:
                self.submit(state.confirm())
            elif event.key in keys.cancel_keys:
                state.cancel()
            self.render_state()
            return True

        if state.mode is Mode.SEARCHING:
            if event.key in keys.search_cancel_keys:
                state.cancel()
            elif event.key in keys.search_delete_keys:
                state.backspace()
            elif event.key in keys.search_accept_keys:
                state.confirm()
            elif event.is_printable and event.character:
                state.type_text(event.character)
            self.render_state()
            return True

        return False

    def action_cursor_up(self) -> None:
        self.state.move_up()
        self.render_state()

    def action_cursor_down(self) -> None:
        self.state.move_down()
        self.render_state()

    def action_toggle_select(self) -> None:
        self.state.toggle_selection()
        self.render_state()

    def action_select_all(self) -> None:
        self.state.select_all()
        self.render_state()

    def action_kill(self) -> None:
        self.state.request_kill()
        self.render_state()

    def action_refresh(self) -> None:
        self.submit(self.state.request_refresh())
        self.render_state()

    def action_toggle_system(self) -> None:
        self.state.toggle_system_ports()
        self.render_state()

    def action_search(self) -> None:
        self.state.request_search()
        self.render_state()

    def action_clear_filter(self) -> None:
        self.state.cancel()
        self.render_state()

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render_state(self) -> None:
        """Redraw every widget from the current state."""
        state = self.state
        theme = self.config.theme
        try:
            self.query_one("#title", TitleBar).update_title(state, theme)
            self.query_one(ProcessTable).update_processes(state)
            self._render_detail()
            self._render_prompt()
            self._render_status()
            self._render_help()
        except NoMatches:
            pass  # Screen not composed yet

    def _render_detail(self) -> None:
        detail = self.query_one("#detail", Static)
        theme = self.config.theme
        message = detail_text(self.state, self.size.width)
        if not self.state.visible():
            detail.update(Text(message, style=f"italic {theme.help}"))
        else:
            detail.update(Text(message, style=f"italic {theme.detail}"))

    def _render_prompt(self) -> None:
        prompt = self.query_one("#prompt", Static)
        prompt.update(Text(prompt_text(self.state), style=f"bold {self.config.theme.confirm}"))

    def _render_status(self) -> None:
        try:
            status = self.query_one("#status", Static)
        except NoMatches:
            return
        message = self.state.status
        if message is None or message.is_expired(self.config.status_timeout):
            status.update("")
            return
        color = self.config.theme.error if message.level == "error" else self.config.theme.status
        status.update(Text(message.text, style=color))

    def _render_help(self) -> None:
        help_line = self.query_one("#help", Static)
        state = self.state
        theme = self.config.theme
        if state.searching:
            help_line.update(Text(f"/{state.query}▌", style=theme.search))
        elif state.query:
            text = Text(f"filter: {state.query}\n", style=theme.filter)
            text.append(FILTER_HELP_TEXT, style=theme.help)
            help_line.update(text)
        else:
            help_line.update(Text(HELP_TEXT, style=theme.help))
