"""
Human-readable labels for process command lines.

Commands like ``node /Users/me/Code/app/node_modules/.bin/vite`` are turned
into short labels such as ``vite (app)``. A chain of matchers is tried in
priority order; the first one that claims the command and produces a
non-empty label wins. Anything unclaimed goes through a fallback that never
fails.

Custom matchers can be added at the front of the chain::

    register_formatter(MyFormatter())
"""

import posixpath
import re
from typing import Protocol

BIN_SYMLINK_RE = re.compile(r"node_modules/\.bin/([^/\s]+)")
HOMEBREW_RE = re.compile(r"/(?:opt/homebrew|usr/local)/Cellar/([^/]+)/")
APP_BUNDLE_RE = re.compile(r"/([^/]+)\.app/Contents/")
PNPM_PACKAGE_RE = re.compile(r"node_modules/\.pnpm/([^/]+)")
NPM_PACKAGE_RE = re.compile(r"node_modules/([^/]+(?:/[^/]+)?)")

# Directories whose first child is usually a project checkout
PROJECT_DIRS = (
    "/Code/",
    "/Projects/",
    "/Developer/",
    "/Sites/",
    "/src/",
    "/repos/",
    "/git/",
    "/workspace/",
    "/Cloudflare/",
    "/OSS/",
)

SYSTEM_PATHS = (
    "/usr/bin/",
    "/usr/sbin/",
    "/usr/libexec/",
    "/bin/",
    "/sbin/",
    "/System/",
)

SCRIPT_RUNNERS = frozenset({"node", "python", "python3", "ruby", "perl", "php"})
SCRIPT_EXTENSIONS = (".js", ".ts", ".py", ".rb")

# Width budget for commands without a recognisable executable
FALLBACK_MAX_LEN = 30


class CommandFormatter(Protocol):
    """A single rule in the formatting chain."""

    name: str

    def can_format(self, cmd: str) -> bool: ...

    def format(self, cmd: str) -> str: ...


def extract_executable(cmd: str) -> str:
    """Base name of the executable (first whitespace-separated token)."""
    parts = cmd.split()
    if not parts:
        return ""
    return posixpath.basename(parts[0])


def extract_project_name(path: str) -> str:
    """First path segment after a known project directory, or ''."""
    for directory in PROJECT_DIRS:
        idx = path.find(directory)
        if idx == -1:
            continue
        remaining = path[idx + len(directory):]
        first = remaining.split("/", 1)[0]
        if first:
            return first
    return ""


def extract_pnpm_package(path: str) -> str:
    """
    Package name from a pnpm store path.

    node_modules/.pnpm/@cloudflare+workerd@1.2.3/... -> workerd
    node_modules/.pnpm/vite@5.0.0/... -> vite
    """
    match = PNPM_PACKAGE_RE.search(path)
    if match is None:
        return ""
    pkg = match.group(1)

    if pkg.startswith("@"):
        _, plus, rest = pkg.partition("+")
        if plus:
            return rest.split("@", 1)[0]

    return pkg.split("@", 1)[0]


def extract_npm_package(path: str) -> str:
    """
    Package name from an npm node_modules path.

    node_modules/vite/bin/vite.js -> vite
    node_modules/@cloudflare/workers-sdk/... -> workers-sdk
    """
    match = NPM_PACKAGE_RE.search(path)
    if match is None:
        return ""
    parts = match.group(1).split("/")
    if parts[0].startswith("@") and len(parts) >= 2:
        return parts[1]
    return parts[0]


def with_project(label: str, project: str) -> str:
    if project:
        return f"{label} ({project})"
    return label


class BinSymlinkFormatter:
    """Binaries run through node_modules/.bin/ symlinks."""

    name = "bin-symlink"

    def can_format(self, cmd: str) -> bool:
        return "node_modules/.bin/" in cmd

    def format(self, cmd: str) -> str:
        match = BIN_SYMLINK_RE.search(cmd)
        if match is None:
            return ""
        return with_project(match.group(1), extract_project_name(cmd))


class PnpmFormatter:
    """Packages living in pnpm's content-addressed store."""

    name = "pnpm"

    def can_format(self, cmd: str) -> bool:
        return "node_modules/.pnpm/" in cmd

    def format(self, cmd: str) -> str:
        return _package_label(extract_pnpm_package(cmd), cmd)


class NpmFormatter:
    """Packages installed in a flat node_modules tree."""

    name = "npm"

    def can_format(self, cmd: str) -> bool:
        return "node_modules/" in cmd and "node_modules/.pnpm/" not in cmd

    def format(self, cmd: str) -> str:
        return _package_label(extract_npm_package(cmd), cmd)


def _package_label(package: str, cmd: str) -> str:
    project = extract_project_name(cmd)
    if package:
        return with_project(package, project)
    executable = extract_executable(cmd)
    if project and executable:
        return with_project(executable, project)
    return ""


class HomebrewFormatter:
    """Formulae installed in a Homebrew cellar."""

    name = "homebrew"

    def can_format(self, cmd: str) -> bool:
        return "/opt/homebrew/Cellar/" in cmd or "/usr/local/Cellar/" in cmd

    def format(self, cmd: str) -> str:
        match = HOMEBREW_RE.search(cmd)
        return match.group(1) if match else ""


class AppBundleFormatter:
    """macOS .app bundles."""

    name = "app-bundle"

    def can_format(self, cmd: str) -> bool:
        return ".app/Contents/" in cmd

    def format(self, cmd: str) -> str:
        match = APP_BUNDLE_RE.search(cmd)
        return match.group(1) if match else ""


class ProjectFormatter:
    """Commands running from a project checkout."""

    name = "project"

    def can_format(self, cmd: str) -> bool:
        return any(directory in cmd for directory in PROJECT_DIRS)

    def format(self, cmd: str) -> str:
        executable = extract_executable(cmd)
        project = extract_project_name(cmd)
        if executable and project:
            return with_project(executable, project)
        return ""


class SystemBinaryFormatter:
    """System binaries, reduced to their base name."""

    name = "system"

    def can_format(self, cmd: str) -> bool:
        return cmd.startswith(SYSTEM_PATHS)

    def format(self, cmd: str) -> str:
        return extract_executable(cmd)


def fallback_format(cmd: str) -> str:
    """Label used when no formatter in the chain claims the command."""
    executable = extract_executable(cmd)
    if not executable:
        if len(cmd) > FALLBACK_MAX_LEN:
            return cmd[: FALLBACK_MAX_LEN - 3] + "..."
        return cmd

    parts = cmd.split()
    if len(parts) > 1 and executable in SCRIPT_RUNNERS:
        arg = parts[1]
        # Flags and "(...)" annotations are not script names
        if not arg.startswith(("-", "(")):
            arg_base = posixpath.basename(arg)
            # Each extension is stripped in turn, so "app.ts.js" becomes "app"
            for ext in SCRIPT_EXTENSIONS:
                arg_base = arg_base.removesuffix(ext)
            if arg_base and arg_base != executable:
                return f"{executable} ({arg_base})"

    return executable


def default_formatters() -> list[CommandFormatter]:
    """Built-in formatters in priority order."""
    return [
        BinSymlinkFormatter(),  # before pnpm/npm, .bin paths also contain node_modules/
        PnpmFormatter(),
        NpmFormatter(),
        HomebrewFormatter(),
        AppBundleFormatter(),
        ProjectFormatter(),
        SystemBinaryFormatter(),
    ]


class CommandFormatterChain:
    """Ordered list of formatters with a total fallback."""

    def __init__(self, formatters: list[CommandFormatter] | None = None) -> None:
        if formatters is None:
            formatters = default_formatters()
        self._formatters = list(formatters)

    @property
    def formatters(self) -> tuple[CommandFormatter, ...]:
        return tuple(self._formatters)

    def register(self, formatter: CommandFormatter) -> None:
        """Add a formatter with the highest priority."""
        self._formatters.insert(0, formatter)

    def format(self, cmd: str) -> str:
        if not cmd:
            return ""
        for formatter in self._formatters:
            if formatter.can_format(cmd):
                result = formatter.format(cmd)
                if result:
                    return result
        return fallback_format(cmd)


_default_chain = CommandFormatterChain()


def format_command(cmd: str) -> str:
    """Format cmd with the default chain."""
    return _default_chain.format(cmd)


def register_formatter(formatter: CommandFormatter) -> None:
    """Register a formatter at the front of the default chain."""
    _default_chain.register(formatter)
