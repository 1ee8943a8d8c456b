"""Shared data types for the launcher."""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

# A symbolic label or an absolute address
Entrypoint = Union[int, str]


class TargetKind(Enum):
    """Back end selected by the target string."""
    LIVE_PROCESS = "live"
    EMULATED = "emu"
    REMOTE_DEBUG = "remote"
    STATIC_EXECUTABLE = "static"


@dataclass(frozen=True)
class TargetSpec:
    """A classified target string.

    Attributes:
        raw: Target string as given on the command line (None for no target)
        kind: Back end kind
        locator: pid or name filter (live), endpoint (remote), path (others)
    """
    raw: Optional[str]
    kind: TargetKind
    locator: Union[int, str, None] = None

    @property
    def path(self) -> Optional[str]:
        """File path for file-backed targets, else None."""
        if self.kind in (TargetKind.STATIC_EXECUTABLE, TargetKind.EMULATED):
            return self.locator  # type: ignore[return-value]
        return None


@dataclass(frozen=True)
class Options:
    """Launch options, built once from the command line.

    Stages that derive new values (autoload) return a copy through
    dataclasses.replace instead of mutating.
    """
    no_data_trace: bool = False
    debug_backtrace: bool = False
    plugins: Tuple[str, ...] = ()
    hook_code: Tuple[str, ...] = ()
    map_file: Optional[str] = None
    fast: bool = False
    decompile: bool = False
    cpu_override: Optional[str] = None
    exe_format_override: Optional[str] = None
    rebase_addr: Optional[int] = None
    c_header_file: Optional[str] = None
    autoload: bool = False
    session_file: Optional[str] = None
    new_session: bool = False
    dasm_all_entrypoints: bool = False
    # Logging context
    verbose: bool = False
    debug: bool = False
    gui: str = "console"


@dataclass(frozen=True)
class PluginLoadResult:
    """Outcome of loading one plugin."""
    path: str
    succeeded: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class ToolPaths:
    """External tools used by the debugger back ends.

    Attributes:
        gdb_path: GDB executable (must understand the target architecture)
        qemu_path: Explicit qemu user-mode binary; derived from the CPU if None
        gdb_port: Port for the emulator's GDB stub
    """
    gdb_path: str = "gdb-multiarch"
    qemu_path: Optional[str] = None
    gdb_port: int = 1234

    @classmethod
    def from_env(
        cls,
        gdb_path: Optional[str] = None,
        qemu_path: Optional[str] = None,
        gdb_port: Optional[int] = None,
    ) -> "ToolPaths":
        """Build from explicit values, falling back to DASMLAUNCH_* variables."""
        return cls(
            gdb_path=gdb_path or os.environ.get("DASMLAUNCH_GDB_PATH", "gdb-multiarch"),
            qemu_path=qemu_path or os.environ.get("DASMLAUNCH_QEMU_PATH"),
            gdb_port=gdb_port or int(os.environ.get("DASMLAUNCH_GDB_PORT", "1234")),
        )


@dataclass
class Section:
    """A loaded region of an image."""
    name: str
    address: int
    data: bytes = field(repr=False, default=b"")
    executable: bool = True

    @property
    def end(self) -> int:
        return self.address + len(self.data)

    def contains(self, address: int) -> bool:
        return self.address <= address < self.end
