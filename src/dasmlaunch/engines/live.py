"""Live local processes, found with psutil and attached with GDB."""

import logging
import os
import platform
import shlex
import shutil
from typing import Optional, Union

import psutil

from dasmlaunch.arch import CPUS, DEFAULT_CPU, get_cpu
from dasmlaunch.arch.base import CpuArchitecture
from dasmlaunch.core.types import TargetKind
from dasmlaunch.engines.debugger import GdbDebugger
from dasmlaunch.tools.gdb_bridge import GDBBridge

logger = logging.getLogger(__name__)

# platform.machine() values that are not CPU names
_HOST_MACHINES = {"i686": "ia32", "i586": "ia32", "armv7l": "arm"}


def find_process(locator: Union[int, str]) -> Optional[psutil.Process]:
    """Find a running process.

    Args:
        locator: pid, or a substring of the process name or command line

    Returns:
        The process (lowest pid among name matches), or None
    """
    if isinstance(locator, int):
        try:
            return psutil.Process(locator)
        except psutil.NoSuchProcess:
            return None

    own_pid = os.getpid()
    for proc in sorted(psutil.process_iter(["pid", "name", "cmdline"]), key=lambda p: p.pid):
        if proc.pid == own_pid:
            continue
        name = proc.info.get("name") or ""
        cmdline = " ".join(proc.info.get("cmdline") or [])
        if locator in name or locator in cmdline:
            logger.debug(f"Process {proc.pid} ({name}) matches {locator!r}")
            return proc
    return None


def spawnable_command(locator: Union[int, str]) -> Optional[list]:
    """Split a locator into a command line if its program can be run."""
    if isinstance(locator, int):
        return None
    try:
        argv = shlex.split(locator)
    except ValueError:
        return None
    if not argv:
        return None
    program = argv[0]
    if os.path.isfile(program) and os.access(program, os.X_OK):
        return [os.path.abspath(program)] + argv[1:]
    resolved = shutil.which(program)
    if resolved:
        return [resolved] + argv[1:]
    return None


def host_cpu() -> CpuArchitecture:
    """CPU of the machine we run on, for local processes."""
    machine = platform.machine().lower()
    name = _HOST_MACHINES.get(machine, machine)
    return get_cpu(name if name in CPUS else DEFAULT_CPU)


def module_path(pid: int) -> Optional[str]:
    """Path of the main module of a process, if it can be read."""
    try:
        return psutil.Process(pid).exe() or None
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
        return None


class LiveProcessDebugger(GdbDebugger):
    """Debugger attached to (or started on) a local process."""

    kind = TargetKind.LIVE_PROCESS

    def __init__(
        self,
        gdb: GDBBridge,
        cpu: CpuArchitecture,
        pid: int,
        path: Optional[str] = None,
        spawned: bool = False,
    ) -> None:
        super().__init__(gdb, cpu, f"{pid}:{path or ''} - dasmlaunch debugger")
        self.pid = pid
        self.path = path
        self.spawned = spawned
