"""Tools for driving GDB and QEMU."""

from dasmlaunch.tools.gdb_bridge import (
    DisassembledLine,
    EvalResult,
    GDBBridge,
    StopInfo,
    StopReason,
)
from dasmlaunch.tools.qemu_control import (
    QEMUConfig,
    QEMUController,
)

__all__ = [
    # GDB Bridge
    "GDBBridge",
    "StopReason",
    "StopInfo",
    "EvalResult",
    "DisassembledLine",
    # QEMU Controller
    "QEMUController",
    "QEMUConfig",
]
