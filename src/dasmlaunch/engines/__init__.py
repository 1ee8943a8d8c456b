"""Session back ends.

- StaticDisassembler: a decoded file, no execution
- EmulatedDebugger: a decoded file running under QEMU user-mode
- RemoteDebugger: a remote gdbstub
- LiveProcessDebugger: a local process attached with GDB
"""

from dasmlaunch.engines.base import Engine, Instruction, parse_c_prototypes, parse_map_file
from dasmlaunch.engines.debugger import GdbDebugger, RemoteDebugger
from dasmlaunch.engines.emulated import EmulatedDebugger
from dasmlaunch.engines.live import LiveProcessDebugger, find_process
from dasmlaunch.engines.static import StaticDisassembler

__all__ = [
    "Engine",
    "Instruction",
    "GdbDebugger",
    "StaticDisassembler",
    "EmulatedDebugger",
    "RemoteDebugger",
    "LiveProcessDebugger",
    "find_process",
    "parse_map_file",
    "parse_c_prototypes",
]
