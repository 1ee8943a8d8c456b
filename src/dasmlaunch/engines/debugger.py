"""GDB-backed debugger engines."""

import logging
from typing import Dict, Optional

from dasmlaunch.arch.base import CpuArchitecture
from dasmlaunch.core.types import Entrypoint, TargetKind
from dasmlaunch.engines.base import Engine, Instruction
from dasmlaunch.tools.gdb_bridge import GDBBridge, StopInfo

logger = logging.getLogger(__name__)

# Bytes of code listed per disassembly request
DISASSEMBLY_WINDOW = 0x80


class GdbDebugger(Engine):
    """Debugger engine driving a running target through GDB/MI.

    The target must already be attached when the engine is created; the
    engine owns the bridge and closes it.
    """

    supports_execution = True

    def __init__(self, gdb: GDBBridge, cpu: CpuArchitecture, title: str) -> None:
        super().__init__(title)
        self.gdb = gdb
        self.cpu = cpu

    # === Disassembly ===

    async def disassemble(self, entrypoint: Entrypoint, fast: bool = False) -> int:
        address = await self.resolve_entrypoint(entrypoint)
        if address is None:
            logger.warning(f"Unknown label: {entrypoint}")
            return 0

        lines = await self.gdb.disassemble(address, address + DISASSEMBLY_WINDOW)
        before = len(self.listing)
        for line, following in zip(lines, lines[1:] + [None]):
            mnemonic, _, op_str = line.text.partition(" ")
            size = following.address - line.address if following else 0
            self.listing.setdefault(
                line.address, Instruction(line.address, size, mnemonic, op_str)
            )
            if line.function and line.offset == 0:
                self.labels.setdefault(line.address, line.function)
                self.functions.add(line.address)
        return len(self.listing) - before

    async def resolve_label(self, name: str) -> Optional[int]:
        address = await super().resolve_label(name)
        if address is None and self.gdb.connected:
            address = await self.gdb.address_of(name)
        return address

    # === Execution ===

    async def get_pc(self) -> int:
        return await self.gdb.read_register("pc")

    async def set_pc(self, address: int) -> None:
        if not await self.gdb.set_pc(address):
            logger.warning(f"Could not move pc to 0x{address:x}")

    async def step(self) -> StopInfo:
        return await self.gdb.step(instruction=True)

    async def continue_execution(self) -> StopInfo:
        return await self.gdb.continue_execution()

    async def read_registers(self) -> Dict[str, int]:
        return await self.gdb.read_registers()

    async def read_memory(self, address: int, length: int) -> bytes:
        return await self.gdb.read_memory(address, length)

    async def evaluate(self, expression: str) -> str:
        """Evaluate a GDB expression in the target's current frame."""
        return (await self.gdb.evaluate(expression)).value

    async def close(self) -> None:
        await self.gdb.close()


class RemoteDebugger(GdbDebugger):
    """Debugger attached to a remote gdbstub (gdbserver, QEMU, JTAG probes)."""

    kind = TargetKind.REMOTE_DEBUG

    def __init__(self, gdb: GDBBridge, cpu: CpuArchitecture, endpoint: str) -> None:
        super().__init__(gdb, cpu, "remote - dasmlaunch debugger")
        self.endpoint = endpoint
