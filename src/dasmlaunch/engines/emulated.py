"""Emulated execution: a program under QEMU user-mode, debugged through GDB."""

from typing import List, Optional

from dasmlaunch.core.types import Entrypoint, TargetKind
from dasmlaunch.engines.debugger import GdbDebugger
from dasmlaunch.engines.static import StaticDisassembler
from dasmlaunch.tools.gdb_bridge import GDBBridge
from dasmlaunch.tools.qemu_control import QEMUController


class EmulatedDebugger(GdbDebugger):
    """Execution engine wrapping a static disassembler.

    Listing, labels and cross references come from the wrapped
    StaticDisassembler (the emulated code is the decoded file); execution
    control goes to QEMU through GDB.
    """

    kind = TargetKind.EMULATED

    def __init__(
        self,
        dasm: StaticDisassembler,
        qemu: QEMUController,
        gdb: GDBBridge,
    ) -> None:
        assert dasm.image is not None
        super().__init__(gdb, dasm.image.cpu, "emudbg")
        self.dasm = dasm
        self.qemu = qemu
        # One set of analysis tables, shared with the wrapped disassembler
        self.labels = dasm.labels
        self.comments = dasm.comments
        self.prototypes = dasm.prototypes
        self.listing = dasm.listing
        self.xrefs = dasm.xrefs
        self.functions = dasm.functions

    @property
    def image(self):
        return self.dasm.image

    async def disassemble(self, entrypoint: Entrypoint, fast: bool = False) -> int:
        self.dasm.data_trace = self.data_trace
        self.dasm.debug_backtrace = self.debug_backtrace
        return await self.dasm.disassemble(entrypoint, fast=fast)

    async def resolve_label(self, name: str) -> Optional[int]:
        address = await self.dasm.resolve_label(name)
        if address is None:
            address = await super().resolve_label(name)
        return address

    def default_entrypoints(self) -> List[Entrypoint]:
        return self.dasm.default_entrypoints()

    async def close(self) -> None:
        await super().close()
        await self.qemu.stop()
