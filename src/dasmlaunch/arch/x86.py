"""Intel x86 processors."""

from typing import Any, Optional

import capstone
from capstone import x86 as cs_x86

from dasmlaunch.arch.base import CpuArchitecture


class Ia32Cpu(CpuArchitecture):
    """32-bit x86. The default CPU for shellcode and remote targets."""

    name = "ia32"
    cs_arch = capstone.CS_ARCH_X86
    cs_mode = capstone.CS_MODE_32
    pointer_size = 4
    qemu_user = "qemu-i386"
    gdb_arch = "i386"
    unconditional_jumps = frozenset({"jmp", "ljmp"})


class X64Cpu(Ia32Cpu):
    """x86-64."""

    name = "x64"
    cs_mode = capstone.CS_MODE_64
    pointer_size = 8
    qemu_user = "qemu-x86_64"
    gdb_arch = "i386:x86-64"

    def memory_reference(self, insn: Any) -> Optional[int]:
        # [rip + disp] is relative to the next instruction
        for op in insn.operands:
            if op.type == capstone.CS_OP_MEM and op.mem.base == cs_x86.X86_REG_RIP and op.mem.index == 0:
                return (insn.address + insn.size + op.mem.disp) & self.address_mask
        return super().memory_reference(insn)
