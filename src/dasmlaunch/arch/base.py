"""Base CPU definitions.

A CpuArchitecture bundles everything the back ends need to know about a
processor: how capstone decodes it, which qemu user-mode binary runs it,
and the name GDB uses for it.
"""

from typing import Any, FrozenSet, Optional

import capstone


class CpuArchitecture:
    """Processor description shared by the disassembler and the debuggers.

    Subclasses only override class attributes.

    Example:
        cpu = get_cpu("x64")
        for insn in cpu.create_disassembler().disasm(code, 0x1000):
            print(insn.mnemonic)
    """

    name: str = ""
    cs_arch: int = 0
    cs_mode: int = 0
    pointer_size: int = 4
    endianness: str = "little"
    qemu_user: str = ""
    gdb_arch: str = ""
    # Mnemonics that transfer control without falling through
    unconditional_jumps: FrozenSet[str] = frozenset()

    def create_disassembler(self, detail: bool = True) -> capstone.Cs:
        """Create a capstone decoder for this CPU."""
        md = capstone.Cs(self.cs_arch, self.cs_mode)
        md.detail = detail
        return md

    def unpack_word(self, data: bytes) -> int:
        """Read a pointer-sized word in this CPU's byte order."""
        return int.from_bytes(data[:self.pointer_size], self.endianness)  # type: ignore[arg-type]

    # === Control flow helpers ===

    def is_call(self, insn: Any) -> bool:
        return insn.group(capstone.CS_GRP_CALL)

    def is_return(self, insn: Any) -> bool:
        return insn.group(capstone.CS_GRP_RET) or insn.group(capstone.CS_GRP_IRET)

    def is_jump(self, insn: Any) -> bool:
        return insn.group(capstone.CS_GRP_JUMP) or insn.mnemonic in self.unconditional_jumps

    def ends_block(self, insn: Any) -> bool:
        """True if execution cannot fall through to the next instruction."""
        return self.is_return(insn) or insn.mnemonic in self.unconditional_jumps

    def branch_target(self, insn: Any) -> Optional[int]:
        """Immediate destination of a jump or call, if it has one."""
        for op in reversed(insn.operands):
            if op.type == capstone.CS_OP_IMM:
                return op.imm & self.address_mask
        return None

    def memory_reference(self, insn: Any) -> Optional[int]:
        """Address of a memory operand whose location is a constant."""
        for op in insn.operands:
            if op.type == capstone.CS_OP_MEM:
                mem = op.mem
                if mem.base == 0 and getattr(mem, "index", 0) == 0:
                    return mem.disp & self.address_mask
        return None

    @property
    def address_mask(self) -> int:
        return (1 << (self.pointer_size * 8)) - 1

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
