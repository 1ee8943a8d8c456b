"""Static disassembler over a decoded image."""

import logging
from typing import List, Optional

from dasmlaunch.core.types import Entrypoint, TargetKind
from dasmlaunch.engines.base import Engine, Instruction
from dasmlaunch.formats.base import LoadedImage

logger = logging.getLogger(__name__)

# Longest instruction any supported CPU encodes
MAX_INSN_SIZE = 16


class StaticDisassembler(Engine):
    """Recursive-traversal disassembler over a LoadedImage.

    Follows fall-through, direct jumps and direct calls. Unless running in
    fast mode it also follows indirect branches through constant pointers
    stored in the image and, with data tracing on, records references to
    data.

    Example:
        dasm = StaticDisassembler(decode_file("a.out"), "a.out - dasmlaunch disassembler")
        await dasm.disassemble("main")
    """

    kind = TargetKind.STATIC_EXECUTABLE

    def __init__(self, image: Optional[LoadedImage], title: str) -> None:
        super().__init__(title)
        self.image = image
        self._md = image.cpu.create_disassembler() if image else None
        if image:
            for name, address in image.symbols.items():
                self.labels.setdefault(address, name)
            if image.entrypoint is not None:
                self.labels.setdefault(image.entrypoint, "entrypoint")

    @property
    def cpu(self):
        return self.image.cpu if self.image else None

    async def resolve_label(self, name: str) -> Optional[int]:
        address = await super().resolve_label(name)
        if address is None and self.image:
            address = self.image.symbols.get(name)
        return address

    def default_entrypoints(self) -> List[Entrypoint]:
        if self.image is None:
            return []
        return list(self.image.default_entrypoints())

    async def disassemble(self, entrypoint: Entrypoint, fast: bool = False) -> int:
        if self.image is None:
            logger.warning("No file loaded, nothing to disassemble")
            return 0
        address = await self.resolve_entrypoint(entrypoint)
        if address is None:
            logger.warning(f"Unknown label: {entrypoint}")
            return 0

        before = len(self.listing)
        self.functions.add(address)
        worklist = [address]
        while worklist:
            self._disassemble_block(worklist.pop(), worklist, fast)
        decoded = len(self.listing) - before
        logger.info(f"Disassembled {decoded} instructions from {self.describe(address)}")
        return decoded

    def _disassemble_block(self, address: int, worklist: List[int], fast: bool) -> None:
        """Decode straight-line code from address, queueing branch targets."""
        assert self.image is not None and self._md is not None
        cpu = self.image.cpu
        while address not in self.listing:
            section = self.image.section_at(address)
            if section is None or not section.executable:
                logger.debug(f"0x{address:x} is not in executable memory")
                return
            insn = next(self._md.disasm(self.image.read(address, MAX_INSN_SIZE), address, 1), None)
            if insn is None:
                logger.debug(f"Cannot decode instruction at 0x{address:x}")
                return
            self.listing[address] = Instruction(insn.address, insn.size, insn.mnemonic, insn.op_str)

            if cpu.is_call(insn) or cpu.is_jump(insn):
                target = cpu.branch_target(insn)
                if target is None and not fast:
                    target = self._trace_pointer(insn)
                if target is not None:
                    self.xrefs[target].add(address)
                    if cpu.is_call(insn):
                        self.functions.add(target)
                    worklist.append(target)
            elif self.data_trace and not fast:
                ref = cpu.memory_reference(insn)
                if ref is not None:
                    self.xrefs[ref].add(address)

            if cpu.ends_block(insn):
                return
            address += insn.size

    def _trace_pointer(self, insn) -> Optional[int]:
        """Resolve "jmp [ptr]" style branches by reading ptr from the image."""
        assert self.image is not None
        cpu = self.image.cpu
        pointer = cpu.memory_reference(insn)
        if pointer is None:
            return None
        if self.data_trace:
            self.xrefs[pointer].add(insn.address)
        raw = self.image.read(pointer, cpu.pointer_size)
        if len(raw) < cpu.pointer_size:
            return None
        target = cpu.unpack_word(raw)
        if self.debug_backtrace:
            logger.debug(
                f"0x{insn.address:x}: {insn.mnemonic} {insn.op_str} -> [0x{pointer:x}] = 0x{target:x}"
            )
        return target if self.image.section_at(target) else None
