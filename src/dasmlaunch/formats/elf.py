"""ELF decoding via pyelftools."""

import io
import logging
from typing import Dict, List, Optional, Tuple

from elftools.common.exceptions import ELFError
from elftools.elf.elffile import ELFFile
from elftools.elf.sections import SymbolTableSection

from dasmlaunch.arch import detect_cpu
from dasmlaunch.arch.base import CpuArchitecture
from dasmlaunch.core.errors import DecodeFailure
from dasmlaunch.core.types import Section
from dasmlaunch.formats.base import ExecutableFormat, LoadedImage

logger = logging.getLogger(__name__)

PF_X = 0x1
SHF_ALLOC = 0x2
SHF_EXECINSTR = 0x4


class ElfFormat(ExecutableFormat):
    """ELF executables, shared objects and relocatable objects."""

    name = "elf"

    @classmethod
    def matches(cls, header: bytes) -> bool:
        return header.startswith(b"\x7fELF")

    def decode(
        self, path: str, data: bytes, cpu: Optional[CpuArchitecture] = None
    ) -> LoadedImage:
        try:
            elf = ELFFile(io.BytesIO(data))
            machine = elf["e_machine"]
            if cpu is None:
                cpu = detect_cpu(machine, bits=elf.elfclass, little_endian=elf.little_endian)
            if cpu is None:
                raise DecodeFailure(f"{path}: unsupported ELF machine {machine}, use --cpu")

            sections = self._load_segments(elf) or self._load_sections(elf)
            symbols, exports = self._read_symbols(elf)
            entry = elf["e_entry"] or None
        except ELFError as e:
            raise DecodeFailure(f"{path}: invalid ELF file: {e}")

        base = min((s.address for s in sections), default=0)
        logger.debug(
            f"ELF {path}: {machine}, {len(sections)} regions, {len(symbols)} symbols"
        )
        return LoadedImage(
            path=path,
            format=self.name,
            cpu=cpu,
            base_address=base,
            sections=sections,
            entrypoint=entry,
            symbols=symbols,
            exports=exports,
        )

    def _load_segments(self, elf: ELFFile) -> List[Section]:
        """Map PT_LOAD segments (linked executables and libraries)."""
        result = []
        for i, segment in enumerate(elf.iter_segments()):
            if segment["p_type"] != "PT_LOAD":
                continue
            result.append(Section(
                name=f"seg{i}",
                address=segment["p_vaddr"],
                data=segment.data(),
                executable=bool(segment["p_flags"] & PF_X),
            ))
        return result

    def _load_sections(self, elf: ELFFile) -> List[Section]:
        """Map allocated sections (relocatable objects have no segments)."""
        result = []
        for section in elf.iter_sections():
            if not section["sh_flags"] & SHF_ALLOC or section["sh_type"] == "SHT_NOBITS":
                continue
            result.append(Section(
                name=section.name,
                address=section["sh_addr"],
                data=section.data(),
                executable=bool(section["sh_flags"] & SHF_EXECINSTR),
            ))
        return result

    def _read_symbols(self, elf: ELFFile) -> Tuple[Dict[str, int], List[str]]:
        symbols: Dict[str, int] = {}
        exports: List[str] = []
        for section in elf.iter_sections():
            if not isinstance(section, SymbolTableSection):
                continue
            dynamic = section.name == ".dynsym"
            for sym in section.iter_symbols():
                if not sym.name or not sym["st_value"] or sym["st_shndx"] == "SHN_UNDEF":
                    continue
                if sym["st_info"]["type"] not in ("STT_FUNC", "STT_OBJECT", "STT_NOTYPE"):
                    continue
                symbols.setdefault(sym.name, sym["st_value"])
                if (
                    dynamic
                    and sym["st_info"]["type"] == "STT_FUNC"
                    and sym["st_info"]["bind"] == "STB_GLOBAL"
                    and sym.name not in exports
                ):
                    exports.append(sym.name)
        return symbols, exports
