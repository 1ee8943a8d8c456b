"""PE/COFF decoding via pefile."""

import logging
from typing import Optional

import pefile

from dasmlaunch.arch import detect_cpu
from dasmlaunch.arch.base import CpuArchitecture
from dasmlaunch.core.errors import DecodeFailure
from dasmlaunch.core.types import Section
from dasmlaunch.formats.base import ExecutableFormat, LoadedImage

logger = logging.getLogger(__name__)

IMAGE_SCN_MEM_EXECUTE = 0x20000000


class PeFormat(ExecutableFormat):
    """Windows PE executables and DLLs."""

    name = "pe"

    @classmethod
    def matches(cls, header: bytes) -> bool:
        return header.startswith(b"MZ")

    def decode(
        self, path: str, data: bytes, cpu: Optional[CpuArchitecture] = None
    ) -> LoadedImage:
        try:
            pe = pefile.PE(data=data)
        except pefile.PEFormatError as e:
            raise DecodeFailure(f"{path}: invalid PE file: {e}")

        machine = pe.FILE_HEADER.Machine
        if cpu is None:
            cpu = detect_cpu(machine)
        if cpu is None:
            raise DecodeFailure(f"{path}: unsupported PE machine 0x{machine:04x}, use --cpu")

        image_base = pe.OPTIONAL_HEADER.ImageBase
        sections = [
            Section(
                name=s.Name.decode(errors="replace").rstrip("\x00"),
                address=image_base + s.VirtualAddress,
                data=s.get_data(),
                executable=bool(s.Characteristics & IMAGE_SCN_MEM_EXECUTE),
            )
            for s in pe.sections
        ]

        symbols = {}
        exports = []
        if hasattr(pe, "DIRECTORY_ENTRY_EXPORT"):
            for sym in pe.DIRECTORY_ENTRY_EXPORT.symbols:
                name = sym.name.decode(errors="replace") if sym.name else f"ord_{sym.ordinal}"
                symbols[name] = image_base + sym.address
                exports.append(name)
        if hasattr(pe, "DIRECTORY_ENTRY_IMPORT"):
            for entry in pe.DIRECTORY_ENTRY_IMPORT:
                dll = entry.dll.decode(errors="replace").lower()
                for imp in entry.imports:
                    if imp.name:
                        symbols.setdefault(f"{dll}!{imp.name.decode(errors='replace')}", imp.address)

        entry_rva = pe.OPTIONAL_HEADER.AddressOfEntryPoint
        logger.debug(f"PE {path}: machine 0x{machine:04x}, {len(sections)} sections")
        return LoadedImage(
            path=path,
            format=self.name,
            cpu=cpu,
            base_address=image_base,
            sections=sections,
            entrypoint=image_base + entry_rva if entry_rva else None,
            symbols=symbols,
            exports=exports,
        )
