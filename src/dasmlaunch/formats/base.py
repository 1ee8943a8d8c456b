"""Base executable format definitions."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dasmlaunch.arch.base import CpuArchitecture
from dasmlaunch.core.types import Section


@dataclass
class LoadedImage:
    """A decoded executable, mapped at its preferred addresses.

    Attributes:
        path: File the image was read from
        format: Format name ("elf", "pe", "shellcode")
        cpu: Processor the code is decoded for
        base_address: Lowest mapped address
        sections: Mapped regions
        entrypoint: Declared entry address, if any
        symbols: Known names (name -> address)
        exports: Names exported by the image, in table order
    """

    path: str
    format: str
    cpu: CpuArchitecture
    base_address: int = 0
    sections: List[Section] = field(default_factory=list)
    entrypoint: Optional[int] = None
    symbols: Dict[str, int] = field(default_factory=dict)
    exports: List[str] = field(default_factory=list)

    def rebase(self, new_base: int) -> None:
        """Relocate every address in the image so it starts at new_base."""
        delta = new_base - self.base_address
        if not delta:
            return
        for section in self.sections:
            section.address += delta
        if self.entrypoint is not None:
            self.entrypoint += delta
        self.symbols = {name: addr + delta for name, addr in self.symbols.items()}
        self.base_address = new_base

    def section_at(self, address: int) -> Optional[Section]:
        for section in self.sections:
            if section.contains(address):
                return section
        return None

    def read(self, address: int, length: int) -> bytes:
        """Read mapped bytes; stops at the end of the containing section."""
        section = self.section_at(address)
        if section is None:
            return b""
        offset = address - section.address
        return section.data[offset:offset + length]

    def default_entrypoints(self) -> List[int]:
        """Declared entry address followed by exported symbol addresses."""
        result: List[int] = []
        if self.entrypoint is not None:
            result.append(self.entrypoint)
        for name in self.exports:
            addr = self.symbols.get(name)
            if addr is not None and addr not in result:
                result.append(addr)
        return result


class ExecutableFormat(ABC):
    """An executable file format decoder.

    Subclasses set a name and implement matches() and decode().
    """

    name: str = ""

    @classmethod
    def matches(cls, header: bytes) -> bool:
        """True if the leading bytes carry this format's signature."""
        return False

    @abstractmethod
    def decode(
        self, path: str, data: bytes, cpu: Optional[CpuArchitecture] = None
    ) -> LoadedImage:
        """Decode file contents.

        Args:
            path: File path (recorded in the image)
            data: File contents
            cpu: CPU to use instead of the one declared in the header

        Returns:
            LoadedImage

        Raises:
            DecodeFailure: If the data is not a valid file of this format
        """
        ...
