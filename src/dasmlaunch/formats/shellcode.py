"""Raw shellcode: the whole file is code mapped at address 0."""

from typing import Optional

from dasmlaunch.arch import DEFAULT_CPU, get_cpu
from dasmlaunch.arch.base import CpuArchitecture
from dasmlaunch.core.types import Section
from dasmlaunch.formats.base import ExecutableFormat, LoadedImage


class ShellcodeFormat(ExecutableFormat):
    """Headerless code. Accepts any input."""

    name = "shellcode"

    def decode(
        self, path: str, data: bytes, cpu: Optional[CpuArchitecture] = None
    ) -> LoadedImage:
        return LoadedImage(
            path=path,
            format=self.name,
            cpu=cpu or get_cpu(DEFAULT_CPU),
            base_address=0,
            sections=[Section(name="shellcode", address=0, data=data)],
            entrypoint=0,
        )
