"""CPU registry.

CPU identifiers given on the command line (--cpu) are looked up in a
closed table; anything not listed is rejected.

Supported CPUs:
- x86 (ia32, x64)
- ARM (arm, thumb, arm64)
- RISC-V (riscv32, riscv64)
- MIPS (mips, mipsel)

Example:
    from dasmlaunch.arch import get_cpu, detect_cpu

    cpu = get_cpu("X64")
    cpu = detect_cpu("EM_RISCV", bits=64)

Adding a new CPU:
    1. Subclass CpuArchitecture in a module of this package
    2. Register its names in CPUS below
    3. Map its ELF/PE machine ids in ELF_MACHINES / PE_MACHINES
"""

from typing import Dict, Optional, Type, Union

from dasmlaunch.arch.base import CpuArchitecture
from dasmlaunch.arch.arm import Arm64Cpu, ArmCpu, ThumbCpu
from dasmlaunch.arch.riscv import MipsCpu, MipsElCpu, RiscV64Cpu, RiscVCpu
from dasmlaunch.arch.x86 import Ia32Cpu, X64Cpu
from dasmlaunch.core.errors import UnknownIdentifier

DEFAULT_CPU = "ia32"

# Maps CPU names to their implementation classes
CPUS: Dict[str, Type[CpuArchitecture]] = {
    # x86
    "ia32": Ia32Cpu,
    "x86": Ia32Cpu,
    "i386": Ia32Cpu,
    "x64": X64Cpu,
    "x86_64": X64Cpu,
    "amd64": X64Cpu,
    # ARM
    "arm": ArmCpu,
    "thumb": ThumbCpu,
    "arm64": Arm64Cpu,
    "aarch64": Arm64Cpu,
    # RISC-V
    "riscv32": RiscVCpu,
    "rv32": RiscVCpu,
    "riscv64": RiscV64Cpu,
    "rv64": RiscV64Cpu,
    # MIPS
    "mips": MipsCpu,
    "mipsel": MipsElCpu,
}

# pyelftools e_machine names
ELF_MACHINES: Dict[str, str] = {
    "EM_386": "ia32",
    "EM_X86_64": "x64",
    "EM_ARM": "arm",
    "EM_AARCH64": "arm64",
    "EM_MIPS": "mips",
    "EM_RISCV": "riscv32",
}

# IMAGE_FILE_MACHINE_* values
PE_MACHINES: Dict[int, str] = {
    0x014C: "ia32",
    0x8664: "x64",
    0x01C0: "arm",
    0x01C2: "thumb",
    0x01C4: "thumb",
    0xAA64: "arm64",
}


def get_cpu(name: str) -> CpuArchitecture:
    """Get a CPU by name.

    Args:
        name: CPU name, case-insensitive (e.g., "ia32", "X64", "riscv64")

    Returns:
        CpuArchitecture instance

    Raises:
        UnknownIdentifier: If the CPU is not registered
    """
    cpu_class = CPUS.get(name.lower())
    if cpu_class is None:
        raise UnknownIdentifier("CPU", name, list_cpus())
    return cpu_class()


def detect_cpu(
    machine: Union[str, int],
    bits: Optional[int] = None,
    little_endian: bool = True,
) -> Optional[CpuArchitecture]:
    """Map an executable header's machine field to a CPU.

    Args:
        machine: ELF e_machine name (e.g., "EM_X86_64") or PE machine number
        bits: ELF class (32 or 64) where the machine id is shared
        little_endian: ELF data encoding

    Returns:
        CpuArchitecture, or None if the machine is not supported
    """
    if isinstance(machine, int):
        name = PE_MACHINES.get(machine)
    else:
        name = ELF_MACHINES.get(machine)
        if name == "riscv32" and bits == 64:
            name = "riscv64"
        elif name == "mips" and little_endian:
            name = "mipsel"
    if name is None:
        return None
    return get_cpu(name)


def list_cpus() -> list[str]:
    """List all supported CPU names.

    Returns:
        Sorted list of CPU names
    """
    return sorted(CPUS.keys())


__all__ = [
    "CpuArchitecture",
    "Ia32Cpu",
    "X64Cpu",
    "ArmCpu",
    "ThumbCpu",
    "Arm64Cpu",
    "RiscVCpu",
    "RiscV64Cpu",
    "MipsCpu",
    "MipsElCpu",
    "CPUS",
    "DEFAULT_CPU",
    "get_cpu",
    "detect_cpu",
    "list_cpus",
]
