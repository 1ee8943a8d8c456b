"""RISC-V and MIPS processors."""

import capstone

from dasmlaunch.arch.base import CpuArchitecture


class RiscVCpu(CpuArchitecture):
    """RISC-V base definition (RV32 with compressed instructions)."""

    name = "riscv32"
    cs_arch = capstone.CS_ARCH_RISCV
    cs_mode = capstone.CS_MODE_RISCV32 | capstone.CS_MODE_RISCVC
    pointer_size = 4
    qemu_user = "qemu-riscv32"
    gdb_arch = "riscv:rv32"
    unconditional_jumps = frozenset({"j", "jr", "c.j", "c.jr"})


class RiscV64Cpu(RiscVCpu):
    """RV64 with compressed instructions."""

    name = "riscv64"
    cs_mode = capstone.CS_MODE_RISCV64 | capstone.CS_MODE_RISCVC
    pointer_size = 8
    qemu_user = "qemu-riscv64"
    gdb_arch = "riscv:rv64"


class MipsCpu(CpuArchitecture):
    """Big-endian MIPS32."""

    name = "mips"
    cs_arch = capstone.CS_ARCH_MIPS
    cs_mode = capstone.CS_MODE_MIPS32 | capstone.CS_MODE_BIG_ENDIAN
    pointer_size = 4
    endianness = "big"
    qemu_user = "qemu-mips"
    gdb_arch = "mips"
    unconditional_jumps = frozenset({"j", "jr", "b"})


class MipsElCpu(MipsCpu):
    """Little-endian MIPS32."""

    name = "mipsel"
    cs_mode = capstone.CS_MODE_MIPS32 | capstone.CS_MODE_LITTLE_ENDIAN
    endianness = "little"
    qemu_user = "qemu-mipsel"
