"""ARM processors (A32, Thumb, AArch64)."""

import capstone

from dasmlaunch.arch.base import CpuArchitecture


class ArmCpu(CpuArchitecture):
    """32-bit ARM in A32 state."""

    name = "arm"
    cs_arch = capstone.CS_ARCH_ARM
    cs_mode = capstone.CS_MODE_ARM
    pointer_size = 4
    qemu_user = "qemu-arm"
    gdb_arch = "arm"
    unconditional_jumps = frozenset({"b", "bx", "b.w"})


class ThumbCpu(ArmCpu):
    """32-bit ARM in Thumb state (Cortex-M and Thumb-2 binaries)."""

    name = "thumb"
    cs_mode = capstone.CS_MODE_THUMB


class Arm64Cpu(CpuArchitecture):
    """AArch64."""

    name = "arm64"
    cs_arch = capstone.CS_ARCH_ARM64
    cs_mode = capstone.CS_MODE_ARM
    pointer_size = 8
    qemu_user = "qemu-aarch64"
    gdb_arch = "aarch64"
    unconditional_jumps = frozenset({"b", "br"})
