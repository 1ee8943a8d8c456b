"""Pytest fixtures for dasmlaunch tests."""

import shutil
import socket
import struct
from pathlib import Path

import pytest

from dasmlaunch.core.types import Options

# ia32:
#   0x0  push ebp
#   0x1  mov ebp, esp
#   0x3  call 0xb
#   0x8  pop ebp
#   0x9  ret
#   0xa  nop            (unreachable)
#   0xb  xor eax, eax
#   0xd  ret
SHELLCODE = bytes.fromhex("5589e5e8030000005dc39031c0c3")


@pytest.fixture
def shellcode_path(tmp_path: Path) -> Path:
    """A raw ia32 shellcode file."""
    path = tmp_path / "sample.bin"
    path.write_bytes(SHELLCODE)
    return path


# Minimal static ia32 ELF: one R+X PT_LOAD segment holding SHELLCODE
ELF_BASE = 0x08048000
ELF_HEADER_SIZE = 52 + 32
ELF_ENTRY = ELF_BASE + ELF_HEADER_SIZE


def build_elf(code: bytes) -> bytes:
    size = ELF_HEADER_SIZE + len(code)
    ident = b"\x7fELF" + bytes([1, 1, 1]) + bytes(9)
    header = struct.pack(
        "<16sHHIIIIIHHHHHH",
        ident, 2, 3, 1, ELF_ENTRY, 52, 0, 0, 52, 32, 1, 0, 0, 0,
    )
    segment = struct.pack("<IIIIIIII", 1, 0, ELF_BASE, ELF_BASE, size, size, 5, 0x1000)
    return header + segment + code


@pytest.fixture
def elf_path(tmp_path: Path) -> Path:
    """SHELLCODE wrapped in a static ia32 ELF executable."""
    path = tmp_path / "sample.elf"
    path.write_bytes(build_elf(SHELLCODE))
    return path


@pytest.fixture
def headless_options() -> Options:
    """Options selecting the headless window."""
    return Options(gui="headless")


@pytest.fixture
def gdb_path() -> str:
    """Path to gdb-multiarch, skipping the test if it is not installed."""
    path = shutil.which("gdb-multiarch")
    if path is None:
        pytest.skip("gdb-multiarch not installed")
    return path


@pytest.fixture
def qemu_i386_path() -> str:
    """Path to qemu-i386, skipping the test if it is not installed."""
    path = shutil.which("qemu-i386")
    if path is None:
        pytest.skip("qemu-i386 not installed")
    return path


@pytest.fixture
def free_port() -> int:
    """A local TCP port nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("localhost", 0))
        return sock.getsockname()[1]
