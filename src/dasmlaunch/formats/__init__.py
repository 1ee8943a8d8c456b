"""Executable format registry.

Format identifiers given on the command line (--exe) are looked up in a
closed table. Without one, the file signature picks the format and
anything unrecognised is treated as raw shellcode.

Example:
    from dasmlaunch.formats import decode_file

    image = decode_file("a.out")
    image = decode_file("blob.bin", cpu_name="arm")
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Type

from dasmlaunch.arch import get_cpu
from dasmlaunch.core.errors import DecodeFailure, UnknownIdentifier
from dasmlaunch.formats.base import ExecutableFormat, LoadedImage
from dasmlaunch.formats.elf import ElfFormat
from dasmlaunch.formats.pe import PeFormat
from dasmlaunch.formats.shellcode import ShellcodeFormat

logger = logging.getLogger(__name__)

FORMATS: Dict[str, Type[ExecutableFormat]] = {
    "elf": ElfFormat,
    "pe": PeFormat,
    "coff": PeFormat,
    "shellcode": ShellcodeFormat,
    "raw": ShellcodeFormat,
}

# Tried in order when no format is given
SIGNATURE_FORMATS: List[Type[ExecutableFormat]] = [ElfFormat, PeFormat]


def get_format(name: str) -> ExecutableFormat:
    """Get a format decoder by name.

    Raises:
        UnknownIdentifier: If the format is not registered
    """
    format_class = FORMATS.get(name.lower())
    if format_class is None:
        raise UnknownIdentifier("executable format", name, list_formats())
    return format_class()


def detect_format(header: bytes) -> ExecutableFormat:
    """Pick a decoder from the file signature, falling back to shellcode."""
    for format_class in SIGNATURE_FORMATS:
        if format_class.matches(header):
            return format_class()
    return ShellcodeFormat()


def decode_file(
    path: str,
    format_name: Optional[str] = None,
    cpu_name: Optional[str] = None,
) -> LoadedImage:
    """Read and decode an executable.

    Args:
        path: File to load
        format_name: Explicit format (auto-detected if None)
        cpu_name: CPU overriding the one in the file header (and the
            shellcode default)

    Returns:
        LoadedImage

    Raises:
        DecodeFailure: If the file cannot be read or decoded
        UnknownIdentifier: If format_name or cpu_name is not registered
    """
    cpu = get_cpu(cpu_name) if cpu_name else None
    decoder = get_format(format_name) if format_name else None

    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise DecodeFailure(f"Cannot read {path}: {e.strerror or e}")

    if decoder is None:
        decoder = detect_format(data[:64])
    logger.info(f"Decoding {path} as {decoder.name}")
    return decoder.decode(path, data, cpu)


def list_formats() -> list[str]:
    """List all supported format names."""
    return sorted(FORMATS.keys())


__all__ = [
    "ExecutableFormat",
    "LoadedImage",
    "ElfFormat",
    "PeFormat",
    "ShellcodeFormat",
    "FORMATS",
    "get_format",
    "detect_format",
    "decode_file",
    "list_formats",
]
