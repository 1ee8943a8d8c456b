"""Tests for the executable format registry and decoders."""

from pathlib import Path

import pytest
from unittest.mock import patch

from dasmlaunch.arch.arm import ArmCpu
from dasmlaunch.arch.x86 import Ia32Cpu
from dasmlaunch.core.errors import DecodeFailure, UnknownIdentifier
from dasmlaunch.core.types import Section
from dasmlaunch.formats import (
    ElfFormat,
    PeFormat,
    ShellcodeFormat,
    decode_file,
    detect_format,
    get_format,
    list_formats,
)
from dasmlaunch.formats.base import LoadedImage


class TestFormatRegistry:
    """Test format lookup."""

    def test_get_format(self) -> None:
        assert isinstance(get_format("elf"), ElfFormat)
        assert isinstance(get_format("PE"), PeFormat)
        assert isinstance(get_format("raw"), ShellcodeFormat)

    def test_unknown_format(self) -> None:
        """Test unknown names are rejected with the supported list."""
        with pytest.raises(UnknownIdentifier) as exc_info:
            get_format("macho")
        assert exc_info.value.supported == list_formats()

    def test_detect_by_signature(self) -> None:
        assert isinstance(detect_format(b"\x7fELF\x01\x01"), ElfFormat)
        assert isinstance(detect_format(b"MZ\x90\x00"), PeFormat)
        assert isinstance(detect_format(b"\x55\x89\xe5"), ShellcodeFormat)


class TestDecodeFile:
    """Test decoding files."""

    def test_shellcode_defaults(self, shellcode_path: Path) -> None:
        """Test headerless files load at 0 under ia32."""
        image = decode_file(str(shellcode_path))
        assert image.format == "shellcode"
        assert isinstance(image.cpu, Ia32Cpu)
        assert image.entrypoint == 0
        assert image.sections[0].address == 0
        assert image.default_entrypoints() == [0]

    def test_static_elf(self, elf_path: Path) -> None:
        """Test a section-less ELF maps its PT_LOAD segment."""
        image = decode_file(str(elf_path))
        assert image.format == "elf"
        assert isinstance(image.cpu, Ia32Cpu)
        assert image.entrypoint == 0x08048054
        assert image.sections[0].address == 0x08048000
        assert image.sections[0].executable is True
        assert image.read(0x08048054, 2) == bytes.fromhex("5589")

    def test_cpu_override(self, shellcode_path: Path) -> None:
        image = decode_file(str(shellcode_path), cpu_name="arm")
        assert isinstance(image.cpu, ArmCpu)

    def test_format_override(self, tmp_path: Path) -> None:
        """Test an explicit format skips signature detection."""
        path = tmp_path / "looks_like.elf"
        path.write_bytes(b"\x7fELF garbage")
        image = decode_file(str(path), format_name="shellcode")
        assert image.format == "shellcode"

    def test_signature_dispatch(self, shellcode_path: Path) -> None:
        """Test the detected decoder receives the file contents."""
        image = LoadedImage(path=str(shellcode_path), format="elf", cpu=Ia32Cpu())
        with patch.object(ElfFormat, "matches", return_value=True), \
             patch.object(ElfFormat, "decode", return_value=image) as mock_decode:
            assert decode_file(str(shellcode_path)) is image
        mock_decode.assert_called_once()
        assert mock_decode.call_args[0][1] == shellcode_path.read_bytes()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(DecodeFailure, match="Cannot read"):
            decode_file(str(tmp_path / "missing.bin"))

    def test_invalid_elf(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.elf"
        path.write_bytes(b"\x7fELF" + b"\x00" * 60)
        with pytest.raises(DecodeFailure, match="invalid ELF"):
            decode_file(str(path))

    def test_invalid_pe(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.exe"
        path.write_bytes(b"MZ" + b"\x00" * 254)
        with pytest.raises(DecodeFailure, match="invalid PE"):
            decode_file(str(path))

    def test_unknown_cpu_before_reading(self, tmp_path: Path) -> None:
        """Test identifiers are checked even when the file is missing."""
        with pytest.raises(UnknownIdentifier):
            decode_file(str(tmp_path / "missing.bin"), cpu_name="z80")


class TestLoadedImage:
    """Test image relocation and reads."""

    def _image(self) -> LoadedImage:
        return LoadedImage(
            path="a.out",
            format="elf",
            cpu=Ia32Cpu(),
            base_address=0x1000,
            sections=[Section("text", 0x1000, b"\x90" * 0x10)],
            entrypoint=0x1004,
            symbols={"main": 0x1008},
            exports=["main"],
        )

    def test_rebase(self) -> None:
        """Test rebasing shifts sections, entry and symbols."""
        image = self._image()
        image.rebase(0x400000)
        assert image.base_address == 0x400000
        assert image.sections[0].address == 0x400000
        assert image.entrypoint == 0x400004
        assert image.symbols == {"main": 0x400008}

    def test_default_entrypoints(self) -> None:
        """Test the entry comes before exports."""
        assert self._image().default_entrypoints() == [0x1004, 0x1008]

    def test_read_stops_at_section_end(self) -> None:
        image = self._image()
        assert image.read(0x100E, 16) == b"\x90\x90"
        assert image.read(0x2000, 4) == b""
