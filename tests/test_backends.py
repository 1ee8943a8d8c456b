"""Tests for BackendFactory."""

import os
from pathlib import Path

import pytest
from unittest.mock import AsyncMock, Mock, patch

from dasmlaunch.arch.arm import ArmCpu
from dasmlaunch.arch.x86 import Ia32Cpu
from dasmlaunch.backends import BackendFactory
from dasmlaunch.core.errors import LaunchError, TargetNotFound, UnknownIdentifier
from dasmlaunch.core.types import Options, TargetKind, TargetSpec, ToolPaths
from dasmlaunch.engines import (
    EmulatedDebugger,
    LiveProcessDebugger,
    RemoteDebugger,
    StaticDisassembler,
)
from dasmlaunch.gui.window import HeadlessWindow
from dasmlaunch.tools.gdb_bridge import StopInfo, StopReason


def _static(path) -> TargetSpec:
    return TargetSpec(raw=path, kind=TargetKind.STATIC_EXECUTABLE, locator=path)


def _mock_gdb_class(**results) -> Mock:
    """A GDBBridge class whose instances succeed unless told otherwise."""
    gdb = Mock()
    gdb.start = AsyncMock()
    gdb.close = AsyncMock()
    gdb.set_architecture = AsyncMock(return_value=True)
    gdb.load_symbols = AsyncMock(return_value=results.get("load_symbols", True))
    gdb.connect = AsyncMock(return_value=results.get("connect", True))
    gdb.select_remote = AsyncMock(return_value=results.get("select_remote", True))
    gdb.attach = AsyncMock(return_value=results.get("attach", True))
    gdb.set_arguments = AsyncMock(return_value=True)
    gdb.run_to_start = AsyncMock(return_value=StopInfo(StopReason.BREAKPOINT, 0x401126))
    gdb.inferior_pid = results.get("inferior_pid")
    gdb.connected = True
    return Mock(return_value=gdb)


class TestStaticBackend:
    """Test static disassembler construction."""

    @pytest.mark.asyncio
    async def test_shellcode(self, shellcode_path: Path, headless_options: Options) -> None:
        factory = BackendFactory()
        engine = await factory.build(_static(str(shellcode_path)), headless_options)
        assert isinstance(engine, StaticDisassembler)
        assert engine.title == f"{shellcode_path} - dasmlaunch disassembler"
        assert isinstance(engine.window, HeadlessWindow)
        assert engine.window.engine is engine
        assert isinstance(engine.cpu, Ia32Cpu)

    @pytest.mark.asyncio
    async def test_no_target(self, headless_options: Options) -> None:
        engine = await BackendFactory().build(_static(None), headless_options)
        assert engine.title == "dasmlaunch disassembler"
        assert engine.image is None

    @pytest.mark.asyncio
    async def test_rebase_and_cpu_override(self, shellcode_path: Path) -> None:
        """Test rebase relocates entry and labels before analysis."""
        options = Options(gui="headless", rebase_addr=0x400000, cpu_override="arm")
        engine = await BackendFactory().build(_static(str(shellcode_path)), options)
        assert isinstance(engine.cpu, ArmCpu)
        assert engine.image.entrypoint == 0x400000
        assert engine.labels == {0x400000: "entrypoint"}
        assert engine.default_entrypoints() == [0x400000]

    @pytest.mark.asyncio
    async def test_unknown_format(self, shellcode_path: Path) -> None:
        options = Options(gui="headless", exe_format_override="macho")
        with pytest.raises(UnknownIdentifier):
            await BackendFactory().build(_static(str(shellcode_path)), options)

    @pytest.mark.asyncio
    async def test_second_build_refused(self, shellcode_path: Path, headless_options: Options) -> None:
        """Test one factory builds one engine."""
        factory = BackendFactory()
        await factory.build(_static(str(shellcode_path)), headless_options)
        with pytest.raises(RuntimeError, match="already built"):
            await factory.build(_static(str(shellcode_path)), headless_options)

    @pytest.mark.asyncio
    async def test_unknown_toolkit_closes_engine(self, shellcode_path: Path) -> None:
        factory = BackendFactory()
        with patch.object(StaticDisassembler, "close", new_callable=AsyncMock) as mock_close:
            with pytest.raises(UnknownIdentifier):
                await factory.build(_static(str(shellcode_path)), Options(gui="qt"))
        mock_close.assert_awaited_once()
        assert factory.engine is None


class TestRemoteBackend:
    """Test remote debugger construction with a mocked GDB."""

    @pytest.mark.asyncio
    async def test_connects_with_default_cpu(self, headless_options: Options) -> None:
        spec = TargetSpec(raw="tcp:localhost:1234", kind=TargetKind.REMOTE_DEBUG, locator="tcp:localhost:1234")
        gdb_class = _mock_gdb_class()
        with patch("dasmlaunch.backends.GDBBridge", gdb_class):
            engine = await BackendFactory(ToolPaths(gdb_path="/opt/gdb")).build(spec, headless_options)

        gdb_class.assert_called_once_with("/opt/gdb")
        gdb = gdb_class.return_value
        gdb.set_architecture.assert_awaited_once_with("i386")
        gdb.select_remote.assert_awaited_once_with("tcp:localhost:1234")
        assert isinstance(engine, RemoteDebugger)
        assert engine.title == "remote - dasmlaunch debugger"

    @pytest.mark.asyncio
    async def test_unreachable(self, headless_options: Options) -> None:
        """Test a refused connection closes GDB and raises."""
        spec = TargetSpec(raw="localhost:1", kind=TargetKind.REMOTE_DEBUG, locator="localhost:1")
        gdb_class = _mock_gdb_class(select_remote=False)
        with patch("dasmlaunch.backends.GDBBridge", gdb_class):
            with pytest.raises(TargetNotFound):
                await BackendFactory().build(spec, headless_options)
        gdb_class.return_value.close.assert_awaited_once()


class TestEmulatedBackend:
    """Test emulated debugger construction with mocked QEMU and GDB."""

    @pytest.mark.asyncio
    async def test_starts_qemu_for_cpu(self, shellcode_path: Path, headless_options: Options) -> None:
        spec = TargetSpec(raw=f"emu:{shellcode_path}", kind=TargetKind.EMULATED, locator=str(shellcode_path))
        gdb_class = _mock_gdb_class()
        qemu = Mock()
        qemu.start = AsyncMock(return_value=True)
        qemu.stop = AsyncMock()
        qemu.gdb_port = 2345

        with patch("dasmlaunch.backends.GDBBridge", gdb_class), \
             patch("dasmlaunch.backends.QEMUController", return_value=qemu) as qemu_class:
            engine = await BackendFactory(ToolPaths(gdb_port=2345)).build(spec, headless_options)

        config = qemu_class.call_args[0][0]
        assert config.qemu_path == "qemu-i386"
        assert config.gdb_port == 2345
        qemu.start.assert_awaited_once_with(os.path.abspath(str(shellcode_path)))
        gdb_class.return_value.connect.assert_awaited_once_with("localhost", 2345)
        # Shellcode has no symbols for GDB
        gdb_class.return_value.load_symbols.assert_not_called()
        assert isinstance(engine, EmulatedDebugger)
        assert engine.title == "emudbg"
        assert engine.default_entrypoints() == [0]

    @pytest.mark.asyncio
    async def test_qemu_failure(self, shellcode_path: Path, headless_options: Options) -> None:
        """Test a QEMU start failure becomes a LaunchError and cleans up."""
        spec = TargetSpec(raw=None, kind=TargetKind.EMULATED, locator=str(shellcode_path))
        gdb_class = _mock_gdb_class()
        qemu = Mock()
        qemu.start = AsyncMock(side_effect=RuntimeError("QEMU not found at 'qemu-i386'"))
        qemu.stop = AsyncMock()

        with patch("dasmlaunch.backends.GDBBridge", gdb_class), \
             patch("dasmlaunch.backends.QEMUController", return_value=qemu):
            with pytest.raises(LaunchError, match="QEMU not found"):
                await BackendFactory().build(spec, headless_options)
        qemu.stop.assert_awaited_once()
        gdb_class.return_value.close.assert_awaited_once()


class TestLiveBackend:
    """Test live process attach and spawn with mocked psutil and GDB."""

    @pytest.mark.asyncio
    async def test_attach_by_pid(self, headless_options: Options) -> None:
        spec = TargetSpec(raw="live:4242", kind=TargetKind.LIVE_PROCESS, locator=4242)
        process = Mock(pid=4242)
        gdb_class = _mock_gdb_class()

        with patch("dasmlaunch.backends.GDBBridge", gdb_class), \
             patch("dasmlaunch.backends.find_process", return_value=process), \
             patch("dasmlaunch.backends.module_path", return_value="/usr/bin/sleep"):
            engine = await BackendFactory().build(spec, headless_options)

        gdb_class.return_value.attach.assert_awaited_once_with(4242)
        assert isinstance(engine, LiveProcessDebugger)
        assert engine.title == "4242:/usr/bin/sleep - dasmlaunch debugger"
        assert engine.spawned is False

    @pytest.mark.asyncio
    async def test_spawn_when_no_process(self, headless_options: Options) -> None:
        spec = TargetSpec(raw="live:/bin/true --x", kind=TargetKind.LIVE_PROCESS, locator="/bin/true --x")
        gdb_class = _mock_gdb_class(inferior_pid=77)

        with patch("dasmlaunch.backends.GDBBridge", gdb_class), \
             patch("dasmlaunch.backends.find_process", return_value=None), \
             patch("dasmlaunch.backends.spawnable_command", return_value=["/bin/true", "--x"]):
            engine = await BackendFactory().build(spec, headless_options)

        gdb = gdb_class.return_value
        gdb.load_symbols.assert_awaited_once_with("/bin/true")
        gdb.set_arguments.assert_awaited_once_with(["--x"])
        gdb.run_to_start.assert_awaited_once()
        assert engine.pid == 77
        assert engine.spawned is True
        assert engine.title == "77:/bin/true - dasmlaunch debugger"

    @pytest.mark.asyncio
    async def test_not_found(self, headless_options: Options) -> None:
        spec = TargetSpec(raw="live:nothing-like-this", kind=TargetKind.LIVE_PROCESS, locator="nothing-like-this")
        with patch("dasmlaunch.backends.find_process", return_value=None), \
             patch("dasmlaunch.backends.spawnable_command", return_value=None):
            with pytest.raises(TargetNotFound, match="nothing-like-this"):
                await BackendFactory().build(spec, headless_options)

    @pytest.mark.asyncio
    async def test_attach_refused(self, headless_options: Options) -> None:
        spec = TargetSpec(raw="live:1", kind=TargetKind.LIVE_PROCESS, locator=1)
        gdb_class = _mock_gdb_class(attach=False)
        with patch("dasmlaunch.backends.GDBBridge", gdb_class), \
             patch("dasmlaunch.backends.find_process", return_value=Mock(pid=1)):
            with pytest.raises(LaunchError, match="Cannot attach"):
                await BackendFactory().build(spec, headless_options)
        gdb_class.return_value.close.assert_awaited_once()
