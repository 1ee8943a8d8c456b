"""Engine construction for each target kind."""

import logging
import os
from typing import Optional

from rich.console import Console

from dasmlaunch.arch import DEFAULT_CPU, get_cpu
from dasmlaunch.core.errors import LaunchError, TargetNotFound
from dasmlaunch.core.types import Options, TargetKind, TargetSpec, ToolPaths
from dasmlaunch.engines.base import Engine
from dasmlaunch.engines.debugger import RemoteDebugger
from dasmlaunch.engines.emulated import EmulatedDebugger
from dasmlaunch.engines.live import (
    LiveProcessDebugger,
    find_process,
    host_cpu,
    module_path,
    spawnable_command,
)
from dasmlaunch.engines.static import StaticDisassembler
from dasmlaunch.formats import decode_file
from dasmlaunch.formats.base import LoadedImage
from dasmlaunch.gui import create_window
from dasmlaunch.tools.gdb_bridge import GDBBridge
from dasmlaunch.tools.qemu_control import QEMUConfig, QEMUController

logger = logging.getLogger(__name__)


class BackendFactory:
    """Builds the one engine (and its window) of a launch.

    Example:
        factory = BackendFactory(ToolPaths.from_env())
        engine = await factory.build(classify_target("a.out"), Options())
        await engine.window.run()
    """

    def __init__(
        self,
        tool_paths: Optional[ToolPaths] = None,
        console: Optional[Console] = None,
    ) -> None:
        self.tool_paths = tool_paths or ToolPaths()
        self.console = console
        self.engine: Optional[Engine] = None

    async def build(self, spec: TargetSpec, options: Options) -> Engine:
        """Build the engine for a target and attach its window.

        Args:
            spec: Classified target
            options: Launch options (cpu/format overrides, rebase, toolkit)

        Returns:
            Engine with engine.window set

        Raises:
            RuntimeError: If this factory already built an engine
            LaunchError: If the back end cannot be started
        """
        if self.engine is not None:
            raise RuntimeError(f"Engine already built: {self.engine!r}")

        if spec.kind is TargetKind.STATIC_EXECUTABLE:
            engine = self._build_static(spec, options)
        elif spec.kind is TargetKind.EMULATED:
            engine = await self._build_emulated(spec, options)
        elif spec.kind is TargetKind.REMOTE_DEBUG:
            engine = await self._build_remote(spec, options)
        else:
            engine = await self._build_live(spec, options)

        try:
            engine.window = create_window(options.gui, engine, console=self.console)
        except BaseException:
            await engine.close()
            raise
        self.engine = engine
        logger.info(f"Built {engine!r}")
        return engine

    # === Back ends ===

    def _decode(self, path: str, options: Options) -> LoadedImage:
        return decode_file(path, options.exe_format_override, options.cpu_override)

    def _build_static(self, spec: TargetSpec, options: Options) -> StaticDisassembler:
        path = spec.path
        if path is None:
            return StaticDisassembler(None, "dasmlaunch disassembler")

        image = self._decode(path, options)
        if options.rebase_addr is not None:
            image.rebase(options.rebase_addr)
            logger.info(f"Rebased {path} to 0x{options.rebase_addr:x}")
        return StaticDisassembler(image, f"{path} - dasmlaunch disassembler")

    async def _build_emulated(self, spec: TargetSpec, options: Options) -> EmulatedDebugger:
        path = spec.path
        if not path:
            raise TargetNotFound("emu: target needs a file path")

        image = self._decode(path, options)
        if options.rebase_addr is not None:
            logger.warning("--rebase is ignored for emulated targets")
        cpu = image.cpu

        qemu = QEMUController(QEMUConfig(
            qemu_path=self.tool_paths.qemu_path or cpu.qemu_user,
            gdb_port=self.tool_paths.gdb_port,
        ))
        gdb = GDBBridge(self.tool_paths.gdb_path)
        try:
            await qemu.start(os.path.abspath(path))
            await gdb.start()
            await gdb.set_architecture(cpu.gdb_arch)
            if image.format == "elf":
                await gdb.load_symbols(os.path.abspath(path))
            if not await gdb.connect("localhost", qemu.gdb_port):
                raise LaunchError(f"GDB could not attach to the emulator on port {qemu.gdb_port}")
        except RuntimeError as e:
            await gdb.close()
            await qemu.stop()
            raise LaunchError(f"Cannot start emulator for {path}: {e}") from e
        except BaseException:
            await gdb.close()
            await qemu.stop()
            raise

        return EmulatedDebugger(StaticDisassembler(image, "emudbg"), qemu, gdb)

    async def _build_remote(self, spec: TargetSpec, options: Options) -> RemoteDebugger:
        endpoint = str(spec.locator)
        cpu = get_cpu(options.cpu_override or DEFAULT_CPU)

        gdb = GDBBridge(self.tool_paths.gdb_path)
        try:
            await gdb.start()
            await gdb.set_architecture(cpu.gdb_arch)
            if not await gdb.select_remote(endpoint):
                raise TargetNotFound(f"Cannot connect to remote target {endpoint}")
        except BaseException:
            await gdb.close()
            raise
        return RemoteDebugger(gdb, cpu, endpoint)

    async def _build_live(self, spec: TargetSpec, options: Options) -> LiveProcessDebugger:
        locator = spec.locator
        cpu = get_cpu(options.cpu_override) if options.cpu_override else host_cpu()

        process = find_process(locator)  # type: ignore[arg-type]
        command = None if process else spawnable_command(locator)  # type: ignore[arg-type]
        if process is None and command is None:
            raise TargetNotFound(f"No process matches {locator!r}")

        gdb = GDBBridge(self.tool_paths.gdb_path)
        try:
            await gdb.start()
            if options.cpu_override:
                await gdb.set_architecture(cpu.gdb_arch)

            if process is not None:
                pid = process.pid
                if not await gdb.attach(pid):
                    raise LaunchError(f"Cannot attach to process {pid}")
                path = module_path(pid)
                spawned = False
            else:
                assert command is not None
                path = command[0]
                if not await gdb.load_symbols(path):
                    raise LaunchError(f"GDB cannot load {path}")
                if command[1:]:
                    await gdb.set_arguments(command[1:])
                await gdb.run_to_start()
                if gdb.inferior_pid is None or not gdb.connected:
                    raise LaunchError(f"{path} did not start under GDB")
                pid = gdb.inferior_pid
                spawned = True
        except BaseException:
            await gdb.close()
            raise

        logger.info(f"{'Started' if spawned else 'Attached to'} process {pid} ({path})")
        return LiveProcessDebugger(gdb, cpu, pid, path, spawned=spawned)
