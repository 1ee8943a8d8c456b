"""QEMU user-mode controller for emulated debugging."""

import asyncio
import socket
import subprocess
from dataclasses import dataclass, field
from typing import Any, List, Optional


@dataclass
class QEMUConfig:
    """QEMU user-mode configuration.

    Attributes:
        qemu_path: Path to the qemu user-mode executable (qemu-x86_64, ...)
        gdb_port: Port of the GDB stub (-g)
        cpu_model: Optional QEMU -cpu model
        extra_args: Additional QEMU arguments
    """
    qemu_path: str = "qemu-i386"
    gdb_port: int = 1234
    cpu_model: Optional[str] = None
    extra_args: List[str] = field(default_factory=list)


class QEMUController:
    """Runs a program under QEMU user-mode emulation with a GDB stub.

    The emulated program starts stopped at its first instruction and waits
    for a debugger on the configured port.

    Example:
        async with QEMUController(QEMUConfig(qemu_path="qemu-x86_64")) as qemu:
            await qemu.start("a.out")
            await gdb.connect("localhost", qemu.gdb_port)
    """

    def __init__(self, config: Optional[QEMUConfig] = None) -> None:
        """Initialize QEMU controller.

        Args:
            config: QEMU configuration (uses defaults if not provided)
        """
        self.config = config or QEMUConfig()
        self.process: Optional[subprocess.Popen[bytes]] = None
        self._running = False
        self._program: Optional[str] = None

    # === Lifecycle Methods ===

    async def start(self, program: str, args: Optional[List[str]] = None) -> bool:
        """Start QEMU with a program.

        Args:
            program: Path to the executable to emulate
            args: Program arguments

        Returns:
            True if started successfully

        Raises:
            RuntimeError: If QEMU fails to start or its GDB stub never opens
        """
        self._program = program

        cmd = [self.config.qemu_path, "-g", str(self.config.gdb_port)]
        if self.config.cpu_model:
            cmd.extend(["-cpu", self.config.cpu_model])
        cmd.extend(self.config.extra_args)
        cmd.append(program)
        cmd.extend(args or [])

        try:
            self.process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError:
            raise RuntimeError(
                f"QEMU not found at '{self.config.qemu_path}'\n"
                f"Try: --qemu-path /path/to/{self.config.qemu_path}\n"
                f"Or install: sudo apt install qemu-user"
            )
        except PermissionError:
            raise RuntimeError(
                f"Permission denied running QEMU at '{self.config.qemu_path}'\n"
                f"Check that the file is executable: chmod +x {self.config.qemu_path}"
            )
        except Exception as e:
            raise RuntimeError(f"Failed to start QEMU: {e}")

        try:
            await self._wait_for_gdb_stub()
            self._running = True
            return True
        except Exception as e:
            await self.stop()
            raise RuntimeError(f"QEMU GDB stub did not come up: {e}")

    async def stop(self) -> None:
        """Stop QEMU instance."""
        if self.process:
            self.process.terminate()
            try:
                self.process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self.process.kill()
                self.process.wait()
            self.process = None

        self._running = False

    # === GDB stub ===

    async def _wait_for_gdb_stub(self, timeout: float = 5.0) -> None:
        """Wait until the GDB stub port accepts connections.

        Args:
            timeout: Seconds to wait

        Raises:
            ConnectionError: If QEMU exits or the port never opens
        """
        loop = asyncio.get_event_loop()
        deadline = loop.time() + timeout

        while True:
            if self.process is not None and self.process.poll() is not None:
                stderr = self.process.stderr.read().decode() if self.process.stderr else ""
                raise ConnectionError(f"QEMU exited immediately: {stderr}")
            if self._port_open():
                return
            if loop.time() >= deadline:
                raise ConnectionError(f"port {self.config.gdb_port} not listening")
            await asyncio.sleep(0.1)

    def _port_open(self) -> bool:
        """Probe the stub without consuming its single debugger slot."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
            probe.settimeout(0.2)
            try:
                probe.bind(("localhost", self.config.gdb_port))
            except OSError:
                return True
        return False

    # === Status ===

    @property
    def running(self) -> bool:
        """Check if QEMU is running."""
        return self._running

    @property
    def gdb_port(self) -> int:
        """Get the GDB port."""
        return self.config.gdb_port

    @property
    def program(self) -> Optional[str]:
        """Get the emulated program path."""
        return self._program

    # === Context Manager ===

    async def __aenter__(self) -> "QEMUController":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()
