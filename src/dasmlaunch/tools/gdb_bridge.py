"""GDB Machine Interface bridge for communicating with GDB."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from pygdbmi.gdbcontroller import GdbController

_HEX_RE = re.compile(r"0x[0-9a-fA-F]+")


class StopReason(Enum):
    """Reasons why execution stopped."""
    BREAKPOINT = "breakpoint-hit"
    WATCHPOINT = "watchpoint-trigger"
    SIGNAL = "signal"
    STEP = "end-stepping-range"
    FUNCTION_FINISHED = "function-finished"
    EXITED = "exited"
    EXITED_NORMALLY = "exited-normally"


@dataclass
class StopInfo:
    """Information about why execution stopped."""
    reason: StopReason
    address: int
    signal_name: Optional[str] = None


@dataclass
class EvalResult:
    """Result of expression evaluation."""
    value: str
    type: Optional[str] = None


@dataclass
class DisassembledLine:
    """One instruction as listed by GDB."""
    address: int
    text: str
    function: Optional[str] = None
    offset: Optional[int] = None


class GDBBridge:
    """GDB Machine Interface bridge.

    Provides an async interface for controlling GDB via the MI protocol.
    Used for remote gdbstubs (gdbserver, QEMU user-mode -g) and for
    attaching to local processes.
    """

    def __init__(self, gdb_path: str = "gdb-multiarch") -> None:
        """Initialize GDB bridge.

        Args:
            gdb_path: Path to GDB executable (default: gdb-multiarch)
        """
        self.gdb_path = gdb_path
        self.gdb: Optional[GdbController] = None
        self.connected = False
        self.inferior_pid: Optional[int] = None

    # === Lifecycle Methods ===

    async def start(self) -> None:
        """Start GDB process."""
        self.gdb = GdbController([self.gdb_path, "--nx", "--quiet", "--interpreter=mi3"])

    async def connect(self, host: str = "localhost", port: int = 1234) -> bool:
        """Connect to a gdbstub on host:port.

        Args:
            host: Target host
            port: GDB port

        Returns:
            True if connected successfully
        """
        return await self.select_remote(f"{host}:{port}")

    async def select_remote(self, endpoint: str) -> bool:
        """Connect to a remote target given as GDB understands it.

        Args:
            endpoint: "host:port", "tcp:host:port" or "udp:host:port"

        Returns:
            True if connected successfully
        """
        if not self.gdb:
            await self.start()
        response = self._write(f"-target-select remote {endpoint}", timeout_sec=30)
        self.connected = self._check_success(response)
        return self.connected

    async def attach(self, pid: int) -> bool:
        """Attach to a running local process.

        Args:
            pid: Process id

        Returns:
            True if attached
        """
        if not self.gdb:
            await self.start()
        response = self._write(f"-target-attach {pid}", timeout_sec=30)
        self.connected = self._check_success(response)
        return self.connected

    async def load_symbols(self, path: str) -> bool:
        """Load an executable and its symbols.

        Args:
            path: Path to the binary

        Returns:
            True if symbols loaded successfully
        """
        response = self._write(f"-file-exec-and-symbols {path}")
        return self._check_success(response)

    async def set_arguments(self, args: List[str]) -> bool:
        """Set the arguments the loaded program is run with."""
        response = self._write(f"-exec-arguments {' '.join(args)}")
        return self._check_success(response)

    async def set_architecture(self, name: str) -> bool:
        """Set GDB's target architecture (e.g., "i386:x86-64")."""
        response = self._write(f"-gdb-set architecture {name}")
        return self._check_success(response)

    async def run_to_start(self) -> StopInfo:
        """Start the loaded program and stop at its entry (main when known)."""
        response = self._write("-exec-run --start", timeout_sec=30)
        stop = self._parse_stop(response)
        self.inferior_pid = self._parse_inferior_pid(response)
        self.connected = stop.reason not in (StopReason.EXITED, StopReason.EXITED_NORMALLY)
        return stop

    async def close(self) -> None:
        """Close GDB connection and exit."""
        if self.gdb:
            try:
                self.gdb.exit()
            except Exception:
                pass
            self.gdb = None
        self.connected = False

    # === Execution Control ===

    async def continue_execution(self) -> StopInfo:
        """Continue execution until stop event.

        Returns:
            StopInfo describing why execution stopped
        """
        response = self._write("-exec-continue")
        return self._parse_stop(response)

    async def step(self, instruction: bool = True) -> StopInfo:
        """Single step execution.

        Args:
            instruction: If True, step one instruction; else step one source line

        Returns:
            StopInfo describing where we stopped
        """
        cmd = "-exec-step-instruction" if instruction else "-exec-step"
        response = self._write(cmd)
        return self._parse_stop(response)

    async def set_pc(self, address: int) -> bool:
        """Move the program counter."""
        response = self._write(f'-data-evaluate-expression "$pc = 0x{address:x}"')
        return self._check_success(response)

    # === Register Operations ===

    async def read_registers(self, registers: Optional[List[str]] = None) -> Dict[str, int]:
        """Read CPU registers.

        Args:
            registers: List of register names to read, or None for all

        Returns:
            Dict mapping register name to value
        """
        if registers:
            result = {}
            for reg in registers:
                response = self._write(f"-data-evaluate-expression ${reg}")
                value = self._parse_eval_result(response)
                if value:
                    result[reg] = self._parse_int(value.value)
            return result
        else:
            names = self._parse_register_names(self._write("-data-list-register-names"))
            response = self._write("-data-list-register-values x")
            return self._parse_register_values(response, names)

    async def read_register(self, name: str) -> int:
        """Read a single register.

        Args:
            name: Register name (without $)

        Returns:
            Register value
        """
        regs = await self.read_registers([name])
        return regs.get(name, 0)

    # === Memory Operations ===

    async def read_memory(self, address: int, length: int) -> bytes:
        """Read raw memory bytes.

        Args:
            address: Start address
            length: Number of bytes to read

        Returns:
            Memory contents as bytes
        """
        response = self._write(f"-data-read-memory-bytes 0x{address:x} {length}")
        return self._parse_memory_bytes(response)

    async def disassemble(self, start: int, end: int) -> List[DisassembledLine]:
        """Disassemble the address range [start, end).

        Returns:
            Listed instructions in address order
        """
        response = self._write(f"-data-disassemble -s 0x{start:x} -e 0x{end:x} -- 0")
        return self._parse_disassembly(response)

    # === Expression Evaluation ===

    async def evaluate(self, expression: str) -> EvalResult:
        """Evaluate an expression.

        Args:
            expression: C expression to evaluate

        Returns:
            EvalResult with the value
        """
        response = self._write(f'-data-evaluate-expression "{expression}"')
        result = self._parse_eval_result(response)
        return result or EvalResult(value="<error>")

    async def address_of(self, symbol: str) -> Optional[int]:
        """Resolve a symbol to its address, or None if GDB does not know it."""
        response = self._write(f'-data-evaluate-expression "&{symbol}"')
        result = self._parse_eval_result(response)
        if result is None:
            return None
        return self._parse_address(result.value)

    # === Internal Methods ===

    def _write(self, command: str, timeout_sec: int = 10) -> List[Dict[str, Any]]:
        """Send command to GDB and return response."""
        if not self.gdb:
            raise RuntimeError("GDB not started")
        return self.gdb.write(command, timeout_sec=timeout_sec)

    def _check_success(self, response: List[Dict[str, Any]]) -> bool:
        """Check if GDB response indicates success."""
        for r in response:
            if r.get("message") in ("done", "connected", "running"):
                return True
            if r.get("message") == "error":
                return False
        return False

    def _parse_stop(self, response: List[Dict[str, Any]]) -> StopInfo:
        """Parse stop response from execution commands."""
        for r in response:
            if r.get("message") == "stopped":
                payload = r.get("payload", {})
                reason_str = payload.get("reason", "unknown")
                try:
                    reason = StopReason(reason_str)
                except ValueError:
                    reason = StopReason.SIGNAL

                frame = payload.get("frame", {})
                addr_str = frame.get("addr", "0")

                return StopInfo(
                    reason=reason,
                    address=self._parse_int(addr_str),
                    signal_name=payload.get("signal-name"),
                )
        return StopInfo(reason=StopReason.SIGNAL, address=0)

    def _parse_inferior_pid(self, response: List[Dict[str, Any]]) -> Optional[int]:
        """Find the pid announced by a thread-group-started notification."""
        for r in response:
            if r.get("type") == "notify" and r.get("message") == "thread-group-started":
                pid = (r.get("payload") or {}).get("pid")
                if pid:
                    return int(pid)
        return None

    def _parse_int(self, value: str) -> int:
        """Parse integer from GDB response (handles 0x prefix and annotations)."""
        if not value:
            return 0
        value = value.strip()
        # Pointer values like "(void (*)()) 0x8048054 <_start>"
        if value.startswith("("):
            return self._parse_address(value) or 0
        # Handle values like "0x401126 <main+22>"
        if " " in value:
            value = value.split()[0]
        if value.startswith("0x") or value.startswith("0X"):
            return int(value, 16)
        return int(value)

    def _parse_address(self, value: str) -> Optional[int]:
        """Find the address in values like "(int (*)(void)) 0x401126 <main>"."""
        match = _HEX_RE.search(value)
        return int(match.group(0), 16) if match else None

    def _parse_memory_bytes(self, response: List[Dict[str, Any]]) -> bytes:
        """Parse memory read response."""
        for r in response:
            if r.get("message") == "done":
                payload = r.get("payload", {})
                memory = payload.get("memory", [])
                if memory:
                    contents = memory[0].get("contents", "")
                    return bytes.fromhex(contents)
        return b""

    def _parse_register_names(self, response: List[Dict[str, Any]]) -> List[str]:
        """Register names indexed by GDB register number ("" for gaps)."""
        for r in response:
            if r.get("message") == "done":
                return list((r.get("payload") or {}).get("register-names", []))
        return []

    def _parse_register_values(
        self,
        response: List[Dict[str, Any]],
        names: Optional[List[str]] = None,
    ) -> Dict[str, int]:
        """Map register values to their names, skipping vector registers."""
        names = names or []
        result = {}
        for r in response:
            if r.get("message") == "done":
                payload = r.get("payload", {})
                for reg in payload.get("register-values", []):
                    num = int(reg.get("number", "0"))
                    val = reg.get("value", "0")
                    if val.startswith("{"):
                        continue
                    name = names[num] if num < len(names) and names[num] else f"r{num}"
                    result[name] = self._parse_int(val)
        return result

    def _parse_eval_result(self, response: List[Dict[str, Any]]) -> Optional[EvalResult]:
        """Parse expression evaluation response."""
        for r in response:
            if r.get("message") == "done":
                payload = r.get("payload", {})
                value = payload.get("value", "")
                return EvalResult(value=value)
        return None

    def _parse_disassembly(self, response: List[Dict[str, Any]]) -> List[DisassembledLine]:
        """Parse -data-disassemble response."""
        lines = []
        for r in response:
            if r.get("message") == "done":
                payload = r.get("payload", {})
                for insn in payload.get("asm_insns", []):
                    offset = insn.get("offset")
                    lines.append(DisassembledLine(
                        address=self._parse_int(insn.get("address", "0")),
                        text=" ".join(insn.get("inst", "").split()),
                        function=insn.get("func-name"),
                        offset=int(offset) if offset else None,
                    ))
        return lines

    # === Context Manager ===

    async def __aenter__(self) -> "GDBBridge":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
