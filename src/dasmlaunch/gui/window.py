"""Windows: navigation state and the user's event loop.

A Window owns the cursor, the navigation history and the current view.
Every state change goes through an Action so that a session can record it
and replay it later. ``apply`` changes state; ``dispatch`` applies and
then hands the action to the recorder.
"""

import bisect
import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt

from dasmlaunch.core.errors import LaunchError
from dasmlaunch.core.types import Entrypoint
from dasmlaunch.gui.actions import Action

if TYPE_CHECKING:
    from dasmlaunch.engines.base import Engine

logger = logging.getLogger(__name__)

# Instructions shown per listing page
PAGE_SIZE = 16


class Window(ABC):
    """Front end for one engine.

    Attributes:
        engine: The session's engine
        title: Window title
        cur: Cursor address (None until focused)
        history: Previous cursor addresses, most recent last
        view: Current view, one of VIEWS
        fast: Disassemble actions use the fast mode
        recorder: Called with every dispatched action
    """

    toolkit: str = ""

    def __init__(self, engine: "Engine", console: Optional[Console] = None) -> None:
        self.engine = engine
        self.title = engine.title
        self.console = console or Console()
        self.cur: Optional[int] = None
        self.history: List[int] = []
        self.view = "listing"
        self.fast = False
        self.recorder: Optional[Callable[[Action], None]] = None

    # === Actions ===

    async def apply(self, action: Action) -> None:
        """Apply an action without recording it."""
        kind, args = action.kind, action.args
        if kind == "goto":
            self._goto(args[0])
        elif kind == "back":
            if self.history:
                self.cur = self.history.pop()
        elif kind == "rename":
            self.engine.rename(args[0], args[1])
        elif kind == "comment":
            self.engine.comment(args[0], args[1])
        elif kind == "disassemble":
            await self.engine.disassemble(args[0], fast=self.fast)
        elif kind == "view":
            self.view = args[0]
        logger.debug(f"Applied {kind} {args}")

    async def dispatch(self, action: Action) -> None:
        """Apply an action and record it."""
        await self.apply(action)
        if self.recorder is not None:
            self.recorder(action)

    async def focus(self, entrypoint: Entrypoint) -> Optional[int]:
        """Move the cursor to an entrypoint without recording or history.

        Returns:
            The focused address, or None if the label is unknown
        """
        address = await self.engine.resolve_entrypoint(entrypoint)
        if address is None:
            logger.warning(f"Cannot focus unknown label {entrypoint}")
            return None
        self.cur = address
        return address

    def _goto(self, address: int) -> None:
        if self.cur is not None and self.cur != address:
            self.history.append(self.cur)
        self.cur = address

    # === Rendering ===

    def listing_lines(self, start: Optional[int] = None, count: int = PAGE_SIZE) -> List[str]:
        """Format listing lines from an address (the cursor by default)."""
        start = self.cur if start is None else start
        addresses = sorted(self.engine.listing)
        if start is None or not addresses:
            return []
        lines = []
        for address in addresses[bisect.bisect_left(addresses, start):][:count]:
            insn = self.engine.listing[address]
            label = self.engine.label_at(address)
            if label:
                lines.append(f"{label}:")
            line = f"  0x{address:08x}  {insn.text}"
            comment = self.engine.comments.get(address)
            if comment:
                line += f"  ; {comment}"
            lines.append(line)
        return lines

    def render(self) -> None:
        """Print the current view."""
        if self.cur is None:
            self.console.print("[dim]Nothing focused.[/dim]")
            return
        self.console.print(f"[bold]{escape(self.engine.describe(self.cur))}[/bold] ({self.view})")
        if self.view == "decompile":
            prototype = self.engine.prototypes.get(self.engine.label_at(self.cur) or "")
            if prototype:
                self.console.print(escape(prototype))
        for line in self.listing_lines():
            self.console.print(escape(line))

    # === Event loop ===

    @abstractmethod
    async def run(self) -> None:
        """Run until the user quits."""
        ...


class HeadlessWindow(Window):
    """Window without an event loop, for scripting and batch runs."""

    toolkit = "headless"

    async def run(self) -> None:
        logger.info(f"{self.title}: headless, {len(self.engine.listing)} instructions listed")


HELP_TEXT = (
    "[bold]Navigation:[/bold]\n"
    "  g <addr|label>    - Go to address or label\n"
    "  back              - Go back\n"
    "  view <name>       - listing, graph or decompile\n\n"
    "[bold]Analysis:[/bold]\n"
    "  c \\[addr]          - Disassemble from cursor or address\n"
    "  n <name> \\[addr]   - Rename cursor or address\n"
    "  ; <text>          - Comment at cursor (empty removes)\n"
    "  l                 - List labels\n"
    "  f                 - List functions\n"
    "  x                 - Cross references to cursor\n\n"
    "[bold]Execution (debuggers):[/bold]\n"
    "  s, step           - Single step\n"
    "  cont              - Continue\n"
    "  r                 - Show registers\n"
    "  m <addr> \\[len]    - Dump memory\n"
    "  p <expr>          - Evaluate expression\n\n"
    "  q, quit, exit     - Quit"
)


class ConsoleWindow(Window):
    """Interactive console window driven by rich prompts."""

    toolkit = "console"

    async def run(self) -> None:
        self.console.print(Panel(
            f"[bold]Target:[/bold] {escape(self.title)}\n"
            f"[bold]Labels:[/bold] {len(self.engine.labels)}  "
            f"[bold]Instructions:[/bold] {len(self.engine.listing)}",
            title="[bold blue]dasmlaunch[/bold blue]",
        ))
        self.console.print("[dim]Type 'help' for commands.[/dim]\n")
        self.render()

        while True:
            try:
                user_input = Prompt.ask("[bold cyan]dasm>[/bold cyan]", console=self.console)
            except (KeyboardInterrupt, EOFError):
                self.console.print("\n[yellow]Exiting...[/yellow]")
                break

            if not await self.handle_command(user_input):
                break

    async def resolve_address(self, token: str) -> int:
        """Turn a command argument into an address."""
        from dasmlaunch.entrypoints import parse_entrypoint

        entrypoint = parse_entrypoint(token)
        address = await self.engine.resolve_entrypoint(entrypoint)
        if address is None:
            raise ValueError(f"Unknown label: {token}")
        return address

    async def handle_command(self, cmd: str) -> bool:
        """Handle one command line. Returns False if the window should close."""
        cmd = cmd.strip()
        if not cmd:
            return True
        if cmd in ("q", "quit", "exit"):
            return False

        if cmd.startswith(";"):
            command, args_str = ";", cmd[1:].strip()
        else:
            parts = cmd.split(maxsplit=1)
            command = parts[0].lower()
            args_str = parts[1].strip() if len(parts) > 1 else ""

        try:
            if command in ("help", "?"):
                self.console.print(Panel(HELP_TEXT, title="Commands"))

            elif command == "g":
                if not args_str:
                    self.console.print("[red]Usage: g <address|label>[/red]")
                else:
                    await self.dispatch(Action.goto(await self.resolve_address(args_str)))
                    self.render()

            elif command == "back":
                await self.dispatch(Action.back())
                self.render()

            elif command == "view":
                await self.dispatch(Action.view(args_str or "listing"))
                self.render()

            elif command == "c":
                address = await self.resolve_address(args_str) if args_str else self.cur
                if address is None:
                    self.console.print("[red]Usage: c <address|label>[/red]")
                else:
                    before = len(self.engine.listing)
                    await self.dispatch(Action.disassemble(address))
                    added = len(self.engine.listing) - before
                    self.console.print(f"Disassembled {added} instructions")

            elif command == "n":
                args = args_str.split()
                if not args:
                    self.console.print("[red]Usage: n <name> \\[address][/red]")
                else:
                    address = await self.resolve_address(args[1]) if len(args) > 1 else self.cur
                    if address is None:
                        self.console.print("[red]No address to rename[/red]")
                    else:
                        await self.dispatch(Action.rename(address, args[0]))
                        self.console.print(escape(self.engine.describe(address)))

            elif command == ";":
                if self.cur is None:
                    self.console.print("[red]No address to comment[/red]")
                else:
                    await self.dispatch(Action.comment(self.cur, args_str))

            elif command == "l":
                for address, name in sorted(self.engine.labels.items()):
                    self.console.print(f"  0x{address:08x}  {escape(name)}")

            elif command == "f":
                for address in sorted(self.engine.functions):
                    self.console.print(f"  {escape(self.engine.describe(address))}")

            elif command == "x":
                if self.cur is None:
                    self.console.print("[dim]Nothing focused.[/dim]")
                else:
                    refs = sorted(self.engine.xrefs.get(self.cur, ()))
                    if not refs:
                        self.console.print("[dim]No cross references.[/dim]")
                    for ref in refs:
                        self.console.print(f"  {escape(self.engine.describe(ref))}")

            elif command in ("s", "step", "cont"):
                if not self.engine.supports_execution:
                    self.console.print("[red]Target cannot be executed[/red]")
                else:
                    if command == "cont":
                        self.console.print("[dim]Continuing...[/dim]")
                        stop = await self.engine.continue_execution()  # type: ignore[attr-defined]
                    else:
                        stop = await self.engine.step()  # type: ignore[attr-defined]
                    self.console.print(f"Stopped: {stop.reason.value} at 0x{stop.address:08x}")
                    await self.focus(stop.address)
                    self.render()

            elif command in ("r", "m", "p"):
                if not self.engine.supports_execution:
                    self.console.print("[red]Target cannot be executed[/red]")
                elif command == "r":
                    regs = await self.engine.read_registers()  # type: ignore[attr-defined]
                    for name, value in regs.items():
                        self.console.print(f"  {name:8} 0x{value:08x}")
                elif command == "m":
                    args = args_str.split()
                    if not args:
                        self.console.print("[red]Usage: m <address> \\[length][/red]")
                    else:
                        address = await self.resolve_address(args[0])
                        length = int(args[1], 0) if len(args) > 1 else 64
                        data = await self.engine.read_memory(address, length)  # type: ignore[attr-defined]
                        for offset in range(0, len(data), 16):
                            self.console.print(
                                f"  0x{address + offset:08x}  {data[offset:offset + 16].hex(' ')}"
                            )
                elif not args_str:
                    self.console.print("[red]Usage: p <expression>[/red]")
                else:
                    value = await self.engine.evaluate(args_str)  # type: ignore[attr-defined]
                    self.console.print(escape(value))

            else:
                self.console.print(f"[red]Unknown command: {command}. Type 'help' for help.[/red]")

        except (LaunchError, ValueError) as e:
            self.console.print(f"[red]Error: {escape(str(e))}[/red]")

        return True
