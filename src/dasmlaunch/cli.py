"""Command-line interface for dasmlaunch."""

import asyncio
import logging
import os
import shutil
import subprocess
import sys
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from dasmlaunch.core.errors import LaunchError
from dasmlaunch.core.types import Options, ToolPaths
from dasmlaunch.gui import DEFAULT_TOOLKIT, GUI_ENV_VAR

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="dasmlaunch",
    help="Open a file, process, emulator or gdbstub for disassembly and debugging",
)
console = Console()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_log_handler: Optional[logging.Handler] = None


def configure_logging(verbose: bool = False, debug: bool = False, quiet: bool = False) -> None:
    """Send log records to stderr (or DASMLAUNCH_LOG_FILE).

    The level is WARNING by default, INFO with verbose, DEBUG with debug and
    ERROR with quiet; DASMLAUNCH_LOG_LEVEL overrides all of them.
    """
    global _log_handler

    log_level = logging.WARNING
    if quiet:
        log_level = logging.ERROR
    if verbose:
        log_level = logging.INFO
    if debug:
        log_level = logging.DEBUG
    log_level_str = os.environ.get("DASMLAUNCH_LOG_LEVEL", "").upper()
    if log_level_str in ("DEBUG", "INFO", "WARNING", "ERROR"):
        log_level = getattr(logging, log_level_str)

    log_file = os.environ.get("DASMLAUNCH_LOG_FILE")
    if log_file:
        handler: logging.Handler = logging.FileHandler(log_file)
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    if _log_handler is not None:
        root.removeHandler(_log_handler)
        _log_handler.close()
    root.addHandler(handler)
    root.setLevel(log_level)
    _log_handler = handler


async def _run_launch(
    target: Optional[str],
    entrypoints: List[str],
    options: Options,
    tool_paths: ToolPaths,
) -> None:
    """Launch a session and hand it to its window."""
    from dasmlaunch.resolver import TargetResolver

    resolver = TargetResolver(tool_paths, console=console)
    result = await resolver.launch(target, entrypoints, options)

    failed = [p for p in result.plugins if not p.succeeded]
    if failed:
        console.print(
            f"[yellow]{len(failed)} of {len(result.plugins)} plugins failed to load[/yellow]"
        )
    await result.run()


# ============================================================================
# Open Command
# ============================================================================


@app.command(name="open")
def open_target(
    target: Optional[str] = typer.Argument(
        None,
        help="live:<pid|name>, emu:<file>, [tcp:|udp:]<host>:<port>, or a file",
    ),
    entrypoints: Optional[List[str]] = typer.Argument(
        None, help="Addresses or labels to disassemble"
    ),
    no_data_trace: bool = typer.Option(
        False, "--no-data-trace", help="Do not record data cross references"
    ),
    debug_backtrace: bool = typer.Option(
        False, "--debug-backtrace", help="Log pointer tracing and plugin tracebacks"
    ),
    plugins: Optional[List[str]] = typer.Option(
        None, "--plugin", "-P", help="Python plugin to load (repeatable)"
    ),
    hook_code: Optional[List[str]] = typer.Option(
        None, "--eval", "-e", help="Python code to run once the session is up (repeatable)"
    ),
    map_file: Optional[str] = typer.Option(None, "--map", help="Address/name map file"),
    fast: bool = typer.Option(False, "--fast", help="Skip pointer and data tracing"),
    decompile: bool = typer.Option(False, "--decompile", help="Start in the decompile view"),
    gui: str = typer.Option(
        DEFAULT_TOOLKIT, "--gui", help="Window toolkit (console, headless)", envvar=GUI_ENV_VAR
    ),
    cpu: Optional[str] = typer.Option(None, "--cpu", help="CPU (see 'dasmlaunch cpus')"),
    exe: Optional[str] = typer.Option(None, "--exe", help="Executable format (elf, pe, shellcode)"),
    rebase: Optional[str] = typer.Option(None, "--rebase", help="Load address, e.g. 0x400000"),
    c_header: Optional[str] = typer.Option(None, "--c-header", "-c", help="C header with prototypes"),
    autoload: bool = typer.Option(
        False, "--autoload", "-a", help="Load <target>.map/.h/.py/.dasm-session if present"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log errors"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
    session: Optional[str] = typer.Option(None, "--session", "-S", help="Session file"),
    new_session: bool = typer.Option(
        False, "--new-session", "-N", help="Discard the session file's previous content"
    ),
    dasm_all: bool = typer.Option(
        False, "--disassemble-all-entrypoints", "-A", help="Also disassemble the file's entrypoints"
    ),
    gdb_path: Optional[str] = typer.Option(
        None, "--gdb-path", help="Path to GDB executable", envvar="DASMLAUNCH_GDB_PATH"
    ),
    qemu_path: Optional[str] = typer.Option(
        None, "--qemu-path", help="Path to qemu user-mode executable", envvar="DASMLAUNCH_QEMU_PATH"
    ),
    gdb_port: Optional[int] = typer.Option(
        None, "--gdb-port", help="Emulator GDB stub port", envvar="DASMLAUNCH_GDB_PORT"
    ),
) -> None:
    """Open a target for disassembly or debugging."""
    configure_logging(verbose=verbose, debug=debug, quiet=quiet)

    try:
        from dasmlaunch.entrypoints import parse_address

        options = Options(
            no_data_trace=no_data_trace,
            debug_backtrace=debug_backtrace,
            plugins=tuple(plugins or ()),
            hook_code=tuple(hook_code or ()),
            map_file=map_file,
            fast=fast,
            decompile=decompile,
            cpu_override=cpu,
            exe_format_override=exe,
            rebase_addr=parse_address(rebase) if rebase else None,
            c_header_file=c_header,
            autoload=autoload,
            session_file=session,
            new_session=new_session,
            dasm_all_entrypoints=dasm_all,
            verbose=verbose,
            debug=debug,
            gui=gui,
        )
        tool_paths = ToolPaths.from_env(gdb_path, qemu_path, gdb_port)
        asyncio.run(_run_launch(target, list(entrypoints or ()), options, tool_paths))
    except LaunchError as e:
        logger.debug("Launch failed", exc_info=True)
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


# ============================================================================
# Information Commands
# ============================================================================


@app.command()
def cpus() -> None:
    """List CPU, executable format and window toolkit identifiers."""
    from dasmlaunch.arch import CPUS
    from dasmlaunch.formats import list_formats
    from dasmlaunch.gui import WINDOW_TOOLKITS

    console.print("[bold]CPUs:[/bold]")
    for name in sorted(CPUS):
        cpu = CPUS[name]()
        console.print(f"  {name:10} {cpu.name} ({cpu.pointer_size * 8}-bit, {cpu.endianness})")
    console.print(f"[bold]Formats:[/bold] {', '.join(list_formats())}")
    console.print(f"[bold]Window toolkits:[/bold] {', '.join(sorted(WINDOW_TOOLKITS))}")


@app.command()
def doctor(
    gdb_path: Optional[str] = typer.Option(
        None, "--gdb-path", help="Path to GDB executable", envvar="DASMLAUNCH_GDB_PATH"
    ),
) -> None:
    """Check system dependencies and installation health."""
    from dasmlaunch.arch import CPUS

    console.print(Panel(
        "[bold]Checking dependencies...[/bold]",
        title="[bold blue]dasmlaunch doctor[/bold blue]",
    ))

    all_ok = True

    # Python version
    py_version = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    if sys.version_info >= (3, 10):
        console.print(f"[green]✓[/green] Python {py_version}")
    else:
        console.print(f"[red]✗[/red] Python {py_version} (requires >= 3.10)")
        all_ok = False

    # GDB
    gdb_options = [gdb_path] if gdb_path else ["gdb-multiarch", "gdb"]
    gdb_found = None
    for gdb_name in gdb_options:
        if shutil.which(gdb_name):
            gdb_found = gdb_name
            break

    if gdb_found:
        try:
            result = subprocess.run(
                [gdb_found, "--version"],
                capture_output=True, text=True, timeout=5
            )
            version_line = result.stdout.split("\n")[0] if result.stdout else "unknown"
            console.print(f"[green]✓[/green] GDB: {gdb_found} ({version_line})")
        except (OSError, subprocess.TimeoutExpired):
            console.print(f"[green]✓[/green] GDB: {gdb_found}")
    else:
        console.print("[yellow]![/yellow] GDB not found (needed for live, emu: and remote targets)")
        console.print("    [dim]Install: sudo apt install gdb-multiarch[/dim]")

    # QEMU user-mode, one binary per CPU family
    qemu_binaries = sorted({cpu_class.qemu_user for cpu_class in CPUS.values()})
    found = [name for name in qemu_binaries if shutil.which(name)]
    if found:
        console.print(f"[green]✓[/green] QEMU user-mode: {', '.join(found)}")
    else:
        console.print("[dim]-[/dim] No qemu user-mode binaries found (optional, for emu: targets)")
        console.print("    [dim]Install: sudo apt install qemu-user[/dim]")

    # Required Python packages
    required_packages = [
        ("capstone", "capstone"),
        ("elftools", "pyelftools"),
        ("pefile", "pefile"),
        ("psutil", "psutil"),
        ("pygdbmi", "pygdbmi"),
        ("typer", "typer"),
        ("rich", "rich"),
    ]
    missing_packages = []
    for import_name, package_name in required_packages:
        try:
            __import__(import_name)
        except ImportError:
            missing_packages.append(package_name)

    if not missing_packages:
        console.print("[green]✓[/green] Python dependencies installed")
    else:
        console.print(f"[red]✗[/red] Missing packages: {', '.join(missing_packages)}")
        console.print(f"    [dim]Install: pip install {' '.join(missing_packages)}[/dim]")
        all_ok = False

    # Summary
    console.print()
    if all_ok:
        console.print("[bold green]All required checks passed![/bold green]")
    else:
        console.print("[bold yellow]Some checks failed. See above for details.[/bold yellow]")
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    from dasmlaunch import __version__
    console.print(f"[bold blue]dasmlaunch[/bold blue] v{__version__}")


if __name__ == "__main__":
    app()
