"""Target resolution and the launch pipeline.

Target strings:

    live:1234             attach to pid 1234
    live:nginx            attach to the first process whose name or
                          command line contains "nginx"
    emu:./a.out           run ./a.out under QEMU user-mode
    localhost:1234        remote gdbstub (also tcp:host:port,
    udp:[::1]:1234        udp:host:port and [ipv6]:port)
    ./a.out               static disassembly (the default)
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from rich.console import Console

from dasmlaunch.artifacts import apply_artifacts, autoload_options
from dasmlaunch.backends import BackendFactory
from dasmlaunch.core.errors import HookError
from dasmlaunch.core.types import (
    Entrypoint,
    Options,
    PluginLoadResult,
    TargetKind,
    TargetSpec,
    ToolPaths,
)
from dasmlaunch.engines.base import Engine
from dasmlaunch.entrypoints import resolve_entrypoints
from dasmlaunch.gui.actions import Action
from dasmlaunch.gui.window import Window
from dasmlaunch.session import SessionHandle, SessionManager

logger = logging.getLogger(__name__)

# Hosts need two characters so that drive letters ("c:1234") stay file paths
_REMOTE_RE = re.compile(r"^(?:(tcp|udp):)?(?:[^\s:/\\\[\]]{2,}|\[[0-9a-fA-F:.]+\]):\d+$")


def classify_target(raw: Optional[str]) -> TargetSpec:
    """Classify a target string. Never fails; unknown forms are file paths."""
    if raw is None:
        return TargetSpec(raw=None, kind=TargetKind.STATIC_EXECUTABLE, locator=None)

    if raw.startswith("live:"):
        rest = raw[len("live:"):]
        locator = int(rest) if rest.isdigit() else rest
        return TargetSpec(raw=raw, kind=TargetKind.LIVE_PROCESS, locator=locator)

    if raw.startswith("emu:"):
        return TargetSpec(raw=raw, kind=TargetKind.EMULATED, locator=raw[len("emu:"):])

    if _REMOTE_RE.match(raw):
        return TargetSpec(raw=raw, kind=TargetKind.REMOTE_DEBUG, locator=raw)

    return TargetSpec(raw=raw, kind=TargetKind.STATIC_EXECUTABLE, locator=raw)


@dataclass
class LaunchResult:
    """A launched session, ready to hand over to the user.

    Attributes:
        spec: Classified target
        options: Options after autoload
        engine: The session's engine
        window: The engine's window
        entrypoints: Resolved entrypoints, in order
        plugins: Plugin load outcomes
        session: Open session handle
    """
    spec: TargetSpec
    options: Options
    engine: Engine
    window: Window
    entrypoints: List[Entrypoint]
    session: SessionHandle
    sessions: SessionManager
    plugins: List[PluginLoadResult] = field(default_factory=list)

    async def run(self) -> None:
        """Run the window until the user quits, then save and close.

        On an exception the session is abandoned instead of saved.
        """
        try:
            await self.window.run()
        except BaseException:
            self.sessions.abandon(self.session)
            await self.engine.close()
            raise
        self.sessions.close(self.session)
        await self.engine.close()

    async def abort(self) -> None:
        """Release the session and the engine without saving."""
        self.sessions.abandon(self.session)
        await self.engine.close()


class TargetResolver:
    """Turns a target string and options into a running session.

    Example:
        resolver = TargetResolver()
        result = await resolver.launch("a.out", ["main"], Options(autoload=True))
        await result.run()
    """

    def __init__(
        self,
        tool_paths: Optional[ToolPaths] = None,
        console: Optional[Console] = None,
        sessions: Optional[SessionManager] = None,
    ) -> None:
        self.factory = BackendFactory(tool_paths, console=console)
        self.sessions = sessions or SessionManager()
        self.options: Optional[Options] = None

    async def resolve(self, raw: Optional[str], options: Options) -> Tuple[TargetSpec, Engine]:
        """Classify the target, autoload its artifacts and build the engine.

        The options after autoload are kept in self.options.
        """
        spec = classify_target(raw)
        logger.info(f"Target {raw!r} is {spec.kind.value}")
        if spec.path:
            options = autoload_options(spec.path, options)
        self.options = options
        engine = await self.factory.build(spec, options)
        return spec, engine

    async def launch(
        self,
        raw: Optional[str],
        entry_args: Sequence[str],
        options: Options,
    ) -> LaunchResult:
        """Run every launch stage up to the point the user takes over.

        Raises:
            LaunchError: If any stage fails; the engine is closed first
        """
        spec, engine = await self.resolve(raw, options)
        options = self.options
        assert options is not None
        window = engine.window
        assert window is not None
        try:
            plugins = await apply_artifacts(engine, options)

            engine.data_trace = not options.no_data_trace
            engine.debug_backtrace = options.debug_backtrace
            window.fast = options.fast

            entrypoints = resolve_entrypoints(entry_args, options.dasm_all_entrypoints, engine)
            if entrypoints:
                await window.focus(entrypoints[0])
            for entrypoint in entrypoints:
                await engine.disassemble(entrypoint, fast=options.fast)

            if spec.kind is TargetKind.EMULATED and window.cur is not None:
                await engine.set_pc(window.cur)  # type: ignore[attr-defined]

            if options.decompile:
                await window.apply(Action.view("decompile"))

            session = self.sessions.open(options.session_file, options.new_session)
        except BaseException:
            await engine.close()
            raise

        result = LaunchResult(
            spec=spec,
            options=options,
            engine=engine,
            window=window,
            entrypoints=entrypoints,
            session=session,
            sessions=self.sessions,
            plugins=plugins,
        )
        try:
            await self.sessions.replay(session, window)
            self.sessions.attach(session, window)
            for code in options.hook_code:
                self._run_hook(code, result)
        except BaseException:
            await result.abort()
            raise
        return result

    def _run_hook(self, code: str, result: LaunchResult) -> None:
        """Evaluate inline Python with the engine, window and session in scope."""
        namespace = {
            "engine": result.engine,
            "window": result.window,
            "session": result.session,
        }
        try:
            exec(compile(code, "<hook>", "exec"), namespace)
        except Exception as e:
            raise HookError(f"Hook code failed: {type(e).__name__} {e}") from e
