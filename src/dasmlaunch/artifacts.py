"""Artifacts attached to an engine: map files, C headers and plugins.

With --autoload, artifacts sitting next to the target file are picked up
by name:

    firmware.exe   ->  firmware.map, firmware.h, firmware.py,
                       firmware.dasm-session

Map and header errors end the launch. Plugin errors are reported and the
remaining plugins still load.
"""

import dataclasses
import logging
import os
import re
from typing import List, Optional, TYPE_CHECKING

from rich.console import Console
from rich.markup import escape

from dasmlaunch.core.errors import PluginLoadFailure
from dasmlaunch.core.types import Options, PluginLoadResult

if TYPE_CHECKING:
    from dasmlaunch.engines.base import Engine

logger = logging.getLogger(__name__)

console = Console(stderr=True)

# A final extension of one to three word characters
_EXTENSION_RE = re.compile(r"\.\w\w?\w?$")

SESSION_SUFFIX = ".dasm-session"


def artifact_base(target_path: str) -> str:
    """Target path without its extension."""
    return _EXTENSION_RE.sub("", target_path)


def autoload_options(target_path: Optional[str], options: Options) -> Options:
    """Fill in artifacts found next to the target.

    Only applies when options.autoload is set. Explicitly given values are
    kept; a sibling file is only used if it exists.

    Returns:
        New Options (the input is not modified)
    """
    if not options.autoload or not target_path:
        return options

    base = artifact_base(target_path)
    changes = {}

    map_file = base + ".map"
    if options.map_file is None and os.path.isfile(map_file):
        changes["map_file"] = map_file

    header = base + ".h"
    if options.c_header_file is None and os.path.isfile(header):
        changes["c_header_file"] = header

    plugin = base + ".py"
    if os.path.isfile(plugin) and plugin not in options.plugins:
        changes["plugins"] = options.plugins + (plugin,)

    session = base + SESSION_SUFFIX
    if options.session_file is None and os.path.isfile(session):
        changes["session_file"] = session

    if changes:
        logger.info(f"Autoloaded {', '.join(f'{k}={v}' for k, v in changes.items())}")
    return dataclasses.replace(options, **changes)


async def load_plugins(engine: "Engine", plugins: List[str]) -> List[PluginLoadResult]:
    """Load plugins in order, isolating each one's failure."""
    results = []
    for path in plugins:
        # sys.exit() in a plugin fails that plugin only; Ctrl-C still stops the launch
        try:
            await engine.load_plugin(path)
        except (Exception, SystemExit) as e:
            failure = PluginLoadFailure(path, e)
            logger.error(str(failure), exc_info=engine.debug_backtrace)
            console.print(f"[red]{escape(str(failure))}[/red]")
            results.append(PluginLoadResult(path, False, f"{type(e).__name__} {e}"))
        else:
            results.append(PluginLoadResult(path, True))
    return results


async def apply_artifacts(engine: "Engine", options: Options) -> List[PluginLoadResult]:
    """Load the map, the header and the plugins named by the options.

    Returns:
        One result per plugin, in order

    Raises:
        ArtifactLoadFailure: If the map or header cannot be loaded
    """
    if options.map_file:
        await engine.load_map(options.map_file)
    if options.c_header_file:
        await engine.parse_header(options.c_header_file)
    return await load_plugins(engine, list(options.plugins))
