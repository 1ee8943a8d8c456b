"""Window toolkits.

The toolkit is chosen with --gui or the DASMLAUNCH_GUI environment
variable.
"""

from typing import Dict, Optional, Type, TYPE_CHECKING

from rich.console import Console

from dasmlaunch.core.errors import UnknownIdentifier
from dasmlaunch.gui.actions import ACTION_KINDS, VIEWS, Action
from dasmlaunch.gui.window import ConsoleWindow, HeadlessWindow, Window

if TYPE_CHECKING:
    from dasmlaunch.engines.base import Engine

GUI_ENV_VAR = "DASMLAUNCH_GUI"
DEFAULT_TOOLKIT = "console"

WINDOW_TOOLKITS: Dict[str, Type[Window]] = {
    "console": ConsoleWindow,
    "headless": HeadlessWindow,
}


def create_window(
    toolkit: str,
    engine: "Engine",
    console: Optional[Console] = None,
) -> Window:
    """Create the window for an engine.

    Raises:
        UnknownIdentifier: If the toolkit is not registered
    """
    window_class = WINDOW_TOOLKITS.get(toolkit.lower())
    if window_class is None:
        raise UnknownIdentifier("window toolkit", toolkit, sorted(WINDOW_TOOLKITS))
    return window_class(engine, console=console)


__all__ = [
    "Action",
    "ACTION_KINDS",
    "VIEWS",
    "Window",
    "ConsoleWindow",
    "HeadlessWindow",
    "WINDOW_TOOLKITS",
    "GUI_ENV_VAR",
    "create_window",
]
