"""Engine base class and the artifact parsers shared by every back end.

An Engine is the analysis or debugging back end of a session. Every
variant can disassemble from an entrypoint and take in map files, C
headers and plugins; debugger variants can also run the target.
"""

import inspect
import logging
import re
import runpy
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Set, TYPE_CHECKING

from dasmlaunch.core.errors import ArtifactLoadFailure
from dasmlaunch.core.types import Entrypoint, TargetKind

if TYPE_CHECKING:
    from dasmlaunch.gui.window import Window

logger = logging.getLogger(__name__)

# "00401000 name", "0x401000 name", "401000h name", "0001:00401000 name"
_MAP_LINE_RE = re.compile(
    r"^(?:[0-9a-fA-F]+:)?(?:0[xX])?(?P<addr>[0-9a-fA-F]+)[hH]?\s+(?P<name>\S+)"
)
_COMMENT_RE = re.compile(r"/\*.*?\*/|//[^\n]*", re.DOTALL)
_PROTOTYPE_RE = re.compile(
    r"(?P<ret>[A-Za-z_][\w\s\*]*?)\s*\b(?P<name>[A-Za-z_]\w*)\s*\((?P<args>[^()]*)\)\s*;"
)


@dataclass
class Instruction:
    """One decoded instruction in an engine's listing."""
    address: int
    size: int
    mnemonic: str
    op_str: str = ""

    @property
    def text(self) -> str:
        return f"{self.mnemonic} {self.op_str}".strip()


def parse_map_file(path: str) -> Dict[int, str]:
    """Read an address/name map file.

    Args:
        path: Map file path

    Returns:
        Dict mapping address to name, in file order

    Raises:
        ArtifactLoadFailure: If the file is unreadable or a line is malformed
    """
    try:
        text = Path(path).read_text(errors="replace")
    except OSError as e:
        raise ArtifactLoadFailure(path, e.strerror or str(e))

    entries: Dict[int, str] = {}
    for lineno, line in enumerate(text.splitlines(), 1):
        line = line.strip()
        if not line or line.startswith(("#", ";")):
            continue
        match = _MAP_LINE_RE.match(line)
        if match is None:
            raise ArtifactLoadFailure(path, f"line {lineno}: expected '<address> <name>'")
        entries[int(match.group("addr"), 16)] = match.group("name")
    return entries


def parse_c_prototypes(path: str) -> Dict[str, str]:
    """Extract function prototypes from a C header.

    Args:
        path: Header file path

    Returns:
        Dict mapping function name to its normalised prototype

    Raises:
        ArtifactLoadFailure: If the file is unreadable or its brackets do not balance
    """
    try:
        text = Path(path).read_text(errors="replace")
    except OSError as e:
        raise ArtifactLoadFailure(path, e.strerror or str(e))

    text = _COMMENT_RE.sub(" ", text)
    text = "\n".join(l for l in text.splitlines() if not l.lstrip().startswith("#"))
    for opening, closing in ("()", "{}"):
        if text.count(opening) != text.count(closing):
            raise ArtifactLoadFailure(path, f"unbalanced '{opening}{closing}'")

    prototypes: Dict[str, str] = {}
    for match in _PROTOTYPE_RE.finditer(text):
        ret = " ".join(match.group("ret").split())
        if ret.split()[0] in ("return", "typedef"):
            continue
        args = " ".join(match.group("args").split())
        prototypes[match.group("name")] = f"{ret} {match.group('name')}({args})"
    return prototypes


class Engine(ABC):
    """Abstract base class for session back ends.

    Attributes:
        title: Human-readable target identifier used for the window title
        labels: Known names (address -> name)
        comments: User comments (address -> text)
        prototypes: C prototypes by function name
        listing: Decoded instructions (address -> Instruction)
        xrefs: Cross references (target address -> referencing addresses)
        functions: Addresses known to start a function
        plugins: Plugins loaded so far, in order
    """

    kind: TargetKind
    # Debugger variants can step and continue
    supports_execution: bool = False

    def __init__(self, title: str) -> None:
        self.title = title
        self.labels: Dict[int, str] = {}
        self.comments: Dict[int, str] = {}
        self.prototypes: Dict[str, str] = {}
        self.listing: Dict[int, Instruction] = {}
        self.xrefs: Dict[int, Set[int]] = defaultdict(set)
        self.functions: Set[int] = set()
        self.plugins: List[str] = []
        self.data_trace = True
        self.debug_backtrace = False
        self.window: Optional["Window"] = None

    # === Capabilities ===

    @abstractmethod
    async def disassemble(self, entrypoint: Entrypoint, fast: bool = False) -> int:
        """Disassemble starting at an entrypoint.

        Args:
            entrypoint: Address or label
            fast: Skip pointer and data-reference tracing

        Returns:
            Number of newly decoded instructions
        """
        ...

    async def load_map(self, path: str) -> int:
        """Load an address/name map file into the label table.

        Returns:
            Number of labels added

        Raises:
            ArtifactLoadFailure: If the map file is malformed
        """
        entries = parse_map_file(path)
        for address, name in entries.items():
            self.rename(address, name)
        logger.info(f"Loaded {len(entries)} labels from {path}")
        return len(entries)

    async def parse_header(self, path: str) -> int:
        """Read C function prototypes from a header.

        Returns:
            Number of prototypes read

        Raises:
            ArtifactLoadFailure: If the header is malformed
        """
        prototypes = parse_c_prototypes(path)
        self.prototypes.update(prototypes)
        logger.info(f"Loaded {len(prototypes)} prototypes from {path}")
        return len(prototypes)

    async def load_plugin(self, path: str) -> None:
        """Run a Python plugin against this engine.

        The plugin runs with ``engine`` and ``window`` in its globals. If it
        defines ``register(engine)``, that is called (and awaited if it is a
        coroutine function). Exceptions from the plugin propagate.
        """
        namespace = runpy.run_path(
            path,
            init_globals={"engine": self, "window": self.window},
            run_name="__dasmlaunch_plugin__",
        )
        register = namespace.get("register")
        if callable(register):
            result = register(self)
            if inspect.isawaitable(result):
                await result
        self.plugins.append(path)
        logger.info(f"Loaded plugin {path}")

    # === Names and annotations ===

    async def resolve_label(self, name: str) -> Optional[int]:
        """Find the address of a label, or None."""
        for address, label in self.labels.items():
            if label == name:
                return address
        return None

    async def resolve_entrypoint(self, entrypoint: Entrypoint) -> Optional[int]:
        if isinstance(entrypoint, int):
            return entrypoint
        return await self.resolve_label(entrypoint)

    def rename(self, address: int, name: str) -> None:
        """Give an address a name, dropping any other address with that name."""
        for other, label in list(self.labels.items()):
            if label == name and other != address:
                del self.labels[other]
        self.labels[address] = name

    def comment(self, address: int, text: str) -> None:
        if text:
            self.comments[address] = text
        else:
            self.comments.pop(address, None)

    def label_at(self, address: int) -> Optional[str]:
        return self.labels.get(address)

    def default_entrypoints(self) -> List[Entrypoint]:
        """Entrypoints to analyse when asked to disassemble everything."""
        return []

    def describe(self, address: int) -> str:
        """Format an address with its label, e.g. "0x401000 <main>"."""
        label = self.label_at(address)
        return f"0x{address:x} <{label}>" if label else f"0x{address:x}"

    # === Lifecycle ===

    async def close(self) -> None:
        """Release external resources."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.title!r}>"
