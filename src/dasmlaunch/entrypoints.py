"""Entrypoint arguments: addresses and labels to disassemble."""

import logging
import re
from typing import Iterable, List, TYPE_CHECKING

from dasmlaunch.core.errors import MalformedAddress
from dasmlaunch.core.types import Entrypoint

if TYPE_CHECKING:
    from dasmlaunch.engines.base import Engine

logger = logging.getLogger(__name__)

_LEGACY_OCTAL_RE = re.compile(r"^0[0-7]+$")


def parse_address(token: str) -> int:
    """Parse an integer literal.

    Accepts whatever int(token, 0) accepts (0x/0o/0b prefixes, decimal,
    underscores) plus leading-zero octal such as "0777".

    Raises:
        MalformedAddress: If the token is not an integer literal
    """
    try:
        return int(token, 0)
    except ValueError:
        pass
    if _LEGACY_OCTAL_RE.match(token):
        return int(token, 8)
    raise MalformedAddress(token)


def parse_entrypoint(token: str) -> Entrypoint:
    """Classify one token: an address if it starts with a digit, else a label."""
    if token[:1].isdigit() and token[:1].isascii():
        return parse_address(token)
    return token


def resolve_entrypoints(
    raw_args: Iterable[str],
    dasm_all: bool,
    engine: "Engine",
) -> List[Entrypoint]:
    """Turn command-line entrypoint arguments into entrypoints.

    Explicit entrypoints come first, in the order given. With dasm_all the
    engine's default entrypoints follow; duplicates keep their first
    position.

    Raises:
        MalformedAddress: If an address token is malformed
    """
    entrypoints = [parse_entrypoint(token) for token in raw_args]
    if dasm_all:
        entrypoints.extend(engine.default_entrypoints())

    result: List[Entrypoint] = []
    seen = set()
    for entrypoint in entrypoints:
        if entrypoint in seen:
            continue
        seen.add(entrypoint)
        result.append(entrypoint)
    logger.debug(f"Entrypoints: {result}")
    return result
