"""Error taxonomy for the launcher.

Everything raised on purpose derives from LaunchError so the CLI can turn
it into a one-line diagnostic. Only PluginLoadFailure is recovered from;
the rest end the launch.
"""

from typing import Optional


class LaunchError(Exception):
    """Base class for launcher failures."""


class TargetNotFound(LaunchError):
    """No matching live process, or the remote endpoint is unreachable."""


class MalformedAddress(LaunchError, ValueError):
    """An entrypoint token starts with a digit but is not an integer literal."""

    def __init__(self, token: str) -> None:
        super().__init__(f"Malformed address: {token!r}")
        self.token = token


class DecodeFailure(LaunchError):
    """The file is not a recognised or decodable executable."""


class ArtifactLoadFailure(LaunchError):
    """A map, header or session file could not be loaded."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Failed to load {path}: {reason}")
        self.path = path
        self.reason = reason


class PluginLoadFailure(LaunchError):
    """A plugin raised while loading. Reported, never fatal."""

    def __init__(self, path: str, cause: BaseException) -> None:
        super().__init__(f"Error with plugin {path}: {type(cause).__name__} {cause}")
        self.path = path
        self.cause = cause


class UnknownIdentifier(LaunchError, ValueError):
    """A CPU, format or window toolkit name is not in its registry."""

    def __init__(self, kind: str, name: str, supported: list[str]) -> None:
        super().__init__(
            f"Unknown {kind}: {name}. Supported: {', '.join(supported)}"
        )
        self.kind = kind
        self.name = name
        self.supported = supported


class SessionLocked(LaunchError):
    """Another live process holds the session file."""

    def __init__(self, path: str, owner_pid: Optional[int] = None) -> None:
        owner = f" (held by PID {owner_pid})" if owner_pid else ""
        super().__init__(f"Session file {path} is in use{owner}")
        self.path = path
        self.owner_pid = owner_pid


class HookError(LaunchError):
    """Inline hook code raised."""
