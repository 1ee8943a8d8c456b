"""Core components: shared types and the error taxonomy."""

from dasmlaunch.core.errors import (
    ArtifactLoadFailure,
    DecodeFailure,
    HookError,
    LaunchError,
    MalformedAddress,
    PluginLoadFailure,
    SessionLocked,
    TargetNotFound,
    UnknownIdentifier,
)
from dasmlaunch.core.types import (
    Entrypoint,
    Options,
    PluginLoadResult,
    TargetKind,
    TargetSpec,
    ToolPaths,
)

__all__ = [
    "ArtifactLoadFailure",
    "DecodeFailure",
    "Entrypoint",
    "HookError",
    "LaunchError",
    "MalformedAddress",
    "Options",
    "PluginLoadFailure",
    "PluginLoadResult",
    "SessionLocked",
    "TargetKind",
    "TargetNotFound",
    "TargetSpec",
    "ToolPaths",
    "UnknownIdentifier",
]
