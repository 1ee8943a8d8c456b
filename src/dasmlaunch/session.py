"""Session files: recorded user actions, replayed on the next launch.

A session file holds one JSON object per line, each an Action:

    {"kind": "goto", "args": [4198400]}
    {"kind": "rename", "args": [4198400, "main"]}

Opening an existing file without a fresh start replays it into the window
before new actions are recorded. The whole log is written back when the
session closes normally. While open, ``<path>.lock`` holds the owner's
PID so a second launcher cannot record into the same file.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, TYPE_CHECKING

from dasmlaunch.core.errors import ArtifactLoadFailure, SessionLocked
from dasmlaunch.gui.actions import Action

if TYPE_CHECKING:
    from dasmlaunch.gui.window import Window

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Session lifecycle states."""
    NO_SESSION = "no-session"
    FRESH = "fresh"
    RESUME = "resume"
    RECORDING = "recording"
    CLOSED = "closed"


@dataclass
class SessionHandle:
    """An open session.

    Attributes:
        path: Session file (None for no session)
        state: Lifecycle state
        log: Every action of the session, prior actions first
        replayed: Number of prior actions loaded from the file
    """
    path: Optional[str]
    state: SessionState
    log: List[Action] = field(default_factory=list)
    replayed: int = 0

    @property
    def lock_path(self) -> Optional[str]:
        return f"{self.path}.lock" if self.path else None

    @property
    def new_actions(self) -> List[Action]:
        return self.log[self.replayed:]


def is_process_running(pid: int) -> bool:
    """Check if a process is running."""
    try:
        os.kill(pid, 0)
        return True
    except PermissionError:
        # Exists, owned by someone else
        return True
    except (OSError, ProcessLookupError):
        return False


def read_log(path: str) -> List[Action]:
    """Read the actions of a session file.

    Raises:
        ArtifactLoadFailure: If the file is unreadable or a line is not an action
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ArtifactLoadFailure(path, e.strerror or str(e))
    except UnicodeDecodeError as e:
        raise ArtifactLoadFailure(path, f"not a text file: {e.reason} at byte {e.start}")

    actions = []
    for lineno, line in enumerate(text.splitlines(), 1):
        if not line.strip():
            continue
        try:
            actions.append(Action.from_dict(json.loads(line)))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise ArtifactLoadFailure(path, f"line {lineno}: {e}")
    return actions


def write_log(path: str, actions: List[Action]) -> None:
    """Replace a session file with the given actions, atomically."""
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".dasm-session-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            for action in actions:
                f.write(json.dumps(action.to_dict()) + "\n")
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


class SessionManager:
    """Opens, replays, records and persists session files.

    Example:
        manager = SessionManager()
        handle = manager.open("a.dasm-session", fresh_start=False)
        await manager.replay(handle, window)
        manager.attach(handle, window)
        ...
        manager.close(handle)
    """

    def open(self, path: Optional[str], fresh_start: bool = False) -> SessionHandle:
        """Open a session file.

        Args:
            path: Session file, or None for no session
            fresh_start: Discard any existing content

        Returns:
            SessionHandle in state NO_SESSION, FRESH or RESUME

        Raises:
            SessionLocked: If another running process holds the session
            ArtifactLoadFailure: If an existing session file cannot be read
        """
        if not path:
            return SessionHandle(path=None, state=SessionState.NO_SESSION)

        handle = SessionHandle(path=path, state=SessionState.FRESH)
        self._acquire_lock(handle)
        try:
            if os.path.exists(path) and not fresh_start:
                handle.log = read_log(path)
                handle.replayed = len(handle.log)
                handle.state = SessionState.RESUME
                logger.info(f"Resuming session {path} ({handle.replayed} actions)")
            else:
                if os.path.exists(path):
                    os.unlink(path)
                    logger.info(f"Discarded previous session {path}")
                handle.state = SessionState.RECORDING
                logger.info(f"Recording new session {path}")
        except BaseException:
            self._release_lock(handle)
            raise
        return handle

    async def replay(self, handle: SessionHandle, window: "Window") -> int:
        """Apply the loaded actions to the window, in order, without recording.

        Returns:
            Number of actions replayed
        """
        if handle.state not in (SessionState.RESUME, SessionState.RECORDING):
            return 0
        prior = handle.log[:handle.replayed]
        for action in prior:
            await window.apply(action)
        handle.state = SessionState.RECORDING
        logger.debug(f"Replayed {len(prior)} actions into {window.title}")
        return len(prior)

    def record(self, handle: SessionHandle, action: Action) -> None:
        """Append an action to the log. Does nothing without a session."""
        if handle.state is not SessionState.RECORDING:
            return
        handle.log.append(action)

    def attach(self, handle: SessionHandle, window: "Window") -> None:
        """Record every action the window dispatches from now on."""
        window.recorder = lambda action: self.record(handle, action)

    def close(self, handle: SessionHandle) -> None:
        """Write the full log back to the session file and release it."""
        if handle.path is None or handle.state is SessionState.CLOSED:
            return
        try:
            write_log(handle.path, handle.log)
            logger.info(
                f"Saved session {handle.path} ({len(handle.new_actions)} new actions)"
            )
        finally:
            self._release_lock(handle)
            handle.state = SessionState.CLOSED

    def abandon(self, handle: SessionHandle) -> None:
        """Release the session without writing it."""
        if handle.path is None or handle.state is SessionState.CLOSED:
            return
        self._release_lock(handle)
        handle.state = SessionState.CLOSED
        logger.debug(f"Abandoned session {handle.path}")

    # === Locking ===

    def _acquire_lock(self, handle: SessionHandle) -> None:
        lock_path = handle.lock_path
        assert lock_path is not None
        for _ in range(2):
            try:
                fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                owner = self._lock_owner(lock_path)
                if owner is not None and owner != os.getpid() and is_process_running(owner):
                    raise SessionLocked(handle.path or lock_path, owner)
                logger.warning(f"Removing stale session lock {lock_path}")
                try:
                    os.unlink(lock_path)
                except FileNotFoundError:
                    pass
                continue
            with os.fdopen(fd, "w") as f:
                f.write(str(os.getpid()))
            return
        raise SessionLocked(handle.path or lock_path)

    def _lock_owner(self, lock_path: str) -> Optional[int]:
        try:
            return int(Path(lock_path).read_text().strip())
        except (OSError, ValueError):
            return None

    def _release_lock(self, handle: SessionHandle) -> None:
        if handle.lock_path and self._lock_owner(handle.lock_path) == os.getpid():
            os.unlink(handle.lock_path)
