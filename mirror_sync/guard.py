"""Cross-process lock and PID markers."""

import os
from pathlib import Path
from typing import Union

from mirror_sync.exceptions import FatalSetupError
from mirror_sync.logging_setup import get_logger

logger = get_logger()

NAME_TOKEN = "{name}"


def resolve_marker_path(template: Union[str, Path], name: str) -> Path:
    """Substitute the {name} token in a configured marker path."""
    return Path(str(template).replace(NAME_TOKEN, name))


def _exists(path: Path) -> bool:
    # Existence of the marker itself; a dangling symlink still counts
    return os.path.lexists(path)


class ConcurrencyGuard:
    """Owns the PID file and the lock file of one engine instance.

    The PID file detects a second running (or crashed) instance. The lock
    file marks an operation in progress; when a previous run left it
    behind, the cache cannot be trusted.

    Use as a context manager so the PID file is removed on every exit path.
    The lock file is intentionally left in place when an operation fails.
    """

    def __init__(self, lock_path: Union[str, Path], pid_path: Union[str, Path]):
        self.lock_path = Path(lock_path)
        self.pid_path = Path(pid_path)
        self.is_locked = False
        self.pid_cleanup = False

    def acquire_pid(self, forcestart: bool = False) -> None:
        """Record the current process in the PID file.

        Raises:
            FatalSetupError: If a PID file exists and forcestart is not set,
                or the file cannot be written
        """
        if not forcestart and _exists(self.pid_path):
            raise FatalSetupError(
                "Other job is running or previous job has crashed. If you are sure "
                "that no other job is running use the option '--forcestart'"
            )

        try:
            self.pid_path.parent.mkdir(parents=True, exist_ok=True)
            self.pid_path.write_text(str(os.getpid()), encoding="utf-8")
        except OSError as e:
            raise FatalSetupError(f"Couldn't create '{self.pid_path}'") from e
        self.pid_cleanup = True

    def stale_lock_found(self) -> bool:
        """Whether a lock file survived from a previous run."""
        if self.is_locked or not _exists(self.lock_path):
            return False
        logger.warning(
            "Found an inconsistent cache file state. Possibly previous job has crashed "
            "or duplicate files was detected. Force a cache file rebuild."
        )
        return True

    def create_lock(self) -> None:
        """Create the lock file; a no-op while this instance holds it.

        Raises:
            FatalSetupError: If the lock file cannot be created
        """
        if self.is_locked:
            return

        try:
            if not _exists(self.lock_path):
                self.lock_path.parent.mkdir(parents=True, exist_ok=True)
                self.lock_path.touch()
        except OSError as e:
            raise FatalSetupError(f"Couldn't create '{self.lock_path}'") from e

        self.is_locked = True

    def release_lock(self) -> None:
        """Delete the lock file held by this instance.

        Raises:
            FatalSetupError: If the lock file cannot be removed, including
                when it disappeared while held
        """
        if not self.is_locked:
            return

        try:
            self.lock_path.unlink()
        except OSError as e:
            raise FatalSetupError(f"Couldn't remove '{self.lock_path}'") from e

        self.is_locked = False

    def close(self) -> None:
        """Remove the PID file if this instance created it.

        Raises:
            FatalSetupError: If the PID file cannot be removed
        """
        if not self.pid_cleanup:
            return

        try:
            self.pid_path.unlink()
        except OSError as e:
            raise FatalSetupError(f"Couldn't remove '{self.pid_path}'") from e

        self.pid_cleanup = False

    def __enter__(self) -> "ConcurrencyGuard":
        return self

    def __exit__(self, exc_type, exc_value, exc_tb) -> None:
        if exc_type is None:
            self.close()
            return
        try:
            self.close()
        except FatalSetupError as e:
            # Keep the original error; report the teardown failure alongside it
            logger.error(str(e))
