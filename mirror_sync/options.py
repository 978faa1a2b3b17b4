"""Policy options for the mirror engine."""

from enum import Enum


class SyncType(Enum):
    """Top level operations."""

    BACKUP = "backup"
    RESTORE = "restore"
    LIST = "list"
    CLEAN = "clean"

    @property
    def check_pid(self) -> bool:
        """Whether the operation mutates remote state and needs a PID file."""
        return self in (SyncType.BACKUP, SyncType.CLEAN)


class ExistingType(Enum):
    """What to do when a restore target already exists locally."""

    STOP = "stop"
    UPDATE = "update"
    SKIP = "skip"
    RENAME = "rename"


class FollowLinkType(Enum):
    """Symbolic link handling during backup."""

    NONE = "none"
    EXTERNAL = "external"
    ALL = "all"


class PermissionType(Enum):
    """How permission bits are applied on restore."""

    SET = "set"
    TRY = "try"
    IGNORE = "ignore"


class FileErrorType(Enum):
    """How unreadable local items are handled during backup."""

    MESSAGE = "message"
    EXCEPTION = "exception"
