"""Error types raised by the mirror engine."""


class MirrorSyncError(Exception):
    """Base class for all engine errors."""

    pass


class FatalSetupError(MirrorSyncError):
    """Raised when the lock or PID marker cannot be created or removed."""

    pass


class CacheCorruptError(MirrorSyncError):
    """Raised when the cache file cannot be parsed back into a tree."""

    pass


class QuarantineBlockingError(MirrorSyncError):
    """Raised when duplicate or invalid items are still waiting to be cleaned."""

    pass


class FileIOError(MirrorSyncError):
    """Raised when a single local item cannot be read or written."""

    pass


class ItemExistsError(MirrorSyncError):
    """Raised when a restore target already exists and the policy forbids touching it."""

    pass
