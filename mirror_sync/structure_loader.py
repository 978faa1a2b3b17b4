"""Populates the in-memory tree from the cache file or the remote listing."""

from collections import Counter
from pathlib import Path
from typing import Optional, Union

from mirror_sync.cache_codec import CacheCodec
from mirror_sync.connectors import RemoteConnector
from mirror_sync.item import Item, ItemType
from mirror_sync.logging_setup import get_logger
from mirror_sync.quarantine import Quarantine, QuarantineReason

logger = get_logger()

# Status key for duplicates, counted next to the ItemType keys.
DUPLICATE = "duplicate"


def _label(key, count: int) -> str:
    if isinstance(key, ItemType):
        return key.label(count)
    return key if count == 1 else f"{key}s"


def format_remote_status(status: Counter) -> str:
    """Summarize counts as 'found 2 folders, 3 files and 1 duplicate'."""
    parts = []
    for key in (*ItemType, DUPLICATE):
        count = status.get(key)
        if count:
            parts.append(f"{count} {_label(key, count)}")
    if not parts:
        return "found nothing"

    last = parts.pop()
    message = ", ".join(parts)
    if message:
        message += " and "
    return "found " + message + last


class StructureLoader:
    """Loads the tree either from the cache or by walking the remote."""

    def __init__(
        self,
        handler,
        remote: RemoteConnector,
        quarantine: Quarantine,
        codec: Optional[CacheCodec] = None,
    ):
        self.handler = handler
        self.remote = remote
        self.quarantine = quarantine
        self.codec = codec or CacheCodec()

    def load_from_cache(self, root: Item, cache_path: Union[str, Path]) -> int:
        """Populate root from the cache file; no remote access, no triage."""
        logger.info("load structure from cache file")
        return self.codec.read(cache_path, root)

    def load_from_remote(self, root: Item) -> Counter:
        """Walk the remote from root, quarantining duplicates and invalids.

        Returns:
            Counter of loaded items per ItemType plus DUPLICATE
        """
        logger.info("load structure from remote server")
        status: Counter = Counter()
        self._read_folder(root, status)
        if status:
            logger.info(format_remote_status(status))
        return status

    def _read_folder(self, parent: Item, status: Counter) -> None:
        for child in self.remote.read_folder(self.handler, parent):
            child.set_parent(parent)

            if child.checksum is None:
                self._quarantine_invalid(child)
                continue

            existing = parent.get_child_by_name(child.name)
            if existing is not None:
                inserted = self._resolve_duplicate(parent, existing, child)
                status[DUPLICATE] += 1
            else:
                parent.add_child(child)
                inserted = True

            status[child.type] += 1
            logger.debug(f"  {format_remote_status(status)}")

            if inserted and child.is_type(ItemType.FOLDER):
                self._read_folder(child, status)

    def _quarantine_invalid(self, item: Item) -> None:
        logger.warning(f"found invalid: '{item.path}'")
        if item.remote_filesize is not None:
            logger.warning(f"  size: {item.remote_filesize}")
        logger.warning(f"  created: {item.remote_creation_time}")
        self.quarantine.add(item, QuarantineReason.INVALID)

    def _resolve_duplicate(self, parent: Item, existing: Item, child: Item) -> bool:
        """Keep the strictly later created item in the tree, quarantine the other.

        Returns:
            True if child took the tree slot
        """
        logger.warning(f"found duplicate: '{child.path}'")
        sizes = []
        if child.remote_filesize is not None:
            sizes.append(str(child.remote_filesize))
        if existing.remote_filesize is not None:
            sizes.append(f"[{existing.remote_filesize}]")
        if sizes:
            logger.warning(f"  size: {' '.join(sizes)}")
        logger.warning(
            f"  created: {child.remote_creation_time} [{existing.remote_creation_time}]"
        )

        if _is_newer(child, existing):
            parent.remove_child(existing)
            parent.add_child(child)
            self.quarantine.add(existing, QuarantineReason.DUPLICATE)
            return True
        self.quarantine.add(child, QuarantineReason.DUPLICATE)
        return False


def _is_newer(candidate: Item, existing: Item) -> bool:
    if candidate.remote_creation_time is None:
        return False
    if existing.remote_creation_time is None:
        return True
    return existing.remote_creation_time < candidate.remote_creation_time
