"""Holding area for duplicate and invalid remote items."""

from enum import Enum
from typing import TYPE_CHECKING, List

from mirror_sync.exceptions import QuarantineBlockingError
from mirror_sync.item import Item
from mirror_sync.logging_setup import get_logger
from mirror_sync.options import ExistingType, PermissionType

if TYPE_CHECKING:
    from mirror_sync.connectors import LocalConnector, RemoteConnector

logger = get_logger()


class QuarantineReason(Enum):
    """Why an item was kept out of the tree."""

    DUPLICATE = "duplicate"
    INVALID = "invalid"


class Quarantine:
    """Duplicate and invalid items found while loading the remote structure.

    While either list is non-empty, mutating operations refuse to run and
    the cache file is not rewritten.
    """

    def __init__(self) -> None:
        self.duplicates: List[Item] = []
        self.invalids: List[Item] = []

    def add(self, item: Item, reason: QuarantineReason) -> None:
        if reason == QuarantineReason.DUPLICATE:
            self.duplicates.append(item)
        else:
            self.invalids.append(item)

    def is_empty(self) -> bool:
        return not self.duplicates and not self.invalids

    @staticmethod
    def expand(items: List[Item]) -> List[Item]:
        """Return every quarantined item followed by its descendants, pre-order."""
        result: List[Item] = []
        for item in items:
            result.extend(item.flatten())
        return result

    def _format_section(self, items: List[Item], reason: QuarantineReason) -> str:
        count = len(items)
        lines = [f"found {count} {reason.value} item{'' if count == 1 else 's'}:", ""]
        for item in self.expand(items):
            lines.append(f"  {item.remote_identifier} - {item.path}")
        return "\n".join(lines) + "\n"

    def report(self) -> str:
        """Human readable listing of everything in quarantine."""
        sections = []
        if self.duplicates:
            sections.append(self._format_section(self.duplicates, QuarantineReason.DUPLICATE))
        if self.invalids:
            sections.append(self._format_section(self.invalids, QuarantineReason.INVALID))
        return "\n\n".join(sections)

    def check(self) -> None:
        """Raise if anything is waiting to be cleaned.

        Raises:
            QuarantineBlockingError: If a duplicate or invalid item is held
        """
        if self.is_empty():
            return
        message = self.report() + "\n  try to run with '--clean=<path>'"
        raise QuarantineBlockingError(message)

    def clean(
        self,
        handler,
        local: "LocalConnector",
        remote: "RemoteConnector",
        permissions: PermissionType,
    ) -> int:
        """Recover every held item locally, then delete it from the remote.

        Items are restored parents first under a non colliding name and
        removed children first, so nothing is deleted before a local copy
        exists.

        Returns:
            Number of items cleaned
        """
        cleaned = 0
        for items in (self.duplicates, self.invalids):
            if items:
                cleaned += self._clean(handler, local, remote, permissions, items)
                items.clear()
        return cleaned

    def _clean(self, handler, local, remote, permissions, items: List[Item]) -> int:
        flat = self.expand(items)
        for item in flat:
            local.prepare_upload(handler, item, ExistingType.RENAME)
            logger.debug(f"restore {item.type_name} '{item.path}'")
            local.prepare_parent(handler, item)
            local.upload(handler, item, ExistingType.RENAME, permissions)

        for item in reversed(flat):
            logger.debug(f"clean {item.type_name} '{item.path}'")
            remote.remove(handler, item)

        return len(flat)
