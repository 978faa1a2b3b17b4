"""Contracts for the local and remote collaborators of the engine."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, List, Optional

from mirror_sync.item import Item
from mirror_sync.options import ExistingType, FollowLinkType, PermissionType


class LocalConnector(ABC):
    """Access to the local file tree."""

    @abstractmethod
    def read_folder(self, item: Item) -> List[Path]:
        """List the local entries that correspond to a tree folder."""

    @abstractmethod
    def get_item(
        self, path: Path, follow_links: FollowLinkType, followed_link_paths: List[str]
    ) -> Item:
        """Translate a local entry into an Item.

        Raises:
            FileIOError: If the entry cannot be read
        """

    @abstractmethod
    def get_local_path(self, item: Item) -> Path:
        """Absolute local location of a tree item."""

    @abstractmethod
    def get_file_binary(self, item: Item) -> Optional[BinaryIO]:
        """Open the content of a local item, None for folders."""

    @abstractmethod
    def prepare_parent(self, handler, item: Item) -> None:
        """Make sure the local parent directory of item exists."""

    @abstractmethod
    def prepare_upload(self, handler, item: Item, existing: ExistingType) -> None:
        """Check that item may be written locally under the existing policy."""

    @abstractmethod
    def upload(
        self, handler, item: Item, existing: ExistingType, permissions: PermissionType
    ) -> None:
        """Materialize a remote item in local storage."""


class RemoteConnector(ABC):
    """Access to the remote storage service."""

    @abstractmethod
    def read_folder(self, handler, item: Item) -> List[Item]:
        """List remote children of item; entries may lack a checksum."""

    @abstractmethod
    def upload(self, handler, item: Item) -> None:
        """Create item remotely and assign its identifier and checksum."""

    @abstractmethod
    def update(self, handler, item: Item, with_filedata: bool) -> None:
        """Rewrite the remote metadata of item, and its content if asked."""

    @abstractmethod
    def remove(self, handler, item: Item) -> None:
        """Delete item and everything below it from the remote."""

    @abstractmethod
    def get(self, handler, item: Item) -> BinaryIO:
        """Open the stored content of item."""

    @abstractmethod
    def clean_history(self, handler) -> None:
        """Drop revisions the remote kept for updated items."""
