"""Tree model for mirrored filesystem entries."""

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from mirror_sync.exceptions import CacheCorruptError

SEPARATOR = "/"

# Bump when the metadata blob layout changes; older remote items get re-encoded.
METADATA_VERSION = 2

# Filesystems round timestamps differently; differences below this are noise.
MTIME_TOLERANCE = 0.001

CSV_COLUMNS = (
    "path",
    "remote_identifier",
    "type",
    "filesize",
    "creation_time",
    "modify_time",
    "access_time",
    "permissions",
    "user",
    "group",
    "checksum",
    "metadata_version",
    "remote_filesize",
    "remote_creation_time",
)


class ItemType(Enum):
    """Kinds of mirrored entries."""

    FOLDER = "folder"
    FILE = "file"
    LINK = "link"

    def label(self, count: int) -> str:
        """Return the type name, pluralized for count."""
        return self.value if count == 1 else f"{self.value}s"


def _fmt(value) -> str:
    return "" if value is None else str(value)


def _to_int(value: str) -> Optional[int]:
    return int(value) if value != "" else None


def _to_float(value: str) -> Optional[float]:
    return float(value) if value != "" else None


def _times_differ(a: Optional[float], b: Optional[float]) -> bool:
    if a is None or b is None:
        return a is not b
    return abs(a - b) > MTIME_TOLERANCE


@dataclass(eq=False)
class Item:
    """One node of the mirrored tree.

    Identity is the object itself: two items with equal fields are still
    different nodes. The parent pointer and the child mapping are kept in
    sync by add_child/remove_child; quarantined items keep a parent pointer
    without being listed among the parent's children.
    """

    name: str
    type: ItemType
    remote_identifier: Optional[str] = None
    filesize: Optional[int] = None
    creation_time: Optional[float] = None
    modify_time: Optional[float] = None
    access_time: Optional[float] = None
    permissions: Optional[int] = None
    user: Optional[int] = None
    group: Optional[int] = None
    checksum: Optional[str] = None
    metadata_version: int = METADATA_VERSION
    remote_filesize: Optional[int] = None
    remote_creation_time: Optional[float] = None
    local_file: Optional[Path] = field(default=None, repr=False)
    is_root: bool = field(default=False, repr=False)
    _parent: Optional["Item"] = field(default=None, repr=False)
    _children: Dict[str, "Item"] = field(default_factory=dict, repr=False)

    @classmethod
    def dummy_root(cls) -> "Item":
        """Create the synthetic root that anchors a tree."""
        return cls(name="", type=ItemType.FOLDER, is_root=True)

    @property
    def parent(self) -> Optional["Item"]:
        return self._parent

    def set_parent(self, parent: Optional["Item"]) -> None:
        """Point at a parent without registering as its child."""
        self._parent = parent

    @property
    def type_name(self) -> str:
        return self.type.value

    @property
    def path(self) -> str:
        """Slash separated names from the root down to this item."""
        names = []
        node: Optional[Item] = self
        while node is not None and not node.is_root:
            names.append(node.name)
            node = node._parent
        return SEPARATOR.join(reversed(names))

    def is_type(self, item_type: ItemType) -> bool:
        return self.type == item_type

    def add_child(self, child: "Item") -> None:
        """Attach child under this folder.

        Raises:
            ValueError: If this item is not a folder or the name is taken
        """
        if not self.is_type(ItemType.FOLDER):
            raise ValueError(f"{self.type_name} '{self.path}' cannot have children")
        existing = self._children.get(child.name)
        if existing is not None and existing is not child:
            raise ValueError(f"'{child.name}' already exists in '{self.path}'")
        child._parent = self
        self._children[child.name] = child

    def remove_child(self, child: "Item") -> None:
        if self._children.get(child.name) is child:
            del self._children[child.name]

    def get_child_by_name(self, name: str) -> Optional["Item"]:
        return self._children.get(name)

    def get_children(self) -> Dict[str, "Item"]:
        """Return a copy of the name -> child mapping in insertion order."""
        return dict(self._children)

    def has_children(self) -> bool:
        return bool(self._children)

    def flatten(self) -> List["Item"]:
        """Return this item and all of its descendants in pre-order."""
        result = [self]
        if self.is_type(ItemType.FOLDER):
            for child in self._children.values():
                result.extend(child.flatten())
        return result

    def is_type_changed(self, other: "Item") -> bool:
        return self.type != other.type

    def is_metadata_format_changed(self) -> bool:
        return self.metadata_version != METADATA_VERSION

    def is_metadata_changed(self, other: "Item") -> bool:
        """Check size, times, ownership, permissions and blob version against other."""
        if self.is_type_changed(other):
            return True
        if not self.is_type(ItemType.FOLDER) and self.filesize != other.filesize:
            return True
        if _times_differ(self.modify_time, other.modify_time):
            return True
        if self.permissions != other.permissions:
            return True
        if self.user != other.user or self.group != other.group:
            return True
        return self.metadata_version != other.metadata_version

    def is_filedata_changed(self, other: "Item") -> bool:
        """Check whether content differs, as opposed to attributes only."""
        if self.is_type(ItemType.FOLDER):
            return False
        if self.filesize != other.filesize:
            return True
        return _times_differ(self.modify_time, other.modify_time)

    def update(self, other: "Item") -> None:
        """Take over the local metadata of other, keeping remote identity."""
        self.filesize = other.filesize
        self.creation_time = other.creation_time
        self.modify_time = other.modify_time
        self.access_time = other.access_time
        self.permissions = other.permissions
        self.user = other.user
        self.group = other.group
        self.local_file = other.local_file

    def mark_metadata_current(self) -> None:
        self.metadata_version = METADATA_VERSION

    def get_metadata(self) -> str:
        """Encode the item metadata as the blob stored next to the remote entry."""
        return json.dumps(
            {
                "version": METADATA_VERSION,
                "type": self.type.value,
                "filesize": self.filesize,
                "ctime": self.creation_time,
                "mtime": self.modify_time,
                "atime": self.access_time,
                "permissions": self.permissions,
                "user": self.user,
                "group": self.group,
            },
            sort_keys=True,
        )

    @classmethod
    def from_metadata(
        cls,
        remote_identifier: str,
        is_folder: bool,
        title: str,
        metadata: Optional[str],
        remote_filesize: Optional[int],
        remote_creation_time: Optional[float],
    ) -> "Item":
        """Build an item from a remote listing entry.

        A blob that cannot be decoded yields an item with version 0, so the
        next backup rewrites it.
        """
        try:
            data = json.loads(metadata) if metadata else {}
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if is_folder:
            item_type = ItemType.FOLDER
        else:
            try:
                item_type = ItemType(data.get("type", ItemType.FILE.value))
            except ValueError:
                item_type = ItemType.FILE
            if item_type == ItemType.FOLDER:
                item_type = ItemType.FILE

        return cls(
            name=title,
            type=item_type,
            remote_identifier=remote_identifier,
            filesize=data.get("filesize"),
            creation_time=data.get("ctime"),
            modify_time=data.get("mtime"),
            access_time=data.get("atime"),
            permissions=data.get("permissions"),
            user=data.get("user"),
            group=data.get("group"),
            metadata_version=data.get("version", 1) if data else 0,
            remote_filesize=remote_filesize,
            remote_creation_time=remote_creation_time,
        )

    def to_csv_row(self) -> List[str]:
        """Serialize into a cache row, in CSV_COLUMNS order."""
        return [
            self.path,
            _fmt(self.remote_identifier),
            self.type.value,
            _fmt(self.filesize),
            _fmt(self.creation_time),
            _fmt(self.modify_time),
            _fmt(self.access_time),
            _fmt(self.permissions),
            _fmt(self.user),
            _fmt(self.group),
            _fmt(self.checksum),
            str(self.metadata_version),
            _fmt(self.remote_filesize),
            _fmt(self.remote_creation_time),
        ]

    @classmethod
    def from_csv_row(cls, row: Sequence[str]) -> "Item":
        """Deserialize a cache row; the parent edge is left to the caller.

        Raises:
            CacheCorruptError: If the row is malformed
        """
        if len(row) != len(CSV_COLUMNS):
            raise CacheCorruptError(
                f"Expected {len(CSV_COLUMNS)} columns, got {len(row)}: {list(row)!r}"
            )
        path = row[0].strip(SEPARATOR)
        if not path:
            raise CacheCorruptError(f"Empty path in cache row: {list(row)!r}")
        try:
            return cls(
                name=path.rsplit(SEPARATOR, 1)[-1],
                remote_identifier=row[1] or None,
                type=ItemType(row[2]),
                filesize=_to_int(row[3]),
                creation_time=_to_float(row[4]),
                modify_time=_to_float(row[5]),
                access_time=_to_float(row[6]),
                permissions=_to_int(row[7]),
                user=_to_int(row[8]),
                group=_to_int(row[9]),
                checksum=row[10] or None,
                metadata_version=int(row[11]),
                remote_filesize=_to_int(row[12]),
                remote_creation_time=_to_float(row[13]),
            )
        except ValueError as e:
            raise CacheCorruptError(f"Invalid value in cache row for '{path}': {e}") from e
