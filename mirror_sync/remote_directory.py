"""Remote collaborator backed by an object directory.

Every remote item is stored as two files below ``<remote_root>/objects``:
``<id>.json`` holds the record (parent id, title, metadata blob, creation
time, size, checksum) and ``<id>.bin`` holds the content. The record is
written before the content and only gets its checksum once the content is
complete, so an interrupted upload leaves an item without a checksum.
"""

import hashlib
import io
import json
import os
import shutil
import time
import uuid
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterator, List, Optional, Tuple, Union

from mirror_sync.connectors import RemoteConnector
from mirror_sync.exceptions import MirrorSyncError
from mirror_sync.item import Item, ItemType
from mirror_sync.logging_setup import get_logger

logger = get_logger()

ROOT_ID = "root"
RECORD_SUFFIX = ".json"
DATA_SUFFIX = ".bin"
REVISION_SUFFIX = ".rev"


class RemoteDirectoryError(MirrorSyncError):
    """Raised when the object directory cannot be read or written."""

    pass


class DirectoryRemoteConnector(RemoteConnector):
    """Stores the mirror as flat records in a directory, e.g. a mounted share."""

    def __init__(self, remote_root: Union[str, Path]):
        """Initialize the connector.

        Args:
            remote_root: Directory holding the object store
        """
        self.remote_root = Path(remote_root)
        self.objects_dir = self.remote_root / "objects"

    def _record_path(self, identifier: str) -> Path:
        return self.objects_dir / f"{identifier}{RECORD_SUFFIX}"

    def _data_path(self, identifier: str) -> Path:
        return self.objects_dir / f"{identifier}{DATA_SUFFIX}"

    def _read_record(self, identifier: str) -> Optional[Dict[str, Any]]:
        try:
            with open(self._record_path(identifier), "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise RemoteDirectoryError(f"Can't read record '{identifier}': {e}") from e

    def _write_record(self, identifier: str, record: Dict[str, Any]) -> None:
        path = self._record_path(identifier)
        tmp = path.with_name(path.name + ".tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(record, f, sort_keys=True)
            os.replace(tmp, path)
        except OSError as e:
            raise RemoteDirectoryError(f"Can't write record '{identifier}': {e}") from e

    def _iter_records(self) -> Iterator[Dict[str, Any]]:
        if not self.objects_dir.is_dir():
            return
        for path in sorted(self.objects_dir.glob(f"*{RECORD_SUFFIX}")):
            identifier = path.name[: -len(RECORD_SUFFIX)]
            record = self._read_record(identifier)
            if record is not None:
                record["id"] = identifier
                yield record

    @staticmethod
    def _parent_id(item: Item) -> str:
        parent = item.parent
        if parent is None or parent.is_root:
            return ROOT_ID
        if parent.remote_identifier is None:
            raise RemoteDirectoryError(f"Parent of '{item.path}' has no remote identifier")
        return parent.remote_identifier

    def read_folder(self, handler, item: Item) -> List[Item]:
        parent_id = ROOT_ID if item.is_root else item.remote_identifier
        records = [r for r in self._iter_records() if r.get("parent") == parent_id]
        records.sort(key=lambda r: (r.get("created") or 0.0, r["id"]))

        children = []
        for record in records:
            metadata = record.get("metadata")
            child = handler.init_remote_item(
                record["id"],
                bool(record.get("folder")),
                handler.get_processed_text(record["title"]),
                handler.get_processed_text(metadata) if metadata is not None else None,
                record.get("size"),
                record.get("created"),
            )
            child.checksum = record.get("checksum")
            children.append(child)
        return children

    def _write_data(self, handler, item: Item, identifier: str) -> Tuple[int, str]:
        """Write the processed content of item and return (size, md5)."""
        digest = hashlib.md5()
        size = 0
        data = handler.get_local_processed_binary(item)
        try:
            with open(self._data_path(identifier), "wb") as f:
                if data is not None:
                    for chunk in iter(lambda: data.read(1024 * 1024), b""):
                        f.write(chunk)
                        digest.update(chunk)
                        size += len(chunk)
        except OSError as e:
            raise RemoteDirectoryError(f"Can't write data of '{item.path}': {e}") from e
        finally:
            if data is not None:
                data.close()
        return size, digest.hexdigest()

    def upload(self, handler, item: Item) -> None:
        try:
            self.objects_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RemoteDirectoryError(f"Can't create '{self.objects_dir}': {e}") from e

        identifier = uuid.uuid4().hex
        record = {
            "parent": self._parent_id(item),
            "title": handler.get_local_processed_title(item),
            "metadata": handler.get_local_processed_metadata(item),
            "folder": item.is_type(ItemType.FOLDER),
            "created": time.time(),
            "size": None,
            "checksum": None,
        }
        self._write_record(identifier, record)

        try:
            size, checksum = self._write_data(handler, item, identifier)
        except MirrorSyncError:
            # Drop the half written object so it does not turn up as invalid
            self._delete_object(identifier)
            raise
        record["size"] = size
        record["checksum"] = checksum
        self._write_record(identifier, record)

        item.remote_identifier = identifier
        item.checksum = checksum
        item.remote_filesize = size
        item.remote_creation_time = record["created"]
        logger.debug(f"uploaded {item.type_name} '{item.path}' as {identifier}")

    def _next_revision(self, identifier: str) -> Path:
        n = 1
        while True:
            candidate = self.objects_dir / f"{identifier}.{n}{REVISION_SUFFIX}"
            if not candidate.exists():
                return candidate
            n += 1

    def update(self, handler, item: Item, with_filedata: bool) -> None:
        identifier = item.remote_identifier
        record = self._read_record(identifier)
        if record is None:
            raise RemoteDirectoryError(f"Remote item '{item.path}' ({identifier}) not found")

        record["title"] = handler.get_local_processed_title(item)
        record["metadata"] = handler.get_local_processed_metadata(item)

        if with_filedata:
            data_path = self._data_path(identifier)
            try:
                if data_path.exists():
                    shutil.move(str(data_path), str(self._next_revision(identifier)))
            except OSError as e:
                raise RemoteDirectoryError(f"Can't keep revision of '{item.path}': {e}") from e
            record["checksum"] = None
            self._write_record(identifier, record)

            size, checksum = self._write_data(handler, item, identifier)
            record["size"] = size
            record["checksum"] = checksum
            item.checksum = checksum
            item.remote_filesize = size

        self._write_record(identifier, record)

    def _descendant_ids(self, identifier: str) -> List[str]:
        by_parent: Dict[str, List[str]] = {}
        for record in self._iter_records():
            by_parent.setdefault(record.get("parent"), []).append(record["id"])

        result = []
        pending = [identifier]
        while pending:
            current = pending.pop()
            for child_id in by_parent.get(current, []):
                result.append(child_id)
                pending.append(child_id)
        return result

    def _delete_object(self, identifier: str) -> None:
        paths = [self._record_path(identifier), self._data_path(identifier)]
        paths.extend(self.objects_dir.glob(f"{identifier}.*{REVISION_SUFFIX}"))
        for path in paths:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise RemoteDirectoryError(f"Can't delete '{path}': {e}") from e

    def remove(self, handler, item: Item) -> None:
        identifier = item.remote_identifier
        if identifier is None:
            return
        for child_id in reversed(self._descendant_ids(identifier)):
            self._delete_object(child_id)
        self._delete_object(identifier)
        logger.debug(f"removed {item.type_name} '{item.path}' ({identifier})")

    def get(self, handler, item: Item) -> BinaryIO:
        data_path = self._data_path(item.remote_identifier)
        if item.checksum is None and not data_path.exists():
            # Interrupted upload: the record was written, the content never was
            return io.BytesIO(b"")
        try:
            return open(data_path, "rb")
        except OSError as e:
            raise RemoteDirectoryError(f"Can't open data of '{item.path}': {e}") from e

    def clean_history(self, handler) -> None:
        if not self.objects_dir.is_dir():
            return
        removed = 0
        for path in self.objects_dir.glob(f"*{REVISION_SUFFIX}"):
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                raise RemoteDirectoryError(f"Can't delete revision '{path}': {e}") from e
        if removed:
            logger.info(f"Removed {removed} old revisions from remote")
