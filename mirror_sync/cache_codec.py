"""Flat CSV cache of the mirrored tree."""

import csv
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterator, Union

from mirror_sync.exceptions import CacheCorruptError, MirrorSyncError
from mirror_sync.item import SEPARATOR, Item, ItemType
from mirror_sync.logging_setup import get_logger

logger = get_logger()

PathLike = Union[str, Path]


class CacheCodec:
    """Reads and writes the tree as one CSV row per item.

    Rows use the excel dialect (comma separated, double quote escaping,
    CRLF terminators) and are written in pre-order, so every row's parent
    path has already been seen when it is read back.
    """

    dialect = "excel"

    def iter_rows(self, root: Item) -> Iterator[list]:
        """Yield cache rows for every descendant of root in pre-order."""
        for child in root.get_children().values():
            yield child.to_csv_row()
            if child.is_type(ItemType.FOLDER):
                yield from self.iter_rows(child)

    def write(self, root: Item, cache_path: PathLike) -> int:
        """Write the tree below root to cache_path.

        The file is written to a temporary sibling and renamed into place,
        so a failure never leaves a half written cache behind.

        Returns:
            Number of rows written

        Raises:
            MirrorSyncError: If the cache file cannot be written
        """
        target = Path(cache_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        count = 0
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=str(target.parent))
        try:
            with os.fdopen(fd, "w", newline="", encoding="utf-8") as f:
                writer = csv.writer(f, dialect=self.dialect)
                for row in self.iter_rows(root):
                    writer.writerow(row)
                    count += 1
            os.replace(tmp_name, target)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise MirrorSyncError(f"Can't write cache file on '{target}'") from e

        logger.info(f"Wrote {count} items to cache file {target}")
        return count

    def read(self, cache_path: PathLike, root: Item) -> int:
        """Rebuild the tree below root from cache_path.

        Returns:
            Number of items read

        Raises:
            CacheCorruptError: If a row is malformed or its parent is unknown
            MirrorSyncError: If the file cannot be read
        """
        mapping: Dict[str, Item] = {"": root}
        count = 0
        try:
            with open(cache_path, "r", newline="", encoding="utf-8") as f:
                for line_no, row in enumerate(csv.reader(f, dialect=self.dialect), start=1):
                    if not row:
                        continue
                    item = Item.from_csv_row(row)
                    child_path = row[0].strip(SEPARATOR)
                    parent_path = child_path.rpartition(SEPARATOR)[0]

                    parent = mapping.get(parent_path)
                    if parent is None:
                        raise CacheCorruptError(
                            f"Line {line_no}: parent '{parent_path}' of '{child_path}' "
                            "not found in cache file"
                        )
                    try:
                        parent.add_child(item)
                    except ValueError as e:
                        raise CacheCorruptError(f"Line {line_no}: {e}") from e

                    mapping[child_path] = item
                    count += 1
        except (csv.Error, UnicodeDecodeError) as e:
            raise CacheCorruptError(f"Malformed cache file '{cache_path}': {e}") from e
        except OSError as e:
            raise MirrorSyncError(f"Can't read cache from file '{cache_path}'") from e

        logger.info(f"Read {count} items from cache file {cache_path}")
        return count
