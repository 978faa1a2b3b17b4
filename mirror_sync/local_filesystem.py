"""Local filesystem collaborator: reads entries for backup, writes them on restore."""

import io
import os
import shutil
import stat
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Union

from mirror_sync.connectors import LocalConnector
from mirror_sync.exceptions import FileIOError, ItemExistsError
from mirror_sync.item import Item, ItemType
from mirror_sync.logging_setup import get_logger
from mirror_sync.options import ExistingType, FollowLinkType, PermissionType

logger = get_logger()


class LocalFilesystemConnector(LocalConnector):
    """Maps tree items onto paths below a local root directory."""

    def __init__(self, local_root: Union[str, Path]):
        """Initialize the connector.

        Args:
            local_root: Directory that mirrors the tree root
        """
        self.local_root = Path(local_root).absolute()
        # Items restored under a different name than their own, e.g. "a (1).txt"
        self._renamed: Dict[Item, Path] = {}

    def get_local_path(self, item: Item) -> Path:
        renamed = self._renamed.get(item)
        if renamed is not None:
            return renamed
        if item.is_root:
            return self.local_root
        parent = item.parent
        base = self.get_local_path(parent) if parent is not None else self.local_root
        return base / item.name

    def read_folder(self, item: Item) -> List[Path]:
        folder = self.get_local_path(item)
        if not folder.is_dir():
            return []
        try:
            return sorted(folder.iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise FileIOError(f"Can't read folder '{folder}': {e}") from e

    def _should_follow(self, target: Path, follow_links: FollowLinkType) -> bool:
        if follow_links == FollowLinkType.ALL:
            return True
        if follow_links == FollowLinkType.NONE:
            return False
        root = self.local_root.resolve()
        return target != root and root not in target.parents

    def get_item(
        self, path: Path, follow_links: FollowLinkType, followed_link_paths: List[str]
    ) -> Item:
        """Build an Item from the local entry at path.

        Followed link targets are recorded in followed_link_paths; a target
        that is reached a second time is stored as a plain link.

        Raises:
            FileIOError: If the entry cannot be read or has an unsupported type
        """
        path = Path(path)
        try:
            st = os.lstat(path)
            if stat.S_ISLNK(st.st_mode):
                target = Path(os.path.realpath(path))
                if target.exists() and self._should_follow(target, follow_links):
                    real = str(target)
                    if real in followed_link_paths:
                        logger.debug(f"link '{path}' already followed, storing as link")
                    else:
                        followed_link_paths.append(real)
                        st = os.stat(path)

            if stat.S_ISLNK(st.st_mode):
                item_type = ItemType.LINK
                filesize = len(os.fsencode(os.readlink(path)))
            elif stat.S_ISDIR(st.st_mode):
                item_type = ItemType.FOLDER
                filesize = None
            elif stat.S_ISREG(st.st_mode):
                item_type = ItemType.FILE
                filesize = st.st_size
            else:
                raise FileIOError(f"Unsupported file type of '{path}'")
        except OSError as e:
            raise FileIOError(f"Can't read '{path}': {e}") from e

        return Item(
            name=path.name,
            type=item_type,
            filesize=filesize,
            creation_time=getattr(st, "st_birthtime", st.st_ctime),
            modify_time=st.st_mtime,
            access_time=st.st_atime,
            permissions=stat.S_IMODE(st.st_mode),
            user=st.st_uid,
            group=st.st_gid,
            local_file=path,
        )

    def get_file_binary(self, item: Item) -> Optional[BinaryIO]:
        if item.is_type(ItemType.FOLDER):
            return None
        path = item.local_file or self.get_local_path(item)
        try:
            if item.is_type(ItemType.LINK):
                return io.BytesIO(os.fsencode(os.readlink(path)))
            return open(path, "rb")
        except OSError as e:
            raise FileIOError(f"Can't read '{path}': {e}") from e

    def prepare_parent(self, handler, item: Item) -> None:
        if item.parent is None:
            return
        folder = self.get_local_path(item.parent)
        try:
            folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileIOError(f"Can't create folder '{folder}': {e}") from e

    def prepare_upload(self, handler, item: Item, existing: ExistingType) -> None:
        target = self.get_local_path(item)
        if existing == ExistingType.STOP and os.path.lexists(target):
            raise ItemExistsError(f"'{target}' already exists")

    @staticmethod
    def _free_name(target: Path) -> Path:
        """Return the first 'name (n).ext' sibling of target that does not exist."""
        stem, suffix = target.stem, target.suffix
        n = 1
        while True:
            candidate = target.with_name(f"{stem} ({n}){suffix}")
            if not os.path.lexists(candidate):
                return candidate
            n += 1

    def _resolve_target(self, item: Item, existing: ExistingType) -> Optional[Path]:
        """Decide where item goes, or None if it should be left alone."""
        target = self.get_local_path(item)
        if not os.path.lexists(target):
            return target

        is_dir = target.is_dir() and not target.is_symlink()
        if item.is_type(ItemType.FOLDER) and is_dir:
            # Folders merge; their children are resolved one by one
            return target

        if existing == ExistingType.STOP:
            raise ItemExistsError(f"'{target}' already exists")
        if existing == ExistingType.SKIP:
            logger.debug(f"skip existing '{target}'")
            return None
        if existing == ExistingType.RENAME:
            renamed = self._free_name(target)
            self._renamed[item] = renamed
            logger.info(f"restore '{item.path}' as '{renamed}'")
            return renamed

        if is_dir:
            raise ItemExistsError(f"'{target}' is a folder and cannot be replaced")
        target.unlink()
        return target

    def upload(
        self, handler, item: Item, existing: ExistingType, permissions: PermissionType
    ) -> None:
        """Write item below the local root from its remote content.

        Raises:
            ItemExistsError: If the target exists and the policy forbids touching it
            FileIOError: If the target cannot be written
        """
        try:
            target = self._resolve_target(item, existing)
            if target is None:
                return

            if item.is_type(ItemType.FOLDER):
                target.mkdir(exist_ok=True)
            elif item.is_type(ItemType.LINK):
                with handler.get_remote_processed_binary(item) as stream:
                    link_target = os.fsdecode(stream.read())
                os.symlink(link_target, target)
            else:
                with handler.get_remote_processed_binary(item) as stream:
                    with open(target, "wb") as f:
                        shutil.copyfileobj(stream.data, f)
        except OSError as e:
            raise FileIOError(f"Can't restore '{item.path}': {e}") from e

        self._apply_attributes(item, target, permissions)

    def _apply_attributes(self, item: Item, target: Path, permissions: PermissionType) -> None:
        is_link = item.is_type(ItemType.LINK)
        if item.modify_time is not None and (not is_link or os.utime in os.supports_follow_symlinks):
            access_time = item.access_time if item.access_time is not None else item.modify_time
            try:
                os.utime(target, (access_time, item.modify_time), follow_symlinks=not is_link)
            except OSError as e:
                logger.warning(f"Can't set times on '{target}': {e}")

        if permissions == PermissionType.IGNORE or is_link:
            return

        try:
            if item.permissions is not None:
                os.chmod(target, item.permissions)
            if hasattr(os, "chown") and item.user is not None and item.group is not None:
                st = os.stat(target)
                if (st.st_uid, st.st_gid) != (item.user, item.group):
                    os.chown(target, item.user, item.group)
        except OSError as e:
            if permissions == PermissionType.SET:
                raise FileIOError(f"Can't set permissions on '{target}': {e}") from e
            logger.warning(f"Can't set permissions on '{target}': {e}")
