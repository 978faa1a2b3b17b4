"""Engine facade: init, backup, restore, list and clean over one mirrored tree."""

from pathlib import Path
from typing import BinaryIO, List, Optional, Sequence

from mirror_sync.cache_codec import CacheCodec
from mirror_sync.connectors import LocalConnector, RemoteConnector
from mirror_sync.crypt import Crypt, RemoteStreamData
from mirror_sync.exceptions import MirrorSyncError
from mirror_sync.guard import ConcurrencyGuard, resolve_marker_path
from mirror_sync.item import Item, ItemType
from mirror_sync.logging_setup import get_logger
from mirror_sync.options import (
    ExistingType,
    FileErrorType,
    FollowLinkType,
    PermissionType,
    SyncType,
)
from mirror_sync.pattern_filter import PatternFilter
from mirror_sync.quarantine import Quarantine
from mirror_sync.reconciler import Reconciler, SyncStatus
from mirror_sync.structure_loader import StructureLoader

logger = get_logger()


class Handler:
    """Keeps the remote tree of one mirror and runs operations against it.

    Typical use::

        with Handler("photos", local, remote) as handler:
            handler.init(SyncType.BACKUP, cache, lock, pid)
            handler.backup()

    Leaving the block removes the PID file, also when an operation fails.
    """

    def __init__(
        self,
        name: str,
        local_connection: LocalConnector,
        remote_connection: RemoteConnector,
        crypt: Optional[Crypt] = None,
        existing: ExistingType = ExistingType.RENAME,
        follow_links: FollowLinkType = FollowLinkType.EXTERNAL,
        permissions: PermissionType = PermissionType.SET,
        file_errors: FileErrorType = FileErrorType.MESSAGE,
    ):
        self.name = name
        self.local_connection = local_connection
        self.remote_connection = remote_connection
        self.crypt = crypt
        self.existing = existing
        self.follow_links = follow_links
        self.permissions = permissions
        self.file_errors = file_errors

        self.root = Item.dummy_root()
        self.quarantine = Quarantine()
        self.followed_link_paths: List[str] = []
        self.codec = CacheCodec()

        self.cache_path: Optional[Path] = None
        self.guard: Optional[ConcurrencyGuard] = None

    def __enter__(self) -> "Handler":
        return self

    def __exit__(self, exc_type, exc_value, exc_tb) -> None:
        if self.guard is not None:
            self.guard.__exit__(exc_type, exc_value, exc_tb)

    def close(self) -> None:
        """Remove the PID file created by init."""
        if self.guard is not None:
            self.guard.close()

    def get_root_item(self) -> Item:
        return self.root

    def init(
        self,
        sync_type: SyncType,
        cache_file: str,
        lock_file: str,
        pid_file: str,
        nocache: bool = False,
        forcestart: bool = False,
    ) -> None:
        """Claim the markers and load the remote structure.

        Raises:
            FatalSetupError: If another instance holds the PID file or a
                marker cannot be written
            CacheCorruptError: If the cache file cannot be parsed
        """
        self.cache_path = resolve_marker_path(cache_file, self.name)
        self.guard = ConcurrencyGuard(
            resolve_marker_path(lock_file, self.name),
            resolve_marker_path(pid_file, self.name),
        )

        if sync_type.check_pid:
            self.guard.acquire_pid(forcestart)

        if self.guard.stale_lock_found():
            nocache = True

        loader = StructureLoader(self, self.remote_connection, self.quarantine, self.codec)
        if not nocache and self.cache_path.exists():
            loader.load_from_cache(self.root, self.cache_path)
        else:
            self.guard.create_lock()
            loader.load_from_remote(self.root)

        self.release_lock()

    def release_lock(self) -> None:
        """Flush the tree to the cache and drop the lock file.

        Nothing happens while the lock is not held or while quarantined
        items are outstanding; the lock then stays and forces a remote
        reload on the next start.
        """
        if self.guard is None or not self.guard.is_locked or not self.quarantine.is_empty():
            return

        if self.root.has_children():
            logger.info("write structure to cache file")
            self.codec.write(self.root, self.cache_path)
        elif self.cache_path.exists():
            try:
                self.cache_path.unlink()
            except OSError as e:
                raise MirrorSyncError(f"Can't remove stale cache file '{self.cache_path}'") from e

        self.guard.release_lock()

    def _filter(self, includes, excludes) -> PatternFilter:
        return PatternFilter(includes, excludes)

    def _check_ready(self) -> None:
        if self.guard is None:
            raise MirrorSyncError("Handler.init() must be called before running an operation")
        self.quarantine.check()

    def list(
        self,
        includes: Optional[Sequence[str]] = None,
        excludes: Optional[Sequence[str]] = None,
    ) -> List[str]:
        """Log and return the tree paths whose local location passes the filter."""
        self._check_ready()

        pattern_filter = self._filter(includes, excludes)
        paths: List[str] = []
        self._list(self.root, pattern_filter, paths)
        return paths

    def _list(self, item: Item, pattern_filter: PatternFilter, paths: List[str]) -> None:
        for child in item.get_children().values():
            local_path = str(self.local_connection.get_local_path(child))
            if not pattern_filter.accepts(local_path):
                continue

            logger.info(child.path)
            paths.append(child.path)

            if child.is_type(ItemType.FOLDER):
                self._list(child, pattern_filter, paths)

    def restore(
        self,
        dry_run: bool = False,
        includes: Optional[Sequence[str]] = None,
        excludes: Optional[Sequence[str]] = None,
    ) -> int:
        """Write the remote tree into local storage.

        Returns:
            Number of items restored (or that would be, in a dry run)
        """
        self._check_ready()

        return self._restore(self.root, dry_run, self._filter(includes, excludes))

    def _restore(self, item: Item, dry_run: bool, pattern_filter: PatternFilter) -> int:
        count = 0
        for child in item.get_children().values():
            local_path = str(self.local_connection.get_local_path(child))

            if pattern_filter.accepts(local_path):
                self.local_connection.prepare_upload(self, child, self.existing)
                logger.debug(f"restore {child.type_name} '{child.path}'")
                if not dry_run:
                    self.local_connection.prepare_parent(self, child)
                    self.local_connection.upload(self, child, self.existing, self.permissions)
                count += 1

            if child.is_type(ItemType.FOLDER):
                count += self._restore(child, dry_run, pattern_filter)
        return count

    def backup(
        self,
        dry_run: bool = False,
        includes: Optional[Sequence[str]] = None,
        excludes: Optional[Sequence[str]] = None,
    ) -> SyncStatus:
        """Mirror the local tree onto the remote.

        Raises:
            QuarantineBlockingError: If duplicates or invalids await cleaning
            MirrorSyncError: If a local item fails under the exception policy
        """
        self._check_ready()

        reconciler = Reconciler(
            self,
            self.local_connection,
            self.remote_connection,
            self.guard,
            self._filter(includes, excludes),
            follow_links=self.follow_links,
            file_errors=self.file_errors,
            dry_run=dry_run,
            followed_link_paths=self.followed_link_paths,
        )
        status = reconciler.run(self.root)

        if self.guard.is_locked:
            self.remote_connection.clean_history(self)

        self.release_lock()

        logger.info(f"total items: {status.total}")
        logger.info(f"created items: {status.create}")
        logger.info(f"updated items: {status.update}")
        logger.info(f"removed items: {status.remove}")
        logger.info(f"skipped items: {status.skip}")
        return status

    def clean(self) -> int:
        """Recover duplicates and invalids locally, then delete them remotely.

        Returns:
            Number of items cleaned
        """
        cleaned = self.quarantine.clean(
            self, self.local_connection, self.remote_connection, self.permissions
        )
        if cleaned:
            logger.info(f"cleaned {cleaned} item{'' if cleaned == 1 else 's'}")
        self.release_lock()
        return cleaned

    def get_local_processed_binary(self, item: Item) -> Optional[BinaryIO]:
        data = self.local_connection.get_file_binary(item)
        if data is not None and self.crypt is not None:
            data = self.crypt.encrypt_binary(item.name, data, item)
        return data

    def get_local_processed_metadata(self, item: Item) -> str:
        metadata = item.get_metadata()
        return self.crypt.encrypt_text(metadata) if self.crypt is not None else metadata

    def get_local_processed_title(self, item: Item) -> str:
        return self.crypt.encrypt_text(item.name) if self.crypt is not None else item.name

    def init_remote_item(
        self,
        remote_identifier: str,
        is_folder: bool,
        title: str,
        metadata: Optional[str],
        remote_filesize: Optional[int],
        remote_creation_time: Optional[float],
    ) -> Item:
        return Item.from_metadata(
            remote_identifier, is_folder, title, metadata, remote_filesize, remote_creation_time
        )

    def get_remote_processed_binary(self, item: Item) -> RemoteStreamData:
        """Open the remote content of item, decrypted when a crypt is configured.

        The raw remote stream is closed before a decryption error propagates.
        """
        stream = self.remote_connection.get(self, item)

        if self.crypt is None:
            return RemoteStreamData(None, stream)

        try:
            return RemoteStreamData(stream, self.crypt.decrypt_binary(stream))
        except Exception:
            if stream is not None:
                stream.close()
            raise

    def get_processed_text(self, text: str) -> str:
        return self.crypt.decrypt_text(text) if self.crypt is not None else text
