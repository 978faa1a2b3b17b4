"""Backup reconciliation of the local tree against the remote tree."""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from mirror_sync.connectors import LocalConnector, RemoteConnector
from mirror_sync.exceptions import FileIOError, MirrorSyncError
from mirror_sync.guard import ConcurrencyGuard
from mirror_sync.item import Item, ItemType
from mirror_sync.logging_setup import get_logger
from mirror_sync.options import FileErrorType, FollowLinkType
from mirror_sync.pattern_filter import PatternFilter

logger = get_logger()


@dataclass
class SyncStatus:
    """Counters accumulated during one backup pass."""

    create: int = 0
    update: int = 0
    remove: int = 0
    skip: int = 0

    @property
    def total(self) -> int:
        """Local items seen; removals are remote-only and not counted."""
        return self.create + self.update + self.skip

    @property
    def changed(self) -> bool:
        return bool(self.create or self.update or self.remove)


class Reconciler:
    """Walks local folders in lock-step with the remote tree.

    Every local entry is created, updated, replaced or skipped on the
    remote; remote children without a local counterpart are removed.
    Excluded local entries keep their remote state untouched.
    """

    def __init__(
        self,
        handler,
        local: LocalConnector,
        remote: RemoteConnector,
        guard: ConcurrencyGuard,
        pattern_filter: PatternFilter,
        follow_links: FollowLinkType = FollowLinkType.EXTERNAL,
        file_errors: FileErrorType = FileErrorType.MESSAGE,
        dry_run: bool = False,
        followed_link_paths: Optional[List[str]] = None,
    ):
        self.handler = handler
        self.local = local
        self.remote = remote
        self.guard = guard
        self.pattern_filter = pattern_filter
        self.follow_links = follow_links
        self.file_errors = file_errors
        self.dry_run = dry_run
        self.followed_link_paths = followed_link_paths if followed_link_paths is not None else []

    def run(self, root: Item) -> SyncStatus:
        status = SyncStatus()
        self._backup_folder(root, status)
        return status

    def _backup_folder(self, remote_parent: Item, status: SyncStatus) -> None:
        unused = remote_parent.get_children()

        try:
            local_files = self.local.read_folder(remote_parent)
        except FileIOError as e:
            folder = self.local.get_local_path(remote_parent)
            if self.file_errors != FileErrorType.MESSAGE:
                raise MirrorSyncError(f"Skip content of '{folder}'") from e
            # Remote children stay as they are
            logger.error(f"Skip content of '{folder}'. {e}")
            return

        for local_file in local_files:
            file_path = str(Path(local_file).absolute())
            if not self.pattern_filter.accepts(file_path):
                unused.pop(local_file.name, None)
                continue

            backup_path = file_path
            try:
                seen_links = list(self.followed_link_paths)
                local_child = self.local.get_item(
                    local_file, self.follow_links, self.followed_link_paths
                )
                local_child.set_parent(remote_parent)
                backup_path = local_child.path

                remote_child = remote_parent.get_child_by_name(local_child.name)
                if remote_child is None:
                    remote_child = self._create(remote_parent, local_child, status)
                elif remote_child.is_type_changed(local_child):
                    self._remove(remote_parent, remote_child, status)
                    remote_child = self._create(remote_parent, local_child, status)
                elif remote_child.is_metadata_changed(local_child):
                    self._update(remote_child, local_child, status)
                else:
                    status.skip += 1

                self._check_changed_during_update(local_file, local_child, seen_links)

                unused.pop(remote_child.name, None)
            except FileIOError as e:
                status.skip += 1
                if self.file_errors != FileErrorType.MESSAGE:
                    raise MirrorSyncError(f"Skip '{backup_path}'") from e
                logger.error(f"Skip '{backup_path}'. {e}")
                # An unreadable entry must not make its remote copy look remote-only
                unused.pop(local_file.name, None)
            else:
                if remote_child.is_type(ItemType.FOLDER):
                    self._backup_folder(remote_child, status)

        for item in unused.values():
            self._remove(remote_parent, item, status)

    def _create(self, remote_parent: Item, local_child: Item, status: SyncStatus) -> Item:
        logger.debug(f"create {local_child.type_name} '{local_child.path}'")
        if not self.dry_run:
            self.guard.create_lock()
            self.remote.upload(self.handler, local_child)
        remote_parent.add_child(local_child)
        status.create += 1
        return local_child

    def _remove(self, remote_parent: Item, remote_child: Item, status: SyncStatus) -> None:
        logger.debug(f"remove {remote_child.type_name} '{remote_child.path}'")
        if not self.dry_run:
            self.guard.create_lock()
            self.remote.remove(self.handler, remote_child)
        remote_parent.remove_child(remote_child)
        status.remove += 1

    def _update(self, remote_child: Item, local_child: Item, status: SyncStatus) -> None:
        filedata_changed = local_child.is_filedata_changed(remote_child)
        format_changed = remote_child.is_metadata_format_changed()
        remote_child.update(local_child)
        remote_child.mark_metadata_current()

        types = ["data,attributes" if filedata_changed else "attributes"]
        if format_changed:
            types.append("format")
        logger.debug(
            f"update {remote_child.type_name} '{remote_child.path}' [{','.join(types)}]"
        )
        if not self.dry_run:
            self.guard.create_lock()
            self.remote.update(self.handler, remote_child, filedata_changed)
        status.update += 1

    def _check_changed_during_update(
        self, local_file: Path, local_child: Item, seen_links: List[str]
    ) -> None:
        """Warn when the local entry moved on while it was being mirrored."""
        try:
            refreshed = self.local.get_item(local_file, self.follow_links, list(seen_links))
        except FileIOError:
            logger.warning(
                f"{local_child.type_name} '{local_child.path}' was removed during update."
            )
            return
        if refreshed.is_metadata_changed(local_child):
            logger.warning(
                f"{local_child.type_name} '{local_child.path}' was changed during update."
            )
