"""Tests for the local filesystem connector."""

import io
import os
import stat

import pytest

from mirror_sync.crypt import RemoteStreamData
from mirror_sync.exceptions import FileIOError, ItemExistsError
from mirror_sync.item import Item, ItemType
from mirror_sync.local_filesystem import LocalFilesystemConnector
from mirror_sync.options import ExistingType, FollowLinkType, PermissionType


class StubHandler:
    """Serves fixed remote content to LocalFilesystemConnector.upload."""

    def __init__(self, content=b""):
        self.content = content

    def get_remote_processed_binary(self, item):
        return RemoteStreamData(None, io.BytesIO(self.content))


def _remote_file(root, name, **kwargs):
    item = Item(name=name, type=kwargs.pop("type", ItemType.FILE), **kwargs)
    root.add_child(item)
    return item


class TestReading:
    """Backup side tests."""

    def test_file_item(self, temp_dirs):
        """Test the metadata of a regular file."""
        local, _ = temp_dirs
        (local / "a.txt").write_text("hello")
        os.utime(local / "a.txt", (1000.0, 2000.0))

        item = LocalFilesystemConnector(local).get_item(local / "a.txt", FollowLinkType.NONE, [])

        assert item.type == ItemType.FILE
        assert item.filesize == 5
        assert item.modify_time == 2000.0
        assert item.access_time == 1000.0
        assert item.permissions == stat.S_IMODE(os.stat(local / "a.txt").st_mode)
        assert item.local_file == local / "a.txt"

    def test_folder_item(self, temp_dirs):
        """Test that a directory is a folder without size."""
        local, _ = temp_dirs
        (local / "d").mkdir()

        item = LocalFilesystemConnector(local).get_item(local / "d", FollowLinkType.NONE, [])

        assert item.type == ItemType.FOLDER
        assert item.filesize is None

    def test_link_not_followed(self, temp_dirs):
        """Test that a link is stored as link with its target as content."""
        local, _ = temp_dirs
        (local / "target.txt").write_text("x")
        os.symlink("target.txt", local / "ln")
        connector = LocalFilesystemConnector(local)

        item = connector.get_item(local / "ln", FollowLinkType.NONE, [])

        assert item.type == ItemType.LINK
        assert item.filesize == len(b"target.txt")
        assert connector.get_file_binary(item).read() == b"target.txt"

    def test_external_link_followed(self, temp_dirs):
        """Test that external policy follows links that leave the root."""
        local, remote = temp_dirs
        (remote / "outside").mkdir()
        os.symlink(remote / "outside", local / "out")
        (local / "inner").mkdir()
        os.symlink(local / "inner", local / "in")
        connector = LocalFilesystemConnector(local)
        followed = []

        out_item = connector.get_item(local / "out", FollowLinkType.EXTERNAL, followed)
        in_item = connector.get_item(local / "in", FollowLinkType.EXTERNAL, followed)

        assert out_item.type == ItemType.FOLDER
        assert in_item.type == ItemType.LINK
        assert followed == [os.path.realpath(remote / "outside")]

    def test_link_followed_once(self, temp_dirs):
        """Test that a second link to the same target is kept as link."""
        local, remote = temp_dirs
        (remote / "outside").mkdir()
        os.symlink(remote / "outside", local / "one")
        os.symlink(remote / "outside", local / "two")
        connector = LocalFilesystemConnector(local)
        followed = []

        first = connector.get_item(local / "one", FollowLinkType.ALL, followed)
        second = connector.get_item(local / "two", FollowLinkType.ALL, followed)

        assert first.type == ItemType.FOLDER
        assert second.type == ItemType.LINK

    def test_dangling_link(self, temp_dirs):
        """Test that a dangling link is stored as link."""
        local, _ = temp_dirs
        os.symlink(local / "missing", local / "ln")

        item = LocalFilesystemConnector(local).get_item(local / "ln", FollowLinkType.ALL, [])

        assert item.type == ItemType.LINK

    def test_missing_entry(self, temp_dirs):
        """Test that a vanished entry is a per-item error."""
        local, _ = temp_dirs

        with pytest.raises(FileIOError):
            LocalFilesystemConnector(local).get_item(local / "gone", FollowLinkType.NONE, [])

    def test_read_folder_sorted(self, temp_dirs):
        """Test that folder entries are listed by name."""
        local, _ = temp_dirs
        for name in ("b", "c", "a"):
            (local / name).write_text(name)

        entries = LocalFilesystemConnector(local).read_folder(Item.dummy_root())

        assert [p.name for p in entries] == ["a", "b", "c"]


class TestRestoring:
    """Restore side tests."""

    def test_upload_file_with_attributes(self, temp_dirs):
        """Test that content, times and permissions are applied."""
        local, _ = temp_dirs
        root = Item.dummy_root()
        docs = _remote_file(root, "docs", type=ItemType.FOLDER)
        item = _remote_file(docs, "a.txt", modify_time=2000.0, access_time=1000.0, permissions=0o600)
        connector = LocalFilesystemConnector(local)

        connector.prepare_parent(None, item)
        connector.upload(StubHandler(b"content"), item, ExistingType.STOP, PermissionType.SET)

        target = local / "docs" / "a.txt"
        assert target.read_bytes() == b"content"
        assert os.stat(target).st_mtime == 2000.0
        assert stat.S_IMODE(os.stat(target).st_mode) == 0o600

    def test_upload_link(self, temp_dirs):
        """Test that a link is recreated from its stored target."""
        local, _ = temp_dirs
        item = _remote_file(Item.dummy_root(), "ln", type=ItemType.LINK)

        LocalFilesystemConnector(local).upload(
            StubHandler(b"target.txt"), item, ExistingType.STOP, PermissionType.SET
        )

        assert os.readlink(local / "ln") == "target.txt"

    def test_stop_policy(self, temp_dirs):
        """Test that stop refuses to touch an existing target."""
        local, _ = temp_dirs
        (local / "a.txt").write_text("mine")
        item = _remote_file(Item.dummy_root(), "a.txt")

        with pytest.raises(ItemExistsError):
            LocalFilesystemConnector(local).prepare_upload(None, item, ExistingType.STOP)

    def test_update_policy_overwrites(self, temp_dirs):
        """Test that update replaces an existing file."""
        local, _ = temp_dirs
        (local / "a.txt").write_text("mine")
        item = _remote_file(Item.dummy_root(), "a.txt")

        LocalFilesystemConnector(local).upload(
            StubHandler(b"theirs"), item, ExistingType.UPDATE, PermissionType.IGNORE
        )

        assert (local / "a.txt").read_bytes() == b"theirs"

    def test_rename_policy_moves_subtree(self, temp_dirs):
        """Test that children of a renamed item follow it."""
        local, _ = temp_dirs
        (local / "docs").write_text("a file named like the folder")
        root = Item.dummy_root()
        docs = _remote_file(root, "docs", type=ItemType.FOLDER)
        child = _remote_file(docs, "a.txt")
        connector = LocalFilesystemConnector(local)

        connector.upload(StubHandler(), docs, ExistingType.RENAME, PermissionType.IGNORE)
        connector.upload(StubHandler(b"x"), child, ExistingType.RENAME, PermissionType.IGNORE)

        assert (local / "docs (1)" / "a.txt").read_bytes() == b"x"
        assert connector.get_local_path(child) == local / "docs (1)" / "a.txt"

    def test_folder_merges_into_existing(self, temp_dirs):
        """Test that an existing directory is reused for a folder."""
        local, _ = temp_dirs
        (local / "docs").mkdir()
        docs = _remote_file(Item.dummy_root(), "docs", type=ItemType.FOLDER)

        LocalFilesystemConnector(local).upload(
            StubHandler(), docs, ExistingType.RENAME, PermissionType.IGNORE
        )

        assert sorted(p.name for p in local.iterdir()) == ["docs"]

    def test_try_permissions_warns(self, temp_dirs, caplog, monkeypatch):
        """Test that the try policy logs instead of failing."""
        local, _ = temp_dirs
        item = _remote_file(Item.dummy_root(), "a.txt", permissions=0o600)

        def refuse(*args, **kwargs):
            raise PermissionError("not allowed")

        monkeypatch.setattr(os, "chmod", refuse)
        LocalFilesystemConnector(local).upload(
            StubHandler(b"x"), item, ExistingType.STOP, PermissionType.TRY
        )

        assert "Can't set permissions" in caplog.text

    def test_set_permissions_fails(self, temp_dirs, monkeypatch):
        """Test that the set policy turns a chmod failure into an error."""
        local, _ = temp_dirs
        item = _remote_file(Item.dummy_root(), "a.txt", permissions=0o600)

        def refuse(*args, **kwargs):
            raise PermissionError("not allowed")

        monkeypatch.setattr(os, "chmod", refuse)
        with pytest.raises(FileIOError):
            LocalFilesystemConnector(local).upload(
                StubHandler(b"x"), item, ExistingType.STOP, PermissionType.SET
            )
