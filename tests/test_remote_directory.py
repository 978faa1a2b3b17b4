"""Tests for the directory-backed remote connector."""

import json

import pytest

from mirror_sync.exceptions import FileIOError
from mirror_sync.handler import Handler
from mirror_sync.item import Item, ItemType
from mirror_sync.local_filesystem import LocalFilesystemConnector
from mirror_sync.options import FollowLinkType, SyncType
from mirror_sync.remote_directory import DirectoryRemoteConnector


@pytest.fixture
def setup(temp_dirs):
    local, remote_root = temp_dirs
    remote = DirectoryRemoteConnector(remote_root)
    handler = Handler("test", LocalFilesystemConnector(local), remote)
    return local, remote, handler


def _local_item(handler, local, name, parent):
    item = handler.local_connection.get_item(local / name, FollowLinkType.NONE, [])
    item.set_parent(parent)
    return item


class TestDirectoryRemote:
    """DirectoryRemoteConnector tests."""

    def test_upload_and_read_back(self, setup):
        """Test that an uploaded file lists with checksum and metadata."""
        local, remote, handler = setup
        (local / "a.txt").write_bytes(b"hello")
        root = Item.dummy_root()
        item = _local_item(handler, local, "a.txt", root)

        remote.upload(handler, item)
        listed = remote.read_folder(handler, root)

        assert len(listed) == 1
        assert listed[0].name == "a.txt"
        assert listed[0].remote_identifier == item.remote_identifier
        assert listed[0].checksum == "5d41402abc4b2a76b9719d911017c592"
        assert listed[0].remote_filesize == 5
        assert not listed[0].is_metadata_changed(item)

    def test_nested_upload(self, setup):
        """Test that children are listed below their folder only."""
        local, remote, handler = setup
        (local / "docs").mkdir()
        (local / "docs" / "b.txt").write_bytes(b"b")
        root = Item.dummy_root()
        docs = _local_item(handler, local, "docs", root)
        remote.upload(handler, docs)
        root.add_child(docs)
        child = _local_item(handler, local / "docs", "b.txt", docs)
        remote.upload(handler, child)

        assert [i.name for i in remote.read_folder(handler, root)] == ["docs"]
        listed_docs = remote.read_folder(handler, root)[0]
        assert listed_docs.type == ItemType.FOLDER
        assert [i.name for i in remote.read_folder(handler, listed_docs)] == ["b.txt"]

    def test_update_keeps_revision_until_cleaned(self, setup):
        """Test that replaced content is kept as revision until history is cleaned."""
        local, remote, handler = setup
        (local / "a.txt").write_bytes(b"one")
        root = Item.dummy_root()
        item = _local_item(handler, local, "a.txt", root)
        remote.upload(handler, item)

        (local / "a.txt").write_bytes(b"two!")
        remote.update(handler, item, with_filedata=True)

        assert len(list(remote.objects_dir.glob("*.rev"))) == 1
        with remote.get(handler, item) as stream:
            assert stream.read() == b"two!"
        assert item.remote_filesize == 4

        remote.clean_history(handler)
        assert list(remote.objects_dir.glob("*.rev")) == []

    def test_remove_folder_removes_descendants(self, setup):
        """Test that removing a folder removes everything below it."""
        local, remote, handler = setup
        (local / "docs").mkdir()
        (local / "docs" / "b.txt").write_bytes(b"b")
        root = Item.dummy_root()
        docs = _local_item(handler, local, "docs", root)
        remote.upload(handler, docs)
        root.add_child(docs)
        remote.upload(handler, _local_item(handler, local / "docs", "b.txt", docs))

        remote.remove(handler, docs)

        assert list(remote.objects_dir.iterdir()) == []

    def test_interrupted_upload_is_invalid(self, setup):
        """Test that a record without checksum lists as invalid and reads empty."""
        _, remote, handler = setup
        remote.objects_dir.mkdir(parents=True)
        record = {
            "parent": "root",
            "title": "half.bin",
            "metadata": None,
            "folder": False,
            "created": 1.0,
            "size": None,
            "checksum": None,
        }
        (remote.objects_dir / "abc.json").write_text(json.dumps(record))

        listed = remote.read_folder(handler, Item.dummy_root())

        assert listed[0].checksum is None
        assert remote.get(handler, listed[0]).read() == b""

    def test_failed_upload_leaves_nothing(self, setup):
        """Test that an unreadable local file leaves no half written object."""
        local, remote, handler = setup
        (local / "a.txt").write_bytes(b"x")
        item = _local_item(handler, local, "a.txt", Item.dummy_root())
        (local / "a.txt").unlink()

        with pytest.raises(FileIOError):
            remote.upload(handler, item)

        assert list(remote.objects_dir.iterdir()) == []

    def test_listing_sorted_by_creation(self, setup):
        """Test that older entries are listed first."""
        _, remote, handler = setup
        remote.objects_dir.mkdir(parents=True)
        for identifier, created in (("a", 3.0), ("b", 1.0), ("c", 2.0)):
            record = {
                "parent": "root",
                "title": "same",
                "metadata": None,
                "folder": False,
                "created": created,
                "size": 0,
                "checksum": "x",
            }
            (remote.objects_dir / f"{identifier}.json").write_text(json.dumps(record))

        listed = remote.read_folder(handler, Item.dummy_root())

        assert [i.remote_identifier for i in listed] == ["b", "c", "a"]


def test_end_to_end_backup_and_restore(temp_dirs, tmp_path, markers):
    """Test a full backup into the directory remote and a restore elsewhere."""
    local, remote_root = temp_dirs
    (local / "docs").mkdir()
    (local / "docs" / "a.txt").write_bytes(b"alpha")
    (local / "top.txt").write_bytes(b"top")

    with Handler(
        "e2e", LocalFilesystemConnector(local), DirectoryRemoteConnector(remote_root)
    ) as handler:
        handler.init(SyncType.BACKUP, **markers)
        status = handler.backup()
    assert status.create == 3

    target = tmp_path / "restored"
    target.mkdir()
    with Handler(
        "e2e", LocalFilesystemConnector(target), DirectoryRemoteConnector(remote_root)
    ) as handler:
        handler.init(SyncType.RESTORE, nocache=True, **markers)
        assert handler.restore() == 3

    assert (target / "docs" / "a.txt").read_bytes() == b"alpha"
    assert (target / "top.txt").read_bytes() == b"top"
    restored_mtime = (target / "top.txt").stat().st_mtime
    assert abs(restored_mtime - (local / "top.txt").stat().st_mtime) < 0.001
