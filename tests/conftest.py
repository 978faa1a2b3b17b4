"""Pytest configuration and fixtures."""

import hashlib
import io
import shutil
import tempfile
from pathlib import Path

import pytest

from mirror_sync.connectors import RemoteConnector
from mirror_sync.handler import Handler
from mirror_sync.local_filesystem import LocalFilesystemConnector
from mirror_sync.options import FollowLinkType

ROOT = "root"


class MemoryRemote(RemoteConnector):
    """Scripted in-memory remote.

    Entries are listed in the order they were added, which lets tests
    control the order in which duplicates are discovered.
    """

    def __init__(self):
        self.listing = {}
        self.data = {}
        self.read_calls = []
        self.uploaded = []
        self.updated = []
        self.removed = []
        self.history_cleaned = 0
        self._next_id = 0

    def _new_id(self) -> str:
        self._next_id += 1
        return f"id{self._next_id}"

    def add(
        self,
        name,
        parent=ROOT,
        folder=False,
        created=0.0,
        checksum="sum",
        data=b"",
        metadata=None,
        size=None,
    ) -> str:
        """Script a remote entry and return its identifier."""
        identifier = self._new_id()
        self.listing.setdefault(parent, []).append(
            {
                "id": identifier,
                "title": name,
                "folder": folder,
                "metadata": metadata,
                "size": size if size is not None else len(data),
                "created": created,
                "checksum": checksum,
            }
        )
        self.data[identifier] = data
        return identifier

    def read_folder(self, handler, item):
        key = ROOT if item.is_root else item.remote_identifier
        self.read_calls.append(key)
        children = []
        for entry in self.listing.get(key, []):
            child = handler.init_remote_item(
                entry["id"],
                entry["folder"],
                entry["title"],
                entry["metadata"],
                entry["size"],
                entry["created"],
            )
            child.checksum = entry["checksum"]
            children.append(child)
        return children

    def _store(self, handler, item, identifier):
        stream = handler.get_local_processed_binary(item)
        content = b""
        if stream is not None:
            with stream:
                content = stream.read()
        self.data[identifier] = content
        item.checksum = hashlib.md5(content).hexdigest()
        item.remote_filesize = len(content)

    def upload(self, handler, item):
        identifier = self._new_id()
        self._store(handler, item, identifier)
        item.remote_identifier = identifier
        item.remote_creation_time = float(self._next_id)
        self.uploaded.append(item.path)

    def update(self, handler, item, with_filedata):
        if with_filedata:
            self._store(handler, item, item.remote_identifier)
        self.updated.append((item.path, with_filedata))

    def remove(self, handler, item):
        self.removed.append(item.remote_identifier)

    def get(self, handler, item):
        return io.BytesIO(self.data.get(item.remote_identifier, b""))

    def clean_history(self, handler):
        self.history_cleaned += 1


@pytest.fixture
def temp_dirs():
    """Create temporary local and remote directories for testing."""
    temp_root = Path(tempfile.mkdtemp())
    local = temp_root / "local"
    remote = temp_root / "remote"
    local.mkdir()
    remote.mkdir()

    yield local, remote

    # Cleanup
    shutil.rmtree(temp_root, ignore_errors=True)


@pytest.fixture
def markers(tmp_path):
    """Cache, lock and PID path templates inside tmp_path."""
    state = tmp_path / "state"
    return {
        "cache_file": str(state / "{name}.cache"),
        "lock_file": str(state / "{name}.lock"),
        "pid_file": str(state / "{name}.pid"),
    }


@pytest.fixture
def memory_remote():
    return MemoryRemote()


@pytest.fixture
def make_handler(temp_dirs, memory_remote):
    """Factory for handlers on the temporary local root and the memory remote."""
    local, _ = temp_dirs

    def _make(**kwargs):
        kwargs.setdefault("follow_links", FollowLinkType.NONE)
        return Handler("test", LocalFilesystemConnector(local), memory_remote, **kwargs)

    return _make


@pytest.fixture
def sample_config(tmp_path, temp_dirs):
    """Create a sample config file for testing."""
    _, remote = temp_dirs
    state = tmp_path / "state"
    config_path = tmp_path / "config.yaml"
    config_content = f"""
name: photos
remote_root: "{remote}"

cache_file: "{state}/{{name}}.cache"
lock_file: "{state}/{{name}}.lock"
pid_file: "{state}/{{name}}.pid"

follow_links: none
permissions: try
existing: rename
file_errors: message

exclude:
  - ".*/cache/.*"

logging:
  level: DEBUG
  file_path: "{tmp_path}/logs/mirror_sync.log"
"""
    config_path.write_text(config_content)
    return config_path
