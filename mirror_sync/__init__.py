"""One-way mirror engine modules."""

from mirror_sync.config_loader import Config, ConfigError, load_config
from mirror_sync.connectors import LocalConnector, RemoteConnector
from mirror_sync.exceptions import MirrorSyncError
from mirror_sync.handler import Handler
from mirror_sync.local_filesystem import LocalFilesystemConnector
from mirror_sync.logging_setup import get_logger, setup_logging
from mirror_sync.options import SyncType
from mirror_sync.remote_directory import DirectoryRemoteConnector

__all__ = [
    "Config",
    "ConfigError",
    "load_config",
    "setup_logging",
    "get_logger",
    "MirrorSyncError",
    "Handler",
    "SyncType",
    "LocalConnector",
    "RemoteConnector",
    "LocalFilesystemConnector",
    "DirectoryRemoteConnector",
]
