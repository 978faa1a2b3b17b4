"""Main entry point for the mirror engine."""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from mirror_sync.config_loader import Config, ConfigError, load_config, load_config_from_env
from mirror_sync.exceptions import MirrorSyncError
from mirror_sync.handler import Handler
from mirror_sync.local_filesystem import LocalFilesystemConnector
from mirror_sync.logging_setup import get_logger, setup_logging
from mirror_sync.options import SyncType
from mirror_sync.remote_directory import DirectoryRemoteConnector

logger = get_logger()


class SyncRunner:
    """Runs one operation of a configured mirror."""

    def __init__(
        self,
        config: Config,
        nocache: bool = False,
        forcestart: bool = False,
        dry_run: bool = False,
        includes: Optional[List[str]] = None,
        excludes: Optional[List[str]] = None,
    ):
        """Initialize sync runner.

        Command line values are merged over the configured ones.

        Args:
            config: Loaded configuration
            nocache: Ignore the cache file
            forcestart: Start even if a PID file exists
            dry_run: Report changes without writing
            includes: Additional include patterns
            excludes: Additional exclude patterns
        """
        self.config = config
        setup_logging(
            config.log_file_path,
            config.log_level,
            max_bytes=config.log_max_size_mb * 1024 * 1024,
            backup_count=config.log_backup_count,
            rotation_enabled=config.log_rotation_enabled,
            mirror_name=config.name,
        )

        self.nocache = nocache or config.nocache
        self.forcestart = forcestart or config.forcestart
        self.dry_run = dry_run or config.dry_run
        self.includes = self._merge(config.include, includes)
        self.excludes = self._merge(config.exclude, excludes)

    @staticmethod
    def _merge(configured: Optional[List[str]], extra: Optional[List[str]]) -> Optional[List[str]]:
        patterns = list(configured or []) + list(extra or [])
        return patterns or None

    def _handler(self, local_root: str) -> Handler:
        return Handler(
            self.config.name,
            LocalFilesystemConnector(local_root),
            DirectoryRemoteConnector(self.config.remote_root),
            existing=self.config.existing,
            follow_links=self.config.follow_links,
            permissions=self.config.permissions,
            file_errors=self.config.file_errors,
        )

    def run(self, sync_type: SyncType, local_root: str) -> bool:
        """Execute one operation against local_root.

        Returns:
            True if the operation completed successfully
        """
        if sync_type in (SyncType.BACKUP, SyncType.RESTORE) and not Path(local_root).is_dir():
            logger.error(f"Local path '{local_root}' is not a directory")
            return False

        logger.info(f"Starting {sync_type.value} of '{self.config.name}'")
        if self.dry_run:
            logger.info("DRY RUN MODE: no changes are written")

        try:
            with self._handler(local_root) as handler:
                handler.init(
                    sync_type,
                    self.config.cache_file,
                    self.config.lock_file,
                    self.config.pid_file,
                    nocache=self.nocache,
                    forcestart=self.forcestart,
                )

                if sync_type == SyncType.BACKUP:
                    handler.backup(self.dry_run, self.includes, self.excludes)
                elif sync_type == SyncType.RESTORE:
                    count = handler.restore(self.dry_run, self.includes, self.excludes)
                    logger.info(f"restored items: {count}")
                elif sync_type == SyncType.LIST:
                    handler.list(self.includes, self.excludes)
                else:
                    handler.clean()
        except MirrorSyncError as e:
            logger.error(str(e))
            return False

        logger.info(f"Finished {sync_type.value} of '{self.config.name}'")
        return True


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 for success, 1 for failure, 130 when interrupted)
    """
    parser = argparse.ArgumentParser(
        description="Mirror Sync - one-way mirror of a local tree onto remote storage"
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to config.yaml file",
    )
    parser.add_argument(
        "--use-env",
        action="store_true",
        help="Load config from MIRROR_SYNC_CONFIG environment variable",
    )

    operation = parser.add_mutually_exclusive_group(required=True)
    operation.add_argument("--backup", metavar="PATH", help="Mirror PATH onto the remote")
    operation.add_argument("--restore", metavar="PATH", help="Restore the remote tree into PATH")
    operation.add_argument(
        "--list",
        metavar="PATH",
        nargs="?",
        const=".",
        help="List the remote tree as it would be restored into PATH (default: .)",
    )
    operation.add_argument(
        "--clean", metavar="PATH", help="Recover duplicate and invalid items into PATH"
    )

    parser.add_argument("--dry-run", action="store_true", help="Report changes without writing")
    parser.add_argument("--nocache", action="store_true", help="Ignore the cache file")
    parser.add_argument(
        "--forcestart", action="store_true", help="Start even if a PID file exists"
    )
    parser.add_argument(
        "--include", action="append", metavar="RE", help="Only handle paths matching RE"
    )
    parser.add_argument(
        "--exclude", action="append", metavar="RE", help="Skip paths matching RE"
    )

    args = parser.parse_args(argv)

    if args.backup is not None:
        sync_type, local_root = SyncType.BACKUP, args.backup
    elif args.restore is not None:
        sync_type, local_root = SyncType.RESTORE, args.restore
    elif args.list is not None:
        sync_type, local_root = SyncType.LIST, args.list
    else:
        sync_type, local_root = SyncType.CLEAN, args.clean

    try:
        if args.use_env:
            logger.info("Loading config from environment variable")
            config = load_config_from_env()
        elif args.config:
            config = load_config(args.config)
        else:
            # Try default config path
            default_config = "config.yaml"
            if not Path(default_config).exists():
                parser.print_help()
                logger.error(
                    "No config file specified. Use --config or --use-env, "
                    "or place config.yaml in current directory"
                )
                return 1
            config = load_config(default_config)

        runner = SyncRunner(
            config,
            nocache=args.nocache,
            forcestart=args.forcestart,
            dry_run=args.dry_run,
            includes=args.include,
            excludes=args.exclude,
        )
        success = runner.run(sync_type, local_root)
        return 0 if success else 1
    except ConfigError as e:
        logger.error(f"Config error: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Mirror interrupted by user")
        return 130
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
