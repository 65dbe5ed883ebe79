"""
Command-line interface for pxdesk configuration backups.

Notes
-----
The CLI is intentionally thin. It parses arguments, resolves the store and the
data directory, and delegates to engine modules.

Exit codes
----------
- 0: success
- 2: domain error (invalid input, bad archive, store failure, busy, or a
  restore that was rolled back)
- 1: rollback failure; manual recovery from the printed snapshot path is needed
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from backup_core.app_config import (
    DataDirectoryLayout,
    default_work_root,
    get_logs_dir,
    load_backup_settings,
    save_backup_settings,
)
from backup_core.backup.service import run_backup
from backup_core.catalog import list_available, remove
from backup_core.clock import SystemClock
from backup_core.errors import BackupCoreError, FailureKind, TransportError
from backup_core.logging_setup import redact, setup_logging
from backup_core.paths_and_safety import validate_remote_directory, validate_remote_url
from backup_core.restore.data_models import TransactionState
from backup_core.restore.journal import RestoreExecutionJournal
from backup_core.restore.service import restore_backup, restore_from_file
from backup_core.transport.base import BackupTransport
from backup_core.transport.factory import (
    LocalTransportConfig,
    TransportFactory,
    webdav_config_from_settings,
)

logger = logging.getLogger(__name__)

JOURNAL_FILE_NAME = "restore_journal.jsonl"


class StderrNotifier:
    """Escalate rollback failures to the terminal."""

    def notify_fatal(self, message: str, recovery_path: Path) -> None:
        print(f"FATAL: {message}", file=sys.stderr)
        print(f"Recovery folder: {recovery_path}", file=sys.stderr)


def _add_store_args(p: argparse.ArgumentParser) -> None:
    store = p.add_mutually_exclusive_group(required=True)
    store.add_argument("--local-dir", type=Path, default=None, help="Local backup directory")
    store.add_argument(
        "--webdav",
        action="store_true",
        help="Use the WebDAV store from the saved backup settings",
    )


def _add_data_root_arg(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--data-root",
        type=Path,
        default=None,
        help="Override the application data directory. If omitted, defaults are used.",
    )


def _add_work_root_arg(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--work-root",
        type=Path,
        default=None,
        help="Directory for restore staging and snapshot folders.",
    )


def build_parser() -> argparse.ArgumentParser:
    """
    Build and return the top-level argument parser.

    Returns
    -------
    argparse.ArgumentParser
        Configured parser.
    """
    parser = argparse.ArgumentParser(
        prog="pxdesk",
        description="Back up and restore pxdesk configuration",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    backup_p = sub.add_parser("backup", help="Create a backup archive and upload it")
    _add_store_args(backup_p)
    _add_data_root_arg(backup_p)

    list_p = sub.add_parser("list", help="List stored backups, newest first")
    _add_store_args(list_p)
    list_p.add_argument("--limit", type=int, default=None, help="Maximum number of backups to show")

    restore_p = sub.add_parser("restore", help="Restore a stored backup by name")
    _add_store_args(restore_p)
    restore_p.add_argument("name", help="Backup file name, e.g. linux_2024-01-01_12-00-00.zip")
    _add_data_root_arg(restore_p)
    _add_work_root_arg(restore_p)

    restore_file_p = sub.add_parser("restore-file", help="Restore a backup zip from any local path")
    restore_file_p.add_argument("path", type=Path, help="Path to a .zip backup file")
    _add_data_root_arg(restore_file_p)
    _add_work_root_arg(restore_file_p)

    delete_p = sub.add_parser("delete", help="Delete a stored backup by name")
    _add_store_args(delete_p)
    delete_p.add_argument("name", help="Backup file name")

    config_p = sub.add_parser("config", help="Show or change backup settings")
    config_sub = config_p.add_subparsers(dest="config_command", required=True)
    config_sub.add_parser("show", help="Print the saved backup settings (password hidden)")

    webdav_p = config_sub.add_parser("set-webdav", help="Save WebDAV connection settings")
    webdav_p.add_argument("--url", required=True, help="WebDAV base URL (http or https)")
    webdav_p.add_argument("--username", default="", help="WebDAV user name")
    webdav_p.add_argument("--password", default="", help="WebDAV password")
    webdav_p.add_argument("--dir", dest="remote_dir", default=None, help="Remote directory name")

    local_p = config_sub.add_parser("set-local-dir", help="Save the default local backup directory")
    local_p.add_argument("path", type=Path, help="Local backup directory")

    return parser


def _resolve_transport(args: argparse.Namespace, factory: TransportFactory) -> BackupTransport:
    if args.webdav:
        settings = load_backup_settings()
        if not settings.webdav_url:
            raise TransportError("WebDAV is not configured. Run 'pxdesk config set-webdav' first.")
        return factory.get(webdav_config_from_settings(settings))
    return factory.get(LocalTransportConfig(directory=args.local_dir))


def _layout(args: argparse.Namespace) -> DataDirectoryLayout:
    if args.data_root is not None:
        return DataDirectoryLayout(root=args.data_root)
    return DataDirectoryLayout.default()


def _journal() -> RestoreExecutionJournal:
    return RestoreExecutionJournal(get_logs_dir() / JOURNAL_FILE_NAME, clock=SystemClock())


def _run_config(args: argparse.Namespace) -> int:
    settings = load_backup_settings()

    if args.config_command == "show":
        print(f"webdav_url: {redact(settings.webdav_url) or '-'}")
        print(f"webdav_username: {settings.webdav_username or '-'}")
        print(f"webdav_password: {'set' if settings.webdav_password else '-'}")
        print(f"webdav_dir: {settings.webdav_dir}")
        print(f"local_backup_dir: {settings.local_backup_dir or '-'}")
        return 0

    if args.config_command == "set-webdav":
        validate_remote_url(args.url)
        remote_dir = args.remote_dir if args.remote_dir is not None else settings.webdav_dir
        validate_remote_directory(remote_dir)
        path = save_backup_settings(
            replace(
                settings,
                webdav_url=args.url,
                webdav_username=args.username,
                webdav_password=args.password,
                webdav_dir=remote_dir,
            )
        )
        print(f"Saved WebDAV settings to {path}")
        return 0

    if args.config_command == "set-local-dir":
        path = save_backup_settings(replace(settings, local_backup_dir=args.path.expanduser()))
        print(f"Saved local backup directory to {path}")
        return 0

    return 2


def main(argv: list[str] | None = None) -> int:
    """
    CLI entry point.

    Parameters
    ----------
    argv:
        Optional argument vector. If None, argparse uses sys.argv.

    Returns
    -------
    int
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(level=logging.DEBUG if args.verbose else logging.WARNING)

    factory = TransportFactory()
    try:
        if args.command == "config":
            return _run_config(args)

        if args.command == "backup":
            descriptor = run_backup(config=_layout(args), transport=_resolve_transport(args, factory))
            print(f"Created backup: {descriptor.location or descriptor.name}")
            return 0

        if args.command == "list":
            descriptors = list_available(_resolve_transport(args, factory), limit=args.limit)
            if not descriptors:
                print("No backups found.")
            for descriptor in descriptors:
                created = descriptor.created_at.isoformat(sep=" ") if descriptor.created_at else "-"
                print(f"{descriptor.name}\t{descriptor.platform_tag or '-'}\t{created}")
            return 0

        if args.command == "delete":
            remove(_resolve_transport(args, factory), args.name)
            print(f"Deleted backup: {args.name}")
            return 0

        if args.command in ("restore", "restore-file"):
            layout = _layout(args)
            work_root = args.work_root if args.work_root is not None else default_work_root()
            work_root.mkdir(parents=True, exist_ok=True)
            if args.command == "restore":
                outcome = restore_backup(
                    transport=_resolve_transport(args, factory),
                    backup_name=args.name,
                    target_root=layout.data_root(),
                    notifier=StderrNotifier(),
                    work_root=work_root,
                    journal=_journal(),
                )
            else:
                outcome = restore_from_file(
                    archive_path=args.path,
                    target_root=layout.data_root(),
                    notifier=StderrNotifier(),
                    work_root=work_root,
                    journal=_journal(),
                )

            if outcome.ok:
                print(f"Restored {outcome.backup_name} into {outcome.target_root}")
                return 0
            print(f"ERROR: {redact(str(outcome.error))}")
            if outcome.failure_kind is FailureKind.ROLLBACK_FAILURE:
                return 1
            if outcome.state is TransactionState.ROLLED_BACK:
                print("The previous configuration was put back; nothing was changed.")
            return 2
    except BackupCoreError as exc:
        print(f"ERROR: {redact(str(exc))}")
        return 2
    except OSError as exc:
        print(f"ERROR: {exc}")
        return 2
    finally:
        factory.close()

    parser.print_help()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
