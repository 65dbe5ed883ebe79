"""
Backup tab (engine-backed).

- Lists stored backups in a local folder or on a WebDAV server, newest first.
- Creates, restores, and deletes backups via the engine services.
- Engine calls run on a worker thread; the window stays responsive.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any

from PySide6.QtCore import (
    QMetaObject,
    QObject,
    Qt,
    QThread,
    QUrl,
    Signal,
    Slot,
)
from PySide6.QtGui import QDesktopServices, QFont
from PySide6.QtWidgets import (
    QComboBox,
    QFileDialog,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMessageBox,
    QPlainTextEdit,
    QPushButton,
    QSplitter,
    QVBoxLayout,
    QWidget,
)

from backup_core.app_config import (
    BackupSettings,
    DataDirectoryLayout,
    default_work_root,
    get_logs_dir,
    load_backup_settings,
    save_backup_settings,
)
from backup_core.backup.service import run_backup
from backup_core.catalog import list_available, remove
from backup_core.clock import SystemClock
from backup_core.errors import BackupCoreError
from backup_core.logging_setup import redact
from backup_core.restore.data_models import RestoreOutcome, TransactionState
from backup_core.restore.journal import RestoreExecutionJournal
from backup_core.restore.service import restore_backup, restore_from_file
from backup_core.transport.base import BackupTransport
from backup_core.transport.factory import (
    LocalTransportConfig,
    TransportConfig,
    TransportFactory,
    webdav_config_from_settings,
)
from gui.recovery_dialog import RecoveryNotifier, show_recovery_dialog

logger = logging.getLogger(__name__)

STORE_LOCAL = "local"
STORE_WEBDAV = "webdav"


def _mono() -> QFont:
    f = QFont("Consolas")
    f.setStyleHint(QFont.Monospace)
    return f


class BackupWorker(QObject):
    finished = Signal(str, object)  # operation, result
    failed = Signal(str, str)  # operation, message

    def __init__(self, *, layout: DataDirectoryLayout, notifier: RecoveryNotifier) -> None:
        super().__init__()
        self._layout = layout
        self._notifier = notifier
        self._factory: TransportFactory | None = None
        self._operation = ""
        self._config: TransportConfig | None = None
        self._args: dict[str, Any] = {}

    def configure(self, operation: str, config: TransportConfig | None, **kwargs: Any) -> None:
        self._operation = operation
        self._config = config
        self._args = dict(kwargs)

    @Slot()
    def run(self) -> None:
        operation = self._operation
        try:
            self.finished.emit(operation, self._dispatch(operation))
        except BackupCoreError as exc:
            self.failed.emit(operation, redact(str(exc)))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error during %s", operation)
            self.failed.emit(operation, f"{type(exc).__name__}: {exc}")

    @Slot()
    def shutdown(self) -> None:
        if self._factory is not None:
            self._factory.close()
            self._factory = None

    def _transport(self) -> BackupTransport:
        if self._config is None:
            raise BackupCoreError("No backup store is configured.")
        if self._factory is None:
            self._factory = TransportFactory()
        return self._factory.get(self._config)

    def _dispatch(self, operation: str) -> object:
        if operation == "list":
            return list_available(self._transport())
        if operation == "backup":
            return run_backup(config=self._layout, transport=self._transport())
        if operation == "delete":
            remove(self._transport(), self._args["name"])
            return self._args["name"]

        work_root = default_work_root()
        work_root.mkdir(parents=True, exist_ok=True)
        journal = RestoreExecutionJournal(
            get_logs_dir() / "restore_journal.jsonl", clock=SystemClock()
        )
        if operation == "restore":
            return restore_backup(
                transport=self._transport(),
                backup_name=self._args["name"],
                target_root=self._layout.data_root(),
                notifier=self._notifier,
                work_root=work_root,
                journal=journal,
            )
        if operation == "restore_file":
            return restore_from_file(
                archive_path=self._args["path"],
                target_root=self._layout.data_root(),
                notifier=self._notifier,
                work_root=work_root,
                journal=journal,
            )
        raise ValueError(f"Unknown operation: {operation}")


class BackupTab(QWidget):
    def __init__(self, *, layout: DataDirectoryLayout | None = None) -> None:
        super().__init__()

        self._layout = layout if layout is not None else DataDirectoryLayout.default()
        self._settings = load_backup_settings()

        outer = QVBoxLayout(self)
        outer.setContentsMargins(12, 12, 12, 12)

        store_box = QGroupBox("Backup store")
        store_layout = QFormLayout(store_box)

        self.store_combo = QComboBox()
        self.store_combo.addItem("Local folder", STORE_LOCAL)
        self.store_combo.addItem("WebDAV", STORE_WEBDAV)
        self.store_combo.currentIndexChanged.connect(self._on_store_changed)
        store_layout.addRow("Store:", self.store_combo)

        self.local_dir = QLineEdit()
        self.local_dir.setPlaceholderText("Select a folder for backup archives…")
        if self._settings.local_backup_dir is not None:
            self.local_dir.setText(str(self._settings.local_backup_dir))
        btn_pick_local = QPushButton("Browse…")
        btn_pick_local.clicked.connect(self._pick_local_dir)

        local_row = QWidget()
        local_row_layout = QHBoxLayout(local_row)
        local_row_layout.setContentsMargins(0, 0, 0, 0)
        local_row_layout.addWidget(self.local_dir, 1)
        local_row_layout.addWidget(btn_pick_local)
        store_layout.addRow("Local folder:", local_row)

        self.webdav_url = QLineEdit(self._settings.webdav_url)
        self.webdav_url.setPlaceholderText("https://dav.example.com/remote.php/dav/files/me")
        self.webdav_username = QLineEdit(self._settings.webdav_username)
        self.webdav_password = QLineEdit(self._settings.webdav_password)
        self.webdav_password.setEchoMode(QLineEdit.Password)
        self.webdav_dir = QLineEdit(self._settings.webdav_dir)
        store_layout.addRow("WebDAV URL:", self.webdav_url)
        store_layout.addRow("Username:", self.webdav_username)
        store_layout.addRow("Password:", self.webdav_password)
        store_layout.addRow("Remote folder:", self.webdav_dir)

        btn_save = QPushButton("Save settings")
        btn_save.clicked.connect(self._save_settings)
        store_layout.addRow("", btn_save)

        outer.addWidget(store_box)

        splitter = QSplitter(Qt.Horizontal)

        left = QWidget()
        left_layout = QVBoxLayout(left)
        left_layout.setContentsMargins(0, 0, 0, 0)
        left_layout.addWidget(QLabel("Backups (newest first)"))

        self.backups = QListWidget()
        self.backups.currentItemChanged.connect(self._on_selected)
        left_layout.addWidget(self.backups, 1)

        right = QWidget()
        right_layout = QVBoxLayout(right)
        right_layout.setContentsMargins(0, 0, 0, 0)
        right_layout.addWidget(QLabel("Details"))

        self.details = QPlainTextEdit()
        self.details.setReadOnly(True)
        self.details.setFont(_mono())
        right_layout.addWidget(self.details, 1)

        actions = QGroupBox("Actions")
        actions_layout = QHBoxLayout(actions)

        self.btn_refresh = QPushButton("Refresh")
        self.btn_refresh.clicked.connect(self._refresh)
        self.btn_backup = QPushButton("Back up now")
        self.btn_backup.clicked.connect(self._backup)
        self.btn_restore = QPushButton("Restore selected")
        self.btn_restore.clicked.connect(self._restore_selected)
        self.btn_restore_file = QPushButton("Restore from file…")
        self.btn_restore_file.clicked.connect(self._restore_from_file)
        self.btn_delete = QPushButton("Delete selected")
        self.btn_delete.clicked.connect(self._delete_selected)
        self.btn_open_data = QPushButton("Open data folder")
        self.btn_open_data.clicked.connect(self._open_data_folder)

        for btn in (
            self.btn_refresh,
            self.btn_backup,
            self.btn_restore,
            self.btn_restore_file,
            self.btn_delete,
            self.btn_open_data,
        ):
            actions_layout.addWidget(btn)
        right_layout.addWidget(actions)

        splitter.addWidget(left)
        splitter.addWidget(right)
        splitter.setSizes([360, 820])
        outer.addWidget(splitter, 1)

        self._notifier = RecoveryNotifier()
        self._notifier.fatal.connect(self._on_fatal)

        self._thread = QThread(self)
        self._worker = BackupWorker(layout=self._layout, notifier=self._notifier)
        self._worker.moveToThread(self._thread)
        self._worker.finished.connect(self._on_finished)
        self._worker.failed.connect(self._on_failed)
        self._thread.start()

        self._on_store_changed()

    def _store_kind(self) -> str:
        return str(self.store_combo.currentData())

    def _current_settings(self) -> BackupSettings:
        local_text = self.local_dir.text().strip()
        return replace(
            self._settings,
            webdav_url=self.webdav_url.text().strip(),
            webdav_username=self.webdav_username.text(),
            webdav_password=self.webdav_password.text(),
            webdav_dir=self.webdav_dir.text().strip() or self._settings.webdav_dir,
            local_backup_dir=Path(local_text) if local_text else None,
        )

    def _store_config(self) -> TransportConfig | None:
        settings = self._current_settings()
        if self._store_kind() == STORE_WEBDAV:
            if not settings.webdav_url:
                return None
            return webdav_config_from_settings(settings)
        if settings.local_backup_dir is None:
            return None
        return LocalTransportConfig(directory=settings.local_backup_dir)

    def _on_store_changed(self) -> None:
        webdav = self._store_kind() == STORE_WEBDAV
        self.local_dir.setEnabled(not webdav)
        for edit in (self.webdav_url, self.webdav_username, self.webdav_password, self.webdav_dir):
            edit.setEnabled(webdav)
        self._refresh()

    def _save_settings(self) -> None:
        try:
            self._settings = self._current_settings()
            path = save_backup_settings(self._settings)
        except OSError as exc:
            QMessageBox.critical(self, "Settings", f"Could not save settings:\n\n{exc}")
            return
        self.details.setPlainText(f"Settings saved to {path}")
        self._refresh()

    def _start(self, operation: str, status: str, **kwargs: Any) -> None:
        config = self._store_config()
        if config is None and operation != "restore_file":
            self.details.setPlainText("Choose a local folder or configure WebDAV first.")
            return
        self.details.setPlainText(status)
        self.setEnabled(False)
        self._worker.configure(operation, config, **kwargs)
        QMetaObject.invokeMethod(self._worker, "run", Qt.ConnectionType.QueuedConnection)

    def _refresh(self) -> None:
        self.backups.clear()
        self._start("list", "Loading backups…")

    def _backup(self) -> None:
        self._start("backup", "Creating backup…")

    def _selected_name(self) -> str | None:
        cur = self.backups.currentItem()
        if cur is None:
            return None
        return str(cur.data(Qt.UserRole))

    def _restore_selected(self) -> None:
        name = self._selected_name()
        if name is None:
            QMessageBox.warning(self, "Restore", "Select a backup to restore.")
            return
        if not self._confirm_restore(name):
            return
        self._start("restore", f"Restoring {name}…", name=name)

    def _restore_from_file(self) -> None:
        path, _ = QFileDialog.getOpenFileName(
            self, "Select backup archive", "", "Backup archives (*.zip)"
        )
        if not path:
            return
        if not self._confirm_restore(Path(path).name):
            return
        self._start("restore_file", f"Restoring {path}…", path=Path(path))

    def _confirm_restore(self, name: str) -> bool:
        answer = QMessageBox.question(
            self,
            "Restore",
            f"Replace the current configuration with {name}?\n\n"
            "The application should be restarted after the restore.",
        )
        return answer == QMessageBox.Yes

    def _delete_selected(self) -> None:
        name = self._selected_name()
        if name is None:
            QMessageBox.warning(self, "Delete", "Select a backup to delete.")
            return
        answer = QMessageBox.question(self, "Delete", f"Delete {name}? This cannot be undone.")
        if answer != QMessageBox.Yes:
            return
        self._start("delete", f"Deleting {name}…", name=name)

    def _on_selected(self, current: QListWidgetItem | None, _prev: QListWidgetItem | None) -> None:
        if current is None:
            return
        descriptor = current.data(Qt.UserRole + 1)
        if descriptor is None:
            return
        lines = ["BACKUP"]
        for key, value in descriptor.to_dict().items():
            lines.append(f"  {key}: {value if value is not None else '-'}")
        self.details.setPlainText("\n".join(lines))

    def _on_finished(self, operation: str, result: object) -> None:
        self.setEnabled(True)

        if operation == "list":
            self.backups.clear()
            for descriptor in list(result):  # type: ignore[call-overload]
                item = QListWidgetItem(descriptor.name)
                item.setData(Qt.UserRole, descriptor.name)
                item.setData(Qt.UserRole + 1, descriptor)
                self.backups.addItem(item)
            if self.backups.count() > 0:
                self.backups.setCurrentRow(0)
            else:
                self.details.setPlainText("No backups found.")
            return

        if operation == "backup":
            self.details.setPlainText(f"BACKUP CREATED\n  {getattr(result, 'location', None) or result}")
            self._refresh()
            return

        if operation == "delete":
            self.details.setPlainText(f"Deleted {result}")
            self._refresh()
            return

        if operation in ("restore", "restore_file"):
            self._show_outcome(result)  # type: ignore[arg-type]

    def _show_outcome(self, outcome: RestoreOutcome) -> None:
        lines = [f"RESTORE {outcome.state.value.upper()}"]
        for key, value in outcome.to_dict().items():
            lines.append(f"  {key}: {value}")
        self.details.setPlainText("\n".join(lines))

        if outcome.ok:
            QMessageBox.information(
                self,
                "Restore",
                "Configuration restored. Restart the application to apply it.",
            )
        elif outcome.state is TransactionState.ROLLED_BACK:
            QMessageBox.warning(
                self,
                "Restore Failed",
                f"{redact(str(outcome.error))}\n\nYour previous configuration was put back.",
            )
        elif outcome.state is TransactionState.ABORTED:
            QMessageBox.warning(self, "Restore", redact(str(outcome.error)))
        # Rollback failures are reported through the recovery dialog.

    def _on_failed(self, operation: str, message: str) -> None:
        self.setEnabled(True)
        self.details.setPlainText(f"{operation} failed:\n\n{message}")
        if operation != "list":
            QMessageBox.critical(self, "Backup", message)

    def _on_fatal(self, message: str, recovery_path: str) -> None:
        show_recovery_dialog(self, message, recovery_path)

    def _pick_local_dir(self) -> None:
        d = QFileDialog.getExistingDirectory(self, "Select backup folder")
        if d:
            self.local_dir.setText(d)
            self._refresh()

    def _open_data_folder(self) -> None:
        QDesktopServices.openUrl(QUrl.fromLocalFile(str(self._layout.data_root())))

    def shutdown(self) -> None:
        if not self._thread.isRunning():
            return
        QMetaObject.invokeMethod(self._worker, "shutdown", Qt.ConnectionType.BlockingQueuedConnection)
        self._thread.quit()
        self._thread.wait(2000)

    def closeEvent(self, event) -> None:
        self.shutdown()
        super().closeEvent(event)
