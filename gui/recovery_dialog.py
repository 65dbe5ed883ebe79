"""
Recovery prompt shown when a restore could not be rolled back.

The restore runs on a worker thread, so `RecoveryNotifier.notify_fatal` only
emits a signal; the connected slot shows the dialog on the GUI thread.
"""

from __future__ import annotations

from pathlib import Path

from PySide6.QtCore import QObject, QUrl, Signal
from PySide6.QtGui import QDesktopServices
from PySide6.QtWidgets import QMessageBox, QWidget


class RecoveryNotifier(QObject):
    """Fatal notifier that forwards escalations to the GUI thread."""

    fatal = Signal(str, str)  # message, recovery path

    def notify_fatal(self, message: str, recovery_path: Path) -> None:
        self.fatal.emit(message, str(recovery_path))


def show_recovery_dialog(parent: QWidget | None, message: str, recovery_path: str) -> None:
    """
    Tell the operator that manual recovery is needed and offer to open the
    snapshot folder.
    """
    box = QMessageBox(parent)
    box.setIcon(QMessageBox.Critical)
    box.setWindowTitle("Restore failed")
    box.setText("Restore failed and your previous configuration could not be put back automatically.")
    box.setInformativeText(message)
    box.setDetailedText(recovery_path)
    open_btn = box.addButton("Open folder", QMessageBox.AcceptRole)
    box.addButton(QMessageBox.Close)
    box.exec()

    if box.clickedButton() is open_btn:
        QDesktopServices.openUrl(QUrl.fromLocalFile(recovery_path))
