"""
pxdesk backup GUI app.

Single-window GUI backed by the backup/restore engine.
"""

from __future__ import annotations

import sys

from PySide6.QtWidgets import QApplication, QHBoxLayout, QLabel, QTabWidget, QVBoxLayout, QWidget

from backup_core.app_config import DataDirectoryLayout
from backup_core.logging_setup import setup_logging
from gui.tabs.backup_tab import BackupTab


class AppWindow(QWidget):
    """
    Main window for the pxdesk backup GUI.

    Responsibilities
    ----------------
    - Host the backup tab
    - Coordinate clean shutdown of tab-owned background workers
    """

    def __init__(self, *, layout: DataDirectoryLayout | None = None) -> None:
        super().__init__()
        self.setWindowTitle("pxdesk Backup")
        self.resize(1100, 680)

        root = QVBoxLayout(self)
        root.setContentsMargins(8, 8, 8, 8)

        header = QWidget()
        header_layout = QHBoxLayout(header)
        header_layout.setContentsMargins(8, 8, 8, 8)

        title = QLabel("pxdesk")
        f = title.font()
        f.setPointSize(16)
        f.setBold(True)
        title.setFont(f)

        data_layout = layout if layout is not None else DataDirectoryLayout.default()
        subtitle = QLabel(f"Configuration backups for {data_layout.data_root()}")
        subtitle.setStyleSheet("color: #666;")

        header_layout.addWidget(title)
        header_layout.addSpacing(10)
        header_layout.addWidget(subtitle)
        header_layout.addStretch(1)

        root.addWidget(header)

        tabs = QTabWidget()

        self.backup_tab = BackupTab(layout=data_layout)
        tabs.addTab(self.backup_tab, "Backup")

        root.addWidget(tabs, 1)

    def closeEvent(self, event) -> None:  # type: ignore[override]
        """
        Handle window close by shutting down background workers.

        Parameters
        ----------
        event:
            Qt close event.
        """
        try:
            if hasattr(self, "backup_tab"):
                self.backup_tab.shutdown()
        finally:
            super().closeEvent(event)


def main() -> int:
    """
    Run the pxdesk backup GUI application.

    Returns
    -------
    int
        Qt application exit code.
    """
    setup_logging()
    app = QApplication(sys.argv)
    w = AppWindow()
    w.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
