"""
Hytale Mod Manager - GUI (PySide6)
"""

import html
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from PySide6.QtCore import Qt, QThread, Signal, QUrl
from PySide6.QtGui import QColor, QDesktopServices, QFont, QPalette, QPixmap
from PySide6.QtWidgets import (
    QApplication,
    QComboBox,
    QDialog,
    QDialogButtonBox,
    QFileDialog,
    QFormLayout,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPlainTextEdit,
    QProgressBar,
    QPushButton,
    QSplitter,
    QTabWidget,
    QTextBrowser,
    QTreeWidget,
    QTreeWidgetItem,
    QVBoxLayout,
    QWidget,
)

from catalog_models import CatalogItem, CatalogVersion, InstallStatus, Provider, SortOrder, Theme
from errors import ModManagerError
from local_mods import LocalMod, filter_local
from mod_manager import ModAction, ModManager, create_manager

STATUS_COLORS = {
    InstallStatus.INSTALLED: "#2e7d32",
    InstallStatus.OUTDATED: "#ef6c00",
    InstallStatus.NOT_INSTALLED: "#757575",
}
SORT_LABELS = {
    SortOrder.FEATURED: "Featured",
    SortOrder.POPULARITY: "Popularity",
    SortOrder.LAST_UPDATED: "Last Updated",
}
SEARCH_KEY = "__search__"
SCAN_KEY = "__scan__"


# ── Worker Thread ─────────────────────────────────────────────────────

class WorkerThread(QThread):
    """Run a blocking operation off the main thread."""

    finished_signal = Signal(bool, str, object)  # success, message, result

    def __init__(self, func, *args, **kwargs):
        super().__init__()
        self.key = ""
        self.func = func
        self.args = args
        self.kwargs = kwargs

    def run(self):
        try:
            result = self.func(*self.args, **self.kwargs)
            if isinstance(result, tuple) and len(result) == 2 and isinstance(result[0], bool):
                self.finished_signal.emit(result[0], result[1], None)
            elif isinstance(result, str):
                self.finished_signal.emit(True, result, None)
            else:
                self.finished_signal.emit(True, "Done", result)
        except ModManagerError as e:
            self.finished_signal.emit(False, str(e), None)
        except Exception as e:
            logging.getLogger("hytalemodmanager").exception("Worker failed")
            self.finished_signal.emit(False, f"Unexpected error: {e}", None)


# ── Version Selection Dialog ──────────────────────────────────────────

class VersionDialog(QDialog):
    """Pick which file of a mod to install."""

    def __init__(self, item: CatalogItem, versions: list[CatalogVersion], parent=None):
        super().__init__(parent)
        self.setWindowTitle(f"Select Version: {item.name}")
        self.setMinimumWidth(420)

        layout = QVBoxLayout(self)
        label = QLabel(f"<b>{item.name}</b> has {len(versions)} file(s).")
        label.setWordWrap(True)
        layout.addWidget(label)

        self.combo = QComboBox()
        for v in versions:
            games = ", ".join(v.game_versions) or "any"
            self.combo.addItem(f"{v.label}  [{v.channel.value}]  ({games})", userData=v)
        layout.addWidget(self.combo)

        buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    def selected_version(self) -> Optional[CatalogVersion]:
        return self.combo.currentData()


# ── Mod Detail Dialog ─────────────────────────────────────────────────

class ModDetailDialog(QDialog):
    """
    Description, banner, gallery and file list of one catalog item.

    Images and the file list load on worker threads. Pressing "Install
    Selected" accepts the dialog with ``selected_version`` set; the caller
    decides whether that is an install or an update.
    """

    BANNER_WIDTH = 600
    THUMB_WIDTH = 180

    def __init__(self, manager: ModManager, item: CatalogItem, parent=None):
        super().__init__(parent)
        self.manager = manager
        self.item = item
        self.selected_version: Optional[CatalogVersion] = None
        self.pending = 0
        self._media_labels: dict[str, list[tuple[QLabel, int]]] = {}

        self.setWindowTitle(item.name)
        self.setMinimumSize(660, 560)
        layout = QVBoxLayout(self)

        if item.banner_url:
            self.banner_label = self._image_label(item.banner_url, self.BANNER_WIDTH)
            layout.addWidget(self.banner_label)

        header = QLabel(
            f"<h2>{html.escape(item.name)}</h2>"
            f"by {html.escape(item.authors or 'unknown')} · {item.download_count:,} downloads"
            f" · {item.provider.value}"
        )
        header.setWordWrap(True)
        layout.addWidget(header)

        self.tabs = QTabWidget()
        self.tabs.addTab(self._build_description_tab(), "Description")
        self.tabs.addTab(self._build_versions_tab(), "Versions")
        layout.addWidget(self.tabs, 1)

        buttons = QDialogButtonBox(QDialogButtonBox.Close)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

        for url in self._media_labels:
            self._start(self._fetch_media, self._on_media_loaded, url)
        self._start(self.manager.list_versions, self._on_versions_loaded, item.id, item.provider)

    def _build_description_tab(self) -> QWidget:
        widget = QWidget()
        layout = QVBoxLayout(widget)

        self.categories_label = QLabel(
            "Categories: " + (", ".join(self.item.categories) or "none")
        )
        self.categories_label.setWordWrap(True)
        layout.addWidget(self.categories_label)

        self.summary_view = QTextBrowser()
        self.summary_view.setPlainText(self.item.summary or "No description provided.")
        layout.addWidget(self.summary_view, 1)

        if self.item.gallery_urls:
            layout.addWidget(QLabel("<b>Gallery</b>"))
            gallery = QHBoxLayout()
            for url in self.item.gallery_urls:
                gallery.addWidget(self._image_label(url, self.THUMB_WIDTH))
            gallery.addStretch()
            layout.addLayout(gallery)
        return widget

    def _build_versions_tab(self) -> QWidget:
        widget = QWidget()
        layout = QVBoxLayout(widget)

        self.versions_status = QLabel("Loading files...")
        layout.addWidget(self.versions_status)

        self.versions_tree = QTreeWidget()
        self.versions_tree.setHeaderLabels(["Version", "Channel", "Game Versions", "Uploaded"])
        self.versions_tree.setColumnWidth(0, 220)
        self.versions_tree.setRootIsDecorated(False)
        self.versions_tree.itemSelectionChanged.connect(self._update_install_button)
        layout.addWidget(self.versions_tree, 1)

        self.install_btn = QPushButton("Install Selected")
        self.install_btn.setEnabled(False)
        self.install_btn.clicked.connect(self._install_selected)
        layout.addWidget(self.install_btn)
        return widget

    def _image_label(self, url: str, width: int) -> QLabel:
        label = QLabel("Loading image...")
        label.setAlignment(Qt.AlignCenter)
        label.setMinimumWidth(width)
        self._media_labels.setdefault(url, []).append((label, width))
        return label

    # ── Background loading ────────────────────────────────────────────

    def _start(self, func, on_finished, *args):
        worker = WorkerThread(func, *args)
        # Parented to the window so a thread still running when this dialog
        # goes away is not destroyed with it.
        worker.setParent(self.parent() or self)
        worker.finished_signal.connect(on_finished)
        worker.finished.connect(worker.deleteLater)
        self.pending += 1
        worker.start()

    def _fetch_media(self, url: str) -> tuple[str, bytes | None]:
        try:
            return url, self.manager.fetch_media(self.item, url)
        except ModManagerError as e:
            logging.getLogger(__name__).warning("Could not load image %s: %s", url, e)
            return url, None

    def _on_media_loaded(self, success: bool, message: str, result):
        self.pending -= 1
        if not success:
            return
        url, data = result
        for label, width in self._media_labels.get(url, []):
            pixmap = QPixmap()
            if data is None or not pixmap.loadFromData(data):
                label.setText("Image unavailable")
                continue
            label.setPixmap(pixmap.scaledToWidth(width, Qt.SmoothTransformation))

    def _on_versions_loaded(self, success: bool, message: str, versions):
        self.pending -= 1
        if not success:
            self.versions_status.setText(f"Could not load files: {message}")
            return
        self.versions_status.setText(f"{len(versions)} file(s)")
        for v in versions:
            row = QTreeWidgetItem()
            row.setText(0, v.label)
            row.setText(1, v.channel.value)
            row.setText(2, ", ".join(v.game_versions) or "any")
            row.setText(3, v.uploaded_at)
            row.setData(0, Qt.UserRole, v)
            self.versions_tree.addTopLevelItem(row)

    def _update_install_button(self):
        row = self.versions_tree.currentItem()
        version = row.data(0, Qt.UserRole) if row else None
        self.install_btn.setEnabled(bool(version and version.download_url))

    def _install_selected(self):
        row = self.versions_tree.currentItem()
        if row is None:
            return
        self.selected_version = row.data(0, Qt.UserRole)
        self.accept()


# ── Settings Dialog ───────────────────────────────────────────────────

class SettingsDialog(QDialog):
    def __init__(
        self,
        provider: Provider,
        credential: str,
        game_folder: str,
        theme: Theme,
        parent=None,
    ):
        super().__init__(parent)
        self.setWindowTitle("Settings")
        self.setMinimumWidth(500)

        layout = QFormLayout(self)

        self.provider_combo = QComboBox()
        for p in Provider:
            self.provider_combo.addItem(p.value, userData=p)
        self.provider_combo.setCurrentIndex(list(Provider).index(provider))
        layout.addRow("Provider:", self.provider_combo)

        self.key_edit = QLineEdit(credential)
        self.key_edit.setEchoMode(QLineEdit.Password)
        self.key_edit.setPlaceholderText("Paste API Key here...")
        layout.addRow("API Key:", self.key_edit)

        self.key_hint = QLabel()
        self.key_hint.setWordWrap(True)
        layout.addRow("", self.key_hint)
        self.provider_combo.currentIndexChanged.connect(self._update_hint)
        self._update_hint()

        folder_row = QHBoxLayout()
        self.folder_edit = QLineEdit(game_folder)
        folder_row.addWidget(self.folder_edit)
        browse_btn = QPushButton("Browse...")
        browse_btn.clicked.connect(self._browse_folder)
        folder_row.addWidget(browse_btn)
        layout.addRow("Game Folder:", folder_row)

        self.theme_combo = QComboBox()
        for t in Theme:
            self.theme_combo.addItem(t.value, userData=t)
        self.theme_combo.setCurrentIndex(list(Theme).index(theme))
        layout.addRow("Theme:", self.theme_combo)

        buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        layout.addRow(buttons)

    def _update_hint(self):
        if self.provider_combo.currentData() == Provider.CURSEFORGE:
            self.key_hint.setText("Requires an API Key from the CurseForge Console.")
        else:
            self.key_hint.setText("Modtale key (optional for public access).")

    def _browse_folder(self):
        path = QFileDialog.getExistingDirectory(self, "Select Hytale Folder", self.folder_edit.text())
        if path:
            self.folder_edit.setText(path)

    def get_values(self) -> tuple[Provider, str, str, Theme]:
        return (
            self.provider_combo.currentData(),
            self.key_edit.text().strip(),
            self.folder_edit.text().strip(),
            self.theme_combo.currentData(),
        )


# ── Main Window ───────────────────────────────────────────────────────

class MainWindow(QMainWindow):
    # Signal used to safely append log messages from background threads.
    # Qt automatically queues cross-thread signal emissions to the main thread.
    _log_message = Signal(str)

    def __init__(
        self,
        manager: ModManager,
        logger: logging.Logger | None = None,
        *,
        window_title_suffix: str | None = None,
    ):
        super().__init__()
        self._logger = logger or logging.getLogger("hytalemodmanager")
        title = "Hytale Mod Manager"
        if window_title_suffix:
            title += f" {window_title_suffix}"
        self.setWindowTitle(title)
        self.setMinimumSize(1000, 650)

        self.manager = manager
        self.workers: dict[str, WorkerThread] = {}
        self.page_index = 0
        self.page_count = 0
        self.local_mods: list[LocalMod] = []
        self._search_pending = False

        self._build_ui()
        self._log_message.connect(self.log_text.appendPlainText)
        self.manager.set_log_callback(self._log_message.emit)
        self._apply_theme(self.manager.settings_store.settings.theme)
        self._update_folder_label()
        self._search()

    def _build_ui(self):
        central = QWidget()
        self.setCentralWidget(central)
        main_layout = QVBoxLayout(central)

        # ── Toolbar row ───────────────────────────────────────────────
        toolbar = QHBoxLayout()

        self.settings_btn = QPushButton("⚙ Settings")
        self.settings_btn.clicked.connect(self._open_settings)
        toolbar.addWidget(self.settings_btn)

        toolbar.addStretch()

        self.status_label = QLabel()
        toolbar.addWidget(self.status_label)
        main_layout.addLayout(toolbar)

        splitter = QSplitter(Qt.Vertical)

        self.tabs = QTabWidget()
        self.tabs.addTab(self._build_search_tab(), "Search Mods")
        self.tabs.addTab(self._build_installed_tab(), "Installed")
        self.tabs.currentChanged.connect(self._on_tab_changed)
        splitter.addWidget(self.tabs)

        # Bottom: Log
        bottom_widget = QWidget()
        bottom_layout = QVBoxLayout(bottom_widget)
        bottom_layout.setContentsMargins(0, 0, 0, 0)
        bottom_layout.addWidget(QLabel("<b>Log</b>"))

        self.log_text = QPlainTextEdit()
        self.log_text.setReadOnly(True)
        self.log_text.setFont(QFont("Consolas", 9))
        self.log_text.setMaximumBlockCount(5000)
        bottom_layout.addWidget(self.log_text, 1)

        splitter.addWidget(bottom_widget)
        splitter.setChildrenCollapsible(False)
        splitter.setStretchFactor(0, 5)
        splitter.setStretchFactor(1, 2)
        main_layout.addWidget(splitter)

        self.progress = QProgressBar()
        self.progress.setVisible(False)
        self.progress.setRange(0, 0)  # indeterminate
        main_layout.addWidget(self.progress)

    def _build_search_tab(self) -> QWidget:
        widget = QWidget()
        layout = QVBoxLayout(widget)

        row = QHBoxLayout()
        self.query_edit = QLineEdit()
        self.query_edit.setPlaceholderText("Search mods...")
        self.query_edit.returnPressed.connect(self._new_search)
        row.addWidget(self.query_edit, 5)

        self.sort_combo = QComboBox()
        for sort, label in SORT_LABELS.items():
            self.sort_combo.addItem(label, userData=sort)
        row.addWidget(self.sort_combo, 2)

        self.search_btn = QPushButton("Search")
        self.search_btn.clicked.connect(self._new_search)
        row.addWidget(self.search_btn)
        layout.addLayout(row)

        self.search_tree = QTreeWidget()
        self.search_tree.setHeaderLabels(["Mod", "Author", "Downloads", "Latest", "Status"])
        self.search_tree.setColumnWidth(0, 320)
        self.search_tree.setColumnWidth(1, 160)
        self.search_tree.setColumnWidth(2, 100)
        self.search_tree.setColumnWidth(3, 160)
        self.search_tree.setRootIsDecorated(False)
        self.search_tree.itemSelectionChanged.connect(self._update_action_buttons)
        layout.addWidget(self.search_tree, 1)

        action_row = QHBoxLayout()
        self.action_btn = QPushButton("INSTALL")
        self.action_btn.clicked.connect(self._run_selected_action)
        action_row.addWidget(self.action_btn)

        self.versions_btn = QPushButton("Choose Version...")
        self.versions_btn.clicked.connect(self._choose_version)
        action_row.addWidget(self.versions_btn)

        self.details_btn = QPushButton("Details...")
        self.details_btn.clicked.connect(self._show_selected_details)
        action_row.addWidget(self.details_btn)

        self.open_page_btn = QPushButton("Open Mod Page")
        self.open_page_btn.clicked.connect(self._open_mod_page)
        action_row.addWidget(self.open_page_btn)

        action_row.addStretch()

        self.prev_btn = QPushButton("❮")
        self.prev_btn.clicked.connect(lambda: self._change_page(-1))
        action_row.addWidget(self.prev_btn)
        self.page_label = QLabel("Page 1 of 0")
        action_row.addWidget(self.page_label)
        self.next_btn = QPushButton("❯")
        self.next_btn.clicked.connect(lambda: self._change_page(1))
        action_row.addWidget(self.next_btn)
        layout.addLayout(action_row)
        return widget

    def _build_installed_tab(self) -> QWidget:
        widget = QWidget()
        layout = QVBoxLayout(widget)

        row = QHBoxLayout()
        self.filter_edit = QLineEdit()
        self.filter_edit.setPlaceholderText("Filter installed mods...")
        self.filter_edit.textChanged.connect(self._populate_installed)
        row.addWidget(self.filter_edit, 1)

        self.refresh_btn = QPushButton("🔄 Refresh")
        self.refresh_btn.clicked.connect(self._refresh_installed)
        row.addWidget(self.refresh_btn)

        self.prune_btn = QPushButton("Prune Missing")
        self.prune_btn.clicked.connect(self._prune)
        row.addWidget(self.prune_btn)
        layout.addLayout(row)

        self.installed_tree = QTreeWidget()
        self.installed_tree.setHeaderLabels(["Mod", "Version", "Status", "File", "Source"])
        self.installed_tree.setColumnWidth(0, 280)
        self.installed_tree.setColumnWidth(1, 120)
        self.installed_tree.setColumnWidth(2, 200)
        self.installed_tree.setColumnWidth(3, 280)
        self.installed_tree.setRootIsDecorated(False)
        self.installed_tree.itemSelectionChanged.connect(self._update_installed_buttons)
        layout.addWidget(self.installed_tree, 1)

        action_row = QHBoxLayout()
        self.installed_action_btn = QPushButton("REMOVE")
        self.installed_action_btn.clicked.connect(self._run_installed_action)
        action_row.addWidget(self.installed_action_btn)

        self.installed_details_btn = QPushButton("Details...")
        self.installed_details_btn.clicked.connect(self._show_installed_details)
        action_row.addWidget(self.installed_details_btn)
        action_row.addStretch()
        self.open_mods_btn = QPushButton("📂 Open Mods Folder")
        self.open_mods_btn.clicked.connect(self._open_mods_folder)
        action_row.addWidget(self.open_mods_btn)
        layout.addLayout(action_row)

        self.folder_label = QLabel()
        layout.addWidget(self.folder_label)
        return widget

    # ── Logging ───────────────────────────────────────────────────────

    def _append_log(self, msg: str):
        self._logger.info(msg)
        self._log_message.emit(msg)

    # ── Theme ─────────────────────────────────────────────────────────

    def _apply_theme(self, theme: Theme):
        app = QApplication.instance()
        if app is None:
            return
        if theme == Theme.LIGHT:
            app.setPalette(app.style().standardPalette())
            return
        palette = QPalette()
        palette.setColor(QPalette.Window, QColor(37, 37, 38))
        palette.setColor(QPalette.WindowText, Qt.white)
        palette.setColor(QPalette.Base, QColor(30, 30, 30))
        palette.setColor(QPalette.AlternateBase, QColor(45, 45, 48))
        palette.setColor(QPalette.Text, Qt.white)
        palette.setColor(QPalette.Button, QColor(45, 45, 48))
        palette.setColor(QPalette.ButtonText, Qt.white)
        palette.setColor(QPalette.Highlight, QColor(0, 122, 204))
        palette.setColor(QPalette.HighlightedText, Qt.white)
        app.setPalette(palette)

    # ── Search ────────────────────────────────────────────────────────

    def _new_search(self):
        self.page_index = 0
        self._search()

    def _change_page(self, delta: int):
        new_index = self.page_index + delta
        if new_index < 0 or (self.page_count and new_index >= self.page_count):
            return
        self.page_index = new_index
        self._search()

    def _search(self):
        if self._is_working(SEARCH_KEY):
            # Re-run with whatever the inputs say once the current search lands.
            self._search_pending = True
            self.status_label.setText("Searching...")
            return
        query = self.query_edit.text()
        sort = self.sort_combo.currentData()
        self.search_tree.clear()
        self.status_label.setText("Searching...")
        self._start_worker(
            SEARCH_KEY,
            self.manager.search,
            self._on_search_finished,
            query,
            sort,
            self.page_index,
        )

    def _on_search_finished(self, success: bool, message: str, page):
        if self._search_pending:
            return
        if not success:
            self._append_log(f"❌ Search failed: {message}")
            self.status_label.setText("Search failed")
            return
        self.page_count = page.page_count
        self.page_label.setText(f"Page {self.page_index + 1} of {self.page_count}")
        self.prev_btn.setEnabled(self.page_index > 0)
        self.next_btn.setEnabled(self.page_index + 1 < self.page_count)
        self.status_label.setText(f"{page.total} result(s)")
        self._populate_search(page.items)

    def _populate_search(self, items: list[CatalogItem]):
        self.search_tree.clear()
        for mod in items:
            item = QTreeWidgetItem()
            item.setText(0, mod.name)
            item.setText(1, mod.authors)
            item.setText(2, f"{mod.download_count:,}")
            item.setText(3, mod.latest.label)
            item.setData(0, Qt.UserRole, mod)
            self.search_tree.addTopLevelItem(item)
            self._refresh_search_row(item)
        self._update_action_buttons()

    def _refresh_search_row(self, row: QTreeWidgetItem):
        mod: CatalogItem = row.data(0, Qt.UserRole)
        info = self.manager.status(mod)
        if self.manager.store.is_processing(mod.id):
            text = "Working..."
        elif self.manager.store.last_error(mod.id):
            text = f"Failed: {self.manager.store.last_error(mod.id)}"
        elif info.status == InstallStatus.OUTDATED:
            text = f"Outdated ({info.local_version_label})"
        elif info.status == InstallStatus.INSTALLED:
            text = "Installed"
        else:
            text = "Not installed"
        row.setText(4, text)
        row.setForeground(4, QColor(STATUS_COLORS[info.status]))

    def _refresh_search_rows(self):
        for i in range(self.search_tree.topLevelItemCount()):
            self._refresh_search_row(self.search_tree.topLevelItem(i))
        self._update_action_buttons()

    def _selected_catalog_item(self) -> Optional[CatalogItem]:
        row = self.search_tree.currentItem()
        return row.data(0, Qt.UserRole) if row else None

    def _update_action_buttons(self):
        mod = self._selected_catalog_item()
        if mod is None:
            self.action_btn.setText("INSTALL")
            self.action_btn.setEnabled(False)
            self.versions_btn.setEnabled(False)
            self.details_btn.setEnabled(False)
            self.open_page_btn.setEnabled(False)
            return
        state = self.manager.button_state(mod)
        self.action_btn.setText(state.text)
        self.action_btn.setEnabled(not state.disabled)
        self.versions_btn.setEnabled(not self.manager.store.is_processing(mod.id))
        self.details_btn.setEnabled(True)
        self.open_page_btn.setEnabled(bool(mod.website_url))

    def _run_selected_action(self):
        mod = self._selected_catalog_item()
        if mod is None:
            return
        state = self.manager.button_state(mod)
        if state.action == ModAction.NONE:
            return
        if state.action == ModAction.REMOVE:
            reply = QMessageBox.question(
                self,
                "Confirm Remove",
                f"Remove '{mod.name}' from the mods folder?",
                QMessageBox.Yes | QMessageBox.No,
            )
            if reply != QMessageBox.Yes:
                return
        self._run_action(state.action, mod)

    def _run_action(self, action: ModAction, mod: CatalogItem, version: CatalogVersion | None = None):
        self._start_worker(
            mod.id,
            self.manager.run,
            self._on_action_finished,
            action,
            mod,
            version,
        )
        self._refresh_search_rows()

    def _on_action_finished(self, success: bool, message: str, _result):
        if success:
            self._append_log(f"✅ {message}")
        else:
            self._append_log(f"❌ {message}")
        self._refresh_search_rows()
        self._refresh_installed_rows()
        if self.tabs.currentIndex() == 1:
            self._refresh_installed()

    def _install_version(self, mod: CatalogItem, version: CatalogVersion):
        info = self.manager.status(mod)
        action = ModAction.INSTALL if info.status == InstallStatus.NOT_INSTALLED else ModAction.UPDATE
        self._run_action(action, mod, version)

    def _choose_version(self):
        mod = self._selected_catalog_item()
        if mod is None:
            return
        self.versions_btn.setEnabled(False)
        self._start_worker(
            f"__versions__{mod.id}",
            self._load_versions,
            self._on_versions_loaded,
            mod,
        )

    def _load_versions(self, mod: CatalogItem) -> tuple[CatalogItem, list[CatalogVersion]]:
        # Runs on the worker thread.
        return mod, self.manager.list_versions(mod.id, mod.provider)

    def _on_versions_loaded(self, success: bool, message: str, result):
        self._update_action_buttons()
        if not success:
            QMessageBox.warning(self, "Versions Unavailable", message)
            return
        mod, versions = result
        self._open_version_dialog(mod, versions)

    def _open_version_dialog(self, mod: CatalogItem, versions: list[CatalogVersion]):
        if not versions:
            QMessageBox.information(self, "No Files", f"'{mod.name}' has no downloadable files.")
            return
        dlg = VersionDialog(mod, versions, self)
        accepted = dlg.exec() == QDialog.Accepted
        version = dlg.selected_version()
        dlg.deleteLater()
        if accepted and version is not None:
            self._install_version(mod, version)

    def _show_details(self, mod: CatalogItem):
        dlg = ModDetailDialog(self.manager, mod, self)
        accepted = dlg.exec() == QDialog.Accepted
        version = dlg.selected_version
        dlg.deleteLater()
        if accepted and version is not None:
            self._install_version(mod, version)

    def _show_selected_details(self):
        mod = self._selected_catalog_item()
        if mod is not None:
            self._show_details(mod)

    def _open_mod_page(self):
        mod = self._selected_catalog_item()
        if mod and mod.website_url:
            QDesktopServices.openUrl(QUrl(mod.website_url))

    # ── Installed ─────────────────────────────────────────────────────

    def _on_tab_changed(self, index: int):
        if index == 1:
            self._refresh_installed()

    def _update_folder_label(self):
        root = self.manager.settings_store.install_root
        self.folder_label.setText(f"Location: {root}" if root else "⚠ No Game Folder Set")

    def _refresh_installed(self):
        if self.manager.settings_store.install_root is None:
            self.installed_tree.clear()
            self._update_folder_label()
            return
        self.refresh_btn.setEnabled(False)
        self._start_worker(
            SCAN_KEY,
            self.manager.scan_installed,
            self._on_scan_finished,
        )

    def _on_scan_finished(self, success: bool, message: str, mods):
        self.refresh_btn.setEnabled(True)
        if not success:
            self._append_log(f"❌ Scan failed: {message}")
            return
        self.local_mods = mods
        self._populate_installed()

    def _populate_installed(self):
        self.installed_tree.clear()
        for mod in filter_local(self.local_mods, self.filter_edit.text()):
            item = QTreeWidgetItem()
            item.setText(0, mod.display_name)
            item.setText(1, mod.version_label)
            item.setText(3, mod.filename)
            item.setText(4, mod.provider.value if mod.provider else "Local Install")
            item.setData(0, Qt.UserRole, mod)
            self.installed_tree.addTopLevelItem(item)
            self._refresh_installed_row(item)
        self._update_installed_buttons()

    def _refresh_installed_row(self, row: QTreeWidgetItem):
        mod: LocalMod = row.data(0, Qt.UserRole)
        key = mod.catalog_item.id if mod.catalog_item else (mod.item_id or mod.filename)
        info = self.manager.local_status(mod)
        status = info.status if info else InstallStatus.INSTALLED
        if self.manager.store.is_processing(key):
            text = "Working..."
        elif self.manager.store.last_error(key):
            text = f"Failed: {self.manager.store.last_error(key)}"
        elif info is None:
            text = "Installed" if mod.is_tracked else "Not from a catalog"
        elif status == InstallStatus.OUTDATED:
            text = f"Update available ({mod.catalog_item.latest.label})"
        elif status == InstallStatus.INSTALLED:
            text = "Up to date"
        else:
            text = "Not tracked"
        row.setText(2, text)
        row.setForeground(2, QColor(STATUS_COLORS[status]))

    def _refresh_installed_rows(self):
        for i in range(self.installed_tree.topLevelItemCount()):
            self._refresh_installed_row(self.installed_tree.topLevelItem(i))
        self._update_installed_buttons()

    def _selected_local_mod(self) -> Optional[LocalMod]:
        row = self.installed_tree.currentItem()
        return row.data(0, Qt.UserRole) if row else None

    def _update_installed_buttons(self):
        mod = self._selected_local_mod()
        if mod is None:
            self.installed_action_btn.setText("REMOVE")
            self.installed_action_btn.setEnabled(False)
            self.installed_details_btn.setEnabled(False)
            return
        state = self.manager.local_button_state(mod)
        self.installed_action_btn.setText(state.text)
        self.installed_action_btn.setEnabled(not state.disabled)
        self.installed_details_btn.setEnabled(mod.catalog_item is not None)

    def _run_installed_action(self):
        mod = self._selected_local_mod()
        if mod is None:
            return
        state = self.manager.local_button_state(mod)
        if state.action == ModAction.NONE:
            return
        if state.action == ModAction.REMOVE:
            reply = QMessageBox.question(
                self,
                "Confirm Remove",
                f"Remove '{mod.display_name}' ({mod.filename})?",
                QMessageBox.Yes | QMessageBox.No,
            )
            if reply != QMessageBox.Yes:
                return
        key = mod.catalog_item.id if mod.catalog_item else (mod.item_id or mod.filename)
        self._start_worker(key, self.manager.run_local, self._on_action_finished, state.action, mod)
        self._refresh_installed_rows()

    def _show_installed_details(self):
        mod = self._selected_local_mod()
        if mod is not None and mod.catalog_item is not None:
            self._show_details(mod.catalog_item)

    def _prune(self):
        try:
            removed = self.manager.prune()
        except ModManagerError as e:
            QMessageBox.warning(self, "Prune Failed", str(e))
            return
        self._append_log(f"Pruned {len(removed)} stale manifest entr{'y' if len(removed) == 1 else 'ies'}")
        self._refresh_installed()

    def _open_mods_folder(self):
        root = self.manager.settings_store.install_root
        if root and root.exists():
            import subprocess as sp

            if sys.platform == "win32":
                os.startfile(str(root))
            elif sys.platform == "linux":
                sp.Popen(["xdg-open", str(root)])
            elif sys.platform == "darwin":
                sp.Popen(["open", str(root)])
        else:
            QMessageBox.warning(self, "Not Found", "Mods folder is not set or does not exist.")

    # ── Worker Thread Management ──────────────────────────────────────

    def _is_working(self, key: str) -> bool:
        return key in self.workers and self.workers[key].isRunning()

    def _start_worker(self, key: str, func, on_finished, *args) -> bool:
        # on_finished must be a bound method of this window so Qt queues it
        # onto the GUI thread.
        if self._is_working(key):
            self._append_log(f"Still working on {key}, please wait")
            return False
        worker = WorkerThread(func, *args)
        worker.key = key
        worker.finished_signal.connect(on_finished)
        worker.finished.connect(self._on_worker_done)
        self.workers[key] = worker
        self._set_busy()
        worker.start()
        return True

    def _on_worker_done(self):
        worker = self.sender()
        key = getattr(worker, "key", None)
        if key is not None and self.workers.get(key) is worker:
            # finished is emitted just before the thread exits.
            worker.wait()
            del self.workers[key]
        self._set_busy()
        if key == SEARCH_KEY and self._search_pending:
            self._search_pending = False
            self._search()

    def _set_busy(self):
        busy = any(w.isRunning() for w in self.workers.values())
        self.progress.setVisible(busy)
        if not busy:
            self.status_label.setText("Ready")

    # ── Settings ──────────────────────────────────────────────────────

    def _open_settings(self):
        s = self.manager.settings_store.settings
        dlg = SettingsDialog(
            s.active_provider,
            s.credential or "",
            str(s.game_folder) if s.game_folder else "",
            s.theme,
            self,
        )
        if dlg.exec() != QDialog.Accepted:
            return

        provider, key, folder, theme = dlg.get_values()
        try:
            self.manager.change_provider(provider, key or None)
            self.manager.settings_store.set_game_folder(folder or None)
            self.manager.settings_store.set_theme(theme)
        except ModManagerError as e:
            QMessageBox.warning(self, "Settings Not Saved", str(e))

        self._apply_theme(theme)
        self._update_folder_label()
        self._append_log("Settings updated")
        self._new_search()

    # ── Close ─────────────────────────────────────────────────────────

    def closeEvent(self, event):
        if any(w.isRunning() for w in self.workers.values()):
            reply = QMessageBox.question(
                self,
                "Operation in Progress",
                "An operation is still running. Quit anyway?",
                QMessageBox.Yes | QMessageBox.No,
            )
            if reply != QMessageBox.Yes:
                event.ignore()
                return
        event.accept()


# ── Entry Point ───────────────────────────────────────────────────────

def main(
    logger: logging.Logger | None = None,
    *,
    settings_file: str | Path | None = None,
    game_folder_override: str | None = None,
    provider_override: Provider | None = None,
    window_title_suffix: str | None = None,
):
    app = QApplication(sys.argv)
    app.setStyle("Fusion")

    manager = create_manager(
        settings_file,
        game_folder_override=game_folder_override,
        provider_override=provider_override,
    )
    window = MainWindow(manager, logger=logger, window_title_suffix=window_title_suffix)
    window.show()

    sys.exit(app.exec())


if __name__ == "__main__":
    main()
