"""
Hytale Mod Manager - Core Logic

Handles catalog access, mod installation/update/removal, and status tracking.
``ModManager`` is the only place that writes to UserData/Mods or changes the
install manifest.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from catalog_clients import PAGE_SIZE, CatalogClient, ClientFactory
from catalog_models import (
    CatalogItem,
    CatalogVersion,
    InstallStatus,
    Provider,
    ResolvedStatus,
    SearchPage,
    SortOrder,
)
from errors import (
    BusyError,
    CatalogParseError,
    ModManagerError,
    NoDownloadUrlError,
    NoInstallRootError,
    NotLocallyInstalledError,
    StorageError,
)
from local_mods import LocalMod, scan
from mod_store import ModStore
from settings_store import InstalledEntry, SettingsStore

_log = logging.getLogger(__name__)


class ModAction(str, Enum):
    NONE = "none"
    INSTALL = "install"
    UPDATE = "update"
    REMOVE = "remove"


@dataclass
class ButtonState:
    """What an action button for one mod should show."""

    text: str
    action: ModAction
    disabled: bool = False
    style: str = "secondary"  # brand | warning | danger | secondary


_ACTION_BUTTONS = {
    ModAction.INSTALL: ("INSTALL", "brand"),
    ModAction.UPDATE: ("UPDATE", "warning"),
    ModAction.REMOVE: ("REMOVE", "danger"),
}


class ModManager:
    """
    Main mod manager controller.

    Workflow:
        1. search() / get_item() / list_versions() to browse the active catalog
        2. status() / button_state() to decide what each mod offers
        3. run() (or install() / update() / remove()) to change what is installed
        4. scan_installed() / prune() to reconcile with the mods folder
    """

    def __init__(
        self,
        settings_store: SettingsStore,
        clients: ClientFactory,
        store: ModStore | None = None,
        log_callback: Optional[Callable[[str], None]] = None,
    ):
        self.settings_store = settings_store
        self.clients = clients
        self.store = store or ModStore()
        self._log_cb = log_callback

    # ── Logging ───────────────────────────────────────────────────────

    def log(self, msg: str, level: int = logging.INFO):
        _log.log(level, msg)
        if self._log_cb is not None:
            self._log_cb(msg)

    def set_log_callback(self, log_callback: Optional[Callable[[str], None]]):
        self._log_cb = log_callback

    # ── Configuration ─────────────────────────────────────────────────

    @property
    def provider(self) -> Provider:
        return self.settings_store.settings.active_provider

    @property
    def client(self) -> CatalogClient:
        return self.clients.get(self.provider)

    def install_root(self) -> Path:
        root = self.settings_store.install_root
        if root is None:
            raise NoInstallRootError()
        return root

    def change_provider(self, provider: Provider, credential: str | None) -> None:
        changed = provider != self.provider
        self.settings_store.change_provider(provider, credential)
        if changed:
            # Item ids from the previous catalog mean nothing to the new one.
            self.store.reset_statuses()
        self.log(f"Catalog provider set to {provider.value}")

    # ── Catalog ───────────────────────────────────────────────────────

    def search(
        self, query: str = "", sort: SortOrder = SortOrder.FEATURED, page: int = 0
    ) -> SearchPage:
        offset = max(page, 0) * PAGE_SIZE
        items, total = self.client.search(query, sort, offset)
        self.store.observe_listing(items, self.settings_store.manifest_snapshot(), self.provider)
        return SearchPage(items=items, total=total, offset=offset, page_size=PAGE_SIZE)

    def get_item(self, item_id: str) -> CatalogItem:
        return self.client.get_item(item_id)

    def list_versions(self, item_id: str, provider: Provider | None = None) -> list[CatalogVersion]:
        return self.clients.get(provider or self.provider).list_versions(item_id)

    def lookup(self, provider: Provider, item_id: str) -> CatalogItem:
        return self.clients.get(provider).get_item(item_id)

    def fetch_media(self, item: CatalogItem, url: str) -> bytes:
        """Icon / banner / screenshot bytes for the detail view."""
        return self.clients.get(item.provider).fetch_media(url)

    # ── Status ────────────────────────────────────────────────────────

    def status(self, item: CatalogItem) -> ResolvedStatus:
        return self.store.get_info(
            item.id, item.latest.id, self.settings_store.manifest_snapshot(), item.provider
        )

    def next_action(self, item: CatalogItem) -> ModAction:
        info = self.status(item)
        if info.status == InstallStatus.INSTALLED:
            return ModAction.REMOVE
        if info.status == InstallStatus.OUTDATED:
            return ModAction.UPDATE
        if not item.latest.id:
            return ModAction.NONE
        return ModAction.INSTALL

    def button_state(self, item: CatalogItem) -> ButtonState:
        if self.store.is_processing(item.id):
            return ButtonState("WORKING...", ModAction.NONE, disabled=True)

        action = self.next_action(item)
        if action == ModAction.NONE:
            return ButtonState("NO FILES", ModAction.NONE, disabled=True)
        if self.store.last_error(item.id):
            return ButtonState("RETRY", action, style="danger")
        text, style = _ACTION_BUTTONS[action]
        return ButtonState(text, action, style=style)

    # ── File helpers ──────────────────────────────────────────────────

    @staticmethod
    def _check_filename(filename: str) -> str:
        if not filename or Path(filename).name != filename or filename in (".", ".."):
            raise CatalogParseError(f"Catalog version has no usable filename: {filename!r}")
        return filename

    def _write_file(self, target: Path, data: bytes) -> None:
        part = target.with_name(target.name + ".part")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            part.write_bytes(data)
            os.replace(part, target)
        except OSError as e:
            try:
                part.unlink(missing_ok=True)
            except OSError:
                _log.warning("Could not clean up partial download %s", part)
            raise StorageError(f"Failed to write {target.name}: {e}") from e

    def _delete_file(self, path: Path) -> None:
        try:
            path.unlink()
            self.log(f"  Deleted {path.name}")
        except FileNotFoundError:
            self.log(f"  {path.name} already missing, nothing to delete")
        except OSError as e:
            raise StorageError(f"Failed to delete {path.name}: {e}") from e

    def _drop_installed(self, root: Path, filename: str) -> None:
        self._delete_file(root / filename)
        try:
            self.settings_store.remove_entry(filename)
        except StorageError as e:
            self.log(f"  Warning: manifest not saved after removing {filename}: {e}", logging.WARNING)

    # ── Install ───────────────────────────────────────────────────────

    def _install_locked(self, item: CatalogItem, version: CatalogVersion) -> str:
        root = self.install_root()
        if not version.download_url:
            raise NoDownloadUrlError(version.label)
        filename = self._check_filename(version.filename)

        self.log(f"Installing {item.name} {version.label} ({filename})...")
        data = self.clients.get(item.provider).download(version)
        self.log(f"  Downloaded {len(data)} bytes")

        previous = self.settings_store.find_by_item(item.id, item.provider)
        if previous is not None and previous[0] != filename:
            self.log(f"  Replacing previously installed {previous[0]}")
            self._drop_installed(root, previous[0])

        self._write_file(root / filename, data)

        entry = InstalledEntry(
            provider_item_id=item.id,
            display_name=item.name,
            installed_version_id=version.id,
            installed_version_label=version.label,
            provider=item.provider,
        )
        try:
            self.settings_store.add_entry(filename, entry)
        except StorageError as e:
            # The file is on disk; a later prune/rescan reconciles the manifest.
            self.log(f"  Warning: {filename} written but manifest not saved: {e}", logging.WARNING)

        self.store.set_info(
            item.id,
            item.latest.id,
            ResolvedStatus(
                status=InstallStatus.INSTALLED
                if version.id == item.latest.id
                else InstallStatus.OUTDATED,
                local_version_label=version.label,
                local_filename=filename,
                display_name=item.name,
            ),
        )
        return f"Installed {item.name} {version.label}"

    def install(self, item: CatalogItem, version: CatalogVersion | None = None) -> str:
        version = version or item.latest
        with self.store.begin(item.id):
            return self._install_locked(item, version)

    # ── Update ────────────────────────────────────────────────────────

    def update(self, item: CatalogItem, version: CatalogVersion | None = None) -> str:
        version = version or item.latest
        with self.store.begin(item.id):
            root = self.install_root()
            previous = self.settings_store.find_by_item(item.id, item.provider)
            if previous is not None:
                old_filename, old_entry = previous
                self.log(
                    f"Updating {item.name}: {old_entry.installed_version_label} -> {version.label}"
                )
                self._drop_installed(root, old_filename)
            else:
                self.log(f"No installed file recorded for {item.name}, installing fresh")
            self._install_locked(item, version)
            return f"Updated {item.name} to {version.label}"

    # ── Remove ────────────────────────────────────────────────────────

    def remove(self, item_id: str, provider: Provider | None = None) -> str:
        with self.store.begin(item_id):
            found = self.settings_store.find_by_item(item_id, provider)
            if found is None:
                raise NotLocallyInstalledError(item_id)
            filename, entry = found
            root = self.install_root()

            self.log(f"Removing {entry.display_name} ({filename})...")
            self._delete_file(root / filename)
            self.settings_store.remove_entry(filename)
            self.store.forget(item_id)
            return f"Removed {entry.display_name}"

    def delete_local(self, filename: str) -> str:
        """Delete one file from the mods folder.

        A file the manifest tracks is locked under its item id, the same key
        install/update/remove use; an unknown file is locked by its name.
        """
        self._check_filename(filename)
        entry = self.settings_store.get_entry(filename)
        with self.store.begin(entry.provider_item_id if entry else filename):
            root = self.install_root()
            self._delete_file(root / filename)
            if entry is not None:
                self.settings_store.remove_entry(filename)
                self.store.forget(entry.provider_item_id)
            return f"Deleted {filename}"

    # ── Dispatch ──────────────────────────────────────────────────────

    def _record(self, key: str, name: str, action: ModAction, call: Callable[[], str]) -> tuple[bool, str]:
        try:
            message = call()
        except BusyError as e:
            self.log(str(e), logging.WARNING)
            return False, str(e)
        except ModManagerError as e:
            self.store.set_error(key, str(e))
            self.log(f"{action.value.capitalize()} failed for {name}: {e}", logging.ERROR)
            return False, str(e)

        self.store.clear_error(key)
        self.log(message)
        return True, message

    def run(
        self, action: ModAction, item: CatalogItem, version: CatalogVersion | None = None
    ) -> tuple[bool, str]:
        """Run one button action and record the outcome for that mod.

        A failed action leaves its message in the ModStore so the button
        offers RETRY; retrying is just calling ``run`` again.
        """
        operations: dict[ModAction, Callable[[], str]] = {
            ModAction.INSTALL: lambda: self.install(item, version),
            ModAction.UPDATE: lambda: self.update(item, version),
            ModAction.REMOVE: lambda: self.remove(item.id, item.provider),
        }
        if action not in operations:
            return False, f"Nothing to do for {item.name}"
        return self._record(item.id, item.name, action, operations[action])

    # ── Installed page ────────────────────────────────────────────────

    @staticmethod
    def _local_key(mod: LocalMod) -> str:
        return mod.item_id or mod.filename

    def local_status(self, mod: LocalMod) -> ResolvedStatus | None:
        """Live status of a scanned file, when the catalog lookup succeeded."""
        if mod.catalog_item is None:
            return None
        return self.status(mod.catalog_item)

    def local_button_state(self, mod: LocalMod) -> ButtonState:
        """Button for one row of the installed page.

        Rows with a live catalog record get the same INSTALL/UPDATE/REMOVE
        logic as search results. Anything else can only be deleted.
        """
        if mod.catalog_item is not None:
            return self.button_state(mod.catalog_item)
        key = self._local_key(mod)
        if self.store.is_processing(key):
            return ButtonState("WORKING...", ModAction.NONE, disabled=True)
        if self.store.last_error(key):
            return ButtonState("RETRY", ModAction.REMOVE, style="danger")
        return ButtonState("REMOVE", ModAction.REMOVE, style="danger")

    def run_local(self, action: ModAction, mod: LocalMod) -> tuple[bool, str]:
        if mod.catalog_item is not None:
            return self.run(action, mod.catalog_item)
        if action != ModAction.REMOVE:
            return False, f"Nothing to do for {mod.display_name}"
        return self._record(
            self._local_key(mod), mod.display_name, action, lambda: self.delete_local(mod.filename)
        )

    # ── Local state ───────────────────────────────────────────────────

    def scan_installed(self, online: bool = True) -> list[LocalMod]:
        root = self.install_root()
        self.log(f"─── Scanning {root} ───")
        return scan(root, self.settings_store.manifest_snapshot(), self.lookup if online else None)

    def prune(self) -> list[str]:
        root = self.install_root()
        before = self.settings_store.manifest_snapshot()
        removed = self.settings_store.prune(root)
        for filename in removed:
            self.store.forget(before[filename].provider_item_id)
        if removed:
            self.log(f"Pruned {len(removed)} manifest entr{'y' if len(removed) == 1 else 'ies'} for missing files")
        return removed


# ── Bootstrap ─────────────────────────────────────────────────────────

def create_manager(
    settings_file: str | Path | None = None,
    *,
    game_folder_override: str | None = None,
    provider_override: Provider | None = None,
    clients: ClientFactory | None = None,
) -> ModManager:
    """Load settings and wire the catalog clients to them."""
    clients = clients or ClientFactory()
    store = SettingsStore(settings_file, on_credential_change=clients.reconfigure)
    store.load()
    manager = ModManager(store, clients)
    if provider_override is not None and provider_override != store.settings.active_provider:
        # The stored key belongs to the previous provider; it must not be sent elsewhere.
        manager.change_provider(provider_override, None)
        manager.log(f"No API key configured for {provider_override.value}; set one in Settings")
    if game_folder_override is not None:
        store.set_game_folder(game_folder_override)
    return manager
