"""
Persisted settings and install manifest.

The whole document lives in one JSON file (``settings.json`` under the
platform config directory) and is rewritten after every change:

{
    "credential": "...",
    "game_folder": "C:/Games/Hytale",
    "theme": "Dark",
    "active_provider": "CurseForge",
    "installed": {
        "CoolMod-1.2.3.jar": {
            "provider_item_id": "42",
            "display_name": "Cool Mod",
            "installed_version_id": "5012",
            "installed_version_label": "1.2.3",
            "provider": "CurseForge"
        }
    }
}

The manifest is keyed by the installed filename. Every mutation goes through
``SettingsStore`` so the mutate-and-save sequence is serialized across worker
threads.
"""

from __future__ import annotations

import logging
import os
import shutil
import sys
import threading
from collections import Counter
from pathlib import Path
from typing import Callable, Optional

from pydantic import BaseModel, Field, ValidationError

from catalog_models import Provider, Theme
from errors import StorageError

APP_DIR_NAME = "hytale-mod-manager"
SETTINGS_FILENAME = "settings.json"

_log = logging.getLogger(__name__)

CredentialCallback = Callable[[Provider, Optional[str]], None]


def config_dir() -> Path:
    if sys.platform == "win32" and os.environ.get("APPDATA"):
        base = Path(os.environ["APPDATA"])
    elif os.environ.get("XDG_CONFIG_HOME"):
        base = Path(os.environ["XDG_CONFIG_HOME"])
    else:
        base = Path.home() / ".config"
    return base / APP_DIR_NAME


def default_settings_path() -> Path:
    return config_dir() / SETTINGS_FILENAME


def mods_dir_for(game_folder: Path) -> Path:
    return Path(game_folder) / "UserData" / "Mods"


class InstalledEntry(BaseModel):
    """Manifest record for one installed mod file."""

    provider_item_id: str
    display_name: str
    installed_version_id: str
    installed_version_label: str
    provider: Provider


class Settings(BaseModel):
    credential: str | None = None
    game_folder: Path | None = None
    theme: Theme = Theme.DARK
    active_provider: Provider = Provider.CURSEFORGE
    installed: dict[str, InstalledEntry] = Field(default_factory=dict)

    @property
    def install_root(self) -> Path | None:
        if self.game_folder is None:
            return None
        return mods_dir_for(self.game_folder)


class SettingsStore:
    def __init__(
        self,
        path: str | Path | None = None,
        on_credential_change: CredentialCallback | None = None,
    ):
        self.path = Path(path) if path is not None else default_settings_path()
        self._on_credential_change = on_credential_change
        self._lock = threading.RLock()
        self.settings = Settings()

    # ── Load / Save ───────────────────────────────────────────────────

    def load(self) -> Settings:
        with self._lock:
            if not self.path.exists():
                self.settings = Settings()
                try:
                    self.save()
                    _log.info("Created initial settings file at %s", self.path)
                except StorageError as e:
                    _log.warning("Failed to create initial settings file: %s", e)
            else:
                self.settings = self._read_or_default()

            self._warn_duplicate_items()
            self._push_credential()
            return self.settings

    def _read_or_default(self) -> Settings:
        try:
            settings = Settings.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError, ValueError) as e:
            _log.error("Failed to parse %s: %s. Using defaults.", self.path, e)
            backup = self.path.with_name(self.path.name + ".bak")
            try:
                shutil.copy2(self.path, backup)
                _log.info("Unreadable settings preserved at %s", backup)
            except OSError as copy_err:
                _log.warning("Could not back up unreadable settings: %s", copy_err)
            return Settings()

        _log.info(
            "Loaded settings from %s: %d installed mod(s) recorded",
            self.path,
            len(settings.installed),
        )
        return settings

    def save(self) -> None:
        with self._lock:
            data = self.settings.model_dump_json(indent=2)
            tmp = self.path.with_name(self.path.name + ".tmp")
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp.write_text(data, encoding="utf-8")
                os.replace(tmp, self.path)
            except OSError as e:
                raise StorageError(f"Failed to save settings to {self.path}: {e}") from e

    def _push_credential(self) -> None:
        if self._on_credential_change is not None:
            self._on_credential_change(self.settings.active_provider, self.settings.credential)

    def _warn_duplicate_items(self) -> None:
        counts = Counter(
            (e.provider, e.provider_item_id) for e in self.settings.installed.values()
        )
        for (provider, item_id), n in counts.items():
            if n > 1:
                _log.warning(
                    "Manifest has %d entries for %s mod %s; the first one wins",
                    n, provider.value, item_id,
                )

    # ── Manifest ──────────────────────────────────────────────────────

    def add_entry(self, filename: str, entry: InstalledEntry) -> None:
        with self._lock:
            self.settings.installed[filename] = entry
            self.save()

    def remove_entry(self, filename: str) -> bool:
        with self._lock:
            if self.settings.installed.pop(filename, None) is None:
                return False
            self.save()
            return True

    def get_entry(self, filename: str) -> InstalledEntry | None:
        with self._lock:
            return self.settings.installed.get(filename)

    def find_by_item(
        self, item_id: str, provider: Provider | None = None
    ) -> tuple[str, InstalledEntry] | None:
        with self._lock:
            for filename, entry in self.settings.installed.items():
                if entry.provider_item_id != item_id:
                    continue
                if provider is not None and entry.provider != provider:
                    continue
                return filename, entry
            return None

    def manifest_snapshot(self) -> dict[str, InstalledEntry]:
        with self._lock:
            return dict(self.settings.installed)

    def prune(self, install_root: Path | None = None) -> list[str]:
        """Drop entries whose file is gone from the install root."""
        with self._lock:
            root = install_root or self.settings.install_root
            if root is None:
                return []
            stale = [name for name in self.settings.installed if not (Path(root) / name).exists()]
            if not stale:
                return []
            for name in stale:
                _log.info("Pruning manifest entry for missing file %s", name)
                del self.settings.installed[name]
            self.save()
            return stale

    # ── Preferences ───────────────────────────────────────────────────

    @property
    def install_root(self) -> Path | None:
        return self.settings.install_root

    def change_provider(self, provider: Provider, credential: str | None) -> None:
        with self._lock:
            self.settings.active_provider = provider
            self.settings.credential = credential or None
            # Clients must see the new key before anyone issues another request.
            self._push_credential()
            self.save()

    def set_game_folder(self, game_folder: str | Path | None) -> None:
        with self._lock:
            self.settings.game_folder = Path(game_folder) if game_folder else None
            self.save()

    def set_theme(self, theme: Theme) -> None:
        with self._lock:
            self.settings.theme = theme
            self.save()

    def toggle_theme(self) -> Theme:
        with self._lock:
            new = Theme.LIGHT if self.settings.theme == Theme.DARK else Theme.DARK
            self.set_theme(new)
            return new
