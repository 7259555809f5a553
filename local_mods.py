"""
Local mod state: install status resolution and the installed-folder scan.

Nothing here mutates the manifest. ``resolve_status`` is pure; ``scan`` only
reads the mods folder (creating it when missing).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional

from catalog_models import CatalogItem, InstallStatus, Provider, ResolvedStatus
from errors import ModManagerError
from settings_store import InstalledEntry

SUPPORTED_EXTENSIONS = (".jar", ".zip")
UNKNOWN_VERSION = "Unknown"

_log = logging.getLogger(__name__)

CatalogLookup = Callable[[Provider, str], CatalogItem]


# ── Status ────────────────────────────────────────────────────────────


def resolve_status(
    manifest: Mapping[str, InstalledEntry],
    item_id: str,
    latest_version_id: str,
    provider: Optional[Provider] = None,
) -> ResolvedStatus:
    """Compare the catalog's latest version id with the manifest.

    The first matching entry in iteration order decides when the manifest
    holds several entries for the same item.
    """
    for filename, entry in manifest.items():
        if entry.provider_item_id != item_id:
            continue
        if provider is not None and entry.provider != provider:
            continue
        if entry.installed_version_id == latest_version_id:
            status = InstallStatus.INSTALLED
        else:
            status = InstallStatus.OUTDATED
        return ResolvedStatus(
            status=status,
            local_version_label=entry.installed_version_label,
            local_filename=filename,
            display_name=entry.display_name,
        )
    return ResolvedStatus()


# ── Name inference ────────────────────────────────────────────────────


def strip_package_extension(filename: str) -> str:
    lower = filename.lower()
    for ext in SUPPORTED_EXTENSIONS:
        if lower.endswith(ext):
            return filename[: -len(ext)]
    return filename


def extract_base_name(filename: str) -> tuple[str, str]:
    """Split ``CoolMod-1.2.3.jar`` into ``("CoolMod", "1.2.3")``.

    The split happens at the first hyphen followed by a digit or ``v``.
    """
    stem = strip_package_extension(filename)
    for i, ch in enumerate(stem[:-1]):
        if ch == "-" and (stem[i + 1].isdigit() or stem[i + 1] == "v"):
            return stem[:i], stem[i + 1:]
    return stem, UNKNOWN_VERSION


# ── Scan ──────────────────────────────────────────────────────────────


@dataclass
class LocalMod:
    """One mod file found in UserData/Mods."""

    filename: str
    display_name: str
    version_label: str
    item_id: str | None = None  # None when the manifest does not know the file
    provider: Provider | None = None
    catalog_item: CatalogItem | None = None

    @property
    def is_tracked(self) -> bool:
        return self.item_id is not None


def _local_record(filename: str, entry: InstalledEntry | None) -> LocalMod:
    if entry is not None:
        return LocalMod(
            filename=filename,
            display_name=entry.display_name,
            version_label=entry.installed_version_label,
            item_id=entry.provider_item_id,
            provider=entry.provider,
        )
    base_name, version = extract_base_name(filename)
    return LocalMod(
        filename=filename,
        display_name=base_name.replace("-", " "),
        version_label=version,
    )


def list_mod_files(install_root: Path) -> list[Path]:
    install_root.mkdir(parents=True, exist_ok=True)
    return [
        f for f in sorted(install_root.iterdir())
        if f.is_file() and f.suffix.lower() in SUPPORTED_EXTENSIONS
    ]


def scan(
    install_root: str | Path,
    manifest: Mapping[str, InstalledEntry],
    lookup: CatalogLookup | None = None,
) -> list[LocalMod]:
    root = Path(install_root)
    mods: list[LocalMod] = []

    for f in list_mod_files(root):
        entry = manifest.get(f.name)
        record = _local_record(f.name, entry)

        if entry is not None and lookup is not None:
            try:
                item = lookup(entry.provider, entry.provider_item_id)
            except ModManagerError as e:
                _log.warning(
                    "Catalog lookup failed for %s (%s %s): %s",
                    f.name, entry.provider.value, entry.provider_item_id, e,
                )
            else:
                record.catalog_item = item
                record.display_name = item.name or record.display_name

        mods.append(record)

    mods.sort(key=lambda m: m.display_name.lower())
    _log.info("Scan of %s found %d mod file(s)", root, len(mods))
    return mods


def filter_local(mods: list[LocalMod], query: str) -> list[LocalMod]:
    q = query.strip().lower()
    if not q:
        return list(mods)
    return [m for m in mods if q in m.display_name.lower() or q in m.filename.lower()]
