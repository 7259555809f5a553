"""
Error types raised by the Hytale Mod Manager core.

Every failure that reaches a caller is a ``ModManagerError`` carrying a
message fit for display. The GUI worker turns it into a failed result; tests
assert on the concrete subclass.
"""

from __future__ import annotations


class ModManagerError(Exception):
    """Base class for all mod manager failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


# ── Configuration ─────────────────────────────────────────────────────


class ConfigError(ModManagerError):
    pass


class NoInstallRootError(ConfigError):
    def __init__(self):
        super().__init__("No game folder set. Open Settings to choose one.")


# ── Lookup ────────────────────────────────────────────────────────────


class NotFoundError(ModManagerError):
    pass


class NotLocallyInstalledError(NotFoundError):
    def __init__(self, item_id: str):
        super().__init__(f"Mod {item_id} is not installed")
        self.item_id = item_id


class NoDownloadUrlError(ModManagerError):
    def __init__(self, version_label: str):
        super().__init__(f"No download URL available for version '{version_label}'")


class InvalidIdentifierError(ModManagerError):
    pass


# ── Remote ────────────────────────────────────────────────────────────


class TransportError(ModManagerError):
    """Network or HTTP failure talking to a catalog or downloading a file."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CatalogParseError(ModManagerError):
    pass


# ── Local ─────────────────────────────────────────────────────────────


class StorageError(ModManagerError):
    """Filesystem write/delete failure, including persisting settings."""


class BusyError(ModManagerError):
    def __init__(self, item_id: str):
        super().__init__(f"An operation is already running for mod {item_id}")
        self.item_id = item_id
