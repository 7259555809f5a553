"""
Provider-neutral catalog records.

CurseForge and Modtale responses are both mapped into ``CatalogItem`` /
``CatalogVersion`` so nothing above the catalog clients needs to know which
provider produced a record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Provider(str, Enum):
    CURSEFORGE = "CurseForge"
    MODTALE = "Modtale"


class Theme(str, Enum):
    DARK = "Dark"
    LIGHT = "Light"


class ReleaseChannel(str, Enum):
    RELEASE = "Release"
    BETA = "Beta"
    ALPHA = "Alpha"
    UNKNOWN = "Unknown"


class SortOrder(str, Enum):
    FEATURED = "Featured"
    POPULARITY = "Popularity"
    LAST_UPDATED = "LastUpdated"


class InstallStatus(str, Enum):
    INSTALLED = "Installed"
    OUTDATED = "Outdated"
    NOT_INSTALLED = "NotInstalled"


@dataclass
class CatalogVersion:
    """One downloadable file of a catalog item."""

    id: str
    label: str  # e.g. "1.4.2"
    filename: str  # name the file gets in UserData/Mods
    download_url: str | None = None
    channel: ReleaseChannel = ReleaseChannel.UNKNOWN
    game_versions: list[str] = field(default_factory=list)
    uploaded_at: str = ""  # opaque, never parsed

    @classmethod
    def placeholder(cls) -> CatalogVersion:
        """Stand-in for items the provider lists without any file."""
        return cls(id="", label="No files", filename="")


@dataclass
class CatalogItem:
    id: str
    provider: Provider
    name: str
    latest: CatalogVersion
    summary: str = ""
    authors: str = ""
    download_count: int = 0
    categories: list[str] = field(default_factory=list)
    icon_url: str = ""
    banner_url: str = ""
    gallery_urls: list[str] = field(default_factory=list)
    website_url: str = ""


@dataclass
class ResolvedStatus:
    status: InstallStatus = InstallStatus.NOT_INSTALLED
    local_version_label: str | None = None
    local_filename: str | None = None
    display_name: str = ""


@dataclass
class SearchPage:
    items: list[CatalogItem]
    total: int
    offset: int
    page_size: int

    @property
    def page_count(self) -> int:
        if self.page_size <= 0:
            return 0
        return -(-self.total // self.page_size)
