"""
Catalog clients for the two supported mod providers.

Each provider gets its own client implementing the ``CatalogClient``
protocol; raw JSON is validated with pydantic response models and mapped into
the provider-neutral records in ``catalog_models``.

Provider quirks
---------------
CurseForge
    Numeric ids. Search pages by item offset (``index``) and sorts by
    ``sortField`` (1 = featured, 2 = popularity, 3 = last updated). Versions
    come from ``/mods/{id}/files``. Requires an API key.

Modtale
    UUID-like ids. Search pages by page number (``offset // 20``). Versions are
    embedded in the project document. Download URLs may be CDN-relative.
    The API key is optional for public access.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Protocol, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from catalog_models import CatalogItem, CatalogVersion, Provider, ReleaseChannel, SortOrder
from errors import CatalogParseError, InvalidIdentifierError, NoDownloadUrlError
from http_client import HttpClient

CURSEFORGE_API = "https://api.curseforge.com/v1"
HYTALE_GAME_ID = 70216
MODTALE_API = "https://api.modtale.net/api/v1"
MODTALE_CDN = "https://cdn.modtale.net"
PAGE_SIZE = 20

_MODTALE_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")

_log = logging.getLogger(__name__)

_M = TypeVar("_M", bound=BaseModel)


def _validate(model: type[_M], data: Any, what: str) -> _M:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise CatalogParseError(f"Malformed {what} response: {e.error_count()} error(s)\n{e}") from e


class CatalogClient(Protocol):
    provider: Provider

    def search(self, query: str, sort: SortOrder, offset: int) -> tuple[list[CatalogItem], int]: ...

    def get_item(self, item_id: str) -> CatalogItem: ...

    def list_versions(self, item_id: str) -> list[CatalogVersion]: ...

    def download(self, version: CatalogVersion) -> bytes: ...

    def fetch_media(self, url: str) -> bytes: ...

    def set_credential(self, key: str | None) -> None: ...


# ── CurseForge response schema ────────────────────────────────────────


class _CfModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class CfFile(_CfModel):
    id: int
    display_name: str
    file_name: str
    file_date: str = ""
    release_type: int = 0
    download_url: str | None = None
    game_versions: list[str] = Field(default_factory=list)


class CfNamed(_CfModel):
    name: str


class CfAsset(_CfModel):
    thumbnail_url: str = ""
    url: str = ""


class CfLinks(_CfModel):
    website_url: str = ""


class CfMod(_CfModel):
    id: int
    name: str
    summary: str = ""
    links: CfLinks = Field(default_factory=CfLinks)
    download_count: float = 0
    categories: list[CfNamed] = Field(default_factory=list)
    authors: list[CfNamed] = Field(default_factory=list)
    logo: CfAsset | None = None
    screenshots: list[CfAsset] = Field(default_factory=list)
    latest_files: list[CfFile] = Field(default_factory=list)


class CfPagination(_CfModel):
    index: int = 0
    page_size: int = PAGE_SIZE
    total_count: int = 0


class CfSearchResponse(_CfModel):
    data: list[CfMod]
    pagination: CfPagination | None = None


class CfModResponse(_CfModel):
    data: CfMod


class CfFilesResponse(_CfModel):
    data: list[CfFile]


_CF_CHANNELS = {1: ReleaseChannel.RELEASE, 2: ReleaseChannel.BETA, 3: ReleaseChannel.ALPHA}
_CF_SORT_FIELDS = {SortOrder.FEATURED: 1, SortOrder.POPULARITY: 2, SortOrder.LAST_UPDATED: 3}


def curseforge_version(file: CfFile) -> CatalogVersion:
    return CatalogVersion(
        id=str(file.id),
        label=file.display_name,
        filename=file.file_name,
        download_url=file.download_url,
        channel=_CF_CHANNELS.get(file.release_type, ReleaseChannel.UNKNOWN),
        game_versions=list(file.game_versions),
        uploaded_at=file.file_date,
    )


def curseforge_item(mod: CfMod) -> CatalogItem:
    icon = mod.logo.thumbnail_url if mod.logo else ""
    banner = mod.screenshots[0].url if mod.screenshots else icon
    latest = curseforge_version(mod.latest_files[0]) if mod.latest_files else CatalogVersion.placeholder()
    return CatalogItem(
        id=str(mod.id),
        provider=Provider.CURSEFORGE,
        name=mod.name,
        latest=latest,
        summary=mod.summary,
        authors=", ".join(a.name for a in mod.authors),
        download_count=int(mod.download_count),
        categories=[c.name for c in mod.categories],
        icon_url=icon,
        banner_url=banner,
        gallery_urls=[s.thumbnail_url for s in mod.screenshots[1:4]],
        website_url=mod.links.website_url,
    )


# ── Modtale response schema ───────────────────────────────────────────


class _MtModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class MtFile(_MtModel):
    id: str
    version_number: str = Field(validation_alias=AliasChoices("versionNumber", "version_number"))
    supported_versions: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("supportedVersions", "gameVersions"),
    )
    download_url: str | None = Field(
        default=None, validation_alias=AliasChoices("downloadUrl", "fileUrl")
    )
    created_at: str = Field(default="", validation_alias=AliasChoices("createdAt", "releaseDate"))
    channel: str | None = None


class MtMod(_MtModel):
    id: str
    name: str = Field(validation_alias=AliasChoices("name", "title"))
    slug: str | None = None
    summary: str | None = Field(default=None, validation_alias=AliasChoices("summary", "description"))
    author: str = ""
    icon_url: str | None = Field(default=None, validation_alias=AliasChoices("iconUrl", "imageUrl"))
    banner_url: str | None = Field(default=None, validation_alias=AliasChoices("bannerUrl", "banner_url"))
    download_count: int = Field(default=0, validation_alias=AliasChoices("downloadCount", "download_count"))
    categories: list[str] | None = None
    versions: list[MtFile] | None = None


class MtPage(_MtModel):
    content: list[MtMod]
    total_pages: int = Field(default=0, validation_alias=AliasChoices("totalPages", "total_pages"))
    total_elements: int = Field(default=0, validation_alias=AliasChoices("totalElements", "total_elements"))


_MT_CHANNELS = {"BETA": ReleaseChannel.BETA, "ALPHA": ReleaseChannel.ALPHA}
_MT_SORT_KEYS = {
    SortOrder.FEATURED: "relevance",
    SortOrder.POPULARITY: "downloads",
    SortOrder.LAST_UPDATED: "updated",
}


def modtale_version(file: MtFile) -> CatalogVersion:
    if file.download_url:
        filename = file.download_url.rstrip("/").split("/")[-1]
    else:
        filename = f"{file.version_number}.jar"
    return CatalogVersion(
        id=file.id,
        label=file.version_number,
        filename=filename,
        download_url=file.download_url,
        channel=_MT_CHANNELS.get(file.channel or "", ReleaseChannel.RELEASE),
        game_versions=list(file.supported_versions),
        uploaded_at=file.created_at,
    )


def modtale_item(mod: MtMod) -> CatalogItem:
    icon = mod.icon_url or ""
    latest = modtale_version(mod.versions[0]) if mod.versions else CatalogVersion.placeholder()
    return CatalogItem(
        id=mod.id,
        provider=Provider.MODTALE,
        name=mod.name,
        latest=latest,
        summary=mod.summary or "",
        authors=mod.author,
        download_count=mod.download_count,
        categories=list(mod.categories or []),
        icon_url=icon,
        banner_url=mod.banner_url or icon,
        website_url=f"https://modtale.net/project/{mod.slug or mod.id}",
    )


# ── Clients ───────────────────────────────────────────────────────────


class _BaseClient:
    provider: Provider

    def __init__(self, http: HttpClient):
        self.http = http

    def set_credential(self, key: str | None) -> None:
        self.http.set_credential(key)

    def resolve_download_url(self, url: str) -> str:
        return url

    def download(self, version: CatalogVersion) -> bytes:
        if not version.download_url:
            raise NoDownloadUrlError(version.label)
        return self.http.fetch(self.resolve_download_url(version.download_url))

    def fetch_media(self, url: str) -> bytes:
        return self.http.fetch(self.resolve_download_url(url))


class CurseForgeClient(_BaseClient):
    provider = Provider.CURSEFORGE

    def __init__(self, http: HttpClient | None = None):
        super().__init__(http or HttpClient(CURSEFORGE_API, "x-api-key"))

    @staticmethod
    def check_id(item_id: str) -> int:
        if not item_id.isdigit():
            raise InvalidIdentifierError(
                f"Invalid ID format for CurseForge (expected number): {item_id!r}"
            )
        return int(item_id)

    def search(self, query: str, sort: SortOrder, offset: int) -> tuple[list[CatalogItem], int]:
        params = {
            "gameId": HYTALE_GAME_ID,
            "searchFilter": query.strip(),
            "category": 0,
            "pageSize": PAGE_SIZE,
            "sortField": _CF_SORT_FIELDS[sort],
            "sortOrder": "desc",
            "index": offset,
        }
        body = _validate(CfSearchResponse, self.http.get_json("mods/search", params), "CurseForge search")
        total = body.pagination.total_count if body.pagination else len(body.data)
        return [curseforge_item(m) for m in body.data], total

    def get_item(self, item_id: str) -> CatalogItem:
        numeric = self.check_id(item_id)
        body = _validate(CfModResponse, self.http.get_json(f"mods/{numeric}"), "CurseForge mod")
        return curseforge_item(body.data)

    def list_versions(self, item_id: str) -> list[CatalogVersion]:
        numeric = self.check_id(item_id)
        data = self.http.get_json(f"mods/{numeric}/files", {"pageSize": 50})
        body = _validate(CfFilesResponse, data, "CurseForge files")
        return [curseforge_version(f) for f in body.data]


class ModtaleClient(_BaseClient):
    provider = Provider.MODTALE

    def __init__(self, http: HttpClient | None = None):
        super().__init__(http or HttpClient(MODTALE_API, "X-MODTALE-KEY"))

    @staticmethod
    def check_id(item_id: str) -> str:
        if not _MODTALE_ID_RE.match(item_id):
            raise InvalidIdentifierError(f"Invalid ID format for Modtale: {item_id!r}")
        return item_id

    def search(self, query: str, sort: SortOrder, offset: int) -> tuple[list[CatalogItem], int]:
        params = {
            "q": query,
            "sort": _MT_SORT_KEYS[sort],
            "page": offset // PAGE_SIZE,
            "size": PAGE_SIZE,
        }
        _log.debug("Modtale search page %d (limit %d)", params["page"], PAGE_SIZE)
        page = _validate(MtPage, self.http.get_json("projects", params), "Modtale search")
        return [modtale_item(m) for m in page.content], page.total_elements

    def _get_mod(self, item_id: str) -> MtMod:
        self.check_id(item_id)
        return _validate(MtMod, self.http.get_json(f"projects/{item_id}"), "Modtale project")

    def get_item(self, item_id: str) -> CatalogItem:
        return modtale_item(self._get_mod(item_id))

    def list_versions(self, item_id: str) -> list[CatalogVersion]:
        return [modtale_version(f) for f in self._get_mod(item_id).versions or []]

    def resolve_download_url(self, url: str) -> str:
        if url.startswith("http"):
            return url
        return f"{MODTALE_CDN}/{url.lstrip('/')}"


class ClientFactory:
    """Owns one client per provider and routes credential changes to it."""

    def __init__(self, clients: dict[Provider, CatalogClient] | None = None):
        self._clients: dict[Provider, CatalogClient] = clients or {
            Provider.CURSEFORGE: CurseForgeClient(),
            Provider.MODTALE: ModtaleClient(),
        }

    def get(self, provider: Provider) -> CatalogClient:
        return self._clients[provider]

    def reconfigure(self, provider: Provider, credential: str | None) -> None:
        self._clients[provider].set_credential(credential)
