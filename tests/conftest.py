"""
Shared fixtures and helpers for the Hytale Mod Manager test suite.
"""

import threading

import pytest

from catalog_clients import ClientFactory
from catalog_models import CatalogItem, CatalogVersion, Provider, ReleaseChannel
from errors import NoDownloadUrlError, TransportError
from mod_manager import ModManager
from settings_store import SettingsStore


def make_version(version_id: str, filename: str, label: str | None = None, url: str | None = "auto"):
    if url == "auto":
        url = f"https://files.example/{filename}"
    return CatalogVersion(
        id=version_id,
        label=label or version_id,
        filename=filename,
        download_url=url,
        channel=ReleaseChannel.RELEASE,
    )


def make_item(item_id: str, latest: CatalogVersion, name: str = "Cool Mod", provider=Provider.CURSEFORGE):
    return CatalogItem(id=item_id, provider=provider, name=name, latest=latest)


class FakeCatalogClient:
    """In-memory stand-in for a provider client."""

    def __init__(self, provider: Provider = Provider.CURSEFORGE):
        self.provider = provider
        self.items: dict[str, CatalogItem] = {}
        self.payloads: dict[str, bytes] = {}
        self.credential: str | None = None
        self.download_calls: list[str] = []
        self.fail_downloads = False
        self.gate: threading.Event | None = None  # downloads wait on it when set
        self.api_gate: threading.Event | None = None  # search / list_versions wait on it when set
        self.entered = threading.Event()
        self.search_queries: list[str] = []
        self.media: dict[str, bytes] = {}
        self.media_calls: list[str] = []

    def add(self, item: CatalogItem, *extra_versions: CatalogVersion):
        self.items[item.id] = item
        for v in (item.latest, *extra_versions):
            if v.download_url:
                self.payloads[v.download_url] = f"bytes of {v.filename}".encode()
        return item

    def _wait_api(self):
        if self.api_gate is not None:
            self.api_gate.wait(timeout=5)

    def search(self, query, sort, offset):
        self.search_queries.append(query)
        self._wait_api()
        hits = [i for i in self.items.values() if query.lower() in i.name.lower()]
        return hits[offset:offset + 20], len(hits)

    def get_item(self, item_id):
        if item_id not in self.items:
            raise TransportError(f"API error 404: {item_id}", status_code=404)
        return self.items[item_id]

    def list_versions(self, item_id):
        self._wait_api()
        return [self.get_item(item_id).latest]

    def download(self, version):
        if not version.download_url:
            raise NoDownloadUrlError(version.label)
        self.download_calls.append(version.download_url)
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.fail_downloads:
            raise TransportError("Download failed: HTTP 503", status_code=503)
        return self.payloads[version.download_url]

    def fetch_media(self, url):
        self.media_calls.append(url)
        if url not in self.media:
            raise TransportError("Download failed: HTTP 404", status_code=404)
        return self.media[url]

    def set_credential(self, key):
        self.credential = key


@pytest.fixture
def game_folder(tmp_path):
    folder = tmp_path / "Hytale"
    folder.mkdir()
    return folder


@pytest.fixture
def mods_dir(game_folder):
    return game_folder / "UserData" / "Mods"


@pytest.fixture
def fake_clients():
    return {
        Provider.CURSEFORGE: FakeCatalogClient(Provider.CURSEFORGE),
        Provider.MODTALE: FakeCatalogClient(Provider.MODTALE),
    }


@pytest.fixture
def settings_store(tmp_path, fake_clients):
    factory = ClientFactory(fake_clients)
    store = SettingsStore(tmp_path / "config" / "settings.json", on_credential_change=factory.reconfigure)
    store.load()
    return store


@pytest.fixture
def manager(settings_store, fake_clients, game_folder):
    settings_store.set_game_folder(game_folder)
    return ModManager(settings_store, ClientFactory(fake_clients), log_callback=lambda _: None)


@pytest.fixture
def cf_client(fake_clients):
    return fake_clients[Provider.CURSEFORGE]
