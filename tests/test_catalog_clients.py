"""
Tests for the CurseForge / Modtale clients against canned HTTP responses.
"""

from unittest.mock import MagicMock

import pytest
import requests

from catalog_clients import (
    MODTALE_CDN,
    ClientFactory,
    CurseForgeClient,
    ModtaleClient,
)
from catalog_models import CatalogVersion, Provider, ReleaseChannel, SortOrder
from errors import (
    CatalogParseError,
    InvalidIdentifierError,
    NoDownloadUrlError,
    TransportError,
)
from http_client import USER_AGENT, HttpClient


# ── helpers ──────────────────────────────────────────────────────────────────

def fake_response(payload=None, status=200, content=b""):
    response = MagicMock()
    response.ok = status < 400
    response.status_code = status
    response.text = "error body"
    response.content = content
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


def stub_session(*responses):
    session = requests.Session()
    session.get = MagicMock(side_effect=list(responses))
    return session


def cf_client(*responses):
    session = stub_session(*responses)
    return CurseForgeClient(HttpClient("https://api.test/v1", "x-api-key", session=session)), session


def mt_client(*responses):
    session = stub_session(*responses)
    return ModtaleClient(HttpClient("https://mt.test/api/v1", "X-MODTALE-KEY", session=session)), session


CF_FILE = {
    "id": 555,
    "displayName": "Cool Mod 1.2",
    "fileName": "CoolMod-1.2.jar",
    "fileDate": "2026-01-02T00:00:00Z",
    "releaseType": 2,
    "downloadUrl": "https://edge.test/CoolMod-1.2.jar",
    "gameVersions": ["Early Access"],
}

CF_MOD = {
    "id": 42,
    "name": "Cool Mod",
    "summary": "Makes things cool",
    "links": {"websiteUrl": "https://www.curseforge.com/hytale/mods/cool-mod"},
    "downloadCount": 1234.0,
    "categories": [{"name": "Tools"}],
    "authors": [{"name": "alice"}, {"name": "bob"}],
    "logo": {"thumbnailUrl": "https://img.test/logo.png", "url": "https://img.test/logo-big.png"},
    "screenshots": [
        {"thumbnailUrl": "https://img.test/s0t.png", "url": "https://img.test/s0.png"},
        {"thumbnailUrl": "https://img.test/s1t.png", "url": "https://img.test/s1.png"},
    ],
    "latestFiles": [CF_FILE],
    "unusedField": True,
}

MT_PROJECT = {
    "id": "a1b2c3d4-0000-1111-2222-333344445555",
    "title": "Sky Islands",
    "slug": "sky-islands",
    "description": "Floating land",
    "author": "carol",
    "imageUrl": "https://img.test/sky.png",
    "downloadCount": 77,
    "categories": ["World Gen"],
    "versions": [
        {
            "id": "ver-2",
            "versionNumber": "2.0.0",
            "gameVersions": ["EA"],
            "fileUrl": "/files/sky-islands-2.0.0.jar",
            "releaseDate": "2026-02-01",
            "channel": "BETA",
        },
        {"id": "ver-1", "versionNumber": "1.0.0"},
    ],
}


# ── HttpClient ───────────────────────────────────────────────────────────────

def test_session_carries_user_agent_and_credential():
    http = HttpClient("https://api.test/v1/", "x-api-key", session=requests.Session())

    assert http.session.headers["User-Agent"] == USER_AGENT
    assert http.url_for("/mods/1") == "https://api.test/v1/mods/1"
    assert not http.has_credential

    http.set_credential("secret")
    assert http.session.headers["x-api-key"] == "secret"
    assert http.has_credential

    http.set_credential(None)
    assert "x-api-key" not in http.session.headers


def test_http_error_becomes_transport_error():
    client, _ = cf_client(fake_response(status=403))

    with pytest.raises(TransportError) as exc:
        client.get_item("42")
    assert exc.value.status_code == 403


def test_network_failure_becomes_transport_error():
    session = requests.Session()
    session.get = MagicMock(side_effect=requests.ConnectionError("offline"))
    client = CurseForgeClient(HttpClient("https://api.test/v1", "x-api-key", session=session))

    with pytest.raises(TransportError) as exc:
        client.search("", SortOrder.FEATURED, 0)
    assert exc.value.status_code is None


def test_invalid_json_becomes_parse_error():
    client, _ = cf_client(fake_response(ValueError("Expecting value")))

    with pytest.raises(CatalogParseError):
        client.get_item("42")


# ── CurseForge ───────────────────────────────────────────────────────────────

def test_curseforge_search_maps_items():
    body = {"data": [CF_MOD], "pagination": {"index": 20, "pageSize": 20, "totalCount": 41}}
    client, session = cf_client(fake_response(body))

    items, total = client.search(" cool ", SortOrder.POPULARITY, 20)

    assert total == 41
    url = session.get.call_args.args[0]
    params = session.get.call_args.kwargs["params"]
    assert url == "https://api.test/v1/mods/search"
    assert params["gameId"] == 70216
    assert params["searchFilter"] == "cool"
    assert params["sortField"] == 2
    assert params["index"] == 20
    assert params["pageSize"] == 20

    [item] = items
    assert item.id == "42"
    assert item.provider == Provider.CURSEFORGE
    assert item.authors == "alice, bob"
    assert item.download_count == 1234
    assert item.categories == ["Tools"]
    assert item.icon_url == "https://img.test/logo.png"
    assert item.banner_url == "https://img.test/s0.png"
    assert item.gallery_urls == ["https://img.test/s1t.png"]
    assert item.latest.id == "555"
    assert item.latest.filename == "CoolMod-1.2.jar"
    assert item.latest.channel == ReleaseChannel.BETA


def test_curseforge_search_without_pagination_counts_page():
    client, _ = cf_client(fake_response({"data": [CF_MOD, {**CF_MOD, "id": 43}]}))

    _, total = client.search("", SortOrder.FEATURED, 0)

    assert total == 2


def test_curseforge_mod_without_files_gets_placeholder():
    mod = {**CF_MOD, "latestFiles": [], "logo": None, "screenshots": []}
    client, _ = cf_client(fake_response({"data": mod}))

    item = client.get_item("42")

    assert item.latest == CatalogVersion.placeholder()
    assert item.banner_url == ""


def test_curseforge_list_versions():
    client, session = cf_client(fake_response({"data": [CF_FILE, {**CF_FILE, "id": 554, "downloadUrl": None}]}))

    versions = client.list_versions("42")

    assert session.get.call_args.args[0] == "https://api.test/v1/mods/42/files"
    assert [v.id for v in versions] == ["555", "554"]
    assert versions[1].download_url is None


@pytest.mark.parametrize("bad_id", ["", "abc", "12a", "a1b2c3d4-0000"])
def test_curseforge_rejects_non_numeric_ids(bad_id):
    client, session = cf_client()

    with pytest.raises(InvalidIdentifierError):
        client.get_item(bad_id)
    session.get.assert_not_called()


def test_curseforge_malformed_document():
    client, _ = cf_client(fake_response({"data": {"name": "no id"}}))

    with pytest.raises(CatalogParseError):
        client.get_item("42")


# ── Modtale ──────────────────────────────────────────────────────────────────

def test_modtale_search_pages_by_page_number():
    body = {"content": [MT_PROJECT], "totalPages": 3, "totalElements": 45}
    client, session = mt_client(fake_response(body))

    items, total = client.search("sky", SortOrder.LAST_UPDATED, 40)

    params = session.get.call_args.kwargs["params"]
    assert params["page"] == 2
    assert params["size"] == 20
    assert params["q"] == "sky"
    assert total == 45
    [item] = items
    assert item.name == "Sky Islands"
    assert item.summary == "Floating land"
    assert item.banner_url == "https://img.test/sky.png"
    assert item.website_url == "https://modtale.net/project/sky-islands"


def test_modtale_versions_and_filenames():
    client, _ = mt_client(fake_response(MT_PROJECT))

    latest, older = client.list_versions(MT_PROJECT["id"])

    assert latest.filename == "sky-islands-2.0.0.jar"
    assert latest.channel == ReleaseChannel.BETA
    assert latest.game_versions == ["EA"]
    assert older.filename == "1.0.0.jar"
    assert older.download_url is None
    assert older.channel == ReleaseChannel.RELEASE


def test_modtale_download_resolves_cdn_relative_url():
    client, session = mt_client(fake_response(content=b"jar bytes"))
    version = CatalogVersion(id="ver-2", label="2.0.0", filename="x.jar", download_url="/files/x.jar")

    assert client.download(version) == b"jar bytes"
    assert session.get.call_args.args[0] == f"{MODTALE_CDN}/files/x.jar"


def test_modtale_download_keeps_absolute_url():
    client, session = mt_client(fake_response(content=b"jar bytes"))
    version = CatalogVersion(id="v", label="1", filename="x.jar", download_url="https://other.test/x.jar")

    client.download(version)

    assert session.get.call_args.args[0] == "https://other.test/x.jar"


def test_download_http_failure():
    client, _ = mt_client(fake_response(status=503))
    version = CatalogVersion(id="v", label="1", filename="x.jar", download_url="https://other.test/x.jar")

    with pytest.raises(TransportError) as exc:
        client.download(version)
    assert exc.value.status_code == 503


def test_download_without_url():
    client, session = mt_client()

    with pytest.raises(NoDownloadUrlError):
        client.download(CatalogVersion.placeholder())
    session.get.assert_not_called()


def test_fetch_media_resolves_like_downloads():
    client, session = mt_client(fake_response(content=b"png"), fake_response(content=b"png"))

    assert client.fetch_media("/images/banner.png") == b"png"
    assert session.get.call_args.args[0] == f"{MODTALE_CDN}/images/banner.png"

    client.fetch_media("https://media.test/shot.png")
    assert session.get.call_args.args[0] == "https://media.test/shot.png"


def test_fetch_media_http_failure():
    client, _ = cf_client(fake_response(status=404))

    with pytest.raises(TransportError) as exc:
        client.fetch_media("https://media.test/missing.png")
    assert exc.value.status_code == 404


@pytest.mark.parametrize("bad_id", ["", "../etc", "has space", "-leading"])
def test_modtale_rejects_malformed_ids(bad_id):
    client, _ = mt_client()

    with pytest.raises(InvalidIdentifierError):
        client.get_item(bad_id)


# ── ClientFactory ────────────────────────────────────────────────────────────

def test_factory_routes_credentials_per_provider():
    cf, _ = cf_client()
    mt, _ = mt_client()
    factory = ClientFactory({Provider.CURSEFORGE: cf, Provider.MODTALE: mt})

    factory.reconfigure(Provider.MODTALE, "mt-key")

    assert factory.get(Provider.MODTALE) is mt
    assert mt.http.session.headers["X-MODTALE-KEY"] == "mt-key"
    assert "x-api-key" not in cf.http.session.headers
