import json
from pathlib import Path
from typing import Optional

import httpx
import pytest

from factorio_manager.services.mod_portal import ModPortalClient
from factorio_manager.services.mod_sync import ModSyncService

PORTAL_URL = "https://mods.example.test"


class PortalStub:
    """Serves canned mod portal responses and records every request."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.releases: dict[str, list[dict]] = {}
        self.files: dict[str, bytes] = {}
        self.status_overrides: dict[str, int] = {}

    def add_release(
        self,
        mod: str,
        version: str,
        factorio_version: str = "2.0",
        content: Optional[bytes] = None,
    ) -> dict:
        download_url = f"/download/{mod}/{version}"
        release = {
            "download_url": download_url,
            "file_name": f"{mod}_{version}.zip",
            "version": version,
            "info_json": {"factorio_version": factorio_version},
        }
        self.releases.setdefault(mod, []).append(release)
        self.files[download_url] = content if content is not None else f"{mod}-{version}".encode()
        return release

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.status_overrides:
            return httpx.Response(self.status_overrides[path], text="nope")
        if path.startswith("/api/mods/"):
            name = path[len("/api/mods/"):]
            if name not in self.releases:
                return httpx.Response(404, json={"message": "Mod not found"})
            return httpx.Response(200, json={"name": name, "releases": self.releases[name]})
        if path in self.files:
            return httpx.Response(200, content=self.files[path])
        return httpx.Response(404)

    @property
    def lookups(self) -> list[str]:
        return [r.url.path for r in self.requests if r.url.path.startswith("/api/mods/")]

    @property
    def downloads(self) -> list[str]:
        return [r.url.path for r in self.requests if r.url.path.startswith("/download/")]


@pytest.fixture
def portal_stub() -> PortalStub:
    return PortalStub()


@pytest.fixture
def portal_client(portal_stub: PortalStub) -> ModPortalClient:
    client = ModPortalClient(
        base_url=PORTAL_URL,
        username="alice",
        token="s3cret",
        timeout_seconds=30,
        transport=httpx.MockTransport(portal_stub.handler),
    )
    yield client
    client.close()


@pytest.fixture
def mods_dir(tmp_path: Path) -> Path:
    path = tmp_path / "mods"
    path.mkdir()
    return path


@pytest.fixture
def write_mod_list(mods_dir: Path):
    def write(entries: list[dict]) -> Path:
        path = mods_dir / "mod-list.json"
        path.write_text(json.dumps({"mods": entries}))
        return path

    return write


@pytest.fixture
def make_sync_service(portal_client: ModPortalClient, mods_dir: Path):
    def make(mod_list: Path, portal: Optional[ModPortalClient] = None) -> ModSyncService:
        return ModSyncService(
            portal or portal_client,
            mods_dir=str(mods_dir),
            mod_list_file=str(mod_list),
            factorio_version="2.0",
        )

    return make
