import logging
import os
import threading
import time
from contextlib import suppress
from typing import Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from ..config import settings
from ..models import ModPortalInfo, ModRelease
from .cancellation import check_cancelled

logger = logging.getLogger(__name__)

USER_AGENT = "factorio-manager/1.0"
PARTIAL_SUFFIX = ".part"


class ModPortalError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ModPortalClient:
    """Client for the Factorio mod portal.

    One ``httpx.Client`` is shared by every call. Both the metadata fetch and
    the artifact download are bounded by ``timeout_seconds`` measured from
    the start of the request, and both honour an optional cancellation event.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        username: Optional[str] = None,
        token: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.mod_portal_url).rstrip("/")
        self.username = settings.mod_portal_username if username is None else username
        self.token = settings.mod_portal_token if token is None else token
        self.timeout_seconds = timeout_seconds or settings.portal_timeout_seconds
        self.timeout = httpx.Timeout(self.timeout_seconds)
        self._client = httpx.Client(
            timeout=self.timeout,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
            transport=transport,
        )

    @property
    def has_credentials(self) -> bool:
        return bool(self.username.strip() and self.token.strip())

    def close(self) -> None:
        self._client.close()

    def fetch_releases(
        self, mod_name: str, cancel: Optional[threading.Event] = None
    ) -> list[ModRelease]:
        check_cancelled(cancel, f"Release lookup for {mod_name}")
        url = f"{self.base_url}/api/mods/{quote(mod_name, safe='')}"
        try:
            response = self._client.get(url)
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            raise ModPortalError(502, f"Mod portal request failed: {exc}") from exc
        check_cancelled(cancel, f"Release lookup for {mod_name}")

        if not response.is_success:
            raise ModPortalError(
                response.status_code,
                f"Mod portal returned {response.status_code} for {mod_name!r}",
            )
        try:
            info = ModPortalInfo.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ModPortalError(502, f"Mod portal response is invalid: {exc}") from exc
        return info.releases

    def download(
        self,
        release: ModRelease,
        dest_dir: str,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        """Download ``release`` into ``dest_dir`` under its declared file name.

        Bytes are streamed into ``<file_name>.part`` and renamed into place
        once complete, so ``dest_dir`` never holds a truncated archive under
        the final name. The partial file is removed on any failure,
        cancellation included.
        """
        filename = release.file_name
        if not filename or os.path.basename(filename) != filename:
            raise ModPortalError(502, f"Release has an invalid file name: {filename!r}")
        if not release.download_url:
            raise ModPortalError(502, f"Release {filename} has no download URL")

        url = f"{self.base_url}{release.download_url}"
        dest_path = os.path.join(dest_dir, filename)
        partial_path = dest_path + PARTIAL_SUFFIX
        logger.debug("Downloading %s", url)
        try:
            self._stream_to_file(url, partial_path, cancel)
            os.replace(partial_path, dest_path)
        except BaseException:
            with suppress(FileNotFoundError):
                os.remove(partial_path)
            raise
        return dest_path

    def _stream_to_file(
        self, url: str, path: str, cancel: Optional[threading.Event]
    ) -> None:
        deadline = time.monotonic() + self.timeout_seconds
        params = {"username": self.username, "token": self.token}
        check_cancelled(cancel, "Mod download")
        try:
            with self._client.stream("GET", url, params=params) as response:
                if not response.is_success:
                    raise ModPortalError(
                        response.status_code,
                        f"Mod download returned {response.status_code}",
                    )
                with open(path, "wb") as handle:
                    for chunk in response.iter_bytes():
                        check_cancelled(cancel, "Mod download")
                        if time.monotonic() > deadline:
                            raise ModPortalError(
                                504,
                                f"Mod download exceeded {self.timeout_seconds:g}s",
                            )
                        handle.write(chunk)
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            # strip credentials from the reported URL
            raise ModPortalError(
                502, f"Mod download failed: {type(exc).__name__}: {url}"
            ) from exc
