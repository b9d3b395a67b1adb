"""
Mod synchronization.

``ModSyncService.sync`` reconciles ``mod-list.json`` against the mods
directory: every enabled, non-built-in mod without a ``<name>_*.zip``
archive is looked up on the mod portal and its newest release for the
configured Factorio version is downloaded. Mods are processed one at a time
in list order. A failure for one mod is recorded and the batch moves on;
only an unreadable mod list or mods directory aborts the call.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import ValidationError

from ..config import Settings, settings as default_settings
from ..models import ModList, ModResultInfo, SyncOutcomeResponse
from .cancellation import OperationCancelled, check_cancelled
from .mod_portal import ModPortalClient, ModPortalError
from .mods_dir import is_mod_present
from .versions import select_release

logger = logging.getLogger(__name__)

# Shipped with the server, never on the portal
BUILTIN_MODS = frozenset({"base", "space-age", "elevated-rails", "quality"})


class ModSyncError(Exception):
    pass


class ModStatus(str, Enum):
    SKIPPED = "skipped"
    DOWNLOADED = "downloaded"
    FAILED = "failed"


@dataclass(frozen=True)
class ModResult:
    name: str
    status: ModStatus
    reason: Optional[str] = None


@dataclass
class SyncOutcome:
    downloaded_count: int = 0
    failed_names: list[str] = field(default_factory=list)
    fatal_error: Optional[Exception] = None
    results: list[ModResult] = field(default_factory=list)

    def add(self, result: ModResult) -> None:
        self.results.append(result)
        if result.status is ModStatus.DOWNLOADED:
            self.downloaded_count += 1
        elif result.status is ModStatus.FAILED:
            self.failed_names.append(result.name)

    def summary(self) -> str:
        if self.fatal_error is not None:
            text = f"Mod sync aborted: {self.fatal_error}"
        else:
            text = f"Mods downloaded: {self.downloaded_count}"
        if self.failed_names:
            text += f"; failed: {', '.join(self.failed_names)}"
        return text

    def to_response(self) -> SyncOutcomeResponse:
        return SyncOutcomeResponse(
            downloaded_count=self.downloaded_count,
            failed_names=list(self.failed_names),
            fatal_error=str(self.fatal_error) if self.fatal_error else None,
            results=[
                ModResultInfo(name=r.name, status=r.status.value, reason=r.reason)
                for r in self.results
            ],
        )


def read_mod_list(path: str) -> ModList:
    try:
        with open(path, "rb") as handle:
            raw = handle.read()
    except OSError as exc:
        raise ModSyncError(f"Failed to read mod list {path}: {exc}") from exc
    try:
        return ModList.model_validate_json(raw)
    except ValidationError as exc:
        raise ModSyncError(f"Mod list {path} is invalid: {exc}") from exc


class ModSyncService:
    def __init__(
        self,
        portal: ModPortalClient,
        mods_dir: Optional[str] = None,
        mod_list_file: Optional[str] = None,
        factorio_version: Optional[str] = None,
        config: Optional[Settings] = None,
    ) -> None:
        config = config or default_settings
        self.portal = portal
        self.mods_dir = mods_dir or config.mods_dir
        self.mod_list_file = mod_list_file or config.mod_list_file
        self.factorio_version = factorio_version or config.factorio_version

    def sync(self, cancel: Optional[threading.Event] = None) -> SyncOutcome:
        if not self.portal.has_credentials:
            logger.warning(
                "FACTORIO_MOD_PORTAL_USER / FACTORIO_MOD_PORTAL_TOKEN are not set; skipping mod sync"
            )
            return SyncOutcome()

        outcome = SyncOutcome()
        try:
            mod_list = read_mod_list(self.mod_list_file)
        except ModSyncError as exc:
            logger.error("%s", exc)
            outcome.fatal_error = exc
            return outcome

        for entry in mod_list.mods:
            try:
                check_cancelled(cancel, "Mod sync")
                result = self._sync_one(entry.name, entry.enabled, cancel)
            except OperationCancelled as exc:
                logger.warning("Mod sync cancelled at %s", entry.name)
                outcome.add(ModResult(entry.name, ModStatus.FAILED, str(exc)))
                outcome.fatal_error = exc
                return outcome
            except ModSyncError as exc:
                logger.error("%s", exc)
                outcome.fatal_error = exc
                return outcome
            outcome.add(result)

        logger.info(
            "Mod sync finished: %d downloaded, %d failed",
            outcome.downloaded_count,
            len(outcome.failed_names),
        )
        return outcome

    def _sync_one(
        self, name: str, enabled: bool, cancel: Optional[threading.Event]
    ) -> ModResult:
        if not name:
            return ModResult(name, ModStatus.SKIPPED, "unnamed entry")
        if not enabled:
            return ModResult(name, ModStatus.SKIPPED, "disabled")
        if name in BUILTIN_MODS:
            return ModResult(name, ModStatus.SKIPPED, "built-in")

        try:
            present = is_mod_present(name, self.mods_dir)
        except OSError as exc:
            raise ModSyncError(f"Failed to scan mods directory {self.mods_dir}: {exc}") from exc
        if present:
            return ModResult(name, ModStatus.SKIPPED, "already present")

        logger.info("Downloading mod %s", name)
        try:
            releases = self.portal.fetch_releases(name, cancel)
            release = select_release(releases, self.factorio_version)
            if release is None:
                raise ModPortalError(
                    404, f"No release of {name} for Factorio {self.factorio_version}"
                )
            self.portal.download(release, self.mods_dir, cancel)
        except ModPortalError as exc:
            logger.warning("Failed to download mod %s: %s", name, exc.message)
            return ModResult(name, ModStatus.FAILED, exc.message)
        except OSError as exc:
            logger.warning("Failed to save mod %s: %s", name, exc)
            return ModResult(name, ModStatus.FAILED, f"Failed to save mod file: {exc}")

        logger.info("Downloaded mod %s %s", name, release.version)
        return ModResult(name, ModStatus.DOWNLOADED)
