"""
Server lifecycle pipelines.

A restart runs ``stop -> clean_autosaves -> sync_mods -> start``; a start
skips the stop phase because the container is already down, and a stop
runs only the stop phase. Whether a phase failure aborts the pipeline is
declared in ``PHASE_POLICY``: the container primitives are fatal, autosave
cleanup and mod sync only add warnings so the server still comes up with
an imperfect mod set. An unexpected exception from a phase follows the
same policy.

Only one pipeline or standalone mod sync runs at a time. A second request
while one is in flight is rejected with ``LifecycleBusyError``.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from ..models import PipelineReportResponse
from .cancellation import OperationCancelled
from .container import ContainerError, ContainerManager
from .mod_sync import ModSyncService, SyncOutcome
from .saves import SaveManager

logger = logging.getLogger(__name__)

ProgressSink = Callable[[str], None]


class LifecycleBusyError(Exception):
    def __init__(self, message: str = "A server operation is already in progress") -> None:
        super().__init__(message)
        self.status_code = 409
        self.message = message


class PipelineKind(str, Enum):
    RESTART = "restart"
    START = "start"
    STOP = "stop"


class Phase(str, Enum):
    STOP = "stop"
    CLEAN_AUTOSAVES = "clean_autosaves"
    SYNC_MODS = "sync_mods"
    START = "start"


class PipelineState(str, Enum):
    STOPPING = "stopping"
    CLEANING_AUTOSAVES = "cleaning_autosaves"
    SYNCING_MODS = "syncing_mods"
    STARTING = "starting"
    DONE = "done"
    FAILED = "failed"


PIPELINES: dict[PipelineKind, tuple[Phase, ...]] = {
    PipelineKind.RESTART: (Phase.STOP, Phase.CLEAN_AUTOSAVES, Phase.SYNC_MODS, Phase.START),
    PipelineKind.START: (Phase.CLEAN_AUTOSAVES, Phase.SYNC_MODS, Phase.START),
    PipelineKind.STOP: (Phase.STOP,),
}

PHASE_STATE = {
    Phase.STOP: PipelineState.STOPPING,
    Phase.CLEAN_AUTOSAVES: PipelineState.CLEANING_AUTOSAVES,
    Phase.SYNC_MODS: PipelineState.SYNCING_MODS,
    Phase.START: PipelineState.STARTING,
}

# True: a failure ends the pipeline in FAILED. False: logged as a warning.
PHASE_POLICY = {
    Phase.STOP: True,
    Phase.CLEAN_AUTOSAVES: False,
    Phase.SYNC_MODS: False,
    Phase.START: True,
}

PHASE_LABELS = {
    Phase.STOP: "Stopping server",
    Phase.CLEAN_AUTOSAVES: "Cleaning autosaves",
    Phase.SYNC_MODS: "Syncing mods",
    Phase.START: "Starting server",
}

# Expected failures. Anything else is logged with its traceback first.
PHASE_ERRORS = (ContainerError, OperationCancelled, OSError)


class PhaseWarning(Exception):
    """A non-fatal phase finished but has something to report."""

    def __init__(self, message: str, detail: str) -> None:
        super().__init__(message)
        self.detail = detail


@dataclass
class PipelineReport:
    kind: PipelineKind
    state: PipelineState
    failed_phase: Optional[Phase] = None
    error: Optional[str] = None
    warnings: list[str] = field(default_factory=list)
    sync_outcome: Optional[SyncOutcome] = None
    messages: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.DONE

    def to_response(self) -> PipelineReportResponse:
        return PipelineReportResponse(
            kind=self.kind.value,
            state=self.state.value,
            failed_phase=self.failed_phase.value if self.failed_phase else None,
            error=self.error,
            warnings=list(self.warnings),
            sync=self.sync_outcome.to_response() if self.sync_outcome else None,
            messages=list(self.messages),
        )


class LifecycleOrchestrator:
    def __init__(
        self,
        container: ContainerManager,
        saves: SaveManager,
        mod_sync: ModSyncService,
    ) -> None:
        self.container = container
        self.saves = saves
        self.mod_sync = mod_sync
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def restart(
        self,
        progress: Optional[ProgressSink] = None,
        cancel: Optional[threading.Event] = None,
    ) -> PipelineReport:
        return self.run(PipelineKind.RESTART, progress, cancel)

    def start(
        self,
        progress: Optional[ProgressSink] = None,
        cancel: Optional[threading.Event] = None,
    ) -> PipelineReport:
        return self.run(PipelineKind.START, progress, cancel)

    def stop(
        self,
        progress: Optional[ProgressSink] = None,
        cancel: Optional[threading.Event] = None,
    ) -> PipelineReport:
        return self.run(PipelineKind.STOP, progress, cancel)

    def run(
        self,
        kind: PipelineKind,
        progress: Optional[ProgressSink] = None,
        cancel: Optional[threading.Event] = None,
    ) -> PipelineReport:
        if not self._lock.acquire(blocking=False):
            raise LifecycleBusyError()
        try:
            return self._run_phases(kind, progress, cancel)
        finally:
            self._lock.release()

    def sync_mods(self, cancel: Optional[threading.Event] = None) -> SyncOutcome:
        """Run a standalone mod sync under the pipeline lock."""
        if not self._lock.acquire(blocking=False):
            raise LifecycleBusyError()
        try:
            return self.mod_sync.sync(cancel)
        finally:
            self._lock.release()

    def _run_phases(
        self,
        kind: PipelineKind,
        progress: Optional[ProgressSink],
        cancel: Optional[threading.Event],
    ) -> PipelineReport:
        phases = PIPELINES[kind]
        report = PipelineReport(kind=kind, state=PHASE_STATE[phases[0]])

        def emit(message: str) -> None:
            report.messages.append(message)
            if progress is None:
                return
            try:
                progress(message)
            except Exception:
                logger.exception("Progress sink failed for message %r", message)

        logger.info("Running %s pipeline", kind.value)
        for phase in phases:
            report.state = PHASE_STATE[phase]
            emit(f"{PHASE_LABELS[phase]}...")
            try:
                emit(self._run_phase(phase, report, cancel))
            except PhaseWarning as warning:
                logger.warning("%s: %s", phase.value, warning.detail)
                report.warnings.append(warning.detail)
                emit(str(warning))
            except Exception as exc:
                if not isinstance(exc, PHASE_ERRORS):
                    logger.exception("Unexpected error in %s phase", phase.value)
                if not PHASE_POLICY[phase]:
                    detail = f"{PHASE_LABELS[phase]} failed: {exc}"
                    logger.warning("%s", detail)
                    report.warnings.append(detail)
                    emit(f"Warning: {detail}")
                    continue
                report.state = PipelineState.FAILED
                report.failed_phase = phase
                report.error = str(exc)
                logger.error("%s pipeline failed at %s: %s", kind.value, phase.value, exc)
                emit(f"Failed at {phase.value}: {exc}")
                return report

        report.state = PipelineState.DONE
        logger.info("%s pipeline finished with %d warning(s)", kind.value, len(report.warnings))
        if report.warnings:
            emit("Done with warnings: " + "; ".join(report.warnings))
        else:
            emit("Done")
        return report

    def _run_phase(
        self,
        phase: Phase,
        report: PipelineReport,
        cancel: Optional[threading.Event],
    ) -> str:
        if phase is Phase.STOP:
            self.container.stop(cancel)
            return "Server stopped"
        if phase is Phase.CLEAN_AUTOSAVES:
            removed = self.saves.clean_autosaves()
            return f"Removed {len(removed)} autosave(s)"
        if phase is Phase.SYNC_MODS:
            outcome = self.mod_sync.sync(cancel)
            report.sync_outcome = outcome
            if outcome.fatal_error is not None:
                raise PhaseWarning(
                    f"Warning: {outcome.summary()}",
                    f"Mod sync aborted: {outcome.fatal_error}",
                )
            if outcome.failed_names:
                raise PhaseWarning(
                    f"Warning: {outcome.summary()}",
                    f"Mods failed to download: {', '.join(outcome.failed_names)}",
                )
            return outcome.summary()
        if phase is Phase.START:
            self.container.start(cancel)
            return "Server started"
        raise ValueError(f"Unknown phase {phase!r}")
