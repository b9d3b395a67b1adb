import logging
import threading
from typing import Callable, Optional

from .mod_sync import SyncOutcome
from .readiness import ReadinessGate

logger = logging.getLogger(__name__)


def run_startup_sync(
    sync: Callable[[Optional[threading.Event]], SyncOutcome],
    gate: ReadinessGate,
    cancel: Optional[threading.Event] = None,
) -> Optional[SyncOutcome]:
    """Sync mods once, then open the readiness gate whatever the result.

    The dependent server container waits on the health check, so the gate
    opens even when the sync fails or raises.
    """
    outcome: Optional[SyncOutcome] = None
    logger.info("Syncing mods before opening the readiness gate")
    try:
        outcome = sync(cancel)
        if outcome.fatal_error is not None:
            logger.warning("Startup mod sync failed: %s", outcome.fatal_error)
        else:
            if outcome.downloaded_count:
                logger.info("Startup mod sync downloaded %d mod(s)", outcome.downloaded_count)
            if outcome.failed_names:
                logger.warning(
                    "Startup mod sync could not download: %s", ", ".join(outcome.failed_names)
                )
    finally:
        gate.mark_ready()
    return outcome


def start_startup_thread(
    sync: Callable[[Optional[threading.Event]], SyncOutcome],
    gate: ReadinessGate,
    cancel: Optional[threading.Event] = None,
) -> threading.Thread:
    def task() -> None:
        try:
            run_startup_sync(sync, gate, cancel)
        except Exception:
            logger.exception("Startup mod sync crashed")

    thread = threading.Thread(target=task, daemon=True, name="startup-sync")
    thread.start()
    return thread
