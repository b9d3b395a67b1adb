import logging
import threading

logger = logging.getLogger(__name__)


class ReadinessGate:
    """One-way readiness flag for the health endpoint.

    Starts not ready. ``mark_ready`` flips it exactly once and there is no
    way back. ``is_ready`` never blocks, so the health check can poll it
    while the startup sync is still running.
    """

    def __init__(self) -> None:
        self._ready = threading.Event()
        self._transition_lock = threading.Lock()

    def is_ready(self) -> bool:
        return self._ready.is_set()

    def mark_ready(self) -> bool:
        """Flip to ready. Returns False when the gate was already ready."""
        with self._transition_lock:
            if self._ready.is_set():
                logger.warning("Readiness gate is already open; ignoring second transition")
                return False
            self._ready.set()
        logger.info("Readiness gate opened")
        return True

    def wait(self, timeout: float | None = None) -> bool:
        return self._ready.wait(timeout)
