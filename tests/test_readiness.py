import threading

import pytest

from factorio_manager.services.mod_sync import ModSyncError, SyncOutcome
from factorio_manager.services.readiness import ReadinessGate
from factorio_manager.services.startup import run_startup_sync, start_startup_thread


def test_gate_starts_closed_and_opens_once() -> None:
    gate = ReadinessGate()
    assert not gate.is_ready()

    assert gate.mark_ready() is True
    assert gate.is_ready()

    assert gate.mark_ready() is False
    assert gate.is_ready()


def test_concurrent_mark_ready_transitions_exactly_once() -> None:
    gate = ReadinessGate()
    results: list[bool] = []
    lock = threading.Lock()

    def flip() -> None:
        transitioned = gate.mark_ready()
        with lock:
            results.append(transitioned)

    threads = [threading.Thread(target=flip) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(True) == 1
    assert gate.is_ready()


def test_startup_opens_gate_after_successful_sync() -> None:
    gate = ReadinessGate()
    seen_before: list[bool] = []

    def sync(cancel):
        seen_before.append(gate.is_ready())
        return SyncOutcome(downloaded_count=2)

    outcome = run_startup_sync(sync, gate)

    assert seen_before == [False]
    assert outcome.downloaded_count == 2
    assert gate.is_ready()


def test_startup_opens_gate_after_fatal_sync() -> None:
    gate = ReadinessGate()

    outcome = run_startup_sync(
        lambda cancel: SyncOutcome(fatal_error=ModSyncError("mod list missing")), gate
    )

    assert isinstance(outcome.fatal_error, ModSyncError)
    assert gate.is_ready()


def test_startup_opens_gate_even_when_sync_raises() -> None:
    gate = ReadinessGate()

    def sync(cancel):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        run_startup_sync(sync, gate)
    assert gate.is_ready()


def test_startup_thread_runs_in_background() -> None:
    gate = ReadinessGate()
    release = threading.Event()

    def sync(cancel):
        release.wait(5)
        return SyncOutcome(failed_names=["ExtraMod"])

    thread = start_startup_thread(sync, gate)
    assert not gate.is_ready()

    release.set()
    assert gate.wait(5)
    thread.join(5)
    assert not thread.is_alive()
