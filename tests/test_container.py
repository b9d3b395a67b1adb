import threading
from dataclasses import replace
from types import SimpleNamespace

import pytest
from docker.errors import APIError, DockerException, NotFound

from factorio_manager.services.cancellation import OperationCancelled
from factorio_manager.services import container as container_module
from factorio_manager.services.container import ContainerError, ContainerManager


class FakeContainer:
    def __init__(self, fail_with: Exception | None = None) -> None:
        self.calls: list[tuple] = []
        self.status = "exited"
        self.image = SimpleNamespace(tags=["factoriotools/factorio:stable"])
        self.fail_with = fail_with

    def start(self) -> None:
        self.calls.append(("start",))
        if self.fail_with:
            raise self.fail_with
        self.status = "running"

    def stop(self, timeout: int) -> None:
        self.calls.append(("stop", timeout))
        if self.fail_with:
            raise self.fail_with
        self.status = "exited"


class FakeContainers:
    def __init__(self, container=None, error: Exception | None = None) -> None:
        self.container = container
        self.error = error
        self.requested: list[str] = []

    def get(self, name: str):
        self.requested.append(name)
        if self.error:
            raise self.error
        return self.container


def manager_for(containers: FakeContainers) -> ContainerManager:
    client = SimpleNamespace(containers=containers)
    return ContainerManager("factorio", stop_timeout=15, client_factory=lambda: client)


def test_start_and_stop_use_named_container() -> None:
    container = FakeContainer()
    containers = FakeContainers(container)
    manager = manager_for(containers)

    manager.stop()
    manager.start()

    assert containers.requested == ["factorio", "factorio"]
    assert container.calls == [("stop", 15), ("start",)]
    assert manager.status().status == "running"


def test_missing_container_is_404() -> None:
    manager = manager_for(FakeContainers(error=NotFound("no such container")))
    with pytest.raises(ContainerError) as excinfo:
        manager.start()
    assert excinfo.value.status_code == 404


def test_unreachable_daemon_is_503() -> None:
    manager = manager_for(FakeContainers(error=DockerException("socket missing")))
    with pytest.raises(ContainerError) as excinfo:
        manager.stop()
    assert excinfo.value.status_code == 503


def test_api_failure_is_500() -> None:
    manager = manager_for(FakeContainers(FakeContainer(fail_with=APIError("conflict"))))
    with pytest.raises(ContainerError) as excinfo:
        manager.start()
    assert excinfo.value.status_code == 500


def test_cancelled_before_call_does_not_touch_docker() -> None:
    containers = FakeContainers(FakeContainer())
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(OperationCancelled):
        manager_for(containers).start(cancel)
    assert containers.requested == []


def test_status_reports_image_tag() -> None:
    status = manager_for(FakeContainers(FakeContainer())).status()
    assert status.name == "factorio"
    assert status.status == "exited"
    assert status.image == "factoriotools/factorio:stable"


def test_stop_grace_period_defaults_to_setting(monkeypatch) -> None:
    monkeypatch.setattr(
        container_module,
        "settings",
        replace(container_module.settings, stop_timeout_seconds=7),
    )
    container = FakeContainer()
    client = SimpleNamespace(containers=FakeContainers(container))

    ContainerManager("factorio", client_factory=lambda: client).stop()

    assert container.calls == [("stop", 7)]


def test_stop_in_flight_is_not_interrupted_by_cancel() -> None:
    cancel = threading.Event()

    class SlowContainer(FakeContainer):
        def stop(self, timeout: int) -> None:
            cancel.set()
            super().stop(timeout)

    container = SlowContainer()
    manager_for(FakeContainers(container)).stop(cancel)

    assert container.calls == [("stop", 15)]
    assert container.status == "exited"
