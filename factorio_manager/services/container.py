import logging
import threading
from typing import Callable, Optional

import docker
from docker.errors import DockerException, NotFound

from ..config import settings
from ..docker_client import get_docker_client
from ..models import ContainerStatusResponse
from .cancellation import check_cancelled

logger = logging.getLogger(__name__)


class ContainerError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ContainerManager:
    """Starts and stops the managed Factorio container through the Docker API."""

    def __init__(
        self,
        container_name: Optional[str] = None,
        stop_timeout: Optional[int] = None,
        client_factory: Callable[[], docker.DockerClient] = get_docker_client,
    ) -> None:
        self.container_name = container_name or settings.container_name
        self.stop_timeout = (
            settings.stop_timeout_seconds if stop_timeout is None else stop_timeout
        )
        self._client_factory = client_factory

    def start(self, cancel: Optional[threading.Event] = None) -> None:
        check_cancelled(cancel, f"Start of {self.container_name}")
        container = self._get_container()
        try:
            container.start()
        except DockerException as exc:
            raise ContainerError(500, f"Failed to start {self.container_name}: {exc}") from exc
        logger.info("Container %s started", self.container_name)

    def stop(self, cancel: Optional[threading.Event] = None) -> None:
        """Stop the container, waiting at most ``stop_timeout`` seconds.

        ``cancel`` is only checked before the Docker call. An issued stop
        cannot be interrupted; Docker kills the container once the grace
        period (``DOCKER_STOP_TIMEOUT_SECONDS``) runs out, so that period
        bounds how long a cancelled pipeline can wait here.
        """
        check_cancelled(cancel, f"Stop of {self.container_name}")
        container = self._get_container()
        try:
            container.stop(timeout=self.stop_timeout)
        except DockerException as exc:
            raise ContainerError(500, f"Failed to stop {self.container_name}: {exc}") from exc
        logger.info("Container %s stopped", self.container_name)

    def status(self) -> ContainerStatusResponse:
        container = self._get_container()
        image = None
        try:
            tags = container.image.tags if container.image else []
            image = tags[0] if tags else None
        except DockerException:
            image = None
        return ContainerStatusResponse(
            name=self.container_name, status=container.status, image=image
        )

    def _get_container(self):
        try:
            return self._client_factory().containers.get(self.container_name)
        except NotFound as exc:
            raise ContainerError(404, f"Container {self.container_name} not found") from exc
        except DockerException as exc:
            raise ContainerError(503, f"Docker unavailable: {exc}") from exc
