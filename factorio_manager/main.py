import logging
import threading
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse

from .auth import TokenAuth
from .config import Settings, settings
from .models import (
    ContainerStatusResponse,
    PipelineReportResponse,
    SaveUploadResponse,
    SyncOutcomeResponse,
)
from .services.container import ContainerError, ContainerManager
from .services.lifecycle import LifecycleBusyError, LifecycleOrchestrator, PipelineKind
from .services.mod_portal import ModPortalClient
from .services.mod_sync import ModSyncService
from .services.readiness import ReadinessGate
from .services.saves import SaveError, SaveManager
from .services.startup import start_startup_thread

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_orchestrator(config: Settings) -> LifecycleOrchestrator:
    portal = ModPortalClient(
        base_url=config.mod_portal_url,
        username=config.mod_portal_username,
        token=config.mod_portal_token,
        timeout_seconds=config.portal_timeout_seconds,
    )
    return LifecycleOrchestrator(
        container=ContainerManager(config.container_name, config.stop_timeout_seconds),
        saves=SaveManager(config.saves_dir),
        mod_sync=ModSyncService(portal, config=config),
    )


def create_app(
    orchestrator: Optional[LifecycleOrchestrator] = None,
    gate: Optional[ReadinessGate] = None,
    auth: Optional[TokenAuth] = None,
) -> FastAPI:
    orchestrator = orchestrator or build_orchestrator(settings)
    gate = gate or ReadinessGate()
    auth = auth or TokenAuth()
    shutdown = threading.Event()

    app = FastAPI(title="Factorio Server Manager")
    app.state.orchestrator = orchestrator
    app.state.gate = gate
    app.state.shutdown = shutdown

    @app.on_event("startup")
    def on_startup() -> None:
        # /health answers 503 while the initial sync runs
        app.state.startup_thread = start_startup_thread(
            orchestrator.sync_mods, gate, shutdown
        )

    @app.on_event("shutdown")
    def on_shutdown() -> None:
        shutdown.set()
        portal = getattr(orchestrator.mod_sync, "portal", None)
        if isinstance(portal, ModPortalClient):
            portal.close()

    @app.exception_handler(ContainerError)
    def container_error_handler(request: Request, exc: ContainerError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(SaveError)
    def save_error_handler(request: Request, exc: SaveError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(LifecycleBusyError)
    def busy_error_handler(request: Request, exc: LifecycleBusyError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.get("/health", response_class=PlainTextResponse)
    def health() -> PlainTextResponse:
        if gate.is_ready():
            return PlainTextResponse("ok")
        return PlainTextResponse("starting", status_code=503)

    def run_pipeline(kind: PipelineKind) -> JSONResponse:
        def progress(message: str) -> None:
            logger.info("[%s] %s", kind.value, message)

        report = orchestrator.run(kind, progress=progress, cancel=shutdown)
        status_code = 200 if report.succeeded else 500
        return JSONResponse(status_code=status_code, content=report.to_response().model_dump())

    @app.post(
        "/server/start",
        response_model=PipelineReportResponse,
        dependencies=[Depends(auth)],
    )
    def start_server() -> JSONResponse:
        return run_pipeline(PipelineKind.START)

    @app.post(
        "/server/restart",
        response_model=PipelineReportResponse,
        dependencies=[Depends(auth)],
    )
    def restart_server() -> JSONResponse:
        return run_pipeline(PipelineKind.RESTART)

    @app.post(
        "/server/stop",
        response_model=PipelineReportResponse,
        dependencies=[Depends(auth)],
    )
    def stop_server() -> JSONResponse:
        return run_pipeline(PipelineKind.STOP)

    @app.get(
        "/server/status",
        response_model=ContainerStatusResponse,
        dependencies=[Depends(auth)],
    )
    def server_status() -> ContainerStatusResponse:
        return orchestrator.container.status()

    @app.post(
        "/mods/sync",
        response_model=SyncOutcomeResponse,
        dependencies=[Depends(auth)],
    )
    def sync_mods() -> SyncOutcomeResponse:
        return orchestrator.sync_mods(shutdown).to_response()

    @app.post(
        "/saves",
        response_model=SaveUploadResponse,
        dependencies=[Depends(auth)],
    )
    def upload_save(save: UploadFile = File(...)) -> SaveUploadResponse:
        filename = save.filename or ""
        orchestrator.saves.replace(filename, save.file)
        return SaveUploadResponse(filename=filename)

    @app.get("/saves/latest", dependencies=[Depends(auth)])
    def download_latest_save() -> FileResponse:
        name, path = orchestrator.saves.latest_save()
        return FileResponse(path, media_type="application/zip", filename=name)

    return app


configure_logging(settings.log_level)
app = create_app()


def run() -> None:
    uvicorn.run(app, host=settings.http_host, port=settings.http_port)


if __name__ == "__main__":
    run()
