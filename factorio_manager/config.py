import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()


def _get_env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    mod_portal_url: str
    mod_portal_username: str
    mod_portal_token: str
    factorio_version: str
    mods_dir: str
    mod_list_file: str
    saves_dir: str
    portal_timeout_seconds: float
    docker_base_url: str
    container_name: str
    stop_timeout_seconds: int
    api_token: str | None
    log_level: str
    http_host: str
    http_port: int


def load_settings() -> Settings:
    mods_dir = os.path.abspath(os.getenv("FACTORIO_MODS_DIR", "/factorio/mods"))
    return Settings(
        mod_portal_url=os.getenv("FACTORIO_MOD_PORTAL_URL", "https://mods.factorio.com"),
        mod_portal_username=os.getenv("FACTORIO_MOD_PORTAL_USER", ""),
        mod_portal_token=os.getenv("FACTORIO_MOD_PORTAL_TOKEN", ""),
        factorio_version=os.getenv("FACTORIO_VERSION", "2.0"),
        mods_dir=mods_dir,
        mod_list_file=os.getenv(
            "FACTORIO_MOD_LIST_FILE", os.path.join(mods_dir, "mod-list.json")
        ),
        saves_dir=os.path.abspath(os.getenv("FACTORIO_SAVES_DIR", "/factorio/saves")),
        portal_timeout_seconds=_get_env_float("MOD_PORTAL_TIMEOUT_SECONDS", 600.0),
        docker_base_url=os.getenv("DOCKER_BASE_URL", "unix://var/run/docker.sock"),
        container_name=os.getenv("DOCKER_CONTAINER_NAME", "factorio"),
        stop_timeout_seconds=_get_env_int("DOCKER_STOP_TIMEOUT_SECONDS", 30),
        api_token=os.getenv("API_TOKEN") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        http_host=os.getenv("UVICORN_HOST", "0.0.0.0"),
        http_port=_get_env_int("UVICORN_PORT", 8080),
    )


settings = load_settings()
