from typing import Optional

from pydantic import BaseModel, Field, field_validator


# mod-list.json is hand edited; null values fall back to the field defaults.
class ModListEntry(BaseModel):
    name: str = ""
    enabled: bool = False

    @field_validator("name", mode="before")
    @classmethod
    def null_name(cls, value):
        return "" if value is None else value

    @field_validator("enabled", mode="before")
    @classmethod
    def null_enabled(cls, value):
        return False if value is None else value


class ModList(BaseModel):
    mods: list[ModListEntry] = Field(default_factory=list)

    @field_validator("mods", mode="before")
    @classmethod
    def null_mods(cls, value):
        if value is None:
            return []
        if isinstance(value, list):
            return [entry for entry in value if entry is not None]
        return value


class ReleaseInfo(BaseModel):
    factorio_version: str = ""


class ModRelease(BaseModel):
    download_url: str = ""
    file_name: str = ""
    version: str = ""
    info_json: ReleaseInfo = Field(default_factory=ReleaseInfo)

    @property
    def engine_version(self) -> str:
        return self.info_json.factorio_version


class ModPortalInfo(BaseModel):
    name: Optional[str] = None
    releases: list[ModRelease] = Field(default_factory=list)


class ModResultInfo(BaseModel):
    name: str
    status: str
    reason: Optional[str] = None


class SyncOutcomeResponse(BaseModel):
    downloaded_count: int
    failed_names: list[str]
    fatal_error: Optional[str] = None
    results: list[ModResultInfo] = Field(default_factory=list)


class PipelineReportResponse(BaseModel):
    kind: str
    state: str
    failed_phase: Optional[str] = None
    error: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)
    sync: Optional[SyncOutcomeResponse] = None
    messages: list[str] = Field(default_factory=list)


class ContainerStatusResponse(BaseModel):
    name: str
    status: str
    image: Optional[str] = None


class SaveUploadResponse(BaseModel):
    status: str = "ok"
    filename: str
