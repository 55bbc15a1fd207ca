import re
from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field, field_validator

# The daemon reports nanosecond timestamps; datetime only holds microseconds.
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def _truncate_fraction(value):
    if isinstance(value, str):
        return _FRACTION_RE.sub(r"\1", value, count=1)
    return value


class DaemonStatus(BaseModel):
    online: bool
    version: str | None = None

    model_config = {"frozen": True}


class VersionResponse(BaseModel):
    version: str


class ModelDetails(BaseModel):
    format: str | None = None
    family: str | None = None
    parameter_size: str | None = None
    quantization_level: str | None = None


class InstalledModel(BaseModel):
    id: str = Field(validation_alias=AliasChoices("name", "id"))
    size_bytes: int = Field(ge=0, validation_alias=AliasChoices("size", "size_bytes"))
    digest: str = ""
    modified_at: datetime
    details: ModelDetails | None = None

    @field_validator("modified_at", mode="before")
    @classmethod
    def truncate_nanoseconds(cls, value):
        return _truncate_fraction(value)


class RunningModel(BaseModel):
    id: str = Field(validation_alias=AliasChoices("name", "id"))
    size_bytes: int = Field(ge=0, validation_alias=AliasChoices("size", "size_bytes"))
    size_vram_bytes: int = Field(
        default=0, ge=0, validation_alias=AliasChoices("size_vram", "size_vram_bytes")
    )
    expires_at: datetime

    @field_validator("expires_at", mode="before")
    @classmethod
    def truncate_nanoseconds(cls, value):
        return _truncate_fraction(value)


class TagsResponse(BaseModel):
    models: list[InstalledModel] = []


class ProcessResponse(BaseModel):
    models: list[RunningModel] = []


class PullStatusRecord(BaseModel):
    """One line of a streamed ``/api/pull`` response."""

    status: str = ""
    digest: str | None = None
    total: float | None = None
    completed: float | None = None
    error: str | None = None

    def percent(self) -> int:
        if not self.total or self.total <= 0:
            return 0
        pct = int((self.completed or 0) * 100 // self.total)
        return max(0, min(100, pct))


class GenerateChunk(BaseModel):
    """One line of a streamed ``/api/generate`` response."""

    response: str = ""
    done: bool = False
    error: str | None = None


class PullOperation(BaseModel):
    model_id: str
    percent: int = Field(default=0, ge=0, le=100)
    status_text: str = ""
    started_at: datetime


class DashboardState(BaseModel):
    online: bool
    version: str | None = None
    installed: list[InstalledModel]
    running: list[RunningModel]
    pulls: list[PullOperation]


class ModelActionRequest(BaseModel):
    model_id: str = Field(min_length=1)


class ModelActionResult(BaseModel):
    model_id: str
    success: bool
    error: str | None = None  # why the daemon refused or could not be reached


class GenerateRequest(BaseModel):
    model_id: str = Field(min_length=1)
    prompt: str


class GenerateResult(BaseModel):
    model_id: str
    response: str
