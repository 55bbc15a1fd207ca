from modeldeck.models.daemon import (
    DaemonStatus,
    DashboardState,
    GenerateChunk,
    GenerateRequest,
    GenerateResult,
    InstalledModel,
    ModelActionRequest,
    ModelActionResult,
    ModelDetails,
    ProcessResponse,
    PullOperation,
    PullStatusRecord,
    RunningModel,
    TagsResponse,
    VersionResponse,
)

__all__ = [
    "DaemonStatus",
    "DashboardState",
    "GenerateChunk",
    "GenerateRequest",
    "GenerateResult",
    "InstalledModel",
    "ModelActionRequest",
    "ModelActionResult",
    "ModelDetails",
    "ProcessResponse",
    "PullOperation",
    "PullStatusRecord",
    "RunningModel",
    "TagsResponse",
    "VersionResponse",
]
