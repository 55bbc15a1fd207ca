import asyncio
import json

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from modeldeck.models.daemon import (
    DashboardState,
    GenerateRequest,
    GenerateResult,
    InstalledModel,
    ModelActionRequest,
    ModelActionResult,
    PullOperation,
    RunningModel,
)
from modeldeck.routers.deps import get_control, require_online
from modeldeck.services.control import ModelControl

router = APIRouter()

PROGRESS_INTERVAL_SECONDS = 0.3


# --- Registry ---


@router.get("/", response_model=DashboardState)
async def dashboard_state(control: ModelControl = Depends(get_control)):
    return control.snapshot()


@router.get("/installed", response_model=list[InstalledModel])
async def installed_models(control: ModelControl = Depends(get_control)):
    return control.registry.installed


@router.get("/running", response_model=list[RunningModel])
async def running_models(control: ModelControl = Depends(get_control)):
    return control.registry.running


@router.post("/refresh", response_model=DashboardState)
async def refresh_models(control: ModelControl = Depends(require_online)):
    await control.registry.refresh()
    return control.snapshot()


@router.post("/load", response_model=ModelActionResult)
async def load_model(
    body: ModelActionRequest, control: ModelControl = Depends(require_online)
):
    return await control.load(body.model_id)


@router.post("/unload", response_model=ModelActionResult)
async def unload_model(
    body: ModelActionRequest, control: ModelControl = Depends(require_online)
):
    return await control.unload(body.model_id)


@router.post("/delete", response_model=ModelActionResult)
async def delete_model(
    body: ModelActionRequest, control: ModelControl = Depends(require_online)
):
    return await control.delete(body.model_id)


# --- Pull ---


@router.post("/pull", status_code=202)
async def pull_model(
    body: ModelActionRequest, control: ModelControl = Depends(require_online)
):
    if not control.start_pull(body.model_id):
        raise HTTPException(409, f"Pull of {body.model_id} already in progress")
    return {"status": "started", "model_id": body.model_id}


@router.post("/pull/cancel")
async def cancel_pull(
    body: ModelActionRequest, control: ModelControl = Depends(get_control)
):
    if not control.cancel_pull(body.model_id):
        raise HTTPException(404, f"No pull of {body.model_id} in progress")
    return {"status": "cancelling", "model_id": body.model_id}


@router.get("/pull/status", response_model=list[PullOperation])
async def pull_status(control: ModelControl = Depends(get_control)):
    """Single poll endpoint (fallback if SSE is problematic)."""
    return control.pulls.operations()


@router.get("/pull/progress")
async def pull_progress_sse(control: ModelControl = Depends(get_control)):
    """SSE stream of in-flight pulls; ends once nothing is pulling."""

    async def event_generator():
        while True:
            operations = control.pulls.operations()
            data = json.dumps([op.model_dump(mode="json") for op in operations])
            yield f"data: {data}\n\n"

            if not operations:
                break
            await asyncio.sleep(PROGRESS_INTERVAL_SECONDS)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# --- Generation ---


@router.post("/generate", response_model=GenerateResult)
async def generate(
    body: GenerateRequest, control: ModelControl = Depends(require_online)
):
    text = await control.generate(body.model_id, body.prompt)
    return GenerateResult(model_id=body.model_id, response=text)
