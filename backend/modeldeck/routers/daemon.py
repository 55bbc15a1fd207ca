from fastapi import APIRouter, Depends

from modeldeck.models.daemon import DaemonStatus
from modeldeck.routers.deps import get_control
from modeldeck.services.control import ModelControl

router = APIRouter()


@router.get("/status", response_model=DaemonStatus)
async def get_status(control: ModelControl = Depends(get_control)):
    """Last polled status; cheap, does not touch the daemon."""
    return control.status


@router.post("/status/refresh", response_model=DaemonStatus)
async def refresh_status(control: ModelControl = Depends(get_control)):
    return await control.refresh_status()
