from fastapi import HTTPException, Request

from modeldeck.services.control import ModelControl


def get_control(request: Request) -> ModelControl:
    return request.app.state.control


def require_online(request: Request) -> ModelControl:
    control = get_control(request)
    if not control.status.online:
        raise HTTPException(503, "Model daemon is offline. Start Ollama and retry.")
    return control
