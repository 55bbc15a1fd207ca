from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from modeldeck.config import settings
from modeldeck.services.control import ModelControl


def create_app(control: ModelControl | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        model_control = control or ModelControl(settings)
        app.state.control = model_control
        model_control.start()
        yield
        await model_control.aclose()

    application = FastAPI(
        title="ModelDeck Backend", version="0.1.0", lifespan=lifespan
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from modeldeck.routers import daemon, health, models

    application.include_router(health.router)
    application.include_router(daemon.router, prefix="/daemon", tags=["daemon"])
    application.include_router(models.router, prefix="/models", tags=["models"])

    return application


app = create_app()
