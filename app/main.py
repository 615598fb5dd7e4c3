import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.collect_fee.router import router as collect_fee_router
from app.core.logging import setup_logging
from app.db.session import init_models

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await init_models()
    logger.info("Collect-fee service started")
    yield
    logger.info("Collect-fee service shutting down")


def create_app() -> FastAPI:
    app = FastAPI(title="Collect Fee Service", lifespan=lifespan)

    # CORS: allow the counter UI to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(collect_fee_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
