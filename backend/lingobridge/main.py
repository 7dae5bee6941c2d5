import logging
from pathlib import Path
from contextlib import asynccontextmanager
from dotenv import load_dotenv

# Load .env file BEFORE importing settings to ensure env vars are available
# When running from backend/ directory
env_path = Path(__file__).parent.parent / ".env"
if not env_path.exists():
    # When running from root directory
    env_path = Path(__file__).parent.parent.parent / "backend" / ".env"

load_dotenv(dotenv_path=env_path)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.live_session import router as session_router
from .api.translate import router as translate_router
from .config import settings
from .services.llm_service import llm_service
from .services.translation_service import translation_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    logger.info(f"[STARTUP] .env from {env_path}, fast provider={settings.fast_provider}, llm model={settings.llm_model}")
    yield
    # Shutdown - close HTTP clients
    await translation_service.close()
    await llm_service.close()


def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(title="LingoBridge", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(translate_router, prefix="/api")
    app.include_router(session_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
