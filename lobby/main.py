from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging

from lobby.api.routes import router
from lobby.config import load_settings
from lobby.infra.redis_client import create_redis

app = FastAPI(title="game-lobby", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@app.exception_handler(RequestValidationError)
async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed bodies are the dispatcher's problem; they never reach the coordinator.
    logger.info("Invalid request to %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


@app.on_event("startup")
async def _startup() -> None:
    # Missing collection names raise ConfigError here, so the process never starts serving.
    settings = load_settings()
    logging.getLogger().setLevel(settings.log_level)
    app.state.settings = settings
    app.state.redis = create_redis(settings.redis_url)
    logger.info(
        "Using collections sessions=%s members=%s",
        settings.sessions_collection,
        settings.members_collection,
    )


@app.on_event("shutdown")
async def _shutdown() -> None:
    r = getattr(app.state, "redis", None)
    if r is not None:
        r.close()


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "game-lobby", "version": "0.1.0"}
