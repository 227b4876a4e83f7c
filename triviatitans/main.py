# triviatitans/main.py
from __future__ import annotations

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from triviatitans.domain.questions.generator import HttpQuestionGenerator
from triviatitans.logging_utils import get_logger, setup_logging
from triviatitans.settings import get_settings
from triviatitans.store.redis_repo import RedisRepo
from triviatitans.transport.admin import router as games_router
from triviatitans.transport.ws import router as ws_router

logger = get_logger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    app = FastAPI(title=settings.APP_NAME)
    app.state.settings = settings
    allowed_origins = [o.strip() for o in settings.WS_ALLOWED_ORIGINS.split(",") if o.strip()]
    if "null" not in allowed_origins:
        allowed_origins.append("null")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def _startup() -> None:
        r = Redis.from_url(settings.REDIS_URL, decode_responses=False)
        app.state.redis = r
        app.state.repo = RedisRepo(r, max_retries=settings.TX_MAX_RETRIES)
        app.state.generator = HttpQuestionGenerator(
            settings.QUESTION_SERVICE_URL,
            timeout_sec=settings.QUESTION_SERVICE_TIMEOUT_SEC,
        )
        await r.ping()
        logger.info("Startup complete", extra={"event": "startup"})

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        r: Redis = app.state.redis
        await r.aclose()

    @app.get("/health")
    async def health():
        r: Redis = app.state.redis
        pong = await r.ping()
        return {"ok": True, "redis": str(pong)}

    app.include_router(ws_router)
    app.include_router(games_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    # log_config=None keeps the handlers installed by setup_logging
    uvicorn.run("triviatitans.main:app", host=settings.HOST, port=settings.PORT, log_config=None)
