import logging
import os
from pathlib import Path
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from collectai.config import get_settings
from collectai.database import init_db, set_db_path
from collectai.exceptions import CollectAIError
from collectai.routers import health, ai, costs, threads, cases

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)

    db_path = Path(settings.database_url)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    set_db_path(settings.database_url)
    await init_db()
    logger.info("CollectAI backend started")

    yield

    logger.info("CollectAI backend shutting down")


async def collectai_error_handler(request: Request, exc: CollectAIError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    app = FastAPI(
        title="CollectAI API",
        description="AI-assisted debt collection with cost-aware model routing",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(CollectAIError, collectai_error_handler)

    # Routers
    app.include_router(health.router)
    app.include_router(ai.router)
    app.include_router(costs.router)
    app.include_router(threads.router)
    app.include_router(cases.router)

    # CORS: comma-separated extra origins from env
    origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
    extra_origins = os.environ.get("ALLOWED_ORIGINS", "")
    if extra_origins:
        origins.extend(
            o.strip()
            for o in extra_origins.split(",")
            if o.strip()
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return app


app = create_app()


@app.get("/")
async def read_root():
    return {
        "status": "ok",
        "message": "CollectAI backend is running",
        "docs": "/docs",
    }
