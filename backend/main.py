"""
Application entry-point.

Run locally:
    uvicorn main:app --reload
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.middleware.cors import CORSMiddleware

from core.config import settings
from core.logging import configure_logging
from api import router as api_router
from services.graph_client import GraphError

configure_logging()  # sets loguru as global logger


@asynccontextmanager
async def lifespan(_: FastAPI):
    from core.database import engine, init_db

    await init_db()  # dev-only convenience, use migrations in production
    logger.info("Transcript Sync API started (env={}, db={})", settings.ENV, engine.url.drivername)
    yield
    await engine.dispose()


app = FastAPI(
    title="Transcript Sync API",
    version="0.1.0",
    openapi_url="/openapi.json",
    docs_url="/docs" if settings.ENV != "production" else None,
    lifespan=lifespan,
)

# CORS – open in dev, tighten in prod
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.exception_handler(GraphError)
async def graph_error_handler(request: Request, exc: GraphError) -> JSONResponse:
    # routes handle the expected cases; anything reaching here is a platform outage
    logger.error("Meeting platform error on {} {}: {}", request.method, request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": "Meeting platform request failed"})


@app.get("/health", tags=["Health"])
async def healthcheck() -> dict[str, str]:
    """Kubernetes / Docker liveness check."""
    return {"status": "ok"}
