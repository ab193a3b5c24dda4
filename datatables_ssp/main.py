from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .config import settings
from .db import get_engine, get_engine_from_dsn, test_engine_connection
from .routers import tables as tables_router
from .schemas import HealthResponse, TestConnectionRequest, TestConnectionResponse


def _configure_logging() -> None:
    logger = logging.getLogger("datatables_ssp")
    # Ensure package logs are emitted even when Uvicorn configures root differently
    if not logger.handlers:
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        logger.addHandler(h)
    logger.setLevel(settings.log_level.upper())


_configure_logging()

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)
# Respect X-Forwarded-* headers when running behind a reverse proxy (e.g., Nginx)
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

app.include_router(tables_router.router, prefix="/api")


@app.get("/api/healthz", response_model=HealthResponse)
async def healthz() -> HealthResponse:
    return HealthResponse(status="ok", app=settings.app_name, env=settings.environment)


@app.post("/api/test-connection", response_model=TestConnectionResponse)
async def test_connection(payload: TestConnectionRequest) -> TestConnectionResponse:
    engine = get_engine_from_dsn(payload.dsn) if payload.dsn else get_engine()
    ok, err = await run_in_threadpool(test_engine_connection, engine)
    return TestConnectionResponse(ok=ok, error=err)
