"""FastAPI application — main entrypoint for the contract analysis API."""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.responses import Response

from agent.core import ContractAnalyzer
from agent.errors import ContractAnalysisError
from agent.llm_client import create_client, resolve_provider
from api.deps import AnalysisStore
from api.routes import metrics_router, router
from explorer.client import ExplorerClient, ExplorerError

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup and shutdown events."""
    # Configure structured logging before anything else
    from monitoring.logging import configure_logging

    configure_logging()

    logger.info("contract_sentinel_starting")

    # One LLM client and one explorer client for the whole process
    provider = resolve_provider()
    llm_client = create_client(provider)
    explorer = ExplorerClient.from_env()
    app.state.analyzer = ContractAnalyzer(llm_client=llm_client, explorer=explorer)
    app.state.store = AnalysisStore()
    app.state.llm_provider = provider
    logger.info("analyzer_initialized", llm_provider=provider)

    yield

    await explorer.aclose()
    logger.info("contract_sentinel_shutdown")


app = FastAPI(
    title="Contract Sentinel",
    description="AI risk and security reports for Ethereum and Base smart contracts",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next: Any) -> Response:
    start = time.perf_counter()
    response: Response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000

    logger.info(
        "http_request",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round(duration_ms, 2),
    )
    return response


# Error handling
@app.exception_handler(ContractAnalysisError)
@app.exception_handler(ExplorerError)
async def analysis_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    status_code = getattr(exc, "status_code", 500)
    logger.warning(
        "analysis_rejected",
        path=request.url.path,
        status=status_code,
        error=str(exc),
    )
    return JSONResponse(
        status_code=status_code,
        content={
            "error": "Failed to analyze contract",
            "detail": str(exc),
            "path": request.url.path,
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc),
            "path": request.url.path,
        },
    )


# Include routers
app.include_router(router)
app.include_router(metrics_router)
