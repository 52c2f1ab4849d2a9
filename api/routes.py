"""API endpoints for contract analysis and system status."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from prometheus_client import generate_latest
from starlette.responses import Response as StarletteResponse
from starlette.responses import StreamingResponse

from agent.core import ContractAnalyzer
from agent.models import AnalyzeRequest, ContractAnalysis, Network
from api.deps import AnalysisStore, get_analyzer, get_llm_provider, get_store
from monitoring.metrics import active_analyses

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1")
metrics_router = APIRouter()


@router.post("/analyze", response_model=ContractAnalysis)
async def analyze_contract(
    body: AnalyzeRequest,
    analyzer: ContractAnalyzer = Depends(get_analyzer),
    store: AnalysisStore = Depends(get_store),
) -> ContractAnalysis:
    """Run the full analysis pipeline on a contract address."""
    active_analyses.inc()
    try:
        report = await analyzer.analyze(body)
        store[report.analysis_id] = report
        logger.info("api_analyze_complete", analysis_id=report.analysis_id)
        return report
    finally:
        active_analyses.dec()


@router.post("/analyze/stream")
async def analyze_contract_stream(
    body: AnalyzeRequest,
    analyzer: ContractAnalyzer = Depends(get_analyzer),
    store: AnalysisStore = Depends(get_store),
) -> StreamingResponse:
    """Run the analysis with server-sent stage progress events."""
    active_analyses.inc()

    async def _event_generator() -> AsyncIterator[str]:
        try:
            async for event in analyzer.analyze_stream(body):
                payload = json.dumps(event.model_dump(mode="json"), default=str)
                yield f"event: {event.event_type}\ndata: {payload}\n\n"

                if event.event_type == "analysis_complete":
                    report = ContractAnalysis.model_validate(event.data["report"])
                    store[report.analysis_id] = report
                    logger.info("api_stream_analyze_complete", analysis_id=report.analysis_id)
        finally:
            active_analyses.dec()

    return StreamingResponse(
        _event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/analyses")
async def list_analyses(
    limit: int = Query(default=20, ge=1, le=100),
    network: Network | None = Query(default=None),
    store: AnalysisStore = Depends(get_store),
) -> list[dict[str, Any]]:
    """List recent analyses, newest first."""
    reports = store.values()

    if network:
        reports = [r for r in reports if r.network == network]

    reports.sort(key=lambda r: r.created_at, reverse=True)

    return [
        {
            "analysis_id": r.analysis_id,
            "address": r.address,
            "network": r.network,
            "contract_name": r.contract_name,
            "is_proxy": r.is_proxy,
            "is_erc20": r.is_erc20,
            "overall_risk": r.security_analysis.overall_risk if r.security_analysis else None,
            "risk_score": r.security_analysis.risk_score if r.security_analysis else None,
            "high_risks": sum(1 for risk in r.risks if risk.level == "high"),
            "duration_seconds": r.duration_seconds,
            "total_cost_usd": r.total_cost_usd,
            "created_at": r.created_at.isoformat(),
        }
        for r in reports[:limit]
    ]


@router.get("/analyses/{analysis_id}", response_model=ContractAnalysis)
async def get_analysis(
    analysis_id: str,
    store: AnalysisStore = Depends(get_store),
) -> ContractAnalysis:
    """Get a stored report."""
    if analysis_id not in store:
        raise HTTPException(status_code=404, detail=f"Analysis {analysis_id} not found")
    return store[analysis_id]


@router.get("/analyses/{analysis_id}/stages")
async def get_analysis_stages(
    analysis_id: str,
    store: AnalysisStore = Depends(get_store),
) -> list[dict[str, Any]]:
    """Get just the stage trace of a stored report."""
    if analysis_id not in store:
        raise HTTPException(status_code=404, detail=f"Analysis {analysis_id} not found")
    return [stage.model_dump(mode="json") for stage in store[analysis_id].stages]


@router.get("/costs")
async def cost_summary(
    last_n_hours: int = Query(default=24, ge=1, le=24 * 30),
    analyzer: ContractAnalyzer = Depends(get_analyzer),
) -> dict[str, Any]:
    """Aggregate LLM spend over recent analyses."""
    return analyzer.cost_tracker.get_cost_summary(last_n_hours=last_n_hours)


@router.get("/health")
async def health_check(
    store: AnalysisStore = Depends(get_store),
    llm_provider: str = Depends(get_llm_provider),
) -> dict[str, Any]:
    """Service health check."""
    return {
        "status": "healthy",
        "llm_provider": llm_provider,
        "stored_analyses": len(store),
    }


@metrics_router.get("/metrics")
async def prometheus_metrics() -> StarletteResponse:
    """Expose Prometheus metrics."""
    return StarletteResponse(
        content=generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
