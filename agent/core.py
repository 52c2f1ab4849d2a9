"""Pipeline orchestrator — proxy detection, contract and implementation analysis, token
detection, transaction history and security scoring."""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import structlog

from agent.agents.contract import ContractAgent
from agent.agents.security import SecurityAgent
from agent.errors import AnalysisTimeoutError, ContractNotFoundError, ContractNotVerifiedError
from agent.llm_client import LLMClient
from agent.models import (
    AnalyzeRequest,
    ContractAnalysis,
    ContractImplementation,
    ContractInsights,
    Network,
    StreamEvent,
)
from explorer.client import ContractSource, ExplorerClient
from explorer.contracts import is_address, is_erc20, parse_abi, parse_source_code, to_transaction
from monitoring.finops import CostTracker
from monitoring.logging import analysis_context
from monitoring.metrics import record_analysis_complete, record_analysis_failed
from monitoring.tracer import StageTracer

logger = structlog.get_logger()

ANALYSIS_TIMEOUT_SECONDS = 300

# Fixed pause between dependent explorer/model calls to stay under the
# explorer's free-tier rate limit.
REQUEST_DELAY_SECONDS = 0.3

TRANSACTION_LIMIT = 10


def new_analysis_id() -> str:
    return f"CA-{uuid.uuid4().hex[:8].upper()}"


@dataclass
class SingleContractResult:
    """Source metadata plus model insights for one contract (proxy or implementation)."""

    source_code: str
    contract_name: str
    compiler: str
    optimization: bool
    is_verified: bool
    abi: list[dict[str, Any]]
    insights: ContractInsights


@contextmanager
def _stage(tracer: StageTracer, trace_id: str, stage: str, **data: Any) -> Iterator[None]:
    """Record a pipeline stage as started, then as finished or failed."""
    tracer.stage_started(trace_id, stage, **data)
    start = time.perf_counter()
    try:
        yield
    except Exception as e:
        tracer.log_stage(
            trace_id, stage, status="failed", detail=str(e),
            duration_ms=(time.perf_counter() - start) * 1000,
        )
        raise
    tracer.log_stage(trace_id, stage, duration_ms=(time.perf_counter() - start) * 1000)


class ContractAnalyzer:
    """Runs the analysis pipeline for one contract address.

    The main contract's source, model analysis and transaction history are
    required; the implementation analysis of a proxy and the security scoring
    are optional and a failure there only leaves the field empty.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        explorer: ExplorerClient,
        cost_tracker: CostTracker | None = None,
    ) -> None:
        self._llm = llm_client
        self._explorer = explorer
        self._tracer = StageTracer()
        self._costs = cost_tracker or CostTracker()

    @property
    def cost_tracker(self) -> CostTracker:
        return self._costs

    async def analyze(self, request: AnalyzeRequest) -> ContractAnalysis:
        """Run the full pipeline and return the report."""
        return await self._analyze(request, new_analysis_id(), self._tracer)

    async def analyze_stream(self, request: AnalyzeRequest) -> AsyncIterator[StreamEvent]:
        """Run the pipeline, yielding stage events and finally the report."""
        analysis_id = new_analysis_id()
        event_queue: asyncio.Queue[StreamEvent | None] = asyncio.Queue()
        stream_tracer = StageTracer(event_queue=event_queue)

        report: ContractAnalysis | None = None
        failure: Exception | None = None

        async def _run() -> None:
            nonlocal report, failure
            try:
                report = await self._analyze(request, analysis_id, stream_tracer)
            except Exception as e:
                failure = e
            finally:
                event_queue.put_nowait(None)

        task = asyncio.create_task(_run())

        while True:
            event = await event_queue.get()
            if event is None:
                break
            yield event

        await task

        if failure is not None or report is None:
            yield StreamEvent(
                event_type="error",
                data={
                    "analysis_id": analysis_id,
                    "message": str(failure),
                    "status_code": getattr(failure, "status_code", 500),
                },
            )
            return

        yield StreamEvent(
            event_type="analysis_complete",
            data={"report": report.model_dump(mode="json")},
        )

    async def _analyze(
        self,
        request: AnalyzeRequest,
        analysis_id: str,
        tracer: StageTracer,
    ) -> ContractAnalysis:
        with analysis_context(analysis_id, request.address, request.network):
            return await self._run_timed(request, analysis_id, tracer)

    async def _run_timed(
        self,
        request: AnalyzeRequest,
        analysis_id: str,
        tracer: StageTracer,
    ) -> ContractAnalysis:
        start_time = time.perf_counter()

        logger.info("analysis_started")
        tracer.start_trace(analysis_id)

        try:
            draft = await asyncio.wait_for(
                self._run_pipeline(request, analysis_id, tracer),
                timeout=ANALYSIS_TIMEOUT_SECONDS,
            )
        except TimeoutError:
            logger.error(
                "analysis_timeout",
                timeout=ANALYSIS_TIMEOUT_SECONDS,
            )
            record_analysis_failed(request.network)
            tracer.discard(analysis_id)
            raise AnalysisTimeoutError(
                f"Analysis exceeded {ANALYSIS_TIMEOUT_SECONDS}s timeout"
            ) from None
        except Exception as e:
            logger.error("analysis_failed", error=str(e))
            record_analysis_failed(request.network)
            tracer.discard(analysis_id)
            raise

        report = draft.model_copy(update={
            "stages": tracer.get_trace(analysis_id),
            "total_tokens": tracer.get_total_tokens(analysis_id),
            "total_cost_usd": round(tracer.get_total_cost(analysis_id), 6),
            "duration_seconds": round(time.perf_counter() - start_time, 2),
        })
        tracer.discard(analysis_id)
        record_analysis_complete(report)

        logger.info(
            "analysis_complete",
            duration_seconds=report.duration_seconds,
            total_tokens=report.total_tokens,
            total_cost_usd=report.total_cost_usd,
            is_proxy=report.is_proxy,
            has_implementation=report.implementation is not None,
            has_security_analysis=report.security_analysis is not None,
        )
        return report

    async def _run_pipeline(
        self,
        request: AnalyzeRequest,
        trace_id: str,
        tracer: StageTracer,
    ) -> ContractAnalysis:
        address, network = request.address, request.network
        contract_agent = ContractAgent(self._llm, tracer, self._costs)
        security_agent = SecurityAgent(self._llm, tracer, self._costs)

        # Step 1: Proxy detection
        with _stage(tracer, trace_id, "proxy_detection"):
            contract = await self._fetch_source(address, network)
        implementation_address = contract.implementation

        # Step 2: Main contract
        with _stage(tracer, trace_id, "contract_analysis", address=address):
            main = await self._analyze_single(
                address, network, trace_id, contract_agent, prefetched=contract,
            )

        # Step 3: Token detection
        with _stage(tracer, trace_id, "token_detection"):
            is_token = is_erc20(main.abi)
        if is_token:
            logger.info("erc20_detected", address=address)

        # Step 4: Recent transactions
        await asyncio.sleep(REQUEST_DELAY_SECONDS)
        with _stage(tracer, trace_id, "transactions"):
            rows = await self._explorer.get_transactions(address, network, TRANSACTION_LIMIT)
            transactions = [to_transaction(row) for row in rows]

        report = ContractAnalysis(
            analysis_id=trace_id,
            address=address,
            network=network,
            summary=main.insights.summary,
            risks=main.insights.risks,
            functions=main.insights.functions,
            recent_transactions=transactions,
            source_code=main.source_code,
            contract_name=main.contract_name,
            compiler=main.compiler,
            optimization=main.optimization,
            is_verified=main.is_verified,
            is_proxy=contract.proxy,
            is_erc20=is_token,
            created_at=datetime.now(timezone.utc),
        )

        # Step 5: Implementation behind a proxy
        if contract.proxy and is_address(implementation_address):
            await asyncio.sleep(REQUEST_DELAY_SECONDS)
            try:
                with _stage(
                    tracer, trace_id, "implementation_analysis", address=implementation_address,
                ):
                    impl = await self._analyze_single(
                        implementation_address, network, trace_id, contract_agent,
                        stage="implementation_analysis",
                    )
            except Exception as e:
                logger.warning(
                    "implementation_analysis_failed",
                    implementation=implementation_address,
                    error=str(e),
                )
            else:
                report.implementation = ContractImplementation(
                    address=implementation_address,
                    summary=impl.insights.summary,
                    risks=impl.insights.risks,
                    functions=impl.insights.functions,
                    source_code=impl.source_code,
                    contract_name=impl.contract_name,
                    compiler=impl.compiler,
                    optimization=impl.optimization,
                    is_verified=impl.is_verified,
                )
        elif contract.proxy:
            tracer.log_stage(
                trace_id, "implementation_analysis", status="skipped",
                detail=f"Implementation address not usable: {implementation_address!r}",
            )

        # Step 6: Security scoring
        await asyncio.sleep(REQUEST_DELAY_SECONDS)
        try:
            with _stage(tracer, trace_id, "security_analysis"):
                report.security_analysis = await security_agent.run(
                    main.source_code,
                    main.contract_name,
                    main.abi,
                    trace_id,
                    is_verified=main.is_verified,
                    address=address,
                )
        except Exception as e:
            logger.warning("security_analysis_failed", address=address, error=str(e))

        return report

    async def _fetch_source(self, address: str, network: Network) -> ContractSource:
        sources = await self._explorer.get_source_code(address, network)
        if not sources:
            raise ContractNotFoundError("Contract not found or not verified")
        return sources[0]

    async def _analyze_single(
        self,
        address: str,
        network: Network,
        trace_id: str,
        agent: ContractAgent,
        prefetched: ContractSource | None = None,
        stage: str = "contract_analysis",
    ) -> SingleContractResult:
        """Fetch, flatten and model-analyze one contract."""
        contract = prefetched or await self._fetch_source(address, network)

        if not contract.is_verified:
            raise ContractNotVerifiedError(
                "Contract source code not available. "
                "The contract must be verified on Etherscan/Basescan."
            )

        source_code = parse_source_code(contract.source_code)

        await asyncio.sleep(REQUEST_DELAY_SECONDS)
        abi = parse_abi(await self._explorer.get_abi(address, network))

        insights = await agent.run(source_code, contract.contract_name, abi, trace_id, stage=stage)

        return SingleContractResult(
            source_code=source_code,
            contract_name=contract.contract_name,
            compiler=contract.compiler_version,
            optimization=contract.optimization_used,
            is_verified=contract.is_verified,
            abi=abi,
            insights=insights,
        )
