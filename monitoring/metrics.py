"""Prometheus metrics for contract analysis observability."""

from __future__ import annotations

from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge, Histogram

if TYPE_CHECKING:
    from agent.models import ContractAnalysis

# --- Analysis metrics ---

contract_analyses_total = Counter(
    "contract_analyses_total",
    "Total number of contract analyses finished",
    ["network", "outcome"],
)

contract_analysis_duration_seconds = Histogram(
    "contract_analysis_duration_seconds",
    "Time spent analyzing a contract end-to-end",
    buckets=[5, 15, 30, 60, 120, 300],
)

contract_stage_failures_total = Counter(
    "contract_stage_failures_total",
    "Optional pipeline stages that failed without aborting the analysis",
    ["stage"],
)

contract_risk_score = Histogram(
    "contract_risk_score",
    "Distribution of security risk scores",
    buckets=[20, 40, 60, 80, 100],
)

# --- Explorer metrics ---

explorer_requests_total = Counter(
    "explorer_requests_total",
    "Block explorer API requests",
    ["action", "outcome"],
)

# --- LLM token / cost metrics ---

llm_tokens_total = Counter(
    "llm_tokens_total",
    "Total LLM tokens consumed",
    ["direction", "agent_name"],
)

llm_cost_dollars_total = Counter(
    "llm_cost_dollars_total",
    "Total LLM cost in USD",
    ["agent_name"],
)

llm_unparseable_responses_total = Counter(
    "llm_unparseable_responses_total",
    "LLM replies with no extractable JSON object",
    ["agent_name"],
)

# --- System metrics ---

active_analyses = Gauge(
    "active_analyses",
    "Number of contract analyses currently in progress",
)


# --- Helper functions ---


def record_explorer_request(action: str, outcome: str) -> None:
    explorer_requests_total.labels(action=action, outcome=outcome).inc()


def record_llm_call(
    agent_name: str,
    input_tokens: int,
    output_tokens: int,
    cost: float,
) -> None:
    """Record LLM token usage and cost for an agent run."""
    llm_tokens_total.labels(direction="input", agent_name=agent_name).inc(input_tokens)
    llm_tokens_total.labels(direction="output", agent_name=agent_name).inc(output_tokens)
    llm_cost_dollars_total.labels(agent_name=agent_name).inc(cost)


def record_unparseable_response(agent_name: str) -> None:
    llm_unparseable_responses_total.labels(agent_name=agent_name).inc()


def record_analysis_failed(network: str) -> None:
    contract_analyses_total.labels(network=network, outcome="failed").inc()


def record_analysis_complete(report: ContractAnalysis) -> None:
    """Record metrics from a completed contract analysis report."""
    contract_analyses_total.labels(network=report.network, outcome="complete").inc()
    contract_analysis_duration_seconds.observe(report.duration_seconds)

    if report.security_analysis is not None:
        contract_risk_score.observe(report.security_analysis.risk_score)

    for stage in report.stages:
        if stage.status == "failed":
            contract_stage_failures_total.labels(stage=stage.stage).inc()
