"""FinOps cost tracking — LLM token usage and spend per contract analysis."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

# Claude Sonnet pricing (per token)
CLAUDE_SONNET_INPUT = 3.0 / 1_000_000
CLAUDE_SONNET_OUTPUT = 15.0 / 1_000_000

DEFAULT_MAX_ANALYSES = 1000


def calculate_cost(input_tokens: int, output_tokens: int) -> float:
    """Dollar cost of one model call."""
    return input_tokens * CLAUDE_SONNET_INPUT + output_tokens * CLAUDE_SONNET_OUTPUT


@dataclass
class AnalysisCost:
    """Model spend accumulated over one analysis (contract, implementation, security)."""

    analysis_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    total_cost: float = 0.0
    by_agent: dict[str, float] = field(default_factory=dict)
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    llm_call_count: int = 0

    def add_call(self, agent_name: str, input_tokens: int, output_tokens: int) -> None:
        cost = calculate_cost(input_tokens, output_tokens)
        self.total_cost += cost
        self.total_input_tokens += input_tokens
        self.total_output_tokens += output_tokens
        self.llm_call_count += 1
        self.by_agent[agent_name] = self.by_agent.get(agent_name, 0.0) + cost


class CostTracker:
    """Per-analysis model spend, keeping only the most recent *max_analyses*."""

    def __init__(self, max_analyses: int = DEFAULT_MAX_ANALYSES) -> None:
        self._max_analyses = max_analyses
        self._analyses: OrderedDict[str, AnalysisCost] = OrderedDict()

    def record_llm_call(
        self,
        analysis_id: str,
        agent_name: str,
        input_tokens: int,
        output_tokens: int,
    ) -> None:
        entry = self._analyses.get(analysis_id)
        if entry is None:
            entry = self._analyses[analysis_id] = AnalysisCost(analysis_id=analysis_id)
            while len(self._analyses) > self._max_analyses:
                self._analyses.popitem(last=False)
        entry.add_call(agent_name, input_tokens, output_tokens)

    def get_analysis_cost(self, analysis_id: str) -> dict[str, Any]:
        entry = self._analyses.get(analysis_id)
        if entry is None:
            return {"total": 0.0, "by_agent": {}, "llm_call_count": 0}

        return {
            "total": round(entry.total_cost, 6),
            "by_agent": {k: round(v, 6) for k, v in entry.by_agent.items()},
            "llm_call_count": entry.llm_call_count,
        }

    def get_cost_summary(self, last_n_hours: int = 24) -> dict[str, Any]:
        """Aggregate spend over analyses started in the last *last_n_hours*."""
        cutoff = datetime.now(timezone.utc) - timedelta(hours=last_n_hours)
        recent = [a for a in self._analyses.values() if a.timestamp >= cutoff]

        if not recent:
            return {
                "total_cost": 0.0,
                "avg_cost_per_analysis": 0.0,
                "most_expensive_analysis": None,
                "total_analyses": 0,
                "total_tokens": 0,
                "by_agent": {},
            }

        total_cost = sum(a.total_cost for a in recent)
        most_expensive = max(recent, key=lambda a: a.total_cost)

        by_agent: dict[str, float] = {}
        for entry in recent:
            for agent_name, cost in entry.by_agent.items():
                by_agent[agent_name] = by_agent.get(agent_name, 0.0) + cost

        return {
            "total_cost": round(total_cost, 6),
            "avg_cost_per_analysis": round(total_cost / len(recent), 6),
            "most_expensive_analysis": {
                "analysis_id": most_expensive.analysis_id,
                "cost": round(most_expensive.total_cost, 6),
            },
            "total_analyses": len(recent),
            "total_tokens": sum(a.total_input_tokens + a.total_output_tokens for a in recent),
            "by_agent": {k: round(v, 6) for k, v in by_agent.items()},
        }
