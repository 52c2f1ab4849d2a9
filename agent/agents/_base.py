"""Shared call → extract → validate loop for agents that answer with one JSON object."""

from __future__ import annotations

import time
from typing import Any, Generic, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from agent.agents import extract_json
from agent.errors import AIAnalysisError
from agent.llm_client import LLMClient
from monitoring.finops import CostTracker, calculate_cost
from monitoring.metrics import record_llm_call, record_unparseable_response
from monitoring.tracer import StageTracer

logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=BaseModel)

_NO_JSON = object()


class StructuredAgent(Generic[ModelT]):
    """Sends one prompt, pulls the JSON object out of the reply and validates it."""

    name: str = "agent"
    system_prompt: str = ""
    result_model: type[ModelT]
    structure_label: str = "analysis"

    def __init__(
        self,
        llm_client: LLMClient,
        tracer: StageTracer,
        cost_tracker: CostTracker | None = None,
    ) -> None:
        self._llm = llm_client
        self._tracer = tracer
        self._costs = cost_tracker

    async def _ask(self, user_message: str, trace_id: str, stage: str) -> ModelT:
        start = time.perf_counter()
        try:
            response = await self._llm.chat(
                messages=[{"role": "user", "content": user_message}],
                system=self.system_prompt,
            )
        except Exception as e:
            logger.error("llm_call_failed", agent=self.name, error=str(e))
            raise AIAnalysisError(f"Failed to analyze contract with AI: {e}") from e

        usage = response.usage
        cost = calculate_cost(usage.input_tokens, usage.output_tokens)
        record_llm_call(self.name, usage.input_tokens, usage.output_tokens, cost)
        if self._costs is not None:
            self._costs.record_llm_call(trace_id, self.name, usage.input_tokens, usage.output_tokens)

        self._tracer.log_stage(
            trace_id=trace_id,
            stage=f"llm:{stage}",
            detail=f"{self.name} model call ({response.stop_reason or 'unknown stop'})",
            tokens_used=usage.total_tokens,
            cost_usd=cost,
            duration_ms=(time.perf_counter() - start) * 1000,
        )

        if response.truncated:
            logger.warning("llm_reply_truncated", agent=self.name, output_tokens=usage.output_tokens)

        payload = extract_json(response.content, default=_NO_JSON)
        if payload is _NO_JSON:
            record_unparseable_response(self.name)
            logger.error(
                "json_extraction_failed",
                agent=self.name,
                preview=response.content[:1000],
            )
            raise AIAnalysisError("Could not parse JSON from model response")

        try:
            return self.result_model.model_validate(payload)
        except ValidationError as e:
            logger.error(
                "model_reply_invalid",
                agent=self.name,
                errors=e.error_count(),
                preview=_preview(payload),
            )
            raise AIAnalysisError(
                f"Invalid {self.structure_label} structure from model"
            ) from e


def _preview(payload: Any) -> str:
    return str(payload)[:500]
