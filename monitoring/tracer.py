"""Stage tracer — records every pipeline stage of an analysis for auditability."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Literal

import structlog

from agent.models import StageRecord, StreamEvent

logger = structlog.get_logger()

_STATUS_EVENTS = {"ok": "stage_complete", "failed": "stage_failed", "skipped": "stage_complete"}


class StageTracer:
    """Records and retrieves the stage trace of each contract analysis.

    When an *event_queue* is attached, every started and finished stage is
    also pushed to it as a :class:`StreamEvent` for SSE consumers.
    """

    def __init__(self, event_queue: asyncio.Queue[StreamEvent | None] | None = None) -> None:
        self._traces: dict[str, list[StageRecord]] = {}
        self._event_queue = event_queue

    def start_trace(self, trace_id: str) -> None:
        """Initialize a new trace."""
        self._traces[trace_id] = []
        logger.info("trace_started", trace_id=trace_id)

    def stage_started(self, trace_id: str, stage: str, **data: Any) -> None:
        logger.info("stage_started", trace_id=trace_id, stage=stage, **data)
        if self._event_queue is not None:
            self._event_queue.put_nowait(
                StreamEvent(event_type="stage_start", stage=stage, data=data)
            )

    def log_stage(
        self,
        trace_id: str,
        stage: str,
        status: Literal["ok", "failed", "skipped"] = "ok",
        detail: str = "",
        tokens_used: int = 0,
        cost_usd: float = 0.0,
        duration_ms: float | None = None,
    ) -> StageRecord:
        """Log a finished stage in the trace."""
        record = StageRecord(
            stage=stage,
            status=status,
            detail=detail,
            tokens_used=tokens_used,
            cost_usd=cost_usd,
            duration_ms=round(duration_ms, 2) if duration_ms is not None else None,
            timestamp=datetime.now(timezone.utc),
        )
        self._traces.setdefault(trace_id, []).append(record)

        log_kwargs: dict[str, Any] = {
            "trace_id": trace_id,
            "stage": stage,
            "status": status,
            "tokens": tokens_used,
        }
        if record.duration_ms is not None:
            log_kwargs["duration_ms"] = record.duration_ms

        if status == "failed":
            logger.warning("stage_failed", detail=detail, **log_kwargs)
        else:
            logger.info("stage_finished", **log_kwargs)

        if self._event_queue is not None:
            self._event_queue.put_nowait(
                StreamEvent(
                    event_type=_STATUS_EVENTS[status],  # type: ignore[arg-type]
                    stage=stage,
                    data=record.model_dump(mode="json", exclude={"stage", "timestamp"}),
                )
            )

        return record

    def get_trace(self, trace_id: str) -> list[StageRecord]:
        """Get all stages for a trace in order."""
        return self._traces.get(trace_id, [])

    def get_total_tokens(self, trace_id: str) -> int:
        return sum(record.tokens_used for record in self.get_trace(trace_id))

    def get_total_cost(self, trace_id: str) -> float:
        return sum(record.cost_usd for record in self.get_trace(trace_id))

    def discard(self, trace_id: str) -> None:
        """Drop a finished trace once its records are copied into a report."""
        self._traces.pop(trace_id, None)

    def export_trace_json(self, trace_id: str) -> str:
        """Export the full trace as a JSON string."""
        data = [record.model_dump(mode="json") for record in self.get_trace(trace_id)]
        return json.dumps(data, indent=2, default=str)
