"""Security agent — scores honeypot, rug-pull, backdoor and impersonation threats."""

from __future__ import annotations

from typing import Any

import structlog

from agent.agents._base import StructuredAgent
from agent.models import SecurityAnalysis
from agent.prompts import SECURITY_SYSTEM_PROMPT, security_message

logger = structlog.get_logger()


class SecurityAgent(StructuredAgent[SecurityAnalysis]):
    """Classifies a contract into threat types with a 0-100 risk score."""

    name = "security"
    system_prompt = SECURITY_SYSTEM_PROMPT
    result_model = SecurityAnalysis
    structure_label = "security analysis"

    async def run(
        self,
        source_code: str,
        contract_name: str,
        abi: list[dict[str, Any]],
        trace_id: str,
        is_verified: bool = False,
        address: str | None = None,
    ) -> SecurityAnalysis:
        analysis = await self._ask(
            security_message(source_code, contract_name, abi, is_verified, address),
            trace_id=trace_id,
            stage="security_analysis",
        )
        logger.info(
            "security_analysis_complete",
            contract_name=contract_name,
            overall_risk=analysis.overall_risk,
            risk_score=analysis.risk_score,
            threats=[t.type for t in analysis.threats],
        )
        return analysis
