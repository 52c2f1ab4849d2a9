"""Contract agent — explains what a contract does, lists its risks and functions."""

from __future__ import annotations

from typing import Any

import structlog

from agent.agents._base import StructuredAgent
from agent.models import ContractInsights
from agent.prompts import CONTRACT_SYSTEM_PROMPT, contract_message

logger = structlog.get_logger()


class ContractAgent(StructuredAgent[ContractInsights]):
    """Produces the plain-language summary, risk list and function catalogue."""

    name = "contract"
    system_prompt = CONTRACT_SYSTEM_PROMPT
    result_model = ContractInsights

    async def run(
        self,
        source_code: str,
        contract_name: str,
        abi: list[dict[str, Any]],
        trace_id: str,
        stage: str = "contract_analysis",
    ) -> ContractInsights:
        insights = await self._ask(
            contract_message(source_code, contract_name, abi),
            trace_id=trace_id,
            stage=stage,
        )
        logger.info(
            "contract_analysis_complete",
            contract_name=contract_name,
            risks=len(insights.risks),
            high_risks=sum(1 for r in insights.risks if r.level == "high"),
            functions=len(insights.functions),
        )
        return insights
