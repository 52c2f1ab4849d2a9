"""Shared application state and dependency injection for the API.

Everything is built once in the lifespan and kept on ``app.state``; route
handlers receive it through these dependencies.
"""

from __future__ import annotations

from collections import OrderedDict

from fastapi import Request

from agent.core import ContractAnalyzer
from agent.models import ContractAnalysis

DEFAULT_MAX_REPORTS = 500


class AnalysisStore:
    """In-memory store of finished reports, oldest evicted first."""

    def __init__(self, max_reports: int = DEFAULT_MAX_REPORTS) -> None:
        self._max_reports = max_reports
        self._reports: OrderedDict[str, ContractAnalysis] = OrderedDict()

    def __setitem__(self, key: str, value: ContractAnalysis) -> None:
        self._reports[key] = value
        self._reports.move_to_end(key)
        while len(self._reports) > self._max_reports:
            self._reports.popitem(last=False)

    def __getitem__(self, key: str) -> ContractAnalysis:
        return self._reports[key]

    def __contains__(self, key: object) -> bool:
        return key in self._reports

    def __len__(self) -> int:
        return len(self._reports)

    def values(self) -> list[ContractAnalysis]:
        """Return all stored reports."""
        return list(self._reports.values())

    def clear(self) -> None:
        self._reports.clear()


def get_analyzer(request: Request) -> ContractAnalyzer:
    analyzer: ContractAnalyzer | None = getattr(request.app.state, "analyzer", None)
    assert analyzer is not None, "ContractAnalyzer not initialized"
    return analyzer


def get_store(request: Request) -> AnalysisStore:
    return request.app.state.store  # type: ignore[no-any-return]


def get_llm_provider(request: Request) -> str:
    return getattr(request.app.state, "llm_provider", "unknown")
