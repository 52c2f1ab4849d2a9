"""Exceptions raised by the analysis pipeline.

Each carries the HTTP status the API answers with.
"""

from __future__ import annotations


class ContractAnalysisError(Exception):
    """Base class for failures that abort an analysis."""

    status_code = 500


class ContractNotFoundError(ContractAnalysisError):
    status_code = 404


class ContractNotVerifiedError(ContractAnalysisError):
    status_code = 404


class AIAnalysisError(ContractAnalysisError):
    status_code = 502


class AnalysisTimeoutError(ContractAnalysisError):
    status_code = 504
