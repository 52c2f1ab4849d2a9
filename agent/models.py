"""Pydantic models for the contract analysis system."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Literal, get_args

from pydantic import AliasChoices, BaseModel, Field, field_validator

Network = Literal["ethereum", "base"]

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class AnalyzeRequest(BaseModel):
    """A request to analyze a deployed contract."""

    address: str
    network: Network = "ethereum"

    @field_validator("address")
    @classmethod
    def _check_address(cls, value: str) -> str:
        value = value.strip()
        if not ADDRESS_RE.match(value):
            raise ValueError("Invalid Ethereum address")
        return value


# --- Model replies -----------------------------------------------------------


RiskLevel = Literal["high", "medium", "low"]
RiskCategory = Literal["security", "centralization", "scam", "other"]
ThreatSeverity = Literal["low", "medium", "high", "critical"]

# Labels the model sometimes uses outside the prompted vocabulary
_SEVERITY_SYNONYMS = {"severe": "high", "moderate": "medium", "info": "low", "informational": "low"}
_LEVEL_SYNONYMS = {**_SEVERITY_SYNONYMS, "critical": "high"}


def _choice(
    value: Any, allowed: Any, fallback: str, synonyms: dict[str, str] | None = None,
) -> str:
    """Map a free-form label onto *allowed*, falling back instead of failing."""
    if not isinstance(value, str):
        return fallback
    label = value.strip().lower()
    label = (synonyms or {}).get(label, label)
    return label if label in get_args(allowed) else fallback


class Risk(BaseModel):
    level: RiskLevel
    title: str
    description: str = ""
    category: RiskCategory = "other"

    @field_validator("level", mode="before")
    @classmethod
    def _coerce_level(cls, value: Any) -> str:
        return _choice(value, RiskLevel, "low", _LEVEL_SYNONYMS)

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, value: Any) -> str:
        return _choice(value, RiskCategory, "other")


class FunctionParam(BaseModel):
    name: str = ""
    type: str


class ContractFunction(BaseModel):
    name: str
    signature: str = ""
    state_mutability: str = Field(
        default="",
        validation_alias=AliasChoices("stateMutability", "state_mutability"),
    )
    description: str = ""
    inputs: list[FunctionParam] = Field(default_factory=list)
    outputs: list[FunctionParam] = Field(default_factory=list)


class ContractInsights(BaseModel):
    """Summary, risks and function catalogue returned by the contract agent."""

    summary: str = Field(min_length=1)
    risks: list[Risk]
    functions: list[ContractFunction]


class SecurityThreat(BaseModel):
    # honeypot, scam, rugpull, malicious, backdoor, fake-token, soft-rug, or
    # whatever else the model names
    type: str
    severity: ThreatSeverity
    confidence: float = Field(ge=0, le=100)
    description: str
    indicators: list[str] = Field(default_factory=list)

    @field_validator("severity", mode="before")
    @classmethod
    def _coerce_severity(cls, value: Any) -> str:
        return _choice(value, ThreatSeverity, "low", _SEVERITY_SYNONYMS)


class SecurityAnalysis(BaseModel):
    """Threat assessment returned by the security agent."""

    overall_risk: Literal["safe", "low", "medium", "high", "critical"] = Field(
        validation_alias=AliasChoices("overallRisk", "overall_risk"),
    )
    risk_score: float = Field(
        ge=0,
        le=100,
        validation_alias=AliasChoices("riskScore", "risk_score"),
    )
    threats: list[SecurityThreat]
    recommendation: str = ""


# --- Report ------------------------------------------------------------------


class Transaction(BaseModel):
    hash: str
    from_address: str
    to_address: str
    value: str  # in ether
    timestamp: int
    method: str | None = None
    status: Literal["success", "failed"]


class ContractImplementation(BaseModel):
    """Analysis of the logic contract behind a proxy."""

    address: str
    summary: str
    risks: list[Risk] = Field(default_factory=list)
    functions: list[ContractFunction] = Field(default_factory=list)
    source_code: str | None = None
    contract_name: str | None = None
    compiler: str | None = None
    optimization: bool | None = None
    is_verified: bool | None = None


class StageRecord(BaseModel):
    """One pipeline stage as recorded by the tracer."""

    stage: str
    status: Literal["ok", "failed", "skipped"]
    detail: str = ""
    tokens_used: int = 0
    cost_usd: float = 0.0
    duration_ms: float | None = None
    timestamp: datetime


class ContractAnalysis(BaseModel):
    """Complete report for one contract."""

    analysis_id: str
    address: str
    network: Network
    summary: str
    risks: list[Risk]
    functions: list[ContractFunction]
    recent_transactions: list[Transaction] = Field(default_factory=list)
    source_code: str | None = None
    contract_name: str | None = None
    compiler: str | None = None
    optimization: bool | None = None
    is_verified: bool | None = None
    is_proxy: bool = False
    implementation: ContractImplementation | None = None
    is_erc20: bool = False
    security_analysis: SecurityAnalysis | None = None
    stages: list[StageRecord] = Field(default_factory=list)
    total_tokens: int = 0
    total_cost_usd: float = 0.0
    duration_seconds: float = 0.0
    created_at: datetime


class StreamEvent(BaseModel):
    """Server-sent event emitted while an analysis is running."""

    event_type: Literal[
        "stage_start", "stage_complete", "stage_failed", "analysis_complete", "error",
    ]
    stage: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
