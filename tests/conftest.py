"""Shared test fixtures for contract analysis tests."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from agent.core import ContractAnalyzer
from agent.llm_client import MockClient, Response, TokenUsage
from explorer.client import ExplorerClient
from monitoring.tracer import StageTracer

TOKEN_ADDRESS = "0x514910771AF9Ca656af840dff83E8264EcF986CA"
PROXY_ADDRESS = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
IMPL_ADDRESS = "0x43506849d7c04f9138d1a2050bbf3a0c054402dd"

ERC20_ABI: list[dict[str, Any]] = [
    {"type": "function", "name": name, "inputs": [], "outputs": [], "stateMutability": "view"}
    for name in ("name", "symbol", "decimals", "totalSupply", "balanceOf", "transfer", "approve")
] + [{"type": "event", "name": "Transfer", "inputs": []}]

PROXY_ABI: list[dict[str, Any]] = [
    {"type": "function", "name": "upgradeTo", "inputs": [{"name": "impl", "type": "address"}]},
    {"type": "function", "name": "admin", "inputs": [], "outputs": [{"type": "address"}]},
]

TOKEN_SOURCE = "pragma solidity ^0.8.20;\ncontract LinkToken { string public name = \"ChainLink Token\"; }"


# ---------------------------------------------------------------------------
# Explorer payloads
# ---------------------------------------------------------------------------


def source_entry(
    name: str = "LinkToken",
    source: str = TOKEN_SOURCE,
    abi: list[dict[str, Any]] | None = None,
    proxy: bool = False,
    implementation: str = "",
) -> dict[str, Any]:
    return {
        "SourceCode": source,
        "ABI": json.dumps(abi if abi is not None else ERC20_ABI),
        "ContractName": name,
        "CompilerVersion": "v0.8.20+commit.a1b79de6",
        "OptimizationUsed": "1",
        "Runs": "200",
        "ConstructorArguments": "",
        "EVMVersion": "Default",
        "Library": "",
        "LicenseType": "MIT",
        "Proxy": "1" if proxy else "0",
        "Implementation": implementation,
        "SwarmSource": "",
    }


def tx_row(
    tx_hash: str = "0xabc",
    value: str = "1500000000000000000",
    is_error: str = "0",
    function_name: str = "transfer(address,uint256)",
) -> dict[str, Any]:
    return {
        "blockNumber": "19000000",
        "timeStamp": "1705329000",
        "hash": tx_hash,
        "from": "0x00000000000000000000000000000000000000aa",
        "to": TOKEN_ADDRESS.lower(),
        "value": value,
        "isError": is_error,
        "txreceipt_status": "1",
        "functionName": function_name,
        "methodId": "0xa9059cbb",
    }


def ok(result: Any) -> httpx.Response:
    return httpx.Response(200, json={"status": "1", "message": "OK", "result": result})


def api_error(message: str, result: Any = "") -> httpx.Response:
    return httpx.Response(200, json={"status": "0", "message": message, "result": result})


class FakeExplorer:
    """httpx.MockTransport handler that serves canned Etherscan responses by action."""

    def __init__(
        self,
        sources: dict[str, list[dict[str, Any]]] | None = None,
        abis: dict[str, list[dict[str, Any]]] | None = None,
        transactions: list[dict[str, Any]] | None = None,
    ) -> None:
        self.sources = {k.lower(): v for k, v in (sources or {}).items()}
        self.abis = {k.lower(): v for k, v in (abis or {}).items()}
        self.transactions = transactions if transactions is not None else [tx_row()]
        self.overrides: dict[str, httpx.Response] = {}
        self.requests: list[dict[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        params = dict(request.url.params)
        self.requests.append(params)
        action = params["action"]
        address = params.get("address", "").lower()

        if action in self.overrides:
            canned = self.overrides[action]
            return httpx.Response(canned.status_code, content=canned.content, headers=canned.headers)
        if action == "getsourcecode":
            return ok(self.sources.get(address, []))
        if action == "getabi":
            if address not in self.abis:
                return api_error("NOTOK", "Contract source code not verified")
            return ok(json.dumps(self.abis[address]))
        if action == "txlist":
            if not self.transactions:
                return api_error("No transactions found", [])
            return ok(self.transactions)
        return httpx.Response(404)

    def actions(self) -> list[str]:
        return [r["action"] for r in self.requests]


def make_explorer(handler: FakeExplorer) -> ExplorerClient:
    return ExplorerClient(
        api_keys={"ethereum": "test-key", "base": "test-key"},
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


# ---------------------------------------------------------------------------
# Pre-scripted LLM responses
# ---------------------------------------------------------------------------


def contract_payload(summary: str = "An ERC-20 token used to pay Chainlink oracle operators.") -> dict[str, Any]:
    return {
        "summary": summary,
        "risks": [
            {
                "level": "low",
                "title": "Fixed supply",
                "description": "All tokens were minted at deployment.",
                "category": "other",
            },
        ],
        "functions": [
            {
                "name": "transfer",
                "signature": "transfer(address,uint256)",
                "stateMutability": "nonpayable",
                "description": "Moves tokens to another address.",
                "inputs": [{"name": "to", "type": "address"}, {"name": "value", "type": "uint256"}],
                "outputs": [{"name": "", "type": "bool"}],
            },
        ],
    }


def security_payload(overall_risk: str = "safe", risk_score: int = 8) -> dict[str, Any]:
    return {
        "overallRisk": overall_risk,
        "riskScore": risk_score,
        "threats": [],
        "recommendation": "Standard token implementation, safe to use.",
    }


def contract_response(summary: str | None = None) -> Response:
    # Wrapped in prose and a fence the way Claude usually answers
    payload = contract_payload(summary) if summary else contract_payload()
    return Response(
        content=(
            "Here is my analysis of the contract:\n\n```json\n"
            + json.dumps(payload, indent=2)
            + "\n```\n\nLet me know if you need more detail."
        ),
        usage=TokenUsage(input_tokens=3000, output_tokens=800),
        model="mock",
        stop_reason="end_turn",
    )


def security_response(overall_risk: str = "safe", risk_score: int = 8) -> Response:
    return Response(
        content=json.dumps(security_payload(overall_risk, risk_score)),
        usage=TokenUsage(input_tokens=3500, output_tokens=400),
        model="mock",
        stop_reason="end_turn",
    )


def text_response(content: str) -> Response:
    return Response(
        content=content,
        usage=TokenUsage(input_tokens=100, output_tokens=50),
        model="mock",
        stop_reason="end_turn",
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def no_delays(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop the fixed inter-request delay and retry back-off."""
    monkeypatch.setattr("agent.core.REQUEST_DELAY_SECONDS", 0)
    monkeypatch.setattr("explorer.client.RETRY_BACKOFF_SECONDS", 0)


@pytest.fixture
def tracer() -> StageTracer:
    return StageTracer()


@pytest.fixture
def token_explorer() -> FakeExplorer:
    """A verified, non-proxy ERC-20 token with one transaction."""
    return FakeExplorer(
        sources={TOKEN_ADDRESS: [source_entry()]},
        abis={TOKEN_ADDRESS: ERC20_ABI},
    )


@pytest.fixture
def proxy_explorer() -> FakeExplorer:
    """A verified proxy whose verified implementation is an ERC-20 token."""
    return FakeExplorer(
        sources={
            PROXY_ADDRESS: [source_entry(
                name="FiatTokenProxy",
                source="contract FiatTokenProxy { }",
                abi=PROXY_ABI,
                proxy=True,
                implementation=IMPL_ADDRESS,
            )],
            IMPL_ADDRESS: [source_entry(name="FiatTokenV2_2", source="contract FiatTokenV2_2 { }")],
        },
        abis={PROXY_ADDRESS: PROXY_ABI, IMPL_ADDRESS: ERC20_ABI},
    )


@pytest.fixture
def mock_llm_client() -> MockClient:
    """MockClient pre-loaded with contract → security responses."""
    return MockClient(responses=[contract_response(), security_response()])


@pytest.fixture
def analyzer(token_explorer: FakeExplorer, mock_llm_client: MockClient) -> ContractAnalyzer:
    return ContractAnalyzer(llm_client=mock_llm_client, explorer=make_explorer(token_explorer))
