"""Tests for the Etherscan client and explorer payload helpers."""

from __future__ import annotations

import json

import httpx
import pytest

from explorer.client import (
    ContractSource,
    ExplorerClient,
    ExplorerConfigError,
    ExplorerError,
    ExplorerRateLimitError,
)
from explorer.contracts import (
    format_ether,
    is_address,
    is_erc20,
    normalize_address,
    parse_abi,
    parse_source_code,
    to_transaction,
)
from tests.conftest import (
    ERC20_ABI,
    PROXY_ABI,
    TOKEN_ADDRESS,
    FakeExplorer,
    api_error,
    make_explorer,
    source_entry,
    tx_row,
)

# ---------------------------------------------------------------------------
# ExplorerClient — requests
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_source_code_parses_result(token_explorer: FakeExplorer):
    client = make_explorer(token_explorer)

    sources = await client.get_source_code(TOKEN_ADDRESS, "ethereum")

    assert len(sources) == 1
    source = sources[0]
    assert isinstance(source, ContractSource)
    assert source.contract_name == "LinkToken"
    assert source.optimization_used is True
    assert source.proxy is False
    assert source.is_verified is True


@pytest.mark.asyncio
async def test_request_carries_chain_id_and_key(token_explorer: FakeExplorer):
    client = make_explorer(token_explorer)

    await client.get_source_code(TOKEN_ADDRESS, "base")

    params = token_explorer.requests[0]
    assert params["chainid"] == "8453"
    assert params["module"] == "contract"
    assert params["action"] == "getsourcecode"
    assert params["apikey"] == "test-key"


@pytest.mark.asyncio
async def test_get_transactions_query(token_explorer: FakeExplorer):
    client = make_explorer(token_explorer)

    rows = await client.get_transactions(TOKEN_ADDRESS, "ethereum", limit=5)

    assert len(rows) == 1
    params = token_explorer.requests[0]
    assert params["chainid"] == "1"
    assert params["action"] == "txlist"
    assert params["offset"] == "5"
    assert params["sort"] == "desc"


@pytest.mark.asyncio
async def test_no_transactions_is_empty_list():
    handler = FakeExplorer(transactions=[])
    client = make_explorer(handler)

    assert await client.get_transactions(TOKEN_ADDRESS) == []


@pytest.mark.asyncio
async def test_get_abi_returns_raw_json(token_explorer: FakeExplorer):
    client = make_explorer(token_explorer)

    abi = await client.get_abi(TOKEN_ADDRESS)

    assert json.loads(abi) == ERC20_ABI


# ---------------------------------------------------------------------------
# ExplorerClient — errors
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_missing_api_key_raises_config_error():
    client = ExplorerClient(
        api_keys={"ethereum": "key", "base": None},
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(FakeExplorer())),
    )

    with pytest.raises(ExplorerConfigError, match="API key for base is not configured"):
        await client.get_source_code(TOKEN_ADDRESS, "base")


def test_from_env_falls_back_to_etherscan_key(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ETHERSCAN_API_KEY", "eth-key")
    monkeypatch.delenv("BASESCAN_API_KEY", raising=False)

    client = ExplorerClient.from_env()

    assert client._api_keys == {"ethereum": "eth-key", "base": "eth-key"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("message", "result", "error_type", "fragment"),
    [
        ("NOTOK", "Invalid API Key", ExplorerError, "check your ETHERSCAN_API_KEY"),
        ("NOTOK", "Max rate limit reached", ExplorerRateLimitError, "Rate limit exceeded"),
        ("Invalid API Key (#err2)", "", ExplorerError, "Invalid API key for ethereum"),
        ("Max rate limit reached", "", ExplorerRateLimitError, "Rate limit exceeded for ethereum"),
        ("Something odd", "", ExplorerError, "Etherscan API error: Something odd"),
    ],
)
async def test_api_error_mapping(message, result, error_type, fragment):
    handler = FakeExplorer()
    handler.overrides["getsourcecode"] = api_error(message, result)
    client = make_explorer(handler)

    with pytest.raises(error_type, match=fragment):
        await client.get_source_code(TOKEN_ADDRESS, "ethereum")


@pytest.mark.asyncio
async def test_base_errors_name_basescan_key():
    handler = FakeExplorer()
    handler.overrides["getabi"] = api_error("NOTOK", "Invalid API Key")
    client = make_explorer(handler)

    with pytest.raises(ExplorerError, match="BASESCAN_API_KEY"):
        await client.get_abi(TOKEN_ADDRESS, "base")


@pytest.mark.asyncio
async def test_http_error_is_not_retried():
    handler = FakeExplorer()
    handler.overrides["getsourcecode"] = httpx.Response(403)
    client = make_explorer(handler)

    with pytest.raises(ExplorerError, match="Failed to fetch contract source code: Forbidden"):
        await client.get_source_code(TOKEN_ADDRESS)
    assert len(handler.requests) == 1


@pytest.mark.asyncio
async def test_server_errors_are_retried_then_raised():
    handler = FakeExplorer()
    handler.overrides["txlist"] = httpx.Response(503)
    client = make_explorer(handler)

    with pytest.raises(ExplorerError, match="Failed to fetch transactions"):
        await client.get_transactions(TOKEN_ADDRESS)
    assert len(handler.requests) == 3


@pytest.mark.asyncio
async def test_transient_failure_recovers():
    calls = {"n": 0}

    def flaky(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 1:
            raise httpx.ConnectError("connection reset", request=request)
        return httpx.Response(200, json={"status": "1", "message": "OK", "result": "[]"})

    client = ExplorerClient(
        api_keys={"ethereum": "key"},
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(flaky)),
    )

    assert await client.get_abi(TOKEN_ADDRESS) == "[]"
    assert calls["n"] == 2


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def test_is_address_checks_format_only():
    assert is_address(TOKEN_ADDRESS)
    assert is_address(TOKEN_ADDRESS.lower())
    assert not is_address("")
    assert not is_address(None)
    assert not is_address("0x123")
    assert not is_address(TOKEN_ADDRESS[2:] + "00")
    assert not is_address("0x" + "g" * 40)


def test_normalize_address():
    assert normalize_address(TOKEN_ADDRESS) == "0x514910771af9ca656af840dff83e8264ecf986ca"


def test_parse_source_code_plain_solidity():
    assert parse_source_code("pragma solidity ^0.8.0;") == "pragma solidity ^0.8.0;"


def test_parse_source_code_standard_json_input():
    payload = {
        "language": "Solidity",
        "sources": {
            "contracts/A.sol": {"content": "contract A {}"},
            "contracts/B.sol": {"content": "contract B {}"},
        },
    }
    raw = "{" + json.dumps(payload) + "}"

    assert parse_source_code(raw) == "contract A {}\n\ncontract B {}"


def test_parse_source_code_multi_file_json():
    raw = json.dumps({"sources": {"A.sol": {"content": "contract A {}"}}})
    assert parse_source_code(raw) == "contract A {}"


def test_parse_source_code_bad_json_returns_raw():
    raw = "{ this is not json"
    assert parse_source_code(raw) == raw


def test_parse_abi():
    assert parse_abi(json.dumps(ERC20_ABI)) == ERC20_ABI
    assert parse_abi("Contract source code not verified") == []
    assert parse_abi('{"not": "a list"}') == []


def test_is_erc20():
    assert is_erc20(ERC20_ABI) is True
    assert is_erc20(PROXY_ABI) is False
    assert is_erc20([]) is False


def test_is_erc20_ignores_events_with_matching_names():
    abi = [{"type": "event", "name": n} for n in ("name", "symbol", "decimals", "totalSupply", "balanceOf", "transfer")]
    assert is_erc20(abi) is False


@pytest.mark.parametrize(
    ("wei", "ether"),
    [
        ("0", "0"),
        ("1000000000000000000", "1"),
        ("1500000000000000000", "1.5"),
        ("1", "0.000000000000000001"),
        ("123456789000000000000", "123.456789"),
        (-2500000000000000000, "-2.5"),
    ],
)
def test_format_ether(wei, ether):
    assert format_ether(wei) == ether


def test_to_transaction():
    tx = to_transaction(tx_row(value="2000000000000000000", is_error="1", function_name=""))

    assert tx.hash == "0xabc"
    assert tx.value == "2"
    assert tx.timestamp == 1705329000
    assert tx.method is None
    assert tx.status == "failed"
    assert tx.from_address == "0x00000000000000000000000000000000000000aa"


def test_contract_source_unverified():
    source = ContractSource.from_result(source_entry(source="   "))
    assert source.is_verified is False
