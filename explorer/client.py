"""Async client for the Etherscan v2 multichain API (Ethereum and Base)."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from agent.models import Network
from monitoring.metrics import record_explorer_request

logger = structlog.get_logger()

ETHERSCAN_API_URL = "https://api.etherscan.io/v2/api"

CHAIN_IDS: dict[str, str] = {"ethereum": "1", "base": "8453"}
API_KEY_ENV: dict[str, str] = {"ethereum": "ETHERSCAN_API_KEY", "base": "BASESCAN_API_KEY"}

REQUEST_TIMEOUT = 30.0
MAX_RETRIES = 3
RETRY_BACKOFF_SECONDS = 1.0

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}
_NO_TRANSACTIONS = "No transactions found"


class ExplorerError(Exception):
    """The block explorer rejected or failed a request."""

    status_code = 502


class ExplorerConfigError(ExplorerError):
    """No API key is configured for the requested network."""

    status_code = 503


class ExplorerRateLimitError(ExplorerError):
    """The explorer throttled the API key."""


@dataclass
class ContractSource:
    """One entry of a ``getsourcecode`` result."""

    source_code: str
    abi: str
    contract_name: str
    compiler_version: str
    optimization_used: bool
    proxy: bool
    implementation: str

    @property
    def is_verified(self) -> bool:
        return bool(self.source_code.strip())

    @classmethod
    def from_result(cls, raw: dict[str, Any]) -> ContractSource:
        return cls(
            source_code=raw.get("SourceCode") or "",
            abi=raw.get("ABI") or "",
            contract_name=raw.get("ContractName") or "",
            compiler_version=raw.get("CompilerVersion") or "",
            optimization_used=raw.get("OptimizationUsed") == "1",
            proxy=raw.get("Proxy") == "1",
            implementation=raw.get("Implementation") or "",
        )


class ExplorerClient:
    """Reads contract source, ABI and transaction history from Etherscan/Basescan."""

    def __init__(
        self,
        api_keys: dict[str, str | None],
        base_url: str = ETHERSCAN_API_URL,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_keys = api_keys
        self._base_url = base_url
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=REQUEST_TIMEOUT)

    @classmethod
    def from_env(cls, http_client: httpx.AsyncClient | None = None) -> ExplorerClient:
        """Build a client from ETHERSCAN_API_KEY / BASESCAN_API_KEY.

        The v2 API key is multichain, so Base falls back to the Etherscan key.
        """
        etherscan_key = os.environ.get("ETHERSCAN_API_KEY") or None
        return cls(
            api_keys={
                "ethereum": etherscan_key,
                "base": os.environ.get("BASESCAN_API_KEY") or etherscan_key,
            },
            base_url=os.environ.get("ETHERSCAN_API_URL", ETHERSCAN_API_URL),
            http_client=http_client,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def get_source_code(self, address: str, network: Network = "ethereum") -> list[ContractSource]:
        """Fetch verified source and proxy metadata for *address*."""
        data = await self._call(
            network,
            {"module": "contract", "action": "getsourcecode", "address": address},
            what="contract source code",
        )
        return [ContractSource.from_result(item) for item in data.get("result") or []]

    async def get_abi(self, address: str, network: Network = "ethereum") -> str:
        """Fetch the contract ABI as a JSON string."""
        data = await self._call(
            network,
            {"module": "contract", "action": "getabi", "address": address},
            what="contract ABI",
        )
        return str(data["result"])

    async def get_transactions(
        self,
        address: str,
        network: Network = "ethereum",
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        """Fetch the *limit* most recent normal transactions, newest first."""
        data = await self._call(
            network,
            {
                "module": "account",
                "action": "txlist",
                "address": address,
                "startblock": 0,
                "endblock": 99999999,
                "page": 1,
                "offset": limit,
                "sort": "desc",
            },
            what="transactions",
            allow_empty=True,
        )
        return list(data.get("result") or [])

    async def _call(
        self,
        network: Network,
        params: dict[str, Any],
        what: str,
        allow_empty: bool = False,
    ) -> dict[str, Any]:
        api_key = self._api_keys.get(network)
        if not api_key:
            raise ExplorerConfigError(f"API key for {network} is not configured")

        action = params["action"]
        query = {"chainid": CHAIN_IDS[network], **params, "apikey": api_key}

        try:
            response = await self._get(query)
        except httpx.RequestError as e:
            record_explorer_request(action, "transport_error")
            raise ExplorerError(f"Failed to fetch {what}: {e}") from e

        if response.is_error:
            record_explorer_request(action, "http_error")
            raise ExplorerError(f"Failed to fetch {what}: {response.reason_phrase}")

        data: dict[str, Any] = response.json()

        if data.get("status") != "1":
            message = data.get("message") or "Unknown error"
            if allow_empty and _NO_TRANSACTIONS in message:
                record_explorer_request(action, "ok")
                return {"status": "1", "message": message, "result": []}
            record_explorer_request(action, "api_error")
            raise self._map_error(network, message, data.get("result"))

        record_explorer_request(action, "ok")
        return data

    async def _get(self, query: dict[str, Any]) -> httpx.Response:
        """GET with retries on transport errors, 429 and 5xx."""
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.get(self._base_url, params=query)
            except httpx.RequestError as e:
                if attempt == MAX_RETRIES:
                    raise
                logger.warning(
                    "explorer_retry",
                    attempt=attempt,
                    action=query.get("action"),
                    error=str(e),
                )
            else:
                if response.status_code not in _RETRYABLE_STATUS or attempt == MAX_RETRIES:
                    return response
                logger.warning(
                    "explorer_retry",
                    attempt=attempt,
                    action=query.get("action"),
                    status=response.status_code,
                )
            await asyncio.sleep(attempt * RETRY_BACKOFF_SECONDS)
        raise AssertionError("unreachable")

    @staticmethod
    def _map_error(network: str, message: str, result: Any) -> ExplorerError:
        env_var = API_KEY_ENV[network]
        detail = result if isinstance(result, str) else ""

        if message == "NOTOK":
            # Etherscan puts the real reason in ``result`` for NOTOK responses
            if "rate limit" in detail.lower():
                return ExplorerRateLimitError(
                    f"Rate limit exceeded for {network} API. Please wait a moment and try again."
                )
            return ExplorerError(
                f"Etherscan API error: Invalid API key or rate limit exceeded. "
                f"Please check your {env_var} in the .env file."
            )
        if "Invalid API Key" in message:
            return ExplorerError(
                f"Invalid API key for {network}. Please verify your {env_var} in the .env file."
            )
        if "rate limit" in message:
            return ExplorerRateLimitError(
                f"Rate limit exceeded for {network} API. Please wait a moment and try again."
            )
        return ExplorerError(f"Etherscan API error: {message}")
