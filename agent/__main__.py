"""CLI entry point: python -m agent <address> [--network base] [--stream]."""

from __future__ import annotations

import argparse
import asyncio
import sys

from pydantic import ValidationError

from agent.core import ContractAnalyzer
from agent.errors import ContractAnalysisError
from agent.llm_client import create_client
from agent.models import AnalyzeRequest
from explorer.client import ExplorerClient, ExplorerError
from monitoring.logging import configure_logging


async def run(request: AnalyzeRequest, stream: bool) -> int:
    explorer = ExplorerClient.from_env()
    analyzer = ContractAnalyzer(llm_client=create_client(), explorer=explorer)
    try:
        if not stream:
            report = await analyzer.analyze(request)
            print(report.model_dump_json(indent=2, exclude={"source_code"}))
            return 0

        exit_code = 0
        async for event in analyzer.analyze_stream(request):
            if event.event_type == "analysis_complete":
                print(event.model_dump_json(indent=2))
            else:
                print(event.model_dump_json(), file=sys.stderr)
                if event.event_type == "error":
                    exit_code = 1
        return exit_code
    finally:
        await explorer.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Analyze a smart contract")
    parser.add_argument("address", help="Contract address (0x...)")
    parser.add_argument("--network", choices=["ethereum", "base"], default="ethereum")
    parser.add_argument("--stream", action="store_true", help="Print stage events as they happen")
    args = parser.parse_args()

    try:
        request = AnalyzeRequest(address=args.address, network=args.network)
    except ValidationError:
        parser.error(f"invalid address: {args.address}")

    configure_logging(stream=sys.stderr)

    try:
        sys.exit(asyncio.run(run(request, args.stream)))
    except (ContractAnalysisError, ExplorerError) as e:
        print(f"Failed to analyze contract: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
