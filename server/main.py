"""
prediction oracle server — top-level orchestrator

Runs the HTTP API in a single async event loop:
  - creation:     topic → Perplexity digest → Groq predictions → createPrediction txs
  - finalization: id → contract read → digest → Groq verdict → finalizePrediction tx
  - (optional)    lifecycle events → Redis pub/sub when REDIS_URL is set

Usage:
    cd server
    python main.py                # live: Perplexity + Groq + EVM RPC
    python main.py --mock         # mock: fake digests, fake model, in-memory chain
    python main.py --port 8080 --log-level DEBUG
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal

from aiohttp import web
from dotenv import load_dotenv

logger = logging.getLogger("oracle")


async def run(
    *,
    use_mock: bool = False,
    host: str | None = None,
    port: int | None = None,
) -> None:
    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    from agents.adjudicator import OutcomeAdjudicator
    from agents.generator import PredictionGenerator
    from api import create_app
    from core.config import load_settings
    from execution.sequencer import TransactionSequencer
    from lifecycle import LifecycleOrchestrator, PredictionFeed

    settings = load_settings()
    host = host or settings.server.host
    port = port or settings.server.port

    # ── Backends ───────────────────────────────────────────────────
    facts_client = None
    web3_chain = None

    if use_mock:
        from mock_backends import InMemoryChain, MockCompletionClient, MockFactProvider

        facts = MockFactProvider(latency_range=(0.2, 0.8))
        llm = MockCompletionClient(latency_range=(0.3, 1.0))
        chain = InMemoryChain(latency_range=(0.1, 0.4))
        logger.info("Mock mode — no retrieval, model or chain credentials needed")
    else:
        settings.require_live()

        from agents.llm_client import CompletionClient
        from execution.chain import Web3Chain
        from facts import FactProviderClient

        facts_client = FactProviderClient(
            api_key=settings.retrieval.api_key,
            base_url=settings.retrieval.base_url,
            model=settings.retrieval.model,
            recency=settings.retrieval.recency,
            timeout_s=settings.retrieval.timeout_s,
        )
        await facts_client.connect()
        facts = facts_client

        llm = CompletionClient(
            api_key=settings.llm.api_key,
            model=settings.llm.model,
            timeout_s=settings.llm.timeout_s,
        )
        web3_chain = Web3Chain.from_config(settings.chain)
        chain = web3_chain
        logger.info(f"Live mode — model {settings.llm.model}, signer {chain.address}")

    # ── Lifecycle feed (optional) ──────────────────────────────────
    feed = None
    if settings.feed.enabled:
        from lifecycle import FeedError

        feed = PredictionFeed(settings.feed.redis_url)
        try:
            await feed.connect()
        except FeedError as e:
            logger.warning(f"Lifecycle feed disabled: {e}")
            feed = None

    sequencer = TransactionSequencer(chain)
    orchestrator = LifecycleOrchestrator(
        facts=facts,
        generator=PredictionGenerator(
            facts,
            llm,
            temperature=settings.llm.generation_temperature,
        ),
        adjudicator=OutcomeAdjudicator(
            llm,
            temperature=settings.llm.adjudication_temperature,
        ),
        chain=chain,
        sequencer=sequencer,
        events=feed,
    )

    # ── Start HTTP ─────────────────────────────────────────────────
    runner = web.AppRunner(create_app(orchestrator))
    await runner.setup()
    site = web.TCPSite(runner, host=host, port=port)
    await site.start()
    logger.info(f"Server running at http://{host}:{port}")

    # ── Wait for shutdown ──────────────────────────────────────────
    await shutdown_event.wait()

    # ── Teardown ───────────────────────────────────────────────────
    logger.info("Shutting down...")
    await runner.cleanup()

    if feed is not None:
        await feed.close()
    if facts_client is not None:
        await facts_client.close()
    if web3_chain is not None:
        await web3_chain.close()

    if use_mock:
        logger.info(
            f"Final (mock) — transactions sent: {len(chain.sent)}, "
            f"predictions on-chain: {len(chain.predictions)}"
        )
    else:
        nonce = sequencer.nonces.current
        logger.info(f"Final — next nonce: {nonce if nonce is not None else 'uninitialized'}")


def cli() -> None:
    parser = argparse.ArgumentParser(description="prediction oracle server")
    parser.add_argument("--mock", action="store_true", help="Use mock retrieval, model and chain backends")
    parser.add_argument("--host", default=None, help="Bind address (default: HOST env or 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: PORT env or 4000)")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    args = parser.parse_args()

    load_dotenv(".env")
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s [%(name)s] %(levelname)s — %(message)s",
    )
    asyncio.run(run(use_mock=args.mock, host=args.host, port=args.port))


if __name__ == "__main__":
    cli()
