#!/usr/bin/env python
"""Run a thinking session with live step streaming.

Every recorded step, phase change and stopping decision is logged as it
happens. Ctrl+C cancels the run cleanly and still prints the best solution
found so far.

Usage:
    uv run python run_thinking_live.py "Implement a token bucket rate limiter"
    uv run python run_thinking_live.py "Design a job queue" --cycles 8 --strategy different_architectures
"""

import asyncio
import argparse
import json
import logging
import signal
import sys
from contextlib import AsyncExitStack
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from both .env and .env.local
project_root = Path(__file__).parent
load_dotenv(project_root / ".env")
load_dotenv(project_root / ".env.local", override=True)

from thinkloop import CancellationToken
from thinkloop.config import load_config, create_from_profile
from thinkloop.thinking import BranchStrategy, CallbackObserver, ThinkingContext


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def log_step(step) -> None:
    preview = step.content.replace("\n", " ")[:100]
    logger.info(f"[cycle {step.cycle}] {step.step_type.value} (conf {step.confidence:.2f}): {preview}")


def log_decision(decision) -> None:
    m = decision.metrics
    logger.info(
        f"Decision: {decision.reason.value if decision.reason else 'continue'} | "
        f"Q={m.quality:.2f} C={m.confidence:.2f} stalled={m.cycles_stalled} "
        f"tokens={m.tokens_used} {m.duration_ms}ms"
    )


async def main(
    task: str,
    profile: str = "dev",
    max_cycles: int = 5,
    language: str | None = None,
    strategies: list[BranchStrategy] | None = None,
    output: Path | None = None,
) -> None:
    """Run a thinking session and log it live.

    Args:
        task: Task to reason about
        profile: Configuration profile name
        max_cycles: Maximum refinement cycles
        language: Target programming language
        strategies: Strategies to explore before the first draft
        output: Optional path to write the full result as JSON
    """
    config = load_config(profile)
    logger.info(f"Using profile: {profile}")

    llm, search_provider, orchestrator = create_from_profile(config)
    orchestrator.events.subscribe(CallbackObserver(
        step=log_step,
        phase_change=lambda phase, state: logger.debug(f"Phase: {phase.value}"),
        cycle_complete=lambda state: logger.info(f"Cycle {state.cycle} complete ({state.tokens_used} tokens)"),
        stopping_decision=log_decision,
    ))

    token = CancellationToken()
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, token.cancel, "interrupted by user")

    try:
        async with AsyncExitStack() as stack:
            await stack.enter_async_context(llm)
            if search_provider is not None:
                await stack.enter_async_context(search_provider)

            result = await orchestrator.think(
                task,
                ThinkingContext(language=language),
                strategies=strategies,
                overrides={"max_cycles": max_cycles, "thinking_visibility": "full"},
                cancellation=token,
            )
    finally:
        loop.remove_signal_handler(signal.SIGINT)

    logger.info("\n" + "=" * 60)
    logger.info(f"Thinking finished: {result.stopping_reason.value}")
    logger.info("=" * 60)
    logger.info(f"Iterations: {result.iterations}")
    logger.info(f"Quality: {result.quality:.2f} | Confidence: {result.confidence:.2f}")
    logger.info(f"Tokens used: {result.tokens_used}")
    logger.info(f"Research: {result.research_performed} | Context: {result.context_retrievals}")
    if result.exploration:
        logger.info(f"Branches explored: {len(result.exploration.branches)}")

    print("\n" + result.solution)

    if output:
        output.write_text(json.dumps(result.to_dict(), indent=2, default=str))
        logger.info(f"Full result written to {output}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Run a thinking session with live step streaming"
    )
    parser.add_argument(
        "task",
        nargs="?",
        default="Implement a thread-safe LRU cache with per-entry TTL",
        help="Task to reason about",
    )
    parser.add_argument(
        "--profile",
        "-p",
        default="dev",
        help="Configuration profile (default: dev)",
    )
    parser.add_argument(
        "--cycles",
        "-n",
        type=int,
        default=5,
        help="Maximum refinement cycles (default: 5)",
    )
    parser.add_argument(
        "--language",
        "-l",
        type=str,
        help="Target programming language",
    )
    parser.add_argument(
        "--strategy",
        "-s",
        action="append",
        choices=[s.value for s in BranchStrategy],
        help="Explore this strategy before the first draft (repeatable)",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        help="Write the full result (including the thinking chain) to this JSON file",
    )

    args = parser.parse_args()
    strategies = [BranchStrategy(s) for s in args.strategy or []]

    try:
        asyncio.run(main(args.task, args.profile, args.cycles, args.language, strategies, args.output))
    except Exception as e:
        logger.error(f"Thinking failed: {e}")
        sys.exit(1)
