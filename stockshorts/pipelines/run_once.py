"""Run a single pipeline run in the foreground - topic → clips → video → YouTube."""

import argparse
import asyncio
import sys
from typing import Optional

from stockshorts.core.config import Settings, settings
from stockshorts.core.errors import NoCredentialError, RunInProgressError
from stockshorts.core.logging_config import get_logger, setup_logging
from stockshorts.models.schemas import Privacy, RunState, RunTrigger
from stockshorts.pipelines.context import build_context
from stockshorts.pipelines.orchestrator import PipelineOrchestrator

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NO_CREDENTIAL = 2


async def run_pipeline(topic: str, privacy: Optional[str], app_settings: Settings) -> int:
    """
    Run one pipeline and echo its progress events to stdout.

    Returns:
        Process exit code
    """
    logger = get_logger(__name__, topic=topic or "random")
    context = build_context(app_settings, logger)
    orchestrator = PipelineOrchestrator(context)

    subscription = context.broadcaster.subscribe()
    try:
        handle = await orchestrator.start(topic=topic, privacy=privacy, trigger=RunTrigger.CLI)
    except NoCredentialError as e:
        subscription.close()
        print(str(e))
        if e.auth_url:
            print(f"Authorize this app at: {e.auth_url}")
        return EXIT_NO_CREDENTIAL
    except RunInProgressError as e:
        subscription.close()
        print(str(e))
        return EXIT_FAILED

    async def echo_events() -> None:
        async for event in subscription:
            if event.type == "progress":
                print(f"[{event.percent:3d}%] {event.label}")
            elif event.type == "done":
                print(f"Published: {event.url}")
                return
            else:
                print(f"Failed: {event.message}")
                return

    printer = asyncio.create_task(echo_events())
    record = await handle.task
    await asyncio.wait_for(printer, timeout=5)
    subscription.close()

    return EXIT_OK if record.state == RunState.COMPLETED else EXIT_FAILED


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Source stock clips, compose a vertical short and publish it to YouTube",
    )
    parser.add_argument(
        "--topic",
        type=str,
        default="",
        help="Topic for the short (default: random pick from the built-in pool)",
    )
    parser.add_argument(
        "--privacy",
        type=str,
        default=None,
        choices=[p.value for p in Privacy],
        help=f"YouTube visibility (default: {settings.default_privacy.value})",
    )
    args = parser.parse_args()

    setup_logging(log_level=settings.log_level, log_file=settings.log_file)
    return asyncio.run(run_pipeline(args.topic, args.privacy, settings))


if __name__ == "__main__":
    sys.exit(main())
