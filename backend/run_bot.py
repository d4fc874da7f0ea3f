#!/usr/bin/env python3
"""
Bot entry point
===============

Runs one batch of one bot and exits. Invoked by the scheduler, e.g.:

    python run_bot.py relevance-bot
    BATCH_SIZE=20 python run_bot.py summary-bot
    python run_bot.py gap-scanner --no-queue

Configuration comes from the environment and .env (see botfarm.config).
On any fatal error an {error, processed: 0} summary is written to the run
output sink and the process exits with status 1.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
load_dotenv(Path(__file__).parent.parent / '.env')

from botfarm.config import get_settings, get_postgres_config
from botfarm.repositories import open_store
from botfarm.services.run_output import RunOutput
from botfarm.workers.bot_runner import run_bot, RunnerOptions
from botfarm.workers.registry import BOTS, build_behavior

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run one batch of a bot")
    parser.add_argument('bot', choices=sorted(BOTS), help="Bot to run")
    parser.add_argument('--batch-size', type=int, default=None, help="Override BATCH_SIZE")
    parser.add_argument('--no-queue', action='store_true', help="Skip the work queue")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)
    output = RunOutput.from_env()

    try:
        settings = get_settings()
        output = RunOutput(settings.run_output_path)
        options = RunnerOptions.from_settings(settings)
        if args.batch_size is not None:
            options.batch_size = args.batch_size
        if args.no_queue:
            options.use_work_queue = False

        async with open_store(get_postgres_config(settings)) as store:
            behavior = build_behavior(args.bot, store, settings)
            logger.info(f"🤖 Starting {behavior.name} (batch size {options.batch_size})")
            await run_bot(behavior, store, options, output)
    except Exception as e:
        logger.error(f"❌ Fatal: {e}", exc_info=True)
        output.write_error(str(e))
        return 1

    return 0


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    sys.exit(asyncio.run(main()))
