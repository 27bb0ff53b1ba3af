#!/usr/bin/env python3
"""
Harvest command endpoints: run a batch over a URL list, probe the parse API.
"""

import logging
from argparse import Namespace
from pathlib import Path
from typing import Callable, Dict

from .base import BaseCommand
from core.config import Config, PARSING_MODES, validate_config
from core.harvesting import (
    BatchRunner,
    DelayController,
    RetryStrategy,
    generate_run_id,
    load_urls,
)

logger = logging.getLogger(__name__)

RUN_LOG_FORMAT = '[%(asctime)s] [%(levelname)s] %(name)s: %(message)s'


class HarvestCommand(BaseCommand):
    """Fetch listing pages sequentially with delays, retries and block detection."""

    def subcommands(self) -> Dict[str, Callable[[Namespace], int]]:
        return {
            'run': self.run,
            'check': self.check,
        }

    def _effective_config(self, args: Namespace) -> Config:
        """Apply the mode preset and explicit flags on top of the environment config."""
        config = self.config

        mode_name = getattr(args, 'mode', None)
        if mode_name:
            mode = PARSING_MODES[mode_name]
            config = config.with_overrides(
                mode=mode.name,
                delay_min_ms=mode.delay_min_ms,
                delay_max_ms=mode.delay_max_ms,
                max_requests=mode.max_requests,
            )

        config = config.with_overrides(
            delay_min_ms=getattr(args, 'min_delay_ms', None),
            delay_max_ms=getattr(args, 'max_delay_ms', None),
            max_requests=getattr(args, 'max_requests', None),
            flush_every=getattr(args, 'flush_every', None),
            max_failures=getattr(args, 'max_failures', None),
            retry_budget=getattr(args, 'retries', None),
        )
        validate_config(config)
        return config

    def _attach_run_log(self, log_dir: str, run_id: str) -> logging.Handler:
        """Mirror everything logged during the run into logs/parsing-<run_id>.log."""
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path / f"parsing-{run_id}.log", encoding='utf-8')
        handler.setFormatter(logging.Formatter(RUN_LOG_FORMAT))
        logging.getLogger().addHandler(handler)
        return handler

    def run(self, args: Namespace) -> int:
        """Run a batch over the URL file."""
        config = self._effective_config(args)
        harvest = config.harvest
        output_dir = getattr(args, 'output_dir', None) or config.storage.output_dir
        direct = getattr(args, 'direct', False)

        urls = load_urls(args.urls, max_urls=harvest.max_requests)
        if not urls:
            print(f"❌ No URLs found in {args.urls}")

        client = self.create_client(direct=direct)
        if urls and not direct and not getattr(args, 'skip_check', False):
            if not client.check_endpoint():
                client.close()
                print(f"❌ Parse API is not available at {config.client.parse_api_url}")
                print("   Start the extraction service first, or pass --direct")
                return 1
            print("✅ Parse API available")

        run_id = generate_run_id()
        handler = self._attach_run_log(config.storage.log_dir, run_id)
        try:
            logger.info("=" * 50)
            logger.info(f"Starting harvest run {run_id} in '{harvest.mode}' mode")
            logger.info(
                f"Settings: delay {harvest.delay_min_ms}-{harvest.delay_max_ms}ms, "
                f"retries {harvest.retry_budget}, flush every {harvest.flush_every}, "
                f"max failures {harvest.max_failures}"
            )
            logger.info("=" * 50)

            runner = BatchRunner(
                client=client,
                delay=DelayController(harvest.delay_min_ms, harvest.delay_max_ms),
                retry=RetryStrategy(max_retries=harvest.retry_budget, base_delay_ms=harvest.retry_base_ms),
                output_dir=output_dir,
                flush_every=harvest.flush_every,
                max_failures=harvest.max_failures,
                tracker=None if getattr(args, 'no_tracker', False) else self.request_tracker,
                max_limit_wait_seconds=harvest.max_limit_wait_seconds,
                run_id=run_id,
            )
            report = runner.run(urls)
        finally:
            logging.getLogger().removeHandler(handler)
            handler.close()
            client.close()

        stats = report.stats
        print(f"\n=== Harvest {stats.run_id} ===")
        print(f"📊 Status: {stats.status.value}")
        print(f"📊 Processed: {stats.attempted}/{len(urls)}")
        print(f"✅ Succeeded: {stats.succeeded}")
        print(f"❌ Failed: {stats.failed}")
        print(f"🕐 Duration: {stats.duration_seconds / 60:.2f} minutes")
        print(f"💾 Snapshots in {output_dir}: {report.snapshots_written}")

        return 1 if stats.status.is_aborted else 0

    def check(self, args: Namespace) -> int:
        """Check that the parse API answers."""
        client = self.create_client()
        try:
            if client.check_endpoint():
                print(f"✅ Parse API available at {self.config.client.parse_api_url}")
                return 0
            print(f"❌ Parse API not available at {self.config.client.parse_api_url}")
            return 1
        finally:
            client.close()
