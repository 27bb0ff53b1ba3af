#!/usr/bin/env python3
"""
Stats command endpoints for the request tracker: counters, limits, log export and cleanup.
"""

import json
import logging
from argparse import Namespace
from datetime import datetime
from typing import Callable, Dict, Optional

import pytz
from dateutil import parser as date_parser

from .base import BaseCommand

logger = logging.getLogger(__name__)


class StatsCommand(BaseCommand):
    """Inspect and manage request statistics and rate limits."""

    def subcommands(self) -> Dict[str, Callable[[Namespace], int]]:
        return {
            'show': self.show,
            'limits': self.limits,
            'export': self.export,
            'cleanup': self.cleanup,
        }

    def _parse_when(self, value: Optional[str]) -> Optional[datetime]:
        """Parse a CLI date; naive values are read in the tracker's timezone."""
        if not value:
            return None
        parsed = date_parser.parse(value)
        if parsed.tzinfo is None:
            parsed = pytz.timezone(self.config.storage.tracker_timezone).localize(parsed)
        return parsed

    def show(self, args: Namespace) -> int:
        """Show request statistics."""
        stats = self.request_tracker.get_stats()
        check = self.request_tracker.check_rate_limits()

        success_rate = 0.0
        if stats.total_requests:
            success_rate = stats.successful_requests / stats.total_requests * 100

        print(f"\n=== Request Statistics ===")
        print(f"📊 Total requests: {stats.total_requests}")
        print(f"✅ Successful: {stats.successful_requests}")
        print(f"❌ Failed: {stats.failed_requests}")
        print(f"📈 Success rate: {success_rate:.2f}%")
        print(f"📅 Today: {stats.requests_today}")
        print(f"🕐 This hour: {stats.requests_this_hour}")
        if stats.average_response_time_ms is not None:
            print(f"⏱️  Average response time: {stats.average_response_time_ms:.0f}ms")
        if stats.last_request_time:
            print(f"🕐 Last request: {stats.last_request_time}")

        if check.can_proceed:
            print("🟢 Limits: OK")
        else:
            print(f"🔴 Limits: {check.reason} (wait {check.wait_seconds:.0f}s)")
        return 0

    def limits(self, args: Namespace) -> int:
        """Show or update rate limits."""
        daily = getattr(args, 'daily', None)
        hourly = getattr(args, 'hourly', None)
        min_delay = getattr(args, 'min_delay_ms', None)

        if daily is None and hourly is None and min_delay is None:
            limits = self.request_tracker.get_rate_limits()
        else:
            limits = self.request_tracker.set_rate_limits(
                daily_limit=daily,
                hourly_limit=hourly,
                min_delay_ms=min_delay,
            )

        print(f"\n=== Rate Limits ===")
        print(f"📅 Daily limit: {limits.daily_limit}")
        print(f"🕐 Hourly limit: {limits.hourly_limit}")
        print(f"⏱️  Min delay: {limits.min_delay_ms}ms")
        return 0

    def export(self, args: Namespace) -> int:
        """Export the request log as JSON."""
        entries = self.request_tracker.export_logs(
            start=self._parse_when(getattr(args, 'since', None)),
            end=self._parse_when(getattr(args, 'until', None)),
        )
        data = [entry.to_dict() for entry in entries]

        output = getattr(args, 'output', None)
        if output:
            with open(output, 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            print(f"✅ Exported {len(data)} requests to {output}")
        else:
            print(json.dumps(data, ensure_ascii=False, indent=2))
        return 0

    def cleanup(self, args: Namespace) -> int:
        """Remove old request log entries."""
        days = getattr(args, 'days', 30)
        print(f"🧹 Removing request log entries older than {days} days...")
        removed = self.request_tracker.cleanup_old_logs(days_to_keep=days)
        print(f"✅ Removed: {removed} entries")
        return 0
