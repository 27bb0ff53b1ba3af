#!/usr/bin/env python3
"""
Request tracking and rate limits.

Keeps an append-only JSONL log of every request made against target sites,
rolling counters in stats.json, and configurable limits in rate-limits.json.
"Today" and "this hour" are judged in the tracker's local timezone so that
daily limits roll over at local midnight.
"""

import json
import logging
from datetime import datetime, time as dt_time, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Optional, Union

import pytz
from dateutil import parser as date_parser

from core.models import LimitCheck, RateLimits, RequestLogEntry, RequestStats

logger = logging.getLogger(__name__)

MAX_DAILY_LIMIT = 50000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RequestTracker:
    """
    File-backed request log with daily/hourly/min-delay limits.

    Files (all under log_dir):
    - requests.jsonl: one RequestLogEntry per line
    - stats.json: RequestStats
    - rate-limits.json: RateLimits (defaults used when absent)
    """

    def __init__(self,
                 log_dir: Union[str, Path] = "logs",
                 tz_name: str = "Asia/Almaty",
                 clock: Callable[[], datetime] = _utcnow):
        """
        Initialize request tracker.

        Args:
            log_dir: Directory holding the tracker files
            tz_name: Timezone name for day/hour buckets
            clock: Returns the current aware datetime (tests pin it)
        """
        self.log_dir = Path(log_dir)
        self.log_file = self.log_dir / "requests.jsonl"
        self.stats_file = self.log_dir / "stats.json"
        self.rate_limit_file = self.log_dir / "rate-limits.json"
        self.tz = pytz.timezone(tz_name)
        self._clock = clock
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def _local(self, moment: datetime) -> datetime:
        return moment.astimezone(self.tz)

    def _same_day(self, a: datetime, b: datetime) -> bool:
        return self._local(a).date() == self._local(b).date()

    def _same_hour(self, a: datetime, b: datetime) -> bool:
        la, lb = self._local(a), self._local(b)
        return la.date() == lb.date() and la.hour == lb.hour

    def _read_json(self, path: Path) -> Optional[dict]:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable {path.name}: {e}")
            return None

    def _write_json(self, path: Path, data: dict) -> None:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)

    def log_request(self, entry: RequestLogEntry) -> RequestStats:
        """Append entry to the request log and update the rolling stats."""
        with open(self.log_file, 'a', encoding='utf-8') as f:
            f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")
        return self._update_stats(entry)

    def _update_stats(self, entry: RequestLogEntry) -> RequestStats:
        stats = self.get_stats()
        previous = date_parser.isoparse(stats.last_request_time) if stats.last_request_time else None

        stats.total_requests += 1
        if entry.success:
            stats.successful_requests += 1
        else:
            stats.failed_requests += 1

        if previous is not None and self._same_day(previous, entry.timestamp):
            stats.requests_today += 1
        else:
            stats.requests_today = 1

        if previous is not None and self._same_hour(previous, entry.timestamp):
            stats.requests_this_hour += 1
        else:
            stats.requests_this_hour = 1

        if entry.response_time_ms is not None:
            stats.timed_requests += 1
            if stats.average_response_time_ms is None:
                stats.average_response_time_ms = float(entry.response_time_ms)
            else:
                stats.average_response_time_ms += (
                    entry.response_time_ms - stats.average_response_time_ms
                ) / stats.timed_requests
            stats.average_response_time_ms = round(stats.average_response_time_ms, 2)

        stats.last_request_time = entry.timestamp.isoformat()
        self._write_json(self.stats_file, stats.to_dict())
        return stats

    def get_stats(self) -> RequestStats:
        """Current counters, zeroed when no stats file exists yet."""
        data = self._read_json(self.stats_file)
        return RequestStats.from_dict(data) if data else RequestStats()

    def get_rate_limits(self) -> RateLimits:
        data = self._read_json(self.rate_limit_file)
        return RateLimits.from_dict(data) if data else RateLimits()

    def set_rate_limits(self,
                        daily_limit: Optional[int] = None,
                        hourly_limit: Optional[int] = None,
                        min_delay_ms: Optional[int] = None) -> RateLimits:
        """Merge the given limits into the stored ones."""
        current = self.get_rate_limits().to_dict()
        updates = {
            'daily_limit': daily_limit,
            'hourly_limit': hourly_limit,
            'min_delay_ms': min_delay_ms,
        }
        for key, value in updates.items():
            if value is not None:
                if value < 0:
                    raise ValueError(f"{key} must not be negative")
                if key == 'daily_limit' and value > MAX_DAILY_LIMIT:
                    raise ValueError(f"daily_limit must not exceed {MAX_DAILY_LIMIT}")
                current[key] = value

        limits = RateLimits.from_dict(current)
        self._write_json(self.rate_limit_file, limits.to_dict())
        logger.info(f"Rate limits updated: {limits.to_dict()}")
        return limits

    def check_rate_limits(self) -> LimitCheck:
        """
        Decide whether another request may go out now.

        Returns:
            LimitCheck with the reason and how many seconds to wait when refused
        """
        stats = self.get_stats()
        limits = self.get_rate_limits()
        now = self._clock()
        last = date_parser.isoparse(stats.last_request_time) if stats.last_request_time else None

        requests_today = stats.requests_today if last and self._same_day(last, now) else 0
        requests_this_hour = stats.requests_this_hour if last and self._same_hour(last, now) else 0

        if limits.daily_limit and requests_today >= limits.daily_limit:
            local_now = self._local(now)
            next_day = self.tz.localize(datetime.combine(local_now.date() + timedelta(days=1), dt_time.min))
            return LimitCheck(
                can_proceed=False,
                reason=f"Daily limit reached ({limits.daily_limit} requests)",
                wait_seconds=(next_day - now).total_seconds(),
            )

        if limits.hourly_limit and requests_this_hour >= limits.hourly_limit:
            local_now = self._local(now)
            hour_start = local_now.replace(tzinfo=None, minute=0, second=0, microsecond=0)
            next_hour = self.tz.localize(hour_start + timedelta(hours=1))
            return LimitCheck(
                can_proceed=False,
                reason=f"Hourly limit reached ({limits.hourly_limit} requests)",
                wait_seconds=(next_hour - now).total_seconds(),
            )

        if limits.min_delay_ms and last is not None:
            elapsed_ms = (now - last).total_seconds() * 1000
            if elapsed_ms < limits.min_delay_ms:
                return LimitCheck(
                    can_proceed=False,
                    reason="Requests too frequent",
                    wait_seconds=(limits.min_delay_ms - elapsed_ms) / 1000,
                )

        return LimitCheck(can_proceed=True)

    def export_logs(self,
                    start: Optional[datetime] = None,
                    end: Optional[datetime] = None) -> List[RequestLogEntry]:
        """Read logged requests, optionally limited to [start, end]."""
        if not self.log_file.exists():
            return []

        entries = []
        with open(self.log_file, 'r', encoding='utf-8') as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = RequestLogEntry.from_dict(json.loads(line))
                except (ValueError, KeyError) as e:
                    logger.warning(f"Skipping malformed request log line {line_num}: {e}")
                    continue
                if start and entry.timestamp < start:
                    continue
                if end and entry.timestamp > end:
                    continue
                entries.append(entry)
        return entries

    def cleanup_old_logs(self, days_to_keep: int = 30) -> int:
        """
        Drop log entries older than days_to_keep.

        Returns:
            Number of entries removed
        """
        all_entries = self.export_logs()
        cutoff = self._clock() - timedelta(days=days_to_keep)
        kept = [e for e in all_entries if e.timestamp >= cutoff]

        with open(self.log_file, 'w', encoding='utf-8') as f:
            for entry in kept:
                f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")

        removed = len(all_entries) - len(kept)
        logger.info(f"Removed {removed} request log entries older than {days_to_keep} days")
        return removed
