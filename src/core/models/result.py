#!/usr/bin/env python3
"""
Result and run statistics models.

Results are appended to an ordered log and never mutated. RunStats is
derived from that log and is only a summary.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional, Union
from dataclasses import dataclass

from dateutil import parser as date_parser


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime) or value is None:
        return value
    return date_parser.isoparse(value)


class RunStatus(str, Enum):
    """Run-level outcome."""
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED_BLOCKED = "aborted: blocked"
    ABORTED_FAILURES = "aborted: too many failures"
    ABORTED_RATE_LIMIT = "aborted: rate limit"
    ABORTED_NO_URLS = "aborted: no urls"
    ABORTED_ERROR = "aborted: error"

    @property
    def is_aborted(self) -> bool:
        return self.value.startswith("aborted")


@dataclass(frozen=True)
class SuccessResult:
    """Payload extracted for one URL."""
    url: str
    position: int
    payload: Any
    latency_ms: int
    attempts: int = 1
    parsed_at: datetime = None

    def __post_init__(self):
        if self.parsed_at is None:
            object.__setattr__(self, 'parsed_at', _utcnow())

    @property
    def ok(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'url': self.url,
            'position': self.position,
            'data': self.payload,
            'parsed_at': self.parsed_at.isoformat(),
            'response_time_ms': self.latency_ms,
            'attempts': self.attempts,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SuccessResult':
        """Create from dictionary loaded from JSON."""
        return cls(
            url=data['url'],
            position=data['position'],
            payload=data.get('data'),
            latency_ms=data.get('response_time_ms', 0),
            attempts=data.get('attempts', 1),
            parsed_at=_parse_datetime(data.get('parsed_at')),
        )


@dataclass(frozen=True)
class FailureResult:
    """Terminal failure for one URL."""
    url: str
    position: int
    reason: str
    error_type: str = "HarvesterError"
    status_code: Optional[int] = None
    timestamp: datetime = None
    fatal: bool = False

    def __post_init__(self):
        if self.timestamp is None:
            object.__setattr__(self, 'timestamp', _utcnow())

    @property
    def ok(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'url': self.url,
            'position': self.position,
            'error': self.reason,
            'error_type': self.error_type,
            'status_code': self.status_code,
            'timestamp': self.timestamp.isoformat(),
            'fatal': self.fatal,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FailureResult':
        """Create from dictionary loaded from JSON."""
        return cls(
            url=data['url'],
            position=data['position'],
            reason=data['error'],
            error_type=data.get('error_type', 'HarvesterError'),
            status_code=data.get('status_code'),
            timestamp=_parse_datetime(data.get('timestamp')),
            fatal=data.get('fatal', False),
        )


Result = Union[SuccessResult, FailureResult]


@dataclass
class RunStats:
    """Aggregate counters for a run (derived, not authoritative)."""
    run_id: str
    attempted: int
    succeeded: int
    failed: int
    status: RunStatus
    started_at: datetime
    finished_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of attempted URLs that succeeded."""
        if self.attempted == 0:
            return 0.0
        return round(self.succeeded / self.attempted * 100, 2)

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or _utcnow()
        return round((end - self.started_at).total_seconds(), 3)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'run_id': self.run_id,
            'status': self.status.value,
            'total_requests': self.attempted,
            'successful': self.succeeded,
            'failed': self.failed,
            'success_rate': f"{self.success_rate:.2f}%",
            'start_time': self.started_at.isoformat(),
            'end_time': self.finished_at.isoformat() if self.finished_at else None,
            'duration_seconds': self.duration_seconds,
        }
