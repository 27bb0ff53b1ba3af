#!/usr/bin/env python3
"""
Request log models for the request tracker.
"""

from datetime import datetime
from typing import Dict, Any, Optional
from dataclasses import dataclass

from dateutil import parser as date_parser


@dataclass(frozen=True)
class RequestLogEntry:
    """One request made against a target site, as stored in requests.jsonl."""
    timestamp: datetime
    url: str
    success: bool
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    response_time_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'timestamp': self.timestamp.isoformat(),
            'url': self.url,
            'success': self.success,
        }
        if self.status_code is not None:
            data['status_code'] = self.status_code
        if self.error_message is not None:
            data['error_message'] = self.error_message
        if self.response_time_ms is not None:
            data['response_time_ms'] = self.response_time_ms
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RequestLogEntry':
        return cls(
            timestamp=date_parser.isoparse(data['timestamp']),
            url=data['url'],
            success=bool(data['success']),
            status_code=data.get('status_code'),
            error_message=data.get('error_message'),
            response_time_ms=data.get('response_time_ms'),
        )


@dataclass
class RequestStats:
    """Rolling counters kept in stats.json."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    requests_today: int = 0
    requests_this_hour: int = 0
    timed_requests: int = 0
    last_request_time: Optional[str] = None
    average_response_time_ms: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_requests': self.total_requests,
            'successful_requests': self.successful_requests,
            'failed_requests': self.failed_requests,
            'requests_today': self.requests_today,
            'requests_this_hour': self.requests_this_hour,
            'timed_requests': self.timed_requests,
            'last_request_time': self.last_request_time,
            'average_response_time_ms': self.average_response_time_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RequestStats':
        return cls(
            total_requests=data.get('total_requests', 0),
            successful_requests=data.get('successful_requests', 0),
            failed_requests=data.get('failed_requests', 0),
            requests_today=data.get('requests_today', 0),
            requests_this_hour=data.get('requests_this_hour', 0),
            timed_requests=data.get('timed_requests', 0),
            last_request_time=data.get('last_request_time'),
            average_response_time_ms=data.get('average_response_time_ms'),
        )


@dataclass(frozen=True)
class RateLimits:
    """Limits consulted before every request."""
    daily_limit: Optional[int] = 10000
    hourly_limit: Optional[int] = 500
    min_delay_ms: Optional[int] = 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            'daily_limit': self.daily_limit,
            'hourly_limit': self.hourly_limit,
            'min_delay_ms': self.min_delay_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RateLimits':
        defaults = cls()
        return cls(
            daily_limit=data.get('daily_limit', defaults.daily_limit),
            hourly_limit=data.get('hourly_limit', defaults.hourly_limit),
            min_delay_ms=data.get('min_delay_ms', defaults.min_delay_ms),
        )


@dataclass(frozen=True)
class LimitCheck:
    """Answer from RequestTracker.check_rate_limits()."""
    can_proceed: bool
    reason: Optional[str] = None
    wait_seconds: float = 0.0
