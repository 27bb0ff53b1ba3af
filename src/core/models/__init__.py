#!/usr/bin/env python3
"""
Core data models for the listing harvester.

Contains all data structures used throughout the application.
"""

from .task import Task, build_tasks
from .result import SuccessResult, FailureResult, Result, RunStats, RunStatus
from .request_log import RequestLogEntry, RequestStats, RateLimits, LimitCheck

__all__ = [
    'Task', 'build_tasks',
    'SuccessResult', 'FailureResult', 'Result', 'RunStats', 'RunStatus',
    'RequestLogEntry', 'RequestStats', 'RateLimits', 'LimitCheck',
]
