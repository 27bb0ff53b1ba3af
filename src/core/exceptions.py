#!/usr/bin/env python3
"""
Standardized exception hierarchy for the listing harvester.

Every error raised while loading URLs, fetching pages or writing snapshots
derives from HarvesterError, carrying a machine-readable code and a context
dict so that failures can be logged and stored as JSON.
"""

from typing import Optional, Dict, Any


class HarvesterError(Exception):
    """Base exception for all harvester errors."""

    def __init__(self, message: str, error_code: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        """
        Initialize base exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            context: Additional error context
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            'error_type': self.__class__.__name__,
            'error_code': self.error_code,
            'message': self.message,
            'context': self.context
        }


# Fetch-related exceptions
class FetchError(HarvesterError):
    """Base exception for errors while fetching a single URL."""

    def __init__(self, message: str, url: str, status_code: Optional[int] = None,
                 context: Optional[Dict[str, Any]] = None):
        ctx = {'url': url}
        if status_code is not None:
            ctx['status_code'] = status_code
        ctx.update(context or {})
        super().__init__(message, context=ctx)
        self.url = url
        self.status_code = status_code


class NetworkError(FetchError):
    """Connection failed or timed out before a response arrived."""

    def __init__(self, url: str, original_error: Exception):
        super().__init__(
            f"Network error fetching {url}: {original_error}",
            url,
            context={'original_error': str(original_error)}
        )


class HTTPStatusError(FetchError):
    """Endpoint answered with a non-2xx status or an error payload."""

    def __init__(self, url: str, status_code: int, detail: str = ""):
        message = f"HTTP {status_code} for {url}"
        if detail:
            message += f": {detail}"
        super().__init__(message, url, status_code=status_code, context={'detail': detail})


class BlockDetectedError(FetchError):
    """Response looks like an anti-bot block page, CAPTCHA or rate limit."""

    def __init__(self, url: str, status_code: Optional[int] = None, indicator: Optional[str] = None):
        message = f"Access blocked for {url}"
        if status_code is not None:
            message += f" (HTTP {status_code})"
        if indicator:
            message += f", matched '{indicator}'"
        super().__init__(message, url, status_code=status_code, context={'indicator': indicator})
        self.indicator = indicator


class ResponseParseError(FetchError):
    """Response body could not be decoded as JSON."""

    def __init__(self, url: str, original_error: Exception, status_code: Optional[int] = None):
        super().__init__(
            f"Invalid JSON in response for {url}",
            url,
            status_code=status_code,
            context={'original_error': str(original_error)}
        )


# Input-related exceptions
class UrlSourceError(HarvesterError):
    """URL list could not be read."""

    def __init__(self, path: str, original_error: Exception):
        message = f"Failed to read URL list from {path}"
        context = {
            'path': path,
            'original_error': str(original_error)
        }
        super().__init__(message, context=context)


# Configuration-related exceptions
class ConfigurationError(HarvesterError, ValueError):
    """Configuration is invalid or missing."""

    def __init__(self, config_key: str, issue: str):
        message = f"Configuration error for {config_key}: {issue}"
        context = {
            'config_key': config_key,
            'issue': issue
        }
        super().__init__(message, context=context)


# Storage-related exceptions
class SnapshotWriteError(HarvesterError):
    """Writing a JSON snapshot to disk failed."""

    def __init__(self, path: str, original_error: Exception):
        message = f"Failed to write snapshot {path}"
        context = {
            'path': path,
            'original_error': str(original_error)
        }
        super().__init__(message, context=context)


# Listing removed or unavailable upstream
NON_RETRYABLE_STATUS_CODES = frozenset({422})


# Recovery utilities
class ErrorRecovery:
    """Utilities for error recovery and retry logic."""

    @staticmethod
    def is_retryable_error(error: Exception) -> bool:
        """Network and HTTP errors are worth another attempt; blocks, bad JSON and 422s are not."""
        if isinstance(error, (BlockDetectedError, ResponseParseError)):
            return False
        if isinstance(error, HTTPStatusError) and error.status_code in NON_RETRYABLE_STATUS_CODES:
            return False
        return isinstance(error, (NetworkError, HTTPStatusError))

    @staticmethod
    def is_fatal_error(error: Exception) -> bool:
        """Check if an error should stop the whole run."""
        return isinstance(error, BlockDetectedError)

    @staticmethod
    def get_retry_delay(base_ms: int, attempt: int) -> int:
        """Exponential backoff delay in milliseconds for a zero-based attempt index."""
        return base_ms * (2 ** attempt)
