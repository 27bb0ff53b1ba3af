from datetime import datetime, timedelta, timezone

import pytest

from core.container import Container, get_container, singleton
from core.exceptions import (
    BlockDetectedError,
    ErrorRecovery,
    HTTPStatusError,
    NetworkError,
    ResponseParseError,
    UrlSourceError,
)
from core.models import FailureResult, RunStats, RunStatus, SuccessResult, Task, build_tasks


def test_build_tasks_numbers_from_one():
    tasks = build_tasks(["https://a/1", "https://a/2"])

    assert tasks == [Task("https://a/1", 1), Task("https://a/2", 2)]


@pytest.mark.parametrize("url,position", [("", 1), ("https://a/1", 0)])
def test_task_rejects_empty_url_and_zero_position(url, position):
    with pytest.raises(ValueError):
        Task(url, position)


def test_success_result_serialization():
    parsed_at = datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)
    result = SuccessResult("https://a/1", 1, {"title": "Квартира"}, latency_ms=850, attempts=2, parsed_at=parsed_at)

    data = result.to_dict()

    assert data == {
        "url": "https://a/1",
        "position": 1,
        "data": {"title": "Квартира"},
        "parsed_at": "2024-03-15T09:30:00+00:00",
        "response_time_ms": 850,
        "attempts": 2,
    }
    assert SuccessResult.from_dict(data) == result


def test_failure_result_defaults_timestamp():
    result = FailureResult("https://a/1", 3, "HTTP 500 for https://a/1", error_type="HTTPStatusError", status_code=500)

    assert result.ok is False
    assert result.timestamp.tzinfo is not None
    assert result.to_dict()["error"] == "HTTP 500 for https://a/1"
    assert result.to_dict()["fatal"] is False
    assert FailureResult.from_dict({**result.to_dict(), "fatal": True}).fatal is True


def test_run_stats_summary():
    start = datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)
    stats = RunStats("abc12345", attempted=3, succeeded=2, failed=1, status=RunStatus.COMPLETED,
                     started_at=start, finished_at=start + timedelta(seconds=90))

    data = stats.to_dict()

    assert stats.success_rate == 66.67
    assert data["success_rate"] == "66.67%"
    assert data["duration_seconds"] == 90.0
    assert data["status"] == "completed"


def test_run_stats_without_attempts():
    stats = RunStats("r", 0, 0, 0, RunStatus.ABORTED_NO_URLS, datetime.now(timezone.utc))

    assert stats.success_rate == 0.0
    assert stats.to_dict()["end_time"] is None


@pytest.mark.parametrize("status,aborted", [
    (RunStatus.COMPLETED, False),
    (RunStatus.RUNNING, False),
    (RunStatus.ABORTED_BLOCKED, True),
    (RunStatus.ABORTED_FAILURES, True),
    (RunStatus.ABORTED_RATE_LIMIT, True),
    (RunStatus.ABORTED_ERROR, True),
])
def test_run_status_is_aborted(status, aborted):
    assert status.is_aborted is aborted


def test_error_classification():
    url = "https://a/1"

    assert ErrorRecovery.is_retryable_error(NetworkError(url, OSError("reset")))
    assert ErrorRecovery.is_retryable_error(HTTPStatusError(url, 503))
    assert not ErrorRecovery.is_retryable_error(BlockDetectedError(url, 403))
    assert not ErrorRecovery.is_retryable_error(ResponseParseError(url, ValueError("x")))
    assert not ErrorRecovery.is_retryable_error(HTTPStatusError(url, 422))
    assert not ErrorRecovery.is_retryable_error(ValueError("x"))
    assert ErrorRecovery.is_fatal_error(BlockDetectedError(url))
    assert not ErrorRecovery.is_fatal_error(HTTPStatusError(url, 503))
    assert [ErrorRecovery.get_retry_delay(1000, n) for n in range(3)] == [1000, 2000, 4000]


def test_error_to_dict_carries_context():
    error = UrlSourceError("urls.txt", FileNotFoundError("no such file"))

    data = error.to_dict()

    assert data["error_type"] == "UrlSourceError"
    assert data["context"]["path"] == "urls.txt"
    assert "no such file" in data["context"]["original_error"]


def test_container_singletons_and_factories():
    container = Container()
    created = []

    @singleton
    def make_shared():
        created.append("shared")
        return object()

    container.register_singleton("shared", make_shared)
    container.register_factory("fresh", object)

    assert container.get("shared") is container.get("shared")
    assert container.get("fresh") is not container.get("fresh")
    assert created == ["shared"]
    with pytest.raises(KeyError):
        container.get("missing")


def test_default_container_wires_harvest_services():
    container = get_container()

    for name in ("config", "block_detector", "request_tracker", "parse_api_client", "direct_page_client"):
        assert container.has(name)
    assert container.get("block_detector") is container.get("block_detector")
