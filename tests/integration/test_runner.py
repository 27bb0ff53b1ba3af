import json
from datetime import timedelta

import pytest

from core.harvesting import BatchRunner, BlockDetector, DelayController, ParseApiClient, RetryStrategy
from core.models import FailureResult, RunStatus, SuccessResult
from core.request_tracker import RequestTracker

ENDPOINT = "http://localhost:3000/api/parse-krisha"
URLS = [f"https://krisha.kz/a/show/{i}" for i in range(1, 11)]


def read_json(path):
    with open(path, encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture
def retry_sleeps():
    return []


def make_runner(session, tmp_path, delay_sleep, retry_sleeps, retries=3, **kwargs):
    client = ParseApiClient(ENDPOINT, block_detector=BlockDetector(), session=session)
    return BatchRunner(
        client=client,
        delay=DelayController(1000, 1000, sleep=delay_sleep),
        retry=RetryStrategy(max_retries=retries, base_delay_ms=100, sleep=retry_sleeps.append),
        output_dir=tmp_path / "out",
        run_id="testrun",
        **kwargs,
    )


def test_block_on_fourth_of_ten_stops_with_four_results(
    tmp_path, sleep_recorder, retry_sleeps, fake_session_factory, make_response, listing_payload
):
    """Test that a 403 on the 4th URL halts the run right after recording it."""
    session = fake_session_factory(
        {URLS[3]: make_response(403, "<html>Forbidden</html>")},
        default=make_response(200, listing_payload()),
    )
    runner = make_runner(session, tmp_path, sleep_recorder, retry_sleeps)

    report = runner.run(URLS)

    assert report.stats.status == RunStatus.ABORTED_BLOCKED
    assert len(report.results) == 4
    assert [r.position for r in report.results] == [1, 2, 3, 4]
    assert all(isinstance(r, SuccessResult) for r in report.results[:3])
    assert isinstance(report.results[3], FailureResult)
    assert report.results[3].error_type == "BlockDetectedError"
    assert report.results[3].fatal is True
    assert report.results[3].status_code == 403
    assert len(session.calls) == 4
    assert sleep_recorder.calls == [1.0, 1.0, 1.0]
    assert retry_sleeps == []

    out = tmp_path / "out"
    assert report.snapshots_written == 1
    assert len(read_json(out / "results-testrun-0001.json")) == 3
    assert read_json(out / "errors-testrun-0001.json")[0]["url"] == URLS[3]
    stats = read_json(out / "stats-testrun-0001.json")
    assert stats["status"] == "aborted: blocked"
    assert stats["total_requests"] == 4
    assert stats["successful"] == 3
    assert stats["failed"] == 1
    assert stats["success_rate"] == "75.00%"


def test_too_many_failures_aborts_after_threshold_is_exceeded(
    tmp_path, sleep_recorder, retry_sleeps, fake_session_factory, make_response
):
    session = fake_session_factory(default=make_response(500, {"error": "Failed to parse listing"}))
    runner = make_runner(session, tmp_path, sleep_recorder, retry_sleeps, retries=0, max_failures=5)

    report = runner.run(URLS)

    assert report.stats.status == RunStatus.ABORTED_FAILURES
    assert report.stats.failed == 6
    assert len(report.results) == 6
    assert all(r.error_type == "HTTPStatusError" for r in report.results)
    assert len(sleep_recorder.calls) == 5


def test_transient_errors_are_retried_with_backoff(
    tmp_path, sleep_recorder, retry_sleeps, fake_session_factory, make_response, listing_payload
):
    session = fake_session_factory({
        URLS[0]: [
            make_response(502, "Bad Gateway"),
            make_response(503, "Service Unavailable"),
            make_response(200, listing_payload()),
        ],
    })
    runner = make_runner(session, tmp_path, sleep_recorder, retry_sleeps)

    report = runner.run(URLS[:1])

    assert report.stats.status == RunStatus.COMPLETED
    assert report.results[0].attempts == 3
    assert retry_sleeps == [0.1, 0.2]
    assert sleep_recorder.calls == []


def test_exhausted_retries_record_one_failure(
    tmp_path, sleep_recorder, retry_sleeps, fake_session_factory, make_response
):
    session = fake_session_factory(default=make_response(503, "Service Unavailable"))
    runner = make_runner(session, tmp_path, sleep_recorder, retry_sleeps, retries=3)

    report = runner.run(URLS[:1])

    assert len(session.calls) == 4
    assert len(report.results) == 1
    assert report.results[0].status_code == 503
    assert report.stats.status == RunStatus.COMPLETED


def test_snapshots_every_n_results_are_cumulative(
    tmp_path, sleep_recorder, retry_sleeps, fake_session_factory, make_response, listing_payload
):
    session = fake_session_factory(default=make_response(200, listing_payload()))
    runner = make_runner(session, tmp_path, sleep_recorder, retry_sleeps, flush_every=4)

    report = runner.run(URLS)

    out = tmp_path / "out"
    assert report.stats.status == RunStatus.COMPLETED
    assert report.snapshots_written == 3
    assert [len(read_json(out / f"results-testrun-000{i}.json")) for i in (1, 2, 3)] == [4, 8, 10]
    assert read_json(out / "stats-testrun-0002.json")["status"] == "running"
    assert read_json(out / "stats-testrun-0003.json")["status"] == "completed"
    assert not list(out.glob("errors-*.json"))
    assert len(sleep_recorder.calls) == 9


def test_results_keep_input_order(
    tmp_path, sleep_recorder, retry_sleeps, fake_session_factory, make_response, listing_payload
):
    session = fake_session_factory(
        {URLS[1]: make_response(500, {"error": "boom"})},
        default=make_response(200, listing_payload()),
    )
    runner = make_runner(session, tmp_path, sleep_recorder, retry_sleeps, retries=0)

    report = runner.run(URLS[:4])

    assert [r.url for r in report.results] == URLS[:4]
    assert [r.ok for r in report.results] == [True, False, True, True]


def test_empty_url_list_aborts_but_writes_stats(tmp_path, sleep_recorder, retry_sleeps, fake_session_factory):
    runner = make_runner(fake_session_factory(), tmp_path, sleep_recorder, retry_sleeps)

    report = runner.run([])

    out = tmp_path / "out"
    assert report.stats.status == RunStatus.ABORTED_NO_URLS
    assert report.results == []
    assert report.snapshots_written == 1
    assert read_json(out / "stats-testrun-0001.json")["total_requests"] == 0
    assert not list(out.glob("results-*.json"))


def test_unexpected_client_errors_propagate_after_final_snapshot(
    tmp_path, sleep_recorder, fake_session_factory, make_response, listing_payload
):
    session = fake_session_factory(
        {URLS[1]: RuntimeError("bug")},
        default=make_response(200, listing_payload()),
    )
    runner = BatchRunner(
        client=ParseApiClient(ENDPOINT, session=session),
        delay=DelayController(0, 0, sleep=sleep_recorder),
        retry=RetryStrategy(sleep=sleep_recorder),
        output_dir=tmp_path / "out",
    )

    with pytest.raises(RuntimeError):
        runner.run(URLS[:3])

    out = tmp_path / "out"
    stats_files = list(out.glob("stats-*.json"))
    results_files = list(out.glob("results-*.json"))
    assert len(session.calls) == 2
    assert len(stats_files) == 1
    stats = read_json(stats_files[0])
    assert stats["status"] == "aborted: error"
    assert stats["total_requests"] == 1
    assert len(results_files) == 1
    assert [r["url"] for r in read_json(results_files[0])] == URLS[:1]


def test_invalid_flush_interval_is_rejected(tmp_path):
    with pytest.raises(ValueError):
        BatchRunner(
            client=None,
            delay=DelayController(0, 0),
            retry=RetryStrategy(),
            output_dir=tmp_path,
            flush_every=0,
        )


def test_tracker_logs_every_request(
    tmp_path, fixed_clock, sleep_recorder, retry_sleeps, fake_session_factory, make_response, listing_payload
):
    tracker = RequestTracker(tmp_path / "logs", clock=fixed_clock)
    tracker.set_rate_limits(min_delay_ms=0)
    session = fake_session_factory(
        {URLS[2]: make_response(500, {"error": "boom"})},
        default=make_response(200, listing_payload()),
    )
    runner = make_runner(session, tmp_path, sleep_recorder, retry_sleeps, retries=0,
                         tracker=tracker, clock=fixed_clock)

    runner.run(URLS[:3])

    entries = tracker.export_logs()
    stats = tracker.get_stats()
    assert [e.success for e in entries] == [True, True, False]
    assert entries[0].status_code == 200
    assert entries[2].error_message
    assert entries[2].status_code == 500
    assert stats.total_requests == 3
    assert stats.failed_requests == 1


def test_tracker_logs_each_retry_attempt(
    tmp_path, fixed_clock, sleep_recorder, retry_sleeps, fake_session_factory, make_response, listing_payload
):
    tracker = RequestTracker(tmp_path / "logs", clock=fixed_clock)
    tracker.set_rate_limits(min_delay_ms=0)
    session = fake_session_factory({
        URLS[0]: [
            make_response(502, "Bad Gateway"),
            make_response(503, "Service Unavailable"),
            make_response(200, listing_payload()),
        ],
    })
    runner = make_runner(session, tmp_path, sleep_recorder, retry_sleeps,
                         tracker=tracker, clock=fixed_clock)

    report = runner.run(URLS[:1])

    stats = tracker.get_stats()
    assert report.stats.attempted == 1
    assert [e.status_code for e in tracker.export_logs()] == [502, 503, 200]
    assert stats.total_requests == 3
    assert stats.failed_requests == 2
    assert stats.successful_requests == 1


def test_unprocessable_listing_is_not_retried(
    tmp_path, sleep_recorder, retry_sleeps, fake_session_factory, make_response, listing_payload
):
    session = fake_session_factory(
        {URLS[0]: make_response(422, {"error": "Listing not available"})},
        default=make_response(200, listing_payload()),
    )
    runner = make_runner(session, tmp_path, sleep_recorder, retry_sleeps, retries=3)

    report = runner.run(URLS[:2])

    assert report.stats.status == RunStatus.COMPLETED
    assert len(session.calls) == 2
    assert retry_sleeps == []
    assert report.results[0].status_code == 422
    assert report.results[0].fatal is False
    assert report.results[1].ok


def test_daily_limit_aborts_run(
    tmp_path, fixed_clock, sleep_recorder, retry_sleeps, fake_session_factory, make_response, listing_payload
):
    tracker = RequestTracker(tmp_path / "logs", clock=fixed_clock)
    tracker.set_rate_limits(daily_limit=2, hourly_limit=0, min_delay_ms=0)
    session = fake_session_factory(default=make_response(200, listing_payload()))
    limit_sleeps = []
    runner = make_runner(session, tmp_path, sleep_recorder, retry_sleeps,
                         tracker=tracker, clock=fixed_clock, sleep=limit_sleeps.append)

    report = runner.run(URLS[:5])

    assert report.stats.status == RunStatus.ABORTED_RATE_LIMIT
    assert len(report.results) == 2
    assert len(session.calls) == 2
    assert limit_sleeps == []
    assert (tmp_path / "out" / "stats-testrun-0001.json").exists()


def test_short_limit_wait_is_slept_through(
    tmp_path, fixed_clock, retry_sleeps, fake_session_factory, make_response, listing_payload
):
    slept = []

    def advance(seconds):
        slept.append(seconds)
        fixed_clock.now += timedelta(seconds=seconds)

    tracker = RequestTracker(tmp_path / "logs", clock=fixed_clock)
    tracker.set_rate_limits(min_delay_ms=1000)
    session = fake_session_factory(default=make_response(200, listing_payload()))
    runner = BatchRunner(
        client=ParseApiClient(ENDPOINT, session=session),
        delay=DelayController(0, 0, sleep=advance),
        retry=RetryStrategy(sleep=retry_sleeps.append),
        output_dir=tmp_path / "out",
        tracker=tracker,
        sleep=advance,
        clock=fixed_clock,
    )

    report = runner.run(URLS[:2])

    assert report.stats.status == RunStatus.COMPLETED
    assert len(report.results) == 2
    assert slept == [0.0, pytest.approx(1.0)]
