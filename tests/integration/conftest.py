import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from core.config import reset_config  # noqa: E402
from core.container import reset_container  # noqa: E402


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Union[str, Dict[str, Any], None] = None, reason: str = "") -> None:
        self.status_code = status_code
        if isinstance(body, (dict, list)):
            self.text = json.dumps(body, ensure_ascii=False)
        else:
            self.text = body or ""
        self.reason = reason

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        return json.loads(self.text)


ResponseAnswer = Union[FakeResponse, Exception, Callable[[], FakeResponse]]


class FakeSession:
    """Stands in for requests.Session; answers by target URL."""

    def __init__(self, responses: Optional[Dict[str, Union[ResponseAnswer, List[ResponseAnswer]]]] = None,
                 default: Optional[ResponseAnswer] = None) -> None:
        self.responses = responses or {}
        self.default = default
        self.headers: Dict[str, str] = {}
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def _answer(self, key: str) -> FakeResponse:
        answer = self.responses.get(key, self.default)
        if isinstance(answer, list):
            answer = answer.pop(0) if len(answer) > 1 else answer[0]
        if answer is None:
            raise AssertionError(f"No fake response for {key}")
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            return answer()
        return answer

    def post(self, url: str, json: Optional[Dict[str, Any]] = None, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": "POST", "url": url, "json": json, **kwargs})
        return self._answer((json or {}).get("url", url))

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": "GET", "url": url, **kwargs})
        return self._answer(url)

    def close(self) -> None:
        self.closed = True


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture(autouse=True)
def isolated_globals(monkeypatch):
    for key in ("HARVEST_MODE", "DELAY_MIN_MS", "DELAY_MAX_MS", "MAX_REQUESTS", "FLUSH_EVERY",
                "MAX_FAILURES", "RETRY_BUDGET", "RETRY_BASE_MS", "PARSE_API_URL", "OUTPUT_DIR",
                "LOG_DIR", "TRACKER_TIMEZONE", "LOG_LEVEL", "HARVEST_PROXIES", "MAX_LIMIT_WAIT_SECONDS",
                "REQUEST_TIMEOUT", "VERBOSE_LOGGING"):
        monkeypatch.delenv(key, raising=False)
    reset_config()
    reset_container()
    yield
    reset_config()
    reset_container()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fixed_clock() -> FixedClock:
    return FixedClock(datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def fake_session_factory():
    def _factory(responses=None, default=None) -> FakeSession:
        return FakeSession(responses, default)

    return _factory


@pytest.fixture
def url_file(tmp_path):
    def _write(lines: List[str]) -> Path:
        path = tmp_path / "urls.txt"
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_response():
    return FakeResponse


@pytest.fixture
def listing_payload():
    def _payload(title: str = "2-room apartment", price: str = "35 000 000 ₸") -> Dict[str, Any]:
        return {"data": {"title": title, "price": price}, "error": None, "status": 200}

    return _payload
