"""
In-memory result log and JSON snapshots on disk.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from core.exceptions import SnapshotWriteError
from core.models import FailureResult, Result, SuccessResult, RunStats

logger = logging.getLogger(__name__)


class ResultLog:
    """Ordered, append-only log of per-URL results."""

    def __init__(self):
        self._entries: List[Result] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def append(self, result: Result) -> None:
        self._entries.append(result)

    @property
    def entries(self) -> List[Result]:
        return list(self._entries)

    @property
    def successes(self) -> List[SuccessResult]:
        return [r for r in self._entries if isinstance(r, SuccessResult)]

    @property
    def failures(self) -> List[FailureResult]:
        return [r for r in self._entries if isinstance(r, FailureResult)]


class SnapshotWriter:
    """
    Writes results-*, errors-* and stats-* JSON files for one run.

    Every flush gets its own sequence number, so earlier snapshots are
    never overwritten. Each snapshot holds the cumulative log at that point.
    """

    def __init__(self, output_dir: Union[str, Path], run_id: str):
        self.output_dir = Path(output_dir)
        self.run_id = run_id
        self.flush_count = 0

    def _path(self, kind: str) -> Path:
        return self.output_dir / f"{kind}-{self.run_id}-{self.flush_count:04d}.json"

    def _write_json(self, path: Path, data: Any) -> None:
        try:
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
        except (OSError, TypeError, ValueError) as e:
            raise SnapshotWriteError(str(path), e) from e

    def flush(self, log: ResultLog, stats: RunStats) -> Dict[str, Optional[Path]]:
        """
        Write one snapshot.

        Returns:
            Mapping of kind ('results', 'errors', 'stats') to the written path,
            None where nothing was written
        """
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SnapshotWriteError(str(self.output_dir), e) from e

        self.flush_count += 1
        written: Dict[str, Optional[Path]] = {'results': None, 'errors': None, 'stats': None}

        successes = log.successes
        if successes:
            path = self._path('results')
            self._write_json(path, [r.to_dict() for r in successes])
            written['results'] = path
            logger.info(f"Saved {len(successes)} results to {path}")

        failures = log.failures
        if failures:
            path = self._path('errors')
            self._write_json(path, [r.to_dict() for r in failures])
            written['errors'] = path
            logger.info(f"Saved {len(failures)} errors to {path}")

        path = self._path('stats')
        self._write_json(path, stats.to_dict())
        written['stats'] = path

        return written
