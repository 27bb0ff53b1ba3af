#!/usr/bin/env python3
"""
Task data model.

A task is one URL scheduled at a fixed position in a harvest run.
"""

from dataclasses import dataclass
from typing import Iterable, List


@dataclass(frozen=True)
class Task:
    """A URL plus its 1-based ordinal position in the run."""
    url: str
    position: int

    def __post_init__(self):
        if not self.url:
            raise ValueError("Task url must not be empty")
        if self.position < 1:
            raise ValueError(f"Task position must be >= 1, got {self.position}")


def build_tasks(urls: Iterable[str]) -> List[Task]:
    """Number URLs in order, starting at 1."""
    return [Task(url=url, position=i) for i, url in enumerate(urls, 1)]
