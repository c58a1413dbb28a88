"""Shared fixtures for the wakewatch tests."""

from typing import Any, Callable

import pytest
from apscheduler.jobstores.base import JobLookupError


class FakeScheduler:
    """
    Stand-in for an APScheduler scheduler that never starts a thread.

    Jobs are recorded by id; ``run_next`` and ``drain`` execute them on the
    calling thread, so tests decide exactly when each firing happens.
    """

    def __init__(self) -> None:
        self.running = False
        self.jobs: dict[str, dict[str, Any]] = {}
        self.added: list[dict[str, Any]] = []

    def add_job(self, func: Callable[..., Any], trigger: Any = None, args: Any = None, **kwargs: Any) -> None:
        job = {"func": func, "trigger": trigger, "args": list(args or []), **kwargs}
        job_id = kwargs.get("id") or f"job-{len(self.added)}"
        self.jobs[job_id] = job
        self.added.append(job)

    def remove_job(self, job_id: str) -> None:
        if job_id not in self.jobs:
            raise JobLookupError(job_id)
        del self.jobs[job_id]

    def start(self) -> None:
        self.running = True

    def shutdown(self, wait: bool = True) -> None:
        self.running = False

    def run(self, job_id: str) -> None:
        job = self.jobs.pop(job_id)
        job["func"](*job["args"])

    def run_next(self) -> None:
        self.run(next(iter(self.jobs)))

    def drain(self, limit: int = 50) -> int:
        """Run one-shot jobs until none are left; returns how many ran."""
        ran = 0
        while self.jobs and ran < limit:
            self.run_next()
            ran += 1
        return ran


@pytest.fixture()
def scheduler() -> FakeScheduler:
    return FakeScheduler()
