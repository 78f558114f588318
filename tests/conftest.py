from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from domain_advisor.errors import UpstreamUnavailable  # noqa: E402
from domain_advisor.extraction import normalize_task_payload  # noqa: E402
from domain_advisor.models import ProjectDetails, Suggestion, TaskRecord  # noqa: E402
from domain_advisor.providers import BaseJobAnalysisProvider  # noqa: E402
from domain_advisor.config import ProviderConfig  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def details() -> ProjectDetails:
    return ProjectDetails(
        user_type="Business",
        project_name="Brewly",
        business_niche="Specialty coffee subscriptions",
        target_audience="Home baristas in Europe",
        keywords="coffee, brew, beans",
        preferred_tlds=".com, .io",
    )


@pytest.fixture
def suggestion() -> Suggestion:
    return Suggestion(domain_name="brewly.com", confidence_score=0.92, explanation="Short and brandable.")


@pytest.fixture
def other_suggestion() -> Suggestion:
    return Suggestion(domain_name="beanbox.io", confidence_score=0.81, explanation="Playful.")


def completed_task(*texts: str, task_id: str = "task-1") -> dict:
    """A completed task payload with one assistant message per text."""
    output: list[dict[str, Any]] = [
        {"role": "user", "content": [{"type": "output_text", "text": "the prompt"}]}
    ]
    for text in texts:
        output.append({"role": "assistant", "content": [{"type": "output_text", "text": text}]})
    return {"id": task_id, "status": "completed", "output": output}


class FakeJobProvider(BaseJobAnalysisProvider):
    """Scripted research service.

    ``statuses`` is consumed one entry per status fetch; an entry may be a
    payload (dict or list), an exception instance to raise, or an
    ``asyncio.Event`` gate followed by the payload to return once it is set.
    """

    def __init__(self, statuses=(), *, start_error: Exception | None = None,
                 start_gates: list[asyncio.Event] | None = None):
        super().__init__("fake", ProviderConfig())
        self.statuses = list(statuses)
        self.start_error = start_error
        self.start_gates = list(start_gates or [])
        self.started: list[str] = []
        self.fetched: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def start_job(self, suggestion: Suggestion, details: ProjectDetails) -> str:
        if self.start_gates:
            await self.start_gates.pop(0).wait()
        if self.start_error is not None:
            raise self.start_error
        job_id = f"task-{suggestion.domain_name}"
        self.started.append(job_id)
        return job_id

    async def fetch_job(self, job_id: str) -> TaskRecord:
        self.fetched.append(job_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if not self.statuses:
                raise UpstreamUnavailable("no scripted status left")
            entry = self.statuses.pop(0)
            if isinstance(entry, tuple):
                gate, entry = entry
                await gate.wait()
            if isinstance(entry, Exception):
                raise entry
            return normalize_task_payload(entry)
        finally:
            self.in_flight -= 1


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.expiries: dict[str, int] = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, expiry, value):
        self.store[key] = value
        self.expiries[key] = expiry
