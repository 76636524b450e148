"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator
from pathlib import Path

import pytest

from volley_coach.pipeline.backend.base import (
    BackendCallError,
    GenerationRequest,
    GenerationResponse,
)
from volley_coach.pipeline.ledger import UsageLedger
from volley_coach.pipeline.models import NotificationMessage
from volley_coach.pipeline.store import ResultStore

VISION_RESPONSE = {
    "overallScore": 72,
    "summary": "Solid serve receive, late block closes and a few rushed sets.",
    "playCount": 18,
    "pointsHome": 21,
    "pointsAway": 17,
    "players": [
        {
            "description": "Player #7 in white jersey",
            "jerseyNumber": 7,
            "position": "outside hitter",
            "reception": "good",
            "attack": "powerful but predictable",
            "overallRating": 78,
        },
    ],
    "errors": [
        {
            "title": "Late block close",
            "description": "Middle blocker arrives late on outside sets.",
            "severity": "high",
            "category": "blocking",
            "timeRange": "0:45-0:52",
            "frequency": "4 times",
            "videoTimestamp": 45,
        },
        {
            "title": "Toss drifts forward",
            "description": "Float serve toss lands in front of the hitting shoulder.",
            "severity": "medium",
            "category": "serving",
            "timeRange": "1:10-1:14",
            "frequency": "3 times",
            "videoTimestamp": 70,
        },
    ],
    "highlights": [{"description": "Long rally won", "timeRange": "2:00-2:30", "type": "great_play"}],
}

PLAN_RESPONSE = {
    "exercises": [
        {
            "name": "Block Footwork Ladder",
            "description": "Shuffle-crossover footwork along the net.",
            "duration": "10 minutes",
            "sets": "3 x 8",
            "targetArea": "blocking",
            "difficulty": "intermediate",
            "relatedError": "Late block close",
        },
        {
            "name": "Toss Consistency",
            "description": "Toss and catch without hitting, 20 reps.",
            "duration": "5 minutes",
            "sets": "2 x 20",
            "targetArea": "serving",
            "difficulty": "beginner",
        },
    ],
    "weeklyPlan": {"monday": ["Block Footwork Ladder"], "thursday": ["Toss Consistency"]},
    "coachingTips": ["Read the setter's shoulders"],
    "priorityFocus": "blocking",
}


class FakeBackend:
    """Scripted backend returning queued texts or raising queued errors."""

    def __init__(self, *responses: str | BaseException, model: str = "fake-model") -> None:
        self.model = model
        self.responses = list(responses)
        self.requests: list[GenerationRequest] = []

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        self.requests.append(request)
        if not self.responses:
            raise BackendCallError("no scripted response")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return GenerationResponse(text=response, model=self.model)

    @property
    def calls(self) -> int:
        return len(self.requests)


class BlockingBackend(FakeBackend):
    """Backend that waits on an event before answering."""

    def __init__(self, text: str) -> None:
        super().__init__(text)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        self.entered.set()
        await self.release.wait()
        return await super().generate(request)


class RecordingNotifier:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.messages: list[NotificationMessage] = []

    async def deliver(self, message: NotificationMessage) -> None:
        self.messages.append(message)
        if self.fail:
            raise RuntimeError("push gateway down")


def vision_text(payload: dict | None = None) -> str:
    return "```json\n" + json.dumps(payload or VISION_RESPONSE) + "\n```"


def plan_text(payload: dict | None = None) -> str:
    return json.dumps(payload or PLAN_RESPONSE)


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    path = tmp_path / "pipeline.db"
    store = ResultStore(path)
    try:
        store.init_schema()
    finally:
        store.close()
    return path


@pytest.fixture()
def store(db_path: Path) -> Iterator[ResultStore]:
    result_store = ResultStore(db_path)
    try:
        yield result_store
    finally:
        result_store.close()


@pytest.fixture()
def ledger(db_path: Path) -> Iterator[UsageLedger]:
    usage_ledger = UsageLedger(db_path)
    try:
        yield usage_ledger
    finally:
        usage_ledger.close()
