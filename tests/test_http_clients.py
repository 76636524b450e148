from __future__ import annotations

import asyncio
import json

import allure
import httpx
import pytest

from volley_coach.pipeline.backend import BackendCallError, GeminiBackend, GenerationRequest
from volley_coach.pipeline.models import NotificationMessage
from volley_coach.pipeline.notifier import WebhookNotifier

pytestmark = [
    allure.epic("Analysis Pipeline"),
    allure.feature("HTTP Clients"),
]


def _gemini(handler) -> GeminiBackend:
    return GeminiBackend(
        api_key="secret",
        model="gemini-test",
        base_url="https://generative.test/",
        timeout_seconds=5,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def test_gemini_posts_media_and_prompt() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": '{"a"'}, {"text": ": 1}"}]}}]},
        )

    response = asyncio.run(
        _gemini(handler).generate(
            GenerationRequest(prompt="analyze", media_url="https://cdn.test/v.mp4"),
        ),
    )

    assert response.text == '{"a": 1}'
    assert response.model == "gemini-test"
    request = seen[0]
    assert str(request.url) == "https://generative.test/v1beta/models/gemini-test:generateContent"
    assert request.headers["x-goog-api-key"] == "secret"
    body = json.loads(request.content)
    assert body["contents"][0]["parts"][0]["fileData"]["fileUri"] == "https://cdn.test/v.mp4"
    assert body["contents"][0]["parts"][1]["text"] == "analyze"


def test_gemini_error_status_raises_backend_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="RESOURCE_EXHAUSTED")

    with pytest.raises(BackendCallError) as raised:
        asyncio.run(_gemini(handler).generate(GenerationRequest(prompt="x")))

    assert raised.value.status_code == 429
    assert "RESOURCE_EXHAUSTED" in raised.value.body


def test_gemini_timeout_is_flagged() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(BackendCallError) as raised:
        asyncio.run(_gemini(handler).generate(GenerationRequest(prompt="x")))

    assert raised.value.timed_out


def test_webhook_notifier_posts_camel_case_payload() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(204)

    notifier = WebhookNotifier(
        url="https://hooks.test/notify",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    asyncio.run(
        notifier.deliver(
            NotificationMessage(
                account_id="acct-1",
                type="analysis_ready",
                title="Analysis Ready",
                body="Done",
                data={"reportId": 3},
            ),
        ),
    )

    assert seen == [
        {
            "accountId": "acct-1",
            "type": "analysis_ready",
            "title": "Analysis Ready",
            "body": "Done",
            "data": {"reportId": 3},
        },
    ]


def test_webhook_notifier_raises_on_error_status() -> None:
    notifier = WebhookNotifier(
        url="https://hooks.test/notify",
        client=httpx.AsyncClient(transport=httpx.MockTransport(lambda _: httpx.Response(500))),
    )

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(
            notifier.deliver(NotificationMessage("acct-1", "analysis_ready", "t", "b")),
        )
