from __future__ import annotations

import pytest
import requests

from domain.errors import ApiStatusError, EmptyResult, NetworkError, ParseError, RateLimited
from infrastructure.ai.completion_client import GROQ_URL, CompletionClient
from tests.helpers import FakeResponse, FakeSession, FakeSleeper


def ok(content: str = '{"category": "urgent"}') -> FakeResponse:
    return FakeResponse(200, {"choices": [{"message": {"role": "assistant", "content": content}}]})


def throttled() -> FakeResponse:
    return FakeResponse(429, text="rate limit reached")


def make_client(*responses) -> tuple[CompletionClient, FakeSession, FakeSleeper]:
    session = FakeSession(*responses)
    sleeper = FakeSleeper()
    return CompletionClient("gsk-test", session=session, sleep=sleeper), session, sleeper


@pytest.mark.asyncio
async def test_request_shape() -> None:
    client, session, _ = make_client(ok())

    await client.complete("system text", "user text")

    call = session.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == GROQ_URL
    assert call["headers"]["Authorization"] == "Bearer gsk-test"
    assert call["json"] == {
        "model": "llama-3.3-70b-versatile",
        "messages": [
            {"role": "system", "content": "system text"},
            {"role": "user", "content": "user text"},
        ],
        "temperature": 0.3,
        "max_tokens": 1024,
        "response_format": {"type": "json_object"},
    }


@pytest.mark.asyncio
async def test_two_rate_limits_then_success() -> None:
    client, session, sleeper = make_client(throttled(), throttled(), ok("done"))

    assert await client.complete("s", "u") == "done"
    assert sleeper.delays == [10.0, 10.0]
    assert len(session.calls) == 3


@pytest.mark.asyncio
async def test_three_rate_limits_give_up_without_fourth_attempt() -> None:
    client, session, sleeper = make_client(throttled(), throttled(), throttled(), ok())

    with pytest.raises(RateLimited) as exc_info:
        await client.complete("s", "u")

    assert exc_info.value.status_code == 429
    assert len(session.calls) == 3
    assert sleeper.delays == [10.0, 10.0]


@pytest.mark.asyncio
async def test_other_errors_return_immediately() -> None:
    client, session, sleeper = make_client(FakeResponse(401, text="invalid api key"), ok())

    with pytest.raises(ApiStatusError) as exc_info:
        await client.complete("s", "u")

    assert not isinstance(exc_info.value, RateLimited)
    assert exc_info.value.status_code == 401
    assert "invalid api key" in str(exc_info.value)
    assert len(session.calls) == 1
    assert sleeper.delays == []


@pytest.mark.asyncio
async def test_no_choices_is_empty_result() -> None:
    client, _, _ = make_client(FakeResponse(200, {"choices": []}))
    with pytest.raises(EmptyResult):
        await client.complete("s", "u")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(200, text="not json"),
        FakeResponse(200, {"id": "x"}),
        FakeResponse(200, {"choices": [{"message": {}}]}),
    ],
)
async def test_malformed_bodies_are_parse_errors(response: FakeResponse) -> None:
    client, _, _ = make_client(response)
    with pytest.raises(ParseError):
        await client.complete("s", "u")


@pytest.mark.asyncio
async def test_transport_failure_is_network_error() -> None:
    client, _, _ = make_client(requests.Timeout("read timed out"))
    with pytest.raises(NetworkError):
        await client.complete("s", "u")


@pytest.mark.asyncio
async def test_without_injected_session_each_attempt_uses_module_level_post(monkeypatch: pytest.MonkeyPatch) -> None:
    transport = FakeSession(throttled(), ok("done"))
    monkeypatch.setattr(requests, "post", transport.post)
    sleeper = FakeSleeper()
    client = CompletionClient("gsk-test", sleep=sleeper)

    assert await client.complete("s", "u") == "done"
    assert client.session is None
    assert [c["url"] for c in transport.calls] == [GROQ_URL, GROQ_URL]
