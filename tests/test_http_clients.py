"""Tests for HTTP-based adapters."""

import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest

from calorie_wise.adapters.image_search_client import HttpxImageSearchClient
from calorie_wise.adapters.openai_chat_client import OpenAIChatClient
from calorie_wise.adapters.openai_structured_client import OpenAIStructuredClient
from calorie_wise.domain.models import GroundingSource
from calorie_wise.services.ai_errors import EmptyResponseError
from calorie_wise.services.chat import ChatDelta


class _FakeStream:
    def __init__(self, events: list[object]) -> None:
        self._events = list(events)

    def __aiter__(self) -> "_FakeStream":
        return self

    async def __anext__(self) -> object:
        if not self._events:
            raise StopAsyncIteration
        return self._events.pop(0)


class _FakeResponses:
    def __init__(
        self, output_text: str = "", events: list[object] | None = None
    ) -> None:
        self.output_text = output_text
        self.events = events or []
        self.last_payload: dict[str, object] | None = None

    async def create(self, **kwargs):  # type: ignore[no-untyped-def]
        self.last_payload = kwargs
        if kwargs.get("stream"):
            return _FakeStream(self.events)
        return type("Resp", (), {"output_text": self.output_text})()


class _FakeOpenAI:
    def __init__(self, responses: _FakeResponses) -> None:
        self.responses = responses


def _event(event_type: str, **fields: object) -> SimpleNamespace:
    return SimpleNamespace(type=event_type, **fields)


async def _collect(client: OpenAIChatClient, **kwargs: object) -> list[ChatDelta]:
    return [delta async for delta in client.stream(**kwargs)]


def _stream_kwargs(use_web_search: bool = False) -> dict[str, object]:
    return {
        "model": "gpt-5.2",
        "store": False,
        "instructions": "Be helpful",
        "messages": [{"role": "user", "content": "Hi"}],
        "use_web_search": use_web_search,
    }


def test_structured_client_parses_output() -> None:
    responses = _FakeResponses(output_text=json.dumps({"foods": []}))
    client = OpenAIStructuredClient(client=_FakeOpenAI(responses))

    result = asyncio.run(
        client.generate(
            model="gpt-5.2",
            reasoning_effort="low",
            store=False,
            prompt="Analyze",
            schema_name="meal_analysis",
            schema={"type": "object"},
            image_data_url="data:image/jpeg;base64,ZmFrZQ==",
        )
    )

    assert result == {"foods": []}
    payload = responses.last_payload
    assert payload["reasoning"] == {"effort": "low"}
    assert payload["text"]["format"]["name"] == "meal_analysis"
    assert payload["text"]["format"]["strict"] is True
    content = payload["input"][0]["content"]
    assert content[1] == {
        "type": "input_image",
        "image_url": "data:image/jpeg;base64,ZmFrZQ==",
    }


def test_structured_client_without_image_or_reasoning() -> None:
    responses = _FakeResponses(output_text='{"planName": "Plan"}')
    client = OpenAIStructuredClient(client=_FakeOpenAI(responses))

    asyncio.run(
        client.generate(
            model="gpt-5.2",
            reasoning_effort=None,
            store=True,
            prompt="Plan",
            schema_name="workout_plan",
            schema={"type": "object"},
        )
    )

    payload = responses.last_payload
    assert "reasoning" not in payload
    assert payload["store"] is True
    assert len(payload["input"][0]["content"]) == 1


def test_structured_client_rejects_empty_output() -> None:
    client = OpenAIStructuredClient(client=_FakeOpenAI(_FakeResponses("  ")))

    with pytest.raises(EmptyResponseError):
        asyncio.run(
            client.generate(
                model="gpt-5.2",
                reasoning_effort="low",
                store=False,
                prompt="Analyze",
                schema_name="meal_analysis",
                schema={"type": "object"},
            )
        )


def test_chat_client_streams_text_and_citations() -> None:
    responses = _FakeResponses(
        events=[
            _event("response.created"),
            _event("response.output_text.delta", delta="Eat "),
            _event(
                "response.output_text.annotation.added",
                annotation={
                    "type": "url_citation",
                    "url": "https://example.com/protein",
                    "title": "Protein guide",
                },
            ),
            _event(
                "response.output_text.annotation.added",
                annotation=SimpleNamespace(
                    type="url_citation",
                    url="https://example.com/protein",
                    title="Protein guide",
                ),
            ),
            _event("response.output_text.delta", delta="more protein."),
            _event("response.completed"),
        ]
    )
    client = OpenAIChatClient(client=_FakeOpenAI(responses))

    deltas = asyncio.run(_collect(client, **_stream_kwargs(use_web_search=True)))

    assert "".join(delta.text for delta in deltas) == "Eat more protein."
    assert [delta.grounding for delta in deltas if delta.grounding] == [
        [GroundingSource(uri="https://example.com/protein", title="Protein guide")]
    ]
    payload = responses.last_payload
    assert payload["tools"] == [{"type": "web_search"}]
    assert payload["stream"] is True
    assert payload["instructions"] == "Be helpful"


def test_chat_client_ignores_other_annotations() -> None:
    responses = _FakeResponses(
        events=[
            _event(
                "response.output_text.annotation.added",
                annotation={"type": "file_citation", "file_id": "f1"},
            ),
            _event("response.output_text.delta", delta="Hi"),
        ]
    )
    client = OpenAIChatClient(client=_FakeOpenAI(responses))

    deltas = asyncio.run(_collect(client, **_stream_kwargs()))

    assert deltas == [ChatDelta(text="Hi")]
    assert "tools" not in responses.last_payload


def test_chat_client_raises_on_failed_stream() -> None:
    responses = _FakeResponses(
        events=[
            _event("response.output_text.delta", delta="Hi"),
            _event("error", message="rate limited"),
        ]
    )
    client = OpenAIChatClient(client=_FakeOpenAI(responses))

    with pytest.raises(RuntimeError, match="rate limited"):
        asyncio.run(_collect(client, **_stream_kwargs()))


def test_image_search_client_queries_custom_search() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["q"] == "Barbell Squat exercise demonstration"
        assert request.url.params["searchType"] == "image"
        assert request.url.params["cx"] == "cse-id"
        assert request.url.params["key"] == "search-key"
        return httpx.Response(
            200,
            json={
                "items": [
                    {"link": "https://img.example.com/squat.jpg"},
                    {"title": "no link"},
                ]
            },
        )

    transport = httpx.MockTransport(handler)
    client = HttpxImageSearchClient(
        api_key="search-key",
        search_engine_id="cse-id",
        base_url="https://search.example.com/customsearch/v1",
        http_client=httpx.AsyncClient(transport=transport),
    )

    links = asyncio.run(client.search_images("Barbell Squat exercise demonstration"))

    assert links == ["https://img.example.com/squat.jpg"]


def test_image_search_client_raises_on_http_errors() -> None:
    transport = httpx.MockTransport(lambda _: httpx.Response(429, json={}))
    client = HttpxImageSearchClient(
        api_key="search-key",
        search_engine_id="cse-id",
        base_url="https://search.example.com/customsearch/v1",
        http_client=httpx.AsyncClient(transport=transport),
    )

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(client.search_images("Plank"))


def test_image_search_client_without_results() -> None:
    transport = httpx.MockTransport(lambda _: httpx.Response(200, json={}))
    client = HttpxImageSearchClient(
        api_key="search-key",
        search_engine_id="cse-id",
        base_url="https://search.example.com/customsearch/v1",
        http_client=httpx.AsyncClient(transport=transport),
    )

    assert asyncio.run(client.search_images("Plank")) == []
