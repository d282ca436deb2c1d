"""OpenAI Responses API client for streamed chat replies."""

from collections.abc import AsyncIterator
from dataclasses import dataclass

from openai import AsyncOpenAI

from calorie_wise.domain.models import GroundingSource
from calorie_wise.services.chat import ChatClient, ChatDelta

_TEXT_DELTA = "response.output_text.delta"
_ANNOTATION_ADDED = "response.output_text.annotation.added"
_FAILED = {"response.failed", "error"}


@dataclass
class OpenAIChatClient(ChatClient):
    """Chat client streaming from OpenAI Responses API."""

    client: AsyncOpenAI

    @classmethod
    def create(cls, api_key: str) -> "OpenAIChatClient":
        """Create an OpenAI chat client."""
        return cls(client=AsyncOpenAI(api_key=api_key))

    async def stream(  # noqa: PLR0913
        self,
        *,
        model: str,
        store: bool,
        instructions: str,
        messages: list[dict[str, str]],
        use_web_search: bool,
    ) -> AsyncIterator[ChatDelta]:
        """Yield text deltas; citations arrive as the accumulated list."""
        request_payload: dict[str, object] = {
            "model": model,
            "instructions": instructions,
            "input": messages,
            "store": store,
            "stream": True,
        }
        if use_web_search:
            request_payload["tools"] = [{"type": "web_search"}]

        citations: list[GroundingSource] = []
        stream = await self.client.responses.create(**request_payload)
        async for event in stream:
            event_type = getattr(event, "type", None)
            if event_type == _TEXT_DELTA:
                yield ChatDelta(text=event.delta)
            elif event_type == _ANNOTATION_ADDED:
                source = _citation_from_annotation(event.annotation)
                if source is not None and source not in citations:
                    citations.append(source)
                    yield ChatDelta(text="", grounding=list(citations))
            elif event_type in _FAILED:
                raise RuntimeError(f"OpenAI stream failed: {_failure_message(event)}")

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.client.close()


def _citation_from_annotation(annotation: object) -> GroundingSource | None:
    """Convert a url_citation annotation to a grounding source."""
    if isinstance(annotation, dict):
        kind = annotation.get("type")
        url = annotation.get("url")
        title = annotation.get("title")
    else:
        kind = getattr(annotation, "type", None)
        url = getattr(annotation, "url", None)
        title = getattr(annotation, "title", None)
    if kind != "url_citation" or not url:
        return None
    return GroundingSource(uri=str(url), title=str(title or url))


def _failure_message(event: object) -> str:
    message = getattr(event, "message", None)
    if message:
        return str(message)
    response = getattr(event, "response", None)
    error = getattr(response, "error", None)
    return str(getattr(error, "message", None) or "unknown error")
