"""Google Custom Search client for exercise images."""

from dataclasses import dataclass

import httpx

from calorie_wise.services.workout_plans import ImageSearchClient


@dataclass
class HttpxImageSearchClient(ImageSearchClient):
    """HTTPX-backed Google Custom Search image client."""

    api_key: str
    search_engine_id: str
    base_url: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(
        cls, api_key: str, search_engine_id: str, base_url: str
    ) -> "HttpxImageSearchClient":
        """Create an image search client with a managed httpx session."""
        return cls(
            api_key=api_key,
            search_engine_id=search_engine_id,
            base_url=base_url,
            http_client=httpx.AsyncClient(),
        )

    async def search_images(self, query: str) -> list[str]:
        """Return image result links for a query."""
        response = await self.http_client.get(
            self.base_url,
            params={
                "key": self.api_key,
                "cx": self.search_engine_id,
                "q": query,
                "searchType": "image",
                "imgSize": "medium",
                "imgType": "photo",
                "safe": "active",
            },
            timeout=15,
        )
        response.raise_for_status()
        items = response.json().get("items") or []
        return [str(item["link"]) for item in items if item.get("link")]

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
