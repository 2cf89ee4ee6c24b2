"""HTTP access to the content repository and the knowledge service.

`ResourceClient` is the single network boundary of the package. It wraps
one `httpx.AsyncClient` and exposes:

    - `fetch_json()`: any repository endpoint below the API root
    - `fetch_item()`, `fetch_entities()`, `list_transcripts()`: the
      repository's item and collection endpoints
    - `fetch_knowledge()`: Wikidata ``wbgetentities`` batch lookups

Every failure is normalized to `FetchError`; httpx exceptions never escape.
Requests are never retried. Each request is bounded by the configured
timeout.

Example:
    ```python
    async with ResourceClient(ViewerConfig(repository_uri="https://ddhi.example.edu")) as client:
        item = await client.fetch_item("123")
        events = await client.fetch_entities("123", "events")
    ```
"""

from typing import Any, Mapping, Sequence

import httpx

from ddhi.config import ViewerConfig
from ddhi.errors import FetchError, IdLimitExceeded
from ddhi.logging import setup_logging

logger = setup_logging()

DEFAULT_KNOWLEDGE_PROPS: tuple[str, ...] = ("sitelinks/urls", "claims")


class ResourceClient:
    """Async JSON client for the repository API and the knowledge service.

    Args:
        config: Viewer configuration (URIs, timeout, batch limit).
        transport: Optional httpx transport, e.g. ``httpx.MockTransport`` in tests.
        client: Optional preconfigured ``httpx.AsyncClient``. When given, the
            caller owns it and `aclose()` leaves it open.
    """

    def __init__(
        self,
        config: ViewerConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config or ViewerConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.config.request_timeout, transport=transport)

    async def __aenter__(self) -> "ResourceClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get_json(self, url: str, params: Mapping[str, Any]) -> Any:
        logger.debug({"message": "GET", "url": url, "params": dict(params)})
        try:
            response = await self._client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise FetchError(0, f"Request timed out after {self.config.request_timeout}s", url=url) from e
        except httpx.HTTPError as e:
            raise FetchError(0, f"Transport error: {e}", url=url) from e

        if not response.is_success:
            logger.warning(f"GET {url} returned {response.status_code}")
            raise FetchError(response.status_code, response.reason_phrase or "Request failed", url=url)
        try:
            return response.json()
        except ValueError as e:
            raise FetchError(response.status_code, f"Invalid JSON body: {e}", url=url) from e

    async def fetch_json(self, endpoint: str, query_params: Mapping[str, Any] | None = None) -> Any:
        """Fetch a repository resource as JSON.

        Args:
            endpoint: Path below the API root, e.g. ``"items/123"``.
            query_params: Extra query parameters; ``_format=json`` is always sent.

        Returns:
            The decoded JSON value.

        Raises:
            FetchError: On a non-success status or a transport failure.
        """
        params = {"_format": "json", **(query_params or {})}
        url = f"{self.config.api_uri}/{endpoint.lstrip('/')}"
        return await self._get_json(url, params)

    async def fetch_item(self, document_id: str) -> dict[str, Any]:
        """Fetch the base record of a transcript item."""
        data = await self.fetch_json(f"items/{document_id}")
        if not isinstance(data, dict):
            raise FetchError(200, f"Unexpected item payload for {document_id!r}: {type(data).__name__}")
        return data

    async def fetch_entities(self, document_id: str, collection: str) -> list[dict[str, Any]]:
        """Fetch the entities of one type associated with a transcript.

        The endpoint returns either a bare list or an object holding the list
        under the collection name; both are accepted. A null body means no
        entities of that type.
        """
        data = await self.fetch_json(f"items/{document_id}/{collection}")
        if data is None:
            return []
        if isinstance(data, dict):
            data = data.get(collection) or []
        if not isinstance(data, list):
            raise FetchError(200, f"Unexpected {collection} payload for {document_id!r}")
        return [e for e in data if isinstance(e, dict)]

    async def list_transcripts(self) -> list[dict[str, Any]]:
        """Fetch the transcripts available in the repository (ids and titles)."""
        data = await self.fetch_json("collections/transcripts")
        return data if isinstance(data, list) else []

    async def fetch_knowledge(
        self,
        ids: Sequence[str],
        props: Sequence[str] = DEFAULT_KNOWLEDGE_PROPS,
    ) -> dict[str, Any]:
        """Look up a batch of knowledge-service entities.

        Args:
            ids: Wikidata ids; at most ``config.max_knowledge_batch``.
            props: Property groups to request.

        Returns:
            The ``entities`` mapping of the response, keyed by id.

        Raises:
            IdLimitExceeded: If more ids are requested than one call accepts.
                Callers split larger sets themselves.
            FetchError: On transport failure or an ``error`` object in the body.
        """
        limit = self.config.max_knowledge_batch
        if len(ids) > limit:
            raise IdLimitExceeded(len(ids), limit)
        if not ids:
            return {}
        params = {
            "action": "wbgetentities",
            "format": "json",
            "languages": "en",
            "sitefilter": "enwiki",
            "origin": "*",
            "props": "|".join(props),
            "ids": "|".join(ids),
        }
        data = await self._get_json(self.config.knowledge_api_url, params)
        if isinstance(data, dict) and "error" in data:
            error = data["error"]
            info = error.get("info", error) if isinstance(error, dict) else error
            raise FetchError(200, f"Knowledge service error: {info}", url=self.config.knowledge_api_url)
        entities = data.get("entities") if isinstance(data, dict) else None
        return entities or {}
