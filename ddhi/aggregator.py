"""Concurrent retrieval of transcript entity slates.

`EntityAggregator` turns a list of active document ids into `Document`
records in a shared `MultiDocumentStore`. For each new id it fetches the
item record and all five entity listings concurrently; ids themselves are
also fetched concurrently, each under its own deadline.

Documents already in the store are neither refetched nor recolored, so the
display color of a transcript stays fixed while it remains active.
"""

import asyncio
import random
from typing import Any, Iterable, Iterator, Sequence

from pydantic import ValidationError

from ddhi.client import ResourceClient
from ddhi.config import ViewerConfig
from ddhi.document import Document, hashed_color, random_color, shade_color
from ddhi.entity import SUPPORTED_COLLECTIONS, Entity, EntityType, parse_entity
from ddhi.errors import BatchPartialFailure, FetchError
from ddhi.logging import setup_logging

logger = setup_logging()


class MultiDocumentStore:
    """In-memory mapping of document id to `Document`, in activation order."""

    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}

    def get(self, document_id: str) -> Document | None:
        return self._documents.get(document_id)

    def put(self, document: Document) -> None:
        self._documents[document.id] = document

    def retain(self, document_ids: Iterable[str]) -> list[str]:
        """Drop every document whose id is not in ``document_ids``. Returns the dropped ids."""
        keep = set(document_ids)
        dropped = [i for i in self._documents if i not in keep]
        for document_id in dropped:
            del self._documents[document_id]
        return dropped

    def ids(self) -> list[str]:
        return list(self._documents)

    def documents(self, document_ids: Iterable[str] | None = None) -> list[Document]:
        """Documents in store order, or in the order of ``document_ids`` when given."""
        if document_ids is None:
            return list(self._documents.values())
        return [self._documents[i] for i in document_ids if i in self._documents]

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._documents

    def __len__(self) -> int:
        return len(self._documents)

    def __iter__(self) -> Iterator[Document]:
        return iter(list(self._documents.values()))


class EntityAggregator:
    """Fetches and merges per-document entity data.

    Args:
        client: Resource client for the repository.
        store: Store to merge into; a new one is created when omitted.
        config: Settings for color policy, shading and deadlines. Defaults to
            the client's configuration.
        rng: Random source for the ``random`` color policy.
    """

    def __init__(
        self,
        client: ResourceClient,
        store: MultiDocumentStore | None = None,
        config: ViewerConfig | None = None,
        rng: random.Random | None = None,
    ):
        self.client = client
        self.store = store if store is not None else MultiDocumentStore()
        self.config = config or client.config
        self.rng = rng

    def _color_for(self, document_id: str) -> tuple[str, str]:
        if self.config.color_policy == "random":
            color = random_color(self.rng)
        else:
            color = hashed_color(document_id)
        return color, shade_color(color, self.config.shade_percent)

    async def _fetch_collection(self, document_id: str, collection: str) -> tuple[Entity, ...]:
        entity_type = EntityType.from_collection(collection)
        entities: list[Entity] = []
        for data in await self.client.fetch_entities(document_id, collection):
            try:
                entities.append(parse_entity(data, default_type=entity_type))
            except ValidationError as e:
                raise FetchError(200, f"Malformed {collection} record for {document_id!r}: {e.error_count()} error(s)") from e
        return tuple(entities)

    async def _fetch_document(self, document_id: str) -> Document:
        async with asyncio.timeout(self.config.request_timeout):
            try:
                async with asyncio.TaskGroup() as group:
                    item_task = group.create_task(self.client.fetch_item(document_id))
                    collection_tasks = {
                        collection: group.create_task(self._fetch_collection(document_id, collection))
                        for collection in SUPPORTED_COLLECTIONS
                    }
            except ExceptionGroup as eg:
                # Report the first fetch failure; anything else is a defect and propagates.
                if all(isinstance(e, FetchError) for e in eg.exceptions):
                    raise eg.exceptions[0] from eg
                raise

        item: dict[str, Any] = item_task.result()
        color, border = self._color_for(document_id)
        return Document(
            id=document_id,
            title=item.get("title") or "",
            transcript=item.get("transcript") or "",
            uri=item.get("uri"),
            tei_uri=item.get("tei_uri"),
            entities_by_type={
                EntityType.from_collection(c): task.result() for c, task in collection_tasks.items()
            },
            display_color=color,
            display_border_color=border,
        )

    async def _fetch_into(self, document_id: str, failures: dict[str, BaseException]) -> None:
        try:
            document = await self._fetch_document(document_id)
        except TimeoutError:
            failures[document_id] = FetchError(0, f"Timed out after {self.config.request_timeout}s")
        except FetchError as e:
            failures[document_id] = e
        else:
            self.store.put(document)
            logger.debug(
                {
                    "message": "Stored document",
                    "id": document_id,
                    "color": document.display_color,
                    "entities": {t.value: len(e) for t, e in document.entities_by_type.items()},
                },
                pprint=True,
            )

    async def aggregate(self, document_ids: Sequence[str]) -> MultiDocumentStore:
        """Fetch every id not yet in the store and merge it.

        Args:
            document_ids: Active document ids. Duplicates and ids already
                present in the store are skipped.

        Returns:
            The shared store.

        Raises:
            BatchPartialFailure: If any id failed. Documents that succeeded
                are stored before this is raised.
        """
        pending = [i for i in dict.fromkeys(document_ids) if i and i not in self.store]
        if not pending:
            return self.store

        failures: dict[str, BaseException] = {}
        async with asyncio.TaskGroup() as group:
            for document_id in pending:
                group.create_task(self._fetch_into(document_id, failures))

        if failures:
            succeeded = [i for i in pending if i not in failures]
            logger.warning(
                {"message": "Aggregation partially failed", "failed": {i: str(e) for i, e in failures.items()}},
                pprint=True,
            )
            raise BatchPartialFailure(failures, succeeded)
        return self.store
