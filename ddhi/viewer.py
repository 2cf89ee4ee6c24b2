"""The root viewer.

`Viewer` ties the data layer together. It owns the selection state and the
propagation bus, and it is the bus's root subscriber. Whenever the set of
active transcripts changes it runs a refresh:

    aggregate documents -> index mentions -> resolve event dates

Refreshes are tagged with a generation number. Starting a new refresh
cancels the one in flight, and a refresh that finishes after a newer one
started is discarded, so a slow response can never overwrite newer state.
When nothing could be retrieved the viewer reports `NoData` instead of an
empty or stale snapshot.

Example:
    ```python
    async with ResourceClient(config) as client:
        viewer = Viewer(client)
        result = await viewer.activate("123")
        if isinstance(result, ViewerSnapshot):
            for record in result.indices["123"].ordered("data-mention"):
                ...
    ```
"""

import asyncio
import random
from typing import Iterable, Sequence

from pydantic import BaseModel, ConfigDict, Field

from ddhi.aggregator import EntityAggregator, MultiDocumentStore
from ddhi.chronology import ChronologyRecord, EventDateResolver
from ddhi.client import ResourceClient
from ddhi.dates import DateNormalizer
from ddhi.document import Document, narrator_name
from ddhi.entity import EntityType
from ddhi.errors import BatchPartialFailure, FetchError
from ddhi.geography import PlaceMarker, place_markers
from ddhi.logging import setup_logging
from ddhi.mentions import MentionIndex, MentionIndexer
from ddhi.propagation import (
    ACTIVE_ID,
    ActiveIdsChanged,
    AttributeCleared,
    Message,
    PanelInterface,
    PropagationBus,
    SelectionState,
)
from ddhi.timeline import Timeline, build_timeline

logger = setup_logging()


class ViewerSnapshot(BaseModel):
    """Result of a successful refresh.

    ``failures`` lists ids (or ``"chronology"``) whose data is missing from
    an otherwise usable snapshot.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    generation: int
    documents: tuple[Document, ...]
    indices: dict[str, MentionIndex] = Field(description="Mention index per document id.")
    chronology: dict[str, ChronologyRecord] = Field(description="Event chronology keyed by knowledge id.")
    failures: dict[str, str] = Field(default_factory=dict)

    def document(self, document_id: str) -> Document | None:
        for document in self.documents:
            if document.id == document_id:
                return document
        return None


class NoData(BaseModel, frozen=True):
    """Nothing could be shown for the active transcripts."""

    generation: int
    reason: str
    failures: dict[str, str] = Field(default_factory=dict)


RefreshResult = ViewerSnapshot | NoData


class TranscriptOption(BaseModel, frozen=True):
    """One entry of the transcript selection menu."""

    id: str
    title: str

    @property
    def label(self) -> str:
        return f"Narrator: {narrator_name(self.title)}"


class Viewer(PanelInterface):
    """Root of the viewer: owns selection state and drives refreshes.

    A running event loop is required for anything that changes the active
    ids, since refreshes run as tasks.

    Args:
        client: Resource client shared by the aggregator and the resolver.
        store: Document store; a new one is created when omitted.
        rng: Random source for the ``random`` color policy.
    """

    def __init__(
        self,
        client: ResourceClient,
        store: MultiDocumentStore | None = None,
        rng: random.Random | None = None,
    ):
        self.client = client
        self.config = client.config
        self.aggregator = EntityAggregator(client, store, rng=rng)
        self.indexer = MentionIndexer()
        self.resolver = EventDateResolver(client)
        self.normalizer = DateNormalizer(self.config.date_corrections)
        self.state = SelectionState()
        self.bus = PropagationBus(self, self.state, occurrence_counter=self.occurrences)
        self.current: RefreshResult = NoData(generation=0, reason="No transcripts are active")
        self._generation = 0
        self._requested_ids: tuple[str, ...] = ()
        self._refresh_task: asyncio.Task[RefreshResult | None] | None = None

    @property
    def store(self) -> MultiDocumentStore:
        return self.aggregator.store

    @property
    def active_ids(self) -> tuple[str, ...]:
        return self.state.active_ids

    @property
    def generation(self) -> int:
        return self._generation

    def occurrences(self, entity_id: str) -> int | None:
        """Mentions of ``entity_id`` across the current snapshot's documents."""
        if not isinstance(self.current, ViewerSnapshot):
            return None
        return sum(index.occurrences(entity_id) for index in self.current.indices.values())

    def timeline(self, document_id: str) -> Timeline | None:
        """Timeline for one document of the current snapshot, with configured date corrections."""
        snapshot = self.current
        if not isinstance(snapshot, ViewerSnapshot):
            return None
        document = snapshot.document(document_id)
        if document is None:
            return None
        return build_timeline(snapshot.indices[document_id], snapshot.chronology, document, self.normalizer)

    def markers(self) -> list[PlaceMarker]:
        if not isinstance(self.current, ViewerSnapshot):
            return []
        return list(place_markers(self.current.documents))

    async def transcripts(self) -> list[TranscriptOption]:
        """Transcripts available for selection, as published by the repository."""
        options = []
        for item in await self.client.list_transcripts():
            if isinstance(item, dict) and item.get("id") is not None:
                options.append(TranscriptOption(id=str(item["id"]), title=str(item.get("title") or "")))
        return options

    def receive(self, message: Message) -> None:
        if isinstance(message, ActiveIdsChanged) or (
            isinstance(message, AttributeCleared) and message.attribute == ACTIVE_ID
        ):
            ids = message.state.active_ids
            if ids != self._requested_ids:
                self._requested_ids = ids
                self._start_refresh(ids)

    async def activate(self, document_id: str) -> RefreshResult | None:
        """Add a transcript to the active set and refresh."""
        return await self.set_active_ids((*self.active_ids, document_id))

    async def deactivate(self, document_id: str | None = None) -> RefreshResult | None:
        """Remove one transcript from the active set, or all of them."""
        if document_id is None:
            self.bus.clear(ACTIVE_ID)
            return await self._await_refresh()
        return await self.set_active_ids(i for i in self.active_ids if i != document_id)

    async def set_active_ids(self, document_ids: Iterable[str]) -> RefreshResult | None:
        """Replace the active set and wait for the resulting refresh.

        Returns:
            The refresh result, or ``None`` if a newer change superseded
            this one before it completed.
        """
        self.bus.propagate(ACTIVE_ID, list(document_ids))
        return await self._await_refresh()

    def _start_refresh(self, document_ids: Sequence[str]) -> None:
        self._generation += 1
        previous = self._refresh_task
        if previous is not None and not previous.done():
            logger.debug(f"Cancelling refresh superseded by generation {self._generation}")
            previous.cancel()
        self._refresh_task = asyncio.get_running_loop().create_task(
            self._refresh(self._generation, tuple(document_ids))
        )

    async def _await_refresh(self) -> RefreshResult | None:
        task = self._refresh_task
        if task is None:
            return self.current
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logger.debug("Refresh superseded before completion")
            return None

    async def _refresh(self, generation: int, document_ids: tuple[str, ...]) -> RefreshResult | None:
        result = await self._build(generation, document_ids)
        if generation != self._generation:
            logger.debug(f"Discarding stale refresh {generation}; current is {self._generation}")
            return None
        self.current = result
        return result

    async def _build(self, generation: int, document_ids: tuple[str, ...]) -> RefreshResult:
        dropped = self.store.retain(document_ids)
        if dropped:
            logger.debug(f"Dropped inactive documents {dropped}")
        if not document_ids:
            return NoData(generation=generation, reason="No transcripts are active")

        failures: dict[str, str] = {}
        try:
            await self.aggregator.aggregate(document_ids)
        except BatchPartialFailure as e:
            failures.update({i: str(err) for i, err in e.failures.items()})

        documents = tuple(self.store.documents(document_ids))
        if not documents:
            logger.warning(f"No data could be retrieved for {list(document_ids)}")
            return NoData(generation=generation, reason="No transcript data could be retrieved", failures=failures)

        indices = {document.id: self.indexer.index(document) for document in documents}
        # Only events linked to Wikidata have chronology.
        event_ids = [
            entity.knowledge_id
            for document in documents
            for entity in document.entities(EntityType.EVENT)
            if entity.knowledge_id
        ]
        try:
            chronology = await self.resolver.resolve_event_dates(event_ids)
        except FetchError as e:
            failures["chronology"] = str(e)
            chronology = {}

        return ViewerSnapshot(
            generation=generation,
            documents=documents,
            indices=indices,
            chronology=chronology,
            failures=failures,
        )
