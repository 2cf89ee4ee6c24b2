"""Chronology for event and date entities.

Events are placed on a timeline using three Wikidata claims:

    - **P580** start time
    - **P582** end time
    - **P585** point in time (for events that are not a range)

Any or all may be absent. A `ChronologyRecord` stores the three values as
ISO-partial strings and derives the pair used for ordering:

    sort_date_start = start_date ?? point_in_time
    sort_date_end   = end_date   ?? point_in_time

An entity with none of the three values is unorderable and is left out of
chronological views.
"""

import asyncio
from typing import Any, Iterable, Sequence

from pydantic import BaseModel, Field, computed_field

from ddhi.client import ResourceClient
from ddhi.dates import date_entity_range, iso_partial, sort_key
from ddhi.entity import DateEntity
from ddhi.errors import FetchError, UnresolvableDate
from ddhi.logging import setup_logging

logger = setup_logging()

START_TIME = "P580"
END_TIME = "P582"
POINT_IN_TIME = "P585"


def derive_sort_dates(
    start_date: str | None,
    end_date: str | None,
    point_in_time: str | None,
) -> tuple[str | None, str | None]:
    """Return ``(sort_date_start, sort_date_end)`` for the raw claim values."""
    return (start_date or point_in_time, end_date or point_in_time)


class ChronologyRecord(BaseModel, frozen=True):
    """Normalized chronology of one entity."""

    entity_id: str
    start_date: str | None = Field(default=None, description="ISO-partial start (P580).")
    end_date: str | None = Field(default=None, description="ISO-partial end (P582).")
    point_in_time: str | None = Field(default=None, description="ISO-partial point in time (P585).")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def sort_date_start(self) -> str | None:
        return derive_sort_dates(self.start_date, self.end_date, self.point_in_time)[0]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def sort_date_end(self) -> str | None:
        return derive_sort_dates(self.start_date, self.end_date, self.point_in_time)[1]

    @property
    def is_orderable(self) -> bool:
        return self.sort_date_start is not None

    @property
    def is_moment(self) -> bool:
        """True when the record collapses to a single date."""
        return self.is_orderable and self.sort_date_start == self.sort_date_end

    def chronological_key(self) -> tuple[int, int, int] | None:
        if self.sort_date_start is None:
            return None
        return sort_key(self.sort_date_start)


def _claim_time(claims: dict[str, Any], prop: str) -> str | None:
    """Return the time value of the first usable claim for ``prop``.

    Preferred-rank statements win over normal ones; deprecated statements and
    statements without a value (``novalue``/``somevalue``) are ignored.
    """
    statements = claims.get(prop) or []
    ranked = sorted(
        (s for s in statements if isinstance(s, dict) and s.get("rank") != "deprecated"),
        key=lambda s: 0 if s.get("rank") == "preferred" else 1,
    )
    for statement in ranked:
        value = (statement.get("mainsnak") or {}).get("datavalue", {}).get("value")
        if isinstance(value, dict) and value.get("time"):
            return value["time"]
    return None


def _normalize(entity_id: str, prop: str, raw: str | None) -> str | None:
    if raw is None:
        return None
    try:
        return iso_partial(raw)
    except UnresolvableDate:
        logger.warning(f"Skipping unresolvable {prop} value {raw!r} for {entity_id}")
        return None


def record_from_claims(entity_id: str, claims: dict[str, Any]) -> ChronologyRecord:
    """Build a `ChronologyRecord` from a Wikidata ``claims`` mapping."""
    return ChronologyRecord(
        entity_id=entity_id,
        start_date=_normalize(entity_id, START_TIME, _claim_time(claims, START_TIME)),
        end_date=_normalize(entity_id, END_TIME, _claim_time(claims, END_TIME)),
        point_in_time=_normalize(entity_id, POINT_IN_TIME, _claim_time(claims, POINT_IN_TIME)),
    )


def chronology_for_date_entity(entity: DateEntity) -> ChronologyRecord:
    """Derive a record for a date mention from the span of its ``when`` value.

    An unresolvable ``when`` yields an unorderable record.
    """
    try:
        start, end = date_entity_range(entity.when)
    except UnresolvableDate:
        logger.warning(f"Date entity {entity.identity!r} has unresolvable value {entity.when!r}")
        return ChronologyRecord(entity_id=entity.identity)
    if start == end:
        return ChronologyRecord(entity_id=entity.identity, point_in_time=start)
    return ChronologyRecord(entity_id=entity.identity, start_date=start, end_date=end)


def _batches(ids: Sequence[str], size: int) -> Iterable[Sequence[str]]:
    for start in range(0, len(ids), size):
        yield ids[start:start + size]


class EventDateResolver:
    """Resolves chronology for event entities from the knowledge service.

    Args:
        client: Resource client used for ``wbgetentities`` lookups.
        batch_size: Ids per call; defaults to the client's configured limit.
    """

    def __init__(self, client: ResourceClient, batch_size: int | None = None):
        self.client = client
        self.batch_size = min(batch_size or client.config.max_knowledge_batch, client.config.max_knowledge_batch)

    async def resolve_event_dates(self, event_entity_ids: Sequence[str]) -> dict[str, ChronologyRecord]:
        """Look up start, end and point-in-time claims for events.

        Ids are deduplicated and split into batches that respect the
        service's per-call limit; batches are fetched concurrently.

        Args:
            event_entity_ids: Knowledge-service ids of event entities.

        Returns:
            Records keyed by id. Ids unknown to the service have no record.

        Raises:
            FetchError: If any batch fails. No partial result is returned,
                since the batches share one timeline.
        """
        unique = list(dict.fromkeys(i for i in event_entity_ids if i))
        if not unique:
            return {}
        batches = list(_batches(unique, self.batch_size))
        logger.debug(f"Resolving {len(unique)} event dates in {len(batches)} batch(es)")

        try:
            async with asyncio.TaskGroup() as group:
                tasks = [group.create_task(self.client.fetch_knowledge(batch, props=("claims",))) for batch in batches]
        except ExceptionGroup as eg:
            if all(isinstance(e, FetchError) for e in eg.exceptions):
                logger.warning(f"Event date lookup failed for {len(eg.exceptions)} batch(es): {eg.exceptions[0]}")
                raise eg.exceptions[0] from eg
            raise

        records: dict[str, ChronologyRecord] = {}
        for task in tasks:
            for entity_id, data in task.result().items():
                if not isinstance(data, dict) or "missing" in data:
                    continue
                records[entity_id] = record_from_claims(entity_id, data.get("claims") or {})
        return records
