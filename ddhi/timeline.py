"""Timeline rows for the narrative and chronological charts.

The charting library is external; this module only prepares its data. Every
mention of an event or date entity becomes a `TimelineRow`, in the order the
narrator mentions them. Events get their span from the knowledge-service
chronology, date mentions from their ``when`` value.

Rows whose start and end coincide are drawn as moments, the rest as ranges.
Date mentions are always ranges (a day spans itself). Events without any
chronology are kept apart as ``undated``; they appear in the narrative
export but never in chronological order.
"""

import csv
import io
from typing import Mapping

from pydantic import BaseModel, Field

from ddhi.chronology import ChronologyRecord, chronology_for_date_entity
from ddhi.dates import DateNormalizer, date_entity_label, sort_key
from ddhi.document import Document
from ddhi.entity import DateEntity, EntityType
from ddhi.mentions import MentionIndex

LABEL_MAX_LENGTH = 35
LABEL_TRUNCATED_LENGTH = 30
CSV_HEADER = ("appearance", "name", "start", "end")


def timeline_label(title: str) -> str:
    """Capitalize the first letter; titles over 35 characters keep 30 plus ``...``."""
    label = title[:1].upper() + title[1:]
    if len(label) > LABEL_MAX_LENGTH:
        return label[:LABEL_TRUNCATED_LENGTH] + "..."
    return label


class TimelineRow(BaseModel, frozen=True):
    """One mention on the timeline.

    ``start``/``end`` are ISO-partial strings used for placement;
    ``start_text``/``end_text`` are their display forms.
    """

    name: str
    entity_id: str
    resource_type: EntityType
    appearance: int = Field(description="1-based position of the mention in the transcript.")
    start: str | None = None
    end: str | None = None
    start_text: str | None = None
    end_text: str | None = None
    color: str = "#000000"

    @property
    def is_dated(self) -> bool:
        return self.start is not None

    @property
    def is_moment(self) -> bool:
        return self.is_dated and self.resource_type != EntityType.DATE and self.start == self.end


class Timeline(BaseModel, frozen=True):
    document_id: str
    rows: tuple[TimelineRow, ...] = ()

    @property
    def ranges(self) -> list[TimelineRow]:
        return [r for r in self.rows if r.is_dated and not r.is_moment]

    @property
    def moments(self) -> list[TimelineRow]:
        return [r for r in self.rows if r.is_moment]

    @property
    def undated(self) -> list[TimelineRow]:
        return [r for r in self.rows if not r.is_dated]

    def chronological(self) -> list[TimelineRow]:
        """One row per dated entity, ordered by start then end; ties keep narrative order."""
        seen: dict[str, TimelineRow] = {}
        for row in self.rows:
            if row.is_dated and row.entity_id not in seen:
                seen[row.entity_id] = row
        return sorted(seen.values(), key=lambda r: (sort_key(r.start), sort_key(r.end or r.start)))  # type: ignore[arg-type]


def _event_span(
    name: str,
    entity_id: str,
    record: ChronologyRecord | None,
    normalizer: DateNormalizer,
) -> dict[str, str | None]:
    if record is None or not record.is_orderable:
        return {}
    start = normalizer.parse(record.sort_date_start, entity_title=name, entity_id=entity_id)  # type: ignore[arg-type]
    end = normalizer.parse(record.sort_date_end or record.sort_date_start, entity_title=name, entity_id=entity_id)  # type: ignore[arg-type]
    return {"start": start.iso, "end": end.iso, "start_text": start.text, "end_text": end.text}


def build_timeline(
    index: MentionIndex,
    chronology: Mapping[str, ChronologyRecord],
    document: Document,
    normalizer: DateNormalizer | None = None,
) -> Timeline:
    """Build timeline rows for a document's event and date mentions.

    Args:
        index: The document's mention index.
        chronology: Event chronology keyed by knowledge id.
        document: The document, for its entity table and color.
        normalizer: Formats event dates and applies date corrections.
    """
    normalizer = normalizer or DateNormalizer()
    rows: list[TimelineRow] = []
    for record in index.records:
        if record.resource_type not in (EntityType.EVENT, EntityType.DATE):
            continue
        entity = index.entities[record.entity_id]
        if isinstance(entity, DateEntity):
            name = date_entity_label(entity.when)
            dated = chronology_for_date_entity(entity)
            span = (
                {"start": dated.sort_date_start, "end": dated.sort_date_end, "start_text": name, "end_text": name}
                if dated.is_orderable
                else {}
            )
        else:
            name = timeline_label(record.title)
            event_record = chronology.get(entity.knowledge_id) if entity.knowledge_id else None
            span = _event_span(record.title, entity.id, event_record, normalizer)
        rows.append(
            TimelineRow(
                name=name,
                entity_id=record.entity_id,
                resource_type=record.resource_type,
                appearance=record.position,
                color=document.display_color,
                **span,
            )
        )
    return Timeline(document_id=document.id, rows=tuple(rows))


def narrative_csv(timeline: Timeline) -> str:
    """Export rows in narrative order as ``appearance,name,start,end`` CSV."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for row in timeline.rows:
        writer.writerow((row.appearance, row.name, row.start or "", row.end or ""))
    return buffer.getvalue()
