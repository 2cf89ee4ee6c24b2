"""Transcript documents and their display colors.

A `Document` is one interview transcript together with its entity slate,
as assembled by the aggregator from the repository's item endpoints. When
several transcripts are active at once each one is drawn in its own color;
the border shade is derived from that color.
"""

import hashlib
import random
import re
from typing import Iterator

from pydantic import BaseModel, ConfigDict, Field

from ddhi.entity import SUPPORTED_COLLECTIONS, Entity, EntityType

_TITLE_PREFIX = re.compile(r"^Transcript of an Interview with (an? )?", re.IGNORECASE)
_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


class Document(BaseModel):
    """One transcript with its entities, keyed in the store by ``id``.

    Attributes:
        id: Repository item id.
        title: Transcript title as published.
        transcript: Markup with embedded entity-reference markers.
        entities_by_type: Entities grouped by type, in listing order.
        display_color: Fill color for panels showing several transcripts.
        display_border_color: Border color, a darker shade of the fill.
    """

    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    id: str
    title: str = ""
    transcript: str = Field(default="", description="Transcript markup.")
    uri: str | None = None
    tei_uri: str | None = None
    entities_by_type: dict[EntityType, tuple[Entity, ...]] = Field(default_factory=dict)
    display_color: str = "#000000"
    display_border_color: str = "#000000"

    @property
    def narrator(self) -> str:
        return narrator_name(self.title)

    def entities(self, entity_type: EntityType | None = None) -> Iterator[Entity]:
        """Iterate entities in collection order, optionally of one type."""
        for collection in SUPPORTED_COLLECTIONS:
            current = EntityType.from_collection(collection)
            if entity_type is not None and current != entity_type:
                continue
            yield from self.entities_by_type.get(current, ())

    def entity_table(self) -> dict[str, Entity]:
        """Map each entity's identity to the entity; the first record wins."""
        table: dict[str, Entity] = {}
        for entity in self.entities():
            table.setdefault(entity.identity, entity)
        return table


def narrator_name(title: str) -> str:
    """Strip the boilerplate "Transcript of an Interview with (a)" prefix from a title."""
    return _TITLE_PREFIX.sub("", title).strip()


def random_color(rng: random.Random | None = None) -> str:
    """Return a random ``#rrggbb`` color."""
    value = (rng or random).randrange(0, 0xFFFFFF + 1)
    return f"#{value:06x}"


def hashed_color(document_id: str) -> str:
    """Return a ``#rrggbb`` color derived from the document id.

    The same id always yields the same color, in every session.
    """
    digest = hashlib.sha1(document_id.encode("utf-8")).hexdigest()
    return f"#{digest[:6]}"


def shade_color(color: str, percent: int = -25) -> str:
    """Lighten (positive) or darken (negative) a ``#rrggbb`` color by a percentage.

    Each channel is scaled and truncated to an integer, then clamped to 0..255.
    """
    if not _HEX_COLOR.match(color):
        raise ValueError(f"Expected a #rrggbb color, got {color!r}")
    channels = []
    for start in (1, 3, 5):
        value = int(int(color[start:start + 2], 16) * (100 + percent) / 100)
        channels.append(min(max(value, 0), 255))
    return "#" + "".join(f"{c:02x}" for c in channels)
