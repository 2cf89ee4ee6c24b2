"""Mention indexing over transcript markup.

A transcript's markup embeds a reference marker for every entity mention,
e.g. ``<span data-entity-id="Q362">World War II</span>`` or
``<date id="d12" when="1944-06">June of '44</date>``. The `MentionIndexer`
walks those markers in document order, cross-references them with the
document's entity table, and derives:

    - the order of mention (first and repeated appearances)
    - per-entity mention counts
    - three sort indices over the mentioned entities:

      * **title**: alphabetic, one entry per distinct title (first wins)
      * **appearance**: by the position at which the entity was first seen,
        zero-padded so that lexical order is numeric order
      * **frequency**: by mention count, highest first; each entity keeps
        only the entry holding its maximum count

References that do not resolve to an entity of the document are skipped;
raw transcripts legitimately contain markers without structured data.

Example:
    ```python
    index = MentionIndexer().index(document)
    for record in index.ordered("data-mention", entity_filter="person"):
        print(record.title, record.mention_count)
    ```
"""

from enum import Enum
from html.parser import HTMLParser
from typing import Iterator

from pydantic import BaseModel, Field

from ddhi.document import Document
from ddhi.entity import Entity, EntityType, entity_title
from ddhi.logging import setup_logging

logger = setup_logging()

APPEARANCE_PAD_WIDTH = 4
REFERENCE_TAGS = frozenset({"span", "date"})
ALL_ENTITIES = "all"


class SortKey(str, Enum):
    """Named sort orders over mentioned entities."""

    TITLE = "title"
    APPEARANCE = "appearance"
    FREQUENCY = "frequency"

    @classmethod
    def parse(cls, value: "str | SortKey") -> "SortKey":
        """Accept enum values and the ``entity-sort`` wire names
        (``data-title``, ``data-appearance``, ``data-mention``)."""
        if isinstance(value, SortKey):
            return value
        aliases = {"data-title": cls.TITLE, "data-appearance": cls.APPEARANCE, "data-mention": cls.FREQUENCY}
        if value in aliases:
            return aliases[value]
        return cls(value)


class SortEntry(BaseModel, frozen=True):
    key: str | int
    entity_id: str


class SortIndex:
    """An ordered sequence of ``(key, entity_id)`` entries under one sort key."""

    def __init__(self, name: SortKey):
        self.name = name
        self.entries: list[SortEntry] = []
        self._keys: set[str | int] = set()
        self._positions: dict[str, int] = {}

    def add_unique(self, entry: SortEntry) -> bool:
        """Append unless an entry with the same key exists. Returns True if added."""
        if entry.key in self._keys:
            return False
        self._keys.add(entry.key)
        self.entries.append(entry)
        return True

    def add_max(self, entry: SortEntry) -> None:
        """Keep one entry per entity id, holding the highest key seen.

        A higher key replaces the entity's entry in place rather than appending,
        so ties keep the order in which entities were first registered.
        """
        position = self._positions.get(entry.entity_id)
        if position is None:
            self._positions[entry.entity_id] = len(self.entries)
            self.entries.append(entry)
        elif entry.key > self.entries[position].key:  # type: ignore[operator]
            self.entries[position] = entry

    def sort(self, descending: bool = False) -> None:
        def ordering(entry: SortEntry) -> tuple:
            if isinstance(entry.key, str):
                return (entry.key.casefold(), entry.key)
            return (entry.key,)

        self.entries.sort(key=ordering, reverse=descending)
        self._positions = {e.entity_id: i for i, e in enumerate(self.entries)}

    def entity_ids(self) -> list[str]:
        return [entry.entity_id for entry in self.entries]

    def __iter__(self) -> Iterator[SortEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


class MentionRecord(BaseModel, frozen=True):
    """Display record for one mention of an entity.

    Attributes:
        entity_id: Identity of the entity (``when`` for date entities without an id).
        title: Display title.
        resource_type: Entity type.
        appearance: 1-based position at which the entity was first mentioned.
            Positions count resolved mentions only; a reference without
            entity data does not take up a position.
        position: 1-based position of this particular mention, on the same
            scale as ``appearance``.
        mention_count: Mentions of the entity up to and including this one.
    """

    entity_id: str
    title: str
    resource_type: EntityType
    appearance: int = Field(ge=1)
    position: int = Field(ge=1)
    mention_count: int = Field(ge=1)


class _ReferenceCollector(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.references: list[str] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag.lower() not in REFERENCE_TAGS:
            return
        values = dict(attrs)
        reference = values.get("data-entity-id") or values.get("id")
        if reference:
            self.references.append(reference)

    handle_startendtag = handle_starttag


def extract_references(markup: str) -> list[str]:
    """Return entity reference ids in document order.

    Reference markers are ``span`` and ``date`` elements; the explicit
    ``data-entity-id`` attribute wins over the element ``id``.
    """
    collector = _ReferenceCollector()
    collector.feed(markup or "")
    collector.close()
    return collector.references


class MentionIndex:
    """Result of indexing one document's mentions.

    The entity table is the document's own mapping; records reference
    entities by identity and never copy them.
    """

    def __init__(
        self,
        document_id: str,
        entities: dict[str, Entity],
        records: list[MentionRecord],
        sort_indices: dict[SortKey, SortIndex],
        mention_counts: dict[str, int],
    ):
        self.document_id = document_id
        self.entities = entities
        self.records = tuple(records)
        self.sort_indices = sort_indices
        self.mention_counts = mention_counts
        self._latest: dict[str, MentionRecord] = {}
        self._occurrences: dict[str, int] = {}
        for record in records:
            self._latest[record.entity_id] = record
            self._occurrences[record.entity_id] = self._occurrences.get(record.entity_id, 0) + 1

    @property
    def ordered_entity_ids(self) -> list[str]:
        """Resolved entity ids in order of mention, repeats included."""
        return [record.entity_id for record in self.records]

    @property
    def distinct_entity_ids(self) -> list[str]:
        """Mentioned entity ids in order of first mention."""
        return list(self._occurrences)

    def summary(self, entity_id: str) -> MentionRecord | None:
        """The entity's last record, which carries its final mention count."""
        return self._latest.get(entity_id)

    def occurrences(self, entity_id: str) -> int:
        """Number of mentions of ``entity_id`` in the transcript."""
        return self._occurrences.get(entity_id, 0)

    def positions(self, entity_id: str) -> list[int]:
        """1-based positions of every mention of ``entity_id``."""
        return [r.position for r in self.records if r.entity_id == entity_id]

    def ordered(self, sort: "str | SortKey" = SortKey.APPEARANCE, entity_filter: str = ALL_ENTITIES) -> list[MentionRecord]:
        """Summaries in the order of a sort index, filtered by entity type.

        Args:
            sort: Sort key or ``entity-sort`` wire value.
            entity_filter: ``"all"`` or an entity type value (``entity-filter``).
        """
        index = self.sort_indices.get(SortKey.parse(sort))
        if index is None:
            return []
        wanted = None if entity_filter in (ALL_ENTITIES, "", None) else EntityType(entity_filter)
        out: list[MentionRecord] = []
        for entry in index:
            record = self._latest.get(entry.entity_id)
            if record is None:
                continue
            if wanted is not None and record.resource_type != wanted:
                continue
            out.append(record)
        return out


class MentionIndexer:
    """Builds a `MentionIndex` from a document and its transcript markup."""

    def index(self, document: Document, markup: str | None = None) -> MentionIndex:
        """Walk the markup in order and index every resolvable mention.

        Args:
            document: The document whose entity table resolves references.
            markup: Transcript markup; defaults to ``document.transcript``.

        Returns:
            A `MentionIndex` with records, counts and sorted indices. The
            result depends only on the inputs, so indexing the same markup
            twice yields identical output.
        """
        table = document.entity_table()
        references = extract_references(document.transcript if markup is None else markup)
        width = max(APPEARANCE_PAD_WIDTH, len(str(len(references))))

        counts: dict[str, int] = {}
        first_seen: dict[str, int] = {}
        records: list[MentionRecord] = []
        indices = {key: SortIndex(key) for key in SortKey}
        skipped = 0

        for reference in references:
            entity = table.get(reference)
            if entity is None:
                skipped += 1
                continue

            count_key = entity.count_key
            counts[count_key] = counts.get(count_key, 0) + 1
            position = len(records) + 1
            appearance = first_seen.setdefault(entity.identity, position)

            record = MentionRecord(
                entity_id=entity.identity,
                title=entity_title(entity),
                resource_type=EntityType(entity.resource_type),
                appearance=appearance,
                position=position,
                mention_count=counts[count_key],
            )
            records.append(record)

            indices[SortKey.TITLE].add_unique(SortEntry(key=record.title, entity_id=record.entity_id))
            indices[SortKey.APPEARANCE].add_unique(
                SortEntry(key=str(appearance).zfill(width), entity_id=record.entity_id)
            )
            indices[SortKey.FREQUENCY].add_max(SortEntry(key=record.mention_count, entity_id=record.entity_id))

        for key, index in indices.items():
            index.sort(descending=key == SortKey.FREQUENCY)

        mention_counts = {identity: counts[table[identity].count_key] for identity in first_seen}
        if skipped:
            logger.debug(f"Document {document.id}: skipped {skipped} references without entity data")
        return MentionIndex(document.id, table, records, indices, mention_counts)
