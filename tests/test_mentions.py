"""Tests for mention indexing.

This module verifies:
- Reference extraction from span/date markers, data-entity-id before id
- Unknown references are skipped
- Running mention counts, and date mentions counted by ``when``
- Title, appearance and frequency indices and their orderings
- Frequency keeps one entry per entity at its maximum count
- Filtering by entity type and entity-sort wire names
- Indexing is deterministic
"""

import pytest

from ddhi.document import Document
from ddhi.entity import DateEntity, EntityType, PersonEntity
from ddhi.mentions import MentionIndexer, SortEntry, SortIndex, SortKey, extract_references


def _people_document(markup: str, *titles: tuple[str, str]) -> Document:
    return Document(
        id="doc",
        transcript=markup,
        entities_by_type={EntityType.PERSON: tuple(PersonEntity(id=i, title=t) for i, t in titles)},
    )


def _mentions(*ids: str) -> str:
    return "".join(f"<span data-entity-id='{i}'>{i}</span> " for i in ids)


class TestExtractReferences:
    """Tests for reading reference markers from markup."""

    def test_span_and_date_in_order(self) -> None:
        markup = "<span data-entity-id='a'>A</span><date id='d1' when='1944'>then</date><span id='b'>B</span>"

        assert extract_references(markup) == ["a", "d1", "b"]

    def test_data_entity_id_wins_over_id(self) -> None:
        assert extract_references("<span id='elem' data-entity-id='Q1'>x</span>") == ["Q1"]

    def test_other_tags_ignored(self) -> None:
        assert extract_references("<p id='para'><a id='link'>x</a></p>") == []

    def test_markers_without_ids_ignored(self) -> None:
        assert extract_references("<span class='pause'>...</span>") == []

    def test_empty_markup(self) -> None:
        assert extract_references("") == []


class TestMentionIndexer:
    """Tests for indexing the sample veteran transcript."""

    def test_records_follow_resolved_mentions(self, veteran_document) -> None:
        index = MentionIndexer().index(veteran_document)

        assert index.ordered_entity_ids == ["Q362", "p1", "Q362", "d1", "Q8683", "Q362", "pl1"]
        assert [r.position for r in index.records] == [1, 2, 3, 4, 5, 6, 7]

    def test_unknown_reference_skipped(self, veteran_document) -> None:
        index = MentionIndexer().index(veteran_document)

        assert "unlinked" not in index.distinct_entity_ids
        # Paris follows the unlinked reference but keeps the next resolved position.
        assert index.summary("pl1").appearance == 7

    def test_running_counts(self, veteran_document) -> None:
        index = MentionIndexer().index(veteran_document)

        war = [r for r in index.records if r.entity_id == "Q362"]
        assert [r.mention_count for r in war] == [1, 2, 3]
        assert {r.appearance for r in war} == {1}

    def test_mention_counts_and_occurrences(self, veteran_document) -> None:
        index = MentionIndexer().index(veteran_document)

        assert index.mention_counts == {"Q362": 3, "p1": 1, "d1": 1, "Q8683": 1, "pl1": 1}
        assert index.occurrences("Q362") == 3
        assert index.occurrences("unlinked") == 0
        assert index.positions("Q362") == [1, 3, 6]

    def test_summary_is_last_mention(self, veteran_document) -> None:
        summary = MentionIndexer().index(veteran_document).summary("Q362")

        assert summary is not None
        assert summary.mention_count == 3
        assert summary.position == 6

    def test_title_index_alphabetic(self, veteran_document) -> None:
        """Date mentions without a title sort under their ``when`` value."""
        index = MentionIndexer().index(veteran_document)

        assert index.sort_indices[SortKey.TITLE].entity_ids() == ["d1", "p1", "Q8683", "pl1", "Q362"]

    def test_appearance_index_padded(self, veteran_document) -> None:
        index = MentionIndexer().index(veteran_document)
        appearance = index.sort_indices[SortKey.APPEARANCE]

        assert [e.key for e in appearance] == ["0001", "0002", "0004", "0005", "0007"]
        assert appearance.entity_ids() == ["Q362", "p1", "d1", "Q8683", "pl1"]

    def test_frequency_index(self, veteran_document) -> None:
        index = MentionIndexer().index(veteran_document)
        frequency = index.sort_indices[SortKey.FREQUENCY]

        assert frequency.entity_ids() == ["Q362", "p1", "d1", "Q8683", "pl1"]
        assert [e.key for e in frequency] == [3, 1, 1, 1, 1]

    @pytest.mark.parametrize(
        "sort,expected",
        [
            ("data-title", ["d1", "p1", "Q8683", "pl1", "Q362"]),
            ("data-appearance", ["Q362", "p1", "d1", "Q8683", "pl1"]),
            ("data-mention", ["Q362", "p1", "d1", "Q8683", "pl1"]),
            (SortKey.TITLE, ["d1", "p1", "Q8683", "pl1", "Q362"]),
        ],
    )
    def test_ordered_by_wire_name(self, veteran_document, sort, expected) -> None:
        index = MentionIndexer().index(veteran_document)

        assert [r.entity_id for r in index.ordered(sort)] == expected

    def test_ordered_filters_by_type(self, veteran_document) -> None:
        index = MentionIndexer().index(veteran_document)

        assert [r.entity_id for r in index.ordered("data-mention", entity_filter="event")] == ["Q362", "Q8683"]
        assert [r.entity_id for r in index.ordered("data-title", entity_filter="person")] == ["p1"]

    def test_ordered_unknown_sort_rejected(self, veteran_document) -> None:
        index = MentionIndexer().index(veteran_document)

        with pytest.raises(ValueError):
            index.ordered("data-colour")

    def test_indexing_is_deterministic(self, veteran_document) -> None:
        first = MentionIndexer().index(veteran_document)
        second = MentionIndexer().index(veteran_document)

        assert first.records == second.records
        for key in SortKey:
            assert list(first.sort_indices[key]) == list(second.sort_indices[key])

    def test_explicit_markup_overrides_transcript(self, veteran_document) -> None:
        index = MentionIndexer().index(veteran_document, markup=_mentions("p1"))

        assert index.ordered_entity_ids == ["p1"]


class TestFrequencyScenarios:
    """Tests for frequency ordering and ties."""

    def test_three_mentions_then_singletons(self) -> None:
        """A mentioned three times, then B and C once: A first, B and C in walk order."""
        document = _people_document(_mentions("A", "B", "A", "C", "A"), ("A", "Ann"), ("B", "Ben"), ("C", "Cy"))

        index = MentionIndexer().index(document)
        frequency = index.sort_indices[SortKey.FREQUENCY]

        assert [(e.entity_id, e.key) for e in frequency] == [("A", 3), ("B", 1), ("C", 1)]

    def test_one_frequency_entry_per_entity(self) -> None:
        document = _people_document(_mentions("A", "A", "B", "B", "B", "A", "A"), ("A", "Ann"), ("B", "Ben"))

        frequency = MentionIndexer().index(document).sort_indices[SortKey.FREQUENCY]

        assert [(e.entity_id, e.key) for e in frequency] == [("A", 4), ("B", 3)]

    def test_title_dedupe_keeps_first(self) -> None:
        document = _people_document(_mentions("A", "B"), ("A", "Smith"), ("B", "Smith"))

        title = MentionIndexer().index(document).sort_indices[SortKey.TITLE]

        assert title.entity_ids() == ["A"]


class TestDateMentions:
    def test_dates_counted_by_when(self) -> None:
        """Two date records for the same ``when`` share one running count."""
        document = Document(
            id="doc",
            transcript="<date id='d1' when='1944'>that year</date> <date id='d2' when='1944'>then</date>",
            entities_by_type={EntityType.DATE: (DateEntity(id="d1", when="1944"), DateEntity(id="d2", when="1944"))},
        )

        index = MentionIndexer().index(document)

        assert [r.mention_count for r in index.records] == [1, 2]
        assert index.mention_counts == {"d1": 2, "d2": 2}


class TestSortIndex:
    def test_add_unique_rejects_duplicate_key(self) -> None:
        index = SortIndex(SortKey.TITLE)

        assert index.add_unique(SortEntry(key="x", entity_id="a"))
        assert not index.add_unique(SortEntry(key="x", entity_id="b"))
        assert len(index) == 1

    def test_add_max_ignores_lower_key(self) -> None:
        index = SortIndex(SortKey.FREQUENCY)
        index.add_max(SortEntry(key=3, entity_id="a"))
        index.add_max(SortEntry(key=2, entity_id="a"))

        assert [e.key for e in index] == [3]

    def test_sort_is_case_insensitive(self) -> None:
        index = SortIndex(SortKey.TITLE)
        for title in ("banana", "Apple", "cherry"):
            index.add_unique(SortEntry(key=title, entity_id=title))
        index.sort()

        assert index.entity_ids() == ["Apple", "banana", "cherry"]
