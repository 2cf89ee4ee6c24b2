"""Tests for the root Viewer.

This module verifies:
- Activating transcripts yields a snapshot with indices and chronology
- Deactivation drops documents and reports NoData when nothing is active
- Nothing retrievable yields NoData rather than an empty snapshot
- Partial failures are reported alongside the usable documents
- Superseded refreshes are cancelled and never overwrite newer state
- Active id changes from other panels trigger refreshes
- Occurrence wrapping uses the current snapshot's mention counts
"""

import asyncio

import httpx

from ddhi.client import ResourceClient
from ddhi.config import DateCorrection, ViewerConfig
from ddhi.propagation import ACTIVE_ID, ENTITY_INDEX, AttributePanel, SubscriberGroup
from ddhi.viewer import NoData, Viewer, ViewerSnapshot


class TestActivation:
    """Tests for activate/deactivate/set_active_ids."""

    async def test_activate_builds_snapshot(self, client) -> None:
        viewer = Viewer(client)

        result = await viewer.activate("1")

        assert isinstance(result, ViewerSnapshot)
        assert [d.id for d in result.documents] == ["1"]
        assert result.indices["1"].occurrences("Q362") == 3
        assert result.chronology["Q362"].sort_date_start == "1939-09-01"
        assert result.failures == {}
        assert viewer.current is result

    async def test_activate_second_document(self, client) -> None:
        viewer = Viewer(client)
        await viewer.activate("1")

        result = await viewer.activate("2")

        assert viewer.active_ids == ("1", "2")
        assert [d.id for d in result.documents] == ["1", "2"]

    async def test_events_resolved_once_across_documents(self, client, services) -> None:
        viewer = Viewer(client)

        await viewer.set_active_ids(["1", "2"])

        ids = [r.url.params["ids"] for r in services.knowledge_requests()]
        assert ids == ["Q362|Q8683"]

    async def test_unlinked_events_not_sent_to_knowledge_service(self, client, services) -> None:
        """Events without a QID have no chronology and never reach wbgetentities."""
        services.entities[("1", "events")].append({"id": "118", "title": "Battle of the Bulge"})
        viewer = Viewer(client)

        result = await viewer.activate("1")

        ids = [r.url.params["ids"] for r in services.knowledge_requests()]
        assert ids == ["Q362|Q8683"]
        assert isinstance(result, ViewerSnapshot)
        assert set(result.chronology) == {"Q362", "Q8683"}
        assert "chronology" not in result.failures

    async def test_deactivate_one(self, client) -> None:
        viewer = Viewer(client)
        await viewer.set_active_ids(["1", "2"])

        result = await viewer.deactivate("1")

        assert [d.id for d in result.documents] == ["2"]
        assert viewer.store.ids() == ["2"]

    async def test_deactivate_all(self, client) -> None:
        viewer = Viewer(client)
        await viewer.activate("1")

        result = await viewer.deactivate()

        assert isinstance(result, NoData)
        assert viewer.active_ids == ()
        assert len(viewer.store) == 0

    async def test_initial_state_is_no_data(self, client) -> None:
        assert isinstance(Viewer(client).current, NoData)

    async def test_same_ids_do_not_refresh_again(self, client, services) -> None:
        viewer = Viewer(client)
        first = await viewer.activate("1")
        before = len(services.requests)

        again = await viewer.set_active_ids(["1"])

        assert again is first
        assert len(services.requests) == before

    async def test_active_ids_propagated_to_panels(self, client) -> None:
        viewer = Viewer(client)
        panel = AttributePanel()
        viewer.bus.register(panel, SubscriberGroup.INFO_PANEL)

        await viewer.set_active_ids(["1", "2"])

        assert panel.attributes[ACTIVE_ID] == "1,2"


class TestFailures:
    async def test_nothing_retrievable_is_no_data(self, client) -> None:
        viewer = Viewer(client)

        result = await viewer.activate("404")

        assert isinstance(result, NoData)
        assert "404" in result.failures

    async def test_partial_failure_reported(self, client, services) -> None:
        services.failures["/ddhi-api/items/2"] = 500
        viewer = Viewer(client)

        result = await viewer.set_active_ids(["1", "2"])

        assert isinstance(result, ViewerSnapshot)
        assert [d.id for d in result.documents] == ["1"]
        assert set(result.failures) == {"2"}

    async def test_chronology_failure_keeps_documents(self, client, services) -> None:
        services.failures["/w/api.php"] = 503
        viewer = Viewer(client)

        result = await viewer.activate("1")

        assert isinstance(result, ViewerSnapshot)
        assert result.chronology == {}
        assert "chronology" in result.failures


class TestSupersededRefresh:
    """Tests for generation tracking and cancellation."""

    async def test_newer_change_wins(self, services) -> None:
        """A slow refresh started first never replaces the result of a later one."""
        services.delays["/ddhi-api/items/1"] = 0.5
        config = ViewerConfig(repository_uri="http://repository.test", request_timeout=5.0)
        async with ResourceClient(config, transport=httpx.MockTransport(services.handler)) as client:
            viewer = Viewer(client)

            slow = asyncio.create_task(viewer.set_active_ids(["1"]))
            await asyncio.sleep(0)
            fast = await viewer.set_active_ids(["2"])
            slow_result = await slow

        assert slow_result is None
        assert isinstance(fast, ViewerSnapshot)
        assert [d.id for d in fast.documents] == ["2"]
        assert viewer.current is fast
        assert viewer.generation == 2

    async def test_external_panel_changes_active_ids(self, client) -> None:
        """A menu panel propagating ddhi-active-id makes the viewer refresh."""
        viewer = Viewer(client)

        viewer.bus.propagate(ACTIVE_ID, "2")
        await viewer._await_refresh()

        assert isinstance(viewer.current, ViewerSnapshot)
        assert [d.id for d in viewer.current.documents] == ["2"]


class TestViewerHelpers:
    async def test_occurrence_wrapping_uses_snapshot(self, client) -> None:
        viewer = Viewer(client)
        await viewer.activate("1")
        viewer.bus.select("Q362")

        viewer.bus.propagate(ENTITY_INDEX, 3)

        assert viewer.state.occurrence_index == 0

    async def test_occurrences_summed_across_documents(self, client) -> None:
        viewer = Viewer(client)
        await viewer.set_active_ids(["1", "2"])

        assert viewer.occurrences("Q362") == 4

    async def test_transcript_menu(self, client) -> None:
        options = await Viewer(client).transcripts()

        labels = {o.id: o.label for o in options}
        assert labels == {"1": "Narrator: Veteran", "2": "Narrator: Bob Jones"}

    async def test_timeline_and_markers(self, client) -> None:
        viewer = Viewer(client)
        await viewer.set_active_ids(["1", "2"])

        timeline = viewer.timeline("1")

        assert timeline is not None
        assert [r.entity_id for r in timeline.rows] == ["Q362", "Q362", "d1", "Q8683", "Q362"]
        assert {m.entity_id for m in viewer.markers()} == {"pl1", "pl3"}
        assert viewer.timeline("3") is None

    async def test_configured_corrections_reach_timeline(self, services) -> None:
        config = ViewerConfig(
            repository_uri="http://repository.test",
            date_corrections=(DateCorrection(offset_hours=24, entity_ids=("Q362",)),),
        )
        async with ResourceClient(config, transport=httpx.MockTransport(services.handler)) as client:
            viewer = Viewer(client)
            await viewer.activate("1")
            timeline = viewer.timeline("1")

        war = next(r for r in timeline.rows if r.entity_id == "Q362")
        assert war.start_text == "Sep 02 1939"
        assert war.start == "1939-09-02"

