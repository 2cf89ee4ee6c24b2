"""Attribute propagation between independent viewer panels.

Panels never hold references to one another. When a panel wants to change
what the others show it calls `PropagationBus.propagate()` (or `clear()`),
and the bus broadcasts one typed message to every registered subscriber,
group by group, in a fixed order:

    1. visualization panels
    2. information panels
    3. elements that opted into propagation
    4. the root viewer

There is no topic filtering, priority or acknowledgment. A subscriber may
receive a message that does not concern it, and may receive the same
message more than once if it registered in several groups, so handling must
be idempotent.

Selection state machine::

    Unselected --propagate('selected-entity', id)--> Selected(id, 0)
    Selected(id, i) --propagate('data-entity-index', j)--> Selected(id, j mod n)
    Selected --clear('selected-entity')--> Unselected

``n`` is the entity's known occurrence count; when unknown, the index is
stored as given. An index message while unselected is still broadcast but
the state stays unselected.
"""

from abc import ABC, abstractmethod
from enum import Enum
from itertools import count
from typing import Annotated, Callable, Iterable, Literal, Union

from pydantic import BaseModel, Field

from ddhi.logging import setup_logging

logger = setup_logging()

SELECTED_ENTITY = "selected-entity"
ENTITY_INDEX = "data-entity-index"
ACTIVE_ID = "ddhi-active-id"
ENTITY_SORT = "entity-sort"
ENTITY_FILTER = "entity-filter"
VIZ_TYPE = "viz-type"

OccurrenceCounter = Callable[[str], int | None]


class SubscriberGroup(str, Enum):
    VISUALIZATION = "visualization"
    INFO_PANEL = "info_panel"
    PROPAGATE = "propagate"
    VIEWER = "viewer"


BROADCAST_ORDER = (
    SubscriberGroup.VISUALIZATION,
    SubscriberGroup.INFO_PANEL,
    SubscriberGroup.PROPAGATE,
    SubscriberGroup.VIEWER,
)


class SelectionSnapshot(BaseModel, frozen=True):
    """Immutable view of the selection state at the time of a message."""

    version: int
    selected_entity: str | None = None
    occurrence_index: int = 0
    active_ids: tuple[str, ...] = ()

    @property
    def is_selected(self) -> bool:
        return self.selected_entity is not None


class SelectionState:
    """Shared selection state, owned by the root viewer.

    Every change increments ``version``. Only `PropagationBus` mutates it.
    """

    def __init__(self, active_ids: Iterable[str] = ()):
        self.version = 0
        self.selected_entity: str | None = None
        self.occurrence_index = 0
        self.active_ids: tuple[str, ...] = tuple(active_ids)

    @property
    def is_selected(self) -> bool:
        return self.selected_entity is not None

    def snapshot(self) -> SelectionSnapshot:
        return SelectionSnapshot(
            version=self.version,
            selected_entity=self.selected_entity,
            occurrence_index=self.occurrence_index,
            active_ids=self.active_ids,
        )

    def _bump(self) -> None:
        self.version += 1


class _Message(BaseModel, frozen=True):
    attribute: str
    state: SelectionSnapshot


class SelectionChanged(_Message):
    kind: Literal["selection_changed"] = "selection_changed"
    value: str


class IndexChanged(_Message):
    kind: Literal["index_changed"] = "index_changed"
    value: int = Field(description="Occurrence index as stored, after wrapping.")


class ActiveIdsChanged(_Message):
    kind: Literal["active_ids_changed"] = "active_ids_changed"
    value: tuple[str, ...]


class AttributeChanged(_Message):
    """A display-only attribute such as ``entity-sort`` or ``viz-type``."""

    kind: Literal["attribute_changed"] = "attribute_changed"
    value: str


class AttributeCleared(_Message):
    kind: Literal["attribute_cleared"] = "attribute_cleared"


Message = Annotated[
    Union[SelectionChanged, IndexChanged, ActiveIdsChanged, AttributeChanged, AttributeCleared],
    Field(discriminator="kind"),
]


def parse_active_ids(value: str | Iterable[str] | None) -> tuple[str, ...]:
    """Split a comma-separated ``ddhi-active-id`` value into ids."""
    if value is None:
        return ()
    items = value.split(",") if isinstance(value, str) else value
    return tuple(dict.fromkeys(i.strip() for i in items if i and i.strip()))


class PanelInterface(ABC):
    """A display component that observes propagated attributes."""

    @abstractmethod
    def receive(self, message: Message) -> None:
        """Handle one broadcast message. Must be idempotent."""


class AttributePanel(PanelInterface):
    """A panel that mirrors propagated attributes into a plain mapping.

    Useful as a base for panels that only need the current attribute values.
    """

    def __init__(self) -> None:
        self.attributes: dict[str, str] = {}
        self.last_state: SelectionSnapshot | None = None

    def receive(self, message: Message) -> None:
        if isinstance(message, AttributeCleared):
            self.attributes.pop(message.attribute, None)
        elif isinstance(message, ActiveIdsChanged):
            self.attributes[message.attribute] = ",".join(message.value)
        else:
            self.attributes[message.attribute] = str(message.value)
        self.last_state = message.state


class SubscriptionHandle(BaseModel, frozen=True):
    token: int
    group: SubscriberGroup


class PropagationBus:
    """Broadcasts attribute changes to registered panels.

    Args:
        root: The root viewer; always receives messages last.
        state: Selection state shared with the root viewer.
        occurrence_counter: Returns the number of mentions of an entity, or
            ``None``/``0`` when unknown. Used to wrap occurrence indices.
    """

    def __init__(
        self,
        root: PanelInterface,
        state: SelectionState | None = None,
        occurrence_counter: OccurrenceCounter | None = None,
    ):
        self.root = root
        self.state = state if state is not None else SelectionState()
        self.occurrence_counter = occurrence_counter
        self._tokens = count(1)
        self._subscribers: dict[SubscriberGroup, dict[int, PanelInterface]] = {
            group: {} for group in BROADCAST_ORDER if group != SubscriberGroup.VIEWER
        }

    def register(self, panel: PanelInterface, group: SubscriberGroup) -> SubscriptionHandle:
        """Subscribe a panel to one group. Returns the handle used to unsubscribe."""
        if group == SubscriberGroup.VIEWER:
            raise ValueError("The viewer group holds only the root viewer")
        handle = SubscriptionHandle(token=next(self._tokens), group=group)
        self._subscribers[group][handle.token] = panel
        return handle

    def unregister(self, handle: SubscriptionHandle) -> bool:
        """Remove a subscription. Returns False if it was already removed."""
        return self._subscribers[handle.group].pop(handle.token, None) is not None

    def subscribers(self) -> list[PanelInterface]:
        """Receivers in broadcast order, root last."""
        panels: list[PanelInterface] = []
        for group in BROADCAST_ORDER:
            if group == SubscriberGroup.VIEWER:
                panels.append(self.root)
            else:
                panels.extend(self._subscribers[group].values())
        return panels

    def _broadcast(self, message: Message) -> None:
        logger.debug(f"Propagating {message.kind} {message.attribute}={getattr(message, 'value', None)!r}")
        for panel in self.subscribers():
            panel.receive(message)

    def _wrap(self, entity_id: str | None, index: int) -> int:
        """Wrap modulo the known mention count; without one, clamp at 0."""
        occurrences = self.occurrence_counter(entity_id) if self.occurrence_counter and entity_id else None
        if not occurrences:
            return max(index, 0)
        return index % occurrences

    def propagate(self, attribute_name: str, value: str | int | Iterable[str]) -> Message:
        """Update the selection state if the attribute is a selection attribute, then broadcast.

        Returns:
            The message that was broadcast.

        Raises:
            ValueError: If ``data-entity-index`` is not an integer.
        """
        state = self.state
        message: Message
        if attribute_name == SELECTED_ENTITY:
            entity_id = str(value)
            state.selected_entity = entity_id
            state.occurrence_index = 0
            state._bump()
            message = SelectionChanged(attribute=attribute_name, value=entity_id, state=state.snapshot())
        elif attribute_name == ENTITY_INDEX:
            index = self._wrap(state.selected_entity, int(value))  # type: ignore[arg-type]
            if state.selected_entity is not None:
                state.occurrence_index = index
                state._bump()
            message = IndexChanged(attribute=attribute_name, value=index, state=state.snapshot())
        elif attribute_name == ACTIVE_ID:
            state.active_ids = parse_active_ids(value)  # type: ignore[arg-type]
            state._bump()
            message = ActiveIdsChanged(attribute=attribute_name, value=state.active_ids, state=state.snapshot())
        else:
            message = AttributeChanged(attribute=attribute_name, value=str(value), state=state.snapshot())
        self._broadcast(message)
        return message

    def clear(self, attribute_name: str) -> Message:
        """Remove an attribute from every subscriber and broadcast the removal."""
        state = self.state
        if attribute_name == SELECTED_ENTITY and state.selected_entity is not None:
            state.selected_entity = None
            state.occurrence_index = 0
            state._bump()
        elif attribute_name == ENTITY_INDEX and state.occurrence_index:
            state.occurrence_index = 0
            state._bump()
        elif attribute_name == ACTIVE_ID and state.active_ids:
            state.active_ids = ()
            state._bump()
        message = AttributeCleared(attribute=attribute_name, state=state.snapshot())
        self._broadcast(message)
        return message

    def select(self, entity_id: str, occurrence_index: int = 0) -> SelectionSnapshot:
        """Select an entity and jump to one of its mentions."""
        self.propagate(SELECTED_ENTITY, entity_id)
        if occurrence_index:
            self.propagate(ENTITY_INDEX, occurrence_index)
        return self.state.snapshot()

    def step(self, delta: int = 1) -> SelectionSnapshot | None:
        """Move to the next (``+1``) or previous (``-1``) mention, wrapping around.

        Returns ``None`` without broadcasting when nothing is selected.
        """
        if self.state.selected_entity is None:
            return None
        self.propagate(ENTITY_INDEX, self.state.occurrence_index + delta)
        return self.state.snapshot()
