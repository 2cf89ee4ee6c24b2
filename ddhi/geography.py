"""Map markers for place entities.

Each active transcript's places that carry coordinates become one
`PlaceMarker`, drawn in the transcript's color with its border shade. The
mapping library is external; activating a marker goes through the
propagation bus like any other panel interaction.
"""

from typing import Iterable, Iterator

from pydantic import BaseModel

from ddhi.document import Document
from ddhi.entity import EntityType, PlaceEntity
from ddhi.propagation import SELECTED_ENTITY, PropagationBus, SelectionSnapshot


class PlaceMarker(BaseModel, frozen=True):
    entity_id: str
    title: str
    lat: float
    lng: float
    document_id: str
    color: str
    border_color: str

    @property
    def border(self) -> str:
        """CSS border shorthand for the marker icon."""
        return f"1px {self.border_color} solid"


def place_markers(documents: Iterable[Document]) -> Iterator[PlaceMarker]:
    """Yield a marker per place with a location, document by document.

    Accepts a `MultiDocumentStore` or any iterable of documents.
    """
    for document in documents:
        for entity in document.entities(EntityType.PLACE):
            if not isinstance(entity, PlaceEntity) or entity.location is None:
                continue
            yield PlaceMarker(
                entity_id=entity.id,
                title=entity.title,
                lat=entity.location.lat,
                lng=entity.location.lng,
                document_id=document.id,
                color=document.display_color,
                border_color=document.display_border_color,
            )


def activate_marker(bus: PropagationBus, marker: PlaceMarker) -> SelectionSnapshot:
    """Select the marker's place. Selection starts at the first mention."""
    return bus.propagate(SELECTED_ENTITY, marker.entity_id).state
