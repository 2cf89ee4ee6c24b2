"""Entity records for transcript cross-referencing.

Entities are the mentionable items of a transcript. They arrive from the
repository's associated-entities listings and are modeled as a tagged union
discriminated on ``resource_type``:

- **EventEntity**: something that happened; may carry chronology via Wikidata
- **PersonEntity**, **OrganizationEntity**: named agents
- **PlaceEntity**: the only variant with an optional ``location``
- **DateEntity**: a literal date mention (``when``); it may lack a stable id,
  in which case it is identified and deduplicated by ``when``

Entities are frozen snapshots; they are never modified after parsing.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class EntityType(str, Enum):
    """Entity type tag as it appears in ``resource_type``."""

    EVENT = "event"
    PERSON = "person"
    PLACE = "place"
    ORGANIZATION = "organization"
    DATE = "date"

    @property
    def collection(self) -> str:
        """Plural tag used by the repository's ``items/{id}/{type}`` endpoint."""
        return _COLLECTIONS[self]

    @classmethod
    def from_collection(cls, collection: str) -> "EntityType":
        for entity_type, name in _COLLECTIONS.items():
            if name == collection:
                return entity_type
        raise ValueError(f"Unknown entity collection {collection!r}")


_COLLECTIONS = {
    EntityType.EVENT: "events",
    EntityType.PERSON: "persons",
    EntityType.PLACE: "places",
    EntityType.ORGANIZATION: "organizations",
    EntityType.DATE: "dates",
}

SUPPORTED_COLLECTIONS: tuple[str, ...] = tuple(_COLLECTIONS.values())


class Location(BaseModel, frozen=True):
    lat: float
    lng: float


class BaseEntity(BaseModel):
    """Fields shared by every entity variant."""

    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)

    id: str = Field(description="Repository identifier, used by transcript reference markers.")
    title: str = Field(description="Display title.")
    qid: str | None = Field(default=None, description="Wikidata QID when the entity is linked.")
    uri: str | None = Field(default=None, description="Repository URI of the entity page.")

    @property
    def identity(self) -> str:
        """Key under which the entity is deduplicated."""
        return self.id

    @property
    def count_key(self) -> str:
        """Key under which mentions of the entity are counted."""
        return self.id

    @property
    def knowledge_id(self) -> str | None:
        """Wikidata id, or None when the entity is not linked to the knowledge service."""
        return self.qid


class EventEntity(BaseEntity):
    resource_type: Literal["event"] = "event"


class PersonEntity(BaseEntity):
    resource_type: Literal["person"] = "person"


class OrganizationEntity(BaseEntity):
    resource_type: Literal["organization"] = "organization"


class PlaceEntity(BaseEntity):
    resource_type: Literal["place"] = "place"
    location: Location | None = Field(default=None, description="Coordinates for the map panel.")


class DateEntity(BaseEntity):
    """A date mentioned in the transcript.

    ``when`` is ``YYYY``, ``YYYY-MM`` or ``YYYY-MM-DD``. Mentions are counted
    per ``when`` value, so two date records for the same day share a count.
    """

    resource_type: Literal["date"] = "date"
    id: str | None = None  # type: ignore[assignment]
    title: str | None = None  # type: ignore[assignment]
    when: str = Field(description="Literal date string as it appears in the markup.")

    @property
    def display_title(self) -> str:
        return self.title or self.when

    @property
    def identity(self) -> str:
        return self.id or self.when

    @property
    def count_key(self) -> str:
        return self.when


Entity = Annotated[
    Union[EventEntity, PersonEntity, OrganizationEntity, PlaceEntity, DateEntity],
    Field(discriminator="resource_type"),
]

_entity_adapter: TypeAdapter[Entity] = TypeAdapter(Entity)


def entity_title(entity: Entity) -> str:
    """Return the display title of any entity variant."""
    if isinstance(entity, DateEntity):
        return entity.display_title
    return entity.title


def parse_entity(data: dict[str, Any], default_type: EntityType | None = None) -> Entity:
    """Validate a raw entity record into its variant.

    Listing endpoints may omit ``resource_type``; ``default_type`` (usually
    derived from the endpoint) fills it in. A record with ``when`` and no
    title is always a date, matching how the repository emits date mentions.

    Raises:
        pydantic.ValidationError: If the record does not fit any variant.
    """
    record = dict(data)
    if not record.get("title") and record.get("when"):
        record["resource_type"] = EntityType.DATE.value
    elif not record.get("resource_type") and default_type is not None:
        record["resource_type"] = default_type.value
    return _entity_adapter.validate_python(record)
