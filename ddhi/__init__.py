"""
DDHI viewer data layer - Entity Aggregation and Cross-Panel Synchronization.

Fetches oral-history transcripts and their entity data from a content
repository, cross-references mentioned entities across transcripts, orders
events chronologically using Wikidata claims, and keeps independent display
panels in sync through a shared attribute propagation bus.

    async with ResourceClient(load_config()) as client:
        viewer = Viewer(client)
        snapshot = await viewer.activate("123")
"""

from ddhi.aggregator import EntityAggregator, MultiDocumentStore
from ddhi.chronology import ChronologyRecord, EventDateResolver, derive_sort_dates
from ddhi.client import ResourceClient
from ddhi.config import LEGACY_WAR_TITLE_CORRECTION, DateCorrection, ViewerConfig, load_config
from ddhi.dates import DateNormalizer, DisplayDate, Granularity, iso_partial
from ddhi.document import Document
from ddhi.entity import (
    DateEntity,
    Entity,
    EntityType,
    EventEntity,
    OrganizationEntity,
    PersonEntity,
    PlaceEntity,
    parse_entity,
)
from ddhi.errors import BatchPartialFailure, DDHIError, FetchError, IdLimitExceeded, UnresolvableDate
from ddhi.mentions import MentionIndex, MentionIndexer, MentionRecord, SortIndex, SortKey
from ddhi.propagation import PanelInterface, PropagationBus, SelectionState, SubscriberGroup
from ddhi.viewer import NoData, Viewer, ViewerSnapshot

__all__ = [
    "ResourceClient",
    "ViewerConfig",
    "DateCorrection",
    "LEGACY_WAR_TITLE_CORRECTION",
    "load_config",
    "DateNormalizer",
    "DisplayDate",
    "Granularity",
    "iso_partial",
    "Document",
    "Entity",
    "EntityType",
    "EventEntity",
    "PersonEntity",
    "PlaceEntity",
    "OrganizationEntity",
    "DateEntity",
    "parse_entity",
    "EntityAggregator",
    "MultiDocumentStore",
    "MentionIndexer",
    "MentionIndex",
    "MentionRecord",
    "SortIndex",
    "SortKey",
    "ChronologyRecord",
    "EventDateResolver",
    "derive_sort_dates",
    "PanelInterface",
    "PropagationBus",
    "SelectionState",
    "SubscriberGroup",
    "Viewer",
    "ViewerSnapshot",
    "NoData",
    "DDHIError",
    "FetchError",
    "BatchPartialFailure",
    "UnresolvableDate",
    "IdLimitExceeded",
]

__version__ = "0.1.0"
