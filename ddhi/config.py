"""Viewer configuration.

Configuration is read from a TOML file (``ddhi.toml``). The file is looked up
in order:

  1. Path in the ``DDHI_CONFIG`` env var (if set)
  2. ``ddhi.toml`` in the current working directory

If no file is found, built-in defaults are used. ``DDHI_REPOSITORY``
overrides the repository URI and ``DDHI_LOG_LEVEL`` the log level, regardless
of where the rest came from. The resulting ``log_level`` is applied to every
``ddhi`` logger.

Example ``ddhi.toml``::

    repository_uri = "https://ddhi.example.edu"
    request_timeout = 8.0
    color_policy = "random"

    [[date_corrections]]
    description = "Upstream timezone defect on war events"
    title_keywords = ["war"]
    exclude_keywords = ["america"]
    offset_hours = 7
"""

from __future__ import annotations

import os
import re
import tomllib
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

from ddhi.logging import LEVEL_ENV_VAR, set_package_level

CONFIG_ENV_VAR = "DDHI_CONFIG"
REPOSITORY_ENV_VAR = "DDHI_REPOSITORY"
CONFIG_FILENAME = "ddhi.toml"

WIKIDATA_API_URL = "https://www.wikidata.org/w/api.php"
KNOWLEDGE_BATCH_LIMIT = 50


class DateCorrection(BaseModel, frozen=True):
    """A fixed offset applied to dates of matching entities before formatting.

    A rule matches an entity when its id is listed in ``entity_ids``, or when
    its title contains one of ``title_keywords`` as a whole word and none of
    ``exclude_keywords`` as a substring (both case-insensitive).
    """

    offset_hours: float = Field(description="Hours added to the parsed date before formatting.")
    entity_ids: tuple[str, ...] = Field(default=(), description="Entity ids the correction applies to.")
    title_keywords: tuple[str, ...] = Field(default=(), description="Whole words that select an entity by title.")
    exclude_keywords: tuple[str, ...] = Field(default=(), description="Substrings that veto a title match.")
    description: str = Field(default="", description="Why this correction exists.")

    def applies_to(self, entity_id: str | None, title: str | None) -> bool:
        if entity_id is not None and entity_id in self.entity_ids:
            return True
        if not title or not self.title_keywords:
            return False
        lowered = title.casefold()
        if any(word.casefold() in lowered for word in self.exclude_keywords):
            return False
        return any(re.search(rf"\b{re.escape(word.casefold())}\b", lowered) for word in self.title_keywords)


LEGACY_WAR_TITLE_CORRECTION = DateCorrection(
    offset_hours=7,
    title_keywords=("war",),
    exclude_keywords=("america",),
    description=(
        "Workaround for a timezone normalization defect in upstream event dates. "
        "Known to affect war events; not verified as a general rule."
    ),
)


class ViewerConfig(BaseModel, frozen=True):
    """Settings for the resource client, aggregator and date normalizer."""

    repository_uri: str = Field(default="http://localhost", description="Base URI of the content repository.")
    api_path: str = Field(default="/ddhi-api", description="Path of the REST API below the repository URI.")
    knowledge_api_url: str = Field(default=WIKIDATA_API_URL, description="Wikidata-compatible wbgetentities endpoint.")
    request_timeout: float = Field(default=10.0, gt=0, description="Deadline in seconds for every external call.")
    max_knowledge_batch: int = Field(
        default=KNOWLEDGE_BATCH_LIMIT,
        ge=1,
        le=KNOWLEDGE_BATCH_LIMIT,
        description="Maximum identifiers per knowledge-service call.",
    )
    color_policy: Literal["hashed", "random"] = Field(
        default="hashed",
        description="'hashed' derives a stable color from the document id; 'random' picks a new one per store entry.",
    )
    shade_percent: int = Field(default=-25, ge=-100, le=100, description="Percentage applied to derive the border color.")
    date_corrections: tuple[DateCorrection, ...] = Field(default=(), description="Date correction table.")
    log_level: str = Field(default="INFO", description="Level applied to every ddhi logger by load_config.")

    @property
    def api_uri(self) -> str:
        return self.repository_uri.rstrip("/") + "/" + self.api_path.strip("/")


def _default_config_paths() -> list[Path]:
    """Return paths to check for ddhi.toml (first existing wins)."""
    paths: list[Path] = []
    if os.environ.get(CONFIG_ENV_VAR):
        paths.append(Path(os.environ[CONFIG_ENV_VAR]))
    paths.append(Path.cwd() / CONFIG_FILENAME)
    return paths


def load_config(path: Path | None = None) -> ViewerConfig:
    """Load the viewer configuration.

    Args:
        path: Explicit TOML file. When omitted the default lookup order applies.

    Returns:
        A validated `ViewerConfig`. Missing files yield the defaults; a file
        that exists but is malformed raises (``tomllib.TOMLDecodeError`` or
        ``pydantic.ValidationError``).
    """
    data: dict[str, Any] = {}
    candidates = [path] if path is not None else _default_config_paths()
    for candidate in candidates:
        if candidate.is_file():
            with open(candidate, "rb") as f:
                data = tomllib.load(f)
            break
    if os.environ.get(REPOSITORY_ENV_VAR):
        data["repository_uri"] = os.environ[REPOSITORY_ENV_VAR]
    if os.environ.get(LEVEL_ENV_VAR):
        data["log_level"] = os.environ[LEVEL_ENV_VAR]
    config = ViewerConfig.model_validate(data)
    set_package_level(config.log_level)
    return config
