"""Date normalization for knowledge-service claims and date mentions.

Dates reach the viewer in three granularities: a year (``YYYY``), a month
(``YYYY-MM``) or a day (``YYYY-MM-DD``). Values from Wikidata carry a sign
(``+1944-06-06T00:00:00Z``) and use ``00`` for unknown month or day
components; transcript date mentions are bare (``1944-06``).

This module turns those values into:

- an **ISO-partial** form (``1944``, ``1944-06``, ``1944-06-06``; a leading
  ``-`` marks BCE) that is used as a sortable key, and
- a **display** form whose granularity matches the input
  (``1944``, ``Jun 1944``, ``Jun 06 1944``).

Day-level values are validated with `datetime`; when that fails (BCE years,
impossible days) the components are kept as they are, minus any ``00``
sentinel. Values of display length (4, 7 or 10 characters) that do not parse
at all are split by position instead, so `DateNormalizer.parse` always
returns something for them. Per-entity corrections come from a
`DateCorrection` table.
"""

import calendar
import re
from datetime import datetime, timedelta
from enum import Enum
from typing import Sequence

from pydantic import BaseModel, Field

from ddhi.config import DateCorrection
from ddhi.errors import UnresolvableDate
from ddhi.logging import setup_logging

logger = setup_logging()

_DATE_PATTERN = re.compile(
    r"^\s*(?P<sign>[+-]?)(?P<year>\d{4,})"
    r"(?:-(?P<month>\d{2})(?:-(?P<day>\d{2}))?)?"
    r"(?:T(?P<hour>\d{2}):(?P<minute>\d{2})(?::(?P<second>\d{2}))?Z?)?\s*$"
)


class Granularity(str, Enum):
    YEAR = "year"
    MONTH = "month"
    DAY = "day"


# Display lengths of YYYY, YYYY-MM and YYYY-MM-DD.
_POSITIONAL_GRANULARITY = {4: Granularity.YEAR, 7: Granularity.MONTH, 10: Granularity.DAY}


class DisplayDate(BaseModel, frozen=True):
    """A normalized date ready for display and ordering."""

    raw: str = Field(description="Value as received.")
    text: str = Field(description="Human readable form at the input's granularity.")
    iso: str = Field(description="ISO-partial sortable form.")
    granularity: Granularity
    bce: bool = False
    corrected: bool = Field(default=False, description="Whether a date correction was applied.")


class _Parts(BaseModel, frozen=True):
    bce: bool
    year: int
    month: int | None
    day: int | None
    hour: int
    minute: int
    second: int

    @property
    def granularity(self) -> Granularity:
        if self.day is not None:
            return Granularity.DAY
        if self.month is not None:
            return Granularity.MONTH
        return Granularity.YEAR

    @property
    def iso(self) -> str:
        text = f"{self.year:04d}"
        if self.month is not None:
            text += f"-{self.month:02d}"
            if self.day is not None:
                text += f"-{self.day:02d}"
        return f"-{text}" if self.bce else text


def _split(raw: str) -> _Parts:
    match = _DATE_PATTERN.match(raw or "")
    if match is None:
        raise UnresolvableDate(raw)
    year = int(match["year"])
    if year == 0:
        raise UnresolvableDate(raw)
    month = int(match["month"]) if match["month"] and match["month"] != "00" else None
    day = int(match["day"]) if month is not None and match["day"] and match["day"] != "00" else None
    return _Parts(
        bce=match["sign"] == "-",
        year=year,
        month=month,
        day=day,
        hour=int(match["hour"] or 0),
        minute=int(match["minute"] or 0),
        second=int(match["second"] or 0),
    )


def _positional(raw: str) -> DisplayDate:
    """Split a display-length value at the year, month and day offsets.

    A ``0000`` year yields an empty date; ``00`` month or day components are
    dropped.

    Raises:
        UnresolvableDate: If ``raw`` is not 4, 7 or 10 characters long.
    """
    granularity = _POSITIONAL_GRANULARITY.get(len(raw or ""))
    if granularity is None:
        raise UnresolvableDate(raw)
    year, month, day = raw[0:4], raw[5:7], raw[8:10]
    components: list[str] = []
    if year != "0000":
        components = [year] + [c for c in (month, day) if c and c != "00"]
    text = "-".join(components)
    return DisplayDate(raw=raw, text=text, iso=text, granularity=granularity)


def iso_partial(raw: str) -> str:
    """Return the ISO-partial form of a date value.

    ``+1944-06-00T00:00:00Z`` becomes ``1944-06``; ``-0500-00-00`` becomes ``-0500``.

    Raises:
        UnresolvableDate: If the value has no usable year.
    """
    return _split(raw).iso


def sort_key(iso: str) -> tuple[int, int, int]:
    """Return a tuple that orders ISO-partial dates chronologically.

    Missing components sort first within their year or month.
    """
    parts = _split(iso)
    year = -parts.year if parts.bce else parts.year
    return (year, parts.month or 0, parts.day or 0)


class DateNormalizer:
    """Converts raw date values into `DisplayDate` records.

    Args:
        corrections: Correction table; the first matching rule applies.
            Corrections only affect day-level values.
    """

    def __init__(self, corrections: Sequence[DateCorrection] = ()):
        self.corrections = tuple(corrections)

    def _correction_for(self, entity_id: str | None, title: str | None) -> DateCorrection | None:
        for correction in self.corrections:
            if correction.applies_to(entity_id, title):
                return correction
        return None

    def parse(self, raw_date: str, entity_title: str | None = None, entity_id: str | None = None) -> DisplayDate:
        """Normalize a date value for display.

        Args:
            raw_date: ``YYYY``, ``YYYY-MM`` or ``YYYY-MM-DD``, optionally signed
                and optionally followed by a Wikidata time suffix.
            entity_title: Title of the entity the date belongs to.
            entity_id: Id of the entity the date belongs to.

        Returns:
            A `DisplayDate` at the granularity of the input.

        Raises:
            UnresolvableDate: If the value has no usable year and is not 4, 7
                or 10 characters long. Values of those lengths fall back to
                positional decomposition.
        """
        try:
            parts = _split(raw_date)
        except UnresolvableDate:
            logger.debug(f"Splitting {raw_date!r} by position")
            return _positional(raw_date)
        granularity = parts.granularity
        fallback = DisplayDate(
            raw=raw_date,
            text=parts.iso.lstrip("-") + (" BCE" if parts.bce else ""),
            iso=parts.iso,
            granularity=granularity,
            bce=parts.bce,
        )
        if parts.bce:
            return fallback

        if granularity == Granularity.YEAR:
            return fallback.model_copy(update={"text": str(parts.year)})
        if granularity == Granularity.MONTH:
            if not 1 <= parts.month <= 12:  # type: ignore[operator]
                return fallback
            return fallback.model_copy(update={"text": f"{calendar.month_abbr[parts.month]} {parts.year}"})  # type: ignore[index]

        try:
            moment = datetime(parts.year, parts.month, parts.day, parts.hour, parts.minute, parts.second)  # type: ignore[arg-type]
        except ValueError:
            logger.debug(f"Calendar parse failed for {raw_date!r}; using components")
            return fallback

        correction = self._correction_for(entity_id, entity_title)
        if correction is not None:
            try:
                moment = moment + timedelta(hours=correction.offset_hours)
            except OverflowError:
                return fallback
            logger.debug(f"Applied {correction.offset_hours}h correction to {raw_date!r} for {entity_title!r}")
        text = f"{calendar.month_abbr[moment.month]} {moment.day:02d} {moment.year}"
        iso = f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        return fallback.model_copy(update={"text": text, "iso": iso, "corrected": correction is not None})


def date_entity_range(when: str) -> tuple[str, str]:
    """Expand a date mention into an inclusive ``(start, end)`` ISO range.

    ``1944`` spans Jan 1 to Dec 31, ``1944-02`` spans the whole month, and a
    full date spans itself.

    Raises:
        UnresolvableDate: If ``when`` is not a usable date.
    """
    parts = _split(when)
    sign = "-" if parts.bce else ""
    year = f"{sign}{parts.year:04d}"
    if parts.month is None:
        return f"{year}-01-01", f"{year}-12-31"
    if not 1 <= parts.month <= 12:
        raise UnresolvableDate(when)
    if parts.day is None:
        last = calendar.monthrange(parts.year, parts.month)[1] if not parts.bce else 31
        return f"{year}-{parts.month:02d}-01", f"{year}-{parts.month:02d}-{last:02d}"
    return parts.iso, parts.iso


def date_entity_label(when: str) -> str:
    """Label for a date mention: ``1944``, ``June 1944`` or ``June 06, 1944``.

    Values that are not dates are returned unchanged.
    """
    try:
        parts = _split(when)
    except UnresolvableDate:
        return when
    if parts.month is None or not 1 <= parts.month <= 12:
        return str(parts.year)
    name = calendar.month_name[parts.month]
    if parts.day is None:
        return f"{name} {parts.year}"
    return f"{name} {parts.day:02d}, {parts.year}"
