"""
Farm Aggregation Engine — buckets solar farm audits into protocol weeks.

Accepts the raw audit list served by the public audits API and produces:
  * one ``WeeklyFarmRecord`` per week from genesis (week 0) to the current
    week, listing the farms whose audit completed in that week, and
  * the cumulative farm count per week derived from those records.

Week numbers are ``floor((t - genesis) / 7 days)``.  Audit dates are
human-written strings in one of two shapes:

    "3 of April 2024"
    "April 3rd, 2024"
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from glowstats.errors import ParseError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

WEEK: timedelta = timedelta(days=7)

_OF_PATTERN = re.compile(r"(\d+)\s+of\s+(\w+)\s+(\d{4})")
_ORDINAL_PATTERN = re.compile(r"(\d+)(st|nd|rd|th)")

# Formats tried, in order, once the ordinal suffix has been stripped.
_DATE_FORMATS: tuple[str, ...] = (
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%Y-%m-%d",
)


# ---------------------------------------------------------------------------
# Output models (Pydantic v2)
# ---------------------------------------------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FarmAuditRecord(_CamelModel):
    """A single audited farm as exposed in the weekly breakdown."""

    # Upstream values are passed through as served; only the count matters.
    farm_name: Any = None
    farm_id: Union[str, int, None] = None
    audit_date: str
    panel_quantity: Any


class WeeklyFarmRecord(_CamelModel):
    """Farms whose audit date falls in a given protocol week."""

    week: int = Field(ge=0)
    new_farms: list[FarmAuditRecord] = Field(default_factory=list)


class CumulativeFarmCount(_CamelModel):
    """Total farms audited up to and including ``week``."""

    week: int
    value: int


# ---------------------------------------------------------------------------
# Week arithmetic
# ---------------------------------------------------------------------------


def genesis_datetime(genesis_timestamp: int) -> datetime:
    """Return the genesis instant as an aware UTC datetime."""
    return datetime.fromtimestamp(genesis_timestamp, tz=timezone.utc)


def get_week_from_date(date: datetime, genesis_timestamp: int) -> int:
    """Return the protocol week containing *date* (negative before genesis)."""
    if date.tzinfo is None:
        date = date.replace(tzinfo=timezone.utc)
    return (date - genesis_datetime(genesis_timestamp)) // WEEK


def get_weeks_since_start(genesis_timestamp: int, now: Optional[datetime] = None) -> int:
    """Return the current protocol week."""
    if now is None:
        now = datetime.now(timezone.utc)
    return get_week_from_date(now, genesis_timestamp)


# ---------------------------------------------------------------------------
# Date parsing
# ---------------------------------------------------------------------------


def _parse_generic(date_str: str) -> Optional[datetime]:
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(date_str, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def parse_audit_date(date_str: str) -> datetime:
    """
    Parse an audit date string into a UTC midnight datetime.

    Supports ``"<day> of <Month> <Year>"`` and ``"<Month> <day><suffix>, <Year>"``.

    Raises:
        ParseError: If *date_str* matches neither shape.
    """
    if not isinstance(date_str, str):
        raise ParseError(f"Audit date must be a string, got {type(date_str).__name__}")

    text = " ".join(date_str.split())
    of_match = _OF_PATTERN.search(text)
    if of_match:
        day, month, year = of_match.groups()
        text = f"{month} {day}, {year}"
    else:
        text = _ORDINAL_PATTERN.sub(r"\1", text, count=1)

    parsed = _parse_generic(text)
    if parsed is None:
        raise ParseError(f"Unparseable audit date: {date_str!r}")
    return parsed


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def _to_farm_record(farm: dict[str, Any]) -> FarmAuditRecord:
    try:
        quantity = farm["summary"]["solarPanels"]["quantity"]
    except (KeyError, TypeError) as exc:
        raise ParseError(
            f"Audit {farm.get('id')!r} has no summary.solarPanels.quantity"
        ) from exc
    try:
        return FarmAuditRecord(
            farm_name=farm.get("farmName"),
            farm_id=farm.get("id"),
            audit_date=farm["auditDate"],
            panel_quantity=quantity,
        )
    except ValidationError as exc:
        raise ParseError(f"Audit {farm.get('id')!r} is malformed: {exc}") from exc


def get_new_farms_weekly(
    audits: Iterable[dict[str, Any]],
    genesis_timestamp: int,
    now: Optional[datetime] = None,
    skip_malformed: bool = False,
) -> list[WeeklyFarmRecord]:
    """
    Group raw audits into one ``WeeklyFarmRecord`` per week in
    ``[0, current_week]``, ascending, with empty weeks included.

    Audits dated after the current week or before genesis are discarded.

    Args:
        audits: Raw audit dicts from the audits API.
        genesis_timestamp: Unix timestamp of week 0.
        now: Reference time for the current week (defaults to UTC now).
        skip_malformed: When ``False`` (default) the first audit with a bad
            date or missing panel count aborts the whole aggregation; when
            ``True`` such audits are logged and dropped.

    Raises:
        ParseError: On a malformed audit when ``skip_malformed`` is ``False``.
    """
    current_week = get_weeks_since_start(genesis_timestamp, now)
    farms_by_week: dict[int, list[FarmAuditRecord]] = {
        week: [] for week in range(current_week + 1)
    }

    skipped = 0
    for farm in audits:
        try:
            if not isinstance(farm, dict):
                raise ParseError(f"Audit entry must be an object, got {type(farm).__name__}")
            week = get_week_from_date(parse_audit_date(farm.get("auditDate")), genesis_timestamp)
            if week not in farms_by_week:
                logger.debug("Audit %r falls in week %d, outside [0, %d]", farm.get("id"), week, current_week)
                continue
            record = _to_farm_record(farm)
        except ParseError as exc:
            if not skip_malformed:
                raise
            skipped += 1
            logger.warning("Skipping malformed audit: %s", exc)
            continue

        farms_by_week[week].append(record)

    if skipped:
        logger.info("Weekly aggregation dropped %d malformed audit(s)", skipped)

    return [
        WeeklyFarmRecord(week=week, new_farms=farms)
        for week, farms in sorted(farms_by_week.items())
    ]


def calculate_farm_count_weekly(
    new_farms_weekly: Iterable[WeeklyFarmRecord],
) -> list[CumulativeFarmCount]:
    """Running total of ``len(new_farms)`` in week order."""
    total = 0
    counts: list[CumulativeFarmCount] = []
    for weekly in sorted(new_farms_weekly, key=lambda w: w.week):
        total += len(weekly.new_farms)
        counts.append(CumulativeFarmCount(week=weekly.week, value=total))
    return counts
