"""Incident domain model."""

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


class IncidentCategory(str, enum.Enum):
    """Built-in incident categories."""

    THEFT = "theft"
    ACCIDENT = "accident"
    ASSAULT = "assault"
    VANDALISM = "vandalism"


# Plural ids used by map clients for their filter toggles
CATEGORY_ALIASES = {
    "thefts": IncidentCategory.THEFT.value,
    "accidents": IncidentCategory.ACCIDENT.value,
    "assaults": IncidentCategory.ASSAULT.value,
    "vandalisms": IncidentCategory.VANDALISM.value,
}


def normalize_category(value: str) -> str:
    """Canonical category id: lowercase, trimmed, aliases resolved."""
    if isinstance(value, enum.Enum):
        value = value.value
    key = str(value).strip().lower()
    return CATEGORY_ALIASES.get(key, key)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class Incident:
    """A recorded safety-relevant event. Immutable once recorded."""

    id: str
    category: str
    lat: float
    lng: float
    timestamp: datetime
    severity: float
    description: Optional[str] = None

    def age_seconds(self, as_of: datetime) -> float:
        return (as_of - self.timestamp).total_seconds()
