"""Route safety scoring."""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from app.models.route import SafetyRating
from app.services.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_DENSITY_EPSILON_KM = 0.001


def format_distance(meters: float) -> str:
    """Human-readable distance, e.g. "850 m" or "2.4 km"."""
    if meters < 1000:
        return f"{round(meters)} m"
    return f"{meters / 1000:.1f} km"


def format_duration(seconds: float) -> str:
    """Human-readable duration, e.g. "45 seconds", "8 minutes" or "1 h 5 min"."""
    seconds = round(seconds)
    if seconds < 60:
        return "1 second" if seconds == 1 else f"{seconds} seconds"
    minutes = round(seconds / 60)
    if minutes < 60:
        return "1 minute" if minutes == 1 else f"{minutes} minutes"
    hours, minutes = divmod(minutes, 60)
    if minutes == 0:
        return f"{hours} h"
    return f"{hours} h {minutes} min"


@dataclass(frozen=True)
class SafetyAssessment:
    rating: SafetyRating
    density: float  # risk per km
    summary: str


class SafetyScorer:
    """Maps a route's risk density onto ordered safety bands.

    Bands are closed on the safe side: density <= safe_threshold is Safe,
    density <= risky_threshold is Moderate, anything above is Risky.
    """

    def __init__(
        self,
        safe_threshold: float,
        risky_threshold: float,
        epsilon_km: float = DEFAULT_DENSITY_EPSILON_KM,
    ):
        if not 0 <= safe_threshold < risky_threshold:
            raise ConfigError(
                f"Safety thresholds must satisfy 0 <= safe < risky, "
                f"got safe={safe_threshold}, risky={risky_threshold}"
            )
        if not epsilon_km > 0:
            raise ConfigError(f"density epsilon must be positive, got {epsilon_km}")
        self.safe_threshold = safe_threshold
        self.risky_threshold = risky_threshold
        self.epsilon_km = epsilon_km

    def density(self, total_risk: float, total_distance_meters: float) -> float:
        return total_risk / max(total_distance_meters / 1000.0, self.epsilon_km)

    def rate(self, density: float) -> SafetyRating:
        if density <= self.safe_threshold:
            return SafetyRating.SAFE
        if density <= self.risky_threshold:
            return SafetyRating.MODERATE
        return SafetyRating.RISKY

    def assess(
        self,
        total_risk: float,
        total_distance_meters: float,
        total_duration_seconds: float,
        risk_by_category: Optional[Mapping[str, float]] = None,
    ) -> SafetyAssessment:
        density = self.density(total_risk, total_distance_meters)
        rating = SafetyRating.SAFE if total_risk <= 0 else self.rate(density)

        summary = (
            f"Found a {rating.value.lower()} route taking "
            f"{format_duration(total_duration_seconds)} "
            f"({format_distance(total_distance_meters)})"
        )
        if total_risk > 0 and risk_by_category:
            dominant = max(sorted(risk_by_category), key=lambda c: risk_by_category[c])
            summary += f"; most exposure is to {dominant} reports"

        return SafetyAssessment(rating=rating, density=density, summary=summary)
