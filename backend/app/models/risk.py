"""Risk grid cell model."""

from dataclasses import dataclass, field
from typing import Dict, NamedTuple


class CellKey(NamedTuple):
    """Grid cell index (row grows northward, col grows eastward)."""

    row: int
    col: int

    def __str__(self) -> str:
        return f"{self.row}:{self.col}"


@dataclass(frozen=True)
class RiskCell:
    """Decay-weighted risk aggregates of one cell, evaluated at a point in time."""

    key: CellKey
    risk_by_category: Dict[str, float] = field(default_factory=dict)
    count_by_category: Dict[str, int] = field(default_factory=dict)

    @property
    def total_risk(self) -> float:
        return sum(self.risk_by_category[c] for c in sorted(self.risk_by_category))

    @property
    def incident_count(self) -> int:
        return sum(self.count_by_category.values())
