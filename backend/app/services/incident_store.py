"""In-memory incident store with a cell/time index.

Each grid cell holds an immutable bucket of incidents sorted by timestamp.
Writers build a new bucket and publish it with a single reference swap while
holding the lock of the cell's shard, so readers never take a lock and never
observe a partially applied incident. Writes to cells in different shards
proceed in parallel.
"""

import logging
import math
import threading
import uuid
from bisect import bisect_left, bisect_right
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import (
    Any,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from pydantic import ValidationError as PydanticValidationError
from shapely import prepared
from shapely.geometry import Point

from app.models.incident import Incident, ensure_utc, normalize_category
from app.models.risk import CellKey
from app.schemas.incident import IncidentCreate
from app.services.errors import ValidationError
from app.services.geo import Bounds, GridSpec, Region, region_geometry

logger = logging.getLogger(__name__)

DEFAULT_SHARD_COUNT = 64


class CellBucket(NamedTuple):
    """Incidents of one cell, sorted by (timestamp, id)."""

    timestamps: Tuple[datetime, ...]
    incidents: Tuple[Incident, ...]

    def window(self, not_before: datetime, as_of: datetime) -> Tuple[Incident, ...]:
        lo = bisect_left(self.timestamps, not_before)
        hi = bisect_right(self.timestamps, as_of)
        return self.incidents[lo:hi]


EMPTY_BUCKET = CellBucket((), ())


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


@dataclass
class IngestReport:
    """Outcome of a batch ingestion."""

    accepted: List[str] = field(default_factory=list)
    rejected: List[ValidationError] = field(default_factory=list)

    @property
    def accepted_count(self) -> int:
        return len(self.accepted)

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)


def incident_from_record(
    record: Union[Incident, Mapping[str, Any]], index: Optional[int] = None
) -> Incident:
    """Parse an external record into an Incident (field checks only)."""
    if isinstance(record, Incident):
        return record
    if not isinstance(record, Mapping):
        raise ValidationError("Incident record must be an object", index=index)
    try:
        parsed = IncidentCreate.model_validate(record)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field_name = ".".join(str(loc) for loc in first["loc"]) or None
        raise ValidationError(
            f"Invalid incident record: {first['msg']}", field=field_name, index=index
        )
    return parsed.to_incident()


class IncidentQuery:
    """Lazy, finite, restartable view of incidents matching a filter.

    Every iteration re-reads the store, so a second pass reflects incidents
    ingested since the first one.
    """

    def __init__(
        self,
        store: "IncidentStore",
        region: Region,
        categories: Optional[Iterable[str]],
        as_of: datetime,
    ):
        self._store = store
        self._region = region_geometry(region)
        self._categories = (
            None if categories is None else frozenset(normalize_category(c) for c in categories)
        )
        self._as_of = ensure_utc(as_of)

    def __iter__(self) -> Iterator[Incident]:
        store = self._store
        prepared_region = prepared.prep(self._region)
        not_before = self._as_of - store.retention
        overlaps = store.grid.cell_filter(self._region, include_touching=True)
        for cell in sorted(store.occupied_cells()):
            if not overlaps(cell):
                continue
            for incident in store.bucket(cell).window(not_before, self._as_of):
                if self._categories is not None and incident.category not in self._categories:
                    continue
                if prepared_region.intersects(Point(incident.lng, incident.lat)):
                    yield incident


class IncidentStore:
    """Holds incidents and answers cell and region queries."""

    def __init__(
        self,
        grid: GridSpec,
        bounds: Bounds,
        categories: Iterable[str],
        retention: timedelta,
        shard_count: int = DEFAULT_SHARD_COUNT,
    ):
        self.grid = grid
        self.bounds = bounds
        self.categories: FrozenSet[str] = frozenset(normalize_category(c) for c in categories)
        self.retention = retention
        self._cells: Dict[CellKey, CellBucket] = {}
        self._occupied: FrozenSet[CellKey] = frozenset()
        self._ids: Dict[str, CellKey] = {}
        self._shard_locks = [threading.Lock() for _ in range(shard_count)]
        self._ids_lock = threading.Lock()
        self._index_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, incident: Incident, index: Optional[int] = None) -> Incident:
        """Check an incident against store rules, returning its canonical form."""
        category = normalize_category(incident.category)
        if category not in self.categories:
            raise ValidationError(
                f"Unknown incident category: {incident.category!r}", field="category", index=index
            )

        if not isinstance(incident.timestamp, datetime):
            raise ValidationError("Timestamp must be a datetime", field="timestamp", index=index)

        severity = incident.severity
        if not _is_number(severity):
            raise ValidationError("Severity must be a number", field="severity", index=index)
        if not 0.0 <= severity <= 1.0:
            raise ValidationError(
                f"Severity must be within [0, 1], got {severity}", field="severity", index=index
            )

        if not (_is_number(incident.lat) and _is_number(incident.lng)):
            raise ValidationError("Location must be numeric lat/lng", field="location", index=index)

        min_lng, min_lat, max_lng, max_lat = self.bounds
        if not (min_lat <= incident.lat <= max_lat and min_lng <= incident.lng <= max_lng):
            raise ValidationError(
                f"Location ({incident.lat}, {incident.lng}) is outside the service area",
                field="location",
                index=index,
            )

        incident_id = incident.id or uuid.uuid4().hex
        return Incident(
            id=str(incident_id),
            category=category,
            lat=float(incident.lat),
            lng=float(incident.lng),
            timestamp=ensure_utc(incident.timestamp),
            severity=float(severity),
            description=incident.description,
        )

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest(self, incident: Union[Incident, Mapping[str, Any]]) -> Incident:
        """Validate and index one incident. Raises ValidationError."""
        canonical = self.validate(incident_from_record(incident))
        cell = self.grid.cell_for(canonical.lat, canonical.lng)
        self._reserve_id(canonical)
        self._publish(cell, [canonical])
        logger.debug(f"Ingested incident {canonical.id} ({canonical.category}) into cell {cell}")
        return canonical

    def ingest_batch(
        self, records: Iterable[Union[Incident, Mapping[str, Any]]]
    ) -> IngestReport:
        """Ingest records individually; malformed ones are rejected and skipped."""
        report = IngestReport()
        by_cell: Dict[CellKey, List[Tuple[int, Incident]]] = defaultdict(list)
        seen_ids = set()

        for index, record in enumerate(records):
            try:
                canonical = self.validate(incident_from_record(record, index), index)
                if canonical.id in seen_ids:
                    raise ValidationError(
                        f"Duplicate incident id in batch: {canonical.id}", field="id", index=index
                    )
            except ValidationError as e:
                logger.warning(f"Rejected incident record #{index}: {e.message}")
                report.rejected.append(e)
                continue
            seen_ids.add(canonical.id)
            by_cell[self.grid.cell_for(canonical.lat, canonical.lng)].append((index, canonical))

        accepted: List[Tuple[int, str]] = []
        for cell in sorted(by_cell):
            fresh = []
            for index, incident in by_cell[cell]:
                try:
                    self._reserve_id(incident, index)
                except ValidationError as e:
                    logger.warning(f"Rejected incident {incident.id}: {e.message}")
                    report.rejected.append(e)
                    continue
                fresh.append(incident)
                accepted.append((index, incident.id))
            if fresh:
                self._publish(cell, fresh)

        report.accepted = [incident_id for _, incident_id in sorted(accepted)]
        report.rejected.sort(key=lambda e: -1 if e.index is None else e.index)
        logger.info(
            f"Batch ingestion: {report.accepted_count} accepted, "
            f"{report.rejected_count} rejected"
        )
        return report

    def _reserve_id(self, incident: Incident, index: Optional[int] = None) -> None:
        with self._ids_lock:
            if incident.id in self._ids:
                raise ValidationError(
                    f"Incident id already recorded: {incident.id}", field="id", index=index
                )
            self._ids[incident.id] = self.grid.cell_for(incident.lat, incident.lng)

    def _shard_lock(self, cell: CellKey) -> threading.Lock:
        return self._shard_locks[hash(cell) % len(self._shard_locks)]

    def _publish(self, cell: CellKey, incidents: Sequence[Incident]) -> None:
        with self._shard_lock(cell):
            current = self._cells.get(cell, EMPTY_BUCKET)
            merged = sorted(
                current.incidents + tuple(incidents), key=lambda i: (i.timestamp, i.id)
            )
            self._cells[cell] = CellBucket(
                tuple(i.timestamp for i in merged), tuple(merged)
            )
            if not current.incidents:
                with self._index_lock:
                    self._occupied = self._occupied | {cell}

    # ------------------------------------------------------------------
    # Reads (lock-free)
    # ------------------------------------------------------------------

    def bucket(self, cell: CellKey) -> CellBucket:
        return self._cells.get(cell, EMPTY_BUCKET)

    def incidents_in_cell(self, cell: CellKey, as_of: datetime) -> Tuple[Incident, ...]:
        """Incidents of a cell with timestamp <= as_of, inside the retention horizon."""
        as_of = ensure_utc(as_of)
        return self.bucket(cell).window(as_of - self.retention, as_of)

    def occupied_cells(self) -> FrozenSet[CellKey]:
        return self._occupied

    def query(
        self,
        region: Region,
        categories: Optional[Iterable[str]],
        as_of: datetime,
    ) -> IncidentQuery:
        """Incidents inside a region, of the given categories, recorded by as_of."""
        return IncidentQuery(self, region, categories, as_of)

    def get(self, incident_id: str) -> Optional[Incident]:
        cell = self._ids.get(incident_id)
        if cell is None:
            return None
        for incident in self.bucket(cell).incidents:
            if incident.id == incident_id:
                return incident
        return None

    def count(self) -> int:
        return sum(len(self.bucket(cell).incidents) for cell in self._occupied)

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def purge_expired(self, now: datetime) -> int:
        """Drop incidents older than `now - retention`. Returns count removed.

        Queries with `as_of >= now` return the same incidents before and after
        a purge. Queries dated earlier than `now` may lose incidents that were
        still inside their own retention window.
        """
        cutoff = ensure_utc(now) - self.retention
        removed_total = 0
        for cell in sorted(self._occupied):
            with self._shard_lock(cell):
                current = self.bucket(cell)
                keep_from = bisect_left(current.timestamps, cutoff)
                if keep_from == 0:
                    continue
                expired = current.incidents[:keep_from]
                if keep_from == len(current.incidents):
                    del self._cells[cell]
                    with self._index_lock:
                        self._occupied = self._occupied - {cell}
                else:
                    self._cells[cell] = CellBucket(
                        current.timestamps[keep_from:], current.incidents[keep_from:]
                    )
                with self._ids_lock:
                    for incident in expired:
                        self._ids.pop(incident.id, None)
                removed_total += len(expired)

        if removed_total:
            logger.info(f"Purged {removed_total} incidents recorded before {cutoff.isoformat()}")
        return removed_total
