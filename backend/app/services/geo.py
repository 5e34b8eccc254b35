"""Geographic helpers and the grid used to partition the service area."""

import math
from typing import Callable, Iterator, List, Sequence, Tuple, Union

import shapely
from shapely import prepared
from shapely.geometry import LineString, box
from shapely.geometry.base import BaseGeometry

from app.models.risk import CellKey
from app.services.errors import ConfigError

EARTH_RADIUS_METERS = 6371000
METERS_PER_DEGREE_LAT = 111320.0

# (min_lng, min_lat, max_lng, max_lat), GeoJSON axis order
Bounds = Tuple[float, float, float, float]
Region = Union[BaseGeometry, Bounds]


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance in meters between two points."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def polyline_length(coords: Sequence[Tuple[float, float]]) -> float:
    """Length in meters of a polyline given as (lng, lat) vertices."""
    total = 0.0
    for (lng1, lat1), (lng2, lat2) in zip(coords, coords[1:]):
        total += haversine_distance(lat1, lng1, lat2, lng2)
    return total


def region_geometry(region: Region) -> BaseGeometry:
    """Normalize a region (shapely geometry, bbox-like object or 4-tuple) to a geometry."""
    if isinstance(region, BaseGeometry):
        return region
    if all(hasattr(region, attr) for attr in ("min_lon", "min_lat", "max_lon", "max_lat")):
        return box(region.min_lon, region.min_lat, region.max_lon, region.max_lat)
    min_lng, min_lat, max_lng, max_lat = region
    if min_lng > max_lng or min_lat > max_lat:
        raise ValueError("Region bounds must satisfy min <= max")
    return box(min_lng, min_lat, max_lng, max_lat)


class GridSpec:
    """Fixed-size square cells over a local equirectangular plane.

    The plane is anchored at (origin_lat, origin_lng); x grows eastward and
    y northward, both in meters. Longitude is scaled at `reference_lat`.
    """

    def __init__(
        self,
        origin_lat: float,
        origin_lng: float,
        cell_size_meters: float,
        reference_lat: float = None,
    ):
        if cell_size_meters <= 0:
            raise ConfigError(f"cell_size_meters must be positive, got {cell_size_meters}")
        if reference_lat is None:
            reference_lat = origin_lat
        self.origin_lat = origin_lat
        self.origin_lng = origin_lng
        self.cell_size = float(cell_size_meters)
        self.meters_per_deg_lat = METERS_PER_DEGREE_LAT
        self.meters_per_deg_lng = METERS_PER_DEGREE_LAT * math.cos(math.radians(reference_lat))

    def project(self, lat: float, lng: float) -> Tuple[float, float]:
        return (
            (lng - self.origin_lng) * self.meters_per_deg_lng,
            (lat - self.origin_lat) * self.meters_per_deg_lat,
        )

    def unproject(self, x: float, y: float) -> Tuple[float, float]:
        """Inverse of project, returns (lat, lng)."""
        return (
            self.origin_lat + y / self.meters_per_deg_lat,
            self.origin_lng + x / self.meters_per_deg_lng,
        )

    def to_plane(self, geometry: BaseGeometry) -> BaseGeometry:
        """Project a (lng, lat) geometry onto the meter plane."""
        origin = (self.origin_lng, self.origin_lat)
        scale = (self.meters_per_deg_lng, self.meters_per_deg_lat)
        return shapely.transform(geometry, lambda coords: (coords - origin) * scale)

    def cell_for(self, lat: float, lng: float) -> CellKey:
        x, y = self.project(lat, lng)
        return CellKey(math.floor(y / self.cell_size), math.floor(x / self.cell_size))

    def cell_box(self, cell: CellKey) -> BaseGeometry:
        """Cell square on the meter plane."""
        size = self.cell_size
        return box(cell.col * size, cell.row * size, (cell.col + 1) * size, (cell.row + 1) * size)

    def cell_bounds(self, cell: CellKey) -> Bounds:
        """Cell extent as (min_lng, min_lat, max_lng, max_lat)."""
        size = self.cell_size
        min_lat, min_lng = self.unproject(cell.col * size, cell.row * size)
        max_lat, max_lng = self.unproject((cell.col + 1) * size, (cell.row + 1) * size)
        return (min_lng, min_lat, max_lng, max_lat)

    def cell_center(self, cell: CellKey) -> Tuple[float, float]:
        """Cell center as (lat, lng)."""
        size = self.cell_size
        return self.unproject((cell.col + 0.5) * size, (cell.row + 0.5) * size)

    def _candidate_cells(self, plane_geometry: BaseGeometry) -> Iterator[CellKey]:
        min_x, min_y, max_x, max_y = plane_geometry.bounds
        size = self.cell_size
        for row in range(math.floor(min_y / size), math.floor(max_y / size) + 1):
            for col in range(math.floor(min_x / size), math.floor(max_x / size) + 1):
                yield CellKey(row, col)

    def cells_in_region(self, region: Region) -> Iterator[CellKey]:
        """Lazily yield cells overlapping a (lng, lat) region, row-major order."""
        plane = self.to_plane(region_geometry(region))
        if plane.is_empty:
            return
        if plane.geom_type == "Point":
            x, y = plane.x, plane.y
            yield CellKey(math.floor(y / self.cell_size), math.floor(x / self.cell_size))
            return

        areal = plane.area > 0
        prepared_region = prepared.prep(plane)
        for cell in self._candidate_cells(plane):
            cell_square = self.cell_box(cell)
            if not prepared_region.intersects(cell_square):
                continue
            # Areal regions that only share a border with the cell do not overlap it
            if areal and prepared_region.touches(cell_square):
                continue
            yield cell

    def cell_filter(
        self, region: Region, include_touching: bool = False
    ) -> Callable[[CellKey], bool]:
        """Predicate telling whether a cell overlaps a (lng, lat) region.

        Cells sharing only a border with an areal region are excluded unless
        `include_touching` is set.
        """
        plane = self.to_plane(region_geometry(region))
        if plane.is_empty:
            return lambda cell: False
        areal = plane.area > 0 and not include_touching
        prepared_region = prepared.prep(plane)

        def overlaps(cell: CellKey) -> bool:
            cell_square = self.cell_box(cell)
            if not prepared_region.intersects(cell_square):
                return False
            return not (areal and prepared_region.touches(cell_square))

        return overlaps

    def line_cell_fractions(
        self, coords: Sequence[Tuple[float, float]]
    ) -> Tuple[Tuple[CellKey, float], ...]:
        """Share of a (lng, lat) polyline's length falling in each cell.

        Fractions sum to 1. Segments lying exactly on a cell border are split
        between the neighbouring cells.
        """
        if len(coords) == 1 or LineString(coords).length == 0:
            lng, lat = coords[0]
            return ((self.cell_for(lat, lng), 1.0),)

        line = self.to_plane(LineString(coords))
        pieces: List[Tuple[CellKey, float]] = []
        for cell in self._candidate_cells(line):
            inside = line.intersection(self.cell_box(cell)).length
            if inside > 0:
                pieces.append((cell, inside))

        covered = sum(length for _, length in pieces)
        if covered <= 0:
            lng, lat = coords[0]
            return ((self.cell_for(lat, lng), 1.0),)
        return tuple((cell, length / covered) for cell, length in pieces)
