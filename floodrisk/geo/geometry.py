"""
geometry.py — Pure functions over GeoJSON-style geometry dicts.

Supported kinds and their coordinate nesting depth:

    Kind              Nesting
    ───────────────   ─────────────────────────────
    Point             [lon, lat]
    MultiPoint        [[lon, lat], ...]
    LineString        [[lon, lat], ...]
    MultiLineString   [ring, ...]
    Polygon           [exterior, hole, hole, ...]
    MultiPolygon      [[exterior, hole, ...], ...]

Nothing here raises on malformed input: bad coordinates are skipped,
degenerate rings fail containment, and unsupported kinds yield ``None``.
"""

import math

EARTH_RADIUS_KM = 6371.0

SUPPORTED_TYPES = frozenset({
    "Point",
    "MultiPoint",
    "LineString",
    "MultiLineString",
    "Polygon",
    "MultiPolygon",
})

# A ring needs three distinct vertices to enclose anything
MIN_RING_POINTS = 3


# ── Coordinate helpers ──────────────────────────────────────────────

def as_lon_lat(coord) -> tuple[float, float] | None:
    """
    Return ``(lon, lat)`` from a coordinate entry, dropping extra
    dimensions, or None if the entry is malformed or non-finite.
    """
    if not isinstance(coord, (list, tuple)) or len(coord) < 2:
        return None
    lon, lat = coord[0], coord[1]
    if isinstance(lon, bool) or isinstance(lat, bool):
        return None
    if not isinstance(lon, (int, float)) or not isinstance(lat, (int, float)):
        return None
    if not (math.isfinite(lon) and math.isfinite(lat)):
        return None
    return (float(lon), float(lat))


def is_valid_lon_lat(point) -> bool:
    """True if *point* is a finite (lon, lat) inside the WGS84 range."""
    pair = as_lon_lat(point)
    if pair is None:
        return False
    lon, lat = pair
    return -180.0 <= lon <= 180.0 and -90.0 <= lat <= 90.0


def _clean(coords) -> list[tuple[float, float]]:
    if not isinstance(coords, (list, tuple)):
        return []
    cleaned = []
    for coord in coords:
        pair = as_lon_lat(coord)
        if pair is not None:
            cleaned.append(pair)
    return cleaned


def _mean(points: list[tuple[float, float]]) -> tuple[float, float] | None:
    if not points:
        return None
    lon_sum = sum(p[0] for p in points)
    lat_sum = sum(p[1] for p in points)
    return (lon_sum / len(points), lat_sum / len(points))


def _exterior(polygon_coords):
    if isinstance(polygon_coords, (list, tuple)) and polygon_coords:
        return polygon_coords[0]
    return []


# ── Bounds ──────────────────────────────────────────────────────────

def geometry_bounds(geometry: dict | None) -> tuple[float, float, float, float] | None:
    """
    Compute the axis-aligned bounding box of a geometry.

    Every finite vertex is included, so ``point_in_polygon(p, g)``
    always implies ``point_within_bounds(p, geometry_bounds(g))``.

    Returns:
        ``(min_lon, min_lat, max_lon, max_lat)`` or None when the
        geometry is unsupported or holds no usable coordinate.
    """
    if not isinstance(geometry, dict) or geometry.get("type") not in SUPPORTED_TYPES:
        return None

    min_lon = min_lat = math.inf
    max_lon = max_lat = -math.inf

    stack = [geometry.get("coordinates")]
    while stack:
        coords = stack.pop()
        if not isinstance(coords, (list, tuple)) or not coords:
            continue
        first = coords[0]
        if isinstance(first, (int, float)) and not isinstance(first, bool):
            pair = as_lon_lat(coords)
            if pair is None:
                continue
            lon, lat = pair
            min_lon = min(min_lon, lon)
            max_lon = max(max_lon, lon)
            min_lat = min(min_lat, lat)
            max_lat = max(max_lat, lat)
        else:
            stack.extend(coords)

    if not math.isfinite(min_lon) or not math.isfinite(min_lat):
        return None
    return (min_lon, min_lat, max_lon, max_lat)


def point_within_bounds(point, bounds) -> bool:
    """Inclusive bounding-box test; False for malformed input."""
    pair = as_lon_lat(point)
    if pair is None or not isinstance(bounds, (list, tuple)) or len(bounds) < 4:
        return False
    lon, lat = pair
    min_lon, min_lat, max_lon, max_lat = bounds[:4]
    return min_lon <= lon <= max_lon and min_lat <= lat <= max_lat


# ── Centroid ────────────────────────────────────────────────────────

def geometry_centroid(geometry: dict | None) -> tuple[float, float] | None:
    """
    Vertex-average centroid of a geometry.

    This is NOT an area-weighted centroid. A Polygon uses the plain
    mean of its exterior ring vertices (holes ignored); a MultiPolygon
    averages the per-part exterior means. For concave or irregular
    shapes the result can be biased and may even fall outside the
    shape. Distance and insurance outputs depend on this behaviour.

    Returns:
        ``(lon, lat)`` or None for unsupported kinds (including
        MultiLineString) and geometries without usable points.
    """
    if not isinstance(geometry, dict):
        return None
    kind = geometry.get("type")
    coords = geometry.get("coordinates")

    if kind == "Point":
        return as_lon_lat(coords)
    if kind in ("MultiPoint", "LineString"):
        return _mean(_clean(coords))
    if kind == "Polygon":
        return _ring_centroid(_exterior(coords))
    if kind == "MultiPolygon":
        if not isinstance(coords, (list, tuple)):
            return None
        parts = []
        for polygon in coords:
            centroid = _ring_centroid(_exterior(polygon))
            if centroid is not None:
                parts.append(centroid)
        return _mean(parts)
    return None


def _ring_centroid(ring) -> tuple[float, float] | None:
    points = _clean(ring)
    if len(points) < MIN_RING_POINTS:
        return None
    return _mean(points)


# ── Point in polygon ────────────────────────────────────────────────

def point_in_ring(point, ring) -> bool:
    """
    Ray-casting test: count crossings of a horizontal ray from *point*.

    Points exactly on an edge follow the usual ray-casting tie rules
    and may land on either side. Rings with fewer than three usable
    vertices never contain anything.
    """
    pair = as_lon_lat(point)
    if pair is None:
        return False
    vertices = _clean(ring)
    if len(vertices) < MIN_RING_POINTS:
        return False

    x, y = pair
    inside = False
    j = len(vertices) - 1
    for i in range(len(vertices)):
        xi, yi = vertices[i]
        xj, yj = vertices[j]
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def _point_in_rings(point, rings) -> bool:
    if not isinstance(rings, (list, tuple)) or not rings:
        return False
    if not point_in_ring(point, rings[0]):
        return False
    for hole in rings[1:]:
        if point_in_ring(point, hole):
            return False
    return True


def point_in_polygon(point, geometry: dict | None) -> bool:
    """
    Test whether *point* lies inside a Polygon or MultiPolygon.

    A Polygon contains the point when its exterior ring does and none
    of its holes do. A MultiPolygon contains it when some part does;
    the first qualifying part ends the search. Other kinds are never
    containers.
    """
    if not isinstance(geometry, dict):
        return False
    kind = geometry.get("type")
    coords = geometry.get("coordinates")

    if kind == "Polygon":
        return _point_in_rings(point, coords)
    if kind == "MultiPolygon" and isinstance(coords, (list, tuple)):
        for polygon in coords:
            if _point_in_rings(point, polygon):
                return True
    return False


# ── Distance ────────────────────────────────────────────────────────

def haversine_km(lon1: float, lat1: float, lon2: float, lat2: float) -> float:
    """Great-circle distance in kilometres between two lon/lat points."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lon2 - lon1)
    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
