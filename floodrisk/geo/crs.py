"""
crs.py — Coordinate reference detection and reprojection to WGS84.

A FeatureCollection may carry ``crs.properties.name``; the identifier is
parsed into a canonical code and every coordinate is pushed through a
pyproj ``Transformer`` into (longitude, latitude) degrees.

Accepted identifiers:
    EPSG:32161, epsg/4269, urn:ogc:def:crs:EPSG::32161  → ``EPSG:<code>``
    urn:ogc:def:crs:OGC:1.3:CRS84                       → ``CRS:84``
    absent / anything else                              → ``EPSG:4326``
"""

import logging
import re
import threading

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

from floodrisk.errors import ProjectionConfigError

logger = logging.getLogger(__name__)

WGS84 = "EPSG:4326"
CRS84 = "CRS:84"

# Codes whose axis order is already lon/lat degrees
GEOGRAPHIC_CODES = frozenset({WGS84, CRS84})

# Definitions shipped with the engine. EPSG:32161 (NAD83 / Puerto Rico &
# Virgin Is.) and EPSG:4269 (NAD83 geographic) appear in the source data.
DEFAULT_DEFINITIONS = {
    "EPSG:32161": (
        "+proj=lcc +lat_0=17.8333333333333 +lon_0=-66.4333333333333 "
        "+lat_1=18.4333333333333 +lat_2=18.0333333333333 "
        "+x_0=200000 +y_0=200000 +ellps=GRS80 +towgs84=0,0,0,0,0,0,0 "
        "+units=m +no_defs +type=crs"
    ),
    "EPSG:4269": "+proj=longlat +ellps=GRS80 +towgs84=0,0,0,0,0,0,0 +no_defs +type=crs",
    CRS84: "+proj=longlat +datum=WGS84 +no_defs +type=crs",
}

_EPSG_PATTERN = re.compile(r"EPSG[:/]*(\d+)", re.IGNORECASE)
_CRS84_PATTERN = re.compile(r"CRS:?84", re.IGNORECASE)


# ── Identifier parsing ──────────────────────────────────────────────

def parse_crs_name(name) -> str:
    """Map a raw CRS name to a canonical code, defaulting to WGS84."""
    if not isinstance(name, str) or not name.strip():
        return WGS84
    match = _EPSG_PATTERN.search(name)
    if match:
        return f"EPSG:{int(match.group(1))}"
    if _CRS84_PATTERN.search(name):
        return CRS84
    logger.debug("Unrecognised CRS name %r, assuming %s", name, WGS84)
    return WGS84


def parse_crs(collection) -> str:
    """Read ``crs.properties.name`` from a collection and parse it."""
    if not isinstance(collection, dict):
        return WGS84
    crs = collection.get("crs") or {}
    props = crs.get("properties") if isinstance(crs, dict) else None
    name = props.get("name") if isinstance(props, dict) else None
    return parse_crs_name(name)


# ── Projection registry ─────────────────────────────────────────────

class ProjectionRegistry:
    """
    Code → projection definition lookup with cached transformers.

    Registered definitions take precedence over pyproj's own database.
    Registration is idempotent: registering a code twice keeps the
    first definition.

    Args:
        definitions: Initial definitions; defaults to
                     :data:`DEFAULT_DEFINITIONS`.
    """

    def __init__(self, definitions: dict | None = None):
        self._definitions: dict[str, str] = {}
        self._transformers: dict[tuple[str, str], Transformer] = {}
        self._lock = threading.Lock()
        if definitions is None:
            definitions = DEFAULT_DEFINITIONS
        for code, definition in definitions.items():
            self.register(code, definition)

    def register(self, code: str, definition: str) -> bool:
        """Register *definition* for *code*. Returns False if already present."""
        key = code.upper()
        with self._lock:
            if key in self._definitions:
                return False
            self._definitions[key] = definition
        logger.debug("Registered projection %s", key)
        return True

    def is_registered(self, code: str) -> bool:
        return code.upper() in self._definitions

    def ensure_definition(self, code: str) -> None:
        """Register the shipped fallback for *code* if nothing is registered yet."""
        if not self.is_registered(code) and code.upper() in DEFAULT_DEFINITIONS:
            self.register(code, DEFAULT_DEFINITIONS[code.upper()])

    def get_crs(self, code: str) -> CRS:
        """
        Resolve *code* to a pyproj CRS.

        Raises:
            ProjectionConfigError: neither a registered definition nor
                                   pyproj's database knows the code.
        """
        self.ensure_definition(code)
        definition = self._definitions.get(code.upper(), code)
        try:
            return CRS.from_user_input(definition)
        except CRSError as e:
            raise ProjectionConfigError(code, str(e)) from e

    def transformer(self, source: str, target: str = WGS84) -> Transformer:
        """Return a cached always-xy transformer from *source* to *target*."""
        key = (source.upper(), target.upper())
        cached = self._transformers.get(key)
        if cached is not None:
            return cached
        transformer = Transformer.from_crs(
            self.get_crs(source), self.get_crs(target), always_xy=True
        )
        with self._lock:
            self._transformers.setdefault(key, transformer)
        logger.info("Built transformer %s → %s", source, target)
        return self._transformers[key]


_default_registry: ProjectionRegistry | None = None


def get_default_registry() -> ProjectionRegistry:
    """Return the shared registry, creating it on first use."""
    global _default_registry
    if _default_registry is None:
        _default_registry = ProjectionRegistry()
    return _default_registry


# ── Coordinate transforms ───────────────────────────────────────────

def _drop_extra_dims(coord):
    return [coord[0], coord[1]]


def create_transformer(code: str, registry: ProjectionRegistry | None = None, inverse: bool = False):
    """
    Build a function mapping one ``[x, y, ...]`` coordinate to
    ``[lon, lat]`` (or the reverse when *inverse* is set).

    Geographic sources get an identity transform that only drops
    trailing dimensions.
    """
    if not code or code.upper() in GEOGRAPHIC_CODES:
        return _drop_extra_dims

    registry = registry or get_default_registry()
    if inverse:
        transformer = registry.transformer(WGS84, code)
    else:
        transformer = registry.transformer(code, WGS84)

    def transform(coord):
        x, y = transformer.transform(coord[0], coord[1])
        return [x, y]

    return transform


def transform_geometry(geometry, transform):
    """
    Apply *transform* to every coordinate of a geometry.

    Recurses exactly as deep as each kind requires and returns a new
    dict; unknown kinds and null geometries come back unchanged.
    """
    if not isinstance(geometry, dict):
        return geometry

    kind = geometry.get("type")
    coords = geometry.get("coordinates")

    if kind == "Point":
        new_coords = transform(coords)
    elif kind in ("MultiPoint", "LineString"):
        new_coords = [transform(c) for c in coords]
    elif kind in ("MultiLineString", "Polygon"):
        new_coords = [[transform(c) for c in ring] for ring in coords]
    elif kind == "MultiPolygon":
        new_coords = [
            [[transform(c) for c in ring] for ring in polygon]
            for polygon in coords
        ]
    else:
        return geometry

    return {**geometry, "coordinates": new_coords}


def normalize_features(collection: dict, registry: ProjectionRegistry | None = None) -> list[dict]:
    """
    Reproject a collection's features to WGS84 lon/lat.

    A feature whose coordinates cannot be transformed keeps its
    properties but gets a null geometry, which excludes it from every
    spatial query downstream.

    Raises:
        ProjectionConfigError: the collection's CRS cannot be resolved.
    """
    code = parse_crs(collection)
    transform = create_transformer(code, registry)

    features = collection.get("features") or []
    normalized = []
    failed = 0
    for feature in features:
        if not isinstance(feature, dict):
            failed += 1
            continue
        try:
            geometry = transform_geometry(feature.get("geometry"), transform)
        except (TypeError, ValueError, IndexError, KeyError, ProjError) as e:
            logger.debug("Dropping geometry that failed to transform: %s", e)
            geometry = None
            failed += 1
        normalized.append({**feature, "geometry": geometry})

    logger.info(
        "Normalized %d features from %s (%d transform failures)",
        len(normalized), code, failed,
    )
    return normalized


def normalize_collection(collection: dict, registry: ProjectionRegistry | None = None) -> dict:
    """Return a new WGS84 FeatureCollection (the ``crs`` member is dropped)."""
    return {
        "type": "FeatureCollection",
        "features": normalize_features(collection, registry),
    }
