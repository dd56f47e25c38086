"""
feature_index.py — Annotated features with bbox pre-filtered lookup.

Annotation is a one-shot builder step: a raw GeoJSON feature goes in,
a frozen :class:`IndexedFeature` carrying its bounds (and, on request,
its centroid) comes out. Later enrichment (parcel metrics, percentile
ranks) produces a new record via :meth:`IndexedFeature.evolve`; nothing
is ever mutated while visible to queries.

Lookup order is load order, which doubles as the tie-break when
several features contain the same point.
"""

import logging
import warnings
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Iterator, Mapping, Sequence

from floodrisk.errors import DataQualityWarning
from floodrisk.geo.geometry import (
    geometry_bounds,
    geometry_centroid,
    point_in_polygon,
    point_within_bounds,
)
from floodrisk.index.percentile import as_finite

logger = logging.getLogger(__name__)

_EMPTY = MappingProxyType({})

# Property names holding an explicit location for parcels
LATITUDE_KEY = "LATITUDE"
LONGITUDE_KEY = "LONGITUDE"


def feature_properties(feature) -> Mapping:
    """The feature's properties, or an empty mapping when they are missing or malformed."""
    properties = feature.get("properties") if isinstance(feature, dict) else None
    return properties if isinstance(properties, Mapping) else _EMPTY


@dataclass(frozen=True)
class IndexedFeature:
    """
    Immutable feature record plus engine-derived annotations.

    Attributes:
        feature:     The normalized GeoJSON feature dict.
        bounds:      ``(min_lon, min_lat, max_lon, max_lat)`` or None.
        centroid:    ``(lon, lat)`` or None.
        category:    Category name (``zones``, ``shelters``, ``parcels``).
        subcategory: Tier within the category, e.g. a zone id.
        metrics:     Derived numeric properties.
        percentiles: Percentile rank per metric name.
    """

    feature: dict
    bounds: tuple | None
    centroid: tuple | None = None
    category: str = ""
    subcategory: str | None = None
    metrics: Mapping = field(default_factory=lambda: _EMPTY)
    percentiles: Mapping = field(default_factory=lambda: _EMPTY)

    @property
    def geometry(self) -> dict | None:
        return self.feature.get("geometry")

    @property
    def properties(self) -> Mapping:
        return feature_properties(self.feature)

    def contains(self, point) -> bool:
        """Bbox reject first, exact ray-casting test second."""
        if self.bounds is None or not point_within_bounds(point, self.bounds):
            return False
        return point_in_polygon(point, self.geometry)

    def evolve(self, **changes) -> "IndexedFeature":
        """Return a copy with *changes*; mappings are frozen on the way in."""
        for key in ("metrics", "percentiles"):
            if key in changes:
                changes[key] = MappingProxyType(dict(changes[key]))
        return replace(self, **changes)


def explicit_location(properties: Mapping) -> tuple[float, float] | None:
    """Return ``(lon, lat)`` from LONGITUDE/LATITUDE properties if both are finite."""
    lon = as_finite(properties.get(LONGITUDE_KEY))
    lat = as_finite(properties.get(LATITUDE_KEY))
    if lon is None or lat is None:
        return None
    return (lon, lat)


def resolve_centroid(feature: dict) -> tuple[float, float] | None:
    """
    Centroid with fallback: geometry vertex-average, then the explicit
    LONGITUDE/LATITUDE properties, then None.
    """
    centroid = geometry_centroid(feature.get("geometry"))
    if centroid is not None:
        return centroid
    return explicit_location(feature_properties(feature))


def annotate_feature(
    feature: dict,
    category: str,
    subcategory: str | None = None,
    with_centroid: bool = False,
) -> IndexedFeature | None:
    """
    Build an :class:`IndexedFeature` for one raw feature.

    Returns:
        None when the feature has no geometry (it takes part in no
        spatial query).
    """
    if not isinstance(feature, dict) or not feature.get("geometry"):
        return None
    return IndexedFeature(
        feature=feature,
        bounds=geometry_bounds(feature["geometry"]),
        centroid=resolve_centroid(feature) if with_centroid else None,
        category=category,
        subcategory=subcategory,
    )


def annotate_features(
    features: Sequence[dict],
    category: str,
    subcategory: str | None = None,
    with_centroid: bool = False,
) -> list[IndexedFeature]:
    """Annotate a whole collection, skipping (and reporting) unusable features."""
    label = f"{category}/{subcategory}" if subcategory else category
    annotated = []
    for position, feature in enumerate(features):
        record = annotate_feature(feature, category, subcategory, with_centroid)
        if record is None:
            logger.debug("Skipping %s feature #%d without geometry", label, position)
            continue
        annotated.append(record)

    skipped = len(features) - len(annotated)
    if skipped:
        warnings.warn(
            f"{label}: skipped {skipped} of {len(features)} features without geometry",
            DataQualityWarning,
            stacklevel=2,
        )
    logger.info("Annotated %d %s features (%d skipped)", len(annotated), label, skipped)
    return annotated


class FeatureIndex:
    """
    Ordered, read-only collection of annotated features for one category.

    Args:
        category: Category name.
        features: Annotated features in load order.
    """

    def __init__(self, category: str, features: Sequence[IndexedFeature]):
        self.category = category
        self._features = tuple(features)

    @classmethod
    def from_features(
        cls,
        category: str,
        features: Sequence[dict],
        subcategory: str | None = None,
        with_centroid: bool = False,
    ) -> "FeatureIndex":
        return cls(category, annotate_features(features, category, subcategory, with_centroid))

    def __iter__(self) -> Iterator[IndexedFeature]:
        return iter(self._features)

    def __len__(self) -> int:
        return len(self._features)

    @property
    def features(self) -> tuple[IndexedFeature, ...]:
        return self._features

    def candidates(self, point) -> Iterator[IndexedFeature]:
        """Features whose bounding box holds *point* (no exact test)."""
        for record in self._features:
            if record.bounds is not None and point_within_bounds(point, record.bounds):
                yield record

    def find_containing(self, point) -> IndexedFeature | None:
        """First feature, in load order, whose geometry contains *point*."""
        for record in self.candidates(point):
            if point_in_polygon(point, record.geometry):
                return record
        return None


class PriorityIndex:
    """
    Several :class:`FeatureIndex` tiers searched in a fixed priority.

    A point belongs only to the first tier (highest priority) with a
    containing feature; lower tiers are never consulted after a hit.

    Args:
        category: Category name.
        tiers:    ``(tier_id, FeatureIndex)`` pairs, highest priority first.
    """

    def __init__(self, category: str, tiers: Sequence[tuple[str, FeatureIndex]]):
        self.category = category
        self._tiers = tuple(tiers)

    @classmethod
    def from_collections(
        cls,
        category: str,
        collections: Mapping[str, Sequence[dict]],
        priority: Sequence[str],
    ) -> "PriorityIndex":
        """
        Build tiers from ``tier_id → features`` following *priority*.

        Tiers missing from *collections* (e.g. failed loads) are left
        out; tiers not named in *priority* are ignored.
        """
        tiers = []
        for tier_id in priority:
            if tier_id not in collections:
                continue
            index = FeatureIndex.from_features(
                category, collections[tier_id], subcategory=tier_id
            )
            tiers.append((tier_id, index))
        return cls(category, tiers)

    @property
    def tier_ids(self) -> tuple[str, ...]:
        return tuple(tier_id for tier_id, _ in self._tiers)

    def tier(self, tier_id: str) -> FeatureIndex | None:
        for candidate_id, index in self._tiers:
            if candidate_id == tier_id:
                return index
        return None

    def __len__(self) -> int:
        return sum(len(index) for _, index in self._tiers)

    def find_containing(self, point) -> tuple[str, IndexedFeature] | None:
        """Return ``(tier_id, feature)`` for the highest-priority hit."""
        for tier_id, index in self._tiers:
            match = index.find_containing(point)
            if match is not None:
                return tier_id, match
        return None
