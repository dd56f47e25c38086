"""
parcels.py — Load-time parcel value metrics, rankers and statistics.

Each parcel gets its value metrics computed once, then the percentile
of each ranked metric within the whole loaded dataset:

    Metric             Source
    ────────────────   ───────────────────────────────────────
    landValue          Land_Value
    improvementValue   Improved_V
    totalValue         landValue + improvementValue
    valuePerSqMeter    totalValue / SHAPE_Area
    valuePerAcre       totalValue / (SHAPE_Area / 4046.8564224)

Non-numeric source values count as 0, and per-area metrics are 0 when
the area is not positive.
"""

import logging
import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Sequence

from floodrisk.geo.geometry import geometry_centroid, is_valid_lon_lat
from floodrisk.index.feature_index import (
    FeatureIndex,
    IndexedFeature,
    annotate_features,
    explicit_location,
)
from floodrisk.index.percentile import PercentileRanker, as_finite

logger = logging.getLogger(__name__)

CATEGORY = "parcels"

ACRE_IN_SQ_METERS = 4046.8564224

# Source property names
LAND_VALUE_KEY = "Land_Value"
IMPROVEMENT_VALUE_KEY = "Improved_V"
AREA_KEY = "SHAPE_Area"
NAME_KEY = "Name"
DEFAULT_DISPLAY_NAME = "Unnamed Parcel"

RANKED_METRICS = ("totalValue", "improvementValue", "valuePerAcre")

# Value-per-m² samples outside this range are treated as data errors
VALUE_PER_SQ_METER_MIN = 0.1
VALUE_PER_SQ_METER_MAX = 5000.0
BREAK_QUANTILES = (0.2, 0.4, 0.6, 0.8)


def _number_or_zero(value) -> float:
    number = as_finite(value)
    return number if number is not None else 0.0


def compute_value_metrics(properties: Mapping) -> dict:
    """Derive the value metrics of one parcel from its raw properties."""
    if not isinstance(properties, Mapping):
        properties = {}
    land_value = _number_or_zero(properties.get(LAND_VALUE_KEY))
    improvement_value = _number_or_zero(properties.get(IMPROVEMENT_VALUE_KEY))
    total_value = land_value + improvement_value

    area = _number_or_zero(properties.get(AREA_KEY))
    value_per_sq_meter = total_value / area if area > 0 else 0.0
    acres = area / ACRE_IN_SQ_METERS if area > 0 else 0.0
    value_per_acre = total_value / acres if acres > 0 else 0.0

    return {
        "landValue": land_value,
        "improvementValue": improvement_value,
        "totalValue": total_value,
        "areaSqMeters": area,
        "valuePerSqMeter": value_per_sq_meter,
        "valuePerAcre": value_per_acre,
        "displayName": properties.get(NAME_KEY) or DEFAULT_DISPLAY_NAME,
    }


def quantile_breaks(values: Sequence[float], quantiles: Sequence[float] = BREAK_QUANTILES) -> list[float]:
    """Pick ``sorted[min(n-1, floor(q*(n-1)))]`` for each quantile."""
    ordered = sorted(values)
    if not ordered:
        return []
    last = len(ordered) - 1
    return [ordered[min(last, math.floor(q * last))] for q in quantiles]


@dataclass(frozen=True)
class ParcelStats:
    """Collection-level summary of a parcel load."""

    value_min: float | None
    value_max: float | None
    breaks: tuple
    extent: tuple | None
    mean_centroid: tuple | None


def compute_parcel_stats(parcels: Sequence[IndexedFeature]) -> ParcelStats:
    """
    Value-per-m² range and quantile breaks, plus the extent and mean of
    all valid parcel centroids.
    """
    values = []
    for parcel in parcels:
        value = parcel.metrics.get("valuePerSqMeter", 0.0)
        if math.isfinite(value) and value > 0 and VALUE_PER_SQ_METER_MIN <= value <= VALUE_PER_SQ_METER_MAX:
            values.append(value)

    centroids = [p.centroid for p in parcels if p.centroid is not None and is_valid_lon_lat(p.centroid)]
    extent = None
    mean_centroid = None
    if centroids:
        lons = [c[0] for c in centroids]
        lats = [c[1] for c in centroids]
        extent = (min(lons), min(lats), max(lons), max(lats))
        mean_centroid = (sum(lons) / len(lons), sum(lats) / len(lats))

    return ParcelStats(
        value_min=min(values) if values else None,
        value_max=max(values) if values else None,
        breaks=tuple(quantile_breaks(values)),
        extent=extent,
        mean_centroid=mean_centroid,
    )


@dataclass(frozen=True)
class ParcelDataset:
    """Everything the resolver needs about one parcel load."""

    index: FeatureIndex
    rankers: Mapping
    stats: ParcelStats

    def __len__(self) -> int:
        return len(self.index)


def build_parcel_dataset(features: Sequence[dict]) -> ParcelDataset:
    """
    Annotate parcels, compute metrics, build rankers and attach each
    parcel's percentile ranks. Every step produces new records.
    """
    annotated = annotate_features(features, CATEGORY, with_centroid=True)
    with_metrics = [
        parcel.evolve(metrics=compute_value_metrics(parcel.properties))
        for parcel in annotated
    ]

    rankers = {
        name: PercentileRanker.build(p.metrics[name] for p in with_metrics)
        for name in RANKED_METRICS
    }
    ranked = [
        parcel.evolve(percentiles={
            name: rankers[name].rank(parcel.metrics[name]) for name in RANKED_METRICS
        })
        for parcel in with_metrics
    ]

    stats = compute_parcel_stats(ranked)
    logger.info(
        "Built parcel dataset: %d parcels, value/m² range %s – %s",
        len(ranked), stats.value_min, stats.value_max,
    )
    return ParcelDataset(
        index=FeatureIndex(CATEGORY, ranked),
        rankers=MappingProxyType(rankers),
        stats=stats,
    )


# ── Name search ─────────────────────────────────────────────────────

def find_parcel_by_name(index: FeatureIndex, query: str) -> IndexedFeature | None:
    """
    Case-insensitive substring search over parcel display names.

    Ranking: exact match, then prefix match, then earliest match
    position; ties go to the shorter name, then load order.
    """
    if not isinstance(query, str):
        return None
    needle = query.strip().lower()
    if not needle:
        return None

    best = None
    best_key = None
    for parcel in index:
        name = str(parcel.metrics.get("displayName") or "").strip()
        if not name:
            continue
        lower = name.lower()
        position = lower.find(needle)
        if position == -1:
            continue
        if lower == needle:
            rank = -2
        elif position == 0:
            rank = -1
        else:
            rank = position
        key = (rank, len(name))
        if best_key is None or key < best_key:
            best, best_key = parcel, key
    return best


def parcel_location(parcel: IndexedFeature) -> tuple[float, float] | None:
    """Centroid, then LONGITUDE/LATITUDE, then a fresh geometry centroid."""
    if parcel.centroid is not None:
        return parcel.centroid
    location = explicit_location(parcel.properties)
    if location is not None:
        return location
    return geometry_centroid(parcel.geometry)
