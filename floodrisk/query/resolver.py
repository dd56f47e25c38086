"""
resolver.py — Point queries over the loaded flood zone, parcel and
shelter data.

Three primitive queries, each taking a WGS84 ``(lon, lat)`` point:

  find_flood_zone(point)               → zone tier + matched feature
  find_parcel(point)                   → parcel + distance to its centroid
  find_nearest_shelter(point, parcel)  → shelter + distance, with the
                                         reserved-shelter override

and two composed summaries consumed by the presentation layer:

  summarize_point(point)   map-click flow (parcel first, then zone,
                           shelter and insurance)
  summarize_parcel(name)   parcel search flow

All inputs live in an immutable :class:`EngineState`; a reload builds a
new state and a new resolver instead of touching this one.
"""

import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping

from floodrisk.geo.geometry import haversine_km, is_valid_lon_lat
from floodrisk.index.feature_index import (
    FeatureIndex,
    IndexedFeature,
    PriorityIndex,
    feature_properties,
)
from floodrisk.index.parcels import ParcelDataset, find_parcel_by_name, parcel_location
from floodrisk.query.risk_profiles import (
    FLOOD_ZONES,
    NO_ZONE,
    estimate_premium,
    flood_elevation_details,
    get_risk_profile,
    get_zone_risk_percent,
    is_finite_positive,
    recommended_coverage,
)
from floodrisk.query.shelter_policy import (
    WATER_ISLAND_RULE,
    ReservedShelterRule,
    shelter_lon_lat,
)

logger = logging.getLogger(__name__)

KM_TO_MILES = 0.621371

OUTSIDE_SFHA_DESCRIPTION = (
    "This point is outside the Special Flood Hazard Area. "
    "Flash flooding is still possible in extreme storms."
)

CATEGORIES = ("zones", "shelters", "parcels")


@dataclass(frozen=True)
class EngineState:
    """
    Published, read-only snapshot of every loaded category.

    A category that has not loaded (or failed to) is None; the reason
    for a failure is kept in ``load_errors``.
    """

    zones: PriorityIndex | None = None
    shelters: FeatureIndex | None = None
    parcels: ParcelDataset | None = None
    load_errors: Mapping = field(default_factory=lambda: MappingProxyType({}))

    def with_changes(self, **changes) -> "EngineState":
        if "load_errors" in changes:
            changes["load_errors"] = MappingProxyType(dict(changes["load_errors"]))
        return replace(self, **changes)

    def is_loaded(self, category: str) -> bool:
        return getattr(self, category, None) is not None

    @property
    def unavailable(self) -> list[str]:
        return [c for c in CATEGORIES if not self.is_loaded(c)]


def _context_properties(context) -> Mapping | None:
    if isinstance(context, IndexedFeature):
        return context.properties
    if isinstance(context, dict):
        return feature_properties(context)
    return None


class QueryResolver:
    """
    Answers point queries against one :class:`EngineState`.

    Args:
        state:        The loaded data snapshot.
        zone_config:  ``zone_id → {label, description}``.
        shelter_rule: Reserved-shelter override, or None to disable it.
    """

    def __init__(
        self,
        state: EngineState,
        zone_config: Mapping = FLOOD_ZONES,
        shelter_rule: ReservedShelterRule | None = WATER_ISLAND_RULE,
    ):
        self.state = state
        self.zone_config = zone_config
        self.shelter_rule = shelter_rule

    # ── Primitive queries ───────────────────────────────────────────

    def find_flood_zone(self, point) -> dict | None:
        """Highest-priority zone containing *point*, or None."""
        if self.state.zones is None or not is_valid_lon_lat(point):
            return None
        hit = self.state.zones.find_containing(point)
        if hit is None:
            return None
        zone_id, feature = hit
        config = self.zone_config.get(zone_id, {})
        return {
            "zone_id": zone_id,
            "label": config.get("label", zone_id),
            "description": config.get("description", ""),
            "feature": feature,
        }

    def find_parcel(self, point) -> dict | None:
        """First parcel (load order) containing *point*, or None."""
        if self.state.parcels is None or not is_valid_lon_lat(point):
            return None
        parcel = self.state.parcels.index.find_containing(point)
        if parcel is None:
            return None
        distance_km = 0.0
        if parcel.centroid is not None:
            distance_km = haversine_km(point[0], point[1], parcel.centroid[0], parcel.centroid[1])
        return {"feature": parcel, "distance_km": distance_km}

    def find_nearest_shelter(self, point, context=None) -> dict | None:
        """
        Nearest shelter by great-circle distance, subject to the
        reserved-shelter rule (see :mod:`floodrisk.query.shelter_policy`).

        Args:
            point:   Query ``(lon, lat)``.
            context: Parcel (IndexedFeature or feature dict) whose legal
                     description decides the override.
        """
        if self.state.shelters is None or not is_valid_lon_lat(point):
            return None

        rule = self.shelter_rule
        reserved_applies = rule is not None and rule.applies_to(_context_properties(context))
        reserved = None
        closest = None

        for shelter in self.state.shelters:
            location = shelter_lon_lat(shelter.feature)
            if location is None:
                continue
            is_reserved = rule is not None and rule.is_reserved(shelter.properties)
            if is_reserved and reserved is None:
                reserved = (shelter, location)
            if is_reserved and not reserved_applies:
                continue
            distance_km = haversine_km(point[0], point[1], location[0], location[1])
            if closest is None or distance_km < closest[2]:
                closest = (shelter, location, distance_km)

        if reserved_applies and reserved is not None:
            shelter, location = reserved
            distance_km = haversine_km(point[0], point[1], location[0], location[1])
            return self._shelter_result(shelter, location, distance_km, True)
        if closest is None:
            return None
        return self._shelter_result(*closest, False)

    @staticmethod
    def _shelter_result(shelter, location, distance_km, reserved) -> dict:
        return {
            "feature": shelter,
            "name": shelter.properties.get("Name") or "Shelter",
            "location": location,
            "distance_km": distance_km,
            "distance_mi": distance_km * KM_TO_MILES,
            "reserved": reserved,
        }

    # ── Derived metrics ─────────────────────────────────────────────

    def insurance_estimate(self, zone_id: str | None, parcel: IndexedFeature | None) -> dict | None:
        """
        Premium and coverage for a parcel in a zone; None when the
        parcel has no positive total value.
        """
        if parcel is None:
            return None
        value = parcel.metrics.get("totalValue")
        if not is_finite_positive(value):
            return None
        profile = get_risk_profile(zone_id)
        return {
            "zone_id": zone_id or NO_ZONE,
            "property_value": value,
            "estimated_premium": estimate_premium(value, zone_id),
            "recommended_coverage": recommended_coverage(value),
            "recommendation": profile["recommendation"],
            "percentiles": dict(parcel.percentiles),
        }

    # ── Summaries ───────────────────────────────────────────────────

    def summarize_point(self, point) -> dict:
        """
        Map-click flow: a point outside every parcel yields
        ``status: "no_parcel"`` and nothing else.
        """
        if not is_valid_lon_lat(point):
            return self._summary("invalid_point", point)
        parcel_result = self.find_parcel(point)
        if parcel_result is None:
            return self._summary("no_parcel", point)
        return self._full_summary(point, parcel_result)

    def summarize_parcel(self, name: str) -> dict:
        """Parcel search flow: locate a parcel by name and summarize it."""
        if self.state.parcels is None:
            return self._summary("parcels_unavailable", None)
        parcel = find_parcel_by_name(self.state.parcels.index, name)
        if parcel is None:
            return self._summary("not_found", None)
        location = parcel_location(parcel)
        if location is None or not is_valid_lon_lat(location):
            return self._summary("no_location", None)
        return self._full_summary(location, {"feature": parcel, "distance_km": 0.0})

    def _summary(self, status: str, point, **sections) -> dict:
        summary = {
            "status": status,
            "point": list(point[:2]) if isinstance(point, (list, tuple)) else None,
            "unavailable": self.state.unavailable,
        }
        summary.update(sections)
        return summary

    def _full_summary(self, point, parcel_result: dict) -> dict:
        parcel = parcel_result["feature"]
        zone_result = self.find_flood_zone(point)
        shelter_result = self.find_nearest_shelter(point, parcel)
        zone_id = zone_result["zone_id"] if zone_result else NO_ZONE

        logger.debug(
            "Summary at %s: parcel=%s zone=%s shelter=%s",
            point, parcel.metrics.get("displayName"), zone_id,
            shelter_result["name"] if shelter_result else None,
        )
        return self._summary(
            "ok",
            point,
            parcel=parcel_section(parcel_result),
            risk=risk_section(zone_result),
            shelter=shelter_section(shelter_result),
            insurance=self.insurance_estimate(zone_id, parcel),
        )


# ── Plain-data sections ─────────────────────────────────────────────

def parcel_section(parcel_result: dict) -> dict:
    parcel = parcel_result["feature"]
    return {
        "name": parcel.metrics.get("displayName"),
        "distance_km": parcel_result["distance_km"],
        "centroid": list(parcel.centroid) if parcel.centroid else None,
        "metrics": dict(parcel.metrics),
        "percentiles": dict(parcel.percentiles),
    }


def risk_section(zone_result: dict | None) -> dict:
    zone_id = zone_result["zone_id"] if zone_result else NO_ZONE
    profile = get_risk_profile(zone_id)
    section = {
        "zone_id": zone_id,
        "label": zone_result["label"] if zone_result else None,
        "severity": profile["severity"],
        "description": zone_result["description"] if zone_result else OUTSIDE_SFHA_DESCRIPTION,
        "risk_percent": get_zone_risk_percent(zone_id),
    }
    if zone_result:
        section.update(flood_elevation_details(zone_result["feature"].properties))
    return section


def shelter_section(shelter_result: dict | None) -> dict | None:
    if shelter_result is None:
        return None
    return {
        "name": shelter_result["name"],
        "location": list(shelter_result["location"]),
        "distance_km": shelter_result["distance_km"],
        "distance_mi": shelter_result["distance_mi"],
        "reserved": shelter_result["reserved"],
    }
