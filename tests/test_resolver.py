"""Tests for floodrisk/query/resolver.py — point queries and summaries."""

import pytest

from floodrisk.geo.geometry import haversine_km
from floodrisk.index.feature_index import FeatureIndex
from floodrisk.query.resolver import (
    KM_TO_MILES,
    OUTSIDE_SFHA_DESCRIPTION,
    EngineState,
    QueryResolver,
)
from floodrisk.query.risk_profiles import NO_ZONE
from floodrisk.query.shelter_policy import WATER_ISLAND_RULE, shelter_lon_lat

from builders import STACKED_POINT, point_feature

# Inside parcel "Water Island 7" and zone A only
WATER_ISLAND_POINT = (-64.95, 18.322)
OFF_PARCEL_POINT = (-64.70, 18.40)


class TestFindFloodZone:
    """Zone lookup with priority."""

    def test_stacked_zones_resolve_to_highest(self, engine_state):
        """VE wins where VE, AE and A overlap."""
        result = QueryResolver(engine_state).find_flood_zone(STACKED_POINT)
        assert result["zone_id"] == "VE"
        assert result["label"] == "Zone VE"
        assert result["feature"].properties["FLD_ZONE"] == "VE"

    def test_no_zone(self, engine_state):
        """Outside every zone there is no result."""
        assert QueryResolver(engine_state).find_flood_zone(OFF_PARCEL_POINT) is None

    def test_invalid_point(self, engine_state):
        """Out-of-range points are never resolved."""
        assert QueryResolver(engine_state).find_flood_zone((-200.0, 18.3)) is None

    def test_custom_zone_config(self, engine_state):
        """Labels come from the configured zone table."""
        resolver = QueryResolver(engine_state, zone_config={"VE": {"label": "Coastal"}})
        result = resolver.find_flood_zone(STACKED_POINT)
        assert result["label"] == "Coastal"
        assert result["description"] == ""


class TestFindParcel:
    """Parcel containment and centroid distance."""

    def test_parcel_and_distance(self, engine_state):
        """The containing parcel is returned with its centroid distance."""
        result = QueryResolver(engine_state).find_parcel(STACKED_POINT)
        parcel = result["feature"]
        assert parcel.metrics["displayName"] == "Estate Bovoni 12"
        expected = haversine_km(STACKED_POINT[0], STACKED_POINT[1], *parcel.centroid)
        assert result["distance_km"] == pytest.approx(expected)

    def test_no_parcel(self, engine_state):
        """Points outside every parcel find nothing."""
        assert QueryResolver(engine_state).find_parcel(OFF_PARCEL_POINT) is None

    def test_parcels_not_loaded(self):
        """An empty state answers None."""
        assert QueryResolver(EngineState()).find_parcel(STACKED_POINT) is None


class TestReservedShelterRule:
    """Nearest-shelter search with the reserved-shelter override."""

    def setup_method(self):
        self.point = (-64.93, 18.35)
        # ~0.1 km away, and ~50 km away
        self.near = point_feature(-64.93, 18.3509, Name="Bovoni Community Center")
        self.reserved = point_feature(-64.93, 18.80, Name="Water Island Station")
        self.island_parcel = {"properties": {"Tax_Legal_": "Parcel 4 Water Island"}}
        self.other_parcel = {"properties": {"Tax_Legal_": "Parcel 4 Estate Bovoni"}}

    def _resolver(self, *shelters):
        state = EngineState(shelters=FeatureIndex.from_features("shelters", list(shelters)))
        return QueryResolver(state)

    def test_matching_context_always_gets_reserved_shelter(self):
        """The community's shelter wins even when another is much closer."""
        result = self._resolver(self.near, self.reserved).find_nearest_shelter(
            self.point, self.island_parcel
        )
        assert result["name"] == "Water Island Station"
        assert result["reserved"] is True
        assert result["distance_km"] == pytest.approx(
            haversine_km(-64.93, 18.35, -64.93, 18.80)
        )

    def test_other_context_never_gets_reserved_shelter(self):
        """Residents elsewhere are pointed at the nearest other shelter."""
        resolver = self._resolver(self.reserved, self.near)
        result = resolver.find_nearest_shelter(self.point, self.other_parcel)
        assert result["name"] == "Bovoni Community Center"
        assert result["reserved"] is False
        assert result["distance_km"] == pytest.approx(0.1, abs=0.01)

    def test_reserved_excluded_even_when_nearest(self):
        """Without the token, a closer reserved shelter is skipped."""
        reserved_near = point_feature(-64.93, 18.3501, Name="  water island station ")
        far = point_feature(-64.93, 18.80, Name="Far Shelter")
        result = self._resolver(reserved_near, far).find_nearest_shelter(self.point)
        assert result["name"] == "Far Shelter"

    def test_only_reserved_shelter_gives_none(self):
        """If the reserved shelter is the only one, outsiders get no shelter."""
        assert self._resolver(self.reserved).find_nearest_shelter(self.point) is None

    def test_rule_disabled(self):
        """With no rule, the reserved shelter is an ordinary candidate."""
        state = EngineState(shelters=FeatureIndex.from_features("shelters", [self.reserved]))
        result = QueryResolver(state, shelter_rule=None).find_nearest_shelter(self.point)
        assert result["name"] == "Water Island Station"

    def test_distance_in_miles(self):
        """Miles are derived from kilometres."""
        result = self._resolver(self.near).find_nearest_shelter(self.point)
        assert result["distance_mi"] == pytest.approx(result["distance_km"] * KM_TO_MILES)

    def test_multipoint_shelter(self):
        """A MultiPoint shelter is located at its first point."""
        feature = {"type": "Feature", "properties": {"Name": "Multi"},
                   "geometry": {"type": "MultiPoint", "coordinates": [[1, 2], [3, 4]]}}
        assert shelter_lon_lat(feature) == (1.0, 2.0)

    def test_rule_matching(self):
        """Name matching is trimmed and case-insensitive; token search too."""
        assert WATER_ISLAND_RULE.is_reserved({"Name": " WATER ISLAND STATION"})
        assert not WATER_ISLAND_RULE.is_reserved({"Name": "Water Island"})
        assert WATER_ISLAND_RULE.applies_to({"Tax_Legal_": "lot 3 water island"})
        assert not WATER_ISLAND_RULE.applies_to({"Tax_Legal_": None})
        assert not WATER_ISLAND_RULE.applies_to(None)
        assert not WATER_ISLAND_RULE.applies_to("water island")
        assert not WATER_ISLAND_RULE.is_reserved(["Water Island Station"])

    def test_shelter_with_non_mapping_properties(self):
        """A shelter whose properties are not an object is a plain unnamed candidate."""
        unnamed = point_feature(-64.93, 18.3501)
        unnamed["properties"] = ["x"]
        result = self._resolver(unnamed, self.near).find_nearest_shelter(self.point)
        assert result["name"] == "Shelter"
        assert result["reserved"] is False

    def test_context_with_non_mapping_properties(self):
        """A context with malformed properties never gets the reserved shelter."""
        resolver = self._resolver(self.reserved, self.near)
        result = resolver.find_nearest_shelter(self.point, {"properties": "garbage"})
        assert result["name"] == "Bovoni Community Center"


class TestInsurance:
    """Premium estimates attached to summaries."""

    def test_estimate(self, engine_state):
        """A VE parcel worth 250k pays the VE rate."""
        resolver = QueryResolver(engine_state)
        parcel = resolver.find_parcel(STACKED_POINT)["feature"]
        estimate = resolver.insurance_estimate("VE", parcel)
        assert estimate["property_value"] == 250000.0
        assert estimate["estimated_premium"] == pytest.approx(4500.0)
        assert estimate["recommended_coverage"] == 250000.0
        assert estimate["percentiles"]["totalValue"] == 1.0

    def test_no_parcel_or_value(self, engine_state):
        """Missing parcels or zero values yield no estimate."""
        resolver = QueryResolver(engine_state)
        assert resolver.insurance_estimate("VE", None) is None
        parcel = resolver.find_parcel(STACKED_POINT)["feature"]
        worthless = parcel.evolve(metrics={**parcel.metrics, "totalValue": 0.0})
        assert resolver.insurance_estimate("VE", worthless) is None


class TestSummaries:
    """Composed map-click and parcel-search summaries."""

    def test_point_summary(self, engine_state):
        """A stacked point gives parcel, VE risk, shelter and insurance."""
        summary = QueryResolver(engine_state).summarize_point(STACKED_POINT)
        assert summary["status"] == "ok"
        assert summary["point"] == [-64.93, 18.35]
        assert summary["unavailable"] == []
        assert summary["parcel"]["name"] == "Estate Bovoni 12"
        assert summary["risk"]["zone_id"] == "VE"
        assert summary["risk"]["base_flood_elevation_ft"] == 14.0
        assert summary["shelter"]["name"] == "Bovoni Community Center"
        assert summary["shelter"]["reserved"] is False
        assert summary["insurance"]["estimated_premium"] == pytest.approx(4500.0)

    def test_water_island_point(self, engine_state):
        """A Water Island parcel is sent to its reserved shelter."""
        summary = QueryResolver(engine_state).summarize_point(WATER_ISLAND_POINT)
        assert summary["parcel"]["name"] == "Water Island 7"
        assert summary["risk"]["zone_id"] == "A"
        assert summary["risk"]["flood_depth_ft"] == 2.0
        assert "base_flood_elevation_ft" not in summary["risk"]
        assert summary["shelter"]["name"] == "Water Island Station"
        assert summary["shelter"]["reserved"] is True

    def test_no_parcel(self, engine_state):
        """Clicking outside every parcel reports only the status."""
        summary = QueryResolver(engine_state).summarize_point(OFF_PARCEL_POINT)
        assert summary["status"] == "no_parcel"
        assert "risk" not in summary
        assert "shelter" not in summary

    def test_invalid_point(self, engine_state):
        """Malformed points are rejected up front."""
        summary = QueryResolver(engine_state).summarize_point((200.0, 0.0))
        assert summary["status"] == "invalid_point"

    def test_parcel_search(self, engine_state):
        """A parcel found by name is summarized at its centroid."""
        summary = QueryResolver(engine_state).summarize_parcel("water island")
        assert summary["status"] == "ok"
        assert summary["point"] == pytest.approx([-64.951, 18.319])
        assert summary["risk"]["zone_id"] == NO_ZONE
        assert summary["risk"]["label"] is None
        assert summary["risk"]["description"] == OUTSIDE_SFHA_DESCRIPTION
        assert summary["shelter"]["name"] == "Water Island Station"
        assert summary["insurance"]["estimated_premium"] == 450.0

    def test_parcel_not_found(self, engine_state):
        """Unknown names give not_found."""
        assert QueryResolver(engine_state).summarize_parcel("Magens Bay")["status"] == "not_found"

    def test_parcels_unavailable(self):
        """Without parcel data the search cannot run."""
        summary = QueryResolver(EngineState()).summarize_parcel("Bovoni")
        assert summary["status"] == "parcels_unavailable"
        assert summary["unavailable"] == ["zones", "shelters", "parcels"]

    def test_partial_state(self, engine_state):
        """Missing shelters are reported and the rest still answers."""
        state = engine_state.with_changes(shelters=None, load_errors={"shelters": "boom"})
        summary = QueryResolver(state).summarize_point(STACKED_POINT)
        assert summary["status"] == "ok"
        assert summary["unavailable"] == ["shelters"]
        assert summary["shelter"] is None
        assert summary["risk"]["zone_id"] == "VE"
