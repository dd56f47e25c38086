"""Shared GeoJSON fixtures around St. Thomas, USVI (lon ≈ -64.9, lat ≈ 18.3)."""

import copy

import pytest

from floodrisk.errors import LoadError
from floodrisk.index.feature_index import FeatureIndex, PriorityIndex
from floodrisk.index.parcels import build_parcel_dataset
from floodrisk.query.resolver import EngineState
from floodrisk.query.risk_profiles import ZONE_PRIORITY

from builders import feature_collection, point_feature, polygon_feature, square


@pytest.fixture
def zone_features():
    """VE inside AE inside A, plus a separate X zone."""
    return {
        "VE": [polygon_feature([square(-64.94, 18.34, -64.92, 18.36)], FLD_ZONE="VE", STATIC_BFE=14.0)],
        "AE": [polygon_feature([square(-64.95, 18.33, -64.91, 18.37)], FLD_ZONE="AE", STATIC_BFE=9.0)],
        "A": [polygon_feature([square(-64.96, 18.32, -64.90, 18.38)], FLD_ZONE="A", STATIC_BFE=-9999, DEPTH=2)],
        "X": [polygon_feature([square(-64.80, 18.30, -64.78, 18.32)], FLD_ZONE="X")],
    }


@pytest.fixture
def parcel_features():
    return [
        polygon_feature(
            [square(-64.935, 18.345, -64.925, 18.355)],
            Name="Estate Bovoni 12",
            Land_Value=100000,
            Improved_V=150000,
            SHAPE_Area=1000,
            Tax_Legal_="PARCEL 12 ESTATE BOVONI",
        ),
        polygon_feature(
            [square(-64.955, 18.315, -64.945, 18.325)],
            Name="Water Island 7",
            Land_Value=50000,
            Improved_V=0,
            SHAPE_Area=2000,
            Tax_Legal_="7 Water Island",
        ),
        polygon_feature(
            [square(-64.85, 18.30, -64.84, 18.31)],
            Name="Estate Bovoni 3",
            Land_Value=20000,
            Improved_V=30000,
            SHAPE_Area=500,
            Tax_Legal_="3 ESTATE BOVONI",
        ),
    ]


@pytest.fixture
def shelter_features():
    return [
        point_feature(-64.93, 18.36, Name="Bovoni Community Center"),
        point_feature(-64.955, 18.31, Name="Water Island Station"),
        point_feature(-64.90, 18.34, Name="Charlotte Amalie High"),
    ]


@pytest.fixture
def engine_state(zone_features, parcel_features, shelter_features):
    """A fully loaded state built without the loader."""
    return EngineState(
        zones=PriorityIndex.from_collections("zones", zone_features, ZONE_PRIORITY),
        shelters=FeatureIndex.from_features("shelters", shelter_features),
        parcels=build_parcel_dataset(parcel_features),
    )


@pytest.fixture
def data_files(zone_features, parcel_features, shelter_features):
    """``filename → raw collection`` as the loader would return them."""
    files = {
        f"{zone_id}.geojson": feature_collection(features)
        for zone_id, features in zone_features.items()
    }
    files["AO.geojson"] = feature_collection([])
    files["shelter.geojson"] = feature_collection(shelter_features)
    files["parcel_value.geojson"] = feature_collection(parcel_features)
    return files


@pytest.fixture
def fake_fetch(data_files):
    """Fetcher over ``data_files``; missing names raise LoadError."""

    def fetch(category, filename):
        if filename not in data_files:
            raise LoadError(category, f"{filename} not found")
        return copy.deepcopy(data_files[filename])

    return fetch
