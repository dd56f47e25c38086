"""
shelter_policy.py — Reserved-shelter override for nearest-shelter search.

Some shelters serve a single community. A :class:`ReservedShelterRule`
names such a shelter and the legal-description token identifying that
community:

  - context parcel carries the token → the reserved shelter is always
    returned, at its own distance, even when others are closer
  - context parcel lacks the token   → the reserved shelter is removed
    from the candidate pool; if it was the only shelter the answer is
    "no shelter" rather than sending a resident somewhere they cannot use
"""

from dataclasses import dataclass
from typing import Mapping

from floodrisk.geo.geometry import as_lon_lat

SHELTER_NAME_KEY = "Name"
LEGAL_DESCRIPTION_KEY = "Tax_Legal_"


@dataclass(frozen=True)
class ReservedShelterRule:
    """
    Attributes:
        shelter_name:    Shelter name (case-insensitive, trimmed).
        community_token: Token searched in the context's legal description.
        legal_key:       Property holding the legal description.
        name_key:        Property holding the shelter name.
    """

    shelter_name: str
    community_token: str
    legal_key: str = LEGAL_DESCRIPTION_KEY
    name_key: str = SHELTER_NAME_KEY

    def is_reserved(self, shelter_properties: Mapping) -> bool:
        if not isinstance(shelter_properties, Mapping):
            return False
        name = shelter_properties.get(self.name_key)
        if not isinstance(name, str):
            return False
        return name.strip().upper() == self.shelter_name.strip().upper()

    def applies_to(self, context_properties: Mapping | None) -> bool:
        """True when the context's legal description names the community."""
        if not isinstance(context_properties, Mapping):
            return False
        legal = context_properties.get(self.legal_key)
        return isinstance(legal, str) and self.community_token.upper() in legal.upper()


WATER_ISLAND_RULE = ReservedShelterRule(
    shelter_name="Water Island Station",
    community_token="WATER ISLAND",
)


def shelter_lon_lat(feature: dict) -> tuple[float, float] | None:
    """Point coordinates, or the first coordinate of a MultiPoint."""
    geometry = feature.get("geometry") if isinstance(feature, dict) else None
    if not isinstance(geometry, dict):
        return None
    coords = geometry.get("coordinates")
    if geometry.get("type") == "Point":
        return as_lon_lat(coords)
    if geometry.get("type") == "MultiPoint" and isinstance(coords, list) and coords:
        return as_lon_lat(coords[0])
    return None
