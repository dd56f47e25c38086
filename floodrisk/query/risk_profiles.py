"""
risk_profiles.py — Flood zone tiers, risk profiles and premium rules.

Zone priority (highest severity first) and per-zone premium rates:

    Zone   Risk position   Premium rate
    ────   ─────────────   ────────────
    VE     0.95            1.8 %
    AE     0.80            1.5 %
    AO     0.65            1.2 %
    A      0.50            1.2 %
    X      0.30            0.6 %
    none   0.10            0.4 %

Estimated premium = clamp(value × rate, 450, 7200); recommended
building coverage = min(value, 250 000), the NFIP residential cap.
"""

from floodrisk.index.percentile import as_finite

NO_ZONE = "none"

ZONE_PRIORITY = ("VE", "AE", "AO", "A", "X")

FLOOD_ZONES = {
    "VE": {
        "label": "Zone VE",
        "description": "Very high coastal flood risk with wave action of 3 ft or more (coastal velocity zone).",
    },
    "AE": {
        "label": "Zone AE",
        "description": "High flood risk with Base Flood Elevation determined (1% annual chance flood).",
    },
    "AO": {
        "label": "Zone AO",
        "description": "Sloping terrain flood risk with sheet flow, average depths of 1 to 3 feet.",
    },
    "A": {
        "label": "Zone A",
        "description": "High flood risk areas without detailed studies or Base Flood Elevation.",
    },
    "X": {
        "label": "Zone X",
        "description": "Moderate-to-minimal flood risk; flooding is possible but less likely than in SFHA zones.",
    },
}

RISK_PROFILES = {
    "VE": {
        "severity": "Severe coastal flood hazard",
        "recommendation": (
            "Flood insurance is mandatory for federally backed mortgages. Prepare for storm "
            "surge and wave damage with elevated structures and coastal hardening."
        ),
        "premium_rate": 0.018,
    },
    "AE": {
        "severity": "High flood hazard",
        "recommendation": (
            "Insurance is required in most cases. Elevate utilities above the Base Flood "
            "Elevation and plan for 1% annual chance floods."
        ),
        "premium_rate": 0.015,
    },
    "AO": {
        "severity": "Moderate flood hazard (sheet flow)",
        "recommendation": (
            "Insurance strongly recommended. Consider grading or barriers to redirect "
            "shallow flooding away from the property."
        ),
        "premium_rate": 0.012,
    },
    "A": {
        "severity": "Elevated flood hazard",
        "recommendation": (
            "Insurance required for most mortgages. Request an elevation certificate to "
            "refine premiums and mitigation needs."
        ),
        "premium_rate": 0.012,
    },
    "X": {
        "severity": "Lower flood hazard",
        "recommendation": (
            "Preferred risk policies are available. Insurance optional but still advised "
            "because 25% of flood claims originate in lower risk zones."
        ),
        "premium_rate": 0.006,
    },
    NO_ZONE: {
        "severity": "Minimal mapped flood hazard",
        "recommendation": (
            "Consider low-cost protection if near flood-prone areas. Maintain drainage and "
            "monitor future map updates."
        ),
        "premium_rate": 0.004,
    },
}

ZONE_RISK_PERCENT = {
    "VE": 0.95,
    "AE": 0.8,
    "AO": 0.65,
    "A": 0.5,
    "X": 0.3,
    NO_ZONE: 0.1,
}

PREMIUM_MIN = 450.0
PREMIUM_MAX = 7200.0
NFIP_COVERAGE_CAP = 250_000.0

# Sentinels used by the flood maps for "no value"
BFE_MISSING_BELOW = -9000
DEPTH_MISSING = -9999


def get_risk_profile(zone_id: str | None) -> dict:
    """Return the risk profile for *zone_id*, falling back to 'none'."""
    return RISK_PROFILES.get(zone_id or NO_ZONE, RISK_PROFILES[NO_ZONE])


def clamp_percent(value) -> float | None:
    number = as_finite(value)
    if number is None:
        return None
    return min(1.0, max(0.0, number))


def get_zone_risk_percent(zone_id: str | None) -> float:
    """Position of the zone on the 0–1 risk scale."""
    return clamp_percent(ZONE_RISK_PERCENT.get(zone_id or NO_ZONE, ZONE_RISK_PERCENT[NO_ZONE]))


def estimate_premium(property_value: float, zone_id: str | None) -> float:
    """Annual premium estimate, clamped to [450, 7200]."""
    rate = get_risk_profile(zone_id)["premium_rate"]
    return min(max(property_value * rate, PREMIUM_MIN), PREMIUM_MAX)


def recommended_coverage(property_value: float) -> float:
    return min(property_value, NFIP_COVERAGE_CAP)


def flood_elevation_details(properties: dict) -> dict:
    """
    Extract base flood elevation and depth from a zone feature.

    The depth is only reported when no BFE is available; a missing
    depth is then reported explicitly as None.

    Returns:
        Dict with optional ``base_flood_elevation_ft`` and
        ``flood_depth_ft`` keys.
    """
    bfe = as_finite(properties.get("STATIC_BFE"))
    depth = as_finite(properties.get("DEPTH"))
    has_bfe = bfe is not None and bfe > BFE_MISSING_BELOW
    has_depth = depth is not None and depth != DEPTH_MISSING

    if has_bfe:
        return {"base_flood_elevation_ft": bfe}
    return {"flood_depth_ft": depth if has_depth else None}


def is_finite_positive(value) -> bool:
    number = as_finite(value)
    return number is not None and number > 0
