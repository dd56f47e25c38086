"""
config.py — Environment-driven settings for data acquisition.

Values are read at call time so tests (and Lambda cold starts) can
switch them through ``os.environ``:

  FLOODRISK_DATA_SOURCE   ``local`` (default) or ``s3``
  FLOODRISK_DATA_DIR      local directory holding the GeoJSON files
  FLOODRISK_S3_BUCKET     bucket holding the GeoJSON files
  FLOODRISK_S3_PREFIX     key prefix inside the bucket
  FLOODRISK_LOAD_WORKERS  worker threads for concurrent category loads
"""

import os

DEFAULT_DATA_DIR = "data"
DEFAULT_S3_BUCKET = "floodrisk-data"
DEFAULT_S3_PREFIX = "data/"
DEFAULT_LOAD_WORKERS = 3

# ── Category file names ─────────────────────────────────────────────

ZONE_FILES = {
    "VE": "VE.geojson",
    "AE": "AE.geojson",
    "AO": "AO.geojson",
    "A": "A.geojson",
    "X": "X.geojson",
}
SHELTER_FILE = "shelter.geojson"
PARCEL_FILE = "parcel_value.geojson"


def get_data_source() -> str:
    """Return the configured data source: 'local' or 's3'."""
    return os.environ.get("FLOODRISK_DATA_SOURCE", "local").lower()


def get_data_dir() -> str:
    return os.environ.get("FLOODRISK_DATA_DIR", DEFAULT_DATA_DIR)


def get_s3_location() -> tuple[str, str]:
    """Return ``(bucket, prefix)`` with the prefix ending in ``/``."""
    bucket = os.environ.get("FLOODRISK_S3_BUCKET", DEFAULT_S3_BUCKET)
    prefix = os.environ.get("FLOODRISK_S3_PREFIX", DEFAULT_S3_PREFIX)
    if prefix and not prefix.endswith("/"):
        prefix += "/"
    return bucket, prefix


def get_load_workers() -> int:
    raw = os.environ.get("FLOODRISK_LOAD_WORKERS", str(DEFAULT_LOAD_WORKERS))
    try:
        return max(1, int(raw))
    except ValueError:
        return DEFAULT_LOAD_WORKERS
