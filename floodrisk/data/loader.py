"""
loader.py — Fetch raw GeoJSON collections from local disk or S3.

The source is chosen by ``FLOODRISK_DATA_SOURCE`` (see
:mod:`floodrisk.config`). Every failure surfaces as a
:class:`~floodrisk.errors.LoadError` tagged with the category so the
engine can isolate it.
"""

import json
import logging
import os

from floodrisk import config
from floodrisk.errors import LoadError

logger = logging.getLogger(__name__)


def _validate(category: str, payload) -> dict:
    if not isinstance(payload, dict):
        raise LoadError(category, "payload is not a JSON object")
    if not isinstance(payload.get("features"), list):
        raise LoadError(category, "payload has no 'features' list")
    return payload


def load_geojson_from_local(category: str, path: str) -> dict:
    """Read and validate a GeoJSON FeatureCollection from *path*."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, ValueError) as e:
        raise LoadError(category, f"cannot read {path}: {e}") from e

    logger.info("Loaded %s from %s", category, path)
    return _validate(category, payload)


def load_geojson_from_s3(category: str, bucket: str, key: str) -> dict:
    """Read and validate a GeoJSON FeatureCollection from S3."""
    import boto3
    from botocore.exceptions import BotoCoreError, ClientError

    s3 = boto3.client("s3")
    try:
        obj = s3.get_object(Bucket=bucket, Key=key)
        payload = json.loads(obj["Body"].read().decode("utf-8"))
    except (BotoCoreError, ClientError) as e:
        raise LoadError(category, f"cannot fetch s3://{bucket}/{key}: {e}") from e
    except ValueError as e:
        raise LoadError(category, f"invalid JSON in s3://{bucket}/{key}: {e}") from e

    logger.info("Loaded %s from s3://%s/%s", category, bucket, key)
    return _validate(category, payload)


def fetch_collection(category: str, filename: str) -> dict:
    """
    Fetch *filename* from the configured source.

    Args:
        category: Category label used in errors and logs.
        filename: File name relative to the data directory / S3 prefix.
    """
    if config.get_data_source() == "s3":
        bucket, prefix = config.get_s3_location()
        return load_geojson_from_s3(category, bucket, f"{prefix}{filename}")
    return load_geojson_from_local(category, os.path.join(config.get_data_dir(), filename))
