"""
engine.py — Load, normalize and publish the query data.

    engine = FloodRiskEngine()
    engine.load()                          # all categories, concurrently
    engine.resolver.summarize_point((-64.93, 18.34))

Each category is fetched, reprojected and annotated on its own worker
thread; the three tasks write disjoint results. Once all have finished
a new :class:`EngineState` is published with a single reference swap,
so queries see either the previous snapshot or the new one, never a
half-built mix. A failing category is recorded in ``load_errors`` and
the others stay queryable.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Mapping

from floodrisk import config
from floodrisk.data.loader import fetch_collection
from floodrisk.errors import FloodRiskError, LoadError
from floodrisk.geo.crs import ProjectionRegistry, get_default_registry, normalize_features
from floodrisk.index.feature_index import FeatureIndex, PriorityIndex
from floodrisk.index.parcels import build_parcel_dataset
from floodrisk.query.resolver import EngineState, QueryResolver
from floodrisk.query.risk_profiles import ZONE_PRIORITY

logger = logging.getLogger(__name__)

Fetcher = Callable[[str, str], dict]


class FloodRiskEngine:
    """
    Owner of the published :class:`QueryResolver`.

    Args:
        fetch:    ``(category, filename) → raw collection``; defaults to
                  :func:`floodrisk.data.loader.fetch_collection`.
        registry: Projection registry used for normalization.
        resolver_options: Extra keyword arguments for QueryResolver
                  (``zone_config``, ``shelter_rule``).
    """

    def __init__(
        self,
        fetch: Fetcher | None = None,
        registry: ProjectionRegistry | None = None,
        **resolver_options,
    ):
        self._fetch = fetch or fetch_collection
        self._registry = registry or get_default_registry()
        self._resolver_options = resolver_options
        self._reload_lock = threading.Lock()
        self._resolver = QueryResolver(EngineState(), **resolver_options)

    @property
    def resolver(self) -> QueryResolver:
        return self._resolver

    @property
    def state(self) -> EngineState:
        return self._resolver.state

    def _publish(self, state: EngineState) -> None:
        self._resolver = QueryResolver(state, **self._resolver_options)

    # ── Per-category builders ───────────────────────────────────────

    def _normalized(self, category: str, filename: str) -> list[dict]:
        raw = self._fetch(category, filename)
        return normalize_features(raw, self._registry)

    def build_zones(self, zone_files: Mapping[str, str] = config.ZONE_FILES) -> tuple[PriorityIndex, dict]:
        """
        Build the zone index; a tier that fails is left out and its
        error returned alongside.
        """
        collections = {}
        errors = {}
        for zone_id in ZONE_PRIORITY:
            if zone_id not in zone_files:
                continue
            try:
                collections[zone_id] = self._normalized(f"zones:{zone_id}", zone_files[zone_id])
            except FloodRiskError as e:
                logger.error("Zone tier %s failed to load: %s", zone_id, e)
                errors[f"zones:{zone_id}"] = str(e)
        if not collections:
            raise LoadError("zones", "no zone tier could be loaded")
        return PriorityIndex.from_collections("zones", collections, ZONE_PRIORITY), errors

    def build_shelters(self, filename: str = config.SHELTER_FILE) -> FeatureIndex:
        return FeatureIndex.from_features("shelters", self._normalized("shelters", filename))

    def build_parcels(self, filename: str = config.PARCEL_FILE):
        return build_parcel_dataset(self._normalized("parcels", filename))

    def _builders(self) -> dict:
        return {
            "zones": self.build_zones,
            "shelters": self.build_shelters,
            "parcels": self.build_parcels,
        }

    def _build(self, category: str):
        """
        Run one category builder. Unexpected exceptions are reported as a
        LoadError for that category so the other categories still publish.
        """
        try:
            return self._builders()[category]()
        except FloodRiskError:
            raise
        except Exception as e:
            logger.exception("Unexpected failure while building %s", category)
            raise LoadError(category, f"{type(e).__name__}: {e}") from e

    # ── Lifecycle ───────────────────────────────────────────────────

    def load(self) -> EngineState:
        """
        Load every category concurrently and publish the result.

        Returns:
            The newly published state.
        """
        builders = self._builders()
        with self._reload_lock:
            with ThreadPoolExecutor(max_workers=config.get_load_workers()) as pool:
                futures = {name: pool.submit(self._build, name) for name in builders}
                results = {}
                errors = {}
                for name, future in futures.items():
                    try:
                        result = future.result()
                    except FloodRiskError as e:
                        logger.error("Category %s failed to load: %s", name, e)
                        errors[name] = str(e)
                        results[name] = None
                        continue
                    if name == "zones":
                        result, tier_errors = result
                        errors.update(tier_errors)
                    results[name] = result

            state = EngineState().with_changes(load_errors=errors, **results)
            self._publish(state)

        logger.info(
            "Engine loaded: zones=%s shelters=%s parcels=%s errors=%d",
            len(state.zones) if state.zones else 0,
            len(state.shelters) if state.shelters else 0,
            len(state.parcels) if state.parcels else 0,
            len(errors),
        )
        return state

    def reload_category(self, category: str) -> EngineState:
        """
        Rebuild one category and publish a new state. On failure the
        previous data for that category stays published and the error
        is recorded.
        """
        builders = self._builders()
        if category not in builders:
            raise ValueError(f"Unknown category: {category}")

        with self._reload_lock:
            current = self.state
            errors = {
                key: message for key, message in current.load_errors.items()
                if key != category and not key.startswith(f"{category}:")
            }
            try:
                result = self._build(category)
            except FloodRiskError as e:
                logger.error("Reload of %s failed: %s", category, e)
                errors[category] = str(e)
                state = current.with_changes(load_errors=errors)
            else:
                if category == "zones":
                    result, tier_errors = result
                    errors.update(tier_errors)
                state = current.with_changes(load_errors=errors, **{category: result})
            self._publish(state)
        return state
