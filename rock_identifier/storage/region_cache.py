"""On-device cache of regional geology, bucketed by coordinates.

Each bucket (coordinates rounded to 0.1°, roughly 11 km) holds the
formations known for that area, best guess first. Entries expire after a week
and the cache keeps at most the 20 most recently cached buckets. A separate
ordered index of bucket keys drives eviction.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

import aiosqlite

from rock_identifier.config import PIPELINE_CONFIG, REGION_CACHE_DB
from rock_identifier.core.expiring_map import is_expired, now_ms
from rock_identifier.geology import lithology
from rock_identifier.geology.macrostrat import format_named
from rock_identifier.models import CacheStatus, CachedFormation, CachedRegionData, OfflineLookup
from rock_identifier.network import NetworkMonitor

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS region_cache (
    geohash     TEXT PRIMARY KEY,
    latitude    REAL NOT NULL,
    longitude   REAL NOT NULL,
    cached_at   INTEGER NOT NULL,
    column_name TEXT,
    payload     TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS region_cache_index (
    position    INTEGER PRIMARY KEY AUTOINCREMENT,
    geohash     TEXT NOT NULL UNIQUE
);
"""


class RegionSource(Protocol):
    async def fetch_region(self, lat: float, lng: float) -> dict[str, Any] | None: ...


def bucket_key(lat: float, lng: float, resolution: float | None = None) -> str:
    """Round half-up to the bucket resolution and join as ``"lat_lng"``."""
    res = resolution or PIPELINE_CONFIG["bucket_resolution_deg"]
    decimals = max(0, round(-math.log10(res)))
    # Scale by the integer reciprocal; 0.15 / 0.1 falls just short of 1.5
    scale = round(1 / res)

    def snap(v: float) -> str:
        return f"{math.floor(v * scale + 0.5) / scale:.{decimals}f}"

    return f"{snap(lat)}_{snap(lng)}"


def build_formation(record: dict[str, Any]) -> CachedFormation:
    """Normalize a Macrostrat unit (or an already cached record) into a formation."""
    if "rockType" in record:
        return CachedFormation.from_record(record)

    lith = format_named(record.get("lith"), default="Unknown", mixed="Unknown")
    environ = format_named(record.get("environ"), default="Unknown", mixed="Unknown")
    t_age = float(record.get("t_age") or 0)
    b_age = float(record.get("b_age") or 0)
    period = lithology.geologic_period(t_age)
    long_name = record.get("strat_name_long") or record.get("unit_name") or "Unknown"

    return CachedFormation(
        name=record.get("unit_name") or record.get("strat_name_long") or "Unknown",
        rock_type=lithology.infer_rock_type(lith),
        lithology=lith,
        age=f"{t_age:g} - {b_age:g} Ma",
        period=period,
        environment=environ,
        color=record.get("color") or "#808080",
        description=f"{long_name} formation from the {period} period.",
        visual_characteristics=lithology.visual_characteristics(lith),
        key_identifiers=lithology.key_identifiers(lith),
        minerals=lithology.infer_minerals(lith),
        hardness=lithology.infer_hardness(lith),
        common_uses=lithology.infer_uses(lith),
    )


class RegionCache:
    """Async SQLite-backed region cache with TTL expiry and capacity eviction."""

    def __init__(
        self,
        db_path: Path | None = None,
        source: RegionSource | None = None,
        network: NetworkMonitor | None = None,
        config: dict | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.db_path = db_path or REGION_CACHE_DB
        self.source = source
        self.network = network
        self.config = config or PIPELINE_CONFIG
        self._clock = clock or now_ms
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self.db_path))
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(_SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "RegionCache not initialized, call initialize() first"
        return self._db

    def bucket(self, lat: float, lng: float) -> str:
        return bucket_key(lat, lng, self.config["bucket_resolution_deg"])

    def neighbor_keys(self, lat: float, lng: float) -> list[str]:
        d = self.config["neighbor_offset_deg"]
        return [
            self.bucket(lat + d, lng),
            self.bucket(lat - d, lng),
            self.bucket(lat, lng + d),
            self.bucket(lat, lng - d),
        ]

    # ── Write path ──

    async def put(self, region: CachedRegionData) -> None:
        await self.db.execute(
            "INSERT OR REPLACE INTO region_cache "
            "(geohash, latitude, longitude, cached_at, column_name, payload) VALUES (?, ?, ?, ?, ?, ?)",
            (
                region.geohash, region.latitude, region.longitude, region.cached_at,
                region.column_name, json.dumps(region.to_record(), ensure_ascii=False),
            ),
        )
        await self.db.execute(
            "INSERT OR IGNORE INTO region_cache_index (geohash) VALUES (?)", (region.geohash,),
        )
        await self.db.commit()
        await self.prune()

    async def cache_region_data(
        self, lat: float, lng: float, units: list[dict[str, Any]], column_name: str,
    ) -> CachedRegionData | None:
        """Normalize formation-like records and store them under the bucket for (lat, lng)."""
        try:
            formations = [build_formation(u) for u in units]
            region = CachedRegionData(
                geohash=self.bucket(lat, lng),
                latitude=lat,
                longitude=lng,
                cached_at=self._clock(),
                formations=formations,
                column_name=column_name,
                rock_types=list(dict.fromkeys(f.rock_type for f in formations)),
                total_formations=len(formations),
            )
            await self.put(region)
            logger.info("Cached %d formations for bucket %s", len(formations), region.geohash)
            return region
        except Exception:
            logger.exception("Failed to cache region data for %.4f, %.4f", lat, lng)
            return None

    async def fetch_and_cache_for_location(self, lat: float, lng: float) -> CachedRegionData | None:
        """Fill the bucket for (lat, lng) from the region source unless it is fresh."""
        if self.network is not None and not await self.network.check():
            return None

        existing = await self.get_cached_region(self.bucket(lat, lng))
        if existing is not None:
            return existing
        if self.source is None:
            return None

        try:
            payload = await self.source.fetch_region(lat, lng)
        except Exception:
            logger.exception("Failed to fetch region data for %.4f, %.4f", lat, lng)
            return None
        if not payload or not payload.get("formations"):
            return None
        return await self.cache_region_data(
            lat, lng, payload["formations"], payload.get("columnName") or "Local Column",
        )

    async def prune(self) -> int:
        """Keep only the newest ``region_cache_capacity`` buckets. Returns buckets removed."""
        capacity = self.config["region_cache_capacity"]
        async with self.db.execute(
            "SELECT i.position, i.geohash, c.cached_at FROM region_cache_index i "
            "LEFT JOIN region_cache c ON c.geohash = i.geohash ORDER BY i.position",
        ) as cur:
            rows = [dict(r) async for r in cur]
        if len(rows) <= capacity:
            return 0

        live = [r for r in rows if r["cached_at"] is not None]
        live.sort(key=lambda r: (r["cached_at"], r["position"]), reverse=True)
        keep, drop = live[:capacity], live[capacity:]

        for row in drop:
            await self.db.execute("DELETE FROM region_cache WHERE geohash = ?", (row["geohash"],))
        await self.db.execute("DELETE FROM region_cache_index")
        for row in sorted(keep, key=lambda r: r["position"]):
            await self.db.execute(
                "INSERT INTO region_cache_index (geohash) VALUES (?)", (row["geohash"],),
            )
        await self.db.commit()
        logger.debug("Pruned %d region buckets", len(drop))
        return len(drop)

    # ── Read path ──

    async def get_cached_region(self, geohash: str) -> CachedRegionData | None:
        """Exact bucket lookup; expired entries are deleted and reported absent."""
        async with self.db.execute(
            "SELECT cached_at, payload FROM region_cache WHERE geohash = ?", (geohash,),
        ) as cur:
            row = await cur.fetchone()
        if not row:
            return None

        if is_expired(row["cached_at"], self.config["region_cache_ttl_ms"], self._clock()):
            await self.db.execute("DELETE FROM region_cache WHERE geohash = ?", (geohash,))
            await self.db.execute("DELETE FROM region_cache_index WHERE geohash = ?", (geohash,))
            await self.db.commit()
            logger.debug("Region bucket %s expired", geohash)
            return None

        return CachedRegionData.from_record(json.loads(row["payload"]))

    async def get(self, lat: float, lng: float) -> CachedRegionData | None:
        return await self.get_cached_region(self.bucket(lat, lng))

    async def get_cached_data_for_location(self, lat: float, lng: float) -> CachedRegionData | None:
        """Exact bucket first, then the four cardinal neighbours."""
        exact = await self.get(lat, lng)
        if exact is not None:
            return exact
        for key in self.neighbor_keys(lat, lng):
            cached = await self.get_cached_region(key)
            if cached is not None:
                return cached
        return None

    async def lookup_for_identification(self, lat: float, lng: float) -> OfflineLookup:
        cached = await self.get_cached_data_for_location(lat, lng)
        if cached is None or not cached.formations:
            return OfflineLookup()
        return OfflineLookup(
            success=True,
            formations=cached.formations,
            best_guess=cached.formations[0],
            region_name=cached.column_name,
        )

    async def cache_status(self, lat: float | None = None, lng: float | None = None) -> CacheStatus:
        async with self.db.execute("SELECT COUNT(*) AS n FROM region_cache_index") as cur:
            row = await cur.fetchone()
        status = CacheStatus(
            is_online=self.network.is_online() if self.network else True,
            cached_regions_count=row["n"] if row else 0,
        )
        if lat is not None and lng is not None:
            cached = await self.get(lat, lng)
            if cached is not None:
                status.current_location_cached = True
                status.last_cache_update = cached.cached_at
        return status

    async def clear(self) -> None:
        await self.db.execute("DELETE FROM region_cache")
        await self.db.execute("DELETE FROM region_cache_index")
        await self.db.commit()

    async def keys(self) -> list[str]:
        async with self.db.execute(
            "SELECT geohash FROM region_cache_index ORDER BY position",
        ) as cur:
            return [r["geohash"] async for r in cur]
