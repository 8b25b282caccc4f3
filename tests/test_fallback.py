"""Tests for the location fallback and offline cache identification."""

import pytest
import pytest_asyncio

from rock_identifier.core.fallback import OfflineFallbackResolver
from rock_identifier.models import (
    LOCATION_FALLBACK,
    LOW,
    MEDIUM,
    OFFLINE_CACHE,
    BedrockFormation,
    LocationContext,
    StratigraphicColumn,
    StratigraphicUnit,
)
from rock_identifier.storage.region_cache import RegionCache

AUSTIN = LocationContext(latitude=30.21, longitude=-97.74)


class StubStratigraphy:
    def __init__(self, column=None, error: Exception | None = None) -> None:
        self.column = column
        self.error = error

    async def get_stratigraphic_column(self, lat, lng):
        if self.error:
            raise self.error
        return self.column


class BrokenCache:
    async def lookup_for_identification(self, lat, lng):
        raise RuntimeError("database is locked")


def _column() -> StratigraphicColumn:
    return StratigraphicColumn(
        col_name="Austin",
        units=[
            StratigraphicUnit(
                unit_name="Edwards Formation", strat_name_long="Edwards Limestone",
                lith="limestone, dolomite", environ="Marine", t_age=100.5, max_thick=150,
            ),
            StratigraphicUnit(unit_name="Glen Rose", lith="shale", t_age=110),
            StratigraphicUnit(unit_name="Hensell Sand", lith="sandstone", t_age=113),
            StratigraphicUnit(unit_name="Llano Granite", lith="granite", t_age=1100),
            StratigraphicUnit(unit_name="Valley Spring Gneiss", lith="gneiss", t_age=1250),
        ],
    )


@pytest_asyncio.fixture
async def region_cache(tmp_path):
    c = RegionCache(tmp_path / "region.db")
    await c.initialize()
    yield c
    await c.close()


@pytest.mark.asyncio
async def test_location_fallback_from_column():
    resolver = OfflineFallbackResolver(StubStratigraphy(_column()))
    attempt = await resolver.location_fallback(AUSTIN, 3)

    assert attempt.needs_retry is False
    assert attempt.attempt_number == 3
    assert attempt.confidence_tier == LOW
    result = attempt.result
    assert result.confidence_score == 0.45
    assert result.identification_method == LOCATION_FALLBACK
    assert result.rock_name == "Limestone"
    assert result.rock_type == "Sedimentary"
    assert result.what_else == ["Shale", "Sandstone", "Granite"]
    assert result.location_verified is True
    assert result.stratigraphic_column is not None
    assert "Cretaceous" in result.origin
    assert "Edwards Limestone" in result.why_here


@pytest.mark.asyncio
async def test_location_fallback_prefers_bedrock_name():
    location = LocationContext(
        latitude=30.21, longitude=-97.74,
        bedrock_formation=BedrockFormation(name="Austin Chalk", age="Late Cretaceous"),
    )
    resolver = OfflineFallbackResolver(StubStratigraphy(_column()))
    attempt = await resolver.location_fallback(location, 3)
    assert attempt.result.why_here == "This area is underlain by the Austin Chalk (Late Cretaceous)."


@pytest.mark.asyncio
async def test_location_fallback_without_location_is_degraded():
    resolver = OfflineFallbackResolver(StubStratigraphy(_column()))
    attempt = await resolver.location_fallback(None, 3)
    assert attempt.result.confidence_score == 0.30
    assert attempt.result.rock_name == "Unknown Rock"
    assert attempt.result.location_verified is False


@pytest.mark.asyncio
async def test_location_fallback_uses_device_locator():
    async def locate():
        return AUSTIN

    resolver = OfflineFallbackResolver(StubStratigraphy(_column()), locate=locate)
    attempt = await resolver.location_fallback(None, 3)
    assert attempt.result.confidence_score == 0.45


@pytest.mark.asyncio
async def test_location_fallback_empty_column_is_degraded():
    resolver = OfflineFallbackResolver(StubStratigraphy(StratigraphicColumn()))
    attempt = await resolver.location_fallback(AUSTIN, 3)
    assert attempt.result.confidence_score == 0.30


@pytest.mark.asyncio
async def test_location_fallback_provider_error_is_degraded():
    resolver = OfflineFallbackResolver(StubStratigraphy(error=RuntimeError("timeout")))
    attempt = await resolver.location_fallback(AUSTIN, 3)
    assert attempt.result.confidence_score == 0.30
    assert attempt.result.identification_method == LOCATION_FALLBACK


@pytest.mark.asyncio
async def test_offline_miss(region_cache):
    resolver = OfflineFallbackResolver(StubStratigraphy(), region_cache)
    attempt = await resolver.offline_identify(AUSTIN, 1)
    assert attempt.needs_retry is False
    assert attempt.result.confidence_score == 0.20
    assert attempt.result.identification_method == OFFLINE_CACHE
    assert attempt.result.rock_name == "Unknown Rock"


@pytest.mark.asyncio
async def test_offline_hit(region_cache):
    units = [
        {"unit_name": "Edwards Formation", "lith": "limestone", "environ": "marine", "t_age": 100.5, "b_age": 110},
        {"unit_name": "Glen Rose", "lith": "shale", "t_age": 110, "b_age": 113},
    ]
    await region_cache.cache_region_data(30.21, -97.74, units, "Austin Column")
    resolver = OfflineFallbackResolver(StubStratigraphy(), region_cache)

    attempt = await resolver.offline_identify(AUSTIN, 1)

    assert attempt.confidence_tier == MEDIUM
    result = attempt.result
    assert result.confidence_score == 0.55
    assert result.confidence_level == MEDIUM
    assert result.identification_method == OFFLINE_CACHE
    assert result.rock_name == "Edwards Formation"
    assert result.what_else == ["Glen Rose"]
    assert result.location_verified is True
    assert "Austin Column" in result.why_here
    assert "deposition and compaction" in result.formation_process


@pytest.mark.asyncio
async def test_offline_error():
    resolver = OfflineFallbackResolver(StubStratigraphy(), BrokenCache())
    attempt = await resolver.offline_identify(AUSTIN, 2)
    assert attempt.attempt_number == 2
    assert attempt.result.confidence_score == 0.15
    assert attempt.result.identification_method == OFFLINE_CACHE


@pytest.mark.asyncio
async def test_offline_without_cache_is_error():
    resolver = OfflineFallbackResolver(StubStratigraphy())
    attempt = await resolver.offline_identify(AUSTIN, 1)
    assert attempt.result.confidence_score == 0.15
