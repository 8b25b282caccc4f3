"""Non-AI identification paths.

``location_fallback`` guesses from the stratigraphic column under the user
when the photo could not be identified; ``offline_identify`` guesses from the
on-device region cache when there is no network at all. Both always resolve to
a final attempt whose confidence and method communicate the degradation.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from rock_identifier.config import PIPELINE_CONFIG
from rock_identifier.core.cross_check import StratigraphyProvider
from rock_identifier.geology import lithology
from rock_identifier.models import (
    LOCATION_FALLBACK,
    LOW,
    MEDIUM,
    OFFLINE_CACHE,
    FinalAttempt,
    LocationContext,
    OfflineLookup,
    RockIdentificationResult,
    StratigraphicColumn,
)
from rock_identifier.storage.region_cache import RegionCache

logger = logging.getLogger(__name__)

DeviceLocator = Callable[[], Awaitable[LocationContext | None]]


class OfflineFallbackResolver:
    """Builds best-guess results from location data instead of a classifier."""

    def __init__(
        self,
        stratigraphy: StratigraphyProvider,
        region_cache: RegionCache | None = None,
        locate: DeviceLocator | None = None,
        config: dict | None = None,
    ) -> None:
        self.stratigraphy = stratigraphy
        self.region_cache = region_cache
        self.locate = locate
        self.config = config or PIPELINE_CONFIG

    # ── Live location fallback ──

    async def location_fallback(
        self, location: LocationContext | None, attempt_number: int,
    ) -> FinalAttempt:
        try:
            if location is None and self.locate is not None:
                location = await self.locate()
            if location is None:
                logger.warning("No location available for fallback")
                return self._degraded(attempt_number)

            column = await self.stratigraphy.get_stratigraphic_column(
                location.latitude, location.longitude,
            )
            if column is None or not column.units:
                logger.warning(
                    "No geological data at %.4f, %.4f for fallback",
                    location.latitude, location.longitude,
                )
                return self._degraded(attempt_number)

            result = self._from_column(column, location)
        except Exception:
            logger.exception("Location fallback failed")
            return self._degraded(attempt_number)

        return FinalAttempt(
            attempt_number=attempt_number,
            confidence_tier=LOW,
            raw_confidence=result.confidence_score,
            result=result,
        )

    def _from_column(
        self, column: StratigraphicColumn, location: LocationContext,
    ) -> RockIdentificationResult:
        top = column.units[0]
        period = lithology.geologic_period(top.t_age)
        bedrock = location.bedrock_formation
        if bedrock is not None and bedrock.name:
            why_here = f"This area is underlain by the {bedrock.name} ({bedrock.age})."
        else:
            why_here = f"This area is underlain by the {top.strat_name_long}."

        return RockIdentificationResult(
            rock_name=lithology.extract_rock_name(top.lith),
            rock_type=lithology.infer_rock_type(top.lith),
            confidence_score=self.config["location_fallback_confidence"],
            confidence_level=LOW,
            identification_method=LOCATION_FALLBACK,
            description=(
                f"Based on your location, the most likely surface rock is from the {top.unit_name}. "
                "This is a location-based guess since we couldn't clearly identify the rock from your photo."
            ),
            origin=(
                f"This formation is from the {period} period, "
                f"approximately {lithology.format_age(top.t_age)} ago."
            ),
            formation_process=f"The {top.unit_name} was formed in a {top.environ.lower()} environment.",
            cool_fact=f"This geological unit can be up to {top.max_thick:g} meters thick in some areas.",
            minerals=lithology.infer_minerals(top.lith),
            hardness=lithology.infer_hardness(top.lith),
            uses=lithology.infer_uses(top.lith),
            why_here=why_here,
            what_else=[lithology.extract_rock_name(u.lith) for u in column.units[1:4]],
            location_verified=True,
            stratigraphic_column=column,
        )

    def _degraded(self, attempt_number: int) -> FinalAttempt:
        score = self.config["degraded_fallback_confidence"]
        return FinalAttempt(
            attempt_number=attempt_number,
            confidence_tier=LOW,
            raw_confidence=score,
            result=RockIdentificationResult(
                rock_name="Unknown Rock",
                rock_type="Unknown",
                confidence_score=score,
                confidence_level=LOW,
                identification_method=LOCATION_FALLBACK,
                description="We could not identify this rock from the image or location data.",
                origin="Origin could not be determined.",
                formation_process="Formation process unknown.",
                cool_fact="Every rock has a unique geological story waiting to be discovered!",
                location_verified=False,
            ),
        )

    # ── Offline cache ──

    async def offline_identify(self, location: LocationContext, attempt_number: int) -> FinalAttempt:
        try:
            if self.region_cache is None:
                raise RuntimeError("No region cache configured")
            lookup = await self.region_cache.lookup_for_identification(
                location.latitude, location.longitude,
            )
        except Exception:
            logger.exception("Offline identification failed")
            return self._offline_unknown(
                attempt_number,
                self.config["offline_error_confidence"],
                "Offline identification failed. Please try again when connected to the internet.",
            )

        if not lookup.success or lookup.best_guess is None:
            logger.info("No cached region data near %.4f, %.4f", location.latitude, location.longitude)
            return self._offline_unknown(
                attempt_number,
                self.config["offline_miss_confidence"],
                "No cached geological data available for this location. "
                "Connect to the internet to download data for this area.",
            )

        result = self._from_lookup(lookup)
        return FinalAttempt(
            attempt_number=attempt_number,
            confidence_tier=MEDIUM,
            raw_confidence=result.confidence_score,
            result=result,
        )

    def _from_lookup(self, lookup: OfflineLookup) -> RockIdentificationResult:
        best = lookup.best_guess
        assert best is not None
        formations = lookup.formations

        description = (
            f"{best.description} This identification is based on cached geological data for your location."
        )
        if best.visual_characteristics:
            description += f" Look for: {', '.join(best.visual_characteristics[:2])}."

        count = len(formations)
        return RockIdentificationResult(
            rock_name=best.name,
            rock_type=best.rock_type,
            confidence_score=self.config["offline_hit_confidence"],
            confidence_level=MEDIUM,
            identification_method=OFFLINE_CACHE,
            description=description,
            origin=f"From the {best.period} period ({best.age}). Formed in a {best.environment} environment.",
            formation_process=(
                f"This {best.rock_type.lower()} rock formed through "
                f"{lithology.formation_process(best.rock_type)}."
            ),
            cool_fact=(
                f"This area contains {count} known geological formation{'s' if count != 1 else ''} "
                f"spanning from the {formations[-1].period or 'ancient'} "
                f"to the {formations[0].period or 'recent'} period."
            ),
            minerals=list(best.minerals),
            hardness=best.hardness,
            uses=list(best.common_uses),
            why_here=f"The {lookup.region_name} geological column contains {best.name} at this location.",
            what_else=[f.name for f in formations[1:4]],
            location_verified=True,
        )

    def _offline_unknown(self, attempt_number: int, score: float, description: str) -> FinalAttempt:
        return FinalAttempt(
            attempt_number=attempt_number,
            confidence_tier=LOW,
            raw_confidence=score,
            result=RockIdentificationResult(
                rock_name="Unknown Rock",
                rock_type="Unknown",
                confidence_score=score,
                confidence_level=LOW,
                identification_method=OFFLINE_CACHE,
                description=description,
                origin="Unable to determine without network access.",
                formation_process=(
                    "Connect to the internet and identify rocks in this area "
                    "to cache the data for offline use."
                ),
                cool_fact="Geological data from your previous identifications is cached for offline use.",
                location_verified=False,
            ),
        )
