"""Location cross-check.

Compares a candidate identification against the stratigraphic column mapped
under the capture location and nudges its confidence up or down depending on
how well the candidate fits the local geology.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Protocol

from rock_identifier.config import PIPELINE_CONFIG
from rock_identifier.geology.lithology import matches_class
from rock_identifier.models import (
    HIGH,
    LOW,
    MEDIUM,
    VERY_HIGH,
    LocationContext,
    RockIdentificationResult,
    StratigraphicColumn,
)

logger = logging.getLogger(__name__)


class StratigraphyProvider(Protocol):
    async def get_stratigraphic_column(self, lat: float, lng: float) -> StratigraphicColumn | None: ...


# Defaults filled in for missing names; they carry no evidence
PLACEHOLDER_NAMES = frozenset({"unknown", "unknown rock", "unknown unit", "mixed"})


def _known(text: str | None) -> str:
    """Lowercased, trimmed name, or "" for blanks and placeholders."""
    name = (text or "").lower().strip()
    return "" if name in PLACEHOLDER_NAMES else name


def names_agree(a: str, b: str) -> bool:
    """Bidirectional, case-insensitive containment. Blank names never agree."""
    left, right = _known(a), _known(b)
    if not left or not right:
        return False
    return left in right or right in left


def _leading(text: str, sep: str) -> str:
    return text.split(sep)[0].strip()


def lithology_match(rock_name: str, lithologies: list[str]) -> bool:
    name = _known(rock_name)
    if not name:
        return False
    for lith in map(_known, lithologies):
        if not lith:
            continue
        head = _leading(lith, ",")
        if name in lith or (head and head in name):
            return True
    return False


def formation_match(rock_name: str, unit_names: list[str]) -> bool:
    name = _known(rock_name)
    if not name:
        return False
    for unit in map(_known, unit_names):
        if not unit:
            continue
        head = _leading(unit, " ")
        if name in unit or (head and head in name):
            return True
    return False


class LocationCrossChecker:
    """Adjusts candidate confidence using the local stratigraphic column."""

    def __init__(self, stratigraphy: StratigraphyProvider, config: dict | None = None) -> None:
        self.stratigraphy = stratigraphy
        self.config = config or PIPELINE_CONFIG

    async def cross_check(
        self, result: RockIdentificationResult, location: LocationContext,
    ) -> RockIdentificationResult:
        try:
            column = await self.stratigraphy.get_stratigraphic_column(
                location.latitude, location.longitude,
            )
        except Exception:
            logger.exception("Location cross-check failed, keeping candidate as-is")
            return result

        if column is None:
            return result
        return self.adjust(result, column)

    def adjust(
        self, result: RockIdentificationResult, column: StratigraphicColumn,
    ) -> RockIdentificationResult:
        cfg = self.config
        lithologies = [u.lith.lower() for u in column.units]
        unit_names = [u.unit_name.lower() for u in column.units]

        exact = lithology_match(result.rock_name, lithologies)
        formation = formation_match(result.rock_name, unit_names)
        similar = matches_class(result.rock_type, lithologies)
        score = result.confidence_score

        # Scores are rounded before tiering so 0.6 - 0.1 lands on 0.5, not below it
        if exact or formation:
            score = round(min(cfg["cross_check_match_cap"], score + cfg["cross_check_match_boost"]), 4)
            level = VERY_HIGH if score >= cfg["cross_check_very_high_cutoff"] else HIGH
            verified = True
        elif similar:
            score = round(min(cfg["cross_check_similar_cap"], score + cfg["cross_check_similar_boost"]), 4)
            level = MEDIUM
            verified = True
        else:
            score = round(max(cfg["cross_check_mismatch_floor"], score - cfg["cross_check_mismatch_penalty"]), 4)
            level = MEDIUM if score >= cfg["medium_threshold"] else LOW
            verified = False

        logger.debug(
            "Cross-check %r: exact=%s formation=%s similar=%s -> %.4f %s",
            result.rock_name, exact, formation, similar, score, level,
        )
        return replace(
            result,
            confidence_score=score,
            confidence_level=level,
            location_verified=verified,
            stratigraphic_column=column,
        )
