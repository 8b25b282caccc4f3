"""Second-opinion verification for strong identifications.

A different classifier looks at the same photo. Its answer is cached per
primary rock name for a few minutes so repeated identifications of the same
rock in a session do not pay for another model call.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Protocol

from rock_identifier.config import PIPELINE_CONFIG
from rock_identifier.core.cross_check import names_agree
from rock_identifier.core.expiring_map import ExpiringMap
from rock_identifier.models import (
    AI_VERIFIED,
    VERY_HIGH,
    LocationContext,
    RockIdentificationResult,
    VerificationRecord,
)

logger = logging.getLogger(__name__)


class SecondOpinionClassifier(Protocol):
    async def verify(self, request: dict[str, Any]) -> dict[str, Any]: ...


def cache_key(rock_name: str) -> str:
    return rock_name.lower().strip()


def new_verification_cache(config: dict | None = None, clock=None) -> ExpiringMap[str, VerificationRecord]:
    cfg = config or PIPELINE_CONFIG
    return ExpiringMap(cfg["verification_cache_ttl_ms"], clock=clock)


class DualVerifier:
    """Runs the independent classifier and folds its opinion into the result."""

    def __init__(self, classifier: SecondOpinionClassifier, config: dict | None = None) -> None:
        self.classifier = classifier
        self.config = config or PIPELINE_CONFIG

    async def verify(
        self,
        result: RockIdentificationResult,
        image_b64: str | None,
        image_uri: str | None,
        cache: ExpiringMap[str, VerificationRecord],
        location: LocationContext | None = None,
    ) -> RockIdentificationResult:
        key = cache_key(result.rock_name)
        try:
            record = cache.get(key)
            if record is not None:
                logger.debug("Verification cache hit for %r", key)
            else:
                record = await self._ask(result, image_b64, image_uri, location)
                cache.put(key, record)
        except Exception:
            logger.exception("Dual verification failed for %r", result.rock_name)
            return result

        return self.apply(result, record)

    async def _ask(
        self,
        result: RockIdentificationResult,
        image_b64: str | None,
        image_uri: str | None,
        location: LocationContext | None,
    ) -> VerificationRecord:
        response = await self.classifier.verify({
            "image": image_b64,
            "imageUri": image_uri if image_b64 is None else None,
            "primaryIdentification": result.rock_name,
            "primaryRockType": result.rock_type,
            "location": {"latitude": location.latitude, "longitude": location.longitude} if location else None,
        })
        if not isinstance(response, dict) or not response.get("secondary_identification"):
            raise ValueError("Verification response has no secondary_identification")

        secondary = str(response["secondary_identification"])
        return VerificationRecord(
            secondary_identification=secondary,
            agreement=names_agree(result.rock_name, secondary),
            reasoning=str(response.get("reasoning") or ""),
        )

    def apply(self, result: RockIdentificationResult, record: VerificationRecord) -> RockIdentificationResult:
        cfg = self.config
        updated = replace(
            result,
            dual_ai_verified=True,
            secondary_ai_result=record.secondary_identification,
            ai_agreement=record.agreement,
        )
        if not record.agreement:
            return updated
        return replace(
            updated,
            confidence_score=round(
                min(cfg["verification_cap"], result.confidence_score + cfg["verification_boost"]), 4,
            ),
            confidence_level=VERY_HIGH,
            identification_method=AI_VERIFIED,
        )
