"""Identification orchestrator: runs one camera-to-result session.

This is the primary interface for the app. Each call submits one photo,
classifies the returned confidence and either asks for another photo, falls
back to location data once attempts run out, or refines the candidate with a
location cross-check and (for Pro callers) a second classifier opinion.

Every call resolves to an attempt; failures are logged and turned into retry
prompts or degraded fallback results, never raised.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Protocol

from rock_identifier.config import DATA_DIR, PIPELINE_CONFIG
from rock_identifier.core.confidence import classify_confidence, is_verifiable, needs_retry
from rock_identifier.core.cross_check import LocationCrossChecker, StratigraphyProvider
from rock_identifier.core.dual_verify import DualVerifier, new_verification_cache
from rock_identifier.core.expiring_map import ExpiringMap
from rock_identifier.core.fallback import DeviceLocator, OfflineFallbackResolver
from rock_identifier.core.retry_guidance import (
    canned_retry_prompt,
    extract_retry_prompt,
    failure_retry_prompt,
)
from rock_identifier.geology.macrostrat import MacrostratClient
from rock_identifier.llm.classifiers import VerificationClassifier, VisionClassifier, load_image
from rock_identifier.models import (
    AI_VISION,
    LOW,
    FinalAttempt,
    IdentificationAttempt,
    LocationContext,
    RetryAttempt,
    RockIdentificationResult,
    VerificationRecord,
)
from rock_identifier.network import NetworkMonitor
from rock_identifier.storage.attempt_log import AttemptLog
from rock_identifier.storage.region_cache import RegionCache

logger = logging.getLogger(__name__)

# Session states
IDLE = "idle"
AWAITING_CLASSIFICATION = "awaiting_classification"
RETRYING = "retrying"
CROSS_CHECKING = "cross_checking"
EXHAUSTED = "exhausted"
COMPLETE = "complete"


class PrimaryClassifier(Protocol):
    async def identify(self, request: dict[str, Any]) -> dict[str, Any]: ...


def _new_session_id() -> str:
    return uuid.uuid4().hex


@dataclass
class IdentificationSession:
    """In-memory state for one identification flow. Never persisted."""
    verification_cache: ExpiringMap[str, VerificationRecord]
    attempt_count: int = 0
    session_id: str = field(default_factory=_new_session_id)
    state: str = IDLE

    def reset(self) -> None:
        self.attempt_count = 0
        self.session_id = _new_session_id()
        self.state = IDLE
        self.verification_cache.prune()


class IdentificationOrchestrator:
    """Top-level state machine for rock identification."""

    def __init__(
        self,
        classifier: PrimaryClassifier,
        stratigraphy: StratigraphyProvider,
        dual_verifier: DualVerifier,
        fallback: OfflineFallbackResolver,
        network: NetworkMonitor | None = None,
        attempt_log: AttemptLog | None = None,
        config: dict | None = None,
        clock=None,
    ) -> None:
        self.config = config or PIPELINE_CONFIG
        self.classifier = classifier
        self.stratigraphy = stratigraphy
        self.cross_checker = LocationCrossChecker(stratigraphy, self.config)
        self.dual_verifier = dual_verifier
        self.fallback = fallback
        self.network = network or NetworkMonitor()
        self.attempt_log = attempt_log
        self.session = IdentificationSession(
            verification_cache=new_verification_cache(self.config, clock=clock),
        )

    async def initialize(self) -> None:
        """Open the region cache. Must be called before offline operations."""
        if self.fallback.region_cache is not None:
            await self.fallback.region_cache.initialize()

    async def close(self) -> None:
        if self.fallback.region_cache is not None:
            await self.fallback.region_cache.close()

    # ── Session ──

    @property
    def attempt_count(self) -> int:
        return self.session.attempt_count

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def state(self) -> str:
        return self.session.state

    def reset_session(self) -> None:
        """Start a fresh flow. In-flight calls are unaffected; their results belong to the old session."""
        self.session.reset()
        logger.debug("Session reset, new id %s", self.session.session_id)

    # ── Core operations ──

    async def identify_rock(
        self,
        image_uri: str,
        location: LocationContext | None = None,
        is_pro: bool = False,
        current_zoom: float = 0.0,
    ) -> IdentificationAttempt:
        """Submit one photo and return the resulting attempt.

        This is the main entry point called after each camera capture.
        """
        attempt = await self._identify(image_uri, location, is_pro, current_zoom)
        self._log_attempt(attempt)
        return attempt

    async def _identify(
        self,
        image_uri: str,
        location: LocationContext | None,
        is_pro: bool,
        current_zoom: float,
    ) -> IdentificationAttempt:
        session = self.session
        max_attempts = self.config["max_attempts"]

        # A spent session only ever answers with the fallback
        if session.attempt_count >= max_attempts:
            logger.warning("Session %s has no attempts left, using location fallback", session.session_id)
            session.state = EXHAUSTED
            return await self.fallback.location_fallback(location, max_attempts)

        # 1. Count the attempt
        session.attempt_count += 1
        attempt_number = session.attempt_count
        session.state = AWAITING_CLASSIFICATION

        # 2. Classify
        image_b64: str | None = None
        remote_uri: str | None = None
        try:
            image_b64, remote_uri = load_image(image_uri)
            response = await self.classifier.identify({
                "image": image_b64,
                "imageUri": remote_uri,
                "location": location.to_request() if location else None,
                "formation": _formation_request(location),
                "attemptNumber": attempt_number,
                "isPro": is_pro,
            })
            payload = response.get("result") if isinstance(response, dict) else None
            candidate = RockIdentificationResult.from_payload(payload)
        except Exception:
            logger.exception("Identification attempt %d failed", attempt_number)
            if attempt_number < max_attempts:
                session.state = RETRYING
                return RetryAttempt(
                    attempt_number=attempt_number,
                    confidence_tier=LOW,
                    raw_confidence=0.0,
                    retry_prompt=failure_retry_prompt(attempt_number),
                )
            session.state = EXHAUSTED
            return await self.fallback.location_fallback(location, attempt_number)

        tier = classify_confidence(candidate.confidence_score, self.config)
        logger.info(
            "Attempt %d: %r scored %.2f (%s)",
            attempt_number, candidate.rock_name, candidate.confidence_score, tier,
        )

        # 3. Ask for another photo
        if needs_retry(tier, attempt_number, max_attempts):
            session.state = RETRYING
            if candidate.rephoto_guidance:
                prompt = extract_retry_prompt(candidate.rephoto_guidance, attempt_number, current_zoom)
            else:
                prompt = canned_retry_prompt(attempt_number, candidate.uncertainty_reason)
            return RetryAttempt(
                attempt_number=attempt_number,
                confidence_tier=tier,
                raw_confidence=candidate.confidence_score,
                retry_prompt=prompt,
            )

        # 4. Out of attempts
        if tier == LOW:
            session.state = EXHAUSTED
            return await self.fallback.location_fallback(location, attempt_number)

        # 5. Refine
        session.state = CROSS_CHECKING
        result = replace(candidate, confidence_level=tier, identification_method=AI_VISION)
        if location is not None:
            result = await self.cross_checker.cross_check(result, location)

        if is_pro and is_verifiable(result.confidence_level):
            result = await self.dual_verifier.verify(
                result, image_b64, remote_uri, session.verification_cache, location,
            )

        # 6. Enrich
        if location is not None and result.stratigraphic_column is None:
            result = await self._attach_column(result, location)

        session.state = COMPLETE
        return FinalAttempt(
            attempt_number=attempt_number,
            confidence_tier=result.confidence_level,
            raw_confidence=result.confidence_score,
            result=result,
        )

    async def identify_rock_offline(self, location: LocationContext) -> FinalAttempt:
        """Best guess from the on-device region cache, no network involved."""
        attempt = await self.fallback.offline_identify(location, max(self.session.attempt_count, 1))
        self._log_attempt(attempt)
        return attempt

    async def auto_cache_after_identification(
        self,
        location: LocationContext,
        units: list[dict[str, Any]] | None = None,
        column_name: str | None = None,
    ) -> None:
        """Keep the region cache warm for the place the user just identified a rock."""
        cache = self.fallback.region_cache
        if cache is None:
            return
        try:
            if units:
                await cache.cache_region_data(
                    location.latitude, location.longitude, units, column_name or "Local Column",
                )
            else:
                await cache.fetch_and_cache_for_location(location.latitude, location.longitude)
        except Exception:
            logger.exception("Auto-cache failed")

    def is_online(self) -> bool:
        return self.network.is_online()

    async def check_network(self) -> bool:
        return await self.network.check()

    # ── Helpers ──

    async def _attach_column(
        self, result: RockIdentificationResult, location: LocationContext,
    ) -> RockIdentificationResult:
        try:
            column = await self.stratigraphy.get_stratigraphic_column(location.latitude, location.longitude)
        except Exception:
            logger.exception("Stratigraphic column lookup failed")
            return result
        if column is None:
            return result
        return replace(result, stratigraphic_column=column)

    def _log_attempt(self, attempt: IdentificationAttempt) -> None:
        if self.attempt_log is None:
            return
        try:
            self.attempt_log.record(self.session.session_id, attempt)
        except Exception:
            logger.exception("Failed to log attempt %d", attempt.attempt_number)


def _formation_request(location: LocationContext | None) -> dict[str, str] | None:
    if location is None or location.bedrock_formation is None:
        return None
    f = location.bedrock_formation
    return {"name": f.name, "age": f.age, "rock_type": f.rock_type, "lithology": f.lithology}


def build_orchestrator(
    data_dir: Path | None = None,
    locate: DeviceLocator | None = None,
    config: dict | None = None,
) -> IdentificationOrchestrator:
    """Wire the default collaborators. Call ``initialize()`` on the result."""
    data_dir = data_dir or DATA_DIR
    cfg = config or PIPELINE_CONFIG

    macrostrat = MacrostratClient(cfg["macrostrat_base_url"], cfg["http_timeout_seconds"])
    network = NetworkMonitor(cfg["network_probe_url"], cfg["http_timeout_seconds"])
    region_cache = RegionCache(
        data_dir / "region_cache.db", source=macrostrat, network=network, config=cfg,
    )
    return IdentificationOrchestrator(
        classifier=VisionClassifier(cfg["identify_model"]),
        stratigraphy=macrostrat,
        dual_verifier=DualVerifier(VerificationClassifier(cfg["verify_model"]), cfg),
        fallback=OfflineFallbackResolver(macrostrat, region_cache, locate=locate, config=cfg),
        network=network,
        attempt_log=AttemptLog(data_dir / "logs" / "attempts"),
        config=cfg,
    )
