"""Data models for the rock identification pipeline."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

# Confidence tiers, strongest first
VERY_HIGH = "very_high"
HIGH = "high"
MEDIUM = "medium"
LOW = "low"
TIERS = (VERY_HIGH, HIGH, MEDIUM, LOW)

# How the final value of a result was produced
AI_VISION = "ai_vision"
AI_VERIFIED = "ai_verified"
LOCATION_FALLBACK = "location_fallback"
OFFLINE_CACHE = "offline_cache"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _uuid() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class BedrockFormation:
    name: str = ""
    age: str = ""
    rock_type: str = ""
    lithology: str = ""


@dataclass(frozen=True)
class LocationContext:
    latitude: float = 0.0
    longitude: float = 0.0
    elevation: float | None = None
    bedrock_formation: BedrockFormation | None = None

    def to_request(self) -> dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "elevation": self.elevation,
        }


@dataclass
class StratigraphicUnit:
    unit_id: int = 0
    unit_name: str = "Unknown Unit"
    strat_name_long: str = "Unknown"
    color: str = "#808080"
    t_age: float = 0.0  # top age, Ma
    b_age: float = 0.0  # bottom age, Ma
    max_thick: float = 0.0
    min_thick: float = 0.0
    lith: str = "Unknown"
    environ: str = "Unknown"
    econ: str = ""
    col_id: int = 0
    t_int_name: str = ""
    b_int_name: str = ""
    formation: str = ""
    group: str = ""


@dataclass
class StratigraphicColumn:
    col_id: int = 0
    col_name: str = "Local Column"
    col_group: str = "Regional"
    units: list[StratigraphicUnit] = field(default_factory=list)  # shallowest first
    total_thickness: float = 0.0
    age_range: tuple[float, float] = (0.0, 0.0)


@dataclass
class RetryPrompt:
    message: str = ""
    suggestion: str = ""
    attempt_number: int = 1
    suggested_zoom: float | None = None  # 0 | 0.25 | 0.5 | 0.75


@dataclass
class RockIdentificationResult:
    rock_name: str = "Unknown Rock"
    rock_type: str = "Unknown"  # Igneous | Sedimentary | Metamorphic | Unknown
    confidence_score: float = 0.0
    confidence_level: str = LOW
    identification_method: str = AI_VISION
    description: str = ""
    origin: str = ""
    formation_process: str = ""
    cool_fact: str = ""
    minerals: list[str] = field(default_factory=list)
    hardness: str = "Unknown"
    uses: list[str] = field(default_factory=list)
    why_here: str | None = None
    what_else: list[str] = field(default_factory=list)
    location_verified: bool = False

    # Dual verification
    dual_ai_verified: bool | None = None
    secondary_ai_result: str | None = None
    ai_agreement: bool | None = None

    stratigraphic_column: StratigraphicColumn | None = None

    # Classifier hints, only meaningful on low-confidence responses
    uncertainty_reason: str | None = None
    rephoto_guidance: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> RockIdentificationResult:
        """Build a result from an Identify response ``result`` object.

        Raises ValueError when the payload cannot be interpreted.
        """
        if not isinstance(payload, dict):
            raise ValueError(f"Identification payload must be an object, got {type(payload).__name__}")

        raw_score = payload.get("confidence_score")
        if raw_score is None:
            score = 0.0
        else:
            try:
                score = float(raw_score)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"Unusable confidence_score: {raw_score!r}") from exc

        return cls(
            rock_name=str(payload.get("rock_name") or "Unknown Rock"),
            rock_type=str(payload.get("rock_type") or "Unknown"),
            confidence_score=score,
            description=str(payload.get("description") or ""),
            origin=str(payload.get("origin") or ""),
            formation_process=str(payload.get("formation_process") or ""),
            cool_fact=str(payload.get("cool_fact") or ""),
            minerals=_str_list(payload.get("minerals")),
            hardness=str(payload.get("hardness") or "Unknown"),
            uses=_str_list(payload.get("uses")),
            why_here=payload.get("why_here") or None,
            what_else=_str_list(payload.get("what_else")),
            uncertainty_reason=payload.get("uncertainty_reason") or None,
            rephoto_guidance=payload.get("rephoto_guidance") or None,
        )


@dataclass
class RetryAttempt:
    """An attempt that asks the user for another photo."""
    attempt_number: int
    confidence_tier: str
    raw_confidence: float
    retry_prompt: RetryPrompt

    @property
    def needs_retry(self) -> bool:
        return True


@dataclass
class FinalAttempt:
    """An attempt that resolved to a result."""
    attempt_number: int
    confidence_tier: str
    raw_confidence: float
    result: RockIdentificationResult

    @property
    def needs_retry(self) -> bool:
        return False


IdentificationAttempt = RetryAttempt | FinalAttempt


@dataclass
class CachedFormation:
    name: str = "Unknown"
    rock_type: str = "Sedimentary"
    lithology: str = "Unknown"
    age: str = ""
    period: str = ""
    environment: str = "Unknown"
    color: str = "#808080"
    description: str = ""
    visual_characteristics: list[str] = field(default_factory=list)
    key_identifiers: list[str] = field(default_factory=list)
    minerals: list[str] = field(default_factory=list)
    hardness: str = "Variable"
    common_uses: list[str] = field(default_factory=list)

    def to_record(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "rockType": self.rock_type,
            "lithology": self.lithology,
            "age": self.age,
            "period": self.period,
            "environment": self.environment,
            "color": self.color,
            "description": self.description,
            "visualCharacteristics": list(self.visual_characteristics),
            "keyIdentifiers": list(self.key_identifiers),
            "minerals": list(self.minerals),
            "hardness": self.hardness,
            "commonUses": list(self.common_uses),
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> CachedFormation:
        return cls(
            name=data.get("name", "Unknown"),
            rock_type=data.get("rockType", "Sedimentary"),
            lithology=data.get("lithology", "Unknown"),
            age=data.get("age", ""),
            period=data.get("period", ""),
            environment=data.get("environment", "Unknown"),
            color=data.get("color", "#808080"),
            description=data.get("description", ""),
            visual_characteristics=list(data.get("visualCharacteristics", [])),
            key_identifiers=list(data.get("keyIdentifiers", [])),
            minerals=list(data.get("minerals", [])),
            hardness=data.get("hardness", "Variable"),
            common_uses=list(data.get("commonUses", [])),
        )


@dataclass
class CachedRegionData:
    geohash: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    cached_at: int = 0  # epoch ms
    formations: list[CachedFormation] = field(default_factory=list)  # best guess first
    column_name: str = "Local Column"
    rock_types: list[str] = field(default_factory=list)
    total_formations: int = 0

    def to_record(self) -> dict[str, Any]:
        return {
            "geohash": self.geohash,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "cachedAt": self.cached_at,
            "formations": [f.to_record() for f in self.formations],
            "columnName": self.column_name,
            "rockTypes": list(self.rock_types),
            "totalFormations": self.total_formations,
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> CachedRegionData:
        formations = [CachedFormation.from_record(f) for f in data.get("formations", [])]
        return cls(
            geohash=data.get("geohash", ""),
            latitude=float(data.get("latitude", 0.0)),
            longitude=float(data.get("longitude", 0.0)),
            cached_at=int(data.get("cachedAt", 0)),
            formations=formations,
            column_name=data.get("columnName", "Local Column"),
            rock_types=list(data.get("rockTypes", [])),
            total_formations=int(data.get("totalFormations", len(formations))),
        )


@dataclass
class OfflineLookup:
    """Outcome of consulting the region cache for an offline identification."""
    success: bool = False
    formations: list[CachedFormation] = field(default_factory=list)
    best_guess: CachedFormation | None = None
    region_name: str = "Unknown Region"


@dataclass
class CacheStatus:
    is_online: bool = True
    cached_regions_count: int = 0
    current_location_cached: bool = False
    last_cache_update: int | None = None


@dataclass
class VerificationRecord:
    """A second classifier opinion, cached per primary rock name."""
    secondary_identification: str = ""
    agreement: bool = False
    reasoning: str = ""


@dataclass
class AttemptRecord:
    """One line of the per-session attempt log."""
    id: str = field(default_factory=_uuid)
    session_id: str = ""
    attempt_number: int = 0
    timestamp: str = field(default_factory=_now)
    needs_retry: bool = False
    confidence_tier: str = LOW
    raw_confidence: float = 0.0
    identification_method: str | None = None
    rock_name: str | None = None
    retry_message: str | None = None


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]
