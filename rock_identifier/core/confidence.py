"""Confidence tiers for raw classifier scores."""

from __future__ import annotations

from rock_identifier.config import PIPELINE_CONFIG
from rock_identifier.models import HIGH, LOW, MEDIUM, VERY_HIGH


def classify_confidence(score: float, config: dict | None = None) -> str:
    """Map a raw score to a tier. Lower bounds are inclusive."""
    cfg = config or PIPELINE_CONFIG
    if score >= cfg["very_high_threshold"]:
        return VERY_HIGH
    if score >= cfg["high_threshold"]:
        return HIGH
    if score >= cfg["medium_threshold"]:
        return MEDIUM
    return LOW


def needs_retry(tier: str, attempt_count: int, max_attempts: int) -> bool:
    return tier == LOW and attempt_count < max_attempts


def is_verifiable(tier: str) -> bool:
    """Only strong results are worth a second opinion."""
    return tier in (HIGH, VERY_HIGH)
