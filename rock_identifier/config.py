"""Configuration for the rock identification pipeline."""

from pathlib import Path

# Base data directory for all on-device runtime data
DATA_DIR = Path("data")
REGION_CACHE_DB = DATA_DIR / "region_cache.db"
ATTEMPT_LOG_DIR = DATA_DIR / "logs" / "attempts"

PIPELINE_CONFIG = {
    # LLM
    "identify_model": "gpt-4o",
    "verify_model": "gemini/gemini-2.5-flash",
    "llm_temperature": 0.2,
    "llm_max_tokens": 1500,

    # Session
    "max_attempts": 3,

    # Confidence tiers (lower bound inclusive)
    "very_high_threshold": 0.95,
    "high_threshold": 0.75,
    "medium_threshold": 0.50,

    # Location cross-check
    "cross_check_match_boost": 0.15,
    "cross_check_match_cap": 0.95,
    "cross_check_very_high_cutoff": 0.90,
    "cross_check_similar_boost": 0.05,
    "cross_check_similar_cap": 0.75,
    "cross_check_mismatch_penalty": 0.10,
    "cross_check_mismatch_floor": 0.40,

    # Dual verification
    "verification_boost": 0.05,
    "verification_cap": 0.99,
    "verification_cache_ttl_ms": 300_000,

    # Fallback confidences
    "location_fallback_confidence": 0.45,
    "degraded_fallback_confidence": 0.30,
    "offline_hit_confidence": 0.55,
    "offline_miss_confidence": 0.20,
    "offline_error_confidence": 0.15,

    # Region cache
    "region_cache_ttl_ms": 604_800_000,
    "region_cache_capacity": 20,
    "bucket_resolution_deg": 0.1,
    "neighbor_offset_deg": 0.1,

    # Collaborators
    "macrostrat_base_url": "https://macrostrat.org/api/v2",
    "network_probe_url": "https://macrostrat.org/api/v2/defs/intervals?interval_id=1",
    "http_timeout_seconds": 15.0,
}
