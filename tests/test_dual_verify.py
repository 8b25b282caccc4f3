"""Tests for second-opinion verification and its session cache."""

import pytest

from rock_identifier.core.dual_verify import DualVerifier, cache_key, new_verification_cache
from rock_identifier.models import (
    AI_VERIFIED,
    AI_VISION,
    HIGH,
    VERY_HIGH,
    RockIdentificationResult,
    VerificationRecord,
)


class FakeClock:
    def __init__(self, start: int = 0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now


class StubVerifier:
    def __init__(self, secondary: str | None = "Granite", error: Exception | None = None) -> None:
        self.secondary = secondary
        self.error = error
        self.calls = 0
        self.requests = []

    async def verify(self, request):
        self.calls += 1
        self.requests.append(request)
        if self.error:
            raise self.error
        return {"secondary_identification": self.secondary, "agreement": None, "reasoning": "coarse crystals"}


def _result(name="Granite", score=0.90, level=HIGH) -> RockIdentificationResult:
    return RockIdentificationResult(
        rock_name=name, rock_type="Igneous", confidence_score=score, confidence_level=level,
    )


def test_cache_key_normalizes():
    assert cache_key("  Pink GRANITE ") == "pink granite"


@pytest.mark.asyncio
async def test_agreement_boosts_to_very_high():
    stub = StubVerifier("Pink Granite")
    verifier = DualVerifier(stub)
    cache = new_verification_cache()

    verified = await verifier.verify(_result(), "b64", None, cache)

    assert verified.dual_ai_verified is True
    assert verified.ai_agreement is True
    assert verified.secondary_ai_result == "Pink Granite"
    assert verified.confidence_score == 0.95
    assert verified.confidence_level == VERY_HIGH
    assert verified.identification_method == AI_VERIFIED
    assert stub.requests[0]["imageUri"] is None


@pytest.mark.asyncio
async def test_boost_capped():
    verifier = DualVerifier(StubVerifier("Granite"))
    verified = await verifier.verify(_result(score=0.97, level=VERY_HIGH), "b64", None, new_verification_cache())
    assert verified.confidence_score == 0.99


@pytest.mark.asyncio
async def test_disagreement_keeps_score():
    verifier = DualVerifier(StubVerifier("Basalt"))
    verified = await verifier.verify(_result(), "b64", None, new_verification_cache())
    assert verified.dual_ai_verified is True
    assert verified.ai_agreement is False
    assert verified.secondary_ai_result == "Basalt"
    assert verified.confidence_score == 0.90
    assert verified.confidence_level == HIGH
    assert verified.identification_method == AI_VISION


@pytest.mark.asyncio
async def test_cache_hit_within_ttl_skips_classifier():
    clock = FakeClock()
    stub = StubVerifier("Granite")
    verifier = DualVerifier(stub)
    cache = new_verification_cache(clock=clock)

    first = await verifier.verify(_result(), "b64", None, cache)
    clock.now = 299_000
    second = await verifier.verify(_result(name="GRANITE"), "b64", None, cache)

    assert stub.calls == 1
    assert second.secondary_ai_result == first.secondary_ai_result
    assert second.ai_agreement == first.ai_agreement


@pytest.mark.asyncio
async def test_cache_expires_after_ttl():
    clock = FakeClock()
    stub = StubVerifier("Granite")
    verifier = DualVerifier(stub)
    cache = new_verification_cache(clock=clock)

    await verifier.verify(_result(), "b64", None, cache)
    clock.now = 300_001
    await verifier.verify(_result(), "b64", None, cache)

    assert stub.calls == 2


@pytest.mark.asyncio
async def test_failure_returns_result_unchanged():
    verifier = DualVerifier(StubVerifier(error=TimeoutError("slow")))
    cache = new_verification_cache()
    original = _result()

    verified = await verifier.verify(original, "b64", None, cache)

    assert verified is original
    assert verified.dual_ai_verified is None
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_empty_secondary_is_a_failure():
    verifier = DualVerifier(StubVerifier(secondary=""))
    original = _result()
    assert await verifier.verify(original, "b64", None, new_verification_cache()) is original


@pytest.mark.asyncio
async def test_remote_image_passes_uri():
    stub = StubVerifier("Granite")
    await DualVerifier(stub).verify(_result(), None, "https://example.com/rock.jpg", new_verification_cache())
    assert stub.requests[0]["imageUri"] == "https://example.com/rock.jpg"
    assert stub.requests[0]["primaryIdentification"] == "Granite"


def test_apply_does_not_mutate_input():
    verifier = DualVerifier(StubVerifier())
    original = _result()
    verifier.apply(original, VerificationRecord("Granite", True, ""))
    assert original.confidence_score == 0.90
    assert original.dual_ai_verified is None
