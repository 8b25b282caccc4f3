"""Tests for the litellm wrapper and the default vision classifiers."""

from types import SimpleNamespace

import litellm
import pytest

from rock_identifier.core.dual_verify import DualVerifier, new_verification_cache
from rock_identifier.llm import client
from rock_identifier.llm.classifiers import VerificationClassifier, VisionClassifier, load_image
from rock_identifier.llm.client import image_part, llm_complete, parse_json_reply
from rock_identifier.models import HIGH, RockIdentificationResult


def _reply(content: str):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeCompletion:
    def __init__(self, *replies) -> None:
        self.replies = list(replies)
        self.calls = []

    async def __call__(self, **kwargs):
        self.calls.append(kwargs)
        item = self.replies.pop(0)
        if isinstance(item, Exception):
            raise item
        return _reply(item)


def test_parse_json_reply_plain():
    assert parse_json_reply('{"rock_name": "Granite"}') == {"rock_name": "Granite"}


def test_parse_json_reply_fenced():
    text = '```json\n{"rock_name": "Basalt", "confidence_score": 0.9}\n```'
    assert parse_json_reply(text)["confidence_score"] == 0.9


def test_parse_json_reply_with_chatter():
    text = 'Here you go: {"secondary_identification": "Gneiss"} Hope that helps.'
    assert parse_json_reply(text) == {"secondary_identification": "Gneiss"}


def test_parse_json_reply_rejects_non_objects():
    with pytest.raises(ValueError):
        parse_json_reply("I cannot tell from this photo.")
    with pytest.raises(ValueError):
        parse_json_reply("[1, 2, 3]")


def test_image_part():
    assert image_part("abc")["image_url"]["url"] == "data:image/jpeg;base64,abc"
    assert image_part(None, "https://example.com/r.jpg")["image_url"]["url"] == "https://example.com/r.jpg"
    with pytest.raises(ValueError):
        image_part()


def test_load_image(tmp_path):
    assert load_image("https://example.com/r.jpg") == (None, "https://example.com/r.jpg")
    photo = tmp_path / "r.jpg"
    photo.write_bytes(b"rock")
    assert load_image(str(photo)) == ("cm9jaw==", None)


@pytest.mark.asyncio
async def test_llm_complete_retries_then_succeeds(monkeypatch):
    fake = FakeCompletion(RuntimeError("rate limited"), "ok")
    monkeypatch.setattr(litellm, "acompletion", fake)

    text = await llm_complete("hello", system="be brief", model="gpt-4o")

    assert text == "ok"
    assert len(fake.calls) == 2
    assert fake.calls[0]["messages"][0] == {"role": "system", "content": "be brief"}


@pytest.mark.asyncio
async def test_llm_complete_raises_after_max_retries(monkeypatch):
    fake = FakeCompletion(RuntimeError("a"), RuntimeError("b"))
    monkeypatch.setattr(litellm, "acompletion", fake)
    with pytest.raises(RuntimeError):
        await llm_complete("hello", max_retries=2)


@pytest.mark.asyncio
async def test_llm_complete_with_image(monkeypatch):
    fake = FakeCompletion("ok")
    monkeypatch.setattr(litellm, "acompletion", fake)
    await llm_complete("what rock?", image=image_part("abc"))
    content = fake.calls[0]["messages"][-1]["content"]
    assert content[0] == {"type": "text", "text": "what rock?"}
    assert content[1]["type"] == "image_url"


@pytest.mark.asyncio
async def test_vision_classifier(monkeypatch):
    fake = FakeCompletion('{"rock_name": "Granite", "rock_type": "Igneous", "confidence_score": 0.88}')
    monkeypatch.setattr(client.litellm, "acompletion", fake)

    response = await VisionClassifier("test-model").identify({
        "image": "abc",
        "imageUri": None,
        "location": {"latitude": 30.2, "longitude": -97.7, "elevation": 150.0},
        "formation": {"name": "Town Mountain", "age": "1.1 Ga", "rock_type": "Igneous", "lithology": "granite"},
        "attemptNumber": 2,
        "isPro": False,
    })

    assert response["result"]["rock_name"] == "Granite"
    call = fake.calls[0]
    assert call["model"] == "test-model"
    prompt = call["messages"][-1]["content"][0]["text"]
    assert "attempt 2" in prompt
    assert "Elevation: 150m" in prompt
    assert "Town Mountain" in prompt


@pytest.mark.asyncio
async def test_verification_classifier(monkeypatch):
    fake = FakeCompletion('{"secondary_identification": "Pink Granite", "reasoning": "large feldspar"}')
    monkeypatch.setattr(client.litellm, "acompletion", fake)

    response = await VerificationClassifier("other-model").verify({
        "image": None,
        "imageUri": "https://example.com/r.jpg",
        "primaryIdentification": "Granite",
        "primaryRockType": "Igneous",
        "location": None,
    })

    assert response == {
        "secondary_identification": "Pink Granite",
        "agreement": True,
        "reasoning": "large feldspar",
    }


@pytest.mark.asyncio
async def test_verification_reply_without_identification(monkeypatch):
    fake = FakeCompletion('{"unexpected": true}')
    monkeypatch.setattr(client.litellm, "acompletion", fake)

    response = await VerificationClassifier("other-model").verify({
        "image": "abc", "imageUri": None, "primaryIdentification": "Granite",
        "primaryRockType": "Igneous", "location": None,
    })

    assert response["secondary_identification"] == ""
    assert response["agreement"] is False


@pytest.mark.asyncio
async def test_malformed_verification_leaves_result_unflagged(monkeypatch):
    fake = FakeCompletion('{"unexpected": true}')
    monkeypatch.setattr(client.litellm, "acompletion", fake)
    verifier = DualVerifier(VerificationClassifier("other-model"))
    cache = new_verification_cache()
    original = RockIdentificationResult(
        rock_name="Granite", rock_type="Igneous", confidence_score=0.90, confidence_level=HIGH,
    )

    verified = await verifier.verify(original, "abc", None, cache)

    assert verified is original
    assert verified.dual_ai_verified is None
    assert verified.secondary_ai_result is None
    assert len(cache) == 0
