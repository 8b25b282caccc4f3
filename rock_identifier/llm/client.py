"""LiteLLM wrapper with retry, image parts and JSON parsing."""

from __future__ import annotations

import json
import logging
from typing import Any

import litellm

from rock_identifier.config import PIPELINE_CONFIG

logger = logging.getLogger(__name__)

# Suppress litellm's verbose logging
litellm.suppress_debug_info = True


def image_part(image_b64: str | None = None, image_url: str | None = None) -> dict[str, Any]:
    """Build an OpenAI-style image content part from base64 data or a URL."""
    if image_b64:
        url = f"data:image/jpeg;base64,{image_b64}"
    elif image_url:
        url = image_url
    else:
        raise ValueError("No image provided")
    return {"type": "image_url", "image_url": {"url": url}}


async def llm_complete(
    prompt: str,
    system: str | None = None,
    model: str | None = None,
    temperature: float | None = None,
    image: dict[str, Any] | None = None,
    max_retries: int = 3,
) -> str:
    """Send a completion request via litellm and return the text response."""
    model = model or PIPELINE_CONFIG["identify_model"]
    temperature = temperature if temperature is not None else PIPELINE_CONFIG["llm_temperature"]

    messages: list[dict[str, Any]] = []
    if system:
        messages.append({"role": "system", "content": system})
    if image is not None:
        messages.append({"role": "user", "content": [{"type": "text", "text": prompt}, image]})
    else:
        messages.append({"role": "user", "content": prompt})

    for attempt in range(max_retries):
        try:
            response = await litellm.acompletion(
                model=model,
                messages=messages,
                temperature=temperature,
                max_tokens=PIPELINE_CONFIG["llm_max_tokens"],
            )
            return response.choices[0].message.content or ""
        except Exception:
            if attempt == max_retries - 1:
                raise
            logger.warning("LLM call failed (attempt %d/%d), retrying...", attempt + 1, max_retries)

    return ""  # unreachable but satisfies type checker


def parse_json_reply(text: str) -> dict[str, Any]:
    """Parse a model reply as a JSON object, tolerating fences and chatter."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        # Remove first and last lines (fences)
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)

    if not cleaned.startswith("{"):
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("No JSON object found in model reply")
        cleaned = cleaned[start:end + 1]

    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError("Model reply is not a JSON object")
    return data


async def llm_complete_json(
    prompt: str,
    system: str | None = None,
    model: str | None = None,
    temperature: float | None = None,
    image: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Send a completion request and parse the response as JSON.

    The prompt should instruct the LLM to respond with valid JSON only.
    """
    text = await llm_complete(
        prompt, system=system, model=model, temperature=temperature, image=image,
    )
    return parse_json_reply(text)
