"""Default Identify and Verify collaborators backed by litellm vision models.

Both speak the request/response shapes the pipeline expects from its
classification endpoints, so they can be swapped for HTTP clients or stubs.
"""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import Any

from rock_identifier.config import PIPELINE_CONFIG
from rock_identifier.core.cross_check import names_agree
from rock_identifier.llm.client import image_part, llm_complete_json
from rock_identifier.prompts import IDENTIFY_SYSTEM, VERIFY_SYSTEM

logger = logging.getLogger(__name__)

_REMOTE_PREFIXES = ("http://", "https://", "data:")


def load_image(image_uri: str) -> tuple[str | None, str | None]:
    """Return (base64 data, remote uri). Exactly one is set."""
    if image_uri.startswith(_REMOTE_PREFIXES):
        return None, image_uri
    data = Path(image_uri).expanduser().read_bytes()
    return base64.b64encode(data).decode("ascii"), None


def _describe_location(location: dict[str, Any] | None) -> str:
    if not location:
        return ""
    text = f"Location: {location['latitude']:.4f}, {location['longitude']:.4f}"
    if location.get("elevation"):
        text += f", Elevation: {round(location['elevation'])}m"
    return text


class VisionClassifier:
    """Primary identification: one photo in, one candidate result out."""

    def __init__(self, model: str | None = None) -> None:
        self.model = model or PIPELINE_CONFIG["identify_model"]

    async def identify(self, request: dict[str, Any]) -> dict[str, Any]:
        lines = [f"Identify the rock in this photo (attempt {request.get('attemptNumber', 1)})."]
        location = _describe_location(request.get("location"))
        if location:
            lines.append(location)
        formation = request.get("formation")
        if formation:
            lines.append(
                f"Geological context: {formation['name']} formation ({formation['age']}), "
                f"{formation['rock_type']}, lithology: {formation['lithology']}"
            )
        if request.get("isPro"):
            lines.append("Prefer a specific formation name over a general rock type when the evidence allows.")
        lines.append("Respond with JSON only.")

        result = await llm_complete_json(
            "\n".join(lines),
            system=IDENTIFY_SYSTEM,
            model=self.model,
            image=image_part(request.get("image"), request.get("imageUri")),
        )
        return {"result": result}


class VerificationClassifier:
    """Independent second opinion from a different model family."""

    def __init__(self, model: str | None = None) -> None:
        self.model = model or PIPELINE_CONFIG["verify_model"]

    async def verify(self, request: dict[str, Any]) -> dict[str, Any]:
        prompt = "Provide an independent identification of the rock in this photo."
        location = _describe_location(request.get("location"))
        if location:
            prompt += f"\n{location}"

        reply = await llm_complete_json(
            prompt,
            system=VERIFY_SYSTEM,
            model=self.model,
            image=image_part(request.get("image"), request.get("imageUri")),
        )
        # Left empty when missing so the verifier treats the reply as a failure
        secondary = str(reply.get("secondary_identification") or "")
        return {
            "secondary_identification": secondary,
            "agreement": names_agree(request.get("primaryIdentification", ""), secondary),
            "reasoning": str(reply.get("reasoning") or ""),
        }
