"""Retry prompts for inconclusive photos.

Two sources: canned prompts keyed by attempt number, and free-text guidance
from the vision classifier. Guidance is split into a headline and a follow-up
suggestion, and scanned for distance cues that translate into a camera zoom
step on the 1x/2x/4x/8x ladder.
"""

from __future__ import annotations

import re

from rock_identifier.models import RetryPrompt

ZOOM_LEVELS = (0.0, 0.25, 0.5, 0.75)
ZOOM_LABELS = {0.0: "1x", 0.25: "2x", 0.5: "4x", 0.75: "8x"}

TOO_CLOSE_PHRASES = ("too close", "step back", "zoom out", "further away")
TOO_FAR_PHRASES = ("too far", "get closer", "zoom in", "more detail")

_SENTENCE_SPLIT = re.compile(r"[.!?]+")

CANNED_PROMPTS = {
    "unclear_image": (
        "I'm having trouble seeing the rock clearly.",
        "Could you take another photo with better lighting?",
    ),
    "need_texture": (
        "I need to see more detail to identify this rock.",
        "Try getting closer to show the rock's texture and grain.",
    ),
    "different_angle": (
        "The current angle makes identification difficult.",
        "Please try a different angle or show a fresh break surface.",
    ),
}

GENERIC_FAILURE_PROMPT = (
    "Something went wrong with the analysis.",
    "Please try taking another photo.",
)


def canned_retry_prompt(attempt_number: int, uncertainty_reason: str | None = None) -> RetryPrompt:
    """Pick the canned prompt for an attempt, letting the classifier's reason win."""
    if uncertainty_reason == "blur" or attempt_number == 1:
        key = "unclear_image"
    elif uncertainty_reason == "texture" or attempt_number == 2:
        key = "need_texture"
    else:
        key = "different_angle"
    message, suggestion = CANNED_PROMPTS[key]
    return RetryPrompt(message=message, suggestion=suggestion, attempt_number=attempt_number)


def failure_retry_prompt(attempt_number: int) -> RetryPrompt:
    message, suggestion = GENERIC_FAILURE_PROMPT
    return RetryPrompt(message=message, suggestion=suggestion, attempt_number=attempt_number)


def zoom_label(zoom: float) -> str:
    for level, label in ZOOM_LABELS.items():
        if abs(level - zoom) < 1e-9:
            return label
    return f"{round((zoom + 1) * 4) / 4}x"


def _snap(zoom: float) -> float:
    return min(ZOOM_LEVELS, key=lambda level: abs(level - zoom))


def _matched_phrases(text: str, phrases: tuple[str, ...]) -> list[str]:
    return [p for p in phrases if p in text]


def suggest_zoom(guidance: str, current_zoom: float) -> tuple[float | None, list[str]]:
    """Return (suggested zoom, matched distance phrases).

    The suggestion is None when no cue is present or the zoom is already at
    the boundary in the cued direction.
    """
    lower = guidance.lower()
    idx = ZOOM_LEVELS.index(_snap(current_zoom))

    too_close = _matched_phrases(lower, TOO_CLOSE_PHRASES)
    if too_close:
        if idx == 0:
            return None, too_close
        return ZOOM_LEVELS[idx - 1], too_close

    too_far = _matched_phrases(lower, TOO_FAR_PHRASES)
    if too_far:
        if idx == len(ZOOM_LEVELS) - 1:
            return None, too_far
        return ZOOM_LEVELS[idx + 1], too_far

    return None, []


def extract_retry_prompt(guidance: str, attempt_number: int, current_zoom: float = 0.0) -> RetryPrompt:
    """Turn classifier rephoto guidance into a structured retry prompt."""
    sentences = [s.strip() for s in _SENTENCE_SPLIT.split(guidance) if s.strip()]
    message = sentences[0] if sentences else "Let's try again for a better identification."
    suggestion = ". ".join(sentences[1:]) or guidance.strip()

    zoom, phrases = suggest_zoom(guidance, current_zoom)
    if zoom is not None:
        replacement = f"zoom adjusted to {zoom_label(zoom)}"
        pattern = re.compile("|".join(re.escape(p) for p in phrases), re.IGNORECASE)
        suggestion = pattern.sub(replacement, suggestion)
    elif not suggestion:
        suggestion = "Please try taking another photo with the suggested improvements."

    return RetryPrompt(
        message=message,
        suggestion=suggestion,
        attempt_number=attempt_number,
        suggested_zoom=zoom,
    )
