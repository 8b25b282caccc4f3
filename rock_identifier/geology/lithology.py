"""Lithology heuristics.

Every attribute we infer from a free-text lithology string is an ordered table
of (keywords, value) rows consulted by ``first_match``: the first row with a
keyword contained in the lithology wins, otherwise the default applies.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")

Rule = tuple[tuple[str, ...], T]

ROCK_TYPE_RULES: list[Rule[str]] = [
    (("limestone", "sandstone", "shale", "dolomite", "chalk", "mudstone",
      "conglomerate", "siltstone", "claystone"), "Sedimentary"),
    (("granite", "basalt", "rhyolite", "andesite", "diorite", "gabbro",
      "volcanic", "intrusive"), "Igneous"),
    (("marble", "slate", "gneiss", "schist", "quartzite", "phyllite",
      "hornfels"), "Metamorphic"),
]

MINERAL_RULES: list[Rule[list[str]]] = [
    (("limestone", "chalk"), ["Calcite", "Aragonite"]),
    (("sandstone",), ["Quartz", "Feldspar", "Iron oxides"]),
    (("granite",), ["Quartz", "Feldspar", "Mica", "Hornblende"]),
    (("basalt",), ["Plagioclase", "Pyroxene", "Olivine"]),
    (("shale",), ["Clay minerals", "Quartz", "Calcite"]),
]

HARDNESS_RULES: list[Rule[str]] = [
    (("granite", "quartzite"), "6-7 (Hard)"),
    (("limestone", "marble"), "3-4 (Medium)"),
    (("shale", "chalk"), "2-3 (Soft)"),
    (("sandstone",), "6-7 (Hard, varies)"),
]

USE_RULES: list[Rule[list[str]]] = [
    (("limestone",), ["Building stone", "Cement production", "Agricultural lime"]),
    (("granite",), ["Countertops", "Monuments", "Building facades"]),
    (("sandstone",), ["Building stone", "Paving", "Glassmaking"]),
    (("marble",), ["Sculpture", "Flooring", "Countertops"]),
]

VISUAL_RULES: list[Rule[list[str]]] = [
    (("limestone",), ["Light gray to tan color", "Fine-grained texture", "May contain fossils", "Fizzes with acid"]),
    (("sandstone",), ["Sandy texture", "Gritty feel", "Visible grain structure", "Red, tan, or white color"]),
    (("shale",), ["Thin layered sheets", "Dark gray to black", "Soft and flaky", "Earthy smell when wet"]),
    (("granite",), ["Speckled appearance", "Coarse crystals visible", "Pink, gray, or white", "Hard and durable"]),
    (("basalt",), ["Dark gray to black", "Fine-grained", "May have small holes (vesicles)", "Dense and heavy"]),
    (("marble",), ["Crystalline texture", "White or colored", "Smooth when polished", "Fizzes with acid"]),
    (("dolomite",), ["Similar to limestone", "Slightly harder", "Tan to light gray", "Reacts slowly with acid"]),
    (("chalk",), ["Very soft", "White color", "Leaves marks on surfaces", "Fine-grained"]),
    (("slate",), ["Flat and smooth", "Dark gray", "Splits into thin sheets", "Rings when tapped"]),
    (("quartzite",), ["Very hard", "Glassy appearance", "Breaks across grains", "Light colored"]),
]

IDENTIFIER_RULES: list[Rule[list[str]]] = [
    (("limestone",), ["Acid test (fizzes with HCl)", "Fossil presence", "Hardness ~3-4"]),
    (("sandstone",), ["Gritty texture", "Visible sand grains", "Variable hardness"]),
    (("shale",), ["Fissile layering", "Soft (scratches with nail)", "Clay composition"]),
    (("granite",), ["Interlocking crystals", "Contains quartz, feldspar, mica", "Hardness 6-7"]),
    (("basalt",), ["Very dark color", "Fine-grained or glassy", "May be vesicular"]),
]

# Lithology keywords that count as evidence for each rock class
CLASS_KEYWORDS: dict[str, tuple[str, ...]] = {
    "sedimentary": ("limestone", "sandstone", "shale", "dolomite"),
    "igneous": ("granite", "basalt", "volcanic", "intrusive"),
    "metamorphic": ("schist", "gneiss", "marble", "slate"),
}

KNOWN_ROCKS = (
    "limestone", "sandstone", "shale", "granite", "basalt", "marble",
    "slate", "gneiss", "schist", "dolomite", "chalk", "mudstone",
    "conglomerate", "siltstone", "quartzite",
)

# (upper bound in Ma, period name), youngest first
PERIODS: list[tuple[float, str]] = [
    (0.0117, "Holocene"),
    (2.58, "Pleistocene"),
    (5.33, "Pliocene"),
    (23.03, "Miocene"),
    (33.9, "Oligocene"),
    (56, "Eocene"),
    (66, "Paleocene"),
    (145, "Cretaceous"),
    (201.3, "Jurassic"),
    (251.9, "Triassic"),
    (298.9, "Permian"),
    (358.9, "Carboniferous"),
    (419.2, "Devonian"),
    (443.8, "Silurian"),
    (485.4, "Ordovician"),
    (538.8, "Cambrian"),
    (2500, "Proterozoic"),
]


def first_match(text: str, rules: Sequence[Rule[T]], default: T) -> T:
    """Return the value of the first rule whose keyword occurs in ``text``."""
    lower = text.lower() if isinstance(text, str) else ""
    for keywords, value in rules:
        if any(kw in lower for kw in keywords):
            return value
    return default


def infer_rock_type(lithology: str) -> str:
    return first_match(lithology, ROCK_TYPE_RULES, "Sedimentary")


def infer_minerals(lithology: str) -> list[str]:
    return list(first_match(lithology, MINERAL_RULES, ["Various minerals"]))


def infer_hardness(lithology: str) -> str:
    return first_match(lithology, HARDNESS_RULES, "Variable")


def infer_uses(lithology: str) -> list[str]:
    return list(first_match(lithology, USE_RULES, ["Construction materials"]))


def visual_characteristics(lithology: str) -> list[str]:
    return list(first_match(
        lithology, VISUAL_RULES,
        ["Variable appearance", "Examine color and texture", "Check grain size", "Note any layering"],
    ))


def key_identifiers(lithology: str) -> list[str]:
    return list(first_match(
        lithology, IDENTIFIER_RULES,
        ["Examine crystal structure", "Test hardness", "Check for layering"],
    ))


def extract_rock_name(lithology: str) -> str:
    """Name the rock after the leading lithology term."""
    primary = (lithology or "").split(",")[0].strip() or "Unknown"
    lower = primary.lower()
    for rock in KNOWN_ROCKS:
        if rock in lower:
            return rock.capitalize()
    return primary[0].upper() + primary[1:]


def matches_class(rock_type: str, lithologies: Sequence[str]) -> bool:
    """Whether any lithology carries a keyword of the candidate's rock class."""
    keywords = CLASS_KEYWORDS.get(rock_type.strip().lower())
    if not keywords:
        return False
    return any(kw in lith.lower() for lith in lithologies for kw in keywords)


def geologic_period(age_ma: float) -> str:
    for bound, name in PERIODS:
        if age_ma < bound:
            return name
    return "Archean"


def format_age(age_ma: float) -> str:
    if age_ma == 0:
        return "Present"
    if age_ma < 1:
        return f"{age_ma * 1000:.0f} Ka"
    if age_ma < 1000:
        return f"{age_ma:.1f} Ma"
    return f"{age_ma / 1000:.2f} Ga"


def formation_process(rock_type: str) -> str:
    if rock_type == "Sedimentary":
        return "deposition and compaction of sediments"
    if rock_type == "Igneous":
        return "cooling and solidification of magma or lava"
    return "heat and pressure transforming existing rock"
