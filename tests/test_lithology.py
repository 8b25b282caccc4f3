"""Tests for lithology keyword tables."""

from rock_identifier.geology.lithology import (
    extract_rock_name,
    first_match,
    format_age,
    geologic_period,
    infer_hardness,
    infer_minerals,
    infer_rock_type,
    infer_uses,
    matches_class,
)


def test_first_match_order_and_default():
    rules = [(("lime",), "first"), (("limestone",), "second")]
    assert first_match("Limestone", rules, "none") == "first"
    assert first_match("basalt", rules, "none") == "none"


def test_infer_rock_type():
    assert infer_rock_type("Granite, porphyritic") == "Igneous"
    assert infer_rock_type("schist") == "Metamorphic"
    assert infer_rock_type("sandstone, shale") == "Sedimentary"
    assert infer_rock_type("alluvium") == "Sedimentary"


def test_infer_attributes():
    assert infer_minerals("basalt") == ["Plagioclase", "Pyroxene", "Olivine"]
    assert infer_minerals("tuff") == ["Various minerals"]
    assert infer_hardness("quartzite") == "6-7 (Hard)"
    assert infer_hardness("tuff") == "Variable"
    assert infer_uses("marble") == ["Sculpture", "Flooring", "Countertops"]


def test_returned_lists_are_copies():
    infer_minerals("granite").append("Gold")
    assert "Gold" not in infer_minerals("granite")


def test_extract_rock_name():
    assert extract_rock_name("limestone, dolomite") == "Limestone"
    assert extract_rock_name("Sandy mudstone") == "Mudstone"
    assert extract_rock_name("alluvium, gravel") == "Alluvium"
    assert extract_rock_name("") == "Unknown"


def test_matches_class():
    assert matches_class("Sedimentary", ["limestone, dolomite"])
    assert matches_class(" igneous ", ["basalt flows"])
    assert not matches_class("Metamorphic", ["limestone"])
    assert not matches_class("Unknown", ["limestone"])


def test_geologic_period():
    assert geologic_period(0.005) == "Holocene"
    assert geologic_period(100.5) == "Cretaceous"
    assert geologic_period(145) == "Jurassic"
    assert geologic_period(3000) == "Archean"


def test_format_age():
    assert format_age(0) == "Present"
    assert format_age(0.5) == "500 Ka"
    assert format_age(100.5) == "100.5 Ma"
    assert format_age(1100) == "1.10 Ga"
