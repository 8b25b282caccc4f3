"""Macrostrat API client.

Supplies the stratigraphic column under a coordinate (used by the location
cross-check, the location fallback and result enrichment) and the raw unit
list used to bootstrap the offline region cache.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from rock_identifier.config import PIPELINE_CONFIG
from rock_identifier.geology.lithology import infer_rock_type
from rock_identifier.models import StratigraphicColumn, StratigraphicUnit

logger = logging.getLogger(__name__)


class MacrostratClient:
    """Async client for the Macrostrat ``/units`` endpoint."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or PIPELINE_CONFIG["macrostrat_base_url"]).rstrip("/")
        self.timeout = timeout if timeout is not None else PIPELINE_CONFIG["http_timeout_seconds"]
        self._transport = transport

    async def fetch_units(self, lat: float, lng: float) -> list[dict[str, Any]]:
        """Return the raw unit dicts under a coordinate. Raises on HTTP errors."""
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout), transport=self._transport,
        ) as client:
            resp = await client.get(
                f"{self.base_url}/units",
                params={"lat": lat, "lng": lng, "response": "long", "format": "json"},
            )
            resp.raise_for_status()
            payload = resp.json()

        data = (payload.get("success") or {}).get("data") if isinstance(payload, dict) else None
        return data if isinstance(data, list) else []

    async def get_stratigraphic_column(self, lat: float, lng: float) -> StratigraphicColumn | None:
        """Build the column under a coordinate, or None when nothing is mapped there."""
        try:
            raw_units = await self.fetch_units(lat, lng)
        except Exception:
            logger.exception("Macrostrat column lookup failed for %.4f, %.4f", lat, lng)
            return None
        if not raw_units:
            return None
        return build_column(raw_units)

    async def fetch_region(self, lat: float, lng: float) -> dict[str, Any] | None:
        """Regional bootstrap payload: ``{"formations", "columnName", "rockTypes"}``.

        Formations are the raw unit records; the region cache normalizes them.
        """
        raw_units = await self.fetch_units(lat, lng)
        if not raw_units:
            return None
        first = raw_units[0]
        column_name = first.get("col_name") or first.get("strat_name_long") or "Local Column"
        rock_types = [
            infer_rock_type(format_named(u.get("lith"), default="", mixed=""))
            for u in raw_units
        ]
        return {
            "formations": raw_units,
            "columnName": column_name,
            "rockTypes": list(dict.fromkeys(rock_types)),
        }


def build_column(raw_units: list[dict[str, Any]]) -> StratigraphicColumn:
    units = [parse_unit(u) for u in raw_units]
    units.sort(key=lambda u: u.t_age)

    ages = [a for u in units for a in (u.t_age, u.b_age) if a > 0]
    first = raw_units[0]
    return StratigraphicColumn(
        col_id=int(first.get("col_id") or 0),
        col_name=first.get("col_name") or "Local Column",
        col_group=first.get("col_group") or "Regional",
        units=units,
        total_thickness=sum(u.max_thick for u in units),
        age_range=(min(ages + [0.0]), max(ages + [0.0])),
    )


def parse_unit(unit: dict[str, Any]) -> StratigraphicUnit:
    return StratigraphicUnit(
        unit_id=int(unit.get("unit_id") or 0),
        unit_name=unit.get("unit_name") or unit.get("strat_name_long") or "Unknown Unit",
        strat_name_long=unit.get("strat_name_long") or unit.get("unit_name") or "Unknown",
        color=unit.get("color") or "#808080",
        t_age=float(unit.get("t_age") or 0),
        b_age=float(unit.get("b_age") or 0),
        max_thick=float(unit.get("max_thick") or 0),
        min_thick=float(unit.get("min_thick") or 0),
        lith=format_named(unit.get("lith"), default="Unknown", mixed="Mixed"),
        environ=format_named(unit.get("environ"), default="Unknown", mixed="Varied"),
        econ=format_named(unit.get("econ"), default="", mixed=""),
        col_id=int(unit.get("col_id") or 0),
        t_int_name=unit.get("t_int_name") or "",
        b_int_name=unit.get("b_int_name") or "",
        formation=unit.get("Fm") or "",
        group=unit.get("Gp") or "",
    )


def format_named(value: Any, default: str, mixed: str) -> str:
    """Flatten Macrostrat's string-or-list-of-objects fields to one string."""
    if not value:
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        parts = []
        for item in value:
            if isinstance(item, dict):
                parts.append(str(item.get("name") or item.get("lith") or item.get("environ") or ""))
            else:
                parts.append(str(item))
        return ", ".join(p for p in parts if p)
    if isinstance(value, dict) and value.get("name"):
        return str(value["name"])
    return mixed
