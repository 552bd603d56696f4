"""Query strategies tried in priority order for one record."""

from __future__ import annotations

from dataclasses import dataclass

from placematch.common.models import Coordinates, PlaceRecord
from placematch.pipeline.builder import is_placeholder_image


@dataclass(frozen=True)
class QueryStrategy:
    name: str
    query: str
    location_bias: Coordinates | None = None


def build_strategies(record: PlaceRecord, *, default_region: str) -> list[QueryStrategy]:
    region = record.island or default_region
    strategies = []
    if record.coordinates is not None:
        strategies.append(QueryStrategy("exact_coordinates", record.name, record.coordinates))
    if record.category:
        strategies.append(QueryStrategy("name_category_region", f"{record.name} {record.category} {region}"))
    strategies.append(QueryStrategy("name_region", f"{record.name} {region}"))
    if record.address:
        strategies.append(QueryStrategy("address", f"{record.name} {record.address}"))
    return strategies


def needs_enrichment(record: PlaceRecord) -> bool:
    """Active records with a placeholder thumbnail or missing contact details."""
    if not record.is_active:
        return False
    return is_placeholder_image(record.thumbnail) or not record.phone or not record.website
