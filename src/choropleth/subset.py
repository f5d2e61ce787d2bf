"""Region/subregion subsetting at ring granularity."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Sequence

from .models import DEFAULT_KEY_SUFFIXES, PolygonSet, normalize_key

RegionPredicate = Callable[[str, str | None], bool]

_LOGGER = logging.getLogger("choropleth.subset")


def filter_rings(polygon_set: PolygonSet, predicate: RegionPredicate) -> PolygonSet:
    """Keep whole rings whose (region, subregion) satisfy ``predicate``.

    Rings are never split. No match yields an empty PolygonSet.
    """
    kept = tuple(ring for ring in polygon_set if predicate(ring.region, ring.subregion))
    _LOGGER.debug("Subset kept %d of %d rings", len(kept), len(polygon_set))
    return PolygonSet(rings=kept, viewport=polygon_set.viewport)


def in_regions(
    names: Iterable[str],
    *,
    strip_suffixes: Sequence[str] = DEFAULT_KEY_SUFFIXES,
) -> RegionPredicate:
    """Predicate accepting rings whose region is one of ``names``."""
    accepted = frozenset(normalize_key(name, strip_suffixes) for name in names)

    def _predicate(region: str, subregion: str | None) -> bool:
        return normalize_key(region, strip_suffixes) in accepted

    return _predicate


def in_subregions(
    names: Iterable[str],
    *,
    region: str | None = None,
    strip_suffixes: Sequence[str] = DEFAULT_KEY_SUFFIXES,
) -> RegionPredicate:
    """Predicate accepting rings whose subregion is one of ``names``.

    When ``region`` is given the ring must also belong to that region, which
    disambiguates subregion names shared by several regions.
    """
    accepted = frozenset(normalize_key(name, strip_suffixes) for name in names)
    region_key = normalize_key(region, strip_suffixes) if region is not None else None

    def _predicate(ring_region: str, subregion: str | None) -> bool:
        if subregion is None or normalize_key(subregion, strip_suffixes) not in accepted:
            return False
        return region_key is None or normalize_key(ring_region, strip_suffixes) == region_key

    return _predicate
