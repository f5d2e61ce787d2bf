"""Join attribute records onto rings by normalized region key."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from .errors import DuplicateKeyError
from .models import DEFAULT_KEY_SUFFIXES, AttributeRecord, JoinedRing, PolygonSet

_LOGGER = logging.getLogger("choropleth.join")

JOIN_LEVELS = ("region", "subregion")
JOIN_MODES = ("inner", "left")
DUPLICATE_POLICIES = ("error", "first", "last")


@dataclass(frozen=True, slots=True)
class JoinCoverage:
    """Key-level view of how a PolygonSet and a record set overlap."""

    matched: frozenset[str]
    unmatched_rings: frozenset[str]
    unused_records: frozenset[str]
    rings_without_key: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "matched": sorted(self.matched),
            "unmatched_rings": sorted(self.unmatched_rings),
            "unused_records": sorted(self.unused_records),
            "rings_without_key": self.rings_without_key,
        }


def index_records(
    records: Iterable[AttributeRecord],
    *,
    on_duplicate: str = "error",
) -> dict[str, AttributeRecord]:
    """Index records by key, resolving duplicates per ``on_duplicate``."""
    if on_duplicate not in DUPLICATE_POLICIES:
        raise ValueError(f"on_duplicate must be one of {', '.join(DUPLICATE_POLICIES)}")
    index: dict[str, AttributeRecord] = {}
    for record in records:
        existing = index.get(record.key)
        if existing is None:
            index[record.key] = record
            continue
        if on_duplicate == "error":
            raise DuplicateKeyError(record.key, (existing.line_number, record.line_number))
        if on_duplicate == "last":
            index[record.key] = record
        _LOGGER.warning(
            "Duplicate attribute key '%s'; keeping the %s record", record.key, on_duplicate
        )
    return index


def join(
    polygon_set: PolygonSet,
    records: Iterable[AttributeRecord],
    key: str = "subregion",
    *,
    how: str = "inner",
    on_duplicate: str = "error",
    strip_suffixes: Sequence[str] = DEFAULT_KEY_SUFFIXES,
) -> tuple[JoinedRing, ...]:
    """Join records onto rings by normalized ``key`` level.

    ``how="inner"`` drops rings without a matching record; ``how="left"``
    keeps them with ``record=None``. Records without a ring are unused.
    Duplicate record keys raise DuplicateKeyError unless ``on_duplicate`` is
    ``"first"`` or ``"last"``. Ring keys are normalized with ``strip_suffixes``,
    which must be the suffixes the records were keyed with. Output preserves
    ring draw order.
    """
    if key not in JOIN_LEVELS:
        raise ValueError(f"Join key must be one of {', '.join(JOIN_LEVELS)}; got '{key}'")
    if how not in JOIN_MODES:
        raise ValueError(f"Join mode must be one of {', '.join(JOIN_MODES)}; got '{how}'")

    index = index_records(records, on_duplicate=on_duplicate)
    joined: list[JoinedRing] = []
    dropped = 0
    for ring in polygon_set:
        ring_key = ring.key_for(key, strip_suffixes)
        record = index.get(ring_key) if ring_key is not None else None
        if record is None:
            if how == "inner":
                dropped += 1
                continue
        joined.append(JoinedRing(ring=ring, record=record, join_key=ring_key))

    _LOGGER.info(
        "Joined %d rings on %s (%s join, %d rings dropped, %d records available)",
        len(joined),
        key,
        how,
        dropped,
        len(index),
    )
    return tuple(joined)


def join_coverage(
    polygon_set: PolygonSet,
    records: Iterable[AttributeRecord],
    key: str = "subregion",
    *,
    strip_suffixes: Sequence[str] = DEFAULT_KEY_SUFFIXES,
) -> JoinCoverage:
    """Report matched keys, ring keys without a record and unused record keys."""
    if key not in JOIN_LEVELS:
        raise ValueError(f"Join key must be one of {', '.join(JOIN_LEVELS)}; got '{key}'")
    ring_keys = polygon_set.keys(key, strip_suffixes)
    record_keys = frozenset(record.key for record in records)
    rings_without_key = sum(1 for ring in polygon_set if ring.key_for(key, strip_suffixes) is None)
    return JoinCoverage(
        matched=ring_keys & record_keys,
        unmatched_rings=ring_keys - record_keys,
        unused_records=record_keys - ring_keys,
        rings_without_key=rings_without_key,
    )
