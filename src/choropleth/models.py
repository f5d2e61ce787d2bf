"""Domain models shared across pipeline modules."""

from __future__ import annotations

import math
import re
import unicodedata
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Iterator, Mapping, Sequence


_SEPARATOR_CHARS = frozenset("-_/")
_FOOTNOTE_RE = re.compile(r"\[[^\]]*\]")

DEFAULT_KEY_SUFFIXES: tuple[str, ...] = ("county", "parish", "borough")


def normalize_key(value: str, strip_suffixes: Sequence[str] = DEFAULT_KEY_SUFFIXES) -> str:
    """Normalize a region/subregion name into a join key.

    Footnote markers such as ``[a]`` are removed, accents and case are folded,
    separators become spaces, other punctuation is dropped and whitespace is
    collapsed. A trailing word from ``strip_suffixes`` ("Alameda County") is
    dropped unless it is the whole name. Rings and attribute records must be
    keyed through this one function with the same suffixes.
    """
    key = _fold(_FOOTNOTE_RE.sub(" ", value))
    for suffix in strip_suffixes:
        tail = _fold(suffix)
        if tail and key.endswith(f" {tail}"):
            return key[: -len(tail) - 1]
    return key


def _fold(value: str) -> str:
    folded = unicodedata.normalize("NFKD", value)
    without_marks = "".join(ch for ch in folded if not unicodedata.combining(ch))
    chars: list[str] = []
    for ch in without_marks.casefold():
        if ch.isalnum():
            chars.append(ch)
        elif ch.isspace() or ch in _SEPARATOR_CHARS:
            chars.append(" ")
    return " ".join("".join(chars).split())


def _require_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _optional_str(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return _require_str(value, field_name)


def _require_float(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        try:
            value = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"Expected numeric value for '{field_name}'") from None
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"Expected finite value for '{field_name}'")
    return number


def _require_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Expected integer for '{field_name}'")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValueError(f"Expected integer for '{field_name}'") from None


@dataclass(frozen=True, slots=True)
class BoundaryPoint:
    """One vertex of a boundary stream, as produced by the catalog."""

    longitude: float
    latitude: float
    sequence_index: int
    group_id: int
    region: str
    subregion: str | None = None

    def __post_init__(self) -> None:
        if not (math.isfinite(self.longitude) and math.isfinite(self.latitude)):
            raise ValueError(f"coordinates must be finite: ({self.longitude}, {self.latitude})")
        # 0..360 longitudes are accepted for Pacific-centred sources.
        if self.longitude < -180.0 or self.longitude > 360.0:
            raise ValueError(f"longitude out of range: {self.longitude}")
        if self.latitude < -90.0 or self.latitude > 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> BoundaryPoint:
        return cls(
            longitude=_require_float(data.get("longitude"), "longitude"),
            latitude=_require_float(data.get("latitude"), "latitude"),
            sequence_index=_require_int(data.get("sequence_index"), "sequence_index"),
            group_id=_require_int(data.get("group_id"), "group_id"),
            region=_require_str(data.get("region"), "region"),
            subregion=_optional_str(data.get("subregion"), "subregion"),
        )

    @property
    def lon_lat(self) -> tuple[float, float]:
        return (self.longitude, self.latitude)


@dataclass(frozen=True, slots=True)
class Ring:
    """Closed loop of points sharing one group id.

    The edge from the last point back to the first is implicit; rings are
    never connected to one another.
    """

    group_id: int
    region: str
    subregion: str | None
    points: tuple[BoundaryPoint, ...]

    def __len__(self) -> int:
        return len(self.points)

    @property
    def key(self) -> str:
        return normalize_key(self.subregion if self.subregion is not None else self.region)

    def key_for(self, level: str, strip_suffixes: Sequence[str] = DEFAULT_KEY_SUFFIXES) -> str | None:
        if level == "region":
            return normalize_key(self.region, strip_suffixes)
        if level == "subregion":
            if self.subregion is None:
                return None
            return normalize_key(self.subregion, strip_suffixes)
        raise ValueError(f"Unknown key level '{level}' (expected 'region' or 'subregion')")

    @property
    def coordinates(self) -> tuple[tuple[float, float], ...]:
        """Closed coordinate sequence for renderers (first point repeated last)."""
        coords = tuple(point.lon_lat for point in self.points)
        if coords and coords[0] != coords[-1]:
            coords = (*coords, coords[0])
        return coords

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """(lon_min, lon_max, lat_min, lat_max)."""
        lons = [point.longitude for point in self.points]
        lats = [point.latitude for point in self.points]
        return (min(lons), max(lons), min(lats), max(lats))


@dataclass(frozen=True, slots=True)
class Viewport:
    """Longitude/latitude display rectangle."""

    lon_min: float
    lon_max: float
    lat_min: float
    lat_max: float

    def __post_init__(self) -> None:
        if not self.lon_min < self.lon_max:
            raise ValueError("Viewport lon_min must be < lon_max")
        if not self.lat_min < self.lat_max:
            raise ValueError("Viewport lat_min must be < lat_max")
        if self.lat_min < -90.0 or self.lat_max > 90.0:
            raise ValueError("Viewport latitudes must be between -90 and 90")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Viewport:
        lon = data.get("lon")
        lat = data.get("lat")
        if not isinstance(lon, (list, tuple)) or len(lon) != 2:
            raise ValueError("Expected [min, max] list for 'viewport.lon'")
        if not isinstance(lat, (list, tuple)) or len(lat) != 2:
            raise ValueError("Expected [min, max] list for 'viewport.lat'")
        return cls(
            lon_min=_require_float(lon[0], "viewport.lon[0]"),
            lon_max=_require_float(lon[1], "viewport.lon[1]"),
            lat_min=_require_float(lat[0], "viewport.lat[0]"),
            lat_max=_require_float(lat[1], "viewport.lat[1]"),
        )

    def intersects(self, bounds: tuple[float, float, float, float]) -> bool:
        lon_min, lon_max, lat_min, lat_max = bounds
        return not (
            lon_max < self.lon_min
            or lon_min > self.lon_max
            or lat_max < self.lat_min
            or lat_min > self.lat_max
        )


@dataclass(frozen=True, slots=True)
class PolygonSet:
    """Rings in draw order, optionally with a display viewport attached."""

    rings: tuple[Ring, ...] = ()
    viewport: Viewport | None = None

    def __iter__(self) -> Iterator[Ring]:
        return iter(self.rings)

    def __len__(self) -> int:
        return len(self.rings)

    def __bool__(self) -> bool:
        return bool(self.rings)

    @property
    def regions(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(ring.region for ring in self.rings))

    @property
    def subregions(self) -> tuple[str, ...]:
        return tuple(
            dict.fromkeys(ring.subregion for ring in self.rings if ring.subregion is not None)
        )

    def keys(
        self,
        level: str = "subregion",
        strip_suffixes: Sequence[str] = DEFAULT_KEY_SUFFIXES,
    ) -> frozenset[str]:
        keys = (ring.key_for(level, strip_suffixes) for ring in self.rings)
        return frozenset(key for key in keys if key is not None)

    @property
    def point_count(self) -> int:
        return sum(len(ring) for ring in self.rings)

    @property
    def bounds(self) -> tuple[float, float, float, float] | None:
        if not self.rings:
            return None
        all_bounds = [ring.bounds for ring in self.rings]
        return (
            min(b[0] for b in all_bounds),
            max(b[1] for b in all_bounds),
            min(b[2] for b in all_bounds),
            max(b[3] for b in all_bounds),
        )


@dataclass(frozen=True, slots=True)
class AttributeRecord:
    """Typed attribute row parsed from an external table."""

    key: str
    name: str
    values: Mapping[str, float] = field(default_factory=dict)
    line_number: int | None = None

    @classmethod
    def create(
        cls,
        name: str,
        values: Mapping[str, float],
        *,
        line_number: int | None = None,
        strip_suffixes: Sequence[str] = DEFAULT_KEY_SUFFIXES,
    ) -> AttributeRecord:
        clean_name = _require_str(name, "name")
        key = normalize_key(clean_name, strip_suffixes)
        if not key:
            raise ValueError(f"Attribute name '{name}' normalizes to an empty key")
        return cls(
            key=key,
            name=clean_name,
            values={k: float(v) for k, v in values.items()},
            line_number=line_number,
        )


@dataclass(frozen=True, slots=True)
class JoinedRing:
    """Ring combined with its attribute record and derived metrics.

    ``join_key`` is the ring's key at the level it was joined on, so matched
    and unmatched rings of one join share a key space.
    """

    ring: Ring
    record: AttributeRecord | None
    metrics: Mapping[str, float] = field(default_factory=dict)
    join_key: str | None = None

    @property
    def key(self) -> str:
        if self.join_key is not None:
            return self.join_key
        return self.record.key if self.record is not None else self.ring.key

    def value(self, name: str) -> float | None:
        if name in self.metrics:
            return self.metrics[name]
        if self.record is not None:
            return self.record.values.get(name)
        return None

    def with_metric(self, name: str, value: float) -> JoinedRing:
        return replace(self, metrics={**self.metrics, name: value})

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "group_id": self.ring.group_id,
            "region": self.ring.region,
            "subregion": self.ring.subregion,
            "point_count": len(self.ring),
            "values": dict(self.record.values) if self.record is not None else None,
            "metrics": dict(self.metrics),
        }


@dataclass(frozen=True, slots=True)
class Issue:
    """Non-fatal problem recorded by one pipeline stage."""

    stage: str
    message: str
    key: str | None = None

    def __str__(self) -> str:
        subject = f" [{self.key}]" if self.key else ""
        return f"{self.stage}{subject}: {self.message}"


@dataclass(frozen=True, slots=True)
class RunManifest:
    """Run metadata used for deterministic audit trails."""

    generated_at_utc: str
    config_hash_sha256: str
    git_commit: str | None
    steps: Mapping[str, str]
    artifacts: Mapping[str, str]

    @classmethod
    def create(
        cls,
        *,
        config_hash_sha256: str,
        git_commit: str | None,
        steps: Mapping[str, str],
        artifacts: Mapping[str, str],
    ) -> RunManifest:
        now = datetime.now(timezone.utc).isoformat()
        return cls(
            generated_at_utc=now,
            config_hash_sha256=config_hash_sha256,
            git_commit=git_commit,
            steps=steps,
            artifacts=artifacts,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at_utc": self.generated_at_utc,
            "config_hash_sha256": self.config_hash_sha256,
            "git_commit": self.git_commit,
            "steps": dict(self.steps),
            "artifacts": dict(self.artifacts),
        }
