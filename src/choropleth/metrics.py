"""Derived per-ring metrics computed from joined attributes."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from .errors import MetricUndefinedError
from .models import Issue, JoinedRing

_LOGGER = logging.getLogger("choropleth.metrics")

METRIC_POLICIES = ("retain", "drop")


@dataclass(frozen=True, slots=True)
class Metric:
    """Ratio metric ``numerator / denominator`` stored under ``name``."""

    name: str
    numerator: str
    denominator: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Metric:
        out: dict[str, str] = {}
        for field_name in ("name", "numerator", "denominator"):
            value = data.get(field_name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"Expected non-empty string for 'metric.{field_name}'")
            out[field_name] = value.strip()
        return cls(**out)

    def compute(self, joined: JoinedRing) -> float:
        numerator = joined.value(self.numerator)
        denominator = joined.value(self.denominator)
        label = joined.key
        if numerator is None or denominator is None:
            missing = self.numerator if numerator is None else self.denominator
            raise MetricUndefinedError(f"{self.name} undefined for '{label}': missing '{missing}'")
        if not math.isfinite(numerator) or not math.isfinite(denominator):
            raise MetricUndefinedError(f"{self.name} undefined for '{label}': non-finite input")
        if denominator == 0:
            raise MetricUndefinedError(f"{self.name} undefined for '{label}': {self.denominator} is zero")
        return numerator / denominator


DENSITY = Metric(name="density", numerator="population", denominator="area")


@dataclass(frozen=True, slots=True)
class MetricResult:
    rings: tuple[JoinedRing, ...]
    issues: tuple[Issue, ...] = ()


def derive(joined: JoinedRing, metric: Metric = DENSITY) -> JoinedRing:
    """Return a copy of ``joined`` with ``metric`` added; raises MetricUndefinedError."""
    return joined.with_metric(metric.name, metric.compute(joined))


def derive_all(
    rings: Iterable[JoinedRing],
    metric: Metric = DENSITY,
    *,
    policy: str = "retain",
) -> MetricResult:
    """Derive ``metric`` for every ring, collecting undefined cases as issues.

    ``retain`` keeps a ring whose metric is undefined with the field absent;
    ``drop`` removes it. Either way the ring never carries a NaN.
    """
    if policy not in METRIC_POLICIES:
        raise ValueError(f"Metric policy must be one of {', '.join(METRIC_POLICIES)}; got '{policy}'")
    out: list[JoinedRing] = []
    issues: list[Issue] = []
    reported: set[str] = set()
    for joined in rings:
        try:
            out.append(derive(joined, metric))
        except MetricUndefinedError as exc:
            # Several rings (islands) can share one key; report it once.
            if joined.key not in reported:
                issues.append(Issue(stage="metric", key=joined.key, message=str(exc)))
                reported.add(joined.key)
            if policy == "retain":
                out.append(joined)
    if issues:
        _LOGGER.warning(
            "%s undefined for %d keys (policy=%s)", metric.name, len(issues), policy
        )
    return MetricResult(rings=tuple(out), issues=tuple(issues))
