"""Map numeric values through a scale transform to a bounded encoding."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

import numpy as np

from .errors import DomainError
from .models import Issue

_LOGGER = logging.getLogger("choropleth.scale")


@dataclass(frozen=True, slots=True)
class _Transform:
    forward: Callable[[np.ndarray], np.ndarray]
    inverse: Callable[[np.ndarray], np.ndarray]
    lower_bound: float
    lower_inclusive: bool
    description: str


_TRANSFORMS: dict[str, _Transform] = {
    "identity": _Transform(
        forward=lambda x: x,
        inverse=lambda x: x,
        lower_bound=-math.inf,
        lower_inclusive=True,
        description="any finite value",
    ),
    "log10": _Transform(
        forward=np.log10,
        inverse=lambda x: np.power(10.0, x),
        lower_bound=0.0,
        lower_inclusive=False,
        description="values > 0",
    ),
    "sqrt": _Transform(
        forward=np.sqrt,
        inverse=np.square,
        lower_bound=0.0,
        lower_inclusive=True,
        description="values >= 0",
    ),
}

TRANSFORM_NAMES = tuple(_TRANSFORMS)


def _get_transform(name: str) -> _Transform:
    transform = _TRANSFORMS.get(name)
    if transform is None:
        raise ValueError(f"Unknown scale transform '{name}' (expected one of {', '.join(TRANSFORM_NAMES)})")
    return transform


def check_domain(value: float, transform: str) -> float:
    """Return ``value`` as float or raise DomainError for ``transform``."""
    spec = _get_transform(transform)
    number = float(value)
    if not math.isfinite(number):
        raise DomainError(number, f"{transform} scale requires finite values; got {number}")
    below = number < spec.lower_bound if spec.lower_inclusive else number <= spec.lower_bound
    if below:
        raise DomainError(number, f"{transform} scale requires {spec.description}; got {number:g}")
    return number


def _validate_output_range(output_range: Sequence[float]) -> tuple[float, float]:
    if len(output_range) != 2:
        raise ValueError("output_range must have exactly two values")
    low, high = float(output_range[0]), float(output_range[1])
    if not (math.isfinite(low) and math.isfinite(high)) or low == high:
        raise ValueError("output_range bounds must be finite and distinct")
    return (low, high)


@dataclass(frozen=True, slots=True)
class FittedScale:
    """Scale fitted once to a value domain and then reused unchanged."""

    transform: str
    domain: tuple[float, float]
    output_range: tuple[float, float] = (0.0, 1.0)
    clip: bool = False

    def __post_init__(self) -> None:
        check_domain(self.domain[0], self.transform)
        check_domain(self.domain[1], self.transform)
        if self.domain[0] > self.domain[1]:
            raise ValueError("Scale domain must be ordered (min, max)")
        _validate_output_range(self.output_range)
        spec = _get_transform(self.transform)
        t_low, t_high = (float(v) for v in spec.forward(np.array(self.domain)))
        if not math.isfinite(t_high - t_low):
            raise DomainError(
                t_high,
                f"{self.transform} domain [{self.domain[0]:g}, {self.domain[1]:g}] spans more than a float can hold",
            )

    def encode(self, value: float) -> float:
        """Encode one value; raises DomainError rather than clamping silently."""
        number = check_domain(value, self.transform)
        low, high = self.domain
        if (number < low or number > high) and not self.clip:
            raise DomainError(
                number, f"{number:g} lies outside the fitted domain [{low:g}, {high:g}]"
            )
        spec = _get_transform(self.transform)
        t_low, t_high, t_value = (float(v) for v in spec.forward(np.array([low, high, number])))
        out_low, out_high = self.output_range
        if t_high == t_low:
            return (out_low + out_high) / 2.0
        fraction = (t_value - t_low) / (t_high - t_low)
        fraction = min(max(fraction, 0.0), 1.0)
        return out_low + fraction * (out_high - out_low)

    def ticks(self, count: int = 5) -> tuple[float, ...]:
        """Domain values evenly spaced in transformed space, for legends."""
        if count < 2:
            raise ValueError("ticks count must be >= 2")
        low, high = self.domain
        if low == high:
            return (low,)
        spec = _get_transform(self.transform)
        t_low, t_high = (float(v) for v in spec.forward(np.array([low, high])))
        inner = spec.inverse(np.linspace(t_low, t_high, count))[1:-1]
        # Endpoints are exact so round-tripping through the transform stays in domain.
        return (low, *(min(max(float(v), low), high) for v in inner), high)

    def to_dict(self) -> dict[str, object]:
        return {
            "transform": self.transform,
            "domain": list(self.domain),
            "output_range": list(self.output_range),
            "clip": self.clip,
        }


@dataclass(frozen=True, slots=True)
class ScaleResult:
    encodings: tuple[float | None, ...]
    scale: FittedScale | None
    errors: tuple[DomainError, ...] = ()

    @property
    def domain(self) -> tuple[float, float] | None:
        return self.scale.domain if self.scale is not None else None

    @property
    def issues(self) -> tuple[Issue, ...]:
        return tuple(Issue(stage="scale", message=str(err)) for err in self.errors)


def fit_scale(
    values: Iterable[float],
    transform: str = "identity",
    output_range: Sequence[float] = (0.0, 1.0),
    *,
    clip: bool = False,
) -> FittedScale:
    """Fit a scale to the values that are valid for ``transform``.

    Raises ValueError when no value is usable.
    """
    valid: list[float] = []
    for value in values:
        try:
            valid.append(check_domain(value, transform))
        except DomainError:
            continue
    if not valid:
        raise ValueError(f"No values inside the {transform} domain to fit a scale")
    return FittedScale(
        transform=transform,
        domain=(min(valid), max(valid)),
        output_range=_validate_output_range(output_range),
        clip=clip,
    )


def map_to_encoding(
    values: Sequence[float],
    transform: str = "identity",
    output_range: Sequence[float] | None = None,
    *,
    scale: FittedScale | None = None,
) -> ScaleResult:
    """Encode each value, reporting out-of-domain values instead of mapping them.

    Invalid values get ``None`` as their encoding and a DomainError in
    ``errors``. Passing an existing ``scale`` reuses it as fitted; its
    transform and output range must agree with the ones requested.
    """
    _get_transform(transform)
    if scale is not None:
        if scale.transform != transform:
            raise ValueError(
                f"Fitted scale uses '{scale.transform}' but '{transform}' was requested"
            )
        if output_range is not None and _validate_output_range(output_range) != scale.output_range:
            raise ValueError(
                f"Fitted scale maps to {scale.output_range} but {tuple(output_range)} was requested"
            )
    errors: list[DomainError] = []
    fit_error: DomainError | None = None
    if scale is None:
        try:
            scale = fit_scale(values, transform, output_range if output_range is not None else (0.0, 1.0))
        except DomainError as exc:
            fit_error = exc
        except ValueError:
            scale = None

    encodings: list[float | None] = []
    for value in values:
        if scale is None:
            try:
                check_domain(value, transform)
            except DomainError as exc:
                errors.append(exc)
            else:
                if fit_error is not None:
                    errors.append(DomainError(float(value), f"{float(value):g} not encoded: {fit_error}"))
            encodings.append(None)
            continue
        try:
            encodings.append(scale.encode(value))
        except DomainError as exc:
            errors.append(exc)
            encodings.append(None)

    if errors:
        _LOGGER.warning("%d values rejected by the %s scale", len(errors), transform)
    return ScaleResult(encodings=tuple(encodings), scale=scale, errors=tuple(errors))
