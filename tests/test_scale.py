import math

import pytest
from hypothesis import given, settings, strategies as st

from choropleth.errors import DomainError
from choropleth.scale import FittedScale, check_domain, fit_scale, map_to_encoding


@pytest.mark.parametrize("value", [0, -1, -0.5])
def test_log10_rejects_non_positive_values(value):
    with pytest.raises(DomainError):
        check_domain(value, "log10")


def test_sqrt_accepts_zero_but_not_negatives():
    assert check_domain(0, "sqrt") == 0.0
    with pytest.raises(DomainError):
        check_domain(-4, "sqrt")


def test_non_finite_values_are_rejected_by_every_transform():
    for transform in ("identity", "log10", "sqrt"):
        with pytest.raises(DomainError):
            check_domain(math.nan, transform)


def test_log10_spacing_is_even_in_log_space():
    result = map_to_encoding([1, 10, 100], "log10")
    assert result.encodings == pytest.approx((0.0, 0.5, 1.0))
    assert result.domain == (1.0, 100.0)


def test_invalid_values_are_reported_not_encoded():
    result = map_to_encoding([10, 0, 1000, -3], "log10")

    assert result.encodings[0] == pytest.approx(0.0)
    assert result.encodings[1] is None
    assert result.encodings[2] == pytest.approx(1.0)
    assert result.encodings[3] is None
    assert [err.value for err in result.errors] == [0.0, -3.0]
    assert all(issue.stage == "scale" for issue in result.issues)


def test_no_valid_values_leaves_scale_unfitted():
    result = map_to_encoding([0, -1], "log10")
    assert result.scale is None
    assert result.encodings == (None, None)
    assert len(result.errors) == 2


def test_output_range_is_respected():
    result = map_to_encoding([2, 4, 6], "identity", (10.0, 20.0))
    assert result.encodings == pytest.approx((10.0, 15.0, 20.0))


def test_degenerate_domain_encodes_to_midpoint():
    result = map_to_encoding([7, 7], "identity", (0.0, 1.0))
    assert result.encodings == (0.5, 0.5)


def test_fitted_scale_is_reused_unchanged():
    scale = fit_scale([1, 1000], "log10")
    result = map_to_encoding([10, 100, 5000], "log10", scale=scale)

    assert result.scale is scale
    assert result.encodings[:2] == pytest.approx((1 / 3, 2 / 3))
    assert result.encodings[2] is None
    assert "outside the fitted domain" in str(result.errors[0])


def test_clipping_scale_clamps_out_of_domain_values():
    scale = FittedScale(transform="identity", domain=(0.0, 10.0), clip=True)
    assert scale.encode(25.0) == 1.0
    assert scale.encode(-5.0) == 0.0


def test_reusing_scale_with_other_transform_is_rejected():
    with pytest.raises(ValueError):
        map_to_encoding([1, 2], "sqrt", scale=fit_scale([1, 2], "identity"))


def test_output_range_must_match_reused_scale():
    scale = fit_scale([1, 2], "identity")
    with pytest.raises(ValueError, match="maps to"):
        map_to_encoding([1, 2], "identity", (0.0, 10.0), scale=scale)
    assert map_to_encoding([1, 2], "identity", (0.0, 1.0), scale=scale).encodings == pytest.approx((0.0, 1.0))


def test_domain_too_wide_for_floats_is_rejected():
    with pytest.raises(DomainError):
        FittedScale(transform="identity", domain=(-1e308, 1e308))

    result = map_to_encoding([-1e308, 1e308, 0.0], "identity")

    assert result.scale is None
    assert result.encodings == (None, None, None)
    assert len(result.errors) == 3
    assert all(isinstance(err, DomainError) for err in result.errors)


def test_unknown_transform_is_rejected():
    with pytest.raises(ValueError, match="Unknown scale transform"):
        map_to_encoding([1, 2], "cube")


def test_ticks_are_exact_at_domain_ends():
    scale = fit_scale([3.0, 3000.0], "log10")
    ticks = scale.ticks(4)

    assert ticks[0] == 3.0
    assert ticks[-1] == 3000.0
    assert ticks[1:3] == pytest.approx((30.0, 300.0))
    assert [scale.encode(tick) for tick in ticks] == pytest.approx([0.0, 1 / 3, 2 / 3, 1.0])


@given(
    st.lists(
        st.floats(min_value=1e-6, max_value=1e9, allow_nan=False, allow_infinity=False),
        min_size=2,
        max_size=40,
    ),
    st.sampled_from(["identity", "log10", "sqrt"]),
)
@settings(max_examples=100, deadline=None)
def test_encoding_is_monotonic_and_bounded(values, transform):
    ordered = sorted(values)
    result = map_to_encoding(ordered, transform, (0.0, 1.0))

    assert result.errors == ()
    encodings = list(result.encodings)
    assert all(0.0 <= value <= 1.0 for value in encodings)
    assert all(a <= b for a, b in zip(encodings, encodings[1:]))
