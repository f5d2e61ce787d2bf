import math

import pytest
from hypothesis import given, settings, strategies as st

from choropleth.assemble import assemble
from choropleth.errors import InconsistentGroupError, MalformedOrderError
from choropleth.models import BoundaryPoint

from conftest import make_points


def test_group_change_closes_ring():
    points = make_points([(1, "a", 4), (2, "b", 3), (3, "c", 5)])
    polygon_set = assemble(points)

    assert [ring.group_id for ring in polygon_set] == [1, 2, 3]
    assert [len(ring) for ring in polygon_set] == [4, 3, 5]
    assert polygon_set.subregions == ("a", "b", "c")


def test_ring_coordinates_close_back_to_first_point():
    ring = assemble(make_points([(7, "a", 4)])).rings[0]
    assert len(ring.coordinates) == 5
    assert ring.coordinates[0] == ring.coordinates[-1]


def test_empty_stream_yields_empty_set():
    polygon_set = assemble([])
    assert len(polygon_set) == 0
    assert not polygon_set
    assert polygon_set.bounds is None


def test_decreasing_sequence_is_malformed():
    points = make_points([(1, "a", 4)])
    swapped = [points[0], points[2], points[1], points[3]]
    with pytest.raises(MalformedOrderError):
        assemble(swapped)


def test_repeated_sequence_is_malformed():
    points = make_points([(1, "a", 3)])
    with pytest.raises(MalformedOrderError):
        assemble([*points, points[-1]])


def test_too_few_points_is_malformed():
    with pytest.raises(MalformedOrderError, match="at least 3"):
        assemble(make_points([(1, "a", 2)]))


def test_min_ring_points_is_configurable():
    polygon_set = assemble(make_points([(1, "a", 2)]), min_ring_points=2)
    assert len(polygon_set.rings[0]) == 2


def test_group_spanning_two_subregions_is_inconsistent():
    points = make_points([(1, "a", 3)])
    stray = BoundaryPoint(
        longitude=-100.0,
        latitude=40.0,
        sequence_index=99,
        group_id=1,
        region="alpha",
        subregion="b",
    )
    with pytest.raises(InconsistentGroupError):
        assemble([*points, stray])


def test_non_contiguous_group_is_inconsistent():
    points = make_points([(1, "a", 3), (2, "b", 3), (1, "a", 3)])
    with pytest.raises(InconsistentGroupError, match="reappears"):
        assemble(points)


group_sizes = st.lists(st.integers(min_value=3, max_value=12), min_size=1, max_size=15)


@given(group_sizes)
@settings(max_examples=50, deadline=None)
def test_assembly_preserves_point_order_and_count(sizes):
    points = make_points([(idx + 1, f"sub {idx}", n) for idx, n in enumerate(sizes)])
    polygon_set = assemble(points)

    assert len(polygon_set) == len(sizes)
    assert polygon_set.point_count == len(points)
    flattened = [point for ring in polygon_set for point in ring.points]
    assert flattened == points


@given(group_sizes)
@settings(max_examples=30, deadline=None)
def test_assembly_is_idempotent(sizes):
    points = make_points([(idx + 1, None, n) for idx, n in enumerate(sizes)])
    assert assemble(points) == assemble(list(points))


@pytest.mark.parametrize("longitude, latitude", [(math.nan, 40.0), (-120.0, math.nan), (math.inf, 0.0)])
def test_non_finite_coordinates_are_rejected(longitude, latitude):
    with pytest.raises(ValueError, match="finite"):
        BoundaryPoint(
            longitude=longitude,
            latitude=latitude,
            sequence_index=1,
            group_id=1,
            region="alpha",
        )
