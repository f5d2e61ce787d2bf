import pytest

from choropleth.assemble import assemble
from choropleth.catalog import DEMO_DATASET
from choropleth.clip import clip, display_extent, visible_rings
from choropleth.models import BoundaryPoint, PolygonSet, Viewport
from choropleth.subset import filter_rings, in_regions, in_subregions

from conftest import make_points


def _ring_spanning(lon_min, lon_max):
    coords = [(lon_min, 40.0), (lon_max, 40.0), (lon_max, 44.0), (-118.0, 42.0), (lon_min, 44.0)]
    points = [
        BoundaryPoint(longitude=lon, latitude=lat, sequence_index=i, group_id=1, region="west")
        for i, (lon, lat) in enumerate(coords, start=1)
    ]
    return assemble(points)


def test_filter_keeps_whole_rings(catalog):
    source = assemble(catalog.lookup(DEMO_DATASET))
    filtered = filter_rings(source, in_regions(["Nevada"]))

    assert len(filtered) == 1
    assert filtered.rings[0] == source.rings[1]


def test_filter_is_structural_subset():
    source = assemble(make_points([(1, "a", 3), (2, "b", 5), (3, "c", 4), (4, "b", 6)]))
    filtered = filter_rings(source, in_subregions(["B"]))

    assert [ring.group_id for ring in filtered] == [2, 4]
    assert all(ring in source.rings for ring in filtered)


def test_filter_without_match_is_empty(catalog):
    source = assemble(catalog.lookup(DEMO_DATASET))
    filtered = filter_rings(source, in_regions(["texas"]))
    assert len(filtered) == 0
    assert display_extent(filtered) is None


def test_in_subregions_can_require_region():
    points = [
        *make_points([(1, "washington", 3)], region="oregon"),
        *make_points([(2, "washington", 3)], region="utah", start_sequence=10),
    ]
    source = assemble(points)
    filtered = filter_rings(source, in_subregions(["washington"], region="utah"))
    assert [ring.region for ring in filtered] == ["utah"]


def test_clip_leaves_ring_points_unchanged():
    source = _ring_spanning(-125.0, -110.0)
    before = source.rings[0].points

    clipped = clip(source, Viewport(lon_min=-123.0, lon_max=-121.5, lat_min=39.0, lat_max=45.0))

    assert clipped.rings[0].points == before
    assert clipped.rings[0].coordinates == source.rings[0].coordinates
    assert display_extent(clipped) == (-123.0, -121.5, 39.0, 45.0)


def test_visible_rings_are_whole_rings_intersecting_viewport(catalog):
    source = assemble(catalog.lookup(DEMO_DATASET))
    clipped = clip(source, Viewport(lon_min=-125.0, lon_max=-121.0, lat_min=44.0, lat_max=47.0))

    assert [ring.region for ring in visible_rings(clipped)] == ["oregon"]
    assert len(clipped) == 3


def test_display_extent_pads_data_bounds():
    polygon_set = PolygonSet(rings=_ring_spanning(-125.0, -115.0).rings)
    assert display_extent(polygon_set, padding_ratio=0.1) == pytest.approx((-126.0, -114.0, 39.6, 44.4))


def test_filter_keeps_attached_viewport(catalog):
    viewport = Viewport(lon_min=-125.0, lon_max=-110.0, lat_min=30.0, lat_max=47.0)
    clipped = clip(assemble(catalog.lookup(DEMO_DATASET)), viewport)
    assert filter_rings(clipped, in_regions(["oregon"])).viewport == viewport
