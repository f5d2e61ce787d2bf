import math

import pytest

from choropleth.assemble import assemble
from choropleth.errors import MetricUndefinedError
from choropleth.join import join
from choropleth.metrics import DENSITY, Metric, derive, derive_all
from choropleth.models import AttributeRecord, JoinedRing

from conftest import make_points


def _joined(name, **values):
    ring = assemble(make_points([(1, name, 3)])).rings[0]
    return JoinedRing(ring=ring, record=AttributeRecord.create(name, values))


def test_density_of_new_york_county():
    result = derive(_joined("new york", population=1523139, area=48.87))
    assert result.value("density") == pytest.approx(1523139 / 48.87)
    assert result.value("density") == pytest.approx(31167.16, abs=0.01)


def test_derive_does_not_mutate_input():
    joined = _joined("kings", population=10, area=2)
    derived = derive(joined)
    assert "density" not in joined.metrics
    assert derived.metrics == {"density": 5.0}


def test_zero_area_is_undefined():
    with pytest.raises(MetricUndefinedError, match="area is zero"):
        derive(_joined("nowhere", population=10, area=0))


def test_missing_input_is_undefined():
    with pytest.raises(MetricUndefinedError, match="missing 'area'"):
        derive(_joined("nowhere", population=10))


def test_retain_policy_keeps_ring_without_metric():
    rings = [_joined("a", population=10, area=0), _joined("b", population=10, area=5)]
    result = derive_all(rings, DENSITY, policy="retain")

    assert len(result.rings) == 2
    assert result.rings[0].value("density") is None
    assert result.rings[1].value("density") == 2.0
    assert [issue.key for issue in result.issues] == ["a"]
    assert not any(
        value is not None and math.isnan(value)
        for value in (ring.value("density") for ring in result.rings)
    )


def test_drop_policy_removes_undefined_rings():
    rings = [_joined("a", population=10, area=0), _joined("b", population=10, area=5)]
    result = derive_all(rings, DENSITY, policy="drop")
    assert [ring.key for ring in result.rings] == ["b"]
    assert len(result.issues) == 1


def test_shared_key_is_reported_once():
    rings = [_joined("a", population=1, area=0), _joined("a", population=1, area=0)]
    assert len(derive_all(rings).issues) == 1


def test_custom_metric_from_mapping():
    metric = Metric.from_mapping({"name": "per_capita", "numerator": "income", "denominator": "population"})
    result = derive(_joined("x", income=500.0, population=20.0), metric)
    assert result.value("per_capita") == 25.0


def test_unknown_policy_is_rejected():
    with pytest.raises(ValueError):
        derive_all([], DENSITY, policy="ignore")


def test_unmatched_region_rings_report_region_key():
    polygon_set = assemble(make_points([(1, "napa", 4), (2, "marin", 4)], region="alpha"))
    joined = join(polygon_set, [], key="region", how="left")

    result = derive_all(joined, DENSITY)

    assert [issue.key for issue in result.issues] == ["alpha"]
