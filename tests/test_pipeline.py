from dataclasses import replace

import pytest

from choropleth.catalog import DEMO_DATASET
from choropleth.config import JoinConfig, PipelineConfig, ScaleConfig, load_config
from choropleth.models import Viewport
from choropleth.pipeline import format_pipeline_lines, run_from_config, run_pipeline

OPTIONS = PipelineConfig(
    dataset=DEMO_DATASET,
    join=JoinConfig(key="region"),
    scale=ScaleConfig(transform="log10"),
)


def test_demo_pipeline_encodes_every_state(catalog, demo_table):
    result = run_pipeline(catalog, options=OPTIONS, attribute_text=demo_table)

    assert result.ok
    assert [ring.joined.ring.region for ring in result.rings] == ["oregon", "nevada", "california"]
    densities = {ring.joined.key: ring.value for ring in result.rings}
    assert densities["california"] == pytest.approx(39538223 / 155779)
    encodings = [ring.encoding for ring in result.rings]
    assert min(encodings) == pytest.approx(0.0)
    assert max(encodings) == pytest.approx(1.0)
    assert result.report.summary["rings_encoded"] == 3


def test_region_filter_then_join_keeps_one_ring(catalog):
    options = replace(OPTIONS, regions=("Nevada",))
    text = "Nevada | 3,104,614 | 109,781 sq mi\nOregon | 4,237,256 | 95,988 sq mi\n"
    result = run_pipeline(catalog, options=options, attribute_text=text)

    assert len(result.polygon_set) == 1
    assert len(result.rings) == 1
    assert result.rings[0].joined.ring.region == "nevada"
    # A single value gives a degenerate domain.
    assert result.rings[0].encoding == 0.5


def test_unmatched_rings_and_bad_lines_become_warnings(catalog):
    text = "Oregon | 4,237,256 | 95,988 sq mi\nNevada | 3,1,4 | 109,781 sq mi\nTotal | - | -\n"
    result = run_pipeline(catalog, options=OPTIONS, attribute_text=text)

    assert result.ok
    assert len(result.rings) == 1
    assert result.report.summary["lines_rejected"] == 1
    assert result.report.summary["lines_skipped"] == 1
    assert any("Ring keys without attribute records" in msg for msg in result.report.warnings)
    assert result.coverage["unmatched_rings"] == ["california", "nevada"]


def test_zero_area_is_retained_without_encoding(catalog, demo_table):
    text = demo_table.replace("109,781 sq mi", "0 sq mi")
    result = run_pipeline(catalog, options=OPTIONS, attribute_text=text)

    nevada = next(ring for ring in result.rings if ring.joined.key == "nevada")
    assert nevada.value is None
    assert nevada.encoding is None
    assert result.report.summary["metric_undefined"] == 1


def test_unknown_dataset_is_an_error(catalog, demo_table):
    result = run_pipeline(catalog, options=replace(OPTIONS, dataset="atlantis"), attribute_text=demo_table)
    assert not result.ok
    assert "Unknown boundary dataset" in result.report.errors[0]
    assert format_pipeline_lines(result.report)[-1].startswith("[ERROR]")


def test_duplicate_keys_stop_the_run(catalog, demo_table):
    result = run_pipeline(catalog, options=OPTIONS, attribute_text=demo_table + "OREGON | 1 | 1 sq mi\n")
    assert not result.ok
    assert "Duplicate attribute key 'oregon'" in result.report.errors[0]


def test_viewport_only_changes_display_bounds(catalog, demo_table):
    viewport = Viewport(lon_min=-123.0, lon_max=-121.5, lat_min=40.0, lat_max=43.0)
    clipped = run_pipeline(catalog, options=OPTIONS, attribute_text=demo_table, viewport=viewport)
    plain = run_pipeline(catalog, options=OPTIONS, attribute_text=demo_table)

    assert clipped.polygon_set.viewport == viewport
    assert clipped.polygon_set.rings == plain.polygon_set.rings
    assert clipped.to_dict()["viewport"] == [-123.0, -121.5, 40.0, 43.0]


def test_run_from_config_reads_attribute_source(config_file):
    result = run_from_config(load_config(config_file))
    assert result.ok
    assert len(result.rings) == 3
    payload = result.to_dict()
    assert payload["scale"]["transform"] == "log10"
    assert len(payload["rings"]) == 3


def test_run_from_config_reports_missing_source(config_file):
    (config_file.parent / "states.txt").unlink()
    result = run_from_config(load_config(config_file))
    assert not result.ok
    assert "Failed reading attribute source" in result.report.errors[0]
