from pathlib import Path

import pytest

from choropleth.config import JoinConfig, PipelineConfig, RenderConfig, RenderImageConfig, RenderStyleConfig
from choropleth.models import Viewport
from choropleth.pipeline import run_pipeline
from choropleth.render import ChoroplethRenderer, RenderRequest

SMALL_IMAGE = RenderImageConfig(width_px=240, height_px=180, dpi=60)


def _result(catalog, text, viewport=None):
    options = PipelineConfig(dataset="demo_states", join=JoinConfig(key="region"))
    return run_pipeline(catalog, options=options, attribute_text=text, viewport=viewport)


def _request(result, path: Path) -> RenderRequest:
    return RenderRequest(
        polygon_set=result.polygon_set,
        rings=result.rings,
        scale=result.scale,
        output_path=path,
        title="Density",
        legend_label="people / sq mi",
    )


def test_renders_png_with_legend(catalog, demo_table, tmp_path: Path):
    result = _result(catalog, demo_table)
    out = ChoroplethRenderer(RenderConfig(image=SMALL_IMAGE)).render(_request(result, tmp_path / "maps" / "demo.png"))

    assert out.exists()
    assert out.read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"


def test_renders_context_rings_and_viewport(catalog, tmp_path: Path):
    viewport = Viewport(lon_min=-125.0, lon_max=-113.0, lat_min=36.0, lat_max=47.0)
    result = _result(catalog, "Oregon | 4,237,256 | 95,988 sq mi", viewport=viewport)
    assert len(result.rings) == 1

    out = ChoroplethRenderer(RenderConfig(image=SMALL_IMAGE)).render(_request(result, tmp_path / "clip.png"))
    assert out.stat().st_size > 0


def test_unknown_colormap_is_rejected(catalog, demo_table, tmp_path: Path):
    cfg = RenderConfig(image=SMALL_IMAGE, style=RenderStyleConfig(colormap="not-a-colormap"))
    with pytest.raises(ValueError, match="Unknown colormap"):
        ChoroplethRenderer(cfg).render(_request(_result(catalog, demo_table), tmp_path / "x.png"))
