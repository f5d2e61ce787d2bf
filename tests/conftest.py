from __future__ import annotations

from pathlib import Path

import pytest

from choropleth.catalog import default_catalog
from choropleth.models import BoundaryPoint

DEMO_TABLE = """\
# State | Population | Land area
Oregon | 4,237,256 | 95,988 sq mi
Nevada | 3,104,614 | 109,781 sq mi
California | 39,538,223 | 155,779 sq mi
"""


def make_points(groups, *, region="alpha", start_sequence=1):
    """Build a point stream from ``[(group_id, subregion, n_points), ...]``."""
    points = []
    sequence_index = start_sequence
    for group_id, subregion, n_points in groups:
        for i in range(n_points):
            points.append(
                BoundaryPoint(
                    longitude=-120.0 + i,
                    latitude=40.0 + (i % 2),
                    sequence_index=sequence_index,
                    group_id=group_id,
                    region=region,
                    subregion=subregion,
                )
            )
            sequence_index += 1
    return points


@pytest.fixture
def catalog():
    return default_catalog()


@pytest.fixture
def demo_table():
    return DEMO_TABLE


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    attributes = tmp_path / "states.txt"
    attributes.write_text(DEMO_TABLE, encoding="utf-8")
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(
        "\n".join(
            [
                "paths:",
                "  attribute_source: states.txt",
                "  output_dir: out",
                "  logs_dir: logs",
                "pipeline:",
                "  dataset: demo_states",
                "  join:",
                "    key: region",
                "  scale:",
                "    transform: log10",
                "render:",
                "  image:",
                "    width_px: 320",
                "    height_px: 240",
                "    dpi: 80",
                "",
            ]
        ),
        encoding="utf-8",
    )
    return cfg_path
