"""End-to-end choropleth pipeline: catalog to scaled encodings."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Sequence

from .assemble import assemble
from .attributes import parse, read_source
from .catalog import BoundaryCatalog, default_catalog
from .clip import clip
from .config import AppConfig, PipelineConfig
from .errors import ChoroplethError, UnknownDatasetError
from .join import join, join_coverage
from .metrics import derive_all
from .models import Issue, JoinedRing, PolygonSet, Viewport
from .scale import FittedScale, map_to_encoding
from .subset import filter_rings, in_regions, in_subregions
from .util import format_key_list

_LOGGER = logging.getLogger("choropleth.pipeline")


@dataclass(frozen=True, slots=True)
class EncodedRing:
    """Joined ring plus the value it is shaded by and its encoding."""

    joined: JoinedRing
    value: float | None
    encoding: float | None

    def to_dict(self) -> dict[str, Any]:
        return {**self.joined.to_dict(), "value": self.value, "encoding": self.encoding}


@dataclass(slots=True)
class PipelineReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)
    summary: dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)

    def add_issues(self, issues: Sequence[Issue]) -> None:
        self.issues.extend(issues)
        for issue in issues:
            self.add_warning(str(issue))


@dataclass(slots=True)
class PipelineResult:
    report: PipelineReport
    polygon_set: PolygonSet = field(default_factory=PolygonSet)
    rings: tuple[EncodedRing, ...] = ()
    scale: FittedScale | None = None
    coverage: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.report.ok

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "scale": self.scale.to_dict() if self.scale is not None else None,
            "viewport": (
                [
                    self.polygon_set.viewport.lon_min,
                    self.polygon_set.viewport.lon_max,
                    self.polygon_set.viewport.lat_min,
                    self.polygon_set.viewport.lat_max,
                ]
                if self.polygon_set.viewport is not None
                else None
            ),
            "coverage": self.coverage,
            "summary": dict(self.report.summary),
            "issues": [str(issue) for issue in self.report.issues],
            "rings": [ring.to_dict() for ring in self.rings],
        }


def run_pipeline(
    catalog: BoundaryCatalog,
    *,
    options: PipelineConfig,
    attribute_text: str,
    viewport: Viewport | None = None,
) -> PipelineResult:
    """Run catalog lookup through scale mapping for one dataset.

    Structural failures (unknown dataset, corrupt geometry, duplicate join
    keys) stop the run and are recorded as errors; per-line, per-ring and
    per-value problems are collected as issues and the run continues.
    """
    report = PipelineReport()
    result = PipelineResult(report=report)
    t0 = time.perf_counter()

    try:
        polygon_set = assemble(catalog.lookup(options.dataset))
    except UnknownDatasetError as exc:
        report.add_error(str(exc))
        return result
    except (ChoroplethError, ValueError, OSError) as exc:
        report.add_error(f"Failed assembling dataset '{options.dataset}': {exc}")
        return result
    report.add_info(
        f"Assembled dataset '{options.dataset}': rings={len(polygon_set)}, "
        f"points={polygon_set.point_count}, regions={len(polygon_set.regions)}"
    )

    suffixes = options.attribute_schema.key_suffixes
    if options.regions:
        polygon_set = filter_rings(
            polygon_set, in_regions(options.regions, strip_suffixes=suffixes)
        )
        report.add_info(f"Region filter kept {len(polygon_set)} rings")
    if options.subregions:
        polygon_set = filter_rings(
            polygon_set, in_subregions(options.subregions, strip_suffixes=suffixes)
        )
        report.add_info(f"Subregion filter kept {len(polygon_set)} rings")
    if not polygon_set:
        report.add_warning("No rings left after region filtering.")
    if viewport is not None:
        polygon_set = clip(polygon_set, viewport)
    result.polygon_set = polygon_set

    parsed = parse(attribute_text, options.attribute_schema)
    report.add_info(
        f"Parsed {len(parsed.records)} attribute records "
        f"({len(parsed.skipped)} lines skipped, {len(parsed.errors)} rejected)"
    )
    report.add_issues(parsed.issues)

    join_cfg = options.join
    try:
        joined = join(
            polygon_set,
            parsed.records,
            join_cfg.key,
            how=join_cfg.how,
            on_duplicate=join_cfg.on_duplicate,
            strip_suffixes=suffixes,
        )
    except ChoroplethError as exc:
        report.add_error(f"Join failed: {exc}")
        return result
    coverage = join_coverage(polygon_set, parsed.records, join_cfg.key, strip_suffixes=suffixes)
    result.coverage = coverage.to_dict()
    if coverage.unmatched_rings:
        report.add_warning(
            f"Ring keys without attribute records ({join_cfg.how} join): "
            + format_key_list(sorted(coverage.unmatched_rings))
        )
    if coverage.rings_without_key:
        report.add_warning(
            f"{coverage.rings_without_key} rings have no {join_cfg.key} and cannot be joined"
        )

    metric_cfg = options.metric
    derived = derive_all(joined, metric_cfg.metric, policy=metric_cfg.policy)
    report.add_issues(derived.issues)

    encode_field = options.encode_field
    values = [ring.value(encode_field) for ring in derived.rings]
    present = [value for value in values if value is not None]
    scaled = map_to_encoding(
        present,
        options.scale.transform,
        options.scale.output_range,
    )
    report.add_issues(scaled.issues)
    encodings = iter(scaled.encodings)
    result.rings = tuple(
        EncodedRing(
            joined=ring,
            value=value,
            encoding=next(encodings) if value is not None else None,
        )
        for ring, value in zip(derived.rings, values)
    )
    result.scale = scaled.scale

    encoded_count = sum(1 for ring in result.rings if ring.encoding is not None)
    report.summary = {
        "rings_total": len(polygon_set),
        "rings_joined": len(joined),
        "rings_encoded": encoded_count,
        "records_parsed": len(parsed.records),
        "lines_skipped": len(parsed.skipped),
        "lines_rejected": len(parsed.errors),
        "metric_undefined": len(derived.issues),
        "values_out_of_domain": len(scaled.errors),
    }
    if scaled.scale is None and result.rings:
        report.add_warning(f"No '{encode_field}' values usable for the {options.scale.transform} scale.")
    _LOGGER.info(
        "Pipeline finished for %s in %.2fs (joined=%d, encoded=%d, issues=%d)",
        options.dataset,
        time.perf_counter() - t0,
        len(joined),
        encoded_count,
        len(report.issues),
    )
    return result


def build_catalog(cfg: AppConfig) -> BoundaryCatalog:
    """Default catalog plus the boundary sources named in the config."""
    catalog = default_catalog()
    for name, path in cfg.paths.boundary_tables.items():
        catalog.register_table(name, path, replace=True)
    for name, file_cfg in cfg.paths.boundary_files.items():
        catalog.register_boundary_file(
            name,
            file_cfg.path,
            region_column=file_cfg.region_column,
            subregion_column=file_cfg.subregion_column,
            replace=True,
        )
    return catalog


def run_from_config(cfg: AppConfig, *, catalog: BoundaryCatalog | None = None) -> PipelineResult:
    """Read the configured attribute source and run the pipeline."""
    try:
        attribute_text = read_source(
            cfg.paths.attribute_source,
            timeout_s=cfg.pipeline.read_timeout_s,
        )
    except Exception as exc:
        report = PipelineReport()
        report.add_error(f"Failed reading attribute source '{cfg.paths.attribute_source}': {exc}")
        return PipelineResult(report=report)
    return run_pipeline(
        catalog if catalog is not None else build_catalog(cfg),
        options=cfg.pipeline,
        attribute_text=attribute_text,
        viewport=cfg.render.viewport,
    )


def format_pipeline_lines(report: PipelineReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Pipeline completed with no errors.")
    return lines
