"""Validation layer for config, boundary datasets and attribute sources."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .attributes import ParseResult, parse, read_source
from .catalog import BoundaryCatalog, load_many
from .config import AppConfig
from .errors import DuplicateKeyError
from .join import index_records, join_coverage
from .models import PolygonSet
from .pipeline import build_catalog
from .subset import filter_rings, in_regions, in_subregions
from .util import format_key_list


@dataclass(slots=True)
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class Validator:
    """Top-level input and schema validator."""

    def __init__(self, cfg: AppConfig, *, catalog: BoundaryCatalog | None = None) -> None:
        self.cfg = cfg
        self.catalog = catalog if catalog is not None else build_catalog(cfg)

    def run(self, *, max_workers: int = 4) -> ValidationReport:
        report = ValidationReport()
        self._validate_config_paths(report)
        assembled = self._validate_datasets(report, max_workers=max_workers)
        parsed = self._validate_attributes(report)
        target = assembled.get(self.cfg.pipeline.dataset)
        if target is not None and parsed is not None:
            self._validate_join_coverage(report, polygon_set=target, parsed=parsed)
        return report

    def _validate_config_paths(self, report: ValidationReport) -> None:
        paths = self.cfg.paths
        if not paths.attribute_source_is_remote:
            self._check_exists(report, Path(paths.attribute_source))
        for path in paths.boundary_tables.values():
            self._check_exists(report, path)
        for file_cfg in paths.boundary_files.values():
            self._check_exists(report, file_cfg.path)

    def _validate_datasets(self, report: ValidationReport, *, max_workers: int) -> dict[str, PolygonSet]:
        dataset = self.cfg.pipeline.dataset
        names = self.catalog.names()
        if dataset not in self.catalog:
            report.add_error(
                f"Configured dataset '{dataset}' is not registered. Known datasets: {format_key_list(names)}"
            )
        assembled, failures = load_many(self.catalog, names, max_workers=max_workers)
        for name, polygon_set in assembled.items():
            report.add_info(
                f"Dataset {name}: rings={len(polygon_set)}, points={polygon_set.point_count}, "
                f"regions={len(polygon_set.regions)}, subregions={len(polygon_set.subregions)}"
            )
        for name, message in sorted(failures.items()):
            msg = f"Dataset {name} failed to assemble: {message}"
            if name == dataset:
                report.add_error(msg)
            else:
                report.add_warning(msg)
        return assembled

    def _validate_attributes(self, report: ValidationReport) -> ParseResult | None:
        source = self.cfg.paths.attribute_source
        try:
            text = read_source(source, timeout_s=self.cfg.pipeline.read_timeout_s)
        except Exception as exc:
            report.add_error(f"Failed reading attribute source '{source}': {exc}")
            return None
        parsed = parse(text, self.cfg.pipeline.attribute_schema)
        report.add_info(f"Parsed {len(parsed.records)} attribute records from {source}")
        if not parsed.records:
            report.add_error(f"No attribute records matched the table schema in {source}")
        if parsed.skipped:
            report.add_warning(
                f"{len(parsed.skipped)} lines skipped as not matching the table schema: "
                + format_key_list([issue.key or "?" for issue in parsed.skipped])
            )
        for err in parsed.errors:
            report.add_warning(f"Rejected attribute line: {err}")
        try:
            index_records(parsed.records, on_duplicate=self.cfg.pipeline.join.on_duplicate)
        except DuplicateKeyError as exc:
            report.add_error(f"{exc}; set pipeline.join.on_duplicate to 'first' or 'last' to accept")
        return parsed

    def _validate_join_coverage(
        self,
        report: ValidationReport,
        *,
        polygon_set: PolygonSet,
        parsed: ParseResult,
    ) -> None:
        pipeline_cfg = self.cfg.pipeline
        suffixes = pipeline_cfg.attribute_schema.key_suffixes
        if pipeline_cfg.regions:
            polygon_set = filter_rings(
                polygon_set, in_regions(pipeline_cfg.regions, strip_suffixes=suffixes)
            )
        if pipeline_cfg.subregions:
            polygon_set = filter_rings(
                polygon_set, in_subregions(pipeline_cfg.subregions, strip_suffixes=suffixes)
            )
        if not polygon_set:
            report.add_warning("Region filters leave no rings to join.")
            return

        coverage = join_coverage(
            polygon_set, parsed.records, pipeline_cfg.join.key, strip_suffixes=suffixes
        )
        total_keys = len(coverage.matched) + len(coverage.unmatched_rings)
        report.add_info(
            f"Join coverage on {pipeline_cfg.join.key}: matched={len(coverage.matched)}/{total_keys} "
            f"ring keys, unused_records={len(coverage.unused_records)}"
        )
        if not coverage.matched:
            report.add_error(
                f"No {pipeline_cfg.join.key} keys match the attribute table; check key normalization"
            )
        if coverage.unmatched_rings:
            report.add_warning(
                f"Ring keys missing from attribute table ({pipeline_cfg.join.how} join): "
                + format_key_list(sorted(coverage.unmatched_rings))
            )
        if coverage.rings_without_key:
            report.add_warning(
                f"{coverage.rings_without_key} rings carry no {pipeline_cfg.join.key} value"
            )

    @staticmethod
    def _check_exists(report: ValidationReport, path: Path) -> None:
        if not path.exists():
            report.add_error(f"Missing input file: {path}")


def format_report_lines(report: ValidationReport) -> Iterable[str]:
    if report.infos:
        for info in report.infos:
            yield f"[INFO] {info}"
    if report.warnings:
        for warning in report.warnings:
            yield f"[WARN] {warning}"
    if report.errors:
        for error in report.errors:
            yield f"[ERROR] {error}"
    if report.ok:
        yield "[OK] Validation completed with no errors."
