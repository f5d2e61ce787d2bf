"""Typed configuration loader for `config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, cast

import yaml

from .attributes import DEFAULT_SCHEMA, TableSchema
from .join import DUPLICATE_POLICIES, JOIN_LEVELS, JOIN_MODES
from .metrics import DENSITY, METRIC_POLICIES, Metric
from .models import Viewport
from .scale import TRANSFORM_NAMES


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _optional_mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    return _mapping(value, field_name)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Expected integer for '{field_name}'")
    return value


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ValueError(f"Expected float for '{field_name}'")


def _bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"Expected bool for '{field_name}'")
    return value


def _choice(value: Any, field_name: str, allowed: tuple[str, ...]) -> str:
    chosen = _str(value, field_name).casefold()
    if chosen not in allowed:
        raise ValueError(f"{field_name} must be one of: " + ", ".join(allowed))
    return chosen


def _str_list(value: Any, field_name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ValueError(f"Expected list for '{field_name}'")
    out: list[str] = []
    for idx, item in enumerate(value):
        out.append(_str(item, f"{field_name}[{idx}]"))
    return tuple(out)


def _path_from_cfg(value: Any, field_name: str, root_dir: Path) -> Path:
    raw = _str(value, field_name)
    p = Path(raw)
    return p if p.is_absolute() else root_dir / p


def _location_from_cfg(value: Any, field_name: str, root_dir: Path) -> str:
    raw = _str(value, field_name)
    if raw.startswith(("http://", "https://")):
        return raw
    return str(_path_from_cfg(raw, field_name, root_dir))


@dataclass(frozen=True, slots=True)
class BoundaryFileConfig:
    path: Path
    region_column: str
    subregion_column: str | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], field_name: str, root_dir: Path) -> BoundaryFileConfig:
        subregion_raw = raw.get("subregion_column")
        return cls(
            path=_path_from_cfg(raw.get("path"), f"{field_name}.path", root_dir),
            region_column=_str(raw.get("region_column"), f"{field_name}.region_column"),
            subregion_column=(
                _str(subregion_raw, f"{field_name}.subregion_column")
                if subregion_raw is not None
                else None
            ),
        )


@dataclass(frozen=True, slots=True)
class PathsConfig:
    attribute_source: str
    output_dir: Path
    logs_dir: Path
    boundary_tables: Mapping[str, Path] = field(default_factory=dict)
    boundary_files: Mapping[str, BoundaryFileConfig] = field(default_factory=dict)

    @property
    def attribute_source_is_remote(self) -> bool:
        return self.attribute_source.startswith(("http://", "https://"))

    @property
    def build_directories(self) -> tuple[Path, ...]:
        return (self.output_dir, self.logs_dir)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> PathsConfig:
        tables_raw = _optional_mapping(raw.get("boundary_tables"), "paths.boundary_tables")
        files_raw = _optional_mapping(raw.get("boundary_files"), "paths.boundary_files")
        return cls(
            attribute_source=_location_from_cfg(
                raw.get("attribute_source"), "paths.attribute_source", root_dir
            ),
            output_dir=_path_from_cfg(raw.get("output_dir"), "paths.output_dir", root_dir),
            logs_dir=_path_from_cfg(raw.get("logs_dir"), "paths.logs_dir", root_dir),
            boundary_tables={
                _str(name, "paths.boundary_tables key"): _path_from_cfg(
                    value, f"paths.boundary_tables.{name}", root_dir
                )
                for name, value in tables_raw.items()
            },
            boundary_files={
                _str(name, "paths.boundary_files key"): BoundaryFileConfig.from_mapping(
                    _mapping(value, f"paths.boundary_files.{name}"),
                    f"paths.boundary_files.{name}",
                    root_dir,
                )
                for name, value in files_raw.items()
            },
        )


@dataclass(frozen=True, slots=True)
class JoinConfig:
    key: str = "subregion"
    how: str = "inner"
    on_duplicate: str = "error"

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> JoinConfig:
        return cls(
            key=_choice(raw.get("key", "subregion"), "pipeline.join.key", JOIN_LEVELS),
            how=_choice(raw.get("how", "inner"), "pipeline.join.how", JOIN_MODES),
            on_duplicate=_choice(
                raw.get("on_duplicate", "error"), "pipeline.join.on_duplicate", DUPLICATE_POLICIES
            ),
        )


@dataclass(frozen=True, slots=True)
class MetricConfig:
    metric: Metric = DENSITY
    policy: str = "retain"

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> MetricConfig:
        metric = DENSITY
        if any(name in raw for name in ("name", "numerator", "denominator")):
            metric = Metric.from_mapping(raw)
        return cls(
            metric=metric,
            policy=_choice(raw.get("policy", "retain"), "pipeline.metric.policy", METRIC_POLICIES),
        )


@dataclass(frozen=True, slots=True)
class ScaleConfig:
    transform: str = "identity"
    output_range: tuple[float, float] = (0.0, 1.0)
    value_field: str | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ScaleConfig:
        range_raw = raw.get("output_range", [0.0, 1.0])
        if not isinstance(range_raw, list) or len(range_raw) != 2:
            raise ValueError("Expected [low, high] list for 'pipeline.scale.output_range'")
        low = _float(range_raw[0], "pipeline.scale.output_range[0]")
        high = _float(range_raw[1], "pipeline.scale.output_range[1]")
        if low == high:
            raise ValueError("pipeline.scale.output_range bounds must differ")
        field_raw = raw.get("field")
        return cls(
            transform=_choice(raw.get("transform", "identity"), "pipeline.scale.transform", TRANSFORM_NAMES),
            output_range=(low, high),
            value_field=_str(field_raw, "pipeline.scale.field") if field_raw is not None else None,
        )


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    dataset: str
    regions: tuple[str, ...] = ()
    subregions: tuple[str, ...] = ()
    join: JoinConfig = JoinConfig()
    metric: MetricConfig = MetricConfig()
    scale: ScaleConfig = ScaleConfig()
    read_timeout_s: float = 10.0
    attribute_schema: TableSchema = DEFAULT_SCHEMA

    @property
    def encode_field(self) -> str:
        return self.scale.value_field or self.metric.metric.name

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> PipelineConfig:
        read_timeout_s = _float(raw.get("read_timeout_s", 10.0), "pipeline.read_timeout_s")
        if read_timeout_s <= 0:
            raise ValueError("pipeline.read_timeout_s must be > 0")
        schema_raw = raw.get("attributes")
        return cls(
            dataset=_str(raw.get("dataset"), "pipeline.dataset"),
            regions=_str_list(raw.get("regions"), "pipeline.regions"),
            subregions=_str_list(raw.get("subregions"), "pipeline.subregions"),
            join=JoinConfig.from_mapping(_optional_mapping(raw.get("join"), "pipeline.join")),
            metric=MetricConfig.from_mapping(_optional_mapping(raw.get("metric"), "pipeline.metric")),
            scale=ScaleConfig.from_mapping(_optional_mapping(raw.get("scale"), "pipeline.scale")),
            read_timeout_s=read_timeout_s,
            attribute_schema=(
                TableSchema.from_mapping(_mapping(schema_raw, "pipeline.attributes"))
                if schema_raw is not None
                else DEFAULT_SCHEMA
            ),
        )


@dataclass(frozen=True, slots=True)
class RenderImageConfig:
    width_px: int = 1200
    height_px: int = 900
    dpi: int = 150
    format: str = "png"
    background: str = "white"

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> RenderImageConfig:
        cfg = cls(
            width_px=_int(raw.get("width_px", 1200), "render.image.width_px"),
            height_px=_int(raw.get("height_px", 900), "render.image.height_px"),
            dpi=_int(raw.get("dpi", 150), "render.image.dpi"),
            format=_str(raw.get("format", "png"), "render.image.format"),
            background=_str(raw.get("background", "white"), "render.image.background"),
        )
        if cfg.width_px <= 0 or cfg.height_px <= 0 or cfg.dpi <= 0:
            raise ValueError("render.image width_px, height_px and dpi must be > 0")
        return cfg


@dataclass(frozen=True, slots=True)
class RenderStyleConfig:
    colormap: str = "viridis"
    edge_color: str = "#333333"
    line_width: float = 0.4
    missing_color: str = "#d9d9d9"

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> RenderStyleConfig:
        return cls(
            colormap=_str(raw.get("colormap", "viridis"), "render.style.colormap"),
            edge_color=_str(raw.get("edge_color", "#333333"), "render.style.edge_color"),
            line_width=_float(raw.get("line_width", 0.4), "render.style.line_width"),
            missing_color=_str(raw.get("missing_color", "#d9d9d9"), "render.style.missing_color"),
        )


@dataclass(frozen=True, slots=True)
class LegendConfig:
    show: bool = True
    ticks: int = 5
    label: str | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> LegendConfig:
        ticks = _int(raw.get("ticks", 5), "render.legend.ticks")
        if ticks < 2:
            raise ValueError("render.legend.ticks must be >= 2")
        label_raw = raw.get("label")
        return cls(
            show=_bool(raw.get("show", True), "render.legend.show"),
            ticks=ticks,
            label=_str(label_raw, "render.legend.label") if label_raw is not None else None,
        )


@dataclass(frozen=True, slots=True)
class RenderConfig:
    image: RenderImageConfig = RenderImageConfig()
    style: RenderStyleConfig = RenderStyleConfig()
    legend: LegendConfig = LegendConfig()
    viewport: Viewport | None = None
    padding_ratio: float = 0.05
    title: str | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> RenderConfig:
        viewport_raw = raw.get("viewport")
        padding_ratio = _float(raw.get("padding_ratio", 0.05), "render.padding_ratio")
        if padding_ratio < 0:
            raise ValueError("render.padding_ratio must be >= 0")
        title_raw = raw.get("title")
        return cls(
            image=RenderImageConfig.from_mapping(_optional_mapping(raw.get("image"), "render.image")),
            style=RenderStyleConfig.from_mapping(_optional_mapping(raw.get("style"), "render.style")),
            legend=LegendConfig.from_mapping(_optional_mapping(raw.get("legend"), "render.legend")),
            viewport=(
                Viewport.from_mapping(_mapping(viewport_raw, "render.viewport"))
                if viewport_raw is not None
                else None
            ),
            padding_ratio=padding_ratio,
            title=_str(title_raw, "render.title") if title_raw is not None else None,
        )


@dataclass(frozen=True, slots=True)
class AppConfig:
    source_path: Path
    paths: PathsConfig
    pipeline: PipelineConfig
    render: RenderConfig
    write_manifest: bool = True

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path) -> AppConfig:
        root_dir = source_path.parent.resolve()
        return cls(
            source_path=source_path.resolve(),
            paths=PathsConfig.from_mapping(_mapping(raw.get("paths"), "paths"), root_dir),
            pipeline=PipelineConfig.from_mapping(_mapping(raw.get("pipeline"), "pipeline")),
            render=RenderConfig.from_mapping(_optional_mapping(raw.get("render"), "render")),
            write_manifest=_bool(raw.get("write_manifest", True), "write_manifest"),
        )


def load_config(path: str | Path) -> AppConfig:
    """Load and validate the YAML config file into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return AppConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)
