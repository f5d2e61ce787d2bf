"""CLI entrypoint for the choropleth pipeline."""

from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from pathlib import Path
from typing import Sequence

from .catalog import load_many
from .config import AppConfig, load_config
from .models import RunManifest
from .pipeline import build_catalog, format_pipeline_lines, run_from_config
from .render import ChoroplethRenderer, RenderRequest
from .util import detect_git_commit, ensure_directories, sha256_file, setup_logging, write_json
from .validate import Validator, format_report_lines

LOGGER = logging.getLogger("choropleth.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="choropleth",
        description="Assemble boundary polygons, join attribute tables and render choropleths.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default="config.yaml", help="Path to YAML config.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    datasets_p = subparsers.add_parser("datasets", help="List registered boundary datasets.")
    add_common(datasets_p)
    datasets_p.add_argument(
        "--assemble",
        action="store_true",
        help="Assemble every dataset and report ring counts.",
    )

    validate_p = subparsers.add_parser("validate", help="Validate config, datasets and attribute source.")
    add_common(validate_p)

    run_p = subparsers.add_parser("run", help="Run the pipeline and render the choropleth.")
    add_common(run_p)
    run_p.add_argument(
        "--dataset",
        default=None,
        help="Override pipeline.dataset from the config.",
    )
    run_p.add_argument(
        "--no-render",
        action="store_true",
        help="Write the results JSON only and skip the PNG.",
    )
    run_p.add_argument(
        "--output-name",
        default="choropleth",
        help="Base file name for results JSON and PNG inside paths.output_dir.",
    )

    return parser


def _load_and_setup(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    log_path = cfg.paths.logs_dir / "choropleth.log"
    setup_logging(log_path, verbose=args.verbose)
    ensure_directories(cfg.paths.build_directories)
    return cfg


def _run_datasets(cfg: AppConfig, *, assemble: bool) -> int:
    catalog = build_catalog(cfg)
    names = catalog.names()
    if not assemble:
        for name in names:
            LOGGER.info("[INFO] Dataset: %s", name)
        return 0
    assembled, failures = load_many(catalog, names)
    for name in names:
        if name in assembled:
            polygon_set = assembled[name]
            LOGGER.info(
                "[INFO] Dataset: %s rings=%d points=%d regions=%d",
                name,
                len(polygon_set),
                polygon_set.point_count,
                len(polygon_set.regions),
            )
        else:
            LOGGER.error("[ERROR] Dataset: %s failed: %s", name, failures.get(name, "unknown error"))
    return 0 if not failures else 1


def _run_validate(cfg: AppConfig) -> int:
    report = Validator(cfg).run()
    for line in format_report_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _run_pipeline(cfg: AppConfig, *, no_render: bool, output_name: str) -> int:
    LOGGER.info("Starting choropleth pipeline for dataset %s.", cfg.pipeline.dataset)
    result = run_from_config(cfg)
    for line in format_pipeline_lines(result.report):
        LOGGER.info(line)
    if not result.ok:
        LOGGER.error("Run aborted due to pipeline errors.")
        return 1

    results_path = cfg.paths.output_dir / f"{output_name}.json"
    write_json(results_path, result.to_dict())
    LOGGER.info("Results written to %s", results_path)

    image_path: Path | None = None
    render_status = "skipped"
    if not no_render:
        try:
            image_path = ChoroplethRenderer(cfg.render).render(
                RenderRequest(
                    polygon_set=result.polygon_set,
                    rings=result.rings,
                    scale=result.scale,
                    output_path=cfg.paths.output_dir / f"{output_name}.{cfg.render.image.format}",
                    legend_label=cfg.render.legend.label or cfg.pipeline.encode_field,
                )
            )
            render_status = "ok"
        except Exception as exc:
            LOGGER.error("Rendering failed: %s", exc)
            render_status = "error"

    if cfg.write_manifest:
        manifest = RunManifest.create(
            config_hash_sha256=sha256_file(cfg.source_path),
            git_commit=detect_git_commit(cfg.source_path.parent),
            steps={
                "pipeline": "ok",
                "render": render_status,
            },
            artifacts={
                "results": str(results_path),
                "image": str(image_path) if image_path else "",
                "attribute_source": cfg.paths.attribute_source,
            },
        )
        manifest_path = cfg.paths.output_dir / "run_manifest.json"
        write_json(manifest_path, manifest.to_dict())
        LOGGER.info("Run manifest written to %s", manifest_path)

    if render_status == "error":
        return 1
    LOGGER.info("Run finished.")
    return 0


def _dispatch(args: argparse.Namespace) -> int:
    cfg = _load_and_setup(args)
    command = str(args.command)
    if command == "datasets":
        return _run_datasets(cfg, assemble=bool(args.assemble))
    if command == "validate":
        return _run_validate(cfg)
    if command == "run":
        if args.dataset:
            cfg = _with_dataset(cfg, str(args.dataset))
        return _run_pipeline(cfg, no_render=bool(args.no_render), output_name=str(args.output_name))
    raise ValueError(f"Unsupported command: {command}")


def _with_dataset(cfg: AppConfig, dataset: str) -> AppConfig:
    return replace(cfg, pipeline=replace(cfg.pipeline, dataset=dataset))


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
