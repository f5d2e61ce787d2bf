import json

import pytest

from choropleth.cli import main


def test_run_writes_results_image_and_manifest(config_file):
    assert main(["run", "--config", str(config_file)]) == 0

    out_dir = config_file.parent / "out"
    payload = json.loads((out_dir / "choropleth.json").read_text(encoding="utf-8"))
    assert payload["ok"] is True
    assert [ring["key"] for ring in payload["rings"]] == ["oregon", "nevada", "california"]
    assert (out_dir / "choropleth.png").exists()
    manifest = json.loads((out_dir / "run_manifest.json").read_text(encoding="utf-8"))
    assert manifest["steps"] == {"pipeline": "ok", "render": "ok"}
    assert (config_file.parent / "logs" / "choropleth.log").exists()


def test_run_without_render(config_file):
    assert main(["run", "--config", str(config_file), "--no-render", "--output-name", "density"]) == 0
    out_dir = config_file.parent / "out"
    assert (out_dir / "density.json").exists()
    assert not (out_dir / "density.png").exists()


def test_run_with_unknown_dataset_fails(config_file):
    assert main(["run", "--config", str(config_file), "--dataset", "atlantis"]) == 1


def test_validate_and_datasets_commands(config_file):
    assert main(["validate", "--config", str(config_file)]) == 0
    assert main(["datasets", "--config", str(config_file), "--assemble"]) == 0


def test_command_is_required():
    with pytest.raises(SystemExit):
        main([])
