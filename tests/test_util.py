import json
import logging

from choropleth.util import format_key_list, setup_logging, sha256_file, write_json


def test_format_key_list_elides_past_limit():
    keys = (f"county {idx}" for idx in range(15))
    assert format_key_list(keys, limit=3) == "county 0, county 1, county 2, ... (+12 more)"
    assert format_key_list(["marin", "napa"]) == "marin, napa"


def test_write_json_replaces_file_without_leftovers(tmp_path):
    target = tmp_path / "out" / "results.json"
    write_json(target, {"rings": 1})
    write_json(target, {"rings": 2})

    assert json.loads(target.read_text(encoding="utf-8")) == {"rings": 2}
    assert [path.name for path in target.parent.iterdir()] == ["results.json"]


def test_sha256_file_matches_known_digest(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_bytes(b"abc")
    assert sha256_file(path) == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


def test_verbose_logging_keeps_plotting_libraries_quiet(tmp_path):
    setup_logging(tmp_path / "logs" / "run.log", verbose=True)

    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("matplotlib").level == logging.WARNING
    assert (tmp_path / "logs" / "run.log").exists()
