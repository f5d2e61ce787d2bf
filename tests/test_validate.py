from choropleth.config import load_config
from choropleth.validate import Validator, format_report_lines


def test_valid_config_passes(config_file):
    report = Validator(load_config(config_file)).run()

    assert report.ok
    lines = list(format_report_lines(report))
    assert lines[-1] == "[OK] Validation completed with no errors."
    assert any("Dataset demo_states: rings=3" in line for line in lines)
    assert any("matched=3/3" in line for line in lines)


def test_missing_attribute_source_is_an_error(config_file):
    (config_file.parent / "states.txt").unlink()
    report = Validator(load_config(config_file)).run()

    assert not report.ok
    assert any("Missing input file" in msg for msg in report.errors)
    assert any("Failed reading attribute source" in msg for msg in report.errors)


def test_unknown_dataset_and_duplicates_are_errors(config_file):
    text = config_file.read_text(encoding="utf-8").replace("dataset: demo_states", "dataset: atlantis")
    config_file.write_text(text, encoding="utf-8")
    (config_file.parent / "states.txt").write_text(
        "Oregon | 1 | 1 sq mi\noregon | 2 | 2 sq mi\n", encoding="utf-8"
    )
    report = Validator(load_config(config_file)).run()

    assert any("'atlantis' is not registered" in msg for msg in report.errors)
    assert any("Duplicate attribute key 'oregon'" in msg for msg in report.errors)


def test_unmatched_ring_keys_are_warnings(config_file):
    (config_file.parent / "states.txt").write_text("Oregon | 4,237,256 | 95,988 sq mi\n", encoding="utf-8")
    report = Validator(load_config(config_file)).run()

    assert report.ok
    assert any("california, nevada" in msg for msg in report.warnings)
