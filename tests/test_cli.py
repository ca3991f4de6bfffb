import json

import pytest

from estimaterecon.cli import build_parser, main


@pytest.fixture
def config_path(root):
    return root / "config" / "config.yaml"


def test_compare_sample_estimates_as_json(config_path, sample_dir, capsys):
    exit_code = main(
        [
            "--config",
            str(config_path),
            "--json",
            "compare",
            str(sample_dir / "source_estimate.csv"),
            str(sample_dir / "target_estimate.csv"),
        ]
    )

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    summary = payload["summary"]
    assert summary["matched_count"] == 4
    assert summary["source_only_count"] == 1
    assert summary["target_only_count"] == 2
    assert summary["price_discrepancies"] == 1
    assert summary["total_cost_difference"] == pytest.approx(190.6)
    assert [entry["item"] for entry in payload["suggestions"]][0].startswith("Seal/prime")


def test_compare_prints_tables(config_path, sample_dir, capsys):
    exit_code = main(
        [
            "--config",
            str(config_path),
            "compare",
            str(sample_dir / "source_estimate.csv"),
            str(sample_dir / "target_estimate.csv"),
            "--search-provider",
            "none",
        ]
    )

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "Reconciliation summary" in out
    assert "Potentially missing from the source" in out
    assert "Catalog suggestions" not in out


def test_check_reports_missing_drywall_finish(config_path, tmp_path, capsys):
    estimate = tmp_path / "estimate.csv"
    estimate.write_text("Description,Qty\nReplace drywall in hallway,120\n", encoding="utf-8")

    exit_code = main(["--config", str(config_path), "--json", "check", str(estimate)])

    assert exit_code == 0
    findings = json.loads(capsys.readouterr().out)
    names = [finding["required_item"] for finding in findings]
    assert "Drywall tape and mud (finish)" in names
    assert "Paint repaired surfaces" in names


def test_check_without_builtin_rules(config_path, tmp_path, capsys):
    estimate = tmp_path / "estimate.csv"
    estimate.write_text("Description\nReplace drywall in hallway\n", encoding="utf-8")

    exit_code = main(["--config", str(config_path), "check", str(estimate), "--no-builtin"])

    assert exit_code == 0
    assert "No missing items detected." in capsys.readouterr().out


def test_patterns_for_one_category(sample_dir, tmp_path, capsys, monkeypatch):
    monkeypatch.chdir(tmp_path)

    exit_code = main(["--catalog", str(sample_dir / "catalog.csv"), "--json", "patterns", "--category", "dry"])

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["patterns"]
    assert {pattern["category"] for pattern in payload["patterns"]} == {"DRY"}


def test_patterns_need_a_catalog(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    assert main(["patterns"]) == 1


def test_missing_input_files_fail(config_path, tmp_path):
    assert main(["--config", str(config_path), "check", str(tmp_path / "missing.csv")]) == 1
    assert main(["--config", str(tmp_path / "missing.yaml"), "patterns"]) == 1
    assert main(["--catalog", str(tmp_path / "missing.csv"), "patterns"]) == 1


def test_json_flag_is_global():
    args = build_parser().parse_args(["--json", "check", "estimate.csv"])

    assert args.json is True
    assert args.command == "check"


def test_compare_can_fix_line_totals(tmp_path, capsys, monkeypatch):
    monkeypatch.chdir(tmp_path)
    source = tmp_path / "source.csv"
    target = tmp_path / "target.csv"
    source.write_text("Description,Qty,Unit Price,Total\nPaint walls,10,2.00,25.00\n", encoding="utf-8")
    target.write_text("Description,Qty,Unit Price,Total\nPaint walls,10,2.00,20.00\n", encoding="utf-8")

    assert main(["--json", "compare", str(source), str(target)]) == 0
    as_stated = json.loads(capsys.readouterr().out)["summary"]
    assert main(["--json", "compare", str(source), str(target), "--fix-totals"]) == 0
    fixed = json.loads(capsys.readouterr().out)["summary"]

    assert as_stated["total_cost_difference"] == pytest.approx(-5.0)
    assert fixed["source_total"] == pytest.approx(20.0)
    assert fixed["total_cost_difference"] == pytest.approx(0.0)
