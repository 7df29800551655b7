import json

from backend import db as db_module
from eligibility_engine.cli import main
from eligibility_engine.loader import RULES_DIR

SNAP_RULES = str(RULES_DIR / "snap.yaml")

BROKEN_RULES = """
rules:
  - id: broken-income
    program_id: test-program
    name: Broken income rule
    rule_logic:
      "<=": [{var: householdIncome}, 1000]
    version: 1.0.0
    test_cases:
      - description: expects the wrong answer
        input: {householdIncome: 5000}
        expected: true
"""


def test_validate_bundled_file(capsys):
    assert main(["validate", SNAP_RULES]) == 0
    out = capsys.readouterr().out
    assert "✓ snap-federal-gross-income (complexity" in out
    assert "✓ snap-federal-citizenship" in out


def test_run_embedded_tests(capsys):
    assert main(["test", SNAP_RULES, "--verbose"]) == 0
    out = capsys.readouterr().out
    assert "Test Suite: snap-federal-gross-income" in out
    assert "✓ single adult under the limit" in out


def test_failing_tests_set_exit_code(tmp_path, capsys):
    rule_file = tmp_path / "broken.yaml"
    rule_file.write_text(BROKEN_RULES, encoding="utf-8")
    assert main(["test", str(rule_file), "--verbose"]) == 1
    out = capsys.readouterr().out
    assert "Failed: 1" in out
    assert "✗ expects the wrong answer" in out


def test_evaluate_with_inline_and_file_data(tmp_path, capsys):
    assert main(["evaluate", SNAP_RULES, "--data", '{"householdIncome": 1500, "householdSize": 1}']) == 0
    out = capsys.readouterr().out
    assert '"rule": "snap-federal-gross-income"' in out
    assert '"value": true' in out

    data_file = tmp_path / "household.json"
    data_file.write_text(json.dumps({"householdIncome": 8333, "householdSize": 1}), encoding="utf-8")
    assert main(["evaluate", SNAP_RULES, "--data", f"@{data_file}"]) == 0
    assert "$8,333 exceeds the limit of $1,696" in capsys.readouterr().out


def test_bad_input_reports_errors(tmp_path, capsys):
    assert main(["validate", str(tmp_path / "missing.yaml")]) == 1
    assert "Error: Rule file not found" in capsys.readouterr().err

    assert main(["evaluate", SNAP_RULES, "--data", "[1, 2]"]) == 1
    assert "Error: --data must be a JSON object" in capsys.readouterr().err


def test_seed_imports_bundled_rules(session_factory, monkeypatch, capsys):
    monkeypatch.setattr(db_module, "SessionLocal", session_factory)
    monkeypatch.setattr(db_module, "init_db", lambda: None)

    assert main(["seed"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("Imported ")
    assert "failed 0" in out
