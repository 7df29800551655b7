import json

from backend.import_export import (
    IMPORT_CHECKSUM_MISMATCH,
    IMPORT_DATABASE_ERROR,
    IMPORT_DUPLICATE_ID,
    IMPORT_INVALID_FORMAT,
    IMPORT_MISSING_PROGRAM,
    IMPORT_TEST_FAILED,
    IMPORT_VALIDATION_FAILED,
    IMPORT_VERSION_CONFLICT,
    ExportOptions,
    ImportOptions,
    RuleExporter,
    RuleImporter,
    export_rule,
    import_rule,
)
from backend.stores import InMemoryStore
from eligibility_engine.models import EligibilityRule, Program


def rule_payload(**overrides):
    payload = {
        "id": "snap-ga-income",
        "programId": "snap-ga",
        "name": "SNAP Georgia income test",
        "ruleLogic": {"<=": [{"var": "householdIncome"}, 2000]},
        "version": "1.0.0",
        "requiredFields": ["householdIncome"],
        "citations": [{"title": "Georgia SNAP manual", "legalReference": "GA 3000"}],
        "testCases": [
            {"description": "under the limit", "input": {"householdIncome": 1500}, "expected": True},
            {"description": "over the limit", "input": {"householdIncome": 2500}, "expected": False},
        ],
    }
    payload.update(overrides)
    return payload


def messages(issues):
    return [issue.message for issue in issues]


def error_codes(result):
    return [issue.code for issue in result.errors]


def test_import_new_rule():
    store = InMemoryStore()
    result = import_rule(store, rule_payload())
    assert result.success
    assert (result.imported, result.skipped, result.failed) == (1, 0, 0)
    stored = store.find_rule_by_id("snap-ga-income")
    assert stored.program_id == "snap-ga"
    assert stored.version == "1.0.0"
    assert store.find_rule_definition("snap-ga-income")["citations"][0]["legalReference"] == "GA 3000"


def test_invalid_structure_fails():
    result = import_rule(InMemoryStore(), {"id": "broken", "ruleLogic": True})
    assert not result.success
    assert result.failed == 1
    assert result.errors[0].code == IMPORT_INVALID_FORMAT
    assert result.errors[0].message == "Invalid rule structure"
    assert result.errors[0].rule_id == "broken"


def test_invalid_logic_fails_validation():
    logic = {"var": "x"}
    for _ in range(25):
        logic = {"!": logic}
    result = import_rule(InMemoryStore(), rule_payload(ruleLogic=logic, testCases=None))
    assert result.failed == 1
    assert result.errors[0].code == IMPORT_VALIDATION_FAILED
    assert all(code == IMPORT_VALIDATION_FAILED for code in error_codes(result))


def test_very_deep_logic_is_reported_not_raised():
    logic = {"var": "x"}
    for _ in range(600):
        logic = {"!": logic}
    result = RuleImporter(InMemoryStore()).import_rule(rule_payload(ruleLogic=logic, testCases=None))
    assert not result.success
    assert result.failed == 1
    assert result.errors[0].code == IMPORT_VALIDATION_FAILED


def test_validation_warnings_are_carried_over():
    payload = rule_payload(ruleLogic={"snap_income_eligible": [{"var": "householdIncome"}, 1]}, testCases=None)
    result = import_rule(InMemoryStore(), payload)
    assert result.success
    assert 'Unknown operator "snap_income_eligible" - may be custom' in messages(result.warnings)


def test_failing_embedded_tests_are_reported_but_import_continues():
    payload = rule_payload(
        testCases=[{"description": "wrong", "input": {"householdIncome": 5000}, "expected": True}]
    )
    store = InMemoryStore()
    result = import_rule(store, payload)
    assert result.success
    assert result.imported == 1
    assert error_codes(result) == [IMPORT_TEST_FAILED]
    assert messages(result.errors) == ["Tests failed: 1/1"]
    assert "Continuing import despite test failures" in messages(result.warnings)
    assert store.find_rule_by_id("snap-ga-income") is not None

    skipped = import_rule(InMemoryStore(), payload, ImportOptions(skip_tests=True))
    assert skipped.errors == []


def test_create_mode_rejects_existing_rule():
    store = InMemoryStore()
    import_rule(store, rule_payload())
    result = import_rule(store, rule_payload(), ImportOptions(mode="create"))
    assert not result.success
    assert result.skipped == 1
    assert error_codes(result) == [IMPORT_DUPLICATE_ID]


def test_overwrite_disabled_skips_existing_rule():
    store = InMemoryStore()
    import_rule(store, rule_payload())
    result = import_rule(store, rule_payload(name="Renamed"), ImportOptions(overwrite_existing=False))
    assert result.skipped == 1
    assert "Rule exists and overwrite is disabled" in messages(result.warnings)
    assert store.find_rule_by_id("snap-ga-income").name == "SNAP Georgia income test"


def test_same_or_older_version_warns_but_imports():
    store = InMemoryStore()
    import_rule(store, rule_payload(version="2.0.0"))
    result = import_rule(store, rule_payload(version="1.5.0", name="Older"))
    assert result.imported == 1
    assert IMPORT_VERSION_CONFLICT in [issue.code for issue in result.warnings]
    assert store.find_rule_by_id("snap-ga-income").name == "Older"

    newer = import_rule(store, rule_payload(version="3.0.0"))
    assert IMPORT_VERSION_CONFLICT not in [issue.code for issue in newer.warnings]


def test_dry_run_does_not_store():
    store = InMemoryStore()
    result = import_rule(store, rule_payload(), ImportOptions(dry_run=True))
    assert result.success
    assert result.dry_run
    assert result.imported == 1
    assert "Dry run - rule not actually imported" in messages(result.warnings)
    assert store.find_rule_by_id("snap-ga-income") is None


def test_require_program():
    store = InMemoryStore()
    result = import_rule(store, rule_payload(), ImportOptions(require_program=True))
    assert error_codes(result) == [IMPORT_MISSING_PROGRAM]

    store.save_program(Program(id="snap-ga", name="SNAP Georgia"))
    assert import_rule(store, rule_payload(), ImportOptions(require_program=True)).success


def test_storage_failures_are_reported():
    class FailingStore(InMemoryStore):
        def save_rule(self, rule, definition=None, mode="upsert"):
            raise RuntimeError("disk full")

    result = import_rule(FailingStore(), rule_payload())
    assert result.failed == 1
    assert result.errors[0].code == IMPORT_DATABASE_ERROR
    assert result.errors[0].message == "disk full"


def test_import_many_aggregates_counts():
    store = InMemoryStore()
    result = RuleImporter(store).import_rules(
        [rule_payload(), rule_payload(id="snap-ga-second"), {"id": "bad"}]
    )
    assert not result.success
    assert (result.imported, result.failed) == (2, 1)


def test_import_from_json_dispatches_on_shape():
    importer = RuleImporter(InMemoryStore())
    assert importer.import_from_json(json.dumps(rule_payload())).imported == 1
    assert importer.import_from_json(json.dumps([rule_payload(id="a"), rule_payload(id="b")])).imported == 2
    broken = importer.import_from_json("{not json")
    assert broken.failed == 1
    assert broken.errors[0].code == IMPORT_INVALID_FORMAT


def test_package_round_trip_between_stores():
    source = InMemoryStore()
    RuleImporter(source).import_rules([rule_payload(), rule_payload(id="snap-ga-assets", name="Assets")])
    text = RuleExporter(source).export_package_to_json(["snap-ga-income", "snap-ga-assets"], "Georgia SNAP")

    target = InMemoryStore()
    result = RuleImporter(target).import_from_json(text)
    assert result.success
    assert result.imported == 2
    assert "Imported package: Georgia SNAP v1.0.0" in messages(result.warnings)
    assert target.find_rule_definition("snap-ga-income") == source.find_rule_definition("snap-ga-income")


def test_tampered_package_is_rejected():
    source = InMemoryStore()
    import_rule(source, rule_payload())
    package = json.loads(RuleExporter(source).export_package_to_json(["snap-ga-income"], "Georgia SNAP"))
    package["rules"][0]["ruleLogic"] = {"<=": [{"var": "householdIncome"}, 9999]}

    result = RuleImporter(InMemoryStore()).import_rule_package(package)
    assert result.failed == 1
    assert result.errors[0].code == IMPORT_CHECKSUM_MISMATCH
    assert result.errors[0].message == "Package checksum mismatch - package may be corrupted"

    invalid = RuleImporter(InMemoryStore()).import_rule_package({"metadata": {}, "rules": []})
    assert invalid.errors[0].message == "Invalid package structure"


def test_export_prefers_stored_definition():
    store = InMemoryStore()
    import_rule(store, rule_payload())
    exported = export_rule(store, "snap-ga-income")
    assert exported.citations[0].title == "Georgia SNAP manual"
    assert len(exported.test_cases) == 2

    without_tests = export_rule(store, "snap-ga-income", ExportOptions(include_tests=False))
    assert without_tests.test_cases is None
    assert export_rule(store, "missing") is None


def test_export_rebuilds_definition_for_plain_rules():
    store = InMemoryStore()
    store.save_rule(
        EligibilityRule(
            id="wic-ga-income",
            program_id="wic-ga",
            name="WIC Georgia income",
            logic={"<=": [{"var": "householdIncome"}, 2322]},
            required_documents=["Proof of income"],
            version="not-a-version",
            test_cases=[{"description": "under", "input": {"householdIncome": 1}, "expected": True}],
        )
    )
    exported = export_rule(store, "wic-ga-income")
    assert exported.required_documents[0].id == "proof-of-income"
    assert (exported.version.major, exported.version.minor) == (1, 0)
    assert exported.test_cases[0].id == "wic-ga-income-test-1"


def test_export_to_json_uses_camel_case():
    store = InMemoryStore()
    import_rule(store, rule_payload())
    store.save_program(Program(id="snap-ga", name="SNAP Georgia"))
    payload = json.loads(RuleExporter(store).export_to_json(["snap-ga-income", "missing"], ExportOptions(pretty=True)))
    assert len(payload) == 1
    assert payload[0]["programId"] == "snap-ga"
    assert [item.id for item in RuleExporter(store).export_program_rules("snap-ga")] == ["snap-ga-income"]
