import pytest
from pydantic import ValidationError

from eligibility_engine.schema import (
    RuleDefinition,
    RulePackage,
    RuleVersion,
    calculate_checksum,
    compare_versions,
    create_rule_template,
    dump_definition,
    format_version,
    increment_version,
    is_newer_version,
    package_checksum,
    parse_version,
)


def rule_payload(**overrides):
    payload = {
        "id": "snap-ga-income",
        "programId": "snap-ga",
        "name": "SNAP Georgia income test",
        "ruleLogic": {"<=": [{"var": "householdIncome"}, 2000]},
        "version": "1.2.0",
        "requiredFields": ["householdIncome"],
        "testCases": [
            {"description": "under", "input": {"householdIncome": 1000}, "expected": True, "shouldPass": True}
        ],
    }
    payload.update(overrides)
    return payload


def test_versions_parse_and_format():
    assert parse_version("1.2") == RuleVersion(major=1, minor=2, patch=0)
    assert parse_version("2.0.1-beta").label == "beta"
    assert parse_version("1.0.0.rc1").label == "rc1"
    assert format_version(RuleVersion(major=3, minor=1, patch=4, label="draft")) == "3.1.4-draft"
    with pytest.raises(ValueError):
        parse_version("1")
    with pytest.raises(ValueError):
        parse_version("one.two")


def test_version_ordering_ignores_labels():
    assert compare_versions(parse_version("1.2.0"), parse_version("1.10.0")) == -1
    assert compare_versions(parse_version("1.0.0-a"), parse_version("1.0.0-b")) == 0
    assert is_newer_version(parse_version("2.0.0"), parse_version("1.9.9"))


def test_increment_version_resets_lower_parts():
    version = parse_version("1.4.2")
    assert format_version(increment_version(version, "major")) == "2.0.0"
    assert format_version(increment_version(version, "minor")) == "1.5.0"
    assert format_version(increment_version(version, "patch")) == "1.4.3"
    with pytest.raises(ValueError):
        increment_version(version, "build")


def test_definition_accepts_camel_and_snake_case():
    camel = RuleDefinition.model_validate(rule_payload())
    snake = RuleDefinition.model_validate(
        {
            "id": "snap-ga-income",
            "program_id": "snap-ga",
            "name": "SNAP Georgia income test",
            "rule_logic": {"var": "x"},
            "version": {"major": 1, "minor": 0},
        }
    )
    assert camel.program_id == snake.program_id == "snap-ga"
    assert camel.test_cases[0].should_pass is True


def test_definition_dump_uses_camel_case_and_drops_nulls():
    dumped = dump_definition(RuleDefinition.model_validate(rule_payload()))
    assert dumped["programId"] == "snap-ga"
    assert dumped["ruleLogic"] == {"<=": [{"var": "householdIncome"}, 2000]}
    assert dumped["version"] == {"major": 1, "minor": 2, "patch": 0}
    assert "description" not in dumped
    assert dumped["testCases"][0]["shouldPass"] is True


def test_definition_rejects_missing_logic_and_bad_fields():
    with pytest.raises(ValidationError):
        RuleDefinition.model_validate(rule_payload(ruleLogic=None))
    with pytest.raises(ValidationError):
        RuleDefinition.model_validate(rule_payload(ruleType="mystery"))
    with pytest.raises(ValidationError):
        RuleDefinition.model_validate(rule_payload(priority=-1))


def test_required_documents_accept_names_or_objects():
    definition = RuleDefinition.model_validate(
        rule_payload(requiredDocuments=["Proof of income", {"id": "id-doc", "name": "Photo ID"}])
    )
    assert definition.document_names() == ["Proof of income", "Photo ID"]


def test_rule_template_is_an_inactive_draft():
    template = create_rule_template("wic-ga", "New WIC rule")
    assert template.id.startswith("wic-ga-")
    assert template.draft is True
    assert template.active is False
    assert format_version(template.version) == "0.1.0-draft"


def test_checksum_is_key_order_independent():
    assert calculate_checksum({"a": 1, "b": [1, 2]}) == calculate_checksum({"b": [1, 2], "a": 1})
    assert len(calculate_checksum({})) == 64


def test_package_checksum_survives_a_json_round_trip():
    package = RulePackage.model_validate(
        {
            "metadata": {"id": "pkg-1", "name": "Georgia rules", "version": "1.0.0"},
            "rules": [rule_payload()],
        }
    )
    checksum = package_checksum(package)
    reloaded = RulePackage.model_validate(package.model_dump(mode="json", by_alias=True, exclude_none=True))
    assert package_checksum(reloaded) == checksum
