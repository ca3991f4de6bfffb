import pytest

from estimaterecon.rules import (
    DEPENDENCY_RULES,
    PRIORITY_CRITICAL,
    PRIORITY_MINOR,
    DependencyRule,
    KeywordCondition,
    RuleValidationError,
    coerce_rules,
)


def test_builtin_rules_are_well_formed():
    assert len(DEPENDENCY_RULES) == 31
    for rule in DEPENDENCY_RULES:
        assert rule.trigger.groups
        assert all(group for group in rule.trigger.groups)
        assert rule.required
        assert rule.priority in {PRIORITY_CRITICAL, PRIORITY_MINOR}


def test_keyword_condition_rejects_empty_groups():
    with pytest.raises(RuleValidationError):
        KeywordCondition(groups=())
    with pytest.raises(RuleValidationError):
        KeywordCondition.from_value([["drywall"], []])
    with pytest.raises(RuleValidationError):
        KeywordCondition.from_value("drywall")


def test_rule_from_stored_record():
    rule = DependencyRule.from_dict(
        {
            "category": "Roofing",
            "trigger": {
                "keywords": [["roof"], ["replace"]],
                "description": "Roof replacement",
                "excludeKeywords": [["metal", "roof"]],
            },
            "required": {"keywords": ["ice shield"], "description": "Ice shield"},
            "missingItem": "Ice and water shield",
            "reason": "Eaves need ice and water shield",
            "priority": "Minor",
            "excludeIf": {"keywords": [["flat", "roof"]], "description": "Flat roof"},
        }
    )

    assert rule.trigger.groups == (("roof",), ("replace",))
    assert rule.exclude_keywords.groups == (("metal", "roof"),)
    assert rule.exclude_if.description == "Flat roof"
    assert rule.required == ("ice shield",)
    assert rule.priority == PRIORITY_MINOR
    assert DependencyRule.from_dict(rule.to_dict()) == rule


def test_rule_accepts_snake_case_and_defaults_priority():
    rule = DependencyRule.from_dict(
        {
            "category": "Doors",
            "trigger": [["door"], ["install"]],
            "required": ["lockset"],
            "missing_item": "Lockset",
            "reason": "Doors need a lockset",
            "priority": "urgent",
        }
    )

    assert rule.missing_item == "Lockset"
    assert rule.priority == PRIORITY_CRITICAL
    assert rule.exclude_keywords is None


@pytest.mark.parametrize(
    "record",
    [
        {"trigger": [["door"]], "required": ["x"], "missingItem": "X", "reason": "r"},
        {"category": "Doors", "trigger": [["door"]], "required": [], "missingItem": "X", "reason": "r"},
        {"category": "Doors", "trigger": [["door"]], "required": ["x"], "reason": "r"},
        {"category": "Doors", "trigger": [["door"]], "required": [""], "missingItem": "X", "reason": "r"},
        ["not", "a", "mapping"],
    ],
)
def test_invalid_records_raise(record):
    with pytest.raises(RuleValidationError):
        DependencyRule.from_dict(record)


def test_coerce_rules_keeps_valid_rules_in_order(caplog):
    valid = {
        "category": "Doors",
        "trigger": [["door"], ["install"]],
        "required": ["lockset"],
        "missingItem": "Lockset",
        "reason": "Doors need a lockset",
    }

    rules = coerce_rules([DEPENDENCY_RULES[0], {"category": "Broken"}, valid])

    assert [rule.missing_item for rule in rules] == [DEPENDENCY_RULES[0].missing_item, "Lockset"]
    assert "Dropping malformed dependency rule" in caplog.text
    assert coerce_rules(None) == []
