"""Income-rule detection used for the hard-stop pass."""

from __future__ import annotations

import re

from eligibility_engine.models import EligibilityRule

INCOME_KEYWORDS = (
    "income",
    "snap_income_eligible",
    "householdincome",
    "income-limit",
    "income-limits",
    "income_eligible",
    "gross-income",
    "net-income",
    "fpl",
    "poverty",
    "threshold",
)

# matched only as a standalone word
SHORT_INCOME_KEYWORDS = ("ami",)

_WORD_CHAR = re.compile(r"[a-zA-Z0-9_]")


def has_word_boundary(text: str, keyword: str) -> bool:
    """True when the first occurrence of ``keyword`` is not surrounded by word characters."""
    index = text.find(keyword)
    if index == -1:
        return False
    before = text[index - 1] if index > 0 else ""
    end = index + len(keyword)
    after = text[end] if end < len(text) else ""
    return not (before and _WORD_CHAR.match(before)) and not (after and _WORD_CHAR.match(after))


def is_income_rule(rule: EligibilityRule) -> bool:
    rule_id = rule.id.lower()
    name = rule.name.lower()
    if any(keyword in rule_id or keyword in name for keyword in INCOME_KEYWORDS):
        return True
    return any(has_word_boundary(rule_id, keyword) or has_word_boundary(name, keyword) for keyword in SHORT_INCOME_KEYWORDS)
