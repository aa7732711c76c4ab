# tests/conftest.py
import itertools

import pytest

from core.rule_storage import RuleStorage
from core.rule_store import Rule


@pytest.fixture
def make_rule():
    counter = itertools.count(1)

    def _make_rule(target_text="Inbox", replacement_text="", **fields):
        fields.setdefault("id", f"rule-{next(counter)}")
        return Rule(target_text=target_text, replacement_text=replacement_text, **fields)

    return _make_rule


@pytest.fixture
def storage(tmp_path):
    return RuleStorage(str(tmp_path / "rename_rules.json"))
