"""Rule Storage module persisting the rule collection as a JSON document.

This module provides functionality to:
1. Load the rule collection, migrating the legacy single-rule record once
2. Replace the whole collection atomically on save
3. Clear every stored rule

The file holds `{"renameRules": [...]}`. Older installs stored a single
`{"renameRule": {...}}` record instead.
"""

import json
import os
import time
from typing import NamedTuple

from logger import Logger
from core.rule_store import Rule, legacy_rule_id, rule_from_dict, rule_to_dict

RULES_KEY = "renameRules"
LEGACY_RULE_KEY = "renameRule"


class LoadResult(NamedTuple):
    rules: list
    migrated: bool


class RuleStorage:
    def __init__(self, path: str):
        """Initialize the storage for a rule file.

        Args:
            path: Location of the JSON rule file. It is created on first save.
        """
        self.path = path
        self.logger = Logger("RuleStorage")

    def load(self) -> LoadResult:
        """Load the rule collection.

        Records without target text are dropped. When only the legacy record exists,
        one rule is synthesized from it, saved as the new collection, and the result
        is tagged as migrated.

        Returns: A LoadResult with the rules in stored order.
        """
        document = self._read_document()

        stored_rules = document.get(RULES_KEY)
        if isinstance(stored_rules, list):
            rules = [rule for rule in map(rule_from_dict, stored_rules) if rule is not None]
            if len(rules) != len(stored_rules):
                self.logger.warning(f"Dropped {len(stored_rules) - len(rules)} invalid stored rules")
            return LoadResult(rules, False)

        legacy = document.get(LEGACY_RULE_KEY)
        if isinstance(legacy, dict) and isinstance(legacy.get("targetText"), str) and legacy["targetText"]:
            replacement_text = legacy.get("replacementText") or ""
            migrated = Rule(
                id=legacy_rule_id(legacy["targetText"], replacement_text),
                target_text=legacy["targetText"],
                replacement_text=replacement_text,
                enabled=legacy.get("enabled") is not False,
            )
            self.save([migrated])
            self.logger.info(f"Migrated legacy rule {migrated.target_text!r} into the rule collection")
            return LoadResult([migrated], True)

        return LoadResult([], False)

    def save(self, rules):
        """Replace the stored collection with `rules` in one atomic write."""
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)

        data = {RULES_KEY: [rule_to_dict(rule) for rule in rules]}

        # Write to temporary file first, then rename (atomic operation)
        temp_file = f"{self.path}.tmp"
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(temp_file, self.path)
        self.logger.debug(f"Saved {len(rules)} rules to {self.path}")

    def clear(self):
        """Remove the stored collection and any legacy record."""
        if os.path.exists(self.path):
            os.remove(self.path)
        self.logger.info("Cleared all stored rules")

    def _read_document(self) -> dict:
        if not os.path.exists(self.path):
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self.logger.error(f"Rule file {self.path} is corrupted: {e}")
            self._move_aside()
            return {}

        if not isinstance(document, dict):
            self.logger.error(f"Rule file {self.path} does not hold an object, ignoring it")
            self._move_aside()
            return {}
        return document

    def _move_aside(self):
        corrupted = f"{self.path}.corrupted.{int(time.time())}"
        os.replace(self.path, corrupted)
        self.logger.warning(f"Moved corrupted rule file to {corrupted}")
