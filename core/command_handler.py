"""Command Handler module for processing rule-management commands.

This module provides functionality to:
1. Parse and validate command payloads received over the TCP channel
2. Load, change and save the rule collection as one whole document
3. Notify listeners so open tabs pick up the change

Supported command types:
- add_rule: targetText, replacementText, domain, urlPath, urlExact
- delete_rule / toggle_rule: id (toggle also accepts enabled)
- list_rules, clear_rules, export_rules, apply_rules
- import_rules: document (the import file's text)
"""

import json

from logger import Logger
from core.errors import InvalidRuleError, TitleRewriterError
from core.notifications import APPLY_RULE_NOW, CLEAR_RULE, make_notification
from core.rule_codec import export_rules, import_rules
from core.rule_store import add_rule, create_rule, remove_rule, rule_to_dict, toggle_rule

logger = Logger("CommandHandler")

RULE_FIELDS = ("targetText", "replacementText", "domain", "urlPath", "urlExact")


def _ok(message: str, **extra) -> dict:
    return {"ok": True, "message": message, **extra}


def _fail(message: str) -> dict:
    return {"ok": False, "message": message}


def _text_field(payload: dict, key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidRuleError(f"{key} must be text.")
    return value


class CommandHandler:
    def __init__(self, storage, notify=None):
        """Initialize the handler.

        Args:
            storage: The RuleStorage holding the rule collection.
            notify: Fire-and-forget callable receiving notification dictionaries.
        """
        self.storage = storage
        self.notify = notify

    def handle_command(self, data: str) -> dict:
        """Process one command payload.

        Args:
            data: The JSON command string.

        Returns:
            A response dictionary with "ok" and a user-facing "message". Invalid
            payloads and rule errors are reported here rather than raised.

        Called by the TCP server when a command is received from a client.
        """
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.error(f"Failed to parse payload: {data[:200]}")
            return _fail("Command is not valid JSON.")

        if not isinstance(payload, dict):
            return _fail("Command must be a JSON object.")

        command = payload.get("type")
        handler = getattr(self, f"_handle_{command}", None) if isinstance(command, str) else None
        if handler is None:
            logger.error(f"Unknown command: {command}")
            return _fail(f"Unknown command: {command}")

        try:
            return handler(payload)
        except TitleRewriterError as e:
            logger.warning(f"{command} failed: {e}")
            return _fail(str(e))

    def _send(self, kind: str):
        if self.notify is not None:
            self.notify(make_notification(kind))

    def _save_and_apply(self, rules):
        self.storage.save(rules)
        self._send(APPLY_RULE_NOW)

    def _handle_add_rule(self, payload: dict) -> dict:
        fields = {key: _text_field(payload, key) for key in RULE_FIELDS}
        rule = create_rule(
            fields["targetText"],
            fields["replacementText"],
            fields["domain"],
            url_path=fields["urlPath"],
            url_exact=fields["urlExact"],
        )
        rules, added = add_rule(self.storage.load().rules, rule)
        self._save_and_apply(rules)
        if added:
            logger.info(f"Added rule {rule.target_text!r} -> {rule.replacement_text!r} [{rule.domain or 'all domains'}]")
            return _ok("Saved and applied to open tabs.", rule=rule_to_dict(rule))
        return _ok("Rule already exists, applied to open tabs.")

    def _handle_delete_rule(self, payload: dict) -> dict:
        rules = remove_rule(self.storage.load().rules, payload.get("id"))
        self._save_and_apply(rules)
        logger.info(f"Deleted rule {payload.get('id')}")
        return _ok("Rule deleted.")

    def _handle_toggle_rule(self, payload: dict) -> dict:
        enabled = payload.get("enabled")
        rules = toggle_rule(self.storage.load().rules, payload.get("id"),
                            enabled if isinstance(enabled, bool) else None)
        self._save_and_apply(rules)
        state = next(rule.enabled for rule in rules if rule.id == payload.get("id"))
        return _ok(f"Rule {'enabled' if state else 'disabled'}.")

    def _handle_list_rules(self, payload: dict) -> dict:
        rules = self.storage.load().rules
        return _ok(f"{len(rules)} rules.", rules=[rule_to_dict(rule) for rule in rules])

    def _handle_clear_rules(self, payload: dict) -> dict:
        self.storage.clear()
        self._send(CLEAR_RULE)
        return _ok("All rules deleted.")

    def _handle_import_rules(self, payload: dict) -> dict:
        document = payload.get("document")
        if not isinstance(document, str):
            return _fail("Import command needs the file contents as text.")

        result = import_rules(self.storage.load().rules, document)
        self._save_and_apply(result.rules)
        logger.info(f"Imported {result.added} rules, skipped {result.skipped}")
        return _ok(f"Imported {result.added} rules, skipped {result.skipped} duplicates.",
                   added=result.added, skipped=result.skipped)

    def _handle_export_rules(self, payload: dict) -> dict:
        rules = self.storage.load().rules
        return _ok(f"Exported {len(rules)} rules.", document=export_rules(rules))

    def _handle_apply_rules(self, payload: dict) -> dict:
        self._send(APPLY_RULE_NOW)
        return _ok("Applying rules to open tabs.")
