"""Import/Export Codec module for portable rule documents.

Exports wrap the rule collection as `{"version": 1, "exportedAt": ..., "rules": [...]}`.
Imports accept that shape, a bare list of rules, or an object with a `renameRules`
list, and sanitize every candidate because the document comes from outside.
"""

import json
from datetime import datetime, timezone

from core.errors import RuleImportError
from core.key_normalizer import get_rule_exact_url_key, normalize_domain
from core.rule_store import MergeResult, Rule, create_rule_id, merge_rules, rule_to_dict

EXPORT_VERSION = 1


def _iso_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def export_rules(rules, exported_at: datetime | None = None) -> dict:
    return {
        "version": EXPORT_VERSION,
        "exportedAt": _iso_timestamp(exported_at or datetime.now(timezone.utc)),
        "rules": [rule_to_dict(rule) for rule in rules],
    }


def dumps_export(rules, exported_at: datetime | None = None) -> str:
    return json.dumps(export_rules(rules, exported_at), indent=2, ensure_ascii=False)


def _as_text(value) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def extract_rule_candidates(document) -> list:
    """Find the list of rule-like objects inside an import document.

    Raises RuleImportError when the document holds no such list.
    """
    if isinstance(document, list):
        return document

    if isinstance(document, dict):
        for key in ("renameRules", "rules"):
            if isinstance(document.get(key), list):
                return document[key]

    raise RuleImportError("Import file does not contain a list of rules.")


def sanitize_rule(candidate) -> Rule | None:
    """Turn an untrusted rule-like object into a Rule.

    Args:
        candidate: One entry of the imported rule list.

    Returns:
        A clean Rule, or None when the candidate is not an object or has no target
        text. The candidate's id is kept when it is a non-empty string.
    """
    if not isinstance(candidate, dict):
        return None

    target_text = _as_text(candidate.get("targetText")).strip()
    if not target_text:
        return None

    domain = normalize_domain(_as_text(candidate.get("domain")))
    scope = Rule(
        id="",
        target_text=target_text,
        domain=domain,
        url_exact=_as_text(candidate.get("urlExact")),
        url_path=_as_text(candidate.get("urlPath")),
    )

    rule_id = candidate.get("id")
    return Rule(
        id=rule_id if isinstance(rule_id, str) and rule_id else create_rule_id(),
        target_text=target_text,
        replacement_text=_as_text(candidate.get("replacementText")).strip(),
        domain=domain,
        url_exact=get_rule_exact_url_key(scope),
        enabled=candidate.get("enabled") is not False,
    )


def parse_import(text) -> list:
    """Parse import text into sanitized rules.

    Args:
        text: The UTF-8 JSON text (or bytes) of the import file.

    Returns:
        The valid rules in document order.

    Raises RuleImportError if the text is not JSON, holds no rule list, or no
    candidate survives sanitizing.
    """
    try:
        document = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
        raise RuleImportError(f"Import file is not valid JSON: {e}") from e

    candidates = extract_rule_candidates(document)
    rules = [rule for rule in map(sanitize_rule, candidates) if rule is not None]
    if not rules:
        raise RuleImportError("Import file contains no valid rules.")
    return rules


def import_rules(existing, text) -> MergeResult:
    """Parse an import document and merge its rules into the existing collection."""
    return merge_rules(existing, parse_import(text))
