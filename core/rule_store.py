"""Rule Store module holding the in-memory rule collection.

This module provides functionality to:
1. Represent rename rules and create them from user input
2. Detect duplicates by their identity tuple and merge collections
3. Toggle and remove rules by id

Collections are plain lists in insertion order; that order is the order in which
matching rules are applied to a title. Every operation returns a new list and
never edits a rule in place.
"""

import hashlib
import random
import string
import time
from dataclasses import asdict, dataclass, replace
from typing import NamedTuple

from core.errors import InvalidRuleError, RuleNotFoundError
from core.key_normalizer import (
    get_rule_exact_url_key,
    normalize_domain,
    normalize_exact_url_key,
)

ID_ALPHABET = string.digits + string.ascii_lowercase


@dataclass(frozen=True)
class Rule:
    """A text substitution applied to tab titles, optionally scoped to a domain or URL"""
    id: str
    target_text: str
    replacement_text: str = ""
    domain: str = ""
    url_exact: str = ""
    url_path: str = ""
    enabled: bool = True


class MergeResult(NamedTuple):
    rules: list
    added: int
    skipped: int


def create_rule_id() -> str:
    suffix = "".join(random.choice(ID_ALPHABET) for _ in range(7))
    return f"{int(time.time() * 1000)}-{suffix}"


def legacy_rule_id(target_text: str, replacement_text: str) -> str:
    """Deterministic id for a rule synthesized from the legacy single-rule record."""
    digest = hashlib.sha1(f"{target_text}\x00{replacement_text}".encode("utf-8")).hexdigest()
    return f"legacy-{digest[:12]}"


def create_rule(target_text: str, replacement_text: str = "", domain: str = "",
                url_path: str = "", url_exact: str = "") -> Rule:
    """Build a new enabled rule from user-entered fields.

    Args:
        target_text: Text to search for in titles. Required.
        replacement_text: Text to substitute; empty deletes the target.
        domain: Optional domain scope in any form the user typed.
        url_path: Optional path that, with the domain, scopes the rule to one URL.
        url_exact: Optional full URL the rule is scoped to.

    Returns:
        A Rule with a fresh id, normalized domain and canonical exact-URL key.

    Raises InvalidRuleError when the target is blank, or when a path or exact URL
    was given but no exact key can be derived from it (a path needs a domain).
    """
    target_text = (target_text or "").strip()
    if not target_text:
        raise InvalidRuleError("Target text is required.")

    domain = normalize_domain(domain)
    draft = Rule(id="", target_text=target_text, domain=domain,
                 url_exact=url_exact or "", url_path=url_path or "")
    exact_key = get_rule_exact_url_key(draft)
    if ((url_path or "").strip() or (url_exact or "").strip()) and not exact_key:
        raise InvalidRuleError("An exact URL requires a domain.")

    return Rule(
        id=create_rule_id(),
        target_text=target_text,
        replacement_text=(replacement_text or "").strip(),
        domain=domain,
        url_exact=exact_key,
    )


def rule_identity(rule: Rule) -> tuple:
    """The (target, replacement, domain, exact-URL key) tuple two duplicates share."""
    return (
        rule.target_text,
        rule.replacement_text or "",
        normalize_domain(rule.domain),
        get_rule_exact_url_key(rule),
    )


def is_active_rule(rule: Rule) -> bool:
    return bool(rule.enabled and rule.target_text)


def active_rules(rules) -> list:
    return [rule for rule in rules if is_active_rule(rule)]


def dedupe_rules(rules) -> list:
    """Keep the first rule of every identity, preserving order."""
    seen = set()
    unique = []
    for rule in rules:
        key = rule_identity(rule)
        if key in seen:
            continue
        seen.add(key)
        unique.append(rule)
    return unique


def add_rule(rules, rule: Rule):
    """Append a rule unless an identical one exists.

    Returns:
        A tuple of (new collection, whether the rule was added).
    """
    key = rule_identity(rule)
    if any(rule_identity(existing) == key for existing in rules):
        return list(rules), False
    return [*rules, rule], True


def merge_rules(existing, incoming) -> MergeResult:
    """Append every incoming rule whose identity is not already in the collection.

    Incoming rules whose id is already taken keep their content but get a fresh id.
    """
    seen = {rule_identity(rule) for rule in existing}
    used_ids = {rule.id for rule in existing}
    merged = list(existing)

    for rule in incoming:
        key = rule_identity(rule)
        if key in seen:
            continue
        if rule.id in used_ids:
            rule = replace(rule, id=create_rule_id())
        seen.add(key)
        used_ids.add(rule.id)
        merged.append(rule)

    added = len(merged) - len(existing)
    return MergeResult(rules=dedupe_rules(merged), added=added, skipped=len(incoming) - added)


def find_rule(rules, rule_id: str) -> Rule:
    for rule in rules:
        if rule.id == rule_id:
            return rule
    raise RuleNotFoundError(f"No rule with id {rule_id!r}")


def remove_rule(rules, rule_id: str) -> list:
    find_rule(rules, rule_id)
    return [rule for rule in rules if rule.id != rule_id]


def toggle_rule(rules, rule_id: str, enabled: bool | None = None) -> list:
    """Flip (or set) the enabled flag of the rule with the given id."""
    target = find_rule(rules, rule_id)
    new_state = (not target.enabled) if enabled is None else bool(enabled)
    return [replace(rule, enabled=new_state) if rule.id == rule_id else rule for rule in rules]


def rule_to_dict(rule: Rule) -> dict:
    data = asdict(rule)
    return {
        "id": data["id"],
        "targetText": data["target_text"],
        "replacementText": data["replacement_text"],
        "domain": data["domain"],
        "urlExact": data["url_exact"],
        "urlPath": data["url_path"],
        "enabled": data["enabled"],
    }


def rule_from_dict(data) -> Rule | None:
    """Read a stored rule record; records without target text are dropped (None)."""
    if not isinstance(data, dict):
        return None

    target_text = data.get("targetText")
    if not isinstance(target_text, str) or not target_text:
        return None

    rule_id = data.get("id")
    return Rule(
        id=rule_id if isinstance(rule_id, str) and rule_id else create_rule_id(),
        target_text=target_text,
        replacement_text=data.get("replacementText") or "",
        domain=data.get("domain") or "",
        url_exact=data.get("urlExact") or "",
        url_path=data.get("urlPath") or "",
        enabled=data.get("enabled") is not False,
    )
