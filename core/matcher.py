"""Matcher module deciding which rules apply to a tab.

A rule carries two independent scopes, a domain and an exact URL. An empty scope
is a wildcard, and a rule applies to a tab only when both scopes accept its URL.
"""

from core.key_normalizer import get_hostname, get_rule_exact_url_key, get_url_key, normalize_domain
from core.rule_store import is_active_rule


def rule_matches_domain(rule, hostname: str) -> bool:
    """Check the domain scope: exact host or any of its subdomains."""
    rule_domain = normalize_domain(rule.domain)
    if not rule_domain:
        return True
    if not hostname:
        return False
    return hostname == rule_domain or hostname.endswith(f".{rule_domain}")


def rule_matches_exact_url(rule, tab_url: str) -> bool:
    rule_key = get_rule_exact_url_key(rule)
    if not rule_key:
        return True

    tab_key = get_url_key(tab_url)
    if not tab_key:
        return False
    return tab_key == rule_key


def rule_matches_tab(rule, tab_url: str) -> bool:
    return rule_matches_domain(rule, get_hostname(tab_url)) and rule_matches_exact_url(rule, tab_url)


def match_rules(rules, tab_url: str) -> list:
    """Filter the enabled, non-empty rules that apply to a tab URL, keeping their order.

    Args:
        rules: The rule collection in stored order.
        tab_url: The tab's absolute URL.

    Returns:
        The matching rules in the order they must be applied.
    """
    return [rule for rule in rules if is_active_rule(rule) and rule_matches_tab(rule, tab_url)]
