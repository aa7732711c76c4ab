from core.matcher import match_rules


# === SUBSTITUTION ===
def replace_title_text(title: str, target_text: str, replacement_text: str) -> str:
    """Replace every occurrence of a literal substring in a tab title.

    Args:
        title: The current tab title.
        target_text: The literal text to look for.
        replacement_text: The text to put in its place (empty deletes it).

    Returns:
        The title with all non-overlapping occurrences replaced left to right, or the
        title untouched when either string is empty or the target is absent.
    """
    if not title or not target_text or target_text not in title:
        return title

    return title.replace(target_text, replacement_text or "")


def apply_rules_to_text(title: str, rules) -> str:
    """Apply rules one after another, each one seeing the previous rule's output."""
    for rule in rules:
        title = replace_title_text(title, rule.target_text, rule.replacement_text)
    return title


# === PER-TAB UPDATES ===
def compute_title_update(rules, tab):
    """Compute the new title for a single tab.

    Args:
        rules: The rule collection in stored order.
        tab: An object with `url` and `title` attributes.

    Returns:
        The rewritten title, or None when no rule matches or nothing would change.
    """
    if not isinstance(tab.title, str):
        return None

    matched_rules = match_rules(rules, tab.url)
    if not matched_rules:
        return None

    updated_title = apply_rules_to_text(tab.title, matched_rules)
    if updated_title == tab.title:
        return None
    return updated_title


def compute_updates(rules, tabs) -> list:
    """Compute the (tab id, new title) pairs needed to bring every tab up to date."""
    updates = []
    for tab in tabs:
        new_title = compute_title_update(rules, tab)
        if new_title is not None:
            updates.append((tab.id, new_title))
    return updates
