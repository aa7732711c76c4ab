# Notification kinds passed between the command channel, plugins and the connection manager
APPLY_RULE_NOW = "APPLY_RULE_NOW"  # re-match and rewrite every open tab
CLEAR_RULE = "CLEAR_RULE"  # informational, all rules were removed

NOTIFICATION_TYPES = (APPLY_RULE_NOW, CLEAR_RULE)


def make_notification(kind: str) -> dict:
    if kind not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {kind}")
    return {"type": kind}
