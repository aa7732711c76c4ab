"""
Custom exceptions for the tab title rewriter
"""


class TitleRewriterError(Exception):
    """Base class for every recoverable rewriter failure"""
    pass


class InvalidRuleError(TitleRewriterError):
    """Raised when user-entered rule fields cannot form a valid rule"""
    pass


class RuleNotFoundError(TitleRewriterError):
    """Raised when no rule in the collection carries the requested id"""
    pass


class RuleImportError(TitleRewriterError):
    """Raised when an import document is unparseable or holds no valid rules"""
    pass


class UnscriptableTargetError(TitleRewriterError):
    """Raised when a tab's title cannot be written (privileged or closed page)"""
    pass
