"""Key Normalizer module for turning free-form domains and URLs into comparison keys.

This module provides functionality to:
1. Normalize user-entered domains into bare lowercase hostnames
2. Normalize user-entered paths and exact URLs into canonical keys
3. Derive the same keys from the absolute URLs reported by the browser

Every variant a user may type (bare hostname, scheme-prefixed URL, path with or
without a leading slash) funnels into one canonical string, so matching is a
plain string comparison. Keys are encoded the way the browser reports URLs:
hostnames in punycode, paths, queries and fragments percent-encoded.
"""

from urllib.parse import quote, urlsplit

DEFAULT_SCHEME = "https://"

# Characters the browser leaves as-is in each URL component; "%" keeps existing escapes
PATH_SAFE = "/:@!$&'()*+,;=%[]^{}|"
QUERY_SAFE = "/?:@!$&()*+,;=%[]^{}|`"
FRAGMENT_SAFE = "/?:@!$&'()*+,;=%[]^{}|#"

DEFAULT_PORTS = {
    "http": 80,
    "https": 443,
    "ws": 80,
    "wss": 443,
    "ftp": 21,
}


def _parse_url(url: str):
    """Strictly parse an absolute URL.

    Args:
        url: The absolute URL to parse.

    Returns:
        A tuple of (split result, lowercased hostname, port or None).

    Raises ValueError when the URL has no usable host, or when urllib rejects
    its port, IPv6 brackets or internationalized hostname.
    """
    parts = urlsplit(url)
    hostname = parts.hostname
    if not hostname or any(ch.isspace() for ch in hostname):
        raise ValueError(f"No valid host in {url!r}")
    port = parts.port
    return parts, _encode_host(hostname), port


def _encode_host(hostname: str) -> str:
    """Lowercase a hostname and convert non-ASCII labels to punycode."""
    hostname = hostname.lower()
    if hostname.isascii():
        return hostname
    try:
        return hostname.encode("idna").decode("ascii").lower()
    except UnicodeError as e:
        raise ValueError(f"Invalid hostname {hostname!r}") from e


def _host_key(scheme: str, hostname: str, port) -> str:
    host = f"[{hostname}]" if ":" in hostname else hostname
    if port is not None and port != DEFAULT_PORTS.get(scheme):
        host = f"{host}:{port}"
    return host


def _compose_key(parts, hostname: str, port) -> str:
    host = _host_key(parts.scheme.lower(), hostname, port)
    path = quote(parts.path or "/", safe=PATH_SAFE)
    search = f"?{quote(parts.query, safe=QUERY_SAFE)}" if parts.query else ""
    fragment = f"#{quote(parts.fragment, safe=FRAGMENT_SAFE)}" if parts.fragment else ""
    return f"{host}{path}{search}{fragment}"


def _with_default_scheme(value: str) -> str:
    return value if "://" in value else f"{DEFAULT_SCHEME}{value}"


def normalize_domain(value) -> str:
    """Normalize a user-entered domain into a lowercase hostname.

    Args:
        value: Free-form text such as "Example.COM/", "https://mail.example.com/inbox"
            or "sub.example.com".

    Returns:
        The parsed hostname, or the trimmed, lowercased input with one trailing
        slash removed when it cannot be parsed as a URL. Empty input yields "".
    """
    trimmed = (value or "").strip().lower()
    if not trimmed:
        return ""

    try:
        _, hostname, _ = _parse_url(_with_default_scheme(trimmed))
        return hostname
    except ValueError:
        return trimmed[:-1] if trimmed.endswith("/") else trimmed


def normalize_url_path(value) -> str:
    """Ensure a user-entered path starts with a slash. Empty input yields ""."""
    trimmed = (value or "").strip()
    if not trimmed:
        return ""
    if trimmed.startswith("/"):
        return trimmed
    return f"/{trimmed}"


def normalize_exact_url_key(value) -> str:
    """Normalize a user-entered exact URL into a host+path+search+hash key.

    Args:
        value: Free-form URL text, with or without a scheme.

    Returns:
        The canonical key with the path defaulting to "/", or "" when the input is
        empty, unparseable or has no host.
    """
    trimmed = (value or "").strip()
    if not trimmed:
        return ""

    try:
        parts, hostname, port = _parse_url(_with_default_scheme(trimmed))
    except ValueError:
        return ""
    return _compose_key(parts, hostname, port)


def get_hostname(url) -> str:
    """Return the lowercased hostname of an absolute tab URL, or "" if there is none."""
    if not url or not isinstance(url, str):
        return ""

    try:
        parts = urlsplit(url)
        if not parts.scheme or not parts.hostname:
            return ""
        return _encode_host(parts.hostname)
    except ValueError:
        return ""


def get_url_key(url) -> str:
    """Return the host+path+search+hash key of an absolute tab URL, or "" if unparseable."""
    if not url or not isinstance(url, str):
        return ""

    try:
        if not urlsplit(url).scheme:
            return ""
        parts, hostname, port = _parse_url(url)
    except ValueError:
        return ""
    return _compose_key(parts, hostname, port)


def get_rule_exact_url_key(rule) -> str:
    """Derive the exact-URL key a rule is scoped to.

    Args:
        rule: Any object with `url_exact`, `domain` and `url_path` attributes.

    Returns:
        The normalized `url_exact` when it yields a key; otherwise the key composed
        from the rule's domain and path when both are set; otherwise "".
    """
    exact_key = normalize_exact_url_key(getattr(rule, "url_exact", ""))
    if exact_key:
        return exact_key

    domain = normalize_domain(getattr(rule, "domain", ""))
    path = normalize_url_path(getattr(rule, "url_path", ""))
    if domain and path:
        return normalize_exact_url_key(f"{domain}{path}")

    return ""
