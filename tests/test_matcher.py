from core.matcher import match_rules, rule_matches_domain, rule_matches_exact_url, rule_matches_tab
from core.rule_store import create_rule


def test_domain_matches_exact_host_and_subdomains(make_rule):
    rule = make_rule(domain="example.com")

    assert rule_matches_domain(rule, "example.com")
    assert rule_matches_domain(rule, "sub.example.com")
    assert rule_matches_domain(rule, "a.b.example.com")


def test_domain_rejects_lookalike_hosts(make_rule):
    rule = make_rule(domain="example.com")

    assert not rule_matches_domain(rule, "notexample.com")
    assert not rule_matches_domain(rule, "example.com.evil.org")


def test_empty_domain_is_wildcard(make_rule):
    assert rule_matches_domain(make_rule(domain=""), "anything.org")
    assert rule_matches_domain(make_rule(domain=""), "")


def test_scoped_rule_needs_a_hostname(make_rule):
    assert not rule_matches_domain(make_rule(domain="example.com"), "")


def test_stored_domain_is_normalized_before_comparing(make_rule):
    assert rule_matches_domain(make_rule(domain="HTTPS://Example.com/"), "www.example.com")


def test_exact_url_wildcard_when_rule_has_no_key(make_rule):
    assert rule_matches_exact_url(make_rule(domain="example.com"), "https://example.com/any")
    assert rule_matches_exact_url(make_rule(), "about:blank")


def test_exact_url_compares_full_key(make_rule):
    rule = make_rule(domain="example.com", url_path="inbox?folder=1")

    assert rule_matches_exact_url(rule, "https://example.com/inbox?folder=1")
    assert rule_matches_exact_url(rule, "http://EXAMPLE.com/inbox?folder=1")
    assert not rule_matches_exact_url(rule, "https://example.com/inbox")
    assert not rule_matches_exact_url(rule, "https://example.com/Inbox?folder=1")


def test_exact_url_rejects_tab_without_key(make_rule):
    rule = make_rule(url_exact="example.com/inbox")
    assert not rule_matches_exact_url(rule, "about:blank")


def test_exact_key_without_domain_still_checks_host(make_rule):
    rule = make_rule(url_exact="example.com/inbox")

    assert rule_matches_tab(rule, "https://example.com/inbox")
    assert not rule_matches_tab(rule, "https://other.com/inbox")
    assert not rule_matches_tab(rule, "https://example.com/outbox")


def test_global_rule_matches_every_tab(make_rule):
    rule = make_rule()

    assert rule_matches_tab(rule, "https://example.com/")
    assert rule_matches_tab(rule, "chrome://settings/")
    assert rule_matches_tab(rule, "")


def test_tab_must_satisfy_both_scopes(make_rule):
    rule = make_rule(domain="example.com", url_exact="example.com/a")

    assert rule_matches_tab(rule, "https://example.com/a")
    assert not rule_matches_tab(rule, "https://sub.example.com/a")


def test_match_rules_filters_inactive_and_keeps_order(make_rule):
    first = make_rule("A", domain="example.com")
    disabled = make_rule("B", enabled=False)
    blank = make_rule("")
    other_site = make_rule("C", domain="other.com")
    last = make_rule("D")

    matched = match_rules([first, disabled, blank, other_site, last], "https://www.example.com/")

    assert matched == [first, last]


def test_non_ascii_rule_scopes_match_browser_urls():
    path_rule = create_rule("Caf", domain="de.wikipedia.org", url_path="wiki/Café")
    domain_rule = create_rule("x", domain="bücher.de")

    assert rule_matches_tab(path_rule, "https://de.wikipedia.org/wiki/Caf%C3%A9")
    assert rule_matches_tab(domain_rule, "https://xn--bcher-kva.de/")
    assert rule_matches_tab(domain_rule, "https://shop.xn--bcher-kva.de/")
