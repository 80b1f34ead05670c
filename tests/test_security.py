"""Tests for origin normalization and admission."""
from __future__ import annotations

import pytest

from beaconrelay_server.security import OriginPolicy, host_from_origin, host_matches
from beaconrelay_server.settings import Settings


def test_host_from_origin_strips_everything():
    """Scheme, port, path, query and fragment are all removed."""
    assert host_from_origin("HTTPS://Sub.Example.com:8443/path?x=1#y") == "sub.example.com"
    assert host_from_origin("HTTPS://A.EXAMPLE.COM:443/p?q=1#f") == "a.example.com"


@pytest.mark.parametrize("origin,expected", [
    ("https://example.com", "example.com"),
    ("http://www.example.com", "www.example.com"),
    ("example.com", "example.com"),
    ("  Example.COM  ", "example.com"),
    ("www.example.com/landing", "www.example.com"),
    ("example.com?utm=1", "example.com"),
    ("example.com#top", "example.com"),
    ("localhost:3000", "localhost"),
    ("null", "null"),
])
def test_host_from_origin_variants(origin, expected):
    assert host_from_origin(origin) == expected


def test_host_from_origin_empty():
    """Absent or empty values normalize to an empty string."""
    assert host_from_origin(None) == ""
    assert host_from_origin("") == ""


def test_host_from_origin_malformed_does_not_raise():
    """Garbage input yields some string, never an exception."""
    for value in ["http://", "://::", "/", "?#:", "https://:8080", "\x00\xff"]:
        assert isinstance(host_from_origin(value), str)


def test_host_from_origin_idempotent():
    once = host_from_origin("https://Shop.Example.com:8443/cart")
    assert host_from_origin(once) == once


def test_host_matches_subdomain_not_substring():
    assert host_matches("example.com", "example.com")
    assert host_matches("a.b.example.com", "example.com")
    assert not host_matches("evilexample.com", "example.com")
    assert not host_matches("evilnotexample.com", "example.com")
    assert not host_matches("example.com.evil.io", "example.com")
    assert not host_matches("", "example.com")
    assert not host_matches("example.com", "")


def test_policy_root_domain():
    """Root domain and its subdomains are admitted."""
    policy = OriginPolicy.build("example.com")
    assert policy.admits("https://example.com")
    assert policy.admits("https://www.example.com:8443")
    assert not policy.admits("https://evilexample.com")
    assert not policy.admits("https://example.org")


def test_policy_absent_origin_always_admitted():
    """A missing Origin header is admitted regardless of configuration."""
    for policy in (OriginPolicy.build("example.com"), OriginPolicy.build("", [])):
        assert policy.admits(None)
        assert policy.admits("")


def test_policy_extra_origins_normalized():
    """Extra entries may be full URLs; they are normalized before matching."""
    policy = OriginPolicy.build("example.com", ["https://Partner.io/", "  ", "staging.acme.dev:8080"])
    assert policy.extra_hosts == ("partner.io", "staging.acme.dev")
    assert policy.admits("https://partner.io")
    assert policy.admits("https://cdn.partner.io")
    assert policy.admits("http://staging.acme.dev:8080")
    assert not policy.admits("https://notpartner.io")
    assert not policy.admits("https://acme.dev")


def test_policy_unparseable_origin_denied():
    policy = OriginPolicy.build("example.com")
    assert not policy.admits("http://")
    assert not policy.admits("null")


def test_policy_from_settings():
    settings = Settings(allowed_root_domain="Shop.Test", extra_allowed_origins="a.io, https://b.io")
    policy = OriginPolicy.from_settings(settings)
    assert policy.root_domain == "shop.test"
    assert policy.extra_hosts == ("a.io", "b.io")
    assert policy.admits("https://m.shop.test")
