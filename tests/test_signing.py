"""Tests for signed admin panel links."""

from urllib.parse import parse_qs, urlsplit

import pytest

from web.signing import build_admin_panel_url, build_signature, verify_signature

SECRET = "s3cret"
TTL_MS = 600_000
T = 1_767_268_800_000


def signed(user_id="1", ts=T):
    return {"uid": user_id, "ts": str(ts), "sig": build_signature(user_id, str(ts), SECRET)}


@pytest.mark.parametrize("current", [T, T + TTL_MS - 1, T - TTL_MS + 1])
def test_valid_within_ttl(current):
    check = verify_signature(signed(), SECRET, TTL_MS, current_ms=current)

    assert check.ok
    assert check.user_id == "1"


def test_rejected_after_ttl():
    assert not verify_signature(signed(), SECRET, TTL_MS, current_ms=T + TTL_MS + 1).ok


@pytest.mark.parametrize("field,value", [
    ("uid", "2"),
    ("ts", str(T + 1)),
    ("sig", "00" * 32),
    ("sig", "not-hex"),
    ("sig", "abcd"),
    ("ts", "nan"),
])
def test_tampered_params_rejected(field, value):
    params = signed()
    params[field] = value

    assert not verify_signature(params, SECRET, TTL_MS, current_ms=T).ok


def test_missing_params_or_secret_rejected():
    assert not verify_signature({}, SECRET, TTL_MS, current_ms=T).ok
    assert not verify_signature(signed(), "", TTL_MS, current_ms=T).ok
    assert not verify_signature(signed(), "other", TTL_MS, current_ms=T).ok


def test_build_admin_panel_url_replaces_existing_params():
    url = build_admin_panel_url("https://panel.example.com/adminpanel?lang=ru&uid=9", "1", SECRET, ts_ms=T)

    parts = urlsplit(url)
    query = parse_qs(parts.query)
    assert parts.path == "/adminpanel"
    assert query["lang"] == ["ru"]
    assert query["uid"] == ["1"]
    assert query["ts"] == [str(T)]
    assert verify_signature({k: v[0] for k, v in query.items()}, SECRET, TTL_MS, current_ms=T).ok
