"""Tests for chat command parsing and formatting."""

import pytest

from bot.commands import (
    BOT_COMMANDS,
    build_help_message,
    build_start_payload,
    can_use_link_button,
    format_contest_line,
    parse_edit_contest_args,
    parse_join_args,
    parse_new_contest_args,
    parse_publish_args,
    parse_set_required_args,
    parse_start_payload,
    truncate_message,
)
from bot.middleware.cooldown import command_name
from conftest import make_contest, make_participant


@pytest.mark.parametrize("raw,expected", [
    ("join_abc123", ("abc123", None)),
    ("join_abc123_42", ("abc123", "42")),
    ("join:abc:42", ("abc", "42")),
    ("abc 42", ("abc", "42")),
    ("abc", ("abc", None)),
])
def test_parse_start_payload(raw, expected):
    args = parse_start_payload(raw)

    assert (args.contest_id, args.referrer_id) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "join:"])
def test_parse_start_payload_empty(raw):
    assert parse_start_payload(raw) is None


def test_start_payload_round_trip_and_limit():
    assert parse_start_payload(build_start_payload("c-1", "77")).referrer_id == "77"
    assert len(build_start_payload("x" * 80, "1")) == 64


def test_parse_join_args():
    assert parse_join_args("c1 5").referrer_id == "5"
    assert parse_join_args("").contest_id == ""


def test_parse_new_contest_args():
    args = parse_new_contest_args("iPhone giveaway | 2026-12-31T20:00:00Z | 3")

    assert args.title == "iPhone giveaway"
    assert args.ends_at == "2026-12-31T20:00:00Z"
    assert args.max_winners == "3"
    assert parse_new_contest_args("Title | 2026-12-31T20:00:00Z").max_winners == "1"
    assert parse_new_contest_args("Title") is None
    assert parse_new_contest_args("Title | 2026-12-31 | zero") is None


def test_parse_edit_contest_args():
    args = parse_edit_contest_args("c1 | - | 2027-01-01T00:00:00Z | 2")

    assert args.contest_id == "c1"
    assert args.title is None
    assert args.ends_at == "2027-01-01T00:00:00Z"
    assert args.max_winners == 2
    assert parse_edit_contest_args("c1 | New").title == "New"
    assert parse_edit_contest_args("c1 | - | - | 0") is None
    assert parse_edit_contest_args("") is None


def test_parse_publish_args():
    args = parse_publish_args("c1 -100123 Join now!")

    assert args.chat_id == -100123
    assert args.text == "Join now!"
    assert parse_publish_args("c1") is None
    assert parse_publish_args("c1 channel") is None


def test_parse_set_required_args():
    assert parse_set_required_args("c1 -1,-2 -2") == ("c1", [-1, -2])
    assert parse_set_required_args("c1") is None


def test_format_contest_line():
    contest = make_contest(participants=[make_participant("u1")], required_chats=(-1, -2))

    assert format_contest_line(contest) == (
        "#c1 | Contest c1 | status=active | participants=1 | winners=1 | requiredChats=2"
    )


def test_truncate_message():
    assert truncate_message("short") == "short"
    long = truncate_message("x" * 5000)
    assert len(long) == 4096
    assert long.endswith("…")


@pytest.mark.parametrize("url,allowed", [
    ("https://panel.example.com/adminpanel", True),
    ("http://93.184.216.34:8787/adminpanel", True),
    ("http://localhost:8787/adminpanel", False),
    ("http://127.0.0.1/adminpanel", False),
    ("http://192.168.1.10/adminpanel", False),
    ("http://box.local/adminpanel", False),
    ("ftp://panel.example.com", False),
    (None, False),
])
def test_can_use_link_button(url, allowed):
    assert can_use_link_button(url) is allowed


def test_command_name():
    assert command_name("/Draw@contest_bot c1") == "draw"
    assert command_name("hello") is None
    assert command_name(None) is None


def test_help_lists_every_menu_command():
    help_text = build_help_message()

    for name, _ in BOT_COMMANDS:
        assert f"/{name}" in help_text
