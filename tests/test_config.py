"""Tests for environment configuration."""

import pytest

from config import load_config
from core.exceptions import ConfigurationError


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "BOT_TOKEN", "ENABLE_BOT", "OWNER_USER_ID", "ADMIN_USER_IDS", "MODERATOR_USER_IDS",
        "STORAGE_PATH", "ADMIN_PANEL_URL", "ADMIN_PANEL_SECRET", "ADMIN_PANEL_PORT",
        "ADMIN_PANEL_IP_ALLOWLIST", "REFERRAL_BONUS_TICKETS",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    config = load_config()

    assert config.enable_bot is True
    assert config.storage_path == "data/contests.db"
    assert config.admin_panel_port == 8787
    assert config.admin_panel_base_path == "/adminpanel"
    assert config.admin_user_ids == frozenset()


def test_env_overrides(clean_env):
    clean_env.setenv("BOT_TOKEN", "123456:ABCDEF")
    clean_env.setenv("ADMIN_USER_IDS", "10, 11,,")
    clean_env.setenv("ADMIN_PANEL_URL", "https://x.example/panel/")
    clean_env.setenv("ADMIN_PANEL_PORT", "not-a-number")
    clean_env.setenv("ADMIN_PANEL_IP_ALLOWLIST", "1.2.3.4")

    config = load_config()

    assert config.admin_user_ids == frozenset({"10", "11"})
    assert config.admin_panel_base_path == "/panel"
    assert config.admin_panel_port == 8787
    assert config.signing_secret == "123456:ABCDEF"
    assert config.admin_panel_ip_allowlist == frozenset({"1.2.3.4"})


def test_validate_requires_token_when_bot_enabled(clean_env):
    clean_env.setenv("ENABLE_BOT", "true")

    with pytest.raises(ConfigurationError):
        load_config().validate()


def test_validate_rejects_negative_bonus(config_factory):
    with pytest.raises(ConfigurationError):
        config_factory(referral_bonus_tickets=-1).validate()


def test_admin_only_mode_needs_no_token(config_factory):
    config_factory(bot_token="", enable_bot=False, admin_panel_url=None).validate()
