import pytest

from calendar_bot.config import settings
from calendar_bot.errors import ConfigError


@pytest.fixture
def complete_settings(monkeypatch):
    monkeypatch.setattr(settings, "CHANNEL_SECRET", "secret")
    monkeypatch.setattr(settings, "CHANNEL_TOKEN", "token")
    monkeypatch.setattr(settings, "LLM_PROVIDER", "openai")
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(settings, "SCHEDULER_BACKEND", "local")
    return monkeypatch


def test_complete_settings_pass(complete_settings):
    settings.check_settings()


def test_all_problems_are_reported(complete_settings):
    complete_settings.setattr(settings, "CHANNEL_SECRET", "")
    complete_settings.setattr(settings, "CHANNEL_TOKEN", "")
    complete_settings.setattr(settings, "OPENAI_API_KEY", None)

    with pytest.raises(ConfigError) as exc_info:
        settings.check_settings()

    assert len(exc_info.value.problems) == 3


def test_eventbridge_needs_arns(complete_settings):
    complete_settings.setattr(settings, "SCHEDULER_BACKEND", "eventbridge")
    complete_settings.setattr(settings, "REMINDER_FUNCTION_ARN", "")
    complete_settings.setattr(settings, "SCHEDULER_ROLE_ARN", "")

    with pytest.raises(ConfigError) as exc_info:
        settings.check_settings()

    assert any("REMINDER_FUNCTION_ARN" in p for p in exc_info.value.problems)
    assert any("SCHEDULER_ROLE_ARN" in p for p in exc_info.value.problems)


def test_dispatch_only_process_needs_token_only(complete_settings):
    complete_settings.setattr(settings, "CHANNEL_SECRET", "")
    complete_settings.setattr(settings, "LLM_PROVIDER", "unknown")

    settings.check_settings(need_intake=False)


def test_unknown_provider(complete_settings):
    complete_settings.setattr(settings, "LLM_PROVIDER", "claude")

    with pytest.raises(ConfigError):
        settings.check_settings()


def test_parse_helpers(monkeypatch):
    monkeypatch.setenv("CALENDAR_BOT_TEST_FLAG", "Yes")
    monkeypatch.setenv("CALENDAR_BOT_TEST_FLOAT", "oops")
    assert settings._parse_bool("CALENDAR_BOT_TEST_FLAG") is True
    assert settings._parse_bool("CALENDAR_BOT_TEST_MISSING", default=True) is True
    assert settings._parse_float("CALENDAR_BOT_TEST_FLOAT", 2.5) == 2.5
