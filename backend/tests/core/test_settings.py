import logging
from datetime import time

import pytest

from uni_health.core.settings import Settings, parse_working_windows, validate_settings

STRONG_SECRET = "x" * 40


def _settings(**overrides):
    values = dict(
        app_env="development",
        secret_key=STRONG_SECRET,
        admin_email="clinic-admin@example.org",
        admin_password="Sufficiently-Unique-1",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_parse_working_windows_sorts():
    assert parse_working_windows("14:00-17:00, 09:00-12:00") == [
        (time(9, 0), time(12, 0)),
        (time(14, 0), time(17, 0)),
    ]


@pytest.mark.parametrize("raw", ["", "09:00", "12:00-09:00", "nine-five", " , "])
def test_parse_working_windows_rejects(raw):
    with pytest.raises(ValueError):
        parse_working_windows(raw)


def test_clean_settings_pass_quietly(caplog):
    with caplog.at_level(logging.WARNING, logger="uni_health.config"):
        validate_settings(_settings())
    assert caplog.records == []


def test_weak_values_only_warn_in_development(caplog):
    settings = _settings(secret_key=None, admin_email="admin@example.com")

    with caplog.at_level(logging.WARNING, logger="uni_health.config"):
        validate_settings(settings)

    assert settings.secret_key == "change-me"
    assert "SECRET_KEY" in caplog.text
    assert "ADMIN_EMAIL" in caplog.text


def test_weak_values_fail_in_production():
    with pytest.raises(RuntimeError) as excinfo:
        validate_settings(_settings(app_env="production", secret_key="short"))
    assert "SECRET_KEY" in str(excinfo.value)


def test_debug_refused_in_production():
    with pytest.raises(RuntimeError, match="DEBUG"):
        validate_settings(_settings(app_env="prod", debug=True))


def test_jwt_secret_is_used_when_secret_key_missing():
    settings = _settings(secret_key=None, jwt_secret=STRONG_SECRET)
    validate_settings(settings)
    assert settings.secret_key == STRONG_SECRET


def test_bad_working_windows_warn_even_in_production(caplog):
    with caplog.at_level(logging.WARNING, logger="uni_health.config"):
        validate_settings(_settings(app_env="production", default_working_windows="whenever"))
    assert "DEFAULT_WORKING_WINDOWS" in caplog.text


def test_slot_length_must_divide_an_hour():
    with pytest.raises(RuntimeError, match="SLOT_MINUTES"):
        validate_settings(_settings(slot_minutes=25))


def test_long_admin_password_is_rejected():
    with pytest.raises(RuntimeError, match="72-byte"):
        validate_settings(_settings(admin_password="p" * 80))


def test_empty_ints_fall_back_to_defaults():
    assert _settings(slot_minutes="", attendance_grace_minutes="").attendance_grace_minutes == 15
