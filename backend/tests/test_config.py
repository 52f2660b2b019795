from datetime import timedelta

import pytest
from pydantic import ValidationError

from authgate.config import parse_duration
from authgate.core.exceptions import ConfigurationError


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("30s", timedelta(seconds=30)),
        ("5m", timedelta(minutes=5)),
        ("12h", timedelta(hours=12)),
        ("7d", timedelta(days=7)),
        ("90", timedelta(seconds=90)),
        (45, timedelta(seconds=45)),
        (timedelta(minutes=2), timedelta(minutes=2)),
    ],
)
def test_parse_duration(raw, expected):
    assert parse_duration(raw) == expected


@pytest.mark.parametrize("raw", ["", "5x", "-5m", "0", "m5", "1.5h", None, True])
def test_parse_duration_rejects_malformed(raw):
    with pytest.raises(ValueError):
        parse_duration(raw)


def test_lifetimes_are_parsed_once_into_timedeltas(settings_factory):
    settings = settings_factory(ACCESS_TOKEN_LIFETIME="15m", REFRESH_TOKEN_LIFETIME="7d")
    assert settings.ACCESS_TOKEN_LIFETIME == timedelta(minutes=15)
    assert settings.REFRESH_TOKEN_LIFETIME == timedelta(days=7)


def test_malformed_lifetime_is_a_configuration_error(settings_factory):
    with pytest.raises(ConfigurationError):
        settings_factory(REFRESH_TOKEN_LIFETIME="seven days")


def test_settings_are_immutable(settings_factory):
    settings = settings_factory()
    with pytest.raises(ValidationError):
        settings.PORT = 9999


def test_missing_secret_is_rejected(settings_factory):
    with pytest.raises(ConfigurationError):
        settings_factory(ACCESS_TOKEN_SECRET="").validate_security_settings()
    with pytest.raises(ConfigurationError):
        settings_factory(REFRESH_TOKEN_SECRET="").validate_security_settings()


def test_secrets_must_differ(settings_factory):
    settings = settings_factory(ACCESS_TOKEN_SECRET="same", REFRESH_TOKEN_SECRET="same")
    with pytest.raises(ConfigurationError):
        settings.validate_security_settings()


def test_production_requires_long_secrets(settings_factory):
    weak = settings_factory(ENVIRONMENT="production")
    with pytest.raises(ConfigurationError):
        weak.validate_security_settings()

    strong = settings_factory(
        ENVIRONMENT="production",
        ACCESS_TOKEN_SECRET="a" * 32,
        REFRESH_TOKEN_SECRET="r" * 32,
    )
    strong.validate_security_settings()
    assert strong.refresh_cookie_secure is True


def test_cookie_defaults(settings_factory):
    settings = settings_factory()
    assert settings.refresh_cookie_path == "/api/auth"
    assert settings.refresh_cookie_secure is False
    assert settings_factory(COOKIE_SECURE=True).refresh_cookie_secure is True


def test_cors_origins_accept_comma_separated(settings_factory):
    settings = settings_factory(CORS_ORIGINS="http://a.test, http://b.test")
    assert settings.CORS_ORIGINS == ["http://a.test", "http://b.test"]


def test_unknown_store_backend_is_rejected(settings_factory):
    with pytest.raises(ConfigurationError):
        settings_factory(STORE_BACKEND="redis")


def test_memory_store_requires_single_worker(settings_factory):
    with pytest.raises(ConfigurationError):
        settings_factory(STORE_BACKEND="memory", WORKERS=4)
    assert settings_factory(STORE_BACKEND="memory", WORKERS=1).STORE_BACKEND == "memory"
    assert settings_factory(STORE_BACKEND="sql", WORKERS=4).WORKERS == 4
