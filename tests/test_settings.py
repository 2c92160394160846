import pytest

from summarizer_auth.core.settings import load_settings_from_env

ENV_VARS = (
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "SITE_URL",
    "EMAIL_COOLDOWN_SECONDS",
    "CORS_ALLOW_ORIGINS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_missing_identity_url_raises(monkeypatch):
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")

    with pytest.raises(RuntimeError, match="SUPABASE_URL"):
        load_settings_from_env()


def test_missing_anon_key_raises(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://identity.test")

    with pytest.raises(RuntimeError, match="SUPABASE_ANON_KEY"):
        load_settings_from_env()


def test_optional_values_override_defaults(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://identity.test/")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")
    monkeypatch.setenv("SITE_URL", "https://app.test/")
    monkeypatch.setenv("EMAIL_COOLDOWN_SECONDS", "30")
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://a.test, https://b.test")

    settings = load_settings_from_env()

    assert settings.email_cooldown_seconds == 30
    assert settings.cors_allow_origins == ["https://a.test", "https://b.test"]
    assert settings.auth_base_url == "https://identity.test/auth/v1"
    assert settings.verification_redirect_url == "https://app.test/email-verification"
    assert settings.password_reset_redirect_url == "https://app.test/reset-password"
    assert settings.landing_url == "https://app.test/"


def test_defaults(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://identity.test")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")

    settings = load_settings_from_env()

    assert settings.email_cooldown_seconds == 60
    assert settings.verified_redirect_delay_seconds == 2.0
    assert settings.site_url == "http://localhost:8080"
