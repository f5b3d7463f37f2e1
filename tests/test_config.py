"""Tests for environment configuration."""

from donasiku_payments.config import AppConfig, SmtpConfig, get_env


class TestGetEnv:
    def test_plain_variable(self, monkeypatch):
        monkeypatch.setenv("APP_URL", "https://a.example")
        assert get_env("APP_URL") == "https://a.example"

    def test_vite_fallback(self, monkeypatch):
        monkeypatch.delenv("FONNTE_TOKEN", raising=False)
        monkeypatch.setenv("VITE_FONNTE_TOKEN", "vite-token")
        assert get_env("FONNTE_TOKEN") == "vite-token"

    def test_default(self, monkeypatch):
        monkeypatch.delenv("NOPE", raising=False)
        monkeypatch.delenv("VITE_NOPE", raising=False)
        assert get_env("NOPE", "x") == "x"


class TestAppConfig:
    """Tests for AppConfig.from_env."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DUITKU_MERCHANT_CODE", "D9")
        monkeypatch.setenv("DUITKU_API_KEY", "k")
        monkeypatch.setenv("DUITKU_SANDBOX", "true")
        monkeypatch.setenv("APP_URL", "https://donasi.example/")
        monkeypatch.setenv("SWEEP_BATCH_SIZE", "20")
        monkeypatch.setenv("SMTP_PORT", "not-a-number")

        config = AppConfig.from_env()

        assert config.duitku.is_configured
        assert config.duitku.sandbox is True
        assert config.app_url == "https://donasi.example"
        assert config.sweep_batch_size == 20
        assert config.smtp.port == 587

    def test_smtp_sender_fallbacks(self, monkeypatch):
        for name in ("SMTP_FROM", "VITE_SMTP_FROM", "SENDER_EMAIL", "VITE_SENDER_EMAIL"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("SMTP_USER", "mailer@example.com")
        assert SmtpConfig.from_env().sender == "mailer@example.com"

        monkeypatch.setenv("SENDER_EMAIL", "halo@example.com")
        assert SmtpConfig.from_env().sender == "halo@example.com"

    def test_smtp_ssl_port(self):
        assert SmtpConfig(port=465).use_ssl is True
        assert SmtpConfig(port=587).use_ssl is False
