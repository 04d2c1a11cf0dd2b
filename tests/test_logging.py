"""Tests for logging configuration, credential redaction and settings loading."""

from decimal import Decimal

from exoquote.config import Settings
from exoquote.logging import REDACTED, _TeeWriter, redact_sensitive


class TestRedaction:
    def test_sensitive_values_are_replaced(self):
        event = redact_sensitive(
            None,
            "info",
            {"event": "login", "exo_password": "hunter2", "token": "abc", "user": "svc"},
        )
        assert event["exo_password"] == REDACTED
        assert event["token"] == REDACTED
        assert event["user"] == "svc"
        assert event["event"] == "login"

    def test_empty_values_are_left_alone(self):
        event = redact_sensitive(None, "info", {"event": "x", "smtp_password": ""})
        assert event["smtp_password"] == ""


class TestTeeWriter:
    def test_writes_to_stdout_and_file(self, tmp_path, capsys):
        log_file = tmp_path / "app.log"
        writer = _TeeWriter(str(log_file))
        writer.write("hello\n")
        writer.flush()
        assert capsys.readouterr().out == "hello\n"
        assert log_file.read_text() == "hello\n"

    def test_unopenable_file_falls_back_to_stdout(self, tmp_path, capsys):
        writer = _TeeWriter(str(tmp_path / "missing" / "app.log"))
        writer.write("still here\n")
        captured = capsys.readouterr()
        assert captured.out == "still here\n"
        assert "Could not open log file" in captured.err


class TestSettings:
    def test_defaults(self):
        config = Settings(_env_file=None)
        assert config.use_database is False
        assert config.fetch_retries == 5
        assert config.fetch_backoff_seconds == 2.0
        assert config.page_sizes == [50, 25, 10, 5]
        assert config.step_down_pause_seconds == 3.0
        assert config.quote_tax_rate == Decimal("0")
        assert config.default_currency == "AUD"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("PAGE_SIZES", "[20, 10]")
        monkeypatch.setenv("QUOTE_TAX_RATE", "0.1")
        monkeypatch.setenv("USE_DATABASE", "true")
        config = Settings(_env_file=None)
        assert config.page_sizes == [20, 10]
        assert config.quote_tax_rate == Decimal("0.1")
        assert config.use_database is True
