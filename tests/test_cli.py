"""Tests for the command-line entry point."""

from o2cproxy import cli


def test_main_builds_app_and_serves(monkeypatch):
    calls = {}

    def fake_run(app, host, port, log_level):
        calls.update(app=app, host=host, port=port)

    monkeypatch.setattr(cli.uvicorn, "run", fake_run)
    monkeypatch.setenv("PORT", "3999")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("O2C_ENV_FILE", "")
    monkeypatch.delenv("O2C_CONFIG", raising=False)

    exit_code = cli.main(["-m=gpt-5-mini:fast", "--skip-startup-checks"])

    assert exit_code == 0
    assert calls["port"] == 3999
    assert calls["host"] == "127.0.0.1"


def test_main_reports_configuration_errors(monkeypatch, capsys):
    monkeypatch.setattr(cli.uvicorn, "run", lambda *args, **kwargs: None)
    monkeypatch.setenv("O2C_ENV_FILE", "")
    monkeypatch.setenv("PORT", "not-a-number")

    exit_code = cli.main([])

    assert exit_code == 2
    assert "PORT must be an integer" in capsys.readouterr().err
