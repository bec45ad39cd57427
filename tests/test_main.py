"""Tests for the command-line entry point."""

import pytest

import main


@pytest.fixture(autouse=True)
def no_dotenv(monkeypatch):
    monkeypatch.setattr(main, "load_env", lambda: None)
    monkeypatch.delenv("SPREADSHEET_ID", raising=False)
    monkeypatch.delenv("SLIDE_STARTER_CONFIG_RANGE", raising=False)


def test_psi_co2_flags():
    assert main.parse_args(["psi"]).co2 is None
    assert main.parse_args(["psi", "--co2"]).co2 is True
    assert main.parse_args(["psi", "--no-co2"]).co2 is False


def test_co2_flags_are_exclusive():
    with pytest.raises(SystemExit):
        main.parse_args(["psi", "--co2", "--no-co2"])


def test_missing_spreadsheet_id(capsys):
    assert main.main(["deck"]) == 1
    assert "SPREADSHEET_ID" in capsys.readouterr().out


def test_deck_command(monkeypatch, capsys):
    seen = {}

    def run(spreadsheet_id, config_range, server_mode=False, share=False):
        seen.update(spreadsheet_id=spreadsheet_id, config_range=config_range, share=share)
        yield {"type": "progress", "message": "Copying template deck..."}
        yield {"type": "result", "report_url": "https://deck",
               "summary": {"slides_created": 4, "sections": {"Web": 4}, "report_url": "https://deck"}}

    monkeypatch.setattr(main, "run_deck_pipeline", run)
    monkeypatch.setenv("SLIDE_STARTER_CONFIG_RANGE", "Settings!A2:B")

    assert main.main(["--spreadsheet-id", "abc", "deck", "--share"]) == 0
    assert seen == {"spreadsheet_id": "abc", "config_range": "Settings!A2:B", "share": True}
    out = capsys.readouterr().out
    assert "Copying template deck..." in out
    assert "Slides created:   4" in out


def test_error_event_exits_non_zero(monkeypatch, capsys):
    def run(spreadsheet_id, config_range, server_mode=False, include_co2=None):
        yield {"type": "error", "message": "The PSI API key must be set to use this tool."}

    monkeypatch.setattr(main, "run_psi_pipeline", run)
    monkeypatch.setenv("SPREADSHEET_ID", "abc")

    assert main.main(["psi"]) == 1
    assert "Error: The PSI API key must be set" in capsys.readouterr().out
