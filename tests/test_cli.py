"""CLI tests with Typer's CliRunner; no browser or model is started."""

import pytest
from typer.testing import CliRunner

from appcollector import main
from appcollector.config import Config
from appcollector.services.collection_service import CollectionSummary

runner = CliRunner()


def _flat(output: str) -> str:
    """Undo Rich line wrapping for path assertions."""
    return "".join(output.split())


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(main, "_config", Config(database_url=f"sqlite:///{tmp_path / 'collector.db'}"))
    monkeypatch.setattr(main, "_config_error", None)
    return tmp_path


def test_config_path(workdir):
    result = runner.invoke(main.app, ["config", "path"])

    assert result.exit_code == 0
    assert str(workdir / "config.yaml") in _flat(result.output)


def test_config_init_refuses_to_overwrite(workdir):
    first = runner.invoke(main.app, ["config", "init"])
    second = runner.invoke(main.app, ["config", "init"])
    forced = runner.invoke(main.app, ["config", "init", "--force"])

    assert first.exit_code == 0
    assert (workdir / "config.yaml").exists()
    assert second.exit_code == 1
    assert "already exists" in second.output
    assert forced.exit_code == 0


def test_config_show_masks_key(workdir):
    main._config.llm.api_key = "sk-secret"

    result = runner.invoke(main.app, ["config", "show"])

    assert result.exit_code == 0
    assert "sk-secret" not in result.output
    assert "backfill_policy: combined" in result.output


def test_stats_without_batches(workdir):
    result = runner.invoke(main.app, ["stats"])

    assert result.exit_code == 0
    assert "No collection batches found" in result.output


def test_invalid_policy_is_rejected(workdir):
    result = runner.invoke(main.app, ["batch-apps", "--policy", "everything"])

    assert result.exit_code == 1
    assert "Invalid policy" in result.output


def test_apps_rejects_invalid_url(workdir):
    result = runner.invoke(main.app, ["apps", "--url", "not a url"])

    assert result.exit_code == 1
    assert "Invalid URL" in result.output


@pytest.fixture
def broken_config(workdir, monkeypatch):
    (workdir / "config.yaml").write_text("collect:\n  scheduler_mode: greedy\n", encoding="utf-8")
    monkeypatch.setattr(main, "_config_error", "Invalid scheduler_mode 'greedy'")
    return workdir


def test_invalid_config_blocks_collection_commands(broken_config):
    result = runner.invoke(main.app, ["stats"])

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_invalid_config_can_be_shown_and_replaced(broken_config):
    shown = runner.invoke(main.app, ["config", "show"])
    replaced = runner.invoke(main.app, ["config", "init", "--force"])

    assert shown.exit_code == 0
    assert "showing defaults" in shown.output
    assert replaced.exit_code == 0
    assert "greedy" not in (broken_config / "config.yaml").read_text(encoding="utf-8")


def test_collection_summary_shows_backfill_crash(capsys):
    summary = CollectionSummary(batch_id=3, sources_processed=2, backfill_error="database is locked")

    main._print_collection_summary(summary)

    output = capsys.readouterr().out
    assert "Batch ID: 3" in output
    assert "Backfill failed: database is locked" in output
