import logging

from jira_task_viewer import cli


def test_no_ui_summary_with_mock_data(tmp_path, capsys, monkeypatch):
    monkeypatch.chdir(tmp_path)
    code = cli.main(["--mock", "--no-ui", "--log-file", str(tmp_path / "viewer.log")])
    out = capsys.readouterr().out
    assert code == 0
    assert "Boards: 2" in out
    assert "[ALPHA]" in out and "[BETA]" in out


def test_missing_credentials_exit_with_config_code(tmp_path, capsys, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for var in ("JIRA_BASE_URL", "JIRA_EMAIL", "JIRA_API_TOKEN", "MOCK_FETCH"):
        monkeypatch.delenv(var, raising=False)
    original = cli.load_config
    monkeypatch.setattr(cli, "load_config", lambda path, mock=False: original(path, mock=mock, dotenv_dirs=[]))
    code = cli.main(["--no-ui", "--log-file", str(tmp_path / "viewer.log")])
    assert code == 2
    assert "Missing Jira settings" in capsys.readouterr().err


def test_setup_logging_resets_handlers(tmp_path):
    log_path = tmp_path / "viewer.log"
    cli.setup_logging("INFO", str(log_path))
    logger = cli.setup_logging("bogus", str(log_path))
    assert len(logger.handlers) == 1
    assert logger.handlers[0].level == logging.ERROR
    logger.error("written")
    logger.handlers[0].flush()
    assert "ERROR written" in log_path.read_text(encoding="utf-8")
