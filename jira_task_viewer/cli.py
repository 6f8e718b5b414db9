from __future__ import annotations

import argparse
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import List, Optional

from .config import Config, load_config
from .errors import ConfigError, TrackerError, user_message
from .filters import FilterState
from .jira_client import JiraClient
from .mock_tracker import MockTracker
from .models import TrackerPort
from .ui import run_ui

DEFAULT_LOG_PATH = os.path.expanduser("~/.jira_task_viewer.log")


def setup_logging(log_level: str = "ERROR", log_path: str = DEFAULT_LOG_PATH) -> logging.Logger:
    """File logger for diagnostics; the terminal belongs to the UI."""
    logger = logging.getLogger('jira_task_viewer')
    # Always reset handlers so --log-level reliably controls file output.
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    # keep DEBUG on the logger; the handler filters by level
    logger.setLevel(logging.DEBUG)
    fh = RotatingFileHandler(log_path, maxBytes=2000000, backupCount=2, encoding='utf-8')
    lvl = getattr(logging, str(log_level).upper(), None)
    fh.setLevel(lvl if isinstance(lvl, int) else logging.ERROR)
    fh.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(message)s'))
    logger.addHandler(fh)
    return logger


def build_port(cfg: Config) -> TrackerPort:
    if cfg.mock:
        return MockTracker()
    return JiraClient(cfg.base_url, cfg.email, cfg.api_token, timeout=cfg.request_timeout)


def print_summary(port: TrackerPort, page_size: int) -> None:
    boards = port.list_boards()
    print(f"Boards: {len(boards)}")
    for board in boards:
        page = port.list_issues(board.id, FilterState(), None, page_size)
        total = page.total if page.total is not None else len(page.issues)
        print(f"  {board.id}: {board.name} [{board.project_key}] - {total} issues assigned to you")


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Jira boards, issues and worklogs in the terminal")
    ap.add_argument("--config", help="Path to YAML config")
    ap.add_argument("--log-level", default="ERROR", help="File log level (DEBUG, INFO, WARNING, ERROR)")
    ap.add_argument("--log-file", default=DEFAULT_LOG_PATH, help="Log file path")
    ap.add_argument("--mock", action="store_true", help="Use built-in demo data instead of Jira")
    ap.add_argument("--no-ui", action="store_true", help="Print a non-interactive summary and exit")
    args = ap.parse_args(argv)

    logger = setup_logging(args.log_level, args.log_file)
    try:
        cfg = load_config(args.config, mock=args.mock)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return exc.exit_code
    port = build_port(cfg)
    logger.info("starting (mock=%s, base_url=%s)", cfg.mock, cfg.base_url or "-")

    if args.no_ui:
        try:
            print_summary(port, cfg.page_size)
        except TrackerError as exc:
            print(user_message(exc), file=sys.stderr)
            return 1
        return 0

    run_ui(port, page_size=cfg.page_size, worklog_page_size=cfg.worklog_page_size,
           notification_ttl=cfg.notification_ttl)
    return 0


if __name__ == "__main__":
    sys.exit(main())
