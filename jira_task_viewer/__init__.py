"""Terminal viewer for Jira boards, issues and worklogs."""

__version__ = "0.1.0"
