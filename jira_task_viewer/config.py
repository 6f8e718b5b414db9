from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence

import yaml

from .errors import ConfigError

ENV_KEYS = {
    "base_url": "JIRA_BASE_URL",
    "email": "JIRA_EMAIL",
    "api_token": "JIRA_API_TOKEN",
}


@dataclass
class Config:
    base_url: str = ""
    email: str = ""
    api_token: str = ""
    page_size: int = 20
    worklog_page_size: int = 50
    notification_ttl: float = 5.0
    request_timeout: float = 30
    mock: bool = False

    def missing(self) -> Sequence[str]:
        return [ENV_KEYS[name] for name in ("base_url", "email", "api_token") if not getattr(self, name)]


def read_dotenv(dirs: Optional[Sequence[str]] = None) -> Dict[str, str]:
    """Parse KEY=VALUE lines from a .env file (current dir or package dir), first file wins."""
    candidates = dirs if dirs is not None else [os.getcwd(), os.path.dirname(os.path.abspath(__file__))]
    for base in candidates:
        path = os.path.join(base, ".env")
        if not os.path.isfile(path):
            continue
        values: Dict[str, str] = {}
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith('#') or '=' not in line:
                    continue
                k, v = line.split('=', 1)
                k = k.strip()
                if k.startswith("export "):
                    k = k[len("export "):].strip()
                v = v.strip().strip('"').strip("'")
                if v:
                    values[k] = v
        return values
    return {}


def _positive(raw: dict, key: str, default, cast):
    value = raw.get(key, default)
    try:
        value = cast(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Config: '{key}' must be a number, got {value!r}")
    if value <= 0:
        raise ConfigError(f"Config: '{key}' must be positive.")
    return value


def load_config(
    path: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    dotenv_dirs: Optional[Sequence[str]] = None,
    mock: bool = False,
) -> Config:
    """Merge the YAML file, the environment and .env (in that order of precedence: env > file > .env)."""
    raw: dict = {}
    if path:
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except OSError as exc:
            raise ConfigError(f"Cannot read config {path}: {exc}")
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}")
        if not isinstance(raw, dict):
            raise ConfigError(f"Config {path}: expected a mapping at top level.")
    env = os.environ if env is None else env
    mock = mock or env.get("MOCK_FETCH") == "1"

    cfg = Config(
        base_url=str(raw.get("base_url") or ""),
        email=str(raw.get("email") or ""),
        page_size=_positive(raw, "page_size", 20, int),
        worklog_page_size=_positive(raw, "worklog_page_size", 50, int),
        notification_ttl=_positive(raw, "notification_ttl", 5.0, float),
        request_timeout=_positive(raw, "request_timeout", 30, float),
        mock=mock,
    )
    for attr, var in ENV_KEYS.items():
        if env.get(var):
            setattr(cfg, attr, env[var])
    if cfg.missing():
        dotenv = read_dotenv(dotenv_dirs)
        for attr, var in ENV_KEYS.items():
            if not getattr(cfg, attr) and dotenv.get(var):
                setattr(cfg, attr, dotenv[var])
    cfg.base_url = cfg.base_url.rstrip("/")
    if not cfg.mock and cfg.missing():
        raise ConfigError(f"Missing Jira settings: {', '.join(cfg.missing())} (set them in the environment or .env)")
    return cfg
