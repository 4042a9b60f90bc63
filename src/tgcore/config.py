from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

import httpx

# Environment variable names
ENV_BOT_TOKEN = "TGCORE_TOKEN"
ENV_PROXY = "TGCORE_PROXY"
ENV_API_URL = "TELEGRAM_API_URL"

DEFAULT_API_URL = "https://api.telegram.org"
LOCAL_CONFIG_NAME = Path(".tgcore") / "tgcore.toml"
HOME_CONFIG_PATH = Path.home() / ".tgcore" / "tgcore.toml"


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class BotConfig:
    token: str
    api_url: str = DEFAULT_API_URL
    proxy: str | None = None
    path: Path | None = None


def _config_candidates() -> list[Path]:
    candidates = [Path.cwd() / LOCAL_CONFIG_NAME, HOME_CONFIG_PATH]
    if candidates[0] == candidates[1]:
        return [candidates[0]]
    return candidates


def _read_config(cfg_path: Path) -> dict:
    try:
        raw = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Missing config file {cfg_path}.") from None
    except OSError as e:
        raise ConfigError(f"Failed to read config file {cfg_path}: {e}") from e
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Malformed TOML in {cfg_path}: {e}") from None


def load_config_file(path: str | Path | None = None) -> tuple[dict, Path | None]:
    """Read the ``[bot]`` table from an explicit path or the default locations.

    A missing default file is not an error: everything can come from the
    environment.
    """
    if path:
        cfg_path = Path(path).expanduser()
        return _bot_table(_read_config(cfg_path), cfg_path), cfg_path
    for candidate in _config_candidates():
        if candidate.is_file():
            return _bot_table(_read_config(candidate), candidate), candidate
    return {}, None


def _bot_table(config: dict, cfg_path: Path) -> dict:
    table = config.get("bot", {})
    if not isinstance(table, dict):
        raise ConfigError(f"Invalid `bot` in {cfg_path}; expected a table.")
    return table


def _string_setting(
    table: dict, key: str, env_name: str, cfg_path: Path | None
) -> str | None:
    env_value = os.environ.get(env_name)
    if env_value and env_value.strip():
        return env_value.strip()
    value = table.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            f"Invalid `{key}` in {cfg_path}; expected a non-empty string."
        )
    return value.strip()


def _validate_url(url: str, source: str) -> str:
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        raise ConfigError(f"Invalid URL in {source}: {url!r}.") from None
    if parsed.scheme not in {"http", "https"} or not parsed.host:
        raise ConfigError(f"Invalid URL in {source}: {url!r}.")
    return url.rstrip("/")


def load_config(path: str | Path | None = None) -> BotConfig:
    """Resolve the bot configuration; environment variables take precedence."""
    table, cfg_path = load_config_file(path)
    token = _string_setting(table, "token", ENV_BOT_TOKEN, cfg_path)
    if token is None:
        where = f"add `token` to the [bot] table of {cfg_path}" if cfg_path else (
            "create .tgcore/tgcore.toml with a [bot] table"
        )
        raise ConfigError(
            f"Missing bot token. Set {ENV_BOT_TOKEN} environment variable or {where}."
        )
    api_url = _string_setting(table, "api_url", ENV_API_URL, cfg_path)
    proxy = _string_setting(table, "proxy", ENV_PROXY, cfg_path)
    return BotConfig(
        token=token,
        api_url=(
            _validate_url(api_url, "api_url") if api_url else DEFAULT_API_URL
        ),
        proxy=_validate_url(proxy, "proxy") if proxy else None,
        path=cfg_path,
    )
