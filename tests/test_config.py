from pathlib import Path

import pytest

from tgcore import config as config_module
from tgcore.config import (
    DEFAULT_API_URL,
    ENV_API_URL,
    ENV_BOT_TOKEN,
    ENV_PROXY,
    ConfigError,
    load_config,
    load_config_file,
)


@pytest.fixture(autouse=True)
def isolated(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    for name in (ENV_BOT_TOKEN, ENV_PROXY, ENV_API_URL):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(
        config_module, "HOME_CONFIG_PATH", tmp_path / "home" / "tgcore.toml"
    )
    return tmp_path


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfigFile:
    def test_load_from_explicit_path(self, tmp_path: Path) -> None:
        config_file = _write(tmp_path / "bot.toml", '[bot]\ntoken = "123:abc"\n')

        table, path = load_config_file(config_file)

        assert table == {"token": "123:abc"}
        assert path == config_file

    def test_missing_explicit_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Missing config file"):
            load_config_file(tmp_path / "nonexistent.toml")

    def test_malformed_toml_raises(self, tmp_path: Path) -> None:
        bad_file = _write(tmp_path / "bad.toml", "invalid = [unclosed")

        with pytest.raises(ConfigError, match="Malformed TOML"):
            load_config_file(bad_file)

    def test_path_is_directory(self, tmp_path: Path) -> None:
        dir_path = tmp_path / "config_dir"
        dir_path.mkdir()

        with pytest.raises(ConfigError, match="Failed to read config file"):
            load_config_file(dir_path)

    def test_bot_must_be_a_table(self, tmp_path: Path) -> None:
        config_file = _write(tmp_path / "bot.toml", 'bot = "nope"\n')

        with pytest.raises(ConfigError, match="expected a table"):
            load_config_file(config_file)

    def test_no_default_file_is_empty(self) -> None:
        assert load_config_file() == ({}, None)

    def test_local_file_wins_over_home(self, tmp_path: Path) -> None:
        _write(tmp_path / "home" / "tgcore.toml", '[bot]\ntoken = "home"\n')
        local = _write(tmp_path / ".tgcore" / "tgcore.toml", '[bot]\ntoken = "local"\n')

        table, path = load_config_file()

        assert table["token"] == "local"
        assert path == tmp_path / ".tgcore" / "tgcore.toml"
        assert local.is_file()

    def test_home_file_is_used_as_fallback(self, tmp_path: Path) -> None:
        home = _write(tmp_path / "home" / "tgcore.toml", '[bot]\ntoken = "home"\n')

        table, path = load_config_file()

        assert table["token"] == "home"
        assert path == home


class TestLoadConfig:
    def test_token_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(ENV_BOT_TOKEN, " 123:env ")

        config = load_config()

        assert config.token == "123:env"
        assert config.api_url == DEFAULT_API_URL
        assert config.proxy is None
        assert config.path is None

    def test_environment_wins_over_file(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        config_file = _write(
            tmp_path / "bot.toml",
            '[bot]\ntoken = "123:file"\napi_url = "http://file.local"\n',
        )
        monkeypatch.setenv(ENV_BOT_TOKEN, "123:env")
        monkeypatch.setenv(ENV_API_URL, "http://localhost:8081/")

        config = load_config(config_file)

        assert config.token == "123:env"
        assert config.api_url == "http://localhost:8081"
        assert config.path == config_file

    def test_values_from_file(self, tmp_path: Path) -> None:
        config_file = _write(
            tmp_path / "bot.toml",
            "[bot]\n"
            'token = "123:file"\n'
            'api_url = "https://api.example.com/"\n'
            'proxy = "http://proxy.local:3128"\n',
        )

        config = load_config(config_file)

        assert config.token == "123:file"
        assert config.api_url == "https://api.example.com"
        assert config.proxy == "http://proxy.local:3128"

    def test_blank_environment_value_is_ignored(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        config_file = _write(tmp_path / "bot.toml", '[bot]\ntoken = "123:file"\n')
        monkeypatch.setenv(ENV_BOT_TOKEN, "   ")

        assert load_config(config_file).token == "123:file"

    def test_missing_token(self) -> None:
        with pytest.raises(ConfigError, match="Missing bot token"):
            load_config()

    def test_missing_token_names_the_file(self, tmp_path: Path) -> None:
        config_file = _write(tmp_path / "bot.toml", "[bot]\n")

        with pytest.raises(ConfigError, match="bot.toml"):
            load_config(config_file)

    @pytest.mark.parametrize("value", ['""', "42", '"  "'])
    def test_invalid_token_value(self, tmp_path: Path, value: str) -> None:
        config_file = _write(tmp_path / "bot.toml", f"[bot]\ntoken = {value}\n")

        with pytest.raises(ConfigError, match="non-empty string"):
            load_config(config_file)

    @pytest.mark.parametrize("url", ["ftp://example.com", "not a url", "http://"])
    def test_invalid_urls(self, monkeypatch: pytest.MonkeyPatch, url: str) -> None:
        monkeypatch.setenv(ENV_BOT_TOKEN, "123:env")
        monkeypatch.setenv(ENV_PROXY, url)

        with pytest.raises(ConfigError, match="Invalid URL"):
            load_config()
