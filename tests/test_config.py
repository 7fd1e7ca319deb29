"""Tests for configuration loading."""

import pytest

from tree_cache.config import Config, ConfigManager
from tree_cache.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("W_MAX", raising=False)
    monkeypatch.delenv("HTTP_PORT", raising=False)


class TestConfig:
    """Tests for Config defaults and source resolution."""

    def test_defaults(self):
        config = Config()

        assert config.sources == {}
        assert config.paths.sources_dir == "files"
        assert config.refresh.max_workers == 100
        assert config.refresh.watch is False
        assert config.build.delimiter == ","
        assert config.build.validate_order is True
        assert config.server.port == 8000

    def test_negative_workers_rejected(self):
        with pytest.raises(ValueError):
            Config(refresh={"max_workers": -1})

    def test_multi_character_delimiter_rejected(self):
        with pytest.raises(ValueError):
            Config(build={"delimiter": ";;"})

    def test_relative_sources_resolve_against_base(self, tmp_path):
        config = Config(sources={"tree1": "files/tree1.csv"})
        resolved = config.resolve_sources(str(tmp_path))

        assert resolved == {"tree1": (tmp_path / "files" / "tree1.csv").resolve()}

    def test_user_paths_expanded(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TREE_DATA", str(tmp_path))
        config = Config(sources={"t": "$TREE_DATA/t.csv"})

        assert config.sources["t"] == f"{tmp_path}/t.csv"

    def test_default_sources_dir_is_files(self, tmp_path):
        files = tmp_path / "files"
        files.mkdir()
        for name in ("tree1", "tree2", "tree3"):
            (files / f"{name}.csv").write_text("id,name,parent\n")

        resolved = Config().resolve_sources(str(tmp_path))

        assert sorted(resolved) == ["tree1", "tree2", "tree3"]
        assert resolved["tree2"] == (files / "tree2.csv").resolve()

    def test_missing_default_sources_dir(self, tmp_path):
        assert Config().resolve_sources(str(tmp_path)) == {}

    def test_sources_dir_registers_file_stems(self, tmp_path, make_source):
        make_source("tree1", [])
        make_source("tree2", [])
        (tmp_path / "notes.txt").write_text("ignored")

        config = Config(
            paths={"sources_dir": str(tmp_path)},
            sources={"tree2": "elsewhere.csv"},
        )
        resolved = config.resolve_sources(str(tmp_path))

        assert sorted(resolved) == ["tree1", "tree2"]
        assert resolved["tree1"] == (tmp_path / "tree1.csv").resolve()
        assert resolved["tree2"] == (tmp_path / "elsewhere.csv").resolve()


class TestConfigManager:
    """Tests for ConfigManager."""

    def test_missing_file_gives_defaults(self, tmp_path):
        manager = ConfigManager(str(tmp_path / "absent.toml"))
        assert manager.config.refresh.max_workers == 100

    def test_loads_toml(self, tmp_path):
        config_file = tmp_path / "tree_cache.toml"
        config_file.write_text(
            '[sources]\ntree1 = "data/tree1.csv"\n\n'
            "[refresh]\nmax_workers = 3\nwatch = true\n\n"
            '[build]\ndelimiter = ";"\n\n'
            "[server]\nport = 9000\n"
        )
        manager = ConfigManager(str(config_file))

        assert manager.config.refresh.max_workers == 3
        assert manager.config.refresh.watch is True
        assert manager.config.build.delimiter == ";"
        assert manager.config.server.port == 9000
        assert manager.resolve_sources() == {
            "tree1": (tmp_path / "data" / "tree1.csv").resolve()
        }

    def test_env_overrides(self, tmp_path, monkeypatch):
        config_file = tmp_path / "tree_cache.toml"
        config_file.write_text("[refresh]\nmax_workers = 3\n")
        monkeypatch.setenv("W_MAX", "0")
        monkeypatch.setenv("HTTP_PORT", "8081")

        manager = ConfigManager(str(config_file))

        assert manager.config.refresh.max_workers == 0
        assert manager.config.server.port == 8081

    def test_invalid_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("W_MAX", "many")
        manager = ConfigManager(str(tmp_path / "absent.toml"))

        with pytest.raises(ConfigError):
            manager.config

    def test_invalid_toml(self, tmp_path):
        config_file = tmp_path / "bad.toml"
        config_file.write_text("[refresh\nmax_workers = ")

        with pytest.raises(ConfigError) as info:
            ConfigManager(str(config_file)).config
        assert "bad.toml" in str(info.value)

    def test_invalid_values(self, tmp_path):
        config_file = tmp_path / "bad.toml"
        config_file.write_text("[refresh]\nmax_workers = -5\n")

        with pytest.raises(ConfigError):
            ConfigManager(str(config_file)).config

    def test_reload(self, tmp_path):
        config_file = tmp_path / "tree_cache.toml"
        config_file.write_text("[refresh]\nmax_workers = 3\n")
        manager = ConfigManager(str(config_file))
        assert manager.config.refresh.max_workers == 3

        config_file.write_text("[refresh]\nmax_workers = 5\n")
        assert manager.config.refresh.max_workers == 3
        manager.reload()
        assert manager.config.refresh.max_workers == 5
