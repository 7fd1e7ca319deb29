"""Configuration management for tree-cache."""

import os
from pathlib import Path
from typing import Dict, Optional

import toml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigError


def _expand(path: str) -> str:
    return os.path.expanduser(os.path.expandvars(path))


class PathsConfig(BaseModel):
    """Configuration for source discovery."""

    sources_dir: Optional[str] = Field(
        default="files",
        description="Directory whose matching files are registered as sources "
        "under their file stem",
    )
    pattern: str = Field(default="*.csv", description="Glob for sources_dir")

    @field_validator("sources_dir")
    @classmethod
    def expand_path(cls, v):
        """Expand user paths and environment variables."""
        return _expand(v) if v else v


class RefreshConfig(BaseModel):
    """Configuration for background cache refresh."""

    max_workers: int = Field(
        default=100,
        ge=0,
        description="Maximum concurrently active refreshes (W_MAX); 0 disables",
    )
    watch: bool = Field(
        default=False,
        description="Refresh caches as soon as source files change on disk",
    )


class BuildConfig(BaseModel):
    """Configuration for decoding and building trees."""

    delimiter: str = Field(default=",", min_length=1, max_length=1)
    encoding: str = Field(default="utf-8")
    validate_order: bool = Field(
        default=True,
        description="Reject sources whose ids are not strictly increasing",
    )


class ServerConfig(BaseModel):
    """Configuration for the HTTP server."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1, le=65535)


class Config(BaseModel):
    """Main configuration class."""

    sources: Dict[str, str] = Field(default_factory=dict)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    refresh: RefreshConfig = Field(default_factory=RefreshConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @field_validator("sources")
    @classmethod
    def expand_sources(cls, v):
        """Expand user paths and environment variables."""
        return {name: _expand(path) for name, path in v.items()}

    def resolve_sources(self, base_dir: Optional[str] = None) -> Dict[str, Path]:
        """Get the source name -> path map.

        Files found in ``paths.sources_dir`` come first; explicit ``sources``
        entries override them by name.

        Args:
            base_dir: Directory relative paths are resolved against

        Returns:
            Dict of source name -> absolute path
        """
        base = Path(base_dir) if base_dir else Path.cwd()
        resolved: Dict[str, Path] = {}

        if self.paths.sources_dir:
            sources_dir = base / self.paths.sources_dir
            if sources_dir.is_dir():
                for path in sorted(sources_dir.glob(self.paths.pattern)):
                    if path.is_file():
                        resolved[path.stem] = path.resolve()

        for name, path in self.sources.items():
            resolved[name] = (base / path).resolve()

        return resolved


class ConfigManager:
    """Manages configuration loading and access."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to configuration file. If None, searches standard locations.
        """
        self.config_path = config_path or self._find_config_file()
        self._config: Optional[Config] = None

    def _find_config_file(self) -> str:
        """Find configuration file in standard locations."""
        search_paths = [
            "tree_cache.toml",
            os.path.expanduser("~/.config/tree-cache/config.toml"),
            "config.toml",
        ]

        for path in search_paths:
            if os.path.exists(path):
                return path

        # Return default path even if it doesn't exist
        return search_paths[0]

    @property
    def config(self) -> Config:
        """Get configuration, loading if necessary."""
        if self._config is None:
            self._config = self._load_config()
        return self._config

    @property
    def base_dir(self) -> str:
        """Directory relative source paths are resolved against."""
        return os.path.dirname(os.path.abspath(self.config_path))

    def _load_config(self) -> Config:
        """Load configuration from TOML file and environment overrides."""
        config_data: dict = {}
        if os.path.exists(self.config_path):
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    config_data = toml.load(f)
            except toml.TomlDecodeError as e:
                raise ConfigError(f"Invalid configuration file {self.config_path}: {e}")

        self._apply_env_overrides(config_data)

        try:
            return Config(**config_data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration file {self.config_path}: {e}")

    @staticmethod
    def _apply_env_overrides(config_data: dict) -> None:
        """Apply W_MAX and HTTP_PORT environment variables."""
        overrides = (
            ("W_MAX", "refresh", "max_workers"),
            ("HTTP_PORT", "server", "port"),
        )
        for env_name, section, key in overrides:
            value = os.environ.get(env_name)
            if value is None or value == "":
                continue
            try:
                config_data.setdefault(section, {})[key] = int(value)
            except ValueError:
                raise ConfigError(f"{env_name} must be an integer, got {value!r}")

    def resolve_sources(self) -> Dict[str, Path]:
        """Get configured sources resolved against the config file directory."""
        return self.config.resolve_sources(self.base_dir)

    def reload(self):
        """Reload configuration."""
        self._config = None


# Global configuration manager instance
config_manager = ConfigManager()
