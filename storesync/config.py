"""Configuration loading for storesync."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class ContentsConfig:
    """Where the settings document lives on the content host."""

    api_base: str = "https://api.github.com"
    owner: str = ""
    repo: str = ""
    token: str = ""
    branch: str = "main"
    path: str = "public/settings.json"
    user_agent: str = "storesync"
    timeout_seconds: float = 15.0
    max_retries: int = 3
    retry_backoff_seconds: float = 1.0

    def missing(self) -> list[str]:
        """Names of required settings that are unset."""
        return [
            name
            for name in ("owner", "repo", "token")
            if not getattr(self, name)
        ]

    @property
    def is_complete(self) -> bool:
        return not self.missing()


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8787


@dataclass
class SyncConfig:
    """Client-side synchronization settings."""

    site_url: str = ""  # Storefront host serving /settings.json
    update_path: str = "/api/update-settings"
    document_path: str = "/settings.json"
    cache_path: str = "~/.storesync/cache.db"
    cache_key: str = "storesync_settings"
    local_mode: bool = False  # Skip remote writes (development)
    local_save_delay_seconds: float = 0.5
    fill_defaults: bool = False
    timeout_seconds: float = 15.0
    max_retries: int = 3


@dataclass
class Config:
    contents: ContentsConfig = field(default_factory=ContentsConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with STORESYNC_ prefix."""
    return os.environ.get(f"STORESYNC_{key}", default)


def _is_truthy(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Content host credentials; plain GITHUB_* names are accepted as fallbacks
    if token := _get_env("GITHUB_TOKEN", os.environ.get("GITHUB_TOKEN")):
        config.contents.token = token
    if owner := _get_env("GITHUB_OWNER", os.environ.get("GITHUB_OWNER")):
        config.contents.owner = owner
    if repo := _get_env("GITHUB_REPO", os.environ.get("GITHUB_REPO")):
        config.contents.repo = repo
    if branch := _get_env("GITHUB_BRANCH", os.environ.get("GITHUB_BRANCH")):
        config.contents.branch = branch
    if api_base := _get_env("CONTENTS_API_BASE"):
        config.contents.api_base = api_base
    if path := _get_env("CONTENTS_PATH"):
        config.contents.path = path

    # Server overrides
    if host := _get_env("SERVER_HOST"):
        config.server.host = host
    if port := _get_env("SERVER_PORT"):
        config.server.port = int(port)

    # Sync overrides
    if site_url := _get_env("SITE_URL"):
        config.sync.site_url = site_url
    if cache_path := _get_env("CACHE_PATH"):
        config.sync.cache_path = cache_path
    if local_mode := _get_env("LOCAL_MODE"):
        config.sync.local_mode = _is_truthy(local_mode)
    if fill_defaults := _get_env("FILL_DEFAULTS"):
        config.sync.fill_defaults = _is_truthy(fill_defaults)

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses defaults.

    Returns:
        Loaded Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            # Parse contents config
            if "contents" in data:
                contents_data = data["contents"]
                defaults = config.contents
                config.contents = ContentsConfig(
                    api_base=contents_data.get("api_base", defaults.api_base),
                    owner=contents_data.get("owner", defaults.owner),
                    repo=contents_data.get("repo", defaults.repo),
                    token=contents_data.get("token", defaults.token),
                    branch=contents_data.get("branch", defaults.branch),
                    path=contents_data.get("path", defaults.path),
                    user_agent=contents_data.get("user_agent", defaults.user_agent),
                    timeout_seconds=contents_data.get(
                        "timeout_seconds", defaults.timeout_seconds
                    ),
                    max_retries=contents_data.get("max_retries", defaults.max_retries),
                    retry_backoff_seconds=contents_data.get(
                        "retry_backoff_seconds", defaults.retry_backoff_seconds
                    ),
                )

            # Parse server config
            if "server" in data:
                server_data = data["server"]
                config.server = ServerConfig(
                    host=server_data.get("host", config.server.host),
                    port=server_data.get("port", config.server.port),
                )

            # Parse sync config
            if "sync" in data:
                sync_data = data["sync"]
                defaults = config.sync
                config.sync = SyncConfig(
                    site_url=sync_data.get("site_url", defaults.site_url),
                    update_path=sync_data.get("update_path", defaults.update_path),
                    document_path=sync_data.get("document_path", defaults.document_path),
                    cache_path=sync_data.get("cache_path", defaults.cache_path),
                    cache_key=sync_data.get("cache_key", defaults.cache_key),
                    local_mode=sync_data.get("local_mode", defaults.local_mode),
                    local_save_delay_seconds=sync_data.get(
                        "local_save_delay_seconds", defaults.local_save_delay_seconds
                    ),
                    fill_defaults=sync_data.get("fill_defaults", defaults.fill_defaults),
                    timeout_seconds=sync_data.get(
                        "timeout_seconds", defaults.timeout_seconds
                    ),
                    max_retries=sync_data.get("max_retries", defaults.max_retries),
                )

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    if not config.contents.branch:
        config.contents.branch = "main"

    return config
