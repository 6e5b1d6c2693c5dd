"""Configuration loading for journal-sync.

Supports three tiers:
1. Simple config via .toml or .json - most users
2. Python config via .py - adds hook_* callbacks for status and sync events
3. Direct construction of SyncConfig - embedding applications and tests
"""

from __future__ import annotations

import importlib.util
import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

# Python 3.11+ has tomllib in stdlib; fall back to tomli for older versions
try:
    import tomllib  # Python 3.11+
except ImportError:
    try:
        import tomli as tomllib  # Python <3.11
    except ImportError:  # pragma: no cover
        tomllib = None

from .models import DEFAULT_TEMP_PREFIX

TOKEN_ENV = "JOURNAL_SYNC_TOKEN"
BASE_URL_ENV = "JOURNAL_SYNC_BASE_URL"


@dataclass
class SyncConfig:
    """Configuration for an offline sync client."""

    project_root: Path = field(default_factory=Path.cwd)

    # Remote Entry Service
    base_url: str = "http://localhost:5000"
    auth_token: Optional[str] = None
    cookie: Optional[str] = None
    request_timeout: float = 10.0

    # Whose entries are pulled during reconciliation (None = no pull)
    user_id: Optional[str] = None

    # Local storage (relative to project_root)
    cache_dir: str = ".journal-sync"
    database: str = "offline.db"

    # Seconds between periodic passes (0 = no periodic sync)
    sync_interval: float = 0.0

    temp_prefix: str = DEFAULT_TEMP_PREFIX

    # Hooks (populated from Python config)
    hooks: dict[str, Callable] = field(default_factory=dict)

    def get_cache_path(self) -> Path:
        return self.project_root / self.cache_dir

    def get_database_path(self) -> Path:
        return self.get_cache_path() / self.database


def load_toml_config(path: Path) -> dict[str, Any]:
    """Load configuration from TOML file."""
    if tomllib is None:
        raise ImportError("tomli required for TOML config: pip install tomli")
    with open(path, "rb") as f:
        return tomllib.load(f)


def load_json_config(path: Path) -> dict[str, Any]:
    """Load configuration from JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_python_config(path: Path) -> tuple[dict[str, Any], dict[str, Callable]]:
    """Load configuration from Python file.

    Returns:
        Tuple of (config_dict, hooks_dict)

    Convention:
        - CONFIG dict or config dict for static configuration
        - Functions named hook_* become hooks (hook_status_change, hook_sync_complete)
    """
    spec = importlib.util.spec_from_file_location("journal_sync_config", path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot load Python config from {path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules["journal_sync_config"] = module
    spec.loader.exec_module(module)

    config_dict = {}
    if hasattr(module, "CONFIG"):
        config_dict = module.CONFIG
    elif hasattr(module, "config"):
        config_dict = module.config

    hooks = {}
    for name in dir(module):
        if name.startswith("hook_"):
            hooks[name[5:]] = getattr(module, name)

    return config_dict, hooks


def dict_to_config(data: dict[str, Any], project_root: Path) -> SyncConfig:
    """Convert dictionary to SyncConfig."""
    config = SyncConfig(project_root=project_root)

    if "server" in data:
        server = data["server"]
        if "base_url" in server:
            config.base_url = server["base_url"]
        if "token" in server:
            config.auth_token = server["token"]
        if "cookie" in server:
            config.cookie = server["cookie"]
        if "timeout" in server:
            config.request_timeout = float(server["timeout"])

    if "user" in data:
        user = data["user"]
        if "id" in user:
            config.user_id = str(user["id"])

    if "storage" in data:
        storage = data["storage"]
        if "cache_dir" in storage:
            config.cache_dir = storage["cache_dir"]
        if "database" in storage:
            config.database = storage["database"]

    if "sync" in data:
        sync = data["sync"]
        if "interval" in sync:
            config.sync_interval = float(sync["interval"])
        if "temp_prefix" in sync:
            config.temp_prefix = sync["temp_prefix"]

    return config


def apply_environment(config: SyncConfig) -> SyncConfig:
    """Let environment variables override secrets and the server address."""
    token = os.environ.get(TOKEN_ENV)
    if token:
        config.auth_token = token
    base_url = os.environ.get(BASE_URL_ENV)
    if base_url:
        config.base_url = base_url
    return config


def find_config_file(project_root: Path) -> Optional[Path]:
    """Find configuration file in project root.

    Search order:
    1. journal_sync.py (most flexible)
    2. journal_sync.toml
    3. journal_sync.json
    4. .journal-sync.toml
    5. .journal-sync.json
    """
    candidates = [
        "journal_sync.py",
        "journal_sync.toml",
        "journal_sync.json",
        ".journal-sync.toml",
        ".journal-sync.json",
    ]

    for name in candidates:
        path = project_root / name
        if path.exists():
            return path

    return None


def load_config(project_root: Path, config_path: Optional[Path] = None) -> SyncConfig:
    """Load sync configuration.

    Args:
        project_root: Directory holding the config file and the cache
        config_path: Optional explicit path to config file

    Returns:
        SyncConfig instance
    """
    if config_path is None:
        config_path = find_config_file(project_root)

    if config_path is None:
        return apply_environment(SyncConfig(project_root=project_root))

    suffix = config_path.suffix.lower()

    if suffix == ".py":
        config_dict, hooks = load_python_config(config_path)
        config = dict_to_config(config_dict, project_root)
        config.hooks = hooks
    elif suffix == ".toml":
        config = dict_to_config(load_toml_config(config_path), project_root)
    elif suffix == ".json":
        config = dict_to_config(load_json_config(config_path), project_root)
    else:
        raise ValueError(f"Unsupported config file type: {suffix}")

    return apply_environment(config)
