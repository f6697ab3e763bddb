"""
Configuration file parsing and on-disk layout.

Loads YAML configuration files and merges them from multiple sources
(project → user → system → defaults). The resulting Config, together with
the Paths derived from it, is constructed once at startup and passed to
every component.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .common import is_windows, vlog
from .errors import ClivmError


# Configuration file locations (in priority order)
CONFIG_LOCATIONS = [
    ".clivm.yml",                                      # Project root (highest priority)
    ".clivm.yaml",                                     # Alternative extension
    os.path.expanduser("~/.config/clivm/config.yml"),  # User global
    os.path.expanduser("~/.config/clivm/config.yaml"),
    "/etc/clivm/config.yml",                           # System global
    "/etc/clivm/config.yaml",
]

DEFAULT_ROOT = "~/.clivm"
DEFAULT_BINARY_NAME = "jf"
DEFAULT_PROJECT_FILE = ".jfrog-version"
DEFAULT_DOWNLOAD_URL = (
    "https://releases.jfrog.io/artifactory/jfrog-cli/v2-jf/{version}/jfrog-cli-{platform}/{binary}"
)
DEFAULT_LATEST_RELEASE_URL = "https://api.github.com/repos/jfrog/jfrog-cli/releases/latest"

ROOT_ENV_VAR = "CLIVM_ROOT"


@dataclass(frozen=True)
class Preferences:
    """
    User preferences for execution and bookkeeping.

    Attributes:
        timeout_seconds: Per-invocation timeout for compare/benchmark
        benchmark_iterations: Default iteration count for benchmarks
        max_workers: Maximum number of parallel invocations
        history_limit: Maximum number of history entries kept
        history_output_bytes: Byte budget for stored stdout/stderr
        download_retries: Attempts for downloads and release lookups
        context_lines: Unchanged lines shown around unified diff changes
    """
    timeout_seconds: int = 30
    benchmark_iterations: int = 5
    max_workers: int = 8
    history_limit: int = 1000
    history_output_bytes: int = 5000
    download_retries: int = 3
    context_lines: int = 3

    def __post_init__(self):
        """Validate preferences after initialization."""
        if self.timeout_seconds < 1 or self.timeout_seconds > 3600:
            raise ValueError(
                f"Invalid timeout_seconds: {self.timeout_seconds}. "
                "Must be between 1 and 3600"
            )

        if self.benchmark_iterations < 1 or self.benchmark_iterations > 1000:
            raise ValueError(
                f"Invalid benchmark_iterations: {self.benchmark_iterations}. "
                "Must be between 1 and 1000"
            )

        if self.max_workers < 1 or self.max_workers > 32:
            raise ValueError(
                f"Invalid max_workers: {self.max_workers}. "
                "Must be between 1 and 32"
            )

        if self.history_limit < 1:
            raise ValueError(f"Invalid history_limit: {self.history_limit}. Must be positive")

        if self.history_output_bytes < 0:
            raise ValueError(
                f"Invalid history_output_bytes: {self.history_output_bytes}. "
                "Must not be negative"
            )

        if self.download_retries < 1 or self.download_retries > 10:
            raise ValueError(
                f"Invalid download_retries: {self.download_retries}. "
                "Must be between 1 and 10"
            )

        if self.context_lines < 0:
            raise ValueError(f"Invalid context_lines: {self.context_lines}. Must not be negative")

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Preferences:
        """Create Preferences from dictionary."""
        return Preferences(
            timeout_seconds=data.get("timeout_seconds", 30),
            benchmark_iterations=data.get("benchmark_iterations", 5),
            max_workers=data.get("max_workers", 8),
            history_limit=data.get("history_limit", 1000),
            history_output_bytes=data.get("history_output_bytes", 5000),
            download_retries=data.get("download_retries", 3),
            context_lines=data.get("context_lines", 3),
        )

    def merge_with(self, other: Preferences) -> Preferences:
        """Merge with lower-priority preferences, keeping this side's non-default values."""
        defaults = Preferences()
        merged = {}
        for name in self.__dataclass_fields__:
            mine = getattr(self, name)
            merged[name] = mine if mine != getattr(defaults, name) else getattr(other, name)
        return Preferences(**merged)


@dataclass(frozen=True)
class Config:
    """
    Complete configuration for clivm.

    Attributes:
        version: Config schema version
        binary_name: Name of the managed binary inside each version directory
        project_file: Project marker file consulted when no version is given
        root: Root directory for all state (empty means default or $CLIVM_ROOT)
        download_url: URL template for version downloads
        latest_release_url: Endpoint returning the newest upstream release
        fallback_latest_version: Version used when the release lookup fails
        preferences: Global preferences
        source: Path to the configuration file that was loaded
    """
    version: int = 1
    binary_name: str = DEFAULT_BINARY_NAME
    project_file: str = DEFAULT_PROJECT_FILE
    root: str = ""
    download_url: str = DEFAULT_DOWNLOAD_URL
    latest_release_url: str = DEFAULT_LATEST_RELEASE_URL
    fallback_latest_version: str = ""
    preferences: Preferences = field(default_factory=Preferences)
    source: str = ""

    def __post_init__(self):
        """Validate config after initialization."""
        if self.version != 1:
            raise ValueError(f"Unsupported config version: {self.version}. Expected version 1")

        if not self.binary_name or os.sep in self.binary_name or "/" in self.binary_name:
            raise ValueError(f"Invalid binary name: {self.binary_name!r}")

        if "{version}" not in self.download_url:
            raise ValueError("download url must contain a {version} placeholder")

    @staticmethod
    def from_dict(data: dict[str, Any], source: str = "") -> Config:
        """Create Config from dictionary."""
        download_data = data.get("download", {}) or {}
        preferences = Preferences.from_dict(data.get("preferences", {}) or {})

        return Config(
            version=data.get("version", 1),
            binary_name=data.get("binary", DEFAULT_BINARY_NAME),
            project_file=data.get("project_file", DEFAULT_PROJECT_FILE),
            root=data.get("root", ""),
            download_url=download_data.get("url", DEFAULT_DOWNLOAD_URL),
            latest_release_url=download_data.get("latest_release_url", DEFAULT_LATEST_RELEASE_URL),
            fallback_latest_version=str(download_data.get("fallback_version", "") or ""),
            preferences=preferences,
            source=source,
        )

    def merge_with(self, other: Config) -> Config:
        """
        Merge this config with another, preferring values from this config.

        Args:
            other: Other config to merge (lower priority)

        Returns:
            New merged Config object
        """
        return Config(
            version=self.version,
            binary_name=self.binary_name if self.binary_name != DEFAULT_BINARY_NAME else other.binary_name,
            project_file=self.project_file if self.project_file != DEFAULT_PROJECT_FILE else other.project_file,
            root=self.root or other.root,
            download_url=self.download_url if self.download_url != DEFAULT_DOWNLOAD_URL else other.download_url,
            latest_release_url=(
                self.latest_release_url
                if self.latest_release_url != DEFAULT_LATEST_RELEASE_URL
                else other.latest_release_url
            ),
            fallback_latest_version=self.fallback_latest_version or other.fallback_latest_version,
            preferences=self.preferences.merge_with(other.preferences),
            source=self.source or other.source,
        )


@dataclass(frozen=True)
class Paths:
    """
    On-disk layout rooted at a single directory.

    Attributes:
        root: Root directory holding all clivm state
        binary_name: Managed binary name (without platform suffix)
        project_file: Name of the project marker file
    """
    root: Path
    binary_name: str = DEFAULT_BINARY_NAME
    project_file: str = DEFAULT_PROJECT_FILE

    @staticmethod
    def from_config(config: Config, env: dict[str, str] | None = None) -> Paths:
        """Build Paths from $CLIVM_ROOT, the configured root, or the default."""
        env = os.environ if env is None else env
        raw_root = env.get(ROOT_ENV_VAR) or config.root or DEFAULT_ROOT
        return Paths(
            root=Path(os.path.expanduser(raw_root)),
            binary_name=config.binary_name,
            project_file=config.project_file,
        )

    @property
    def config_file(self) -> Path:
        """File holding the active version."""
        return self.root / "config"

    @property
    def versions_dir(self) -> Path:
        return self.root / "versions"

    @property
    def aliases_dir(self) -> Path:
        return self.root / "aliases"

    @property
    def shim_dir(self) -> Path:
        return self.root / "shim"

    @property
    def history_file(self) -> Path:
        return self.root / "history.json"

    @property
    def blocked_file(self) -> Path:
        return self.root / "blocked.json"

    @property
    def binary_filename(self) -> str:
        """Binary file name as stored on disk for this platform."""
        return f"{self.binary_name}.exe" if is_windows() else self.binary_name

    @property
    def shim_path(self) -> Path:
        name = f"{self.binary_name}.cmd" if is_windows() else self.binary_name
        return self.shim_dir / name

    def version_dir(self, version: str) -> Path:
        return self.versions_dir / version

    def binary_path(self, version: str) -> Path:
        return self.version_dir(version) / self.binary_filename

    def project_file_path(self, directory: str | Path | None = None) -> Path:
        """Project marker file in the given directory (default: current directory)."""
        return Path(directory or os.getcwd()) / self.project_file

    def ensure_directories(self) -> None:
        """Create the root directory tree if missing."""
        for directory in (self.root, self.versions_dir, self.aliases_dir, self.shim_dir):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ClivmError(
                    f"failed to create {directory}: {e}",
                    remediation=f"Check that {self.root} is writable or set CLIVM_ROOT",
                ) from e


def _load_yaml(file_path: str) -> dict[str, Any] | None:
    """
    Load YAML configuration file.

    Args:
        file_path: Path to YAML file

    Returns:
        Parsed configuration dictionary, or None if the file is unreadable or invalid
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError):
        return None


def load_config_file(file_path: str, verbose: bool = False) -> Config | None:
    """
    Load configuration from a single file.

    Args:
        file_path: Path to configuration file
        verbose: Enable verbose logging

    Returns:
        Config object, or None if file cannot be loaded
    """
    if not os.path.exists(file_path):
        return None

    vlog(f"Loading config from: {file_path}", verbose)

    data = _load_yaml(file_path)
    if data is None:
        vlog(f"Invalid config file: {file_path}", verbose)
        return None

    try:
        config = Config.from_dict(data, source=file_path)
        vlog(f"Loaded config successfully: {file_path}", verbose)
        return config
    except (ValueError, TypeError) as e:
        vlog(f"Config validation failed for {file_path}: {e}", verbose)
        return None


def load_config(
    custom_path: str | None = None,
    verbose: bool = False,
) -> Config:
    """
    Load and merge configuration from all sources.

    Configuration precedence (highest to lowest):
    1. Custom path (if provided)
    2. Project .clivm.yml
    3. User ~/.config/clivm/config.yml
    4. System /etc/clivm/config.yml
    5. Default configuration

    Args:
        custom_path: Optional path to custom configuration file
        verbose: Enable verbose logging

    Returns:
        Merged Config object (never None, returns defaults if no config found)

    Raises:
        ValueError: If custom_path is provided but file cannot be loaded
    """
    configs: list[Config] = []

    if custom_path:
        config = load_config_file(custom_path, verbose)
        if config is None:
            raise ValueError(f"Could not load config from specified path: {custom_path}")
        configs.append(config)

    for location in CONFIG_LOCATIONS:
        config = load_config_file(location, verbose)
        if config is not None:
            configs.append(config)

    if not configs:
        vlog("No config files found, using defaults", verbose)
        return Config()

    # First config has highest priority
    merged = configs[0]
    for config in configs[1:]:
        merged = merged.merge_with(config)

    vlog(f"Merged {len(configs)} config files", verbose)
    return merged
