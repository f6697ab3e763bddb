"""
clivm - Version manager for a single command-line binary.

Core Modules:
- Storage: Installed versions, aliases, block list, usage history
- Resolution: Version constraints, project marker file, latest lookup
- Activation: Active-version pointer, PATH shim, shell profile block
- Execution: Direct invocation, parallel compare and benchmark
- Foundation: Configuration, logging, errors, health check
"""

__version__ = "1.0.0"
__author__ = "clivm Contributors"

# Version info for backward compatibility
VERSION = __version__

# Foundation
from .config import Config, Paths, Preferences, load_config, load_config_file
from .errors import (
    BlockedVersionError,
    ClivmError,
    EnvironmentWarning,
    InstallError,
    NotFoundError,
    SubprocessError,
    UserInputError,
)
from .logging_config import setup_logging, get_logger

# Storage
from .versions import VersionInfo, VersionStore
from .aliases import Alias, AliasStore, is_reserved_alias
from .blocklist import BlockList
from .history import HistoryEntry, HistoryStore, compute_stats, parse_replay_id, replay

# Resolution
from .constraints import (
    Version,
    VersionConstraint,
    parse_version,
    parse_constraint,
    find_matching_version,
    sort_version_names,
)
from .installer import Installer, detect_platform, build_download_url
from .resolver import Resolution, Resolver

# Activation
from .activation import ActivationManager, ActivationResult
from .profile import ManagedBlock, update_path, verify_path_priority
from .shim import write_shim

# Execution
from .execution import Deadline, ExecutionEngine, ExecutionResult, FanOutResult, TaskOutcome, run_parallel
from .compare import are_outputs_identical, render_comparison
from .benchmark import BenchmarkResult, aggregate, rank

# Health
from .health import HealthChecker, HealthReport

__all__ = [
    # Version
    "__version__",
    "VERSION",
    # Foundation
    "Config",
    "Paths",
    "Preferences",
    "load_config",
    "load_config_file",
    "ClivmError",
    "UserInputError",
    "NotFoundError",
    "BlockedVersionError",
    "InstallError",
    "SubprocessError",
    "EnvironmentWarning",
    "setup_logging",
    "get_logger",
    # Storage
    "VersionInfo",
    "VersionStore",
    "Alias",
    "AliasStore",
    "is_reserved_alias",
    "BlockList",
    "HistoryEntry",
    "HistoryStore",
    "compute_stats",
    "parse_replay_id",
    "replay",
    # Resolution
    "Version",
    "VersionConstraint",
    "parse_version",
    "parse_constraint",
    "find_matching_version",
    "sort_version_names",
    "Installer",
    "detect_platform",
    "build_download_url",
    "Resolution",
    "Resolver",
    # Activation
    "ActivationManager",
    "ActivationResult",
    "ManagedBlock",
    "update_path",
    "verify_path_priority",
    "write_shim",
    # Execution
    "Deadline",
    "ExecutionEngine",
    "ExecutionResult",
    "FanOutResult",
    "TaskOutcome",
    "run_parallel",
    "are_outputs_identical",
    "render_comparison",
    "BenchmarkResult",
    "aggregate",
    "rank",
    # Health
    "HealthChecker",
    "HealthReport",
]
