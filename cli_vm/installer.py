"""
Release lookup and binary download.

Fetches the newest upstream release tag and installs a version by
downloading its binary into <root>/versions/<version>/, with retry logic
for transient network failures.
"""

from __future__ import annotations

import json
import logging
import os
import platform
import random
import subprocess
import sys
import time
import urllib.error
import urllib.request

from packaging import version as pkg_version

from .common import vlog
from .config import Config, Paths
from .constraints import parse_version
from .errors import InstallError

logger = logging.getLogger(__name__)


USER_AGENT = "clivm/1.0"

# (system, machine) -> release platform suffix
PLATFORM_SUFFIXES = {
    ("darwin", "arm64"): "mac-arm64",
    ("darwin", "x86_64"): "mac-386",
    ("linux", "x86_64"): "linux-amd64",
    ("linux", "amd64"): "linux-amd64",
    ("linux", "aarch64"): "linux-arm64",
    ("linux", "arm64"): "linux-arm64",
    ("windows", "amd64"): "windows-amd64",
    ("windows", "x86_64"): "windows-amd64",
}


def calculate_backoff_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 30.0) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        attempt: Retry attempt number (0-indexed)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds

    Returns:
        Delay in seconds with jitter applied
    """
    delay = base_delay * (2 ** attempt)
    delay = min(delay, max_delay)

    # Add jitter (±20%)
    jitter = delay * 0.2 * (random.random() * 2 - 1)
    return max(0.1, delay + jitter)


def detect_platform(system: str | None = None, machine: str | None = None) -> str:
    """
    Map the running OS and architecture to a release platform suffix.

    Raises:
        InstallError: If no release exists for this platform
    """
    system = (system or platform.system()).lower()
    machine = (machine or platform.machine()).lower()
    suffix = PLATFORM_SUFFIXES.get((system, machine))
    if suffix is None:
        raise InstallError(f"unsupported platform: {system}-{machine}")
    return suffix


def build_download_url(config: Config, version: str, binary: str, platform_suffix: str | None = None) -> str:
    return config.download_url.format(
        version=version,
        platform=platform_suffix or detect_platform(),
        binary=binary,
    )


def http_get(url: str, timeout: int = 30, headers: dict[str, str] | None = None) -> bytes:
    """
    Perform HTTP GET request.

    Raises:
        InstallError: On HTTP or network failure; 5xx, 429 and network errors are retryable
    """
    default_headers = {"User-Agent": USER_AGENT}
    if headers:
        default_headers.update(headers)

    req = urllib.request.Request(url, headers=default_headers)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as response:
            return response.read()
    except urllib.error.HTTPError as e:
        raise _http_error(url, e.code) from e
    except (urllib.error.URLError, OSError) as e:
        raise InstallError(f"Failed to fetch {url}: {e}", retryable=True) from e


def _http_error(url: str, status: int) -> InstallError:
    error = _status_error(url, status)
    error.status = status
    return error


def _status_error(url: str, status: int) -> InstallError:
    if status == 403:
        return InstallError(
            "GitHub API access forbidden (403), possibly rate limited",
            remediation="Try again later or set the GITHUB_TOKEN environment variable",
        )
    if status == 404:
        return InstallError(f"Not found (404): {url}")
    if status == 429:
        return InstallError(
            "GitHub API rate limit exceeded (429)",
            retryable=True,
            remediation="Try again later or set the GITHUB_TOKEN environment variable",
        )
    return InstallError(f"Failed to fetch {url}: HTTP {status}", retryable=status >= 500)


def _with_retries(operation, retries: int, verbose: bool = False):
    """Run operation, retrying retryable InstallErrors with backoff."""
    for attempt in range(retries):
        try:
            return operation()
        except InstallError as e:
            if not e.retryable or attempt == retries - 1:
                raise
            delay = calculate_backoff_delay(attempt)
            vlog(f"{e.message}; retrying after {delay:.1f}s delay...", verbose)
            time.sleep(delay)
    raise InstallError("no attempts were made")


def fetch_latest_version(config: Config, timeout: int = 30) -> str:
    """
    Fetch the newest stable release from the release endpoint.

    Returns:
        Version string without a leading "v"

    Raises:
        InstallError: On network failure or an unusable tag
    """
    headers = {"Accept": "application/vnd.github.v3+json"}
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        headers["Authorization"] = f"token {token}"

    body = http_get(config.latest_release_url, timeout=timeout, headers=headers)
    try:
        tag = json.loads(body)["tag_name"]
    except (ValueError, KeyError, TypeError) as e:
        raise InstallError("could not find tag_name in release response") from e

    try:
        parsed = pkg_version.Version(tag)
    except pkg_version.InvalidVersion as e:
        raise InstallError(f"invalid version format: {tag}") from e
    if parsed.is_prerelease or len(parsed.release) != 3:
        raise InstallError(f"latest release {tag} is not a stable major.minor.patch release")
    return parsed.base_version


class Installer:
    """Installs versions and looks up the latest release."""

    def __init__(self, config: Config, paths: Paths, verbose: bool = False):
        self.config = config
        self.paths = paths
        self.verbose = verbose

    def latest_version(self) -> str:
        """
        Latest upstream version, falling back to the configured version.

        Raises:
            InstallError: If the lookup fails and no fallback is configured
        """
        retries = self.config.preferences.download_retries
        try:
            return _with_retries(
                lambda: fetch_latest_version(self.config, self.config.preferences.timeout_seconds),
                retries,
                self.verbose,
            )
        except InstallError as e:
            fallback = self.config.fallback_latest_version
            if not fallback:
                raise
            logger.warning(f"Release lookup failed ({e.message}); using fallback version {fallback}")
            return fallback

    def install(self, version: str) -> str:
        """
        Download a version's binary.

        The binary is written to a temp file, renamed into place and
        marked executable; a re-install overwrites in place.

        Returns:
            Path to the installed binary

        Raises:
            UserInputError: If the version is not major.minor.patch
            InstallError: If the download fails
        """
        parse_version(version)
        binary_path = self.paths.binary_path(version)
        url = build_download_url(self.config, version, self.paths.binary_filename)
        logger.info(f"Downloading from: {url}")

        def download() -> bytes:
            try:
                return http_get(url, timeout=max(self.config.preferences.timeout_seconds, 60))
            except InstallError as e:
                if getattr(e, "status", None) == 404:
                    raise InstallError(
                        f"version {version} not found. Please check if this version exists",
                    ) from e
                raise

        payload = _with_retries(download, self.config.preferences.download_retries, self.verbose)

        binary_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = binary_path.with_name(binary_path.name + ".tmp")
        try:
            tmp_path.write_bytes(payload)
            os.replace(tmp_path, binary_path)
            os.chmod(binary_path, 0o755)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise InstallError(f"failed to write binary: {e}") from e

        if sys.platform == "darwin":
            # Clear quarantine attributes so Gatekeeper does not block the binary
            subprocess.run(["xattr", "-c", str(binary_path)], capture_output=True, check=False)

        return str(binary_path)
