"""
Shell profile PATH management.

The shim directory is put on PATH through a managed section in the user's
shell profile:

    # >>> clivm PATH (managed by clivm)
    export PATH="/home/me/.clivm/shim:$PATH"
    # <<< clivm PATH (managed by clivm)

Updates are idempotent: an exact existing section means no write at all.
Otherwise the old section is replaced and the result is syntax-checked in
a temp file before it atomically replaces the profile.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .common import vlog
from .errors import EnvironmentWarning


PATH_BLOCK_KEY = "clivm PATH"
BLOCK_OWNER = "clivm"
BACKUP_SUFFIX = ".clivm.backup"

# Directories where a system-wide install of the managed binary usually lives
SYSTEM_BIN_DIRS = ["/usr/local/bin", "/opt/homebrew/bin", "/usr/bin", "/bin"]

SYNTAX_CHECK_TIMEOUT = 10


@dataclass(frozen=True)
class ManagedBlock:
    """
    A delimited profile section owned by clivm.

    Attributes:
        key: Stable identifier used in the sentinel lines
        body: Lines between the sentinels
    """
    key: str
    body: tuple[str, ...]

    @property
    def start_marker(self) -> str:
        return f"# >>> {self.key} (managed by {BLOCK_OWNER})"

    @property
    def end_marker(self) -> str:
        return f"# <<< {self.key} (managed by {BLOCK_OWNER})"

    def render(self) -> str:
        return "\n".join([self.start_marker, *self.body, self.end_marker])


@dataclass(frozen=True)
class ProfileUpdate:
    """
    Outcome of a profile update.

    Attributes:
        profile: Profile file that was considered
        changed: Whether the file was rewritten
        backup: Backup of the previous content, when one was written
    """
    profile: Path
    changed: bool
    backup: Path | None = None


def path_block(shim_dir: str | Path, shell: str = "bash") -> ManagedBlock:
    """Managed section prepending the shim directory to PATH."""
    if shell == "fish":
        line = f'set -gx PATH "{shim_dir}" $PATH'
    else:
        line = f'export PATH="{shim_dir}:$PATH"'
    return ManagedBlock(key=PATH_BLOCK_KEY, body=(line,))


def remove_block(content: str, block: ManagedBlock) -> str:
    """
    Drop every copy of a managed section.

    Lines from a start sentinel through the next end sentinel are removed;
    a start sentinel without an end removes everything after it.
    """
    kept: list[str] = []
    inside = False
    for line in content.splitlines():
        stripped = line.strip()
        if not inside and stripped == block.start_marker:
            inside = True
            continue
        if inside:
            if stripped == block.end_marker:
                inside = False
            continue
        kept.append(line)
    return "\n".join(kept)


def apply_block(content: str, block: ManagedBlock) -> str | None:
    """
    Render profile content holding exactly one fresh copy of the section.

    Returns:
        New content, or None when the exact section is already present
    """
    rendered = block.render()
    if rendered in content:
        return None

    remaining = remove_block(content, block).rstrip()
    if not remaining:
        return rendered + "\n"
    return remaining + "\n\n" + rendered + "\n"


def detect_shell(env: dict[str, str] | None = None) -> str:
    """Shell name from $SHELL ('cmd' on Windows without $SHELL, else 'bash')."""
    env = os.environ if env is None else env
    shell = env.get("SHELL", "")
    if shell:
        return os.path.basename(shell)
    return "cmd" if os.name == "nt" else "bash"


def shell_profile(shell: str, home: str | Path | None = None) -> Path | None:
    """
    Profile file for a shell.

    Returns:
        Profile path, or None for shells without a supported profile
    """
    home = Path(home or os.path.expanduser("~"))
    if shell == "bash":
        bash_profile = home / ".bash_profile"
        return bash_profile if bash_profile.exists() else home / ".bashrc"
    if shell == "zsh":
        return home / ".zshrc"
    if shell == "fish":
        return home / ".config" / "fish" / "config.fish"
    return None


def _check_syntax(shell: str, script: Path) -> None:
    """Run `<shell> -n` on a script when that shell is available."""
    if shell not in ("bash", "zsh"):
        return
    executable = shutil.which(shell)
    if not executable:
        return
    try:
        result = subprocess.run(
            [executable, "-n", str(script)],
            capture_output=True,
            text=True,
            timeout=SYNTAX_CHECK_TIMEOUT,
            check=False,
        )
    except subprocess.TimeoutExpired:
        raise EnvironmentWarning(f"{shell} syntax check timed out") from None
    if result.returncode != 0:
        raise EnvironmentWarning(
            f"updated profile failed {shell} syntax check: {result.stderr.strip()}",
            remediation="Fix the existing syntax errors in your profile and run 'clivm use' again",
        )


def update_profile(profile: Path, block: ManagedBlock, shell: str, verbose: bool = False) -> ProfileUpdate:
    """
    Install a managed section into a profile file.

    The new content is written to a temp file beside the profile,
    syntax-checked, the old profile is backed up, and the temp file is
    renamed over the profile.

    Raises:
        EnvironmentWarning: If reading, validating or writing fails
    """
    try:
        content = profile.read_text(encoding="utf-8") if profile.exists() else ""
    except OSError as e:
        raise EnvironmentWarning(f"failed to read profile {profile}: {e}") from e

    new_content = apply_block(content, block)
    if new_content is None:
        vlog(f"PATH already configured correctly in {profile}", verbose)
        return ProfileUpdate(profile=profile, changed=False)

    temp_path = profile.with_name(f".{profile.name}.clivm.tmp")
    backup = None
    try:
        profile.parent.mkdir(parents=True, exist_ok=True)
        temp_path.write_text(new_content, encoding="utf-8")
        _check_syntax(shell, temp_path)
        if profile.exists():
            backup = profile.with_name(profile.name + BACKUP_SUFFIX)
            shutil.copy2(profile, backup)
            shutil.copymode(profile, temp_path)
        os.replace(temp_path, profile)
    except OSError as e:
        raise EnvironmentWarning(f"failed to write profile {profile}: {e}") from e
    finally:
        temp_path.unlink(missing_ok=True)

    vlog(f"Updated PATH block in {profile}", verbose)
    return ProfileUpdate(profile=profile, changed=True, backup=backup)


def update_path(
    shim_dir: str | Path,
    env: dict[str, str] | None = None,
    home: str | Path | None = None,
    verbose: bool = False,
) -> ProfileUpdate:
    """
    Put the shim directory first on PATH in the current shell's profile.

    Raises:
        EnvironmentWarning: For unsupported shells or failed profile writes
    """
    shell = detect_shell(env)
    profile = shell_profile(shell, home)
    if profile is None:
        raise EnvironmentWarning(
            f"unsupported shell: {shell}",
            remediation=f"Add {shim_dir} to the front of PATH manually",
        )
    return update_profile(profile, path_block(shim_dir, shell), shell, verbose)


def profile_has_block(shim_dir: str | Path, env: dict[str, str] | None = None, home: str | Path | None = None) -> bool:
    """True when the current shell's profile holds the exact PATH section."""
    shell = detect_shell(env)
    profile = shell_profile(shell, home)
    if profile is None or not profile.exists():
        return False
    return path_block(shim_dir, shell).render() in profile.read_text(encoding="utf-8")


def verify_path_priority(
    shim_dir: str | Path,
    binary_name: str | None = None,
    path_env: str | None = None,
) -> list[str]:
    """
    Verify PATH ordering puts the shim directory before system bins.

    Args:
        shim_dir: Shim directory that must win
        binary_name: Also check which file this command name resolves to
        path_env: PATH value to inspect (default: current process PATH)

    Returns:
        List of PATH ordering issues found
    """
    issues = []
    path_env = os.environ.get("PATH", "") if path_env is None else path_env
    path_dirs = [os.path.normpath(d) for d in path_env.split(os.pathsep) if d]
    shim = os.path.normpath(str(shim_dir))

    if shim not in path_dirs:
        issues.append(
            f"Missing from PATH: {shim}\n"
            f"  Fix: restart your terminal or source your shell profile"
        )
        return issues

    shim_idx = path_dirs.index(shim)
    for sys_bin in SYSTEM_BIN_DIRS:
        if sys_bin not in path_dirs:
            continue
        sys_idx = path_dirs.index(sys_bin)
        if sys_idx < shim_idx:
            issues.append(
                f"PATH ordering issue: {sys_bin} appears before {shim}\n"
                f"  Current PATH index: {sys_bin}={sys_idx}, {shim}={shim_idx}"
            )

    if binary_name and not issues:
        resolved = shutil.which(binary_name, path=path_env)
        if resolved and os.path.normpath(os.path.dirname(resolved)) != shim:
            issues.append(f"'{binary_name}' resolves to {resolved} instead of the clivm shim")

    return issues
