"""
Shim generation.

The shim is a small script installed as <root>/shim/<binary> that reads
the active version at call time and runs that version's binary. Unless
disabled, it records each invocation in the history log through a
detached `clivm add-history-entry` call. The script is regenerated
wholesale on every activation.
"""

from __future__ import annotations

import shlex
import shutil
from pathlib import Path

from .common import atomic_write_text, is_windows
from .config import Paths
from .errors import ClivmError


UNIX_SHIM_TEMPLATE = """#!/bin/bash
# clivm shim - redirects {binary} to the active version. Generated file, do not edit.

CLIVM_ROOT={root}
CONFIG_FILE="$CLIVM_ROOT/config"
CLIVM_BIN={clivm_bin}

if [ ! -f "$CONFIG_FILE" ]; then
    echo "Error: No active clivm version. Run 'clivm use <version>' first." >&2
    exit 1
fi

ACTIVE_VERSION=$(cat "$CONFIG_FILE")
BINARY_PATH="$CLIVM_ROOT/versions/$ACTIVE_VERSION/{binary}"

if [ "$CLIVM_DEBUG" = "1" ]; then
    echo "[shim] Executing version: $ACTIVE_VERSION" >&2
    echo "[shim] Full binary path: $BINARY_PATH" >&2
fi

if [ ! -f "$BINARY_PATH" ]; then
    echo "Error: Active version $ACTIVE_VERSION not found. Run 'clivm use <version>' to fix." >&2
    exit 1
fi

if [ "$CLIVM_NO_HISTORY" = "1" ] || [ "$CLIVM_DEBUG" = "1" ]; then
    exec "$BINARY_PATH" "$@"
fi

if [ -z "$CLIVM_BIN" ] || [ ! -x "$CLIVM_BIN" ]; then
    CLIVM_BIN="$(command -v clivm 2>/dev/null || true)"
fi
if [ -z "$CLIVM_BIN" ]; then
    exec "$BINARY_PATH" "$@"
fi

now_ms() {{
    local t
    t=$(date +%s%3N 2>/dev/null)
    case "$t" in
        ''|*N) echo $(( $(date +%s) * 1000 )) ;;
        *) echo "$t" ;;
    esac
}}

FULL_CMD="{binary} $*"
OUT_FILE=$(mktemp "${{TMPDIR:-/tmp}}/clivm-out.XXXXXX")
ERR_FILE=$(mktemp "${{TMPDIR:-/tmp}}/clivm-err.XXXXXX")

START_MS=$(now_ms)
"$BINARY_PATH" "$@" >"$OUT_FILE" 2>"$ERR_FILE"
EXIT_CODE=$?
END_MS=$(now_ms)
DURATION_MS=$((END_MS - START_MS))

cat "$OUT_FILE"
cat "$ERR_FILE" >&2

STDOUT_TEXT=$(head -c {capture_bytes} "$OUT_FILE")
STDERR_TEXT=$(head -c {capture_bytes} "$ERR_FILE")
rm -f "$OUT_FILE" "$ERR_FILE"

# Detached so recording never delays the caller
("$CLIVM_BIN" add-history-entry -- "$ACTIVE_VERSION" "$FULL_CMD" "$DURATION_MS" "$EXIT_CODE" \\
    "$STDOUT_TEXT" "$STDERR_TEXT" >/dev/null 2>&1 &)

exit $EXIT_CODE
"""

WINDOWS_SHIM_TEMPLATE = """@echo off
REM clivm shim - redirects {binary} to the active version. Generated file, do not edit.
setlocal

set "CLIVM_ROOT={root}"
set "CONFIG_FILE=%CLIVM_ROOT%\\config"

if not exist "%CONFIG_FILE%" (
    echo Error: No active clivm version. Run 'clivm use ^<version^>' first. 1>&2
    exit /b 1
)

set /p ACTIVE_VERSION=<"%CONFIG_FILE%"
set "BINARY_PATH=%CLIVM_ROOT%\\versions\\%ACTIVE_VERSION%\\{binary}.exe"

if not exist "%BINARY_PATH%" (
    echo Error: Active version %ACTIVE_VERSION% not found. Run 'clivm use ^<version^>' to fix. 1>&2
    exit /b 1
)

if "%CLIVM_NO_HISTORY%"=="1" goto run_direct
if "%CLIVM_DEBUG%"=="1" goto run_direct
where clivm >nul 2>&1
if errorlevel 1 goto run_direct

set "OUT_FILE=%TEMP%\\clivm-out-%RANDOM%%RANDOM%.txt"
set "ERR_FILE=%TEMP%\\clivm-err-%RANDOM%%RANDOM%.txt"

call :now_cs START_CS
"%BINARY_PATH%" %* >"%OUT_FILE%" 2>"%ERR_FILE%"
set EXIT_CODE=%ERRORLEVEL%
call :now_cs END_CS

REM %TIME% wraps at midnight
set /a DURATION_CS=END_CS-START_CS
if %DURATION_CS% lss 0 set /a DURATION_CS+=8640000
set /a DURATION_MS=DURATION_CS*10

type "%OUT_FILE%"
type "%ERR_FILE%" 1>&2

REM Detached so recording never delays the caller; clivm deletes the capture files
start "" /b clivm add-history-entry --stdout-file "%OUT_FILE%" --stderr-file "%ERR_FILE%" -- "%ACTIVE_VERSION%" "{binary} %*" "%DURATION_MS%" "%EXIT_CODE%" >nul 2>&1

exit /b %EXIT_CODE%

:run_direct
"%BINARY_PATH%" %*
exit /b %ERRORLEVEL%

REM Sets %1 to the time of day in centiseconds
:now_cs
for /f "tokens=1-4 delims=:.," %%a in ("%TIME: =0%") do (
    set /a "%~1=(((1%%a-100)*60+(1%%b-100))*60+(1%%c-100))*100+(1%%d-100)"
)
exit /b 0
"""


def find_clivm_command() -> str:
    """Absolute path of the clivm entry point on PATH, or empty string."""
    return shutil.which("clivm") or ""


def render_unix_shim(paths: Paths, clivm_command: str = "", capture_bytes: int = 5000) -> str:
    """
    Render the bash shim.

    Args:
        paths: Layout whose root is baked into the script
        clivm_command: clivm executable used for history recording
        capture_bytes: Output bytes handed to the history recorder (one extra
            byte lets the recorder see that truncation happened)
    """
    return UNIX_SHIM_TEMPLATE.format(
        root=shlex.quote(str(paths.root)),
        clivm_bin=shlex.quote(clivm_command) if clivm_command else '""',
        binary=paths.binary_name,
        capture_bytes=capture_bytes + 1,
    )


def render_windows_shim(paths: Paths) -> str:
    return WINDOWS_SHIM_TEMPLATE.format(root=str(paths.root), binary=paths.binary_name)


def write_shim(
    paths: Paths,
    clivm_command: str | None = None,
    capture_bytes: int = 5000,
    windows: bool | None = None,
) -> Path:
    """
    Regenerate the shim for this platform.

    Returns:
        Path of the written shim
    """
    windows = is_windows() if windows is None else windows
    if clivm_command is None:
        clivm_command = find_clivm_command()

    if windows:
        shim_path = paths.shim_dir / f"{paths.binary_name}.cmd"
        content = render_windows_shim(paths).replace("\n", "\r\n")
    else:
        shim_path = paths.shim_dir / paths.binary_name
        content = render_unix_shim(paths, clivm_command, capture_bytes)

    try:
        atomic_write_text(shim_path, content, mode=0o755)
    except OSError as e:
        raise ClivmError(
            f"failed to write shim {shim_path}: {e}",
            remediation=f"Check that {paths.shim_dir} is writable",
        ) from e
    return shim_path
