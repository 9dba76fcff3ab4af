# /*
# Copyright 2026 The UPM Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Utility functions for kubectl, command checks, temp files, and step timing."""

from __future__ import annotations

import atexit
import os
import signal
import subprocess
import tempfile
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

import sh
import yaml

from upm_manager import console, logger


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        RuntimeError: If the command is not found.
    """
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Required command '{cmd}' not found. Please install it first.") from err


def command_exists(cmd: str) -> bool:
    """Return True when *cmd* resolves on PATH."""
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode:
        return False
    return True


def sudo_prefix() -> list[str]:
    """Return ``["sudo"]`` unless already running as root."""
    return [] if os.geteuid() == 0 else ["sudo"]


def run_sudo(*args: str, **kwargs):
    """Run a privileged command through sh, prefixing sudo when needed."""
    argv = [*sudo_prefix(), *args]
    return sh.Command(argv[0])(*argv[1:], **kwargs)


def run_kubectl(args: list[str], timeout: int = 30, stdin: str | None = None) -> tuple[bool, str, str]:
    """Run a kubectl command via subprocess and return (success, stdout, stderr).

    Uses subprocess instead of sh because kubectl output parsing requires
    precise control over stdout/stderr separation.

    Args:
        args: kubectl arguments (e.g. ``["get", "pods", "-n", "default"]``).
        timeout: Maximum seconds to wait for the command to complete.
        stdin: Text fed to kubectl on standard input (``apply -f -``).

    Returns:
        Tuple of (success, stdout, stderr).
    """
    try:
        result = subprocess.run(
            ["kubectl", *args],
            capture_output=True,
            text=True,
            timeout=timeout,
            input=stdin,
        )
        return result.returncode == 0, result.stdout, result.stderr
    except (subprocess.SubprocessError, OSError) as exc:
        return False, "", str(exc)


# ============================================================================
# Temporary files
# ============================================================================

class TempFileRegistry:
    """Tracks temporary files so they are removed on exit or on a signal."""

    def __init__(self) -> None:
        self._paths: list[Path] = []
        self._installed = False

    def write_yaml(self, prefix: str, data: dict) -> Path:
        """Write *data* to a fresh temporary YAML file and register it."""
        fd, name = tempfile.mkstemp(prefix=f"{prefix}_", suffix=".yaml")
        with os.fdopen(fd, "w") as f:
            yaml.safe_dump(data, f, sort_keys=False)
        path = Path(name)
        self._paths.append(path)
        return path

    def release(self, path: Path) -> None:
        """Remove a registered file now."""
        path.unlink(missing_ok=True)
        if path in self._paths:
            self._paths.remove(path)

    def cleanup(self) -> None:
        """Best-effort removal of every registered file."""
        for path in list(self._paths):
            try:
                path.unlink(missing_ok=True)
                logger.info("Removed temporary file: %s", path)
            except OSError as err:
                logger.warning("Could not remove temporary file %s: %s", path, err)
        self._paths.clear()

    def install_handlers(self) -> None:
        """Clean up on normal exit, SIGINT and SIGTERM."""
        if self._installed:
            return
        atexit.register(self.cleanup)
        for sig in (signal.SIGINT, signal.SIGTERM):
            signal.signal(sig, self._on_signal)
        self._installed = True

    def _on_signal(self, signum: int, _frame) -> None:
        logger.warning("Received %s, cleaning up temporary resources...", signal.Signals(signum).name)
        self.cleanup()
        raise SystemExit(128 + signum)


temp_files = TempFileRegistry()


# ============================================================================
# Step timing
# ============================================================================

def format_duration(seconds: int) -> str:
    """Human readable duration: ``42s``, ``3m 5s`` or ``1h 20m``."""
    if seconds >= 3600:
        return f"{seconds // 3600}h {(seconds % 3600) // 60}m"
    if seconds >= 60:
        return f"{seconds // 60}m {seconds % 60}s"
    return f"{seconds}s"


@contextmanager
def timed_step(name: str) -> Iterator[None]:
    """Log start, completion and duration of an installation step.

    Args:
        name: Step name shown in the console and the log.
    """
    start = time.monotonic()
    console.print(f"[yellow]\u23f1\ufe0f  Starting: [bold]{name}[/bold] [blue]\\[{datetime.now():%H:%M:%S}][/blue][/yellow]")
    logger.info("[PERF] Starting function: %s", name)
    try:
        yield
    except BaseException:
        duration = int(time.monotonic() - start)
        logger.error("[PERF] Function %s failed - Duration: %ss", name, duration)
        console.print(f"[red]\u274c Failed: [bold]{name}[/bold] ({format_duration(duration)})[/red]")
        raise
    duration = int(time.monotonic() - start)
    logger.info("[PERF] Function %s completed successfully - Duration: %ss", name, duration)
    console.print(
        f"[green]\u2705 Completed: [bold]{name}[/bold] [blue]\\[{datetime.now():%H:%M:%S}][/blue] "
        f"[magenta]({format_duration(duration)})[/magenta][/green]\n"
    )
