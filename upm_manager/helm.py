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

"""Helm repository and release operations."""

from __future__ import annotations

import tempfile
from dataclasses import dataclass
from pathlib import Path

import sh
from tenacity import retry, stop_after_attempt, wait_fixed

from upm_manager import logger
from upm_manager.constants import (
    HELM_REPO_MAX_ATTEMPTS,
    HELM_REPO_RETRY_WAIT_SECONDS,
    dep_value,
)
from upm_manager.utils import command_exists, temp_files


@dataclass(frozen=True)
class ChartRef:
    """Helm repository, chart and release names of one component.

    Attributes:
        repo_name: Local name of the Helm repository.
        repo_url: Repository URL.
        chart: Chart reference ``<repo>/<chart>``.
        release: Release name.
    """

    repo_name: str
    repo_url: str
    chart: str
    release: str

    @classmethod
    def from_dependencies(cls, key: str) -> ChartRef:
        return cls(
            repo_name=dep_value(key, "repo_name"),
            repo_url=dep_value(key, "repo_url"),
            chart=dep_value(key, "chart"),
            release=dep_value(key, "release"),
        )


def _stderr(err: sh.ErrorReturnCode) -> str:
    return err.stderr.decode(errors="replace").strip()


def _with_repo_retry(action: str, func, *args: str) -> None:
    """Run a Helm repository call with a fixed number of attempts.

    The retry policy is built per call so the wait time is read when the
    call happens.
    """
    attempt = 0

    @retry(
        stop=stop_after_attempt(HELM_REPO_MAX_ATTEMPTS),
        wait=wait_fixed(HELM_REPO_RETRY_WAIT_SECONDS),
        reraise=True,
    )
    def _attempt() -> None:
        nonlocal attempt
        attempt += 1
        try:
            func(*args)
        except sh.ErrorReturnCode as err:
            logger.info("Failed to %s (attempt %d/%d): %s", action, attempt, HELM_REPO_MAX_ATTEMPTS, _stderr(err))
            if attempt < HELM_REPO_MAX_ATTEMPTS:
                logger.info("Retrying in %d seconds...", HELM_REPO_RETRY_WAIT_SECONDS)
            raise

    try:
        _attempt()
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Failed to {action} after {HELM_REPO_MAX_ATTEMPTS} attempts") from err
    logger.info("Helm: %s succeeded", action)


def add_repo(chart: ChartRef) -> None:
    """``helm repo add`` with retries.

    Raises:
        RuntimeError: If every attempt fails.
    """
    _with_repo_retry(f"add Helm repository {chart.repo_name}", sh.helm, "repo", "add", chart.repo_name, chart.repo_url)


def update_repo(chart: ChartRef) -> None:
    """``helm repo update`` with retries.

    Raises:
        RuntimeError: If every attempt fails.
    """
    _with_repo_retry(f"update Helm repository {chart.repo_name}", sh.helm, "repo", "update", chart.repo_name)


def prepare_repo(chart: ChartRef) -> None:
    add_repo(chart)
    update_repo(chart)


def upgrade_install(
    chart: ChartRef,
    namespace: str,
    version: str,
    timeout: str,
    values: dict | None = None,
) -> None:
    """Idempotent ``helm upgrade --install --wait``.

    Args:
        chart: Chart and release names.
        namespace: Target namespace, created when missing.
        version: Chart version.
        timeout: Helm ``--timeout`` value, e.g. ``15m``.
        values: Values rendered to a temporary file, or None.

    Raises:
        RuntimeError: If Helm fails.
    """
    args = [
        "upgrade", "--install", chart.release, chart.chart,
        "--namespace", namespace,
        "--create-namespace",
        "--version", version,
    ]
    values_file = None
    if values is not None:
        values_file = temp_files.write_yaml(chart.release.replace("-", "_") + "_values", values)
        args += ["--values", str(values_file)]
    args += ["--wait", f"--timeout={timeout}"]

    logger.info("Installing %s %s via Helm into namespace %s", chart.chart, version, namespace)
    try:
        sh.helm(*args, _fg=True)
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Failed to install or upgrade Helm release {chart.release}") from err
    finally:
        if values_file is not None:
            temp_files.release(values_file)


def release_exists(release: str, namespace: str) -> bool:
    """Return True when ``helm list -n <namespace>`` shows *release*."""
    try:
        output = str(sh.helm("list", "-n", namespace, "-q"))
    except sh.ErrorReturnCode:
        return False
    return release in output.split()


def ensure_helm() -> None:
    """Install Helm with the upstream script when it is missing.

    Raises:
        RuntimeError: If the download or the installation fails.
    """
    if command_exists("helm"):
        logger.info("Helm is already installed")
        return
    logger.info("Helm not found, installing...")
    url = dep_value("helm", "install_script_url")
    with tempfile.TemporaryDirectory() as tmp:
        script = Path(tmp) / "get_helm.sh"
        try:
            sh.curl("-fsSL", "-o", str(script), url)
            script.chmod(0o700)
            sh.bash(str(script), _fg=True)
        except sh.ErrorReturnCode as err:
            raise RuntimeError("Failed to install Helm") from err
    logger.info("Helm installed")
