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

"""Vagrant invocations against the Kubespray project directory."""

from __future__ import annotations

import os
from pathlib import Path

import sh

from upm_manager import logger
from upm_manager.constants import VAGRANT_UP_ARGS
from upm_manager.utils import require_command


def vagrant_env(project_dir: Path) -> dict[str, str]:
    """Environment with the project virtualenv activated, when it exists."""
    env = dict(os.environ)
    venv = project_dir / "venv"
    if (venv / "bin").is_dir():
        env["VIRTUAL_ENV"] = str(venv)
        env["PATH"] = f"{venv / 'bin'}{os.pathsep}{env.get('PATH', '')}"
    return env


def run_vagrant(project_dir: Path, *args: str) -> None:
    """Run ``vagrant <args>`` in the foreground from *project_dir*.

    Args:
        project_dir: Kubespray checkout containing the Vagrantfile.
        *args: Vagrant sub-command and flags.

    Raises:
        RuntimeError: If the project directory is missing or vagrant fails.
    """
    require_command("vagrant")
    if not project_dir.is_dir():
        raise RuntimeError(f"Kubespray directory not found: {project_dir}")
    logger.info("Running: vagrant %s (in %s)", " ".join(args), project_dir)
    try:
        sh.vagrant(*args, _cwd=str(project_dir), _env=vagrant_env(project_dir), _fg=True)
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"vagrant {' '.join(args)} failed with exit code {err.exit_code}") from err


def up(project_dir: Path) -> None:
    run_vagrant(project_dir, *VAGRANT_UP_ARGS)


def provision(project_dir: Path) -> None:
    run_vagrant(project_dir, "provision")


def reload_provision(project_dir: Path) -> None:
    run_vagrant(project_dir, "reload", "--provision")


def status(project_dir: Path) -> None:
    run_vagrant(project_dir, "status")


def halt(project_dir: Path) -> None:
    run_vagrant(project_dir, "halt")


def destroy(project_dir: Path) -> None:
    run_vagrant(project_dir, "destroy", "-f")


def ssh(project_dir: Path, machine: str | None = None) -> None:
    run_vagrant(project_dir, "ssh", *([machine] if machine else []))
