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

"""VM management subcommands (status, ssh, up, halt, destroy)."""

from __future__ import annotations

from pathlib import Path

import typer

from upm_manager import vm
from upm_manager.config import SetupConfig
from upm_manager.constants import REL_VAGRANT_CONFIG
from upm_manager.prompts import confirm_or_cancel
from upm_manager.reconcile import reconcile_and_deploy
from upm_manager.vagrant_config import load_topology

app = typer.Typer(help="Manage the Vagrant VMs of the Kubespray project.")

_DIR_OPTION = typer.Option(None, "--kubespray-dir", help="Kubespray checkout (overrides KUBESPRAY_DIR)")


def _project(kubespray_dir: Path | None) -> Path:
    return kubespray_dir if kubespray_dir is not None else SetupConfig().kubespray_dir


@app.command()
def status(kubespray_dir: Path | None = _DIR_OPTION) -> None:
    """Show ``vagrant status``."""
    vm.status(_project(kubespray_dir))


@app.command()
def ssh(
    machine: str | None = typer.Argument(None, help="VM name, e.g. k8s-1"),
    kubespray_dir: Path | None = _DIR_OPTION,
) -> None:
    """Open an SSH session to a VM."""
    vm.ssh(_project(kubespray_dir), machine)


@app.command()
def up(
    kubespray_dir: Path | None = _DIR_OPTION,
    yes: bool = typer.Option(False, "-y", "--yes", help="Auto-confirm the reconciliation default"),
) -> None:
    """Reconcile existing VMs with config.rb and bring the cluster up."""
    project = _project(kubespray_dir)
    topology = load_topology(project / REL_VAGRANT_CONFIG)
    reconcile_and_deploy(project, topology.instance_name_prefix, topology.num_instances, yes)


@app.command()
def halt(kubespray_dir: Path | None = _DIR_OPTION) -> None:
    """Stop all VMs."""
    vm.halt(_project(kubespray_dir))


@app.command()
def destroy(
    kubespray_dir: Path | None = _DIR_OPTION,
    yes: bool = typer.Option(False, "-y", "--yes", help="Do not ask for confirmation"),
) -> None:
    """Destroy all VMs of the project."""
    confirm_or_cancel("Destroy all VMs of the Kubespray project?", yes, "VM destruction cancelled.")
    vm.destroy(_project(kubespray_dir))
