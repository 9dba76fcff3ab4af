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

"""Host and VM cluster setup (libvirt + Vagrant + Kubespray)."""

from __future__ import annotations

from pathlib import Path

import typer

from upm_manager.config import SetupConfig
from upm_manager.orchestrator import run_setup

app = typer.Typer(help="Prepare the host and deploy the Kubespray VM cluster.")


@app.callback(invoke_without_command=True)
def setup(
    nat: bool = typer.Option(False, "--nat", help="Use NAT networking for the VMs"),
    bridge: bool = typer.Option(
        False, "--bridge", help="Use bridge networking (requires BRIDGE_INTERFACE)"),
    kubespray_dir: Path | None = typer.Option(
        None, "--kubespray-dir", help="Kubespray checkout (overrides KUBESPRAY_DIR)"),
    yes: bool = typer.Option(False, "-y", "--yes", help="Auto-confirm prompts (bridge addressing is still asked)"),
) -> None:
    """Full setup: checks, dependencies, libvirt, Vagrant, Kubespray, VM deployment."""
    if nat and bridge:
        raise typer.BadParameter("--nat and --bridge are mutually exclusive")
    setup_cfg = SetupConfig()
    if kubespray_dir is not None:
        setup_cfg = setup_cfg.model_copy(update={"kubespray_dir": kubespray_dir})
    run_setup(nat=nat, bridge=bridge, auto_confirm=yes, setup=setup_cfg)
