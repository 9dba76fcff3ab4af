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

"""Component installation (exactly one option per run)."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.panel import Panel

from upm_manager import console, logger
from upm_manager.config import ChartConfig, InstallContext, PathsConfig
from upm_manager.dispatcher import InstallOption, expand, resolve_option, run_install
from upm_manager.kube import validate_cluster_connectivity
from upm_manager.utils import require_command

app = typer.Typer(help="Install cluster components via Helm.")


@app.callback(invoke_without_command=True)
def install(
    lvmlocalpv: bool = typer.Option(False, "--lvmlocalpv", help="Install OpenEBS LVM LocalPV"),
    prometheus: bool = typer.Option(False, "--prometheus", help="Install kube-prometheus-stack"),
    cnpg: bool = typer.Option(False, "--cnpg", help="Install CloudNative-PG"),
    upm_engine: bool = typer.Option(False, "--upm-engine", help="Install UPM Engine"),
    upm_platform: bool = typer.Option(False, "--upm-platform", help="Install UPM Platform"),
    config_nginx: bool = typer.Option(False, "--config-nginx", help="Configure Nginx in front of UPM Platform"),
    install_all: bool = typer.Option(
        False, "--all", help="Install lvmlocalpv, prometheus, cnpg, upm-engine and upm-platform"),
    vagrant_config: Path | None = typer.Option(
        None, "--vagrant-config", help="Vagrant config.rb holding the topology (overrides UPM_VAGRANT_CONFIG)"),
    yes: bool = typer.Option(False, "-y", "--yes", help="Auto-confirm prompts"),
) -> None:
    """Install exactly one component, or --all of them in order."""
    flags = {
        InstallOption.LVMLOCALPV: lvmlocalpv,
        InstallOption.PROMETHEUS: prometheus,
        InstallOption.CNPG: cnpg,
        InstallOption.UPM_ENGINE: upm_engine,
        InstallOption.UPM_PLATFORM: upm_platform,
        InstallOption.CONFIG_NGINX: config_nginx,
        InstallOption.ALL: install_all,
    }
    option = resolve_option(o for o, on in flags.items() if on)

    paths = PathsConfig()
    if vagrant_config is not None:
        paths = paths.model_copy(update={"vagrant_config": vagrant_config})
    ctx = InstallContext(charts=ChartConfig(), paths=paths, auto_confirm=yes)

    console.print(Panel.fit(f"UPM component installation: {option.value}", style="bold blue"))
    logger.info("Installation option: %s (units: %s)", option.value, ", ".join(u.value for u in expand(option)))
    require_command("kubectl")
    validate_cluster_connectivity()
    run_install(option, ctx)
    console.print("[green]\u2705 Installation completed[/green]")
