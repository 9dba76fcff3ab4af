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

"""
cli.py - Unified CLI for the UPM Kubespray environment.

Subcommands:
    setup      Prepare the host and deploy the Kubespray VM cluster
    vm         Manage the Vagrant VMs (status, ssh, up, halt, destroy)
    install    Install one component (lvmlocalpv, prometheus, cnpg, upm-engine, upm-platform, config-nginx, all)
    version    Show tool and chart versions

Examples:
    # NAT networking, no prompts
    upm-manager setup --nat -y

    # Bridge networking on eth1
    BRIDGE_INTERFACE=eth1 upm-manager setup --bridge

    # Install every component
    upm-manager install --all -y

    # Only the Nginx reverse proxy
    upm-manager install --config-nginx

For detailed usage information, run: upm-manager --help
"""

from __future__ import annotations

import sys

import typer
from rich.table import Table

from upm_manager import __version__, configure_logging, console, logger
from upm_manager.commands import install_cmd, setup_cmd, vm_cmd
from upm_manager.config import ChartConfig, PathsConfig
from upm_manager.constants import TOOL_AUTHOR, TOOL_LICENSE, TOOL_NAME
from upm_manager.utils import temp_files

app = typer.Typer(
    help="Kubespray VM provisioning and UPM component installation.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback() -> None:
    """Initialize logging and temp-file cleanup for all subcommands."""
    configure_logging(PathsConfig().log_file)
    temp_files.install_handlers()


app.add_typer(setup_cmd.app, name="setup")
app.add_typer(vm_cmd.app, name="vm")
app.add_typer(install_cmd.app, name="install")


@app.command()
def version() -> None:
    """Show tool and chart versions."""
    charts = ChartConfig()
    console.print(f"[bold]{TOOL_NAME}[/bold] v{__version__} ({TOOL_AUTHOR}, {TOOL_LICENSE})")
    table = Table(title="Chart versions")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")
    table.add_row("OpenEBS LVM LocalPV", charts.lvm_localpv_chart_version)
    table.add_row("kube-prometheus-stack", charts.prometheus_chart_version)
    table.add_row("CloudNative-PG", charts.cnpg_chart_version)
    table.add_row("UPM Engine / Platform", charts.upm_chart_version)
    console.print(table)


def main() -> None:
    try:
        app()
    except Exception as e:
        logger.error("%s", e)
        console.print(f"[red]\u274c {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
