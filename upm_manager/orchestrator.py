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

"""Orchestration functions that compose domain modules into workflows."""

from __future__ import annotations

from rich.panel import Panel

from upm_manager import console, logger
from upm_manager.config import SetupConfig
from upm_manager.constants import (
    CONFIG_TEMPLATE,
    HOSTONLY_NETWORK_GATEWAY,
    NAT_NETWORK_CIDR,
    REL_CONFIG_TEMPLATES,
    REL_VAGRANT_CONFIG,
    VAGRANT_UP_ARGS,
    dep_value,
)
from upm_manager.environment import (
    check_connectivity,
    check_proxy,
    check_sudo,
    check_system_requirements,
    check_time_sync,
    clone_or_update_kubespray,
    configure_kubectl_access,
    configure_system_security,
    display_cluster_info,
    install_system_dependencies,
    install_vagrant,
    install_vagrant_libvirt_plugin,
    install_vagrantfile,
    setup_libvirt,
    setup_virtualenv,
)
from upm_manager.network import (
    NetworkMode,
    NetworkSettings,
    prompt_bridge_settings,
    require_bridge_interface,
    resolve_mode,
)
from upm_manager.prompts import confirm, confirm_or_cancel
from upm_manager.reconcile import ReconcileAction, reconcile_and_deploy
from upm_manager.utils import timed_step
from upm_manager.vagrant_config import (
    load_settings,
    load_topology,
    render_config,
    show_ip_preview,
    show_settings,
)

# ============================================================================
# Internal helpers
# ============================================================================


def _show_setup_plan(setup: SetupConfig, mode: NetworkMode) -> None:
    console.print(Panel.fit("\U0001f680 Kubespray Libvirt Environment Setup", style="bold green"))
    console.print("[bold]Will install:[/bold]")
    console.print("   [green]•[/green] Virtualization: [cyan]libvirt + QEMU/KVM[/cyan]")
    console.print(f"   [green]•[/green] Vagrant [cyan]{dep_value('vagrant', 'version')}[/cyan] + libvirt plugin")
    console.print(f"   [green]•[/green] Python: [cyan]{setup.python_version}[/cyan] virtualenv for Kubespray")
    console.print("[bold]Network:[/bold]")
    if mode is NetworkMode.BRIDGE:
        console.print(f"   [green]•[/green] Bridge: [cyan]br0[/cyan] (using interface: [yellow]{setup.bridge_interface}[/yellow])")
    else:
        console.print(f"   [green]•[/green] NAT: [cyan]{NAT_NETWORK_CIDR}[/cyan] (DHCP: Enabled)")
    console.print(f"   [green]•[/green] Host-only gateway: [cyan]{HOSTONLY_NETWORK_GATEWAY}[/cyan] (DHCP: Disabled)")
    if setup.http_proxy:
        console.print(f"   [green]•[/green] Proxy: [cyan]{setup.http_proxy}[/cyan]")
        if setup.https_proxy != setup.http_proxy:
            console.print(f"   [green]•[/green] HTTPS Proxy: [cyan]{setup.https_proxy}[/cyan]")
        if setup.no_proxy:
            console.print(f"   [green]•[/green] No Proxy: [cyan]{setup.no_proxy}[/cyan]")
    else:
        console.print("   [yellow]•[/yellow] Proxy: [yellow]Not configured[/yellow]")
    console.print("[bold yellow]\u26a0\ufe0f  System changes:[/bold yellow]")
    console.print("   [red]•[/red] Firewall and SELinux disabled")
    console.print("   [green]•[/green] libvirtd enabled, user added to the libvirt group")


def _prepare_host(setup: SetupConfig, mode: NetworkMode, auto_confirm: bool) -> None:
    for name, step in (
        ("install_system_dependencies", install_system_dependencies),
        ("configure_system_security", configure_system_security),
        ("setup_libvirt", lambda: setup_libvirt(mode, setup.bridge_interface, auto_confirm)),
        ("install_vagrant", install_vagrant),
        ("install_vagrant_libvirt_plugin", lambda: install_vagrant_libvirt_plugin(setup)),
        ("setup_kubespray_project", lambda: _setup_kubespray_project(setup, mode)),
    ):
        with timed_step(name):
            step()


def _setup_kubespray_project(setup: SetupConfig, mode: NetworkMode) -> None:
    project = setup.kubespray_dir
    clone_or_update_kubespray(setup)
    setup_virtualenv(setup)
    configure_vagrant(setup, mode)
    install_vagrantfile(project)


def _show_access_help(setup: SetupConfig) -> None:
    console.print("[bold]Cluster access:[/bold]")
    console.print("   [green]•[/green] [cyan]kubectl get nodes[/cyan]")
    console.print("   [green]•[/green] [cyan]upm-manager install --all[/cyan]")
    console.print("[bold]Management:[/bold]")
    console.print("   [green]•[/green] Status: [cyan]upm-manager vm status[/cyan]")
    console.print("   [red]•[/red] Stop: [cyan]upm-manager vm halt[/cyan]")
    console.print("   [yellow]•[/yellow] Destroy: [cyan]upm-manager vm destroy[/cyan]")
    console.print(f"   Project directory: [cyan]{setup.kubespray_dir}[/cyan]")


# ============================================================================
# Public API
# ============================================================================


def configure_vagrant(setup: SetupConfig, mode: NetworkMode) -> None:
    """Render ``vagrant/config.rb`` from the template for *mode*.

    Bridge addressing is always asked interactively.
    """
    project = setup.kubespray_dir
    template = project / REL_CONFIG_TEMPLATES / CONFIG_TEMPLATE
    bridge = None
    if mode is NetworkMode.BRIDGE:
        topology = load_topology(template)
        bridge = prompt_bridge_settings(topology.num_instances)
        show_ip_preview(topology, bridge.subnet, bridge.subnet_split4)
    render_config(template, project / REL_VAGRANT_CONFIG, NetworkSettings(mode, bridge), setup.proxy)


def deploy_cluster(setup: SetupConfig, auto_confirm: bool) -> ReconcileAction | None:
    """Show the rendered settings, reconcile existing VMs and bring the fleet up.

    Returns:
        The reconciliation action taken, or None when deployment was declined.
    """
    project = setup.kubespray_dir
    config_path = project / REL_VAGRANT_CONFIG
    settings = load_settings(config_path)
    show_settings(settings, config_path)

    console.print(Panel.fit("\U0001f680 Ready to Deploy Kubernetes Cluster", style="bold green"))
    console.print(f"   [green]1.[/green] [cyan]cd {project}[/cyan]")
    console.print("   [green]2.[/green] [cyan]source venv/bin/activate[/cyan]")
    console.print(f"   [green]3.[/green] [cyan]vagrant {' '.join(VAGRANT_UP_ARGS)}[/cyan]")
    if not confirm("Continue with deployment?", auto_confirm):
        console.print("[yellow]\u23f8\ufe0f  Deployment cancelled.[/yellow]")
        console.print(f"   Config: [cyan]{config_path}[/cyan]")
        console.print(f"   Manual deploy: [cyan]cd {project} && source venv/bin/activate && "
                      f"vagrant {' '.join(VAGRANT_UP_ARGS)}[/cyan]")
        logger.info("Deployment cancelled by user")
        return None

    topology = settings.topology
    with timed_step("deploy_vms"):
        action = reconcile_and_deploy(project, topology.instance_name_prefix, topology.num_instances, auto_confirm)
    console.print("[green]\U0001f389 Deployment completed successfully![/green]")

    if configure_kubectl_access(project):
        display_cluster_info()
    else:
        console.print("[yellow]\u26a0\ufe0f  kubectl configuration failed or artifacts not found[/yellow]")
    _show_access_help(setup)
    return action


def run_setup(*, nat: bool = False, bridge: bool = False, auto_confirm: bool = False,
              setup: SetupConfig | None = None) -> None:
    """Prepare the host, render the Vagrant config and deploy the VM cluster.

    Args:
        nat: Force NAT networking.
        bridge: Force bridge networking (requires ``BRIDGE_INTERFACE``).
        auto_confirm: Answer confirmation prompts with yes.
        setup: Host settings, or None to read them from the environment.

    Raises:
        RuntimeError: If any check or step fails.
    """
    setup = setup or SetupConfig()
    logger.info("Starting Kubespray libvirt environment setup")
    mode = resolve_mode(nat, bridge, setup.bridge_interface, auto_confirm)
    logger.info("Network mode: %s", mode.value)
    if mode is NetworkMode.BRIDGE:
        require_bridge_interface(setup.bridge_interface)

    check_sudo()
    check_system_requirements()
    check_time_sync()
    check_proxy(setup)
    check_connectivity(setup)

    _show_setup_plan(setup, mode)
    confirm_or_cancel("Do you want to proceed with the installation?", auto_confirm,
                      "Installation cancelled by user.")
    _prepare_host(setup, mode, auto_confirm)
    deploy_cluster(setup, auto_confirm)
    logger.info("Kubespray environment setup completed successfully")
