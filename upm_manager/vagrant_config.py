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

"""Reading and rendering the Kubespray Vagrant ``config.rb``."""

from __future__ import annotations

import re
from pathlib import Path

from pydantic import BaseModel, ValidationError
from rich.panel import Panel
from rich.table import Table

from upm_manager import console, logger
from upm_manager.config import ClusterTopology, ProxySettings
from upm_manager.constants import (
    DEFAULT_KUBE_VERSION,
    DEFAULT_NETWORK_PLUGIN,
    DEFAULT_VM_OS,
    DEFAULT_VOLUME_GROUP,
    HIGH_RESOURCE_CPUS,
    HIGH_RESOURCE_MEMORY_GB,
    KEY_INSTANCE_NAME_PREFIX,
    KEY_KUBE_MASTER_INSTANCES,
    KEY_NUM_INSTANCES,
    KEY_UPM_CTL_INSTANCES,
    KEY_VOLUME_GROUP,
    TOPOLOGY_KEYS,
)
from upm_manager.network import NetworkMode, NetworkSettings
from upm_manager.topology import NodeRole, classify_node

_ASSIGNMENT = re.compile(r"^\$(\w+)\s*=\s*(.*)$")


# ============================================================================
# Reading
# ============================================================================

def parse_value(raw: str) -> int | bool | str:
    """Convert a Ruby literal to a Python value, dropping a trailing comment."""
    raw = raw.strip()
    if raw.startswith('"'):
        end = raw.find('"', 1)
        return raw[1:end] if end > 0 else raw[1:]
    raw = raw.split("#", 1)[0].strip()
    if re.fullmatch(r"-?\d+", raw):
        return int(raw)
    if raw in ("true", "false"):
        return raw == "true"
    return raw


def read_values(path: Path) -> dict[str, int | bool | str]:
    """Scrape every uncommented ``$key = value`` line of a config file.

    Args:
        path: Path to ``config.rb``.

    Returns:
        Mapping of variable name (without ``$``) to its parsed value.
    """
    values: dict[str, int | bool | str] = {}
    for line in path.read_text().splitlines():
        m = _ASSIGNMENT.match(line)
        if m:
            values[m.group(1)] = parse_value(m.group(2))
    return values


def load_topology(path: Path) -> ClusterTopology:
    """Read the four topology keys from *path*.

    Raises:
        RuntimeError: If the file or any topology key is missing, or the
            values are inconsistent.
    """
    if not path.is_file():
        raise RuntimeError(f"Config file not found: {path}")
    logger.info("Extracting Vagrant configuration variables from: %s", path)
    values = read_values(path)
    missing = [key for key in TOPOLOGY_KEYS if values.get(key) in (None, "")]
    if missing:
        raise RuntimeError(f"Required Vagrant configuration variables are missing or empty: {', '.join(missing)}")
    try:
        return ClusterTopology(
            num_instances=values[KEY_NUM_INSTANCES],
            kube_master_instances=values[KEY_KUBE_MASTER_INSTANCES],
            upm_ctl_instances=values[KEY_UPM_CTL_INSTANCES],
            instance_name_prefix=values[KEY_INSTANCE_NAME_PREFIX],
        )
    except ValidationError as err:
        raise RuntimeError(f"Invalid cluster topology in {path}: {err}") from err


def volume_group(path: Path) -> str:
    """Volume group for LVM LocalPV, falling back to the default."""
    if path.is_file():
        vg = read_values(path).get(KEY_VOLUME_GROUP)
        if isinstance(vg, str) and vg:
            logger.info("Found volume group name '%s' in %s", vg, path)
            return vg
    logger.info("Could not find volume group name in %s, using default: %s", path, DEFAULT_VOLUME_GROUP)
    return DEFAULT_VOLUME_GROUP


class VagrantSettings(BaseModel):
    """Resource and display settings of the Vagrant config."""

    topology: ClusterTopology
    vm_cpus: int = 8
    vm_memory: int = 16384
    kube_master_vm_cpus: int = 4
    kube_master_vm_memory: int = 4096
    upm_control_plane_vm_cpus: int = 12
    upm_control_plane_vm_memory: int = 24576
    kube_version: str = DEFAULT_KUBE_VERSION
    os: str = DEFAULT_VM_OS
    network_plugin: str = DEFAULT_NETWORK_PLUGIN
    volume_group: str = DEFAULT_VOLUME_GROUP

    @property
    def total_cpus(self) -> int:
        t = self.topology
        return (t.worker_count * self.vm_cpus
                + t.kube_master_instances * self.kube_master_vm_cpus
                + t.upm_ctl_instances * self.upm_control_plane_vm_cpus)

    @property
    def total_memory_gb(self) -> int:
        t = self.topology
        total_mb = (t.worker_count * self.vm_memory
                    + t.kube_master_instances * self.kube_master_vm_memory
                    + t.upm_ctl_instances * self.upm_control_plane_vm_memory)
        return total_mb // 1024

    @property
    def high_resource(self) -> bool:
        return self.total_cpus > HIGH_RESOURCE_CPUS or self.total_memory_gb > HIGH_RESOURCE_MEMORY_GB


def load_settings(path: Path) -> VagrantSettings:
    """Read topology plus resource settings, keeping defaults for absent keys."""
    topology = load_topology(path)
    values = read_values(path)
    fields = {name: values[name] for name in VagrantSettings.model_fields if name != "topology" and name in values}
    if KEY_VOLUME_GROUP in values:
        fields["volume_group"] = values[KEY_VOLUME_GROUP]
    return VagrantSettings(topology=topology, **fields)


def show_settings(settings: VagrantSettings, path: Path) -> None:
    """Print the cluster configuration summary."""
    t = settings.topology
    table = Table(title="Kubernetes Cluster Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Kubernetes", settings.kube_version)
    table.add_row("OS", settings.os)
    table.add_row("Network Plugin", settings.network_plugin)
    table.add_row("Prefix", t.instance_name_prefix)
    table.add_row("Masters", f"{t.kube_master_instances} × {settings.kube_master_vm_cpus}C/"
                             f"{settings.kube_master_vm_memory // 1024}GB")
    table.add_row("Workers", f"{t.worker_count} × {settings.vm_cpus}C/{settings.vm_memory // 1024}GB")
    table.add_row("UPM Control", f"{t.upm_ctl_instances} × {settings.upm_control_plane_vm_cpus}C/"
                                 f"{settings.upm_control_plane_vm_memory // 1024}GB")
    table.add_row("Total Nodes", str(t.num_instances))
    table.add_row("Total CPUs", f"{settings.total_cpus} cores")
    table.add_row("Total Memory", f"{settings.total_memory_gb}GB")
    table.add_row("Config", str(path))
    console.print(table)
    if settings.high_resource:
        console.print(
            f"[red]\u26a0\ufe0f  Warning: High resource requirements "
            f"({settings.total_cpus}C/{settings.total_memory_gb}GB)[/red]"
        )


# ============================================================================
# Rendering
# ============================================================================

def _quoted(value: str) -> str:
    return f'"{value}"'


def rewrite_assignments(text: str, replacements: dict[str, str]) -> str:
    """Replace the right-hand side of ``$key = ...`` lines.

    Args:
        text: Config file content.
        replacements: Variable name to already-rendered Ruby literal.

    Returns:
        The rewritten content; lines for other keys are left untouched.
    """
    out = []
    for line in text.splitlines(keepends=True):
        m = _ASSIGNMENT.match(line)
        if m and m.group(1) in replacements:
            newline = "\n" if line.endswith("\n") else ""
            line = f"${m.group(1)} = {replacements[m.group(1)]}{newline}"
        out.append(line)
    return "".join(out)


def uncomment_assignments(text: str, replacements: dict[str, str]) -> str:
    """Turn ``# $key = ""`` placeholder lines into live assignments."""
    out = []
    for line in text.splitlines(keepends=True):
        m = re.match(r'^# \$(\w+) = ""', line)
        if m and m.group(1) in replacements:
            newline = "\n" if line.endswith("\n") else ""
            line = f"${m.group(1)} = {replacements[m.group(1)]}{newline}"
        out.append(line)
    return "".join(out)


def render_config(template: Path, dest: Path, network: NetworkSettings, proxy: ProxySettings | None) -> None:
    """Copy the config template to *dest* and apply network and proxy settings.

    Args:
        template: Template ``config.rb`` shipped with the Kubespray fork.
        dest: Destination ``vagrant/config.rb``.
        network: Selected network mode and, for bridge mode, its addressing.
        proxy: Proxy settings, or None to keep the proxy lines commented.

    Raises:
        RuntimeError: If the template is missing or bridge mode lacks settings.
    """
    if not template.is_file():
        raise RuntimeError(f"Vagrant config template not found: {template}")
    bridge = network.bridge
    if network.mode is NetworkMode.BRIDGE and bridge is None:
        raise RuntimeError("Bridge network mode requires bridge settings")

    replacements = {"vm_network": _quoted(network.mode.value)}
    if network.mode is NetworkMode.BRIDGE:
        replacements.update({
            "subnet": _quoted(bridge.subnet),
            "netmask": _quoted(bridge.netmask),
            "gateway": _quoted(bridge.gateway),
            "dns_server": _quoted(bridge.dns_server),
            "subnet_split4": str(bridge.subnet_split4),
            "bridge_nic": _quoted(bridge.bridge_nic),
        })
    logger.info("Rendering template %s to %s", template, dest)
    text = rewrite_assignments(template.read_text(), replacements)

    if proxy is not None:
        proxy_values = {
            "http_proxy": _quoted(proxy.http_proxy),
            "https_proxy": _quoted(proxy.https_proxy),
            "no_proxy": _quoted(proxy.no_proxy),
        }
        if proxy.additional_no_proxy:
            proxy_values["additional_no_proxy"] = _quoted(proxy.additional_no_proxy)
        text = uncomment_assignments(text, proxy_values)
        logger.info("Proxy configuration applied: HTTP_PROXY=%s HTTPS_PROXY=%s", proxy.http_proxy, proxy.https_proxy)
    else:
        logger.info("No HTTP_PROXY set, keeping proxy settings commented out")

    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_text(text)
    logger.info("Vagrant config.rb configuration completed: %s", dest)


def ip_preview(topology: ClusterTopology, subnet: str, start_octet: int) -> list[tuple[str, str, NodeRole]]:
    """VM name, address and role for every instance of a bridge deployment."""
    return [
        (topology.vm_name(i), f"{subnet}.{start_octet + i}", classify_node(i, topology))
        for i in range(1, topology.num_instances + 1)
    ]


def show_ip_preview(topology: ClusterTopology, subnet: str, start_octet: int) -> None:
    console.print(Panel.fit("Virtual Machine IP Address Preview", style="bold blue"))
    table = Table()
    table.add_column("VM", style="cyan")
    table.add_column("IP", style="green")
    table.add_column("Role", style="yellow")
    for name, ip, role in ip_preview(topology, subnet, start_octet):
        table.add_row(name, ip, role.value)
    console.print(table)
