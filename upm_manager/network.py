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

"""VM network mode selection and bridge settings."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from enum import Enum

import sh
from rich.panel import Panel

from upm_manager import console, logger
from upm_manager.constants import DEFAULT_BRIDGE_NAME
from upm_manager.prompts import ask, choose


class NetworkMode(str, Enum):
    NAT = "nat"
    BRIDGE = "bridge"


@dataclass(frozen=True)
class BridgeSettings:
    """Static addressing for bridge mode.

    Attributes:
        starting_ip: Base address; VM ``i`` gets last octet ``start + i``.
        netmask: Subnet mask.
        gateway: Default gateway.
        dns_server: DNS server.
        bridge_nic: Host bridge the VMs attach to.
    """

    starting_ip: str
    netmask: str
    gateway: str
    dns_server: str
    bridge_nic: str = DEFAULT_BRIDGE_NAME

    @property
    def subnet(self) -> str:
        """First three octets of the starting IP."""
        return self.starting_ip.rsplit(".", 1)[0]

    @property
    def subnet_split4(self) -> int:
        """Last octet of the starting IP."""
        return int(self.starting_ip.rsplit(".", 1)[1])


@dataclass(frozen=True)
class NetworkSettings:
    mode: NetworkMode
    bridge: BridgeSettings | None = None


# ============================================================================
# Validation
# ============================================================================

def is_valid_ipv4(value: str) -> bool:
    """Return True for a dotted-quad IPv4 address."""
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return value.count(".") == 3


def max_start_octet(num_instances: int) -> int:
    return 254 - num_instances


def validate_starting_ip(value: str, num_instances: int) -> str | None:
    """Check a bridge starting IP.

    Returns:
        An error message, or None when the address leaves room for
        *num_instances* consecutive VM addresses.
    """
    if not is_valid_ipv4(value):
        return f"Invalid IP address format: {value}"
    octet = int(value.rsplit(".", 1)[1])
    upper = max_start_octet(num_instances)
    if not 1 <= octet <= upper:
        return f"Fourth octet ({octet}) must be between 1 and {upper} for VM allocation"
    return None


def _validate_ip(value: str) -> str | None:
    if not value:
        return "IP address cannot be empty"
    if not is_valid_ipv4(value):
        return f"Invalid IP address format: {value}"
    return None


def interface_exists(name: str) -> bool:
    try:
        sh.ip("link", "show", name)
    except sh.ErrorReturnCode:
        return False
    return True


def require_bridge_interface(name: str) -> None:
    """Fail unless the host NIC named by ``BRIDGE_INTERFACE`` exists.

    Raises:
        RuntimeError: If *name* is empty or not a host interface.
    """
    if not name:
        raise RuntimeError("Bridge mode requires BRIDGE_INTERFACE to name a host network interface")
    if not interface_exists(name):
        raise RuntimeError(f"Network interface '{name}' does not exist")
    logger.info("Using bridge interface: %s", name)


# ============================================================================
# Mode selection
# ============================================================================

def resolve_mode(nat: bool, bridge: bool, bridge_interface: str, auto_confirm: bool) -> NetworkMode:
    """Pick the network mode from flags, ``BRIDGE_INTERFACE`` or a prompt.

    Raises:
        RuntimeError: If both ``--nat`` and ``--bridge`` are given.
    """
    if nat and bridge:
        raise RuntimeError("--nat and --bridge are mutually exclusive")
    if nat:
        return NetworkMode.NAT
    if bridge:
        return NetworkMode.BRIDGE
    if bridge_interface:
        logger.info("BRIDGE_INTERFACE detected: %s - using bridge network", bridge_interface)
        return NetworkMode.BRIDGE
    if auto_confirm:
        return NetworkMode.NAT
    picked = choose("Select VM network mode", [m.value for m in NetworkMode])
    return NetworkMode(picked)


def prompt_bridge_settings(num_instances: int) -> BridgeSettings:
    """Ask for bridge addressing; never auto-confirmed."""
    console.print(Panel.fit("Bridge Network Configuration", style="bold blue"))
    starting_ip = ask(
        "Enter starting IP for VM allocation (e.g., 192.168.1.10)",
        validator=lambda v: validate_starting_ip(v, num_instances),
    )
    netmask = ask("Enter netmask (e.g., 255.255.255.0)", validator=_validate_ip)
    subnet = starting_ip.rsplit(".", 1)[0]
    gateway = ask(f"Enter gateway IP (e.g., {subnet}.1)", validator=_validate_ip)
    dns_server = ask(f"Enter DNS server IP (e.g., 8.8.8.8 or {gateway})", validator=_validate_ip)

    settings = BridgeSettings(starting_ip=starting_ip, netmask=netmask, gateway=gateway, dns_server=dns_server)
    console.print("[green]\u2705 Network configuration summary:[/green]")
    console.print(f"   Starting IP: {settings.starting_ip}")
    console.print(f"   Netmask:     {settings.netmask}")
    console.print(f"   Gateway:     {settings.gateway}")
    console.print(f"   DNS Server:  {settings.dns_server}")
    console.print(f"   Bridge NIC:  {settings.bridge_nic}")
    return settings
