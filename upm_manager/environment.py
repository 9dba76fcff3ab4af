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

"""Host preparation: system checks, packages, libvirt, Vagrant and Kubespray."""

from __future__ import annotations

import getpass
import os
import platform
import re
import shutil
import socket
import tempfile
import time
from collections.abc import Iterable
from pathlib import Path

import sh
import typer
from rich.panel import Panel
from tenacity import retry, retry_if_result, stop_after_attempt, stop_after_delay, wait_fixed

from upm_manager import console, logger
from upm_manager.config import SetupConfig
from upm_manager.constants import (
    BRIDGE_NETWORK_NAME,
    CONNECTIVITY_TEST_URLS,
    DEFAULT_BRIDGE_NAME,
    HASHICORP_REPO_FILE,
    HOSTONLY_BRIDGE_NAME,
    HOSTONLY_MAC_ADDRESS,
    HOSTONLY_NETWORK_GATEWAY,
    HOSTONLY_NETWORK_NAME,
    HOSTONLY_NETWORK_NETMASK,
    KUBECTL_ACCESS_MAX_ATTEMPTS,
    KUBECTL_ACCESS_WAIT_SECONDS,
    LIBVIRT_PACKAGES,
    NTP_SERVERS,
    PACKAGE_INSTALL_MAX_ATTEMPTS,
    PACKAGE_INSTALL_RETRY_WAIT_SECONDS,
    PLUGIN_DEPENDENCIES,
    REL_ARTIFACTS_DIR,
    REL_SETUP_VAGRANTFILE,
    RECOMMENDED_MEMORY_MB,
    REQUIRED_CPU_CORES,
    REQUIRED_DISK_GB,
    SERVICE_POLL_WAIT_SECONDS,
    SERVICE_START_TIMEOUT_SECONDS,
    SUPPORTED_OS_MARKERS,
    SUPPORTED_RHEL_MAJOR,
    SYSTEM_PACKAGES,
    dep_value,
)
from upm_manager.network import NetworkMode
from upm_manager.prompts import ask, confirm
from upm_manager.utils import command_exists, run_sudo, sudo_prefix

OS_RELEASE = Path("/etc/os-release")
REDHAT_RELEASE = Path("/etc/redhat-release")
SELINUX_CONFIG = "/etc/selinux/config"


def _stderr(err: sh.ErrorReturnCode) -> str:
    return err.stderr.decode(errors="replace").strip()


# ============================================================================
# Operating system
# ============================================================================

def read_os_release(path: Path = OS_RELEASE) -> dict[str, str]:
    """Parse ``KEY=value`` lines of an os-release file, unquoting values."""
    values: dict[str, str] = {}
    if not path.is_file():
        return values
    for line in path.read_text().splitlines():
        key, sep, value = line.partition("=")
        if sep and key.strip():
            values[key.strip()] = value.strip().strip('"').strip("'")
    return values


def check_os(path: Path = OS_RELEASE) -> None:
    """Require a RHEL-family distribution.

    Raises:
        RuntimeError: If the os-release file names no supported distribution.
    """
    text = path.read_text() if path.is_file() else ""
    if not any(marker in text for marker in SUPPORTED_OS_MARKERS):
        raise RuntimeError("This tool is designed for RHEL-based distributions (RHEL, CentOS, Rocky, AlmaLinux)")
    if platform.machine() != "x86_64":
        logger.warning("Host is optimized for x86_64 architecture, detected %s", platform.machine())


def is_rhel() -> bool:
    """Red Hat Enterprise Linux with subscription-manager available."""
    if not REDHAT_RELEASE.is_file():
        return False
    return "Red Hat Enterprise Linux" in REDHAT_RELEASE.read_text() and command_exists("subscription-manager")


def required_rhel_repos(major: str, arch: str) -> list[str]:
    return [
        f"rhel-{major}-for-{arch}-baseos-rpms",
        f"rhel-{major}-for-{arch}-appstream-rpms",
        f"codeready-builder-for-rhel-{major}-{arch}-rpms",
    ]


def parse_enabled_repos(output: str) -> set[str]:
    """Repo IDs from ``subscription-manager repos --list-enabled``."""
    repos = set()
    for line in output.splitlines():
        match = re.match(r"^\s*Repo ID:\s+(\S+)", line)
        if match:
            repos.add(match.group(1))
    return repos


def _enabled_repos() -> set[str]:
    try:
        return parse_enabled_repos(str(run_sudo("subscription-manager", "repos", "--list-enabled")))
    except sh.ErrorReturnCode as err:
        logger.warning("Cannot list enabled repositories: %s", _stderr(err))
        return set()


def ensure_rhel_repositories() -> None:
    """Enable the BaseOS, AppStream and CodeReady Builder repositories on RHEL 9.

    Raises:
        RuntimeError: On another RHEL release or when a repository cannot be enabled.
    """
    if not is_rhel():
        logger.info("Not a RHEL system, skipping RHEL repository checks")
        return
    major = read_os_release().get("VERSION_ID", "").split(".")[0]
    if major != SUPPORTED_RHEL_MAJOR:
        raise RuntimeError(f"Only RHEL {SUPPORTED_RHEL_MAJOR} is supported. Current version: {major or 'unknown'}")

    required = required_rhel_repos(major, platform.machine())
    missing = [repo for repo in required if repo not in _enabled_repos()]
    if not missing:
        logger.info("All required RHEL repositories are already enabled")
        return

    for repo in missing:
        logger.info("Enabling repository: %s", repo)
        try:
            run_sudo("subscription-manager", "repos", f"--enable={repo}")
        except sh.ErrorReturnCode as err:
            raise RuntimeError(f"Required RHEL repository unavailable: {repo}") from err

    enabled = _enabled_repos()
    for repo in required:
        if repo not in enabled:
            raise RuntimeError(f"Failed to enable required RHEL repository: {repo}")
        logger.info("Repository verified: %s", repo)

    try:
        run_sudo("dnf", "clean", "all")
        run_sudo("dnf", "makecache")
    except sh.ErrorReturnCode:
        logger.warning("Failed to update repository cache")
    logger.info("RHEL repositories successfully configured")


# ============================================================================
# Resource and access checks
# ============================================================================

def available_memory_mb(meminfo: Path = Path("/proc/meminfo")) -> int:
    """``MemAvailable`` in MiB, 0 when unknown."""
    if not meminfo.is_file():
        return 0
    for line in meminfo.read_text().splitlines():
        if line.startswith("MemAvailable:"):
            return int(line.split()[1]) // 1024
    return 0


def check_resources() -> None:
    """Check free disk space, CPU cores and available memory.

    Raises:
        RuntimeError: If disk space or CPU cores are below the minimum.
    """
    free_gb = shutil.disk_usage("/").free // (1024 ** 3)
    if free_gb < REQUIRED_DISK_GB:
        raise RuntimeError(
            f"Insufficient disk space. At least {REQUIRED_DISK_GB}GB required, but only {free_gb}GB available.")
    logger.info("Disk space check passed: %dGB available", free_gb)

    cores = os.cpu_count() or 0
    if cores < REQUIRED_CPU_CORES:
        raise RuntimeError(
            f"Insufficient CPU cores. At least {REQUIRED_CPU_CORES} cores required, but only {cores} available.")
    logger.info("CPU cores check passed: %d cores available", cores)

    memory_mb = available_memory_mb()
    if memory_mb < RECOMMENDED_MEMORY_MB:
        logger.warning(
            "Insufficient memory. At least %dGB recommended, but only %dMB available. Performance may be affected.",
            RECOMMENDED_MEMORY_MB // 1024, memory_mb)
    else:
        logger.info("Memory check passed: %dMB available", memory_mb)


def check_system_requirements() -> None:
    console.print(Panel.fit("Checking system requirements", style="bold blue"))
    check_os()
    ensure_rhel_repositories()
    check_resources()
    console.print("[green]\u2705 System requirements check passed[/green]")


def check_sudo() -> None:
    """Make sure sudo works, asking for the password once if needed.

    Raises:
        RuntimeError: If sudo privileges cannot be obtained.
    """
    if not sudo_prefix():
        return
    try:
        sh.sudo("-n", "true")
        return
    except sh.ErrorReturnCode:
        logger.info("This tool requires sudo privileges. Please enter your password when prompted.")
    try:
        sh.sudo("true", _fg=True)
    except sh.ErrorReturnCode as err:
        raise RuntimeError("Failed to obtain sudo privileges") from err
    logger.info("Sudo privileges confirmed")


def _tcp_reachable(host: str, port: int, timeout: float = 5) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def parse_chrony_tracking(output: str) -> tuple[str, float | None]:
    """Leap status and system time offset (seconds) from ``chronyc tracking``."""
    leap = "unknown"
    offset = None
    for line in output.splitlines():
        key, _, value = line.partition(":")
        key = key.strip()
        if key == "Leap status":
            leap = value.strip()
        elif key == "System time":
            parts = value.split()
            if parts:
                try:
                    offset = float(parts[0])
                except ValueError:
                    offset = None
                if offset is not None and "slow" in value:
                    offset = -offset
    return leap, offset


def check_time_sync() -> None:
    """Report chrony/NTP status; problems are warnings, never fatal."""
    logger.info("Checking NTP time synchronization...")
    if not command_exists("chronyd"):
        logger.warning("chrony is not installed. Installing chrony for time synchronization...")
        install_packages(["chrony"])
    manage_service("chronyd", "enable")
    manage_service("chronyd", "start")

    if command_exists("chronyc"):
        try:
            leap, offset = parse_chrony_tracking(str(sh.chronyc("tracking")))
        except sh.ErrorReturnCode:
            leap, offset = "unknown", None
        if leap == "Normal":
            logger.info("NTP synchronization status: Normal")
            if offset is not None and abs(offset) >= 5:
                logger.warning("Time offset: %s seconds (exceeds acceptable range of 5s)", offset)
        else:
            logger.warning("NTP synchronization status: %s", leap)
    else:
        logger.warning("chronyc command not available, cannot verify detailed sync status")

    if not any(_tcp_reachable(server, 123) for server in NTP_SERVERS):
        logger.warning("Cannot reach any NTP servers. This may cause time synchronization issues.")
    logger.info("NTP synchronization check completed")


def _curl_ok(url: str, proxy: str = "") -> bool:
    args = ["-s", "-o", "/dev/null", "--connect-timeout", "10"]
    if proxy:
        args += ["--proxy", proxy]
    try:
        sh.curl(*args, url)
    except sh.ErrorReturnCode:
        return False
    return True


def check_proxy(setup: SetupConfig) -> None:
    """Warn when a configured proxy does not forward traffic."""
    if setup.http_proxy and not _curl_ok("http://www.google.com", setup.http_proxy):
        logger.warning("HTTP proxy %s may not be working correctly", setup.http_proxy)
    if setup.https_proxy and setup.https_proxy != setup.http_proxy \
            and not _curl_ok("https://www.google.com", setup.https_proxy):
        logger.warning("HTTPS proxy %s may not be working correctly", setup.https_proxy)


def check_connectivity(setup: SetupConfig) -> bool:
    """Return True when any of the test URLs answers."""
    for url in CONNECTIVITY_TEST_URLS:
        if _curl_ok(url, setup.http_proxy):
            logger.info("Network connectivity test passed for %s", url)
            return True
    logger.warning("Network connectivity test failed. Please check your internet connection and proxy settings.")
    return False


# ============================================================================
# Packages, services and groups
# ============================================================================

def package_installed(package: str) -> bool:
    try:
        sh.rpm("-q", package)
    except sh.ErrorReturnCode:
        return False
    return True


def _install_package(package: str) -> None:
    attempt = 0

    @retry(
        stop=stop_after_attempt(PACKAGE_INSTALL_MAX_ATTEMPTS),
        wait=wait_fixed(PACKAGE_INSTALL_RETRY_WAIT_SECONDS),
        reraise=True,
    )
    def _attempt() -> None:
        nonlocal attempt
        attempt += 1
        if attempt > 1:
            logger.info("Cleaning dnf cache before retry...")
            run_sudo("dnf", "clean", "all", _ok_code=range(256))
        logger.info("Installing %s... (attempt %d/%d)", package, attempt, PACKAGE_INSTALL_MAX_ATTEMPTS)
        try:
            run_sudo("dnf", "install", "-y", package)
        except sh.ErrorReturnCode as err:
            logger.warning("Failed to install %s: %s", package, _stderr(err))
            raise

    _attempt()


def install_packages(packages: Iterable[str]) -> None:
    """dnf-install every package not already present, with retries.

    Raises:
        RuntimeError: If any package still fails after all attempts.
    """
    failed = []
    installed = skipped = 0
    for package in packages:
        if package_installed(package):
            logger.info("Package %s is already installed", package)
            skipped += 1
            continue
        try:
            _install_package(package)
            installed += 1
        except sh.ErrorReturnCode:
            failed.append(package)
    if failed:
        raise RuntimeError(
            f"Package installation failed after {PACKAGE_INSTALL_MAX_ATTEMPTS} attempts: {' '.join(failed)}. "
            "Check network connectivity and 'dnf repolist'.")
    logger.info("Package installation summary: %d installed, %d already present", installed, skipped)


def _systemctl_ok(*args: str) -> bool:
    try:
        sh.systemctl(*args)
    except sh.ErrorReturnCode:
        return False
    return True


def _wait_for_service_state(name: str, want_active: bool, timeout: int) -> bool:
    """Poll ``systemctl is-active`` until the unit reaches the wanted state."""

    @retry(
        stop=stop_after_delay(timeout),
        wait=wait_fixed(SERVICE_POLL_WAIT_SECONDS),
        retry=retry_if_result(lambda reached: not reached),
        retry_error_callback=lambda _: False,
    )
    def _poll() -> bool:
        return _systemctl_ok("is-active", "--quiet", name) == want_active

    return _poll()


def manage_service(name: str, action: str, timeout: int = SERVICE_START_TIMEOUT_SECONDS) -> None:
    """Idempotently enable, start, stop or disable a systemd unit.

    Args:
        name: Unit name without the ``.service`` suffix.
        action: One of ``enable``, ``start``, ``stop``, ``disable``.
        timeout: Seconds to wait for start/stop to take effect.

    Raises:
        ValueError: On an unknown action.
        RuntimeError: If systemctl fails or a start times out.
    """
    if action not in ("enable", "start", "stop", "disable"):
        raise ValueError(f"Invalid action: {action}. Valid actions: enable, start, stop, disable")
    enabled = _systemctl_ok("is-enabled", "--quiet", name)
    active = _systemctl_ok("is-active", "--quiet", name)
    if (action == "enable" and enabled) or (action == "disable" and not enabled):
        logger.info("Service %s is already %sd", name, action)
        return
    if (action == "start" and active) or (action == "stop" and not active):
        logger.info("Service %s is already %s", name, "running" if active else "stopped")
        return

    logger.info("Running systemctl %s %s", action, name)
    try:
        run_sudo("systemctl", action, name)
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Failed to {action} service {name}: {_stderr(err)}") from err

    if action in ("start", "stop"):
        want_active = action == "start"
        if _wait_for_service_state(name, want_active, timeout):
            logger.info("Service %s %s successfully", name, "started" if want_active else "stopped")
            return
        if want_active:
            raise RuntimeError(f"Service {name} failed to start within {timeout}s timeout")
        logger.warning("Service %s did not stop within %ss, forcing stop...", name, timeout)
        run_sudo("systemctl", "kill", name, _ok_code=range(256))


def add_user_to_group(user: str, group: str) -> None:
    try:
        groups = str(sh.Command("id")("-nG", user)).split()
    except sh.ErrorReturnCode:
        groups = []
    if group in groups:
        logger.info("User %s is already in group %s", user, group)
        return
    logger.info("Adding user '%s' to '%s' group...", user, group)
    try:
        run_sudo("usermod", "-aG", group, user)
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Failed to add {user} to group {group}") from err
    console.print(f"[yellow]\u26a0\ufe0f  User added to {group} group. Log out and back in for it to take effect.[/yellow]")


def install_system_dependencies() -> None:
    console.print(Panel.fit("Installing system dependencies", style="bold blue"))
    install_packages(SYSTEM_PACKAGES)
    try:
        groups = str(sh.dnf("group", "list", "--installed"))
    except sh.ErrorReturnCode:
        groups = ""
    if "Development Tools" not in groups:
        logger.info("Installing Development Tools...")
        try:
            run_sudo("dnf", "groupinstall", "-y", "Development Tools")
        except sh.ErrorReturnCode as err:
            raise RuntimeError("Failed to install Development Tools") from err
    else:
        logger.info("Development Tools are already installed")
    install_packages(LIBVIRT_PACKAGES)


def configure_system_security() -> None:
    """Stop and disable firewalld, put SELinux in permissive now and disabled after reboot."""
    logger.info("Configuring system security...")
    manage_service("firewalld", "stop")
    manage_service("firewalld", "disable")

    try:
        mode = str(sh.getenforce()).strip()
    except (sh.ErrorReturnCode, sh.CommandNotFound):
        mode = "Disabled"
    if mode == "Disabled":
        logger.info("SELinux is already disabled")
        return
    try:
        run_sudo("setenforce", "0")
        run_sudo("sed", "-i", "-e", "s/^SELINUX=enforcing$/SELINUX=disabled/",
                 "-e", "s/^SELINUX=permissive$/SELINUX=disabled/", SELINUX_CONFIG)
    except sh.ErrorReturnCode as err:
        raise RuntimeError("Failed to disable SELinux") from err
    logger.info("SELinux disabled. Changes will be permanent after reboot.")


# ============================================================================
# libvirt
# ============================================================================

def hostonly_network_xml() -> str:
    return (
        "<network>\n"
        f"  <name>{HOSTONLY_NETWORK_NAME}</name>\n"
        f"  <bridge name='{HOSTONLY_BRIDGE_NAME}' stp='on' delay='0'/>\n"
        f"  <mac address='{HOSTONLY_MAC_ADDRESS}'/>\n"
        f"  <ip address='{HOSTONLY_NETWORK_GATEWAY}' netmask='{HOSTONLY_NETWORK_NETMASK}'/>\n"
        "</network>\n"
    )


def bridge_network_xml(network_name: str, bridge_name: str) -> str:
    return (
        "<network>\n"
        f"  <name>{network_name}</name>\n"
        "  <forward mode='bridge'/>\n"
        f"  <bridge name='{bridge_name}'/>\n"
        "</network>\n"
    )


def _virsh_names(*args: str) -> list[str]:
    """Network names printed by ``virsh net-list``."""
    try:
        output = str(run_sudo("virsh", "net-list", "--name", *args))
    except sh.ErrorReturnCode:
        return []
    return [line.strip() for line in output.splitlines() if line.strip()]


def ensure_libvirt_network(name: str, xml: str) -> None:
    """Define, autostart and start a libvirt network unless it already exists.

    Raises:
        RuntimeError: If a new network cannot be defined or started.
    """
    if name in _virsh_names("--all"):
        if name not in _virsh_names():
            run_sudo("virsh", "net-start", name, _ok_code=[0, 1])
        if name not in _virsh_names("--autostart"):
            run_sudo("virsh", "net-autostart", name, _ok_code=[0, 1])
        logger.info("libvirt network '%s' already exists", name)
        return

    logger.info("Creating libvirt network '%s'...", name)
    with tempfile.NamedTemporaryFile("w", prefix=f"{name}_", suffix=".xml") as f:
        f.write(xml)
        f.flush()
        try:
            run_sudo("virsh", "net-define", f.name)
            run_sudo("virsh", "net-autostart", name)
            run_sudo("virsh", "net-start", name)
        except sh.ErrorReturnCode as err:
            raise RuntimeError(f"Failed to create libvirt network '{name}': {_stderr(err)}") from err
    logger.info("libvirt network '%s' created", name)


def _nmcli_has(connection: str) -> bool:
    try:
        run_sudo("nmcli", "con", "show", connection)
    except sh.ErrorReturnCode:
        return False
    return True


def create_bridge_connections(bridge_name: str, interface: str) -> None:
    """Enslave *interface* to a transparent NetworkManager bridge.

    Raises:
        RuntimeError: If a connection cannot be created or the bridge is not UP.
    """
    slave = f"bridge-slave-{interface}"
    try:
        if not _nmcli_has(bridge_name):
            logger.info("Creating transparent bridge %s...", bridge_name)
            run_sudo("nmcli", "con", "add", "type", "bridge", "con-name", bridge_name, "ifname", bridge_name)
            run_sudo("nmcli", "con", "mod", bridge_name, "ipv4.method", "disabled", "ipv6.method", "disabled")
            run_sudo("nmcli", "con", "mod", bridge_name, "bridge.stp", "no", _ok_code=[0, 1])
        if not _nmcli_has(slave):
            logger.info("Adding %s to bridge %s...", interface, bridge_name)
            run_sudo("nmcli", "con", "add", "type", "bridge-slave", "ifname", interface,
                     "master", bridge_name, "con-name", slave)
        run_sudo("nmcli", "con", "up", bridge_name)
        run_sudo("nmcli", "con", "up", slave)
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Failed to configure bridge {bridge_name}: {_stderr(err)}") from err
    time.sleep(2)
    if "state UP" not in str(sh.ip("link", "show", bridge_name)):
        raise RuntimeError(f"Bridge {bridge_name} is not in UP state")


def interface_ipv4(interface: str) -> str:
    """First IPv4 address of *interface*, or empty string."""
    try:
        output = str(sh.ip("-4", "-o", "addr", "show", "dev", interface))
    except sh.ErrorReturnCode:
        return ""
    match = re.search(r"inet (\d+\.\d+\.\d+\.\d+)/", output)
    return match.group(1) if match else ""


def _confirm_bridge_takeover(interface: str, auto_confirm: bool) -> None:
    """Make the user acknowledge that *interface* loses its address."""
    current_ip = interface_ipv4(interface)
    console.print(Panel.fit(
        f"Bridge setup moves {interface} into {DEFAULT_BRIDGE_NAME}"
        + (f"\nIts current address {current_ip} will be removed" if current_ip else ""),
        style="bold yellow",
    ))
    if not confirm("Continue with bridge configuration?", auto_confirm):
        raise typer.Exit(code=0)
    if not current_ip:
        return
    for attempt in range(1, 4):
        answer = ask("Enter current IP address to confirm deletion")
        if answer == current_ip:
            return
        console.print(f"[red]\u274c IP address does not match (attempt {attempt}/3)[/red]")
    logger.info("Bridge configuration cancelled: IP confirmation failed")
    raise typer.Exit(code=0)


def disable_default_network() -> None:
    if "default" not in _virsh_names("--all"):
        return
    run_sudo("virsh", "net-destroy", "default", _ok_code=[0, 1])
    run_sudo("virsh", "net-autostart", "default", "--disable", _ok_code=[0, 1])
    logger.info("Default network disabled")


def setup_libvirt(mode: NetworkMode, bridge_interface: str, auto_confirm: bool) -> None:
    """Enable libvirtd and create the bridge (bridge mode) and host-only networks."""
    console.print(Panel.fit("Setting up libvirt", style="bold blue"))
    manage_service("libvirtd", "enable")
    manage_service("libvirtd", "start")
    add_user_to_group(getpass.getuser(), "libvirt")

    if mode is NetworkMode.BRIDGE:
        _confirm_bridge_takeover(bridge_interface, auto_confirm)
        create_bridge_connections(DEFAULT_BRIDGE_NAME, bridge_interface)
        ensure_libvirt_network(BRIDGE_NETWORK_NAME, bridge_network_xml(BRIDGE_NETWORK_NAME, DEFAULT_BRIDGE_NAME))
    else:
        logger.info("Skipping bridge network configuration (NAT mode)")

    ensure_libvirt_network(HOSTONLY_NETWORK_NAME, hostonly_network_xml())
    disable_default_network()
    console.print("[green]\u2705 libvirt setup completed[/green]")


# ============================================================================
# Vagrant
# ============================================================================

def install_vagrant() -> None:
    if command_exists("vagrant"):
        logger.info("Vagrant is already installed")
        return
    if not Path(HASHICORP_REPO_FILE).is_file():
        logger.info("Adding HashiCorp YUM repository...")
        try:
            run_sudo("yum-config-manager", "--add-repo", dep_value("vagrant", "repo_url"))
        except sh.ErrorReturnCode as err:
            raise RuntimeError("Failed to add the HashiCorp repository") from err
    install_packages(["vagrant"])
    console.print("[green]\u2705 Vagrant installed[/green]")


def plugin_env(setup: SetupConfig) -> dict[str, str]:
    """Environment for ``vagrant plugin install``, with proxies for gem and bundler."""
    env = dict(os.environ)
    if setup.http_proxy or setup.https_proxy:
        for key in ("http_proxy", "HTTP_PROXY", "BUNDLE_HTTP_PROXY", "GEM_HTTP_PROXY"):
            env[key] = setup.http_proxy
        for key in ("https_proxy", "HTTPS_PROXY", "BUNDLE_HTTPS_PROXY", "GEM_HTTPS_PROXY"):
            env[key] = setup.https_proxy
        env["no_proxy"] = env["NO_PROXY"] = "localhost,127.0.0.1,::1"
    return env


def install_vagrant_libvirt_plugin(setup: SetupConfig) -> None:
    """Install EPEL, CRB (non-RHEL), the build dependencies and the vagrant-libvirt plugin.

    Raises:
        RuntimeError: If a repository, package or the plugin cannot be installed.
    """
    plugin = dep_value("vagrant", "plugin")
    try:
        run_sudo("dnf", "install", "-y", dep_value("epel", "release_rpm"))
    except sh.ErrorReturnCode as err:
        raise RuntimeError("Failed to install EPEL repository") from err
    if not is_rhel():
        try:
            run_sudo("dnf", "config-manager", "--set-enabled", "crb")
        except sh.ErrorReturnCode as err:
            raise RuntimeError("Failed to enable CRB repository") from err

    if plugin in str(sh.vagrant("plugin", "list")):
        logger.info("%s plugin is already installed", plugin)
        return
    install_packages(PLUGIN_DEPENDENCIES)
    logger.info("Installing %s plugin...", plugin)
    try:
        sh.vagrant("plugin", "install", plugin, _env=plugin_env(setup), _fg=True)
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Failed to install the {plugin} plugin") from err
    console.print(f"[green]\u2705 {plugin} plugin installed[/green]")


# ============================================================================
# Kubespray project
# ============================================================================

def clone_or_update_kubespray(setup: SetupConfig) -> None:
    """``git pull`` an existing checkout, otherwise clone it.

    Raises:
        RuntimeError: If git fails.
    """
    project = setup.kubespray_dir
    if project.is_dir():
        logger.info("Kubespray directory already exists, updating...")
        try:
            sh.git("pull", _cwd=str(project), _fg=True)
        except sh.ErrorReturnCode as err:
            raise RuntimeError("Kubespray repository update failed") from err
        return
    if not os.access(project.parent, os.W_OK):
        raise RuntimeError(f"No write permission for kubespray directory parent: {project.parent}")
    if setup.git_proxy:
        logger.info("Configuring git proxy: %s", setup.git_proxy)
        sh.git("config", "--global", "http.proxy", setup.git_proxy)
        sh.git("config", "--global", "https.proxy", setup.git_proxy)
    logger.info("Cloning Kubespray repository %s...", setup.kubespray_repo_url)
    try:
        sh.git("clone", setup.kubespray_repo_url, str(project), _fg=True)
    except sh.ErrorReturnCode as err:
        raise RuntimeError("Kubespray repository clone failed") from err


def project_python(setup: SetupConfig) -> str:
    """Interpreter used to build the project virtualenv.

    Uses pyenv with the configured version when pyenv is installed, else the
    ``python3`` on PATH.
    """
    if not command_exists("pyenv"):
        logger.warning("pyenv not found, using python3 from PATH instead of Python %s", setup.python_version)
        return "python3"
    cwd = str(setup.kubespray_dir)
    try:
        sh.pyenv("install", "-s", setup.python_version, _fg=True)
        sh.pyenv("local", setup.python_version, _cwd=cwd)
        return str(sh.pyenv("which", "python3", _cwd=cwd)).strip()
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Failed to prepare Python {setup.python_version} with pyenv") from err


def setup_virtualenv(setup: SetupConfig) -> None:
    """Create ``<kubespray>/venv`` and install the Kubespray requirements.

    Raises:
        RuntimeError: If requirements.txt is missing or pip fails.
    """
    project = setup.kubespray_dir
    requirements = project / "requirements.txt"
    if not requirements.is_file():
        raise RuntimeError(f"requirements.txt not found in {project}")
    venv = project / "venv"
    try:
        if not venv.is_dir():
            logger.info("Creating virtual environment: %s", venv)
            sh.Command(project_python(setup))("-m", "venv", str(venv))
        else:
            logger.info("Virtual environment already exists: %s", venv)
        pip = sh.Command(str(venv / "bin" / "pip"))
        proxy = [f"--proxy={setup.http_proxy}"] if setup.http_proxy else []
        pip("install", *proxy, "--upgrade", "pip", _fg=True)
        pip("install", *proxy, "-r", str(requirements), _fg=True)
    except sh.ErrorReturnCode as err:
        raise RuntimeError("Kubespray requirements installation failed") from err
    logger.info("Virtual environment setup completed")


def install_vagrantfile(project: Path) -> None:
    """Replace the project Vagrantfile with the libvirt-aware one from the fork."""
    source = project / REL_SETUP_VAGRANTFILE
    if not source.is_file():
        raise RuntimeError(f"Source Vagrantfile not found: {source}")
    shutil.copyfile(source, project / "Vagrantfile")
    logger.info("Successfully replaced Vagrantfile")


# ============================================================================
# kubectl access
# ============================================================================

def local_kubectl() -> Path:
    return Path.home() / ".local" / "bin" / "kubectl"


def local_kubeconfig() -> Path:
    return Path.home() / ".kube" / "config"


def _wait_for_kubectl(kubectl: Path, kubeconfig: Path) -> bool:
    """Probe the cluster with the copied kubectl, retrying while it starts."""
    attempt = 0

    @retry(
        stop=stop_after_attempt(KUBECTL_ACCESS_MAX_ATTEMPTS),
        wait=wait_fixed(KUBECTL_ACCESS_WAIT_SECONDS),
        reraise=True,
    )
    def _attempt() -> None:
        nonlocal attempt
        attempt += 1
        logger.info("Attempt %d/%d: Testing kubectl connection...", attempt, KUBECTL_ACCESS_MAX_ATTEMPTS)
        sh.Command(str(kubectl))(f"--kubeconfig={kubeconfig}", "cluster-info", _timeout=10)

    try:
        _attempt()
    except (sh.ErrorReturnCode, sh.TimeoutException):
        logger.warning(
            "kubectl connection test failed after %d attempts - cluster may still be starting",
            KUBECTL_ACCESS_MAX_ATTEMPTS)
        return False
    logger.info("kubectl connection test successful")
    return True


def configure_kubectl_access(project: Path) -> bool:
    """Install the cluster's kubectl and admin.conf for the current user.

    Returns:
        True when both files were installed; the connection test only warns.
    """
    artifacts = project / REL_ARTIFACTS_DIR
    if not artifacts.is_dir():
        logger.warning("Artifacts directory not found: %s", artifacts)
        logger.warning("kubectl configuration skipped. You may need to configure it manually.")
        return False

    kubectl, kubeconfig = local_kubectl(), local_kubeconfig()
    installed = 0
    for source, dest, mode in ((artifacts / "kubectl", kubectl, 0o755), (artifacts / "admin.conf", kubeconfig, 0o600)):
        if not source.is_file():
            logger.warning("%s not found, copy it from the cluster manually", source)
            continue
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, dest)
        dest.chmod(mode)
        logger.info("Installed %s", dest)
        installed += 1

    if installed < 2:
        logger.warning("kubectl configuration partially completed (%d/2 steps)", installed)
        return False
    _wait_for_kubectl(kubectl, kubeconfig)
    console.print("[green]\u2705 kubectl configured for local access[/green]")
    return True


def display_cluster_info() -> None:
    """Print cluster-info, nodes, namespaces and kube-system pods."""
    kubectl, kubeconfig = local_kubectl(), local_kubeconfig()
    if not kubectl.is_file() or not kubeconfig.is_file():
        logger.warning("kubectl or kubeconfig not found. Skipping cluster info display.")
        return
    run = sh.Command(str(kubectl)).bake(f"--kubeconfig={kubeconfig}")
    console.print(Panel.fit("Kubernetes Cluster Information", style="bold green"))
    for title, args in (
        ("Cluster Status", ("cluster-info",)),
        ("Nodes", ("get", "nodes", "-o", "wide")),
        ("Namespaces", ("get", "namespaces")),
        ("System Pods (kube-system)", ("get", "pods", "-n", "kube-system")),
    ):
        console.print(f"[bold]{title}:[/bold]")
        try:
            console.print(str(run(*args, _timeout=30)))
        except (sh.ErrorReturnCode, sh.TimeoutException):
            console.print(f"   [red]• Unable to retrieve {title.lower()}[/red]")
            if args == ("cluster-info",):
                console.print("   [yellow]• The cluster may still be initializing[/yellow]")
                return
    console.print(f"   [green]•[/green] Config: [cyan]{kubeconfig}[/cyan]")
    console.print(f"   [green]•[/green] Binary: [cyan]{kubectl}[/cyan]")
