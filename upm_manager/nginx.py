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

"""Host Nginx reverse proxy in front of the UPM Platform."""

from __future__ import annotations

import platform
from datetime import datetime
from pathlib import Path

import sh
from rich.panel import Panel

from upm_manager import console, logger
from upm_manager.config import InstallContext
from upm_manager.constants import (
    GATEWAY_NODE_PORT,
    GATEWAY_PORT,
    GATEWAY_SERVICE,
    LABEL_ENABLE,
    LABEL_UPM_PLATFORM_NODE,
    NGINX_CONF_PATH,
    NS_UPM,
    UI_NODE_PORT,
    UI_PORT,
    UI_SERVICE,
    UPM_LOGIN_USER,
)
from upm_manager.kube import namespace_exists, node_internal_ip, patch_service, service_spec
from upm_manager.prompts import confirm
from upm_manager.utils import command_exists, require_command, run_sudo

NGINX_CONF_TEMPLATE = """\
# For more information on configuration, see:
#   * Official English Documentation: http://nginx.org/en/docs/

user nginx;
worker_processes 2;
error_log /var/log/nginx/error.log;
pid /run/nginx.pid;

# Load dynamic modules. See /usr/share/doc/nginx/README.dynamic.
include /usr/share/nginx/modules/*.conf;

events {{
    worker_connections 1024;
}}

http {{
    log_format  main  '$remote_addr - $remote_user [$time_local] "$request" '
                      '$status $body_bytes_sent "$http_referer" '
                      '"$http_user_agent" "$http_x_forwarded_for"';
    include             /etc/nginx/mime.types;
    default_type        application/octet-stream;

    proxy_buffer_size 512k;
    proxy_buffers 8 1024k;
    proxy_busy_buffers_size 1024k;
    keepalive_timeout 65;

    upstream api {{
        server {node_ip}:{gateway_node_port};
    }}

    upstream ui {{
        server {node_ip}:{ui_node_port};
    }}

    upstream license {{
        server localhost:8080;
    }}

    server {{
        keepalive_requests 120;
        listen       80;
        listen       [::]:80;

        location  /upm-ui/ {{
            proxy_pass  http://ui/upm-ui/;
        }}

        location  /api/ {{
            proxy_pass  http://api/;
        }}

        location  /license/ {{
            proxy_pass  http://license/upm/license/;
        }}

        location  /license-ui/ {{
            root /tmp/license-ui;
            index index.html;
            try_files $uri $uri/ /index.html;
        }}
    }}
}}
"""


def render_nginx_conf(node_ip: str) -> str:
    """nginx.conf proxying ``/upm-ui/`` and ``/api/`` to the platform NodePorts."""
    return NGINX_CONF_TEMPLATE.format(
        node_ip=node_ip,
        gateway_node_port=GATEWAY_NODE_PORT,
        ui_node_port=UI_NODE_PORT,
    )


def check_linux_system() -> None:
    """Raises RuntimeError on anything but Linux."""
    if platform.system() != "Linux":
        raise RuntimeError(f"Nginx configuration is only supported on Linux (detected {platform.system()})")


def _is_active(unit: str) -> bool:
    try:
        sh.systemctl("is-active", "--quiet", unit)
    except sh.ErrorReturnCode:
        return False
    return True


def ensure_node_port(name: str, port: int, node_port: int) -> None:
    """Switch a Service to NodePort *node_port* unless already set."""
    logger.info("Configuring %s service to NodePort...", name)
    spec = service_spec(name, NS_UPM)
    if spec is None:
        logger.warning("%s service not found in namespace %s", name, NS_UPM)
        return
    ports = spec.get("ports") or [{}]
    if spec.get("type") == "NodePort" and ports[0].get("nodePort") == node_port:
        logger.info("%s service already configured as NodePort with port %d", name, node_port)
        return
    logger.info("Patching %s service to NodePort with port %d...", name, node_port)
    patch_service(name, NS_UPM, {
        "spec": {
            "type": "NodePort",
            "ports": [{
                "name": "http",
                "port": port,
                "targetPort": port,
                "nodePort": node_port,
                "protocol": "TCP",
            }],
        },
    })
    console.print(f"[green]\u2705 {name} service configured as NodePort {node_port}[/green]")


def ensure_nginx_installed() -> None:
    if command_exists("nginx"):
        logger.info("Nginx is already installed")
        return
    logger.info("Installing Nginx...")
    try:
        run_sudo("dnf", "install", "-y", "nginx", _fg=True)
    except sh.ErrorReturnCode as err:
        raise RuntimeError("Failed to install Nginx") from err


def write_nginx_conf(content: str, conf_path: str = NGINX_CONF_PATH) -> None:
    """Back up the current config and write *content* in its place."""
    try:
        if Path(conf_path).is_file():
            backup = f"{conf_path}.backup.{datetime.now():%Y%m%d_%H%M%S}"
            run_sudo("cp", conf_path, backup)
            logger.info("Nginx configuration backed up to %s", backup)
        run_sudo("tee", conf_path, _in=content, _out="/dev/null")
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Failed to write {conf_path}") from err
    logger.info("Nginx configuration created successfully")


def restart_nginx() -> None:
    """Validate the config, then reload a running Nginx or enable and start it."""
    try:
        run_sudo("nginx", "-t")
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Nginx configuration test failed: {err.stderr.decode(errors='replace').strip()}") from err
    try:
        if _is_active("nginx"):
            logger.info("Nginx is already running, reloading configuration...")
            run_sudo("systemctl", "reload", "nginx")
        else:
            run_sudo("systemctl", "enable", "nginx")
            run_sudo("systemctl", "start", "nginx")
    except sh.ErrorReturnCode as err:
        raise RuntimeError("Failed to start or reload Nginx") from err
    if not _is_active("nginx"):
        raise RuntimeError("Nginx is not running")


def allow_http_in_firewall() -> None:
    if not _is_active("firewalld"):
        logger.info("Firewalld is not running, skipping firewall configuration")
        return
    try:
        services = str(run_sudo("firewall-cmd", "--list-services")).split()
        if "http" in services:
            logger.info("HTTP service already allowed in firewall")
            return
        run_sudo("firewall-cmd", "--permanent", "--add-service=http")
        run_sudo("firewall-cmd", "--reload")
        logger.info("Firewall configured for HTTP traffic")
    except sh.ErrorReturnCode as err:
        logger.warning("Failed to configure firewall for HTTP: %s", err)


def configure_nginx(ctx: InstallContext) -> None:
    """Expose the UPM Platform through a host Nginx on port 80."""
    check_linux_system()
    require_command("kubectl")
    if not namespace_exists(NS_UPM):
        raise RuntimeError(f"UPM namespace '{NS_UPM}' not found. Please install UPM Platform first.")

    console.print(Panel.fit("Nginx Configuration for UPM Platform", style="bold blue"))
    console.print(f"   [green]•[/green] {GATEWAY_SERVICE} → NodePort {GATEWAY_NODE_PORT}")
    console.print(f"   [green]•[/green] {UI_SERVICE} → NodePort {UI_NODE_PORT}")
    console.print("   [green]•[/green] Nginx reverse proxy on port 80")
    if not confirm("Do you want to proceed with Nginx configuration?", ctx.auto_confirm):
        console.print("[yellow]\u23f8\ufe0f  Nginx configuration skipped.[/yellow]")
        logger.info("Nginx configuration skipped by user")
        return

    ensure_node_port(GATEWAY_SERVICE, GATEWAY_PORT, GATEWAY_NODE_PORT)
    ensure_node_port(UI_SERVICE, UI_PORT, UI_NODE_PORT)
    ensure_nginx_installed()

    node_ip = node_internal_ip(f"{LABEL_UPM_PLATFORM_NODE}={LABEL_ENABLE}") or node_internal_ip()
    if not node_ip:
        raise RuntimeError("Failed to get node IP for Nginx configuration")
    logger.info("Using node IP: %s", node_ip)

    write_nginx_conf(render_nginx_conf(node_ip))
    restart_nginx()
    allow_http_in_firewall()

    console.print("[green]\u2705 Nginx configuration completed successfully[/green]")
    console.print("   [green]•[/green] UPM Platform URL: [cyan]http://<host-ip>/upm-ui/[/cyan]")
    console.print("   [green]•[/green] API Endpoint: [cyan]http://<host-ip>/api/[/cyan]")
    console.print(f"   [green]•[/green] Username: [cyan]{UPM_LOGIN_USER}[/cyan]")
