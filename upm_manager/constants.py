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

"""Constants, dependency loading, and dep_value helper."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

# -- Resolved paths --
PACKAGE_DIR = Path(__file__).resolve().parent


def load_dependencies() -> dict:
    """Load Helm repositories and chart versions from dependencies.yaml.

    Returns:
        Parsed YAML content as a nested dictionary.
    """
    deps_file = PACKAGE_DIR / "dependencies.yaml"
    with open(deps_file) as f:
        return yaml.safe_load(f)


DEPENDENCIES = load_dependencies()


def dep_value(*keys: str, default: Any = None) -> Any:
    """Safely traverse the DEPENDENCIES dict by key path.

    Args:
        *keys: Sequence of dictionary keys to traverse.
        default: Value to return if any key is missing.

    Returns:
        The value at the nested key path, or *default* if not found.
    """
    node = DEPENDENCIES
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


# -- Script metadata --
TOOL_NAME = "UPM Manager"
TOOL_AUTHOR = "UPM Team"
TOOL_LICENSE = "Apache License 2.0"

# -- Kubespray project layout --
DEFAULT_KUBESPRAY_DIRNAME = "kubespray"
REL_VAGRANT_CONFIG = "vagrant/config.rb"
REL_ARTIFACTS_DIR = "inventory/sample/artifacts"
REL_SETUP_VAGRANTFILE = "vagrant_setup_scripts/Vagrantfile"
REL_CONFIG_TEMPLATES = "vagrant_setup_scripts/vagrant-config"
CONFIG_TEMPLATE = "bridge_network-config.rb"
DEFAULT_LOG_FILENAME = "upm_manager.log"

# -- Vagrant --
VAGRANT_PROVIDER = "libvirt"
VAGRANT_UP_ARGS = ("up", f"--provider={VAGRANT_PROVIDER}", "--no-parallel")

# -- Topology config keys (config.rb) --
KEY_NUM_INSTANCES = "num_instances"
KEY_KUBE_MASTER_INSTANCES = "kube_master_instances"
KEY_UPM_CTL_INSTANCES = "upm_ctl_instances"
KEY_INSTANCE_NAME_PREFIX = "instance_name_prefix"
KEY_VOLUME_GROUP = "kube_node_instances_volume_group"
TOPOLOGY_KEYS = (
    KEY_NUM_INSTANCES,
    KEY_KUBE_MASTER_INSTANCES,
    KEY_UPM_CTL_INSTANCES,
    KEY_INSTANCE_NAME_PREFIX,
)

# -- Vagrant config defaults --
DEFAULT_VOLUME_GROUP = "local_vg_dev"
DEFAULT_KUBE_VERSION = "1.33.2"
DEFAULT_VM_OS = "rockylinux9"
DEFAULT_NETWORK_PLUGIN = "calico"
DEFAULT_PYTHON_VERSION = "3.12.11"
HIGH_RESOURCE_CPUS = 32
HIGH_RESOURCE_MEMORY_GB = 128

# -- Network --
DEFAULT_BRIDGE_NAME = "br0"
NAT_NETWORK_CIDR = "192.168.121.0/24"
HOSTONLY_NETWORK_NAME = "hostonly-network"
HOSTONLY_BRIDGE_NAME = "virbr2"
HOSTONLY_MAC_ADDRESS = "52:54:00:12:34:57"
BRIDGE_NETWORK_NAME = "bridge-network"
HOSTONLY_NETWORK_GATEWAY = "192.168.200.1"
HOSTONLY_NETWORK_NETMASK = "255.255.255.0"
DEFAULT_NO_PROXY = "localhost,127.0.0.1,10.0.0.0/8,192.168.0.0/16,172.16.0.0/12,.local"

# -- Host requirements --
REQUIRED_DISK_GB = 200
RECOMMENDED_MEMORY_MB = 32768
REQUIRED_CPU_CORES = 16
SUPPORTED_OS_MARKERS = ("Red Hat", "CentOS", "Rocky", "AlmaLinux")
SUPPORTED_RHEL_MAJOR = "9"
NTP_SERVERS = ("pool.ntp.org", "time.nist.gov", "time.google.com")
CONNECTIVITY_TEST_URLS = ("http://www.google.com", "https://github.com", "https://pypi.org")

# -- Packages --
SYSTEM_PACKAGES = ("curl", "git", "rsync", "yum-utils", "chrony")
PACKAGE_INSTALL_MAX_ATTEMPTS = 3
PACKAGE_INSTALL_RETRY_WAIT_SECONDS = 5
SERVICE_START_TIMEOUT_SECONDS = 30
SERVICE_POLL_WAIT_SECONDS = 2
HASHICORP_REPO_FILE = "/etc/yum.repos.d/hashicorp.repo"
LIBVIRT_PACKAGES = (
    "qemu-kvm", "libvirt", "libvirt-python3", "libvirt-client",
    "virt-install", "virt-viewer", "virt-manager",
)
PLUGIN_DEPENDENCIES = (
    "pkgconf-pkg-config", "libvirt-libs", "libvirt-devel", "libxml2-devel",
    "libxslt-devel", "ruby-devel", "gcc", "gcc-c++", "make", "krb5-devel",
    "zlib-devel", "bridge-utils",
)

# -- Namespaces --
NS_LVM_LOCALPV = "openebs"
NS_PROMETHEUS = "prometheus"
NS_CNPG = "cnpg-system"
NS_UPM = "upm-system"

# -- Storage --
LVM_LOCALPV_STORAGECLASS = "lvm-localpv"
LVM_PROVISIONER = "local.csi.openebs.io"

# -- Node labels --
LABEL_OPENEBS_CONTROL_PLANE = "openebs.io/control-plane"
LABEL_OPENEBS_NODE = "openebs.io/node"
LABEL_PROMETHEUS_NODE = "prometheus.node"
LABEL_CNPG_CONTROL_PLANE = "cnpg.io/control-plane"
LABEL_UPM_ENGINE_NODE = "upm.engine.node"
LABEL_UPM_PLATFORM_NODE = "upm.platform.node"
LABEL_NACOS_CONTROL_PLANE = "nacos.io/control-plane"
LABEL_MYSQL_NODE = "mysql.standalone.node"
LABEL_REDIS_NODE = "redis.standalone.node"
LABEL_ENABLE = "enable"

# -- Helm --
HELM_REPO_MAX_ATTEMPTS = 3
HELM_REPO_RETRY_WAIT_SECONDS = 10
HELM_TIMEOUT_LONG = "15m"
HELM_TIMEOUT_SHORT = "5m"

# -- Readiness polling --
READY_TIMEOUT_LONG_SECONDS = 900
READY_TIMEOUT_SHORT_SECONDS = 300
KUBECTL_ACCESS_MAX_ATTEMPTS = 4
KUBECTL_ACCESS_WAIT_SECONDS = 30

PROMETHEUS_READY_SELECTORS = (
    ("app.kubernetes.io/name=kube-prometheus-stack-prometheus-operator", "Prometheus operator"),
    ("app.kubernetes.io/name=grafana", "Grafana"),
    ("app.kubernetes.io/name=alertmanager", "AlertManager"),
    ("app.kubernetes.io/name=kube-state-metrics", "Kube State Metrics"),
    ("app.kubernetes.io/name=prometheus-node-exporter", "Prometheus Node Exporter"),
)

# -- UPM Platform access --
UPM_PLATFORM_NODE_PORT = 32010
UPM_LOGIN_USER = "super_root"
UPM_CLUSTER_ROLE_BINDING = "upm-system-admin-default-account"

# -- Nginx --
NGINX_CONF_PATH = "/etc/nginx/nginx.conf"
GATEWAY_SERVICE = "upm-platform-gateway"
GATEWAY_PORT = 8080
GATEWAY_NODE_PORT = 31404
UI_SERVICE = "upm-platform-ui"
UI_PORT = 80
UI_NODE_PORT = 31405

# -- libvirt --
LIBVIRT_URI = "qemu:///system"
