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

"""OpenEBS LVM LocalPV, Prometheus, CloudNative-PG and UPM installation."""

from __future__ import annotations

from rich.panel import Panel

from upm_manager import console, logger
from upm_manager.config import InstallContext
from upm_manager.constants import (
    HELM_TIMEOUT_LONG,
    HELM_TIMEOUT_SHORT,
    LABEL_CNPG_CONTROL_PLANE,
    LABEL_ENABLE,
    LABEL_OPENEBS_CONTROL_PLANE,
    LABEL_OPENEBS_NODE,
    LABEL_PROMETHEUS_NODE,
    LABEL_UPM_PLATFORM_NODE,
    LVM_LOCALPV_STORAGECLASS,
    LVM_PROVISIONER,
    NS_CNPG,
    NS_LVM_LOCALPV,
    NS_PROMETHEUS,
    NS_UPM,
    PROMETHEUS_READY_SELECTORS,
    READY_TIMEOUT_LONG_SECONDS,
    READY_TIMEOUT_SHORT_SECONDS,
    UPM_CLUSTER_ROLE_BINDING,
    UPM_LOGIN_USER,
    UPM_PLATFORM_NODE_PORT,
)
from upm_manager.helm import ChartRef, ensure_helm, prepare_repo, release_exists, upgrade_install
from upm_manager.kube import (
    apply_manifest,
    dump_pod_diagnostics,
    node_internal_ip,
    storageclass_exists,
    wait_for_pods,
)
from upm_manager.labels import (
    DATABASE_OPERATOR_LABELS,
    ENGINE_LABELS,
    MONITORING_LABELS,
    PLATFORM_LABELS,
    STORAGE_CONTROL_LABELS,
    STORAGE_DATA_LABELS,
    label_nodes,
)
from upm_manager.prompts import confirm
from upm_manager.topology import NodeRole
from upm_manager.vagrant_config import load_topology, volume_group


def _proceed(component: str, details: dict[str, str], ctx: InstallContext) -> bool:
    """Show what will be installed and ask for confirmation."""
    console.print(Panel.fit(f"{component} Installation", style="bold blue"))
    for key, value in details.items():
        console.print(f"   [green]•[/green] {key}: [cyan]{value}[/cyan]")
    if confirm(f"Do you want to proceed with {component} installation?", ctx.auto_confirm):
        return True
    console.print(f"[yellow]\u23f8\ufe0f  {component} installation skipped.[/yellow]")
    logger.info("%s installation skipped by user", component)
    return False


def _node_affinity(key: str, operator: str = "Exists", values: list[str] | None = None) -> dict:
    expression: dict = {"key": key, "operator": operator}
    if values is not None:
        expression["values"] = values
    return {
        "nodeAffinity": {
            "requiredDuringSchedulingIgnoredDuringExecution": {
                "nodeSelectorTerms": [{"matchExpressions": [expression]}],
            },
        },
    }


# ============================================================================
# OpenEBS LVM LocalPV
# ============================================================================

def lvm_localpv_values() -> dict:
    return {
        "lvmPlugin": {"allowedTopologies": f"kubernetes.io/hostname,{LABEL_OPENEBS_NODE},"},
        "lvmController": {"nodeSelector": {LABEL_OPENEBS_CONTROL_PLANE: LABEL_ENABLE}},
        "lvmNode": {"nodeSelector": {LABEL_OPENEBS_NODE: LABEL_ENABLE}},
        "analytics": {"enabled": False},
    }


def lvm_storageclass(vg_name: str) -> dict:
    """StorageClass manifest backed by the *vg_name* volume group."""
    return {
        "apiVersion": "storage.k8s.io/v1",
        "kind": "StorageClass",
        "metadata": {"name": LVM_LOCALPV_STORAGECLASS},
        "allowVolumeExpansion": True,
        "volumeBindingMode": "WaitForFirstConsumer",
        "parameters": {
            "shared": "yes",
            "storage": "lvm",
            "volgroup": vg_name,
            "fsType": "ext4",
        },
        "provisioner": LVM_PROVISIONER,
        "allowedTopologies": [
            {"matchLabelExpressions": [{"key": LABEL_OPENEBS_NODE, "values": [LABEL_ENABLE]}]},
        ],
    }


def install_lvm_localpv(ctx: InstallContext) -> None:
    """Install OpenEBS LVM LocalPV and its StorageClass."""
    chart = ChartRef.from_dependencies("lvm_localpv")
    version = ctx.charts.lvm_localpv_chart_version
    vg_name = volume_group(ctx.paths.vagrant_config)
    if not _proceed("OpenEBS LVM LocalPV", {
        "Namespace": NS_LVM_LOCALPV,
        "Helm chart": chart.chart,
        "Helm chart version": version,
        "StorageClass": LVM_LOCALPV_STORAGECLASS,
        "VolumeGroup": vg_name,
        "Installation timeout": HELM_TIMEOUT_LONG,
    }, ctx):
        return

    ensure_helm()
    topology = load_topology(ctx.paths.vagrant_config)
    label_nodes(topology, NodeRole.CONTROL, STORAGE_CONTROL_LABELS)
    label_nodes(topology, (NodeRole.CONTROL, NodeRole.WORKER), STORAGE_DATA_LABELS)

    prepare_repo(chart)
    upgrade_install(chart, NS_LVM_LOCALPV, version, HELM_TIMEOUT_LONG, lvm_localpv_values())
    wait_for_pods(f"release={chart.release}", NS_LVM_LOCALPV, READY_TIMEOUT_LONG_SECONDS, "OpenEBS pods")

    apply_manifest(lvm_storageclass(vg_name), f"StorageClass {LVM_LOCALPV_STORAGECLASS}")
    console.print(f"[green]\u2705 OpenEBS LVM LocalPV installed (StorageClass {LVM_LOCALPV_STORAGECLASS}, "
                  f"volume group {vg_name})[/green]")


# ============================================================================
# Prometheus
# ============================================================================

def prometheus_values() -> dict:
    affinity = _node_affinity(LABEL_PROMETHEUS_NODE)
    return {
        "prometheusOperator": {
            "admissionWebhooks": {
                "patch": {"affinity": affinity},
                "deployment": {"affinity": affinity},
            },
            "affinity": affinity,
        },
        "prometheus": {
            "prometheusSpec": {
                "podMonitorSelectorNilUsesHelmValues": False,
                "serviceMonitorSelectorNilUsesHelmValues": False,
                "affinity": affinity,
                "storageSpec": {
                    "volumeClaimTemplate": {
                        "spec": {
                            "storageClassName": LVM_LOCALPV_STORAGECLASS,
                            "accessModes": ["ReadWriteOnce"],
                            "resources": {"requests": {"storage": "30Gi"}},
                        },
                    },
                },
            },
        },
        "alertmanager": {"alertmanagerSpec": {"affinity": affinity}},
        "grafana": {"affinity": affinity},
        "kube-state-metrics": {"affinity": affinity},
    }


def install_prometheus(ctx: InstallContext) -> None:
    """Install kube-prometheus-stack on the UPM control nodes."""
    chart = ChartRef.from_dependencies("prometheus")
    version = ctx.charts.prometheus_chart_version
    if not _proceed("Prometheus", {
        "Namespace": NS_PROMETHEUS,
        "Helm chart": chart.chart,
        "Helm chart version": version,
        "Storage": f"{LVM_LOCALPV_STORAGECLASS} (30Gi)",
        "Installation timeout": HELM_TIMEOUT_LONG,
    }, ctx):
        return

    ensure_helm()
    prepare_repo(chart)
    topology = load_topology(ctx.paths.vagrant_config)
    label_nodes(topology, NodeRole.CONTROL, MONITORING_LABELS)

    upgrade_install(chart, NS_PROMETHEUS, version, HELM_TIMEOUT_LONG, prometheus_values())
    for selector, what in PROMETHEUS_READY_SELECTORS:
        wait_for_pods(selector, NS_PROMETHEUS, READY_TIMEOUT_LONG_SECONDS, what)
    console.print("[green]\u2705 Prometheus installation completed successfully[/green]")


# ============================================================================
# CloudNative-PG
# ============================================================================

def cnpg_values() -> dict:
    return {
        "config": {
            "data": {
                "ENABLE_INSTANCE_MANAGER_INPLACE_UPDATES": "true",
                "INHERITED_ANNOTATIONS": "categories",
                "INHERITED_LABELS": (
                    "upm.api/service-group.name, upm.api/service-group.type, upm.api/service.type, "
                    "upm.io/owner, upm.api/pod.main-container"
                ),
            },
        },
        "affinity": _node_affinity(LABEL_CNPG_CONTROL_PLANE, "In", [LABEL_ENABLE]),
    }


def install_cnpg(ctx: InstallContext) -> None:
    """Install the CloudNative-PG operator."""
    chart = ChartRef.from_dependencies("cnpg")
    version = ctx.charts.cnpg_chart_version
    if not _proceed("CloudNative-PG", {
        "Namespace": NS_CNPG,
        "Helm chart": chart.chart,
        "Helm chart version": version,
        "Installation timeout": HELM_TIMEOUT_SHORT,
    }, ctx):
        return

    ensure_helm()
    prepare_repo(chart)
    topology = load_topology(ctx.paths.vagrant_config)
    label_nodes(topology, NodeRole.CONTROL, DATABASE_OPERATOR_LABELS)

    upgrade_install(chart, NS_CNPG, version, HELM_TIMEOUT_SHORT, cnpg_values())
    wait_for_pods(f"app.kubernetes.io/instance={chart.release}", NS_CNPG, READY_TIMEOUT_SHORT_SECONDS,
                  "CloudNative-PG operator")
    console.print("[green]\u2705 CloudNative-PG installation completed successfully[/green]")


# ============================================================================
# UPM Engine
# ============================================================================

def install_upm_engine(ctx: InstallContext) -> None:
    """Install the UPM Engine chart."""
    chart = ChartRef.from_dependencies("upm_engine")
    version = ctx.charts.upm_chart_version
    if not _proceed("UPM Engine", {
        "Namespace": NS_UPM,
        "Helm chart": chart.chart,
        "Helm chart version": version,
        "Installation timeout": HELM_TIMEOUT_SHORT,
    }, ctx):
        return

    ensure_helm()
    prepare_repo(chart)
    topology = load_topology(ctx.paths.vagrant_config)
    label_nodes(topology, NodeRole.CONTROL, ENGINE_LABELS)

    upgrade_install(chart, NS_UPM, version, HELM_TIMEOUT_SHORT)
    wait_for_pods(f"app.kubernetes.io/instance={chart.release}", NS_UPM, READY_TIMEOUT_SHORT_SECONDS, "UPM Engine")
    console.print("[green]\u2705 UPM Engine installation completed successfully[/green]")


# ============================================================================
# UPM Platform
# ============================================================================

def upm_platform_values(password: str, release: str) -> dict:
    """Chart values for the platform and its bundled MySQL, Redis and Nacos."""
    service_groups = (
        "elasticsearch", "kafka", "mysql", "postgresql", "redis",
        "redis-cluster", "zookeeper", "cnpg", "innodb-cluster",
    )
    return {
        "nginx": {
            "service": {
                "type": "NodePort",
                "ports": {"http": 80},
                "nodePorts": {"http": UPM_PLATFORM_NODE_PORT},
            },
        },
        "apiserver": {
            "upm": {
                "mysqlUser": {"name": "upm", "password": password},
                "serviceGroup": {name: {"enabled": True} for name in service_groups},
            },
            "mysql": {
                "auth": {"rootPassword": password},
                "primary": {
                    "persistence": {"storageClass": LVM_LOCALPV_STORAGECLASS},
                    "resourcesPreset": "large",
                },
                "resources": {},
            },
            "redis": {
                "master": {
                    "persistence": {"enabled": True, "storageClass": LVM_LOCALPV_STORAGECLASS},
                    "resources": {},
                },
                "auth": {"password": password},
            },
            "nacos": {
                "service": {"type": "NodePort", "loadBalancerIP": ""},
                "persistence": {"storageClass": LVM_LOCALPV_STORAGECLASS},
                "mysql": {
                    "external": {
                        "mysqlMasterHost": f"{release}-mysql",
                        "mysqlMasterPassword": password,
                    },
                },
            },
        },
    }


def upm_admin_binding() -> dict:
    """ClusterRoleBinding granting cluster-admin to the upm-system default account."""
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "ClusterRoleBinding",
        "metadata": {"name": UPM_CLUSTER_ROLE_BINDING},
        "roleRef": {
            "apiGroup": "rbac.authorization.k8s.io",
            "kind": "ClusterRole",
            "name": "cluster-admin",
        },
        "subjects": [{"kind": "ServiceAccount", "name": "default", "namespace": NS_UPM}],
    }


def check_platform_prerequisites() -> None:
    """Require the LVM LocalPV release and StorageClass.

    Raises:
        RuntimeError: If either is missing.
    """
    logger.info("Checking LVM LocalPV prerequisites...")
    lvm = ChartRef.from_dependencies("lvm_localpv")
    if not release_exists(lvm.release, NS_LVM_LOCALPV):
        raise RuntimeError(
            "LVM LocalPV Helm release not found. LVM LocalPV is required for UPM Platform; "
            "run 'upm-manager install --lvmlocalpv' first."
        )
    logger.info("LVM LocalPV Helm release found")
    if not storageclass_exists(LVM_LOCALPV_STORAGECLASS):
        raise RuntimeError(f"Required StorageClass '{LVM_LOCALPV_STORAGECLASS}' not found.")
    logger.info("Required StorageClass '%s' found", LVM_LOCALPV_STORAGECLASS)


def install_upm_platform(ctx: InstallContext) -> None:
    """Install UPM Platform and print its login information."""
    chart = ChartRef.from_dependencies("upm_platform")
    version = ctx.charts.upm_chart_version
    ensure_helm()
    check_platform_prerequisites()
    if not _proceed("UPM Platform", {
        "Namespace": NS_UPM,
        "Helm chart": chart.chart,
        "Helm chart version": version,
        "StorageClass": LVM_LOCALPV_STORAGECLASS,
        "NodePort": str(UPM_PLATFORM_NODE_PORT),
        "Installation timeout": HELM_TIMEOUT_LONG,
    }, ctx):
        return

    prepare_repo(chart)
    topology = load_topology(ctx.paths.vagrant_config)
    label_nodes(topology, NodeRole.CONTROL, PLATFORM_LABELS)

    upgrade_install(chart, NS_UPM, version, HELM_TIMEOUT_LONG, upm_platform_values(ctx.charts.upm_pwd, chart.release))
    selector = f"app.kubernetes.io/instance={chart.release},!job-name"
    try:
        wait_for_pods(selector, NS_UPM, READY_TIMEOUT_LONG_SECONDS, "UPM Platform")
    except RuntimeError:
        logger.error("UPM Platform pods failed to become ready. Checking pod status...")
        dump_pod_diagnostics(selector, NS_UPM)
        raise

    node_ip = node_internal_ip(f"{LABEL_UPM_PLATFORM_NODE}={LABEL_ENABLE}")
    if not node_ip:
        raise RuntimeError("Failed to get UPM Platform node IP")

    apply_manifest(upm_admin_binding(), f"ClusterRoleBinding {UPM_CLUSTER_ROLE_BINDING}")

    console.print(Panel.fit("UPM Platform Installation Completed", style="bold green"))
    console.print(f"   [green]•[/green] Login URL: [cyan]http://{node_ip}:{UPM_PLATFORM_NODE_PORT}/upm-ui/#/login[/cyan]")
    console.print(f"   [green]•[/green] Username: [cyan]{UPM_LOGIN_USER}[/cyan]")
    console.print(f"   [green]•[/green] Password: [cyan]{ctx.charts.upm_pwd}[/cyan]")
