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

"""Shared fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from upm_manager.config import ChartConfig, ClusterTopology, InstallContext, PathsConfig

CONFIG_RB = """\
# Vagrant configuration file for Kubespray

# $http_proxy = ""
# $https_proxy = ""
# $no_proxy = ""
# $additional_no_proxy = ""

$instance_name_prefix = "k8s"
$vm_cpus = 8                    # Number of CPU cores per worker node
$vm_memory = 16384              # Memory in MB per worker node (16GB)
$kube_master_vm_cpus = 4
$kube_master_vm_memory = 4096
$upm_control_plane_vm_cpus = 4
$upm_control_plane_vm_memory = 4096
$kube_node_instances_with_disks = true
$kube_node_instances_volume_group = "data_vg"

$num_instances = 5
$etcd_instances = 1
$kube_master_instances = 1
$upm_ctl_instances = 1

$os = "rockylinux9"
$vm_network = "bridge"
$subnet_split4 = 100
$subnet = "192.168.29"
$dns_server = "8.8.8.8"         # DNS server
$netmask = "255.255.240.0"      # Subnet mask
$gateway = "192.168.21.1"       # Default gateway
$bridge_nic = "br0"
$network_plugin = "calico"
$kube_version = "1.33.4"
"""


@pytest.fixture
def topology() -> ClusterTopology:
    return ClusterTopology(
        num_instances=5,
        kube_master_instances=1,
        upm_ctl_instances=2,
        instance_name_prefix="k8s",
    )


@pytest.fixture
def config_rb(tmp_path: Path) -> Path:
    path = tmp_path / "config.rb"
    path.write_text(CONFIG_RB)
    return path


@pytest.fixture
def install_ctx(config_rb: Path, tmp_path: Path) -> InstallContext:
    paths = PathsConfig(vagrant_config=config_rb, log_file=tmp_path / "upm.log")
    return InstallContext(charts=ChartConfig(), paths=paths, auto_confirm=True)


@pytest.fixture
def cli_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Keep CLI runs from writing logs to the working directory or installing signal handlers."""
    monkeypatch.setenv("UPM_LOG_FILE", str(tmp_path / "upm_manager.log"))
    monkeypatch.setattr("upm_manager.cli.temp_files.install_handlers", lambda: None)
    return tmp_path
