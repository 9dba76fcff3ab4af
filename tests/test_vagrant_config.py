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

from __future__ import annotations

from pathlib import Path

import pytest

from upm_manager.config import ProxySettings
from upm_manager.constants import DEFAULT_VOLUME_GROUP
from upm_manager.network import BridgeSettings, NetworkMode, NetworkSettings
from upm_manager.topology import NodeRole
from upm_manager.vagrant_config import (
    ip_preview,
    load_settings,
    load_topology,
    parse_value,
    read_values,
    render_config,
    volume_group,
)


@pytest.mark.parametrize("raw, expected", [
    ('"k8s"', "k8s"),
    ('"8.8.8.8"         # DNS server', "8.8.8.8"),
    ("5", 5),
    ("16384              # Memory in MB", 16384),
    ("true", True),
    ("false", False),
    ('"a # b"', "a # b"),
])
def test_parse_value(raw, expected):
    assert parse_value(raw) == expected


def test_read_values_skips_comments(config_rb: Path):
    values = read_values(config_rb)
    assert values["num_instances"] == 5
    assert values["instance_name_prefix"] == "k8s"
    assert values["kube_node_instances_with_disks"] is True
    assert "http_proxy" not in values


def test_load_topology(config_rb: Path):
    t = load_topology(config_rb)
    assert (t.num_instances, t.kube_master_instances, t.upm_ctl_instances) == (5, 1, 1)
    assert t.instance_name_prefix == "k8s"


def test_load_topology_missing_file(tmp_path: Path):
    with pytest.raises(RuntimeError, match="not found"):
        load_topology(tmp_path / "missing.rb")


def test_load_topology_missing_key(tmp_path: Path):
    path = tmp_path / "config.rb"
    path.write_text('$instance_name_prefix = "k8s"\n$num_instances = 3\n$kube_master_instances = 1\n')
    with pytest.raises(RuntimeError, match="upm_ctl_instances"):
        load_topology(path)


def test_load_topology_inconsistent_counts(tmp_path: Path):
    path = tmp_path / "config.rb"
    path.write_text(
        '$instance_name_prefix = "k8s"\n$num_instances = 2\n$kube_master_instances = 1\n$upm_ctl_instances = 2\n'
    )
    with pytest.raises(RuntimeError, match="Invalid cluster topology"):
        load_topology(path)


def test_volume_group(config_rb: Path, tmp_path: Path):
    assert volume_group(config_rb) == "data_vg"
    assert volume_group(tmp_path / "absent.rb") == DEFAULT_VOLUME_GROUP


def test_load_settings_totals(config_rb: Path):
    settings = load_settings(config_rb)
    assert settings.kube_version == "1.33.4"
    assert settings.volume_group == "data_vg"
    # 3 workers x 8 + 1 master x 4 + 1 control x 4
    assert settings.total_cpus == 32
    assert settings.total_memory_gb == (3 * 16384 + 4096 + 4096) // 1024
    assert not settings.high_resource


def test_render_config_nat_keeps_proxy_commented(config_rb: Path, tmp_path: Path):
    dest = tmp_path / "vagrant" / "config.rb"
    render_config(config_rb, dest, NetworkSettings(mode=NetworkMode.NAT), None)
    text = dest.read_text()
    assert '$vm_network = "nat"' in text
    assert '# $http_proxy = ""' in text
    assert '$subnet = "192.168.29"' in text


def test_render_config_bridge_with_proxy(config_rb: Path, tmp_path: Path):
    dest = tmp_path / "vagrant" / "config.rb"
    bridge = BridgeSettings(
        starting_ip="10.0.5.20", netmask="255.255.255.0", gateway="10.0.5.1", dns_server="10.0.5.2",
    )
    proxy = ProxySettings(
        http_proxy="http://proxy:3128", https_proxy="http://proxy:3128",
        no_proxy="localhost", additional_no_proxy="10.0.5.0/24",
    )
    render_config(config_rb, dest, NetworkSettings(mode=NetworkMode.BRIDGE, bridge=bridge), proxy)
    values = read_values(dest)
    assert values["vm_network"] == "bridge"
    assert values["subnet"] == "10.0.5"
    assert values["subnet_split4"] == 20
    assert values["gateway"] == "10.0.5.1"
    assert values["dns_server"] == "10.0.5.2"
    assert values["netmask"] == "255.255.255.0"
    assert values["bridge_nic"] == "br0"
    assert values["http_proxy"] == "http://proxy:3128"
    assert values["additional_no_proxy"] == "10.0.5.0/24"
    assert values["num_instances"] == 5


def test_render_config_bridge_requires_settings(config_rb: Path, tmp_path: Path):
    dest = tmp_path / "vagrant" / "config.rb"
    with pytest.raises(RuntimeError, match="bridge settings"):
        render_config(config_rb, dest, NetworkSettings(mode=NetworkMode.BRIDGE), None)
    assert not dest.exists()


def test_render_config_failure_keeps_existing_dest(config_rb: Path, tmp_path: Path):
    dest = tmp_path / "vagrant" / "config.rb"
    dest.parent.mkdir()
    dest.write_text('$vm_network = "bridge"\n')
    with pytest.raises(RuntimeError):
        render_config(config_rb, dest, NetworkSettings(mode=NetworkMode.BRIDGE), None)
    assert dest.read_text() == '$vm_network = "bridge"\n'


def test_render_config_in_place(config_rb: Path):
    render_config(config_rb, config_rb, NetworkSettings(mode=NetworkMode.NAT), None)
    assert read_values(config_rb)["vm_network"] == "nat"


def test_render_config_missing_template(tmp_path: Path):
    with pytest.raises(RuntimeError, match="template not found"):
        render_config(tmp_path / "nope.rb", tmp_path / "out.rb", NetworkSettings(mode=NetworkMode.NAT), None)


def test_ip_preview(topology):
    preview = ip_preview(topology, "192.168.1", 10)
    assert preview[0] == ("k8s-1", "192.168.1.11", NodeRole.MASTER)
    assert preview[1][2] is NodeRole.CONTROL
    assert preview[-1] == ("k8s-5", "192.168.1.15", NodeRole.WORKER)
