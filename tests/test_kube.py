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

import json
from unittest.mock import patch

import pytest
import yaml

from upm_manager import kube


def test_wait_for_pods_failure():
    with patch("upm_manager.kube.run_kubectl", return_value=(False, "", "timed out")) as mock_run:
        with pytest.raises(RuntimeError, match="Grafana failed to become ready"):
            kube.wait_for_pods("app=grafana", "prometheus", 900, "Grafana")
    args = mock_run.call_args[0][0]
    assert args[-1] == "--timeout=900s"
    assert mock_run.call_args[1]["timeout"] == 930


def test_apply_manifest_feeds_yaml_on_stdin():
    with patch("upm_manager.kube.run_kubectl", return_value=(True, "", "")) as mock_run:
        kube.apply_manifest({"kind": "StorageClass"}, "StorageClass x")
    assert mock_run.call_args[0][0] == ["apply", "-f", "-"]
    assert yaml.safe_load(mock_run.call_args[1]["stdin"]) == {"kind": "StorageClass"}


def test_node_internal_ip_with_selector():
    with patch("upm_manager.kube.run_kubectl", return_value=(True, " 10.0.0.5 ", "")) as mock_run:
        assert kube.node_internal_ip("upm.platform.node=enable") == "10.0.0.5"
    assert mock_run.call_args[0][0][:4] == ["get", "nodes", "-l", "upm.platform.node=enable"]


def test_service_spec():
    payload = json.dumps({"spec": {"type": "ClusterIP"}})
    with patch("upm_manager.kube.run_kubectl", return_value=(True, payload, "")):
        assert kube.service_spec("ui", "upm-system") == {"type": "ClusterIP"}
    with patch("upm_manager.kube.run_kubectl", return_value=(False, "", "NotFound")):
        assert kube.service_spec("ui", "upm-system") is None


def test_validate_cluster_connectivity_failure():
    with patch("upm_manager.kube.run_kubectl", return_value=(False, "", "refused")):
        with pytest.raises(RuntimeError, match="Cannot connect"):
            kube.validate_cluster_connectivity()


def test_validate_cluster_connectivity_reads_server_from_kubeconfig():
    cluster_info = "\x1b[0;32mKubernetes control plane\x1b[0m is running at \x1b[0;33mhttps://10.0.0.2:6443\x1b[0m\n"
    responses = {
        "cluster-info": (True, cluster_info, ""),
        "config": (True, "https://10.0.0.2:6443", ""),
        "version": (True, json.dumps({"serverVersion": {"gitVersion": "v1.33.1"}}), ""),
        "get": (True, "k8s-1   Ready   control-plane   1d   v1.33.1\n", ""),
    }
    with patch("upm_manager.kube.run_kubectl", side_effect=lambda args, **_: responses[args[0]]) as mock_run, \
            patch("upm_manager.kube.console") as mock_console:
        kube.validate_cluster_connectivity()
    assert ["config", "view", "--minify", "-o", "jsonpath={.clusters[0].cluster.server}"] in [
        c[0][0] for c in mock_run.call_args_list
    ]
    printed = " ".join(str(c[0][0]) for c in mock_console.print.call_args_list if c[0])
    assert "Cluster Address: [cyan]https://10.0.0.2:6443[/cyan]" in printed
    assert "\x1b" not in printed
