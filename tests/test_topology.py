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

import pytest
from pydantic import ValidationError

from upm_manager.config import ClusterTopology
from upm_manager.topology import (
    NodeRole,
    classify_node,
    control_range,
    node_index,
    role_range,
    worker_range,
)


def _topologies():
    for total in range(1, 9):
        for masters in range(1, total + 1):
            for upm in range(0, total - masters + 1):
                yield ClusterTopology(
                    num_instances=total,
                    kube_master_instances=masters,
                    upm_ctl_instances=upm,
                    instance_name_prefix="k8s",
                )


def test_control_and_worker_ranges_partition_non_master_nodes():
    for t in _topologies():
        control, workers = set(control_range(t)), set(worker_range(t))
        assert not control & workers
        assert control | workers == set(range(t.kube_master_instances + 1, t.num_instances + 1))


def test_every_index_has_exactly_one_role():
    for t in _topologies():
        for i in range(1, t.num_instances + 1):
            role = classify_node(i, t)
            assert i in role_range(t, role)
            assert sum(i in role_range(t, r) for r in NodeRole) == 1


def test_ranges_for_sample_topology(topology):
    assert list(role_range(topology, NodeRole.MASTER)) == [1]
    assert list(control_range(topology)) == [2, 3]
    assert list(worker_range(topology)) == [4, 5]
    assert topology.worker_count == 2


def test_no_workers_when_control_fills_cluster():
    t = ClusterTopology(num_instances=3, kube_master_instances=1, upm_ctl_instances=2, instance_name_prefix="k8s")
    assert list(worker_range(t)) == []
    assert classify_node(3, t) is NodeRole.CONTROL


@pytest.mark.parametrize("name, expected", [("k8s-1", 1), ("k8s-5", 5), ("k8s-03", 3)])
def test_node_index(topology, name, expected):
    assert node_index(name, topology) == expected


@pytest.mark.parametrize("name", ["k8s-0", "k8s-6", "k8s-", "k8s", "other-1", "k8s-1a", "xk8s-1", "kubespray_k8s-1"])
def test_node_index_rejects_bad_names(topology, name):
    with pytest.raises(ValueError):
        node_index(name, topology)


@pytest.mark.parametrize("index", [0, -1, 6])
def test_classify_out_of_range(topology, index):
    with pytest.raises(ValueError):
        classify_node(index, topology)


def test_topology_counts_must_fit():
    with pytest.raises(ValidationError):
        ClusterTopology(num_instances=3, kube_master_instances=2, upm_ctl_instances=2, instance_name_prefix="k8s")


@pytest.mark.parametrize("fields", [
    {"num_instances": 0, "kube_master_instances": 1, "upm_ctl_instances": 0},
    {"num_instances": 3, "kube_master_instances": 0, "upm_ctl_instances": 0},
    {"num_instances": 3, "kube_master_instances": 1, "upm_ctl_instances": -1},
])
def test_topology_rejects_invalid_counts(fields):
    with pytest.raises(ValidationError):
        ClusterTopology(instance_name_prefix="k8s", **fields)


def test_topology_rejects_empty_prefix():
    with pytest.raises(ValidationError):
        ClusterTopology(num_instances=3, kube_master_instances=1, upm_ctl_instances=1, instance_name_prefix="")
