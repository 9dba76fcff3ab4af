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

"""Node index arithmetic for the master, control and worker ranges."""

from __future__ import annotations

import re
from enum import Enum

from upm_manager.config import ClusterTopology


class NodeRole(str, Enum):
    MASTER = "master"
    CONTROL = "control"
    WORKER = "worker"


def control_range(topology: ClusterTopology) -> range:
    """Indices of the UPM control nodes: ``[master+1, master+upm]``."""
    start = topology.kube_master_instances + 1
    return range(start, start + topology.upm_ctl_instances)


def worker_range(topology: ClusterTopology) -> range:
    """Indices of the worker nodes: ``[master+upm+1, total]``."""
    start = topology.kube_master_instances + topology.upm_ctl_instances + 1
    return range(start, topology.num_instances + 1)


def role_range(topology: ClusterTopology, role: NodeRole) -> range:
    if role is NodeRole.MASTER:
        return range(1, topology.kube_master_instances + 1)
    if role is NodeRole.CONTROL:
        return control_range(topology)
    return worker_range(topology)


def node_index(name: str, topology: ClusterTopology) -> int:
    """Parse the index out of a ``<prefix>-<index>`` node name.

    Args:
        name: Kubernetes node name.
        topology: Topology providing the prefix and the instance count.

    Returns:
        The 1-based node index.

    Raises:
        ValueError: If the name does not follow the convention or the
            index lies outside ``[1, num_instances]``.
    """
    m = re.fullmatch(rf"{re.escape(topology.instance_name_prefix)}-(\d+)", name)
    if not m:
        raise ValueError(
            f"Node '{name}' does not follow the '{topology.instance_name_prefix}-<index>' naming convention"
        )
    index = int(m.group(1))
    if not 1 <= index <= topology.num_instances:
        raise ValueError(f"Node '{name}' index {index} is outside [1, {topology.num_instances}]")
    return index


def classify_node(index: int, topology: ClusterTopology) -> NodeRole:
    """Map a 1-based node index to its role.

    Raises:
        ValueError: If the index lies outside ``[1, num_instances]``.
    """
    if not 1 <= index <= topology.num_instances:
        raise ValueError(f"Node index {index} is outside [1, {topology.num_instances}]")
    return next(role for role in NodeRole if index in role_range(topology, role))
