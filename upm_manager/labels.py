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

"""Node labels for component scheduling."""

from __future__ import annotations

from collections.abc import Iterable

from upm_manager import console, logger
from upm_manager.config import ClusterTopology
from upm_manager.constants import (
    LABEL_CNPG_CONTROL_PLANE,
    LABEL_ENABLE,
    LABEL_MYSQL_NODE,
    LABEL_NACOS_CONTROL_PLANE,
    LABEL_OPENEBS_CONTROL_PLANE,
    LABEL_OPENEBS_NODE,
    LABEL_PROMETHEUS_NODE,
    LABEL_REDIS_NODE,
    LABEL_UPM_ENGINE_NODE,
    LABEL_UPM_PLATFORM_NODE,
)
from upm_manager.topology import NodeRole, classify_node, node_index
from upm_manager.utils import run_kubectl

# ============================================================================
# Label sets
# ============================================================================

STORAGE_CONTROL_LABELS = {LABEL_OPENEBS_CONTROL_PLANE: LABEL_ENABLE}
STORAGE_DATA_LABELS = {LABEL_OPENEBS_NODE: LABEL_ENABLE}
MONITORING_LABELS = {LABEL_PROMETHEUS_NODE: "true"}
DATABASE_OPERATOR_LABELS = {LABEL_CNPG_CONTROL_PLANE: LABEL_ENABLE}
ENGINE_LABELS = {LABEL_UPM_ENGINE_NODE: LABEL_ENABLE}
PLATFORM_LABELS = {
    LABEL_UPM_PLATFORM_NODE: LABEL_ENABLE,
    LABEL_NACOS_CONTROL_PLANE: LABEL_ENABLE,
    LABEL_MYSQL_NODE: LABEL_ENABLE,
    LABEL_REDIS_NODE: LABEL_ENABLE,
}


def list_node_names() -> list[str]:
    """Return the names of all cluster nodes.

    Raises:
        RuntimeError: If kubectl cannot list the nodes.
    """
    ok, stdout, stderr = run_kubectl(["get", "nodes", "--no-headers", "-o", "custom-columns=:metadata.name"])
    if not ok:
        raise RuntimeError(f"Failed to list cluster nodes: {stderr.strip()}")
    return [line.strip() for line in stdout.splitlines() if line.strip()]


def select_nodes(names: Iterable[str], topology: ClusterTopology, roles: Iterable[NodeRole]) -> list[str]:
    """Pick the nodes whose index falls into one of *roles*.

    Every name is validated first, so a single unexpected node aborts
    before any node is touched.

    Raises:
        RuntimeError: If a node name does not follow ``<prefix>-<index>``.
    """
    wanted = set(roles)
    indexed: list[tuple[int, str]] = []
    for name in names:
        try:
            indexed.append((node_index(name, topology), name))
        except ValueError as err:
            raise RuntimeError(str(err)) from err
    return [name for idx, name in sorted(indexed) if classify_node(idx, topology) in wanted]


def label_nodes(
    topology: ClusterTopology,
    roles: NodeRole | Iterable[NodeRole],
    labels: dict[str, str],
) -> list[str]:
    """Apply *labels* with ``--overwrite`` to every node of *roles*.

    Args:
        topology: Cluster topology read from the Vagrant config.
        roles: Role or roles whose nodes receive the labels.
        labels: Label key/value pairs.

    Returns:
        Names of the labeled nodes.

    Raises:
        RuntimeError: If listing fails or any single node cannot be labeled.
    """
    if isinstance(roles, NodeRole):
        roles = (roles,)
    roles = tuple(roles)
    pairs = [f"{key}={value}" for key, value in labels.items()]
    nodes = select_nodes(list_node_names(), topology, roles)
    if not nodes:
        console.print(f"[yellow]\u26a0\ufe0f  No {'/'.join(r.value for r in roles)} nodes to label[/yellow]")
        return []

    for node in nodes:
        logger.info("Labeling node %s: %s", node, ", ".join(pairs))
        ok, _, stderr = run_kubectl(["label", "node", node, *pairs, "--overwrite"])
        if not ok:
            raise RuntimeError(f"Failed to label node {node} with {', '.join(pairs)}: {stderr.strip()}")
    console.print(f"[green]\u2705 Labeled {len(nodes)} node(s) with {', '.join(pairs)}[/green]")
    return nodes
