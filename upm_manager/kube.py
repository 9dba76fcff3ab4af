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

"""kubectl queries and waits used by the component installers."""

from __future__ import annotations

import json

import yaml
from rich.table import Table

from upm_manager import console, logger
from upm_manager.utils import run_kubectl


def wait_for_pods(selector: str, namespace: str, timeout_seconds: int, what: str) -> None:
    """Block until pods matching *selector* are Ready.

    Args:
        selector: Label selector.
        namespace: Pod namespace.
        timeout_seconds: ``kubectl wait`` timeout.
        what: Component name used in messages.

    Raises:
        RuntimeError: If the pods are not Ready in time.
    """
    logger.info("Waiting for %s to be ready...", what)
    ok, _, stderr = run_kubectl(
        ["wait", "--for=condition=ready", "pod", "-l", selector, "-n", namespace,
         f"--timeout={timeout_seconds}s"],
        timeout=timeout_seconds + 30,
    )
    if not ok:
        raise RuntimeError(f"{what} failed to become ready: {stderr.strip()}")
    console.print(f"[green]\u2705 {what} is ready[/green]")


def dump_pod_diagnostics(selector: str, namespace: str) -> None:
    """Log pod status, descriptions and recent events for a failed wait."""
    for args in (
        ["get", "pods", "-n", namespace, "-l", selector],
        ["describe", "pods", "-n", namespace, "-l", selector],
        ["get", "events", "-n", namespace, "--sort-by=.lastTimestamp"],
    ):
        ok, stdout, stderr = run_kubectl(args)
        output = stdout if ok else stderr
        if args[1] == "events":
            output = "\n".join(output.splitlines()[-20:])
        logger.error("kubectl %s:\n%s", " ".join(args), output)


def storageclass_exists(name: str) -> bool:
    ok, _, _ = run_kubectl(["get", "storageclass", name])
    return ok


def namespace_exists(name: str) -> bool:
    ok, _, _ = run_kubectl(["get", "namespace", name])
    return ok


def apply_manifest(manifest: dict, what: str) -> None:
    """``kubectl apply -f -`` for a single manifest.

    Raises:
        RuntimeError: If kubectl rejects the manifest.
    """
    ok, _, stderr = run_kubectl(["apply", "-f", "-"], stdin=yaml.safe_dump(manifest, sort_keys=False))
    if not ok:
        raise RuntimeError(f"Failed to create {what}: {stderr.strip()}")
    logger.info("%s applied successfully", what)


def node_internal_ip(selector: str | None = None) -> str:
    """InternalIP of the first node matching *selector* (any node when None)."""
    args = ["get", "nodes", "-o", "jsonpath={.items[0].status.addresses[?(@.type==\"InternalIP\")].address}"]
    if selector:
        args[2:2] = ["-l", selector]
    ok, stdout, _ = run_kubectl(args)
    return stdout.strip() if ok else ""


def service_spec(name: str, namespace: str) -> dict | None:
    """The ``spec`` of a Service, or None when it does not exist."""
    ok, stdout, _ = run_kubectl(["get", "service", name, "-n", namespace, "-o", "json"])
    if not ok:
        return None
    return json.loads(stdout).get("spec", {})


def patch_service(name: str, namespace: str, patch: dict) -> None:
    """Strategic-merge patch of a Service.

    Raises:
        RuntimeError: If kubectl fails.
    """
    ok, _, stderr = run_kubectl(["patch", "service", name, "-n", namespace, "-p", json.dumps(patch)])
    if not ok:
        raise RuntimeError(f"Failed to patch {name} service: {stderr.strip()}")


def validate_cluster_connectivity() -> None:
    """Fail unless the current kubeconfig reaches a cluster, then summarize it.

    Raises:
        RuntimeError: If ``kubectl cluster-info`` fails.
    """
    logger.info("Validating Kubernetes cluster connectivity...")
    ok, _, _ = run_kubectl(["cluster-info"])
    if not ok:
        raise RuntimeError("Cannot connect to Kubernetes cluster. Please check your kubeconfig and cluster status.")

    ok, stdout, _ = run_kubectl(["config", "view", "--minify", "-o", "jsonpath={.clusters[0].cluster.server}"])
    address = stdout.strip() if ok and stdout.strip() else "N/A"
    version = "N/A"
    ok, stdout, _ = run_kubectl(["version", "-o", "json"])
    if ok:
        version = json.loads(stdout).get("serverVersion", {}).get("gitVersion", "N/A")

    table = Table(title="Cluster Overview")
    table.add_column("Node", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Version", style="green")
    ok, stdout, _ = run_kubectl(["get", "nodes", "--no-headers"])
    for line in stdout.splitlines() if ok else []:
        parts = line.split()
        if len(parts) >= 5:
            table.add_row(parts[0], parts[1], parts[4])
    console.print(f"   Cluster Address: [cyan]{address}[/cyan]")
    console.print(f"   Cluster Version: [cyan]{version}[/cyan]")
    console.print(table)
