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

"""Reconciliation of existing libvirt domains against the desired VM count.

Before ``vagrant up`` the domains named ``<project>_<prefix>-<index>`` are
counted and compared to ``$num_instances``:

* same count: retain and reprovision, retain and redeploy, destroy and
  recreate, or abort;
* different count: destroy and recreate, or abort;
* none: create.

With ``-y`` the first two cases resolve to retain-and-reprovision and
destroy-and-recreate respectively.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import sh
import typer
from rich.panel import Panel
from rich.table import Table

from upm_manager import console, logger, vm
from upm_manager.constants import LIBVIRT_URI
from upm_manager.prompts import choose as prompt_choose


class InventoryState(str, Enum):
    MATCH = "match"
    MISMATCH = "mismatch"
    EMPTY = "empty"


class ReconcileAction(str, Enum):
    RETAIN_AND_REPROVISION = "retain-and-reprovision"
    RETAIN_AND_REDEPLOY = "retain-and-redeploy"
    DESTROY_AND_RECREATE = "destroy-and-recreate"
    ABORT = "abort"
    CREATE = "create"


class VMState(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    OTHER = "other"

    @classmethod
    def from_virsh(cls, text: str) -> VMState:
        text = text.lower()
        if "running" in text:
            return cls.RUNNING
        if "shut off" in text:
            return cls.STOPPED
        return cls.OTHER


@dataclass(frozen=True)
class VMRecord:
    name: str
    index: int
    state: VMState

    @property
    def is_running(self) -> bool:
        return self.state is VMState.RUNNING


AVAILABLE_ACTIONS: dict[InventoryState, tuple[ReconcileAction, ...]] = {
    InventoryState.MATCH: (
        ReconcileAction.RETAIN_AND_REPROVISION,
        ReconcileAction.RETAIN_AND_REDEPLOY,
        ReconcileAction.DESTROY_AND_RECREATE,
        ReconcileAction.ABORT,
    ),
    InventoryState.MISMATCH: (
        ReconcileAction.DESTROY_AND_RECREATE,
        ReconcileAction.ABORT,
    ),
    InventoryState.EMPTY: (ReconcileAction.CREATE,),
}

AUTO_CONFIRM_ACTIONS: dict[InventoryState, ReconcileAction] = {
    InventoryState.MATCH: ReconcileAction.RETAIN_AND_REPROVISION,
    InventoryState.MISMATCH: ReconcileAction.DESTROY_AND_RECREATE,
    InventoryState.EMPTY: ReconcileAction.CREATE,
}

ACTION_DESCRIPTIONS = {
    ReconcileAction.RETAIN_AND_REPROVISION: "Keep existing VMs and re-run provisioning (vagrant up + provision)",
    ReconcileAction.RETAIN_AND_REDEPLOY: "Keep existing VMs, reboot and re-run provisioning (vagrant reload --provision)",
    ReconcileAction.DESTROY_AND_RECREATE: "Destroy existing VMs and create a fresh cluster",
    ReconcileAction.ABORT: "Abort deployment",
    ReconcileAction.CREATE: "Create all VMs",
}


# ============================================================================
# Decision
# ============================================================================

def classify_inventory(desired: int, existing: int) -> InventoryState:
    """Compare the desired VM count with the number of matching domains."""
    if existing == 0:
        return InventoryState.EMPTY
    if existing == desired:
        return InventoryState.MATCH
    return InventoryState.MISMATCH


def available_actions(state: InventoryState) -> tuple[ReconcileAction, ...]:
    return AVAILABLE_ACTIONS[state]


def decide(
    desired: int,
    existing: int,
    auto_confirm: bool,
    choose: Callable[[Sequence[ReconcileAction]], ReconcileAction] | None = None,
) -> ReconcileAction:
    """Pick the reconciliation action.

    Args:
        desired: Configured ``num_instances``.
        existing: Number of domains matching ``<project>_<prefix>-<index>``.
        auto_confirm: Resolve to the fixed default without asking.
        choose: Callback selecting one of the offered actions; defaults to
            an interactive prompt.

    Returns:
        The selected action.

    Raises:
        ValueError: If *choose* returns an action that was not offered.
    """
    state = classify_inventory(desired, existing)
    options = available_actions(state)
    if auto_confirm or len(options) == 1:
        return AUTO_CONFIRM_ACTIONS[state]
    picked = (choose or _prompt_action)(options)
    if picked not in options:
        raise ValueError(f"Action '{picked.value}' is not available when inventory is {state.value}")
    return picked


def _prompt_action(options: Sequence[ReconcileAction]) -> ReconcileAction:
    labels = [f"{a.value}: {ACTION_DESCRIPTIONS[a]}" for a in options]
    picked = prompt_choose("How should the existing VMs be handled?", labels)
    return options[labels.index(picked)]


# ============================================================================
# Inventory
# ============================================================================

def domain_pattern(prefix: str, project: str) -> re.Pattern[str]:
    """Domain names ``<project>_<prefix>-<index>``.

    vagrant-libvirt prefixes every domain with the basename of the Vagrant
    project directory, so *project* pins the match to this checkout.
    """
    return re.compile(rf"{re.escape(project)}_{re.escape(prefix)}-(\d+)")


def parse_virsh_list(output: str, prefix: str, project: str) -> list[VMRecord]:
    """Parse ``virsh list --all`` output, keeping only domains of *project*.

    Raises:
        RuntimeError: If two domains resolve to the same node index.
    """
    pattern = domain_pattern(prefix, project)
    lines = output.strip().splitlines()
    sep_index = next((i for i, line in enumerate(lines) if line.strip().startswith("---")), -1)
    records: dict[int, VMRecord] = {}
    for line in lines[sep_index + 1:]:
        parts = line.split()
        if len(parts) < 3:
            continue
        m = pattern.fullmatch(parts[1])
        if not m:
            continue
        index = int(m.group(1))
        if index in records:
            raise RuntimeError(f"Domains {records[index].name} and {parts[1]} both map to node index {index}")
        records[index] = VMRecord(name=parts[1], index=index, state=VMState.from_virsh(" ".join(parts[2:])))
    return [records[i] for i in sorted(records)]


def list_vms(prefix: str, project: str) -> list[VMRecord]:
    """Query libvirt for the domains belonging to the cluster.

    Raises:
        RuntimeError: If virsh cannot list the domains.
    """
    try:
        output = str(sh.virsh("-c", LIBVIRT_URI, "list", "--all"))
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Failed to list libvirt domains: {err.stderr.decode(errors='replace').strip()}") from err
    return parse_virsh_list(output, prefix, project)


def destroy_vms(records: Sequence[VMRecord], prefix: str, project: str) -> None:
    """Stop and undefine *records*, removing their storage.

    Raises:
        RuntimeError: If a record does not match the cluster naming pattern,
            or virsh fails.
    """
    pattern = domain_pattern(prefix, project)
    stray = [r.name for r in records if not pattern.fullmatch(r.name)]
    if stray:
        raise RuntimeError(
            f"Refusing to destroy domains outside the '{project}_{prefix}-<index>' pattern: {', '.join(stray)}"
        )
    for record in records:
        try:
            if record.is_running:
                logger.info("Stopping domain %s", record.name)
                sh.virsh("-c", LIBVIRT_URI, "destroy", record.name)
            logger.info("Undefining domain %s", record.name)
            sh.virsh("-c", LIBVIRT_URI, "undefine", record.name, "--remove-all-storage")
        except sh.ErrorReturnCode as err:
            raise RuntimeError(
                f"Failed to destroy domain {record.name}: {err.stderr.decode(errors='replace').strip()}"
            ) from err
    console.print(f"[green]\u2705 Destroyed {len(records)} existing VM(s)[/green]")


def show_inventory(records: Sequence[VMRecord], desired: int) -> None:
    table = Table(title=f"Existing VMs ({len(records)} found, {desired} configured)")
    table.add_column("Name", style="cyan")
    table.add_column("Index", style="green")
    table.add_column("State", style="yellow")
    for record in records:
        table.add_row(record.name, str(record.index), record.state.value)
    console.print(table)


# ============================================================================
# Execution
# ============================================================================

def apply_action(action: ReconcileAction, project_dir: Path, records: Sequence[VMRecord], prefix: str) -> None:
    """Run the Vagrant command sequence for *action*.

    Raises:
        typer.Exit: With code 0 when the action is abort.
    """
    logger.info("Reconciliation action: %s", action.value)
    if action is ReconcileAction.ABORT:
        console.print("[yellow]\u23f8\ufe0f  Deployment cancelled.[/yellow]")
        logger.info("Deployment cancelled by user")
        raise typer.Exit(code=0)
    if action is ReconcileAction.DESTROY_AND_RECREATE:
        destroy_vms(records, prefix, project_dir.name)
        vm.up(project_dir)
    elif action is ReconcileAction.CREATE:
        vm.up(project_dir)
    elif action is ReconcileAction.RETAIN_AND_REPROVISION:
        vm.up(project_dir)
        vm.provision(project_dir)
    elif action is ReconcileAction.RETAIN_AND_REDEPLOY:
        vm.reload_provision(project_dir)


def reconcile_and_deploy(project_dir: Path, prefix: str, desired: int, auto_confirm: bool) -> ReconcileAction:
    """Inspect existing domains, decide and deploy the VM fleet."""
    console.print(Panel.fit("Reconciling VM inventory", style="bold blue"))
    records = list_vms(prefix, project_dir.name)
    if records:
        show_inventory(records, desired)
    else:
        console.print(f"[yellow]\u2139\ufe0f  No existing '{project_dir.name}_{prefix}-<index>' VMs found[/yellow]")
    action = decide(desired, len(records), auto_confirm)
    apply_action(action, project_dir, records, prefix)
    return action
