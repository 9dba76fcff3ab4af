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
from unittest.mock import MagicMock, call, patch

import pytest
import sh
import typer

from upm_manager.constants import LIBVIRT_URI
from upm_manager.reconcile import (
    InventoryState,
    ReconcileAction,
    VMRecord,
    VMState,
    apply_action,
    classify_inventory,
    decide,
    destroy_vms,
    list_vms,
    parse_virsh_list,
    reconcile_and_deploy,
)

VIRSH_OUTPUT = """\
 Id   Name                 State
-------------------------------------
 3    kubespray_k8s-2      running
 1    kubespray_k8s-1      running
 -    kubespray_k8s-3      shut off
 -    other-vm             shut off
 -    kubespray_k8s-3x     shut off
 7    kubespray_k8s-4      paused
 -    k8s-5                running
"""


# ============================================================================
# Decision
# ============================================================================

@pytest.mark.parametrize("n", range(1, 16))
def test_auto_confirm_with_matching_count_reprovisions(n):
    action = decide(desired=n, existing=n, auto_confirm=True)
    assert action is ReconcileAction.RETAIN_AND_REPROVISION
    assert action is not ReconcileAction.DESTROY_AND_RECREATE


@pytest.mark.parametrize("n", range(1, 10))
def test_auto_confirm_with_different_count_recreates(n):
    for existing in range(1, n + 5):
        if existing == n:
            continue
        assert decide(desired=n, existing=existing, auto_confirm=True) is ReconcileAction.DESTROY_AND_RECREATE


@pytest.mark.parametrize("auto_confirm", [True, False])
def test_no_existing_vms_creates(auto_confirm):
    choose = MagicMock()
    assert decide(desired=5, existing=0, auto_confirm=auto_confirm, choose=choose) is ReconcileAction.CREATE
    choose.assert_not_called()


def test_classify_inventory():
    assert classify_inventory(5, 5) is InventoryState.MATCH
    assert classify_inventory(5, 3) is InventoryState.MISMATCH
    assert classify_inventory(5, 7) is InventoryState.MISMATCH
    assert classify_inventory(5, 0) is InventoryState.EMPTY


def test_interactive_match_offers_four_options():
    choose = MagicMock(return_value=ReconcileAction.RETAIN_AND_REDEPLOY)
    assert decide(3, 3, auto_confirm=False, choose=choose) is ReconcileAction.RETAIN_AND_REDEPLOY
    (options,), _ = choose.call_args
    assert options == (
        ReconcileAction.RETAIN_AND_REPROVISION,
        ReconcileAction.RETAIN_AND_REDEPLOY,
        ReconcileAction.DESTROY_AND_RECREATE,
        ReconcileAction.ABORT,
    )


def test_interactive_mismatch_offers_recreate_or_abort():
    choose = MagicMock(return_value=ReconcileAction.ABORT)
    assert decide(3, 2, auto_confirm=False, choose=choose) is ReconcileAction.ABORT
    (options,), _ = choose.call_args
    assert options == (ReconcileAction.DESTROY_AND_RECREATE, ReconcileAction.ABORT)


def test_interactive_mismatch_rejects_retain():
    choose = MagicMock(return_value=ReconcileAction.RETAIN_AND_REPROVISION)
    with pytest.raises(ValueError):
        decide(3, 2, auto_confirm=False, choose=choose)


# ============================================================================
# Inventory
# ============================================================================

def test_parse_virsh_list_keeps_project_domains_sorted():
    records = parse_virsh_list(VIRSH_OUTPUT, "k8s", "kubespray")
    assert [r.name for r in records] == ["kubespray_k8s-1", "kubespray_k8s-2", "kubespray_k8s-3", "kubespray_k8s-4"]
    assert [r.index for r in records] == [1, 2, 3, 4]
    assert [r.state for r in records] == [VMState.RUNNING, VMState.RUNNING, VMState.STOPPED, VMState.OTHER]


def test_parse_virsh_list_other_prefix():
    assert parse_virsh_list(VIRSH_OUTPUT, "node", "kubespray") == []


def test_parse_virsh_list_ignores_other_projects_with_same_prefix():
    output = """\
 Id   Name                  State
--------------------------------------
 1    kubespray_k8s-1       running
 2    old-checkout_k8s-1    running
 3    kubespray_k8s-2       running
 4    old-checkout_k8s-2    shut off
 5    k8s-3                 running
"""
    records = parse_virsh_list(output, "k8s", "kubespray")
    assert [r.name for r in records] == ["kubespray_k8s-1", "kubespray_k8s-2"]
    assert decide(desired=2, existing=len(records), auto_confirm=True) is ReconcileAction.RETAIN_AND_REPROVISION
    assert [r.name for r in parse_virsh_list(output, "k8s", "old-checkout")] == [
        "old-checkout_k8s-1", "old-checkout_k8s-2",
    ]


def test_parse_virsh_list_rejects_duplicate_index():
    output = """\
 Id   Name                State
------------------------------------
 1    kubespray_k8s-1     running
 -    kubespray_k8s-01    shut off
"""
    with pytest.raises(RuntimeError, match="node index 1"):
        parse_virsh_list(output, "k8s", "kubespray")


def test_parse_virsh_list_empty_table():
    output = " Id   Name   State\n--------------------\n\n"
    assert parse_virsh_list(output, "k8s", "kubespray") == []


def test_list_vms_queries_system_libvirt():
    with patch("upm_manager.reconcile.sh") as mock_sh:
        mock_sh.ErrorReturnCode = sh.ErrorReturnCode
        mock_sh.virsh.return_value = VIRSH_OUTPUT
        records = list_vms("k8s", "kubespray")
    mock_sh.virsh.assert_called_once_with("-c", LIBVIRT_URI, "list", "--all")
    assert len(records) == 4


def test_list_vms_failure():
    with patch("upm_manager.reconcile.sh") as mock_sh:
        mock_sh.ErrorReturnCode = sh.ErrorReturnCode
        mock_sh.virsh.side_effect = sh.ErrorReturnCode_1("virsh list", b"", b"failed to connect")
        with pytest.raises(RuntimeError, match="failed to connect"):
            list_vms("k8s", "kubespray")


def test_destroy_vms_stops_running_and_undefines_all():
    records = [
        VMRecord("kubespray_k8s-1", 1, VMState.RUNNING),
        VMRecord("kubespray_k8s-2", 2, VMState.STOPPED),
    ]
    with patch("upm_manager.reconcile.sh") as mock_sh:
        mock_sh.ErrorReturnCode = sh.ErrorReturnCode
        destroy_vms(records, "k8s", "kubespray")
    assert mock_sh.virsh.call_args_list == [
        call("-c", LIBVIRT_URI, "destroy", "kubespray_k8s-1"),
        call("-c", LIBVIRT_URI, "undefine", "kubespray_k8s-1", "--remove-all-storage"),
        call("-c", LIBVIRT_URI, "undefine", "kubespray_k8s-2", "--remove-all-storage"),
    ]


@pytest.mark.parametrize("foreign", ["database", "old-checkout_k8s-2", "k8s-2"])
def test_destroy_vms_refuses_domains_outside_project(foreign):
    records = [
        VMRecord("kubespray_k8s-1", 1, VMState.RUNNING),
        VMRecord(foreign, 2, VMState.RUNNING),
    ]
    with patch("upm_manager.reconcile.sh") as mock_sh:
        mock_sh.ErrorReturnCode = sh.ErrorReturnCode
        with pytest.raises(RuntimeError, match=foreign):
            destroy_vms(records, "k8s", "kubespray")
    mock_sh.virsh.assert_not_called()


# ============================================================================
# Execution
# ============================================================================

@pytest.mark.parametrize("action, expected", [
    (ReconcileAction.CREATE, ["up"]),
    (ReconcileAction.RETAIN_AND_REPROVISION, ["up", "provision"]),
    (ReconcileAction.RETAIN_AND_REDEPLOY, ["reload_provision"]),
])
def test_apply_action_vagrant_sequence(action, expected, tmp_path: Path):
    with patch("upm_manager.reconcile.vm") as mock_vm, \
            patch("upm_manager.reconcile.destroy_vms") as mock_destroy:
        apply_action(action, tmp_path, [], "k8s")
    assert [c[0] for c in mock_vm.method_calls] == expected
    mock_destroy.assert_not_called()


def test_apply_action_destroy_then_up(tmp_path: Path):
    project = tmp_path / "kubespray"
    records = [VMRecord("kubespray_k8s-1", 1, VMState.RUNNING)]
    manager = MagicMock()
    with patch("upm_manager.reconcile.vm", manager.vm), \
            patch("upm_manager.reconcile.destroy_vms", manager.destroy):
        apply_action(ReconcileAction.DESTROY_AND_RECREATE, project, records, "k8s")
    assert manager.mock_calls == [call.destroy(records, "k8s", "kubespray"), call.vm.up(project)]


def test_apply_action_abort_exits_cleanly(tmp_path: Path):
    with patch("upm_manager.reconcile.vm") as mock_vm:
        with pytest.raises(typer.Exit) as exc_info:
            apply_action(ReconcileAction.ABORT, tmp_path, [], "k8s")
    assert exc_info.value.exit_code == 0
    assert mock_vm.method_calls == []


def test_reconcile_and_deploy_auto_confirm_mismatch(tmp_path: Path):
    project = tmp_path / "kubespray"
    records = [VMRecord("kubespray_k8s-1", 1, VMState.RUNNING), VMRecord("kubespray_k8s-2", 2, VMState.STOPPED)]
    with patch("upm_manager.reconcile.list_vms", return_value=records) as mock_list, \
            patch("upm_manager.reconcile.apply_action") as mock_apply:
        action = reconcile_and_deploy(project, "k8s", desired=5, auto_confirm=True)
    assert action is ReconcileAction.DESTROY_AND_RECREATE
    mock_list.assert_called_once_with("k8s", "kubespray")
    mock_apply.assert_called_once_with(ReconcileAction.DESTROY_AND_RECREATE, project, records, "k8s")
