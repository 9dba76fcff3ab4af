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
from unittest.mock import patch

import pytest
import sh
import yaml

from upm_manager import helm
from upm_manager.helm import ChartRef, add_repo, release_exists, update_repo, upgrade_install

CHART = ChartRef(
    repo_name="cnpg",
    repo_url="https://cloudnative-pg.github.io/charts",
    chart="cnpg/cloudnative-pg",
    release="cloudnative-pg",
)


def _helm_error() -> sh.ErrorReturnCode:
    return sh.ErrorReturnCode_1("helm repo add", b"", b"connection reset")


@pytest.fixture(autouse=True)
def _no_retry_wait(monkeypatch):
    monkeypatch.setattr(helm, "HELM_REPO_RETRY_WAIT_SECONDS", 0)


@pytest.fixture
def mock_sh():
    with patch("upm_manager.helm.sh") as mocked:
        mocked.ErrorReturnCode = sh.ErrorReturnCode
        yield mocked


def test_chart_ref_from_dependencies():
    ref = ChartRef.from_dependencies("upm_platform")
    assert ref.chart == "upm-charts/upm-platform"
    assert ref.release == "upm-platform"
    assert ref.repo_name == "upm-charts"


class TestRepoRetry:
    def test_fails_after_three_attempts(self, mock_sh):
        mock_sh.helm.side_effect = _helm_error()
        with pytest.raises(RuntimeError, match="after 3 attempts"):
            add_repo(CHART)
        assert mock_sh.helm.call_count == 3
        mock_sh.helm.assert_called_with("repo", "add", "cnpg", "https://cloudnative-pg.github.io/charts")

    @pytest.mark.parametrize("succeed_on", [1, 2, 3])
    def test_stops_at_first_success(self, mock_sh, succeed_on):
        effects = [_helm_error()] * (succeed_on - 1) + [""]
        mock_sh.helm.side_effect = effects
        update_repo(CHART)
        assert mock_sh.helm.call_count == succeed_on
        mock_sh.helm.assert_called_with("repo", "update", "cnpg")

    def test_attempt_count_follows_constant(self, mock_sh, monkeypatch):
        monkeypatch.setattr(helm, "HELM_REPO_MAX_ATTEMPTS", 5)
        mock_sh.helm.side_effect = _helm_error()
        with pytest.raises(RuntimeError, match="after 5 attempts"):
            add_repo(CHART)
        assert mock_sh.helm.call_count == 5


class TestUpgradeInstall:
    def test_without_values(self, mock_sh):
        upgrade_install(CHART, "cnpg-system", "0.24.0", "5m")
        args = mock_sh.helm.call_args[0]
        assert args == (
            "upgrade", "--install", "cloudnative-pg", "cnpg/cloudnative-pg",
            "--namespace", "cnpg-system",
            "--create-namespace",
            "--version", "0.24.0",
            "--wait", "--timeout=5m",
        )

    def test_values_file_written_and_removed(self, mock_sh):
        seen: dict = {}

        def fake_helm(*args, **kwargs):
            path = Path(args[args.index("--values") + 1])
            seen["path"] = path
            seen["values"] = yaml.safe_load(path.read_text())

        mock_sh.helm.side_effect = fake_helm
        upgrade_install(CHART, "cnpg-system", "0.24.0", "5m", {"config": {"data": {"A": "1"}}})
        assert seen["values"] == {"config": {"data": {"A": "1"}}}
        assert not seen["path"].exists()

    def test_failure_still_removes_values_file(self, mock_sh):
        seen: dict = {}

        def fake_helm(*args, **kwargs):
            seen["path"] = Path(args[args.index("--values") + 1])
            raise sh.ErrorReturnCode_1("helm upgrade", b"", b"timed out waiting")

        mock_sh.helm.side_effect = fake_helm
        with pytest.raises(RuntimeError, match="cloudnative-pg"):
            upgrade_install(CHART, "cnpg-system", "0.24.0", "5m", {"a": 1})
        assert not seen["path"].exists()


class TestReleaseExists:
    def test_found(self, mock_sh):
        mock_sh.helm.return_value = "lvm-localpv\nother\n"
        assert release_exists("lvm-localpv", "openebs")
        mock_sh.helm.assert_called_once_with("list", "-n", "openebs", "-q")

    def test_missing(self, mock_sh):
        mock_sh.helm.return_value = "lvm-localpv-extra\n"
        assert not release_exists("lvm-localpv", "openebs")

    def test_helm_error(self, mock_sh):
        mock_sh.helm.side_effect = sh.ErrorReturnCode_1("helm list", b"", b"no cluster")
        assert not release_exists("lvm-localpv", "openebs")


def test_ensure_helm_skips_when_present():
    with patch("upm_manager.helm.command_exists", return_value=True), \
            patch("upm_manager.helm.sh") as mocked:
        helm.ensure_helm()
    mocked.curl.assert_not_called()
