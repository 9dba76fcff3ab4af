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

import logging
import subprocess
from unittest.mock import patch

import pytest
import sh
import yaml

from upm_manager.utils import (
    TempFileRegistry,
    command_exists,
    format_duration,
    require_command,
    run_kubectl,
    timed_step,
)


@pytest.mark.parametrize("seconds, expected", [
    (0, "0s"),
    (59, "59s"),
    (60, "1m 0s"),
    (185, "3m 5s"),
    (3600, "1h 0m"),
    (4830, "1h 20m"),
])
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


class TestTimedStep:
    def test_success_logs_duration(self, caplog):
        with caplog.at_level(logging.INFO, logger="upm_manager"):
            with timed_step("install_cnpg"):
                pass
        assert "[PERF] Starting function: install_cnpg" in caplog.text
        assert "[PERF] Function install_cnpg completed successfully - Duration: 0s" in caplog.text

    def test_failure_is_logged_and_reraised(self, caplog):
        with caplog.at_level(logging.INFO, logger="upm_manager"):
            with pytest.raises(RuntimeError, match="boom"):
                with timed_step("install_prometheus"):
                    raise RuntimeError("boom")
        assert "[PERF] Function install_prometheus failed" in caplog.text


class TestTempFileRegistry:
    def test_write_and_cleanup(self):
        registry = TempFileRegistry()
        first = registry.write_yaml("values", {"a": 1})
        second = registry.write_yaml("values", {"b": [1, 2]})
        assert yaml.safe_load(first.read_text()) == {"a": 1}
        assert first.name.startswith("values_") and first.suffix == ".yaml"
        registry.cleanup()
        assert not first.exists()
        assert not second.exists()

    def test_release_removes_single_file(self):
        registry = TempFileRegistry()
        keep = registry.write_yaml("keep", {})
        drop = registry.write_yaml("drop", {})
        registry.release(drop)
        assert not drop.exists()
        assert keep.exists()
        registry.cleanup()
        assert not keep.exists()

    def test_cleanup_tolerates_missing_files(self):
        registry = TempFileRegistry()
        path = registry.write_yaml("gone", {})
        path.unlink()
        registry.cleanup()


class TestCommands:
    def test_require_command_missing(self):
        with patch("upm_manager.utils.sh") as mock_sh:
            mock_sh.ErrorReturnCode = sh.ErrorReturnCode
            mock_sh.which.side_effect = sh.ErrorReturnCode_1("which helm", b"", b"")
            with pytest.raises(RuntimeError, match="'helm' not found"):
                require_command("helm")
            assert command_exists("helm") is False

    def test_command_exists(self):
        with patch("upm_manager.utils.sh") as mock_sh:
            mock_sh.ErrorReturnCode = sh.ErrorReturnCode
            assert command_exists("kubectl") is True
        mock_sh.which.assert_called_once_with("kubectl")


class TestRunKubectl:
    def test_success(self):
        completed = subprocess.CompletedProcess(["kubectl"], 0, stdout="ok", stderr="")
        with patch("upm_manager.utils.subprocess.run", return_value=completed) as mock_run:
            assert run_kubectl(["get", "nodes"], stdin="x") == (True, "ok", "")
        assert mock_run.call_args[0][0] == ["kubectl", "get", "nodes"]
        assert mock_run.call_args[1]["input"] == "x"

    def test_missing_binary(self):
        with patch("upm_manager.utils.subprocess.run", side_effect=FileNotFoundError("kubectl")):
            ok, out, err = run_kubectl(["version"])
        assert not ok
        assert out == ""
        assert "kubectl" in err
