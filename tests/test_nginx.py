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

from unittest.mock import patch

import pytest

from upm_manager import nginx
from upm_manager.constants import GATEWAY_NODE_PORT, UI_NODE_PORT


def test_render_nginx_conf():
    conf = nginx.render_nginx_conf("10.0.0.12")
    assert f"server 10.0.0.12:{GATEWAY_NODE_PORT};" in conf
    assert f"server 10.0.0.12:{UI_NODE_PORT};" in conf
    assert "proxy_pass  http://ui/upm-ui/;" in conf
    assert "proxy_pass  http://api/;" in conf
    assert "events {" in conf
    assert "{{" not in conf


class TestEnsureNodePort:
    def test_already_configured(self):
        spec = {"type": "NodePort", "ports": [{"nodePort": 31405}]}
        with patch("upm_manager.nginx.service_spec", return_value=spec), \
                patch("upm_manager.nginx.patch_service") as mock_patch:
            nginx.ensure_node_port("upm-platform-ui", 80, 31405)
        mock_patch.assert_not_called()

    def test_patches_cluster_ip(self):
        spec = {"type": "ClusterIP", "ports": [{"port": 80}]}
        with patch("upm_manager.nginx.service_spec", return_value=spec), \
                patch("upm_manager.nginx.patch_service") as mock_patch:
            nginx.ensure_node_port("upm-platform-ui", 80, 31405)
        name, namespace, body = mock_patch.call_args[0]
        assert (name, namespace) == ("upm-platform-ui", "upm-system")
        assert body["spec"]["type"] == "NodePort"
        assert body["spec"]["ports"][0]["nodePort"] == 31405

    def test_wrong_node_port_is_patched(self):
        spec = {"type": "NodePort", "ports": [{"nodePort": 30000}]}
        with patch("upm_manager.nginx.service_spec", return_value=spec), \
                patch("upm_manager.nginx.patch_service") as mock_patch:
            nginx.ensure_node_port("upm-platform-gateway", 8080, 31404)
        mock_patch.assert_called_once()

    def test_missing_service_is_skipped(self):
        with patch("upm_manager.nginx.service_spec", return_value=None), \
                patch("upm_manager.nginx.patch_service") as mock_patch:
            nginx.ensure_node_port("upm-platform-ui", 80, 31405)
        mock_patch.assert_not_called()


def test_configure_nginx_requires_upm_namespace(install_ctx):
    with patch("upm_manager.nginx.check_linux_system"), \
            patch("upm_manager.nginx.require_command"), \
            patch("upm_manager.nginx.namespace_exists", return_value=False):
        with pytest.raises(RuntimeError, match="upm-system"):
            nginx.configure_nginx(install_ctx)


def test_configure_nginx_writes_conf_for_platform_node(install_ctx):
    with patch("upm_manager.nginx.check_linux_system"), \
            patch("upm_manager.nginx.require_command"), \
            patch("upm_manager.nginx.namespace_exists", return_value=True), \
            patch("upm_manager.nginx.ensure_node_port") as mock_port, \
            patch("upm_manager.nginx.ensure_nginx_installed"), \
            patch("upm_manager.nginx.node_internal_ip", return_value="192.168.29.102"), \
            patch("upm_manager.nginx.write_nginx_conf") as mock_write, \
            patch("upm_manager.nginx.restart_nginx") as mock_restart, \
            patch("upm_manager.nginx.allow_http_in_firewall"):
        nginx.configure_nginx(install_ctx)
    assert mock_port.call_count == 2
    assert "192.168.29.102:31404" in mock_write.call_args[0][0]
    mock_restart.assert_called_once()
