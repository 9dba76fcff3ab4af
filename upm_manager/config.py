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

"""Configuration classes and config models."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from upm_manager.constants import (
    DEFAULT_KUBESPRAY_DIRNAME,
    DEFAULT_LOG_FILENAME,
    DEFAULT_NO_PROXY,
    DEFAULT_PYTHON_VERSION,
    REL_VAGRANT_CONFIG,
    dep_value,
)


# ============================================================================
# Configuration classes
# ============================================================================

class ChartConfig(BaseSettings):
    """Helm chart versions and platform credentials, auto-loaded from env vars.

    Attributes:
        lvm_localpv_chart_version: OpenEBS LVM LocalPV chart version.
        prometheus_chart_version: kube-prometheus-stack chart version.
        cnpg_chart_version: CloudNative-PG chart version.
        upm_chart_version: UPM Engine and UPM Platform chart version.
        upm_pwd: Password for the UPM Platform MySQL, Redis and Nacos users.
    """

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    lvm_localpv_chart_version: str = dep_value("lvm_localpv", "version")
    prometheus_chart_version: str = dep_value("prometheus", "version")
    cnpg_chart_version: str = dep_value("cnpg", "version")
    upm_chart_version: str = dep_value("upm_platform", "version")
    upm_pwd: str = Field(default="Upm@2024!", min_length=1)


class SetupConfig(BaseSettings):
    """Host environment settings for the VM setup, auto-loaded from env vars.

    Attributes:
        http_proxy: HTTP proxy URL, empty when not behind a proxy.
        https_proxy: HTTPS proxy URL, defaults to ``http_proxy``.
        no_proxy: Additional no-proxy entries appended to the defaults.
        bridge_interface: Host NIC enslaved to the bridge, empty for NAT.
        python_version: Python version recorded for the Kubespray venv.
        kubespray_dir: Kubespray project checkout directory.
        kubespray_repo_url: Git URL of the Kubespray fork.
        git_proxy: Proxy written to the global git config before cloning.
    """

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    http_proxy: str = ""
    https_proxy: str = ""
    no_proxy: str = ""
    bridge_interface: str = ""
    python_version: str = Field(default=DEFAULT_PYTHON_VERSION, pattern=r"^\d+\.\d+\.\d+$")
    kubespray_dir: Path = Field(default_factory=lambda: Path.cwd() / DEFAULT_KUBESPRAY_DIRNAME)
    kubespray_repo_url: str = dep_value("kubespray", "repo_url")
    git_proxy: str = ""

    @model_validator(mode="after")
    def _default_https_proxy(self) -> SetupConfig:
        if not self.https_proxy:
            self.https_proxy = self.http_proxy
        return self

    @property
    def proxy(self) -> ProxySettings | None:
        """Proxy settings to render into config.rb, or None without a proxy."""
        if not self.http_proxy:
            return None
        return ProxySettings(
            http_proxy=self.http_proxy,
            https_proxy=self.https_proxy or self.http_proxy,
            no_proxy=DEFAULT_NO_PROXY,
            additional_no_proxy=self.no_proxy,
        )


class PathsConfig(BaseSettings):
    """File locations, auto-loaded from UPM_* env vars.

    Attributes:
        vagrant_config: Rendered Vagrant ``config.rb`` holding the topology.
        log_file: Append-only log file.
    """

    model_config = SettingsConfigDict(env_prefix="UPM_", extra="ignore")

    vagrant_config: Path = Field(default_factory=lambda: SetupConfig().kubespray_dir / REL_VAGRANT_CONFIG)
    log_file: Path = Field(default_factory=lambda: Path.cwd() / DEFAULT_LOG_FILENAME)


# ============================================================================
# Cluster topology
# ============================================================================

class ClusterTopology(BaseModel):
    """Node counts and naming read from the Vagrant config.

    Attributes:
        num_instances: Total VM count.
        kube_master_instances: Kubernetes control-plane VM count.
        upm_ctl_instances: UPM control VM count.
        instance_name_prefix: VM/node name prefix, names are ``<prefix>-<index>``.
    """

    model_config = {"frozen": True}

    num_instances: int = Field(ge=1)
    kube_master_instances: int = Field(ge=1)
    upm_ctl_instances: int = Field(ge=0)
    instance_name_prefix: str = Field(min_length=1, pattern=r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")

    @model_validator(mode="after")
    def _counts_fit(self) -> ClusterTopology:
        if self.kube_master_instances + self.upm_ctl_instances > self.num_instances:
            raise ValueError(
                f"kube_master_instances ({self.kube_master_instances}) + upm_ctl_instances "
                f"({self.upm_ctl_instances}) exceeds num_instances ({self.num_instances})"
            )
        return self

    @property
    def worker_count(self) -> int:
        return self.num_instances - self.kube_master_instances - self.upm_ctl_instances

    def vm_name(self, index: int) -> str:
        return f"{self.instance_name_prefix}-{index}"


# ============================================================================
# Option objects
# ============================================================================

@dataclass(frozen=True)
class ProxySettings:
    """Proxy values rendered into config.rb.

    Attributes:
        http_proxy: HTTP proxy URL.
        https_proxy: HTTPS proxy URL.
        no_proxy: Default no-proxy list.
        additional_no_proxy: Extra no-proxy entries, or empty string.
    """

    http_proxy: str
    https_proxy: str
    no_proxy: str
    additional_no_proxy: str = ""


@dataclass(frozen=True)
class InstallContext:
    """Inputs shared by every component installer.

    Attributes:
        charts: Chart versions and platform credentials.
        paths: Location of the Vagrant config.
        auto_confirm: Skip confirmation prompts (``-y``).
    """

    charts: ChartConfig
    paths: PathsConfig
    auto_confirm: bool = False
