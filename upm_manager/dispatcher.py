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

"""Installation option resolution and sequential execution."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from enum import Enum

import typer

from upm_manager import logger
from upm_manager.components import (
    install_cnpg,
    install_lvm_localpv,
    install_prometheus,
    install_upm_engine,
    install_upm_platform,
)
from upm_manager.config import InstallContext
from upm_manager.nginx import configure_nginx
from upm_manager.utils import timed_step


class InstallOption(str, Enum):
    LVMLOCALPV = "lvmlocalpv"
    PROMETHEUS = "prometheus"
    CNPG = "cnpg"
    UPM_ENGINE = "upm-engine"
    UPM_PLATFORM = "upm-platform"
    CONFIG_NGINX = "config-nginx"
    ALL = "all"


ALL_SEQUENCE: tuple[InstallOption, ...] = (
    InstallOption.LVMLOCALPV,
    InstallOption.PROMETHEUS,
    InstallOption.CNPG,
    InstallOption.UPM_ENGINE,
    InstallOption.UPM_PLATFORM,
)

UNITS: dict[InstallOption, tuple[str, Callable[[InstallContext], None]]] = {
    InstallOption.LVMLOCALPV: ("install_lvm_localpv", install_lvm_localpv),
    InstallOption.PROMETHEUS: ("install_prometheus", install_prometheus),
    InstallOption.CNPG: ("install_cnpg", install_cnpg),
    InstallOption.UPM_ENGINE: ("install_upm_engine", install_upm_engine),
    InstallOption.UPM_PLATFORM: ("install_upm_platform", install_upm_platform),
    InstallOption.CONFIG_NGINX: ("configure_nginx_for_upm", configure_nginx),
}


def resolve_option(selected: Iterable[InstallOption]) -> InstallOption:
    """Return the single selected option.

    Raises:
        typer.BadParameter: If zero or more than one option is selected.
    """
    chosen = list(selected)
    if len(chosen) != 1:
        flags = ", ".join(f"--{o.value}" for o in InstallOption)
        given = ", ".join(f"--{o.value}" for o in chosen) or "none"
        raise typer.BadParameter(f"Exactly one installation option must be specified ({flags}); got {given}")
    return chosen[0]


def expand(option: InstallOption) -> list[InstallOption]:
    """Units executed for *option*, in order."""
    if option is InstallOption.ALL:
        return list(ALL_SEQUENCE)
    return [option]


def run_install(option: InstallOption, ctx: InstallContext) -> None:
    """Execute every unit of *option*, timing each one."""
    units = expand(option)
    if option is InstallOption.ALL:
        logger.info("Executing: complete installation sequence")
    for unit in units:
        name, func = UNITS[unit]
        logger.info("Executing: %s", name)
        with timed_step(name):
            func(ctx)
