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

"""upm_manager - Kubespray VM fleet provisioning and UPM component installation."""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console

__version__ = "1.0.0"

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

console = Console(stderr=True)
logger = logging.getLogger("upm_manager")


def configure_logging(log_file: Path | None, level: int = logging.INFO) -> None:
    """Send log records to stderr and append them to *log_file*.

    Falls back to console-only logging when the log file cannot be opened.

    Args:
        log_file: Append-only log file path, or None for console only.
        level: Minimum level for both handlers.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_file, mode="a", encoding="utf-8"))
        except OSError as err:
            console.print(f"[yellow]\u26a0\ufe0f  Cannot open log file {log_file} ({err}), logging to console only[/yellow]")
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )
