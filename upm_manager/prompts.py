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

"""Interactive confirmation helpers honoring auto-confirm mode."""

from __future__ import annotations

from collections.abc import Callable, Sequence

import typer
from rich.prompt import Confirm, Prompt

from upm_manager import console, logger


def confirm(question: str, auto_confirm: bool, force_interactive: bool = False, default: bool | None = None) -> bool:
    """Ask a yes/no question.

    Args:
        question: Question shown to the user.
        auto_confirm: Answer yes without asking (``-y``).
        force_interactive: Ask even in auto-confirm mode (network inputs).
        default: Answer used when the user just presses enter.

    Returns:
        True for yes, False for no.
    """
    if auto_confirm and not force_interactive:
        console.print(f"[cyan]\u2753 {question}[/cyan] [green](auto-confirmed: yes)[/green]")
        return True
    if default is None:
        return Confirm.ask(f"[cyan]\u2753 {question}[/cyan]", console=console)
    return Confirm.ask(f"[cyan]\u2753 {question}[/cyan]", console=console, default=default)


def confirm_or_cancel(question: str, auto_confirm: bool, cancel_message: str = "Operation cancelled by user.") -> None:
    """Ask a yes/no question and exit with code 0 on "no"."""
    if not confirm(question, auto_confirm):
        logger.info(cancel_message)
        console.print(f"[yellow]\u23f8\ufe0f  {cancel_message}[/yellow]")
        raise typer.Exit(code=0)


def ask(question: str, default: str | None = None, validator: Callable[[str], str | None] | None = None) -> str:
    """Prompt for a free-form value until *validator* accepts it.

    Args:
        question: Prompt text.
        default: Value used on empty input.
        validator: Returns an error message for invalid input, None otherwise.

    Returns:
        The accepted value.
    """
    while True:
        if default is None:
            value = Prompt.ask(f"[cyan]\u2753 {question}[/cyan]", console=console).strip()
        else:
            value = Prompt.ask(f"[cyan]\u2753 {question}[/cyan]", console=console, default=default).strip()
        error = validator(value) if validator else None
        if error is None:
            return value
        console.print(f"[red]\u274c {error}[/red]")


def choose(question: str, options: Sequence[str]) -> str:
    """Let the user pick one of *options* by number."""
    for idx, option in enumerate(options, start=1):
        console.print(f"   [green]{idx})[/green] {option}")
    answer = Prompt.ask(
        f"[cyan]\u2753 {question}[/cyan]",
        console=console,
        choices=[str(i) for i in range(1, len(options) + 1)],
    )
    return options[int(answer) - 1]
