"""Shared state and error handling for the CLI commands."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

import click

from qos_deploy.cluster import Confirm
from qos_deploy.config import DeploySettings
from qos_deploy.console import Reporter
from qos_deploy.dependencies import Toolkit, build_toolkit
from qos_deploy.errors import DeployError
from qos_deploy.runner import Runner

LOGGER = logging.getLogger("qos_deploy.cli")


def confirm_prompt(prompt: str) -> bool:
    return click.confirm(prompt, default=False)


@dataclass
class AppContext:
    """What the group callback hands to every command through `ctx.obj`."""

    settings: DeploySettings
    runner: Optional[Runner] = None
    confirm: Confirm = confirm_prompt
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic

    def toolkit(self) -> Toolkit:
        return build_toolkit(
            self.settings,
            runner=self.runner,
            confirm=self.confirm,
            sleep=self.sleep,
            clock=self.clock,
        )


pass_app = click.make_pass_decorator(AppContext)


@contextmanager
def fatal_errors(reporter: Reporter) -> Iterator[None]:
    """Report a DeployError on the console and exit with status 1."""
    try:
        yield
    except DeployError as exc:
        LOGGER.error("command failed error=%s", exc, exc_info=True)
        reporter.error(str(exc))
        raise click.exceptions.Exit(1) from exc
