"""Synchronous execution of external commands."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

LOGGER = logging.getLogger("qos_deploy.runner")
COMMAND_NOT_FOUND = 127


@dataclass(frozen=True)
class CommandResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def error_text(self) -> str:
        return self.stderr.strip() or self.stdout.strip() or f"{self.args[0]} command failed"


class Runner(Protocol):
    def run(self, args: Sequence[str]) -> CommandResult:
        ...


class CommandRunner:
    """Runs one command at a time and never raises on a non-zero exit."""

    def run(self, args: Sequence[str]) -> CommandResult:
        command = tuple(args)
        LOGGER.debug("running command args=%s", " ".join(command))
        try:
            completed = subprocess.run(
                list(command),
                stdin=subprocess.DEVNULL,
                text=True,
                capture_output=True,
                check=False,
            )
        except FileNotFoundError:
            LOGGER.debug("command not found executable=%s", command[0])
            return CommandResult(
                args=command,
                returncode=COMMAND_NOT_FOUND,
                stderr=f"{command[0]}: command not found",
            )

        LOGGER.debug(
            "command finished args=%s returncode=%s",
            " ".join(command),
            completed.returncode,
        )
        return CommandResult(
            args=command,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
