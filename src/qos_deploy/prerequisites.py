"""Checks that must pass before anything touches the cluster."""

from __future__ import annotations

import resource
import shutil
from collections.abc import Callable, Sequence
from typing import Optional

from qos_deploy.console import Reporter
from qos_deploy.engine import DockerEngine
from qos_deploy.errors import PrerequisiteError

REQUIRED_TOOLS: tuple[str, ...] = ("kind", "kubectl", "docker")


def soft_fd_limit() -> int:
    soft, _hard = resource.getrlimit(resource.RLIMIT_NOFILE)
    return soft


class PrerequisiteChecker:
    def __init__(
        self,
        engine: DockerEngine,
        reporter: Reporter,
        *,
        recommended_fd_limit: int = 65536,
        tools: Sequence[str] = REQUIRED_TOOLS,
        which: Optional[Callable[[str], Optional[str]]] = None,
        fd_limit_reader: Optional[Callable[[], int]] = None,
    ) -> None:
        self._engine = engine
        self._reporter = reporter
        self._recommended_fd_limit = recommended_fd_limit
        self._tools = tuple(tools)
        self._which = which if which is not None else shutil.which
        self._fd_limit_reader = fd_limit_reader if fd_limit_reader is not None else soft_fd_limit

    def check(self) -> None:
        """Raise PrerequisiteError on a missing tool or a stopped daemon."""
        self._reporter.step("Checking prerequisites...")
        for tool in self._tools:
            self.require_tool(tool)
        self.require_daemon()
        self.check_fd_limit()
        self._reporter.info("Prerequisites check completed successfully")

    def require_tool(self, tool: str) -> None:
        if self._which(tool) is None:
            raise PrerequisiteError(f"{tool} could not be found. Please install it first.")

    def require_daemon(self) -> None:
        if not self._engine.is_running():
            raise PrerequisiteError("Docker is not running. Please start Docker first.")

    def check_fd_limit(self) -> bool:
        """Warn when the soft open-file limit is low. Never fatal."""
        current_limit = self._fd_limit_reader()
        if current_limit == resource.RLIM_INFINITY:
            return True
        if current_limit >= self._recommended_fd_limit:
            return True
        self._reporter.warn(
            f"Current file descriptor limit ({current_limit}) is low for Kubernetes."
        )
        self._reporter.warn(f"Consider running: ulimit -n {self._recommended_fd_limit}")
        self._reporter.warn(
            "Proceeding anyway, but you may encounter 'too many open files' errors."
        )
        return False
