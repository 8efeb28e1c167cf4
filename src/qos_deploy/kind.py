"""kind cluster registry and lifecycle commands."""

from __future__ import annotations

from pathlib import Path

from qos_deploy.runner import CommandResult, Runner


class KindClient:
    def __init__(self, runner: Runner) -> None:
        self._runner = runner

    def list_clusters(self) -> list[str]:
        result = self._runner.run(["kind", "get", "clusters"])
        if not result.ok:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def cluster_exists(self, name: str) -> bool:
        return name in self.list_clusters()

    def create_cluster(self, name: str, config_path: Path) -> CommandResult:
        return self._runner.run(
            ["kind", "create", "cluster", "--config", str(config_path), "--name", name]
        )

    def delete_cluster(self, name: str) -> CommandResult:
        return self._runner.run(["kind", "delete", "cluster", "--name", name])
