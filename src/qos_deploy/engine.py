"""Container engine (docker CLI) operations on the containers backing a kind cluster."""

from __future__ import annotations

from qos_deploy.runner import CommandResult, Runner

KIND_CLUSTER_LABEL = "io.x-k8s.kind.cluster"
AUTO_RESTART_POLICY = "unless-stopped"


class DockerEngine:
    def __init__(self, runner: Runner) -> None:
        self._runner = runner

    def is_running(self) -> bool:
        return self._runner.run(["docker", "info"]).ok

    def cluster_containers(self, cluster_name: str) -> list[str]:
        result = self._runner.run(
            [
                "docker",
                "ps",
                "-a",
                "--filter",
                f"label={KIND_CLUSTER_LABEL}={cluster_name}",
                "--format",
                "{{.Names}}",
            ]
        )
        if not result.ok:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def start(self, containers: list[str]) -> CommandResult:
        return self._runner.run(["docker", "start", *containers])

    def set_restart_policy(
        self,
        container: str,
        policy: str = AUTO_RESTART_POLICY,
    ) -> CommandResult:
        return self._runner.run(["docker", "update", f"--restart={policy}", container])
