"""Lifecycle of the local kind cluster: create, recreate, recover."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from qos_deploy.config import DeploySettings
from qos_deploy.console import Reporter
from qos_deploy.engine import DockerEngine
from qos_deploy.errors import ClusterError, PrerequisiteError
from qos_deploy.kind import KindClient
from qos_deploy.kubectl import KubectlClient
from qos_deploy.readiness import ReadinessWaiter

LOGGER = logging.getLogger("qos_deploy.cluster")

Confirm = Callable[[str], bool]


def decline(_prompt: str) -> bool:
    return False


class RecoveryOutcome(str, Enum):
    RECOVERED = "recovered"
    RECREATED = "recreated"
    CANCELLED = "cancelled"


class ClusterManager:
    def __init__(
        self,
        kind: KindClient,
        kubectl: KubectlClient,
        engine: DockerEngine,
        waiter: ReadinessWaiter,
        reporter: Reporter,
        settings: DeploySettings,
        *,
        confirm: Confirm = decline,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._kind = kind
        self._kubectl = kubectl
        self._engine = engine
        self._waiter = waiter
        self._reporter = reporter
        self._settings = settings
        self._confirm = confirm
        self._sleep = sleep

    @property
    def name(self) -> str:
        return self._settings.cluster_name

    def exists(self) -> bool:
        return self._kind.cluster_exists(self.name)

    def create(self, *, force: bool = False) -> bool:
        """Create the cluster; returns False when an existing one is kept.

        On a name collision the operator is asked before anything is deleted,
        unless `force` is set.
        """
        self._reporter.step(f"Creating Kind cluster '{self.name}'...")
        config_file = self._settings.kind_config_path

        replace_existing = False
        if self.exists():
            self._reporter.warn(f"Cluster '{self.name}' already exists.")
            if not (force or self._confirm("Do you want to delete and recreate it?")):
                self._reporter.info("Using existing cluster")
                return False
            replace_existing = True

        self._require_config(config_file)
        if replace_existing:
            self._reporter.info("Deleting existing cluster...")
            self.delete()

        self._reporter.info(f"Creating cluster with config: {config_file}")
        result = self._kind.create_cluster(self.name, config_file)
        self._reporter.raw(result.stdout)
        if not result.ok:
            raise ClusterError(f"Failed to create cluster: {result.error_text()}")
        self._reporter.info("Cluster created successfully")
        LOGGER.info("cluster created name=%s config=%s", self.name, config_file)

        self._waiter.wait_for_nodes(self._settings.wait_timeout_seconds)

        self._reporter.info("Cluster information:")
        self._reporter.raw(self._kubectl.cluster_info(self._settings.kube_context).stdout)
        self._reporter.raw(self._kubectl.get_table("nodes", wide=True).stdout)
        return True

    def delete(self) -> None:
        result = self._kind.delete_cluster(self.name)
        self._reporter.raw(result.stderr)
        if not result.ok:
            raise ClusterError(f"Failed to delete cluster '{self.name}': {result.error_text()}")
        LOGGER.info("cluster deleted name=%s", self.name)

    def recover(self, *, recreate: Callable[[], None], force: bool = False) -> RecoveryOutcome:
        """Bring a cluster back after a host restart.

        `recreate` runs the full deployment once the old cluster is gone; it
        is used when quick recovery fails and the operator agrees, or
        straight away with `force`.
        """
        self._require_daemon()
        if force:
            self.recreate(recreate)
            self._reporter.info("Forced cluster recreation completed!")
            return RecoveryOutcome.RECREATED

        if not self.exists():
            raise ClusterError(
                f"Cluster '{self.name}' does not exist. Use 'qos-deploy deploy' to create it."
            )

        if self.try_quick_recovery():
            self._reporter.info("Quick recovery successful!")
            return RecoveryOutcome.RECOVERED

        self._reporter.warn("Quick recovery failed. Full cluster recreation is recommended.")
        if self._confirm("Do you want to recreate the cluster?"):
            self.recreate(recreate)
            self._reporter.info("Cluster recreation completed!")
            return RecoveryOutcome.RECREATED

        self._reporter.info(
            "Recovery cancelled. You can run 'qos-deploy recover' again "
            "or use 'qos-deploy deploy' manually."
        )
        return RecoveryOutcome.CANCELLED

    def try_quick_recovery(self) -> bool:
        self._reporter.step("Attempting to recover existing cluster...")
        containers = self._engine.cluster_containers(self.name)
        self._reporter.info("Starting kind containers...")
        if containers:
            started = self._engine.start(containers)
            if not started.ok:
                LOGGER.debug("container start failed error=%s", started.error_text())
        else:
            LOGGER.debug("no containers labelled for cluster name=%s", self.name)

        self._sleep(self._settings.recovery_settle_seconds)

        attempts = self._settings.recovery_probe_attempts
        for attempt in range(1, attempts + 1):
            probe = self._kubectl.get_table("nodes")
            if probe.ok:
                self._reporter.info("Cluster recovery successful!")
                self._reporter.raw(probe.stdout)
                return True
            LOGGER.debug(
                "recovery probe failed attempt=%s/%s error=%s",
                attempt,
                attempts,
                probe.error_text(),
            )
            if attempt < attempts:
                self._sleep(self._settings.recovery_probe_interval_seconds)

        self._reporter.warn("Cluster recovery failed")
        return False

    def recreate(self, redeploy: Callable[[], None]) -> None:
        self._reporter.step("Recreating cluster from scratch...")
        if self.exists():
            self._reporter.info("Deleting existing cluster...")
            self.delete()
        self._reporter.info("Running deployment workflow...")
        redeploy()

    def enable_auto_restart(self) -> list[str]:
        """Set `--restart=unless-stopped` on every container of the cluster."""
        self._require_daemon()
        containers = self._engine.cluster_containers(self.name)
        if not containers:
            raise ClusterError(
                f"No containers found for cluster: {self.name}. "
                "Make sure the cluster is created first."
            )

        self._reporter.info("Found containers:")
        for container in containers:
            self._reporter.detail(container)

        for container in containers:
            self._reporter.info(f"Setting restart policy for: {container}")
            result = self._engine.set_restart_policy(container)
            if not result.ok:
                raise ClusterError(
                    f"Failed to set restart policy for {container}: {result.error_text()}"
                )

        self._reporter.info("Auto-restart policy configured successfully!")
        self._reporter.info(
            "Cluster containers will now restart automatically after system reboots."
        )
        return containers

    def _require_daemon(self) -> None:
        if not self._engine.is_running():
            raise PrerequisiteError("Docker is not running. Please start Docker first.")
        self._reporter.info("Docker is running")

    @staticmethod
    def _require_config(config_file: Path) -> None:
        if not config_file.is_file():
            raise ClusterError(f"Kind config file not found: {config_file}")
