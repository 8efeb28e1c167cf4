from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from qos_deploy.cluster import ClusterManager, Confirm, decline
from qos_deploy.config import DeploySettings
from qos_deploy.console import Reporter
from qos_deploy.credentials import SecretBootstrapper
from qos_deploy.engine import DockerEngine
from qos_deploy.kind import KindClient
from qos_deploy.kubectl import KubectlClient
from qos_deploy.manifests import ManifestApplier
from qos_deploy.mongodb import MongoValidator
from qos_deploy.prerequisites import PrerequisiteChecker
from qos_deploy.readiness import ReadinessWaiter
from qos_deploy.runner import CommandRunner, Runner
from qos_deploy.verification import DeploymentVerifier


@dataclass(frozen=True)
class Toolkit:
    settings: DeploySettings
    reporter: Reporter
    kubectl: KubectlClient
    kind: KindClient
    engine: DockerEngine
    waiter: ReadinessWaiter
    prerequisites: PrerequisiteChecker
    cluster: ClusterManager
    applier: ManifestApplier
    secrets: SecretBootstrapper
    verifier: DeploymentVerifier
    mongodb: MongoValidator


def build_toolkit(
    settings: DeploySettings,
    *,
    runner: Optional[Runner] = None,
    reporter: Optional[Reporter] = None,
    confirm: Confirm = decline,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    prerequisites: Optional[PrerequisiteChecker] = None,
) -> Toolkit:
    runner = runner if runner is not None else CommandRunner()
    reporter = reporter if reporter is not None else Reporter()

    kubectl = KubectlClient(runner, kubeconfig=settings.kubeconfig)
    kind = KindClient(runner)
    engine = DockerEngine(runner)
    waiter = ReadinessWaiter(
        kubectl,
        reporter,
        poll_interval_seconds=settings.poll_interval_seconds,
        clock=clock,
        sleep=sleep,
    )
    if prerequisites is None:
        prerequisites = PrerequisiteChecker(
            engine,
            reporter,
            recommended_fd_limit=settings.recommended_fd_limit,
        )

    return Toolkit(
        settings=settings,
        reporter=reporter,
        kubectl=kubectl,
        kind=kind,
        engine=engine,
        waiter=waiter,
        prerequisites=prerequisites,
        cluster=ClusterManager(
            kind,
            kubectl,
            engine,
            waiter,
            reporter,
            settings,
            confirm=confirm,
            sleep=sleep,
        ),
        applier=ManifestApplier(kubectl, reporter, strict=settings.strict_apply),
        secrets=SecretBootstrapper(kubectl, reporter, namespace=settings.namespace),
        verifier=DeploymentVerifier(kubectl, reporter, settings),
        mongodb=MongoValidator(kubectl, reporter, settings),
    )
