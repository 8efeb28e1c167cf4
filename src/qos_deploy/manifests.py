"""Ordered manifest plans and the best-effort applier."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from qos_deploy.console import Reporter
from qos_deploy.errors import ManifestApplyError, ManifestOrderError
from qos_deploy.kubectl import KubectlClient

LOGGER = logging.getLogger("qos_deploy.manifests")


@dataclass(frozen=True)
class ManifestStep:
    """One manifest file and the steps that must be applied before it."""

    filename: str
    description: str
    requires: tuple[str, ...] = ()


@dataclass(frozen=True)
class ManifestPlan:
    name: str
    steps: tuple[ManifestStep, ...]

    def __iter__(self) -> Iterator[ManifestStep]:
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    def filenames(self) -> list[str]:
        return [step.filename for step in self.steps]

    def position(self, filename: str) -> int:
        for index, step in enumerate(self.steps):
            if step.filename == filename:
                return index
        raise KeyError(filename)

    def validate(self) -> None:
        """Check that every declared predecessor appears earlier in the plan."""
        seen: set[str] = set()
        known = set(self.filenames())
        for step in self.steps:
            if step.filename in seen:
                raise ManifestOrderError(
                    f"{self.name}: manifest {step.filename} is listed more than once"
                )
            for requirement in step.requires:
                if requirement not in known:
                    raise ManifestOrderError(
                        f"{self.name}: {step.filename} requires unknown manifest {requirement}"
                    )
                if requirement not in seen:
                    raise ManifestOrderError(
                        f"{self.name}: {step.filename} is ordered before its "
                        f"predecessor {requirement}"
                    )
            seen.add(step.filename)


def directory_plan(name: str, directory: Path, label: str) -> ManifestPlan:
    """Every `*.yaml` file of a directory in filename order, without edges."""
    if not directory.is_dir():
        return ManifestPlan(name=name, steps=())
    steps = tuple(
        ManifestStep(filename=path.name, description=f"{label} {path.name}")
        for path in sorted(directory.glob("*.yaml"))
        if path.is_file()
    )
    return ManifestPlan(name=name, steps=steps)


COMMON_PLAN = ManifestPlan(
    name="common",
    steps=(
        ManifestStep("kind-ingress-nginx-depl.yaml", "NGINX Ingress Controller"),
        ManifestStep("patch-def-sa.yaml", "Default Service Account Patch"),
    ),
)

_QOS_APP_CONFIG = ("gitlab-regcred.yaml", "qos-secret.yaml", "qos-cfg.yaml")

# Secrets and ConfigMaps come before the Deployments that reference them,
# storage before the StatefulSet, Services before the Ingress that routes to them.
QOS_PLAN = ManifestPlan(
    name="qos",
    steps=(
        ManifestStep("gitlab-regcred.yaml", "QOS GitLab Registry Credentials"),
        ManifestStep("qos-secret.yaml", "QOS Application Secrets"),
        ManifestStep("qos-cfg.yaml", "QOS Application ConfigMap"),
        ManifestStep("mongodb-storage.yaml", "MongoDB Storage Components (PV, StorageClass)"),
        ManifestStep("mongodb-config.yaml", "MongoDB Configuration ConfigMap"),
        ManifestStep("mongodb-service.yaml", "MongoDB Services (Headless & ClusterIP)"),
        ManifestStep(
            "mongodb-statefulset.yaml",
            "MongoDB StatefulSet",
            requires=("mongodb-storage.yaml", "mongodb-config.yaml", "mongodb-service.yaml"),
        ),
        ManifestStep(
            "qos-frontend-depl.yaml",
            "QOS Frontend Deployment",
            requires=_QOS_APP_CONFIG,
        ),
        ManifestStep(
            "qos-frontend-svc.yaml",
            "QOS Frontend NodePort Service",
            requires=("qos-frontend-depl.yaml",),
        ),
        ManifestStep(
            "qos-frontend-cip-svc.yaml",
            "QOS Frontend ClusterIP Service",
            requires=("qos-frontend-depl.yaml",),
        ),
        ManifestStep(
            "qos-frontend-ingress.yaml",
            "QOS Frontend Ingress (SSL Termination)",
            requires=("qos-frontend-cip-svc.yaml",),
        ),
        ManifestStep(
            "qos-backend-depl.yaml",
            "QOS Backend Deployment",
            requires=(*_QOS_APP_CONFIG, "mongodb-statefulset.yaml"),
        ),
        ManifestStep(
            "qos-backend-svc.yaml",
            "QOS Backend Service",
            requires=("qos-backend-depl.yaml",),
        ),
    ),
)


class ApplyStatus(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ApplyOutcome:
    step: ManifestStep
    path: Path
    status: ApplyStatus
    message: str = ""


@dataclass
class ApplyReport:
    plan: str
    outcomes: list[ApplyOutcome] = field(default_factory=list)

    def with_status(self, status: ApplyStatus) -> list[ApplyOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status is status]

    @property
    def failed(self) -> list[ApplyOutcome]:
        return self.with_status(ApplyStatus.FAILED)

    @property
    def applied(self) -> list[ApplyOutcome]:
        return self.with_status(ApplyStatus.APPLIED)

    @property
    def skipped(self) -> list[ApplyOutcome]:
        return self.with_status(ApplyStatus.SKIPPED)


class ManifestApplier:
    """Applies plans in their fixed order.

    A missing file is skipped with a warning and a failed apply is reported
    and the sequence continues, unless `strict` is set, in which case the
    first failure raises ManifestApplyError. Nothing is rolled back.
    """

    def __init__(self, kubectl: KubectlClient, reporter: Reporter, *, strict: bool = False) -> None:
        self._kubectl = kubectl
        self._reporter = reporter
        self._strict = strict

    def apply_plan(self, plan: ManifestPlan, directory: Path) -> ApplyReport:
        plan.validate()
        report = ApplyReport(plan=plan.name)
        for step in plan:
            report.outcomes.append(self.apply_step(step, directory / step.filename))
        LOGGER.info(
            "plan applied plan=%s applied=%s skipped=%s failed=%s",
            plan.name,
            len(report.applied),
            len(report.skipped),
            len(report.failed),
        )
        return report

    def apply_step(self, step: ManifestStep, path: Path) -> ApplyOutcome:
        if not path.is_file():
            self._reporter.warn(f"Manifest not found: {path} - skipping")
            return ApplyOutcome(step=step, path=path, status=ApplyStatus.SKIPPED)

        self._reporter.step(f"Applying {step.description}: {path.name}")
        result = self._kubectl.apply_file(path)
        self._reporter.raw(result.stdout)
        if result.ok:
            self._reporter.info(f"Successfully applied {step.description}")
            return ApplyOutcome(
                step=step,
                path=path,
                status=ApplyStatus.APPLIED,
                message=result.stdout.strip(),
            )

        message = result.error_text()
        self._reporter.error(f"Failed to apply {step.description}: {message}")
        if self._strict:
            raise ManifestApplyError(
                f"Failed to apply {step.description} ({path.name}): {message}",
                filename=step.filename,
            )
        return ApplyOutcome(step=step, path=path, status=ApplyStatus.FAILED, message=message)
