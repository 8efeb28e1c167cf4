"""The end-to-end deployment sequence."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from qos_deploy.credentials import SecretOutcome
from qos_deploy.dependencies import Toolkit
from qos_deploy.manifests import COMMON_PLAN, QOS_PLAN, ApplyReport, directory_plan
from qos_deploy.readiness import ReadinessResult
from qos_deploy.verification import (
    BACKEND_SELECTOR,
    FRONTEND_SELECTOR,
    INGRESS_NAMESPACE,
    INGRESS_SELECTOR,
    VerificationReport,
)

LOGGER = logging.getLogger("qos_deploy.workflow")
INGRESS_SERVICE = "ingress-nginx-controller"


@dataclass
class DeploymentSummary:
    verify_only: bool = False
    cluster_created: bool = False
    apply_reports: list[ApplyReport] = field(default_factory=list)
    secret: Optional[SecretOutcome] = None
    readiness: list[ReadinessResult] = field(default_factory=list)
    verification: Optional[VerificationReport] = None

    @property
    def failed_manifests(self) -> list[str]:
        return [
            outcome.step.filename
            for report in self.apply_reports
            for outcome in report.failed
        ]

    @property
    def applied_count(self) -> int:
        return sum(len(report.applied) for report in self.apply_reports)

    @property
    def skipped_count(self) -> int:
        return sum(len(report.skipped) for report in self.apply_reports)


class DeploymentWorkflow:
    """Prerequisites, cluster, manifests, waits and verification, one step at a time.

    Only prerequisite, configuration and cluster-creation failures raise.
    Apply failures, readiness timeouts and failed checks are warnings, so a
    run that reaches the end reports success even if parts of it failed; the
    summary lists what went wrong.
    """

    def __init__(self, toolkit: Toolkit) -> None:
        self._toolkit = toolkit
        self._settings = toolkit.settings
        self._reporter = toolkit.reporter

    def run(
        self,
        *,
        verify_only: bool = False,
        clean: bool = False,
        force: bool = False,
    ) -> DeploymentSummary:
        reporter = self._reporter
        settings = self._settings
        summary = DeploymentSummary(verify_only=verify_only)

        reporter.info("Starting QOS Cluster Deployment")
        reporter.info(f"Deployment directory: {settings.base_dir}")
        self._toolkit.prerequisites.check()

        if verify_only:
            reporter.info("Running verification only...")
            summary.verification = self._toolkit.verifier.verify()
            return summary

        cluster = self._toolkit.cluster
        if clean and cluster.exists():
            reporter.info("Force cleaning existing cluster...")
            cluster.delete()

        summary.cluster_created = cluster.create(force=force)
        summary.apply_reports.append(self.deploy_common_manifests(summary))
        summary.apply_reports.append(self.deploy_qoc_manifests())
        qos_report = self.deploy_qos_manifests(summary)
        if qos_report is not None:
            summary.apply_reports.append(qos_report)
        summary.verification = self._toolkit.verifier.verify()

        self._print_success(summary)
        return summary

    def deploy_common_manifests(self, summary: DeploymentSummary) -> ApplyReport:
        self._reporter.step("Deploying common infrastructure manifests...")
        report = self._toolkit.applier.apply_plan(
            COMMON_PLAN,
            self._settings.common_manifests_dir,
        )

        self._reporter.info("Waiting for NGINX Ingress Controller to be ready...")
        ingress = self._toolkit.waiter.wait_for_pods(
            INGRESS_NAMESPACE,
            INGRESS_SELECTOR,
            self._settings.ingress_wait_timeout_seconds,
        )
        summary.readiness.append(ingress)
        if ingress.ready:
            self._reporter.info("NGINX Ingress Controller is ready")
        else:
            self._reporter.warn(
                "NGINX Ingress Controller may not be fully ready, but continuing..."
            )

        self._reporter.info("Checking ingress controller service...")
        service = self._toolkit.kubectl.get_table(
            f"svc/{INGRESS_SERVICE}",
            namespace=INGRESS_NAMESPACE,
        )
        if service.ok:
            self._reporter.raw(service.stdout)
        else:
            self._reporter.warn("Ingress service not found")
        return report

    def deploy_qoc_manifests(self) -> ApplyReport:
        self._reporter.step("Deploying QOC (Quick Order Customer) manifests...")
        directory = self._settings.qoc_manifests_dir
        if not directory.is_dir():
            self._reporter.warn(f"QOC manifests directory not found: {directory}")
            return ApplyReport(plan="qoc")

        plan = directory_plan("qoc", directory, "QOC")
        report = self._toolkit.applier.apply_plan(plan, directory)
        self._reporter.info("QOC manifests deployment completed")
        return report

    def deploy_qos_manifests(self, summary: DeploymentSummary) -> Optional[ApplyReport]:
        self._reporter.step("Deploying QOS (Quick Order System) manifests...")
        settings = self._settings
        directory = settings.qos_manifests_dir
        if not directory.is_dir():
            self._reporter.warn(f"QOS manifests directory not found: {directory}")
            return None

        summary.secret = self._toolkit.secrets.ensure(
            settings.mongodb_secret_name,
            {
                settings.mongodb_user_key: settings.mongodb_default_user,
                settings.mongodb_password_key: settings.mongodb_default_password,
            },
        )
        report = self._toolkit.applier.apply_plan(QOS_PLAN, directory)

        summary.readiness.append(self._wait_for_mongodb())
        summary.readiness.append(self._wait_for_component("QOS frontend", FRONTEND_SELECTOR))
        summary.readiness.append(self._wait_for_component("QOS backend", BACKEND_SELECTOR))
        return report

    def _wait_for_mongodb(self) -> ReadinessResult:
        settings = self._settings
        kubectl = self._toolkit.kubectl
        self._reporter.info("Waiting for MongoDB StatefulSet to be ready...")
        result = self._toolkit.waiter.wait_for_pods(
            settings.namespace,
            settings.mongodb_selector,
            settings.wait_timeout_seconds,
        )
        if result.ready:
            self._reporter.info("MongoDB is ready")
            if kubectl.exists("service", "mongodb", settings.namespace):
                self._reporter.info("MongoDB service is available")
            else:
                self._reporter.warn("MongoDB service may have issues")
        else:
            self._reporter.warn("MongoDB may not be fully ready")
            claims = kubectl.get_table(
                "pvc",
                namespace=settings.namespace,
                selector=settings.mongodb_selector,
            )
            self._reporter.raw(claims.stdout or claims.stderr)
        return result

    def _wait_for_component(self, label: str, selector: str) -> ReadinessResult:
        self._reporter.info(f"Waiting for {label} to be ready...")
        result = self._toolkit.waiter.wait_for_pods(
            self._settings.namespace,
            selector,
            self._settings.wait_timeout_seconds,
        )
        if result.ready:
            self._reporter.info(f"{label} is ready")
        else:
            self._reporter.warn(f"{label} may not be fully ready")
        return result

    def _print_success(self, summary: DeploymentSummary) -> None:
        reporter = self._reporter
        failed = summary.failed_manifests
        LOGGER.info(
            "deployment finished applied=%s skipped=%s failed=%s warnings=%s",
            summary.applied_count,
            summary.skipped_count,
            len(failed),
            reporter.warning_count,
        )
        reporter.info("QOS Cluster deployment completed successfully!")
        reporter.info(
            f"Manifests applied: {summary.applied_count}, skipped: {summary.skipped_count}, "
            f"failed: {len(failed)}"
        )
        if failed:
            reporter.warn(f"Manifests that failed to apply: {', '.join(failed)}")
        reporter.info("Use 'kubectl get pods --all-namespaces' to check all pods")
        reporter.info("Use 'qos-deploy deploy --verify' to run verification checks")
