"""Read-only post-deploy verification checklist."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from rich.markup import escape
from rich.table import Table

from qos_deploy.config import DeploySettings
from qos_deploy.console import Reporter
from qos_deploy.errors import KubectlError
from qos_deploy.kubectl import KubectlClient, pod_phase
from qos_deploy.runner import CommandResult

LOGGER = logging.getLogger("qos_deploy.verification")

INGRESS_NAMESPACE = "ingress-nginx"
INGRESS_SELECTOR = "app.kubernetes.io/component=controller"
FRONTEND_SELECTOR = "app=qos-frontend-pod"
BACKEND_SELECTOR = "app=qos-backend-pod"


class CheckKind(str, Enum):
    PODS_RUNNING = "pods-running"
    EXISTS = "exists"
    STATEFULSET = "statefulset"
    PVC_BOUND = "pvc-bound"


@dataclass(frozen=True)
class CheckSpec:
    label: str
    kind: CheckKind
    namespace: Optional[str]
    resource_kind: Optional[str] = None
    name: Optional[str] = None
    selector: Optional[str] = None


@dataclass(frozen=True)
class CheckResult:
    label: str
    passed: bool
    detail: str = ""


@dataclass
class VerificationReport:
    results: list[CheckResult] = field(default_factory=list)

    @property
    def passed(self) -> list[CheckResult]:
        return [result for result in self.results if result.passed]

    @property
    def failed(self) -> list[CheckResult]:
        return [result for result in self.results if not result.passed]

    @property
    def all_passed(self) -> bool:
        return not self.failed


def build_checklist(settings: DeploySettings) -> list[CheckSpec]:
    namespace = settings.namespace
    return [
        CheckSpec(
            "NGINX Ingress Controller",
            CheckKind.PODS_RUNNING,
            INGRESS_NAMESPACE,
            selector=INGRESS_SELECTOR,
        ),
        CheckSpec("QOS Secret", CheckKind.EXISTS, namespace, "secret", "qos-secret"),
        CheckSpec("QOS ConfigMap", CheckKind.EXISTS, namespace, "configmap", "qos-cfg"),
        CheckSpec("QOS Frontend", CheckKind.PODS_RUNNING, namespace, selector=FRONTEND_SELECTOR),
        CheckSpec("QOS Backend", CheckKind.PODS_RUNNING, namespace, selector=BACKEND_SELECTOR),
        CheckSpec(
            "MongoDB Secret",
            CheckKind.EXISTS,
            namespace,
            "secret",
            settings.mongodb_secret_name,
        ),
        CheckSpec("MongoDB ConfigMap", CheckKind.EXISTS, namespace, "configmap", "mongodb-config"),
        CheckSpec("MongoDB Service", CheckKind.EXISTS, namespace, "service", "mongodb"),
        CheckSpec(
            "MongoDB StatefulSet",
            CheckKind.STATEFULSET,
            namespace,
            "statefulset",
            "mongodb",
            selector=settings.mongodb_selector,
        ),
        CheckSpec(
            "MongoDB storage",
            CheckKind.PVC_BOUND,
            namespace,
            selector=settings.mongodb_selector,
        ),
    ]


class DeploymentVerifier:
    """Runs the checklist and prints a pass/fail summary.

    Only `kubectl get` is issued. Failed checks are warnings and are returned
    in the report; they never raise.
    """

    def __init__(
        self,
        kubectl: KubectlClient,
        reporter: Reporter,
        settings: DeploySettings,
    ) -> None:
        self._kubectl = kubectl
        self._reporter = reporter
        self._settings = settings

    def verify(self) -> VerificationReport:
        self._reporter.step("Verifying deployment status...")
        self.print_overview()

        self._reporter.info("Checking critical components...")
        report = VerificationReport()
        for spec in build_checklist(self._settings):
            for result in self.run_check(spec):
                self._report_result(result)
                report.results.append(result)

        self._print_summary(report)
        self._print_access_information()
        LOGGER.info(
            "verification finished passed=%s failed=%s",
            len(report.passed),
            len(report.failed),
        )
        return report

    def print_overview(self) -> None:
        self._reporter.info("Cluster nodes:")
        self._reporter.raw(self._table_text(self._kubectl.get_table("nodes", wide=True)))
        self._reporter.info("All pods status:")
        self._reporter.raw(
            self._table_text(self._kubectl.get_table("pods", all_namespaces=True, wide=True))
        )
        self._reporter.info("Services:")
        self._reporter.raw(self._table_text(self._kubectl.get_table("svc", all_namespaces=True)))
        self._reporter.info("Ingress resources:")
        ingress = self._kubectl.get_table("ingress", all_namespaces=True)
        if ingress.ok and ingress.stdout.strip():
            self._reporter.raw(ingress.stdout)
        else:
            self._reporter.warn("No ingress resources found")

    def run_check(self, spec: CheckSpec) -> list[CheckResult]:
        if spec.kind is CheckKind.EXISTS:
            return [self._check_exists(spec)]
        if spec.kind is CheckKind.PODS_RUNNING:
            return [self._check_pods_running(spec.label, spec.namespace, spec.selector)]
        if spec.kind is CheckKind.PVC_BOUND:
            return [self._check_pvc_bound(spec)]
        if spec.kind is CheckKind.STATEFULSET:
            deployed = self._check_exists(spec)
            if not deployed.passed:
                return [deployed]
            return [
                deployed,
                self._check_pods_running("MongoDB pod", spec.namespace, spec.selector),
            ]
        raise ValueError(f"unsupported check kind: {spec.kind}")

    def _check_exists(self, spec: CheckSpec) -> CheckResult:
        assert spec.resource_kind is not None and spec.name is not None
        if self._kubectl.exists(spec.resource_kind, spec.name, spec.namespace):
            return CheckResult(spec.label, True, f"{spec.resource_kind}/{spec.name} is deployed")
        return CheckResult(spec.label, False, f"{spec.resource_kind}/{spec.name} not found")

    def _check_pods_running(
        self,
        label: str,
        namespace: Optional[str],
        selector: Optional[str],
    ) -> CheckResult:
        try:
            pods = self._kubectl.list_items("pods", namespace=namespace, selector=selector)
        except KubectlError as exc:
            return CheckResult(label, False, f"unable to list pods: {exc}")
        if not pods:
            return CheckResult(label, False, f"no pods match {selector}")
        running = [pod for pod in pods if pod_phase(pod) == "Running"]
        if running:
            return CheckResult(label, True, f"{len(running)}/{len(pods)} pods running")
        return CheckResult(label, False, f"0/{len(pods)} pods running")

    def _check_pvc_bound(self, spec: CheckSpec) -> CheckResult:
        try:
            claims = self._kubectl.list_items(
                "pvc",
                namespace=spec.namespace,
                selector=spec.selector,
            )
        except KubectlError as exc:
            return CheckResult(spec.label, False, f"unable to list PVCs: {exc}")
        bound = [claim for claim in claims if claim.get("status", {}).get("phase") == "Bound"]
        if bound:
            return CheckResult(spec.label, True, f"{len(bound)} PVC(s) bound")
        if not claims:
            return CheckResult(spec.label, False, "no PVC found")
        return CheckResult(spec.label, False, "PVC not bound")

    def _report_result(self, result: CheckResult) -> None:
        if result.passed:
            self._reporter.info(f"✓ {result.label}: {result.detail}")
        else:
            self._reporter.warn(f"✗ {result.label}: {result.detail}")

    def _print_summary(self, report: VerificationReport) -> None:
        table = Table(title="Verification summary")
        table.add_column("Check")
        table.add_column("Result")
        table.add_column("Detail")
        for result in report.results:
            outcome = "[green]PASS[/green]" if result.passed else "[yellow]FAIL[/yellow]"
            table.add_row(escape(result.label), outcome, escape(result.detail))
        self._reporter.table(table)
        self._reporter.info(
            f"{len(report.passed)} of {len(report.results)} checks passed"
        )

    def _print_access_information(self) -> None:
        cluster_name = self._settings.cluster_name
        self._reporter.info("Access Information:")
        self._reporter.detail(f"- Cluster context: {self._settings.kube_context}")
        self._reporter.detail("- To access services: kubectl port-forward or use ingress")
        self._reporter.detail(f"- To delete cluster: kind delete cluster --name {cluster_name}")

    @staticmethod
    def _table_text(result: CommandResult) -> str:
        return result.stdout if result.ok else result.error_text()
