"""Validation of the MongoDB StatefulSet: deployment, connectivity, persistence, discovery."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Optional

from qos_deploy.config import DeploySettings
from qos_deploy.console import Reporter
from qos_deploy.errors import KubectlError
from qos_deploy.kubectl import KubectlClient, pod_phase, resource_name
from qos_deploy.runner import CommandResult

LOGGER = logging.getLogger("qos_deploy.mongodb")

STATEFULSET_NAME = "mongodb"
SERVICE_NAME = "mongodb"
HEADLESS_SERVICE_NAME = "mongodb-headless"
DISCOVERY_POD_NAME = "mongodb-test"
MONGODB_PORT = 27017


@dataclass(frozen=True)
class Credentials:
    user: str
    password: str


@dataclass(frozen=True)
class StageResult:
    name: str
    passed: bool
    detail: str = ""


@dataclass
class MongoValidationReport:
    stages: list[StageResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(stage.passed for stage in self.stages)


class MongoValidator:
    """Runs the MongoDB checks in order and stops at the first failed stage.

    Service discovery is the exception: it only warns, like a readiness
    timeout, because the throw-away test pod depends on image pulls.
    """

    def __init__(
        self,
        kubectl: KubectlClient,
        reporter: Reporter,
        settings: DeploySettings,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._kubectl = kubectl
        self._reporter = reporter
        self._settings = settings
        self._clock = clock

    @property
    def service_host(self) -> str:
        return f"{SERVICE_NAME}.{self._settings.namespace}.svc.cluster.local:{MONGODB_PORT}"

    def validate(self) -> MongoValidationReport:
        self._reporter.info("Starting MongoDB setup validation...")
        report = MongoValidationReport()

        deployment = self.check_deployment()
        report.stages.append(deployment)
        if not deployment.passed:
            return report

        pod = self.first_pod()
        connectivity = self.check_connectivity(pod)
        report.stages.append(connectivity)
        if not connectivity.passed or pod is None:
            return report

        persistence = self.check_persistence(pod)
        report.stages.append(persistence)
        if not persistence.passed:
            return report

        report.stages.append(self.check_service_discovery())

        self._reporter.info("MongoDB setup validation completed!")
        self._reporter.info("Your MongoDB StatefulSet is ready for use.")
        self.print_connection_information()
        return report

    def check_deployment(self) -> StageResult:
        self._reporter.step("Testing MongoDB deployment...")
        namespace = self._settings.namespace
        selector = self._settings.mongodb_selector

        try:
            statefulset = self._kubectl.get_json(
                "statefulset",
                name=STATEFULSET_NAME,
                namespace=namespace,
            )
        except KubectlError:
            self._reporter.error("✗ MongoDB StatefulSet not found")
            return StageResult("deployment", False, "StatefulSet not found")
        self._reporter.info("✓ MongoDB StatefulSet exists")

        ready = statefulset.get("status", {}).get("readyReplicas") or 0
        desired = statefulset.get("spec", {}).get("replicas")
        desired = 1 if desired is None else desired
        if ready == desired:
            self._reporter.info(f"✓ MongoDB StatefulSet is ready ({ready}/{desired})")
        else:
            self._reporter.warn(f"✗ MongoDB StatefulSet not fully ready ({ready}/{desired})")

        try:
            pods = self._kubectl.list_items("pods", namespace=namespace, selector=selector)
        except KubectlError as exc:
            pods = []
            LOGGER.debug("listing mongodb pods failed error=%s", exc)
        if any(pod_phase(pod) == "Running" for pod in pods):
            self._reporter.info("✓ MongoDB pods are running")
        else:
            self._reporter.error("✗ MongoDB pods are not running")
            self._reporter.raw(
                self._kubectl.get_table("pods", namespace=namespace, selector=selector).stdout
            )
            return StageResult("deployment", False, "pods are not running")

        for service, label in (
            (SERVICE_NAME, "ClusterIP service"),
            (HEADLESS_SERVICE_NAME, "headless service"),
        ):
            if self._kubectl.exists("service", service, namespace):
                self._reporter.info(f"✓ MongoDB {label} exists")
            else:
                self._reporter.error(f"✗ MongoDB {label} not found")

        try:
            claims = self._kubectl.list_items("pvc", namespace=namespace, selector=selector)
        except KubectlError:
            claims = []
        if any(claim.get("status", {}).get("phase") == "Bound" for claim in claims):
            self._reporter.info("✓ MongoDB PVC is bound")
        else:
            self._reporter.warn("✗ MongoDB PVC not bound")
            self._reporter.raw(
                self._kubectl.get_table("pvc", namespace=namespace, selector=selector).stdout
            )

        return StageResult("deployment", True, f"{ready}/{desired} replicas ready")

    def check_connectivity(self, pod: Optional[str]) -> StageResult:
        self._reporter.step("Testing MongoDB connectivity...")
        if pod is None:
            self._reporter.error("No MongoDB pod found")
            return StageResult("connectivity", False, "no pod found")
        self._reporter.info(f"Testing connectivity to pod: {pod}")

        credentials = self.read_credentials()
        if credentials is None:
            secret = self._settings.mongodb_secret_name
            self._reporter.error(f"Failed to retrieve MongoDB credentials from secret '{secret}'")
            self._reporter.error(
                "Please ensure the secret exists and contains "
                f"{self._settings.mongodb_user_key} and {self._settings.mongodb_password_key}"
            )
            return StageResult("connectivity", False, "credentials unavailable")

        if self._mongosh(pod, "db.adminCommand('ping')").ok:
            self._reporter.info("✓ MongoDB is responding to ping")
        else:
            self._reporter.error("✗ MongoDB is not responding")
            return StageResult("connectivity", False, "ping failed")

        self._reporter.info("Testing MongoDB authentication...")
        if self._mongosh(pod, "db.adminCommand('listDatabases')", credentials).ok:
            self._reporter.info("✓ MongoDB authentication successful")
        else:
            self._reporter.error("✗ MongoDB authentication failed")
            return StageResult("connectivity", False, "authentication failed")

        self._reporter.info("Testing database access...")
        if self._mongosh(pod, "db.stats()", credentials).ok:
            self._reporter.info("✓ Database access successful")
        else:
            self._reporter.error("✗ Database access failed")
            return StageResult("connectivity", False, "database access failed")

        return StageResult("connectivity", True)

    def check_persistence(self, pod: str) -> StageResult:
        self._reporter.step("Testing data persistence...")
        credentials = self.read_credentials()
        if credentials is None:
            self._reporter.error("Failed to retrieve MongoDB credentials from secret")
            return StageResult("persistence", False, "credentials unavailable")

        self._reporter.info("Inserting test data...")
        test_id = f"persistence_test_{int(self._clock())}"
        insert = self._mongosh(
            pod,
            "db.test_collection.insertOne({"
            f"test_id: '{test_id}', "
            "message: 'This is a persistence test', "
            "timestamp: new Date()})",
            credentials,
        )
        if not insert.ok:
            LOGGER.debug("persistence insert failed error=%s", insert.error_text())

        counted = self._mongosh(pod, "db.test_collection.countDocuments({})", credentials)
        count = _last_int(counted.stdout) if counted.ok else None
        if count is not None and count > 0:
            self._reporter.info(f"✓ Data persistence test successful (found {count} documents)")
            return StageResult("persistence", True, f"{count} documents")

        self._reporter.error("✗ Data persistence test failed")
        return StageResult("persistence", False, "no documents found")

    def check_service_discovery(self) -> StageResult:
        self._reporter.step("Testing service discovery...")
        result = self._kubectl.run_pod(
            DISCOVERY_POD_NAME,
            self._settings.mongodb_test_image,
            [
                "mongosh",
                "--quiet",
                f"mongodb://{self.service_host}",
                "--eval",
                'db.adminCommand("ping")',
            ],
            namespace=self._settings.namespace,
        )
        if result.ok:
            self._reporter.info("✓ Service discovery test passed")
            return StageResult("service-discovery", True)
        self._reporter.warn("✗ Service discovery test failed")
        return StageResult("service-discovery", True, "discovery pod failed (warning only)")

    def first_pod(self) -> Optional[str]:
        try:
            pods = self._kubectl.list_items(
                "pods",
                namespace=self._settings.namespace,
                selector=self._settings.mongodb_selector,
            )
        except KubectlError:
            return None
        for pod in pods:
            name = resource_name(pod)
            if name:
                return name
        return None

    def read_credentials(self) -> Optional[Credentials]:
        self._reporter.info("Retrieving MongoDB credentials from secret...")
        secret = self._settings.mongodb_secret_name
        namespace = self._settings.namespace
        user = self._kubectl.get_secret_value(secret, self._settings.mongodb_user_key, namespace)
        password = self._kubectl.get_secret_value(
            secret, self._settings.mongodb_password_key, namespace
        )
        if not user or not password:
            return None
        return Credentials(user=user, password=password)

    def print_connection_information(self) -> None:
        settings = self._settings
        secret = settings.mongodb_secret_name
        self._reporter.info("Connection Information:")
        self._reporter.detail(f"Internal Service: {self.service_host}")
        self._reporter.detail(f"Database: {settings.mongodb_database}")
        self._reporter.detail(f"Username: [stored in {secret}]")
        self._reporter.detail(f"Password: [stored in {secret}]")
        self._reporter.info("To get connection details from secret:")
        self._reporter.detail(
            f"MONGODB_USER=$(kubectl get secret {secret} "
            f"-o jsonpath='{{.data.{settings.mongodb_user_key}}}' | base64 -d)"
        )
        self._reporter.detail(
            f"MONGODB_PASS=$(kubectl get secret {secret} "
            f"-o jsonpath='{{.data.{settings.mongodb_password_key}}}' | base64 -d)"
        )
        self._reporter.info("Connection string template:")
        self._reporter.detail(
            "mongodb://${MONGODB_USER}:${MONGODB_PASS}@"
            f"{self.service_host}/{settings.mongodb_database}"
        )

    def _mongosh(
        self,
        pod: str,
        script: str,
        credentials: Optional[Credentials] = None,
    ) -> CommandResult:
        command = ["mongosh", "--quiet"]
        if credentials is not None:
            command = [
                "mongosh",
                self._settings.mongodb_database,
                "--quiet",
                "-u",
                credentials.user,
                "-p",
                credentials.password,
                "--authenticationDatabase",
                self._settings.mongodb_database,
            ]
        command.extend(["--eval", script])
        return self._kubectl.exec_in_pod(pod, command, namespace=self._settings.namespace)


def _last_int(output: str) -> Optional[int]:
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    if not lines:
        return None
    try:
        return int(lines[-1])
    except ValueError:
        return None
