"""Poll-based readiness waits for pods and nodes."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from qos_deploy.console import Reporter
from qos_deploy.errors import KubectlError
from qos_deploy.kubectl import KubectlClient, is_ready

LOGGER = logging.getLogger("qos_deploy.readiness")


@dataclass(frozen=True)
class ReadinessCheck:
    kind: str
    namespace: Optional[str]
    selector: Optional[str]
    timeout_seconds: float

    def describe(self) -> str:
        if self.kind == "nodes":
            return "all nodes"
        return f"{self.kind} in namespace '{self.namespace}' with selector '{self.selector}'"


@dataclass(frozen=True)
class ReadinessResult:
    check: ReadinessCheck
    ready: bool
    attempts: int
    elapsed_seconds: float
    status_dump: str = ""
    last_error: Optional[str] = None


class ReadinessWaiter:
    """Blocks until every matched resource is Ready or the timeout elapses.

    A timeout is never fatal: it is reported as a warning together with the
    current status of the matched resources, and the caller keeps going.
    """

    def __init__(
        self,
        kubectl: KubectlClient,
        reporter: Reporter,
        *,
        poll_interval_seconds: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._kubectl = kubectl
        self._reporter = reporter
        self._poll_interval_seconds = max(0.1, poll_interval_seconds)
        self._clock = clock
        self._sleep = sleep

    def wait_for_pods(
        self,
        namespace: str,
        selector: str,
        timeout_seconds: float,
    ) -> ReadinessResult:
        self._reporter.info(
            f"Waiting for pods in namespace '{namespace}' with selector '{selector}' to be ready..."
        )
        result = self.wait(ReadinessCheck("pods", namespace, selector, timeout_seconds))
        if result.ready:
            self._reporter.info("Pods are ready!")
        else:
            self._reporter.warn("Timeout waiting for pods. Checking status...")
            self._reporter.raw(result.status_dump)
        return result

    def wait_for_nodes(self, timeout_seconds: float) -> ReadinessResult:
        self._reporter.info("Waiting for all nodes to be ready...")
        result = self.wait(ReadinessCheck("nodes", None, None, timeout_seconds))
        if result.ready:
            self._reporter.info("All nodes are ready!")
        else:
            self._reporter.warn("Timeout waiting for nodes to be ready")
            self._reporter.raw(result.status_dump)
        return result

    def wait(self, check: ReadinessCheck) -> ReadinessResult:
        started = self._clock()
        deadline = started + max(0.0, check.timeout_seconds)
        attempts = 0
        last_error: Optional[str] = None

        while True:
            attempts += 1
            try:
                items = self._kubectl.list_items(
                    check.kind,
                    namespace=check.namespace,
                    selector=check.selector,
                )
            except KubectlError as exc:
                last_error = str(exc)
                LOGGER.debug("readiness poll failed target=%s error=%s", check.describe(), exc)
            else:
                last_error = None
                if items and all(is_ready(item) for item in items):
                    LOGGER.debug(
                        "readiness reached target=%s attempts=%s", check.describe(), attempts
                    )
                    return ReadinessResult(
                        check=check,
                        ready=True,
                        attempts=attempts,
                        elapsed_seconds=self._clock() - started,
                    )

            remaining = deadline - self._clock()
            if remaining <= 0:
                break
            self._sleep(min(self._poll_interval_seconds, remaining))

        LOGGER.warning(
            "readiness timeout target=%s timeout_seconds=%s attempts=%s",
            check.describe(),
            check.timeout_seconds,
            attempts,
        )
        return ReadinessResult(
            check=check,
            ready=False,
            attempts=attempts,
            elapsed_seconds=self._clock() - started,
            status_dump=self.status_dump(check, last_error),
            last_error=last_error,
        )

    def status_dump(self, check: ReadinessCheck, last_error: Optional[str] = None) -> str:
        """Current state of the matched resources; never empty."""
        table = self._kubectl.get_table(
            check.kind,
            namespace=check.namespace,
            selector=check.selector,
        )
        lines: list[str] = []
        if table.stdout.strip():
            lines.append(table.stdout.rstrip())
        elif table.stderr.strip():
            lines.append(table.stderr.strip())
        else:
            lines.append(f"No {check.describe()} found.")
        if last_error and last_error not in lines:
            lines.append(f"Last poll error: {last_error}")
        return "\n".join(lines)
