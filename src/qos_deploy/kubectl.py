"""Thin wrapper around kubectl for the deployment workflow."""

from __future__ import annotations

import base64
import binascii
import json
from pathlib import Path
from typing import Any, Optional

from qos_deploy.errors import KubectlError
from qos_deploy.runner import CommandResult, Runner


class KubectlClient:
    """Builds kubectl invocations and interprets their output.

    Read helpers (`exists`, `get_json`, `get_table`) never mutate the
    cluster; `apply_file`, `create_generic_secret`, `delete`, `exec_in_pod`
    and `run_pod` do.
    """

    def __init__(
        self,
        runner: Runner,
        *,
        kubeconfig: Optional[Path] = None,
        context: Optional[str] = None,
    ) -> None:
        self._runner = runner
        self._kubeconfig = kubeconfig
        self._context = context

    def exists(self, kind: str, name: str, namespace: Optional[str] = None) -> bool:
        result = self.run(["get", kind, name, *self._namespace_args(namespace), "-o", "name"])
        return result.ok

    def get_json(
        self,
        kind: str,
        *,
        name: Optional[str] = None,
        namespace: Optional[str] = None,
        selector: Optional[str] = None,
        all_namespaces: bool = False,
    ) -> dict[str, Any]:
        args = ["get", kind]
        if name:
            args.append(name)
        args.extend(self._scope_args(namespace, selector, all_namespaces))
        args.extend(["-o", "json"])
        output = self._checked(args)
        try:
            payload = json.loads(output) if output else {}
        except json.JSONDecodeError as exc:
            raise KubectlError(
                f"kubectl returned invalid JSON: {exc}",
                args=tuple(args),
                returncode=0,
            ) from exc
        return payload if isinstance(payload, dict) else {}

    def list_items(
        self,
        kind: str,
        *,
        namespace: Optional[str] = None,
        selector: Optional[str] = None,
        all_namespaces: bool = False,
    ) -> list[dict[str, Any]]:
        payload = self.get_json(
            kind,
            namespace=namespace,
            selector=selector,
            all_namespaces=all_namespaces,
        )
        return [item for item in payload.get("items", []) if isinstance(item, dict)]

    def get_table(
        self,
        kind: str,
        *,
        namespace: Optional[str] = None,
        selector: Optional[str] = None,
        all_namespaces: bool = False,
        wide: bool = False,
    ) -> CommandResult:
        args = ["get", kind, *self._scope_args(namespace, selector, all_namespaces)]
        if wide:
            args.extend(["-o", "wide"])
        return self.run(args)

    def get_secret_value(
        self,
        name: str,
        key: str,
        namespace: Optional[str] = None,
    ) -> Optional[str]:
        """Return the decoded value of one secret key, or None if unavailable."""
        escaped_key = key.replace(".", "\\.")
        result = self.run(
            [
                "get",
                "secret",
                name,
                *self._namespace_args(namespace),
                "-o",
                f"jsonpath={{.data.{escaped_key}}}",
            ]
        )
        encoded = result.stdout.strip()
        if not result.ok or not encoded:
            return None
        try:
            return base64.b64decode(encoded, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return None

    def apply_file(self, path: Path) -> CommandResult:
        return self.run(["apply", "-f", str(path)])

    def create_generic_secret(
        self,
        name: str,
        literals: dict[str, str],
        namespace: Optional[str] = None,
    ) -> CommandResult:
        args = ["create", "secret", "generic", name, *self._namespace_args(namespace)]
        args.extend(f"--from-literal={key}={value}" for key, value in literals.items())
        return self.run(args)

    def delete(self, kind: str, name: str, namespace: Optional[str] = None) -> CommandResult:
        return self.run(["delete", kind, name, *self._namespace_args(namespace)])

    def exec_in_pod(
        self,
        pod: str,
        command: list[str],
        namespace: Optional[str] = None,
    ) -> CommandResult:
        return self.run(["exec", pod, *self._namespace_args(namespace), "--", *command])

    def run_pod(
        self,
        name: str,
        image: str,
        command: list[str],
        namespace: Optional[str] = None,
    ) -> CommandResult:
        """Run a throw-away pod to completion and remove it afterwards."""
        return self.run(
            [
                "run",
                name,
                f"--image={image}",
                "--rm",
                "-i",
                "--restart=Never",
                *self._namespace_args(namespace),
                "--",
                *command,
            ]
        )

    def cluster_info(self, context: str) -> CommandResult:
        return self.run(["cluster-info", "--context", context])

    def run(self, args: list[str]) -> CommandResult:
        return self._runner.run(self._command(args))

    def _checked(self, args: list[str]) -> str:
        result = self.run(args)
        if not result.ok:
            raise KubectlError(
                result.error_text(),
                args=result.args,
                returncode=result.returncode,
            )
        return result.stdout.strip()

    def _command(self, args: list[str]) -> list[str]:
        command = ["kubectl"]
        if self._kubeconfig is not None:
            command.append(f"--kubeconfig={self._kubeconfig}")
        if self._context:
            command.extend(["--context", self._context])
        command.extend(args)
        return command

    @staticmethod
    def _namespace_args(namespace: Optional[str]) -> list[str]:
        return ["-n", namespace] if namespace else []

    @classmethod
    def _scope_args(
        cls,
        namespace: Optional[str],
        selector: Optional[str],
        all_namespaces: bool,
    ) -> list[str]:
        args: list[str] = []
        if all_namespaces:
            args.append("--all-namespaces")
        else:
            args.extend(cls._namespace_args(namespace))
        if selector:
            args.extend(["-l", selector])
        return args


def is_ready(item: dict[str, Any]) -> bool:
    """True when a pod or node reports condition Ready=True."""
    return _has_true_condition(item, "Ready")


def pod_phase(item: dict[str, Any]) -> Optional[str]:
    return item.get("status", {}).get("phase")


def resource_name(item: dict[str, Any]) -> Optional[str]:
    return item.get("metadata", {}).get("name")


def _has_true_condition(item: dict[str, Any], condition_type: str) -> bool:
    for condition in item.get("status", {}).get("conditions", []) or []:
        if condition.get("type") == condition_type:
            return condition.get("status") == "True"
    return False
